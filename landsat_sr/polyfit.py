"""
Per-band polynomial fits of the atmospheric terms vs. AOT.

The lookup tables are evaluated once per scene at every AOT grid node for
the scene geometry, pressure, ozone and water vapor. Cubic polynomials are
then fit to roatm, ttatmg and satm so that the per-pixel correction never
touches the raw tables.

roatm is only fit on the part of the AOT grid where it still increases;
beyond that index the table is numerically unreliable.
"""

import logging
import warnings
from typing import Dict, Sequence

import numpy as np
from numpy.polynomial import polynomial as P

from landsat_sr.atmosphere import BandCoefficients, SceneGeometry, evaluate_atmosphere
from landsat_sr.constants import (
    REFLECTANCE_BANDS,
    ROATM_MONOTONIC_EPSILON,
    AtmosphereConstants,
    Band,
)
from landsat_sr.lut import AtmosphericLUT

logger = logging.getLogger(__name__)

#: Degree of the AOT polynomials
POLY_DEGREE = 3


def roatm_max_index(roatm: Sequence[float],
                    epsilon: float = ROATM_MONOTONIC_EPSILON) -> int:
    """
    Last AOT index up to which roatm increases.

    Parameters
    ----------
    roatm : sequence of float
        roatm at each AOT grid node.
    epsilon : float, optional
        Smallest increase still counted as increasing.

    Returns
    -------
    int
        Index of the last node used by the roatm fit.

    Notes
    -----
    The scan starts at index 1. At each index the step from the previous
    node is compared with ``epsilon``; the first step that does not exceed
    it stops the scan at the previous index. Reaching the last index keeps
    the full grid. A table that is flat from the start yields index 0.
    """
    n = len(roatm)
    ia_max = 1
    for ia in range(1, n):
        if ia == n - 1:
            ia_max = n - 1
        if roatm[ia] - roatm[ia - 1] > epsilon:
            continue
        ia_max = ia - 1
        break
    return ia_max


def fit_polynomial(x: np.ndarray, y: np.ndarray, degree: int = POLY_DEGREE,
                   label: str = "") -> np.ndarray:
    """
    Least-squares polynomial fit, lowering the degree for short series.

    Returns the coefficients from the constant term up, always padded to
    ``degree + 1`` values.
    """
    npoints = len(x)
    fit_degree = min(degree, npoints - 1)
    if fit_degree < degree:
        warnings.warn(
            f"Only {npoints} points to fit {label or 'polynomial'}; "
            f"degree reduced to {fit_degree}"
        )
    if npoints == 1:
        coef = np.array([float(y[0])])
    else:
        coef = P.polyfit(np.asarray(x, dtype=np.float64),
                         np.asarray(y, dtype=np.float64), fit_degree)

    padded = np.zeros(degree + 1)
    padded[:coef.size] = coef
    return padded


def fit_band_coefficients(
    lut: AtmosphericLUT,
    constants: AtmosphereConstants,
    geometry: SceneGeometry,
    pressure: float,
    ozone: float,
    water_vapor: float,
    bands: Sequence[Band] = REFLECTANCE_BANDS,
) -> Dict[Band, BandCoefficients]:
    """
    Fit the cubic AOT polynomials of every reflectance band.

    Parameters
    ----------
    lut : AtmosphericLUT
        Radiative transfer tables.
    constants : AtmosphereConstants
        Rayleigh and gas coefficients, band wavelengths.
    geometry : SceneGeometry
        Scene geometry.
    pressure : float
        Scene surface pressure [hPa].
    ozone : float
        Scene ozone column [cm-atm].
    water_vapor : float
        Scene water vapor column [g/cm^2].
    bands : sequence of Band, optional
        Bands to fit. Default is the seven reflectance bands.

    Returns
    -------
    dict
        :class:`~landsat_sr.atmosphere.BandCoefficients` keyed by band.
    """
    aot_grid = lut.aot_levels
    coefficients = {}

    for band in bands:
        terms = [
            evaluate_atmosphere(lut, constants, band, geometry, pressure,
                                aot, ozone, water_vapor)
            for aot in aot_grid
        ]
        roatm = np.array([t.roatm for t in terms])
        ttatmg = np.array([t.ttatmg for t in terms])
        satm = np.array([t.satm for t in terms])

        ia_max = roatm_max_index(roatm)
        roatm_coef = fit_polynomial(aot_grid[:ia_max + 1], roatm[:ia_max + 1],
                                    label=f"roatm of band {band.name}")
        ttatmg_coef = fit_polynomial(aot_grid, ttatmg)
        satm_coef = fit_polynomial(aot_grid, satm)

        coefficients[band] = BandCoefficients(
            band=band,
            roatm_coef=tuple(roatm_coef),
            ttatmg_coef=tuple(ttatmg_coef),
            satm_coef=tuple(satm_coef),
            roatm_ia_max=ia_max,
            roatm_aot_max=float(aot_grid[ia_max]),
            tgo=terms[0].tgo,
            normext_p0a3=lut.reference_extinction(band),
            wavelength=constants.wavelength(geometry.satellite, band),
        )
        logger.debug("Band %s: roatm fit up to AOT index %d", band.name, ia_max)

    return coefficients
