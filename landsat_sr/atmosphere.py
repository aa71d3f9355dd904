"""
Atmospheric terms of the Lambertian surface model.

For a Lambertian surface of reflectance :math:`\\rho_s` the TOA reflectance
is

.. math::

    \\rho_{TOA} = t_{go} \\left[ \\rho_{atm}
        + \\frac{T \\rho_s}{1 - S \\rho_s} \\right]

where :math:`\\rho_{atm}` is the intrinsic atmospheric reflectance
(``roatm``), :math:`T` the total two-way transmission including water vapor
(``ttatmg``), :math:`S` the spherical albedo (``satm``) and :math:`t_{go}`
the ozone and other-gas transmittance (``tgo``).

Two evaluation paths are provided:

- :func:`evaluate_atmosphere` interpolates the raw lookup tables (slow path,
  used to build the per-scene coefficients and for the first pass)
- :func:`correct_lambertian` evaluates the fitted cubic polynomials of a
  band (fast path, vectorised over rasters)
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

import numpy as np
from numpy.polynomial import polynomial as P

from landsat_sr.constants import (
    AOT_REFERENCE_WAVELENGTH,
    AtmosphereConstants,
    Band,
    Satellite,
)
from landsat_sr.gases import band_gas_transmittance
from landsat_sr.lut import AtmosphericLUT
from landsat_sr.rayleigh import rayleigh_reflectance, scattering_angle


@dataclass(frozen=True)
class SceneGeometry:
    """
    Sun and view geometry of a scene.

    All angles are in degrees.

    Attributes
    ----------
    solar_zenith : float
        Solar zenith angle at the scene center.
    view_zenith : float, optional
        Sensor view zenith angle. Default is 0 (nadir).
    relative_azimuth : float, optional
        Relative azimuth between sun and sensor. Default is 0.
    satellite : Satellite, optional
        Platform; selects the band wavelengths.
    """

    solar_zenith: float
    view_zenith: float = 0.0
    relative_azimuth: float = 0.0
    satellite: Satellite = Satellite.LANDSAT_8

    def __post_init__(self):
        for name in ("solar_zenith", "view_zenith"):
            angle = getattr(self, name)
            if not 0.0 <= angle < 90.0:
                raise ValueError(f"{name} must be in [0, 90) degrees, got {angle}")

    @property
    def mus(self) -> float:
        """Cosine of the solar zenith angle."""
        return float(np.cos(np.deg2rad(self.solar_zenith)))

    @property
    def muv(self) -> float:
        """Cosine of the view zenith angle."""
        return float(np.cos(np.deg2rad(self.view_zenith)))

    @property
    def scattering_angle(self) -> float:
        """Scattering angle in degrees."""
        return float(scattering_angle(
            self.solar_zenith, self.view_zenith, self.relative_azimuth
        ))


@dataclass(frozen=True)
class AtmosphereTerms:
    """
    Atmospheric terms of one band at one AOT.

    Attributes
    ----------
    roatm : float
        Intrinsic atmospheric reflectance, water vapor corrected.
    ttatmg : float
        Total two-way transmission including water vapor.
    satm : float
        Spherical albedo.
    tgo : float
        Ozone and other-gas transmittance.
    xrorayp : float
        Rayleigh reflectance.
    next : float
        Normalized aerosol extinction.
    roslamb : float or ndarray, optional
        Lambertian surface reflectance, when a TOA reflectance was given.
    """

    roatm: float
    ttatmg: float
    satm: float
    tgo: float
    xrorayp: float
    next: float
    roslamb: Optional[Union[float, np.ndarray]] = None


@dataclass(frozen=True)
class BandCoefficients:
    """
    Cubic fits of the atmospheric terms of a band vs. AOT at 550 nm.

    Coefficients are ordered from the constant term up, as returned by
    :func:`numpy.polynomial.polynomial.polyfit`.

    Attributes
    ----------
    band : Band
    roatm_coef, ttatmg_coef, satm_coef : tuple of float
        Polynomial coefficients.
    roatm_ia_max : int
        Last AOT grid index used by the roatm fit.
    roatm_aot_max : float
        AOT of that index; roatm is never evaluated beyond it.
    tgo : float
        Ozone and other-gas transmittance of the band.
    normext_p0a3 : float
        Normalized extinction at the first pressure and fourth AOT node.
    wavelength : float
        Band center wavelength [micrometers].
    """

    band: Band
    roatm_coef: Tuple[float, ...]
    ttatmg_coef: Tuple[float, ...]
    satm_coef: Tuple[float, ...]
    roatm_ia_max: int
    roatm_aot_max: float
    tgo: float
    normext_p0a3: float
    wavelength: float = field(default=AOT_REFERENCE_WAVELENGTH)

    def table_aot(
        self,
        aot: Union[float, np.ndarray],
        eps: Union[float, np.ndarray],
    ) -> Union[float, np.ndarray]:
        """Convert AOT at 550 nm with Angstrom exponent ``eps`` to table units."""
        return (np.asarray(aot)
                * (self.wavelength / AOT_REFERENCE_WAVELENGTH) ** (-np.asarray(eps))
                / self.normext_p0a3)


def lambertian_inversion(
    rotoa: Union[float, np.ndarray],
    tgo: float,
    roatm: Union[float, np.ndarray],
    ttatmg: Union[float, np.ndarray],
    satm: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Invert the Lambertian model for the surface reflectance.

    Notes
    -----
    .. math::

        y = \\frac{\\rho_{TOA}/t_{go} - \\rho_{atm}}{T}, \\qquad
        \\rho_s = \\frac{y}{1 + S y}
    """
    roslamb = (np.asarray(rotoa) / tgo - roatm) / ttatmg
    return roslamb / (1.0 + satm * roslamb)


def evaluate_atmosphere(
    lut: AtmosphericLUT,
    constants: AtmosphereConstants,
    band: Band,
    geometry: SceneGeometry,
    pressure: float,
    aot: float,
    ozone: float,
    water_vapor: float,
    rotoa: Optional[Union[float, np.ndarray]] = None,
    eps: Optional[float] = None,
) -> AtmosphereTerms:
    """
    Interpolate the lookup tables and apply the gaseous corrections.

    Parameters
    ----------
    lut : AtmosphericLUT
        Radiative transfer tables.
    constants : AtmosphereConstants
        Rayleigh and gas coefficients.
    band : Band
        Reflectance band.
    geometry : SceneGeometry
        Scene geometry; ``geometry.satellite`` selects the wavelengths.
    pressure : float
        Surface pressure [hPa].
    aot : float
        AOT. In table units when ``eps`` is None, otherwise AOT at 550 nm.
    ozone : float
        Ozone column [cm-atm].
    water_vapor : float
        Water vapor column [g/cm^2].
    rotoa : float or ndarray, optional
        TOA reflectance to invert.
    eps : float, optional
        Angstrom exponent used to convert ``aot`` to table units.

    Returns
    -------
    AtmosphereTerms
        Atmospheric terms, with ``roslamb`` set when ``rotoa`` is given.

    Notes
    -----
    Geometry, pressure and AOT outside the tables are clamped to the grid
    edges. The Rayleigh part of the intrinsic reflectance is not attenuated
    by water vapor, the aerosol part by half the water vapor column:

    .. math::

        \\rho_{atm} = (\\rho_{atm} - \\rho_R) t_{wv}^{1/2} + \\rho_R
    """
    if eps is not None:
        wavelength = constants.wavelength(geometry.satellite, band)
        aot = (aot * (wavelength / AOT_REFERENCE_WAVELENGTH) ** (-eps)
               / lut.reference_extinction(band))

    roatm = lut.intrinsic(band, pressure, aot, geometry.scattering_angle)
    tsun = lut.transmittance(band, pressure, aot, geometry.solar_zenith)
    tview = lut.transmittance(band, pressure, aot, geometry.view_zenith)
    satm = lut.albedo(band, pressure, aot)
    next_ = lut.extinction(band, pressure, aot)

    xrorayp = float(rayleigh_reflectance(
        constants.tauray[band], pressure, geometry.solar_zenith,
        geometry.view_zenith, geometry.relative_azimuth,
    ))
    gas = band_gas_transmittance(
        constants, band, geometry.solar_zenith, geometry.view_zenith,
        pressure, ozone, water_vapor,
    )

    roatm = (roatm - xrorayp) * gas.water_vapor_half + xrorayp
    ttatmg = tsun * tview * gas.water_vapor

    roslamb = None
    if rotoa is not None:
        roslamb = lambertian_inversion(rotoa, gas.tgo, roatm, ttatmg, satm)

    return AtmosphereTerms(
        roatm=roatm, ttatmg=ttatmg, satm=satm, tgo=gas.tgo,
        xrorayp=xrorayp, next=next_, roslamb=roslamb,
    )


def polynomial_terms(
    coefficients: BandCoefficients,
    aot: Union[float, np.ndarray],
    eps: Union[float, np.ndarray],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Evaluate roatm, ttatmg and satm from the fitted polynomials.

    roatm is evaluated at ``min(a, roatm_aot_max)`` with ``a`` the AOT in
    table units.
    """
    a = coefficients.table_aot(aot, eps)
    roatm = P.polyval(np.minimum(a, coefficients.roatm_aot_max),
                      coefficients.roatm_coef)
    ttatmg = P.polyval(a, coefficients.ttatmg_coef)
    satm = P.polyval(a, coefficients.satm_coef)
    return roatm, ttatmg, satm


def correct_lambertian(
    coefficients: BandCoefficients,
    aot: Union[float, np.ndarray],
    eps: Union[float, np.ndarray],
    rotoa: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Surface reflectance from the fitted polynomials of a band.

    Parameters
    ----------
    coefficients : BandCoefficients
        Per-scene fits of the band.
    aot : float or ndarray
        AOT at 550 nm.
    eps : float or ndarray
        Angstrom exponent.
    rotoa : float or ndarray
        TOA reflectance.

    Returns
    -------
    float or ndarray
        Lambertian surface reflectance, same shape as the broadcast inputs.

    Examples
    --------
    >>> ros = correct_lambertian(coefs[Band.RED], taero, teps, toa_red)
    """
    roatm, ttatmg, satm = polynomial_terms(coefficients, aot, eps)
    return lambertian_inversion(rotoa, coefficients.tgo, roatm, ttatmg, satm)
