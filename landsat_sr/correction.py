"""
Surface Reflectance Correction for Landsat 8/9 OLI
==================================================

Main correction class converting TOA reflectance to surface reflectance.

The correction runs the following stages, strictly in order:

1. First pass: every reflectance band is corrected with a fixed aerosol
   load (AOT 0.05) interpolated from the lookup tables.
2. Per-band cubic fits of the atmospheric terms vs. AOT.
3. Aerosol retrieval on a grid of windows.
4. Gap fill of the invalid windows and bilinear expansion of the AOT and
   Angstrom exponent to full resolution.
5. Final correction of every pixel with its own AOT and exponent, and
   aerosol level QA bits from the coastal band.

References
----------
.. [1] Vermote, E., Justice, C., Claverie, M., and Franch, B. (2016).
       Preliminary analysis of the performance of the Landsat 8/OLI land
       surface reflectance product. Remote Sens. Environ., 185:46-56.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from . import constants
from . import qa
from .atmosphere import (
    AtmosphereTerms,
    BandCoefficients,
    SceneGeometry,
    correct_lambertian,
    evaluate_atmosphere,
    lambertian_inversion,
)
from .climatology import Climatology, SceneAtmosphere
from .constants import Band
from .geolocation import Geolocator
from .interpolation import expand_windows, fill_invalid_windows
from .lut import AtmosphericLUT, LookupTableError
from .parallel import run_parallel
from .polyfit import fit_band_coefficients
from .retrieval import (
    RETRIEVAL_BANDS,
    AerosolWindows,
    RetrievalContext,
    retrieve_aerosols,
)

logger = logging.getLogger(__name__)


@dataclass
class FirstPass:
    """
    Terms of the first-pass correction.

    Attributes
    ----------
    terms : dict
        Atmospheric terms per reflectance band at AOT 0.05.
    toa : dict
        Copy of the TOA reflectance of the retrieval bands.
    """

    terms: Dict[Band, AtmosphereTerms]
    toa: Dict[Band, np.ndarray]


@dataclass
class CorrectionResult:
    """
    Results of the surface reflectance correction.

    Attributes
    ----------
    surface_reflectance : dict
        Surface reflectance per reflectance band (the input arrays,
        corrected in place). Fill pixels hold the fill value, 0, which is
        also a valid reflectance; use ``fill_mask`` to tell them apart.
    ipflag : ndarray of uint8
        Aerosol QA band.
    taero : ndarray
        AOT at 550 nm per pixel.
    teps : ndarray
        Angstrom exponent per pixel.
    windows : AerosolWindows
        Window grid after the gap fill.
    coefficients : dict
        Per-band polynomial fits.
    atmosphere : SceneAtmosphere
        Scene pressure, ozone and water vapor.
    fill_mask : ndarray of bool
        Level-1 fill pixels.
    """

    surface_reflectance: Dict[Band, np.ndarray]
    ipflag: np.ndarray
    taero: np.ndarray
    teps: np.ndarray
    windows: AerosolWindows
    coefficients: Dict[Band, BandCoefficients]
    atmosphere: SceneAtmosphere
    fill_mask: np.ndarray


class SurfaceReflectanceCorrection:
    """
    Surface reflectance processor for Landsat 8/9 OLI scenes.

    Parameters
    ----------
    lut : AtmosphericLUT
        Radiative transfer tables.
    climatology : Climatology
        CMG auxiliary grids.
    atmosphere_constants : AtmosphereConstants, optional
        Rayleigh and gas coefficients. Default is the LaSRC set.
    window : int, optional
        Aerosol window size [pixels]. Default is 3.
    max_workers : int, optional
        Worker threads. Default is the number of CPUs.
    max_fill_radius : int, optional
        Gap fill search radius [windows]. Default is 10.
    default_aot : float, optional
        AOT of windows without any valid neighbor. Default is 0.05.
    default_eps : float, optional
        Angstrom exponent of windows without any valid neighbor.
        Default is 1.5.
    progress : bool, optional
        Show a progress bar during the aerosol retrieval.

    Raises
    ------
    ValueError
        If the window size is below 1 or a reflectance band has no table.
    LookupTableError
        If the table AOT or pressure axes differ from
        ``atmosphere_constants``.

    Examples
    --------
    >>> from landsat_sr import SurfaceReflectanceCorrection, SceneGeometry
    >>> sr = SurfaceReflectanceCorrection(lut, climatology)
    >>> result = sr.process(sband, qaband, SceneGeometry(35.2), geolocator)
    >>> result.surface_reflectance[Band.RED]
    """

    def __init__(
        self,
        lut: AtmosphericLUT,
        climatology: Climatology,
        atmosphere_constants: constants.AtmosphereConstants = constants.DEFAULT_ATMOSPHERE,
        window: int = constants.AERO_WINDOW,
        max_workers: Optional[int] = None,
        max_fill_radius: int = constants.MAX_FILL_RADIUS,
        default_aot: float = constants.DEFAULT_AOT,
        default_eps: float = constants.DEFAULT_EPS,
        progress: bool = False,
    ):
        if window < 1:
            raise ValueError(f"window must be positive, got {window}")
        missing = [b.name for b in constants.REFLECTANCE_BANDS if b not in lut.bands]
        if missing:
            raise ValueError(f"Lookup tables have no entry for bands {missing}")
        for name in ("aot_levels", "pressure_levels"):
            expected = np.asarray(getattr(atmosphere_constants, name), dtype=np.float64)
            actual = np.asarray(getattr(lut, name), dtype=np.float64)
            if expected.shape != actual.shape or not np.allclose(expected, actual):
                raise LookupTableError(
                    f"Lookup table {name} does not match the atmosphere constants"
                )

        self.lut = lut
        self.climatology = climatology
        self.atmosphere_constants = atmosphere_constants
        self.window = window
        self.half_window = window // 2
        self.max_workers = max_workers
        self.max_fill_radius = max_fill_radius
        self.default_aot = default_aot
        self.default_eps = default_eps
        self.progress = progress

    def scene_atmosphere(
        self, geolocator: Geolocator, shape: Tuple[int, int],
    ) -> SceneAtmosphere:
        """Pressure, ozone and water vapor at the scene center."""
        lat, lon = geolocator.pixel_to_latlon(shape[0] // 2, shape[1] // 2)
        atm = self.climatology.scene_atmosphere(lat, lon)
        logger.info("Scene center %.4f, %.4f: pressure %.1f hPa, ozone %.3f, "
                    "water vapor %.2f", lat, lon, atm.pressure, atm.ozone,
                    atm.water_vapor)
        return atm

    def first_pass(
        self,
        sband: Mapping[Band, np.ndarray],
        fill_mask: np.ndarray,
        geometry: SceneGeometry,
        atmosphere: SceneAtmosphere,
    ) -> FirstPass:
        """
        Correct every reflectance band at AOT 0.05, in place.

        The TOA reflectance of the retrieval bands is copied before the
        correction. Fill pixels are set to the fill value.
        """
        aot = float(self.lut.aot_levels[constants.FIRST_PASS_AOT_INDEX])
        toa = {b: np.array(sband[b], copy=True) for b in RETRIEVAL_BANDS}
        valid = ~fill_mask

        def correct_band(band: Band) -> Tuple[Band, AtmosphereTerms]:
            terms = evaluate_atmosphere(
                self.lut, self.atmosphere_constants, band, geometry,
                atmosphere.pressure, aot, atmosphere.ozone,
                atmosphere.water_vapor,
            )
            refl = sband[band]
            roslamb = lambertian_inversion(
                refl[valid].astype(np.float64), terms.tgo, terms.roatm,
                terms.ttatmg, terms.satm,
            )
            refl[valid] = np.clip(roslamb, constants.MIN_VALID_REFL,
                                  constants.MAX_VALID_REFL)
            refl[fill_mask] = constants.FILL_VALUE
            return band, terms

        results = run_parallel(correct_band, constants.REFLECTANCE_BANDS,
                               max_workers=self.max_workers)
        logger.info("First pass done for %d bands", len(results))
        return FirstPass(terms=dict(results), toa=toa)

    def retrieve(
        self,
        first: FirstPass,
        sband: Mapping[Band, np.ndarray],
        fill_mask: np.ndarray,
        geometry: SceneGeometry,
        coefficients: Mapping[Band, BandCoefficients],
        geolocator: Geolocator,
    ) -> AerosolWindows:
        """Aerosol retrieval on the window grid."""
        context = RetrievalContext(
            toa=first.toa,
            surface={Band.NIR: sband[Band.NIR], Band.SWIR2: sband[Band.SWIR2]},
            fill_mask=fill_mask,
            coefficients=coefficients,
            climatology=self.climatology,
            geolocator=geolocator,
            solar_zenith=geometry.solar_zenith,
            aot_grid=tuple(float(a) for a in self.lut.aot_levels),
            default_aot=self.default_aot,
            default_eps=self.default_eps,
        )
        return retrieve_aerosols(context, self.window, self.half_window,
                                 max_workers=self.max_workers,
                                 progress=self.progress)

    def interpolate(
        self, windows: AerosolWindows, fill_mask: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Gap fill the window grid and expand AOT and exponent to pixels."""
        fill_invalid_windows(windows, self.max_fill_radius,
                             self.default_aot, self.default_eps)
        shape = fill_mask.shape
        taero = expand_windows(windows.aot, shape, windows.window,
                               windows.half_window, fill_mask,
                               default=self.default_aot)
        teps = expand_windows(windows.eps, shape, windows.window,
                              windows.half_window, fill_mask,
                              default=self.default_eps)
        return taero, teps

    def mark_windows(self, windows: AerosolWindows, ipflag: np.ndarray) -> None:
        """
        Copy the window flags to the pixel inverted for each window.

        Valid windows carry the clear and water bits, repaired ones the
        interpolation bit. Windows without a non-fill pixel are skipped.
        """
        for r in windows.results:
            if r.target_line is None:
                continue
            ipflag[r.target_line, r.target_samp] |= windows.flags[r.window_row,
                                                                  r.window_col]

    def final_correction(
        self,
        sband: Mapping[Band, np.ndarray],
        first: FirstPass,
        coefficients: Mapping[Band, BandCoefficients],
        taero: np.ndarray,
        teps: np.ndarray,
        fill_mask: np.ndarray,
        ipflag: np.ndarray,
    ) -> None:
        """
        Correct every non-fill pixel with its AOT and exponent, in place.

        Notes
        -----
        The TOA reflectance is rebuilt from the first-pass surface
        reflectance,

        .. math::

            \\rho_{TOA} = \\left[\\frac{\\rho_s T}{1 - S \\rho_s}
                + \\rho_{atm}\\right] t_{go}

        and corrected with the polynomial fits. The coastal band adjustment
        sets the aerosol level bits.
        """
        valid = ~fill_mask
        aot = taero[valid].astype(np.float64)
        eps = teps[valid].astype(np.float64)

        def correct_band(band: Band) -> Optional[np.ndarray]:
            terms = first.terms[band]
            rsurf = sband[band][valid].astype(np.float64)
            rotoa = (rsurf * terms.ttatmg / (1.0 - terms.satm * rsurf)
                     + terms.roatm) * terms.tgo
            roslamb = correct_lambertian(coefficients[band], aot, eps, rotoa)
            sband[band][valid] = np.clip(roslamb, constants.MIN_VALID_REFL,
                                         constants.MAX_VALID_REFL)
            if band is Band.COASTAL:
                return qa.aerosol_level_bits(rsurf - roslamb)
            return None

        results = run_parallel(correct_band, constants.REFLECTANCE_BANDS,
                               max_workers=self.max_workers)
        aero_bits = results[constants.REFLECTANCE_BANDS.index(Band.COASTAL)]
        ipflag[valid] |= aero_bits

    def process(
        self,
        sband: Mapping[Band, np.ndarray],
        qaband: np.ndarray,
        geometry: SceneGeometry,
        geolocator: Geolocator,
    ) -> CorrectionResult:
        """
        Convert TOA reflectance to surface reflectance.

        Parameters
        ----------
        sband : mapping of Band to ndarray
            Float TOA reflectance of the seven reflectance bands, shape
            (nlines, nsamps). Corrected in place. Thermal bands, when
            present, are left untouched.
        qaband : ndarray
            Level-1 QA band; bit 0 flags fill pixels.
        geometry : SceneGeometry
            Scene geometry.
        geolocator : Geolocator
            Pixel to lat/lon mapping.

        Returns
        -------
        CorrectionResult

        Raises
        ------
        ValueError
            If a band is missing, not floating point or of the wrong shape.
        GeolocationError
            If a retrieval pixel cannot be geolocated.
        """
        shape = np.shape(qaband)
        for band in constants.REFLECTANCE_BANDS:
            if band not in sband:
                raise ValueError(f"Missing reflectance band {band.name}")
            refl = sband[band]
            if refl.shape != shape:
                raise ValueError(
                    f"Band {band.name} has shape {refl.shape}, QA band has {shape}"
                )
            if not np.issubdtype(refl.dtype, np.floating):
                raise ValueError(f"Band {band.name} must be floating point")

        fill_mask = qa.level1_fill_mask(qaband)
        ipflag = qa.fill_flags(fill_mask)
        logger.info("Correcting %dx%d scene, %d fill pixels", shape[0], shape[1],
                    int(fill_mask.sum()))

        atmosphere = self.scene_atmosphere(geolocator, shape)
        first = self.first_pass(sband, fill_mask, geometry, atmosphere)

        coefficients = fit_band_coefficients(
            self.lut, self.atmosphere_constants, geometry, atmosphere.pressure,
            atmosphere.ozone, atmosphere.water_vapor,
        )

        windows = self.retrieve(first, sband, fill_mask, geometry,
                                coefficients, geolocator)
        taero, teps = self.interpolate(windows, fill_mask)
        self.mark_windows(windows, ipflag)
        self.final_correction(sband, first, coefficients, taero, teps,
                              fill_mask, ipflag)
        logger.info("Surface reflectance done")

        return CorrectionResult(
            surface_reflectance={b: sband[b] for b in constants.REFLECTANCE_BANDS},
            ipflag=ipflag,
            taero=taero,
            teps=teps,
            windows=windows,
            coefficients=coefficients,
            atmosphere=atmosphere,
            fill_mask=fill_mask,
        )
