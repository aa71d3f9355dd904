"""
Pytest configuration and shared fixtures for landsat_sr tests.
"""

import numpy as np
import pytest

from landsat_sr.atmosphere import BandCoefficients, SceneGeometry
from landsat_sr.climatology import RATIO_BANDS, Climatology
from landsat_sr.constants import (
    AOT550NM_LEVELS,
    PRESSURE_LEVELS,
    REFLECTANCE_BANDS,
    AtmosphereConstants,
    Band,
)
from landsat_sr.geolocation import AffineGeolocator
from landsat_sr.lut import AtmosphericLUT

ZENITH_ANGLES = np.array([0.0, 20.0, 40.0, 60.0, 80.0])
SCATTERING_ANGLES = np.linspace(0.0, 180.0, 7)


def make_lut(roatm, transmission, satm, next_=1.0, bands=REFLECTANCE_BANDS):
    """
    Build lookup tables from functions of AOT (or constants).

    Every band, pressure and geometry node gets the same values.
    """
    aot = np.array(AOT550NM_LEVELS)

    def along_aot(value):
        return np.broadcast_to(value(aot) if callable(value) else value, aot.shape)

    nb, npres = len(bands), len(PRESSURE_LEVELS)
    ro = np.broadcast_to(along_aot(roatm)[None, None, :, None],
                         (nb, npres, aot.size, SCATTERING_ANGLES.size))
    tr = np.broadcast_to(along_aot(transmission)[None, None, :, None],
                         (nb, npres, aot.size, ZENITH_ANGLES.size))
    sa = np.broadcast_to(along_aot(satm)[None, None, :], (nb, npres, aot.size))
    ne = np.broadcast_to(along_aot(next_)[None, None, :], (nb, npres, aot.size))

    return AtmosphericLUT(
        bands=tuple(bands),
        aot_levels=aot,
        pressure_levels=np.array(PRESSURE_LEVELS),
        zenith_angles=ZENITH_ANGLES,
        scattering_angles=SCATTERING_ANGLES,
        intrinsic_reflectance=ro,
        transmission=tr,
        spherical_albedo=sa,
        normalized_extinction=ne,
    )


def make_climatology(nlat=18, ratio_mean=(500, 500, 1500), slope=0,
                     intercept=1000, andwi=0, sndwi=300, dem=0.0):
    """Uniform climatology on a global grid of ``nlat`` lines."""
    shape = (nlat, 2 * nlat)
    return Climatology(
        dem=np.full(shape, dem),
        andwi=np.full(shape, andwi, dtype=np.int16),
        sndwi=np.full(shape, sndwi, dtype=np.int16),
        ratio_mean={b: np.full(shape, m, dtype=np.int16)
                    for b, m in zip(RATIO_BANDS, ratio_mean)},
        ratio_slope={b: np.full(shape, slope, dtype=np.int16) for b in RATIO_BANDS},
        ratio_intercept={b: np.full(shape, intercept, dtype=np.int16)
                         for b in RATIO_BANDS},
        ozone=np.full((9, 18), 0.3),
        water_vapor=np.full((9, 18), 1.5),
    )


@pytest.fixture
def transparent_gases():
    """Coefficients without any gaseous absorption."""
    zeros = {b: 0.0 for b in REFLECTANCE_BANDS}
    return AtmosphereConstants(oztransa=zeros, wvtransa=zeros, ogtransa1=zeros)


@pytest.fixture
def flat_lut():
    """Tables independent of AOT: roatm 0.05, two-way transmission 0.8, satm 0.1."""
    return make_lut(0.05, np.sqrt(0.8), 0.1)


@pytest.fixture
def aerosol_lut():
    """
    Tables varying with AOT.

    roatm increases linearly up to AOT 2.0 and is flat beyond.
    """
    return make_lut(
        roatm=lambda a: 0.02 + 0.1 * np.minimum(a, 2.0),
        transmission=lambda a: np.exp(-0.1 * a),
        satm=lambda a: 0.05 + 0.02 * a,
    )


@pytest.fixture
def climatology():
    """Well-formed 10 degree climatology with a flat band ratio of 1."""
    return make_climatology()


@pytest.fixture
def nadir_geometry():
    """Sun at zenith, nadir view."""
    return SceneGeometry(solar_zenith=0.0)


@pytest.fixture
def geometry():
    """Typical Landsat geometry."""
    return SceneGeometry(solar_zenith=35.0, view_zenith=5.0, relative_azimuth=60.0)


@pytest.fixture
def geolocator():
    """40x40 scene at 45N, 100W with 0.001 degree pixels."""
    return AffineGeolocator(45.0, -100.0, 0.001, (40, 40))


@pytest.fixture
def flat_coefficients():
    """Band fits independent of AOT: roatm 0.05, ttatmg 0.8, satm 0.1, tgo 1."""
    wavelengths = {Band.COASTAL: 0.443, Band.BLUE: 0.483, Band.GREEN: 0.561,
                   Band.RED: 0.655, Band.NIR: 0.865, Band.SWIR1: 1.609,
                   Band.SWIR2: 2.201}
    return {
        b: BandCoefficients(
            band=b,
            roatm_coef=(0.05, 0.0, 0.0, 0.0),
            ttatmg_coef=(0.8, 0.0, 0.0, 0.0),
            satm_coef=(0.1, 0.0, 0.0, 0.0),
            roatm_ia_max=21,
            roatm_aot_max=5.0,
            tgo=1.0,
            normext_p0a3=1.0,
            wavelength=wavelengths[b],
        )
        for b in REFLECTANCE_BANDS
    }


@pytest.fixture
def scene_40():
    """
    40x40 scene with a uniform TOA reflectance of 0.2 and an 8x8 fill
    block in the upper-left corner.
    """
    sband = {b: np.full((40, 40), 0.2, dtype=np.float32) for b in REFLECTANCE_BANDS}
    qaband = np.zeros((40, 40), dtype=np.uint16)
    qaband[:8, :8] = 1
    return sband, qaband
