"""
landsat_sr: Surface Reflectance for Landsat 8/9 OLI
====================================================

A Python implementation of the LaSRC surface reflectance algorithm:
lookup table radiative transfer, windowed aerosol retrieval, gap fill and
per-pixel Lambertian inversion.

Main Classes
------------
SurfaceReflectanceCorrection
    Runs the full correction of a calibrated scene.

Modules
-------
constants
    Bands, lookup table grids, gas coefficients, QA bits, output scaling.
lut
    Radiative transfer lookup tables and their interpolation.
atmosphere
    Atmospheric terms from the tables (slow path) or fitted polynomials
    (fast path).
rayleigh
    Rayleigh optical thickness and reflectance.
gases
    Ozone, water vapor and other-gas transmission.
polyfit
    Per-band cubic fits of the atmospheric terms vs. AOT.
climatology
    CMG auxiliary grids and the band ratio model.
retrieval
    Window-based AOT and Angstrom exponent retrieval.
interpolation
    Gap fill and expansion of the window fields.
correction
    Pipeline orchestration and the final per-pixel correction.
toa, io, geolocation, qa, parallel, cli
    Calibration, netCDF I/O, pixel geolocation, QA bits, worker pool and
    command line.

Example
-------
>>> from landsat_sr import SurfaceReflectanceCorrection, SceneGeometry
>>> from landsat_sr.io import load_lut, load_climatology, load_scene
>>> scene = load_scene("LC08_scene.nc")
>>> sr = SurfaceReflectanceCorrection(load_lut("lut.nc"), load_climatology("cmg.nc"))
>>> result = sr.process(scene.sband, scene.qaband, scene.geometry, scene.geolocator)
"""

__version__ = "0.1.0"

from landsat_sr.atmosphere import SceneGeometry
from landsat_sr.constants import (
    DEFAULT_ATMOSPHERE,
    AtmosphereConstants,
    Band,
    Satellite,
)
from landsat_sr.correction import CorrectionResult, SurfaceReflectanceCorrection
from landsat_sr.geolocation import AffineGeolocator, GeolocationError
from landsat_sr.lut import AtmosphericLUT, LookupTableError

__all__ = [
    "SurfaceReflectanceCorrection",
    "CorrectionResult",
    "SceneGeometry",
    "AtmosphericLUT",
    "AtmosphereConstants",
    "DEFAULT_ATMOSPHERE",
    "AffineGeolocator",
    "Band",
    "Satellite",
    "GeolocationError",
    "LookupTableError",
    "__version__",
]
