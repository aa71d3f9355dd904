"""
netCDF readers and writers, and the integer encoding of the products.

All files are read and written through xarray with the h5netcdf engine.

Layouts
-------
Lookup tables
    dimensions ``band``, ``pressure``, ``aot``, ``scattering_angle``,
    ``zenith``; variables ``intrinsic_reflectance``, ``transmission``,
    ``spherical_albedo``, ``normalized_extinction``. The ``band`` coordinate
    holds band names (``COASTAL`` ... ``SWIR2``).
Climatology
    variables ``dem``, ``andwi``, ``sndwi``, ``ratiob1``, ``ratiob2``,
    ``ratiob7``, ``slpratiob1`` ..., ``intratiob1`` ... on a global
    ``(lat, lon)`` grid, plus ``ozone`` and ``water_vapor`` on any global
    grid.
Scene
    ``toa`` ``(band, y, x)``, ``qa`` ``(y, x)``; attributes
    ``solar_zenith``, ``satellite``, ``ul_lat``, ``ul_lon``,
    ``pixel_size``, and optionally ``view_zenith``, ``relative_azimuth``.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

import numpy as np
import xarray as xr

from landsat_sr.atmosphere import SceneGeometry
from landsat_sr.climatology import RATIO_BANDS, Climatology
from landsat_sr.constants import (
    FILL_VALUE,
    MAX_VALID_DN,
    MIN_VALID_DN,
    OFFSET_REFL,
    OFFSET_THERM,
    SCALE_REFL,
    SCALE_THERM,
    Band,
    Satellite,
)
from landsat_sr.geolocation import AffineGeolocator
from landsat_sr.lut import AtmosphericLUT, LookupTableError

logger = logging.getLogger(__name__)

ENGINE = "h5netcdf"

#: Climatology variable suffix of each ratio band
_RATIO_SUFFIX = {Band.COASTAL: "b1", Band.BLUE: "b2", Band.SWIR2: "b7"}

PathLike = Union[str, os.PathLike]


# =============================================================================
# Integer encoding
# =============================================================================

def _scale(values: np.ndarray, scale: float, offset: float,
           fill_mask: Optional[np.ndarray]) -> np.ndarray:
    dn = np.round((np.asarray(values, dtype=np.float64) - offset) / scale)
    dn = np.clip(dn, MIN_VALID_DN, MAX_VALID_DN).astype(np.uint16)
    if fill_mask is not None:
        dn[fill_mask] = FILL_VALUE
    return dn


def scale_reflectance(refl: np.ndarray,
                      fill_mask: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Encode reflectance as uint16, ``dn = (refl + 0.2) / 2.75e-5``.

    Valid pixels are clipped to [1, 65535]; fill pixels are 0.
    """
    return _scale(refl, SCALE_REFL, OFFSET_REFL, fill_mask)


def scale_thermal(bt: np.ndarray,
                  fill_mask: Optional[np.ndarray] = None) -> np.ndarray:
    """Encode brightness temperature [K] as uint16, ``dn = (bt - 149) / 0.00341802``."""
    return _scale(bt, SCALE_THERM, OFFSET_THERM, fill_mask)


# =============================================================================
# Readers
# =============================================================================

def _open(path: PathLike, what: str) -> xr.Dataset:
    if not os.path.exists(path):
        raise FileNotFoundError(f"{what} file not found: {path}")
    return xr.open_dataset(path, engine=ENGINE)


def _require(ds: xr.Dataset, names, what: str, error=LookupTableError):
    missing = [n for n in names if n not in ds.variables]
    if missing:
        raise error(f"{what} is missing variables {missing}")


def _parse_bands(values) -> tuple:
    bands = []
    for v in values:
        name = v.decode() if isinstance(v, bytes) else str(v)
        try:
            bands.append(Band[name.upper()])
        except KeyError:
            raise LookupTableError(f"Unknown band '{name}'") from None
    return tuple(bands)


def load_lut(path: PathLike) -> AtmosphericLUT:
    """
    Read the radiative transfer tables.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    LookupTableError
        If a table or axis is missing or malformed.
    """
    with _open(path, "Lookup table") as ds:
        _require(ds, ("band", "aot", "pressure", "zenith", "scattering_angle",
                      "intrinsic_reflectance", "transmission",
                      "spherical_albedo", "normalized_extinction"),
                 f"Lookup table file {path}")
        lut = AtmosphericLUT(
            bands=_parse_bands(ds["band"].values),
            aot_levels=ds["aot"].values,
            pressure_levels=ds["pressure"].values,
            zenith_angles=ds["zenith"].values,
            scattering_angles=ds["scattering_angle"].values,
            intrinsic_reflectance=ds["intrinsic_reflectance"].transpose(
                "band", "pressure", "aot", "scattering_angle").values,
            transmission=ds["transmission"].transpose(
                "band", "pressure", "aot", "zenith").values,
            spherical_albedo=ds["spherical_albedo"].transpose(
                "band", "pressure", "aot").values,
            normalized_extinction=ds["normalized_extinction"].transpose(
                "band", "pressure", "aot").values,
        )
    logger.info("Loaded lookup tables for %d bands from %s", len(lut.bands), path)
    return lut


def load_climatology(path: PathLike) -> Climatology:
    """
    Read the CMG climatology.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    LookupTableError
        If a grid is missing or malformed.
    """
    names = ["dem", "andwi", "sndwi", "ozone", "water_vapor"]
    for prefix in ("ratio", "slpratio", "intratio"):
        names += [prefix + _RATIO_SUFFIX[b] for b in RATIO_BANDS]

    with _open(path, "Climatology") as ds:
        _require(ds, names, f"Climatology file {path}")

        def grid(name):
            return np.asarray(ds[name].values)

        clim = Climatology(
            dem=grid("dem"),
            andwi=grid("andwi"),
            sndwi=grid("sndwi"),
            ratio_mean={b: grid("ratio" + _RATIO_SUFFIX[b]) for b in RATIO_BANDS},
            ratio_slope={b: grid("slpratio" + _RATIO_SUFFIX[b]) for b in RATIO_BANDS},
            ratio_intercept={b: grid("intratio" + _RATIO_SUFFIX[b]) for b in RATIO_BANDS},
            ozone=grid("ozone"),
            water_vapor=grid("water_vapor"),
        )
    logger.info("Loaded %dx%d climatology from %s", *clim.shape, path)
    return clim


@dataclass
class Scene:
    """
    Calibrated scene ready for correction.

    Attributes
    ----------
    sband : dict
        float32 TOA reflectance (and brightness temperature, for thermal
        bands) per band.
    qaband : ndarray
        Level-1 QA band.
    geometry : SceneGeometry
    geolocator : AffineGeolocator
    """

    sband: Dict[Band, np.ndarray]
    qaband: np.ndarray
    geometry: SceneGeometry
    geolocator: AffineGeolocator

    @property
    def shape(self):
        return self.qaband.shape


def load_scene(path: PathLike) -> Scene:
    """
    Read a calibrated scene.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If a variable or attribute is missing.
    """
    with _open(path, "Scene") as ds:
        _require(ds, ("toa", "qa", "band"), f"Scene file {path}", error=ValueError)
        missing = [a for a in ("solar_zenith", "satellite", "ul_lat", "ul_lon",
                               "pixel_size") if a not in ds.attrs]
        if missing:
            raise ValueError(f"Scene file {path} is missing attributes {missing}")

        toa = ds["toa"].transpose("band", "y", "x")
        bands = _parse_bands(ds["band"].values)
        sband = {b: np.array(toa.values[i], dtype=np.float32)
                 for i, b in enumerate(bands)}
        qaband = np.asarray(ds["qa"].values).astype(np.uint16)

        geometry = SceneGeometry(
            solar_zenith=float(ds.attrs["solar_zenith"]),
            view_zenith=float(ds.attrs.get("view_zenith", 0.0)),
            relative_azimuth=float(ds.attrs.get("relative_azimuth", 0.0)),
            satellite=Satellite.from_name(str(ds.attrs["satellite"])),
        )
        geolocator = AffineGeolocator(
            float(ds.attrs["ul_lat"]), float(ds.attrs["ul_lon"]),
            ds.attrs["pixel_size"], qaband.shape,
        )

    return Scene(sband=sband, qaband=qaband, geometry=geometry,
                 geolocator=geolocator)


# =============================================================================
# Writers
# =============================================================================

def write_products(
    path: PathLike,
    surface_reflectance: Mapping[Band, np.ndarray],
    ipflag: np.ndarray,
    fill_mask: np.ndarray,
    thermal: Optional[Mapping[Band, np.ndarray]] = None,
    taero: Optional[np.ndarray] = None,
    teps: Optional[np.ndarray] = None,
    attrs: Optional[Mapping] = None,
) -> None:
    """
    Write the scaled surface reflectance, the aerosol QA band and, when
    given, brightness temperatures and the AOT/exponent diagnostics.
    """
    data_vars = {}
    encoding = {}
    for band, refl in surface_reflectance.items():
        name = f"sr_{band.name.lower()}"
        data_vars[name] = xr.Variable(
            ("y", "x"), scale_reflectance(refl, fill_mask),
            attrs={"long_name": f"{band.name} surface reflectance",
                   "scale_factor": SCALE_REFL, "add_offset": OFFSET_REFL},
        )
        encoding[name] = {"_FillValue": np.uint16(FILL_VALUE)}
    for band, bt in (thermal or {}).items():
        name = f"bt_{band.name.lower()}"
        data_vars[name] = xr.Variable(
            ("y", "x"), scale_thermal(bt, fill_mask),
            attrs={"long_name": f"{band.name} brightness temperature",
                   "units": "K",
                   "scale_factor": SCALE_THERM, "add_offset": OFFSET_THERM},
        )
        encoding[name] = {"_FillValue": np.uint16(FILL_VALUE)}

    data_vars["aerosol_qa"] = xr.Variable(
        ("y", "x"), np.asarray(ipflag, dtype=np.uint8),
        attrs={"long_name": "aerosol QA",
               "flag_masks": np.array([1, 2, 4, 32, 64, 128], dtype=np.uint8),
               "flag_meanings": "fill valid_aerosol_retrieval water "
                                "interpolated_aerosol aerosol_level_1 aerosol_level_2"},
    )
    if taero is not None:
        data_vars["aot"] = xr.Variable(("y", "x"), np.asarray(taero, dtype=np.float32),
                                       attrs={"long_name": "AOT at 550 nm"})
    if teps is not None:
        data_vars["angstrom"] = xr.Variable(("y", "x"), np.asarray(teps, dtype=np.float32),
                                            attrs={"long_name": "Angstrom exponent"})

    ds = xr.Dataset(data_vars, attrs=dict(attrs or {}))
    ds.to_netcdf(path, engine=ENGINE, encoding=encoding)
    logger.info("Wrote %s", path)


def lut_to_dataset(lut: AtmosphericLUT) -> xr.Dataset:
    """Dataset in the lookup table file layout."""
    return xr.Dataset(
        {
            "intrinsic_reflectance": (("band", "pressure", "aot", "scattering_angle"),
                                      lut.intrinsic_reflectance),
            "transmission": (("band", "pressure", "aot", "zenith"), lut.transmission),
            "spherical_albedo": (("band", "pressure", "aot"), lut.spherical_albedo),
            "normalized_extinction": (("band", "pressure", "aot"),
                                      lut.normalized_extinction),
        },
        coords={
            "band": [b.name for b in lut.bands],
            "pressure": lut.pressure_levels,
            "aot": lut.aot_levels,
            "zenith": lut.zenith_angles,
            "scattering_angle": lut.scattering_angles,
        },
    )


def climatology_to_dataset(clim: Climatology) -> xr.Dataset:
    """Dataset in the climatology file layout."""
    data_vars = {
        "dem": (("lat", "lon"), clim.dem),
        "andwi": (("lat", "lon"), clim.andwi),
        "sndwi": (("lat", "lon"), clim.sndwi),
        "ozone": (("lat_atm", "lon_atm"), clim.ozone),
        "water_vapor": (("lat_wv", "lon_wv"), clim.water_vapor),
    }
    for b in RATIO_BANDS:
        suffix = _RATIO_SUFFIX[b]
        data_vars["ratio" + suffix] = (("lat", "lon"), clim.ratio_mean[b])
        data_vars["slpratio" + suffix] = (("lat", "lon"), clim.ratio_slope[b])
        data_vars["intratio" + suffix] = (("lat", "lon"), clim.ratio_intercept[b])
    return xr.Dataset(data_vars)


def scene_to_dataset(scene: Scene) -> xr.Dataset:
    """Dataset in the scene file layout."""
    bands = list(scene.sband)
    geo = scene.geolocator
    return xr.Dataset(
        {
            "toa": (("band", "y", "x"), np.stack([scene.sband[b] for b in bands])),
            "qa": (("y", "x"), scene.qaband),
        },
        coords={"band": [b.name for b in bands]},
        attrs={
            "solar_zenith": scene.geometry.solar_zenith,
            "view_zenith": scene.geometry.view_zenith,
            "relative_azimuth": scene.geometry.relative_azimuth,
            "satellite": scene.geometry.satellite.value,
            "ul_lat": geo.ul_lat,
            "ul_lon": geo.ul_lon,
            "pixel_size": np.array([geo.dlat, geo.dlon]),
        },
    )
