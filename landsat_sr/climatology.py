"""
Auxiliary climatology on the global climate modeling grid (CMG).

The CMG grids are regular lat/lon rasters covering the globe, first line
at the north pole and first sample at the date line. The production grids
are 0.05 degree; any resolution with ``nlon == 2 * nlat`` is accepted.

Contents:

- DEM, converted to surface pressure
- mean and standard deviation of NDWI (scaled by 1000)
- mean band ratio, slope and intercept of the band ratio vs. NDWI model
  for the coastal, blue and SWIR2 bands (scaled by 1000)
- ozone and water vapor columns

Unreliable ratio cells are replaced by a flat ratio model when sampled;
the stored grids are never modified.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

import numpy as np

from landsat_sr.constants import (
    CMG_RATIO_SCALE,
    DEFAULT_RATIO_INTERCEPTS,
    NDWI_STD_THRESHOLD,
    PRESSURE_SCALE_HEIGHT,
    RATIO_VALID_RANGE,
    REFERENCE_PRESSURE,
    Band,
)
from landsat_sr.lut import LookupTableError

#: Bands with a band ratio model
RATIO_BANDS: Tuple[Band, ...] = (Band.COASTAL, Band.BLUE, Band.SWIR2)


@dataclass(frozen=True)
class GridLocation:
    """
    Upper-left CMG cell of a point, its neighbors and the fractional offsets.

    Attributes
    ----------
    line, samp : int
        Upper-left cell.
    next_line, next_samp : int
        Lower and right neighbors (the sample wraps at the date line, the
        line repeats at the south pole).
    u, v : float
        Fractional offsets along lines and samples, in [0, 1].
    """

    line: int
    samp: int
    next_line: int
    next_samp: int
    u: float
    v: float

    def bilinear(self, grid: np.ndarray) -> float:
        """Bilinear interpolation of ``grid`` at this location."""
        u, v = self.u, self.v
        return float(
            (1.0 - u) * (1.0 - v) * grid[self.line, self.samp]
            + (1.0 - u) * v * grid[self.line, self.next_samp]
            + u * (1.0 - v) * grid[self.next_line, self.samp]
            + u * v * grid[self.next_line, self.next_samp]
        )


def grid_location(lat: float, lon: float, shape: Tuple[int, int]) -> GridLocation:
    """
    Locate a point on a global grid of the given shape.

    Parameters
    ----------
    lat, lon : float
        Latitude and longitude in degrees.
    shape : tuple of int
        Grid shape (nlat, nlon).

    Returns
    -------
    GridLocation

    Notes
    -----
    With ``res = 180 / nlat`` the fractional cell coordinates are

    .. math::

        y = \\frac{90 - res/2 - lat}{res}, \\qquad
        x = \\frac{180 - res/2 + lon}{res}
    """
    nlat, nlon = shape
    res = 180.0 / nlat

    y = (90.0 - 0.5 * res - lat) / res
    x = (180.0 - 0.5 * res + lon) / res
    line = min(max(int(y), 0), nlat - 1)
    samp = min(max(int(x), 0), nlon - 1)

    next_line = line + 1 if line + 1 < nlat else line
    next_samp = samp + 1 if samp + 1 < nlon else 0

    u = min(max(y - line, 0.0), 1.0)
    v = min(max(x - samp, 0.0), 1.0)

    return GridLocation(line, samp, next_line, next_samp, u, v)


@dataclass(frozen=True)
class RatioCell:
    """Band ratio model of one CMG cell (scaled by 1000)."""

    slope: Mapping[Band, float]
    intercept: Mapping[Band, float]
    sanitized: bool = False


@dataclass(frozen=True)
class BandRatioSample:
    """
    Band ratio model sampled at a point.

    Attributes
    ----------
    slope, intercept : dict
        Unscaled slope and intercept of the ratio vs. NDWI model per band.
    ndwi_th1, ndwi_th2 : float
        Upper and lower NDWI bounds, mean +/- 2 standard deviations.
    """

    slope: Dict[Band, float]
    intercept: Dict[Band, float]
    ndwi_th1: float
    ndwi_th2: float

    def clamp_ndwi(self, ndwi: float) -> float:
        """Clamp NDWI to the climatological bounds."""
        if ndwi > self.ndwi_th1:
            ndwi = self.ndwi_th1
        if ndwi < self.ndwi_th2:
            ndwi = self.ndwi_th2
        return ndwi

    def expected_ratio(self, band: Band, ndwi: float) -> float:
        """Expected ratio of ``band`` to the red band."""
        return ndwi * self.slope[band] + self.intercept[band]


@dataclass(frozen=True)
class SceneAtmosphere:
    """Surface pressure [hPa], ozone [cm-atm] and water vapor [g/cm^2]."""

    pressure: float
    ozone: float
    water_vapor: float


@dataclass(frozen=True)
class Climatology:
    """
    CMG climatology grids.

    Parameters
    ----------
    dem : ndarray
        Elevation [m].
    andwi, sndwi : ndarray
        Mean and standard deviation of NDWI, scaled by 1000.
    ratio_mean, ratio_slope, ratio_intercept : mapping of Band to ndarray
        Mean band ratio, slope and intercept for COASTAL, BLUE and SWIR2,
        scaled by 1000.
    ozone : ndarray
        Ozone column [cm-atm], any global resolution.
    water_vapor : ndarray
        Water vapor column [g/cm^2], any global resolution.

    Raises
    ------
    LookupTableError
        If a grid is missing or the grids do not share one global shape.
    """

    dem: np.ndarray
    andwi: np.ndarray
    sndwi: np.ndarray
    ratio_mean: Mapping[Band, np.ndarray]
    ratio_slope: Mapping[Band, np.ndarray]
    ratio_intercept: Mapping[Band, np.ndarray]
    ozone: np.ndarray
    water_vapor: np.ndarray

    def __post_init__(self):
        shape = np.shape(self.dem)
        if len(shape) != 2 or shape[0] == 0 or shape[1] != 2 * shape[0]:
            raise LookupTableError(
                f"Climatology grids must be global (nlat, 2*nlat), got {shape}"
            )

        object.__setattr__(self, "dem", _readonly(self.dem, "dem", shape))
        object.__setattr__(self, "andwi", _readonly(self.andwi, "andwi", shape))
        object.__setattr__(self, "sndwi", _readonly(self.sndwi, "sndwi", shape))
        for name in ("ratio_mean", "ratio_slope", "ratio_intercept"):
            grids = getattr(self, name)
            missing = [b.name for b in RATIO_BANDS if b not in grids]
            if missing:
                raise LookupTableError(f"Climatology '{name}' is missing bands {missing}")
            object.__setattr__(self, name, {
                b: _readonly(grids[b], f"{name}[{b.name}]", shape)
                for b in RATIO_BANDS
            })
        for name in ("ozone", "water_vapor"):
            grid = np.asarray(getattr(self, name))
            if grid.ndim != 2 or grid.shape[1] != 2 * grid.shape[0] or grid.size == 0:
                raise LookupTableError(
                    f"Climatology '{name}' must be global (nlat, 2*nlat), got {grid.shape}"
                )
            object.__setattr__(self, name, _readonly(grid, name, grid.shape))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.dem.shape

    @property
    def resolution(self) -> float:
        """Cell size in degrees."""
        return 180.0 / self.shape[0]

    def cell_location(self, lat: float, lon: float) -> GridLocation:
        """Locate a point on the ratio and NDWI grids."""
        return grid_location(lat, lon, self.shape)

    def sanitize_cell(self, line: int, samp: int) -> RatioCell:
        """
        Band ratio model of a cell, replaced by a flat model when unreliable.

        A cell is unreliable when the mean coastal or blue ratio (unscaled)
        lies outside [0.1, 1.0], or when its NDWI standard deviation is
        below 200 (scaled). Its slopes are then 0 and its intercepts 550,
        600 and 2000 (scaled) for COASTAL, BLUE and SWIR2.

        Parameters
        ----------
        line, samp : int
            Cell indices.

        Returns
        -------
        RatioCell
        """
        lo, hi = RATIO_VALID_RANGE
        rb1 = self.ratio_mean[Band.COASTAL][line, samp] * CMG_RATIO_SCALE
        rb2 = self.ratio_mean[Band.BLUE][line, samp] * CMG_RATIO_SCALE
        bad_ratio = not (lo <= rb1 <= hi) or not (lo <= rb2 <= hi)
        low_variance = self.sndwi[line, samp] < NDWI_STD_THRESHOLD

        if bad_ratio or low_variance:
            return RatioCell(
                slope={b: 0.0 for b in RATIO_BANDS},
                intercept={b: float(DEFAULT_RATIO_INTERCEPTS[b]) for b in RATIO_BANDS},
                sanitized=True,
            )

        return RatioCell(
            slope={b: float(self.ratio_slope[b][line, samp]) for b in RATIO_BANDS},
            intercept={b: float(self.ratio_intercept[b][line, samp]) for b in RATIO_BANDS},
        )

    def sample_band_ratios(self, lat: float, lon: float) -> BandRatioSample:
        """
        Bilinear band ratio model and NDWI bounds at a point.

        The four surrounding cells are sanitized before interpolation. The
        NDWI bounds come from the upper-left cell.

        Parameters
        ----------
        lat, lon : float
            Location in degrees.

        Returns
        -------
        BandRatioSample
        """
        loc = self.cell_location(lat, lon)
        c11 = self.sanitize_cell(loc.line, loc.samp)
        c12 = self.sanitize_cell(loc.line, loc.next_samp)
        c21 = self.sanitize_cell(loc.next_line, loc.samp)
        c22 = self.sanitize_cell(loc.next_line, loc.next_samp)

        w11 = (1.0 - loc.u) * (1.0 - loc.v)
        w12 = (1.0 - loc.u) * loc.v
        w21 = loc.u * (1.0 - loc.v)
        w22 = loc.u * loc.v

        slope = {}
        intercept = {}
        for b in RATIO_BANDS:
            slope[b] = (w11 * c11.slope[b] + w12 * c12.slope[b]
                        + w21 * c21.slope[b] + w22 * c22.slope[b]) * CMG_RATIO_SCALE
            intercept[b] = (w11 * c11.intercept[b] + w12 * c12.intercept[b]
                            + w21 * c21.intercept[b] + w22 * c22.intercept[b]) * CMG_RATIO_SCALE

        andwi = float(self.andwi[loc.line, loc.samp])
        sndwi = float(self.sndwi[loc.line, loc.samp])

        return BandRatioSample(
            slope=slope,
            intercept=intercept,
            ndwi_th1=(andwi + 2.0 * sndwi) * CMG_RATIO_SCALE,
            ndwi_th2=(andwi - 2.0 * sndwi) * CMG_RATIO_SCALE,
        )

    def scene_atmosphere(self, lat: float, lon: float) -> SceneAtmosphere:
        """
        Surface pressure, ozone and water vapor at a point.

        Notes
        -----
        Pressure follows an exponential atmosphere with an 8 km scale height,
        :math:`P = 1013 \\exp(-z / 8000)`.
        """
        dem = self.cell_location(lat, lon).bilinear(self.dem)
        pressure = REFERENCE_PRESSURE * np.exp(-dem / PRESSURE_SCALE_HEIGHT)
        ozone = grid_location(lat, lon, self.ozone.shape).bilinear(self.ozone)
        water_vapor = grid_location(lat, lon, self.water_vapor.shape).bilinear(
            self.water_vapor)

        return SceneAtmosphere(
            pressure=float(pressure), ozone=ozone, water_vapor=water_vapor,
        )


def _readonly(values, name: str, shape: Tuple[int, int]) -> np.ndarray:
    if values is None:
        raise LookupTableError(f"Missing climatology grid '{name}'")
    view = np.asarray(values).view()
    if view.shape != tuple(shape):
        raise LookupTableError(
            f"Climatology grid '{name}' has shape {view.shape}, expected {tuple(shape)}"
        )
    view.setflags(write=False)
    return view
