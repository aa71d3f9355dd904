"""
Radiative transfer lookup tables.

The tables are precomputed with 6S for each reflectance band on a grid of
surface pressure and AOT at 550 nm, plus one geometry axis:

- intrinsic atmospheric reflectance vs. scattering angle
- total (direct + diffuse) transmission vs. zenith angle
- spherical albedo
- normalized aerosol extinction

Values between grid nodes are obtained by multilinear interpolation.
Arguments outside the table domain are clamped to the nearest grid edge.
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from landsat_sr.constants import Band


class LookupTableError(ValueError):
    """Raised when a lookup table or climatology is missing or malformed."""


def _bracket(axis: np.ndarray, value: float) -> Tuple[int, int, float]:
    """
    Find the two grid nodes around ``value`` and the weight of the second.

    The axis may be ascending or descending; ``value`` is clamped to the
    axis extent so that the weight always lies in [0, 1].
    """
    if axis[0] > axis[-1]:
        i0, i1, w = _bracket(axis[::-1], value)
        n = axis.size - 1
        return n - i0, n - i1, w

    v = min(max(float(value), float(axis[0])), float(axis[-1]))
    i1 = int(np.searchsorted(axis, v, side="right"))
    i1 = min(max(i1, 1), axis.size - 1)
    i0 = i1 - 1
    w = (v - axis[i0]) / (axis[i1] - axis[i0])

    return i0, i1, float(w)


def _interpolate(values: np.ndarray, coords: Sequence[Tuple[np.ndarray, float]]) -> float:
    """Successive linear interpolation along the leading axes of ``values``."""
    result = values
    for axis, value in coords:
        i0, i1, w = _bracket(axis, value)
        result = (1.0 - w) * result[i0] + w * result[i1]
    return float(result)


@dataclass(frozen=True)
class AtmosphericLUT:
    """
    In-memory radiative transfer tables for the reflectance bands.

    Parameters
    ----------
    bands : tuple of Band
        Bands along the first axis of every table.
    aot_levels : array_like
        AOT at 550 nm grid, strictly increasing (at least 4 levels).
    pressure_levels : array_like
        Surface pressure grid [hPa], strictly monotonic.
    zenith_angles : array_like
        Zenith angle grid of the transmission table [degrees].
    scattering_angles : array_like
        Scattering angle grid of the intrinsic reflectance table [degrees].
    intrinsic_reflectance : array_like
        Shape (nbands, npressure, naot, nscattering).
    transmission : array_like
        Shape (nbands, npressure, naot, nzenith).
    spherical_albedo : array_like
        Shape (nbands, npressure, naot).
    normalized_extinction : array_like
        Shape (nbands, npressure, naot).

    Raises
    ------
    LookupTableError
        If a table is empty, non-finite or inconsistent with the axes.

    Notes
    -----
    All arrays are copied and made read-only so that one instance can be
    shared between worker threads.
    """

    bands: Tuple[Band, ...]
    aot_levels: np.ndarray
    pressure_levels: np.ndarray
    zenith_angles: np.ndarray
    scattering_angles: np.ndarray
    intrinsic_reflectance: np.ndarray
    transmission: np.ndarray
    spherical_albedo: np.ndarray
    normalized_extinction: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "bands", tuple(self.bands))
        if len(self.bands) == 0:
            raise LookupTableError("Lookup tables contain no band")
        if len(set(self.bands)) != len(self.bands):
            raise LookupTableError("Duplicate bands in lookup tables")

        for name in ("aot_levels", "pressure_levels", "zenith_angles",
                     "scattering_angles", "intrinsic_reflectance",
                     "transmission", "spherical_albedo",
                     "normalized_extinction"):
            value = getattr(self, name)
            if value is None:
                raise LookupTableError(f"Missing lookup table '{name}'")
            array = np.array(value, dtype=np.float64)
            if array.size == 0:
                raise LookupTableError(f"Lookup table '{name}' is empty")
            if not np.all(np.isfinite(array)):
                raise LookupTableError(f"Lookup table '{name}' has non-finite values")
            array.setflags(write=False)
            object.__setattr__(self, name, array)

        self._check_axis("aot_levels", increasing=True, min_size=4)
        self._check_axis("pressure_levels")
        self._check_axis("zenith_angles", increasing=True)
        self._check_axis("scattering_angles", increasing=True)

        nb = len(self.bands)
        npres = self.pressure_levels.size
        naot = self.aot_levels.size
        expected = {
            "intrinsic_reflectance": (nb, npres, naot, self.scattering_angles.size),
            "transmission": (nb, npres, naot, self.zenith_angles.size),
            "spherical_albedo": (nb, npres, naot),
            "normalized_extinction": (nb, npres, naot),
        }
        for name, shape in expected.items():
            actual = getattr(self, name).shape
            if actual != shape:
                raise LookupTableError(
                    f"Lookup table '{name}' has shape {actual}, expected {shape}"
                )

        if np.any(self.normalized_extinction[:, 0, 3] <= 0.0):
            raise LookupTableError(
                "Normalized extinction at the reference node must be positive"
            )

    def _check_axis(self, name: str, increasing: bool = False, min_size: int = 2):
        axis = getattr(self, name)
        if axis.ndim != 1 or axis.size < min_size:
            raise LookupTableError(
                f"Axis '{name}' must be 1-D with at least {min_size} values"
            )
        steps = np.diff(axis)
        monotonic = np.all(steps > 0) or (not increasing and np.all(steps < 0))
        if not monotonic:
            raise LookupTableError(f"Axis '{name}' is not strictly monotonic")

    @property
    def scattering_angle_bounds(self) -> Tuple[float, float]:
        """Smallest and largest scattering angle covered by the tables."""
        return float(self.scattering_angles[0]), float(self.scattering_angles[-1])

    def band_index(self, band: Band) -> int:
        """Position of ``band`` along the band axis."""
        try:
            return self.bands.index(band)
        except ValueError:
            raise LookupTableError(f"No lookup table for band {band.name}") from None

    def intrinsic(self, band: Band, pressure: float, aot: float,
                  scatter_angle: float) -> float:
        """Intrinsic atmospheric reflectance (aerosol + molecules)."""
        return _interpolate(
            self.intrinsic_reflectance[self.band_index(band)],
            [(self.pressure_levels, pressure), (self.aot_levels, aot),
             (self.scattering_angles, scatter_angle)],
        )

    def transmittance(self, band: Band, pressure: float, aot: float,
                      zenith: float) -> float:
        """One-way total transmission along a path of the given zenith angle."""
        return _interpolate(
            self.transmission[self.band_index(band)],
            [(self.pressure_levels, pressure), (self.aot_levels, aot),
             (self.zenith_angles, zenith)],
        )

    def albedo(self, band: Band, pressure: float, aot: float) -> float:
        """Spherical albedo of the atmosphere."""
        return _interpolate(
            self.spherical_albedo[self.band_index(band)],
            [(self.pressure_levels, pressure), (self.aot_levels, aot)],
        )

    def extinction(self, band: Band, pressure: float, aot: float) -> float:
        """Normalized aerosol extinction."""
        return _interpolate(
            self.normalized_extinction[self.band_index(band)],
            [(self.pressure_levels, pressure), (self.aot_levels, aot)],
        )

    def reference_extinction(self, band: Band) -> float:
        """Normalized extinction at the first pressure level and fourth AOT level."""
        return float(self.normalized_extinction[self.band_index(band), 0, 3])
