"""
Pixel to latitude/longitude mapping.

The retrieval only needs one call, ``pixel_to_latlon(line, samp)``. Any
object providing it can be used as a geolocator; :class:`AffineGeolocator`
covers scenes delivered on a regular lat/lon grid.
"""

from typing import Protocol, Tuple

import numpy as np


class GeolocationError(RuntimeError):
    """
    Raised when a pixel cannot be mapped to latitude/longitude.

    Attributes
    ----------
    line, samp : int
        Pixel that failed.
    """

    def __init__(self, line: int, samp: int, message: str = ""):
        self.line = line
        self.samp = samp
        detail = f": {message}" if message else ""
        super().__init__(
            f"Unable to geolocate pixel (line {line}, sample {samp}){detail}"
        )


class Geolocator(Protocol):
    """Map a pixel of the scene to geographic coordinates."""

    def pixel_to_latlon(self, line: int, samp: int) -> Tuple[float, float]:
        """
        Latitude and longitude of a pixel center, in degrees.

        Raises
        ------
        GeolocationError
            If the pixel cannot be mapped.
        """
        ...


class AffineGeolocator:
    """
    Geolocator for a scene on a regular lat/lon grid.

    Parameters
    ----------
    ul_lat, ul_lon : float
        Latitude and longitude of the upper-left corner of the upper-left
        pixel [degrees].
    pixel_size : float or tuple of float
        Pixel size in degrees, (lat, lon) or a single value for both.
    shape : tuple of int
        Scene shape (nlines, nsamps).

    Examples
    --------
    >>> geo = AffineGeolocator(45.0, -100.0, 0.001, (40, 40))
    >>> geo.pixel_to_latlon(0, 0)
    (44.9995, -99.9995)
    """

    def __init__(self, ul_lat: float, ul_lon: float, pixel_size, shape: Tuple[int, int]):
        size = np.broadcast_to(np.asarray(pixel_size, dtype=np.float64), (2,))
        if np.any(size <= 0):
            raise ValueError(f"pixel_size must be positive, got {pixel_size}")
        self.ul_lat = float(ul_lat)
        self.ul_lon = float(ul_lon)
        self.dlat = float(size[0])
        self.dlon = float(size[1])
        self.shape = (int(shape[0]), int(shape[1]))

    def pixel_to_latlon(self, line: int, samp: int) -> Tuple[float, float]:
        nlines, nsamps = self.shape
        if not (0 <= line < nlines and 0 <= samp < nsamps):
            raise GeolocationError(line, samp, "outside the scene extent")

        lat = self.ul_lat - (line + 0.5) * self.dlat
        lon = self.ul_lon + (samp + 0.5) * self.dlon
        if not -90.0 <= lat <= 90.0:
            raise GeolocationError(line, samp, f"latitude {lat} out of range")
        if lon >= 180.0:
            lon -= 360.0
        elif lon < -180.0:
            lon += 360.0

        return lat, lon
