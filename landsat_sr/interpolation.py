"""
Gap fill of the aerosol window grid and expansion to full resolution.

Windows without a valid retrieval (fill or failed) take the mean AOT and
Angstrom exponent of the closest valid windows. The repaired window fields
are then bilinearly interpolated between window centers to every non-fill
pixel of the scene.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from landsat_sr import qa
from landsat_sr.constants import (
    DEFAULT_AOT,
    DEFAULT_EPS,
    FILL_VALUE,
    IPFLAG_CLEAR,
    IPFLAG_INTERP_WINDOW,
    IPFLAG_WATER,
    MAX_FILL_RADIUS,
)
from landsat_sr.retrieval import AerosolWindows

logger = logging.getLogger(__name__)


def fill_invalid_windows(
    windows: AerosolWindows,
    max_radius: int = MAX_FILL_RADIUS,
    default_aot: float = DEFAULT_AOT,
    default_eps: float = DEFAULT_EPS,
) -> int:
    """
    Replace the AOT and exponent of invalid windows, in place.

    Parameters
    ----------
    windows : AerosolWindows
        Window grid; ``aot``, ``eps`` and ``flags`` are updated.
    max_radius : int, optional
        Largest search radius, in windows.
    default_aot, default_eps : float, optional
        Values used when no valid window is within ``max_radius``.

    Returns
    -------
    int
        Number of repaired windows.

    Notes
    -----
    A window is valid when its clear bit is set. For an invalid window the
    square rings of Chebyshev radius 1, 2, ... are searched; the first ring
    holding a valid window provides the mean. Land windows (clear, not
    water) of that ring are used when there are any, otherwise its valid
    water windows. Only windows valid before the fill are sources. Every
    repaired window gets the interpolation bit.
    """
    valid = qa.has_bit(windows.flags, IPFLAG_CLEAR)
    land = valid & ~qa.has_bit(windows.flags, IPFLAG_WATER)
    aot_src = windows.aot.copy()
    eps_src = windows.eps.copy()

    nrows, ncols = windows.shape
    n_default = 0
    invalid = np.argwhere(~valid)
    for row, col in invalid:
        aot, eps = default_aot, default_eps
        for radius in range(1, max_radius + 1):
            rows = slice(max(row - radius, 0), min(row + radius + 1, nrows))
            cols = slice(max(col - radius, 0), min(col + radius + 1, ncols))
            sources = land[rows, cols]
            if not sources.any():
                sources = valid[rows, cols]
            if sources.any():
                aot = float(aot_src[rows, cols][sources].mean())
                eps = float(eps_src[rows, cols][sources].mean())
                break
        else:
            n_default += 1

        windows.aot[row, col] = aot
        windows.eps[row, col] = eps
        windows.flags[row, col] |= qa.bit(IPFLAG_INTERP_WINDOW)

    if len(invalid):
        logger.info("Repaired %d of %d aerosol windows (%d with defaults)",
                    len(invalid), valid.size, n_default)
    return len(invalid)


def _axis_weights(size: int, n_centers: int, window: int,
                  half_window: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Lower/upper window index and upper weight of every pixel of an axis."""
    pos = (np.arange(size) - half_window) / float(window)
    pos = np.clip(pos, 0.0, n_centers - 1)
    i0 = np.floor(pos).astype(int)
    i1 = np.minimum(i0 + 1, n_centers - 1)
    return i0, i1, pos - i0


def expand_windows(
    values: np.ndarray,
    shape: Tuple[int, int],
    window: int,
    half_window: int,
    fill_mask: Optional[np.ndarray] = None,
    out: Optional[np.ndarray] = None,
    default: float = FILL_VALUE,
) -> np.ndarray:
    """
    Bilinear interpolation of a window field to full resolution.

    Parameters
    ----------
    values : ndarray
        Window field, shape (nwindow_rows, nwindow_cols).
    shape : tuple of int
        Scene shape (nlines, nsamps).
    window, half_window : int
        Window size and center offset.
    fill_mask : ndarray of bool, optional
        Pixels that are never written.
    out : ndarray, optional
        Output raster; created filled with the fill value when None.
    default : float, optional
        Value of every written pixel when the window grid is empty, i.e.
        the scene is too small to hold a window center.

    Returns
    -------
    ndarray
        ``out``.

    Notes
    -----
    Pixels beyond the outermost window centers take the value of the edge
    centers.
    """
    values = np.asarray(values, dtype=np.float64)
    nrows, ncols = values.shape
    if values.size == 0:
        field = np.full(shape, default, dtype=np.float64)
    else:
        i0, i1, fy = _axis_weights(shape[0], nrows, window, half_window)
        j0, j1, fx = _axis_weights(shape[1], ncols, window, half_window)

        fy = fy[:, np.newaxis]
        fx = fx[np.newaxis, :]
        field = ((1.0 - fy) * (1.0 - fx) * values[np.ix_(i0, j0)]
                 + (1.0 - fy) * fx * values[np.ix_(i0, j1)]
                 + fy * (1.0 - fx) * values[np.ix_(i1, j0)]
                 + fy * fx * values[np.ix_(i1, j1)])

    if out is None:
        out = np.full(shape, FILL_VALUE, dtype=np.float32)
    if fill_mask is None:
        out[...] = field
    else:
        keep = ~np.asarray(fill_mask, dtype=bool)
        out[keep] = field[keep]
    return out
