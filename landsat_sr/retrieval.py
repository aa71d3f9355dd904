"""
Window-based aerosol retrieval.

The scene is tiled with square aerosol windows. One pixel per window, the
window center or the closest non-fill pixel around it, is inverted for the
AOT at 550 nm and the Angstrom exponent:

1. Expected ratios of the coastal, blue and SWIR2 surface reflectances to
   the red one are derived from the climatological band ratio model at the
   pixel NDWI.
2. For three Angstrom exponents the AOT grid is scanned for the AOT that
   minimizes the residual of the observed ratios (:func:`invert_aerosol`).
3. A parabola through the three (exponent, residual) pairs gives the
   exponent of the final inversion (:func:`parabola_minimum`).
4. The window is classified as clear land or water; water windows are
   inverted again with a fixed exponent and a water band set.

Each window is processed by the pure function :func:`retrieve_window`;
:func:`retrieve_aerosols` runs the window rows on the worker pool and
gathers the results on the window grid.

References
----------
.. [1] Vermote, E., Justice, C., Claverie, M., and Franch, B. (2016).
       Preliminary analysis of the performance of the Landsat 8/OLI land
       surface reflectance product. Remote Sens. Environ., 185:46-56.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from landsat_sr import qa
from landsat_sr.atmosphere import BandCoefficients, correct_lambertian
from landsat_sr.climatology import Climatology
from landsat_sr.constants import (
    AERO_WINDOW,
    DEFAULT_AOT,
    DEFAULT_EPS,
    HALF_AERO_WINDOW,
    HIGH_EPS,
    IPFLAG_FILL,
    LOW_EPS,
    MOD_EPS,
    WATER_EPS,
    Band,
)
from landsat_sr.geolocation import Geolocator
from landsat_sr.parallel import run_parallel

logger = logging.getLogger(__name__)

#: Bands of the land inversion, the red band is the reference
LAND_BANDS: Tuple[Band, ...] = (Band.COASTAL, Band.BLUE, Band.RED, Band.SWIR2)

#: Bands of the water inversion
WATER_BANDS: Tuple[Band, ...] = (Band.COASTAL, Band.RED, Band.NIR, Band.SWIR2)

#: TOA bands kept from the first pass for the retrieval
RETRIEVAL_BANDS: Tuple[Band, ...] = (
    Band.COASTAL, Band.BLUE, Band.RED, Band.NIR, Band.SWIR2,
)


class WindowOutcome(enum.Enum):
    """Outcome of the retrieval of one aerosol window."""

    FILL = "fill"
    CLEAR = "clear"
    WATER = "water"
    FAILED = "failed"


@dataclass(frozen=True)
class InversionResult:
    """
    Result of an AOT scan.

    Attributes
    ----------
    aot : float
        AOT at 550 nm minimizing the residual.
    residual : float
        Residual at ``aot``.
    next_start : int
        AOT index from which a following scan may start.
    """

    aot: float
    residual: float
    next_start: int


@dataclass(frozen=True)
class AerosolEstimate:
    """AOT, Angstrom exponent and residual of the selected inversion."""

    aot: float
    eps: float
    residual: float


def parabola_minimum(x1: float, x2: float, x3: float,
                     r1: float, r2: float, r3: float) -> Optional[float]:
    """
    Abscissa of the vertex of the parabola through three points.

    Parameters
    ----------
    x1, x2, x3 : float
        Abscissas.
    r1, r2, r3 : float
        Residuals at the abscissas.

    Returns
    -------
    float or None
        Vertex abscissa, or None when the points define no parabola
        (e.g. three equal residuals).

    Notes
    -----
    With :math:`x_a = (r_1 - r_3)(x_2 - x_3)` and
    :math:`x_b = (r_2 - r_3)(x_1 - x_3)`:

    .. math::

        x_{min} = \\frac{1}{2}
            \\frac{x_a (x_2 + x_3) - x_b (x_1 + x_3)}{x_a - x_b}

    Examples
    --------
    >>> parabola_minimum(1.0, 1.75, 2.5, 0.02, 0.02, 0.02) is None
    True
    """
    xa = (r1 - r3) * (x2 - x3)
    xb = (r2 - r3) * (x1 - x3)
    if xa == xb:
        return None
    return 0.5 * (xa * (x2 + x3) - xb * (x1 + x3)) / (xa - xb)


def ratio_residual(
    coefficients: Mapping[Band, BandCoefficients],
    rotoa: Mapping[Band, float],
    ratios: Mapping[Band, float],
    aot: float,
    eps: float,
    reference: Band = Band.RED,
) -> float:
    """
    Residual of the surface reflectance ratios for one AOT.

    Parameters
    ----------
    coefficients : mapping
        Per-band polynomial fits.
    rotoa : mapping
        Observed TOA reflectance per band, including ``reference``.
    ratios : mapping
        Expected ratio to the reference band; bands with a ratio <= 0 are
        ignored.
    aot, eps : float
        AOT at 550 nm and Angstrom exponent.
    reference : Band, optional
        Reference band. Default is RED.

    Returns
    -------
    float
        :math:`\\sqrt{\\sum_b (\\rho_b - r_b \\rho_{ref})^2} / (n - 1)` where
        ``n`` counts the bands used, reference included. Infinite when no
        band besides the reference has a positive ratio.
    """
    ros_ref = float(correct_lambertian(coefficients[reference], aot, eps,
                                       rotoa[reference]))
    total = 0.0
    nbands = 1
    for band, ratio in ratios.items():
        if band is reference or ratio <= 0.0:
            continue
        ros = float(correct_lambertian(coefficients[band], aot, eps, rotoa[band]))
        total += (ros - ratio * ros_ref) ** 2
        nbands += 1
    if nbands < 2:
        return np.inf
    return float(np.sqrt(total)) / (nbands - 1)


def invert_aerosol(
    coefficients: Mapping[Band, BandCoefficients],
    rotoa: Mapping[Band, float],
    ratios: Mapping[Band, float],
    eps: float,
    aot_grid: Sequence[float],
    start_index: int = 0,
    reference: Band = Band.RED,
) -> InversionResult:
    """
    Scan the AOT grid for the AOT minimizing the ratio residual.

    Parameters
    ----------
    coefficients : mapping
        Per-band polynomial fits.
    rotoa : mapping
        Observed TOA reflectance per band.
    ratios : mapping
        Expected ratio of each band to ``reference``.
    eps : float
        Angstrom exponent.
    aot_grid : sequence of float
        AOT at 550 nm grid.
    start_index : int, optional
        First grid index of the scan.
    reference : Band, optional
        Reference band of the ratios.

    Returns
    -------
    InversionResult

    Notes
    -----
    The scan walks up the grid while the residual decreases and stops at
    the first grid node where it does not. When the best node has a
    neighbor on each side, the vertex of the parabola through the three
    nodes refines the AOT; it is kept only if it lies between the two
    neighbors and lowers the residual.
    """
    def residual(aot):
        return ratio_residual(coefficients, rotoa, ratios, aot, eps, reference)

    last = len(aot_grid) - 1
    start_index = min(max(start_index, 0), last)
    residuals = {start_index: residual(aot_grid[start_index])}

    best = start_index
    for k in range(start_index + 1, last + 1):
        residuals[k] = residual(aot_grid[k])
        if residuals[k] >= residuals[k - 1]:
            break
        best = k

    aot = float(aot_grid[best])
    res = residuals[best]

    if best - 1 in residuals and best + 1 in residuals:
        x1, x2, x3 = aot_grid[best - 1], aot_grid[best], aot_grid[best + 1]
        vertex = parabola_minimum(x1, x2, x3, residuals[best - 1],
                                  residuals[best], residuals[best + 1])
        if vertex is not None and x1 < vertex < x3:
            refined = residual(vertex)
            if refined < res:
                aot, res = float(vertex), refined

    return InversionResult(aot=aot, residual=res, next_start=max(best - 3, 0))


def select_angstrom(
    coefficients: Mapping[Band, BandCoefficients],
    rotoa: Mapping[Band, float],
    ratios: Mapping[Band, float],
    aot_grid: Sequence[float],
) -> AerosolEstimate:
    """
    Invert at the low, moderate and high exponents and refine the exponent.

    The three scans are chained: each starts from the index returned by the
    previous one. When the parabola vertex lies within [1.0, 2.5] the
    inversion is run once more at the vertex; below the range the low
    exponent result is kept, above it or without a vertex the high one.
    """
    results = []
    start = 0
    for eps in (LOW_EPS, MOD_EPS, HIGH_EPS):
        inv = invert_aerosol(coefficients, rotoa, ratios, eps, aot_grid, start)
        results.append(AerosolEstimate(inv.aot, eps, inv.residual))
        start = inv.next_start

    low, mod, high = results
    eps_min = parabola_minimum(LOW_EPS, MOD_EPS, HIGH_EPS,
                               low.residual, mod.residual, high.residual)
    if eps_min is None:
        return high
    if eps_min < LOW_EPS:
        return low
    if eps_min > HIGH_EPS:
        return high

    inv = invert_aerosol(coefficients, rotoa, ratios, eps_min, aot_grid, start)
    return AerosolEstimate(inv.aot, eps_min, inv.residual)


def find_closest_non_fill(
    fill_mask: np.ndarray,
    line: int,
    samp: int,
    half_window: int,
) -> Optional[Tuple[int, int]]:
    """
    Closest non-fill pixel within ``half_window`` of a pixel.

    Distances are squared Euclidean; ties keep the first pixel in row-major
    order. Returns None when every pixel of the neighborhood is fill.
    """
    nlines, nsamps = fill_mask.shape
    best = None
    best_dist = None
    for i in range(max(line - half_window, 0), min(line + half_window + 1, nlines)):
        for j in range(max(samp - half_window, 0), min(samp + half_window + 1, nsamps)):
            if fill_mask[i, j]:
                continue
            dist = (i - line) ** 2 + (j - samp) ** 2
            if best_dist is None or dist < best_dist:
                best, best_dist = (i, j), dist
    return best


@dataclass(frozen=True)
class RetrievalContext:
    """
    Read-only scene data shared by every window.

    Attributes
    ----------
    toa : mapping of Band to ndarray
        TOA reflectance of the retrieval bands (COASTAL, BLUE, RED, NIR,
        SWIR2) as read before the first pass.
    surface : mapping of Band to ndarray
        First-pass surface reflectance; NIR and SWIR2 are used for NDWI.
    fill_mask : ndarray of bool
        Fill pixels.
    coefficients : dict
        Per-band polynomial fits.
    climatology : Climatology
        Band ratio model.
    geolocator : Geolocator
        Pixel to lat/lon mapping.
    solar_zenith : float
        Solar zenith angle [degrees].
    aot_grid : tuple of float
        AOT at 550 nm grid.
    default_aot, default_eps : float
        Values recorded for fill windows.
    """

    toa: Mapping[Band, np.ndarray]
    surface: Mapping[Band, np.ndarray]
    fill_mask: np.ndarray
    coefficients: Mapping[Band, BandCoefficients]
    climatology: Climatology
    geolocator: Geolocator
    solar_zenith: float
    aot_grid: Tuple[float, ...]
    default_aot: float = DEFAULT_AOT
    default_eps: float = DEFAULT_EPS

    @property
    def shape(self) -> Tuple[int, int]:
        return self.fill_mask.shape

    @property
    def mus(self) -> float:
        return float(np.cos(np.deg2rad(self.solar_zenith)))


@dataclass(frozen=True)
class WindowTask:
    """
    Window grid position and center pixel of one aerosol window.

    ``half_window`` is the radius of the substitute search when the center
    is fill.
    """

    window_row: int
    window_col: int
    center_line: int
    center_samp: int
    half_window: int = HALF_AERO_WINDOW


@dataclass(frozen=True)
class WindowResult:
    """
    Retrieval result of one aerosol window.

    ``write_line``/``write_samp`` is the window center where the result is
    recorded; ``target_line``/``target_samp`` is the pixel that was
    actually inverted (None for fill windows).
    """

    window_row: int
    window_col: int
    write_line: int
    write_samp: int
    target_line: Optional[int]
    target_samp: Optional[int]
    aot: float
    eps: float
    residual: float
    outcome: WindowOutcome
    flags: int

    @property
    def substituted(self) -> bool:
        """True when a neighbor of a fill center was inverted."""
        return self.target_line is not None and (
            (self.target_line, self.target_samp) != (self.write_line, self.write_samp)
        )


def _pixel(arrays: Mapping[Band, np.ndarray], bands: Sequence[Band],
           line: int, samp: int) -> Dict[Band, float]:
    return {b: float(arrays[b][line, samp]) for b in bands}


def classify_water(
    context: RetrievalContext,
    rotoa: Mapping[Band, float],
) -> Tuple[AerosolEstimate, bool]:
    """
    Water inversion at a fixed exponent; returns the estimate and whether
    the water retrieval is valid.
    """
    ratios = {b: 1.0 for b in WATER_BANDS if b is not Band.RED}
    inv = invert_aerosol(context.coefficients, rotoa, ratios, WATER_EPS,
                         context.aot_grid, start_index=0)
    corf = inv.aot / context.mus
    ros_coastal = float(correct_lambertian(
        context.coefficients[Band.COASTAL], inv.aot, WATER_EPS, rotoa[Band.COASTAL]
    ))
    valid = not (inv.residual > 0.010 + 0.005 * corf or ros_coastal < 0.0)
    return AerosolEstimate(inv.aot, WATER_EPS, inv.residual), valid


def retrieve_window(task: WindowTask, context: RetrievalContext) -> WindowResult:
    """
    Retrieve AOT and Angstrom exponent for one aerosol window.

    Parameters
    ----------
    task : WindowTask
        Window to process.
    context : RetrievalContext
        Shared scene data.

    Returns
    -------
    WindowResult

    Raises
    ------
    GeolocationError
        If the inverted pixel cannot be geolocated.

    Notes
    -----
    Land windows pass when

    .. math::

        r < 0.015 + 0.005 \\frac{\\tau_a}{\\mu_s} + 0.10 \\rho_{TOA}(SWIR2)

    and are clear when the NIR surface reflectance exceeds 0.1 with a
    positive NDVI. Other windows are water windows and must pass
    :func:`classify_water`, else the retrieval failed.
    """
    line, samp = task.center_line, task.center_samp

    # locate the pixel to invert
    if context.fill_mask[line, samp]:
        target = find_closest_non_fill(context.fill_mask, line, samp,
                                       task.half_window)
        if target is None:
            return WindowResult(
                task.window_row, task.window_col, line, samp, None, None,
                context.default_aot, context.default_eps, np.inf,
                WindowOutcome.FILL, qa.bit(IPFLAG_FILL),
            )
    else:
        target = (line, samp)
    tline, tsamp = target

    # band ratio model at the pixel
    lat, lon = context.geolocator.pixel_to_latlon(tline, tsamp)
    model = context.climatology.sample_band_ratios(lat, lon)

    nir = float(context.surface[Band.NIR][tline, tsamp])
    swir2 = float(context.surface[Band.SWIR2][tline, tsamp])
    denom = nir + 0.5 * swir2
    ndwi = (nir - 0.5 * swir2) / denom if denom != 0.0 else 0.0
    ndwi = model.clamp_ndwi(ndwi)

    ratios = {b: model.expected_ratio(b, ndwi) for b in (Band.COASTAL, Band.BLUE, Band.SWIR2)}
    rotoa = _pixel(context.toa, RETRIEVAL_BANDS, tline, tsamp)

    # land inversion
    estimate = select_angstrom(context.coefficients, rotoa, ratios, context.aot_grid)

    corf = estimate.aot / context.mus
    outcome = WindowOutcome.WATER
    if estimate.residual < 0.015 + 0.005 * corf + 0.10 * rotoa[Band.SWIR2]:
        ros_red = float(correct_lambertian(context.coefficients[Band.RED],
                                           estimate.aot, estimate.eps, rotoa[Band.RED]))
        ros_nir = float(correct_lambertian(context.coefficients[Band.NIR],
                                           estimate.aot, estimate.eps, rotoa[Band.NIR]))
        ndvi_denom = ros_nir + ros_red
        ndvi = (ros_nir - ros_red) / ndvi_denom if ndvi_denom != 0.0 else 0.0
        if ros_nir > 0.1 and ndvi > 0.0:
            outcome = WindowOutcome.CLEAR

    flags = qa.retrieval_flags(clear=True, water=False)
    if outcome is WindowOutcome.WATER:
        estimate, valid = classify_water(context, rotoa)
        if valid:
            flags = qa.retrieval_flags(clear=True, water=True)
        else:
            outcome = WindowOutcome.FAILED
            flags = 0

    return WindowResult(
        task.window_row, task.window_col, line, samp, tline, tsamp,
        estimate.aot, estimate.eps, estimate.residual, outcome, flags,
    )


@dataclass
class AerosolWindows:
    """
    Retrieval results on the window grid.

    Attributes
    ----------
    aot, eps, residual : ndarray
        Shape (nwindow_rows, nwindow_cols).
    flags : ndarray of uint8
        ipflag bits of each window.
    center_lines, center_samps : ndarray of int
        Pixel coordinates of the window centers.
    window, half_window : int
        Window size and center offset.
    results : list of WindowResult
        Per-window records, row-major.
    """

    aot: np.ndarray
    eps: np.ndarray
    residual: np.ndarray
    flags: np.ndarray
    center_lines: np.ndarray
    center_samps: np.ndarray
    window: int
    half_window: int
    results: List[WindowResult]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.aot.shape

    def outcome_counts(self) -> Dict[WindowOutcome, int]:
        counts = {o: 0 for o in WindowOutcome}
        for r in self.results:
            counts[r.outcome] += 1
        return counts


def window_centers(size: int, window: int = AERO_WINDOW,
                   half_window: int = HALF_AERO_WINDOW) -> np.ndarray:
    """Pixel coordinates of the window centers along one axis."""
    return np.arange(half_window, size, window)


def retrieve_aerosols(
    context: RetrievalContext,
    window: int = AERO_WINDOW,
    half_window: Optional[int] = None,
    max_workers: Optional[int] = None,
    progress: bool = False,
) -> AerosolWindows:
    """
    Run the retrieval on every aerosol window of the scene.

    Parameters
    ----------
    context : RetrievalContext
        Shared scene data.
    window : int, optional
        Window size [pixels].
    half_window : int, optional
        Center offset; also the substitute search radius. Default is
        ``window // 2``.
    max_workers : int, optional
        Number of worker threads; window rows are the work units.
    progress : bool, optional
        Show a progress bar.

    Returns
    -------
    AerosolWindows
    """
    if window < 1:
        raise ValueError(f"window must be positive, got {window}")
    if half_window is None:
        half_window = window // 2

    nlines, nsamps = context.shape
    center_lines = window_centers(nlines, window, half_window)
    center_samps = window_centers(nsamps, window, half_window)
    shape = (center_lines.size, center_samps.size)

    def process_row(row: int) -> List[WindowResult]:
        return [
            retrieve_window(
                WindowTask(row, col, int(center_lines[row]),
                           int(center_samps[col]), half_window),
                context,
            )
            for col in range(center_samps.size)
        ]

    rows = run_parallel(process_row, range(shape[0]), max_workers=max_workers,
                        progress=progress, desc="Aerosol windows")

    aot = np.empty(shape)
    eps = np.empty(shape)
    residual = np.empty(shape)
    flags = np.zeros(shape, dtype=np.uint8)
    results = []
    for row_results in rows:
        for r in row_results:
            aot[r.window_row, r.window_col] = r.aot
            eps[r.window_row, r.window_col] = r.eps
            residual[r.window_row, r.window_col] = r.residual
            flags[r.window_row, r.window_col] = r.flags
            results.append(r)

    windows = AerosolWindows(
        aot=aot, eps=eps, residual=residual, flags=flags,
        center_lines=center_lines, center_samps=center_samps,
        window=window, half_window=half_window, results=results,
    )
    logger.info("Aerosol windows: %s",
                ", ".join(f"{o.value}={n}" for o, n in windows.outcome_counts().items()))
    return windows
