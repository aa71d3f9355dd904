"""
Tests for the window gap fill and the expansion to full resolution.
"""

import numpy as np
import pytest

from landsat_sr import interpolation
from landsat_sr.retrieval import AerosolWindows

CLEAR = 2
WATER = 6
FILL = 1
INTERP = 32


def make_windows(aot, flags, eps=None, window=3):
    """Window grid from AOT and flag arrays."""
    aot = np.array(aot, dtype=float)
    flags = np.array(flags, dtype=np.uint8)
    if eps is None:
        eps = np.full(aot.shape, 1.5)
    return AerosolWindows(
        aot=aot,
        eps=np.array(eps, dtype=float),
        residual=np.zeros(aot.shape),
        flags=flags,
        center_lines=np.arange(window // 2, aot.shape[0] * window, window),
        center_samps=np.arange(window // 2, aot.shape[1] * window, window),
        window=window,
        half_window=window // 2,
        results=[],
    )


class TestFillInvalidWindows:
    """Tests for the gap fill of invalid windows."""

    def test_mean_of_ring(self):
        """Test that an invalid window takes the mean of its valid neighbors."""
        aot = [[0.1, 0.2, 0.3], [0.4, 9.0, 0.6], [0.7, 0.8, 0.9]]
        flags = [[CLEAR] * 3, [CLEAR, 0, CLEAR], [CLEAR] * 3]
        windows = make_windows(aot, flags)
        assert interpolation.fill_invalid_windows(windows) == 1
        assert windows.aot[1, 1] == pytest.approx(0.5)
        assert windows.flags[1, 1] == INTERP
        assert windows.aot[0, 0] == 0.1

    def test_land_preferred(self):
        """Test that land windows are used when the ring has any."""
        aot = [[0.1, 0.2, 0.3], [0.4, 0.0, 0.6], [0.7, 0.8, 0.9]]
        flags = [[WATER, CLEAR, WATER], [WATER, 0, WATER], [WATER, CLEAR, WATER]]
        windows = make_windows(aot, flags)
        interpolation.fill_invalid_windows(windows)
        assert windows.aot[1, 1] == pytest.approx(0.5)

    def test_water_when_no_land(self):
        """Test that valid water windows are used without land."""
        aot = [[0.2, 0.4]]
        flags = [[WATER, 0]]
        windows = make_windows(aot, flags, eps=[[1.2, 9.0]])
        interpolation.fill_invalid_windows(windows)
        assert windows.aot[0, 1] == pytest.approx(0.2)
        assert windows.eps[0, 1] == pytest.approx(1.2)

    def test_wider_ring(self):
        """Test that the search grows until a valid window is found."""
        aot = [[0.3, 0.05, 0.05]]
        flags = [[CLEAR, FILL, FILL]]
        windows = make_windows(aot, flags)
        assert interpolation.fill_invalid_windows(windows) == 2
        np.testing.assert_allclose(windows.aot[0], [0.3, 0.3, 0.3])
        np.testing.assert_array_equal(windows.flags[0], [CLEAR, FILL | INTERP, FILL | INTERP])

    def test_defaults_beyond_radius(self):
        """Test the default values when no valid window is within reach."""
        aot = [[0.3] + [0.0] * 4]
        flags = [[CLEAR] + [0] * 4]
        windows = make_windows(aot, flags)
        interpolation.fill_invalid_windows(windows, max_radius=2,
                                           default_aot=0.07, default_eps=1.1)
        np.testing.assert_allclose(windows.aot[0], [0.3, 0.3, 0.3, 0.07, 0.07])
        assert windows.eps[0, 4] == pytest.approx(1.1)

    def test_nothing_to_fill(self):
        """Test that a fully valid grid is unchanged."""
        windows = make_windows([[0.1, 0.2]], [[CLEAR, WATER]])
        assert interpolation.fill_invalid_windows(windows) == 0
        np.testing.assert_array_equal(windows.flags, [[CLEAR, WATER]])

    def test_empty_grid(self):
        """Test that a grid without windows is left alone."""
        windows = make_windows(np.zeros((0, 4)), np.zeros((0, 4)))
        assert interpolation.fill_invalid_windows(windows) == 0


class TestExpandWindows:
    """Tests for the bilinear expansion."""

    values = np.array([[0.0, 1.0], [2.0, 3.0]])

    def test_centers_reproduced(self):
        """Test that window centers keep their values."""
        out = interpolation.expand_windows(self.values, (6, 6), 3, 1)
        assert out[1, 1] == 0.0
        assert out[1, 4] == 1.0
        assert out[4, 1] == 2.0
        assert out[4, 4] == 3.0

    def test_between_centers(self):
        """Test bilinear interpolation between centers."""
        out = interpolation.expand_windows(self.values, (6, 6), 3, 1)
        assert out[1, 2] == pytest.approx(1.0 / 3.0)
        assert out[2, 2] == pytest.approx(1.0 / 3.0 + 2.0 / 3.0)

    def test_edges_clamped(self):
        """Test that pixels beyond the outer centers take the edge values."""
        out = interpolation.expand_windows(self.values, (6, 6), 3, 1)
        assert out[0, 0] == 0.0
        assert out[5, 5] == 3.0
        assert out[0, 5] == 1.0

    def test_fill_untouched(self):
        """Test that fill pixels are not written."""
        mask = np.zeros((6, 6), dtype=bool)
        mask[0, :] = True
        out = np.full((6, 6), -1.0, dtype=np.float32)
        interpolation.expand_windows(self.values, (6, 6), 3, 1, fill_mask=mask, out=out)
        assert np.all(out[0] == -1.0)
        assert out[4, 4] == 3.0

    def test_default_output(self):
        """Test the float32 output initialized with the fill value."""
        mask = np.ones((6, 6), dtype=bool)
        out = interpolation.expand_windows(self.values, (6, 6), 3, 1, fill_mask=mask)
        assert out.dtype == np.float32
        assert np.all(out == 0.0)

    def test_empty_grid(self):
        """Test that a scene without window centers takes the default value."""
        mask = np.zeros((1, 6), dtype=bool)
        mask[0, 0] = True
        out = interpolation.expand_windows(np.zeros((0, 2)), (1, 6), 3, 1,
                                           fill_mask=mask, default=0.05)
        assert out[0, 0] == 0.0
        np.testing.assert_allclose(out[0, 1:], 0.05, rtol=1e-6)
