"""
End-to-end tests of the surface reflectance correction.

The flat lookup tables make the fitted roatm constant, which reduces the
polynomial degree with a warning; those warnings are expected here.
"""

import numpy as np
import pytest

from landsat_sr import SurfaceReflectanceCorrection
from landsat_sr.constants import (
    AOT550NM_LEVELS,
    DEFAULT_AOT,
    DEFAULT_EPS,
    FILL_VALUE,
    PRESSURE_LEVELS,
    REFLECTANCE_BANDS,
    AtmosphereConstants,
    Band,
)
from landsat_sr.geolocation import AffineGeolocator
from landsat_sr.lut import LookupTableError
from landsat_sr.qa import has_bit
from landsat_sr.retrieval import WindowOutcome

from conftest import make_lut

pytestmark = pytest.mark.filterwarnings("ignore:Only")


@pytest.fixture
def corrector(flat_lut, climatology, transparent_gases):
    return SurfaceReflectanceCorrection(flat_lut, climatology,
                                        atmosphere_constants=transparent_gases,
                                        max_workers=2)


@pytest.fixture
def vegetated_scene(scene_40):
    """40x40 scene with a bright NIR band."""
    sband, qaband = scene_40
    sband[Band.NIR][:] = 0.4
    return sband, qaband


def _copy(scene):
    sband, qaband = scene
    return {b: a.copy() for b, a in sband.items()}, qaband.copy()


class TestSurfaceReflectanceCorrection:
    """Tests for the full processing chain."""

    def test_surface_reflectance(self, corrector, vegetated_scene, geometry, geolocator):
        """Test the corrected values and the fill block."""
        sband, qaband = vegetated_scene
        result = corrector.process(sband, qaband, geometry, geolocator)

        y = (0.2 - 0.05) / 0.8
        expected = y / (1.0 + 0.1 * y)
        red = result.surface_reflectance[Band.RED]
        assert red is sband[Band.RED]
        np.testing.assert_allclose(red[8:, 8:], expected, atol=1e-4)
        for band in REFLECTANCE_BANDS:
            assert np.all(result.surface_reflectance[band][:8, :8] == FILL_VALUE)

    def test_qa(self, corrector, vegetated_scene, geometry, geolocator):
        """Test the fill and aerosol level bits of the QA band."""
        sband, qaband = vegetated_scene
        result = corrector.process(sband, qaband, geometry, geolocator)

        fill = qaband.astype(bool)
        np.testing.assert_array_equal(result.fill_mask, fill)
        assert np.all(result.ipflag[fill] == 1)
        assert not has_bit(result.ipflag[~fill], 0).any()
        # first and final corrections agree, so the aerosol level is low
        assert np.all(has_bit(result.ipflag[~fill], 6))
        assert not has_bit(result.ipflag[~fill], 7).any()

    def test_window_outcomes(self, corrector, vegetated_scene, geometry, geolocator):
        """Test the window classification and the gap fill."""
        sband, qaband = vegetated_scene
        result = corrector.process(sband, qaband, geometry, geolocator)

        windows = result.windows
        assert windows.shape == (13, 13)
        counts = windows.outcome_counts()
        assert counts[WindowOutcome.FILL] == 4
        assert counts[WindowOutcome.CLEAR] == 13 * 13 - 4
        np.testing.assert_array_equal(windows.flags[:2, :2], 1 | 32)
        assert np.all(has_bit(windows.flags[2:, :], 1))

        for r in windows.results:
            if r.outcome is WindowOutcome.CLEAR:
                assert has_bit(result.ipflag[r.target_line, r.target_samp], 1)

    def test_aerosol_fields(self, corrector, vegetated_scene, geometry, geolocator):
        """Test the expanded AOT and exponent rasters."""
        sband, qaband = vegetated_scene
        result = corrector.process(sband, qaband, geometry, geolocator)

        fill = qaband.astype(bool)
        assert np.all(result.taero[fill] == FILL_VALUE)
        assert np.all(result.teps[fill] == FILL_VALUE)
        assert np.all((result.taero[~fill] >= 0.01) & (result.taero[~fill] <= 5.0))
        assert np.all((result.teps[~fill] >= 1.0) & (result.teps[~fill] <= 2.5))

    def test_scene_atmosphere(self, corrector, vegetated_scene, geometry, geolocator):
        """Test the climatology at the scene center."""
        sband, qaband = vegetated_scene
        result = corrector.process(sband, qaband, geometry, geolocator)
        assert result.atmosphere.pressure == pytest.approx(1013.0)
        assert result.atmosphere.ozone == pytest.approx(0.3)

    def test_deterministic(self, flat_lut, climatology, transparent_gases,
                           vegetated_scene, nadir_geometry, geolocator):
        """Test that the worker count does not change the products."""
        results = []
        for workers in (1, 4):
            sband, qaband = _copy(vegetated_scene)
            sr = SurfaceReflectanceCorrection(flat_lut, climatology,
                                              atmosphere_constants=transparent_gases,
                                              max_workers=workers)
            results.append(sr.process(sband, qaband, nadir_geometry, geolocator))

        first, second = results
        np.testing.assert_array_equal(first.ipflag, second.ipflag)
        np.testing.assert_array_equal(first.taero, second.taero)
        for band in REFLECTANCE_BANDS:
            np.testing.assert_array_equal(first.surface_reflectance[band],
                                          second.surface_reflectance[band])

    def test_thermal_untouched(self, corrector, vegetated_scene, geometry, geolocator):
        """Test that thermal bands pass through unchanged."""
        sband, qaband = vegetated_scene
        sband[Band.THERMAL1] = np.full((40, 40), 290.0, dtype=np.float32)
        corrector.process(sband, qaband, geometry, geolocator)
        assert np.all(sband[Band.THERMAL1] == 290.0)

    def test_failed_window_flagged(self, corrector, vegetated_scene, geometry, geolocator):
        """Test that a repaired failed window sets the interpolation bit."""
        sband, qaband = vegetated_scene
        sband[Band.COASTAL][18:21, 18:21] = 0.01
        result = corrector.process(sband, qaband, geometry, geolocator)

        counts = result.windows.outcome_counts()
        assert counts[WindowOutcome.FAILED] == 1
        assert result.windows.flags[6, 6] == 32
        assert has_bit(result.ipflag[19, 19], 5)
        assert not has_bit(result.ipflag[19, 19], 1)
        # fill windows have no pixel to flag
        assert np.count_nonzero(has_bit(result.ipflag, 5)) == 1

    def test_strip_without_windows(self, corrector, geometry):
        """Test a scene too narrow to hold a window center."""
        sband = {b: np.full((1, 12), 0.2, dtype=np.float32) for b in REFLECTANCE_BANDS}
        qaband = np.zeros((1, 12), dtype=np.uint16)
        qaband[0, 0] = 1
        geolocator = AffineGeolocator(45.0, -100.0, 0.001, (1, 12))
        result = corrector.process(sband, qaband, geometry, geolocator)

        assert result.windows.shape == (0, 4)
        np.testing.assert_allclose(result.taero[0, 1:], DEFAULT_AOT, rtol=1e-6)
        np.testing.assert_allclose(result.teps[0, 1:], DEFAULT_EPS, rtol=1e-6)
        assert result.taero[0, 0] == FILL_VALUE
        assert not has_bit(result.ipflag[0, 1:], 1).any()


class TestAerosolInversion:
    """Tests of the full chain with tables that depend on the aerosol load."""

    @pytest.fixture
    def result(self, aerosol_lut, climatology, transparent_gases, scene_40,
               nadir_geometry, geolocator):
        """
        Coastal band brighter than the other land bands by an excess growing
        along the samples, so that the retrieved AOT grows too. The center
        of window (6, 6) cannot be inverted.
        """
        sband, qaband = scene_40
        excess = 0.03 * np.arange(40, dtype=np.float32) / 39.0
        sband[Band.COASTAL][:] = 0.2 + excess[np.newaxis, :]
        sband[Band.NIR][:] = 0.4
        sband[Band.COASTAL][18:21, 18:21] = 0.0
        sband[Band.NIR][18:21, 18:21] = 0.05
        sr = SurfaceReflectanceCorrection(aerosol_lut, climatology,
                                          atmosphere_constants=transparent_gases,
                                          max_workers=2)
        return sr.process(sband, qaband, nadir_geometry, geolocator)

    def test_outcomes(self, result):
        """Test that only the dark window fails."""
        counts = result.windows.outcome_counts()
        assert counts[WindowOutcome.FILL] == 4
        assert counts[WindowOutcome.FAILED] == 1
        assert counts[WindowOutcome.CLEAR] == 13 * 13 - 5
        failed = [r for r in result.windows.results if r.outcome is WindowOutcome.FAILED]
        assert (failed[0].window_row, failed[0].window_col) == (6, 6)

    def test_aot_varies(self, result):
        """Test that the retrieved AOT follows the coastal excess."""
        valid = ~result.fill_mask
        taero = result.taero[valid]
        assert taero.max() - taero.min() > 0.05
        assert result.taero[30, 37] > result.taero[30, 10]
        assert np.all((result.teps[valid] >= 1.0) & (result.teps[valid] <= 2.5))

    def test_failed_window_from_neighbors(self, result):
        """Test that the failed window takes the mean of its eight neighbors."""
        retrieved = {(r.window_row, r.window_col): r.aot for r in result.windows.results}
        neighbors = [retrieved[(i, j)] for i in (5, 6, 7) for j in (5, 6, 7)
                     if (i, j) != (6, 6)]
        assert result.windows.aot[6, 6] == pytest.approx(np.mean(neighbors))
        assert result.taero[19, 19] == pytest.approx(np.mean(neighbors), rel=1e-5)
        assert has_bit(result.ipflag[19, 19], 5)

    def test_smooth_across_windows(self, result):
        """Test that neighboring pixels differ by at most a third of a window step."""
        aot = result.windows.aot
        taero = result.taero.astype(np.float64)
        valid = ~result.fill_mask

        step_x = np.abs(np.diff(aot, axis=1)).max() / 3.0
        dx = np.abs(np.diff(taero, axis=1))[valid[:, 1:] & valid[:, :-1]]
        assert dx.max() <= step_x + 1e-6

        step_y = np.abs(np.diff(aot, axis=0)).max() / 3.0
        dy = np.abs(np.diff(taero, axis=0))[valid[1:, :] & valid[:-1, :]]
        assert dy.max() <= step_y + 1e-6


class TestValidation:
    """Tests for input checks."""

    def test_missing_band(self, corrector, scene_40, geometry, geolocator):
        """Test that a missing reflectance band raises."""
        sband, qaband = scene_40
        del sband[Band.SWIR1]
        with pytest.raises(ValueError, match="SWIR1"):
            corrector.process(sband, qaband, geometry, geolocator)

    def test_shape_mismatch(self, corrector, scene_40, geometry, geolocator):
        """Test that a band of another shape raises."""
        sband, qaband = scene_40
        sband[Band.GREEN] = np.zeros((20, 40), dtype=np.float32)
        with pytest.raises(ValueError, match="shape"):
            corrector.process(sband, qaband, geometry, geolocator)

    def test_integer_band(self, corrector, scene_40, geometry, geolocator):
        """Test that digital numbers are rejected."""
        sband, qaband = scene_40
        sband[Band.BLUE] = np.zeros((40, 40), dtype=np.uint16)
        with pytest.raises(ValueError, match="floating point"):
            corrector.process(sband, qaband, geometry, geolocator)

    def test_incomplete_lut(self, climatology):
        """Test that tables without every reflectance band are rejected."""
        lut = make_lut(0.05, 0.9, 0.1, bands=(Band.RED, Band.NIR))
        with pytest.raises(ValueError, match="COASTAL"):
            SurfaceReflectanceCorrection(lut, climatology)

    def test_invalid_window(self, flat_lut, climatology):
        """Test that a window size below 1 raises."""
        with pytest.raises(ValueError, match="window"):
            SurfaceReflectanceCorrection(flat_lut, climatology, window=0)

    def test_aot_grid_mismatch(self, flat_lut, climatology):
        """Test that tables on another AOT grid are rejected."""
        consts = AtmosphereConstants(aot_levels=AOT550NM_LEVELS[:-1])
        with pytest.raises(LookupTableError, match="aot_levels"):
            SurfaceReflectanceCorrection(flat_lut, climatology,
                                         atmosphere_constants=consts)

    def test_pressure_grid_mismatch(self, flat_lut, climatology):
        """Test that tables on another pressure grid are rejected."""
        consts = AtmosphereConstants(pressure_levels=PRESSURE_LEVELS[:-1])
        with pytest.raises(LookupTableError, match="pressure_levels"):
            SurfaceReflectanceCorrection(flat_lut, climatology,
                                         atmosphere_constants=consts)
