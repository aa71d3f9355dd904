"""
Tests for the climatology module.
"""

import numpy as np
import pytest

from landsat_sr import climatology as clim
from landsat_sr.climatology import RATIO_BANDS, Climatology
from landsat_sr.constants import Band
from landsat_sr.lut import LookupTableError

from conftest import make_climatology


def _grids(climatology):
    """Writable copies of the grids of a climatology."""
    return dict(
        dem=np.array(climatology.dem),
        andwi=np.array(climatology.andwi),
        sndwi=np.array(climatology.sndwi),
        ratio_mean={b: np.array(g) for b, g in climatology.ratio_mean.items()},
        ratio_slope={b: np.array(g) for b, g in climatology.ratio_slope.items()},
        ratio_intercept={b: np.array(g) for b, g in climatology.ratio_intercept.items()},
        ozone=np.array(climatology.ozone),
        water_vapor=np.array(climatology.water_vapor),
    )


class TestGridLocation:
    """Tests for the CMG cell lookup on a 10 degree grid."""

    def test_cell_formulas(self):
        """Test the upper-left cell and offsets."""
        loc = clim.grid_location(45.0, -100.0, (18, 36))
        assert (loc.line, loc.samp) == (4, 7)
        assert (loc.next_line, loc.next_samp) == (5, 8)
        assert loc.u == pytest.approx(0.0)
        assert loc.v == pytest.approx(0.5)

    def test_date_line_wraps(self):
        """Test that the right neighbor of the last sample is sample 0."""
        loc = clim.grid_location(0.0, 179.0, (18, 36))
        assert loc.samp == 35
        assert loc.next_samp == 0

    def test_south_pole_repeats(self):
        """Test that the last line is its own lower neighbor."""
        loc = clim.grid_location(-89.0, 0.0, (18, 36))
        assert loc.line == 17
        assert loc.next_line == 17

    def test_north_pole_clamped(self):
        """Test that points north of the first cell center are clamped."""
        loc = clim.grid_location(89.0, 0.0, (18, 36))
        assert loc.line == 0
        assert loc.u == 0.0

    def test_bilinear(self):
        """Test bilinear weights on a gradient grid."""
        grid = np.tile(np.arange(36, dtype=float), (18, 1))
        loc = clim.grid_location(45.0, -100.0, (18, 36))
        assert loc.bilinear(grid) == pytest.approx(7.5)


class TestClimatology:
    """Tests for grid validation."""

    def test_shape(self, climatology):
        """Test the grid shape and resolution."""
        assert climatology.shape == (18, 36)
        assert climatology.resolution == pytest.approx(10.0)

    def test_not_global(self, climatology):
        """Test that a grid with nlon != 2 * nlat raises."""
        grids = _grids(climatology)
        grids["dem"] = np.zeros((18, 30))
        with pytest.raises(LookupTableError, match="global"):
            Climatology(**grids)

    def test_mismatched_grid(self, climatology):
        """Test that grids of another shape raise."""
        grids = _grids(climatology)
        grids["sndwi"] = np.zeros((9, 18))
        with pytest.raises(LookupTableError, match="sndwi"):
            Climatology(**grids)

    def test_missing_band(self, climatology):
        """Test that a missing ratio band raises."""
        grids = _grids(climatology)
        del grids["ratio_slope"][Band.SWIR2]
        with pytest.raises(LookupTableError, match="SWIR2"):
            Climatology(**grids)

    def test_read_only(self, climatology):
        """Test that the stored grids cannot be modified."""
        with pytest.raises(ValueError):
            climatology.dem[0, 0] = 100.0
        with pytest.raises(ValueError):
            climatology.ratio_slope[Band.BLUE][0, 0] = 1


class TestSanitizeCell:
    """Tests for the replacement of unreliable ratio cells."""

    def test_good_cell(self, climatology):
        """Test that a reliable cell keeps its model."""
        cell = climatology.sanitize_cell(4, 7)
        assert not cell.sanitized
        assert cell.slope == {b: 0.0 for b in RATIO_BANDS}
        assert cell.intercept == {b: 1000.0 for b in RATIO_BANDS}

    def test_out_of_range_ratio(self):
        """Test that a mean coastal ratio below 0.1 is replaced."""
        c = make_climatology(ratio_mean=(50, 500, 1500), slope=20)
        cell = c.sanitize_cell(4, 7)
        assert cell.sanitized
        assert cell.slope == {b: 0.0 for b in RATIO_BANDS}
        assert cell.intercept == {
            Band.COASTAL: 550.0, Band.BLUE: 600.0, Band.SWIR2: 2000.0,
        }

    def test_out_of_range_regardless_of_ndwi(self):
        """Test that a bad ratio is replaced even with a high NDWI spread."""
        c = make_climatology(ratio_mean=(500, 1200, 1500), sndwi=900)
        assert c.sanitize_cell(0, 0).sanitized

    def test_low_ndwi_spread(self):
        """Test that a low NDWI standard deviation is replaced."""
        c = make_climatology(sndwi=150)
        cell = c.sanitize_cell(4, 7)
        assert cell.sanitized
        assert cell.intercept[Band.BLUE] == 600.0

    def test_grids_unchanged(self):
        """Test that sanitizing leaves the stored grids as they were."""
        c = make_climatology(ratio_mean=(50, 500, 1500), slope=20)
        c.sample_band_ratios(45.0, -100.0)
        assert np.all(c.ratio_slope[Band.COASTAL] == 20)
        assert np.all(c.ratio_intercept[Band.SWIR2] == 1000)


class TestSampleBandRatios:
    """Tests for the interpolated band ratio model."""

    def test_unscaled(self, climatology):
        """Test that the model is returned unscaled."""
        model = climatology.sample_band_ratios(45.0, -100.0)
        for b in RATIO_BANDS:
            assert model.slope[b] == pytest.approx(0.0)
            assert model.intercept[b] == pytest.approx(1.0)
            assert model.expected_ratio(b, 0.3) == pytest.approx(1.0)

    def test_bilinear_between_cells(self, climatology):
        """Test interpolation between two cells along the samples."""
        grids = _grids(climatology)
        grids["ratio_intercept"][Band.BLUE][:, 8] = 2000
        c = Climatology(**grids)
        model = c.sample_band_ratios(45.0, -100.0)
        assert model.intercept[Band.BLUE] == pytest.approx(1.5)
        assert model.intercept[Band.COASTAL] == pytest.approx(1.0)

    def test_sanitized_neighbor(self, climatology):
        """Test that a replaced neighbor contributes its default model."""
        grids = _grids(climatology)
        grids["ratio_mean"][Band.COASTAL][:, 8] = 50
        c = Climatology(**grids)
        model = c.sample_band_ratios(45.0, -100.0)
        assert model.intercept[Band.SWIR2] == pytest.approx(0.5 * 1.0 + 0.5 * 2.0)

    def test_ndwi_bounds(self):
        """Test the bounds at mean +/- 2 standard deviations."""
        c = make_climatology(andwi=100, sndwi=300)
        model = c.sample_band_ratios(45.0, -100.0)
        assert model.ndwi_th1 == pytest.approx(0.7)
        assert model.ndwi_th2 == pytest.approx(-0.5)
        assert model.clamp_ndwi(0.9) == pytest.approx(0.7)
        assert model.clamp_ndwi(-0.8) == pytest.approx(-0.5)
        assert model.clamp_ndwi(0.1) == 0.1

    def test_slope(self):
        """Test the ratio as a linear function of NDWI."""
        c = make_climatology(slope=500, intercept=400)
        model = c.sample_band_ratios(45.0, -100.0)
        assert model.expected_ratio(Band.SWIR2, 0.2) == pytest.approx(0.5)


class TestSceneAtmosphere:
    """Tests for pressure, ozone and water vapor at a point."""

    def test_sea_level(self, climatology):
        """Test the reference pressure at zero elevation."""
        atm = climatology.scene_atmosphere(45.0, -100.0)
        assert atm.pressure == pytest.approx(1013.0)
        assert atm.ozone == pytest.approx(0.3)
        assert atm.water_vapor == pytest.approx(1.5)

    def test_scale_height(self):
        """Test that 8 km of elevation divides the pressure by e."""
        c = make_climatology(dem=8000.0)
        atm = c.scene_atmosphere(45.0, -100.0)
        assert atm.pressure == pytest.approx(1013.0 / np.e)
