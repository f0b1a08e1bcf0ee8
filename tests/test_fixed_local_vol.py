"""
Tests for the fixed-grid local vol surface and its adapter.
"""

from datetime import date

import pytest
import numpy as np

from fxvolsurface.fixed_local_vol import (
    FixedLocalVolSurface,
    FixedLocalVolSurfaceAdapter,
    LogStrikeMesher,
    TimeGrid,
)
from fxvolsurface.local_vol import LocalVolSurface


REF = date(2019, 5, 2)


@pytest.fixture
def small_surface():
    return FixedLocalVolSurface(
        REF, [0.5, 1.0], [1.0, 2.0, 3.0],
        [[0.1, 0.2], [0.2, 0.3], [0.3, 0.4]],
    )


@pytest.fixture
def example_local_vol(market, svi_surface):
    return LocalVolSurface(svi_surface, market["domestic_curve"], market["foreign_curve"],
                           market["spot"])


class TestTimeGrid:

    def test_uniform_steps(self):
        grid = TimeGrid(1.0, 4)
        assert len(grid) == 5
        assert grid[0] == 0.0 and grid[-1] == 1.0
        assert grid.dt == pytest.approx(0.25)
        assert list(grid) == pytest.approx([0.0, 0.25, 0.5, 0.75, 1.0])

    def test_bad_inputs_raise(self):
        with pytest.raises(ValueError):
            TimeGrid(0.0, 4)
        with pytest.raises(ValueError):
            TimeGrid(1.0, 0)


class TestFixedLocalVolSurface:

    def test_node_values(self, small_surface):
        assert small_surface.local_vol(0.5, 2.0) == pytest.approx(0.2)
        assert small_surface.local_vol(1.0, 3.0) == pytest.approx(0.4)

    def test_linear_in_time(self, small_surface):
        assert small_surface.local_vol(0.75, 2.0) == pytest.approx(0.25)

    def test_linear_in_strike(self, small_surface):
        assert small_surface.local_vol(0.5, 1.5) == pytest.approx(0.15)

    def test_flat_beyond_strikes(self, small_surface):
        assert small_surface.local_vol(0.5, 0.5) == pytest.approx(0.1)
        assert small_surface.local_vol(0.5, 5.0) == pytest.approx(0.3)

    def test_flat_beyond_times(self, small_surface):
        assert small_surface.local_vol(0.2, 2.0) == pytest.approx(0.2)
        assert small_surface.local_vol(2.0, 2.0) == pytest.approx(0.3)

    def test_date_query(self, small_surface):
        # 365 days on Act/365F
        assert small_surface.local_vol(date(2020, 5, 1), 2.0) == pytest.approx(0.3)

    def test_negative_time_raises(self, small_surface):
        with pytest.raises(ValueError):
            small_surface.local_vol(-0.1, 2.0)

    def test_per_time_strikes(self):
        surface = FixedLocalVolSurface(
            REF, [0.5, 1.0], [[1.0, 2.0], [2.0, 4.0]], [[0.1, 0.3], [0.2, 0.4]],
        )
        assert surface.local_vol(1.0, 3.0) == pytest.approx(0.35)
        assert surface.min_strike() == 1.0 and surface.max_strike() == 4.0

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            FixedLocalVolSurface(REF, [0.5, 1.0], [1.0, 2.0, 3.0], [[0.1, 0.2], [0.2, 0.3]])
        with pytest.raises(ValueError):
            FixedLocalVolSurface(REF, [1.0, 0.5], [1.0, 2.0], [[0.1, 0.2], [0.2, 0.3]])
        with pytest.raises(ValueError):
            FixedLocalVolSurface(REF, [0.5, 1.0], [[1.0, 2.0]] * 3, [[0.1, 0.2], [0.2, 0.3]])


class TestLogStrikeMesher:

    def test_slice_is_centred_and_dense_at_forward(self):
        mesher = LogStrikeMesher(std_devs=4.0, density=0.1)
        strikes = mesher.strikes(1.0, 1.12, 0.1, 21)
        assert strikes[10] == pytest.approx(1.12)
        assert strikes[0] == pytest.approx(1.12 * np.exp(-0.4))
        assert strikes[-1] == pytest.approx(1.12 * np.exp(0.4))
        steps = np.diff(np.log(strikes))
        assert np.all(steps > 0)
        assert steps[10] < steps[0]

    def test_bad_inputs_raise(self):
        with pytest.raises(ValueError):
            LogStrikeMesher(std_devs=-1.0)
        with pytest.raises(ValueError):
            LogStrikeMesher(density=0.0)
        with pytest.raises(ValueError):
            LogStrikeMesher().strikes(1.0, 1.0, 0.1, 1)


class TestAdapter:

    def test_constant_vol_grid(self, flat_market):
        vol, dom, fgn, spot = flat_market
        adapter = FixedLocalVolSurfaceAdapter(LocalVolSurface(vol, dom, fgn, spot), 2.0, 0.5,
                                              t_grid=5, x_grid=11, max_time=1.0)
        assert adapter.matrix.shape == (11, 5)
        assert adapter.times[0] == pytest.approx(0.2)
        assert adapter.max_time() == pytest.approx(1.0)
        np.testing.assert_allclose(adapter.matrix, 0.15, rtol=1e-6)
        assert adapter.local_vol(0.55, 1.23) == pytest.approx(0.15, rel=1e-6)

    def test_nodes_round_trip(self, example_local_vol):
        adapter = FixedLocalVolSurfaceAdapter(example_local_vol, 1.4, 0.9, t_grid=4, x_grid=6)
        for i, t in enumerate(adapter.times):
            for j, k in enumerate(adapter.strikes[i]):
                assert adapter.local_vol(t, k) == adapter.matrix[j, i]

    def test_default_end_is_source_max_time(self, example_local_vol):
        adapter = FixedLocalVolSurfaceAdapter(example_local_vol, 1.4, 0.9, t_grid=2, x_grid=3)
        assert adapter.max_time() == pytest.approx(example_local_vol.max_time())
        assert adapter.reference_date == example_local_vol.reference_date

    def test_meshed_strikes_follow_forward(self, example_local_vol):
        adapter = FixedLocalVolSurfaceAdapter(example_local_vol, 1.4, 0.9, t_grid=3, x_grid=5,
                                              mesher=LogStrikeMesher())
        for i, t in enumerate(adapter.times):
            assert adapter.strikes[i][2] == pytest.approx(example_local_vol.forward_value(t))
        assert adapter.strikes[0][-1] < adapter.strikes[-1][-1]

    def test_bad_grid_raises(self, flat_market):
        vol, dom, fgn, spot = flat_market
        lv = LocalVolSurface(vol, dom, fgn, spot)
        with pytest.raises(ValueError):
            FixedLocalVolSurfaceAdapter(lv, 0.5, 1.0, max_time=1.0)
        with pytest.raises(ValueError):
            FixedLocalVolSurfaceAdapter(lv, 2.0, 0.5, x_grid=1, max_time=1.0)
