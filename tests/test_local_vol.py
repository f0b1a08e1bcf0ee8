"""
Tests for Dupire local vol and its arbitrage sentinel.
"""

from datetime import date

import pytest
import numpy as np

from fxvolsurface import config
from fxvolsurface.black_vol import BlackConstantVol, BlackVarianceCurve, BlackVolTermStructure
from fxvolsurface.curves import FlatForward
from fxvolsurface.local_vol import LocalVolSurface, dupire_local_vol


REF = date(2019, 5, 2)
QUERY_DATE = date(2020, 2, 3)


class ConcaveSmile(BlackVolTermStructure):
    """w(t, K) = t * (0.04 - 5 ln(K)^2): strongly concave, butterfly arbitrage at the money."""

    def _black_variance_impl(self, t, strike):
        y = np.log(strike)
        return t * (0.04 - 5.0 * y * y)


def _zero_curves():
    return FlatForward(REF, 0.0), FlatForward(REF, 0.0)


class TestDupire:

    def test_constant_vol_is_recovered(self, flat_market):
        vol, dom, fgn, spot = flat_market
        lv = LocalVolSurface(vol, dom, fgn, spot)
        for t in [0.1, 0.5, 2.0]:
            for s in [0.7, 1.0, 1.4]:
                assert lv.local_vol(t, s) == pytest.approx(0.15, rel=1e-6)

    def test_constant_vol_at_time_zero(self, flat_market):
        vol, dom, fgn, spot = flat_market
        assert LocalVolSurface(vol, dom, fgn, spot).local_vol(0.0, 1.0) == pytest.approx(0.15, rel=1e-6)

    def test_constant_vol_with_rates(self):
        vol = BlackConstantVol(REF, 0.12)
        dom, fgn = FlatForward(REF, 0.03), FlatForward(REF, -0.01)
        assert dupire_local_vol(vol, dom, fgn, 1.1, 0.75, 1.2) == pytest.approx(0.12, rel=1e-6)

    def test_calendar_arbitrage_returns_sentinel(self):
        dom, fgn = _zero_curves()
        curve = BlackVarianceCurve(REF, [0.5, 1.0], [0.3, 0.1], force_monotone_variance=False)
        lv = LocalVolSurface(curve, dom, fgn, 1.0)
        value = lv.local_vol(0.75, 1.0)
        assert value == config.ILLEGAL_LOCAL_VOL
        assert lv.is_illegal(value)

    def test_custom_sentinel(self):
        dom, fgn = _zero_curves()
        curve = BlackVarianceCurve(REF, [0.5, 1.0], [0.3, 0.1], force_monotone_variance=False)
        lv = LocalVolSurface(curve, dom, fgn, 1.0, illegal_local_vol=-1.0)
        assert lv.local_vol(0.75, 1.0) == -1.0

    def test_butterfly_arbitrage_returns_sentinel(self):
        dom, fgn = _zero_curves()
        value = dupire_local_vol(ConcaveSmile(REF), dom, fgn, 1.0, 1.0, 1.0)
        assert value == config.ILLEGAL_LOCAL_VOL


class TestLocalVolSurface:

    def test_example_query(self, market, svi_surface):
        lv = LocalVolSurface(svi_surface, market["domestic_curve"], market["foreign_curve"],
                             market["spot"])
        value = lv.local_vol(QUERY_DATE, 1.1)
        assert not lv.is_illegal(value)
        assert 0.01 < value < 0.2

    def test_delegates_to_black_surface(self, market, svi_surface):
        lv = LocalVolSurface(svi_surface, market["domestic_curve"], market["foreign_curve"],
                             market["spot"])
        assert lv.reference_date == svi_surface.reference_date
        assert lv.max_time() == svi_surface.max_time()
        assert lv.forward_value(0.5) == pytest.approx(svi_surface.forward_value(0.5))

    def test_range_checks(self, flat_market):
        vol, dom, fgn, spot = flat_market
        lv = LocalVolSurface(vol, dom, fgn, spot)
        with pytest.raises(ValueError):
            lv.local_vol(-0.1, 1.0)

    def test_past_max_time_needs_extrapolation(self, market, svi_surface):
        lv = LocalVolSurface(svi_surface, market["domestic_curve"], market["foreign_curve"],
                             market["spot"])
        t = svi_surface.max_time() + 0.25
        with pytest.raises(ValueError):
            lv.local_vol(t, 1.1)
        assert np.isfinite(lv.local_vol(t, 1.1, extrapolate=True))
