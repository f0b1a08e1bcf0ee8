"""
Tests for Black-76 pricing and the FX delta calculator.

Covers: put-call parity, implied std dev round trip, delta <-> strike
round trips for every delta convention, ATM strikes, and input checks.
"""

import pytest
import numpy as np
from scipy.stats import norm

from fxvolsurface.black_formula import (
    BlackDeltaCalculator,
    black_digital,
    black_formula,
    black_std_dev_derivative,
    implied_std_dev,
)
from fxvolsurface.quotes import AtmType, DeltaType


FORWARD = 1.13
STD_DEV = 0.06
SPOT = 1.1172
D_DISCOUNT = np.exp(-0.02 * 0.75)
F_DISCOUNT = np.exp(0.01 * 0.75)


class TestBlackFormula:
    """Black-76 prices in forward terms."""

    def test_put_call_parity(self):
        for k in [0.9, 1.1, 1.13, 1.2, 1.4]:
            c = black_formula("call", k, FORWARD, STD_DEV, 0.98)
            p = black_formula("put", k, FORWARD, STD_DEV, 0.98)
            assert abs((c - p) - 0.98 * (FORWARD - k)) < 1e-12

    def test_zero_std_dev_is_intrinsic(self):
        assert black_formula("call", 1.0, FORWARD, 0.0) == pytest.approx(FORWARD - 1.0)
        assert black_formula("put", 1.0, FORWARD, 0.0) == 0.0

    def test_negative_std_dev_raises(self):
        with pytest.raises(ValueError):
            black_formula("call", 1.0, FORWARD, -0.1)

    def test_invalid_option_type_raises(self):
        with pytest.raises(ValueError):
            black_formula("straddle", 1.0, FORWARD, STD_DEV)

    def test_std_dev_derivative_matches_finite_difference(self):
        h = 1e-6
        fd = (black_formula("call", 1.1, FORWARD, STD_DEV + h)
              - black_formula("call", 1.1, FORWARD, STD_DEV - h)) / (2 * h)
        assert black_std_dev_derivative(1.1, FORWARD, STD_DEV) == pytest.approx(fd, rel=1e-6)

    def test_digital_is_n_d2(self):
        d2 = np.log(FORWARD / 1.1) / STD_DEV - 0.5 * STD_DEV
        assert black_digital("call", 1.1, FORWARD, STD_DEV) == pytest.approx(norm.cdf(d2))
        assert (black_digital("call", 1.1, FORWARD, STD_DEV)
                + black_digital("put", 1.1, FORWARD, STD_DEV)) == pytest.approx(1.0)


class TestImpliedStdDev:
    """Inversion of Black-76."""

    @pytest.mark.parametrize("option_type", ["call", "put"])
    @pytest.mark.parametrize("strike", [1.0, 1.1, 1.13, 1.25])
    def test_round_trip(self, option_type, strike):
        price = black_formula(option_type, strike, FORWARD, STD_DEV)
        sd = implied_std_dev(option_type, strike, FORWARD, price)
        assert sd == pytest.approx(STD_DEV, abs=1e-9)

    def test_price_below_intrinsic_is_nan(self):
        assert np.isnan(implied_std_dev("call", 1.0, FORWARD, 0.5 * (FORWARD - 1.0)))

    def test_zero_price_is_nan(self):
        assert np.isnan(implied_std_dev("call", 1.5, FORWARD, 0.0))


class TestDeltaCalculator:
    """Strike/delta conversions under the FX conventions."""

    @pytest.mark.parametrize("delta_type", list(DeltaType))
    @pytest.mark.parametrize("option_type,delta", [
        ("put", -0.10), ("put", -0.25), ("call", 0.25), ("call", 0.10),
    ])
    def test_strike_delta_round_trip(self, delta_type, option_type, delta):
        calc = BlackDeltaCalculator(option_type, delta_type, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        strike = calc.strike_from_delta(delta)
        assert strike > 0
        assert calc.delta_from_strike(strike) == pytest.approx(delta, abs=1e-10)

    def test_forward_delta_closed_form(self):
        calc = BlackDeltaCalculator("call", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        k = 1.15
        d1 = np.log(calc.forward / k) / STD_DEV + 0.5 * STD_DEV
        assert calc.delta_from_strike(k) == pytest.approx(norm.cdf(d1))

    def test_spot_delta_carries_foreign_discount(self):
        fwd = BlackDeltaCalculator("call", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        spot = BlackDeltaCalculator("call", DeltaType.SPOT, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        assert spot.delta_from_strike(1.15) == pytest.approx(F_DISCOUNT * fwd.delta_from_strike(1.15))

    def test_put_strikes_below_call_strikes(self):
        put = BlackDeltaCalculator("put", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        call = BlackDeltaCalculator("call", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        assert put.strike_from_delta(-0.25) < put.forward < call.strike_from_delta(0.25)

    def test_delta_neutral_atm(self):
        """Call and put forward deltas cancel at the delta-neutral strike."""
        call = BlackDeltaCalculator("call", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        put = BlackDeltaCalculator("put", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        k = call.atm_strike(AtmType.DELTA_NEUTRAL)
        assert k == pytest.approx(call.forward * np.exp(0.5 * STD_DEV ** 2))
        assert call.delta_from_strike(k) + put.delta_from_strike(k) == pytest.approx(0.0, abs=1e-12)

    def test_premium_adjusted_delta_neutral_atm(self):
        calc = BlackDeltaCalculator("call", DeltaType.PA_FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        assert calc.atm_strike(AtmType.DELTA_NEUTRAL) == pytest.approx(
            calc.forward * np.exp(-0.5 * STD_DEV ** 2))

    def test_atm_spot_and_forward(self):
        calc = BlackDeltaCalculator("call", DeltaType.SPOT, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        assert calc.atm_strike(AtmType.SPOT) == SPOT
        assert calc.atm_strike(AtmType.FWD) == pytest.approx(SPOT * F_DISCOUNT / D_DISCOUNT)

    def test_put_call_50_needs_forward_delta(self):
        calc = BlackDeltaCalculator("call", DeltaType.SPOT, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        with pytest.raises(ValueError):
            calc.atm_strike(AtmType.PUT_CALL_50)

    def test_incoherent_delta_raises(self):
        calc = BlackDeltaCalculator("call", DeltaType.FWD, SPOT, D_DISCOUNT, F_DISCOUNT, STD_DEV)
        with pytest.raises(ValueError):
            calc.strike_from_delta(-0.25)

    @pytest.mark.parametrize("kwargs", [
        dict(d_discount=0.0), dict(f_discount=-1.0), dict(std_dev=-0.1), dict(spot=0.0),
    ])
    def test_invalid_inputs_raise(self, kwargs):
        args = dict(spot=SPOT, d_discount=D_DISCOUNT, f_discount=F_DISCOUNT, std_dev=STD_DEV)
        args.update(kwargs)
        with pytest.raises(ValueError):
            BlackDeltaCalculator("call", DeltaType.SPOT, **args)
