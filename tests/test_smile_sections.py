"""
Tests for smile sections: flat, SVI, ZABR and Kahale, and the
model dispatch table.
"""

import pytest
import numpy as np

from fxvolsurface.black_formula import black_digital, black_formula
from fxvolsurface.smile_sections import (
    SMILE_BUILDERS,
    FlatSmileSection,
    KahaleSmileSection,
    SmileModel,
    SviSmileSection,
    ZabrSmileSection,
    build_smile,
    check_svi_parameters,
    svi_total_variance,
    zabr_lognormal_vol,
)


SVI_TRUE = dict(a=0.002, b=0.02, sigma=0.1, rho=-0.3, m=0.01)
T = 0.5
F = 1.12


def _svi_quotes(params=SVI_TRUE, n=7):
    strikes = F * np.exp(np.linspace(-0.15, 0.15, n))
    k = np.log(strikes / F)
    vols = np.sqrt(svi_total_variance(k, **params) / T)
    return strikes, vols


class TestFlatSmile:

    def test_constant_vol(self):
        smile = FlatSmileSection(T, 0.1, F)
        assert smile.volatility(0.5) == smile.volatility(2.0) == 0.1
        assert smile.variance(1.0) == pytest.approx(0.01 * T)

    def test_option_price_is_black(self):
        smile = FlatSmileSection(T, 0.1, F)
        expected = black_formula("call", 1.1, F, 0.1 * np.sqrt(T), 0.97)
        assert smile.option_price(1.1, "call", 0.97) == pytest.approx(expected)

    def test_digital_matches_black_digital(self):
        smile = FlatSmileSection(T, 0.1, F)
        assert smile.digital_option_price(1.1) == pytest.approx(
            black_digital("call", 1.1, F, 0.1 * np.sqrt(T)), abs=1e-6)

    def test_option_price_needs_atm(self):
        with pytest.raises(ValueError):
            FlatSmileSection(T, 0.1).option_price(1.0)


class TestSvi:

    def test_total_variance_formula(self):
        k = 0.05
        p = SVI_TRUE
        expected = p["a"] + p["b"] * (p["rho"] * (k - p["m"]) + np.sqrt((k - p["m"]) ** 2 + p["sigma"] ** 2))
        assert svi_total_variance(k, **p) == pytest.approx(expected)

    def test_parameter_checks(self):
        check_svi_parameters(**SVI_TRUE, tte=T)
        with pytest.raises(ValueError):
            check_svi_parameters(**dict(SVI_TRUE, rho=1.0), tte=T)
        with pytest.raises(ValueError):
            check_svi_parameters(**dict(SVI_TRUE, b=-0.1), tte=T)
        with pytest.raises(ValueError):
            check_svi_parameters(**dict(SVI_TRUE, a=-1.0), tte=T)

    def test_from_params_skips_fit(self):
        smile = SviSmileSection.from_params(T, F, **SVI_TRUE)
        assert smile.params == pytest.approx(SVI_TRUE)
        k = np.log(1.05 / F)
        assert smile.volatility(1.05) == pytest.approx(np.sqrt(svi_total_variance(k, **SVI_TRUE) / T))

    def test_fit_reproduces_quotes(self):
        strikes, vols = _svi_quotes()
        smile = SviSmileSection(T, F, strikes, vols)
        assert smile.max_error is None          # lazy: nothing fitted yet
        assert np.max(np.abs(smile.volatilities(strikes) - vols)) < 1e-5
        assert smile.rms_error < 1e-5

    def test_strike_domain_is_quoted_range(self):
        strikes, vols = _svi_quotes()
        smile = SviSmileSection(T, F, strikes, vols)
        assert smile.min_strike() == pytest.approx(strikes[0])
        assert smile.max_strike() == pytest.approx(strikes[-1])

    def test_strike_domain_without_quotes_is_unbounded(self):
        smile = SviSmileSection.from_params(T, F, **SVI_TRUE)
        assert smile.min_strike() == 0.0
        assert smile.max_strike() == np.inf

    def test_fixed_parameter_is_held(self):
        strikes, vols = _svi_quotes()
        smile = SviSmileSection(T, F, strikes, vols, params={"m": 0.0}, fixed=("m",))
        assert smile.m == 0.0

    def test_invalidate_refits(self):
        strikes, vols = _svi_quotes()
        smile = SviSmileSection(T, F, strikes, vols)
        p1 = smile.params
        smile.invalidate()
        assert smile.rms_error is None
        assert smile.params == pytest.approx(p1)

    def test_unknown_fixed_parameter_raises(self):
        strikes, vols = _svi_quotes()
        with pytest.raises(ValueError):
            SviSmileSection(T, F, strikes, vols, fixed=("alpha",))

    def test_missing_quotes_and_params_raises(self):
        with pytest.raises(ValueError):
            SviSmileSection(T, F, params={"a": 0.01})

    def test_non_positive_expiry_raises(self):
        with pytest.raises(ValueError):
            SviSmileSection(0.0, F, *_svi_quotes())


class TestZabr:

    def test_atm_vol(self):
        vol = zabr_lognormal_vol(F, F, 0.06, 0.5, 0.4, -0.2, 1.0)
        assert vol == pytest.approx(0.06 * F ** -0.5)

    def test_zero_vol_of_vol_is_cev(self):
        k = 1.2
        vol = zabr_lognormal_vol(k, F, 0.06, 0.5, 0.0, 0.0, 1.0)
        u = (k ** 0.5 - F ** 0.5) / 0.5
        assert vol == pytest.approx(np.log(k / F) * 0.06 / u)

    def test_lognormal_sabr_matches_hagan(self):
        """beta = gamma = 1: the leading order of Hagan's expansion is exact."""
        alpha, nu, rho, fwd = 0.1, 0.5, -0.3, 1.0
        for k in [0.8, 0.95, 1.05, 1.2]:
            z = nu / alpha * np.log(fwd / k)
            x = np.log((np.sqrt(1 - 2 * rho * z + z * z) + z - rho) / (1 - rho))
            expected = alpha * z / x
            assert zabr_lognormal_vol(k, fwd, alpha, 1.0, nu, rho, 1.0) == pytest.approx(expected, rel=1e-6)

    def test_symmetric_without_correlation(self):
        up = zabr_lognormal_vol(F * np.exp(0.1), F, 0.1, 1.0, 0.5, 0.0, 1.0)
        down = zabr_lognormal_vol(F * np.exp(-0.1), F, 0.1, 1.0, 0.5, 0.0, 1.0)
        assert up == pytest.approx(down, rel=1e-8)

    def test_invalid_inputs_raise(self):
        with pytest.raises(ValueError):
            zabr_lognormal_vol(-1.0, F, 0.06, 0.5, 0.4, 0.0, 1.0)
        with pytest.raises(ValueError):
            zabr_lognormal_vol(1.1, F, 0.06, 0.5, 0.4, 1.0, 1.0)
        with pytest.raises(ValueError):
            zabr_lognormal_vol(1.1, F, 0.06, 0.5, 0.4, 0.0, 2.5)

    def test_fit_recovers_parameters(self):
        alpha = 0.065 * np.sqrt(F)
        strikes = F * np.exp(np.linspace(-0.08, 0.08, 5))
        vols = [zabr_lognormal_vol(k, F, alpha, 0.5, 0.4, -0.2, 1.0) for k in strikes]
        smile = ZabrSmileSection(T, F, alpha, 0.5, 1.0, strikes, vols)
        assert smile.nu == pytest.approx(0.4, abs=1e-4)
        assert smile.rho == pytest.approx(-0.2, abs=1e-4)
        assert smile.rms_error < 1e-6

    def test_strike_domain_is_quoted_range(self):
        strikes, vols = _svi_quotes(n=5)
        smile = ZabrSmileSection(T, F, vols[2] * np.sqrt(F), 0.5, 1.0, strikes, vols)
        assert smile.min_strike() == pytest.approx(strikes[0])
        assert smile.max_strike() == pytest.approx(strikes[-1])

    def test_given_parameters_skip_fit(self):
        smile = ZabrSmileSection(T, F, 0.07, nu=0.3, rho=0.1)
        assert smile.end_criteria is None
        assert smile.volatility(F) == pytest.approx(0.07 * F ** (smile.beta - 1.0))

    def test_missing_quotes_raises(self):
        with pytest.raises(ValueError):
            ZabrSmileSection(T, F, 0.07, nu=0.3)


class TestKahale:

    @pytest.fixture
    def source(self):
        return SviSmileSection.from_params(1.0, 1.0, a=0.01, b=0.05, sigma=0.2, rho=-0.3, m=0.0)

    def test_construction_keeps_forward(self, source):
        smile = KahaleSmileSection(source)
        assert smile.atm_level() == 1.0
        assert smile.f == 1.0

    def test_strike_domain_is_grid(self, source):
        smile = KahaleSmileSection(source, 1.0)
        assert smile.min_strike() == 0.0
        assert smile.max_strike() == pytest.approx(1.5)

    def test_region_keeps_source_vols(self, source):
        smile = KahaleSmileSection(source, 1.0)
        left, right = smile.k[smile.left_index], smile.k[smile.right_index]
        for k in np.linspace(left, right, 9)[1:-1]:
            assert smile.volatility(k) == pytest.approx(source.volatility(k))

    def test_call_prices_convex_and_decreasing(self, source):
        smile = KahaleSmileSection(source, 1.0)
        strikes = np.linspace(0.2, 2.5, 80)
        prices = np.array([smile.option_price(k) for k in strikes])
        assert np.all(np.diff(prices) <= 1e-12)
        assert np.all(np.diff(prices, 2) >= -1e-6)

    def test_put_call_parity(self, source):
        smile = KahaleSmileSection(source, 1.0)
        for k in [0.3, 1.0, 2.0]:
            c = smile.option_price(k, "call")
            p = smile.option_price(k, "put")
            assert c - p == pytest.approx(1.0 - k)

    def test_interpolated_section(self, source):
        smile = KahaleSmileSection(source, 1.0, interpolate=True)
        assert smile.volatility(1.0) == pytest.approx(source.volatility(1.0), abs=5e-4)
        assert smile.atm_level() == 1.0

    def test_exponential_extrapolation(self, source):
        smile = KahaleSmileSection(source, 1.0, exponential_extrapolation=True)
        far = [smile.option_price(k) for k in (3.0, 4.0, 5.0)]
        assert far[0] > far[1] > far[2] > 0.0

    def test_failed_inversion_logs_and_returns_zero(self, source, monkeypatch, caplog):
        """Wing vols that cannot be inverted come back as zero with a debug record."""
        smile = KahaleSmileSection(source, 1.0)
        monkeypatch.setattr("fxvolsurface.smile_sections.implied_std_dev",
                            lambda *args, **kwargs: float("nan"))
        with caplog.at_level("DEBUG", logger="fxvolsurface.smile_sections"):
            assert smile.volatility(3.0) == 0.0
        assert "inversion failed" in caplog.text

    def test_atm_too_close_to_grid_boundary_raises(self, source):
        with pytest.raises(ValueError):
            KahaleSmileSection(source, 1.0, moneyness_grid=[0.9, 1.0])


class TestDispatch:

    def test_every_model_has_a_builder(self):
        assert set(SMILE_BUILDERS) == set(SmileModel)

    def test_build_smile_by_name(self):
        strikes, vols = _svi_quotes(n=5)
        assert isinstance(build_smile("svi", T, F, strikes, vols), SviSmileSection)
        assert isinstance(build_smile(SmileModel.KAHALE, T, F, strikes, vols), KahaleSmileSection)

    def test_sabr_alpha_from_atm_column(self):
        strikes, vols = _svi_quotes(n=5)
        smile = build_smile("sabr", T, F, strikes, vols)
        assert isinstance(smile, ZabrSmileSection)
        assert smile.alpha == pytest.approx(vols[2] * np.sqrt(F))

    def test_unknown_model_raises(self):
        with pytest.raises(ValueError):
            build_smile("heston", T, F, [1.0], [0.1])
