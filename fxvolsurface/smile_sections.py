"""
Smile sections: volatility as a function of strike at one expiry.

Every section answers the same questions: its expiry, its strike
domain, its ATM level (the forward) and ``volatility(strike)``. Prices,
variances and digitals follow from those through Black-76.

Variants:
    FlatSmileSection    : one vol at every strike
    SviSmileSection     : raw SVI total variance fitted by least squares
    ZabrSmileSection    : short-maturity ZABR (SABR when gamma = 1), lognormal vol
    KahaleSmileSection  : arbitrage-free call price wings / interpolation
                          laid over a base section in moneyness space

The FX surface never instantiates these directly. It looks its model up
in SMILE_BUILDERS, a dispatch table keyed by SmileModel, and calls the
builder with (expiry, forward, strikes, vols) plus model options.

SVI (Gatheral, 2004) models total implied variance in log-moneyness
k = ln(K/F):

    w(k) = a + b * (rho * (k - m) + sqrt((k - m)^2 + sigma^2))

ZABR (Andreasen & Huge, 2011) generalizes SABR's vol-of-vol term:

    dF = z F^beta dW,   dz = nu z^gamma dZ,   dW dZ = rho dt

At short maturities the implied vol is |ln(F/K)| / d(K), with d the
geodesic distance from (F, alpha) to the line {F = K} in the metric of
the diffusion. For gamma = 1 this is Hagan's SABR expansion at leading
order.

Kahale (2004) replaces the smile, in call price space, by pieces of the
form c(k) = f N(d1) - k N(d2) + a k + b. They are convex and decreasing
by construction, so the resulting smile is free of butterfly arbitrage
wherever it is used.

References:
    Gatheral, J. (2004). A parsimonious arbitrage-free implied volatility parameterization.
    Hagan, P. et al. (2002). Managing smile risk. Wilmott Magazine.
    Andreasen, J. & Huge, B. (2011). ZABR - Expansions for the masses.
    Kahale, N. (2004). An arbitrage-free interpolation of volatilities. Risk.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence

import numpy as np
from scipy.integrate import quad
from scipy.optimize import brentq, least_squares
from scipy.stats import norm

from . import config
from .black_formula import (
    black_formula,
    black_std_dev_derivative,
    implied_std_dev,
)

logger = logging.getLogger(__name__)

EPSILON = np.finfo(float).eps


# ════════════════════════════════════════════════════════════════════════
#  BASE SECTION
# ════════════════════════════════════════════════════════════════════════

class SmileSection:
    """
    Volatility smile at a single expiry.

    Subclasses implement ``volatility``; everything else is derived.
    """

    def __init__(self, exercise_time: float, atm_level: Optional[float] = None):
        if exercise_time < 0.0:
            raise ValueError(f"expiry time must be non-negative: {exercise_time} not allowed")
        self.exercise_time = float(exercise_time)
        self._atm_level = atm_level

    def min_strike(self) -> float:
        return 0.0

    def max_strike(self) -> float:
        return np.inf

    def atm_level(self) -> Optional[float]:
        return self._atm_level

    def volatility(self, strike: float) -> float:
        raise NotImplementedError

    def volatilities(self, strikes: Iterable[float]) -> np.ndarray:
        return np.array([self.volatility(k) for k in strikes])

    def variance(self, strike: float) -> float:
        vol = self.volatility(strike)
        return vol * vol * self.exercise_time

    def option_price(self, strike: float, option_type: str = "call",
                     discount: float = 1.0) -> float:
        """Black price on the section's forward, undiscounted by default."""
        atm = self.atm_level()
        if atm is None:
            raise ValueError("option price requires an atm level")
        std_dev = np.sqrt(max(self.variance(strike), 0.0)) if strike > 0.0 else 0.0
        return black_formula(option_type, strike, atm, std_dev, discount)

    def digital_option_price(self, strike: float, option_type: str = "call",
                             discount: float = 1.0, gap: float = 1e-5) -> float:
        """
        Digital price from a call spread of width ``gap`` centered on the strike.

        Captures the smile's slope term, unlike a Black digital at the
        strike's own vol.
        """
        kl = max(strike - gap / 2.0, 0.0)
        kr = kl + gap
        call_digital = (self.option_price(kl, "call", discount)
                        - self.option_price(kr, "call", discount)) / gap
        if option_type.lower() in ("c", "call"):
            return call_digital
        return discount - call_digital

    def density(self, strike: float, discount: float = 1.0, gap: float = 1e-4) -> float:
        """Risk-neutral density, second strike derivative of the call price."""
        kl = max(strike - gap / 2.0, 0.0)
        kr = kl + gap
        return (self.digital_option_price(kl, "call", discount, gap)
                - self.digital_option_price(kr, "call", discount, gap)) / gap


class FlatSmileSection(SmileSection):
    """Same vol at every strike."""

    def __init__(self, exercise_time: float, vol: float, atm_level: Optional[float] = None):
        super().__init__(exercise_time, atm_level)
        self.vol = float(vol)

    def volatility(self, strike: float) -> float:
        return self.vol


# ════════════════════════════════════════════════════════════════════════
#  SVI
# ════════════════════════════════════════════════════════════════════════

SVI_PARAMS = ("a", "b", "sigma", "rho", "m")


def svi_total_variance(k, a: float, b: float, sigma: float, rho: float, m: float):
    """
    Raw SVI total implied variance w(k).

    Parameters
    ----------
    k : log-moneyness, scalar or array, k = ln(K/F)
    a, b, sigma, rho, m : SVI parameters

    Returns
    -------
    total implied variance w(k) = sigma_BS^2 * T
    """
    return a + b * (rho * (k - m) + np.sqrt((k - m) ** 2 + sigma ** 2))


def check_svi_parameters(a: float, b: float, sigma: float, rho: float, m: float,
                         tte: float) -> None:
    """
    Raise ValueError for parameters that do not define a valid smile.

    b >= 0, |rho| < 1, sigma > 0, a + b sigma sqrt(1 - rho^2) >= 0 (non-negative
    minimum variance) and b (1 + |rho|) <= 4 / T (Roger Lee wing bound).
    """
    if b < 0.0:
        raise ValueError(f"b ({b}) must be non-negative")
    if abs(rho) >= 1.0:
        raise ValueError(f"rho ({rho}) must be in (-1, 1)")
    if sigma <= 0.0:
        raise ValueError(f"sigma ({sigma}) must be positive")
    if a + b * sigma * np.sqrt(1.0 - rho * rho) < 0.0:
        raise ValueError(f"a + b sigma sqrt(1 - rho^2) must be non-negative, a={a}, b={b}")
    if b * (1.0 + abs(rho)) > 4.0 / tte:
        raise ValueError(f"b (1 + |rho|) must be <= 4 / T, b={b}, rho={rho}, T={tte}")


def _svi_initial_guess(k: np.ndarray, w: np.ndarray) -> Dict[str, float]:
    """
    Starting point from the data: wing slopes give b and rho.

    The asymptotic slopes of w are b (1 + rho) on the right and
    b (rho - 1) on the left; the quoted wings are a rough proxy.
    """
    w_atm = float(np.interp(0.0, k, w))
    sigma = 0.1
    if k[0] < 0.0 < k[-1]:
        s_left = (w[0] - w_atm) / k[0]
        s_right = (w[-1] - w_atm) / k[-1]
        b = max((s_right - s_left) / 2.0, 1e-4)
        rho = float(np.clip((s_right + s_left) / (2.0 * b), -0.9, 0.9))
    else:
        b, rho = 0.1, 0.0
    a = w_atm - b * sigma * np.sqrt(1.0 - rho * rho)
    return {"a": a, "b": b, "sigma": sigma, "rho": rho, "m": 0.0}


class SviSmileSection(SmileSection):
    """
    SVI smile fitted to (strike, vol) quotes at one expiry.

    Parameters
    ----------
    exercise_time : expiry in years
    forward : forward at expiry, the ATM level
    strikes, vols : quotes to fit; may be omitted if every parameter is
                    supplied and fixed (see ``from_params``)
    params : optional starting values, dict over a, b, sigma, rho, m
    fixed : names of parameters held at their starting value
    vega_weighted : weight vol errors by normalized Black vega

    The fit is lazy: it runs on first access to a parameter, a vol or an
    error statistic, and again after ``invalidate()``. Fitting uses
    scipy's trust region reflective least squares on vol errors, with
    box bounds b > 0, sigma > 0 and |rho| < 1.
    """

    def __init__(
        self,
        exercise_time: float,
        forward: float,
        strikes: Optional[Sequence[float]] = None,
        vols: Optional[Sequence[float]] = None,
        params: Optional[Dict[str, float]] = None,
        fixed: Iterable[str] = (),
        vega_weighted: bool = None,
    ):
        super().__init__(exercise_time, forward)
        if exercise_time <= 0.0:
            raise ValueError(f"SVI needs a positive expiry time, got {exercise_time}")
        self.forward = float(forward)
        self.strikes = None if strikes is None else np.asarray(strikes, dtype=float)
        self.market_vols = None if vols is None else np.asarray(vols, dtype=float)
        self.vega_weighted = config.SVI_VEGA_WEIGHTED if vega_weighted is None else vega_weighted
        self.fixed = frozenset(fixed)
        unknown = self.fixed.difference(SVI_PARAMS)
        if unknown:
            raise ValueError(f"unknown SVI parameters: {sorted(unknown)}")
        self._guess = dict(params or {})

        if self.strikes is None:
            if set(self._guess) != set(SVI_PARAMS):
                raise ValueError("without quotes all five SVI parameters must be given")
        else:
            if len(self.strikes) != len(self.market_vols):
                raise ValueError("strikes and vols must have the same length")
            if len(self.strikes) < 1:
                raise ValueError("at least one quote required")
            if np.any(self.strikes <= 0.0):
                raise ValueError("strikes must be positive")

        self.invalidate()

    @classmethod
    def from_params(cls, exercise_time: float, forward: float, a: float, b: float,
                    sigma: float, rho: float, m: float) -> "SviSmileSection":
        """Section from known parameters, no fitting."""
        check_svi_parameters(a, b, sigma, rho, m, exercise_time)
        params = dict(a=a, b=b, sigma=sigma, rho=rho, m=m)
        return cls(exercise_time, forward, params=params, fixed=SVI_PARAMS)

    # ── lazy fit ──────────────────────────────────────────────────────

    def invalidate(self) -> None:
        """Drop the fitted parameters; the next access refits."""
        self._params = None
        self.rms_error = None
        self.max_error = None
        self.end_criteria = None

    def _ensure_fitted(self) -> None:
        if self._params is None:
            self._fit()

    def _fit(self) -> None:
        if self.strikes is None or self.fixed == frozenset(SVI_PARAMS):
            self._params = {name: float(self._guess[name]) for name in SVI_PARAMS}
            self.rms_error, self.max_error = 0.0, 0.0
            self.end_criteria = "fixed parameters"
            if self.strikes is not None:
                self._record_errors()
            return

        t = self.exercise_time
        k = np.log(self.strikes / self.forward)
        guess = _svi_initial_guess(k, self.market_vols ** 2 * t)
        guess.update(self._guess)

        bounds = {
            "a": (-np.inf, np.inf),
            "b": (config.SVI_MIN_B, np.inf),
            "sigma": (config.SVI_MIN_SIGMA, np.inf),
            "rho": (-config.SVI_RHO_BOUND, config.SVI_RHO_BOUND),
            "m": (-np.inf, np.inf),
        }
        free = [p for p in SVI_PARAMS if p not in self.fixed]
        lower = np.array([bounds[p][0] for p in free])
        upper = np.array([bounds[p][1] for p in free])
        x0 = np.array([guess[p] for p in free], dtype=float)
        # least_squares needs a strictly feasible start
        span = np.where(np.isfinite(upper - lower), upper - lower, 1.0)
        x0 = np.clip(x0, lower + 1e-6 * span, upper - 1e-6 * span)

        if self.vega_weighted:
            vegas = np.array([
                black_std_dev_derivative(kk, self.forward, v * np.sqrt(t)) * np.sqrt(t)
                for kk, v in zip(self.strikes, self.market_vols)
            ])
            weights = np.sqrt(vegas / vegas.sum()) if vegas.sum() > 0 else np.ones_like(vegas)
        else:
            weights = np.ones_like(self.market_vols)

        def residuals(x):
            p = dict(guess)
            p.update(zip(free, x))
            w = svi_total_variance(k, p["a"], p["b"], p["sigma"], p["rho"], p["m"])
            model = np.sqrt(np.maximum(w, 0.0) / t)
            return weights * (model - self.market_vols)

        result = least_squares(
            residuals, x0, bounds=(lower, upper), method="trf", x_scale="jac",
            ftol=config.SVI_FTOL, xtol=config.SVI_XTOL, gtol=config.SVI_GTOL,
            max_nfev=config.SVI_MAX_NFEV,
        )

        params = dict(guess)
        params.update(zip(free, result.x))
        self._params = {name: float(params[name]) for name in SVI_PARAMS}
        self.end_criteria = result.message
        self._record_errors()

        if not result.success or self.rms_error > config.SVI_FIT_TOLERANCE:
            logger.warning(
                "SVI fit at t=%.6f: rms error %.2e, max error %.2e (%s)",
                t, self.rms_error, self.max_error, result.message,
            )

    def _record_errors(self) -> None:
        errors = self.volatilities(self.strikes) - self.market_vols
        self.rms_error = float(np.sqrt(np.mean(errors ** 2)))
        self.max_error = float(np.max(np.abs(errors)))

    # ── parameters ────────────────────────────────────────────────────

    @property
    def params(self) -> Dict[str, float]:
        self._ensure_fitted()
        return dict(self._params)

    @property
    def a(self) -> float:
        return self.params["a"]

    @property
    def b(self) -> float:
        return self.params["b"]

    @property
    def sigma(self) -> float:
        return self.params["sigma"]

    @property
    def rho(self) -> float:
        return self.params["rho"]

    @property
    def m(self) -> float:
        return self.params["m"]

    # ── smile ─────────────────────────────────────────────────────────

    def total_variance(self, strike: float) -> float:
        self._ensure_fitted()
        p = self._params
        k = np.log(strike / self.forward)
        return float(svi_total_variance(k, p["a"], p["b"], p["sigma"], p["rho"], p["m"]))

    def variance(self, strike: float) -> float:
        return max(self.total_variance(strike), 0.0)

    def min_strike(self) -> float:
        return float(self.strikes.min()) if self.strikes is not None else 0.0

    def max_strike(self) -> float:
        return float(self.strikes.max()) if self.strikes is not None else np.inf

    def volatility(self, strike: float) -> float:
        strike = max(strike, 1e-6)
        return float(np.sqrt(self.variance(strike) / self.exercise_time))


# ════════════════════════════════════════════════════════════════════════
#  ZABR
# ════════════════════════════════════════════════════════════════════════

def _zabr_geodesic(theta0: float, theta1: float, sgn: float, alpha: float,
                   nu: float, rho: float, gamma: float):
    """
    Endpoint displacement U and length d of the geodesic leaving (F, alpha).

    The geodesic is parametrized by an angle running from theta0 to
    theta1, with z = z_t sin(theta) and z_t = alpha / sin(theta0).
    """
    z_t = alpha / np.sin(theta0)
    sr = np.sqrt(1.0 - rho * rho)
    u_int = quad(lambda th: np.sin(th) ** (1.0 - gamma) * (sgn * sr * np.sin(th) + rho * np.cos(th)),
                 theta0, theta1, limit=200)[0]
    d_int = quad(lambda th: np.sin(th) ** (-gamma), theta0, theta1, limit=200)[0]
    return z_t ** (2.0 - gamma) / nu * u_int, z_t ** (1.0 - gamma) / nu * d_int


def zabr_lognormal_vol(strike: float, forward: float, alpha: float, beta: float,
                       nu: float, rho: float, gamma: float) -> float:
    """
    Short-maturity ZABR Black vol.

    Parameters
    ----------
    strike, forward : positive levels
    alpha : initial vol level z(0)
    beta : CEV exponent of the forward, in [0, 1]
    nu : vol of vol, >= 0
    rho : correlation, |rho| < 1
    gamma : vol-of-vol exponent, in [0, 2]; gamma = 1 is SABR

    Returns
    -------
    float : lognormal implied vol, sigma_BS = |ln(F/K)| / d(K)
    """
    if strike <= 0.0 or forward <= 0.0:
        raise ValueError(f"strike ({strike}) and forward ({forward}) must be positive")
    if abs(rho) >= 1.0:
        raise ValueError(f"rho ({rho}) must be in (-1, 1)")
    if not 0.0 <= gamma <= 2.0:
        raise ValueError(f"gamma ({gamma}) must be in [0, 2]")

    log_moneyness = np.log(strike / forward)
    if abs(log_moneyness) < 1e-7:
        return alpha * forward ** (beta - 1.0)

    if abs(1.0 - beta) < 1e-12:
        u_target = log_moneyness
    else:
        u_target = (strike ** (1.0 - beta) - forward ** (1.0 - beta)) / (1.0 - beta)

    if nu < 1e-8:
        # no vol of vol: the geodesic is the straight line of the CEV model
        return abs(log_moneyness) * alpha / abs(u_target)

    sgn = 1.0 if u_target > 0.0 else -1.0
    theta1 = np.arccos(rho * sgn)

    def objective(theta0):
        return sgn * _zabr_geodesic(theta0, theta1, sgn, alpha, nu, rho, gamma)[0] - abs(u_target)

    lo = 0.5 * theta1
    for _ in range(config.SABR_THETA_BRACKET_STEPS):
        if objective(lo) > 0.0:
            break
        lo *= 0.5
    else:
        raise ValueError(f"cannot bracket the ZABR geodesic for strike {strike}")

    theta0 = brentq(objective, lo, theta1, xtol=1e-14, rtol=1e-12)
    d = _zabr_geodesic(theta0, theta1, sgn, alpha, nu, rho, gamma)[1]
    return abs(log_moneyness) / d


class ZabrSmileSection(SmileSection):
    """
    ZABR smile with alpha and beta given, nu and rho fitted or given.

    If both ``nu`` and ``rho`` are supplied no fit takes place. Otherwise
    the missing ones are fitted to the quotes by least squares on vol
    errors, starting from config.SABR_NU_GUESS / SABR_RHO_GUESS.
    """

    def __init__(
        self,
        exercise_time: float,
        forward: float,
        alpha: float,
        beta: float = None,
        gamma: float = None,
        strikes: Optional[Sequence[float]] = None,
        vols: Optional[Sequence[float]] = None,
        nu: Optional[float] = None,
        rho: Optional[float] = None,
    ):
        super().__init__(exercise_time, forward)
        self.forward = float(forward)
        self.alpha = float(alpha)
        self.beta = config.SABR_BETA if beta is None else float(beta)
        self.gamma = config.SABR_GAMMA if gamma is None else float(gamma)
        if alpha <= 0.0:
            raise ValueError(f"alpha ({alpha}) must be positive")
        if not 0.0 <= self.beta <= 1.0:
            raise ValueError(f"beta ({self.beta}) must be in [0, 1]")
        if not 0.0 <= self.gamma <= 2.0:
            raise ValueError(f"gamma ({self.gamma}) must be in [0, 2]")

        self.strikes = None if strikes is None else np.asarray(strikes, dtype=float)
        self.market_vols = None if vols is None else np.asarray(vols, dtype=float)
        self.rms_error = None
        self.max_error = None
        self.end_criteria = None

        if nu is not None and rho is not None:
            self.nu, self.rho = float(nu), float(rho)
        else:
            if self.strikes is None:
                raise ValueError("quotes are required to fit nu and rho")
            self.nu, self.rho = self._fit(nu, rho)
        if self.strikes is not None:
            errors = self.volatilities(self.strikes) - self.market_vols
            self.rms_error = float(np.sqrt(np.mean(errors ** 2)))
            self.max_error = float(np.max(np.abs(errors)))

    def _fit(self, nu: Optional[float], rho: Optional[float]):
        free = []
        x0, lower, upper = [], [], []
        if nu is None:
            free.append("nu")
            x0.append(config.SABR_NU_GUESS)
            lower.append(1e-6)
            upper.append(10.0)
        if rho is None:
            free.append("rho")
            x0.append(config.SABR_RHO_GUESS)
            lower.append(-config.SVI_RHO_BOUND)
            upper.append(config.SVI_RHO_BOUND)

        def unpack(x):
            values = dict(nu=nu, rho=rho)
            values.update(zip(free, x))
            return values["nu"], values["rho"]

        def residuals(x):
            n, r = unpack(x)
            model = [zabr_lognormal_vol(k, self.forward, self.alpha, self.beta, n, r, self.gamma)
                     for k in self.strikes]
            return np.asarray(model) - self.market_vols

        result = least_squares(residuals, np.array(x0), bounds=(lower, upper), method="trf",
                               x_scale="jac", max_nfev=config.SABR_MAX_NFEV)
        self.end_criteria = result.message
        if not result.success:
            logger.warning("ZABR fit at t=%.6f did not converge: %s",
                           self.exercise_time, result.message)
        return unpack(result.x)

    def min_strike(self) -> float:
        return float(self.strikes.min()) if self.strikes is not None else 0.0

    def max_strike(self) -> float:
        return float(self.strikes.max()) if self.strikes is not None else np.inf

    def volatility(self, strike: float) -> float:
        strike = max(strike, 1e-6)
        return zabr_lognormal_vol(strike, self.forward, self.alpha, self.beta,
                                  self.nu, self.rho, self.gamma)


# ════════════════════════════════════════════════════════════════════════
#  KAHALE
# ════════════════════════════════════════════════════════════════════════

class _CFunction:
    """
    Call price piece used by the Kahale section.

    Either c(k) = f N(d1) - k N(d2) + a k + b with d1 = ln(f/k)/s + s/2,
    or, for exponential extrapolation, c(k) = exp(-a k + b).
    """

    def __init__(self, f: float = None, s: float = None, a: float = 0.0, b: float = 0.0,
                 exponential: bool = False):
        self.f, self.s, self.a, self.b = f, s, a, b
        self.exponential = exponential

    def __call__(self, k: float) -> float:
        if self.exponential:
            return float(np.exp(-self.a * k + self.b))
        if self.s < EPSILON:
            return max(self.f - k, 0.0) + self.a * k + self.b
        d1 = np.log(self.f / k) / self.s + self.s / 2.0
        d2 = d1 - self.s
        return float(self.f * norm.cdf(d1) - k * norm.cdf(d2) + self.a * k + self.b)


class ArbitrageFreeRegion:
    """
    Call prices of a section on a moneyness grid and its largest
    butterfly-arbitrage-free index range around the ATM point.

    The grid always starts at moneyness 0, where the call is worth the
    forward. The region grows outwards from the first point above ATM
    while secant slopes stay in [-1, 0] and increase (convexity). With
    ``delete_arbitrage_points`` an offending neighbor is dropped from
    the grid and growth resumes.
    """

    def __init__(self, section: SmileSection, moneyness: Sequence[float], atm: float = None,
                 delete_arbitrage_points: bool = False):
        m = sorted(float(x) for x in moneyness)
        if not m or m[0] < 0.0:
            raise ValueError("moneyness grid must be non-empty and non-negative")
        if m[0] > 0.0:
            m.insert(0, 0.0)
        self.f = atm if atm is not None else section.atm_level()
        if self.f is None:
            raise ValueError("atm level required")
        self.m = m
        self.k = [x * self.f for x in m]
        self.c = [self.f] + [section.option_price(kk, "call", 1.0) for kk in self.k[1:]]

        central = int(np.searchsorted(self.m, 1.0 - config.KAHALE_MONEYNESS_EPS, side="right"))
        if not 1 < central < len(self.m) - 1:
            raise ValueError(f"atm point in moneyness grid ({central}) too close to boundary")

        self.left, self.right = central, central
        while True:
            self._grow()
            if not delete_arbitrage_points:
                break
            if self.right < len(self.k) - 1:
                self._delete(self.right + 1)
            elif self.left > 1:
                self._delete(self.left - 1)
                self.left -= 1
                self.right -= 1
            else:
                break

        if self.right <= self.left:
            raise ValueError("arbitrage free region must at least contain two points")

    def af(self, i0: int, i: int, i1: int) -> bool:
        """Slope conditions at point i within the region [i0, i1]."""
        if i == 0:
            return True
        im = i - 1 if i - 1 >= i0 else 0
        q1 = (self.c[i] - self.c[im]) / (self.k[i] - self.k[im])
        if q1 < -1.0 or q1 > 0.0:
            return False
        if i >= i1:
            return True
        q2 = (self.c[i + 1] - self.c[i]) / (self.k[i + 1] - self.k[i])
        return q1 <= q2 <= 0.0

    def _grow(self) -> None:
        n = len(self.k)
        while self.right < n - 1 and self.af(self.left, self.right, self.right + 1) \
                and self.af(self.left, self.right + 1, self.right + 1):
            self.right += 1
        while self.left > 1 and self.af(self.left - 1, self.left - 1, self.right) \
                and self.af(self.left - 1, self.left, self.right):
            self.left -= 1

    def _delete(self, i: int) -> None:
        logger.debug("dropping arbitrage point at strike %.6f", self.k[i])
        del self.k[i], self.c[i], self.m[i]


class KahaleSmileSection(SmileSection):
    """
    Arbitrage-free smile laid over a source section.

    Inside the arbitrage-free region the source vol is returned as is,
    unless ``interpolate`` is set, in which case every segment between
    grid points is replaced by a Kahale call function matching prices
    and averaged secant slopes at both ends. Left of the region a
    Kahale function pinned to c(0) = f takes over; right of it either a
    Black call with its own forward and std dev or, with
    ``exponential_extrapolation``, c(k) = exp(-a k + b).

    Wing fits that fail shrink the region one point at a time; running
    out of points raises ValueError.
    """

    def __init__(
        self,
        source: SmileSection,
        atm: float = None,
        interpolate: bool = None,
        exponential_extrapolation: bool = None,
        delete_arbitrage_points: bool = None,
        moneyness_grid: Sequence[float] = None,
        gap: float = None,
    ):
        self.f = atm if atm is not None else source.atm_level()
        super().__init__(source.exercise_time, self.f)
        self.source = source
        self.interpolate = config.KAHALE_INTERPOLATE if interpolate is None else interpolate
        self.exponential_extrapolation = (config.KAHALE_EXPONENTIAL_EXTRAPOLATION
                                          if exponential_extrapolation is None
                                          else exponential_extrapolation)
        self.delete_arbitrage_points = (config.KAHALE_DELETE_ARBITRAGE_POINTS
                                        if delete_arbitrage_points is None
                                        else delete_arbitrage_points)
        self.gap = config.KAHALE_GAP if gap is None else gap
        if moneyness_grid is None:
            moneyness_grid = np.linspace(0.5, 1.5, 21)

        region = ArbitrageFreeRegion(source, moneyness_grid, self.f,
                                     self.delete_arbitrage_points)
        self.k = region.k
        self.c = region.c
        self.m = region.m
        self.left_index = region.left
        self.right_index = region.right
        self._compute()

    # ── construction ──────────────────────────────────────────────────

    def _compute(self) -> None:
        self.c_functions = [None] * (self.right_index - self.left_index + 2)
        acc, smax = config.KAHALE_ACCURACY, config.KAHALE_SMAX

        # left wing
        cp_left = None
        while self.left_index < self.right_index:
            li = self.left_index
            k1, c1, c0 = self.k[li], self.c[li], self.c[0]
            secl = (self.c[li] - self.c[0]) / (self.k[li] - self.k[0])
            sec = (self.c[li + 1] - self.c[li]) / (self.k[li + 1] - self.k[li])
            if self.interpolate:
                c1p = (secl + sec) / 2.0
            else:
                c1p = -self.source.digital_option_price(k1 + self.gap / 2.0, "call", 1.0, self.gap)
            try:
                if not secl < c1p <= 0.0:
                    raise ValueError("left wing slope outside the admissible range")
                self.c_functions = [None] * (self.right_index - li + 2)
                self.c_functions[0] = self._left_wing(k1, c0, c1, c1p, acc, smax)
                cp_left = c1p
                break
            except ValueError:
                logger.debug("kahale left wing failed at index %d, moving right", li)
                self.left_index += 1
        if self.left_index >= self.right_index:
            raise ValueError(
                f"can not extrapolate to left, right index of af region reached ({self.right_index})"
            )

        # right wing
        while self.right_index > self.left_index:
            ri = self.right_index
            k0, c0 = self.k[ri], self.c[ri]
            if self.interpolate:
                cp0 = 0.5 * (self.c[ri] - self.c[ri - 1]) / (self.k[ri] - self.k[ri - 1])
            else:
                cp0 = -self.source.digital_option_price(k0 - self.gap / 2.0, "call", 1.0, self.gap)
            try:
                wing = self._right_wing(k0, c0, cp0, acc, smax)
                self.c_functions = self.c_functions[:ri - self.left_index + 1] + [wing]
                break
            except ValueError:
                logger.debug("kahale right wing failed at index %d, moving left", ri)
                self.right_index -= 1
        if self.right_index <= self.left_index:
            raise ValueError(
                f"can not extrapolate to right, left index of af region reached ({self.left_index})"
            )

        # interpolation between grid points
        if self.interpolate:
            for i in range(self.left_index, self.right_index):
                k0, k1 = self.k[i], self.k[i + 1]
                c0, c1 = self.c[i], self.c[i + 1]
                sec = (c1 - c0) / (k1 - k0)
                if i == self.left_index:
                    c0p = cp_left
                else:
                    c0p = 0.5 * (sec + (c0 - self.c[i - 1]) / (k0 - self.k[i - 1]))
                if i == self.right_index - 1:
                    c1p = 0.5 * sec
                else:
                    c1p = 0.5 * (sec + (self.c[i + 2] - c1) / (self.k[i + 2] - k1))
                self.c_functions[i - self.left_index + 1] = self._segment(
                    k0, k1, c0, c1, c0p, c1p, acc)

    @staticmethod
    def _left_wing(k1, c0, c1, c1p, acc, smax) -> _CFunction:
        d21 = norm.ppf(-c1p)

        def piece(s):
            f = k1 * np.exp(s * d21 + s * s / 2.0)
            return _CFunction(f, s, 0.0, c0 - f)

        s = brentq(lambda s: piece(s)(k1) - c1, 0.0, smax, xtol=acc)
        return piece(s)

    def _right_wing(self, k0, c0, cp0, acc, smax) -> _CFunction:
        if self.exponential_extrapolation:
            if not -cp0 / c0 > 0.0:
                raise ValueError("exponential wing needs a decreasing call price")
            return _CFunction(a=-cp0 / c0, b=np.log(c0) - cp0 / c0 * k0, exponential=True)

        if not -1.0 < cp0 < 0.0:
            raise ValueError(f"right wing slope {cp0} outside (-1, 0)")
        d20 = norm.ppf(-cp0)

        def piece(s):
            f = k0 * np.exp(s * d20 + s * s / 2.0)
            if not np.isfinite(f):
                raise ValueError("right wing forward overflow")
            return _CFunction(f, s, 0.0, 0.0)

        s = brentq(lambda s: piece(max(s, 0.0))(k0) - c0, 0.0, smax, xtol=acc)
        return piece(s)

    def _segment(self, k0, k1, c0, c1, c0p, c1p, acc) -> Optional[_CFunction]:
        def piece(a):
            d20 = norm.ppf(-c0p + a)
            d21 = norm.ppf(-c1p + a)
            alpha = (d20 - d21) / (np.log(k0) - np.log(k1))
            beta = d20 - alpha * np.log(k0)
            s = -1.0 / alpha
            f = np.exp(s * (beta + s / 2.0))
            if not np.isfinite(f):
                raise ValueError("segment forward overflow")
            b = c0 - _CFunction(f, s, a, 0.0)(k0)
            return _CFunction(f, s, a, b)

        eps = config.KAHALE_MONEYNESS_EPS
        try:
            a = brentq(lambda a: piece(a)(k1) - c1, c1p + eps, 1.0 + c0p - eps, xtol=acc)
        except ValueError:
            # segment keeps the source prices
            logger.debug("kahale segment [%.6f, %.6f] not interpolated", k0, k1)
            return None
        return piece(a)

    # ── queries ───────────────────────────────────────────────────────

    def _index(self, strike: float) -> int:
        i = int(np.searchsorted(self.k, strike, side="right")) - self.left_index
        return max(min(i, self.right_index - self.left_index + 1), 0)

    def _is_wing(self, i: int) -> bool:
        return i == 0 or i == self.right_index - self.left_index + 1

    def _call(self, strike: float, i: int) -> Optional[float]:
        fct = self.c_functions[i]
        if fct is None or not (self.interpolate or self._is_wing(i)):
            return None
        return fct(strike)

    def option_price(self, strike: float, option_type: str = "call",
                     discount: float = 1.0) -> float:
        strike = max(strike, EPSILON)
        c = self._call(strike, self._index(strike))
        if c is None:
            c = self.source.option_price(strike, "call", 1.0)
        if option_type.lower() in ("c", "call"):
            return discount * c
        return discount * (c - (self.f - strike))

    def volatility(self, strike: float) -> float:
        strike = max(strike, EPSILON)
        c = self._call(strike, self._index(strike))
        if c is None:
            return self.source.volatility(strike)
        if strike >= self.f:
            std_dev = implied_std_dev("call", strike, self.f, c)
        else:
            std_dev = implied_std_dev("put", strike, self.f, strike - self.f + c)
        if np.isnan(std_dev):
            logger.debug("kahale implied vol inversion failed at strike %.6f, returning 0", strike)
            return 0.0
        return std_dev / np.sqrt(self.exercise_time)

    def min_strike(self) -> float:
        return self.k[0]

    def max_strike(self) -> float:
        return self.k[-1]


# ════════════════════════════════════════════════════════════════════════
#  DISPATCH
# ════════════════════════════════════════════════════════════════════════

class SmileModel(Enum):
    SVI = "svi"
    SABR = "sabr"
    KAHALE = "kahale"


def build_svi_smile(t: float, forward: float, strikes: Sequence[float], vols: Sequence[float],
                    vega_weighted: bool = None, **_) -> SviSmileSection:
    return SviSmileSection(t, forward, strikes, vols, vega_weighted=vega_weighted)


def build_sabr_smile(t: float, forward: float, strikes: Sequence[float], vols: Sequence[float],
                     beta: float = None, gamma: float = None, **_) -> ZabrSmileSection:
    # alpha from the ATM quote: alpha * F^(beta - 1) reproduces it when beta = 0.5
    alpha = vols[config.ATM_COLUMN_INDEX] * np.sqrt(forward)
    return ZabrSmileSection(t, forward, alpha, beta=beta, gamma=gamma, strikes=strikes, vols=vols)


def build_kahale_smile(t: float, forward: float, strikes: Sequence[float], vols: Sequence[float],
                       interpolate: bool = None, exponential_extrapolation: bool = None,
                       delete_arbitrage_points: bool = None, vega_weighted: bool = None,
                       **_) -> KahaleSmileSection:
    source = SviSmileSection(t, forward, strikes, vols, vega_weighted=vega_weighted)
    moneyness = [k / forward for k in strikes]
    return KahaleSmileSection(source, forward, interpolate, exponential_extrapolation,
                              delete_arbitrage_points, moneyness)


SMILE_BUILDERS = {
    SmileModel.SVI: build_svi_smile,
    SmileModel.SABR: build_sabr_smile,
    SmileModel.KAHALE: build_kahale_smile,
}


def build_smile(model: SmileModel, t: float, forward: float, strikes: Sequence[float],
                vols: Sequence[float], **options) -> SmileSection:
    """Build a smile section with the builder registered for ``model``."""
    model = SmileModel(model)
    return SMILE_BUILDERS[model](t, forward, strikes, vols, **options)
