"""
Black-76 pricing, implied std dev inversion and the FX delta calculator.

Everything is written in forward terms: a price depends on the forward,
the strike, the total standard deviation sigma * sqrt(T) and a discount
factor. That is the natural form for FX where spot, the two discount
curves and the expiry all collapse into (forward, std dev).

The delta calculator turns market delta quotes into strikes and back,
for the four FX delta flavours (spot / forward, each optionally premium
adjusted) and the usual ATM definitions.

References:
    Black, F. (1976). The pricing of commodity contracts.
    Reiswich, D. & Wystup, U. (2010). A Guide to FX Options Quoting Conventions.
    Clark, I.J. (2011). Foreign Exchange Option Pricing: A Practitioner's Guide.
"""

import numpy as np
from scipy.stats import norm
from scipy.optimize import brentq

from . import config
from .quotes import AtmType, DeltaType


EPSILON = np.finfo(float).eps


def _phi(option_type: str) -> int:
    if option_type.lower() in ("c", "call"):
        return 1
    elif option_type.lower() in ("p", "put"):
        return -1
    else:
        raise ValueError(f"Unknown option_type: {option_type}. Use 'call' or 'put'.")


# ════════════════════════════════════════════════════════════════════════
#  PRICING
# ════════════════════════════════════════════════════════════════════════

def black_formula(option_type: str, strike: float, forward: float,
                  std_dev: float, discount: float = 1.0) -> float:
    """
    Black-76 option price.

    Parameters
    ----------
    option_type : "call" or "put"
    strike : option strike
    forward : forward price of the underlying at expiry
    std_dev : total standard deviation, sigma * sqrt(T)
    discount : discount factor to the payment date (default 1, i.e. undiscounted)

    Returns
    -------
    float : option price
    """
    phi = _phi(option_type)
    if std_dev < 0:
        raise ValueError(f"std_dev ({std_dev}) must be non-negative")
    if std_dev == 0.0 or strike <= 0.0:
        return max(phi * (forward - strike), 0.0) * discount

    d1 = np.log(forward / strike) / std_dev + 0.5 * std_dev
    d2 = d1 - std_dev
    return discount * phi * (forward * norm.cdf(phi * d1) - strike * norm.cdf(phi * d2))


def black_std_dev_derivative(strike: float, forward: float, std_dev: float,
                             discount: float = 1.0) -> float:
    """
    dPrice / dStdDev, the same for calls and puts.

    Multiply by sqrt(T) to get vega per unit of vol.
    """
    if std_dev <= 0 or strike <= 0:
        return 0.0
    d1 = np.log(forward / strike) / std_dev + 0.5 * std_dev
    return discount * forward * norm.pdf(d1)


def black_digital(option_type: str, strike: float, forward: float,
                  std_dev: float, discount: float = 1.0) -> float:
    """Cash-or-nothing digital paying 1 if the option ends in the money."""
    phi = _phi(option_type)
    if std_dev <= 0 or strike <= 0:
        if strike <= 0:
            return discount if phi > 0 else 0.0
        return discount * (1.0 if phi * (forward - strike) > 0 else 0.0)
    d2 = np.log(forward / strike) / std_dev - 0.5 * std_dev
    return discount * norm.cdf(phi * d2)


# ════════════════════════════════════════════════════════════════════════
#  IMPLIED STD DEV
# ════════════════════════════════════════════════════════════════════════

def implied_std_dev(
    option_type: str,
    strike: float,
    forward: float,
    price: float,
    discount: float = 1.0,
    lower: float = None,
    upper: float = None,
    tol: float = None,
) -> float:
    """
    Invert Black-76 for the total std dev by Brent's method.

    Brent is unconditionally convergent inside the bracket, which
    matters here: the prices being inverted come from wing formulas
    whose values can sit very close to intrinsic.

    Returns
    -------
    float : implied std dev, or NaN if the price is outside the
            Black range or the bracket cannot be formed
    """
    lower = config.IMPLIED_STDDEV_LOWER if lower is None else lower
    upper = config.IMPLIED_STDDEV_UPPER if upper is None else upper
    tol = config.IMPLIED_STDDEV_TOL if tol is None else tol

    phi = _phi(option_type)
    intrinsic = max(phi * (forward - strike), 0.0) * discount
    if price < intrinsic or price <= 0:
        return np.nan

    def objective(sd):
        return black_formula(option_type, strike, forward, sd, discount) - price

    try:
        return brentq(objective, lower, upper, xtol=tol)
    except ValueError:
        # same sign at both ends: price is outside the bracketed range
        return np.nan
    except RuntimeError:
        return np.nan


# ════════════════════════════════════════════════════════════════════════
#  DELTA CALCULATOR
# ════════════════════════════════════════════════════════════════════════

class BlackDeltaCalculator:
    """
    Delta ⇄ strike conversions for one FX option setup.

    Parameters
    ----------
    option_type : "call" or "put"
    delta_type : DeltaType of the quotes being converted
    spot : FX spot
    d_discount : domestic discount factor to expiry
    f_discount : foreign discount factor to expiry
    std_dev : total standard deviation sigma * sqrt(T)

    Notes
    -----
    forward = spot * f_discount / d_discount. Spot deltas carry the
    foreign discount factor, premium-adjusted deltas use N(d2) * K / F
    instead of N(d1), which makes the call delta non-monotonic in the
    strike; the strike search then runs on the branch to the right of
    the delta maximum, the one quoted in the market.
    """

    def __init__(self, option_type: str, delta_type: DeltaType, spot: float,
                 d_discount: float, f_discount: float, std_dev: float):
        if d_discount <= 0.0:
            raise ValueError(f"positive domestic discount factor required: {d_discount} not allowed")
        if f_discount <= 0.0:
            raise ValueError(f"positive foreign discount factor required: {f_discount} not allowed")
        if std_dev < 0.0:
            raise ValueError(f"non-negative std dev required: {std_dev} not allowed")
        if spot <= 0.0:
            raise ValueError(f"positive spot value required: {spot} not allowed")

        self.option_type = option_type
        self.delta_type = delta_type
        self.spot = spot
        self.d_discount = d_discount
        self.f_discount = f_discount
        self.std_dev = std_dev
        self.phi = _phi(option_type)
        self.forward = spot * f_discount / d_discount
        self.f_exp_pos = self.forward * np.exp(0.5 * std_dev * std_dev)
        self.f_exp_neg = self.forward * np.exp(-0.5 * std_dev * std_dev)

    # ── cumulative terms ──────────────────────────────────────────────

    def _limit_cum(self, strike: float) -> float:
        # zero std dev or zero strike: the option is either sure or worthless
        if strike <= 0.0:
            return 1.0 if self.phi > 0 else 0.0
        sign = np.sign(np.log(self.forward / strike))
        if sign == 0:
            return 0.5
        return 1.0 if sign * self.phi > 0 else 0.0

    def cum_d1(self, strike: float) -> float:
        if self.std_dev >= EPSILON and strike > 0.0:
            d1 = np.log(self.forward / strike) / self.std_dev + 0.5 * self.std_dev
            return norm.cdf(self.phi * d1)
        return self._limit_cum(strike)

    def cum_d2(self, strike: float) -> float:
        if self.std_dev >= EPSILON and strike > 0.0:
            d2 = np.log(self.forward / strike) / self.std_dev - 0.5 * self.std_dev
            return norm.cdf(self.phi * d2)
        return self._limit_cum(strike)

    # ── delta from strike ─────────────────────────────────────────────

    def delta_from_strike(self, strike: float) -> float:
        """Delta of the option struck at ``strike`` under this calculator's delta type."""
        if strike < 0.0:
            raise ValueError(f"positive strike value required: {strike} not allowed")

        if self.delta_type == DeltaType.SPOT:
            return self.phi * self.f_discount * self.cum_d1(strike)
        if self.delta_type == DeltaType.FWD:
            return self.phi * self.cum_d1(strike)
        if self.delta_type == DeltaType.PA_SPOT:
            return self.phi * self.f_discount * self.cum_d2(strike) * strike / self.forward
        if self.delta_type == DeltaType.PA_FWD:
            return self.phi * self.cum_d2(strike) * strike / self.forward
        raise ValueError(f"invalid delta type: {self.delta_type}")

    # ── strike from delta ─────────────────────────────────────────────

    def strike_from_delta(self, delta: float) -> float:
        """
        Strike of the option with the given delta.

        Closed form for the unadjusted deltas, Brent root search for the
        premium-adjusted ones.

        Raises
        ------
        ValueError : if the delta is outside the attainable range
        """
        if delta * self.phi < 0.0:
            raise ValueError(f"option type and delta are incoherent: {self.option_type}, {delta}")

        if self.delta_type == DeltaType.SPOT:
            arg = self.phi * delta / self.f_discount
            if not 0.0 < arg < 1.0:
                raise ValueError(f"spot delta {delta} out of range for foreign discount {self.f_discount}")
            return self.f_exp_pos * np.exp(-self.phi * norm.ppf(arg) * self.std_dev)

        if self.delta_type == DeltaType.FWD:
            arg = self.phi * delta
            if not 0.0 < arg < 1.0:
                raise ValueError(f"forward delta {delta} out of range")
            return self.f_exp_pos * np.exp(-self.phi * norm.ppf(arg) * self.std_dev)

        if self.delta_type.premium_adjusted:
            return self._premium_adjusted_strike(delta)

        raise ValueError(f"invalid delta type: {self.delta_type}")

    def _premium_adjusted_strike(self, delta: float) -> float:
        def objective(k):
            return self.delta_from_strike(k) - delta

        if self.phi < 0:
            # put delta falls monotonically from 0 towards -inf as the strike grows
            left = self.forward * 1e-6
            right = self.f_exp_pos
            while objective(right) > 0.0:
                right *= 2.0
                if right > self.forward * 1e6:
                    raise ValueError(f"premium adjusted delta {delta} not attainable")
            return brentq(objective, left, right, xtol=1e-12 * self.forward)

        # call delta peaks at d2 with sd * N(d2) = n(d2); solve right of the peak
        sd = self.std_dev
        d2_peak = brentq(lambda x: sd * norm.cdf(x) - norm.pdf(x), -10.0, 10.0)
        left = self.forward * np.exp(-sd * (d2_peak + 0.5 * sd))
        if objective(left) < 0.0:
            raise ValueError(f"premium adjusted call delta {delta} above the attainable maximum")
        right = max(self.f_exp_pos, left) * 2.0
        while objective(right) > 0.0:
            right *= 2.0
            if right > self.forward * 1e6:
                raise ValueError(f"premium adjusted delta {delta} not attainable")
        return brentq(objective, left, right, xtol=1e-12 * self.forward)

    # ── ATM strike ────────────────────────────────────────────────────

    def atm_strike(self, atm_type: AtmType) -> float:
        """
        ATM strike under the given convention.

        DELTA_NEUTRAL is the strike at which call and put deltas cancel
        (F·e^{+σ²T/2}, or F·e^{-σ²T/2} for premium-adjusted deltas).
        """
        pa = self.delta_type.premium_adjusted

        if atm_type == AtmType.SPOT:
            return self.spot
        if atm_type == AtmType.FWD:
            return self.forward
        if atm_type in (AtmType.DELTA_NEUTRAL, AtmType.VEGA_MAX, AtmType.GAMMA_MAX):
            return self.f_exp_neg if pa else self.f_exp_pos
        if atm_type == AtmType.PUT_CALL_50:
            if self.delta_type != DeltaType.FWD:
                raise ValueError("|PutDelta|=CallDelta=0.50 only possible for forward delta")
            return self.f_exp_pos
        raise ValueError(f"invalid ATM type: {atm_type}")
