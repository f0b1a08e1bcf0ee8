"""
Dupire local volatility from an implied Black surface.

With total implied variance w(t, K) = sigma_BS^2 t and log-moneyness
y = ln(K / F(t)), Dupire's relation reads

                              dw/dt
    sigma_loc^2 = ─────────────────────────────────────────────────────────
                  1 - y/w dw/dy + 1/4 (-1/4 - 1/w + y^2/w^2) (dw/dy)^2 + 1/2 d2w/dy2

All derivatives are finite differences on the Black surface. The time
derivative is taken along a line of constant forward moneyness, so the
strike moves with the ratio of discount factors between t and t +- dt.

Arbitrage shows up in two places: total variance falling along that
line (calendar arbitrage) or a negative local variance (butterfly
arbitrage). Neither raises. The function returns a sentinel instead,
``config.ILLEGAL_LOCAL_VOL`` unless the caller picks another, and the
caller has to check for it.

References:
    Dupire, B. (1994). Pricing with a smile. Risk.
    Gatheral, J. (2006). The Volatility Surface, ch. 1.
"""

import logging
from datetime import date
from typing import Union

import numpy as np

from . import config
from .black_vol import BlackVolTermStructure
from .curves import YieldTermStructure
from .quotes import SimpleQuote, as_quote

logger = logging.getLogger(__name__)


def dupire_local_vol(
    black_surface: BlackVolTermStructure,
    domestic_curve: YieldTermStructure,
    foreign_curve: YieldTermStructure,
    spot: float,
    t: float,
    underlying_level: float,
    illegal_local_vol: float = None,
) -> float:
    """
    Local vol at (t, S) by finite differences of the Black variance.

    Parameters
    ----------
    black_surface : implied vol surface, queried with extrapolation on
    domestic_curve : discounting of the price currency (the "risk-free" rate)
    foreign_curve : discounting of the base currency (the "dividend" yield)
    spot : current FX spot
    t : time in years, >= 0
    underlying_level : FX level S at which the local vol is wanted
    illegal_local_vol : value returned on arbitrage (default config.ILLEGAL_LOCAL_VOL)

    Returns
    -------
    float : local volatility, or the sentinel
    """
    if illegal_local_vol is None:
        illegal_local_vol = config.ILLEGAL_LOCAL_VOL

    dr = domestic_curve.discount(t)
    dq = foreign_curve.discount(t)
    forward = spot * dq / dr

    # strike derivatives
    strike = underlying_level
    y = np.log(strike / forward)
    dy = max(abs(y) * config.DUPIRE_DY_RELATIVE, config.DUPIRE_DY_MIN)
    strike_p = strike * np.exp(dy)
    strike_m = strike / np.exp(dy)
    w = black_surface.black_variance(t, strike, extrapolate=True)
    wp = black_surface.black_variance(t, strike_p, extrapolate=True)
    wm = black_surface.black_variance(t, strike_m, extrapolate=True)
    dwdy = (wp - wm) / (2.0 * dy)
    d2wdy2 = (wp - 2.0 * w + wm) / (dy * dy)

    # time derivative at constant forward moneyness
    if t == 0.0:
        dt = config.DUPIRE_DT
        drpt = domestic_curve.discount(t + dt)
        dqpt = foreign_curve.discount(t + dt)
        strike_pt = strike * dr * dqpt / (drpt * dq)

        wpt = black_surface.black_variance(t + dt, strike_pt, extrapolate=True)
        if wpt < w:
            logger.debug("calendar arbitrage at t=%.6f, S=%.6f", t, strike)
            return illegal_local_vol
        dwdt = (wpt - w) / dt
    else:
        dt = min(config.DUPIRE_DT, t / 2.0)
        drpt = domestic_curve.discount(t + dt)
        drmt = domestic_curve.discount(t - dt)
        dqpt = foreign_curve.discount(t + dt)
        dqmt = foreign_curve.discount(t - dt)
        strike_pt = strike * dr * dqpt / (drpt * dq)
        strike_mt = strike * dr * dqmt / (drmt * dq)

        wpt = black_surface.black_variance(t + dt, strike_pt, extrapolate=True)
        wmt = black_surface.black_variance(t - dt, strike_mt, extrapolate=True)
        if wpt < w or w < wmt:
            logger.debug("calendar arbitrage at t=%.6f, S=%.6f", t, strike)
            return illegal_local_vol
        dwdt = (wpt - wmt) / (2.0 * dt)

    if dwdy == 0.0 and d2wdy2 == 0.0:
        # flat smile: avoids dividing by a possibly zero w
        return float(np.sqrt(dwdt))

    den1 = 1.0 - y / w * dwdy
    den2 = 0.25 * (-0.25 - 1.0 / w + y * y / w / w) * dwdy * dwdy
    den3 = 0.5 * d2wdy2
    result = dwdt / (den1 + den2 + den3)
    if result < 0.0:
        logger.debug("negative local variance at t=%.6f, S=%.6f", t, strike)
        return illegal_local_vol
    return float(np.sqrt(result))


class LocalVolSurface:
    """
    Local vol term structure on top of a Black surface and two curves.

    Holds no state of its own beyond its inputs; every query goes back
    to the Black surface, which does its own caching.
    """

    def __init__(
        self,
        black_surface: BlackVolTermStructure,
        domestic_curve: YieldTermStructure,
        foreign_curve: YieldTermStructure,
        spot: Union[float, SimpleQuote],
        illegal_local_vol: float = None,
    ):
        self.black_surface = black_surface
        self.domestic_curve = domestic_curve
        self.foreign_curve = foreign_curve
        self.spot = as_quote(spot)
        self.illegal_local_vol = config.ILLEGAL_LOCAL_VOL if illegal_local_vol is None else illegal_local_vol

    @property
    def reference_date(self) -> date:
        return self.black_surface.reference_date

    @property
    def day_counter(self):
        return self.black_surface.day_counter

    def max_time(self) -> float:
        return self.black_surface.max_time()

    def min_strike(self) -> float:
        return self.black_surface.min_strike()

    def max_strike(self) -> float:
        return self.black_surface.max_strike()

    def forward_value(self, t: float) -> float:
        return self.spot.value * self.foreign_curve.discount(t) / self.domestic_curve.discount(t)

    def local_vol(self, x: Union[float, date], underlying_level: float,
                  extrapolate: bool = False) -> float:
        """Local vol at a time or date and an FX level; may return the sentinel."""
        t = self.black_surface.to_time(x)
        self.black_surface.check_range(t, extrapolate)
        return dupire_local_vol(
            self.black_surface, self.domestic_curve, self.foreign_curve,
            self.spot.value, t, underlying_level, self.illegal_local_vol,
        )

    def is_illegal(self, value: float) -> bool:
        return value == self.illegal_local_vol
