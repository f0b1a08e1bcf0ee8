"""
Discount curves for the two currencies of an FX pair.

The vol surface only needs discount factors by time (or date) and the
curve's reference date. Two implementations:

    FlatForward                : one continuously compounded rate, possibly a live quote
    InterpolatedDiscountCurve  : discount factors at pillar dates, log-linear in between

Both expose a ``version`` stamp that changes whenever anything the
discount factors depend on changes (rate quote, reference date), which
is how the surfaces notice they must recalculate.
"""

from datetime import date
from typing import Sequence, Union

import numpy as np

from .dates import Actual365Fixed, DayCounter
from .quotes import SimpleQuote, as_quote


class YieldTermStructure:
    """Base curve: reference date, day counter, date→time mapping."""

    def __init__(self, reference_date: date, day_counter: DayCounter = None):
        self._reference_date = reference_date
        self.day_counter = day_counter or Actual365Fixed()
        self._moves = 0

    @property
    def reference_date(self) -> date:
        return self._reference_date

    def set_reference_date(self, d: date) -> None:
        if d != self._reference_date:
            self._reference_date = d
            self._moves += 1

    @property
    def version(self):
        return (self._moves,)

    def time_from_reference(self, d: date) -> float:
        return self.day_counter.year_fraction(self._reference_date, d)

    def discount(self, t: Union[float, date]) -> float:
        """Discount factor P(0, t) for a year fraction or a date."""
        if isinstance(t, date):
            t = self.time_from_reference(t)
        return self._discount_impl(float(t))

    def _discount_impl(self, t: float) -> float:
        raise NotImplementedError

    def zero_rate(self, t: float) -> float:
        """Continuously compounded zero rate."""
        if t <= 0:
            t = 1e-4
        return -np.log(self.discount(t)) / t


class FlatForward(YieldTermStructure):
    """
    Flat continuously compounded curve: P(0, t) = exp(-r t).

    The rate may be a SimpleQuote shared with other objects; bumping it
    bumps this curve's version.
    """

    def __init__(self, reference_date: date, rate: Union[float, SimpleQuote],
                 day_counter: DayCounter = None):
        super().__init__(reference_date, day_counter)
        self.rate = as_quote(rate)

    @property
    def version(self):
        return (self._moves, self.rate.version)

    def _discount_impl(self, t: float) -> float:
        return float(np.exp(-self.rate.value * t))

    def __repr__(self) -> str:
        return f"FlatForward({self._reference_date}, {self.rate.value:.6f})"


class InterpolatedDiscountCurve(YieldTermStructure):
    """
    Discount curve through pillar dates, log-linear interpolation.

    Beyond the last pillar the last forward rate is extended flat.
    The first date must be the reference date with a discount of 1.
    """

    def __init__(self, dates: Sequence[date], discounts: Sequence[float],
                 day_counter: DayCounter = None):
        if len(dates) != len(discounts):
            raise ValueError("dates and discounts must have the same length")
        if len(dates) < 2:
            raise ValueError("at least two pillars required")
        if abs(discounts[0] - 1.0) > 1e-12:
            raise ValueError("the first discount factor must be 1.0")
        super().__init__(dates[0], day_counter)
        self.dates = list(dates)
        self.times = np.array([self.day_counter.year_fraction(dates[0], d) for d in dates])
        if np.any(np.diff(self.times) <= 0):
            raise ValueError("pillar dates must be strictly increasing")
        discounts = np.asarray(discounts, dtype=float)
        if np.any(discounts <= 0):
            raise ValueError("discount factors must be positive")
        self.log_discounts = np.log(discounts)

    def _discount_impl(self, t: float) -> float:
        if t <= self.times[-1]:
            return float(np.exp(np.interp(t, self.times, self.log_discounts)))
        # flat forward beyond the last pillar
        slope = ((self.log_discounts[-1] - self.log_discounts[-2])
                 / (self.times[-1] - self.times[-2]))
        return float(np.exp(self.log_discounts[-1] + slope * (t - self.times[-1])))
