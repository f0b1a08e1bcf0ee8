"""
Black volatility term structures.

    BlackVolTermStructure : common query plumbing. Accepts a year
                            fraction, a date or a tenor, checks the
                            range and hands a time to the subclass
    BlackConstantVol      : one flat vol for all strikes and times
    BlackVarianceCurve    : strike-independent vol term structure built
                            by interpolating total variance in time

The variance curve is what the FX surface keeps per delta column: the
column's vols at the pillar tenors, turned into total variances
w(T) = sigma^2 * T and interpolated linearly (or by cubic spline) in T,
with flat-vol extrapolation past the last pillar.
"""

from datetime import date
from typing import Sequence, Union

import numpy as np
from scipy.interpolate import CubicSpline

from .dates import Actual365Fixed, Calendar, DayCounter, NullCalendar, Period
from .quotes import SimpleQuote, as_quote

TimeLike = Union[float, int, date, Period, str]


class BlackVolTermStructure:
    """
    Base class: reference date, day counter and range-checked queries.

    Subclasses implement ``_black_vol_impl(t, strike)`` (or
    ``_black_variance_impl``) and ``max_time``.
    """

    def __init__(self, reference_date: date, day_counter: DayCounter = None,
                 calendar: Calendar = None):
        self._reference_date = reference_date
        self.day_counter = day_counter or Actual365Fixed()
        self.calendar = calendar or NullCalendar()

    @property
    def reference_date(self) -> date:
        return self._reference_date

    @property
    def version(self):
        return ()

    def time_from_reference(self, d: date) -> float:
        return self.day_counter.year_fraction(self._reference_date, d)

    def option_date_from_tenor(self, tenor: Period) -> date:
        return self.calendar.advance(self._reference_date, tenor)

    def to_time(self, x: TimeLike) -> float:
        """Year fraction for a time, a date, a Period or a tenor string."""
        if isinstance(x, date):
            return self.time_from_reference(x)
        if isinstance(x, (Period, str)):
            return self.time_from_reference(self.option_date_from_tenor(Period.parse(x)))
        return float(x)

    def max_time(self) -> float:
        return np.inf

    def min_strike(self) -> float:
        return 0.0

    def max_strike(self) -> float:
        return np.inf

    def check_range(self, t: float, extrapolate: bool = False) -> None:
        if t < 0.0:
            raise ValueError(f"negative time ({t}) given")
        if not extrapolate and t > self.max_time():
            raise ValueError(f"time ({t}) is past max curve time ({self.max_time()})")

    def check_strike(self, strike: float, extrapolate: bool = False) -> None:
        if not extrapolate and not (self.min_strike() <= strike <= self.max_strike()):
            raise ValueError(
                f"strike ({strike}) is outside the curve domain "
                f"[{self.min_strike()}, {self.max_strike()}]"
            )

    # ── public queries ────────────────────────────────────────────────

    def black_vol(self, x: TimeLike, strike: float, extrapolate: bool = False) -> float:
        """Black volatility at (time|date|tenor, strike)."""
        t = self.to_time(x)
        self.check_range(t, extrapolate)
        self.check_strike(strike, extrapolate)
        return self._black_vol_impl(t, strike)

    def black_variance(self, x: TimeLike, strike: float, extrapolate: bool = False) -> float:
        """Total Black variance sigma^2 * t."""
        t = self.to_time(x)
        self.check_range(t, extrapolate)
        self.check_strike(strike, extrapolate)
        return self._black_variance_impl(t, strike)

    def black_forward_variance(self, t1: TimeLike, t2: TimeLike, strike: float,
                               extrapolate: bool = False) -> float:
        """Variance accrued between t1 and t2 at a fixed strike."""
        t1, t2 = self.to_time(t1), self.to_time(t2)
        if t1 > t2:
            raise ValueError(f"t1 ({t1}) later than t2 ({t2})")
        self.check_range(t2, extrapolate)
        v1 = self._black_variance_impl(t1, strike) if t1 > 0 else 0.0
        return self._black_variance_impl(t2, strike) - v1

    # ── implementation hooks ─────────────────────────────────────────

    def _black_vol_impl(self, t: float, strike: float) -> float:
        t_eff = t if t > 0 else 1e-5
        return float(np.sqrt(max(self._black_variance_impl(t_eff, strike), 0.0) / t_eff))

    def _black_variance_impl(self, t: float, strike: float) -> float:
        vol = self._black_vol_impl(t, strike)
        return vol * vol * t


class BlackConstantVol(BlackVolTermStructure):
    """Flat vol, possibly tied to a live quote."""

    def __init__(self, reference_date: date, vol: Union[float, SimpleQuote],
                 day_counter: DayCounter = None, calendar: Calendar = None):
        super().__init__(reference_date, day_counter, calendar)
        self.vol = as_quote(vol)

    @property
    def version(self):
        return (self.vol.version,)

    def _black_vol_impl(self, t: float, strike: float) -> float:
        return self.vol.value


class BlackVarianceCurve(BlackVolTermStructure):
    """
    Strike-independent vol term structure, interpolated in total variance.

    Parameters
    ----------
    reference_date : curve reference date
    times : pillar year fractions, strictly increasing and positive
    vols : Black vols at the pillars
    day_counter : used for date queries
    interpolation : "linear" or "cubic" (natural spline) in variance
    force_monotone_variance : reject pillars whose total variance decreases

    Notes
    -----
    A zero pillar (t=0, w=0) is prepended, so times before the first
    pillar interpolate towards zero variance. Past the last pillar the
    last vol is held flat: w(t) = w_N * t / t_N.
    """

    def __init__(
        self,
        reference_date: date,
        times: Sequence[float],
        vols: Sequence[float],
        day_counter: DayCounter = None,
        interpolation: str = "linear",
        force_monotone_variance: bool = True,
    ):
        super().__init__(reference_date, day_counter)
        times = np.asarray(times, dtype=float)
        vols = np.asarray(vols, dtype=float)
        if len(times) != len(vols):
            raise ValueError("mismatch between time vector and black vol vector")
        if len(times) == 0:
            raise ValueError("at least one pillar required")
        if times[0] <= 0.0:
            raise ValueError(f"cannot have times[0] <= 0 ({times[0]})")
        if np.any(np.diff(times) <= 0):
            raise ValueError("pillar times must be strictly increasing")

        self.times = np.concatenate([[0.0], times])
        self.variances = np.concatenate([[0.0], vols * vols * times])
        if force_monotone_variance:
            for j in range(1, len(self.variances)):
                if self.variances[j] < self.variances[j - 1]:
                    raise ValueError(
                        f"variance must be non-decreasing: pillar {j} at t={self.times[j]:.6f} "
                        f"has {self.variances[j]:.8f} < {self.variances[j - 1]:.8f}"
                    )

        if interpolation not in ("linear", "cubic"):
            raise ValueError(f"Unknown interpolation: {interpolation}. Use 'linear' or 'cubic'.")
        self.interpolation = interpolation
        self._spline = None
        if interpolation == "cubic" and len(self.times) > 2:
            self._spline = CubicSpline(self.times, self.variances, bc_type="natural")

    @classmethod
    def from_dates(cls, reference_date: date, dates: Sequence[date], vols: Sequence[float],
                   day_counter: DayCounter = None, **kwargs) -> "BlackVarianceCurve":
        dc = day_counter or Actual365Fixed()
        times = [dc.year_fraction(reference_date, d) for d in dates]
        return cls(reference_date, times, vols, dc, **kwargs)

    def max_time(self) -> float:
        return float(self.times[-1])

    def _black_variance_impl(self, t: float, strike: float) -> float:
        if t <= self.times[-1]:
            if self._spline is not None:
                return float(self._spline(t))
            return float(np.interp(t, self.times, self.variances))
        # flat vol extrapolation
        return float(self.variances[-1] * t / self.times[-1])
