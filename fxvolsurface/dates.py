"""
Calendar, tenor and day-count utilities for FX option dates.

Only what the surface needs to turn a market tenor ("3M") into an option
fixing date and a year fraction:

    Period / TimeUnit         : tenor parsing, e.g. "1W", "3M", "1Y"
    BusinessDayConvention     : Following, Modified Following, Preceding, ...
    Calendar                  : holiday rules + adjust / advance
        NullCalendar          : every day is a business day
        WeekendsOnly          : Saturdays and Sundays only
        TARGET                : Eurozone settlement calendar
        UnitedStates          : US settlement (Federal Reserve style) calendar
        JointCalendar         : business day only if business in every member
    DayCounter                : Actual/365 (Fixed), Actual/360, Actual/Actual (ISDA)

Month arithmetic uses dateutil.relativedelta, which clamps to the last
day of the month (31-Jan + 1M = 28/29-Feb) like the market convention.
"""

import calendar as _calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import List, Union

from dateutil.easter import easter
from dateutil.relativedelta import relativedelta, MO, TH


# ════════════════════════════════════════════════════════════════════════
#  TENORS
# ════════════════════════════════════════════════════════════════════════

class TimeUnit(Enum):
    DAYS = "D"
    WEEKS = "W"
    MONTHS = "M"
    YEARS = "Y"


@dataclass(frozen=True)
class Period:
    """A market tenor: a signed length and a time unit."""
    length: int
    unit: TimeUnit

    TENOR_PATTERN = re.compile(r"^([+-]?\d+)([DWMY])$", re.IGNORECASE)

    @classmethod
    def parse(cls, tenor: Union[str, "Period"]) -> "Period":
        """
        Parse a tenor string such as "1D", "2W", "6M" or "1Y".

        Raises
        ------
        ValueError : if the string is not <integer><D|W|M|Y>
        """
        if isinstance(tenor, Period):
            return tenor
        match = cls.TENOR_PATTERN.match(str(tenor).strip().upper())
        if not match:
            raise ValueError(f"Invalid tenor format: {tenor}. Expected format like '3M', '1Y'")
        return cls(int(match.group(1)), TimeUnit(match.group(2).upper()))

    def __neg__(self) -> "Period":
        return Period(-self.length, self.unit)

    def __str__(self) -> str:
        return f"{self.length}{self.unit.value}"

    def approx_years(self) -> float:
        """Rough year fraction, used only for labels and sorting."""
        return self.length * {
            TimeUnit.DAYS: 1.0 / 365.0,
            TimeUnit.WEEKS: 7.0 / 365.0,
            TimeUnit.MONTHS: 1.0 / 12.0,
            TimeUnit.YEARS: 1.0,
        }[self.unit]


def add_period(d: date, period: Period) -> date:
    """Add a period on the plain calendar (no holiday handling)."""
    if period.unit == TimeUnit.DAYS:
        return d + timedelta(days=period.length)
    if period.unit == TimeUnit.WEEKS:
        return d + timedelta(weeks=period.length)
    if period.unit == TimeUnit.MONTHS:
        return d + relativedelta(months=period.length)
    return d + relativedelta(years=period.length)


def end_of_month(d: date) -> date:
    return date(d.year, d.month, _calendar.monthrange(d.year, d.month)[1])


# ════════════════════════════════════════════════════════════════════════
#  BUSINESS DAY CONVENTIONS
# ════════════════════════════════════════════════════════════════════════

class BusinessDayConvention(Enum):
    """Business day adjustment convention."""
    FOLLOWING = "Following"
    MODIFIED_FOLLOWING = "ModifiedFollowing"
    PRECEDING = "Preceding"
    MODIFIED_PRECEDING = "ModifiedPreceding"
    UNADJUSTED = "Unadjusted"


# ════════════════════════════════════════════════════════════════════════
#  CALENDARS
# ════════════════════════════════════════════════════════════════════════

class Calendar:
    """
    Base calendar: weekends are holidays, subclasses add public holidays.

    Subclasses override ``is_holiday_rule`` (the date-specific holidays)
    and, for exotic weekends, ``is_weekend``.
    """

    name = "Calendar"

    def is_weekend(self, d: date) -> bool:
        return d.weekday() >= 5

    def is_holiday_rule(self, d: date) -> bool:
        return False

    def is_business_day(self, d: date) -> bool:
        return not (self.is_weekend(d) or self.is_holiday_rule(d))

    def is_holiday(self, d: date) -> bool:
        return not self.is_business_day(d)

    def is_end_of_month(self, d: date) -> bool:
        """True if d is the last business day of its month."""
        return d.month != self.adjust(d + timedelta(days=1)).month

    def end_of_month(self, d: date) -> date:
        """Last business day of the month containing d."""
        return self.adjust(end_of_month(d), BusinessDayConvention.PRECEDING)

    def adjust(self, d: date,
               convention: BusinessDayConvention = BusinessDayConvention.FOLLOWING) -> date:
        """Roll d onto a business day according to the convention."""
        if convention == BusinessDayConvention.UNADJUSTED:
            return d

        if convention in (BusinessDayConvention.FOLLOWING,
                          BusinessDayConvention.MODIFIED_FOLLOWING):
            d1 = d
            while self.is_holiday(d1):
                d1 += timedelta(days=1)
            if convention == BusinessDayConvention.MODIFIED_FOLLOWING and d1.month != d.month:
                return self.adjust(d, BusinessDayConvention.PRECEDING)
            return d1

        d1 = d
        while self.is_holiday(d1):
            d1 -= timedelta(days=1)
        if convention == BusinessDayConvention.MODIFIED_PRECEDING and d1.month != d.month:
            return self.adjust(d, BusinessDayConvention.FOLLOWING)
        return d1

    def advance(self, d: date, period: Union[Period, str, int],
                convention: BusinessDayConvention = BusinessDayConvention.FOLLOWING,
                end_of_month: bool = False) -> date:
        """
        Move d by a period on this calendar.

        Day periods count business days and ignore the convention; week
        periods move on the plain calendar and adjust. Month and year
        periods stick to the month end when ``end_of_month`` is set and
        d is the last business day of its month.

        Parameters
        ----------
        d : start date
        period : Period, tenor string, or an int meaning business days
        convention : adjustment applied to the unadjusted end date
        end_of_month : end-of-month rule for month/year periods
        """
        if isinstance(period, int):
            period = Period(period, TimeUnit.DAYS)
        period = Period.parse(period)
        n = period.length

        if period.unit == TimeUnit.DAYS:
            if n == 0:
                return self.adjust(d, convention)
            d1 = d
            step = timedelta(days=1 if n > 0 else -1)
            for _ in range(abs(n)):
                d1 += step
                while self.is_holiday(d1):
                    d1 += step
            return d1

        if period.unit == TimeUnit.WEEKS:
            return self.adjust(add_period(d, period), convention)

        d1 = add_period(d, period)
        if end_of_month and self.is_end_of_month(d):
            return self.end_of_month(d1)
        return self.adjust(d1, convention)

    def business_days_between(self, start: date, end: date) -> int:
        """Business days in [start, end)."""
        count = 0
        d = start
        while d < end:
            if self.is_business_day(d):
                count += 1
            d += timedelta(days=1)
        return count

    def __eq__(self, other) -> bool:
        return isinstance(other, Calendar) and self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NullCalendar(Calendar):
    """Every day is a business day."""

    name = "Null"

    def is_weekend(self, d: date) -> bool:
        return False


class WeekendsOnly(Calendar):
    name = "WeekendsOnly"


class TARGET(Calendar):
    """
    Trans-European settlement calendar.

    Holidays: New Year's Day, Good Friday and Easter Monday (from 2000),
    Labour Day (from 2000), Christmas, St. Stephen's Day (from 2000) and
    31-Dec in 1998, 1999 and 2001.
    """

    name = "TARGET"

    def is_holiday_rule(self, d: date) -> bool:
        y = d.year
        if d.month == 1 and d.day == 1:
            return True
        if d.month == 12 and d.day == 25:
            return True
        if y >= 2000:
            easter_sunday = easter(y)
            if d in (easter_sunday - timedelta(days=2), easter_sunday + timedelta(days=1)):
                return True
            if d.month == 5 and d.day == 1:
                return True
            if d.month == 12 and d.day == 26:
                return True
        return d.month == 12 and d.day == 31 and y in (1998, 1999, 2001)


def _nth_weekday(year: int, month: int, weekday, n: int) -> date:
    return date(year, month, 1) + relativedelta(weekday=weekday(n))


def _observed(d: date) -> date:
    """US rule: Saturday holidays move to Friday, Sunday ones to Monday."""
    if d.weekday() == 5:
        return d - timedelta(days=1)
    if d.weekday() == 6:
        return d + timedelta(days=1)
    return d


class UnitedStates(Calendar):
    """
    US settlement calendar.

    Fixed-date holidays move to the adjacent weekday when they fall on a
    weekend, so a Saturday New Year's Day is observed on 31-Dec.
    """

    name = "UnitedStates"

    def _holidays(self, year: int) -> List[date]:
        days = [
            _observed(date(year, 1, 1)),
            _observed(date(year, 7, 4)),
            _observed(date(year, 11, 11)),
            _observed(date(year, 12, 25)),
            _nth_weekday(year, 2, MO, 3),                       # Washington's birthday
            date(year, 5, 31) + relativedelta(weekday=MO(-1)),  # Memorial Day
            _nth_weekday(year, 9, MO, 1),                       # Labor Day
            _nth_weekday(year, 10, MO, 2),                      # Columbus Day
            _nth_weekday(year, 11, TH, 4),                      # Thanksgiving
        ]
        if year >= 1983:
            days.append(_nth_weekday(year, 1, MO, 3))           # Martin Luther King's birthday
        if year >= 2022:
            days.append(_observed(date(year, 6, 19)))          # Juneteenth
        return days

    def is_holiday_rule(self, d: date) -> bool:
        return d in self._holidays(d.year) or d == _observed(date(d.year + 1, 1, 1))


class JointCalendar(Calendar):
    """A date is a business day only if it is one in every member calendar."""

    def __init__(self, *calendars: Calendar):
        if not calendars:
            raise ValueError("JointCalendar needs at least one calendar")
        self.calendars = list(calendars)
        self.name = "JoinHolidays(" + ", ".join(c.name for c in self.calendars) + ")"

    def is_weekend(self, d: date) -> bool:
        return False

    def is_business_day(self, d: date) -> bool:
        return all(c.is_business_day(d) for c in self.calendars)

    def __repr__(self) -> str:
        return f"JointCalendar({', '.join(repr(c) for c in self.calendars)})"


# ════════════════════════════════════════════════════════════════════════
#  DAY COUNTERS
# ════════════════════════════════════════════════════════════════════════

class DayCounter:
    name = "DayCounter"

    def day_count(self, d1: date, d2: date) -> int:
        return (d2 - d1).days

    def year_fraction(self, d1: date, d2: date) -> float:
        raise NotImplementedError

    def __eq__(self, other) -> bool:
        return isinstance(other, DayCounter) and self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Actual365Fixed(DayCounter):
    name = "Actual/365 (Fixed)"

    def year_fraction(self, d1: date, d2: date) -> float:
        return self.day_count(d1, d2) / 365.0


class Actual360(DayCounter):
    name = "Actual/360"

    def year_fraction(self, d1: date, d2: date) -> float:
        return self.day_count(d1, d2) / 360.0


class ActualActual(DayCounter):
    """ISDA Actual/Actual: each calendar year weighted by its own length."""

    name = "Actual/Actual (ISDA)"

    def year_fraction(self, d1: date, d2: date) -> float:
        if d1 == d2:
            return 0.0
        if d1 > d2:
            return -self.year_fraction(d2, d1)
        y1, y2 = d1.year, d2.year
        dib1 = 366.0 if _calendar.isleap(y1) else 365.0
        dib2 = 366.0 if _calendar.isleap(y2) else 365.0
        total = y2 - y1 - 1.0
        total += (date(y1 + 1, 1, 1) - d1).days / dib1
        total += (d2 - date(y2, 1, 1)).days / dib2
        return total


DAY_COUNTERS = {
    "ACT/365F": Actual365Fixed,
    "ACT/365": Actual365Fixed,
    "ACT/360": Actual360,
    "ACT/ACT": ActualActual,
}


def day_counter_from_string(s: str) -> DayCounter:
    key = s.upper().replace(" ", "")
    if key in DAY_COUNTERS:
        return DAY_COUNTERS[key]()
    raise ValueError(f"Unknown day count convention: {s}")
