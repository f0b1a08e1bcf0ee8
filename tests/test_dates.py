"""
Tests for tenors, calendars, day counters and discount curves.
"""

from datetime import date

import pytest
import numpy as np

from fxvolsurface.curves import FlatForward, InterpolatedDiscountCurve
from fxvolsurface.dates import (
    TARGET,
    Actual360,
    Actual365Fixed,
    ActualActual,
    BusinessDayConvention,
    JointCalendar,
    NullCalendar,
    Period,
    TimeUnit,
    UnitedStates,
    WeekendsOnly,
    day_counter_from_string,
)
from fxvolsurface.quotes import SimpleQuote


class TestPeriod:

    def test_parse(self):
        assert Period.parse("3M") == Period(3, TimeUnit.MONTHS)
        assert Period.parse("1y") == Period(1, TimeUnit.YEARS)
        assert Period.parse("-2D") == Period(-2, TimeUnit.DAYS)

    def test_parse_passes_periods_through(self):
        p = Period(2, TimeUnit.WEEKS)
        assert Period.parse(p) is p

    def test_invalid_tenor_raises(self):
        with pytest.raises(ValueError):
            Period.parse("3 months")

    def test_str_and_neg(self):
        assert str(Period.parse("9M")) == "9M"
        assert -Period.parse("2D") == Period(-2, TimeUnit.DAYS)


class TestCalendars:

    def test_target_holidays(self):
        cal = TARGET()
        assert cal.is_holiday(date(2019, 4, 19))     # Good Friday
        assert cal.is_holiday(date(2019, 4, 22))     # Easter Monday
        assert cal.is_holiday(date(2019, 5, 1))
        assert cal.is_holiday(date(2019, 12, 26))
        assert cal.is_business_day(date(2019, 5, 2))

    def test_united_states_holidays(self):
        cal = UnitedStates()
        assert cal.is_holiday(date(2019, 7, 4))
        assert cal.is_holiday(date(2019, 5, 27))     # Memorial Day
        assert cal.is_holiday(date(2019, 11, 28))    # Thanksgiving
        assert cal.is_holiday(date(2020, 1, 20))     # MLK
        assert cal.is_business_day(date(2019, 5, 6))

    def test_united_states_observed_new_year(self):
        """1-Jan-2022 is a Saturday, observed on Friday 31-Dec-2021."""
        assert UnitedStates().is_holiday(date(2021, 12, 31))

    def test_weekends_only(self):
        cal = WeekendsOnly()
        assert cal.is_holiday(date(2019, 5, 4))
        assert cal.is_business_day(date(2019, 5, 1))

    def test_null_calendar(self):
        assert NullCalendar().is_business_day(date(2019, 5, 4))

    def test_joint_calendar(self):
        joint = JointCalendar(TARGET(), UnitedStates())
        assert joint.is_holiday(date(2019, 5, 1))    # TARGET only
        assert joint.is_holiday(date(2019, 7, 4))    # US only
        assert joint.is_business_day(date(2019, 7, 5))

    def test_advance_business_days(self):
        cal = TARGET()
        assert cal.advance(date(2019, 5, 2), 2) == date(2019, 5, 6)
        assert cal.advance(date(2019, 4, 18), 1) == date(2019, 4, 23)
        assert cal.advance(date(2019, 6, 6), -2) == date(2019, 6, 4)

    def test_adjust_conventions(self):
        cal = WeekendsOnly()
        saturday = date(2019, 8, 31)
        assert cal.adjust(saturday, BusinessDayConvention.FOLLOWING) == date(2019, 9, 2)
        assert cal.adjust(saturday, BusinessDayConvention.MODIFIED_FOLLOWING) == date(2019, 8, 30)
        assert cal.adjust(saturday, BusinessDayConvention.PRECEDING) == date(2019, 8, 30)
        assert cal.adjust(saturday, BusinessDayConvention.UNADJUSTED) == saturday

    def test_advance_months_end_of_month(self):
        cal = WeekendsOnly()
        # 28-Feb-2019 is the last business day of February
        assert cal.advance(date(2019, 2, 28), "1M", end_of_month=True) == date(2019, 3, 29)
        assert cal.advance(date(2019, 2, 28), "1M") == date(2019, 3, 28)

    def test_business_days_between(self):
        assert WeekendsOnly().business_days_between(date(2019, 5, 6), date(2019, 5, 13)) == 5


class TestDayCounters:

    def test_actual_365_fixed(self):
        assert Actual365Fixed().year_fraction(date(2019, 5, 2), date(2020, 5, 2)) == 366 / 365

    def test_actual_360(self):
        assert Actual360().year_fraction(date(2019, 1, 1), date(2019, 7, 1)) == 181 / 360

    def test_actual_actual(self):
        dc = ActualActual()
        assert dc.year_fraction(date(2020, 1, 1), date(2021, 1, 1)) == pytest.approx(1.0)
        assert dc.year_fraction(date(2019, 7, 1), date(2020, 7, 1)) == pytest.approx(
            184 / 365 + 182 / 366)

    def test_from_string(self):
        assert isinstance(day_counter_from_string("ACT/365F"), Actual365Fixed)
        with pytest.raises(ValueError):
            day_counter_from_string("30/360")


class TestCurves:

    def test_flat_forward_discount(self):
        curve = FlatForward(date(2019, 5, 2), 0.02)
        assert curve.discount(0.5) == pytest.approx(np.exp(-0.01))
        assert curve.discount(date(2020, 5, 1)) == pytest.approx(np.exp(-0.02))
        assert curve.zero_rate(1.0) == pytest.approx(0.02)

    def test_flat_forward_version_follows_quote(self):
        rate = SimpleQuote(0.02)
        curve = FlatForward(date(2019, 5, 2), rate)
        v0 = curve.version
        rate.set_value(0.03)
        assert curve.version != v0
        assert curve.discount(1.0) == pytest.approx(np.exp(-0.03))

    def test_reference_date_move_bumps_version(self):
        curve = FlatForward(date(2019, 5, 2), 0.02)
        v0 = curve.version
        curve.set_reference_date(date(2019, 5, 3))
        assert curve.version != v0
        assert curve.reference_date == date(2019, 5, 3)

    def test_interpolated_discount_curve(self):
        dates = [date(2019, 5, 2), date(2020, 5, 1), date(2021, 5, 1)]
        curve = InterpolatedDiscountCurve(dates, [1.0, np.exp(-0.02), np.exp(-0.05)])
        assert curve.discount(0.0) == pytest.approx(1.0)
        assert curve.discount(dates[1]) == pytest.approx(np.exp(-0.02))
        # log-linear between pillars, flat forward beyond
        t1 = curve.time_from_reference(dates[1])
        t2 = curve.time_from_reference(dates[2])
        slope = (-0.05 + 0.02) / (t2 - t1)
        assert curve.discount(t2 + 1.0) == pytest.approx(np.exp(-0.05 + slope))

    def test_interpolated_curve_rejects_bad_input(self):
        with pytest.raises(ValueError):
            InterpolatedDiscountCurve([date(2019, 5, 2), date(2020, 5, 1)], [0.99, 0.98])
