"""
FX Black volatility surface built from delta-quoted smiles.

Market input is a matrix of vols: one row per option tenor, one column
per delta bucket (10-delta put, 25-delta put, ATM, 25-delta call,
10-delta call, ...). The surface turns that into a Black vol at any
(time, strike) in four steps:

    1. tenor → option date → time
       spot date = reference date + spot days; delivery = spot date + tenor
       on the joint (advance, adjust) calendar; the fixing date is the
       delivery date rolled back by the spot days
    2. quote conversion
       rows quoted in spot delta or with a non delta-neutral ATM are
       re-expressed in forward delta / delta-neutral ATM by fitting a
       smile through the row and reading it off at the canonical strikes
    3. time interpolation
       one variance curve per delta column (linear in total variance)
    4. smile construction at the query time
       column vols at t → canonical strikes → fitted smile section,
       memoized per time in a SmileCache

Which smile model is fitted in steps 2 and 4 is the only difference
between SviFxBlackVolatilitySurface, SabrFxBlackVolatilitySurface and
KahaleFxBlackVolatilitySurface. Each one sets ``smile_model`` and its
options, and the model is looked up in SMILE_BUILDERS.

Recalculation is lazy. Spot, curves and every vol quote carry version
stamps; each query compares them with the stamps seen at the last
calculation and, if anything moved, clears the smile cache and rebuilds
the converted matrix and the variance curves before answering.

Known approximation: the forward at time t is spot * P_for(t) / P_dom(t),
discounting from t rather than from the delivery date back to the spot
date.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from . import config
from .black_formula import BlackDeltaCalculator
from .black_vol import BlackVarianceCurve, BlackVolTermStructure, TimeLike
from .curves import YieldTermStructure
from .dates import (
    Actual365Fixed,
    BusinessDayConvention,
    Calendar,
    DayCounter,
    JointCalendar,
    NullCalendar,
    Period,
    TimeUnit,
    WeekendsOnly,
)
from .quotes import AtmType, DeltaType, DeltaVolQuote, SimpleQuote, as_quote
from .smile_cache import SmileCache
from .smile_sections import SmileModel, SmileSection, build_smile

logger = logging.getLogger(__name__)

DeltaVolMatrix = List[List[DeltaVolQuote]]


def _ordinal(n: int) -> str:
    suffix = "th" if 10 <= n % 100 <= 20 else {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


class RescaledSmileSection(SmileSection):
    """
    A smile read off another expiry's smile at rescaled strikes.

    Used before the first tenor: vol(t, K) = vol(t1, K * F(t) / F(t1)).
    """

    def __init__(self, base: SmileSection, exercise_time: float, strike_scale: float,
                 atm_level: float):
        super().__init__(exercise_time, atm_level)
        self.base = base
        self.strike_scale = strike_scale

    def min_strike(self) -> float:
        return self.base.min_strike() / self.strike_scale

    def max_strike(self) -> float:
        return self.base.max_strike() / self.strike_scale

    def volatility(self, strike: float) -> float:
        return self.base.volatility(strike * self.strike_scale)


class FxBlackVolatilitySurface(BlackVolTermStructure):
    """
    Delta-quoted FX vol surface; subclasses pick the smile model.

    Parameters
    ----------
    delta_vol_matrix : rows of DeltaVolQuote, one row per tenor
    spot : FX spot, float or SimpleQuote
    option_tenors : Periods or tenor strings ("1M", "1Y"), one per row
    domestic_curve, foreign_curve : discount curves of the two currencies
    spot_days : FX spot lag in business days
    advance_calendar : calendar used to count spot days and tenors
    adjust_calendar : joined with advance_calendar for delivery dates
    fixing_calendar : the reference date must be a business day on it
    business_day_convention : adjustment of the spot date
    day_counter : date → time mapping
    reference_date : fixed reference date; by default the surface follows
                     the domestic curve's reference date
    time_interpolation : "linear" or "cubic", in total variance
    force_monotone_variance : reject columns whose total variance decreases
    cache_size : smile cache capacity before a full flush
    smile_options : model options passed to the smile builder

    Raises
    ------
    ValueError : on any inconsistency between tenors, matrix and curves
    """

    smile_model: Optional[SmileModel] = None

    def __init__(
        self,
        delta_vol_matrix: DeltaVolMatrix,
        spot: Union[float, SimpleQuote],
        option_tenors: Sequence[Union[Period, str]],
        domestic_curve: YieldTermStructure,
        foreign_curve: YieldTermStructure,
        spot_days: int = 2,
        advance_calendar: Calendar = None,
        adjust_calendar: Calendar = None,
        fixing_calendar: Calendar = None,
        business_day_convention: BusinessDayConvention = BusinessDayConvention.FOLLOWING,
        day_counter: DayCounter = None,
        reference_date: date = None,
        time_interpolation: str = None,
        force_monotone_variance: bool = True,
        cache_size: int = None,
        **smile_options,
    ):
        self._moving = reference_date is None
        super().__init__(
            domestic_curve.reference_date if reference_date is None else reference_date,
            day_counter or Actual365Fixed(),
        )
        self._matrix = [list(row) for row in delta_vol_matrix]
        self.spot = as_quote(spot)
        self.domestic_curve = domestic_curve
        self.foreign_curve = foreign_curve
        self._option_tenors = [Period.parse(p) for p in option_tenors]
        self.spot_days = int(spot_days)
        if self.spot_days < 0:
            raise ValueError(f"spot days ({spot_days}) must be non-negative")
        self.advance_calendar = advance_calendar or WeekendsOnly()
        self.adjust_calendar = adjust_calendar or NullCalendar()
        self.fixing_calendar = fixing_calendar or WeekendsOnly()
        self.business_day_convention = business_day_convention
        self.time_interpolation = time_interpolation or config.TIME_INTERPOLATION
        self.force_monotone_variance = force_monotone_variance
        self.smile_options: Dict = dict(smile_options)
        self._cache = SmileCache(cache_size)

        self._seen_version = None
        self._vol_matrix: Optional[np.ndarray] = None
        self._vol_curves: List[BlackVarianceCurve] = []

        self._initialize_dates()
        self._check_inputs()

    # ════════════════════════════════════════════════════════════════════
    #  DATES
    # ════════════════════════════════════════════════════════════════════

    @property
    def quotes_per_smile(self) -> int:
        return len(self._matrix[0]) if self._matrix else 0

    def _initialize_dates(self) -> None:
        # column identity comes from the first row: a delta, or None for ATM
        self._deltas = []
        if self._matrix:
            self._deltas = [None if q.is_atm else q.delta for q in self._matrix[0]]
        self.joint_calendar = JointCalendar(self.advance_calendar, self.adjust_calendar)
        self.spot_date = self.spot_date_from_fixing(self._reference_date)
        self._option_dates = [self.option_date_from_tenor(p) for p in self._option_tenors]
        self._option_times = [self.time_from_reference(d) for d in self._option_dates]

    def spot_date_from_fixing(self, fixing_date: date) -> date:
        """FX spot date for a trade fixed on ``fixing_date``."""
        if not self.fixing_calendar.is_business_day(fixing_date):
            raise ValueError(f"FX fixing date {fixing_date} is not valid")
        if self.spot_days == 0:
            # advance would adjust the date for a zero lag, so set it explicitly
            return fixing_date
        d = self.advance_calendar.advance(fixing_date, self.spot_days)
        return self.joint_calendar.adjust(d, self.business_day_convention)

    def fixing_date_from_spot(self, spot_date: date) -> date:
        """Fixing date whose spot date is ``spot_date``, rolled back onto a fixing day."""
        if not self.joint_calendar.is_business_day(spot_date):
            raise ValueError(f"FX spot date {spot_date} is not valid")
        d = self.advance_calendar.advance(spot_date, -self.spot_days)
        return self.fixing_calendar.adjust(d, BusinessDayConvention.PRECEDING)

    def option_date_from_tenor(self, tenor: Union[Period, str]) -> date:
        """Fixing date of an option with the given tenor."""
        tenor = Period.parse(tenor)
        if tenor.unit in (TimeUnit.DAYS, TimeUnit.WEEKS):
            bdc = BusinessDayConvention.FOLLOWING
        else:
            bdc = BusinessDayConvention.MODIFIED_FOLLOWING
        delivery = self.joint_calendar.advance(self.spot_date, tenor, bdc, end_of_month=True)
        return self.fixing_date_from_spot(delivery)

    def move_reference_date(self, d: date) -> None:
        """Re-anchor the surface; dates, validation and all derived state are redone."""
        self._reference_date = d
        self._moving = False
        self._initialize_dates()
        self._check_inputs()
        self._invalidate()

    # ════════════════════════════════════════════════════════════════════
    #  VALIDATION
    # ════════════════════════════════════════════════════════════════════

    def _check_inputs(self) -> None:
        n_tenors = len(self._option_tenors)
        if n_tenors == 0:
            raise ValueError("at least one date required")
        if len(self._matrix) == 0 or self.quotes_per_smile < config.MIN_QUOTES_PER_SMILE:
            raise ValueError(
                f"at least {config.MIN_QUOTES_PER_SMILE} vol quotes required at each tenor"
            )
        if n_tenors != len(self._matrix):
            raise ValueError(
                f"mismatch between dimension of date vector ({n_tenors}) "
                f"and dimension of vol matrix ({len(self._matrix)})"
            )
        if self._deltas.count(None) != 1:
            raise ValueError("smiles must contain a single atm quote")
        if self.domestic_curve.reference_date != self._reference_date:
            raise ValueError(
                f"reference date of domestic term structure ({self.domestic_curve.reference_date}) "
                f"must match that of volatility term structure ({self._reference_date})"
            )
        if self.foreign_curve.reference_date != self._reference_date:
            raise ValueError(
                f"reference date of foreign term structure ({self.foreign_curve.reference_date}) "
                f"must match that of volatility term structure ({self._reference_date})"
            )

        for i, row in enumerate(self._matrix):
            nth = _ordinal(i + 1)
            if len(row) != self.quotes_per_smile:
                raise ValueError(
                    f"{nth} row of vol matrix contains {len(row)} vol quotes, "
                    f"whereas 1st row contains {self.quotes_per_smile}"
                )
            if not self._reference_date < self._option_dates[i]:
                raise ValueError(
                    f"option dates must be greater than reference date ({self._reference_date})"
                )
            if i > 0 and not self._option_dates[i] > self._option_dates[i - 1]:
                raise ValueError("option dates must be increasing")
            for j, quote in enumerate(row):
                if quote.delta_type != row[0].delta_type:
                    raise ValueError(f"{nth} row of vol matrix uses more than one delta convention")
                if self._deltas[j] is None:
                    matches = quote.is_atm
                else:
                    matches = not quote.is_atm and quote.delta == self._deltas[j]
                if not matches:
                    raise ValueError(f"deltas of {nth} row of vol matrix do not match those in 1st row")

    # ════════════════════════════════════════════════════════════════════
    #  LAZY RECALCULATION
    # ════════════════════════════════════════════════════════════════════

    def _current_version(self):
        return (
            self.spot.version,
            self.domestic_curve.version,
            self.foreign_curve.version,
            tuple(q.version for row in self._matrix for q in row),
        )

    def _invalidate(self) -> None:
        self._seen_version = None
        self._cache.clear()

    def _calculate(self) -> None:
        if self._moving and self.domestic_curve.reference_date != self._reference_date:
            self._reference_date = self.domestic_curve.reference_date
            self._initialize_dates()
            self._check_inputs()
            self._invalidate()

        version = self._current_version()
        if version == self._seen_version:
            return
        logger.debug("recalculating %s", type(self).__name__)
        self._cache.clear()
        self._perform_calculations()
        self._seen_version = version

    def _perform_calculations(self) -> None:
        self.convert_quotes()
        self._vol_curves = [
            BlackVarianceCurve(
                self._reference_date,
                self._option_times,
                self._vol_matrix[:, j],
                self.day_counter,
                interpolation=self.time_interpolation,
                force_monotone_variance=self.force_monotone_variance,
            )
            for j in range(self.quotes_per_smile)
        ]

    # ════════════════════════════════════════════════════════════════════
    #  QUOTE CONVERSION AND SMILES
    # ════════════════════════════════════════════════════════════════════

    def forward_value(self, t: float) -> float:
        """FX forward, spot * P_for(t) / P_dom(t)."""
        df_dom = self.domestic_curve.discount(t)
        df_for = self.foreign_curve.discount(t)
        return self.spot.value * df_for / df_dom

    def strikes_from_vols(self, t: float, vols: Sequence[float], delta_type: DeltaType,
                          atm_type: AtmType) -> List[float]:
        """
        Strikes of the smile's delta buckets given one vol per bucket.

        Raises
        ------
        ValueError : if ``vols`` does not have one entry per bucket
        """
        if len(vols) != self.quotes_per_smile:
            raise ValueError(f"vector of vols must be of length {self.quotes_per_smile}")
        spot = self.spot.value
        d_discount = self.domestic_curve.discount(t)
        f_discount = self.foreign_curve.discount(t)
        strikes = []
        for delta, vol in zip(self._deltas, vols):
            option_type = "call" if delta is None or delta > 0 else "put"
            calc = BlackDeltaCalculator(option_type, delta_type, spot, d_discount, f_discount,
                                        np.sqrt(t) * vol)
            if delta is None:
                strikes.append(calc.atm_strike(atm_type))
            else:
                strikes.append(calc.strike_from_delta(delta))
        return strikes

    def _build_smile(self, t: float, forward: float, strikes: Sequence[float],
                     vols: Sequence[float]) -> SmileSection:
        if self.smile_model is None:
            raise NotImplementedError(f"{type(self).__name__} does not define a smile model")
        return build_smile(self.smile_model, t, forward, strikes, vols, **self.smile_options)

    def convert_quotes(self) -> None:
        """
        Fill the vol matrix in forward delta / delta-neutral ATM terms.

        Rows already in those conventions are copied unchanged.
        """
        vol_matrix = np.zeros((len(self._matrix), self.quotes_per_smile))
        for i, row in enumerate(self._matrix):
            vols = [q.value for q in row]
            atm_type = next(q.atm_type for q in row if q.is_atm)
            delta_type = row[0].delta_type

            if delta_type != DeltaType.FWD or atm_type != AtmType.DELTA_NEUTRAL:
                t = self._option_times[i]
                current = self.strikes_from_vols(t, vols, delta_type, atm_type)
                smile = self._build_smile(t, self.forward_value(t), current, vols)
                required = self.strikes_from_vols(t, vols, DeltaType.FWD, AtmType.DELTA_NEUTRAL)
                vols = [smile.volatility(k) for k in required]
            vol_matrix[i, :] = vols
        self._vol_matrix = vol_matrix

    def smile_section_impl(self, t: float) -> SmileSection:
        """Smile at time t from the time-interpolated column vols, cached per time."""
        smile = self._cache.fetch_smile(t)
        if smile is not None:
            return smile

        # the variance curves are strike independent
        vols = [curve.black_vol(t, 0.0, extrapolate=True) for curve in self._vol_curves]
        strikes = self.strikes_from_vols(t, vols, DeltaType.FWD, AtmType.DELTA_NEUTRAL)
        smile = self._build_smile(t, self.forward_value(t), strikes, vols)
        self._cache.add_smile(t, smile)
        return smile

    def _smile_at(self, t: float) -> SmileSection:
        t1 = self._option_times[0]
        if t < t1:
            # flat extrapolation backwards at rescaled strike
            scale = self.forward_value(t) / self.forward_value(t1)
            return RescaledSmileSection(self.smile_section_impl(t1), t, scale, self.forward_value(t))
        return self.smile_section_impl(t)

    # ════════════════════════════════════════════════════════════════════
    #  QUERIES
    # ════════════════════════════════════════════════════════════════════

    def to_time(self, x: TimeLike) -> float:
        self._calculate()
        return super().to_time(x)

    def smile_section(self, x: TimeLike, extrapolate: bool = False) -> SmileSection:
        """Smile section at a time, date or tenor."""
        t = self.to_time(x)
        self.check_range(t, extrapolate)
        return self._smile_at(t)

    def _black_vol_impl(self, t: float, strike: float) -> float:
        return self._smile_at(t).volatility(strike)

    def _black_variance_impl(self, t: float, strike: float) -> float:
        vol = self._black_vol_impl(t, strike)
        return vol * vol * t

    def max_date(self) -> date:
        return self._option_dates[-1]

    def max_time(self) -> float:
        return self._option_times[-1]

    @property
    def version(self):
        return self._current_version()

    # ── inspectors ────────────────────────────────────────────────────

    def option_dates(self) -> List[date]:
        return list(self._option_dates)

    def option_tenors(self) -> List[Period]:
        return list(self._option_tenors)

    def option_times(self) -> List[float]:
        return list(self._option_times)

    def delta_vol_matrix(self) -> DeltaVolMatrix:
        return [list(row) for row in self._matrix]

    def vol_matrix(self) -> np.ndarray:
        """Vols in forward delta / delta-neutral ATM conventions."""
        self._calculate()
        return self._vol_matrix.copy()

    def cache_size(self) -> int:
        return len(self._cache)

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self._reference_date}, "
                f"{len(self._option_tenors)} tenors x {self.quotes_per_smile} quotes)")


class SviFxBlackVolatilitySurface(FxBlackVolatilitySurface):
    """SVI smile at every expiry."""

    smile_model = SmileModel.SVI

    def __init__(self, *args, vega_weighted: bool = None, **kwargs):
        super().__init__(*args, vega_weighted=vega_weighted, **kwargs)


class SabrFxBlackVolatilitySurface(FxBlackVolatilitySurface):
    """
    Short-maturity ZABR smile at every expiry.

    alpha comes from the ATM vol (vols[2] * sqrt(F)), beta is 0.5 and
    gamma shapes the vol-of-vol; gamma = 1 gives SABR.
    """

    smile_model = SmileModel.SABR

    def __init__(self, *args, gamma: float = None, **kwargs):
        gamma = config.SABR_GAMMA if gamma is None else gamma
        super().__init__(*args, gamma=gamma, beta=config.SABR_BETA, **kwargs)

    @property
    def gamma(self) -> float:
        return self.smile_options["gamma"]


class KahaleFxBlackVolatilitySurface(FxBlackVolatilitySurface):
    """SVI smile corrected for butterfly arbitrage by Kahale's construction."""

    smile_model = SmileModel.KAHALE

    def __init__(self, *args, interpolate: bool = None, exponential_extrapolation: bool = None,
                 delete_arbitrage_points: bool = None, **kwargs):
        super().__init__(
            *args,
            interpolate=interpolate,
            exponential_extrapolation=exponential_extrapolation,
            delete_arbitrage_points=delete_arbitrage_points,
            **kwargs,
        )


SURFACE_CLASSES = {
    SmileModel.SVI: SviFxBlackVolatilitySurface,
    SmileModel.SABR: SabrFxBlackVolatilitySurface,
    SmileModel.KAHALE: KahaleFxBlackVolatilitySurface,
}


def build_fx_vol_surface(model: Union[SmileModel, str], *args, **kwargs) -> FxBlackVolatilitySurface:
    """Surface for the given smile model ("svi", "sabr" or "kahale")."""
    return SURFACE_CLASSES[SmileModel(model)](*args, **kwargs)
