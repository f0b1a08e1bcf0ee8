"""
Delta-vol quote tables and the EUR/USD example market.

Quotes travel as a flat pandas table, one row per quote:

    tenor       "1M", "1Y", ...
    vol         Black vol, decimal
    delta       signed delta (puts negative), NaN for the ATM quote
    delta_type  "spot", "fwd", "pa_spot" or "pa_fwd"
    atm_type    "delta_neutral", "spot", "fwd", ... for the ATM quote,
                empty for the others

build_delta_vol_matrix turns such a table into the tenor list and the
row-per-tenor DeltaVolQuote matrix the surfaces take. Row order inside
a tenor is kept, so the table decides the column order of the smile.

Two sources feed the same pipeline:
    1. example: the 2-May-2019 EUR/USD market hard-coded below
    2. csv: a file with the columns above
"""

from datetime import date
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from . import config
from .curves import FlatForward
from .dates import (
    TARGET,
    Actual365Fixed,
    BusinessDayConvention,
    Period,
    UnitedStates,
    WeekendsOnly,
)
from .quotes import AtmType, DeltaType, DeltaVolQuote, SimpleQuote

QUOTE_COLUMNS = ["tenor", "vol", "delta", "delta_type", "atm_type"]

EXAMPLE_TENORS = ["1M", "2M", "3M", "6M", "9M", "1Y"]
EXAMPLE_DELTAS = [-0.10, -0.25, None, 0.25, 0.10]
EXAMPLE_VOLS = [
    [0.0554625, 0.0514875, 0.0483000, 0.0483125, 0.0499875],
    [0.0599625, 0.0554875, 0.0522000, 0.0524125, 0.0544375],
    [0.0627500, 0.0578750, 0.0544500, 0.0548750, 0.0574000],
    [0.0681875, 0.0620750, 0.0582000, 0.0590750, 0.0628125],
    [0.0716875, 0.0648500, 0.0607500, 0.0619000, 0.0663125],
    [0.0744375, 0.0670750, 0.0628500, 0.0640750, 0.0690625],
]
# short tenors are quoted in spot delta, the longer ones in forward delta
EXAMPLE_DELTA_TYPES = ["spot", "spot", "spot", "spot", "fwd", "fwd"]


# ════════════════════════════════════════════════════════════════════════
#  TABLE → QUOTE MATRIX
# ════════════════════════════════════════════════════════════════════════

def _is_blank(x) -> bool:
    return x is None or (isinstance(x, float) and np.isnan(x)) or x == ""


def build_delta_vol_matrix(frame: pd.DataFrame) -> Tuple[List[Period], List[List[DeltaVolQuote]]]:
    """
    Group a quote table into tenors and rows of DeltaVolQuote.

    Parameters
    ----------
    frame : DataFrame with columns [tenor, vol, delta, delta_type, atm_type]

    Returns
    -------
    tenors : Periods in order of first appearance
    matrix : one list of quotes per tenor

    Raises
    ------
    ValueError : on missing columns, unknown conventions, or a row that
                 has both or neither of delta and atm_type
    """
    missing = [c for c in QUOTE_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"quote table is missing columns: {missing}")
    if frame.empty:
        raise ValueError("quote table is empty")

    tenors: List[Period] = []
    matrix: List[List[DeltaVolQuote]] = []
    rows: Dict[Period, List[DeltaVolQuote]] = {}

    for rec in frame[QUOTE_COLUMNS].itertuples(index=False):
        tenor = Period.parse(str(rec.tenor))
        delta_type = DeltaType.from_string(str(rec.delta_type))
        if _is_blank(rec.delta):
            quote = DeltaVolQuote.atm_quote(
                float(rec.vol), delta_type,
                AtmType.from_string(None if _is_blank(rec.atm_type) else str(rec.atm_type)),
            )
            if quote.atm_type == AtmType.NULL:
                raise ValueError(f"{tenor} quote without delta needs an atm_type")
        else:
            if not _is_blank(rec.atm_type):
                raise ValueError(f"{tenor} quote has both a delta and an atm_type")
            quote = DeltaVolQuote.delta_quote(float(rec.delta), float(rec.vol), delta_type)

        if tenor not in rows:
            rows[tenor] = []
            tenors.append(tenor)
            matrix.append(rows[tenor])
        rows[tenor].append(quote)

    return tenors, matrix


def quote_frame_from_matrix(tenors, matrix: List[List[DeltaVolQuote]]) -> pd.DataFrame:
    """Inverse of build_delta_vol_matrix, with the quotes' current values."""
    records = []
    for tenor, row in zip(tenors, matrix):
        for q in row:
            records.append({
                "tenor": str(Period.parse(tenor)),
                "vol": q.value,
                "delta": np.nan if q.is_atm else q.delta,
                "delta_type": q.delta_type.value,
                "atm_type": q.atm_type.value if q.is_atm else "",
            })
    return pd.DataFrame(records, columns=QUOTE_COLUMNS)


# ════════════════════════════════════════════════════════════════════════
#  EXAMPLE MARKET
# ════════════════════════════════════════════════════════════════════════

def example_quote_frame() -> pd.DataFrame:
    """The 2-May-2019 EUR/USD delta-vol quotes as a table."""
    records = []
    for tenor, vols, delta_type in zip(EXAMPLE_TENORS, EXAMPLE_VOLS, EXAMPLE_DELTA_TYPES):
        for delta, vol in zip(EXAMPLE_DELTAS, vols):
            records.append({
                "tenor": tenor,
                "vol": vol,
                "delta": np.nan if delta is None else delta,
                "delta_type": delta_type,
                "atm_type": "delta_neutral" if delta is None else "",
            })
    return pd.DataFrame(records, columns=QUOTE_COLUMNS)


def build_example_market(frame: pd.DataFrame = None) -> dict:
    """
    Constructor arguments of an FX surface for the example market.

    Spot 1.1172, flat 2% USD and -1% EUR curves (Act/365F), two spot
    days on TARGET, delivery dates also adjusted for US holidays.

    Returns
    -------
    dict : keyword arguments for FxBlackVolatilitySurface; spot and the
           curve rates are SimpleQuotes, so they can be bumped in place
    """
    if frame is None:
        frame = example_quote_frame()
    tenors, matrix = build_delta_vol_matrix(frame)

    reference_date = date(*config.EXAMPLE_REFERENCE_DATE)
    day_counter = Actual365Fixed()
    return dict(
        delta_vol_matrix=matrix,
        spot=SimpleQuote(config.EXAMPLE_SPOT),
        option_tenors=tenors,
        domestic_curve=FlatForward(reference_date, SimpleQuote(config.EXAMPLE_DOMESTIC_RATE),
                                   day_counter),
        foreign_curve=FlatForward(reference_date, SimpleQuote(config.EXAMPLE_FOREIGN_RATE),
                                  day_counter),
        spot_days=config.EXAMPLE_SPOT_DAYS,
        advance_calendar=TARGET(),
        adjust_calendar=UnitedStates(),
        fixing_calendar=WeekendsOnly(),
        business_day_convention=BusinessDayConvention.FOLLOWING,
        day_counter=day_counter,
    )


# ════════════════════════════════════════════════════════════════════════
#  UNIFIED INTERFACE
# ════════════════════════════════════════════════════════════════════════

def get_quote_frame(source: str = "example", path: str = None) -> pd.DataFrame:
    """
    Main entry point for getting delta-vol quotes.

    Parameters
    ----------
    source : "example" or "csv"
    path : file to read in csv mode

    Returns
    -------
    DataFrame with the quote table columns
    """
    if source == "example":
        return example_quote_frame()
    elif source == "csv":
        if path is None:
            raise ValueError("csv source needs a path")
        frame = pd.read_csv(path, keep_default_na=True)
        frame["atm_type"] = frame["atm_type"].fillna("")
        return frame
    else:
        raise ValueError(f"Unknown source: {source}. Use 'example' or 'csv'.")
