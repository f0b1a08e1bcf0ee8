"""
Report tables for an FX vol surface.

Everything here reads a built surface (and optionally a fixed local vol
grid) and returns pandas objects for printing, CSV export or plotting:

    quote_matrix_frame      market quotes, tenor x delta bucket
    vol_matrix_frame        the same after conversion to forward delta
    smile_grid              long table of vols on a strike grid per expiry
    fitted_parameters       model parameters and fit errors per expiry
    local_vol_frame         long table of a FixedLocalVolSurfaceAdapter grid
    compute_surface_statistics   a dict of headline numbers

Nothing here mutates the surface; queries may trigger its lazy
recalculation.
"""

from typing import Dict, Sequence

import numpy as np
import pandas as pd

from . import config
from .fixed_local_vol import FixedLocalVolSurfaceAdapter
from .fx_surface import FxBlackVolatilitySurface, RescaledSmileSection
from .smile_sections import KahaleSmileSection, SmileSection, SviSmileSection, ZabrSmileSection


def _column_labels(surface: FxBlackVolatilitySurface):
    return [q.label() for q in surface.delta_vol_matrix()[0]]


def quote_matrix_frame(surface: FxBlackVolatilitySurface) -> pd.DataFrame:
    """Market vols as quoted, one row per tenor, plus each row's conventions."""
    matrix = surface.delta_vol_matrix()
    frame = pd.DataFrame(
        [[q.value for q in row] for row in matrix],
        index=[str(p) for p in surface.option_tenors()],
        columns=_column_labels(surface),
    )
    frame["delta_type"] = [row[0].delta_type.value for row in matrix]
    frame["atm_type"] = [next(q.atm_type.value for q in row if q.is_atm) for row in matrix]
    frame.index.name = "tenor"
    return frame


def vol_matrix_frame(surface: FxBlackVolatilitySurface) -> pd.DataFrame:
    """
    Converted vols (forward delta, delta-neutral ATM) with dates and times.

    Adds the 25-delta risk reversal and butterfly when both 25-delta
    buckets are present.
    """
    labels = _column_labels(surface)
    frame = pd.DataFrame(
        surface.vol_matrix(),
        index=[str(p) for p in surface.option_tenors()],
        columns=labels,
    )
    frame.insert(0, "time", surface.option_times())
    frame.insert(0, "option_date", surface.option_dates())
    if "25C" in labels and "25P" in labels:
        frame["rr25"] = frame["25C"] - frame["25P"]
        frame["bf25"] = 0.5 * (frame["25C"] + frame["25P"]) - frame["ATM"]
    frame.index.name = "tenor"
    return frame


def smile_grid(
    surface: FxBlackVolatilitySurface,
    times: Sequence[float] = None,
    n_points: int = None,
    width: float = None,
) -> pd.DataFrame:
    """
    Black vols on a strike grid around the forward at each expiry.

    Parameters
    ----------
    surface : the FX surface
    times : expiries to sample (default: the surface's option times)
    n_points : strikes per expiry (default: config.SMILE_PLOT_POINTS)
    width : half-width of the grid as a fraction of the forward
            (default: config.SMILE_PLOT_WIDTH)

    Returns
    -------
    DataFrame with columns [time, forward, strike, moneyness, vol]
    """
    if times is None:
        times = surface.option_times()
    if n_points is None:
        n_points = config.SMILE_PLOT_POINTS
    if width is None:
        width = config.SMILE_PLOT_WIDTH

    records = []
    for t in times:
        smile = surface.smile_section(t, extrapolate=True)
        forward = surface.forward_value(t)
        for k in np.linspace(forward * (1.0 - width), forward * (1.0 + width), n_points):
            records.append({
                "time": t,
                "forward": forward,
                "strike": k,
                "moneyness": k / forward,
                "vol": smile.volatility(k),
            })
    return pd.DataFrame(records)


def _smile_parameters(smile: SmileSection) -> Dict[str, float]:
    if isinstance(smile, RescaledSmileSection):
        return _smile_parameters(smile.base)
    if isinstance(smile, KahaleSmileSection):
        out = _smile_parameters(smile.source)
        out.update(left_index=smile.left_index, right_index=smile.right_index)
        return out
    if isinstance(smile, SviSmileSection):
        out = smile.params
        out.update(rms_error=smile.rms_error, max_error=smile.max_error)
        return out
    if isinstance(smile, ZabrSmileSection):
        return dict(alpha=smile.alpha, beta=smile.beta, gamma=smile.gamma, nu=smile.nu,
                    rho=smile.rho, rms_error=smile.rms_error, max_error=smile.max_error)
    return {}


def fitted_parameters(surface: FxBlackVolatilitySurface) -> pd.DataFrame:
    """Smile model parameters and fit errors at each option tenor."""
    rows = []
    for tenor, t in zip(surface.option_tenors(), surface.option_times()):
        row = {"tenor": str(tenor), "time": t}
        row.update(_smile_parameters(surface.smile_section(t)))
        rows.append(row)
    return pd.DataFrame(rows).set_index("tenor")


def local_vol_frame(adapter: FixedLocalVolSurfaceAdapter) -> pd.DataFrame:
    """
    The adapter's grid as a long table.

    Returns
    -------
    DataFrame with columns [time, strike, local_vol, illegal]; illegal
    nodes keep the sentinel in local_vol
    """
    illegal_value = adapter.source.illegal_local_vol
    records = []
    for i, t in enumerate(adapter.times):
        for j, k in enumerate(adapter.strikes[i]):
            v = adapter.matrix[j, i]
            records.append({
                "time": t,
                "strike": k,
                "local_vol": v,
                "illegal": v == illegal_value,
            })
    return pd.DataFrame(records)


def compute_surface_statistics(
    surface: FxBlackVolatilitySurface,
    adapter: FixedLocalVolSurfaceAdapter = None,
) -> dict:
    """
    Summary statistics for the surface.

    Returns
    -------
    dict with keys:
        n_tenors        : number of option tenors
        n_quotes        : quotes per smile
        time_range      : (first, last) option time
        quote_vol_range : (min, max) of the quoted vols
        atm_vol_range   : (min, max) of the converted ATM vols
        rr25_range      : (min, max) 25-delta risk reversal, NaN if not quoted
        converted_rows  : tenors whose quotes needed conversion
    and, with an adapter:
        n_grid_nodes, n_illegal, local_vol_range (legal nodes only)
    """
    quotes = quote_matrix_frame(surface)
    converted = vol_matrix_frame(surface)
    labels = _column_labels(surface)

    stats = {
        "n_tenors": len(quotes),
        "n_quotes": len(labels),
        "time_range": (converted["time"].min(), converted["time"].max()),
        "quote_vol_range": (quotes[labels].values.min(), quotes[labels].values.max()),
        "atm_vol_range": (converted["ATM"].min(), converted["ATM"].max()),
        "converted_rows": [
            tenor for tenor, dt, at in zip(quotes.index, quotes["delta_type"], quotes["atm_type"])
            if dt != "Fwd" or at != "AtmDeltaNeutral"
        ],
    }
    if "rr25" in converted.columns:
        stats["rr25_range"] = (converted["rr25"].min(), converted["rr25"].max())
    else:
        stats["rr25_range"] = (np.nan, np.nan)

    if adapter is not None:
        grid = local_vol_frame(adapter)
        legal = grid.loc[~grid["illegal"], "local_vol"]
        stats["n_grid_nodes"] = len(grid)
        stats["n_illegal"] = int(grid["illegal"].sum())
        stats["local_vol_range"] = (legal.min(), legal.max()) if len(legal) else (np.nan, np.nan)

    return stats
