"""
Local vol frozen on a (time, strike) grid.

A finite-difference pricer walks the same grid over and over, and each
Dupire evaluation costs a handful of smile queries. The adapter pays
that price once: it samples the continuous local vol surface at every
node of a time grid and a strike grid, and afterwards only interpolates.

    TimeGrid                    uniform grid on [0, T] shared by all slices
    LogStrikeMesher             non-uniform strikes, dense around the forward
    FixedLocalVolSurface        lookup over a stored [strike][time] matrix
    FixedLocalVolSurfaceAdapter samples a LocalVolSurface into the above

Nodes where the source returns the arbitrage sentinel keep the sentinel.
"""

import logging
from datetime import date
from typing import List, Sequence, Union

import numpy as np

from . import config
from .dates import Actual365Fixed, DayCounter
from .local_vol import LocalVolSurface

logger = logging.getLogger(__name__)


class TimeGrid:
    """``steps + 1`` equally spaced times from 0 to ``end``."""

    def __init__(self, end: float, steps: int):
        if end <= 0.0:
            raise ValueError(f"time grid end ({end}) must be positive")
        if steps < 1:
            raise ValueError(f"at least one time step required, got {steps}")
        self.times = np.linspace(0.0, end, steps + 1)

    @property
    def dt(self) -> float:
        return float(self.times[1] - self.times[0])

    def __len__(self) -> int:
        return len(self.times)

    def __getitem__(self, i):
        return self.times[i]

    def __iter__(self):
        return iter(self.times)


class LogStrikeMesher:
    """
    Strike slice concentrated around the forward in log space.

    The slice spans ln F(t) +- std_devs * sigma_atm * sqrt(t). Points are
    placed by a sinh map so that their spacing is smallest at ln F(t);
    ``density`` sets the width of the dense region as a fraction of the
    span (smaller means tighter).
    """

    def __init__(self, std_devs: float = None, density: float = None):
        self.std_devs = config.MESHER_STD_DEVS if std_devs is None else std_devs
        self.density = config.MESHER_DENSITY if density is None else density
        if self.std_devs <= 0.0:
            raise ValueError(f"std_devs ({self.std_devs}) must be positive")
        if self.density <= 0.0:
            raise ValueError(f"density ({self.density}) must be positive")

    def log_strikes(self, t: float, forward: float, atm_vol: float, size: int) -> np.ndarray:
        if size < 2:
            raise ValueError(f"at least two strikes required, got {size}")
        center = np.log(forward)
        half_width = self.std_devs * atm_vol * np.sqrt(t)
        x_min, x_max = center - half_width, center + half_width

        scale = self.density * (x_max - x_min)
        c1 = np.arcsinh((x_min - center) / scale)
        c2 = np.arcsinh((x_max - center) / scale)
        u = np.linspace(0.0, 1.0, size)
        x = center + scale * np.sinh(c1 + (c2 - c1) * u)
        # pin the ends against rounding
        x[0], x[-1] = x_min, x_max
        return x

    def strikes(self, t: float, forward: float, atm_vol: float, size: int) -> np.ndarray:
        return np.exp(self.log_strikes(t, forward, atm_vol, size))


class FixedLocalVolSurface:
    """
    Local vol given on a grid.

    Parameters
    ----------
    reference_date : date of t = 0
    times : expiry times, strictly increasing
    strikes : one strike array shared by all times, or one array per time
    matrix : local vols indexed [strike][time]
    day_counter : used for date queries

    Notes
    -----
    Lookups are linear in strike with the end values held flat beyond
    each slice, then linear in time between the two neighbouring slices.
    Before the first and after the last time the nearest slice is used.
    """

    def __init__(self, reference_date: date, times: Sequence[float],
                 strikes: Union[Sequence[float], Sequence[Sequence[float]]],
                 matrix, day_counter: DayCounter = None):
        self.reference_date = reference_date
        self.day_counter = day_counter or Actual365Fixed()
        self.times = np.asarray(times, dtype=float)
        self.matrix = np.asarray(matrix, dtype=float)

        if len(self.times) == 0:
            raise ValueError("at least one time required")
        if np.any(np.diff(self.times) <= 0):
            raise ValueError("times must be strictly increasing")

        strikes = np.asarray(strikes, dtype=float)
        if strikes.ndim == 1:
            self.strikes: List[np.ndarray] = [strikes] * len(self.times)
        else:
            if len(strikes) != len(self.times):
                raise ValueError(
                    f"mismatch between number of strike slices ({len(strikes)}) "
                    f"and number of times ({len(self.times)})"
                )
            self.strikes = [np.asarray(s) for s in strikes]

        if self.matrix.shape != (len(self.strikes[0]), len(self.times)):
            raise ValueError(
                f"local vol matrix has shape {self.matrix.shape}, "
                f"expected ({len(self.strikes[0])}, {len(self.times)})"
            )
        for s in self.strikes:
            if len(s) != len(self.strikes[0]):
                raise ValueError("all strike slices must have the same size")
            if np.any(np.diff(s) < 0):
                raise ValueError("strikes must be non-decreasing within a slice")

    def max_time(self) -> float:
        return float(self.times[-1])

    def min_strike(self) -> float:
        return float(min(s[0] for s in self.strikes))

    def max_strike(self) -> float:
        return float(max(s[-1] for s in self.strikes))

    def _slice_vol(self, i: int, strike: float) -> float:
        s = self.strikes[i]
        column = self.matrix[:, i]
        if s[0] == s[-1]:
            # degenerate slice: take the middle row
            return float(column[len(column) // 2])
        return float(np.interp(strike, s, column))

    def local_vol(self, x: Union[float, date], strike: float) -> float:
        t = self.day_counter.year_fraction(self.reference_date, x) if isinstance(x, date) else float(x)
        if t < 0.0:
            raise ValueError(f"negative time ({t}) given")

        t = min(self.times[-1], max(t, self.times[0]))
        idx = int(np.searchsorted(self.times, t))
        if np.isclose(t, self.times[idx], rtol=1e-12, atol=1e-14):
            return self._slice_vol(idx, strike)

        t0, t1 = self.times[idx - 1], self.times[idx]
        early = self._slice_vol(idx - 1, strike)
        late = self._slice_vol(idx, strike)
        return early + (late - early) * (t - t0) / (t1 - t0)


class FixedLocalVolSurfaceAdapter:
    """
    Sample a LocalVolSurface once onto a fixed grid.

    Parameters
    ----------
    local_vol : continuous local vol surface
    x_max : upper strike of the uniform strike grid
    x_min : lower strike of the uniform strike grid
    t_grid : number of time steps
    x_grid : number of strikes per time
    max_time : end of the time grid (default: the source's max time)
    mesher : LogStrikeMesher; replaces the uniform strikes with one
             forward-centred slice per time

    Example
    -------
    >>> adapter = FixedLocalVolSurfaceAdapter(lv, 1.6, 0.5, 51, 200)
    >>> adapter.local_vol(adapter.times[10], adapter.strikes[10][42])
    """

    def __init__(
        self,
        local_vol: LocalVolSurface,
        x_max: float,
        x_min: float = None,
        t_grid: int = None,
        x_grid: int = None,
        max_time: float = None,
        mesher: LogStrikeMesher = None,
    ):
        x_min = config.ADAPTER_X_MIN if x_min is None else x_min
        t_grid = config.ADAPTER_T_GRID if t_grid is None else t_grid
        x_grid = config.ADAPTER_X_GRID if x_grid is None else x_grid
        if x_grid < 2:
            raise ValueError(f"at least two strikes required, got {x_grid}")
        if not x_max > x_min:
            raise ValueError(f"x_max ({x_max}) must exceed x_min ({x_min})")

        self.source = local_vol
        self.x_min, self.x_max = x_min, x_max
        self.mesher = mesher
        end = local_vol.max_time() if max_time is None else max_time
        self.time_grid = TimeGrid(end, t_grid)
        times = self.time_grid.times[1:]

        logger.info(
            "sampling local vol on %d times x %d strikes (%s strikes, T=%.4f)",
            len(times), x_grid, "log-meshed" if mesher else "uniform", end,
        )

        if mesher is None:
            uniform = np.linspace(x_min, x_max, x_grid)
            strikes = [uniform] * len(times)
        else:
            strikes = []
            for t in times:
                forward = local_vol.forward_value(t)
                atm_vol = local_vol.black_surface.black_vol(t, forward, extrapolate=True)
                strikes.append(mesher.strikes(t, forward, atm_vol, x_grid))

        matrix = np.empty((x_grid, len(times)))
        for i, t in enumerate(times):
            for j, k in enumerate(strikes[i]):
                matrix[j, i] = local_vol.local_vol(t, k, extrapolate=True)

        n_illegal = int(np.sum(matrix == local_vol.illegal_local_vol))
        if n_illegal:
            logger.info("%d of %d grid nodes hold the illegal local vol", n_illegal, matrix.size)

        self.surface = FixedLocalVolSurface(
            local_vol.reference_date, times, strikes, matrix, local_vol.day_counter,
        )

    @property
    def reference_date(self) -> date:
        return self.surface.reference_date

    @property
    def times(self) -> np.ndarray:
        return self.surface.times

    @property
    def strikes(self) -> List[np.ndarray]:
        return self.surface.strikes

    @property
    def matrix(self) -> np.ndarray:
        return self.surface.matrix

    def max_time(self) -> float:
        return self.surface.max_time()

    def local_vol(self, x: Union[float, date], strike: float) -> float:
        return self.surface.local_vol(x, strike)
