"""
Global configuration for the FX vol surface library.

Keeps all magic numbers in one place. Every constructor default reads
from here; override via constructor arguments, CLI args in main.py,
or by editing this file directly for persistent changes.
"""

from pathlib import Path


# ── paths ────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"


# ── example market (EUR/USD, 2-May-2019) ─────────────────────────────────
EXAMPLE_PAIR = "EURUSD"
EXAMPLE_REFERENCE_DATE = (2019, 5, 2)
EXAMPLE_SPOT = 1.1172
EXAMPLE_DOMESTIC_RATE = 0.02    # continuously compounded, Act/365F
EXAMPLE_FOREIGN_RATE = -0.01
EXAMPLE_SPOT_DAYS = 2
EXAMPLE_QUERY_DATE = (2020, 2, 3)
EXAMPLE_QUERY_STRIKE = 1.1


# ── surface construction ─────────────────────────────────────────────────
MIN_QUOTES_PER_SMILE = 3
ATM_COLUMN_INDEX = 2            # the ATM vol seeds the SABR alpha
TIME_INTERPOLATION = "linear"   # "linear" or "cubic" in total variance


# ── smile cache ──────────────────────────────────────────────────────────
SMILE_CACHE_MAX_SIZE = 100      # flush everything once this is exceeded


# ── SVI fit ──────────────────────────────────────────────────────────────
SVI_VEGA_WEIGHTED = False
SVI_MAX_NFEV = 2000
SVI_FTOL = 1e-12
SVI_XTOL = 1e-12
SVI_GTOL = 1e-12
SVI_RHO_BOUND = 0.999
SVI_MIN_B = 1e-8
SVI_MIN_SIGMA = 1e-6
SVI_FIT_TOLERANCE = 1e-4        # rms vol error above this logs a warning


# ── SABR / ZABR fit ──────────────────────────────────────────────────────
SABR_BETA = 0.5
SABR_GAMMA = 1.0                # gamma = 1 reduces ZABR to plain SABR
SABR_NU_GUESS = 0.5
SABR_RHO_GUESS = 0.0
SABR_MAX_NFEV = 500
SABR_THETA_BRACKET_STEPS = 60   # halvings tried when bracketing the geodesic root


# ── Kahale arbitrage-free smile ─────────────────────────────────────────
KAHALE_SMAX = 5.0               # upper bracket for the wing std dev search
KAHALE_ACCURACY = 1e-12
KAHALE_GAP = 1e-5               # finite-difference gap for the digital at the left wing
KAHALE_MONEYNESS_EPS = 1e-5
KAHALE_INTERPOLATE = False
KAHALE_EXPONENTIAL_EXTRAPOLATION = False
KAHALE_DELETE_ARBITRAGE_POINTS = False


# ── implied std dev inversion ───────────────────────────────────────────
IMPLIED_STDDEV_LOWER = 1e-8
IMPLIED_STDDEV_UPPER = 6.0
IMPLIED_STDDEV_TOL = 1e-12


# ── Dupire local vol ────────────────────────────────────────────────────
ILLEGAL_LOCAL_VOL = 1e10        # sentinel returned on arbitrage, callers must check
DUPIRE_DT = 1e-4
DUPIRE_DY_RELATIVE = 1e-4
DUPIRE_DY_MIN = 1e-6


# ── fixed-grid local vol adapter ────────────────────────────────────────
ADAPTER_X_MIN = 1e-3
ADAPTER_T_GRID = 100
ADAPTER_X_GRID = 100
MESHER_STD_DEVS = 4.0           # half-width of the log-strike mesher in std devs
MESHER_DENSITY = 0.1            # sinh concentration around the forward


# ── visualization ────────────────────────────────────────────────────────
DARK_BG = "#0c0c16"
GRID_COLOR_ALPHA = 0.12
AXIS_TEXT_COLOR = "rgba(200,200,200,0.8)"
TITLE_COLOR = "white"
DPI = 200                       # matplotlib export resolution
FIG_WIDTH_3D = 14
FIG_HEIGHT_3D = 9
FIG_WIDTH_2D = 12
FIG_HEIGHT_2D = 6
COLORMAP = "viridis"

# camera angles for 3D surface (matplotlib)
ELEV = 25
AZIM = -55

# plotly camera
PLOTLY_CAMERA = dict(eye=dict(x=1.85, y=-1.55, z=0.85))

# smile line colors (mpl + plotly)
SMILE_COLORS = ["#ff6b6b", "#ffd93d", "#6bcb77", "#4d96ff", "#b388ff", "#ff9f43"]

SMILE_PLOT_POINTS = 121         # strikes per smile curve
SMILE_PLOT_WIDTH = 0.12         # +-12% around the forward
