"""
Shared test fixtures and pytest configuration.
"""

from datetime import date

import pytest
import numpy as np

from fxvolsurface.black_vol import BlackConstantVol
from fxvolsurface.curves import FlatForward
from fxvolsurface.fx_surface import SviFxBlackVolatilitySurface
from fxvolsurface.market_data import build_example_market


REFERENCE_DATE = date(2019, 5, 2)
QUERY_DATE = date(2020, 2, 3)


@pytest.fixture(autouse=True)
def set_random_seed():
    """Ensure test reproducibility."""
    np.random.seed(42)
    yield


@pytest.fixture
def market():
    """Keyword arguments of the EUR/USD example surface."""
    return build_example_market()


@pytest.fixture
def svi_surface(market):
    return SviFxBlackVolatilitySurface(**market)


@pytest.fixture
def flat_market():
    """Constant 15% vol with zero rates and spot 1: forward is 1 everywhere."""
    domestic = FlatForward(REFERENCE_DATE, 0.0)
    foreign = FlatForward(REFERENCE_DATE, 0.0)
    vol = BlackConstantVol(REFERENCE_DATE, 0.15)
    return vol, domestic, foreign, 1.0
