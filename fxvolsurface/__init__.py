"""
fx-vol-surface
==============
FX implied volatility surfaces from delta-quoted smiles, and the Dupire
local volatility implied by them.

Modules:
    quotes           - Delta/ATM conventions, mutable quotes
    dates            - Periods, calendars, business day rules, day counters
    curves           - Discount curves
    black_formula    - Black prices, implied std dev, delta <-> strike
    black_vol        - Black vol term structures and variance curves
    smile_sections   - SVI, ZABR and Kahale smile sections
    smile_cache      - Per-expiry smile memo
    fx_surface       - Delta-quoted FX Black vol surfaces
    local_vol        - Dupire local vol with arbitrage sentinel
    fixed_local_vol  - Local vol frozen on a (time, strike) grid
    market_data      - Quote tables and the EUR/USD example market
    summary          - Report tables and statistics
    visualization    - Smile and local vol charts (matplotlib + plotly)
    config           - Global constants and defaults
"""

__version__ = "0.3.0"
__author__ = "Leo"
