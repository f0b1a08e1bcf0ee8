#!/usr/bin/env python3
"""
main.py: build the FX vol surface and its local vol for a quote set.

Usage:
    python main.py                                   # SVI on the EUR/USD example
    python main.py --model kahale --strike 1.15      # other smile model / query
    python main.py --source csv --quotes quotes.csv  # own quote table
"""

import argparse
import logging
import sys
import time

from dateutil.parser import isoparse

from fxvolsurface import config
from fxvolsurface.fixed_local_vol import FixedLocalVolSurfaceAdapter
from fxvolsurface.fx_surface import build_fx_vol_surface
from fxvolsurface.local_vol import LocalVolSurface
from fxvolsurface.market_data import build_example_market, get_quote_frame
from fxvolsurface.summary import (
    compute_surface_statistics,
    fitted_parameters,
    local_vol_frame,
    smile_grid,
    vol_matrix_frame,
)
from fxvolsurface.visualization import (
    plot_local_vol_matplotlib,
    plot_local_vol_plotly,
    plot_smiles_matplotlib,
    plot_smiles_plotly,
)


def parse_args():
    p = argparse.ArgumentParser(description="Build FX implied and local volatility surfaces.")
    p.add_argument("--model", choices=["svi", "sabr", "kahale"], default="svi")
    p.add_argument("--source", choices=["example", "csv"], default="example")
    p.add_argument("--quotes", type=str, default=None, help="quote table for --source csv")
    p.add_argument("--strike", type=float, default=config.EXAMPLE_QUERY_STRIKE)
    p.add_argument("--date", type=str, default="%04d-%02d-%02d" % config.EXAMPLE_QUERY_DATE)
    p.add_argument("--x-min", type=float, default=0.5)
    p.add_argument("--x-max", type=float, default=1.6)
    p.add_argument("--t-grid", type=int, default=51)
    p.add_argument("--x-grid", type=int, default=200)
    p.add_argument("--no-local-vol", action="store_true")
    p.add_argument("--no-charts", action="store_true")
    p.add_argument("--no-html", action="store_true")
    p.add_argument("--verbose", action="store_true")
    return p.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    query_date = isoparse(args.date).date()

    print(f"\n{'='*60}")
    print(f"  FX Volatility Surface Builder")
    print(f"  Source: {args.source}  |  Pair: {config.EXAMPLE_PAIR}  |  Model: {args.model}")
    print(f"{'='*60}\n")

    # step 1: quotes and surface
    t0 = time.time()
    print("[1/4] Building implied vol surface...")
    try:
        quotes = get_quote_frame(source=args.source, path=args.quotes)
        market = build_example_market(quotes)
        surface = build_fx_vol_surface(args.model, **market)
        stats = compute_surface_statistics(surface)
    except (ValueError, OSError) as e:
        print(f"\n  ERROR: {e}")
        sys.exit(1)

    print(f"       Reference date: {surface.reference_date}")
    print(f"       Spot: {market['spot'].value:.4f}  (spot date {surface.spot_date})")
    print(f"       Tenors: {stats['n_tenors']} x {stats['n_quotes']} quotes")
    print(f"       Converted rows: {', '.join(stats['converted_rows']) or 'none'}")
    print(f"       ATM vol range: {stats['atm_vol_range'][0]:.2%} - {stats['atm_vol_range'][1]:.2%}")
    print("\n" + vol_matrix_frame(surface).to_string(float_format=lambda x: f"{x:.6f}"))
    print("\n" + fitted_parameters(surface).to_string(float_format=lambda x: f"{x:.6g}"))

    vol = surface.black_vol(query_date, args.strike)
    print(f"\n       Black vol at K={args.strike}, {query_date}: {vol:.6%}")

    # step 2: local vol
    adapter = None
    if not args.no_local_vol:
        print("\n[2/4] Building local vol...")
        lv = LocalVolSurface(surface, market["domestic_curve"], market["foreign_curve"], market["spot"])
        local = lv.local_vol(query_date, args.strike)
        if lv.is_illegal(local):
            print(f"       Local vol at K={args.strike}, {query_date}: illegal (arbitrage)")
        else:
            print(f"       Local vol at K={args.strike}, {query_date}: {local:.6%}")
        adapter = FixedLocalVolSurfaceAdapter(lv, args.x_max, args.x_min, args.t_grid, args.x_grid)
        stats = compute_surface_statistics(surface, adapter)
        print(f"       Grid: {args.t_grid} x {args.x_grid}, illegal nodes: {stats['n_illegal']}")
    else:
        print("\n[2/4] Skipping local vol (--no-local-vol flag)")

    grid = smile_grid(surface)
    lv_grid = local_vol_frame(adapter) if adapter is not None else None

    # step 3: static charts (matplotlib)
    if not args.no_charts:
        print("\n[3/4] Generating static charts...")
        plot_smiles_matplotlib(grid, model=args.model)
        print(f"       -> output/fx_smiles_2d.png")
        if lv_grid is not None:
            plot_local_vol_matplotlib(lv_grid)
            print(f"       -> output/local_vol_3d.png")
    else:
        print("\n[3/4] Skipping charts (--no-charts flag)")

    # step 4: interactive HTML (plotly)
    if not args.no_charts and not args.no_html:
        print("\n[4/4] Generating interactive HTML...")
        plot_smiles_plotly(grid, model=args.model)
        print(f"       -> output/fx_smiles_2d.html")
        if lv_grid is not None:
            plot_local_vol_plotly(lv_grid)
            print(f"       -> output/local_vol_3d.html")
    else:
        print("\n[4/4] Skipping HTML")

    # save tables
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    quotes.to_csv(config.DATA_DIR / "delta_vol_quotes.csv", index=False)
    vol_matrix_frame(surface).to_csv(config.DATA_DIR / "converted_vols.csv")
    grid.to_csv(config.DATA_DIR / "smile_grid.csv", index=False)
    if lv_grid is not None:
        lv_grid.to_csv(config.DATA_DIR / "local_vol_grid.csv", index=False)
    print(f"\n       Tables saved to data/")

    elapsed = time.time() - t0
    print(f"\n  Done in {elapsed:.1f}s. Charts are in output/\n")


if __name__ == "__main__":
    main()
