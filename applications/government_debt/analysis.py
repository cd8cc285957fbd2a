"""
Determinants of General Government Debt
=======================================

Fixed-effects panel analysis of general government gross debt (% of GDP)
across countries, using the debtpanel package.

Inputs (in --data-dir):
  - DebtPanelData.csv   country-year panel (region, year, GenDebt, ...)
  - ChinaUnemp.csv      year, Unemp  (gaps filled by cubic spline)
  - ArgentinaUnemp.csv  year, Unemp

Falls back to simulated data if the panel CSV is unavailable.
"""

import argparse
import logging
import os
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Add project root to path so debtpanel is importable without installation
THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = THIS_DIR.parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from debtpanel import PanelData
from debtpanel import io as d_io
from debtpanel import plots
from debtpanel.config import (
    ALL_VARIABLES, AnalysisConfig, ENTITY, INTERPOLATED_ENTITIES, TIME,
)
from debtpanel.pipeline import run_analysis


def simulate_debt_panel(n_countries=40, n_years=12, seed=42):
    """
    Simulate a country-year panel with the study's columns.

    DGP (within a country):
        GenDebt = 30 + alpha_i - 1.2*GDPGrowth + 0.8*GenSpend
                  - 0.6*Corruption + 0.5*Unemp + eps
    with alpha_i correlated with GenSpend, so fixed effects are required.

    Returns
    -------
    pandas.DataFrame
    """
    rng = np.random.default_rng(seed)
    N = n_countries * n_years
    region = np.repeat([f"Country{i:02d}" for i in range(n_countries)], n_years)
    year = np.tile(np.arange(2010, 2010 + n_years), n_countries)
    alpha = np.repeat(rng.normal(0, 15, n_countries), n_years)

    data = {name: rng.normal(0, 1, N) for name in ALL_VARIABLES}
    data["GDPGrowth"] = rng.normal(2.5, 2.0, N)
    data["GenSpend"] = 35 + 0.2 * alpha + rng.normal(0, 4, N)
    data["Inflation"] = rng.gamma(2.0, 1.5, N)
    data["Unemp"] = np.clip(rng.normal(7, 3, N), 1, None)
    data["Corruption"] = rng.uniform(20, 90, N)
    data["AgeDepRatio"] = rng.normal(50, 8, N)
    data["GenDebt"] = (30 + alpha - 1.2 * data["GDPGrowth"] + 0.8 * data["GenSpend"]
                       - 0.6 * data["Corruption"] + 0.5 * data["Unemp"]
                       + rng.normal(0, 3, N))

    frame = pd.DataFrame({ENTITY: region, TIME: year, **data})
    # Sprinkle missing values in a control
    frame.loc[rng.choice(N, size=N // 50, replace=False), "MiliSpend"] = np.nan
    return frame


def load_panel(data_dir):
    panel = d_io.read_panel_csv(os.path.join(data_dir, "DebtPanelData.csv"))
    for country in INTERPOLATED_ENTITIES:
        path = os.path.join(data_dir, f"{country}Unemp.csv")
        if os.path.exists(path):
            panel = d_io.fill_from_series(panel, country, d_io.read_series_csv(path))
    d_io.validate_interpolated(panel)
    return panel


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Determinants of Government Debt -- Panel Analysis"
    )
    parser.add_argument("--data-dir", default=str(THIS_DIR / "data"),
                        help="Directory holding DebtPanelData.csv and the unemployment series")
    parser.add_argument("--source", choices=["auto", "csv", "simulate"], default="auto",
                        help="'csv' requires the input files, 'simulate' uses synthetic "
                             "data, 'auto' tries csv then falls back (default: auto)")
    parser.add_argument("--output-dir", default=None,
                        help="Write coefficient tables and figures here")
    parser.add_argument("--alpha", type=float, default=0.05,
                        help="Decision threshold for Breusch-Pagan / Hausman (default: 0.05)")
    parser.add_argument("--workers", type=int, default=1,
                        help="Threads used across interaction models (default: 1)")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(levelname)s %(name)s: %(message)s")
    config = AnalysisConfig(alpha=args.alpha, max_workers=args.workers,
                            output_dir=args.output_dir)

    print("=" * 60)
    print("Determinants of Government Debt -- Panel Analysis")
    print("=" * 60)

    # --- Load data ---
    if args.source == "simulate":
        print("\n[Data] Using simulated data")
        panel = PanelData(simulate_debt_panel())
    elif args.source == "csv":
        panel = load_panel(args.data_dir)
    else:
        try:
            panel = load_panel(args.data_dir)
        except FileNotFoundError:
            print("\n[Data] Panel CSV unavailable, using simulated data")
            panel = PanelData(simulate_debt_panel())
    print(f"\n[Data] {panel!r}")

    corr = d_io.correlation_matrix(panel)
    high = [(a, b, corr.loc[a, b]) for i, a in enumerate(corr.index)
            for b in corr.columns[i + 1:] if abs(corr.loc[a, b]) > 0.7]
    print(f"\n[Collinearity] {len(high)} pairs with |r| > 0.7")
    for a, b, r in high:
        print(f"  {a} ~ {b}: {r:+.3f}")

    # --- Estimation ---
    result = run_analysis(panel, config)
    ch = result.choice
    print("\n[Model choice]")
    if ch.breusch_pagan is not None:
        print(f"  {ch.breusch_pagan}")
    if ch.hausman is not None:
        print(f"  {ch.hausman}")
    print(f"  -> {ch.model}{' (fallback)' if ch.fallback else ''}: {ch.reason}")

    core = result.core
    print(f"\n[Core] nobs={core.nobs}  entities={core.n_entities}  "
          f"dropped={core.dropped.n_dropped}  R2={core.rsquared:.3f}")
    if result.white is not None:
        print(f"  {result.white}")
    hc3 = result.core_tests["HC3"].table
    cl = result.core_tests["cluster"].table
    for term in hc3.index:
        print(f"  {term:<12s} {hc3.loc[term, 'estimate']:+9.3f}  "
              f"HC3 SE={hc3.loc[term, 'std_error']:.3f}  "
              f"cluster SE={cl.loc[term, 'std_error']:.3f}  "
              f"p={cl.loc[term, 'p_value']:.3f}")

    # --- Interactions ---
    print("\n[Interactions]")
    for outcome in result.interactions:
        if not outcome.ok:
            print(f"  {outcome.spec.name}: FAILED -- {outcome.error}")
            continue
        term = outcome.model.spec.terms[-1]
        row = outcome.coefficients[term]
        print(f"  {outcome.spec.name}: {term} = {row['estimate']:+.4f} "
              f"(SE={row['std_error']:.4f}, p={row['p_value']:.3f})  [{outcome.cov_reason}]")

    # --- Export ---
    outdir = config.output_dir
    if outdir:
        paths = d_io.write_tables(result.coefficient_tables(), outdir)
        paths.append(d_io.write_correlation(corr, outdir))
        paths.append(plots.savefig(plots.residuals_vs_fitted(core), outdir,
                                   "ResidualsVsFitted.png"))
        paths.append(plots.savefig(plots.debt_trends(panel), outdir,
                                   "DebtTrends.png"))
        paths.append(plots.savefig(
            plots.coefficient_plot(result.core_tests["cluster"], df=core.df_resid),
            outdir, "CoreCoefficients.png"))
        print(f"\n[Export] {len(paths)} files written to {outdir}")
    return result


if __name__ == "__main__":
    main()
