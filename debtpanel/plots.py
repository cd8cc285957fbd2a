"""
Figures for the debt study: residuals vs. fitted, debt trends by country,
and coefficient estimates with confidence intervals.
"""

import os

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from scipy import stats

# -- Style --
CB, CO, CG, CR, CP, CY = "#2171B5", "#E6550D", "#31A354", "#DE2D26", "#756BB1", "#888"
STYLE = {
    "figure.facecolor": "#FAFAFA", "axes.facecolor": "#FAFAFA",
    "axes.edgecolor": "#333", "axes.labelcolor": "#222",
    "font.size": 10, "axes.titlesize": 12, "axes.titleweight": "bold",
    "axes.grid": True, "grid.alpha": 0.25, "grid.color": "#AAA",
}


def savefig(fig, outdir, name):
    os.makedirs(outdir, exist_ok=True)
    path = os.path.join(outdir, name)
    fig.savefig(path, bbox_inches="tight", dpi=150)
    plt.close(fig)
    return path


def residuals_vs_fitted(model, ax=None):
    """Scatter of a FittedModel's residuals against its fitted values."""
    with plt.rc_context(STYLE):
        if ax is None:
            fig, ax = plt.subplots(figsize=(7, 4.5))
        else:
            fig = ax.figure
        ax.scatter(model.fitted, model.residuals, alpha=.7, s=25, c=CG,
                   marker="D", edgecolors="none")
        ax.axhline(0, color=CP, lw=1.5, ls="-.")
        ax.set_title("Residuals vs Fitted Values")
        ax.set_xlabel("Fitted Values")
        ax.set_ylabel("Residuals")
    return fig


def debt_trends(panel, variable="GenDebt", ax=None):
    """One line per entity of ``variable`` over time, no legend."""
    frame = panel.to_frame()
    with plt.rc_context(STYLE):
        if ax is None:
            fig, ax = plt.subplots(figsize=(9, 5))
        else:
            fig = ax.figure
        for _, g in frame.groupby(panel.entity):
            ax.plot(g[panel.time], g[variable], alpha=.5, lw=1)
        ax.set_title("Public Debt Trends by Country")
        ax.set_xlabel("Year")
        ax.set_ylabel("General Gross Debt (% of GDP)")
    return fig


def coefficient_plot(coef_test, level=0.95, df=None, ax=None):
    """
    Point estimates with two-sided confidence intervals.

    Parameters
    ----------
    coef_test : CoefficientTest
    level : float
        Confidence level.
    df : int or None
        t degrees of freedom; normal critical values when None.
    """
    table = coef_test.table.drop(index="const", errors="ignore")
    q = 0.5 + level / 2
    crit = stats.t.ppf(q, df) if df is not None else stats.norm.ppf(q)
    pos = np.arange(len(table))
    with plt.rc_context(STYLE):
        if ax is None:
            fig, ax = plt.subplots(figsize=(7, 0.45 * len(table) + 1.5))
        else:
            fig = ax.figure
        ax.errorbar(table["estimate"], pos, xerr=crit * table["std_error"],
                    fmt="o", color=CB, ecolor=CY, capsize=3)
        ax.axvline(0, color=CR, lw=1, ls="--")
        ax.set_yticks(pos)
        ax.set_yticklabels(table.index)
        ax.invert_yaxis()
        ax.set_title(f"{coef_test.name} ({coef_test.kind} SE, {level:.0%} CI)")
        ax.set_xlabel("Estimate")
    return fig
