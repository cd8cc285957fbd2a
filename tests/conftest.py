from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from debtpanel import PanelData
from debtpanel.config import ALL_VARIABLES


@pytest.fixture
def rng():
    return np.random.default_rng(999)


@pytest.fixture
def exact_panel():
    """3 countries x 4 years, debt = 2*growth - 1*spend + country intercept."""
    r = np.random.default_rng(7)
    region = np.repeat(["A", "B", "C"], 4)
    year = np.tile([2000, 2001, 2002, 2003], 3)
    growth = r.normal(2, 1, 12)
    spend = r.normal(30, 5, 12)
    intercept = np.repeat([10.0, -4.0, 25.0], 4)
    debt = 2 * growth - 1 * spend + intercept
    return PanelData(pd.DataFrame({
        "region": region, "year": year,
        "GenDebt": debt, "GDPGrowth": growth, "GenSpend": spend,
    }))


@pytest.fixture
def fe_panel(rng):
    """
    30 countries x 8 years with entity effects correlated with x1, so
    fixed effects is consistent and random effects is not.
    """
    n, T = 30, 8
    region = np.repeat([f"c{i:02d}" for i in range(n)], T)
    year = np.tile(np.arange(2000, 2000 + T), n)
    alpha = np.repeat(rng.normal(0, 5, n), T)
    x1 = 0.5 * alpha + rng.normal(0, 2, n * T)
    x2 = rng.normal(0, 1, n * T)
    y = 1.5 * x1 - 0.5 * x2 + alpha + rng.normal(0, 1, n * T)
    return PanelData(pd.DataFrame({
        "region": region, "year": year, "y": y, "x1": x1, "x2": x2,
    }))


def _study_frame(seed=3, n=40, T=8):
    r = np.random.default_rng(seed)
    N = n * T
    frame = pd.DataFrame({
        "region": np.repeat([f"Country{i:02d}" for i in range(n)], T),
        "year": np.tile(np.arange(2008, 2008 + T), n),
    })
    alpha = np.repeat(r.normal(0, 10, n), T)
    for name in ALL_VARIABLES:
        frame[name] = r.normal(0, 1, N)
    frame["GenSpend"] = 35 + 0.5 * alpha + r.normal(0, 3, N)
    frame["Corruption"] = r.uniform(20, 90, N)
    frame["GenDebt"] = (40 + alpha - 1.0 * frame["GDPGrowth"] + 0.7 * frame["GenSpend"]
                        - 0.3 * frame["Corruption"] + r.normal(0, 2, N))
    frame.loc[[5, 17, 60], "MiliSpend"] = np.nan
    return frame


@pytest.fixture
def study_frame():
    return _study_frame()


@pytest.fixture
def study_panel(study_frame):
    return PanelData(study_frame)
