"""
Value objects shared by the diagnostic and inference modules.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class TestResult:
    """
    Outcome of one hypothesis test.

    Attributes:
        name: Test label, e.g. "Hausman".
        statistic: Test statistic.
        p_value: p-value under the null.
        df: Degrees of freedom (int, a (df1, df2) tuple, or None).
        null: Plain-language statement of H0.
        distribution: Reference distribution ("chi2", "F", "normal").
    """

    __test__ = False  # keep pytest from collecting this class

    name: str
    statistic: float
    p_value: float
    df: Optional[object] = None
    null: str = ""
    distribution: str = ""

    def reject(self, alpha=0.05):
        """True if H0 is rejected at level ``alpha``."""
        return bool(np.isfinite(self.p_value) and self.p_value < alpha)

    def as_dict(self):
        return dict(test=self.name, statistic=self.statistic,
                    p_value=self.p_value, df=self.df,
                    distribution=self.distribution, null=self.null)

    def __str__(self):
        df = f", df={self.df}" if self.df is not None else ""
        return (f"{self.name}: stat={self.statistic:.4f}{df}, "
                f"p={self.p_value:.4g}")
