"""
debtpanel -- panel-data estimation of the determinants of government debt.

Fixed/random-effects estimators, specification tests and robust
covariance estimators written directly in numpy / scipy / pandas.
"""

__version__ = "0.1.0"

from .errors import (
    PanelModelError,
    PanelIndexError,
    SpecificationError,
    RankDeficiencyError,
    InsufficientObservationsError,
    DiagnosticError,
)
from .panel import PanelData
from .estimation import ModelSpec, FittedModel, fit
from .results import TestResult
from .config import AnalysisConfig
from . import panel_fe
from . import diagnostics
from . import heteroskedasticity
from . import interactions
from . import pipeline
