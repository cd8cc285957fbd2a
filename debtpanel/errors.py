"""
Error and warning types raised by the panel estimation pipeline.
"""


class PanelModelError(Exception):
    """Base class for all errors raised by debtpanel."""


class PanelIndexError(PanelModelError, IndexError):
    """Duplicate or missing (entity, time) index entries."""


class SpecificationError(PanelModelError, ValueError):
    """A model specification is malformed or needs explicit confirmation."""


class RankDeficiencyError(PanelModelError):
    """
    The design matrix is not of full column rank.

    Parameters
    ----------
    columns : sequence of str
        Names of the design columns.
    rank : int
        Numerical rank of the design.
    """

    def __init__(self, columns, rank):
        self.columns = tuple(columns)
        self.rank = rank
        super().__init__(
            f"design matrix has rank {rank} < {len(self.columns)} columns "
            f"({', '.join(self.columns)})"
        )


class InsufficientObservationsError(PanelModelError):
    """Too few observations (or clusters) remain for the requested computation."""


class DiagnosticError(PanelModelError):
    """A specification test statistic could not be computed."""


class SpecificationWarning(UserWarning):
    """A specification mixes centred and raw forms of the same variable."""


class VarianceComponentWarning(UserWarning):
    """A negative random-effects variance component was truncated to zero."""


class HausmanWarning(UserWarning):
    """The Hausman covariance difference is not positive definite."""
