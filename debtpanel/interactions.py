"""
Mean-centering and moderated (interaction) regressions

Variables are centred at their sample mean before they are multiplied, so
the main-effect coefficients read as conditional effects at the mean of
the other variable.  The runner refuses specifications that would carry
a variable in both centred and raw form unless the author confirms it.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import CENTRED_PREFIX, RESPONSE, STUDY_INTERACTIONS
from .errors import SpecificationError, SpecificationWarning
from .estimation import ModelSpec, fit

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Centering:
    """A centred column: ``name = column - mean``."""

    column: str
    name: str
    mean: float


def centred_name(column, prefix=CENTRED_PREFIX):
    return f"{prefix}{column}"


def column_means(panel, columns):
    """
    Sample means ignoring missing values.

    Raises
    ------
    ValueError
        If a column has no observed values.
    """
    means = {}
    for c in columns:
        values = panel.column(c).to_numpy(dtype=float)
        if np.all(np.isnan(values)):
            raise ValueError(f"column {c!r} has no observed values to centre")
        means[c] = float(np.nanmean(values))
    return means


def center(panel, columns, means=None, prefix=CENTRED_PREFIX):
    """
    Append mean-centred copies of ``columns`` to the panel.

    Parameters
    ----------
    panel : PanelData
    columns : sequence of str
    means : dict or None
        Precomputed means; computed with ``column_means`` when omitted.

    Returns
    -------
    panel : PanelData
        New panel with the centred columns added (originals untouched).
    centering : dict
        column -> Centering
    """
    columns = list(dict.fromkeys(columns))
    means = column_means(panel, columns) if means is None else dict(means)
    centering = {}
    new_columns = {}
    for c in columns:
        cen = Centering(column=c, name=centred_name(c, prefix), mean=means[c])
        centering[c] = cen
        new_columns[cen.name] = panel.column(c).to_numpy(dtype=float) - cen.mean
        LOGGER.debug("Centred %s at mean %.6g", c, cen.mean)
    return panel.with_columns(**new_columns), centering


def uncenter(values, centering):
    """Add the mean back to centred values."""
    return np.asarray(values, dtype=float) + centering.mean


@dataclass(frozen=True)
class InteractionSpec:
    """
    One moderated regression: centred A, centred B and A x B plus controls.

    Attributes:
        name: Label for logs and exported tables.
        a, b: Raw names of the interacted variables.
        controls: Raw control variables.  None means "the base regressor
            set minus a and b".
        confirm_mixed_forms: Set when a control deliberately repeats a or b
            in raw form next to its centred version.
    """

    name: str
    a: str
    b: str
    controls: Optional[tuple] = None
    confirm_mixed_forms: bool = False

    def __post_init__(self):
        if self.a == self.b:
            raise SpecificationError(f"{self.name}: cannot interact {self.a!r} with itself")
        if self.controls is not None:
            object.__setattr__(self, "controls", tuple(dict.fromkeys(self.controls)))


def study_interactions():
    """The six moderated regressions of the debt study."""
    return tuple(InteractionSpec(**d) for d in STUDY_INTERACTIONS)


def build_interaction_spec(inter, base_regressors, centering, response=RESPONSE):
    """
    Regressor set {cA, cB, cA:cB} + controls as a "within" ModelSpec.

    Raises
    ------
    SpecificationError
        If a or b has not been centred, or a control repeats a or b in raw
        form without ``confirm_mixed_forms``.
    """
    absent = [v for v in (inter.a, inter.b) if v not in centering]
    if absent:
        raise SpecificationError(
            f"{inter.name}: {absent} must be centred before interacting"
        )
    ca, cb = centering[inter.a].name, centering[inter.b].name

    if inter.controls is None:
        controls = tuple(r for r in base_regressors if r not in (inter.a, inter.b))
    else:
        controls = inter.controls

    mixed = [c for c in controls if c in (inter.a, inter.b)]
    if mixed:
        msg = (f"{inter.name}: {mixed} enter both centred (inside the "
               f"interaction) and raw (as controls)")
        if not inter.confirm_mixed_forms:
            raise SpecificationError(
                msg + "; confirm intent with confirm_mixed_forms=True"
            )
        LOGGER.warning("%s; fitting as confirmed", msg)
        warnings.warn(msg, SpecificationWarning, stacklevel=2)

    return ModelSpec(
        response=response,
        regressors=(ca, cb) + tuple(controls),
        model="within",
        interaction=(ca, cb),
        name=inter.name,
    )


def fit_interaction(inter, panel, base_regressors, centering=None,
                    response=RESPONSE, two_way=False):
    """
    Centre (if needed) and fit one moderated fixed-effects regression.

    Parameters
    ----------
    inter : InteractionSpec
    panel : PanelData
    base_regressors : sequence of str
    centering : dict or None
        column -> Centering for columns already centred in ``panel``.

    Returns
    -------
    panel : PanelData
        The panel the model was fitted on (with any new centred columns).
    model : FittedModel
    """
    centering = dict(centering or {})
    todo = [v for v in (inter.a, inter.b) if v not in centering]
    if todo:
        panel, extra = center(panel, todo)
        centering.update(extra)
    spec = build_interaction_spec(inter, base_regressors, centering, response)
    return panel, fit(spec, panel, two_way=two_way)
