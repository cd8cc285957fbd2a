"""
Estimator Engine -- pooled OLS, random effects and within (fixed effects)

A ``ModelSpec`` names the response, the ordered regressors, the model type
and an optional interaction pair.  ``fit`` turns a spec plus a
``PanelData`` into an immutable ``FittedModel`` that records the sample it
actually used: complete cases are taken per specification, and the number
of rows dropped (and why) travels with the result.
"""

import dataclasses
import logging
import warnings
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from .errors import (
    InsufficientObservationsError,
    SpecificationError,
    VarianceComponentWarning,
)
from .panel_fe import within_demean, singleton_mask
from .utils import add_const, check_full_rank, qr_solve, xtx_inv

LOGGER = logging.getLogger(__name__)

MODEL_TYPES = ("pooling", "random", "within")


def interaction_name(a, b):
    """Column name of the product term a x b."""
    return f"{a}:{b}"


@dataclass(frozen=True)
class ModelSpec:
    """
    Typed regression specification.

    Attributes:
        response: Name of the dependent variable.
        regressors: Ordered regressor names (main effects).
        model: One of "pooling", "random", "within".
        interaction: Optional pair (a, b); both must be regressors, and the
            product a:b is appended to the design.
        name: Label used in logs and exported tables.
    """

    response: str
    regressors: tuple
    model: str = "within"
    interaction: Optional[tuple] = None
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "regressors", tuple(self.regressors))
        if self.interaction is not None:
            object.__setattr__(self, "interaction", tuple(self.interaction))

        if self.model not in MODEL_TYPES:
            raise SpecificationError(
                f"unknown model type {self.model!r}; expected one of {MODEL_TYPES}"
            )
        if not self.regressors:
            raise SpecificationError("a specification needs at least one regressor")
        dup = sorted({r for r in self.regressors if self.regressors.count(r) > 1})
        if dup:
            raise SpecificationError(f"regressors listed more than once: {dup}")
        if self.response in self.regressors:
            raise SpecificationError(
                f"response {self.response!r} also appears as a regressor"
            )
        if self.interaction is not None:
            if len(self.interaction) != 2 or self.interaction[0] == self.interaction[1]:
                raise SpecificationError(
                    f"interaction must name two distinct variables, got {self.interaction}"
                )
            absent = [v for v in self.interaction if v not in self.regressors]
            if absent:
                raise SpecificationError(
                    f"interaction components {absent} are not regressors"
                )
        if not self.name:
            object.__setattr__(self, "name", f"{self.response}~{self.model}")

    @property
    def terms(self):
        """Slope terms in design order (main effects, then the product)."""
        if self.interaction is None:
            return self.regressors
        return self.regressors + (interaction_name(*self.interaction),)

    @property
    def columns(self):
        """Panel columns the specification reads."""
        return (self.response,) + self.regressors

    def replace(self, **changes):
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class DropReport:
    """Rows removed between the panel and the estimation sample."""

    n_input: int
    missing: int = 0
    missing_by_column: dict = field(default_factory=dict)
    singletons: int = 0

    @property
    def n_dropped(self):
        return self.missing + self.singletons

    @property
    def n_used(self):
        return self.n_input - self.n_dropped

    def as_dict(self):
        return dict(
            n_input=self.n_input, n_used=self.n_used, missing=self.missing,
            singletons=self.singletons, **{
                f"missing[{c}]": v for c, v in self.missing_by_column.items()
            },
        )


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Result of one estimation.

    ``design`` and ``response`` hold the transformed data the final least
    squares step used (demeaned for "within", quasi-demeaned for
    "random"), so robust covariance estimators can be computed from the
    model alone.  All Series and frames are indexed by (entity, time).
    """

    spec: ModelSpec
    params: pd.Series
    cov: pd.DataFrame
    residuals: pd.Series
    fitted: pd.Series
    design: pd.DataFrame
    response: pd.Series
    df_resid: int
    sigma2: float
    dropped: DropReport
    theta: Optional[pd.Series] = None
    variance_components: Optional[dict] = None

    @property
    def nobs(self):
        return len(self.residuals)

    @property
    def entities(self):
        return self.residuals.index.get_level_values(0).to_numpy()

    @property
    def times(self):
        return self.residuals.index.get_level_values(1).to_numpy()

    @property
    def n_entities(self):
        return int(pd.unique(self.entities).size)

    @property
    def bse(self):
        return pd.Series(np.sqrt(np.diag(self.cov.to_numpy())),
                         index=self.params.index, name="std_error")

    @property
    def slope_names(self):
        """Coefficient names excluding the intercept."""
        return [n for n in self.params.index if n != "const"]

    @property
    def rsquared(self):
        """R-squared of the transformed regression."""
        y = self.response.to_numpy()
        tss = np.sum((y - y.mean()) ** 2)
        ssr = np.sum(self.residuals.to_numpy() ** 2)
        return 1.0 - ssr / tss if tss > 0 else np.nan


def _estimation_sample(spec, panel):
    """Complete cases of the specification's columns, product term appended."""
    missing_cols = [c for c in spec.columns if c not in panel]
    if missing_cols:
        raise SpecificationError(
            f"{spec.name}: columns not in panel: {missing_cols}"
        )
    frame = panel.select(spec.columns)
    na = frame[list(spec.columns)].isna()
    keep = ~na.any(axis=1).to_numpy()
    report = DropReport(
        n_input=len(frame),
        missing=int((~keep).sum()),
        missing_by_column={c: int(v) for c, v in na.sum().items() if v},
    )
    frame = frame.loc[keep].reset_index(drop=True)
    if spec.interaction is not None:
        a, b = spec.interaction
        frame[interaction_name(a, b)] = frame[a] * frame[b]
    return frame, report


def _swamy_arora(y, X, units):
    """
    One-way error-component variances and per-entity GLS weights.

    Returns
    -------
    sigma2_e, sigma2_u : float
        Idiosyncratic and entity-effect variances (sigma2_u truncated at 0).
    theta : ndarray, shape (n,)
        theta_i = 1 - sqrt(sigma2_e / (T_i sigma2_u + sigma2_e)) per row.
    """
    n, k = X.shape
    codes, uniq = pd.factorize(units)
    n_units = len(uniq)
    T_i = np.bincount(codes)

    # Within regression -> idiosyncratic variance
    dm = within_demean(y, X, units)
    b_w = np.linalg.lstsq(dm["X_demean"], dm["y_demean"], rcond=None)[0]
    e_w = dm["y_demean"] - dm["X_demean"] @ b_w
    df_w = n - n_units - k
    if df_w <= 0:
        raise InsufficientObservationsError(
            f"random effects: {df_w} within degrees of freedom"
        )
    sigma2_e = (e_w @ e_w) / df_w

    # Between regression on entity means -> effect variance
    ybar = np.bincount(codes, weights=y) / T_i
    Xbar = np.column_stack([np.bincount(codes, weights=X[:, j]) / T_i
                            for j in range(k)])
    df_b = n_units - k - 1
    if df_b <= 0:
        raise InsufficientObservationsError(
            f"random effects: {n_units} entities cannot identify the between "
            f"regression with {k} regressors"
        )
    Zb = add_const(Xbar)
    b_b = np.linalg.lstsq(Zb, ybar, rcond=None)[0]
    e_b = ybar - Zb @ b_b
    sigma2_between = (e_b @ e_b) / df_b

    T_harm = n_units / np.sum(1.0 / T_i)
    sigma2_u = sigma2_between - sigma2_e / T_harm
    if sigma2_u < 0:
        msg = (f"negative entity variance component ({sigma2_u:.4g}) "
               "truncated to zero; random effects collapses toward pooled OLS")
        LOGGER.warning(msg)
        warnings.warn(msg, VarianceComponentWarning, stacklevel=3)
        sigma2_u = 0.0

    denom = T_i * sigma2_u + sigma2_e
    with np.errstate(divide="ignore", invalid="ignore"):
        theta_g = np.where(denom > 0, 1.0 - np.sqrt(sigma2_e / denom), 0.0)
    return sigma2_e, sigma2_u, theta_g[codes], pd.Series(theta_g, index=uniq, name="theta")


def fit(spec, panel, two_way=False):
    """
    Estimate ``spec`` on ``panel``.

    Parameters
    ----------
    spec : ModelSpec
    panel : PanelData
    two_way : bool
        For "within", also remove period means.

    Returns
    -------
    FittedModel

    Raises
    ------
    SpecificationError
        If the specification reads columns the panel does not have.
    InsufficientObservationsError
        If the complete-case sample leaves no residual degrees of freedom.
    RankDeficiencyError
        If the (transformed) design is not of full column rank.
    """
    frame, report = _estimation_sample(spec, panel)
    if frame.empty:
        raise InsufficientObservationsError(
            f"{spec.name}: no complete observations among {report.n_input} rows"
        )
    terms = list(spec.terms)
    y = frame[spec.response].to_numpy(dtype=float)
    X = frame[terms].to_numpy(dtype=float)
    units = frame[panel.entity].to_numpy()
    times = frame[panel.time].to_numpy()

    theta = None
    components = None
    if spec.model == "within":
        dm = within_demean(y, X, units, times if two_way else None)
        single = singleton_mask(units)
        if single.any():
            report = dataclasses.replace(report, singletons=int(single.sum()))
        keep = ~single
        y_t, X_t = dm["y_demean"][keep], dm["X_demean"][keep]
        units, times = units[keep], times[keep]
        names = terms
        n_effects = pd.unique(units).size
        if two_way:
            n_effects += pd.unique(times).size - 1
        df_resid = len(y_t) - len(names) - n_effects
    elif spec.model == "pooling":
        y_t, X_t = y, add_const(X)
        names = ["const"] + terms
        df_resid = len(y_t) - len(names)
    else:
        if len(y) <= X.shape[1] + 1:
            raise InsufficientObservationsError(
                f"{spec.name}: {len(y)} observations for {X.shape[1] + 1} parameters"
            )
        sigma2_e, sigma2_u, th, theta = _swamy_arora(y, X, units)
        Z = add_const(X)
        codes = pd.factorize(units)[0]
        counts = np.bincount(codes)
        zbar = np.column_stack([np.bincount(codes, weights=Z[:, j]) / counts
                                for j in range(Z.shape[1])])[codes]
        ybar = (np.bincount(codes, weights=y) / counts)[codes]
        y_t = y - th * ybar
        X_t = Z - th[:, None] * zbar
        names = ["const"] + terms
        df_resid = len(y_t) - len(names)
        components = dict(sigma2_e=sigma2_e, sigma2_u=sigma2_u)

    if df_resid <= 0:
        raise InsufficientObservationsError(
            f"{spec.name}: {len(y_t)} observations leave {df_resid} residual "
            f"degrees of freedom for {len(names)} parameters"
        )
    check_full_rank(X_t, names)

    b, R = qr_solve(X_t, y_t)
    fitted = X_t @ b
    e = y_t - fitted
    s2 = (e @ e) / df_resid
    cov = s2 * xtx_inv(R)

    index = pd.MultiIndex.from_arrays([units, times], names=[panel.entity, panel.time])
    LOGGER.info(
        "Fitted %s [%s]: nobs=%d, entities=%d, dropped=%d (missing=%d, singletons=%d)",
        spec.name, spec.model, len(e), pd.unique(units).size,
        report.n_dropped, report.missing, report.singletons,
    )
    return FittedModel(
        spec=spec,
        params=pd.Series(b, index=names, name="estimate"),
        cov=pd.DataFrame(cov, index=names, columns=names),
        residuals=pd.Series(e, index=index, name="residual"),
        fitted=pd.Series(fitted, index=index, name="fitted"),
        design=pd.DataFrame(X_t, index=index, columns=names),
        response=pd.Series(y_t, index=index, name=spec.response),
        df_resid=int(df_resid),
        sigma2=float(s2),
        dropped=report,
        theta=theta,
        variance_components=components,
    )
