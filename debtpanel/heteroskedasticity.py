"""
Robust covariance estimators and coefficient tests

Implements heteroskedasticity-consistent (HC1, HC3) and entity-clustered
(Arellano 1987) covariance matrices for a fitted model, and the Wald /
t tests that turn a covariance matrix into a coefficient table.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

from .errors import InsufficientObservationsError
from .results import TestResult
from .utils import xtx_inv

LOGGER = logging.getLogger(__name__)

COV_TYPES = ("classical", "HC1", "HC3", "cluster")


@dataclass(frozen=True, eq=False)
class CovarianceMatrix:
    """
    Coefficient covariance matrix indexed by regressor name.

    Attributes:
        kind: One of "classical", "HC1", "HC3", "cluster".
        matrix: Symmetric DataFrame (regressor x regressor).
        df: Degrees of freedom for t reference distributions.
        n_clusters: Number of clusters (cluster-robust only).
    """

    kind: str
    matrix: pd.DataFrame
    df: int
    n_clusters: Optional[int] = None

    @property
    def se(self):
        return pd.Series(np.sqrt(np.diag(self.matrix.to_numpy())),
                         index=self.matrix.index, name="std_error")


@dataclass(frozen=True, eq=False)
class CoefficientTest:
    """Per-regressor estimate, standard error, t statistic and p-value."""

    name: str
    kind: str
    table: pd.DataFrame

    def __getitem__(self, regressor):
        return self.table.loc[regressor]


def _bread(X):
    return xtx_inv(np.linalg.qr(X, mode="r"))


def hc_cov(X, residuals, kind="HC3"):
    """
    White-type heteroskedasticity-consistent covariance.

    V = (X'X)^{-1} [sum_i w_i x_i x_i'] (X'X)^{-1}

    with w_i = e_i^2 * n/(n-k) for HC1 and w_i = e_i^2 / (1 - h_ii)^2 for
    HC3, where h_ii is the leverage of observation i.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix.
    residuals : ndarray, shape (n,)
        OLS residuals.
    kind : {"HC1", "HC3"}

    Returns
    -------
    V : ndarray, shape (k, k)
    """
    n, k = X.shape
    esq = residuals ** 2
    bread = _bread(X)
    if kind == "HC1":
        w = esq * (n / (n - k))
    elif kind == "HC3":
        h = np.einsum("ij,jk,ik->i", X, bread, X)
        if np.any(h > 1.0 - 1e-10):
            raise InsufficientObservationsError(
                f"{int(np.sum(h > 1.0 - 1e-10))} observation(s) with leverage one; "
                "HC3 is undefined"
            )
        w = esq / (1.0 - h) ** 2
    else:
        raise ValueError(f"unknown heteroskedasticity-consistent type {kind!r}")
    meat = (X.T * w) @ X
    V = bread @ meat @ bread
    return (V + V.T) / 2


def cluster_robust_cov(X, residuals, groups):
    """
    Arellano (1987) cluster-robust covariance.

    V_cluster = c * (X'X)^{-1} * B * (X'X)^{-1}
    where B = sum_g (X_g' e_g)(X_g' e_g)' and
    c = G/(G-1) * (N-1)/(N-K) is the finite-sample correction.

    Parameters
    ----------
    X : ndarray, shape (n, k)
    residuals : ndarray, shape (n,)
    groups : ndarray, shape (n,)
        Cluster identifiers.

    Returns
    -------
    V : ndarray, shape (k, k)
    n_clusters : int
    """
    N, K = X.shape
    codes, uniq = pd.factorize(np.asarray(groups))
    G = len(uniq)
    if G < 2:
        raise InsufficientObservationsError(
            f"cluster-robust covariance needs at least two clusters, got {G}"
        )

    scores = X * residuals[:, None]
    S = np.zeros((G, K))
    np.add.at(S, codes, scores)
    B = S.T @ S

    bread = _bread(X)
    dof_corr = (G / (G - 1)) * ((N - 1) / (N - K))
    V = bread @ B @ bread * dof_corr
    return (V + V.T) / 2, G


def robust_cov(model, kind="HC3", groups=None):
    """
    Covariance matrix of a FittedModel's coefficients.

    Parameters
    ----------
    model : FittedModel
    kind : {"classical", "HC1", "HC3", "cluster"}
    groups : array-like or None
        Cluster identifiers aligned with the model's residuals; defaults to
        the entity of each observation.

    Returns
    -------
    CovarianceMatrix
    """
    names = model.params.index
    n_clusters = None
    if kind == "classical":
        V = model.cov.to_numpy()
    elif kind in ("HC1", "HC3"):
        V = hc_cov(model.design.to_numpy(), model.residuals.to_numpy(), kind)
    elif kind == "cluster":
        groups = model.entities if groups is None else np.asarray(groups)
        V, n_clusters = cluster_robust_cov(
            model.design.to_numpy(), model.residuals.to_numpy(), groups
        )
    else:
        raise ValueError(f"unknown covariance type {kind!r}; expected one of {COV_TYPES}")

    LOGGER.debug("Computed %s covariance for %s", kind, model.spec.name)
    return CovarianceMatrix(
        kind=kind,
        matrix=pd.DataFrame(V, index=names, columns=names),
        df=model.df_resid,
        n_clusters=n_clusters,
    )


def coef_test(model, cov=None):
    """
    t tests of each coefficient against zero.

    Parameters
    ----------
    model : FittedModel
    cov : CovarianceMatrix or None
        Defaults to the classical covariance.

    Returns
    -------
    CoefficientTest
        Table with columns estimate, std_error, statistic, p_value.
    """
    cov = robust_cov(model, "classical") if cov is None else cov
    est = model.params
    se = cov.se.reindex(est.index)
    t = est / se
    p = 2 * stats.t.sf(np.abs(t), cov.df)
    table = pd.DataFrame({
        "estimate": est,
        "std_error": se,
        "statistic": t,
        "p_value": p,
    })
    table.index.name = "term"
    return CoefficientTest(name=model.spec.name, kind=cov.kind, table=table)


def wald_test(model, names, cov=None):
    """
    Joint Wald test that the coefficients in ``names`` are all zero.

    W = b_S' V_S^{-1} b_S  ~  chi2(|S|)

    Returns
    -------
    TestResult
    """
    names = list(names)
    unknown = [n for n in names if n not in model.params.index]
    if unknown:
        raise KeyError(f"coefficients not in model: {unknown}")
    cov = robust_cov(model, "classical") if cov is None else cov
    b = model.params[names].to_numpy()
    V = cov.matrix.loc[names, names].to_numpy()
    W = float(b @ np.linalg.solve(V, b))
    q = len(names)
    return TestResult(
        name=f"Wald ({cov.kind})",
        statistic=W,
        p_value=float(stats.chi2.sf(W, q)),
        df=q,
        null=f"{', '.join(names)} jointly zero",
        distribution="chi2",
    )
