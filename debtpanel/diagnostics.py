"""
Specification tests for the panel estimators

- Breusch-Pagan LM:   pooled OLS vs. random effects
- Hausman:            random vs. fixed effects
- Wooldridge:         serial correlation in the idiosyncratic errors
- Pesaran CD:         cross-sectional dependence of residuals
- White (Koenker):    heteroskedasticity in the residual-vs-fitted plot

Each function reads one or two FittedModels and returns a TestResult;
none of them modify their inputs.
"""

import logging
import warnings

import numpy as np
import pandas as pd
from scipy import stats

from .errors import DiagnosticError, HausmanWarning, InsufficientObservationsError
from .heteroskedasticity import cluster_robust_cov
from .results import TestResult
from .utils import add_const, check_full_rank, ols_fit

LOGGER = logging.getLogger(__name__)


def _require(model, model_type, test):
    if model.spec.model != model_type:
        raise ValueError(
            f"{test} expects a {model_type!r} model, got {model.spec.model!r} "
            f"({model.spec.name})"
        )


def breusch_pagan_lm(pooled):
    """
    Breusch-Pagan (1980) Lagrange-multiplier test for entity effects.

    Using pooled OLS residuals e_it, with N total observations and T_i
    observations for entity i:

        LM = N^2 / (2 * sum_i T_i (T_i - 1)) * [sum_i (sum_t e_it)^2 / sum e_it^2 - 1]^2

    which reduces to nT / (2(T-1)) * [...]^2 on a balanced panel.
    LM ~ chi2(1) under H0: var(u_i) = 0.

    Parameters
    ----------
    pooled : FittedModel
        A "pooling" model.

    Returns
    -------
    TestResult
    """
    _require(pooled, "pooling", "Breusch-Pagan LM")
    e = pooled.residuals.to_numpy()
    codes, _ = pd.factorize(pooled.entities)
    T_i = np.bincount(codes)
    S_i = np.bincount(codes, weights=e)
    N = len(e)

    denom = np.sum(T_i * (T_i - 1))
    if denom <= 0:
        raise DiagnosticError("Breusch-Pagan LM needs an entity with two or more periods")
    ssr = e @ e
    if ssr <= 0:
        raise DiagnosticError("Breusch-Pagan LM is undefined for zero residuals")

    lm = N ** 2 / (2.0 * denom) * (np.sum(S_i ** 2) / ssr - 1.0) ** 2
    result = TestResult(
        name="Breusch-Pagan LM",
        statistic=float(lm),
        p_value=float(stats.chi2.sf(lm, 1)),
        df=1,
        null="no entity-specific variance component (pooled OLS adequate)",
        distribution="chi2",
    )
    LOGGER.info("%s", result)
    return result


def hausman_statistic(b_fe, b_re, v_fe, v_re):
    """
    H = (b_FE - b_RE)' [V_FE - V_RE]^{-1} (b_FE - b_RE)

    Swapping the two models flips the sign of the covariance difference
    but not of the quadratic form's magnitude.

    Raises
    ------
    DiagnosticError
        If V_FE - V_RE is singular.
    """
    q = np.asarray(b_fe, dtype=float) - np.asarray(b_re, dtype=float)
    V = np.asarray(v_fe, dtype=float) - np.asarray(v_re, dtype=float)
    try:
        return float(q @ np.linalg.solve(V, q))
    except np.linalg.LinAlgError as exc:
        raise DiagnosticError(f"Hausman covariance difference is singular: {exc}") from exc


def hausman(fixed, random, shared_variance=True):
    """
    Hausman (1978) test of random vs. fixed effects.

    Compares the slope coefficients the two models share.  Under H0 the
    entity effects are uncorrelated with the regressors, so both estimators
    are consistent and random effects is efficient; rejection favours
    fixed effects.

    By default both covariance matrices are scaled by the error variance
    of the efficient (random-effects) model, as Stata's ``sigmamore``
    does.  With a common variance V_FE - V_RE is positive semi-definite
    and the statistic cannot go negative.

    Parameters
    ----------
    fixed : FittedModel
        A "within" model.
    random : FittedModel
        A "random" model on the same specification.
    shared_variance : bool
        False uses each model's own variance estimate.

    Returns
    -------
    TestResult
        Statistic ~ chi2(k), k = number of shared slopes.

    Raises
    ------
    DiagnosticError
        If the covariance difference is singular or the statistic is
        negative.  Either way the test cannot decide between the models.
    """
    _require(fixed, "within", "Hausman")
    _require(random, "random", "Hausman")
    common = [n for n in fixed.slope_names if n in random.params.index]
    if not common:
        raise DiagnosticError("Hausman: the models share no slope coefficients")

    v_fe = fixed.cov.loc[common, common].to_numpy()
    v_re = random.cov.loc[common, common].to_numpy()
    if shared_variance:
        if not fixed.sigma2 > 0:
            raise DiagnosticError("Hausman: fixed-effects residual variance is zero")
        v_fe = v_fe * (random.sigma2 / fixed.sigma2)

    stat = hausman_statistic(fixed.params[common], random.params[common], v_fe, v_re)
    if stat < 0:
        raise DiagnosticError(
            f"Hausman statistic is negative ({stat:.4g}); V_FE - V_RE is "
            "not positive definite"
        )
    if np.linalg.eigvalsh(v_fe - v_re).min() <= 0:
        msg = ("Hausman covariance difference is not positive definite; "
               "the statistic may be unreliable")
        LOGGER.warning(msg)
        warnings.warn(msg, HausmanWarning, stacklevel=2)

    result = TestResult(
        name="Hausman",
        statistic=stat,
        p_value=float(stats.chi2.sf(stat, len(common))),
        df=len(common),
        null="entity effects uncorrelated with regressors (random effects consistent)",
        distribution="chi2",
    )
    LOGGER.info("%s", result)
    return result


def wooldridge_serial(model):
    """
    Wooldridge (2002) / Drukker (2003) test for serial correlation.

    Differences the residuals within entity, then regresses the
    differenced residual on its own within-entity lag (no intercept):

        de_it = rho * de_i,t-1 + v_it

    If the idiosyncratic errors are serially uncorrelated, rho = -0.5.
    The test uses an entity-clustered standard error:

        F = ((rho_hat + 0.5) / se(rho_hat))^2  ~  F(1, G - 1)

    Successive observations of an entity are treated as adjacent periods.

    Returns
    -------
    TestResult
    """
    frame = pd.DataFrame({
        "g": model.entities,
        "t": model.times,
        "e": model.residuals.to_numpy(),
    }).sort_values(["g", "t"], kind="mergesort")
    frame["de"] = frame.groupby("g", sort=False)["e"].diff()
    frame["de_lag"] = frame.groupby("g", sort=False)["de"].shift(1)
    pairs = frame.dropna(subset=["de", "de_lag"])

    if len(pairs) < 2:
        raise DiagnosticError(
            "Wooldridge test needs entities observed in three or more periods"
        )
    x = pairs["de_lag"].to_numpy()
    y = pairs["de"].to_numpy()
    xx = x @ x
    if xx <= 0:
        raise DiagnosticError("Wooldridge test: lagged differenced residuals are all zero")

    rho = (x @ y) / xx
    v = y - rho * x
    try:
        V, G = cluster_robust_cov(x[:, None], v, pairs["g"].to_numpy())
    except InsufficientObservationsError as exc:
        raise DiagnosticError(f"Wooldridge test: {exc}") from exc
    se = np.sqrt(V[0, 0])
    if not se > 0:
        raise DiagnosticError("Wooldridge test: zero standard error on the lag")

    F = ((rho + 0.5) / se) ** 2
    result = TestResult(
        name="Wooldridge serial correlation",
        statistic=float(F),
        p_value=float(stats.f.sf(F, 1, G - 1)),
        df=(1, G - 1),
        null="no serial correlation in idiosyncratic errors (rho = -0.5)",
        distribution="F",
    )
    LOGGER.info("%s (rho_hat=%.4f)", result, rho)
    return result


def pesaran_cd(model, min_periods=3):
    """
    Pesaran (2004) CD test for cross-sectional dependence.

    For every pair of entities (i, j) observed together in T_ij >= min_periods
    periods, rho_ij is the correlation of their residuals over those periods:

        CD = sqrt(1 / P) * sum_{i<j} sqrt(T_ij) * rho_ij  ~  N(0, 1)

    with P the number of pairs used; on a balanced panel P = n(n-1)/2,
    the textbook sqrt(2 / (n(n-1))) scaling.  Pairs where either residual
    series is constant are skipped.

    Returns
    -------
    TestResult
    """
    wide = model.residuals.unstack(level=0)
    R = wide.to_numpy()
    observed = ~np.isnan(R)
    n = R.shape[1]

    total = 0.0
    n_pairs = 0
    for i in range(n - 1):
        for j in range(i + 1, n):
            both = observed[:, i] & observed[:, j]
            T_ij = int(both.sum())
            if T_ij < min_periods:
                continue
            ri, rj = R[both, i], R[both, j]
            ri = ri - ri.mean()
            rj = rj - rj.mean()
            denom = np.sqrt((ri @ ri) * (rj @ rj))
            if denom <= 0:
                continue
            total += np.sqrt(T_ij) * (ri @ rj) / denom
            n_pairs += 1

    if n_pairs == 0:
        raise DiagnosticError(
            f"Pesaran CD: no entity pair shares {min_periods}+ periods of "
            "non-constant residuals"
        )
    cd = total / np.sqrt(n_pairs)
    result = TestResult(
        name="Pesaran CD",
        statistic=float(cd),
        p_value=float(2 * stats.norm.sf(abs(cd))),
        df=None,
        null="no cross-sectional dependence in residuals",
        distribution="normal",
    )
    LOGGER.info("%s (%d entity pairs)", result, n_pairs)
    return result


def white_test(model):
    """
    Koenker-studentized Breusch-Pagan / White test on fitted values.

    Regress squared residuals on [1, fitted, fitted^2]; LM = n * R^2 ~ chi2(2).

    Returns
    -------
    TestResult
    """
    e = model.residuals.to_numpy()
    f = model.fitted.to_numpy()
    Z = add_const(np.column_stack([f, f ** 2]))
    check_full_rank(Z, ["const", "fitted", "fitted^2"])
    esq = e ** 2
    _, _, u, _ = ols_fit(Z, esq)
    tss = np.sum((esq - esq.mean()) ** 2)
    if tss <= 0:
        raise DiagnosticError("White test: squared residuals have no variation")
    lm = len(e) * (1.0 - (u @ u) / tss)
    result = TestResult(
        name="White (studentized Breusch-Pagan)",
        statistic=float(lm),
        p_value=float(stats.chi2.sf(lm, 2)),
        df=2,
        null="homoskedastic residuals",
        distribution="chi2",
    )
    LOGGER.info("%s", result)
    return result
