"""
Shared least-squares helpers used across the estimation modules.
"""

import numpy as np
from scipy import linalg

from .errors import RankDeficiencyError, InsufficientObservationsError


def add_const(x):
    """
    Prepend a column of ones (intercept) to the design matrix.

    Parameters
    ----------
    x : ndarray
        1-d array or 2-d matrix of regressors.

    Returns
    -------
    X : ndarray, shape (n, k+1)
        Design matrix with leading ones column.
    """
    x = np.atleast_2d(x).T if x.ndim == 1 else x
    return np.column_stack([np.ones(x.shape[0]), x])


def check_full_rank(X, names=None):
    """
    Raise RankDeficiencyError unless X has full column rank.

    The tolerance follows numpy's default for ``matrix_rank``, scaled
    singular values below ``max(n, k) * eps * s_max`` count as zero.
    """
    k = X.shape[1]
    rank = np.linalg.matrix_rank(X) if k else 0
    if rank < k:
        names = names if names is not None else [f"x{j}" for j in range(k)]
        raise RankDeficiencyError(names, rank)
    return rank


def qr_solve(X, y):
    """
    Least squares by thin QR:  R beta = Q'y.

    Returns
    -------
    b : ndarray, shape (k,)
    R : ndarray, shape (k, k)
        Upper-triangular factor, reused for (X'X)^{-1} = R^{-1} R^{-T}.
    """
    Q, R = np.linalg.qr(X, mode="reduced")
    b = linalg.solve_triangular(R, Q.T @ y)
    return b, R


def xtx_inv(R):
    """(X'X)^{-1} from the triangular QR factor of X."""
    R_inv = linalg.solve_triangular(R, np.eye(R.shape[0]))
    return R_inv @ R_inv.T


def ols_fit(X, y):
    """
    OLS estimation via QR decomposition.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (should include a constant column if an intercept is desired).
    y : ndarray, shape (n,)
        Outcome vector.

    Returns
    -------
    b : ndarray, shape (k,)
        Coefficient estimates  beta_hat = (X'X)^{-1} X'y.
    se : ndarray, shape (k,)
        Homoskedastic standard errors.
    e : ndarray, shape (n,)
        Residuals  y - X @ b.
    s2 : float
        Estimated error variance  e'e / (n - k).
    """
    n, k = X.shape
    df_resid = n - k
    if df_resid <= 0:
        raise InsufficientObservationsError(
            f"{n} observations leave {df_resid} residual degrees of freedom "
            f"for {k} parameters"
        )
    b, R = qr_solve(X, y)
    e = y - X @ b
    s2 = (e @ e) / df_resid
    se = np.sqrt(np.diag(s2 * xtx_inv(R)))
    return b, se, e, s2
