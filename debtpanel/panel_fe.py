"""
Within (Fixed-Effects) Transformer

Demeans each variable by entity (and optionally by period) so that the
unit-specific intercepts drop out of the regression algebraically.
"""

import numpy as np
import pandas as pd


def _group_demean(M, ids):
    """Subtract group means from every column of M (n, k)."""
    df = pd.DataFrame(M)
    means = df.groupby(np.asarray(ids), sort=False).transform("mean").to_numpy()
    return M - means


def within_demean(y, X, unit_ids, time_ids=None, tol=1e-12, max_iter=1000):
    """
    Demean y and X within each unit (entity) for fixed-effects estimation.

    With ``time_ids`` the two-way transformation is computed by alternating
    entity and period demeaning until the largest change falls below
    ``tol``; on a balanced panel this converges after one sweep to
    x_it - x_i. - x_.t + x_.. .

    Parameters
    ----------
    y : ndarray, shape (n,)
        Outcome vector (stacked panel, complete cases only).
    X : ndarray, shape (n,) or (n, k)
        Regressor(s) (stacked panel).
    unit_ids : ndarray, shape (n,)
        Unit identifiers for each observation.
    time_ids : ndarray, shape (n,) or None
        Period identifiers; None gives the one-way transformation.

    Returns
    -------
    dict with keys:
        y_demean : demeaned y
        X_demean : demeaned X (same dimensionality as X)
        n_iter   : number of sweeps used
    """
    X = np.asarray(X, dtype=float)
    was_1d = X.ndim == 1
    M = np.column_stack([np.asarray(y, dtype=float), X.reshape(len(y), -1)])

    M = _group_demean(M, unit_ids)
    n_iter = 1
    if time_ids is not None:
        for n_iter in range(1, max_iter + 1):
            prev = M
            M = _group_demean(_group_demean(M, time_ids), unit_ids)
            if np.max(np.abs(M - prev), initial=0.0) < tol:
                break

    X_dm = M[:, 1:]
    return dict(
        y_demean=M[:, 0],
        X_demean=X_dm[:, 0] if was_1d else X_dm,
        n_iter=n_iter,
    )


def singleton_mask(unit_ids):
    """
    Flag observations whose entity appears only once.

    After demeaning, such rows are identically zero in every variable and
    carry no information about the slopes.

    Returns
    -------
    ndarray of bool, shape (n,)
        True where the entity has exactly one observation.
    """
    counts = pd.Series(unit_ids).map(pd.Series(unit_ids).value_counts())
    return counts.to_numpy() == 1
