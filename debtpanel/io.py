"""
Boundary I/O: reading the study CSVs, filling the interpolated
unemployment series, and writing result tables.
"""

import logging
import os

import numpy as np
import pandas as pd
from scipy.interpolate import CubicSpline

from .config import (
    ALL_VARIABLES, ENTITY, INTERPOLATED_ENTITIES, INTERPOLATED_VARIABLE, TIME,
)
from .errors import InsufficientObservationsError
from .panel import PanelData

LOGGER = logging.getLogger(__name__)


def read_panel_csv(path, entity=ENTITY, time=TIME, columns=ALL_VARIABLES):
    """
    Read the long-format panel CSV and validate its index.

    Raises
    ------
    KeyError
        If any of ``columns`` is absent.
    PanelIndexError
        If an (entity, time) pair repeats.
    """
    frame = pd.read_csv(path)
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise KeyError(f"{path}: missing columns {missing}")
    LOGGER.info("Read %d rows from %s", len(frame), path)
    return PanelData(frame, entity=entity, time=time)


def spline_fill(times, values):
    """
    Fill missing values of one series by cubic-spline interpolation.

    The spline passes through every observed point and extrapolates at
    the ends, so observed values are returned unchanged.

    Parameters
    ----------
    times : array-like, shape (n,)
        Strictly increasing numeric time points.
    values : array-like, shape (n,)
        Series with NaN where unobserved.

    Returns
    -------
    ndarray, shape (n,)
    """
    t = np.asarray(times, dtype=float)
    v = np.asarray(values, dtype=float)
    if np.any(np.diff(t) <= 0):
        raise ValueError("time points must be strictly increasing")
    known = ~np.isnan(v)
    if known.sum() < 2:
        raise ValueError(
            f"spline interpolation needs at least two observed points, got {int(known.sum())}"
        )
    out = v.copy()
    if (~known).any():
        out[~known] = CubicSpline(t[known], v[known])(t[~known])
    return out


def read_series_csv(path, time=TIME, variable=INTERPOLATED_VARIABLE):
    """Read a single-entity (time, variable) series and spline-fill its gaps."""
    frame = pd.read_csv(path).sort_values(time).reset_index(drop=True)
    n_missing = int(frame[variable].isna().sum())
    frame[variable] = spline_fill(frame[time], frame[variable])
    LOGGER.info("Interpolated %d missing %s values from %s", n_missing, variable, path)
    return frame[[time, variable]]


def fill_from_series(panel, entity_value, series, variable=INTERPOLATED_VARIABLE):
    """
    Fill missing ``variable`` values of one entity from an interpolated series.

    Returns a new PanelData; observed values are left as they are.
    """
    frame = panel.to_frame()
    rows = frame[panel.entity] == entity_value
    if not rows.any():
        LOGGER.warning("Entity %r not in panel; nothing to fill", entity_value)
        return panel
    lookup = series.set_index(panel.time)[variable]
    filler = frame.loc[rows, panel.time].map(lookup)
    before = int(frame.loc[rows, variable].isna().sum())
    frame.loc[rows, variable] = frame.loc[rows, variable].fillna(filler)
    after = int(frame.loc[rows, variable].isna().sum())
    LOGGER.info("Filled %d of %d missing %s values for %s",
                before - after, before, variable, entity_value)
    return PanelData(frame, entity=panel.entity, time=panel.time)


def validate_interpolated(panel, entities=INTERPOLATED_ENTITIES,
                          variable=INTERPOLATED_VARIABLE):
    """
    Check that the interpolated entities have a complete series.

    Raises
    ------
    InsufficientObservationsError
        If any listed entity still has missing ``variable`` values.
    """
    frame = panel.to_frame()
    for ent in entities:
        rows = frame[panel.entity] == ent
        if not rows.any():
            LOGGER.warning("Interpolated entity %r not present in panel", ent)
            continue
        gaps = int(frame.loc[rows, variable].isna().sum())
        if gaps:
            raise InsufficientObservationsError(
                f"{ent}: {gaps} missing {variable} values remain after interpolation"
            )


def correlation_matrix(panel, columns=ALL_VARIABLES):
    """Pairwise-complete Pearson correlation matrix of ``columns``."""
    return panel.to_frame()[list(columns)].corr(method="pearson", min_periods=2)


def _ensure_dir(outdir):
    os.makedirs(outdir, exist_ok=True)
    return outdir


def write_tables(tables, outdir, suffix="Results"):
    """
    Write each coefficient table to ``<outdir>/<name><suffix>.csv``.

    Parameters
    ----------
    tables : dict
        name -> DataFrame

    Returns
    -------
    list of str
        Paths written.
    """
    _ensure_dir(outdir)
    paths = []
    for name, table in tables.items():
        path = os.path.join(outdir, f"{name}{suffix}.csv")
        table.to_csv(path)
        paths.append(path)
    LOGGER.info("Wrote %d tables to %s", len(paths), outdir)
    return paths


def write_correlation(corr, outdir, filename="CollinearityOutputs.csv"):
    path = os.path.join(_ensure_dir(outdir), filename)
    corr.to_csv(path)
    return path
