"""
Panel Data Container

Wraps a country-year table with a validated (entity, time) index.
"""

import logging

import numpy as np
import pandas as pd

from .config import ENTITY, TIME
from .errors import PanelIndexError

LOGGER = logging.getLogger(__name__)


class PanelData:
    """
    Rectangular panel table indexed by (entity, time).

    Rows are stored sorted by entity, then time.  The container is never
    modified in place: ``with_columns`` returns a new panel, and existing
    columns can never be overwritten.

    Parameters
    ----------
    frame : pandas.DataFrame
        Long-format table with one row per entity-period.
    entity : str
        Name of the entity (country) column.
    time : str
        Name of the time (year) column.

    Raises
    ------
    PanelIndexError
        If an index column is missing, holds missing values, or any
        (entity, time) pair repeats.
    """

    def __init__(self, frame, entity=ENTITY, time=TIME):
        missing = [c for c in (entity, time) if c not in frame.columns]
        if missing:
            raise PanelIndexError(f"index column(s) not found: {missing}")
        if frame[[entity, time]].isna().any().any():
            raise PanelIndexError("index columns contain missing values")

        dup = frame.duplicated(subset=[entity, time], keep=False)
        if dup.any():
            pairs = frame.loc[dup, [entity, time]].drop_duplicates()
            shown = ", ".join(f"({e}, {t})" for e, t in pairs.head(5).values)
            raise PanelIndexError(
                f"{int(dup.sum())} rows share duplicated (entity, time) "
                f"pairs: {shown}"
            )

        self.entity = entity
        self.time = time
        self._frame = (
            frame.sort_values([entity, time], kind="mergesort")
            .reset_index(drop=True)
        )

    def __len__(self):
        return len(self._frame)

    def __repr__(self):
        return (f"PanelData(nobs={len(self)}, entities={self.n_entities}, "
                f"periods={self.n_periods})")

    def __contains__(self, name):
        return name in self._frame.columns

    @property
    def columns(self):
        return list(self._frame.columns)

    @property
    def n_entities(self):
        return int(self._frame[self.entity].nunique())

    @property
    def n_periods(self):
        return int(self._frame[self.time].nunique())

    @property
    def entities(self):
        """Entity identifier of each row, as an ndarray."""
        return self._frame[self.entity].to_numpy()

    @property
    def times(self):
        """Time identifier of each row, as an ndarray."""
        return self._frame[self.time].to_numpy()

    def column(self, name):
        """Return a copy of one column as a Series indexed by (entity, time)."""
        if name not in self._frame.columns:
            raise KeyError(f"column {name!r} not in panel")
        s = self._frame[name].copy()
        s.index = pd.MultiIndex.from_arrays(
            [self._frame[self.entity], self._frame[self.time]],
            names=[self.entity, self.time],
        )
        return s

    def to_frame(self):
        """Return a copy of the underlying table (entity and time as columns)."""
        return self._frame.copy()

    def groups(self):
        """
        Row positions of each entity.

        Returns
        -------
        dict
            entity -> ndarray of integer row positions (sorted by time).
        """
        return {
            g: np.asarray(idx)
            for g, idx in self._frame.groupby(self.entity, sort=True).indices.items()
        }

    def select(self, columns):
        """Table restricted to the index columns plus ``columns``."""
        missing = [c for c in columns if c not in self._frame.columns]
        if missing:
            raise KeyError(f"columns not in panel: {missing}")
        keep = [self.entity, self.time] + [c for c in dict.fromkeys(columns)]
        return self._frame[keep].copy()

    def with_columns(self, **columns):
        """
        Return a new panel with derived columns appended.

        Values may be Series aligned to ``to_frame()`` row order or arrays of
        matching length.  Existing columns are never overwritten.
        """
        clash = [c for c in columns if c in self._frame.columns]
        if clash:
            raise ValueError(f"refusing to overwrite existing column(s): {clash}")
        frame = self._frame.copy()
        for name, values in columns.items():
            values = np.asarray(values, dtype=float)
            if values.shape != (len(frame),):
                raise ValueError(
                    f"column {name!r} has shape {values.shape}, "
                    f"expected ({len(frame)},)"
                )
            frame[name] = values
        LOGGER.debug("Added derived columns %s", list(columns))
        return PanelData(frame, entity=self.entity, time=self.time)
