from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence

import pandas as pd

from .errors import EmptyDatasetError, InvalidInputError, MissingColumnError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dataset:
    """Read-only view of a rectangular table with typed column access."""

    frame: pd.DataFrame

    @classmethod
    def from_any(cls, data: Any) -> "Dataset":
        """Wrap a DataFrame or a mapping of equal-length columns.

        Anything else raises :class:`InvalidInputError`.
        """

        if isinstance(data, Dataset):
            return data
        if isinstance(data, pd.DataFrame):
            frame = data
        elif isinstance(data, Mapping):
            try:
                frame = pd.DataFrame(dict(data))
            except (ValueError, TypeError) as e:
                raise InvalidInputError(f"The input data must be a well-formed table: {e}") from e
        else:
            raise InvalidInputError(
                f"The input data must be a data frame, got {type(data).__name__}."
            )

        if frame.columns.has_duplicates:
            dupes = sorted({str(c) for c in frame.columns[frame.columns.duplicated()]})
            raise InvalidInputError(f"The input data has duplicated column names: {dupes}")
        return cls(frame=frame)

    @property
    def columns(self) -> List[str]:
        return [str(c) for c in self.frame.columns]

    def __len__(self) -> int:
        return len(self.frame)

    def column(self, name: str) -> pd.Series:
        if name not in self.frame.columns:
            raise MissingColumnError([name], available=self.columns)
        return self.frame[name]

    def require(self, names: Sequence[str]) -> None:
        missing = [c for c in names if c not in self.frame.columns]
        if missing:
            raise MissingColumnError(missing, available=self.columns)

    def select(self, names: Sequence[str]) -> pd.DataFrame:
        """Copy of the named columns, in the given order."""
        self.require(names)
        return self.frame[list(names)].copy()


def load_dataset(path: str | Path) -> pd.DataFrame:
    path = Path(path)
    if path.suffix.lower() in {".csv"}:
        return pd.read_csv(path)
    if path.suffix.lower() in {".parquet"}:
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported dataset format: {path.suffix}. Use .csv or .parquet")


def coerce_numeric(series: pd.Series, *, name: str) -> pd.Series:
    """Return ``series`` as floats; missing values stay missing.

    Booleans count as 0/1. Raises InvalidInputError if a present value is not a number.
    """

    if pd.api.types.is_bool_dtype(series) or pd.api.types.is_numeric_dtype(series):
        return series.astype(float)

    coerced = pd.to_numeric(series, errors="coerce")
    bad = coerced.isna() & series.notna()
    if bad.any():
        bad_rows = series[bad].index[:10].tolist()
        raise InvalidInputError(f"Column '{name}' must be numeric. Example bad rows: {bad_rows}")
    return coerced.astype(float)


def prepare_frame(dataset: Dataset, columns: Sequence[str], *, y_var: str) -> pd.DataFrame:
    """Select ``columns``, make ``y_var`` numeric and drop rows where it is missing."""

    df = dataset.select(columns)
    df[y_var] = coerce_numeric(df[y_var], name=y_var)

    keep = df[y_var].notna()
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.debug("Dropped %d row(s) with missing '%s'", n_dropped, y_var)
    df = df.loc[keep].reset_index(drop=True)

    if len(df) == 0:
        raise EmptyDatasetError(y_var)
    return df
