"""Descriptive statistics behind the chart layers.

- Group summaries (mean, SE, t-based CI half-width) for bar charts
- Five-number box summaries for box plots
- Ordinary least squares line for the scatter overlay
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["mean", "sd", "se", "ci", "n"]


def t_critical(df: np.ndarray | Sequence[float] | float, *, q: float = 0.975) -> np.ndarray:
    """Student-t quantile ``q`` at ``df`` degrees of freedom; NaN where df < 1."""

    df = np.atleast_1d(np.asarray(df, dtype=float))
    out = np.full(df.shape, np.nan)
    ok = np.isfinite(df) & (df >= 1)
    out[ok] = stats.t.ppf(q, df[ok])
    return out


def summarize_groups(frame: pd.DataFrame, *, y_var: str, by: Sequence[str]) -> pd.DataFrame:
    """Mean, SD, standard error and 95% CI half-width of ``y_var`` per group.

    Parameters
    ----------
    frame:
        Rows to summarize. ``y_var`` must already be numeric with no missing values.
    by:
        Grouping columns. Groups are sorted by key; a missing key forms its own group.

    Returns
    -------
    DataFrame indexed by the group keys (one index level per ``by`` column) with
    columns :data:`SUMMARY_COLUMNS`. Keys never share a namespace with the
    statistics, so a grouping column may itself be called ``n`` or ``mean``.

    Groups with a single observation get NaN ``sd``/``se``/``ci``.
    """

    grouped = frame.groupby(list(by), sort=True, dropna=False, observed=True)[y_var]
    out = grouped.agg(mean="mean", sd="std", n="count")
    out["n"] = out["n"].astype(int)
    out["se"] = out["sd"] / np.sqrt(out["n"])
    out["ci"] = t_critical(out["n"] - 1) * out["se"].to_numpy()

    degenerate = out.index[(out["n"] < 2).to_numpy()]
    if len(degenerate):
        logger.warning(
            "%d group(s) have a single observation; their SE and CI are undefined: %s",
            len(degenerate),
            degenerate.tolist(),
        )

    return out[SUMMARY_COLUMNS]


def group_keys(summary: pd.DataFrame) -> pd.DataFrame:
    """Key columns of a :func:`summarize_groups` result, one row per group, positionally aligned."""

    return summary.index.to_frame(index=False)


@dataclass(frozen=True)
class BoxSummary:
    lower_whisker: float
    q1: float
    median: float
    q3: float
    upper_whisker: float
    outliers: List[float]
    mean: float
    n: int

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1


def box_summary(values: Sequence[float] | np.ndarray, *, coef: float = 1.5) -> BoxSummary:
    """Tukey box statistics.

    Hinges are linearly interpolated quartiles. Whiskers reach the most extreme
    observations within ``coef`` * IQR of the hinges; anything beyond is an outlier.
    """

    y = np.asarray(values, dtype=float)
    y = y[np.isfinite(y)]
    if y.size == 0:
        raise ValueError("Cannot summarize an empty group")

    q1, med, q3 = np.percentile(y, [25, 50, 75])
    iqr = q3 - q1
    is_out = (y < q1 - coef * iqr) | (y > q3 + coef * iqr)
    inside = np.concatenate([[q1, med, q3], y[~is_out]])

    return BoxSummary(
        lower_whisker=float(inside.min()),
        q1=float(q1),
        median=float(med),
        q3=float(q3),
        upper_whisker=float(inside.max()),
        outliers=sorted(float(v) for v in y[is_out]),
        mean=float(np.mean(y)),
        n=int(y.size),
    )


@dataclass(frozen=True)
class LineFit:
    slope: float
    intercept: float
    x_min: float
    x_max: float
    n: int

    def predict(self, x: np.ndarray | Sequence[float]) -> np.ndarray:
        return self.intercept + self.slope * np.asarray(x, dtype=float)


def fit_line(x: Sequence[float] | np.ndarray, y: Sequence[float] | np.ndarray) -> Optional[LineFit]:
    """OLS fit of ``y ~ x``. Returns None when x has fewer than two distinct values."""

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    keep = np.isfinite(x) & np.isfinite(y)
    x = x[keep]
    y = y[keep]

    if np.unique(x).size < 2:
        logger.warning("Regression line skipped: need at least two distinct x values (got %d)", np.unique(x).size)
        return None

    model = sm.OLS(y, sm.add_constant(x, has_constant="add")).fit()
    intercept, slope = (float(v) for v in model.params)
    return LineFit(slope=slope, intercept=intercept, x_min=float(x.min()), x_max=float(x.max()), n=int(x.size))
