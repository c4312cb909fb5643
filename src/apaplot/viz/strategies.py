from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from apaplot.core.config import ErrorType, PlotRequest, PlotType
from apaplot.core.errors import UnsupportedPlotTypeError
from apaplot.stats.summary import box_summary, fit_line, group_keys, summarize_groups
from apaplot.viz.chart import DiscreteScale, Layer
from apaplot.viz.position import dodge_positions

logger = logging.getLogger(__name__)

SUPPORTED_PLOT_TYPES: Tuple[str, ...] = tuple(t.value for t in PlotType)

# Fixed cosmetics of the publication style
BAR_FILL = "#595959"
BAR_EDGE = "black"
POINT_COLOR = "black"
POINT_ALPHA = 0.7
REGRESSION_COLOR = "red"
BOX_WIDTH = 0.6
BOX_DODGE = 0.75
BOX_ALPHA = 0.7
BOX_LINEWIDTH = 0.5
MEAN_MARKER_SIZE = 3.0


@dataclass(frozen=True)
class Encoding:
    """Discrete scales shared by every layer of one chart."""

    group: Optional[DiscreteScale] = None
    panel: Optional[DiscreteScale] = None

    def panel_labels(self, values: Optional[pd.Series], n: int) -> List[str]:
        if self.panel is None or values is None:
            return [""] * n
        return self.panel.labels_for(values)

    def group_labels(self, values: Optional[pd.Series], n: int) -> List[Optional[str]]:
        if self.group is None or values is None:
            return [None] * n
        return list(self.group.labels_for(values))


@dataclass
class Marks:
    layers: List[Layer]
    x_scale: Optional[DiscreteScale]
    summary: Optional[pd.DataFrame] = None
    color_aesthetic: Optional[str] = None


def _keys(request: PlotRequest) -> List[str]:
    """Columns identifying one drawn element: facet, x, group."""
    keys: List[str] = []
    for c in (request.facet_var, request.x_var, request.group_var):
        if c is not None and c not in keys:
            keys.append(c)
    return keys


def _col(frame: pd.DataFrame, name: Optional[str]) -> Optional[pd.Series]:
    return frame[name] if name is not None else None


def _is_continuous(series: pd.Series) -> bool:
    return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)


class PlotStrategy:
    plot_type: PlotType

    def marks(self, frame: pd.DataFrame, request: PlotRequest, enc: Encoding) -> Marks:
        raise NotImplementedError

    def _dodge(
        self,
        x_code: np.ndarray,
        group_code: Optional[np.ndarray],
        panel: List[str],
        *,
        dodge_width: float,
        element_width: float,
    ) -> Tuple[np.ndarray, np.ndarray]:
        return dodge_positions(
            pd.Series(x_code),
            pd.Series(group_code) if group_code is not None else None,
            pd.Series(panel),
            dodge_width=dodge_width,
            element_width=element_width,
        )


class BarStrategy(PlotStrategy):
    """Aggregate to group means, then draw bars with symmetric error bars."""

    plot_type = PlotType.bar

    def marks(self, frame: pd.DataFrame, request: PlotRequest, enc: Encoding) -> Marks:
        x_scale = DiscreteScale.from_series(frame[request.x_var])
        summary = summarize_groups(frame, y_var=request.y_var, by=_keys(request))
        keys = group_keys(summary)

        error_col = "se" if request.error_type == ErrorType.SE else "ci"
        error = summary[error_col].to_numpy(dtype=float)
        mean = summary["mean"].to_numpy(dtype=float)

        n = len(summary)
        panel = enc.panel_labels(_col(keys, request.facet_var), n)
        groups = enc.group_labels(_col(keys, request.group_var), n)
        x_code = x_scale.codes(keys[request.x_var])
        group_code = enc.group.codes(keys[request.group_var]) if enc.group is not None else None

        centres, widths = self._dodge(
            x_code, group_code, panel,
            dodge_width=request.dodge_position, element_width=request.bar_width,
        )
        _, caps = self._dodge(
            x_code, group_code, panel,
            dodge_width=request.dodge_position, element_width=request.error_bar_width,
        )

        base = {
            "panel": panel,
            "x": x_scale.labels_for(keys[request.x_var]),
            "group": groups,
            "x_pos": centres,
        }
        bars = pd.DataFrame({**base, "width": widths, "y": mean, "n": summary["n"].to_numpy()})
        errorbars = pd.DataFrame(
            {**base, "width": caps, "ymin": mean - error, "ymax": mean + error, "error": error}
        )

        bar_params: Dict[str, Any] = {"edgecolor": BAR_EDGE}
        if enc.group is None:
            bar_params["fill"] = BAR_FILL

        return Marks(
            layers=[
                Layer("bar", bars, bar_params),
                Layer("errorbar", errorbars, {"color": "black", "linewidth": BOX_LINEWIDTH, "kind": error_col}),
            ],
            x_scale=x_scale,
            summary=summary,
            color_aesthetic="fill" if enc.group is not None else None,
        )


class ScatterStrategy(PlotStrategy):
    """One point per row, optionally with an OLS line over the same points."""

    plot_type = PlotType.scatter

    def marks(self, frame: pd.DataFrame, request: PlotRequest, enc: Encoding) -> Marks:
        x = frame[request.x_var]
        n = len(frame)

        if _is_continuous(x):
            x_scale = None
            x_pos = x.to_numpy(dtype=float)
            x_labels: List[Any] = list(x_pos)
        else:
            x_scale = DiscreteScale.from_series(x)
            x_pos = x_scale.codes(x).astype(float)
            x_labels = x_scale.labels_for(x)

        panel = enc.panel_labels(_col(frame, request.facet_var), n)
        points = pd.DataFrame(
            {
                "panel": panel,
                "x": x_labels,
                "group": enc.group_labels(_col(frame, request.group_var), n),
                "x_pos": x_pos,
                "y": frame[request.y_var].to_numpy(dtype=float),
            }
        )

        layers = [
            Layer(
                "point",
                points,
                {"size": request.point_size, "alpha": POINT_ALPHA, "marker": "o", "color": POINT_COLOR},
            )
        ]

        if request.add_regression_line and x_scale is not None:
            logger.warning(
                "Regression line skipped: x column '%s' is not numeric (%s)", request.x_var, x.dtype
            )
        elif request.add_regression_line:
            rows = []
            for p, sub in points.groupby("panel", sort=False):
                fit = fit_line(sub["x_pos"], sub["y"])
                if fit is None:
                    continue
                rows.append(
                    {
                        "panel": p,
                        "x_start": fit.x_min,
                        "x_end": fit.x_max,
                        "y_start": float(fit.predict(fit.x_min)),
                        "y_end": float(fit.predict(fit.x_max)),
                        "slope": fit.slope,
                        "intercept": fit.intercept,
                        "n": fit.n,
                    }
                )
            lines = pd.DataFrame(
                rows,
                columns=["panel", "x_start", "x_end", "y_start", "y_end", "slope", "intercept", "n"],
            )
            layers.append(Layer("line", lines, {"color": REGRESSION_COLOR, "linewidth": 1.0}))

        return Marks(
            layers=layers,
            x_scale=x_scale,
            color_aesthetic="color" if enc.group is not None else None,
        )


class BoxplotStrategy(PlotStrategy):
    """Tukey boxes per x level (dodged by group) with a mean marker on each box."""

    plot_type = PlotType.boxplot

    def marks(self, frame: pd.DataFrame, request: PlotRequest, enc: Encoding) -> Marks:
        x_scale = DiscreteScale.from_series(frame[request.x_var])
        by = _keys(request)

        # key values and box statistics are kept apart; rows line up by position
        key_rows = []
        stat_rows = []
        for key, sub in frame.groupby(by, sort=True, dropna=False, observed=True):
            s = box_summary(sub[request.y_var].to_numpy(dtype=float))
            key_rows.append(key)
            stat_rows.append(
                {
                    "n": s.n,
                    "lower_whisker": s.lower_whisker,
                    "q1": s.q1,
                    "median": s.median,
                    "q3": s.q3,
                    "upper_whisker": s.upper_whisker,
                    "outliers": tuple(s.outliers),
                    "mean": s.mean,
                }
            )
        keys = pd.DataFrame(key_rows, columns=by)
        stats_df = pd.DataFrame(stat_rows)

        n = len(stats_df)
        panel = enc.panel_labels(_col(keys, request.facet_var), n)
        x_code = x_scale.codes(keys[request.x_var])
        group_code = enc.group.codes(keys[request.group_var]) if enc.group is not None else None
        centres, widths = self._dodge(
            x_code, group_code, panel, dodge_width=BOX_DODGE, element_width=BOX_WIDTH
        )

        base = pd.DataFrame(
            {
                "panel": panel,
                "x": x_scale.labels_for(keys[request.x_var]),
                "group": enc.group_labels(_col(keys, request.group_var), n),
                "x_pos": centres,
            }
        )
        boxes = base.assign(width=widths)
        for c in ("n", "lower_whisker", "q1", "median", "q3", "upper_whisker", "outliers", "mean"):
            boxes[c] = stats_df[c].to_numpy()
        means = base.assign(y=stats_df["mean"].to_numpy(dtype=float))

        box_params: Dict[str, Any] = {
            "alpha": BOX_ALPHA,
            "linewidth": BOX_LINEWIDTH,
            "outlier_marker": "o",
            "outlier_facecolor": "none",
            "outlier_edgecolor": "black",
        }
        if enc.group is None:
            box_params["fill"] = "white"

        return Marks(
            layers=[
                Layer("boxplot", boxes, box_params),
                Layer(
                    "mean_point",
                    means,
                    {"marker": "D", "size": MEAN_MARKER_SIZE, "color": "black", "in_legend": False},
                ),
            ],
            x_scale=x_scale,
            color_aesthetic="fill" if enc.group is not None else None,
        )


def strategy_for(plot_type: object) -> PlotStrategy:
    try:
        kind = PlotType(plot_type)
    except ValueError as e:
        raise UnsupportedPlotTypeError(plot_type, SUPPORTED_PLOT_TYPES) from e

    if kind == PlotType.bar:
        return BarStrategy()
    if kind == PlotType.scatter:
        return ScatterStrategy()
    if kind == PlotType.boxplot:
        return BoxplotStrategy()
    raise UnsupportedPlotTypeError(plot_type, SUPPORTED_PLOT_TYPES)  # pragma: no cover
