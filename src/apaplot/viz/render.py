from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from apaplot.viz.chart import Chart, DiscreteScale
from apaplot.viz.themes import ThemeSpec

# points per millimetre; marker sizes are given in mm
PT = 72.27 / 25.4


def _pyplot():
    # Local import so building charts does not require a display or matplotlib state.
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt  # noqa: E402

    return plt


def group_colors(scale: Optional[DiscreteScale]) -> Dict[str, Any]:
    """Qualitative colour per group label, in level order."""

    if scale is None:
        return {}
    from matplotlib import colormaps

    n = len(scale)
    cmap = colormaps["tab10"] if n <= 10 else colormaps["tab20"]
    palette = list(cmap.colors)
    return {label: palette[i % len(palette)] for i, label in enumerate(scale.labels)}


def _colors_for(data: pd.DataFrame, colors: Mapping[str, Any], default: Any) -> List[Any]:
    if not colors:
        return [default] * len(data)
    return [colors.get(g, default) for g in data["group"]]


def _draw_bar(ax, data: pd.DataFrame, params: Mapping[str, Any], colors: Mapping[str, Any]) -> None:
    ax.bar(
        data["x_pos"],
        data["y"],
        width=data["width"],
        color=_colors_for(data, colors, params.get("fill")),
        edgecolor=params.get("edgecolor", "black"),
        linewidth=0.5,
        zorder=2,
    )


def _draw_errorbar(ax, data: pd.DataFrame, params: Mapping[str, Any], colors: Mapping[str, Any]) -> None:
    data = data[np.isfinite(data["ymin"]) & np.isfinite(data["ymax"])]
    if data.empty:
        return
    color = params.get("color", "black")
    lw = params.get("linewidth", 0.5) * 2
    half = data["width"] / 2.0
    ax.vlines(data["x_pos"], data["ymin"], data["ymax"], colors=color, linewidth=lw, zorder=3)
    for y in ("ymin", "ymax"):
        ax.hlines(data[y], data["x_pos"] - half, data["x_pos"] + half, colors=color, linewidth=lw, zorder=3)


def _draw_point(ax, data: pd.DataFrame, params: Mapping[str, Any], colors: Mapping[str, Any]) -> None:
    ax.scatter(
        data["x_pos"],
        data["y"],
        s=(params.get("size", 3.0) * PT) ** 2,
        c=_colors_for(data, colors, params.get("color", "black")),
        alpha=params.get("alpha", 1.0),
        marker=params.get("marker", "o"),
        linewidths=0,
        zorder=3,
    )


def _draw_line(ax, data: pd.DataFrame, params: Mapping[str, Any], colors: Mapping[str, Any]) -> None:
    for row in data.itertuples(index=False):
        ax.plot(
            [row.x_start, row.x_end],
            [row.y_start, row.y_end],
            color=params.get("color", "red"),
            linewidth=params.get("linewidth", 1.0),
            zorder=4,
        )


def _draw_boxplot(ax, data: pd.DataFrame, params: Mapping[str, Any], colors: Mapping[str, Any]) -> None:
    from matplotlib.colors import to_rgba

    stats = [
        {
            "med": row.median,
            "q1": row.q1,
            "q3": row.q3,
            "whislo": row.lower_whisker,
            "whishi": row.upper_whisker,
            "fliers": list(row.outliers),
        }
        for row in data.itertuples(index=False)
    ]
    lw = params.get("linewidth", 0.5) * 2
    line = {"color": "black", "linewidth": lw}
    artists = ax.bxp(
        stats,
        positions=list(data["x_pos"]),
        widths=list(data["width"]),
        patch_artist=True,
        showcaps=False,
        showfliers=True,
        manage_ticks=False,
        boxprops={"edgecolor": "black", "linewidth": lw},
        medianprops=line,
        whiskerprops=line,
        flierprops={
            "marker": params.get("outlier_marker", "o"),
            "markerfacecolor": params.get("outlier_facecolor", "none"),
            "markeredgecolor": params.get("outlier_edgecolor", "black"),
            "linestyle": "none",
        },
    )
    fills = _colors_for(data, colors, params.get("fill", "white"))
    for patch, fill in zip(artists["boxes"], fills):
        patch.set_facecolor(to_rgba(fill, params.get("alpha", 1.0)))
        patch.set_zorder(2)


def _draw_mean_point(ax, data: pd.DataFrame, params: Mapping[str, Any], colors: Mapping[str, Any]) -> None:
    ax.scatter(
        data["x_pos"],
        data["y"],
        s=(params.get("size", 3.0) * PT) ** 2 / 2.0,
        c=params.get("color", "black"),
        marker=params.get("marker", "D"),
        linewidths=0,
        zorder=4,
    )


DRAWERS: Dict[str, Callable[..., None]] = {
    "bar": _draw_bar,
    "errorbar": _draw_errorbar,
    "point": _draw_point,
    "line": _draw_line,
    "boxplot": _draw_boxplot,
    "mean_point": _draw_mean_point,
}


def _style_axes(ax, chart: Chart, theme: ThemeSpec) -> None:
    for spine in ax.spines.values():
        spine.set_visible(True)
        spine.set_edgecolor(theme.panel_border_color)

    if chart.x_scale is not None:
        n = len(chart.x_scale)
        ax.set_xticks(range(n))
        ax.set_xticklabels(chart.x_scale.labels)
        ax.set_xlim(-0.6, n - 0.4)


def _legend_handles(chart: Chart, colors: Mapping[str, Any], theme: ThemeSpec) -> List[Tuple[Any, Any]]:
    from matplotlib.lines import Line2D
    from matplotlib.patches import Patch

    key_edge = theme.legend_key_edgecolor or theme.legend_key_facecolor
    handles = []
    for color in colors.values():
        key = Patch(facecolor=theme.legend_key_facecolor, edgecolor=key_edge)
        if chart.color_aesthetic == "color":
            swatch = Line2D([], [], marker="o", linestyle="", color=color, alpha=0.7, markersize=7)
        else:
            swatch = Patch(facecolor=color, edgecolor="black", linewidth=0.5)
        handles.append((key, swatch))
    return handles


def render_chart(chart: Chart, *, figsize: Optional[Tuple[float, float]] = None):
    """Draw ``chart`` into a new matplotlib Figure (Agg backend).

    The caller owns the returned figure and should close it.
    """

    plt = _pyplot()
    theme = chart.theme
    nrow, ncol = (chart.facet.nrow, chart.facet.ncol) if chart.facet is not None else (1, 1)
    if figsize is None:
        figsize = (max(6.5, 3.5 * ncol), max(4.5, 3.0 * nrow))

    colors = group_colors(chart.group_scale)

    with plt.rc_context(theme.rc_params()):
        fig, axes = plt.subplots(nrow, ncol, figsize=figsize, sharex=True, sharey=True, squeeze=False)
        panels = chart.panels
        for ax, panel in zip(axes.flat, panels):
            for layer in chart.layers:
                data = layer.data[layer.data["panel"] == panel]
                if data.empty:
                    continue
                DRAWERS[layer.geom](ax, data, layer.params, colors)
            _style_axes(ax, chart, theme)
            if chart.facet is not None:
                ax.set_title(
                    panel,
                    color=theme.strip_text_color,
                    fontsize=theme.small_size,
                    bbox={"facecolor": theme.strip_facecolor, "edgecolor": theme.panel_border_color},
                )
        for ax in list(axes.flat)[len(panels):]:
            ax.set_visible(False)

        title_font = {"fontweight": theme.axis_title_weight, "fontsize": theme.base_size}
        if chart.facet is None:
            axes[0, 0].set_xlabel(chart.labels.x, **title_font)
            axes[0, 0].set_ylabel(chart.labels.y, **title_font)
        else:
            fig.supxlabel(chart.labels.x, **title_font)
            fig.supylabel(chart.labels.y, **title_font)

        if colors:
            fig.legend(
                _legend_handles(chart, colors, theme),
                list(colors),
                loc="lower center",
                bbox_to_anchor=(0.5, 1.0),
                ncol=len(colors),
                frameon=False,
                title=None,
            )
        fig.tight_layout()
    return fig


def save_chart(chart: Chart, out_path: str | Path, *, dpi: int = 200) -> Path:
    """Render ``chart`` and write it to ``out_path`` (format from the suffix)."""

    plt = _pyplot()
    fig = render_chart(chart)

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=dpi, bbox_inches="tight", facecolor=chart.theme.figure_facecolor)
    plt.close(fig)
    return out_path
