"""APA-style chart themes.

Each theme is a base look (``bw``, ``classic``, ``dark``) with the same
publication overrides on top: serif text at the requested size, bold axis
titles and a border around the panel. The renderer never draws a plot title and
always puts the legend above the panel.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from apaplot.core.config import ThemeName

# fraction of the base size used for tick labels, legend text and strips
SMALL_TEXT = 0.8


@dataclass(frozen=True)
class ThemeSpec:
    name: str
    base_size: float
    font_family: str = "serif"
    text_color: str = "black"
    figure_facecolor: str = "white"
    panel_facecolor: str = "white"
    grid: bool = True
    grid_color: str = "#EBEBEB"
    tick_color: str = "#333333"
    panel_border_color: str = "black"
    legend_key_facecolor: str = "white"
    legend_key_edgecolor: Optional[str] = None
    strip_facecolor: str = "#D9D9D9"
    strip_text_color: str = "#1A1A1A"
    axis_title_weight: str = "bold"

    @property
    def small_size(self) -> float:
        return self.base_size * SMALL_TEXT

    def rc_params(self) -> Dict[str, Any]:
        """matplotlib rcParams implementing this theme."""

        return {
            "font.family": self.font_family,
            "font.size": self.base_size,
            "text.color": self.text_color,
            "figure.facecolor": self.figure_facecolor,
            "savefig.facecolor": self.figure_facecolor,
            "axes.facecolor": self.panel_facecolor,
            "axes.edgecolor": self.panel_border_color,
            "axes.linewidth": 0.8,
            "axes.labelsize": self.base_size,
            "axes.labelweight": self.axis_title_weight,
            "axes.labelcolor": self.text_color,
            "axes.titlesize": self.small_size,
            "axes.grid": self.grid,
            "axes.axisbelow": True,
            "grid.color": self.grid_color,
            "grid.linewidth": 0.8,
            "xtick.color": self.tick_color,
            "ytick.color": self.tick_color,
            "xtick.labelcolor": self.text_color,
            "ytick.labelcolor": self.text_color,
            "xtick.labelsize": self.small_size,
            "ytick.labelsize": self.small_size,
            "legend.fontsize": self.small_size,
            "legend.frameon": False,
        }


def theme_for(name: ThemeName | str, font_size: float = 12.0) -> ThemeSpec:
    """Build the named theme at ``font_size``."""

    try:
        name = ThemeName(name)
    except ValueError as e:
        raise ValueError(
            f"Unknown theme: {name!r}. Choose one of: {[t.value for t in ThemeName]}"
        ) from e

    if name == ThemeName.bw:
        return ThemeSpec(name=name.value, base_size=float(font_size))

    if name == ThemeName.classic:
        return ThemeSpec(
            name=name.value,
            base_size=float(font_size),
            grid=False,
            tick_color="black",
            strip_facecolor="white",
            strip_text_color="black",
        )

    if name == ThemeName.dark:
        return ThemeSpec(
            name=name.value,
            base_size=float(font_size),
            panel_facecolor="#7F7F7F",
            grid_color="#6B6B6B",
            panel_border_color="white",
            legend_key_facecolor="black",
            legend_key_edgecolor="white",
            strip_facecolor="#262626",
            strip_text_color="#E5E5E5",
        )

    raise ValueError(f"Unknown theme: {name!r}")  # pragma: no cover
