from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from apaplot.core.config import PlotRequest, PlotType
from apaplot.viz.themes import ThemeSpec

MISSING_LABEL = "NA"


def _is_missing(v: Any) -> bool:
    try:
        return bool(pd.isna(v))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class DiscreteScale:
    """Ordered levels of a categorical column; a missing value is its own, last level."""

    levels: Tuple[Any, ...]

    @classmethod
    def from_series(cls, values: pd.Series) -> "DiscreteScale":
        if isinstance(values.dtype, pd.CategoricalDtype):
            present = set(values.dropna().unique())
            levels = [c for c in values.cat.categories if c in present]
        else:
            levels = list(pd.unique(values.dropna()))
            try:
                levels = sorted(levels)
            except TypeError:
                # mixed types: keep order of first appearance
                pass
        if values.isna().any():
            levels.append(np.nan)
        return cls(levels=tuple(levels))

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(MISSING_LABEL if _is_missing(v) else str(v) for v in self.levels)

    def __len__(self) -> int:
        return len(self.levels)

    def codes(self, values: pd.Series | Sequence[Any]) -> np.ndarray:
        lookup = {v: i for i, v in enumerate(self.levels) if not _is_missing(v)}
        na_code = len(self.levels) - 1 if self.levels and _is_missing(self.levels[-1]) else -1
        out = []
        for v in values:
            if _is_missing(v):
                out.append(na_code)
            else:
                out.append(lookup[v])
        return np.asarray(out, dtype=int)

    def labels_for(self, values: pd.Series | Sequence[Any]) -> List[str]:
        labels = self.labels
        return [labels[c] for c in self.codes(values)]


@dataclass(frozen=True, eq=False)
class Layer:
    """One mark type with the data it draws.

    ``data`` always carries a ``panel`` column; positional columns are in axis
    units (discrete x levels sit at 0, 1, 2, ...).
    """

    geom: str
    data: pd.DataFrame
    params: Dict[str, Any] = field(default_factory=dict)

    def equals(self, other: "Layer") -> bool:
        return (
            self.geom == other.geom
            and self.params == other.params
            and self.data.equals(other.data)
        )


@dataclass(frozen=True)
class Labels:
    x: str
    y: str


@dataclass(frozen=True)
class FacetSpec:
    column: str
    scale: DiscreteScale
    nrow: int
    ncol: int

    @property
    def panels(self) -> Tuple[str, ...]:
        return self.scale.labels


@dataclass(frozen=True, eq=False)
class Chart:
    """Declarative scene returned by :func:`apaplot.builder.build_chart`.

    Draw it with :func:`apaplot.viz.render.render_chart` or
    :func:`apaplot.viz.render.save_chart`.
    """

    plot_type: PlotType
    request: PlotRequest
    layers: Tuple[Layer, ...]
    labels: Labels
    theme: ThemeSpec
    x_scale: Optional[DiscreteScale] = None
    group_scale: Optional[DiscreteScale] = None
    color_aesthetic: Optional[str] = None
    facet: Optional[FacetSpec] = None
    summary: Optional[pd.DataFrame] = None

    @property
    def panels(self) -> Tuple[str, ...]:
        return self.facet.panels if self.facet is not None else ("",)

    def layer(self, geom: str) -> Layer:
        for lyr in self.layers:
            if lyr.geom == geom:
                return lyr
        raise KeyError(f"Chart has no '{geom}' layer. Layers: {[lyr.geom for lyr in self.layers]}")

    def has_layer(self, geom: str) -> bool:
        return any(lyr.geom == geom for lyr in self.layers)

    def equals(self, other: "Chart") -> bool:
        if (
            self.plot_type != other.plot_type
            or self.request != other.request
            or self.labels != other.labels
            or self.theme != other.theme
            or self.x_scale != other.x_scale
            or self.group_scale != other.group_scale
            or self.color_aesthetic != other.color_aesthetic
            or self.facet != other.facet
            or len(self.layers) != len(other.layers)
        ):
            return False
        if (self.summary is None) != (other.summary is None):
            return False
        if self.summary is not None and not self.summary.equals(other.summary):
            return False
        return all(a.equals(b) for a, b in zip(self.layers, other.layers))
