from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PlotType(str, Enum):
    bar = "bar"
    scatter = "scatter"
    boxplot = "boxplot"


class ErrorType(str, Enum):
    SE = "SE"
    CI = "CI"


class ThemeName(str, Enum):
    bw = "bw"
    classic = "classic"
    dark = "dark"


class PlotRequest(BaseModel):
    """Everything needed to build one chart from one dataset.

    Column options name columns of the dataset passed to
    :func:`apaplot.builder.build_chart`; the rest are cosmetic. ``plot_type`` is
    kept as a plain string so that an unknown family surfaces as
    :class:`~apaplot.core.errors.UnsupportedPlotTypeError` at build time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    x_var: str
    y_var: str
    group_var: Optional[str] = None
    facet_var: Optional[str] = None

    plot_type: str = PlotType.bar.value
    error_type: ErrorType = ErrorType.SE

    bar_width: float = Field(default=0.8, gt=0)
    error_bar_width: float = Field(default=0.2, gt=0)
    dodge_position: float = Field(default=0.9, gt=0)
    point_size: float = Field(default=3.0, gt=0)

    x_label: Optional[str] = None
    y_label: str = "Value"

    font_size: float = Field(default=12.0, gt=0)
    theme: ThemeName = ThemeName.bw

    add_regression_line: bool = False

    @field_validator("error_type", mode="before")
    @classmethod
    def _upper_error_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("group_var", "facet_var", "x_label", mode="before")
    @classmethod
    def _blank_as_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("theme", "plot_type", mode="before")
    @classmethod
    def _lower_names(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def _validate(self) -> "PlotRequest":
        if not self.x_var or not self.y_var:
            raise ValueError("x_var and y_var must be non-empty column names.")
        return self

    @classmethod
    def from_yaml(cls, path: str | Path, **overrides: Any) -> "PlotRequest":
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Request file {path} must contain a mapping of options.")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)

    def column_names(self) -> List[str]:
        """Referenced columns in x, y, group, facet order (duplicates removed)."""
        names: List[str] = []
        for c in (self.x_var, self.y_var, self.group_var, self.facet_var):
            if c is not None and c not in names:
                names.append(c)
        return names

    def resolved_x_label(self) -> str:
        return self.x_label if self.x_label is not None else self.x_var
