from __future__ import annotations

from typing import Sequence


class ChartBuildError(Exception):
    """Base class for every error raised while building a chart."""


class InvalidInputError(ChartBuildError, TypeError):
    """The dataset is not a well-formed table (or a column has the wrong kind of values)."""


class MissingColumnError(ChartBuildError, ValueError):
    def __init__(self, columns: Sequence[str], available: Sequence[str] = ()):
        self.columns = list(columns)
        self.available = list(available)
        msg = f"Dataset is missing required columns: {self.columns}"
        if self.available:
            msg += f". Available: {self.available}"
        super().__init__(msg)


class EmptyDatasetError(ChartBuildError, ValueError):
    def __init__(self, y_var: str):
        self.y_var = y_var
        super().__init__(f"Dataset is empty after removing missing values in '{y_var}'.")


class UnsupportedPlotTypeError(ChartBuildError, ValueError):
    def __init__(self, plot_type: object, supported: Sequence[str] = ()):
        self.plot_type = plot_type
        msg = f"Unsupported plot type: {plot_type!r}"
        if supported:
            msg += f". Choose one of: {list(supported)}"
        super().__init__(msg)
