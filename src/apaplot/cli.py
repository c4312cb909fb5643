from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import pandas as pd
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from apaplot.builder import build_chart
from apaplot.core.config import ErrorType, PlotRequest, PlotType, ThemeName
from apaplot.core.data import Dataset, load_dataset, prepare_frame
from apaplot.core.errors import ChartBuildError
from apaplot.stats.summary import summarize_groups
from apaplot.viz.render import save_chart


app = typer.Typer(add_completion=False, help="APA-style chart builder")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _print_dataframe(df: pd.DataFrame, title: str, max_rows: int = 20) -> None:
    tbl = Table(title=title, show_lines=False)
    for c in df.columns:
        tbl.add_column(str(c))
    for row in df.head(max_rows).itertuples(index=False):
        tbl.add_row(*[f"{v:.4g}" if isinstance(v, float) else str(v) for v in row])
    console.print(tbl)
    if len(df) > max_rows:
        console.print(f"(showing first {max_rows} of {len(df)} rows)")


def _fail(err: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(err))}")
    raise typer.Exit(code=1) from err


def _load_request(config: Optional[str], overrides: Dict[str, Any]) -> PlotRequest:
    try:
        if config:
            return PlotRequest.from_yaml(config, **overrides)
        return PlotRequest(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        _fail(e)


def _read_dataset(path: str) -> pd.DataFrame:
    try:
        return load_dataset(path)
    except (OSError, ValueError) as e:
        _fail(e)


@app.command("plot")
def plot(
    data: str = typer.Option(..., "--data", help="Dataset CSV or Parquet"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to request YAML"),
    x: Optional[str] = typer.Option(None, "--x", help="Independent variable column"),
    y: Optional[str] = typer.Option(None, "--y", help="Dependent variable column"),
    group: Optional[str] = typer.Option(None, "--group", help="Grouping column"),
    facet: Optional[str] = typer.Option(None, "--facet", help="Facet column"),
    plot_type: Optional[PlotType] = typer.Option(None, "--plot-type"),
    error_type: Optional[ErrorType] = typer.Option(None, "--error-type"),
    theme: Optional[ThemeName] = typer.Option(None, "--theme"),
    font_size: Optional[float] = typer.Option(None, "--font-size"),
    x_label: Optional[str] = typer.Option(None, "--x-label"),
    y_label: Optional[str] = typer.Option(None, "--y-label"),
    regression: Optional[bool] = typer.Option(
        None, "--regression/--no-regression", help="Scatter only: add an OLS line"
    ),
    out: str = typer.Option("plots/chart.png", "--out"),
    dpi: int = typer.Option(200, "--dpi"),
):
    """Build a chart from a dataset and save it as an image."""

    overrides: Dict[str, Any] = {
        "x_var": x,
        "y_var": y,
        "group_var": group,
        "facet_var": facet,
        "plot_type": plot_type.value if plot_type is not None else None,
        "error_type": error_type.value if error_type is not None else None,
        "theme": theme.value if theme is not None else None,
        "font_size": font_size,
        "x_label": x_label,
        "y_label": y_label,
        "add_regression_line": regression,
    }
    request = _load_request(config, overrides)
    df = _read_dataset(data)

    try:
        chart = build_chart(df, request)
    except ChartBuildError as e:
        _fail(e)

    out_path = save_chart(chart, Path(out), dpi=dpi)
    console.print(f"Wrote: {out_path}")


@app.command("summarize")
def summarize(
    data: str = typer.Option(..., "--data", help="Dataset CSV or Parquet"),
    x: str = typer.Option(..., "--x"),
    y: str = typer.Option(..., "--y"),
    group: Optional[str] = typer.Option(None, "--group"),
    facet: Optional[str] = typer.Option(None, "--facet"),
    output: Optional[str] = typer.Option(None, "--output", help="If set, write summary CSV"),
):
    """Print mean, SE and 95% CI half-width per group."""

    request = _load_request(None, {"x_var": x, "y_var": y, "group_var": group, "facet_var": facet})
    df = _read_dataset(data)
    columns = request.column_names()

    try:
        dataset = Dataset.from_any(df)
        dataset.require(columns)
        frame = prepare_frame(dataset, columns, y_var=y)
    except ChartBuildError as e:
        _fail(e)

    by = [c for c in (request.facet_var, request.x_var, request.group_var) if c is not None]
    summary = summarize_groups(frame, y_var=y, by=list(dict.fromkeys(by)))
    # keys come back as the index; a key column may share a name with a statistic
    table = summary.reset_index(allow_duplicates=True)
    _print_dataframe(table, title=f"Summary of {y}")

    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(output, index=False)
        console.print(f"Wrote summary to {output}")


@app.command("validate-request")
def validate_request(
    config: str = typer.Option(..., "--config", help="Path to request YAML"),
):
    request = _load_request(config, {})
    console.print(f"Request is valid: {request.plot_type} of {request.y_var} by {request.x_var}")
