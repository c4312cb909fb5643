from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from apaplot.core.config import PlotRequest
from apaplot.core.data import Dataset, prepare_frame
from apaplot.viz.chart import Chart, DiscreteScale, FacetSpec, Labels
from apaplot.viz.position import wrap_dims
from apaplot.viz.strategies import Encoding, strategy_for
from apaplot.viz.themes import theme_for

logger = logging.getLogger(__name__)


def _resolve_request(
    request: Union[PlotRequest, Mapping[str, Any], None], options: Mapping[str, Any]
) -> PlotRequest:
    if request is None:
        return PlotRequest(**options)
    if isinstance(request, PlotRequest):
        if not options:
            return request
        return PlotRequest.model_validate({**request.model_dump(), **options})
    return PlotRequest.model_validate({**dict(request), **options})


def build_chart(
    data: Any,
    request: Union[PlotRequest, Mapping[str, Any], None] = None,
    **options: Any,
) -> Chart:
    """Build an APA-styled chart from a table.

    Parameters
    ----------
    data:
        pandas DataFrame (or mapping of equal-length columns).
    request:
        A :class:`PlotRequest` or a mapping of its fields. Keyword ``options``
        are applied on top; with no request they make up the whole request.

    Raises
    ------
    InvalidInputError
        ``data`` is not a table, or the y column holds non-numeric values.
    MissingColumnError
        A referenced column is absent.
    EmptyDatasetError
        No rows remain after dropping missing y values.
    UnsupportedPlotTypeError
        ``plot_type`` is not bar, scatter or boxplot.
    """

    request = _resolve_request(request, options)

    dataset = Dataset.from_any(data)
    columns = request.column_names()
    dataset.require(columns)
    frame = prepare_frame(dataset, columns, y_var=request.y_var)

    strategy = strategy_for(request.plot_type)
    logger.debug(
        "Building %s chart of '%s' by '%s' from %d row(s)",
        strategy.plot_type.value,
        request.y_var,
        request.x_var,
        len(frame),
    )

    group_scale: Optional[DiscreteScale] = None
    if request.group_var is not None:
        group_scale = DiscreteScale.from_series(frame[request.group_var])

    facet: Optional[FacetSpec] = None
    if request.facet_var is not None:
        panel_scale = DiscreteScale.from_series(frame[request.facet_var])
        nrow, ncol = wrap_dims(len(panel_scale))
        facet = FacetSpec(column=request.facet_var, scale=panel_scale, nrow=nrow, ncol=ncol)

    enc = Encoding(group=group_scale, panel=facet.scale if facet is not None else None)
    marks = strategy.marks(frame, request, enc)

    return Chart(
        plot_type=strategy.plot_type,
        request=request,
        layers=tuple(marks.layers),
        labels=Labels(x=request.resolved_x_label(), y=request.y_label),
        theme=theme_for(request.theme, request.font_size),
        x_scale=marks.x_scale,
        group_scale=group_scale,
        color_aesthetic=marks.color_aesthetic,
        facet=facet,
        summary=marks.summary,
    )
