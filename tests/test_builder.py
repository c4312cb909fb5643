import logging
import math

import numpy as np
import pandas as pd
import pytest
from pydantic import ValidationError

from apaplot.builder import build_chart
from apaplot.core.config import PlotRequest, PlotType
from apaplot.core.errors import (
    ChartBuildError,
    EmptyDatasetError,
    InvalidInputError,
    MissingColumnError,
    UnsupportedPlotTypeError,
)


@pytest.fixture
def df():
    return pd.DataFrame(
        {
            "cond": ["a"] * 5 + ["b"] * 5,
            "score": [1.0, 2.0, 3.0, 4.0, 5.0, 2.0, 4.0, 6.0, 8.0, 10.0],
            "sex": ["f", "m"] * 5,
            "site": ["s1"] * 5 + ["s2"] * 5,
        }
    )


def test_bar_means_and_standard_errors(df):
    chart = build_chart(df, x_var="cond", y_var="score")

    assert chart.plot_type == PlotType.bar
    bars = chart.layer("bar").data
    assert bars["x"].tolist() == ["a", "b"]
    assert bars["y"].tolist() == pytest.approx([3.0, 6.0])
    assert bars["x_pos"].tolist() == [0.0, 1.0]
    assert bars["width"].tolist() == [0.8, 0.8]

    err = chart.layer("errorbar").data
    assert err["error"].tolist() == pytest.approx([math.sqrt(0.5), math.sqrt(2.0)])
    assert err["ymin"].tolist() == pytest.approx([3.0 - math.sqrt(0.5), 6.0 - math.sqrt(2.0)])
    assert err["width"].tolist() == [0.2, 0.2]


def test_ci_error_bars_differ_from_se(df):
    se = build_chart(df, x_var="cond", y_var="score", error_type="SE").layer("errorbar").data
    ci = build_chart(df, x_var="cond", y_var="score", error_type="CI").layer("errorbar").data

    assert not np.allclose(se["error"], ci["error"])
    assert ci["error"].tolist() == pytest.approx((se["error"] * 2.776445).tolist(), rel=1e-6)


def test_error_type_is_case_insensitive_and_closed(df):
    chart = build_chart(df, x_var="cond", y_var="score", error_type="ci")
    assert chart.request.error_type.value == "CI"
    with pytest.raises(ValidationError):
        PlotRequest(x_var="cond", y_var="score", error_type="SD")


def test_missing_y_rows_do_not_affect_means(df):
    noisy = pd.concat(
        [df, pd.DataFrame({"cond": ["a", "b"], "score": [np.nan, None], "sex": ["f", "m"], "site": ["s1", "s2"]})],
        ignore_index=True,
    )
    clean = build_chart(df, x_var="cond", y_var="score")
    chart = build_chart(noisy, x_var="cond", y_var="score")

    assert chart.layer("bar").data.equals(clean.layer("bar").data)
    assert chart.summary["n"].tolist() == [5, 5]


def test_grouped_bars_are_dodged(df):
    chart = build_chart(df, x_var="cond", y_var="score", group_var="sex")

    bars = chart.layer("bar").data
    assert list(zip(bars["x"], bars["group"])) == [("a", "f"), ("a", "m"), ("b", "f"), ("b", "m")]
    assert bars["x_pos"].tolist() == pytest.approx([-0.225, 0.225, 0.775, 1.225])
    assert bars["width"].tolist() == pytest.approx([0.4] * 4)

    err = chart.layer("errorbar").data
    assert err["x_pos"].tolist() == bars["x_pos"].tolist()
    assert err["width"].tolist() == pytest.approx([0.1] * 4)

    assert chart.group_scale.labels == ("f", "m")
    assert chart.color_aesthetic == "fill"


def test_dodge_uses_groups_present_at_each_x():
    df = pd.DataFrame({"x": ["a", "a", "b", "b"], "g": ["p", "q", "p", "p"], "y": [1.0, 2.0, 3.0, 5.0]})
    bars = build_chart(df, x_var="x", y_var="y", group_var="g", bar_width=0.6, dodge_position=0.8).layer("bar").data

    assert bars["x_pos"].tolist() == pytest.approx([-0.2, 0.2, 1.0])
    assert bars["width"].tolist() == pytest.approx([0.3, 0.3, 0.6])


def test_single_observation_group_gives_nan_error_bar():
    df = pd.DataFrame({"x": ["a", "a", "b"], "y": [1.0, 3.0, 4.0]})
    chart = build_chart(df, x_var="x", y_var="y")
    err = chart.layer("errorbar").data
    assert np.isfinite(err["error"].iloc[0])
    assert np.isnan(err["error"].iloc[1])


@pytest.mark.parametrize("option", ["x_var", "y_var", "group_var", "facet_var"])
def test_missing_column_is_named(df, option):
    opts = {"x_var": "cond", "y_var": "score", option: "nope"}
    with pytest.raises(MissingColumnError) as exc:
        build_chart(df, **opts)
    assert exc.value.columns == ["nope"]
    assert "nope" in str(exc.value)


@pytest.mark.parametrize("data", [[1, 2, 3], "cond,score", None, {"a": [1, 2], "b": [1, 2, 3]}])
def test_non_tabular_input_rejected(data):
    with pytest.raises(InvalidInputError):
        build_chart(data, x_var="a", y_var="b")


def test_mapping_input_accepted():
    chart = build_chart({"x": ["a", "b"], "y": [1, 2]}, x_var="x", y_var="y")
    assert chart.layer("bar").data["y"].tolist() == [1.0, 2.0]


def test_non_numeric_y_rejected(df):
    with pytest.raises(InvalidInputError) as exc:
        build_chart(df, x_var="score", y_var="cond")
    assert "numeric" in str(exc.value)


def test_numeric_strings_in_y_are_coerced():
    df = pd.DataFrame({"x": ["a", "a"], "y": ["1.5", "2.5"]})
    chart = build_chart(df, x_var="x", y_var="y")
    assert chart.layer("bar").data["y"].tolist() == [2.0]


def test_empty_after_filtering(df):
    df = df.assign(score=np.nan)
    with pytest.raises(EmptyDatasetError) as exc:
        build_chart(df, x_var="cond", y_var="score")
    assert "score" in str(exc.value)


def test_unsupported_plot_type(df):
    with pytest.raises(UnsupportedPlotTypeError) as exc:
        build_chart(df, x_var="cond", y_var="score", plot_type="pie")
    assert "pie" in str(exc.value)
    assert exc.value.plot_type == "pie"


def test_errors_share_a_base_class(df):
    with pytest.raises(ChartBuildError):
        build_chart(df, x_var="cond", y_var="score", plot_type="violin")


def test_first_failure_wins(df):
    with pytest.raises(MissingColumnError):
        build_chart(df, x_var="nope", y_var="score", plot_type="pie")
    with pytest.raises(EmptyDatasetError):
        build_chart(df.assign(score=np.nan), x_var="cond", y_var="score", plot_type="pie")


@pytest.mark.parametrize("plot_type", ["bar", "scatter", "boxplot"])
def test_build_is_deterministic(df, plot_type):
    a = build_chart(df, x_var="cond", y_var="score", group_var="sex", facet_var="site", plot_type=plot_type)
    b = build_chart(df.copy(), x_var="cond", y_var="score", group_var="sex", facet_var="site", plot_type=plot_type)
    assert a.equals(b)


@pytest.mark.parametrize("plot_type", ["bar", "scatter", "boxplot"])
def test_theme_never_changes_geometry(df, plot_type):
    charts = [
        build_chart(df, x_var="cond", y_var="score", group_var="sex", plot_type=plot_type, theme=t, font_size=s)
        for t, s in [("bw", 12), ("classic", 9), ("dark", 16)]
    ]
    base = charts[0]
    for other in charts[1:]:
        assert other.theme != base.theme
        for a, b in zip(base.layers, other.layers):
            assert a.equals(b)


def test_scatter_keeps_every_filtered_row(df):
    noisy = df.copy()
    noisy.loc[3, "score"] = np.nan
    chart = build_chart(noisy, x_var="cond", y_var="score", group_var="sex", plot_type="scatter")

    points = chart.layer("point").data
    assert len(points) == 9
    assert chart.layer("point").params["alpha"] == 0.7
    assert chart.layer("point").params["size"] == 3.0
    assert chart.color_aesthetic == "color"
    assert not chart.has_layer("line")


def test_scatter_numeric_x_is_continuous():
    df = pd.DataFrame({"x": [0.5, 1.0, 2.0], "y": [1.0, 2.0, 3.0]})
    chart = build_chart(df, x_var="x", y_var="y", plot_type="scatter")
    assert chart.x_scale is None
    assert chart.layer("point").data["x_pos"].tolist() == [0.5, 1.0, 2.0]


def test_regression_line_through_two_points():
    df = pd.DataFrame({"x": [1.0, 3.0], "y": [2.0, 6.0]})
    chart = build_chart(df, x_var="x", y_var="y", plot_type="scatter", add_regression_line=True)

    line = chart.layer("line")
    assert line.params["color"] == "red"
    row = line.data.iloc[0]
    assert row["slope"] == pytest.approx(2.0)
    assert row["intercept"] == pytest.approx(0.0, abs=1e-9)
    assert (row["x_start"], row["x_end"]) == (1.0, 3.0)
    assert (row["y_start"], row["y_end"]) == pytest.approx((2.0, 6.0))


def test_regression_line_per_facet_panel():
    df = pd.DataFrame(
        {"x": [0.0, 1.0, 0.0, 1.0], "y": [0.0, 1.0, 0.0, 3.0], "panel": ["p", "p", "q", "q"]}
    )
    chart = build_chart(df, x_var="x", y_var="y", facet_var="panel", plot_type="scatter", add_regression_line=True)
    slopes = chart.layer("line").data.set_index("panel")["slope"]
    assert slopes["p"] == pytest.approx(1.0)
    assert slopes["q"] == pytest.approx(3.0)


def test_regression_on_categorical_x_is_skipped(df, caplog):
    with caplog.at_level(logging.WARNING, logger="apaplot.viz.strategies"):
        chart = build_chart(df, x_var="cond", y_var="score", plot_type="scatter", add_regression_line=True)

    assert len(chart.layer("point").data) == len(df)
    assert not chart.has_layer("line")
    assert "not numeric" in caplog.text


@pytest.mark.parametrize("plot_type", ["bar", "scatter", "boxplot"])
def test_key_columns_named_like_statistics(df, plot_type):
    renamed = df.rename(columns={"sex": "n", "cond": "mean", "site": "median"})
    chart = build_chart(renamed, x_var="mean", y_var="score", group_var="n", facet_var="median", plot_type=plot_type)
    plain = build_chart(df, x_var="cond", y_var="score", group_var="sex", facet_var="site", plot_type=plot_type)

    assert chart.group_scale.labels == ("f", "m")
    assert chart.x_scale.labels == ("a", "b")
    assert chart.facet.panels == ("s1", "s2")
    for a, b in zip(chart.layers, plain.layers):
        assert a.equals(b)


def test_group_column_named_n_keeps_its_values():
    df = pd.DataFrame({"x": ["a"] * 4, "n": [1, 1, 2, 2], "y": [1.0, 3.0, 10.0, 20.0]})
    bars = build_chart(df, x_var="x", y_var="y", group_var="n").layer("bar").data
    assert bars["group"].tolist() == ["1", "2"]
    assert bars["y"].tolist() == pytest.approx([2.0, 15.0])
    assert bars["n"].tolist() == [2, 2]

    boxes = build_chart(df, x_var="x", y_var="y", group_var="n", plot_type="boxplot").layer("boxplot").data
    assert boxes["group"].tolist() == ["1", "2"]
    assert boxes["median"].tolist() == pytest.approx([2.0, 15.0])


def test_boolean_y_counts_as_zero_one():
    df = pd.DataFrame({"x": ["a", "a", "a", "b"], "y": [True, False, True, False]})
    bars = build_chart(df, x_var="x", y_var="y").layer("bar").data
    assert bars["y"].tolist() == pytest.approx([2 / 3, 0.0])


def test_boxplot_layers(df):
    chart = build_chart(df, x_var="cond", y_var="score", plot_type="boxplot")

    boxes = chart.layer("boxplot").data
    assert boxes["x"].tolist() == ["a", "b"]
    assert boxes["median"].tolist() == [3.0, 6.0]
    assert boxes["n"].sum() == len(df)
    assert boxes["width"].tolist() == pytest.approx([0.6, 0.6])

    means = chart.layer("mean_point")
    assert means.data["y"].tolist() == pytest.approx([3.0, 6.0])
    assert means.data["x_pos"].tolist() == boxes["x_pos"].tolist()
    assert means.params["marker"] == "D"
    assert means.params["in_legend"] is False


def test_grouped_boxplot_dodge_and_outliers():
    df = pd.DataFrame(
        {
            "x": ["a"] * 10,
            "g": ["p"] * 5 + ["q"] * 5,
            "y": [1.0, 2.0, 3.0, 4.0, 100.0, 5.0, 6.0, 7.0, 8.0, 9.0],
        }
    )
    chart = build_chart(df, x_var="x", y_var="y", group_var="g", plot_type="boxplot")
    boxes = chart.layer("boxplot").data

    assert boxes["x_pos"].tolist() == pytest.approx([-0.1875, 0.1875])
    assert boxes["width"].tolist() == pytest.approx([0.3, 0.3])
    assert boxes["outliers"].tolist() == [(100.0,), ()]
    assert boxes["n"].tolist() == [5, 5]
    assert chart.layer("mean_point").data["x_pos"].tolist() == boxes["x_pos"].tolist()


def test_labels(df):
    chart = build_chart(df, x_var="cond", y_var="score")
    assert chart.labels.x == "cond"
    assert chart.labels.y == "Value"

    chart = build_chart(df, x_var="cond", y_var="score", x_label="Condition", y_label="Score (pts)")
    assert chart.labels.x == "Condition"
    assert chart.labels.y == "Score (pts)"


def test_facets(df):
    chart = build_chart(df, x_var="sex", y_var="score", facet_var="site")

    assert chart.facet.panels == ("s1", "s2")
    assert (chart.facet.nrow, chart.facet.ncol) == (1, 2)
    bars = chart.layer("bar").data
    assert bars["panel"].tolist() == ["s1", "s1", "s2", "s2"]
    # summary is computed within each panel
    assert bars["y"].tolist() == pytest.approx([3.0, 3.0, 6.0, 6.0])
    assert chart.summary.index.names[0] == "site"


def test_missing_x_values_form_na_level():
    df = pd.DataFrame({"x": ["a", None, "a"], "y": [1.0, 2.0, 3.0]})
    chart = build_chart(df, x_var="x", y_var="y")
    assert chart.x_scale.labels == ("a", "NA")
    assert chart.layer("bar").data["x_pos"].tolist() == [0.0, 1.0]


def test_categorical_levels_keep_their_order():
    x = pd.Categorical(["lo", "hi", "mid"], categories=["lo", "mid", "hi"], ordered=True)
    df = pd.DataFrame({"x": x, "y": [1.0, 3.0, 2.0]})
    chart = build_chart(df, x_var="x", y_var="y")
    assert chart.x_scale.labels == ("lo", "mid", "hi")
    assert chart.layer("bar").data["y"].tolist() == [1.0, 2.0, 3.0]


def test_options_override_request(df):
    request = PlotRequest(x_var="cond", y_var="score")
    chart = build_chart(df, request, theme="dark", font_size=10)
    assert chart.theme.name == "dark"
    assert chart.theme.base_size == 10.0
    assert request.theme.value == "bw"


def test_request_is_immutable_and_validated():
    request = PlotRequest(x_var="cond", y_var="score")
    with pytest.raises(ValidationError):
        request.bar_width = 0.5
    with pytest.raises(ValidationError):
        PlotRequest(x_var="cond", y_var="score", bar_width=-1)
    with pytest.raises(ValidationError):
        PlotRequest(x_var="cond", y_var="score", theme="neon")
    with pytest.raises(ValidationError):
        PlotRequest(x_var="cond", y_var="score", colour="red")
