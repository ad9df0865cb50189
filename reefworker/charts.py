"""
Vega-Lite charts for scenario metrics.

Charts are built with altair from long-format scenario rows (see
reefworker.processing.scenario_frame) and saved as Vega-Lite JSON with the
data inlined. Rendering is left to whatever consumes the JSON.
"""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import altair as alt
import pandas as pd

from reefworker.artifacts import ArtifactTask
from reefworker.processing import scenario_frame

if TYPE_CHECKING:
    from reefworker.engine import SimulationEngine

# Timesteps x scenarios routinely exceeds altair's default row limit
alt.data_transformers.disable_max_rows()

DEFAULT_COLORS = {
    "counterfactual": "#d62728",
    "unguided": "#2ca02c",
    "guided": "#1f77b4",
}

PLOT_STYLES = ("confidence_bands", "individual_lines")

ROW_FIELDS = ("timestep", "scenario", "scenario_type", "value")


@dataclass(frozen=True)
class MetricChart:
    """A metric to chart, as produced by the engine's scenario_metric()."""
    metric: str
    title: str
    y_label: str


# Default artifact set for model runs
SCENARIO_CHARTS = [
    MetricChart("relative_cover", "Relative Coral Cover", "Relative Cover"),
    MetricChart("total_absolute_cover", "Total Absolute Coral Cover", "Absolute Cover (m²)"),
    MetricChart("relative_shelter_volume", "Relative Shelter Volume", "Relative Shelter Volume"),
    MetricChart("relative_juveniles", "Relative Juvenile Abundance", "Relative Juveniles"),
    MetricChart("coral_evenness", "Coral Evenness", "Evenness"),
]


def create_scenario_chart(
    rows: pd.DataFrame,
    title: str = "Scenario Analysis",
    x_label: str = "Year",
    y_label: str = "Value",
    plot_style: str = "confidence_bands",
    colors: dict[str, str] | None = None,
    width: int = 700,
    height: int = 400,
) -> alt.LayerChart:
    """
    Create a layered scenario chart.

    confidence_bands draws a 95% CI error band per scenario type with the
    mean line on top; individual_lines draws one line per scenario.

    Raises:
        ValueError: If plot_style is unknown
    """
    if plot_style not in PLOT_STYLES:
        raise ValueError(f"plot_style must be one of {PLOT_STYLES}, got {plot_style!r}")
    colors = colors or DEFAULT_COLORS

    base = alt.Chart(rows).encode(
        x=alt.X(
            "timestep:O",
            axis=alt.Axis(
                title=x_label,
                labelAngle=0,
                labelOverlap="parity",
                labelFontSize=10,
                titleFontSize=12,
            ),
        ),
        color=alt.Color(
            "scenario_type:N",
            scale=alt.Scale(domain=list(colors), range=list(colors.values())),
            legend=alt.Legend(
                title="Scenario Type",
                titleFontSize=12,
                labelFontSize=10,
                symbolSize=100,
            ),
        ),
    )
    y_axis = alt.Axis(title=y_label, titleFontSize=12, labelFontSize=10, grid=True)
    y_scale = alt.Scale(zero=False)

    if plot_style == "confidence_bands":
        layers = [
            base.mark_errorband(extent="ci", opacity=0.4).encode(
                y=alt.Y("value:Q", axis=y_axis, scale=y_scale),
            ),
            base.mark_line(strokeWidth=2).encode(
                y=alt.Y("mean(value):Q", axis=y_axis, scale=y_scale),
            ),
        ]
    else:
        layers = [
            base.mark_line(strokeWidth=1, opacity=0.6).encode(
                y=alt.Y("value:Q", axis=y_axis, scale=y_scale),
                detail="scenario:N",
            ),
        ]

    return alt.layer(*layers).properties(
        title=alt.TitleParams(text=title, fontSize=16, anchor="start"),
        width=width,
        height=height,
    )


def write_chart(
    rows: pd.DataFrame,
    output_path: Path,
    title: str,
    y_label: str,
    plot_style: str = "confidence_bands",
) -> Path:
    """Build a scenario chart and save it as Vega-Lite JSON."""
    if rows.empty:
        raise ValueError(f"No data to chart for {title}")
    missing = [f for f in ROW_FIELDS if f not in rows.columns]
    if missing:
        raise ValueError(f"Metric rows for {title} are missing fields: {missing}")

    chart = create_scenario_chart(rows, title=title, y_label=y_label, plot_style=plot_style)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    chart.save(str(output_path), format="json")
    return output_path


CHARTS_DIR = "charts"


def chart_filename(metric: str) -> str:
    """Chart path relative to the upload directory."""
    return f"{CHARTS_DIR}/{metric}.vega.json"


def _metric_producer(
    engine: "SimulationEngine",
    result: Any,
    scenario_types: Mapping[str, Sequence[bool]],
    chart: MetricChart,
    upload_dir: Path,
    plot_style: str,
) -> Callable[[], str]:
    def produce() -> str:
        rows = scenario_frame(engine.scenario_metric(result, chart.metric), scenario_types)
        filename = chart_filename(chart.metric)
        write_chart(rows, upload_dir / filename, title=chart.title, y_label=chart.y_label,
                    plot_style=plot_style)
        return filename
    return produce


def chart_tasks(
    engine: "SimulationEngine",
    result: Any,
    scenario_types: Mapping[str, Sequence[bool]],
    upload_dir: Path,
    charts: list[MetricChart] | None = None,
    plot_style: str = "confidence_bands",
) -> list[ArtifactTask]:
    """One artifact task per metric chart, writing into upload_dir/charts/."""
    return [
        ArtifactTask(
            name=chart.metric,
            producer=_metric_producer(engine, result, scenario_types, chart, Path(upload_dir), plot_style),
            label=chart.title,
            description=f"scenario_metric:{chart.metric}",
        )
        for chart in (SCENARIO_CHARTS if charts is None else charts)
    ]
