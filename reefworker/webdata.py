"""Web data export artifacts.

Two artifacts per model run, written under upload/web/:

    relative_cover_data  per (scenario_type, timestep, location) mean/min/max
                         of relative cover, as Parquet
    spatial_data         location_id -> geometry lookup from the data
                         package, as GeoJSON

Web clients join the two on location_id.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import pandas as pd

from reefworker.artifacts import ArtifactTask
from reefworker.processing import load_spatial_data, location_geometry_lookup, location_summary

if TYPE_CHECKING:
    import geopandas as gpd

    from reefworker.engine import SimulationEngine

logger = logging.getLogger(__name__)


WEB_DATA_DIR = "web"
SUMMARY_METRIC = "relative_cover"
SUMMARY_FILENAME = f"{WEB_DATA_DIR}/relative_cover_data.parquet"
SPATIAL_FILENAME = f"{WEB_DATA_DIR}/spatial_data.geojson"


def write_location_summary(summary: pd.DataFrame, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    summary.to_parquet(output_path, index=False)
    logger.info(
        f"Exported {len(summary)} summary rows for "
        f"{summary['location_id'].nunique()} locations to {output_path.name}"
    )
    return output_path


def write_geometry_lookup(lookup: "gpd.GeoDataFrame", output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    lookup.to_file(output_path, driver="GeoJSON")
    logger.info(f"Exported {len(lookup)} location geometries to {output_path.name}")
    return output_path


def _summary_producer(
    engine: "SimulationEngine",
    result: Any,
    scenario_types: Mapping[str, Sequence[bool]],
    upload_dir: Path,
) -> Callable[[], str]:
    def produce() -> str:
        metric = engine.location_metric(result, SUMMARY_METRIC)
        summary = location_summary(metric, scenario_types, value_name=SUMMARY_METRIC)
        write_location_summary(summary, upload_dir / SUMMARY_FILENAME)
        return SUMMARY_FILENAME
    return produce


def _spatial_producer(data_package: Path, upload_dir: Path) -> Callable[[], str]:
    def produce() -> str:
        lookup = location_geometry_lookup(load_spatial_data(data_package))
        write_geometry_lookup(lookup, upload_dir / SPATIAL_FILENAME)
        return SPATIAL_FILENAME
    return produce


def web_data_tasks(
    engine: "SimulationEngine",
    result: Any,
    scenario_types: Mapping[str, Sequence[bool]],
    data_package: str | Path,
    upload_dir: Path,
) -> list[ArtifactTask]:
    """The location summary and geometry lookup tasks, writing into upload_dir/web/."""
    upload_dir = Path(upload_dir)
    return [
        ArtifactTask(
            name="relative_cover_data",
            producer=_summary_producer(engine, result, scenario_types, upload_dir),
            label="Relative Cover by Location",
            description=f"location_metric:{SUMMARY_METRIC}",
        ),
        ArtifactTask(
            name="spatial_data",
            producer=_spatial_producer(Path(data_package), upload_dir),
            label="Location Geometry",
            description="data_package:spatial_data",
        ),
    ]
