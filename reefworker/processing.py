"""
Reshape and aggregate engine metrics.

Engines return metrics in wide form, one column per scenario. This module
labels every scenario with its scenario type and then either reshapes to
long rows (one per timestep and scenario) for charts, or aggregates per
(scenario_type, timestep, location) for the web data export.

It also resolves a data package's spatial resource and builds the
location -> geometry lookup that web clients join the summaries against.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Sequence

import pandas as pd

if TYPE_CHECKING:
    import geopandas as gpd

logger = logging.getLogger(__name__)


UNKNOWN_SCENARIO_TYPE = "unknown"

SUMMARY_STATS = ("mean", "min", "max")

SPATIAL_RESOURCE = "spatial_data"
LOCATION_ID_COLUMNS = ("reef_siteid", "site_id")
LOCATION_ATTRIBUTE_COLUMNS = ("zone_type", "area", "depth")


def scenario_type_lookup(
    scenario_ids: Sequence[Any],
    masks: Mapping[str, Sequence[bool]],
) -> dict[Any, str]:
    """
    Map scenario ids to scenario type names.

    masks[type_name][i] is truthy when the i-th scenario is of that type.
    The first matching type wins; a scenario matching none is "unknown".

    Raises:
        ValueError: If a mask does not have one entry per scenario
    """
    masks = {name: list(mask) for name, mask in masks.items()}
    for name, mask in masks.items():
        if len(mask) != len(scenario_ids):
            raise ValueError(
                f"Scenario type mask {name!r} has {len(mask)} entries, "
                f"expected {len(scenario_ids)}"
            )

    return {
        scenario: next(
            (name for name, mask in masks.items() if mask[position]),
            UNKNOWN_SCENARIO_TYPE,
        )
        for position, scenario in enumerate(scenario_ids)
    }


def scenario_frame(metric: pd.DataFrame, masks: Mapping[str, Sequence[bool]]) -> pd.DataFrame:
    """
    Reshape a timesteps x scenarios metric into long rows.

    Returns:
        DataFrame with columns timestep, scenario, scenario_type, value

    Raises:
        ValueError: If the metric is empty or the masks do not fit it
    """
    if metric.empty:
        raise ValueError("Metric has no data")
    types = scenario_type_lookup(list(metric.columns), masks)

    rows = (
        metric.rename_axis(index="timestep", columns=None)
        .reset_index()
        .melt(id_vars="timestep", var_name="scenario", value_name="value")
    )
    rows["scenario_type"] = rows["scenario"].map(types)
    return rows[["timestep", "scenario", "scenario_type", "value"]]


def location_summary(
    metric: pd.DataFrame,
    masks: Mapping[str, Sequence[bool]],
    value_name: str = "relative_cover",
) -> pd.DataFrame:
    """
    Aggregate a (timestep, location) x scenarios metric per scenario type.

    Args:
        metric: Metric indexed by (timestep, location), one column per scenario
        masks: Scenario type masks from the engine
        value_name: Prefix for the aggregate columns

    Returns:
        DataFrame with columns scenario_type, timestep, location_id and
        <value_name>_mean, <value_name>_min, <value_name>_max

    Raises:
        ValueError: If the metric is empty, not indexed by (timestep,
            location), or the masks do not fit it
    """
    if metric.index.nlevels != 2:
        raise ValueError(
            f"Expected a (timestep, location) index, got {metric.index.nlevels} level(s)"
        )
    if metric.empty:
        raise ValueError("Metric has no data")
    types = scenario_type_lookup(list(metric.columns), masks)

    rows = (
        metric.rename_axis(index=["timestep", "location_id"], columns=None)
        .reset_index()
        .melt(id_vars=["timestep", "location_id"], var_name="scenario", value_name="value")
    )
    rows["scenario_type"] = rows["scenario"].map(types)

    summary = (
        rows.groupby(["scenario_type", "timestep", "location_id"])["value"]
        .agg(list(SUMMARY_STATS))
        .rename(columns={stat: f"{value_name}_{stat}" for stat in SUMMARY_STATS})
        .reset_index()
    )
    summary["timestep"] = summary["timestep"].astype(int)
    summary["location_id"] = summary["location_id"].astype(str)
    return summary


def spatial_data_path(datapackage_path: str | Path) -> Path:
    """
    Locate the spatial data file declared by a data package.

    Args:
        datapackage_path: Data package directory, or its datapackage.json

    Raises:
        ValueError: If the path is neither, or no usable spatial_data
            resource is declared
        FileNotFoundError: If datapackage.json or the spatial file is missing
    """
    path = Path(datapackage_path)
    if path.is_dir():
        json_path = path / "datapackage.json"
    elif path.name == "datapackage.json":
        json_path = path
    else:
        raise ValueError(
            "datapackage_path must be a directory containing datapackage.json "
            f"or the datapackage.json file itself: {path}"
        )

    if not json_path.is_file():
        raise FileNotFoundError(f"datapackage.json not found at: {json_path}")

    with open(json_path, "r") as f:
        content = json.load(f)

    resource = next(
        (r for r in content.get("resources", []) if r.get("name") == SPATIAL_RESOURCE),
        None,
    )
    if resource is None:
        raise ValueError(f"No {SPATIAL_RESOURCE} resource found in {json_path}")
    if "path" not in resource:
        raise ValueError(f"{SPATIAL_RESOURCE} resource in {json_path} has no 'path' field")

    spatial_path = json_path.parent / resource["path"]
    if not spatial_path.is_file():
        raise FileNotFoundError(f"Spatial data file not found at: {spatial_path}")
    return spatial_path


def load_spatial_data(datapackage_path: str | Path) -> "gpd.GeoDataFrame":
    """Read a data package's spatial data (GeoPackage, GeoJSON, ...)."""
    import geopandas as gpd

    path = spatial_data_path(datapackage_path)
    logger.debug(f"Loading spatial data from: {path}")
    spatial = gpd.read_file(path)
    logger.debug(f"Loaded {len(spatial)} spatial features")
    return spatial


def location_geometry_lookup(spatial: "gpd.GeoDataFrame") -> "gpd.GeoDataFrame":
    """
    Build the location_id -> geometry lookup from spatial data.

    The id column is reef_siteid, or site_id when that is absent. zone_type,
    area and depth are carried over when present.

    Raises:
        ValueError: If neither id column exists
    """
    id_column = next((c for c in LOCATION_ID_COLUMNS if c in spatial.columns), None)
    if id_column is None:
        raise ValueError(
            f"Could not find any of {list(LOCATION_ID_COLUMNS)} in spatial data. "
            f"Available columns: {', '.join(map(str, spatial.columns))}"
        )
    logger.debug(f"Using {id_column!r} as location identifier")

    attributes = [c for c in LOCATION_ATTRIBUTE_COLUMNS if c in spatial.columns]
    lookup = spatial[[id_column, *attributes, "geometry"]].rename(columns={id_column: "location_id"})
    logger.debug(f"Created lookup table with {len(lookup)} locations")
    return lookup
