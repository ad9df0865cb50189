import json
import os
from pathlib import Path

import pandas as pd
import pytest

from reefworker.config import WorkerConfig
from reefworker.handlers.base import JobContext
from reefworker.schemas import Job, JobAssignment, JobType
from reefworker.storage import StorageScheme

TEST_OUTPUT_ENV_VAR = "REEFWORKER_TEST_OUTPUT_DIR"

SCENARIO_TYPES = ["counterfactual", "unguided", "guided"]
TIMESTEPS = [2025, 2026, 2027]
LOCATIONS = ["reef_a", "reef_b"]


class FakeEngine:
    """Stands in for the simulation engine.

    run_scenarios() writes its result directories into whatever the output
    environment variable points at, the way the real engine does. Metrics
    are wide frames with one column per scenario.
    """

    def __init__(self, env_var=TEST_OUTPUT_ENV_VAR, result_dirs=("ADRIA_run_4f2a",), failing_metrics=()):
        self.env_var = env_var
        self.result_dirs = result_dirs
        self.failing_metrics = set(failing_metrics)
        self.calls = []
        self.bounds = {}
        self.output_dirs_seen = []

    def load_domain(self, data_package_path, rcp_scenario):
        self.calls.append(("load_domain", data_package_path, rcp_scenario))
        return {"path": data_package_path, "rcp": rcp_scenario}

    def set_factor_bounds(self, domain, factor, bounds):
        self.calls.append(("set_factor_bounds", factor, bounds))
        self.bounds[factor] = bounds

    def sample(self, domain, num_scenarios):
        self.calls.append(("sample", num_scenarios))
        return list(range(num_scenarios))

    def run_scenarios(self, domain, scenarios, rcp_scenario):
        self.calls.append(("run_scenarios", len(scenarios), rcp_scenario))
        output_dir = Path(os.environ[self.env_var])
        self.output_dirs_seen.append(output_dir)
        for name in self.result_dirs:
            result_dir = output_dir / name
            result_dir.mkdir()
            (result_dir / "results.nc").write_text("scenario data")
        return {"scenarios": list(scenarios)}

    def scenario_types(self, scenarios):
        return {
            scenario_type: [SCENARIO_TYPES[s % 3] == scenario_type for s in scenarios]
            for scenario_type in ("guided", "unguided", "counterfactual")
        }

    def _check(self, metric):
        if metric in self.failing_metrics:
            raise RuntimeError(f"metric {metric} unavailable")

    def scenario_metric(self, result, metric):
        self._check(metric)
        scenarios = result["scenarios"]
        return pd.DataFrame(
            [[0.1 * t + s for s in scenarios] for t in range(len(TIMESTEPS))],
            index=pd.Index(TIMESTEPS, name="timesteps"),
            columns=scenarios,
        )

    def location_metric(self, result, metric):
        self._check(metric)
        scenarios = result["scenarios"]
        index = pd.MultiIndex.from_product([TIMESTEPS, LOCATIONS], names=["timesteps", "locations"])
        return pd.DataFrame(
            [
                [0.1 * t + 0.01 * loc + s for s in scenarios]
                for t in range(len(TIMESTEPS))
                for loc in range(len(LOCATIONS))
            ],
            index=index,
            columns=scenarios,
        )


class FakeStorageClient:
    """Records uploads in memory; optionally fails on keys containing fail_on."""

    scheme = StorageScheme.S3

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.uploads = {}

    def upload_file(self, local_path, bucket, key):
        if self.fail_on and self.fail_on in key:
            raise ConnectionError("connection reset by peer")
        self.uploads[f"{bucket}/{key}"] = Path(local_path).read_bytes()


@pytest.fixture
def output_env(monkeypatch):
    # Registers the variable with monkeypatch so it is removed after the test
    monkeypatch.setenv(TEST_OUTPUT_ENV_VAR, "")
    return TEST_OUTPUT_ENV_VAR


@pytest.fixture
def data_package(tmp_path):
    path = tmp_path / "packages" / "moore"
    (path / "spatial").mkdir(parents=True)
    (path / "datapackage.json").write_text(json.dumps({
        "name": "moore",
        "resources": [
            {"name": "spatial_data", "path": "spatial/sites.geojson"},
        ],
    }))
    features = [
        {
            "type": "Feature",
            "properties": {"reef_siteid": site_id, "area": 1200.0 + i, "depth": 5.0 + i, "habitat": "slope"},
            "geometry": {"type": "Point", "coordinates": [146.1 + i / 10, -16.9]},
        }
        for i, site_id in enumerate(LOCATIONS)
    ]
    (path / "spatial" / "sites.geojson").write_text(json.dumps({
        "type": "FeatureCollection",
        "features": features,
    }))
    return path


@pytest.fixture
def worker_config(tmp_path, output_env, data_package):
    return WorkerConfig(
        scratch_dir=str(tmp_path / "scratch"),
        data_packages={"moore": str(data_package)},
        default_data_package="moore",
        output_env_var=output_env,
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def storage_client():
    return FakeStorageClient()


@pytest.fixture
def make_context(worker_config, storage_client):
    def _make(payload=None, job_type=JobType.ADRIA_MODEL_RUN.value, client=None, config=None):
        job = Job(id="job-1", type=job_type, payload=payload or {})
        return JobContext(
            config=config or worker_config,
            job=job,
            assignment=JobAssignment(id="asg-1", job_id="job-1", storage_uri="s3://reef-results/jobs/job-1"),
            storage_client=client or storage_client,
        )
    return _make


@pytest.fixture
def make_storage_client():
    return FakeStorageClient


@pytest.fixture
def make_engine():
    return FakeEngine
