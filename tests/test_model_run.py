"""End-to-end tests for ADRIA_MODEL_RUN through the dispatcher."""

import json
import threading

import pytest

from reefworker.config import WorkerConfig
from reefworker.dispatch import JobDispatcher
from reefworker.errors import (
    AmbiguousResult,
    HandlerExecutionFailure,
    InvalidInputPayload,
    JobStageFailed,
    UnknownDataPackage,
    UploadFailure,
)
from reefworker.registry import JobTypeRegistry
from reefworker.schemas import JobType, ModelRunOutput
from reefworker.stages import JobStage

PAYLOAD = {
    "num_scenarios": 6,
    "rcp_scenario": "45",
    "model_params": [
        {"param_name": "N_seed_TA", "lower": 0, "upper": 500000},
        {"param_name": "fogging", "third_param_flag": True, "lower": 0.0, "upper": 0.3, "optional_third": 0.1},
    ],
}


CHART_METRICS = {
    "relative_cover",
    "total_absolute_cover",
    "relative_shelter_volume",
    "relative_juveniles",
    "coral_evenness",
}
WEB_DATA = {"relative_cover_data", "spatial_data"}


def _chart_values(spec):
    data = spec.get("data") or spec["layer"][0]["data"]
    if "values" in data:
        return data["values"]
    return spec["datasets"][data["name"]]


def _dispatcher(engine, artifact_workers=1):
    return JobDispatcher(JobTypeRegistry.create_default(engine=engine, artifact_workers=artifact_workers))


def _scratch_entries(config):
    if not config.scratch_path.exists():
        return []
    return list(config.scratch_path.iterdir())


def _stage_failure(exc_info) -> JobStageFailed:
    failure = exc_info.value.cause
    assert isinstance(failure, JobStageFailed)
    return failure


class TestModelRunSuccess:

    def test_full_pipeline(self, engine, make_context, storage_client, worker_config, data_package):
        context = make_context(PAYLOAD)

        output = _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, PAYLOAD, context)

        assert isinstance(output, ModelRunOutput)
        assert output.result_location == "result_set"
        assert set(output.artifacts) == CHART_METRICS | WEB_DATA
        assert output.artifacts["coral_evenness"] == "charts/coral_evenness.vega.json"
        assert output.artifacts["relative_cover_data"] == "web/relative_cover_data.parquet"
        assert output.artifacts["spatial_data"] == "web/spatial_data.geojson"
        assert set(output.artifact_metadata) == set(output.artifacts)

        # Engine saw the resolved data package, the bounds and the work dir
        assert engine.calls[0] == ("load_domain", str(data_package), "45")
        assert engine.bounds == {"N_seed_TA": (0.0, 500000.0), "fogging": (0.0, 0.3, 0.1)}
        assert engine.output_dirs_seen[0].name == "work"

        # Result set and charts uploaded under the assignment prefix
        prefix = "reef-results/jobs/job-1"
        assert storage_client.uploads[f"{prefix}/result_set/results.nc"] == b"scenario data"
        chart = json.loads(storage_client.uploads[f"{prefix}/charts/relative_cover.vega.json"])
        assert len(_chart_values(chart)) == 18
        assert {row["scenario_type"] for row in _chart_values(chart)} == {"counterfactual", "unguided", "guided"}
        assert storage_client.uploads[f"{prefix}/web/relative_cover_data.parquet"][:4] == b"PAR1"
        spatial = json.loads(storage_client.uploads[f"{prefix}/web/spatial_data.geojson"])
        assert sorted(f["properties"]["location_id"] for f in spatial["features"]) == ["reef_a", "reef_b"]

        assert _scratch_entries(worker_config) == []
        stages = context.engine_metadata["stages"]
        assert stages.current is JobStage.CLEANED_UP
        assert stages.completed == [s for s in JobStage if s is not JobStage.INITIALIZED]
        assert context.engine_metadata["data_package"] == str(data_package)
        assert context.engine_metadata["uploaded_files"] == 8
        assert context.engine_metadata["artifacts"]["succeeded"] == 7

    def test_output_serializes(self, engine, make_context):
        output = _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, make_context())

        data = output.to_dict()
        assert data["result_location"] == "result_set"
        assert set(data["artifact_metadata"]["relative_cover"]) == {"generation_seconds", "label", "description"}
        json.dumps(data)

    def test_default_rcp(self, engine, make_context):
        _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, make_context())
        assert engine.calls[0][2] == "45"

    def test_failed_artifact_does_not_fail_job(self, make_engine, make_context, storage_client):
        engine = make_engine(failing_metrics={"relative_juveniles"})

        output = _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, make_context())

        assert "relative_juveniles" not in output.artifacts
        assert "relative_juveniles" not in output.artifact_metadata
        assert len(output.artifacts) == 6
        assert not any("relative_juveniles" in key for key in storage_client.uploads)

    def test_all_artifacts_failing_is_still_success(self, make_engine, make_context, worker_config, tmp_path):
        engine = make_engine(failing_metrics=CHART_METRICS)
        bare_package = tmp_path / "packages" / "bare"
        bare_package.mkdir(parents=True)
        config = WorkerConfig(
            scratch_dir=worker_config.scratch_dir,
            data_packages={"bare": str(bare_package)},
            default_data_package="bare",
            output_env_var=worker_config.output_env_var,
        )
        context = make_context(config=config)

        output = _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, context)

        assert output.artifacts == {}
        assert output.artifact_metadata == {}
        assert output.result_location == "result_set"
        assert context.engine_metadata["artifacts"]["failed"] == 7
        assert set(context.engine_metadata["artifacts"]["failures"]) == CHART_METRICS | WEB_DATA

    def test_parallel_artifacts(self, engine, make_context):
        output = _dispatcher(engine, artifact_workers=3).dispatch(
            JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, make_context()
        )
        assert set(output.artifacts) == CHART_METRICS | WEB_DATA

    def test_concurrent_jobs_use_their_own_workspaces(self, make_engine, make_context, make_storage_client):
        engines = [make_engine() for _ in range(4)]
        clients = [make_storage_client() for _ in range(4)]
        outputs, errors = [], []

        def run(engine, client):
            try:
                outputs.append(
                    _dispatcher(engine).dispatch(
                        JobType.ADRIA_MODEL_RUN, {"num_scenarios": 2}, make_context(client=client)
                    )
                )
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=pair) for pair in zip(engines, clients)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(outputs) == 4
        work_dirs = {e.output_dirs_seen[0] for e in engines}
        assert len(work_dirs) == 4
        assert all(any(k.endswith("result_set/results.nc") for k in c.uploads) for c in clients)


class TestModelRunFailures:

    @pytest.mark.parametrize("payload", [
        {"num_scenarios": 0},
        {"num_scenarios": 3, "model_params": [
            {"param_name": "fogging", "third_param_flag": True, "lower": 0, "upper": 1, "optional_third": "abc"},
        ]},
    ])
    def test_invalid_input_never_runs_engine(self, engine, make_context, worker_config, payload):
        with pytest.raises(InvalidInputPayload):
            _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, payload, make_context())

        assert engine.calls == []
        assert _scratch_entries(worker_config) == []

    def test_unknown_data_package_fails_before_allocation(self, engine, make_context, worker_config):
        payload = {"num_scenarios": 3, "data_package": "gbr"}

        with pytest.raises(HandlerExecutionFailure) as exc_info:
            _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, payload, make_context(payload))

        failure = _stage_failure(exc_info)
        assert failure.stage is JobStage.CONFIG_RESOLVED
        assert isinstance(failure.cause, UnknownDataPackage)
        assert not worker_config.scratch_path.exists()
        assert engine.calls == []

    def test_ambiguous_engine_output(self, make_engine, make_context, storage_client, worker_config):
        engine = make_engine(result_dirs=("run_a", "run_b"))

        with pytest.raises(HandlerExecutionFailure) as exc_info:
            _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, make_context())

        failure = _stage_failure(exc_info)
        assert failure.stage is JobStage.ARTIFACTS_RELOCATED
        assert isinstance(failure.cause, AmbiguousResult)
        assert storage_client.uploads == {}
        assert _scratch_entries(worker_config) == []

    def test_engine_produces_no_result(self, make_engine, make_context, worker_config):
        engine = make_engine(result_dirs=())

        with pytest.raises(HandlerExecutionFailure) as exc_info:
            _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, make_context())

        assert _stage_failure(exc_info).stage is JobStage.ARTIFACTS_RELOCATED
        assert _scratch_entries(worker_config) == []

    def test_upload_failure_still_cleans_up(self, engine, make_context, make_storage_client, worker_config):
        client = make_storage_client(fail_on="charts/")
        context = make_context(client=client)

        with pytest.raises(HandlerExecutionFailure) as exc_info:
            _dispatcher(engine).dispatch(JobType.ADRIA_MODEL_RUN, {"num_scenarios": 3}, context)

        failure = _stage_failure(exc_info)
        assert failure.stage is JobStage.UPLOADED
        assert isinstance(failure.cause, UploadFailure)
        assert _scratch_entries(worker_config) == []
        stages = context.engine_metadata["stages"]
        assert stages.failed_stage is JobStage.UPLOADED
        assert stages.current is JobStage.CLEANED_UP
        assert "uploaded_files" not in context.engine_metadata
