"""ADRIA_MODEL_RUN handler.

Runs one scenario analysis end to end:

    config_resolved      data package name -> path
    workspace_allocated  <scratch>/adria_<ts>_<token>/{work,upload}
    engine_executed      output env var -> work/, load, apply params, sample, run
    artifacts_relocated  the engine's single result dir -> upload/result_set
    artifacts_generated  one chart per metric plus web data, failures isolated
    uploaded             upload/ -> assignment storage URI
    cleaned_up           workspace removed on every exit path

The output environment variable is process-global, so the window from
setting it to relocating the result is serialized across jobs.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from reefworker.artifacts import run_all
from reefworker.charts import MetricChart, chart_tasks
from reefworker.config import WorkerConfig
from reefworker.engine import SimulationEngine, apply_model_params
from reefworker.handlers.base import JobContext, JobHandler
from reefworker.relocation import relocate_from_env, set_output_dir
from reefworker.schemas import ModelRunInput, ModelRunOutput
from reefworker.stages import JobStage, StageTracker
from reefworker.storage import upload
from reefworker.webdata import web_data_tasks
from reefworker.workspace import Workspace

logger = logging.getLogger(__name__)


_OUTPUT_DIR_LOCK = threading.Lock()

RESULT_SET_NAME = "result_set"


class ModelRunHandler(JobHandler):
    """
    Handler for ADRIA_MODEL_RUN jobs.

    Args:
        engine: Simulation engine
        artifact_workers: Thread count for chart generation
        result_set_name: Name of the relocated result directory
        charts: Metric charts to produce (defaults to SCENARIO_CHARTS)
    """

    workspace_prefix = "adria"

    def __init__(
        self,
        engine: SimulationEngine,
        artifact_workers: int = 1,
        result_set_name: str = RESULT_SET_NAME,
        charts: Optional[list[MetricChart]] = None,
    ):
        self.engine = engine
        self.artifact_workers = artifact_workers
        self.result_set_name = result_set_name
        self.charts = charts

    @contextmanager
    def _workspace(self, tracker: StageTracker, config: WorkerConfig) -> Iterator[Workspace]:
        with tracker.stage(JobStage.WORKSPACE_ALLOCATED):
            workspace = Workspace.allocate(config.scratch_path, prefix=self.workspace_prefix)
        try:
            yield workspace
        finally:
            with tracker.stage(JobStage.CLEANED_UP):
                if not workspace.teardown():
                    logger.warning(f"Workspace cleanup did not complete: {workspace.root}")

    def handle(self, job_input: ModelRunInput, context: JobContext) -> ModelRunOutput:
        config = context.config
        tracker = StageTracker(context.job_id)
        context.engine_metadata["stages"] = tracker

        logger.info(
            f"Model run {context.job_id}: {job_input.num_scenarios} scenarios, "
            f"RCP {job_input.rcp}, {len(job_input.model_params)} parameter overrides"
        )

        with tracker.stage(JobStage.CONFIG_RESOLVED):
            data_package = config.resolve_data_package(job_input.data_package)
            context.engine_metadata.update({
                "data_package": str(data_package),
                "rcp_scenario": job_input.rcp,
                "num_scenarios": job_input.num_scenarios,
            })

        with self._workspace(tracker, config) as workspace:
            with _OUTPUT_DIR_LOCK:
                with tracker.stage(JobStage.ENGINE_EXECUTED):
                    set_output_dir(config.output_env_var, workspace.work)
                    domain = self.engine.load_domain(str(data_package), job_input.rcp)
                    applied = apply_model_params(self.engine, domain, job_input.model_params)
                    logger.info(f"Applied {applied} model parameters")
                    scenarios = self.engine.sample(domain, job_input.num_scenarios)
                    result = self.engine.run_scenarios(domain, scenarios, job_input.rcp)
                    scenario_types = self.engine.scenario_types(scenarios)

                with tracker.stage(JobStage.ARTIFACTS_RELOCATED):
                    relocate_from_env(config.output_env_var, workspace.upload, self.result_set_name)

            with tracker.stage(JobStage.ARTIFACTS_GENERATED):
                tasks = chart_tasks(self.engine, result, scenario_types, workspace.upload, charts=self.charts)
                tasks += web_data_tasks(self.engine, result, scenario_types, data_package, workspace.upload)
                artifacts = run_all(tasks, max_workers=self.artifact_workers)
                context.engine_metadata["artifacts"] = artifacts.to_dict()
                if artifacts.failures:
                    logger.warning(
                        f"{artifacts.failed} of {artifacts.attempted} artifacts failed: "
                        f"{sorted(artifacts.failures)}"
                    )

            with tracker.stage(JobStage.UPLOADED):
                uploaded = upload(context.storage_client, workspace.upload, context.storage_uri)
                context.engine_metadata["uploaded_files"] = len(uploaded)

        return ModelRunOutput.from_artifacts(self.result_set_name, artifacts.items())
