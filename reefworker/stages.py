"""Job stage tracking.

A model-run job moves strictly forward through JobStage values. Each stage
runs inside StageTracker.stage(), which logs start, duration and outcome
and turns any exception into JobStageFailed tagged with the stage.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from reefworker.errors import JobStageFailed
from reefworker.utils import format_duration

logger = logging.getLogger(__name__)


class JobStage(str, Enum):
    """Stages of one job execution, in order."""

    INITIALIZED = "initialized"
    CONFIG_RESOLVED = "config_resolved"
    WORKSPACE_ALLOCATED = "workspace_allocated"
    ENGINE_EXECUTED = "engine_executed"
    ARTIFACTS_RELOCATED = "artifacts_relocated"
    ARTIFACTS_GENERATED = "artifacts_generated"
    UPLOADED = "uploaded"
    CLEANED_UP = "cleaned_up"


STAGE_ORDER = list(JobStage)


@dataclass
class StageRecord:
    stage: JobStage
    duration_ms: int
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class StageTracker:
    """
    Records the stages of one job execution.

    Usage:
        tracker = StageTracker(job_id)
        with tracker.stage(JobStage.CONFIG_RESOLVED):
            ...
    """
    job_id: str
    current: JobStage = JobStage.INITIALIZED
    history: list[StageRecord] = field(default_factory=list)
    failed_stage: JobStage | None = None

    @property
    def completed(self) -> list[JobStage]:
        return [r.stage for r in self.history if r.success]

    def _check_order(self, stage: JobStage) -> None:
        if STAGE_ORDER.index(stage) <= STAGE_ORDER.index(self.current):
            raise ValueError(
                f"Stage {stage.value} cannot follow {self.current.value} for job {self.job_id}"
            )

    @contextmanager
    def stage(self, stage: JobStage) -> Iterator[None]:
        """Run one stage; failures are raised as JobStageFailed(stage, cause)."""
        self._check_order(stage)
        extra = {"job_id": self.job_id, "stage": stage.value}
        logger.info(f"[{self.job_id}] {stage.value}: started", extra=extra)
        start = time.time()
        try:
            yield
        except Exception as e:
            duration = time.time() - start
            self.failed_stage = stage
            self.history.append(StageRecord(
                stage=stage,
                duration_ms=int(duration * 1000),
                success=False,
                error=f"{type(e).__name__}: {e}",
            ))
            logger.error(
                f"[{self.job_id}] {stage.value}: FAILED after {format_duration(duration)}: {e}",
                extra={**extra, "duration_seconds": duration},
            )
            if isinstance(e, JobStageFailed):
                raise
            raise JobStageFailed(stage, e) from e

        duration = time.time() - start
        self.current = stage
        self.history.append(StageRecord(stage=stage, duration_ms=int(duration * 1000), success=True))
        logger.info(
            f"[{self.job_id}] {stage.value}: ok ({format_duration(duration)})",
            extra={**extra, "duration_seconds": duration},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "current": self.current.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "history": [r.to_dict() for r in self.history],
        }
