"""Artifact generation with partial-failure isolation.

run_all() executes a list of independent ArtifactTasks. A failing task is
logged and recorded in ArtifactResults.failures; it never stops the tasks
after it and never fails the job. Successful tasks contribute their
filename and metadata to the two result maps.

Tasks run sequentially by default. With max_workers > 1 they run on a
thread pool; result maps are unordered either way.
"""

import logging
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from reefworker.schemas import Artifact, ArtifactMetadata
from reefworker.utils import format_duration

logger = logging.getLogger(__name__)


# Producer returns the artifact's filename relative to the upload directory
Producer = Callable[[], str]


@dataclass(frozen=True)
class ArtifactTask:
    """
    One independent artifact-producing task.

    Attributes:
        name: Artifact title, used as the key in the result maps
        producer: Callable that writes the artifact and returns its filename
        label: Human-readable label (defaults to name)
        description: Source identifier recorded in the metadata
    """
    name: str
    producer: Producer
    label: str | None = None
    description: str = ""


@dataclass
class ArtifactResults:
    """Outcome of run_all().

    Unpacks as (artifacts, metadata):

        artifacts, metadata = run_all(tasks)
    """
    artifacts: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, ArtifactMetadata] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    attempted: int = 0
    duration_ms: int = 0

    @property
    def succeeded(self) -> int:
        return len(self.artifacts)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def items(self) -> list[Artifact]:
        return [
            Artifact(title=name, filename=filename, metadata=self.metadata[name])
            for name, filename in self.artifacts.items()
        ]

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter((self.artifacts, self.metadata))

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": dict(self.failures),
            "duration_ms": self.duration_ms,
        }


def _run_task(task: ArtifactTask) -> tuple[str, ArtifactMetadata]:
    start = time.time()
    filename = task.producer()
    if not isinstance(filename, str) or not filename:
        raise ValueError(f"Producer for {task.name} returned no filename: {filename!r}")
    duration = time.time() - start
    return filename, ArtifactMetadata(
        generation_seconds=duration,
        label=task.label or task.name,
        description=task.description,
    )


def _record(results: ArtifactResults, task: ArtifactTask, run: Callable[[], tuple[str, ArtifactMetadata]]) -> None:
    try:
        filename, metadata = run()
    except Exception as e:
        results.failures[task.name] = f"{type(e).__name__}: {e}"
        logger.error(f"    FAIL {task.name}: {e}", exc_info=True)
        return
    results.artifacts[task.name] = filename
    results.metadata[task.name] = metadata
    logger.info(f"    ok {task.name} -> {filename} ({format_duration(metadata.generation_seconds)})")


def run_all(tasks: list[ArtifactTask], max_workers: int = 1) -> ArtifactResults:
    """
    Run every task, isolating failures.

    Args:
        tasks: Ordered artifact tasks; names must be unique
        max_workers: 1 runs tasks in order; >1 runs them on a thread pool

    Returns:
        ArtifactResults with successes, metadata and failures
    """
    names = [t.name for t in tasks]
    if len(names) != len(set(names)):
        duplicates = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate artifact task names: {duplicates}")

    logger.info(f"Generating {len(tasks)} artifacts (workers={max_workers})")
    start_time = time.time()
    results = ArtifactResults(attempted=len(tasks))

    if max_workers <= 1:
        for task in tasks:
            logger.info(f"    Running: {task.name}")
            _record(results, task, lambda task=task: _run_task(task))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [(task, pool.submit(_run_task, task)) for task in tasks]
            for task, future in futures:
                _record(results, task, future.result)

    results.duration_ms = int((time.time() - start_time) * 1000)
    logger.info(
        f"Artifacts: attempted={results.attempted}, succeeded={results.succeeded}, "
        f"failed={results.failed}, duration={results.duration_ms}ms"
    )
    return results
