"""
Job type registry.

Maps a job type tag to a capability bundle: the handler plus the input and
output shapes it is registered with. The registry is an explicit value
built once at process start (see create_default) and passed to the
dispatcher; it holds no domain logic of its own.

Duplicate registration overwrites the previous binding and logs a warning.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from reefworker.errors import UnregisteredJobType
from reefworker.handlers.base import JobHandler
from reefworker.schemas import JobInput, JobOutput, JobType, job_type_key

if TYPE_CHECKING:
    from reefworker.engine import SimulationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobTypeBinding:
    """Handler, input shape and output shape registered for one job type."""
    job_type: str
    handler: JobHandler
    input_type: type[JobInput]
    output_type: type[JobOutput]

    def parse_input(self, raw_payload: object) -> JobInput:
        return self.input_type.from_dict(raw_payload)

    def accepts_output(self, output: object) -> bool:
        return isinstance(output, self.output_type)


class JobTypeRegistry:
    """
    Registry for job handler dispatch by job type.

    Usage:
        registry = JobTypeRegistry()
        registry.register(JobType.ADRIA_MODEL_RUN, ModelRunHandler(engine),
                          ModelRunInput, ModelRunOutput)

        handler = registry.get_handler(JobType.ADRIA_MODEL_RUN)

        # Or use factory with defaults
        registry = JobTypeRegistry.create_default(engine=engine)
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._bindings: dict[str, JobTypeBinding] = {}

    def register(
        self,
        job_type: JobType | str,
        handler: JobHandler,
        input_type: type[JobInput],
        output_type: type[JobOutput],
    ) -> None:
        """
        Register a handler and its shapes for a job type.

        Replaces any previous registration for the same job type.

        Args:
            job_type: JobType member or string tag
            handler: Handler instance
            input_type: JobInput subclass payloads are coerced into
            output_type: JobOutput subclass the handler must return
        """
        if handler is None or input_type is None or output_type is None:
            raise ValueError(f"Job type {job_type} needs a handler and both shapes")

        key = job_type_key(job_type)
        if key in self._bindings:
            logger.warning(f"Overwriting existing handler registration for job type: {key}")

        self._bindings[key] = JobTypeBinding(
            job_type=key,
            handler=handler,
            input_type=input_type,
            output_type=output_type,
        )
        logger.debug(f"Registered handler for job type: {key}")

    def binding(self, job_type: JobType | str) -> JobTypeBinding:
        """
        Get the full registration for a job type.

        Raises:
            UnregisteredJobType: If nothing is registered for job_type
        """
        key = job_type_key(job_type)
        if key not in self._bindings:
            raise UnregisteredJobType(key, self.list_types())
        return self._bindings[key]

    def get_handler(self, job_type: JobType | str) -> JobHandler:
        return self.binding(job_type).handler

    def input_type_of(self, job_type: JobType | str) -> type[JobInput]:
        return self.binding(job_type).input_type

    def output_type_of(self, job_type: JobType | str) -> type[JobOutput]:
        return self.binding(job_type).output_type

    def has(self, job_type: JobType | str) -> bool:
        """Check if a handler is registered for a job type."""
        return job_type_key(job_type) in self._bindings

    def list_types(self) -> list[str]:
        """List registered job types."""
        return sorted(self._bindings)

    @classmethod
    def create_default(
        cls,
        engine: "SimulationEngine",
        artifact_workers: int = 1,
    ) -> "JobTypeRegistry":
        """
        Create a registry with the built-in job types.

        Args:
            engine: Simulation engine used by ADRIA_MODEL_RUN
            artifact_workers: Thread count for artifact generation

        Returns:
            Configured JobTypeRegistry
        """
        from reefworker.handlers.model_run import ModelRunHandler
        from reefworker.schemas import ModelRunInput, ModelRunOutput

        registry = cls()
        registry.register(
            JobType.ADRIA_MODEL_RUN,
            ModelRunHandler(engine, artifact_workers=artifact_workers),
            ModelRunInput,
            ModelRunOutput,
        )
        return registry
