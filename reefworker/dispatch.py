"""
Job dispatch - validate, execute, validate.

dispatch() is the one execution contract shared by every job type:
1. Resolve the job type's registration (UnregisteredJobType if missing)
2. Coerce the raw payload into the input shape (InvalidInputPayload)
3. Invoke the handler (any failure becomes HandlerExecutionFailure)
4. Check the result is the registered output shape (InvalidOutputPayload)

The dispatcher only logs; it owns no resources.
"""

import logging
import time

from reefworker.errors import (
    HandlerExecutionFailure,
    InvalidInputPayload,
    InvalidOutputPayload,
    UnregisteredJobType,
)
from reefworker.handlers.base import JobContext
from reefworker.registry import JobTypeRegistry
from reefworker.schemas import Job, JobOutput, JobType, job_type_key
from reefworker.utils import format_duration

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Dispatches jobs to the handlers registered in a JobTypeRegistry."""

    def __init__(self, registry: JobTypeRegistry):
        self._registry = registry

    @property
    def registry(self) -> JobTypeRegistry:
        return self._registry

    def dispatch(
        self,
        job_type: JobType | str,
        raw_payload: object,
        context: JobContext,
    ) -> JobOutput:
        """
        Process a job using the registered handler.

        Args:
            job_type: Job type tag
            raw_payload: Untyped payload from the control plane
            context: Execution context for this job

        Returns:
            Instance of the job type's registered output shape

        Raises:
            UnregisteredJobType: No registration for job_type
            InvalidInputPayload: Payload does not match the input shape
            HandlerExecutionFailure: Handler raised
            InvalidOutputPayload: Handler returned the wrong shape
        """
        key = job_type_key(job_type)
        try:
            binding = self._registry.binding(key)
        except UnregisteredJobType:
            logger.error(
                f"Rejected job {context.job_id}: no handler registered for job type {key}. "
                f"Registered: {self._registry.list_types()}"
            )
            raise

        try:
            typed_input = binding.parse_input(raw_payload)
        except (TypeError, ValueError, KeyError) as e:
            logger.error(f"Input validation failed for job type {key}: {e}", exc_info=True)
            raise InvalidInputPayload(key, e) from e

        logger.info(f"Processing job {context.job_id} of type: {key}")
        start = time.time()
        try:
            output = binding.handler.handle(typed_input, context)
        except Exception as e:
            logger.error(
                f"Handler for job {context.job_id} (type={key}) failed after "
                f"{format_duration(time.time() - start)}: {e}",
                exc_info=True,
            )
            raise HandlerExecutionFailure(key, e) from e

        if not binding.accepts_output(output):
            logger.error(
                f"Handler for job type {key} returned {type(output).__name__}, "
                f"expected {binding.output_type.__name__}"
            )
            raise InvalidOutputPayload(key, binding.output_type, output)

        logger.info(
            f"Job {context.job_id} (type={key}) completed in "
            f"{format_duration(time.time() - start)}"
        )
        return output

    def dispatch_job(self, job: Job, context: JobContext) -> JobOutput:
        """Dispatch a Job record."""
        return self.dispatch(job.type, job.payload, context)
