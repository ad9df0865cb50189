"""Base protocols and interfaces for reefworker job handlers.

This module defines the core abstractions:
- JobContext: Everything one in-flight job execution owns
- JobHandler: Base class for per-job-type handlers
- ApiClient: Protocol for the control-plane API client
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from reefworker.config import WorkerConfig
from reefworker.schemas import Job, JobAssignment, JobInput, JobOutput
from reefworker.storage import StorageClient


@runtime_checkable
class ApiClient(Protocol):
    """Protocol for the control-plane API client.

    Transport and authentication live outside this package; handlers only
    need to be able to reach the API if a job type requires it.
    """

    def get(self, path: str) -> dict[str, Any]:
        ...

    def post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        ...


@dataclass
class JobContext:
    """Context passed to handlers during execution.

    Owned by exactly one job execution; never shared across jobs.

    Attributes:
        config: Static worker configuration
        job: The job being executed
        assignment: The control-plane assignment for this job
        storage_client: Client used for the upload step
        api_client: Optional control-plane API client
        engine_metadata: Engine-specific metadata (version, data package, ...)
    """
    config: WorkerConfig
    job: Job
    assignment: JobAssignment
    storage_client: StorageClient
    api_client: Optional[ApiClient] = None
    engine_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def storage_uri(self) -> str:
        return self.assignment.storage_uri


class JobHandler(ABC):
    """
    Abstract base class for job handlers.

    A handler receives an already-validated input and returns an instance
    of the output type it was registered with.
    """

    @abstractmethod
    def handle(self, job_input: JobInput, context: JobContext) -> JobOutput:
        """
        Execute a job.

        Args:
            job_input: Typed input payload
            context: Execution context for this job

        Returns:
            Typed output payload

        Raises:
            Exception: On job failure (wrapped by the dispatcher)
        """
        pass
