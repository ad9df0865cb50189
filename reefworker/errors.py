"""
Error classes for reefworker job execution.

Errors are exceptions, not values. The worker loop catches them at its
boundary and translates them into whatever status the control plane expects.

Fatal (abort the job and propagate):
- Dispatch errors: UnregisteredJobType, InvalidInputPayload,
  InvalidOutputPayload, HandlerExecutionFailure
- Pipeline errors: WorkspaceAllocationFailure, RelocationError (and
  subclasses), UploadFailure, JobStageFailed
- Configuration errors: ConfigError, UnknownDataPackage, EngineLoadError

Recovered locally:
- Per-artifact failures inside the aggregator (never raised to the caller)
- CleanupFailure (logged, reported as a boolean)
"""


class WorkerError(Exception):
    """Base exception for reefworker."""
    pass


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------


class UnregisteredJobType(WorkerError):
    """Raised when no handler is registered for a job type."""

    def __init__(self, job_type: str, registered: list[str] | None = None):
        self.job_type = job_type
        self.registered = registered or []
        super().__init__(
            f"No handler registered for job type: {job_type}. "
            f"Registered: {self.registered}"
        )


class InvalidInputPayload(WorkerError):
    """Raised when a raw payload cannot be coerced into the input shape."""

    def __init__(self, job_type: str, cause: BaseException):
        self.job_type = job_type
        self.cause = cause
        super().__init__(f"Invalid input payload for job type {job_type}: {cause}")


class InvalidOutputPayload(WorkerError):
    """Raised when a handler returns something other than its output shape."""

    def __init__(self, job_type: str, expected: type, actual: object):
        self.job_type = job_type
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Output payload is not of the correct type for job type {job_type}: "
            f"expected {expected.__name__}, got {type(actual).__name__}"
        )


class HandlerExecutionFailure(WorkerError):
    """Raised when a handler fails. The original exception is kept as cause."""

    def __init__(self, job_type: str, cause: BaseException):
        self.job_type = job_type
        self.cause = cause
        super().__init__(
            f"Handler for job type {job_type} failed: "
            f"{type(cause).__name__}: {cause}"
        )


# -----------------------------------------------------------------------------
# Workspace
# -----------------------------------------------------------------------------


class WorkspaceAllocationFailure(WorkerError):
    """Raised when a scratch workspace cannot be created."""
    pass


class CleanupFailure(WorkerError):
    """
    Workspace teardown failed.

    Non-fatal: teardown_workspace() logs this and returns False so that a
    cleanup problem never masks the job's real outcome.
    """
    pass


# -----------------------------------------------------------------------------
# Relocation
# -----------------------------------------------------------------------------


class RelocationError(WorkerError):
    """Base class for result relocation failures."""
    pass


class ResultSourceNotConfigured(RelocationError):
    """The engine output directory was never set."""
    pass


class ResultSourceMissing(RelocationError):
    """The configured engine output directory does not exist."""
    pass


class NoResultFound(RelocationError):
    """The engine output directory holds no result directory."""
    pass


class ResultSourceEmpty(NoResultFound):
    """The engine output directory has no entries at all."""
    pass


class AmbiguousResult(RelocationError):
    """More than one candidate result directory was found."""

    def __init__(self, source_dir: str, candidates: list[str]):
        self.source_dir = source_dir
        self.candidates = candidates
        super().__init__(
            f"Multiple directories found in {source_dir} (expected exactly 1): "
            f"{candidates}"
        )


class RelocationPostconditionFailure(RelocationError):
    """The move reported success but the filesystem disagrees."""
    pass


# -----------------------------------------------------------------------------
# Upload / pipeline
# -----------------------------------------------------------------------------


class UploadFailure(WorkerError):
    """Uploading the assembled workspace to object storage failed."""
    pass


class JobStageFailed(WorkerError):
    """
    Terminal failure of a job pipeline, tagged with the stage it failed in.

    Attributes:
        stage: The JobStage that was running when the failure happened
        cause: The underlying exception
    """

    def __init__(self, stage, cause: BaseException):
        self.stage = stage
        self.cause = cause
        stage_name = getattr(stage, "value", stage)
        super().__init__(f"Job failed at stage {stage_name}: {type(cause).__name__}: {cause}")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------


class ConfigError(WorkerError):
    """Configuration validation error."""
    pass


class UnknownDataPackage(ConfigError):
    """A symbolic data-package name has no configured path."""

    def __init__(self, name: str, known: list[str]):
        self.name = name
        self.known = known
        super().__init__(f"Unknown data package: {name}. Configured: {known}")


class EngineLoadError(ConfigError):
    """The simulation engine factory could not be loaded."""
    pass
