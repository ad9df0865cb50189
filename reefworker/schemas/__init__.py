"""
reefworker.schemas - Data model for the worker.

Control-plane records:
- JobType: Closed, extensible job type tag
- Job: {id, type, raw payload}
- JobAssignment: {id, job_id, storage_uri}

Payload shapes:
- JobInput / JobOutput: Bases for every registered input/output shape
- ModelRunInput / ModelRunOutput: ADRIA_MODEL_RUN shapes
- Artifact / ArtifactMetadata: Generated artifact records
"""

from .job import (
    Job,
    JobAssignment,
    JobType,
    job_type_key,
)
from .payloads import (
    DEFAULT_RCP_SCENARIO,
    Artifact,
    ArtifactMetadata,
    JobInput,
    JobOutput,
    ModelParam,
    ModelRunInput,
    ModelRunOutput,
)

__all__ = [
    # Control plane
    "Job",
    "JobAssignment",
    "JobType",
    "job_type_key",
    # Payloads
    "DEFAULT_RCP_SCENARIO",
    "Artifact",
    "ArtifactMetadata",
    "JobInput",
    "JobOutput",
    "ModelParam",
    "ModelRunInput",
    "ModelRunOutput",
]
