"""
Control-plane records: JobType, Job and JobAssignment.

A Job is created by the control plane with an opaque payload. A
JobAssignment links that job to the storage destination this worker is
permitted to write to. Both are immutable for the duration of a job.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobType(str, Enum):
    """Job types matching the control-plane API definition."""

    ADRIA_MODEL_RUN = "ADRIA_MODEL_RUN"


def job_type_key(job_type: "JobType | str") -> str:
    """Normalize a JobType member or plain string tag to its registry key."""
    if isinstance(job_type, JobType):
        return job_type.value
    return str(job_type)


@dataclass(frozen=True)
class Job:
    """
    A unit of work with a declared type tag and an opaque payload.

    Attributes:
        id: Control-plane job identifier
        type: Job type tag (JobType member or registered string tag)
        payload: Raw, unvalidated input payload
    """
    id: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Deserialize from dictionary."""
        return cls(
            id=str(data["id"]),
            type=data["type"],
            payload=data.get("payload", data.get("input_payload", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "type": job_type_key(self.type),
            "payload": self.payload,
        }


@dataclass(frozen=True)
class JobAssignment:
    """
    Control-plane record linking a job to its storage destination.

    Attributes:
        id: Assignment identifier
        job_id: The job this assignment belongs to
        storage_uri: Destination URI (e.g. s3://bucket/prefix)
    """
    id: str
    job_id: str
    storage_uri: str

    def __post_init__(self):
        if not self.storage_uri:
            raise ValueError("JobAssignment requires a storage_uri")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobAssignment":
        """Deserialize from dictionary."""
        return cls(
            id=str(data["id"]),
            job_id=str(data["job_id"]),
            storage_uri=data["storage_uri"],
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "id": self.id,
            "job_id": self.job_id,
            "storage_uri": self.storage_uri,
        }
