"""
reefworker.handlers - Per-job-type handlers.

- base: JobContext, JobHandler, ApiClient
- model_run: ModelRunHandler for ADRIA_MODEL_RUN
"""

from .base import ApiClient, JobContext, JobHandler
from .model_run import ModelRunHandler

__all__ = [
    "ApiClient",
    "JobContext",
    "JobHandler",
    "ModelRunHandler",
]
