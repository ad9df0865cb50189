"""
reefworker - Job worker for reef scenario model runs.

Receives typed jobs from a control plane, runs them through a registered
handler inside a scratch workspace, and uploads the results to object
storage.
"""

__version__ = "0.1.0"


__all__ = ["WorkerConfig", "load_config", "get_worker_home", "JobDispatcher", "JobTypeRegistry"]

from .config import WorkerConfig, get_worker_home, load_config
from .dispatch import JobDispatcher
from .registry import JobTypeRegistry
