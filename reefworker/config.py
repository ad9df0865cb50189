"""
Configuration management for reefworker.

Loads the worker configuration from $REEFWORKER_HOME/config.yaml
(default: ~/.config/reefworker/config.yaml). An optional env_file key is
loaded with python-dotenv before environment overrides are applied.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from reefworker.errors import ConfigError, UnknownDataPackage


DEFAULT_OUTPUT_ENV_VAR = "ADRIA_OUTPUT_DIR"
DEFAULT_SCRATCH_DIR = "/tmp/reefworker"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_worker_home() -> Path:
    """Return the configuration home directory."""
    home = os.environ.get("REEFWORKER_HOME")
    if home:
        return Path(home)
    return Path("~/.config/reefworker").expanduser()


@dataclass
class WorkerConfig:
    """
    Static worker configuration.

    Attributes:
        scratch_dir: Base directory under which job workspaces are created
        data_packages: Symbolic data-package name -> filesystem path
        default_data_package: Package used when a job does not name one
        output_env_var: Environment variable the engine reads its output dir from
        aws_region: Region for the S3 storage client
        s3_endpoint: Optional S3-compatible endpoint override
        gcp_project: Project for the GCS storage client
        engine_factory: "module:function" path that builds the simulation engine
        artifact_workers: Thread count for artifact generation (1 = sequential)
        log_level: Logging level
        log_format: "structured" (JSON) or "pretty"
        log_file: Optional log file path
    """
    scratch_dir: str = DEFAULT_SCRATCH_DIR
    data_packages: dict[str, str] = field(default_factory=dict)
    default_data_package: Optional[str] = None
    output_env_var: str = DEFAULT_OUTPUT_ENV_VAR
    aws_region: str = "ap-southeast-2"
    s3_endpoint: Optional[str] = None
    gcp_project: Optional[str] = None
    engine_factory: Optional[str] = None
    artifact_workers: int = 1
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[str] = None

    def __post_init__(self):
        if not self.scratch_dir:
            raise ConfigError("scratch_dir is required")
        if not self.output_env_var:
            raise ConfigError("output_env_var is required")
        if not isinstance(self.data_packages, dict):
            raise ConfigError("data_packages must be a mapping of name -> path")
        if self.artifact_workers < 1:
            raise ConfigError("artifact_workers must be >= 1")
        if self.log_format not in ("structured", "pretty"):
            raise ConfigError(f"Unknown log_format: {self.log_format}")
        if not isinstance(self.log_level, str) or self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Unknown log_level: {self.log_level}. Valid: {list(LOG_LEVELS)}")

    @property
    def scratch_path(self) -> Path:
        return Path(self.scratch_dir).expanduser()

    def resolve_data_package(self, name: Optional[str]) -> Path:
        """
        Map a symbolic data-package name to its configured path.

        Falls back to default_data_package when name is None.

        Raises:
            UnknownDataPackage: If the name (or default) is not configured
        """
        key = name or self.default_data_package
        if key is None or key not in self.data_packages:
            raise UnknownDataPackage(str(key), sorted(self.data_packages))
        return Path(self.data_packages[key]).expanduser()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkerConfig":
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known - {"env_file"}
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    overrides = {
        "REEFWORKER_SCRATCH_DIR": "scratch_dir",
        "REEFWORKER_LOG_LEVEL": "log_level",
        "AWS_REGION": "aws_region",
        "S3_ENDPOINT": "s3_endpoint",
    }
    for env_var, key in overrides.items():
        value = os.environ.get(env_var)
        if value:
            data[key] = value
    return data


def load_config(config_path: Optional[Path] = None) -> WorkerConfig:
    """
    Load worker configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to $REEFWORKER_HOME/config.yaml

    Returns:
        WorkerConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is empty, malformed or invalid
    """
    if config_path is None:
        config_path = get_worker_home() / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"reefworker config.yaml not found at {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}") from e

    if not data:
        raise ConfigError("Configuration file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping")

    env_file = data.get("env_file")
    if env_file:
        load_dotenv(Path(env_file).expanduser())

    return WorkerConfig.from_dict(_apply_env_overrides(data))
