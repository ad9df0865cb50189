"""
Relocate the engine's result set to a deterministic location.

The simulation engine writes its result set into a directory with a name
it chooses itself, inside the directory named by the output environment
variable. relocate_result() enforces that exactly one such directory
exists, moves it to target_dir/desired_name, and double-checks the move.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from reefworker.errors import (
    AmbiguousResult,
    NoResultFound,
    RelocationPostconditionFailure,
    ResultSourceEmpty,
    ResultSourceMissing,
    ResultSourceNotConfigured,
)

logger = logging.getLogger(__name__)


def set_output_dir(env_var: str, path: str | Path) -> None:
    """Point the engine's output directory environment variable at path."""
    os.environ[env_var] = str(path)
    logger.info(f"Updated {env_var} to: {path}")


def get_output_dir(env_var: str) -> Optional[str]:
    """Read the engine's output directory back from the environment."""
    return os.environ.get(env_var)


def _find_single_result(source: Path) -> Path:
    entries = sorted(os.listdir(source))
    logger.debug(f"Found {len(entries)} items in output directory: {entries}")
    if not entries:
        raise ResultSourceEmpty(f"Output directory is empty: {source}")

    directories = [name for name in entries if (source / name).is_dir()]
    logger.debug(f"Found {len(directories)} directories: {directories}")

    if not directories:
        raise NoResultFound(f"No directories found in output directory: {source}")
    if len(directories) > 1:
        raise AmbiguousResult(str(source), directories)

    return source / directories[0]


def relocate_result(
    source_dir: Optional[str | Path],
    target_dir: str | Path,
    desired_name: str,
) -> Path:
    """
    Move the single result directory in source_dir to target_dir/desired_name.

    Args:
        source_dir: Directory the engine wrote into
        target_dir: Directory the result should end up in (created if missing)
        desired_name: New name for the result directory

    Returns:
        Final path of the relocated result

    Raises:
        ResultSourceNotConfigured: source_dir is unset
        ResultSourceMissing: source_dir does not exist
        ResultSourceEmpty: source_dir has no entries
        NoResultFound: source_dir has no directory entries
        AmbiguousResult: source_dir has more than one directory entry
        RelocationPostconditionFailure: the move did not take effect
    """
    if not source_dir:
        raise ResultSourceNotConfigured("Result source directory is not set")

    source = Path(source_dir)
    if not source.is_dir():
        raise ResultSourceMissing(f"Result source directory does not exist: {source}")

    source_path = _find_single_result(source)
    logger.info(f"Found single result directory: {source_path.name} in {source}")

    target_location = Path(target_dir)
    if not target_location.is_dir():
        logger.debug(f"Creating target directory: {target_location}")
        target_location.mkdir(parents=True, exist_ok=True)

    target_path = target_location / desired_name
    if target_path.exists() or target_path.is_symlink():
        logger.warning(f"Target path already exists, will overwrite: {target_path}")
        if target_path.is_dir() and not target_path.is_symlink():
            shutil.rmtree(target_path)
        else:
            target_path.unlink()

    logger.info(f"Moving result set from {source_path} to {target_path}")
    try:
        shutil.move(str(source_path), str(target_path))
    except OSError:
        logger.error(f"Failed to move result set {source_path}", exc_info=True)
        raise

    if not target_path.is_dir():
        raise RelocationPostconditionFailure(
            f"Move operation appeared to succeed but target directory does not exist: {target_path}"
        )
    if source_path.exists():
        raise RelocationPostconditionFailure(
            f"Move operation appeared to succeed but source directory still exists: {source_path}"
        )

    logger.info(f"Result set successfully moved and validated: {target_path}")
    return target_path


def relocate_from_env(env_var: str, target_dir: str | Path, desired_name: str) -> Path:
    """relocate_result() with the source read from the output environment variable."""
    return relocate_result(get_output_dir(env_var), target_dir, desired_name)
