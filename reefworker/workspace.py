"""
Scratch workspace lifecycle.

Each job execution gets its own uniquely named directory tree under the
configured scratch directory:

    <scratch_dir>/<prefix>_<YYYYmmdd_HHMMSS>_<token>[_<n>]<suffix>/
        work/     engine output is redirected here
        upload/   assembled results that get uploaded

Uniqueness comes from the naming scheme plus an atomic mkdir claim, so
concurrent jobs never need a shared lock. Teardown never raises; it
reports success as a boolean.
"""

import logging
import os
import secrets
import shutil
import string
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator

from reefworker.errors import CleanupFailure, WorkspaceAllocationFailure

logger = logging.getLogger(__name__)


# Exact matches only; subdirectories of these stay deletable.
PROTECTED_PATHS = frozenset([
    "/", "/home", "/usr", "/bin", "/sbin", "/etc", "/var", "/boot", "/opt",
])

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 6
MAX_COLLISION_ATTEMPTS = 10_000


def _random_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def create_workspace(
    base_dir: str | Path,
    prefix: str = "folder",
    suffix: str = "",
) -> Path:
    """
    Create a uniquely named directory inside base_dir.

    Args:
        base_dir: Directory in which the folder is created (created if absent)
        prefix: Folder name prefix
        suffix: Optional folder name suffix

    Returns:
        Absolute path of the created directory, e.g.
        /tmp/data_20240702_143052_abc123_backup

    Raises:
        WorkspaceAllocationFailure: If the directory cannot be created
    """
    base = Path(base_dir).expanduser().absolute()
    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorkspaceAllocationFailure(f"Cannot create base directory {base}: {e}") from e

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    stem = f"{prefix}_{timestamp}_{_random_token()}"

    candidate = base / f"{stem}{suffix}"
    for counter in range(1, MAX_COLLISION_ATTEMPTS + 1):
        try:
            # mkdir without exist_ok is the atomic claim on this name
            candidate.mkdir()
            logger.debug(f"Created workspace directory: {candidate}")
            return candidate
        except FileExistsError:
            candidate = base / f"{stem}_{counter}{suffix}"
        except OSError as e:
            raise WorkspaceAllocationFailure(f"Cannot create {candidate}: {e}") from e

    raise WorkspaceAllocationFailure(
        f"Could not find a free name for {stem} in {base} "
        f"after {MAX_COLLISION_ATTEMPTS} attempts"
    )


def _normalize(path: str | Path) -> str:
    normalized = os.path.abspath(os.path.expanduser(str(path)))
    # abspath keeps a leading "//" on POSIX
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def is_protected_path(path: str | Path) -> bool:
    """
    Return True if path normalizes to one of the protected system paths.

    Both the normalized path and its symlink-resolved form are checked.
    """
    normalized = _normalize(path)
    return normalized in PROTECTED_PATHS or os.path.realpath(normalized) in PROTECTED_PATHS


def _remove_tree(path: str) -> None:
    try:
        shutil.rmtree(path)
    except OSError as e:
        raise CleanupFailure(f"Failed to remove directory {path}: {e}") from e


def teardown_workspace(path: str | Path, verbose: bool = True) -> bool:
    """
    Remove a workspace directory and all its contents.

    Args:
        path: Directory to remove
        verbose: Log progress at INFO level

    Returns:
        True if the directory was removed; False if it did not exist, is a
        protected system path, or removal failed
    """
    normalized = _normalize(path)

    if not os.path.isdir(normalized):
        if verbose:
            logger.warning(f"Directory does not exist: {normalized}")
        return False

    if is_protected_path(normalized):
        logger.error(f"Refusing to delete system directory: {normalized}")
        return False

    try:
        if verbose:
            logger.info(f"Removing directory: {normalized}")
        _remove_tree(normalized)
    except CleanupFailure as e:
        logger.error(str(e), exc_info=True)
        return False

    if verbose:
        logger.info(f"Successfully removed: {normalized}")
    return True


@dataclass(frozen=True)
class Workspace:
    """
    A job-scoped scratch directory tree.

    Attributes:
        root: Unique root directory
        work: Subdirectory the engine writes into
        upload: Subdirectory holding everything that gets uploaded
    """
    root: Path

    @property
    def work(self) -> Path:
        return self.root / "work"

    @property
    def upload(self) -> Path:
        return self.root / "upload"

    @classmethod
    def allocate(cls, base_dir: str | Path, prefix: str = "run") -> "Workspace":
        """
        Create a new workspace with its work/ and upload/ subdirectories.

        Raises:
            WorkspaceAllocationFailure: If any directory cannot be created
        """
        workspace = cls(root=create_workspace(base_dir, prefix=prefix))
        try:
            workspace.work.mkdir(parents=True)
            workspace.upload.mkdir(parents=True)
        except OSError as e:
            teardown_workspace(workspace.root, verbose=False)
            raise WorkspaceAllocationFailure(
                f"Cannot create workspace subdirectories in {workspace.root}: {e}"
            ) from e
        logger.info(f"Allocated workspace: {workspace.root}")
        return workspace

    def teardown(self, verbose: bool = True) -> bool:
        return teardown_workspace(self.root, verbose=verbose)


@contextmanager
def workspace_scope(
    base_dir: str | Path,
    prefix: str = "run",
    verbose: bool = True,
) -> Iterator[Workspace]:
    """
    Allocate a workspace and tear it down on every exit path.

    Usage:
        with workspace_scope(config.scratch_path, prefix="adria") as ws:
            ...
    """
    workspace = Workspace.allocate(base_dir, prefix=prefix)
    try:
        yield workspace
    finally:
        if not workspace.teardown(verbose=verbose):
            logger.warning(f"Workspace cleanup did not complete: {workspace.root}")
