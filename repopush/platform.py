"""Host environment helpers: paths and required executables."""

import shutil
from pathlib import Path
from typing import Optional, Tuple, Union

from git import Git, GitCommandError, GitCommandNotFound


# `git submodule absorbgitdirs` first shipped in 2.12.
MINIMUM_GIT_VERSION = (2, 12)


def normalize_path(path: Union[str, Path]) -> Path:
    """Expand ``~`` and resolve to an absolute path."""
    return Path(path).expanduser().resolve()


def git_version() -> Optional[Tuple[int, ...]]:
    """The installed git version, or None when git cannot be run."""
    try:
        return Git().version_info
    except (GitCommandNotFound, GitCommandError, OSError):
        return None


def validate_git_availability() -> Tuple[bool, Optional[str]]:
    """
    Check that a recent enough git is installed.

    Returns:
        Tuple of (is_available, error_message)
    """
    version = git_version()
    if version is None:
        return False, "Git executable not found; install git and make sure it is on PATH"

    if version[:2] < MINIMUM_GIT_VERSION:
        found = ".".join(str(part) for part in version)
        required = ".".join(str(part) for part in MINIMUM_GIT_VERSION)
        return False, f"Git {found} is too old; repopush needs git {required} or newer"
    return True, None


def is_git_lfs_available() -> bool:
    """Check whether the git-lfs extension is installed."""
    return shutil.which("git-lfs") is not None
