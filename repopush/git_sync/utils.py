"""Utility classes and functions for Git synchronization."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from git import Git, Repo


@dataclass
class GitSyncResult:
    """Result of a Git synchronization operation."""
    success: bool
    message: str
    operation: str
    attempts: int = 1
    error_code: Optional[str] = None
    output: Optional[str] = None
    branch_used: Optional[str] = None


def create_git_sync_result(
    success: bool,
    message: str,
    operation: str,
    attempts: int = 1,
    error_code: Optional[str] = None,
    output: Optional[str] = None,
    branch_used: Optional[str] = None
) -> GitSyncResult:
    """
    Helper function to create GitSyncResult instances.

    Args:
        success: Whether the operation was successful
        message: Descriptive message about the operation result
        operation: Name of the operation that was performed
        attempts: Number of attempts made (default: 1)
        error_code: Optional error code for failed operations
        output: Raw git output, kept verbatim for diagnostics
        branch_used: Optional branch name that was used in the operation

    Returns:
        GitSyncResult instance with all fields populated
    """
    return GitSyncResult(
        success=success,
        message=message,
        operation=operation,
        attempts=attempts,
        error_code=error_code,
        output=output,
        branch_used=branch_used
    )


@dataclass
class GitCommandOutput:
    """Exit status and captured streams of one git invocation."""
    status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.status == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, the way git prints them to a terminal."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


GitTarget = Union[Repo, Git, Path, str]


def git_for(target: GitTarget) -> Git:
    """Return a GitPython command wrapper bound to a repository or directory."""
    if isinstance(target, Repo):
        return target.git
    if isinstance(target, Git):
        return target
    return Git(str(target))


def run_git(target: GitTarget, *args: str, env: Optional[Dict[str, str]] = None) -> GitCommandOutput:
    """
    Run a git command without raising on a non-zero exit status.

    Args:
        target: Repository, GitPython wrapper or working directory
        *args: Arguments passed to git
        env: Extra environment variables for this call only

    Returns:
        GitCommandOutput with the exit status and decoded streams
    """
    status, stdout, stderr = git_for(target).execute(
        [Git.GIT_PYTHON_GIT_EXECUTABLE, *args],
        with_extended_output=True,
        with_exceptions=False,
        env=env
    )
    return GitCommandOutput(status=status, stdout=stdout or "", stderr=stderr or "")


def head_commit(target: GitTarget) -> Optional[str]:
    """Return the full sha of HEAD, or None when the branch is unborn."""
    result = run_git(target, "rev-parse", "--verify", "--quiet", "HEAD")
    if not result.ok or not result.stdout.strip():
        return None
    return result.stdout.strip()
