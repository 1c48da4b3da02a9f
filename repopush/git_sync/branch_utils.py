"""Branch utilities for Git synchronization using GitPython."""

import logging
from typing import Optional

from git import Repo

from .utils import head_commit, run_git


def get_current_local_branch(repo: Repo) -> Optional[str]:
    """Get the current local branch name, or None when HEAD is detached."""
    result = run_git(repo, "symbolic-ref", "--quiet", "--short", "HEAD")
    if not result.ok:
        return None
    return result.stdout.strip() or None


def has_upstream(repo: Repo) -> bool:
    """Check whether the current branch has an upstream configured."""
    result = run_git(repo, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
    return result.ok


def ensure_main_branch(repo: Repo, branch: str = "main") -> str:
    """
    Make sure the repository is on the publishing branch.

    An unborn HEAD is pointed at the branch; any other current branch (or a
    detached HEAD with history) is renamed or checked out as the branch.

    Args:
        repo: Repository to adjust
        branch: Name of the publishing branch

    Returns:
        The branch name now checked out
    """
    logger = logging.getLogger('repopush.git_sync.branch_utils')

    current = get_current_local_branch(repo)
    if current == branch:
        return branch

    if head_commit(repo) is None:
        repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")
        logger.debug(f"Pointed unborn HEAD at '{branch}'")
        return branch

    if current is None:
        repo.git.checkout("-B", branch)
        logger.info(f"Detached HEAD checked out as branch '{branch}'")
        return branch

    if branch in [head.name for head in repo.heads]:
        repo.git.checkout(branch)
        logger.info(f"Switched from '{current}' to '{branch}'")
    else:
        repo.git.branch("-M", branch)
        logger.info(f"Renamed branch '{current}' to '{branch}'")
    return branch
