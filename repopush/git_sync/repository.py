"""Local repository setup and commit operations."""

import logging
from pathlib import Path

from git import Repo, InvalidGitRepositoryError

from .branch_utils import has_upstream
from .utils import GitSyncResult, create_git_sync_result, head_commit, run_git


DEFAULT_IDENTITY_NAME = "repopush"
DEFAULT_IDENTITY_EMAIL = "repopush@localhost"


def open_or_init_repository(path: Path) -> Repo:
    """
    Open the repository at path, initializing one when absent.

    Only a repository rooted exactly at path counts; an enclosing parent
    repository is ignored so subdirectories get their own identity.
    """
    logger = logging.getLogger('repopush.git_sync.repository')

    if (path / ".git").exists():
        try:
            return Repo(path)
        except InvalidGitRepositoryError:
            logger.warning(f"{path}/.git is not a valid repository; reinitializing")

    repo = Repo.init(path)
    logger.info(f"Initialized Git repository in {path}")
    return repo


def ensure_identity(repo: Repo) -> bool:
    """
    Configure a local committer identity when none can be resolved.

    Returns:
        True when a local default identity was written
    """
    if run_git(repo, "var", "GIT_COMMITTER_IDENT").ok and run_git(repo, "var", "GIT_AUTHOR_IDENT").ok:
        return False

    with repo.config_writer() as writer:
        writer.set_value("user", "name", DEFAULT_IDENTITY_NAME)
        writer.set_value("user", "email", DEFAULT_IDENTITY_EMAIL)
    logging.getLogger('repopush.git_sync.repository').info(
        f"No git identity configured; using {DEFAULT_IDENTITY_NAME} <{DEFAULT_IDENTITY_EMAIL}> for {repo.working_tree_dir}"
    )
    return True


def has_staged_changes(repo: Repo) -> bool:
    """Check whether the index differs from HEAD (or from nothing, when unborn)."""
    return not run_git(repo, "diff", "--cached", "--quiet").ok


def commit_staged(repo: Repo, message: str = "push", amend_until_published: bool = False) -> GitSyncResult:
    """
    Commit whatever is staged.

    Args:
        repo: Repository to commit in
        message: Message for a new commit
        amend_until_published: Amend HEAD instead of adding a commit while
            the branch has no upstream yet

    Returns:
        GitSyncResult; error_code NOTHING_TO_COMMIT when the index is clean
    """
    if not has_staged_changes(repo):
        return create_git_sync_result(
            success=False,
            message="No changes to commit",
            operation="commit",
            error_code="NOTHING_TO_COMMIT"
        )

    if amend_until_published and head_commit(repo) is not None and not has_upstream(repo):
        result = run_git(repo, "commit", "--amend", "--no-edit")
        operation = "commit_amend"
    else:
        result = run_git(repo, "commit", "-m", message)
        operation = "commit"

    if not result.ok:
        return create_git_sync_result(
            success=False,
            message=f"git commit failed: {result.output}",
            operation=operation,
            error_code="COMMIT_FAILED",
            output=result.output
        )

    return create_git_sync_result(
        success=True,
        message="Commit created",
        operation=operation
    )


def ensure_initial_commit(repo: Repo, message: str) -> bool:
    """Create an empty commit when the branch has no history. Returns True if created."""
    if head_commit(repo) is not None:
        return False
    repo.git.commit("--allow-empty", "-m", message)
    return True
