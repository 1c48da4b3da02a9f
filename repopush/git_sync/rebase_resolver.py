"""Automatic resolution of well-understood rebase conflicts."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List

from git import Repo

from .staging import ensure_canonical_gitignore
from .utils import run_git


NON_INTERACTIVE_EDITOR = {"GIT_EDITOR": "true"}


class RebaseState(Enum):
    """Where an automatic resolution attempt ended."""
    CLEAN = "clean"
    RESOLVED = "resolved"
    ABORTED = "aborted"


@dataclass
class RebaseOutcome:
    state: RebaseState
    message: str
    conflicted_paths: List[str] = field(default_factory=list)
    status_output: str = ""


def rebase_in_progress(repo: Repo) -> bool:
    git_dir = Path(repo.git_dir)
    return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()


def conflicted_paths(repo: Repo) -> List[str]:
    result = run_git(repo, "diff", "--name-only", "--diff-filter=U")
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def _resolve_gitignore(repo: Repo, path: str) -> bool:
    if not run_git(repo, "checkout", "--theirs", "--", path).ok:
        return False
    ensure_canonical_gitignore(Path(repo.working_tree_dir))
    return run_git(repo, "add", "--", path).ok


# Files whose conflicts are resolved automatically. Everything else aborts.
CONFLICT_RESOLVERS: Dict[str, Callable[[Repo, str], bool]] = {
    ".gitignore": _resolve_gitignore,
}


class RebaseConflictResolver:
    """
    Resolves rebase conflicts limited to an allow-list of generated files.

    A conflict on any other path aborts the whole rebase so no user change is
    ever discarded automatically.
    """

    def __init__(self):
        self.logger = logging.getLogger('repopush.git_sync.rebase_resolver')

    def resolve(self, repo: Repo) -> RebaseOutcome:
        """
        Drive an in-progress rebase to completion or abort it.

        Args:
            repo: Repository with a possibly stopped rebase

        Returns:
            RebaseOutcome in state CLEAN (no rebase), RESOLVED or ABORTED
        """
        if not rebase_in_progress(repo):
            return RebaseOutcome(state=RebaseState.CLEAN, message="No rebase in progress")

        resolved: List[str] = []
        while rebase_in_progress(repo):
            conflicts = conflicted_paths(repo)
            if not conflicts:
                return self._abort(repo, "Rebase in progress, but no conflicted files were detected automatically", [])

            unrecognized = [path for path in conflicts if path not in CONFLICT_RESOLVERS]
            if unrecognized:
                return self._abort(
                    repo,
                    f"Conflict in {', '.join(unrecognized)} requires manual resolution",
                    conflicts
                )

            for path in conflicts:
                if not CONFLICT_RESOLVERS[path](repo, path):
                    return self._abort(repo, f"Automatic resolution of '{path}' failed", conflicts)
                resolved.append(path)
                self.logger.info(f"Resolved rebase conflict in {path}")

            result = run_git(repo, "rebase", "--continue", env=NON_INTERACTIVE_EDITOR)
            if not result.ok and not conflicted_paths(repo):
                return self._abort(repo, "Unable to complete the rebase automatically", conflicts)

        return RebaseOutcome(
            state=RebaseState.RESOLVED,
            message="Rebase completed after automatic conflict resolution",
            conflicted_paths=list(dict.fromkeys(resolved))
        )

    def _abort(self, repo: Repo, message: str, conflicts: List[str]) -> RebaseOutcome:
        status_output = run_git(repo, "status", "--short").stdout
        run_git(repo, "rebase", "--abort")
        self.logger.error(message)
        if status_output:
            self.logger.error(f"Files in conflict:\n{status_output}")
        return RebaseOutcome(
            state=RebaseState.ABORTED,
            message=message,
            conflicted_paths=conflicts,
            status_output=status_output
        )
