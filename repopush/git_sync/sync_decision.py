"""
Sync decision engine.

Classifies the local branch against its remote counterpart and decides
whether a push may proceed. Fetching never merges; pulling happens only when
it is required and automatic pulling is enabled.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from git import Repo

from ..config import Config
from ..errors import PolicyBlockedError, SyncError
from .error_types import OutputCategory
from .transport import CredentialedTransport
from .utils import head_commit, run_git


class SyncRelationship(Enum):
    """Relationship of the local branch head to the remote branch head."""
    IN_SYNC = "in_sync"
    LOCAL_AHEAD = "local_ahead"
    LOCAL_BEHIND = "local_behind"
    DIVERGED = "diverged"
    REMOTE_ABSENT = "remote_absent"


def uncommitted_tracked_changes(repo: Repo) -> List[str]:
    """Tracked paths with uncommitted changes, submodules ignored."""
    result = run_git(repo, "status", "--porcelain", "--untracked-files=no", "--ignore-submodules")
    if not result.ok:
        return []
    return [line[3:] for line in result.stdout.splitlines() if line.strip()]


def classify_relationship(local: Optional[str], remote: Optional[str], base: Optional[str]) -> SyncRelationship:
    """
    Classify two branch heads given their merge-base.

    Args:
        local: Local head sha, None when the local branch is unborn
        remote: Remote head sha, None when the remote branch is absent
        base: Merge-base sha, None when there is no common ancestor

    Returns:
        Exactly one SyncRelationship
    """
    if remote is None:
        return SyncRelationship.REMOTE_ABSENT
    if local is None:
        return SyncRelationship.LOCAL_BEHIND
    if local == remote:
        return SyncRelationship.IN_SYNC
    if base is None:
        return SyncRelationship.DIVERGED
    if local == base:
        return SyncRelationship.LOCAL_BEHIND
    if remote == base:
        return SyncRelationship.LOCAL_AHEAD
    return SyncRelationship.DIVERGED


@dataclass
class SyncDecision:
    """Outcome of evaluating a branch against origin."""
    relationship: Optional[SyncRelationship]
    local: Optional[str] = None
    remote: Optional[str] = None
    base: Optional[str] = None
    determined: bool = True
    pulled: bool = False
    message: str = ""


class SyncDecisionEngine:
    """Gates pushes on the relationship between local and remote history."""

    def __init__(self, config: Config, transport: CredentialedTransport):
        self.config = config
        self.transport = transport
        self.logger = logging.getLogger('repopush.git_sync.sync_decision')

    def evaluate(self, repo: Repo, branch: str) -> SyncDecision:
        """
        Fetch the remote branch and classify the local branch against it.

        A failed fetch yields an undetermined decision rather than an error.
        """
        exists = self.transport.remote_branch_exists(repo, branch)
        if exists.category == OutputCategory.REMOTE_REF_MISSING:
            return SyncDecision(
                relationship=SyncRelationship.REMOTE_ABSENT,
                message=f"Remote branch '{branch}' not found. Assuming first push."
            )
        if not exists.ok:
            return SyncDecision(
                relationship=None,
                determined=False,
                message=f"Could not query origin for '{branch}': {exists.output.strip()}"
            )

        fetched = self.transport.fetch(repo, "--prune", "--no-tags", "origin", branch)
        if not fetched.ok:
            return SyncDecision(
                relationship=None,
                determined=False,
                message=f"Fetch of origin/{branch} failed; cannot determine sync state"
            )

        local = head_commit(repo)
        remote_ref = run_git(repo, "rev-parse", "--verify", "--quiet", f"refs/remotes/origin/{branch}")
        remote = remote_ref.stdout.strip() if remote_ref.ok else None
        base = None
        if local and remote:
            merge_base = run_git(repo, "merge-base", local, remote)
            base = merge_base.stdout.strip() if merge_base.ok and merge_base.stdout.strip() else None

        relationship = classify_relationship(local, remote, base)
        return SyncDecision(relationship=relationship, local=local, remote=remote, base=base)

    def sync(self, repo: Repo, branch: str) -> SyncDecision:
        """
        Evaluate and apply the pull policy.

        Raises:
            PolicyBlockedError: Pull required but automatic pulling is disabled
            SyncError: Pull required but tracked files have uncommitted
                changes, or the pull was attempted and failed
        """
        decision = self.evaluate(repo, branch)

        if not decision.determined:
            self.logger.warning(f"{decision.message}; skipping pull")
            return decision

        relationship = decision.relationship
        if relationship == SyncRelationship.REMOTE_ABSENT:
            self.logger.info(decision.message)
            return decision
        if relationship == SyncRelationship.IN_SYNC:
            self.logger.info(f"Already in sync with origin/{branch}")
            return decision
        if relationship == SyncRelationship.LOCAL_AHEAD:
            self.logger.info(f"Local is ahead of origin/{branch}; proceeding without pull")
            return decision

        description = (
            f"Local is behind origin/{branch}" if relationship == SyncRelationship.LOCAL_BEHIND
            else f"Local and origin/{branch} have diverged"
        )

        if not self.config.allow_pull:
            raise PolicyBlockedError(
                f"{description}. Skipping pull to protect local work. "
                f"Set ALLOW_PULL=1 to pull with rebase automatically."
            )

        dirty = uncommitted_tracked_changes(repo) if decision.local else []
        if dirty:
            shown = ", ".join(dirty[:5]) + (f" and {len(dirty) - 5} more" if len(dirty) > 5 else "")
            raise SyncError(
                f"{description}, but tracked files have uncommitted changes ({shown}). "
                f"git cannot rebase over them; commit or stash them, then rerun."
            )

        self.logger.info(f"{description}; pulling with rebase")
        result = self.transport.pull(repo, branch)
        if not result.ok:
            raise SyncError(f"Pull from origin/{branch} failed; resolve manually", output=result.output)

        decision.pulled = True
        return decision
