"""
Credentialed git transport.

Every network git call of a run goes through CredentialedTransport. Each
call gets credentials injected for its own lifetime only, and its output is
classified once into a TransportResult that callers branch on.

Recovery paths are bounded: one pull-and-retry for a non-fast-forward
rejection, one promote-and-retry for oversized files, and one
protect-and-retry for untracked files in the way of a pull. Nothing is ever
force-pushed.
"""

import logging
from pathlib import Path
from typing import List, Optional

from git import Repo

from ..config import Config
from ..context import RunContext
from ..credentials import Credentials
from ..errors import RebaseConflictError
from .askpass import transport_environment
from .error_recovery import OutputClassifier
from .error_types import OutputCategory, TransportResult
from .large_files import LargeFilePromoter
from .rebase_resolver import RebaseConflictResolver, RebaseState, rebase_in_progress
from .safety_net import UntrackedFileSafetyNet
from .utils import GitTarget, run_git


class CredentialedTransport:
    """Runs push, pull and fetch against remotes with bounded recovery."""

    def __init__(
        self,
        config: Config,
        context: RunContext,
        credentials: Optional[Credentials] = None,
        promoter: Optional[LargeFilePromoter] = None,
        safety_net: Optional[UntrackedFileSafetyNet] = None,
        resolver: Optional[RebaseConflictResolver] = None
    ):
        self.config = config
        self.context = context
        self.credentials = credentials
        self.promoter = promoter or LargeFilePromoter(config.lfs_threshold_bytes)
        self.safety_net = safety_net or UntrackedFileSafetyNet(context)
        self.resolver = resolver or RebaseConflictResolver()
        self.classifier = OutputClassifier()
        self.logger = logging.getLogger('repopush.git_sync.transport')

    def _execute(self, target: GitTarget, args: List[str], operation: str) -> TransportResult:
        """Run one network git command with transient credentials and classify it."""
        with transport_environment(self.config.protocol, self.credentials) as env:
            result = run_git(target, *args, env=env)
        self.logger.debug(f"git {' '.join(args)} -> exit {result.status}")
        return self.classifier.classify(result.status, result.output, operation)

    def run(self, target: GitTarget, *args: str, operation: str = "git") -> TransportResult:
        """Run an arbitrary network git command (submodule update, tag push)."""
        return self._execute(target, list(args), operation)

    def remote_branch_exists(self, repo: Repo, branch: str) -> TransportResult:
        """
        Ask origin whether a branch exists.

        Returns:
            OK when it exists, REMOTE_REF_MISSING when the remote answered
            without it, any other category when the remote could not be asked
        """
        result = self._execute(repo, ["ls-remote", "--exit-code", "--heads", "origin", branch], "ls_remote")
        # ls-remote --exit-code exits 2 when the remote has no matching ref.
        if result.status == 2:
            result.category = OutputCategory.REMOTE_REF_MISSING
        return result

    def fetch(self, target: GitTarget, *args: str) -> TransportResult:
        return self._execute(target, ["fetch", *args], "fetch")

    def push_refspec(self, target: GitTarget, remote: str, refspec: str) -> TransportResult:
        """Push a single refspec without any recovery (tombstones, tags)."""
        return self._execute(target, ["push", remote, refspec], "push_refspec")

    def pull(self, repo: Repo, branch: str) -> TransportResult:
        """
        Rebase the local branch onto origin.

        Untracked files that block the checkout are moved aside by the safety
        net and the pull is retried once. A rebase left stopped on conflicts
        is handed to the conflict resolver.

        Returns:
            TransportResult of the last attempt

        Raises:
            RebaseConflictError: When the rebase had to be aborted
        """
        args = ["pull", "--rebase", "origin", branch]
        result = self._execute(repo, args, "pull")
        if result.ok:
            return result

        if result.category == OutputCategory.UNTRACKED_CONFLICT and result.conflict_paths:
            self.safety_net.protect(Path(repo.working_tree_dir), result.conflict_paths)
            self.logger.info("Retrying pull after moving untracked files aside")
            retried = self._execute(repo, args, "pull")
            retried.attempts = result.attempts + 1
            result = retried
            if result.ok:
                return result

        if rebase_in_progress(repo):
            outcome = self.resolver.resolve(repo)
            if outcome.state == RebaseState.RESOLVED:
                return TransportResult(
                    category=OutputCategory.OK,
                    output=result.output,
                    status=0,
                    operation="pull",
                    attempts=result.attempts,
                    message=outcome.message
                )
            if outcome.state == RebaseState.ABORTED:
                raise RebaseConflictError(outcome.message, outcome.conflicted_paths, output=result.output)

        self.logger.warning("'pull --rebase' failed. Working tree left untouched; resolve conflicts manually.")
        return result

    def push(self, repo: Repo, branch: str) -> TransportResult:
        """
        Push the branch to origin and set its upstream.

        Returns:
            TransportResult of the last attempt; ``attempts`` counts pushes
        """
        args = ["push", "-u", "origin", branch]
        result = self._execute(repo, args, "push")
        attempts = 1
        if result.ok:
            return result

        if result.category == OutputCategory.NON_FAST_FORWARD:
            if not self.config.allow_pull:
                self.logger.error(
                    "Push rejected (non-fast-forward). Automatic pull is disabled; "
                    "pull/rebase manually or rerun with ALLOW_PULL=1."
                )
                return result

            self.logger.info("Push rejected (non-fast-forward); pulling with rebase, then retrying once")
            pull_result = self.pull(repo, branch)
            if pull_result.ok:
                result = self._execute(repo, args, "push")
                attempts += 1
                if result.ok:
                    result.attempts = attempts
                    return result
                if result.category == OutputCategory.NON_FAST_FORWARD:
                    self.logger.error("Push rejected again after pulling; giving up")
                    result.attempts = attempts
                    return result

        if result.oversized_paths:
            self.logger.warning(f"Push rejected for oversized files: {', '.join(result.oversized_paths)}")
            if self.promoter.promote(repo, result.oversized_paths):
                self.logger.info("Retrying push after moving large files to Git LFS")
                result = self._execute(repo, args, "push")
                attempts += 1

        result.attempts = attempts
        return result

    def describe(self, result: TransportResult, **context) -> str:
        """User-facing description of a failed call."""
        return self.classifier.describe_failure(result, context or None)
