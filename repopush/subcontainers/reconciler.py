"""Publishing subcontainers and clearing the ones removed locally."""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from git import Repo

from ..config import Config
from ..context import RunContext
from ..errors import SubcontainerError
from ..git_sync.branch_utils import ensure_main_branch, has_upstream
from ..git_sync.large_files import LargeFilePromoter
from ..git_sync.performance_logger import PerformanceLogger
from ..git_sync.remote_utils import ensure_remote
from ..git_sync.repository import (
    commit_staged, ensure_identity, ensure_initial_commit, open_or_init_repository
)
from ..git_sync.staging import IndexHygiene
from ..git_sync.transport import CredentialedTransport
from ..git_sync.utils import head_commit
from ..provisioning import GitHubProvisioner
from .planner import ReconciliationPlan, SubcontainerMapping
from .submodules import register_submodule
from .tombstone import clear_subcontainer_repository


INITIAL_COMMIT_MESSAGE = "Initial subcontainer commit"


class SubcontainerReconciler:
    """
    Brings every planned subcontainer to a pushed state.

    Each subcontainer is provisioned on the remote, initialized locally if
    needed, committed and pushed. The commit it was pushed at is recorded on
    the run context so the parent can reference it as a gitlink.
    """

    def __init__(
        self,
        config: Config,
        context: RunContext,
        transport: CredentialedTransport,
        parent: Repo,
        url_resolver: Callable[[str], str],
        provisioner: Optional[GitHubProvisioner] = None,
        promoter: Optional[LargeFilePromoter] = None,
        performance: Optional[PerformanceLogger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config
        self.context = context
        self.transport = transport
        self.parent = parent
        self.root = Path(parent.working_tree_dir)
        self.url_resolver = url_resolver
        self.provisioner = provisioner
        self.promoter = promoter or transport.promoter
        self.performance = performance or PerformanceLogger()
        self.sleep = sleep
        self.logger = logging.getLogger('repopush.subcontainers.reconciler')

    def ensure_ready(self, mapping: SubcontainerMapping) -> Optional[str]:
        """
        Provision, commit and push one subcontainer.

        Returns:
            Commit the subcontainer's branch was pushed at

        Raises:
            SubcontainerError: When the push fails
        """
        subdirectory = mapping.subdirectory
        branch = self.config.branch
        url = self.url_resolver(mapping.repository_name)

        if self.provisioner is not None:
            self.provisioner.ensure_exists(mapping.repository_name, mapping.private)

        repo = open_or_init_repository(self.root / subdirectory)
        ensure_identity(repo)
        ensure_main_branch(repo, branch)
        if ensure_remote(repo, url):
            self.logger.debug(f"origin of '{subdirectory}' set to {url}")

        IndexHygiene(repo, self.config.extra_excludes).stage_all()
        routed = self.promoter.route_large_staged_files(repo)
        if routed:
            self.logger.info(f"Large files in '{subdirectory}' routed through Git LFS: {', '.join(routed)}")

        committed = commit_staged(repo, "push", amend_until_published=True)
        if not committed.success and committed.error_code != "NOTHING_TO_COMMIT":
            raise SubcontainerError(subdirectory, committed.message, committed.error_code, committed.output)
        ensure_initial_commit(repo, INITIAL_COMMIT_MESSAGE)

        if self.config.allow_pull and has_upstream(repo):
            pulled = self.transport.pull(repo, branch)
            if not pulled.ok:
                self.logger.warning(
                    f"Pull before pushing '{subdirectory}' failed; pushing anyway: "
                    f"{self.transport.describe(pulled, subcontainer=subdirectory)}"
                )

        pushed = self.transport.push(repo, branch)
        if not pushed.ok:
            raise SubcontainerError(
                subdirectory,
                self.transport.describe(pushed, subcontainer=subdirectory),
                error_code=pushed.category.value.upper(),
                output=pushed.output
            )

        commit = head_commit(repo)
        self.context.record_subcontainer_commit(subdirectory, commit)
        register_submodule(self.parent, subdirectory, url)
        self.logger.info(f"Subcontainer '{subdirectory}' pushed to {url}")
        return commit

    def ensure_all(self, plan: ReconciliationPlan,
                   after_push: Optional[Callable[[SubcontainerMapping, Repo], None]] = None) -> Dict[str, Optional[str]]:
        """
        Push every planned subcontainer in order, pausing between them.

        Args:
            plan: The reconciliation plan
            after_push: Called with each mapping and its repository once pushed

        Returns:
            Mapping of subdirectory -> pushed commit
        """
        pushed: Dict[str, Optional[str]] = {}
        for index, mapping in enumerate(plan.to_push):
            if index and self.config.rate_limit_pause > 0:
                self.sleep(self.config.rate_limit_pause)
            with self.performance.time_operation("subcontainer_push", {"subdirectory": mapping.subdirectory}):
                pushed[mapping.subdirectory] = self.ensure_ready(mapping)
            if after_push is not None:
                after_push(mapping, Repo(self.root / mapping.subdirectory))
        return pushed

    def clear_removed(self, plan: ReconciliationPlan) -> Dict[str, List[SubcontainerMapping]]:
        """
        Empty the repositories of subcontainers that no longer exist locally.

        Failures are logged; they do not fail the run.

        Returns:
            The mappings under ``cleared`` and ``failed`` keys
        """
        outcome: Dict[str, List[SubcontainerMapping]] = {"cleared": [], "failed": []}
        for index, mapping in enumerate(plan.to_clear):
            if index and self.config.rate_limit_pause > 0:
                self.sleep(self.config.rate_limit_pause)
            url = self.url_resolver(mapping.repository_name)
            with self.performance.time_operation("subcontainer_clear", {"subdirectory": mapping.subdirectory}):
                result = clear_subcontainer_repository(
                    self.parent, self.transport, url, mapping.subdirectory, self.config.branch
                )
            if result.success:
                outcome["cleared"].append(mapping)
            else:
                outcome["failed"].append(mapping)
                self.logger.warning(
                    f"Could not clear repository {mapping.repository_name} of removed "
                    f"subcontainer '{mapping.subdirectory}': {result.message}"
                )
        return outcome
