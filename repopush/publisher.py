"""
Top-level publishing driver.

A Publisher runs one action against one directory: it prepares the root
repository, gates the push on the sync decision, publishes subcontainers
when asked to, pushes the root and finally clears subcontainers that were
removed locally.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from git import GitCommandError, Repo

from .config import Config
from .context import RunContext
from .errors import ConfigurationError, PublishError, PushError
from .git_sync.branch_utils import ensure_main_branch
from .git_sync.performance_logger import PerformanceLogger
from .git_sync.remote_utils import RemoteEndpoint, ensure_remote
from .git_sync.repository import commit_staged, ensure_identity, open_or_init_repository
from .git_sync.staging import IndexHygiene, report_stale_backups
from .git_sync.sync_decision import SyncDecisionEngine
from .git_sync.transport import CredentialedTransport
from .git_sync.utils import run_git
from .provisioning import GitHubProvisioner
from .releases import ReleasePublisher
from .subcontainers import (
    ReconciliationPlan, SubcontainerPlanner, SubcontainerReconciler, enforce_subcontainer_gitlinks
)
from .subcontainers.naming import is_temporary


ACTIONS = (
    "push",
    "push-subfolders",
    "push-subfolders-releases",
    "push-recursive",
    "push-firefox-amo-github",
)

UNSUPPORTED_ACTIONS = {
    "reauth": "Interactive re-authentication is not provided; set GITHUB_TOKEN or write a GITHUB_TOKEN file instead.",
    "sync-scripts": "There are no per-directory scripts to synchronize; install repopush once and run it anywhere.",
}

Submitter = Callable[[Path], None]


def validate_action(action: str) -> None:
    """Reject unknown actions and the ones that are deliberately not provided."""
    if action in UNSUPPORTED_ACTIONS:
        raise ConfigurationError(f"Action '{action}' is not supported. {UNSUPPORTED_ACTIONS[action]}")
    if action not in ACTIONS:
        raise ConfigurationError(f"Unknown action '{action}'. Expected one of: {', '.join(ACTIONS)}")


@dataclass
class RecursiveSummary:
    """Tallies of a push-recursive run."""
    processed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


def classify_child(path: Path) -> Optional[str]:
    """
    Pick the action push-recursive runs for a child directory.

    Returns:
        An action name, or None for directories that are not managed
    """
    name = path.name
    if name.startswith("releases"):
        return "push-subfolders-releases"
    if name.startswith("codex"):
        return "push-subfolders"
    if any(entry.is_file() for entry in path.glob("*.xpi")):
        return "push-firefox-amo-github"
    if (path / ".git").exists():
        return "push"
    return None


class Publisher:
    """Runs a publishing action for one directory."""

    def __init__(
        self,
        config: Config,
        root: Path,
        context: RunContext,
        transport: CredentialedTransport,
        provisioner: Optional[GitHubProvisioner] = None,
        url_resolver: Optional[Callable[[str], str]] = None,
        release_publisher: Optional[ReleasePublisher] = None,
        submitter: Optional[Submitter] = None,
        performance: Optional[PerformanceLogger] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config
        self.root = Path(root).resolve()
        self.context = context
        self.transport = transport
        self.provisioner = provisioner
        self.url_resolver = url_resolver or self._endpoint_url
        self.release_publisher = release_publisher
        self.submitter = submitter
        self.performance = performance or PerformanceLogger()
        self.sleep = sleep
        self.logger = logging.getLogger('repopush.publisher')

    def _endpoint_url(self, name: str) -> str:
        credentials = self.transport.credentials
        owner = credentials.username if credentials is not None else self.config.github_owner
        if not owner:
            raise ConfigurationError("Cannot build remote URLs without a GitHub account; set GITHUB_OWNER")
        return RemoteEndpoint(self.config.github_host, owner, name, self.config.protocol).url

    @property
    def repository_name(self) -> str:
        return self.root.name

    def run(self, action: str = "push") -> Optional[RecursiveSummary]:
        """
        Run one action.

        Raises:
            ConfigurationError: For unknown or unsupported actions
            PublishError: For any unrecovered failure of the action
        """
        validate_action(action)
        self.logger.info(f"Running '{action}' in {self.root}")
        try:
            if action == "push":
                self.push()
            elif action == "push-subfolders":
                self.push_subfolders()
            elif action == "push-subfolders-releases":
                self.push_subfolders(with_releases=True)
            elif action == "push-firefox-amo-github":
                self.push_firefox_amo()
            else:
                return self.push_recursive()
            return None
        finally:
            self.performance.log_performance_summary()

    # Actions

    def push(self) -> None:
        """Publish the directory as a single repository."""
        repo, url = self._prepare_root()
        self._sync(repo)
        self._publish_root(repo, url)

    def push_subfolders(self, with_releases: bool = False) -> None:
        """Publish every immediate subdirectory as a subcontainer, then the root."""
        repo = self._open_root()
        planner = SubcontainerPlanner(self.config)
        plan = planner.prepare(repo, self.repository_name)
        url = self._provision_root(repo)
        self._sync(repo)

        reconciler = SubcontainerReconciler(
            self.config, self.context, self.transport, repo, self.url_resolver,
            provisioner=self.provisioner, performance=self.performance, sleep=self.sleep
        )
        after_push = None
        if with_releases:
            if self.release_publisher is None:
                self.logger.warning("No GitHub client available for releases; publishing without them")
            else:
                after_push = self._publish_release

        with self.performance.time_operation("subcontainers", {"count": len(plan.to_push)}, log_level=logging.INFO):
            reconciler.ensure_all(plan, after_push=after_push)

        planner.persist(repo, plan)
        self._publish_root(repo, url, plan)

        if plan.to_clear:
            with self.performance.time_operation("clear_removed", {"count": len(plan.to_clear)}):
                outcome = reconciler.clear_removed(plan)
            planner.resolve_pending(repo, outcome["cleared"])
            if outcome["failed"]:
                self.logger.warning(
                    f"{len(outcome['failed'])} removed subcontainer(s) could not be cleared and "
                    f"will be retried on the next run; {len(outcome['cleared'])} cleared"
                )

    def push_firefox_amo(self) -> None:
        """Submit the extension to the store (best-effort), then push."""
        if self.submitter is None:
            self.logger.warning("No extension store submitter configured; skipping submission")
        else:
            try:
                self.submitter(self.root)
            except Exception as e:
                self.logger.warning(f"Extension store submission failed; continuing with the push: {e}")
        self.push()

    def push_recursive(self) -> RecursiveSummary:
        """
        Run the matching action in every immediate child directory.

        Children run in sorted order, each with its own run context. A child
        failure is recorded and the next child still runs.
        """
        summary = RecursiveSummary()
        children = sorted(
            entry for entry in self.root.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        )
        self.logger.info("Starting recursive push for all known types")

        first = True
        for child in children:
            action = classify_child(child)
            if action is None:
                summary.ignored.append(f"{child.name} (not a managed repo)")
                continue

            if not first and self.config.rate_limit_pause > 0:
                self.sleep(self.config.rate_limit_pause)
            first = False

            label = f"{child.name} ({action})"
            self.logger.info(f"Recursive processing: '{child.name}' (action: {action})")
            try:
                with self.context.child(child.name) as child_context:
                    self._for_child(child, child_context).run(action)
            except (PublishError, GitCommandError, OSError) as e:
                self.logger.error(f"Recursive push of '{child.name}' failed: {e}")
                summary.failed.append(label)
                continue
            summary.processed.append(label)

        self._log_recursive_summary(summary)
        return summary

    # Stages

    def _for_child(self, path: Path, context: RunContext) -> "Publisher":
        transport = CredentialedTransport(self.config, context, self.transport.credentials)
        return Publisher(
            self.config, path, context, transport,
            provisioner=self.provisioner,
            url_resolver=self.url_resolver,
            release_publisher=self.release_publisher,
            submitter=self.submitter,
            performance=self.performance,
            sleep=self.sleep
        )

    def _open_root(self) -> Repo:
        repo = open_or_init_repository(self.root)
        ensure_identity(repo)
        ensure_main_branch(repo, self.config.branch)
        return repo

    def _provision_root(self, repo: Repo) -> str:
        name = self.repository_name
        if self.provisioner is not None:
            self.provisioner.ensure_exists(name, is_temporary(name, self.config.private_prefix))
        url = self.url_resolver(name)
        ensure_remote(repo, url)
        return url

    def _prepare_root(self) -> Tuple[Repo, str]:
        repo = self._open_root()
        return repo, self._provision_root(repo)

    def _sync(self, repo: Repo) -> None:
        with self.performance.time_operation("sync"):
            SyncDecisionEngine(self.config, self.transport).sync(repo, self.config.branch)

    def _ensure_submodules_populated(self, repo: Repo) -> None:
        if not (self.root / ".gitmodules").is_file():
            return
        if not run_git(repo, "config", "-f", ".gitmodules", "--get-regexp", r"^submodule\.").ok:
            return
        result = self.transport.run(repo, "submodule", "update", "--init", "--recursive", operation="submodule_update")
        if not result.ok:
            self.logger.warning(
                "Failed to populate existing submodules automatically. Run "
                "'git submodule update --init --recursive' and retry if issues persist."
            )

    def _publish_root(self, repo: Repo, url: str, plan: Optional[ReconciliationPlan] = None) -> None:
        """
        Stage, commit and push the root repository.

        Raises:
            PushError: When the commit or the push fails
        """
        report_stale_backups(self.root, [record.backup for record in self.context.pending_backups])
        if plan is None:
            self._ensure_submodules_populated(repo)

        IndexHygiene(repo, self.config.extra_excludes).stage_all()
        if plan is not None:
            enforce_subcontainer_gitlinks(repo, [m.subdirectory for m in plan.to_push], self.context)
        routed = self.transport.promoter.route_large_staged_files(repo)
        if routed:
            self.logger.info(f"Large files routed through Git LFS: {', '.join(routed)}")

        committed = commit_staged(repo, "push")
        if committed.success:
            self.logger.info("Commit created.")
        elif committed.error_code == "NOTHING_TO_COMMIT":
            self.logger.info("No changes to commit.")
        else:
            raise PushError(committed.message, committed.error_code, committed.output)

        with self.performance.time_operation("push", {"url": url}, log_level=logging.INFO):
            result = self.transport.push(repo, self.config.branch)
        if not result.ok:
            raise PushError(
                f"Push failed. {self.transport.describe(result, repository=self.repository_name)}",
                error_code=result.category.value.upper(),
                output=result.output
            )

        print(f"Push completed successfully: {url}")

    def _publish_release(self, mapping, sub_repo: Repo) -> None:
        self.release_publisher.publish(sub_repo, mapping.repository_name)

    def _log_recursive_summary(self, summary: RecursiveSummary) -> None:
        lines = ["push-recursive summary:"]
        for title, entries in (("processed", summary.processed),
                               ("failures", summary.failed),
                               ("ignored", summary.ignored)):
            lines.append(f"  {title}:")
            lines.extend(f"    - {entry}" for entry in entries or ["(none)"])
        self.logger.info("\n".join(lines))
