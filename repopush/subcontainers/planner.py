"""Planning which subdirectories are published as subcontainers."""

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from git import Repo

from ..config import Config
from ..git_sync.staging import DEFAULT_INDEX_EXCLUDES
from .naming import assign_repository_names, is_temporary
from .state import read_mapping_table, write_mapping_table
from .submodules import gitdir_of, remove_submodule_config


ALWAYS_SKIPPED = ["venv", "logs"]


@dataclass(frozen=True)
class SubcontainerMapping:
    """One subdirectory published as its own repository."""
    subdirectory: str
    repository_name: str
    private: bool = False


@dataclass
class ReconciliationPlan:
    """
    What a subcontainer run has to do.

    ``to_push`` holds every current mapping and is re-verified on every run.
    ``to_clear`` holds previous mappings whose subdirectory is gone from disk
    and whose repository name no current mapping uses. ``retired`` lists every
    previous subdirectory that leaves the table, including ones still on disk
    that are now excluded; those are forgotten but never cleared.
    """
    to_push: List[SubcontainerMapping] = field(default_factory=list)
    to_clear: List[SubcontainerMapping] = field(default_factory=list)
    retired: List[str] = field(default_factory=list)

    @property
    def table(self) -> Dict[str, str]:
        return {mapping.subdirectory: mapping.repository_name for mapping in self.to_push}


def is_excluded(name: str, excludes: List[str]) -> bool:
    """Check a subdirectory name against the skip rules."""
    if name.startswith("."):
        return True
    return any(fnmatch.fnmatch(name, pattern.rstrip("/")) for pattern in excludes)


def enumerate_subdirectories(root: Path, extra_excludes: Optional[List[str]] = None) -> List[str]:
    """List the immediate subdirectories eligible to become subcontainers, sorted."""
    excludes = ALWAYS_SKIPPED + DEFAULT_INDEX_EXCLUDES + list(extra_excludes or [])
    return sorted(
        entry.name for entry in root.iterdir()
        if entry.is_dir() and not entry.is_symlink() and not is_excluded(entry.name, excludes)
    )


def working_tree_gitdirs(root: Path) -> List[Path]:
    """Git directories referenced by a gitfile in any immediate subdirectory, excluded or not."""
    gitdirs = (gitdir_of(entry) for entry in sorted(root.iterdir()) if entry.is_dir())
    return [gitdir for gitdir in gitdirs if gitdir]


def plan_subcontainers(root: Path, config: Config, previous: Dict[str, str],
                       root_name: Optional[str] = None) -> ReconciliationPlan:
    """
    Compute the reconciliation plan from disk and the previous table.

    Args:
        root: Parent working tree
        config: Run configuration (excludes, temporary prefix)
        previous: Previous subdirectory -> repository name table
        root_name: Name of the parent repository; defaults to the folder name

    Returns:
        ReconciliationPlan with sorted, disjoint lists
    """
    root_name = root_name or root.name
    subdirectories = enumerate_subdirectories(root, config.extra_excludes)
    names = assign_repository_names(subdirectories, previous)
    root_is_temporary = is_temporary(root_name, config.private_prefix)

    to_push = [
        SubcontainerMapping(
            subdirectory=subdirectory,
            repository_name=names[subdirectory],
            private=root_is_temporary or is_temporary(subdirectory, config.private_prefix)
        )
        for subdirectory in subdirectories
    ]

    retired = sorted(subdirectory for subdirectory in previous if subdirectory not in names)
    current_names = set(names.values())
    to_clear = [
        SubcontainerMapping(subdirectory=subdirectory, repository_name=previous[subdirectory])
        for subdirectory in retired
        if previous[subdirectory] not in current_names and not (root / subdirectory).exists()
    ]

    return ReconciliationPlan(to_push=to_push, to_clear=to_clear, retired=retired)


class SubcontainerPlanner:
    """
    Plans a subcontainer run and records its outcome.

    ``prepare`` only reads. ``persist`` runs once the subcontainers are
    pushed, so a run that stops earlier leaves the table untouched and the
    next run plans the same clears again. Clears recorded by ``persist`` stay
    pending in the parent's git directory until ``resolve_pending`` confirms
    them.
    """

    PENDING_CLEARS_FILE = "repopush-pending-clears"

    def __init__(self, config: Config):
        self.config = config
        self.logger = logging.getLogger('repopush.subcontainers.planner')

    def _state_path(self, parent: Repo) -> Path:
        return Path(parent.working_tree_dir) / self.config.state_file

    def _pending_path(self, parent: Repo) -> Path:
        return Path(parent.git_dir) / self.PENDING_CLEARS_FILE

    def prepare(self, parent: Repo, root_name: Optional[str] = None) -> ReconciliationPlan:
        """Plan a subcontainer run for the parent repository."""
        root = Path(parent.working_tree_dir)
        previous = read_mapping_table(self._pending_path(parent))
        previous.update(read_mapping_table(self._state_path(parent)))
        plan = plan_subcontainers(root, self.config, previous, root_name)

        self.logger.info(
            f"Subcontainer plan: {len(plan.to_push)} to push, {len(plan.to_clear)} to clear"
        )
        clearing = {mapping.subdirectory for mapping in plan.to_clear}
        for mapping in plan.to_clear:
            self.logger.info(f"Subcontainer '{mapping.subdirectory}' was removed locally; "
                             f"its repository {mapping.repository_name} will be emptied")
        for subdirectory in plan.retired:
            if subdirectory not in clearing and (root / subdirectory).exists():
                self.logger.info(f"Subcontainer '{subdirectory}' is excluded now; "
                                 f"it is no longer published and its repository is left as is")
        return plan

    def persist(self, parent: Repo, plan: ReconciliationPlan) -> None:
        """
        Write the new table, forget retired subcontainers and record the
        clears still to do.

        An absorbed git directory is kept while any working tree under the
        root still points at it.
        """
        in_use = working_tree_gitdirs(Path(parent.working_tree_dir))
        for subdirectory in plan.retired:
            remove_submodule_config(parent, subdirectory, in_use)

        write_mapping_table(self._state_path(parent), plan.table)
        self._write_pending(parent, {m.subdirectory: m.repository_name for m in plan.to_clear})

    def resolve_pending(self, parent: Repo, cleared: List[SubcontainerMapping]) -> None:
        """Drop confirmed clears; the rest are retried by the next run."""
        pending = read_mapping_table(self._pending_path(parent))
        for mapping in cleared:
            pending.pop(mapping.subdirectory, None)
        self._write_pending(parent, pending)

    def _write_pending(self, parent: Repo, pending: Dict[str, str]) -> None:
        path = self._pending_path(parent)
        if pending:
            write_mapping_table(path, pending)
        elif path.exists():
            path.unlink()
