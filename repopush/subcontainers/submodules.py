"""Gitlink and submodule bookkeeping in the parent repository."""

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from git import Repo

from ..context import RunContext
from ..git_sync.utils import head_commit, run_git


def register_submodule(parent: Repo, subdirectory: str, url: str) -> None:
    """Record a subcontainer in .gitmodules and in the parent's git config."""
    section = f"submodule.{subdirectory}"
    parent.git.config("-f", ".gitmodules", f"{section}.path", subdirectory)
    parent.git.config("-f", ".gitmodules", f"{section}.url", url)
    parent.git.config(f"{section}.path", subdirectory)
    parent.git.config(f"{section}.url", url)
    parent.git.config(f"{section}.update", "checkout")

    result = run_git(parent, "submodule", "absorbgitdirs", "--", subdirectory)
    if not result.ok:
        logging.getLogger('repopush.subcontainers.submodules').debug(
            f"absorbgitdirs skipped for {subdirectory}: {result.output}"
        )


def gitdir_of(worktree: Path) -> Optional[Path]:
    """Resolve the git directory of a working tree whose .git is a gitfile."""
    gitfile = worktree / ".git"
    if not gitfile.is_file():
        return None
    content = gitfile.read_text(encoding="utf-8").strip()
    if not content.startswith("gitdir:"):
        return None
    return (worktree / content[len("gitdir:"):].strip()).resolve()


def remove_submodule_config(parent: Repo, subdirectory: str, in_use: Iterable[Path] = ()) -> None:
    """
    Forget a subcontainer: its .gitmodules and config sections and its
    absorbed git directory, unless a working tree still uses it.
    """
    logger = logging.getLogger('repopush.subcontainers.submodules')
    section = f"submodule.{subdirectory}"
    root = Path(parent.working_tree_dir)

    if (root / ".gitmodules").exists():
        run_git(parent, "config", "-f", ".gitmodules", "--remove-section", section)
    run_git(parent, "config", "--remove-section", section)

    modules_dir = (Path(parent.git_dir) / "modules" / subdirectory).resolve()
    if modules_dir.is_dir():
        if modules_dir in {Path(path).resolve() for path in in_use}:
            logger.info(f"Keeping {modules_dir} because a working tree under the root still uses it")
            return
        shutil.rmtree(modules_dir)
        logger.debug(f"Removed absorbed git directory {modules_dir}")


def stage_gitlink(parent: Repo, subdirectory: str, commit: str) -> None:
    """Replace whatever the index holds for a subdirectory with a gitlink."""
    run_git(parent, "rm", "-r", "--cached", "--ignore-unmatch", "--quiet", "--", subdirectory)
    parent.git.update_index("--add", "--cacheinfo", "160000", commit, subdirectory)


def enforce_subcontainer_gitlinks(parent: Repo, subdirectories: Iterable[str], context: RunContext) -> int:
    """
    Make every existing subcontainer a gitlink in the parent's index.

    The commit recorded when the subcontainer was pushed wins; otherwise the
    subcontainer's own HEAD is used. A subcontainer without commits stays a
    plain folder for this push.

    Returns:
        Number of gitlinks staged
    """
    logger = logging.getLogger('repopush.subcontainers.submodules')
    root = Path(parent.working_tree_dir)
    staged = 0

    for subdirectory in subdirectories:
        path = root / subdirectory
        if not path.is_dir():
            continue
        commit = context.subcontainer_commits.get(subdirectory)
        if not commit and (path / ".git").exists():
            commit = head_commit(path)
        if not commit:
            logger.warning(
                f"Subcontainer '{subdirectory}' has no commits to reference; keeping it as a normal folder in this push"
            )
            continue
        stage_gitlink(parent, subdirectory, commit)
        staged += 1

    return staged
