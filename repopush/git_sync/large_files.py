"""Promotion of oversized files to Git LFS."""

import logging
from pathlib import Path
from typing import Iterable, List

from git import Repo

from ..platform import is_git_lfs_available
from .repository import has_staged_changes
from .utils import head_commit, run_git


class LargeFilePromoter:
    """
    Moves files into Git LFS storage.

    Used in two places: before committing, for staged files over the size
    threshold, and after a push the host rejected because of file size.
    """

    def __init__(self, lfs_threshold_bytes: int):
        self.lfs_threshold_bytes = lfs_threshold_bytes
        self.logger = logging.getLogger('repopush.git_sync.large_files')

    def is_lfs_tracked(self, repo: Repo, path: str) -> bool:
        result = run_git(repo, "check-attr", "filter", "--", path)
        return result.ok and result.stdout.strip().endswith("filter: lfs")

    def _enable_lfs(self, repo: Repo) -> bool:
        if not is_git_lfs_available():
            self.logger.error("git-lfs is not installed; cannot move large files to LFS storage")
            return False
        result = run_git(repo, "lfs", "install", "--local")
        if not result.ok:
            self.logger.error(f"git lfs install failed: {result.output}")
            return False
        return True

    def _track_and_stage(self, repo: Repo, paths: List[str]) -> None:
        for path in paths:
            if not self.is_lfs_tracked(repo, path):
                run_git(repo, "lfs", "track", "--", path)

        run_git(repo, "add", "--", ".gitattributes")
        # Re-adding through the index forces the LFS clean filter on files
        # git already had as regular blobs.
        run_git(repo, "rm", "--cached", "--quiet", "--ignore-unmatch", "--", *paths)
        run_git(repo, "add", "--", *paths)

    def promote(self, repo: Repo, paths: Iterable[str]) -> bool:
        """
        Track paths with LFS and amend the last commit in place.

        Args:
            repo: Repository whose last push was rejected
            paths: Paths named by the rejection

        Returns:
            True when HEAD was amended and a retry makes sense; False when
            there was nothing to amend
        """
        unique = list(dict.fromkeys(path for path in paths if path))
        if not unique:
            return False

        if not self._enable_lfs(repo):
            return False

        self._track_and_stage(repo, unique)

        if head_commit(repo) is None or not has_staged_changes(repo):
            self.logger.warning("Large-file promotion produced no changes; not amending")
            return False

        result = run_git(repo, "commit", "--amend", "--no-edit")
        if not result.ok:
            self.logger.error(f"Failed to amend commit with LFS pointers: {result.output}")
            return False

        self.logger.info(f"Moved to Git LFS and amended last commit: {', '.join(unique)}")
        return True

    def route_large_staged_files(self, repo: Repo) -> List[str]:
        """
        Send staged files at or above the size threshold through LFS.

        Returns:
            Paths that were newly routed through LFS
        """
        worktree = Path(repo.working_tree_dir)
        staged = run_git(repo, "diff", "--cached", "--name-only", "--diff-filter=AM", "-z")
        if not staged.ok:
            return []

        to_track = []
        for path in staged.stdout.split("\0"):
            if not path:
                continue
            full = worktree / path
            if not full.is_file() or full.stat().st_size < self.lfs_threshold_bytes:
                continue
            if self.is_lfs_tracked(repo, path):
                continue
            to_track.append(path)

        if not to_track:
            return []

        if not self._enable_lfs(repo):
            self.logger.warning(f"Large files will be pushed without LFS: {', '.join(to_track)}")
            return []

        self._track_and_stage(repo, to_track)
        self.logger.info(f"Large files routed through Git LFS in {worktree}: {', '.join(to_track)}")
        return to_track
