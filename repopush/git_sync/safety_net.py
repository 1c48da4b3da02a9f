"""
Untracked-file safety net.

When git refuses to check out because untracked files would be overwritten,
those files are moved aside to uniquely named backups so the operation can
proceed. Every backup is registered with the RunContext, which moves it back
when the run ends, whichever way it ends. A hard kill leaves the backup on
disk next to the original path.
"""

import logging
import random
import shutil
import time
from pathlib import Path
from typing import Iterable, List

from ..context import BackupRecord, RunContext
from .staging import BACKUP_MARKER


class UntrackedFileSafetyNet:
    """Backs up untracked files that a git operation is about to destroy."""

    def __init__(self, context: RunContext):
        self.context = context
        self.logger = logging.getLogger('repopush.git_sync.safety_net')

    @staticmethod
    def backup_path_for(original: Path, timestamp: int) -> Path:
        """
        Choose a backup path that is not taken yet.

        Args:
            original: File about to be moved aside
            timestamp: Unix timestamp shared by one protect() call

        Returns:
            ``<original>.local-backup-<timestamp>``, with ``-<random>``
            appended until unused
        """
        candidate = original.with_name(f"{original.name}{BACKUP_MARKER}{timestamp}")
        while candidate.exists() or candidate.is_symlink():
            candidate = candidate.with_name(f"{candidate.name}-{random.randint(0, 32767)}")
        return candidate

    def protect(self, worktree: Path, paths: Iterable[str]) -> List[BackupRecord]:
        """
        Move the given paths aside and register them for restoration.

        Args:
            worktree: Working tree the paths are relative to
            paths: Relative paths reported by git

        Returns:
            BackupRecord for every path that existed
        """
        timestamp = int(time.time())
        records = []

        for relative in paths:
            original = worktree / relative
            if not original.exists() and not original.is_symlink():
                self.logger.debug(f"Skipping missing path {relative}")
                continue

            backup = self.backup_path_for(original, timestamp)
            if original.is_dir() and not original.is_symlink():
                shutil.copytree(original, backup, symlinks=True)
                shutil.rmtree(original)
            else:
                shutil.copy2(original, backup, follow_symlinks=False)
                original.unlink()

            record = BackupRecord(original=original, backup=backup)
            self.context.register_backup(record)
            records.append(record)
            self.logger.warning(
                f"Local file '{relative}' was temporarily saved as '{backup.name}' to let git continue"
            )

        return records

    def restore(self) -> List[Path]:
        """Restore every backup registered in the run context."""
        return self.context.restore_backups()
