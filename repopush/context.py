"""
Per-run state for a publishing run.

A RunContext owns everything that must outlive a single git call: the list of
untracked files moved aside by the safety net and the commits recorded for
each subcontainer. Cleanup runs exactly once, on normal return, on an
exception, at interpreter exit or when SIGINT/SIGTERM arrives.
"""

import atexit
import logging
import shutil
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional


HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass(frozen=True)
class BackupRecord:
    """An untracked file moved aside before a destructive git operation."""
    original: Path
    backup: Path


class RunContext:
    """Explicit owner of mutable run state and its guaranteed cleanup."""

    def __init__(self, name: str = "run"):
        self.name = name
        self.logger = logging.getLogger('repopush.context')
        self.subcontainer_commits: Dict[str, str] = {}
        self._backups: List[BackupRecord] = []
        self._cleaned_up = False
        self._lock = threading.Lock()
        self._previous_handlers: Dict[int, object] = {}
        self._handlers_installed = False

    # Backups

    def register_backup(self, record: BackupRecord) -> None:
        self._backups.append(record)

    @property
    def pending_backups(self) -> List[BackupRecord]:
        return list(self._backups)

    def restore_backups(self) -> List[Path]:
        """
        Move every pending backup back to its original location.

        Whatever git wrote at the original path is replaced. A backup that
        cannot be moved back stays on disk for manual recovery.

        Returns:
            Original paths that were restored
        """
        restored = []
        records, self._backups = self._backups, []

        for record in records:
            if not record.backup.exists() and not record.backup.is_symlink():
                self.logger.warning(f"Backup {record.backup} disappeared; cannot restore {record.original}")
                continue
            try:
                _remove_path(record.original)
                shutil.move(str(record.backup), str(record.original))
            except OSError as e:
                self.logger.error(
                    f"Failed to restore {record.original} from {record.backup}: {e}. "
                    f"The backup was left in place."
                )
                continue
            self.logger.info(f"Restored local version: {record.original}")
            restored.append(record.original)

        return restored

    # Subcontainer commits

    def record_subcontainer_commit(self, subdirectory: str, commit: Optional[str]) -> None:
        if commit:
            self.subcontainer_commits[subdirectory] = commit
        else:
            self.subcontainer_commits.pop(subdirectory, None)

    # Cleanup

    @property
    def cleaned_up(self) -> bool:
        return self._cleaned_up

    def cleanup(self) -> None:
        """Drain all pending state. Safe to call from any exit path; runs once."""
        with self._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True

        if self._backups:
            self.logger.debug(f"Restoring {len(self._backups)} backup(s) for {self.name}")
        self.restore_backups()

    def install_handlers(self) -> None:
        """Bind cleanup to interpreter exit and to SIGINT/SIGTERM."""
        if self._handlers_installed:
            return
        atexit.register(self.cleanup)
        if threading.current_thread() is threading.main_thread():
            for signum in HANDLED_SIGNALS:
                self._previous_handlers[signum] = signal.getsignal(signum)
                signal.signal(signum, self._handle_signal)
        self._handlers_installed = True

    def uninstall_handlers(self) -> None:
        if not self._handlers_installed:
            return
        atexit.unregister(self.cleanup)
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
        self._handlers_installed = False

    def _handle_signal(self, signum, frame) -> None:
        self.logger.warning(f"Received signal {signum}; restoring local files before exiting")
        self.cleanup()

        previous = self._previous_handlers.get(signum)
        if callable(previous):
            previous(signum, frame)
            return
        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        raise SystemExit(128 + signum)

    def __enter__(self) -> "RunContext":
        self.install_handlers()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        try:
            self.cleanup()
        finally:
            self.uninstall_handlers()
        return False

    def child(self, name: str) -> "RunContext":
        """Create an independent context for a nested run."""
        return RunContext(name=name)


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
