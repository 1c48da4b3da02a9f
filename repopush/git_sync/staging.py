"""Index hygiene: what may and may not be staged for publishing."""

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from git import Repo

from .utils import run_git


DEFAULT_INDEX_EXCLUDES = [
    "node_modules",
    ".eslintcache",
    "__pycache__",
    "pycache",
    "cache",
    "dist",
    "build",
    "gcp-oauth.keys.json",
    "gemini-gcloud-key.json",
    "meus_arquivos_mcp",
    "go/",
    "env.sh",
    ".gemini",
    "venv",
    "logs",
    ".aider*",
    ".cursor*",
]

SENSITIVE_PATHS = [
    "GITHUB_TOKEN",
    "GITHUB_TOKEN.txt",
    "AMO_API_KEY",
    "AMO_API_KEY.txt",
    "AMO_API_SECRET",
    "AMO_API_SECRET.txt",
    "gcp-oauth.keys.json",
    "gemini-gcloud-key.json",
    ".env",
    "*.env",
    ".env.*",
]

SENSITIVE_FILE_PATTERNS = [
    "*key.json",
    "*credential*.json",
    "client_secret*.json",
    "*.pem",
    "*.p12",
    "id_rsa",
    "id_dsa",
    "*.keystore",
    "*.jks",
]

CANONICAL_IGNORE_ENTRIES = [
    ".env",
    "*.env.local",
    "*.env.development",
    "*.env.production",
    "__pycache__/",
    "pycache",
    ".gemini",
    "GITHUB_TOKEN",
    "GITHUB_TOKEN.txt",
    "AMO_API_KEY.txt",
    "AMO_API_SECRET.txt",
    "gemini-gcloud-key.json",
    "gcp-oauth.keys.json",
    "*API*",
    ".eslintcache/",
    "node_modules/",
    "dist/",
    "build/",
    "*.zip",
]

SYSTEM_JUNK = ["__pycache__", ".DS_Store", "Thumbs.db"]

WORKFLOWS_DIR = ".github/workflows"

BACKUP_MARKER = ".local-backup-"

SENSITIVE_SCAN_DEPTH = 4


def append_ignore_entries(gitignore: Path, entries: Iterable[str]) -> List[str]:
    """
    Append entries missing from a .gitignore file, one per line.

    Args:
        gitignore: Path of the .gitignore file (created if absent)
        entries: Entries to ensure, compared as exact lines

    Returns:
        Entries that were added
    """
    existing_text = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    existing = set(existing_text.splitlines())
    added = [entry for entry in dict.fromkeys(entries) if entry not in existing]
    if not added:
        return []

    prefix = "\n" if existing_text and not existing_text.endswith("\n") else ""
    with open(gitignore, "a", encoding="utf-8") as handle:
        handle.write(prefix + "\n".join(added) + "\n")
    return added


def ensure_canonical_gitignore(worktree: Path) -> List[str]:
    """Make sure the canonical secret and build-output entries are ignored."""
    return append_ignore_entries(worktree / ".gitignore", CANONICAL_IGNORE_ENTRIES)


def remove_paths_from_index(repo: Repo, paths: Iterable[str]) -> None:
    """Unstage paths (recursively) without touching the working tree."""
    for path in paths:
        if path:
            run_git(repo, "rm", "-r", "-f", "--cached", "--ignore-unmatch", "--quiet", "--", path)


def _walk_files(worktree: Path, max_depth: int) -> Iterable[Path]:
    base_depth = len(worktree.parts)
    for dirpath, dirnames, filenames in os.walk(worktree):
        current = Path(dirpath)
        depth = len(current.parts) - base_depth
        dirnames[:] = [name for name in dirnames if name not in (".git", "node_modules")]
        if depth + 1 >= max_depth:
            dirnames[:] = []
        for filename in filenames:
            yield current / filename


class IndexHygiene:
    """
    Stages a working tree for publishing while keeping secrets, build output
    and backup artifacts out of the index.
    """

    def __init__(self, repo: Repo, extra_excludes: Optional[List[str]] = None):
        self.repo = repo
        self.worktree = Path(repo.working_tree_dir)
        self.excludes = DEFAULT_INDEX_EXCLUDES + list(extra_excludes or [])
        self.logger = logging.getLogger('repopush.git_sync.staging')

    def stage_all(self) -> None:
        """
        Stage every change of the working tree except excluded and sensitive
        paths.
        """
        added = ensure_canonical_gitignore(self.worktree)
        if added:
            self.logger.debug(f"Added to .gitignore in {self.worktree}: {', '.join(added)}")

        self.auto_ignore_problematic_files()
        remove_paths_from_index(self.repo, self.excludes)
        self.repo.git.add("--all")
        remove_paths_from_index(self.repo, self.excludes)
        self.purge_sensitive_paths()
        self.unstage_backup_artifacts()

    def auto_ignore_problematic_files(self) -> List[str]:
        """
        Ignore and unstage files GitHub would reject or that look like secrets.

        Returns:
            Entries appended to .gitignore
        """
        gitignore = self.worktree / ".gitignore"
        added: List[str] = []

        if (self.worktree / WORKFLOWS_DIR).is_dir():
            current = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
            if not any(line.startswith(f"{WORKFLOWS_DIR}/") for line in current.splitlines()):
                added += append_ignore_entries(gitignore, [f"{WORKFLOWS_DIR}/"])
                self.logger.info(f"Ignored {WORKFLOWS_DIR}/ to avoid workflow-scope push rejections")
            remove_paths_from_index(self.repo, [f"{WORKFLOWS_DIR}/"])

        files = list(_walk_files(self.worktree, SENSITIVE_SCAN_DEPTH))
        for pattern in SENSITIVE_FILE_PATTERNS:
            matches = [path for path in files if fnmatch.fnmatch(path.name, pattern)]
            if not matches:
                continue
            new_entries = append_ignore_entries(gitignore, [pattern])
            if new_entries:
                self.logger.info(f"Ignored sensitive pattern '{pattern}' found in {self.worktree}")
                added += new_entries
            remove_paths_from_index(
                self.repo, [path.relative_to(self.worktree).as_posix() for path in matches]
            )

        for item in self.excludes + SYSTEM_JUNK:
            for target in sorted(self.worktree.glob(item.rstrip("/"))):
                name = target.relative_to(self.worktree).as_posix()
                current = gitignore.read_text(encoding="utf-8").splitlines() if gitignore.exists() else []
                if name in current or f"{name}/" in current:
                    remove_paths_from_index(self.repo, [name])
                    continue
                entry = f"{name}/" if target.is_dir() else name
                added += append_ignore_entries(gitignore, [entry])
                self.logger.info(f"Ignored excluded item '{name}'")
                remove_paths_from_index(self.repo, [name])

        return added

    def purge_sensitive_paths(self) -> None:
        """Unstage secret files anywhere in the tree."""
        remove_paths_from_index(self.repo, [f":(glob)**/{pattern}" for pattern in SENSITIVE_PATHS])

    def unstage_backup_artifacts(self) -> List[Path]:
        """
        Keep safety-net backup files out of the index.

        Backups of the current run are restored when it ends; backups left by
        an interrupted earlier run are reported and left on disk.

        Returns:
            Backup files found in the working tree
        """
        remove_paths_from_index(self.repo, [f":(glob)**/*{BACKUP_MARKER}*"])
        found = find_backup_artifacts(self.worktree)
        if found:
            self.logger.debug(f"Kept {len(found)} backup file(s) out of the index in {self.worktree}")
        return found


def find_backup_artifacts(worktree: Path) -> List[Path]:
    """List every safety-net backup file in a working tree."""
    found = []
    for dirpath, dirnames, filenames in os.walk(worktree):
        dirnames[:] = [name for name in dirnames if name != ".git"]
        for name in filenames + dirnames:
            if BACKUP_MARKER in name:
                found.append(Path(dirpath) / name)
    return sorted(found)


def report_stale_backups(worktree: Path, pending: Iterable[Path]) -> List[Path]:
    """
    Warn about backup files that no running safety net is going to restore.

    Args:
        worktree: Working tree to scan
        pending: Backup paths the current run still owns

    Returns:
        The stale backup paths
    """
    pending_resolved = {Path(path).resolve() for path in pending}
    stale = [path for path in find_backup_artifacts(worktree) if path.resolve() not in pending_resolved]
    if stale:
        logging.getLogger('repopush.git_sync.staging').warning(
            "Found local backups from an interrupted run; restore them manually if needed: "
            + ", ".join(str(path.relative_to(worktree)) for path in stale)
        )
    return stale
