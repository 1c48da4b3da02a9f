"""Remote endpoint utilities for Git synchronization."""

import logging
from dataclasses import dataclass

from git import Repo


@dataclass(frozen=True)
class RemoteEndpoint:
    """Where a repository lives on the hosting service."""
    host: str
    owner: str
    name: str
    protocol: str = "https"

    @property
    def url(self) -> str:
        if self.protocol == "ssh":
            return f"git@{self.host}:{self.owner}/{self.name}.git"
        return f"https://{self.host}/{self.owner}/{self.name}.git"


def ensure_remote(repo: Repo, url: str, name: str = "origin") -> bool:
    """
    Make sure the named remote exists and points at the given URL.

    Args:
        repo: Repository to configure
        url: Expected remote URL
        name: Remote name

    Returns:
        True when the remote was added or corrected
    """
    logger = logging.getLogger('repopush.git_sync.remote_utils')

    names = [remote.name for remote in repo.remotes]
    if name not in names:
        repo.create_remote(name, url)
        logger.info(f"Added remote '{name}' -> {url}")
        return True

    remote = repo.remote(name)
    if remote.url != url:
        remote.set_url(url)
        logger.info(f"Updated remote '{name}' -> {url}")
        return True

    return False
