"""GitHub credential discovery."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from .errors import CredentialError


TOKEN_ENV = "GITHUB_TOKEN"
TOKEN_FILE_NAMES = ("GITHUB_TOKEN", "GITHUB_TOKEN.txt")


def token_search_paths(start: Path) -> List[Path]:
    """List every location checked for a token file, nearest first."""
    current = Path(start).resolve()
    return [directory / name for directory in [current, *current.parents] for name in TOKEN_FILE_NAMES]


@dataclass(frozen=True)
class Credentials:
    """A bearer token and the account it belongs to."""
    token: str
    username: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, token=***)"


def find_token_file(start: Path) -> Optional[Path]:
    """
    Find the nearest token file walking up from a directory.

    Args:
        start: Directory to start searching from

    Returns:
        Path to the first GITHUB_TOKEN or GITHUB_TOKEN.txt found, or None
    """
    for candidate in token_search_paths(start):
        if candidate.is_file():
            return candidate
    return None


def read_first_line(path: Path) -> str:
    """Read the first line of a secret file, without BOM or surrounding whitespace."""
    with open(path, "r", encoding="utf-8-sig") as handle:
        return handle.readline().strip()


class CredentialProvider:
    """
    Supplies the GitHub token and account name for a run.

    The token comes from the GITHUB_TOKEN environment variable, or else from
    the nearest GITHUB_TOKEN / GITHUB_TOKEN.txt file. The account name comes
    from configuration, or is asked from the API once and cached.
    """

    def __init__(self, start_dir: Path, owner: Optional[str] = None,
                 owner_lookup: Optional[Callable[[str], str]] = None):
        self.start_dir = Path(start_dir)
        self.owner = owner
        self.owner_lookup = owner_lookup
        self.logger = logging.getLogger('repopush.credentials')
        self._credentials: Optional[Credentials] = None

    def token(self) -> str:
        token = os.getenv(TOKEN_ENV, "").strip()
        if token:
            return token

        token_file = find_token_file(self.start_dir)
        if token_file is not None:
            token = read_first_line(token_file)
            if token:
                self.logger.debug(f"Using GitHub token from {token_file}")
                return token

        raise CredentialError(
            "No GitHub token found. Set GITHUB_TOKEN or create a GITHUB_TOKEN file "
            f"in {self.start_dir} or one of its parents."
        )

    def get(self) -> Credentials:
        """Resolve credentials once per provider."""
        if self._credentials is not None:
            return self._credentials

        token = self.token()
        username = self.owner
        if not username and self.owner_lookup is not None:
            username = self.owner_lookup(token)
        if not username:
            raise CredentialError("Cannot determine the GitHub account; set GITHUB_OWNER")

        self._credentials = Credentials(token=token, username=username)
        return self._credentials

