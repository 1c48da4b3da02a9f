"""Remote repository provisioning through the GitHub REST API.

Before anything is pushed, the target repository must exist on GitHub. The
provisioner checks ``GET /repos/{owner}/{name}`` and creates the repository
with ``POST /user/repos`` when it is missing. "Already exists" answers are
treated as success so provisioning is idempotent.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import CredentialError, ProvisioningError


GITHUB_ACCEPT = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"


class GitHubClient:
    """Thin authenticated wrapper around an httpx client for the GitHub API."""

    def __init__(self, token: str, api_url: str = "https://api.github.com",
                 timeout: float = 30.0, client: Optional[httpx.Client] = None):
        self.api_url = api_url.rstrip("/")
        self.logger = logging.getLogger('repopush.provisioning')
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": GITHUB_ACCEPT,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "repopush",
        }

    def request(self, method: str, path_or_url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request to the API.

        Args:
            method: HTTP method
            path_or_url: API path (``/repos/...``) or absolute URL
            **kwargs: Passed through to httpx

        Returns:
            The httpx response, whatever its status

        Raises:
            ProvisioningError: On transport failures (DNS, TLS, timeouts)
        """
        url = path_or_url if path_or_url.startswith("http") else f"{self.api_url}{path_or_url}"
        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", {}) or {})
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProvisioningError(f"GitHub API request failed: {method} {url}: {e}") from e

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def authenticated_login(self) -> str:
        """Return the login of the account that owns the token."""
        response = self.get("/user")
        if response.status_code != 200:
            raise CredentialError(
                f"GitHub rejected the token (HTTP {response.status_code}); cannot resolve the account name"
            )
        return response.json()["login"]

    def close(self) -> None:
        self._client.close()


def _error_message(response: httpx.Response) -> str:
    try:
        data: Dict[str, Any] = response.json()
    except ValueError:
        return response.text
    message = data.get("message", "")
    details = [error.get("message", "") for error in data.get("errors", []) if isinstance(error, dict)]
    return " ".join(part for part in [message, *details] if part)


class GitHubProvisioner:
    """Guarantees that a repository exists on GitHub before it is pushed."""

    def __init__(self, client: GitHubClient, owner: str):
        self.client = client
        self.owner = owner
        self.logger = logging.getLogger('repopush.provisioning')

    def exists(self, name: str) -> bool:
        response = self.client.get(f"/repos/{self.owner}/{name}")
        return response.status_code == 200

    def ensure_exists(self, name: str, private: bool) -> bool:
        """
        Create the repository unless it already exists.

        Args:
            name: Repository name under the configured owner
            private: Visibility used when the repository has to be created

        Returns:
            True when the repository was created by this call

        Raises:
            ProvisioningError: When GitHub refuses to create the repository
        """
        if self.exists(name):
            self.logger.debug(f"Remote repository {self.owner}/{name} already exists")
            return False

        visibility = "private" if private else "public"
        self.logger.info(f"Creating remote repository {self.owner}/{name} ({visibility})")
        response = self.client.post("/user/repos", json={"name": name, "private": private})

        if response.status_code == 201:
            self.logger.info(f"Repository {self.owner}/{name} created")
            return True

        message = _error_message(response)
        if response.status_code == 422 and "already exists" in message.lower():
            self.logger.warning(f"Repository {self.owner}/{name} already exists (GitHub answered 422)")
            return False

        raise ProvisioningError(
            f"Failed to create repository {self.owner}/{name} (HTTP {response.status_code}): {message}",
            error_code=f"HTTP_{response.status_code}"
        )
