"""GitHub releases for subcontainers that ship Android packages."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from git import Repo

from .errors import PublishError
from .git_sync.transport import CredentialedTransport
from .git_sync.utils import run_git
from .provisioning import GitHubClient, _error_message


VERSION_PATTERN = re.compile(r"v(\d+\.\d+(?:\.\d+)?)")
APK_CONTENT_TYPE = "application/vnd.android.package-archive"


def find_release_assets(worktree: Path) -> List[Path]:
    """Top-level APK files of a working tree, sorted."""
    return sorted(path for path in worktree.glob("*.apk") if path.is_file())


def release_tag_for(asset: Path, now: Optional[datetime] = None) -> str:
    """
    Derive a release tag from an asset file name.

        >>> release_tag_for(Path("app-v1.2.3-release.apk"))
        'v1.2.3'

    Names without a version get a timestamped tag.
    """
    match = VERSION_PATTERN.search(asset.name)
    if match:
        return f"v{match.group(1)}"
    return (now or datetime.now()).strftime("release-%Y%m%d-%H%M%S")


class ReleasePublisher:
    """
    Tags a subcontainer, creates its GitHub release and uploads its APK.

    Everything here is best-effort: a failure is logged and the run goes on.
    """

    def __init__(self, client: GitHubClient, owner: str, transport: CredentialedTransport):
        self.client = client
        self.owner = owner
        self.transport = transport
        self.logger = logging.getLogger('repopush.releases')

    def publish(self, repo: Repo, repository_name: str) -> Optional[str]:
        """
        Publish the first APK found in the repository's working tree.

        Returns:
            The release tag, or None when nothing was published
        """
        assets = find_release_assets(Path(repo.working_tree_dir))
        if not assets:
            return None

        asset = assets[0]
        tag = release_tag_for(asset)
        try:
            self._tag(repo, tag)
            release = self._get_or_create_release(repository_name, tag)
            self._upload_asset(release, asset)
        except PublishError as e:
            self.logger.warning(f"Release {tag} for {repository_name} failed: {e}")
            return None
        return tag

    def _tag(self, repo: Repo, tag: str) -> None:
        created = run_git(repo, "tag", "-a", tag, "-m", f"Release {tag}")
        if not created.ok and "already exists" not in created.output:
            self.logger.warning(f"Could not create tag {tag}: {created.output}")
            return

        pushed = self.transport.push_refspec(repo, "origin", f"refs/tags/{tag}")
        if not pushed.ok:
            self.logger.warning(f"Could not push tag {tag}: {self.transport.describe(pushed, tag=tag)}")

    def _get_or_create_release(self, repository_name: str, tag: str) -> Dict[str, Any]:
        path = f"/repos/{self.owner}/{repository_name}/releases"
        response = self.client.get(f"{path}/tags/{tag}")
        if response.status_code == 200:
            return response.json()
        if response.status_code != 404:
            raise PublishError(f"Release lookup failed (HTTP {response.status_code}): {_error_message(response)}")

        response = self.client.post(path, json={
            "tag_name": tag,
            "name": tag,
            "body": "Automated release",
            "draft": False,
            "prerelease": False,
        })
        if response.status_code != 201:
            raise PublishError(f"Release creation failed (HTTP {response.status_code}): {_error_message(response)}")
        self.logger.info(f"Created release {tag} for {self.owner}/{repository_name}")
        return response.json()

    def _upload_asset(self, release: Dict[str, Any], asset: Path) -> bool:
        if any(existing.get("name") == asset.name for existing in release.get("assets", [])):
            self.logger.info(f"Asset {asset.name} already attached to {release.get('tag_name')}")
            return False

        upload_url = release["upload_url"].split("{", 1)[0]
        response = self.client.request(
            "POST",
            upload_url,
            params={"name": asset.name},
            content=asset.read_bytes(),
            headers={"Content-Type": APK_CONTENT_TYPE}
        )
        if response.status_code == 201:
            self.logger.info(f"Uploaded {asset.name} to release {release.get('tag_name')}")
            return True
        if response.status_code == 422:
            self.logger.info(f"Asset {asset.name} was already uploaded")
            return False
        raise PublishError(f"Asset upload failed (HTTP {response.status_code}): {_error_message(response)}")
