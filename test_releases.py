#!/usr/bin/env python3
"""
Tests for GitHub releases of subcontainers that ship APK files.

The GitHub API is replaced by an httpx mock transport and tag pushes by a
mocked transport, so only the local tag is real.
"""

import json
import os
import shutil
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock, patch

# Add the project root to the path so we can import repopush modules
sys.path.insert(0, str(Path(__file__).parent))

import httpx
from git import Repo

from repopush.git_sync.error_types import OutputCategory, TransportResult
from repopush.provisioning import GitHubClient
from repopush.releases import ReleasePublisher, find_release_assets, release_tag_for


GIT_ENV = {
    "GIT_AUTHOR_NAME": "Repopush Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Repopush Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
}

UPLOAD_URL = "https://uploads.github.test/repos/octocat/app/releases/7/assets{?name,label}"


class TestReleaseTags(unittest.TestCase):
    """Test cases for deriving tags from asset names."""

    def test_versioned_names(self):
        self.assertEqual(release_tag_for(Path("app-v1.2.3-release.apk")), "v1.2.3")
        self.assertEqual(release_tag_for(Path("app_v2.0.apk")), "v2.0")

    def test_unversioned_names_get_a_timestamp(self):
        tag = release_tag_for(Path("app-release.apk"), now=datetime(2024, 5, 6, 7, 8, 9))
        self.assertEqual(tag, "release-20240506-070809")


class TestReleasePublisher(unittest.TestCase):
    """Test cases for tagging, creating releases and uploading assets."""

    def setUp(self):
        print(f"\nSetting up test: {self._testMethodName}")

        env_patcher = patch.dict(os.environ, GIT_ENV)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)

        self.temp_dir = Path(tempfile.mkdtemp())
        self.repo = Repo.init(self.temp_dir)
        (self.temp_dir / "README.md").write_text("app\n")
        self.repo.git.add("README.md")
        self.repo.git.commit("-m", "initial")

        self.requests = []
        self.release = None
        self.create_status = 201
        self.upload_status = 201
        self.client = GitHubClient(
            "ghp_token", "https://api.github.test",
            client=httpx.Client(transport=httpx.MockTransport(self._handle))
        )
        self.addCleanup(self.client.close)

        self.transport = Mock()
        self.transport.push_refspec.return_value = TransportResult(
            category=OutputCategory.OK, output="", status=0, operation="push"
        )
        self.publisher = ReleasePublisher(self.client, "octocat", self.transport)

    def tearDown(self):
        print(f"Cleaning up test: {self._testMethodName}")
        shutil.rmtree(self.temp_dir)

    def _handle(self, request):
        self.requests.append(request)
        if request.url.host == "uploads.github.test":
            return httpx.Response(self.upload_status, json={"name": request.url.params["name"]})
        if request.method == "GET":
            if self.release is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self.release)
        body = json.loads(request.content)
        return httpx.Response(self.create_status, json={
            "tag_name": body["tag_name"], "upload_url": UPLOAD_URL, "assets": []
        })

    def _apk(self, name="app-v1.2.3.apk"):
        path = self.temp_dir / name
        path.write_bytes(b"PK\x03\x04apk")
        return path

    def test_no_assets_publishes_nothing(self):
        self.assertEqual(find_release_assets(self.temp_dir), [])
        self.assertIsNone(self.publisher.publish(self.repo, "app"))
        self.assertEqual(self.requests, [])
        self.transport.push_refspec.assert_not_called()

    def test_release_created_and_asset_uploaded(self):
        """Test a new tag gets a release with the APK attached."""
        self._apk()

        tag = self.publisher.publish(self.repo, "app")

        self.assertEqual(tag, "v1.2.3")
        self.assertIn("v1.2.3", [t.name for t in self.repo.tags])
        self.transport.push_refspec.assert_called_once_with(self.repo, "origin", "refs/tags/v1.2.3")

        lookup, create, upload = self.requests
        self.assertEqual(lookup.url.path, "/repos/octocat/app/releases/tags/v1.2.3")
        self.assertEqual(create.url.path, "/repos/octocat/app/releases")
        self.assertEqual(json.loads(create.content)["body"], "Automated release")
        self.assertEqual(upload.url.path, "/repos/octocat/app/releases/7/assets")
        self.assertEqual(upload.url.params["name"], "app-v1.2.3.apk")
        self.assertEqual(upload.headers["Content-Type"], "application/vnd.android.package-archive")
        self.assertEqual(upload.content, b"PK\x03\x04apk")
        print("  ✓ Release created and APK uploaded")

    def test_existing_asset_is_not_uploaded_again(self):
        self._apk()
        self.release = {"tag_name": "v1.2.3", "upload_url": UPLOAD_URL, "assets": [{"name": "app-v1.2.3.apk"}]}

        self.assertEqual(self.publisher.publish(self.repo, "app"), "v1.2.3")
        self.assertEqual([r.method for r in self.requests], ["GET"])

    def test_existing_tag_is_reused(self):
        self._apk()
        self.repo.git.tag("-a", "v1.2.3", "-m", "Release v1.2.3")

        self.assertEqual(self.publisher.publish(self.repo, "app"), "v1.2.3")
        self.transport.push_refspec.assert_called_once()

    def test_already_uploaded_answer_is_tolerated(self):
        self._apk()
        self.upload_status = 422

        self.assertEqual(self.publisher.publish(self.repo, "app"), "v1.2.3")

    def test_api_failure_is_not_fatal(self):
        """Test a failed release creation is logged and reported as nothing published."""
        self._apk()
        self.create_status = 500

        with self.assertLogs('repopush.releases', level='WARNING'):
            self.assertIsNone(self.publisher.publish(self.repo, "app"))


def run_tests():
    """Run all release tests."""
    print("Running Release Tests")
    print("=" * 60)

    loader = unittest.TestLoader()
    test_suite = unittest.TestSuite()
    for case in (TestReleaseTags, TestReleasePublisher):
        test_suite.addTests(loader.loadTestsFromTestCase(case))

    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout)
    result = runner.run(test_suite)

    success = len(result.failures) == 0 and len(result.errors) == 0
    print(f"\nOverall result: {'PASS' if success else 'FAIL'}")
    return success


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
