#!/usr/bin/env python3
"""
Tests for moving large files to Git LFS.

Tests that need the git-lfs executable are skipped when it is not installed.
"""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add the project root to the path so we can import repopush modules
sys.path.insert(0, str(Path(__file__).parent))

from git import Repo

from repopush.git_sync.large_files import LargeFilePromoter
from repopush.git_sync.utils import head_commit


GIT_ENV = {
    "GIT_AUTHOR_NAME": "Repopush Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Repopush Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
}

LFS_AVAILABLE = shutil.which("git-lfs") is not None
THRESHOLD = 1024


class TestLargeFilePromotion(unittest.TestCase):
    """Test cases for the large-file promoter."""

    def setUp(self):
        print(f"\nSetting up test: {self._testMethodName}")

        env_patcher = patch.dict(os.environ, GIT_ENV)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)

        self.temp_dir = Path(tempfile.mkdtemp())
        self.repo = Repo.init(self.temp_dir)
        self.promoter = LargeFilePromoter(THRESHOLD)

    def tearDown(self):
        print(f"Cleaning up test: {self._testMethodName}")
        shutil.rmtree(self.temp_dir)

    def _write(self, name, size):
        path = self.temp_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(os.urandom(size))
        return path

    def _commit_all(self, message="add files"):
        self.repo.git.add("--all")
        self.repo.git.commit("-m", message)

    def test_nothing_to_promote(self):
        self.assertFalse(self.promoter.promote(self.repo, []))
        self.assertFalse(self.promoter.promote(self.repo, ["", ""]))

    def test_small_files_are_not_routed(self):
        self._write("small.bin", THRESHOLD - 1)
        self.repo.git.add("small.bin")

        self.assertEqual(self.promoter.route_large_staged_files(self.repo), [])
        self.assertFalse((self.temp_dir / ".gitattributes").exists())

    @unittest.skipUnless(LFS_AVAILABLE, "git-lfs is not installed")
    def test_large_staged_files_are_routed_before_commit(self):
        """Test staged files over the threshold are tracked before the first commit."""
        self._write("assets/big.bin", THRESHOLD * 2)
        self._write("small.txt", 10)
        self.repo.git.add("--all")

        routed = self.promoter.route_large_staged_files(self.repo)

        self.assertEqual(routed, ["assets/big.bin"])
        self.assertTrue(self.promoter.is_lfs_tracked(self.repo, "assets/big.bin"))
        self.assertFalse(self.promoter.is_lfs_tracked(self.repo, "small.txt"))
        staged = self.repo.git.diff("--cached", "--name-only").splitlines()
        self.assertIn(".gitattributes", staged)
        print("  ✓ Large file routed through LFS")

    @unittest.skipUnless(LFS_AVAILABLE, "git-lfs is not installed")
    def test_promote_amends_last_commit(self):
        """Test promotion rewrites the last commit with an LFS pointer."""
        self._write("video.mp4", THRESHOLD * 4)
        self._commit_all()
        before = head_commit(self.repo)
        commit_count = self.repo.git.rev_list("--count", "HEAD")

        promoted = self.promoter.promote(self.repo, ["video.mp4", "video.mp4"])

        self.assertTrue(promoted)
        self.assertNotEqual(head_commit(self.repo), before)
        self.assertEqual(self.repo.git.rev_list("--count", "HEAD"), commit_count)
        pointer = self.repo.git.show("HEAD:video.mp4")
        self.assertTrue(pointer.startswith("version https://git-lfs.github.com/spec/v1"))
        self.assertIn("video.mp4 filter=lfs", (self.temp_dir / ".gitattributes").read_text())

    @unittest.skipUnless(LFS_AVAILABLE, "git-lfs is not installed")
    def test_promote_is_idempotent(self):
        self._write("video.mp4", THRESHOLD * 4)
        self._commit_all()
        self.assertTrue(self.promoter.promote(self.repo, ["video.mp4"]))
        after_first = head_commit(self.repo)

        self.assertFalse(self.promoter.promote(self.repo, ["video.mp4"]))
        self.assertEqual(head_commit(self.repo), after_first)
        self.assertEqual((self.temp_dir / ".gitattributes").read_text().count("video.mp4"), 1)

    @unittest.skipUnless(LFS_AVAILABLE, "git-lfs is not installed")
    def test_promote_without_head_does_not_amend(self):
        self._write("video.mp4", THRESHOLD * 4)
        self.assertFalse(self.promoter.promote(self.repo, ["video.mp4"]))
        self.assertIsNone(head_commit(self.repo))

    def test_promote_without_lfs_fails_cleanly(self):
        self._write("video.mp4", THRESHOLD * 4)
        self._commit_all()
        before = head_commit(self.repo)

        with patch("repopush.git_sync.large_files.is_git_lfs_available", return_value=False):
            self.assertFalse(self.promoter.promote(self.repo, ["video.mp4"]))

        self.assertEqual(head_commit(self.repo), before)


def run_tests():
    """Run all large-file promotion tests."""
    print("Running Large File Promotion Tests")
    print("=" * 60)

    test_suite = unittest.TestLoader().loadTestsFromTestCase(TestLargeFilePromotion)
    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout)
    result = runner.run(test_suite)

    success = len(result.failures) == 0 and len(result.errors) == 0
    print(f"\nOverall result: {'PASS' if success else 'FAIL'}")
    return success


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
