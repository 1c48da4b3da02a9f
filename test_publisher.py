#!/usr/bin/env python3
"""
End-to-end tests for the publishing driver.

Remote repositories are local bare repositories. The provisioner is mocked so
that "creating" a repository initializes the bare repository it resolves to.
"""

import io
import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import Mock, patch

# Add the project root to the path so we can import repopush modules
sys.path.insert(0, str(Path(__file__).parent))

from repopush.config import Config
from repopush.context import RunContext
from repopush.errors import ConfigurationError, PolicyBlockedError, ProvisioningError
from repopush.git_sync.performance_logger import PerformanceLogger
from repopush.git_sync.transport import CredentialedTransport
from repopush.publisher import Publisher, classify_child
from repopush.subcontainers.state import read_mapping_table


GIT_ENV = {
    "GIT_AUTHOR_NAME": "Repopush Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Repopush Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
}


def git(cwd, *args):
    result = subprocess.run(["git", *args], cwd=str(cwd), check=True, capture_output=True, text=True)
    return result.stdout.strip()


class PublisherTestCase(unittest.TestCase):
    """Shared setup: a workspace, a directory of bare remotes and a fake provisioner."""

    def setUp(self):
        print(f"\nSetting up test: {self._testMethodName}")

        env_patcher = patch.dict(os.environ, GIT_ENV)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)

        self.temp_dir = Path(tempfile.mkdtemp())
        self.remotes = self.temp_dir / "remotes"
        self.remotes.mkdir()
        self.root = self.temp_dir / "site"
        self.root.mkdir()

        self.config = Config(rate_limit_pause=0)
        self.created = []
        self.provisioner = Mock()
        self.provisioner.ensure_exists.side_effect = self._provision
        self.sleep = Mock()

    def tearDown(self):
        print(f"Cleaning up test: {self._testMethodName}")
        shutil.rmtree(self.temp_dir)

    def _remote(self, name):
        return self.remotes / f"{name}.git"

    def _provision(self, name, private):
        path = self._remote(name)
        if path.exists():
            return False
        git(self.temp_dir, "init", "--bare", str(path))
        self.created.append((name, private))
        return True

    def _url(self, name):
        return str(self._remote(name))

    def _publisher(self, root=None, config=None, context=None, **kwargs):
        config = config or self.config
        context = context or RunContext("test")
        self.addCleanup(context.cleanup)
        transport = CredentialedTransport(config, context)
        return Publisher(
            config, root or self.root, context, transport,
            provisioner=self.provisioner, url_resolver=self._url, sleep=self.sleep, **kwargs
        )

    def _run(self, action, **kwargs):
        output = io.StringIO()
        with redirect_stdout(output):
            result = self._publisher(**kwargs).run(action)
        return result, output.getvalue()

    def _remote_files(self, name, ref="main"):
        return git(self._remote(name), "ls-tree", "-r", "--name-only", ref).splitlines()


class TestPushAction(PublisherTestCase):
    """Test cases for the plain push action."""

    def test_first_push_creates_and_fills_remote(self):
        """Test a fresh directory is initialized, committed and pushed."""
        (self.root / "index.html").write_text("<h1>hi</h1>\n")
        (self.root / "GITHUB_TOKEN").write_text("ghp_secret\n")

        _, output = self._run("push")

        self.assertEqual(self.created, [("site", False)])
        files = self._remote_files("site")
        self.assertIn("index.html", files)
        self.assertNotIn("GITHUB_TOKEN", files)
        self.assertIn(f"Push completed successfully: {self._url('site')}", output)
        self.assertEqual(git(self.root, "rev-parse", "--abbrev-ref", "HEAD"), "main")
        print("  ✓ First push completed")

    def test_second_push_without_changes_succeeds(self):
        (self.root / "index.html").write_text("<h1>hi</h1>\n")
        self._run("push")
        head = git(self._remote("site"), "rev-parse", "main")

        _, output = self._run("push")

        self.assertIn("Push completed successfully", output)
        self.assertEqual(git(self._remote("site"), "rev-parse", "main"), head)

    def test_temporary_root_is_private(self):
        root = self.temp_dir / "tmp_draft"
        root.mkdir()
        (root / "notes.md").write_text("draft\n")

        self._run("push", root=root)

        self.assertEqual(self.created, [("tmp_draft", True)])

    def test_behind_remote_is_blocked_by_default(self):
        """Test the push never overwrites remote commits the local branch lacks."""
        (self.root / "index.html").write_text("v1\n")
        self._run("push")

        other = self.temp_dir / "other"
        git(self.temp_dir, "clone", "-b", "main", self._url("site"), str(other))
        (other / "remote.txt").write_text("from elsewhere\n")
        git(other, "add", "remote.txt")
        git(other, "commit", "-m", "remote change")
        git(other, "push", "origin", "main")
        remote_head = git(self._remote("site"), "rev-parse", "main")

        (self.root / "index.html").write_text("v2\n")
        with self.assertRaises(PolicyBlockedError):
            self._run("push")

        self.assertEqual(git(self._remote("site"), "rev-parse", "main"), remote_head)

    def test_behind_remote_with_allow_pull_pushes(self):
        (self.root / "index.html").write_text("v1\n")
        self._run("push")

        other = self.temp_dir / "other"
        git(self.temp_dir, "clone", "-b", "main", self._url("site"), str(other))
        (other / "remote.txt").write_text("from elsewhere\n")
        git(other, "add", "remote.txt")
        git(other, "commit", "-m", "remote change")
        git(other, "push", "origin", "main")

        (self.root / "local.txt").write_text("new local file\n")
        self._run("push", config=Config(allow_pull=True, rate_limit_pause=0))

        files = self._remote_files("site")
        self.assertIn("remote.txt", files)
        self.assertIn("local.txt", files)

    def test_unsupported_actions_are_rejected(self):
        for action in ("reauth", "sync-scripts", "deploy"):
            with self.subTest(action=action):
                with self.assertRaises(ConfigurationError):
                    self._publisher().run(action)
        self.provisioner.ensure_exists.assert_not_called()

    def test_store_submission_failure_does_not_block_push(self):
        (self.root / "manifest.json").write_text("{}\n")
        submitter = Mock(side_effect=RuntimeError("store unavailable"))

        _, output = self._run("push-firefox-amo-github", submitter=submitter)

        submitter.assert_called_once_with(self.root.resolve())
        self.assertIn("Push completed successfully", output)


class TestSubfoldersAction(PublisherTestCase):
    """Test cases for publishing subdirectories as subcontainers."""

    def setUp(self):
        super().setUp()
        (self.root / "README.md").write_text("parent\n")
        for name in ("App One", "lib"):
            (self.root / name).mkdir()
            (self.root / name / "main.py").write_text(f"print('{name}')\n")
        (self.root / "node_modules").mkdir()
        (self.root / "node_modules" / "dep.js").write_text("module.exports = 1\n")

    def _gitlinks(self):
        entries = {}
        for line in git(self._remote("site"), "ls-tree", "main").splitlines():
            meta, path = line.split("\t", 1)
            mode, kind, sha = meta.split()
            if mode == "160000":
                entries[path] = sha
        return entries

    def test_subfolders_are_published_and_linked(self):
        """Test each subdirectory gets its own repository and a gitlink in the parent."""
        self._run("push-subfolders")

        self.assertEqual(sorted(name for name, _ in self.created), ["app-one", "lib", "site"])
        self.assertEqual(self._remote_files("app-one"), [".gitignore", "main.py"])
        self.assertEqual(read_mapping_table(self.root / ".subcontainers"),
                         {"App One": "app-one", "lib": "lib"})

        gitlinks = self._gitlinks()
        self.assertEqual(gitlinks["App One"], git(self._remote("app-one"), "rev-parse", "main"))
        self.assertEqual(gitlinks["lib"], git(self._remote("lib"), "rev-parse", "main"))
        self.assertFalse([path for path in self._remote_files("site") if path.startswith("node_modules")])
        self.assertIn('path = App One', (self.root / ".gitmodules").read_text())
        print("  ✓ Subcontainers pushed and referenced by gitlinks")

    def test_rerun_is_idempotent(self):
        self._run("push-subfolders")
        heads = {name: git(self._remote(name), "rev-parse", "main") for name in ("app-one", "lib", "site")}

        self._run("push-subfolders")

        for name, head in heads.items():
            self.assertEqual(git(self._remote(name), "rev-parse", "main"), head)

    def test_changed_subfolder_moves_its_gitlink(self):
        self._run("push-subfolders")
        (self.root / "lib" / "util.py").write_text("x = 1\n")

        self._run("push-subfolders")

        self.assertIn("util.py", self._remote_files("lib"))
        self.assertEqual(self._gitlinks()["lib"], git(self._remote("lib"), "rev-parse", "main"))

    def test_removed_subfolder_is_cleared(self):
        """Test a deleted subdirectory's repository receives an empty tombstone commit."""
        self._run("push-subfolders")
        old_head = git(self._remote("lib"), "rev-parse", "main")
        shutil.rmtree(self.root / "lib")

        self._run("push-subfolders")

        lib = self._remote("lib")
        self.assertEqual(git(lib, "log", "-1", "--format=%s", "main"), "Remove folder 'lib' after deletion")
        self.assertEqual(git(lib, "rev-parse", "main~1"), old_head)
        self.assertEqual(git(lib, "ls-tree", "main"), "")
        self.assertNotIn("lib", self._gitlinks())
        self.assertEqual(read_mapping_table(self.root / ".subcontainers"), {"App One": "app-one"})
        self.assertEqual(git(self.root, "for-each-ref", "refs/tmp"), "")
        print("  ✓ Removed subcontainer tombstoned with history kept")

    def test_blocked_run_keeps_removed_subfolder_for_rerun(self):
        """Test a run stopped by the pull policy leaves the removal for the next run."""
        self._run("push-subfolders")
        old_head = git(self._remote("lib"), "rev-parse", "main")

        other = self.temp_dir / "other"
        git(self.temp_dir, "clone", "-b", "main", self._url("site"), str(other))
        (other / "remote.txt").write_text("from elsewhere\n")
        git(other, "add", "remote.txt")
        git(other, "commit", "-m", "remote change")
        git(other, "push", "origin", "main")
        shutil.rmtree(self.root / "lib")

        with self.assertRaises(PolicyBlockedError):
            self._run("push-subfolders")

        self.assertEqual(read_mapping_table(self.root / ".subcontainers"),
                         {"App One": "app-one", "lib": "lib"})
        self.assertIn("path = lib", (self.root / ".gitmodules").read_text())
        self.assertEqual(git(self._remote("lib"), "rev-parse", "main"), old_head)

        self._run("push-subfolders", config=Config(allow_pull=True, rate_limit_pause=0))

        lib = self._remote("lib")
        self.assertEqual(git(lib, "log", "-1", "--format=%s", "main"), "Remove folder 'lib' after deletion")
        self.assertEqual(git(lib, "rev-parse", "main~1"), old_head)
        self.assertEqual(read_mapping_table(self.root / ".subcontainers"), {"App One": "app-one"})
        self.assertIn("remote.txt", self._remote_files("site"))
        print("  ✓ Removal survived a blocked run and was cleared on rerun")

    def test_failed_clear_is_retried_on_next_run(self):
        self._run("push-subfolders")
        old_head = git(self._remote("lib"), "rev-parse", "main")
        shutil.rmtree(self.root / "lib")
        unreachable = self.temp_dir / "lib-offline.git"
        self._remote("lib").rename(unreachable)

        self._run("push-subfolders")

        pending = Path(git(self.root, "rev-parse", "--absolute-git-dir")) / "repopush-pending-clears"
        self.assertEqual(read_mapping_table(pending), {"lib": "lib"})
        self.assertEqual(read_mapping_table(self.root / ".subcontainers"), {"App One": "app-one"})

        unreachable.rename(self._remote("lib"))
        self._run("push-subfolders")

        lib = self._remote("lib")
        self.assertEqual(git(lib, "log", "-1", "--format=%s", "main"), "Remove folder 'lib' after deletion")
        self.assertEqual(git(lib, "rev-parse", "main~1"), old_head)
        self.assertFalse(pending.exists())

    def test_excluded_subfolder_keeps_its_history(self):
        """Test excluding an existing subcontainer neither destroys its git directory nor empties its repository."""
        self._run("push-subfolders")
        self._run("push-subfolders")
        local_head = git(self.root / "lib", "rev-parse", "HEAD")
        remote_head = git(self._remote("lib"), "rev-parse", "main")

        self._run("push-subfolders", config=Config(extra_excludes=["lib"], rate_limit_pause=0))

        self.assertEqual(git(self.root / "lib", "rev-parse", "HEAD"), local_head)
        self.assertEqual(git(self._remote("lib"), "rev-parse", "main"), remote_head)
        self.assertEqual(read_mapping_table(self.root / ".subcontainers"), {"App One": "app-one"})
        self.assertNotIn("lib", self._gitlinks())
        self.assertNotIn("path = lib", (self.root / ".gitmodules").read_text())
        print("  ✓ Excluded subcontainer left intact")

    def test_rate_limit_pause_between_subcontainers(self):
        self._run("push-subfolders", config=Config(rate_limit_pause=1.5))
        self.sleep.assert_called_with(1.5)

    def test_stage_timings_group_subcontainer_pushes(self):
        performance = PerformanceLogger()

        self._run("push-subfolders", performance=performance)

        totals = {entry.stage: entry for entry in performance.totals()}
        self.assertEqual(totals["subcontainer_push"].runs, 2)
        self.assertEqual(totals["subcontainer_push"].failures, 0)
        self.assertEqual(totals["push"].runs, 1)

    def test_releases_action_publishes_after_each_push(self):
        release_publisher = Mock()

        self._run("push-subfolders-releases", release_publisher=release_publisher)

        published = [call.args[1] for call in release_publisher.publish.call_args_list]
        self.assertEqual(published, ["app-one", "lib"])


class TestRecursiveAction(PublisherTestCase):
    """Test cases for push-recursive over child directories."""

    def _child(self, name, with_git=False, files=("index.md",)):
        path = self.root / name
        path.mkdir()
        for file_name in files:
            (path / file_name).write_text(f"{name}\n")
        if with_git:
            git(path, "init")
        return path

    def test_classify_child(self):
        self.assertEqual(classify_child(self._child("releases-android")), "push-subfolders-releases")
        self.assertEqual(classify_child(self._child("codex-tools")), "push-subfolders")
        self.assertEqual(classify_child(self._child("ext", files=("addon.xpi",))), "push-firefox-amo-github")
        self.assertEqual(classify_child(self._child("site-a", with_git=True)), "push")
        self.assertIsNone(classify_child(self._child("loose")))

    def test_failures_are_tallied_and_siblings_continue(self):
        """Test one failing child does not stop the others."""
        self._child("app", with_git=True)
        self._child("broken", with_git=True)
        codex = self._child("codex-tools")
        (codex / "module").mkdir()
        (codex / "module" / "tool.py").write_text("pass\n")
        self._child("plain")
        self._child(".hidden", with_git=True)

        def provision(name, private):
            if name == "broken":
                raise ProvisioningError("GitHub refused to create the repository", "HTTP_403")
            return self._provision(name, private)

        self.provisioner.ensure_exists.side_effect = provision

        summary, _ = self._run("push-recursive", config=Config(rate_limit_pause=0.5))

        self.assertEqual(summary.processed, ["app (push)", "codex-tools (push-subfolders)"])
        self.assertEqual(summary.failed, ["broken (push)"])
        self.assertEqual(summary.ignored, ["plain (not a managed repo)"])
        self.assertFalse(summary.success)
        self.assertIn("index.md", self._remote_files("app"))
        self.assertIn("tool.py", self._remote_files("module"))
        self.sleep.assert_called_with(0.5)
        print("  ✓ Recursive push tallied processed, failed and ignored children")


def run_tests():
    """Run all publisher tests."""
    print("Running Publisher Tests")
    print("=" * 60)

    loader = unittest.TestLoader()
    test_suite = unittest.TestSuite()
    for case in (TestPushAction, TestSubfoldersAction, TestRecursiveAction):
        test_suite.addTests(loader.loadTestsFromTestCase(case))

    runner = unittest.TextTestRunner(verbosity=2, stream=sys.stdout)
    result = runner.run(test_suite)

    success = len(result.failures) == 0 and len(result.errors) == 0
    print(f"\nOverall result: {'PASS' if success else 'FAIL'}")
    return success


if __name__ == "__main__":
    success = run_tests()
    sys.exit(0 if success else 1)
