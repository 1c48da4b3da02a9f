"""Emptying the repository of a subcontainer that was removed locally."""

import logging
import os
import secrets

from git import Repo

from ..git_sync.error_types import OutputCategory
from ..git_sync.transport import CredentialedTransport
from ..git_sync.utils import GitSyncResult, create_git_sync_result, run_git


TEMP_REF_PREFIX = "refs/tmp/subcontainer-"


def clear_subcontainer_repository(
    parent: Repo,
    transport: CredentialedTransport,
    url: str,
    subdirectory: str,
    branch: str = "main"
) -> GitSyncResult:
    """
    Push a commit with an empty tree on top of a removed subcontainer's branch.

    The remote history is kept; only the current content disappears. The
    remote branch is fetched into a temporary ref of the parent repository so
    the new commit can reference it as its parent. When the remote has no
    such branch the commit is created without a parent.

    Args:
        parent: Repository used to hold the temporary objects
        transport: Credentialed transport for fetch and push
        url: Remote URL of the subcontainer's repository
        subdirectory: Removed subdirectory, used in the commit message
        branch: Branch to empty

    Returns:
        GitSyncResult of the tombstone push
    """
    logger = logging.getLogger('repopush.subcontainers.tombstone')
    temp_ref = f"{TEMP_REF_PREFIX}{secrets.token_hex(8)}"

    try:
        fetched = transport.fetch(parent, "--no-tags", url, f"+refs/heads/{branch}:{temp_ref}")
        parent_commit = None
        if fetched.ok:
            resolved = run_git(parent, "rev-parse", "--verify", "--quiet", temp_ref)
            parent_commit = resolved.stdout.strip() if resolved.ok else None
        elif fetched.category != OutputCategory.REMOTE_REF_MISSING:
            logger.warning(
                f"Could not fetch {url} before clearing '{subdirectory}'; "
                f"creating the empty commit without history: {fetched.output}"
            )

        empty_tree = parent.git.hash_object("-w", "-t", "tree", os.devnull).strip()
        commit_args = ["commit-tree", empty_tree, "-m", f"Remove folder '{subdirectory}' after deletion"]
        if parent_commit:
            commit_args[2:2] = ["-p", parent_commit]
        created = run_git(parent, *commit_args)
        if not created.ok:
            return create_git_sync_result(
                success=False,
                message=f"Could not create the empty commit for '{subdirectory}'",
                operation="clear_subcontainer",
                error_code="COMMIT_FAILED",
                output=created.output,
                branch_used=branch
            )
        commit = created.stdout.strip()
    finally:
        run_git(parent, "update-ref", "-d", temp_ref)

    pushed = transport.push_refspec(parent, url, f"{commit}:refs/heads/{branch}")
    if not pushed.ok:
        return create_git_sync_result(
            success=False,
            message=transport.describe(pushed, subcontainer=subdirectory),
            operation="clear_subcontainer",
            error_code=pushed.category.value.upper(),
            output=pushed.output,
            branch_used=branch
        )

    logger.info(f"Cleared repository of removed subcontainer '{subdirectory}'")
    return create_git_sync_result(
        success=True,
        message=f"Emptied {url}",
        operation="clear_subcontainer",
        branch_used=branch
    )
