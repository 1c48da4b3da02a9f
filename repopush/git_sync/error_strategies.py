"""Recovery strategies and output patterns for git transport failures."""

from typing import Dict, List, Tuple

from .error_types import OutputCategory, ErrorResolution, RecoveryAction


def build_error_strategies() -> Dict[OutputCategory, ErrorResolution]:
    """Build recovery strategies for each output category."""
    return {
        OutputCategory.NON_FAST_FORWARD: ErrorResolution(
            category=OutputCategory.NON_FAST_FORWARD,
            action=RecoveryAction.PULL_AND_RETRY,
            user_message="Push rejected: the remote branch contains commits you do not have",
            technical_message="Remote rejected a non-fast-forward update",
            resolution_steps=[
                "Pull and rebase manually with 'git pull --rebase origin main'",
                "Or rerun with ALLOW_PULL=1 to let repopush pull and retry once",
                "repopush never force-pushes"
            ],
            max_retries=1
        ),

        OutputCategory.OVERSIZED_FILE: ErrorResolution(
            category=OutputCategory.OVERSIZED_FILE,
            action=RecoveryAction.PROMOTE_AND_RETRY,
            user_message="Push rejected: files exceed the GitHub size limit",
            technical_message="Remote rejected objects larger than the hosting limit",
            resolution_steps=[
                "Install git-lfs so large files can be promoted automatically",
                "Check that the files are not already in earlier commits",
                "Track them manually with 'git lfs track <path>' and amend the commit"
            ],
            max_retries=1
        ),

        OutputCategory.UNTRACKED_CONFLICT: ErrorResolution(
            category=OutputCategory.UNTRACKED_CONFLICT,
            action=RecoveryAction.PROTECT_AND_RETRY,
            user_message="Untracked local files would be overwritten",
            technical_message="Checkout refused to overwrite untracked working tree files",
            resolution_steps=[
                "Local copies are saved as '<path>.local-backup-<timestamp>'",
                "They are moved back automatically when the run ends",
                "If the run was killed, rename the backup files back by hand"
            ],
            max_retries=1
        ),

        OutputCategory.AUTHENTICATION: ErrorResolution(
            category=OutputCategory.AUTHENTICATION,
            action=RecoveryAction.USER_ACTION_REQUIRED,
            user_message="Authentication failed - please check your credentials",
            technical_message="Git authentication failed for remote repository",
            resolution_steps=[
                "Set GITHUB_TOKEN or place a GITHUB_TOKEN file in this or a parent directory",
                "Ensure the token has the 'repo' scope",
                "For SSH remotes, check that your key is loaded in ssh-agent"
            ]
        ),

        OutputCategory.REMOTE_REF_MISSING: ErrorResolution(
            category=OutputCategory.REMOTE_REF_MISSING,
            action=RecoveryAction.NONE,
            user_message="Remote branch does not exist yet",
            technical_message="Requested ref was not found on the remote",
            resolution_steps=[
                "Nothing to do; the first push creates the branch"
            ]
        ),

        OutputCategory.NETWORK: ErrorResolution(
            category=OutputCategory.NETWORK,
            action=RecoveryAction.ABORT,
            user_message="Network connection issue detected",
            technical_message="Failed to connect to remote Git repository",
            resolution_steps=[
                "Check your internet connection",
                "Verify the repository URL is accessible",
                "Try again in a few minutes"
            ]
        )
    }


def build_error_patterns() -> List[Tuple[str, OutputCategory]]:
    """
    Build the ordered list of output patterns to categories.

    The first matching pattern wins, so more specific signatures come first.
    """
    return [
        # Untracked files
        ("untracked working tree files would be overwritten", OutputCategory.UNTRACKED_CONFLICT),

        # History rejected
        ("non-fast-forward", OutputCategory.NON_FAST_FORWARD),
        ("fetch first", OutputCategory.NON_FAST_FORWARD),
        ("updates were rejected because the tip", OutputCategory.NON_FAST_FORWARD),

        # Size limits
        ("exceeds github's file size limit", OutputCategory.OVERSIZED_FILE),
        ("exceeds github", OutputCategory.OVERSIZED_FILE),
        ("large files detected", OutputCategory.OVERSIZED_FILE),
        ("gh001", OutputCategory.OVERSIZED_FILE),

        # Missing refs
        ("couldn't find remote ref", OutputCategory.REMOTE_REF_MISSING),

        # Authentication
        ("authentication failed", OutputCategory.AUTHENTICATION),
        ("invalid username or password", OutputCategory.AUTHENTICATION),
        ("could not read username", OutputCategory.AUTHENTICATION),
        ("could not read password", OutputCategory.AUTHENTICATION),
        ("terminal prompts disabled", OutputCategory.AUTHENTICATION),
        ("permission denied", OutputCategory.AUTHENTICATION),
        ("requested url returned error: 403", OutputCategory.AUTHENTICATION),
        ("requested url returned error: 401", OutputCategory.AUTHENTICATION),

        # Network
        ("could not resolve host", OutputCategory.NETWORK),
        ("connection refused", OutputCategory.NETWORK),
        ("connection timed out", OutputCategory.NETWORK),
        ("network is unreachable", OutputCategory.NETWORK),
        ("no route to host", OutputCategory.NETWORK),
        ("temporary failure in name resolution", OutputCategory.NETWORK),
    ]
