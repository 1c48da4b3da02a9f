"""Transient credential injection for git subprocesses."""

import os
import tempfile
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from ..credentials import Credentials


TOKEN_VARIABLE = "REPOPUSH_GIT_TOKEN"
USERNAME_VARIABLE = "REPOPUSH_GIT_USERNAME"

# The script never contains the secret; it echoes variables that exist only
# in the environment of the git process being run.
ASKPASS_SCRIPT = f"""#!/bin/sh
case "$1" in
  *Username*|*username*) printf '%s\\n' "${USERNAME_VARIABLE}" ;;
  *) printf '%s\\n' "${TOKEN_VARIABLE}" ;;
esac
"""

SSH_BATCH_COMMAND = "ssh -o BatchMode=yes"


@contextmanager
def askpass_environment(credentials: Credentials) -> Iterator[Dict[str, str]]:
    """
    Create a temporary askpass helper for one git call.

    Args:
        credentials: Token and account name to answer prompts with

    Yields:
        Environment variables to pass to the git subprocess
    """
    fd, script_path = tempfile.mkstemp(prefix="repopush-askpass-", suffix=".sh")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(ASKPASS_SCRIPT)
        os.chmod(script_path, 0o700)
        yield {
            "GIT_ASKPASS": script_path,
            "GIT_TERMINAL_PROMPT": "0",
            TOKEN_VARIABLE: credentials.token,
            USERNAME_VARIABLE: credentials.username,
        }
    finally:
        try:
            os.unlink(script_path)
        except FileNotFoundError:
            pass


@contextmanager
def transport_environment(protocol: str, credentials: Optional[Credentials]) -> Iterator[Dict[str, str]]:
    """
    Environment for one network git call.

    HTTPS calls get an askpass helper when credentials are available; SSH
    calls run ssh in batch mode unless the user configured their own command.
    """
    if protocol == "https" and credentials is not None:
        with askpass_environment(credentials) as env:
            yield env
        return

    env = {"GIT_TERMINAL_PROMPT": "0"}
    if protocol == "ssh" and "GIT_SSH_COMMAND" not in os.environ:
        env["GIT_SSH_COMMAND"] = SSH_BATCH_COMMAND
    yield env
