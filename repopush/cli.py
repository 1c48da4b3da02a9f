"""Command line entry point for repopush."""

import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from git import GitCommandError

from .config import Config, load_configuration
from .context import RunContext
from .credentials import CredentialProvider
from .errors import ConfigurationError, ErrorHandler, PublishError
from .git_sync.transport import CredentialedTransport
from .platform import is_git_lfs_available, normalize_path, validate_git_availability
from .provisioning import GitHubClient, GitHubProvisioner
from .publisher import Publisher, validate_action
from .releases import ReleasePublisher


EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_SIGINT = 130

app = typer.Typer(
    name="repopush",
    help="Publish a local directory tree to GitHub, optionally as linked sub-repositories",
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)


class StructuredFormatter(logging.Formatter):
    """Prefixes messages with the operation carried in ``extra``."""

    def format(self, record):
        if hasattr(record, 'operation'):
            record.msg = f"[{record.operation}] {record.msg}"
        return super().format(record)


def setup_logging(config: Config) -> None:
    """Send every repopush log record to stderr."""
    formatter = StructuredFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger('repopush')
    logger.setLevel(getattr(logging, config.log_level))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False


def apply_overrides(config: Config, allow_pull: bool, protocol: Optional[str],
                    log_level: Optional[str]) -> Config:
    """Apply command line flags on top of the environment configuration."""
    changes = {}
    if allow_pull:
        changes["allow_pull"] = True
    if protocol:
        changes["protocol"] = protocol
    if log_level:
        changes["log_level"] = log_level
    return dataclasses.replace(config, **changes) if changes else config


def _lookup_login(config: Config):
    def lookup(token: str) -> str:
        client = GitHubClient(token, config.api_url, config.http_timeout)
        try:
            return client.authenticated_login()
        finally:
            client.close()
    return lookup


def run_action(config: Config, root: Path, action: str) -> int:
    """
    Resolve credentials and run one action inside a run context.

    Returns:
        Process exit code
    """
    logger = logging.getLogger('repopush.cli')

    validate_action(action)
    git_ok, git_error = validate_git_availability()
    if not git_ok:
        raise ConfigurationError(git_error)
    if not is_git_lfs_available():
        logger.warning("git-lfs is not installed; oversized files cannot be moved to Git LFS automatically")

    credentials = CredentialProvider(root, config.github_owner, _lookup_login(config)).get()
    logger.debug(f"Publishing as {credentials.username}")

    with RunContext("repopush") as context:
        client = GitHubClient(credentials.token, config.api_url, config.http_timeout)
        try:
            transport = CredentialedTransport(config, context, credentials)
            publisher = Publisher(
                config,
                root,
                context,
                transport,
                provisioner=GitHubProvisioner(client, credentials.username),
                release_publisher=ReleasePublisher(client, credentials.username, transport)
            )
            publisher.run(action)
        finally:
            client.close()

    return EXIT_SUCCESS


@app.command()
def publish(
    action: str = typer.Argument(
        "push",
        help="push, push-subfolders, push-subfolders-releases, push-recursive or push-firefox-amo-github",
    ),
    path: Path = typer.Option(
        Path("."),
        "--path",
        help="Directory to publish",
    ),
    allow_pull: bool = typer.Option(
        False,
        "--allow-pull",
        help="Pull with rebase when the remote has commits the local branch lacks",
    ),
    protocol: Optional[str] = typer.Option(
        None,
        "--protocol",
        help="Remote protocol: https or ssh",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="DEBUG, INFO, WARNING, ERROR or CRITICAL",
    ),
) -> None:
    """
    Publish the directory to GitHub.

    Examples:
        repopush                        # push the current directory
        repopush push-subfolders        # every subdirectory as its own repository
        repopush push-recursive --path ~/projects
    """
    try:
        config = apply_overrides(load_configuration(), allow_pull, protocol,
                                 log_level.upper() if log_level else None)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_FAILURE)

    setup_logging(config)
    logger = logging.getLogger('repopush.cli')

    try:
        code = run_action(config, normalize_path(path), action)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        raise typer.Exit(EXIT_SIGINT)
    except (PublishError, GitCommandError, OSError) as e:
        ErrorHandler().handle_publish_error(e, {"action": action, "path": str(path)})
        raise typer.Exit(EXIT_FAILURE)

    raise typer.Exit(code)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
