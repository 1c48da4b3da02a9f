"""Configuration management for repopush."""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError


TRUE_VALUES = {"1", "true", "yes", "on"}

VALID_PROTOCOLS = ("https", "ssh")

DEFAULT_LFS_THRESHOLD_BYTES = 104857600


@dataclass
class Config:
    """Configuration class for a publishing run with validation and defaults."""

    # Synchronization policy
    allow_pull: bool = False
    branch: str = "main"

    # Remote endpoints
    protocol: str = "https"
    github_host: str = "github.com"
    github_owner: Optional[str] = None
    api_url: str = "https://api.github.com"
    http_timeout: float = 30.0

    # Subcontainers
    state_file: str = ".subcontainers"
    extra_excludes: List[str] = field(default_factory=list)
    private_prefix: str = "tmp_"
    rate_limit_pause: float = 2.0

    # Large files
    lfs_threshold_bytes: int = DEFAULT_LFS_THRESHOLD_BYTES

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.protocol = self.protocol.lower()
        if self.protocol not in VALID_PROTOCOLS:
            raise ConfigurationError(
                f"Invalid remote protocol: {self.protocol}. Must be one of {list(VALID_PROTOCOLS)}"
            )

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        self.log_level = self.log_level.upper()
        if self.log_level not in valid_log_levels:
            raise ConfigurationError(f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}")

        if not self.branch or not self.branch.strip():
            raise ConfigurationError("branch must not be empty")

        if not self.state_file or "/" in self.state_file:
            raise ConfigurationError("state_file must be a plain file name")

        if self.lfs_threshold_bytes <= 0:
            raise ConfigurationError("lfs_threshold_bytes must be positive")

        if self.rate_limit_pause < 0:
            raise ConfigurationError("rate_limit_pause must be non-negative")

        if self.http_timeout <= 0:
            raise ConfigurationError("http_timeout must be positive")

        self.api_url = self.api_url.rstrip("/")
        self.extra_excludes = [item.strip().strip("/") for item in self.extra_excludes if item.strip()]


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


def load_configuration() -> Config:
    """Load configuration from the environment (and a .env file when present)."""
    load_dotenv()

    allow_pull_env = os.getenv("REPOPUSH_ALLOW_PULL", os.getenv("ALLOW_PULL"))
    excludes_env = os.getenv("REPOPUSH_EXCLUDES", "")

    try:
        config = Config(
            allow_pull=_parse_bool(allow_pull_env),
            protocol=os.getenv("GITHUB_REMOTE_PROTOCOL", "https"),
            github_host=os.getenv("GITHUB_HOST", "github.com"),
            github_owner=os.getenv("GITHUB_OWNER") or None,
            api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            lfs_threshold_bytes=int(os.getenv("GIT_LFS_THRESHOLD_BYTES", str(DEFAULT_LFS_THRESHOLD_BYTES))),
            rate_limit_pause=float(os.getenv("REPOPUSH_RATE_LIMIT_PAUSE", "2.0")),
            extra_excludes=excludes_env.split(",") if excludes_env else [],
            private_prefix=os.getenv("REPOPUSH_PRIVATE_PREFIX", "tmp_"),
            log_level=os.getenv("REPOPUSH_LOG_LEVEL", "INFO")
        )
    except (ValueError, TypeError) as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(f"Configuration error: {e}")

    logging.getLogger('repopush.config').debug(
        f"Loaded configuration: protocol={config.protocol}, allow_pull={config.allow_pull}"
    )
    return config
