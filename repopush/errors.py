"""Error taxonomy for repopush publishing runs."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of publish failures for structured error handling."""
    POLICY_BLOCKED = "policy_blocked"
    TRANSPORT = "transport"
    DATA_LOSS_RISK = "data_loss_risk"
    UNRECOGNIZED_CONFLICT = "unrecognized_conflict"
    PARTIAL_FAILURE = "partial_failure"
    CONFIGURATION = "configuration"
    PROVISIONING = "provisioning"


class PublishError(Exception):
    """Base class for every unrecovered failure of a publishing run."""

    category = ErrorCategory.TRANSPORT
    default_code = "PUBLISH_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, output: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.output = output


class PolicyBlockedError(PublishError):
    """Local branch is behind or diverged and automatic pulling is disabled."""

    category = ErrorCategory.POLICY_BLOCKED
    default_code = "PULL_REQUIRED"


class SyncError(PublishError):
    """A required pull could not be completed."""

    default_code = "SYNC_FAILED"


class PushError(PublishError):
    """The final push of a repository was rejected."""

    default_code = "PUSH_FAILED"


class SubcontainerError(PublishError):
    """A subcontainer could not be prepared or pushed."""

    default_code = "SUBCONTAINER_FAILED"

    def __init__(self, subdirectory: str, message: str, error_code: Optional[str] = None,
                 output: Optional[str] = None):
        super().__init__(f"Subcontainer '{subdirectory}': {message}", error_code, output)
        self.subdirectory = subdirectory


class RebaseConflictError(PublishError):
    """A rebase stopped on a conflict that cannot be resolved automatically."""

    category = ErrorCategory.UNRECOGNIZED_CONFLICT
    default_code = "REBASE_ABORTED"

    def __init__(self, message: str, conflicted_paths: Optional[List[str]] = None,
                 output: Optional[str] = None):
        super().__init__(message, output=output)
        self.conflicted_paths = list(conflicted_paths or [])


class ConfigurationError(PublishError, ValueError):
    """Invalid configuration or missing local prerequisites."""

    category = ErrorCategory.CONFIGURATION
    default_code = "INVALID_CONFIGURATION"


class CredentialError(PublishError):
    """No usable GitHub credentials could be found."""

    category = ErrorCategory.CONFIGURATION
    default_code = "MISSING_CREDENTIALS"


class ProvisioningError(PublishError):
    """The remote repository could not be found or created."""

    category = ErrorCategory.PROVISIONING
    default_code = "PROVISIONING_FAILED"


@dataclass
class ErrorResponse:
    """Structured description of a failed run, used for the final report."""
    error: str
    error_code: str
    message: str
    timestamp: str
    category: str
    context: Optional[Dict[str, Any]] = None


class ErrorHandler:
    """Turns publish exceptions into logged, structured error responses."""

    def __init__(self):
        self.logger = logging.getLogger('repopush.error_handler')

    def handle_publish_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> ErrorResponse:
        """Log a failure that ended a run and describe it."""
        context = context or {}

        if isinstance(error, PublishError):
            error_code = error.error_code
            category = error.category.value
            message = error.message
        elif isinstance(error, OSError):
            error_code = "FILESYSTEM_ERROR"
            category = ErrorCategory.TRANSPORT.value
            message = f"File system error: {error}"
        else:
            error_code = "UNEXPECTED_ERROR"
            category = ErrorCategory.TRANSPORT.value
            message = f"Unexpected error: {error}"

        response = ErrorResponse(
            error="Publish failed",
            error_code=error_code,
            message=message,
            timestamp=datetime.now().isoformat(),
            category=category,
            context=context
        )

        self.logger.error(
            message,
            extra={
                'operation': context.get('action', 'publish'),
                'error_code': error_code
            }
        )

        output = getattr(error, 'output', None)
        if output:
            self.logger.error(f"Git output:\n{output.rstrip()}")

        conflicted = getattr(error, 'conflicted_paths', None)
        if conflicted:
            self.logger.error("Files in conflict: " + ", ".join(conflicted))

        return response
