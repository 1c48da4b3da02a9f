"""Error types and categorization for git transport output."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class OutputCategory(Enum):
    """Categories of git transport results for appropriate handling."""
    OK = "ok"
    NON_FAST_FORWARD = "non_fast_forward"
    OVERSIZED_FILE = "oversized_file"
    UNTRACKED_CONFLICT = "untracked_conflict"
    AUTHENTICATION = "authentication"
    REMOTE_REF_MISSING = "remote_ref_missing"
    NETWORK = "network"
    UNKNOWN = "unknown"


class RecoveryAction(Enum):
    """Types of recovery actions that can be taken."""
    NONE = "none"
    PULL_AND_RETRY = "pull_and_retry"
    PROMOTE_AND_RETRY = "promote_and_retry"
    PROTECT_AND_RETRY = "protect_and_retry"
    USER_ACTION_REQUIRED = "user_action_required"
    ABORT = "abort"


@dataclass
class ErrorResolution:
    """Information about how to resolve a specific failure."""
    category: OutputCategory
    action: RecoveryAction
    user_message: str
    technical_message: str
    resolution_steps: List[str]
    max_retries: int = 0


@dataclass
class TransportResult:
    """
    Classified outcome of one network git call.

    Oversized and conflicting paths are extracted independently of the primary
    category because a single rejection can report both.
    """
    category: OutputCategory
    output: str
    status: int
    operation: str
    oversized_paths: List[str] = field(default_factory=list)
    conflict_paths: List[str] = field(default_factory=list)
    attempts: int = 1
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == 0
