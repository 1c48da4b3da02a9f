"""Git synchronization functionality for repopush."""

from .error_types import OutputCategory, TransportResult
from .large_files import LargeFilePromoter
from .performance_logger import PerformanceLogger
from .rebase_resolver import RebaseConflictResolver
from .remote_utils import RemoteEndpoint
from .safety_net import UntrackedFileSafetyNet
from .sync_decision import SyncDecision, SyncDecisionEngine, SyncRelationship, classify_relationship
from .transport import CredentialedTransport
from .utils import GitSyncResult, create_git_sync_result

__all__ = [
    'OutputCategory',
    'TransportResult',
    'LargeFilePromoter',
    'PerformanceLogger',
    'RebaseConflictResolver',
    'RemoteEndpoint',
    'UntrackedFileSafetyNet',
    'SyncDecision',
    'SyncDecisionEngine',
    'SyncRelationship',
    'classify_relationship',
    'CredentialedTransport',
    'GitSyncResult',
    'create_git_sync_result',
]
