"""
Replication 모듈 - 변경 감지, 삭제 감지, nested query 확장, checkpoint
"""
from .models import Change, ChangeType, CycleResult, ReplicationState
from .detector import ChangeDetector, compute_row_hash, normalize_row
from .deletion import resolve_deleted_ids
from .nested import NestedQueryExpander
from .checkpoint import CheckpointStore, MongoCheckpointStorage, create_checkpoint_store
from .router import LoggingEventRouter, MongoEventRouter, create_event_router
from .tag import format_tag

# Public API
__all__ = [
    # Models
    "Change",
    "ChangeType",
    "CycleResult",
    "ReplicationState",

    # Components
    "ChangeDetector",
    "compute_row_hash",
    "normalize_row",
    "resolve_deleted_ids",
    "NestedQueryExpander",
    "format_tag",

    # Checkpoint / Router
    "CheckpointStore",
    "MongoCheckpointStorage",
    "create_checkpoint_store",
    "LoggingEventRouter",
    "MongoEventRouter",
    "create_event_router"
]
