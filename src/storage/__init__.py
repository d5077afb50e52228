"""
Storage module for persisting claims.

Provides the claim record store and its backends:
- JSON file snapshot (local, default)
- Redis key-value blob (hosted deployments)
- In-memory snapshot (tests)
"""

from .backends import (
    JsonFileBackend,
    MemoryBackend,
    RedisBackend,
    StoreBackend,
    create_backend,
)
from .claim_store import (
    ClaimStore,
    add_draft,
    add_reminder,
    create_claim,
    get_claim,
    get_claim_store,
    list_claims,
    mark_draft_sent,
    mark_reminder_done,
    update_claim_fields,
    update_task_status,
)
from .errors import ClaimStoreError, DuplicateClaimError, StorageError
from .models import (
    Claim,
    ClaimCollection,
    ClaimFinancials,
    ClaimMeta,
    ClaimReport,
    ClaimStage,
    ClaimStatus,
    Draft,
    DraftInput,
    DraftType,
    FinancialsPatch,
    MetaPatch,
    Reminder,
    ReminderInput,
    Task,
    TimelineEntry,
    TimelineType,
    safe_number,
)

__all__ = [
    # Store
    "ClaimStore",
    "get_claim_store",
    "create_claim",
    "get_claim",
    "list_claims",
    "update_claim_fields",
    "update_task_status",
    "add_reminder",
    "mark_reminder_done",
    "add_draft",
    "mark_draft_sent",
    # Backends
    "StoreBackend",
    "JsonFileBackend",
    "RedisBackend",
    "MemoryBackend",
    "create_backend",
    # Errors
    "ClaimStoreError",
    "StorageError",
    "DuplicateClaimError",
    # Models
    "Claim",
    "ClaimCollection",
    "ClaimReport",
    "ClaimMeta",
    "ClaimFinancials",
    "ClaimStatus",
    "ClaimStage",
    "MetaPatch",
    "FinancialsPatch",
    "Task",
    "Reminder",
    "ReminderInput",
    "Draft",
    "DraftInput",
    "DraftType",
    "TimelineEntry",
    "TimelineType",
    "safe_number",
]
