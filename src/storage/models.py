"""
Claim record schema.

Pydantic models for the persisted claim collection. Field names on the wire
follow the stored snapshot (camelCase timestamps, snake_case meta/financials);
Python attributes are snake_case throughout.

The coercion rules that the store relies on live here:
- financial amounts go through ``safe_number`` (anything non-finite becomes 0)
- status/stage/channel/type values that are not recognized become the default
"""

import math
from enum import Enum
from typing import Any, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Enums
# ============================================================================


class ClaimStatus(str, Enum):
    """Coarse claim state."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class ClaimStage(str, Enum):
    """Position in the handling lifecycle, in order."""
    INTAKE = "intake"
    NOTIFICATION = "notification"
    SURVEY = "survey"
    DOCUMENTATION = "documentation"
    SETTLEMENT = "settlement"
    RECOVERY = "recovery"
    CLOSED = "closed"


class TaskStatus(str, Enum):
    OPEN = "open"
    DONE = "done"


class ReminderStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


class ReminderChannel(str, Enum):
    EMAIL = "email"
    CALL = "call"
    WHATSAPP = "whatsapp"


class DraftStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"


class DraftType(str, Enum):
    """Kind of outbound email."""
    REMINDER = "reminder"
    NOTIFICATION = "notification"
    UPDATE = "update"
    DEMAND = "demand"
    GENERAL = "general"
    TASK_FOLLOWUP = "task_followup"
    CLUB_NOTIFICATION = "club_notification"


class TimelineType(str, Enum):
    """Audit entry kinds."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    STAGE_CHANGED = "stage_changed"
    FINANCIALS_UPDATED = "financials_updated"
    TASK_UPDATED = "task_updated"
    REMINDER_ADDED = "reminder_added"
    REMINDER_DONE = "reminder_done"
    DRAFT_CREATED = "draft_created"
    DRAFT_SENT = "draft_sent"


DEFAULT_CURRENCY = "USD"
UNKNOWN_LINE = "unknown"

AMOUNT_FIELDS = (
    "claim_value",
    "reserve",
    "paid",
    "deductible",
    "recovery_expected",
    "recovery_received",
)
FINANCIAL_FIELDS = ("currency",) + AMOUNT_FIELDS
META_FIELDS = (
    "status",
    "stage",
    "line_primary",
    "reference_external",
    "handler",
    "counterparty",
)


# ============================================================================
# Coercion helpers
# ============================================================================


def safe_number(value: Any, fallback: float = 0.0) -> float:
    """
    Coerce a value to a finite float.

    Numbers and numeric strings are converted; booleans, None, unparsable
    strings, NaN and infinities return ``fallback``.
    """
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return number if math.isfinite(number) else fallback


def normalize_choice(value: Any, choices: Type[Enum], default: Enum) -> str:
    """Map a loosely formatted value onto an enum member's value, or the default."""
    if isinstance(value, choices):
        return value.value
    if isinstance(value, str):
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        if key in {member.value for member in choices}:
            return key
    return default.value


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class _Model(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )


# ============================================================================
# Report
# ============================================================================


class ClaimReport(_Model):
    """
    Structured incident report produced by the report generator.

    Extra keys are kept as-is so generator output is stored untouched.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    incident_type: str = "Unknown"
    date_time: str = ""
    location: str = "Unknown"
    vessel: str = "Unknown"
    summary: str = ""
    potential_claims: List[str] = Field(default_factory=list)
    immediate_actions: str = ""
    missing_information: str = ""
    coverage_reasoning: dict[str, str] = Field(default_factory=dict)
    documents_checklist: dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("incident_type", "location", "vessel", mode="before")
    @classmethod
    def _unknown_if_blank(cls, v: Any) -> str:
        return _text(v) or "Unknown"

    @field_validator("date_time", "summary", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)

    @field_validator("immediate_actions", "missing_information", mode="before")
    @classmethod
    def _join_lists(cls, v: Any) -> str:
        # Models sometimes answer with a list instead of a semicolon string
        if isinstance(v, (list, tuple)):
            return "; ".join(_text(item) for item in v if _text(item))
        return _text(v)

    @field_validator("potential_claims", mode="before")
    @classmethod
    def _lines(cls, v: Any) -> List[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [_text(item) for item in v if _text(item)]

    @field_validator("coverage_reasoning", mode="before")
    @classmethod
    def _reasoning(cls, v: Any) -> dict:
        if not isinstance(v, dict):
            return {}
        return {str(k): _text(text) for k, text in v.items()}

    @field_validator("documents_checklist", mode="before")
    @classmethod
    def _checklist(cls, v: Any) -> dict:
        if not isinstance(v, dict):
            return {}
        checklist = {}
        for line, docs in v.items():
            if isinstance(docs, str):
                docs = [docs]
            elif not isinstance(docs, (list, tuple)):
                docs = []
            checklist[str(line)] = [_text(d) for d in docs if _text(d)]
        return checklist

    @classmethod
    def build(cls, narrative: str, report: Any, created_at: str) -> "ClaimReport":
        """Fill report defaults that depend on the claim (summary, date/time)."""
        if isinstance(report, ClaimReport):
            data = report.model_dump()
        else:
            data = dict(report or {})
        data = {key: value for key, value in data.items() if value is not None}
        if not _text(data.get("date_time")):
            data["date_time"] = created_at
        if not _text(data.get("summary")):
            data["summary"] = narrative[:240]
        return cls.model_validate(data)


# ============================================================================
# Meta & Financials
# ============================================================================


class ClaimMeta(_Model):
    """Handling metadata: status, stage, line and parties."""

    status: ClaimStatus = ClaimStatus.OPEN
    stage: ClaimStage = ClaimStage.INTAKE
    line_primary: str = UNKNOWN_LINE
    reference_external: str = ""
    handler: str = ""
    counterparty: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> str:
        return normalize_choice(v, ClaimStatus, ClaimStatus.OPEN)

    @field_validator("stage", mode="before")
    @classmethod
    def _stage(cls, v: Any) -> str:
        return normalize_choice(v, ClaimStage, ClaimStage.INTAKE)

    @field_validator("line_primary", mode="before")
    @classmethod
    def _line(cls, v: Any) -> str:
        return _text(v) or UNKNOWN_LINE

    @field_validator("reference_external", "handler", "counterparty", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)


class ClaimFinancials(_Model):
    """Money tracked against the claim. All amounts are finite floats."""

    currency: str = DEFAULT_CURRENCY
    claim_value: float = 0.0
    reserve: float = 0.0
    paid: float = 0.0
    deductible: float = 0.0
    recovery_expected: float = 0.0
    recovery_received: float = 0.0

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: Any) -> str:
        return _text(v) or DEFAULT_CURRENCY

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def _amount(cls, v: Any) -> float:
        return safe_number(v)


class MetaPatch(_Model):
    """Partial meta update. Only keys that were set are merged."""

    status: Optional[str] = None
    stage: Optional[str] = None
    line_primary: Optional[str] = None
    reference_external: Optional[str] = None
    handler: Optional[str] = None
    counterparty: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> str:
        return normalize_choice(v, ClaimStatus, ClaimStatus.OPEN)

    @field_validator("stage", mode="before")
    @classmethod
    def _stage(cls, v: Any) -> str:
        return normalize_choice(v, ClaimStage, ClaimStage.INTAKE)

    @field_validator("line_primary", mode="before")
    @classmethod
    def _line(cls, v: Any) -> Optional[str]:
        # A blank line is "no override", not a reset to unknown
        return _text(v) or None

    @field_validator("reference_external", "handler", "counterparty", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class FinancialsPatch(_Model):
    """Partial financials update. Amounts are coerced like the stored record."""

    currency: Optional[str] = None
    claim_value: Optional[float] = None
    reserve: Optional[float] = None
    paid: Optional[float] = None
    deductible: Optional[float] = None
    recovery_expected: Optional[float] = None
    recovery_received: Optional[float] = None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, v: Any) -> str:
        return _text(v) or DEFAULT_CURRENCY

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def _amount(cls, v: Any) -> float:
        return safe_number(v)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ============================================================================
# Sub-entities
# ============================================================================


class Task(_Model):
    """Checklist item on a claim."""

    id: str = ""
    title: str
    status: TaskStatus = TaskStatus.OPEN
    created_at: str = Field(default="", alias="createdAt")
    due_at: Optional[str] = Field(default=None, alias="dueAt")

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> str:
        return normalize_choice(v, TaskStatus, TaskStatus.OPEN)


class Reminder(_Model):
    """
    Scheduled follow-up. Moves one way: pending -> done.

    Stored reminders may lack fields that ReminderInput requires (older
    records were written unchecked), so everything but the id has a default.
    """

    id: str
    created_at: str = Field(default="", alias="createdAt")
    status: ReminderStatus = ReminderStatus.PENDING
    due_at: str = Field(default="", alias="dueAt")
    to: str = ""
    channel: ReminderChannel = ReminderChannel.EMAIL
    subject: str = ""
    context: str = ""

    @field_validator("created_at", "due_at", "to", "subject", "context", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> str:
        return normalize_choice(v, ReminderStatus, ReminderStatus.PENDING)

    @field_validator("channel", mode="before")
    @classmethod
    def _channel(cls, v: Any) -> str:
        return normalize_choice(v, ReminderChannel, ReminderChannel.EMAIL)


class ReminderInput(_Model):
    """Caller-supplied reminder fields."""

    to: str
    subject: str
    due_at: str = Field(alias="dueAt")
    context: str = ""
    channel: ReminderChannel = ReminderChannel.EMAIL

    @field_validator("channel", mode="before")
    @classmethod
    def _channel(cls, v: Any) -> str:
        return normalize_choice(v, ReminderChannel, ReminderChannel.EMAIL)

    @field_validator("context", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)


class Draft(_Model):
    """Outbound email draft. Moves one way: draft -> sent. Lenient on load like Reminder."""

    id: str
    claim_id: str = Field(default="", alias="claimId")
    created_at: str = Field(default="", alias="createdAt")
    type: DraftType = DraftType.GENERAL
    status: DraftStatus = DraftStatus.DRAFT
    sent_at: Optional[str] = Field(default=None, alias="sentAt")
    to: str = ""
    subject: str = ""
    body: str = ""

    @field_validator("claim_id", "created_at", "to", "subject", "body", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> str:
        return normalize_choice(v, DraftType, DraftType.GENERAL)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, v: Any) -> str:
        return normalize_choice(v, DraftStatus, DraftStatus.DRAFT)


class DraftInput(_Model):
    """Caller-supplied draft fields."""

    type: DraftType = DraftType.GENERAL
    to: str
    subject: str
    body: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, v: Any) -> str:
        return normalize_choice(v, DraftType, DraftType.GENERAL)

    @field_validator("body", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> str:
        return _text(v)


class TimelineEntry(_Model):
    """
    Audit entry. Immutable once written.

    ``type`` is kept as plain text so entries written by older releases
    (e.g. "meta_updated") still load; new entries always use TimelineType.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, frozen=True)

    id: str
    type: str
    message: str
    created_at: str = Field(alias="createdAt")


# ============================================================================
# Aggregate
# ============================================================================


class Claim(_Model):
    """One insurance incident tracked from intake to closure."""

    id: str
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")
    narrative: str
    report: ClaimReport
    meta: ClaimMeta = Field(default_factory=ClaimMeta)
    financials: ClaimFinancials = Field(default_factory=ClaimFinancials)
    tasks: List[Task] = Field(default_factory=list)
    reminders: List[Reminder] = Field(default_factory=list)
    drafts: List[Draft] = Field(default_factory=list)
    timeline: List[TimelineEntry] = Field(default_factory=list)

    def find_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_reminder(self, reminder_id: str) -> Optional[Reminder]:
        return next((r for r in self.reminders if r.id == reminder_id), None)

    def find_draft(self, draft_id: str) -> Optional[Draft]:
        return next((d for d in self.drafts if d.id == draft_id), None)

    def to_dict(self) -> dict:
        """Wire/snapshot representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClaimCollection(_Model):
    """The whole persisted document: claim counter plus every claim, newest first."""

    counter: int = Field(default=0, ge=0)
    claims: List[Claim] = Field(default_factory=list)
    # Stored records that fail validation. Never served, written back as-is.
    unreadable: List[Any] = Field(default_factory=list, exclude=True)

    def find(self, claim_id: str) -> Optional[Claim]:
        return next((c for c in self.claims if c.id == claim_id), None)

    def claim_ids(self) -> set[str]:
        """Every id in the document, unreadable records included."""
        ids = {c.id for c in self.claims}
        ids.update(
            str(record["id"]) for record in self.unreadable
            if isinstance(record, dict) and record.get("id")
        )
        return ids

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        data["claims"].extend(self.unreadable)
        return data
