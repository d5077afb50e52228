"""
Claim record store.

Owns the persisted claim collection and every rule that keeps it consistent:
claim id generation, defaults, partial-update merging, numeric/enum coercion
and the derived audit timeline.

Each operation loads the whole collection from the backend, mutates it in
memory and saves it back once. Nothing is cached between calls, so the store
is safe to share across requests under a single writer; concurrent writers
can lose updates (last save wins).
"""

import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .backends import StoreBackend, create_backend
from .errors import DuplicateClaimError
from .models import (
    FINANCIAL_FIELDS,
    UNKNOWN_LINE,
    Claim,
    ClaimCollection,
    ClaimFinancials,
    ClaimMeta,
    ClaimReport,
    Draft,
    DraftInput,
    DraftStatus,
    FinancialsPatch,
    MetaPatch,
    Reminder,
    ReminderInput,
    ReminderStatus,
    Task,
    TaskStatus,
    TimelineEntry,
    TimelineType,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2026-01-19T08:30:00.000Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce(value: Any, model: Type[ModelT]) -> Optional[ModelT]:
    """Accept either the typed input model or a plain mapping."""
    if value is None or isinstance(value, model):
        return value
    return model.model_validate(value)


class ClaimStore:
    """
    Persistent store for marine insurance claims.

    Usage:
        store = ClaimStore(JsonFileBackend(Path("data/claims.json")))

        # Create from a generated report
        claim = store.create_claim("Vessel grounded near Qingdao", report)

        # Read
        claim = store.get_claim(claim.id)
        claims = store.list_claims()

        # Patch status/stage/financials
        store.update_claim_fields(claim.id, meta={"status": "closed"})

    Operations that target a missing claim (or a missing task, reminder or
    draft) return None and leave the stored collection untouched.
    """

    def __init__(
        self,
        backend: Optional[StoreBackend] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the claim store.

        Args:
            backend: Persistence backend (default: built from settings)
            clock: Returns the current time; injectable for tests
        """
        self.backend = backend or create_backend()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _now(self) -> str:
        return format_timestamp(self._clock())

    def _generate_claim_id(self, counter: int) -> str:
        """Claim id from the UTC creation date and the collection counter."""
        moment = self._clock()
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return f"NC-{moment:%Y%m%d}-{counter:04d}"

    @staticmethod
    def _new_sub_id(claim_id: str, tag: str, taken: Iterable[str]) -> str:
        """Random id scoped to one claim, regenerated until it is unused there."""
        taken = set(taken)
        while True:
            candidate = f"{claim_id}-{tag}{uuid.uuid4().hex[:6].upper()}"
            if candidate not in taken:
                return candidate

    def _push_timeline(self, claim: Claim, entry_type: TimelineType, message: str) -> TimelineEntry:
        entry = TimelineEntry(
            id=self._new_sub_id(claim.id, "TL-", (e.id for e in claim.timeline)),
            type=entry_type.value,
            message=message,
            created_at=self._now(),
        )
        claim.timeline.insert(0, entry)
        return entry

    def _load_claim(self, claim_id: str) -> tuple[ClaimCollection, Optional[Claim]]:
        collection = self.backend.load()
        return collection, collection.find(claim_id)

    def _commit(self, collection: ClaimCollection, claim: Claim) -> None:
        claim.updated_at = self._now()
        self.backend.save(collection)

    def _prepare_tasks(self, claim_id: str, tasks: Optional[Iterable[Any]], created_at: str) -> list[Task]:
        """Normalize tasks supplied at creation; keep unique ids, assign the rest."""
        prepared: list[Task] = []
        taken: set[str] = set()
        for item in tasks or []:
            task = item.model_copy() if isinstance(item, Task) else Task.model_validate(item)
            if not task.id or task.id in taken:
                task.id = self._new_sub_id(claim_id, "T", taken)
            if not task.created_at:
                task.created_at = created_at
            taken.add(task.id)
            prepared.append(task)
        return prepared

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_claim(
        self,
        narrative: str,
        report: Union[ClaimReport, dict, None] = None,
        tasks: Optional[Iterable[Union[Task, dict]]] = None,
        meta: Union[MetaPatch, dict, None] = None,
        financials: Union[FinancialsPatch, dict, None] = None,
        claim_id: Optional[str] = None,
    ) -> Claim:
        """
        Create and persist a new claim.

        Args:
            narrative: Free-text incident description (must not be blank)
            report: Structured report from the report generator
            tasks: Checklist items to seed the claim with
            meta: Partial meta overriding the defaults
            financials: Partial financials overriding the defaults
            claim_id: Explicit id; generated as NC-YYYYMMDD-NNNN when omitted

        Returns:
            The created Claim

        Raises:
            ValueError: If the narrative is blank
            DuplicateClaimError: If an explicit claim_id is already in use
        """
        if not narrative or not narrative.strip():
            raise ValueError("narrative cannot be empty")

        meta_patch = _coerce(meta, MetaPatch)
        financials_patch = _coerce(financials, FinancialsPatch)

        collection = self.backend.load()
        collection.counter += 1

        taken = collection.claim_ids()
        explicit_id = (claim_id or "").strip()
        if explicit_id:
            if explicit_id in taken:
                raise DuplicateClaimError(explicit_id)
            new_id = explicit_id
        else:
            new_id = self._generate_claim_id(collection.counter)
            # An earlier explicit id may have taken this slot
            while new_id in taken:
                collection.counter += 1
                new_id = self._generate_claim_id(collection.counter)

        now = self._now()
        claim_report = ClaimReport.build(narrative, report, now)

        meta_data = {
            "line_primary": claim_report.potential_claims[0] if claim_report.potential_claims else UNKNOWN_LINE,
        }
        if meta_patch is not None:
            meta_data.update(meta_patch.changes())
        financials_data = financials_patch.changes() if financials_patch is not None else {}

        claim = Claim(
            id=new_id,
            created_at=now,
            updated_at=now,
            narrative=narrative,
            report=claim_report,
            meta=ClaimMeta.model_validate(meta_data),
            financials=ClaimFinancials.model_validate(financials_data),
            tasks=self._prepare_tasks(new_id, tasks, now),
        )
        self._push_timeline(claim, TimelineType.CREATED, "Claim created.")

        collection.claims.insert(0, claim)
        self.backend.save(collection)

        logger.info(f"Created claim {claim.id} ({claim.meta.line_primary}, {len(claim.tasks)} tasks)")
        return claim

    def get_claim(self, claim_id: str) -> Optional[Claim]:
        """
        Retrieve a claim by ID.

        Returns:
            Claim or None if not found
        """
        return self.backend.load().find(claim_id)

    def list_claims(self, status: Optional[str] = None) -> list[Claim]:
        """
        List claims newest first by creation time.

        Claims created at the same instant keep their insertion order
        (most recently inserted first).

        Args:
            status: Only return claims with this meta status
        """
        claims = self.backend.load().claims
        if status:
            claims = [c for c in claims if c.meta.status == status]
        return sorted(claims, key=lambda c: c.created_at, reverse=True)

    def count_claims(self, status: Optional[str] = None) -> int:
        """Count claims, optionally by status."""
        return len(self.list_claims(status=status))

    # ------------------------------------------------------------------
    # Field patch
    # ------------------------------------------------------------------

    def update_claim_fields(
        self,
        claim_id: str,
        meta: Union[MetaPatch, dict, None] = None,
        financials: Union[FinancialsPatch, dict, None] = None,
    ) -> Optional[Claim]:
        """
        Merge partial meta and financials into a claim.

        Only the keys present in each patch change. An unrecognized status or
        stage becomes the default (open / intake), not the previous value.
        Financial amounts are coerced to finite numbers (0 otherwise).

        Timeline: one status_changed and/or stage_changed entry when those
        values changed, and a single financials_updated entry when any
        financial field changed.

        With neither patch supplied the claim is returned as stored: no
        timeline entry, no save, updatedAt unchanged.

        Returns:
            The updated Claim, or None if the claim does not exist
        """
        meta_patch = _coerce(meta, MetaPatch)
        financials_patch = _coerce(financials, FinancialsPatch)

        collection, claim = self._load_claim(claim_id)
        if claim is None:
            return None
        if meta_patch is None and financials_patch is None:
            return claim

        before_meta = claim.meta
        before_financials = claim.financials

        if meta_patch is not None:
            claim.meta = ClaimMeta.model_validate({**before_meta.model_dump(), **meta_patch.changes()})
        if financials_patch is not None:
            claim.financials = ClaimFinancials.model_validate(
                {**before_financials.model_dump(), **financials_patch.changes()}
            )

        if claim.meta.status != before_meta.status:
            self._push_timeline(
                claim, TimelineType.STATUS_CHANGED, f"Status: {before_meta.status} → {claim.meta.status}"
            )
        if claim.meta.stage != before_meta.stage:
            self._push_timeline(
                claim, TimelineType.STAGE_CHANGED, f"Stage: {before_meta.stage} → {claim.meta.stage}"
            )

        changed = [
            key
            for key in FINANCIAL_FIELDS
            if str(getattr(before_financials, key)) != str(getattr(claim.financials, key))
        ]
        if changed:
            self._push_timeline(
                claim, TimelineType.FINANCIALS_UPDATED, f"Financials updated: {', '.join(changed)}."
            )

        self._commit(collection, claim)
        logger.info(f"Updated fields on claim {claim_id}")
        return claim

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def update_task_status(
        self, claim_id: str, task_id: str, status: Union[TaskStatus, str]
    ) -> Optional[Task]:
        """
        Set a task's status (open or done).

        Returns:
            The updated Task, or None if the claim or task does not exist
            (nothing is saved in that case)

        Raises:
            ValueError: If status is not open/done
        """
        new_status = status.value if isinstance(status, TaskStatus) else status
        if new_status not in {s.value for s in TaskStatus}:
            raise ValueError(f"Invalid task status: {status!r} (expected open or done)")

        collection, claim = self._load_claim(claim_id)
        if claim is None:
            return None
        task = claim.find_task(task_id)
        if task is None:
            return None

        task.status = new_status
        self._push_timeline(claim, TimelineType.TASK_UPDATED, f"Task {task_id} marked {new_status}.")
        self._commit(collection, claim)
        logger.info(f"Task {task_id} on claim {claim_id} marked {new_status}")
        return task

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def add_reminder(self, claim_id: str, reminder: Union[ReminderInput, dict]) -> Optional[Reminder]:
        """
        Add a pending follow-up reminder to a claim.

        Returns:
            The new Reminder, or None if the claim does not exist
        """
        data = _coerce(reminder, ReminderInput)

        collection, claim = self._load_claim(claim_id)
        if claim is None:
            return None

        created = Reminder(
            id=self._new_sub_id(claim.id, "R", (r.id for r in claim.reminders)),
            created_at=self._now(),
            status=ReminderStatus.PENDING,
            due_at=data.due_at,
            to=data.to,
            channel=data.channel,
            subject=data.subject,
            context=data.context,
        )
        claim.reminders.insert(0, created)
        self._push_timeline(
            claim, TimelineType.REMINDER_ADDED, f"Reminder created for {created.to}: {created.subject}."
        )
        self._commit(collection, claim)
        logger.info(f"Added reminder {created.id} to claim {claim_id}")
        return created

    def mark_reminder_done(self, claim_id: str, reminder_id: str) -> Optional[Reminder]:
        """
        Mark a reminder done. Marking a done reminder again is allowed.

        Returns:
            The Reminder, or None if the claim or reminder does not exist
        """
        collection, claim = self._load_claim(claim_id)
        if claim is None:
            return None
        found = claim.find_reminder(reminder_id)
        if found is None:
            return None

        found.status = ReminderStatus.DONE.value
        self._push_timeline(claim, TimelineType.REMINDER_DONE, f"Reminder done: {found.subject}.")
        self._commit(collection, claim)
        logger.info(f"Reminder {reminder_id} on claim {claim_id} done")
        return found

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def add_draft(self, claim_id: str, draft: Union[DraftInput, dict]) -> Optional[Draft]:
        """
        Attach an email draft to a claim.

        Returns:
            The new Draft, or None if the claim does not exist
        """
        data = _coerce(draft, DraftInput)

        collection, claim = self._load_claim(claim_id)
        if claim is None:
            return None

        created = Draft(
            id=self._new_sub_id(claim.id, "D", (d.id for d in claim.drafts)),
            claim_id=claim.id,
            created_at=self._now(),
            type=data.type,
            status=DraftStatus.DRAFT,
            to=data.to,
            subject=data.subject,
            body=data.body,
        )
        claim.drafts.insert(0, created)
        self._push_timeline(claim, TimelineType.DRAFT_CREATED, f"Draft created: {created.subject}.")
        self._commit(collection, claim)
        logger.info(f"Added draft {created.id} to claim {claim_id}")
        return created

    def mark_draft_sent(self, claim_id: str, draft_id: str) -> Optional[Draft]:
        """
        Mark a draft sent and stamp sentAt.

        Returns:
            The Draft, or None if the claim or draft does not exist
        """
        collection, claim = self._load_claim(claim_id)
        if claim is None:
            return None
        found = claim.find_draft(draft_id)
        if found is None:
            return None

        found.status = DraftStatus.SENT.value
        found.sent_at = self._now()
        self._push_timeline(claim, TimelineType.DRAFT_SENT, f"Draft sent: {found.subject}.")
        self._commit(collection, claim)
        logger.info(f"Draft {draft_id} on claim {claim_id} sent")
        return found


# =============================================================================
# Convenience Functions
# =============================================================================

@lru_cache
def get_claim_store() -> ClaimStore:
    """Get the default claim store (singleton)."""
    store = ClaimStore()
    logger.info(f"Claim store backend: {store.backend.describe()}")
    return store


def create_claim(narrative: str, report: Any = None, **kwargs) -> Claim:
    """Create a claim in the default store."""
    return get_claim_store().create_claim(narrative, report, **kwargs)


def get_claim(claim_id: str) -> Optional[Claim]:
    """Get a claim from the default store."""
    return get_claim_store().get_claim(claim_id)


def list_claims(**kwargs) -> list[Claim]:
    """List claims from the default store."""
    return get_claim_store().list_claims(**kwargs)


def update_claim_fields(claim_id: str, meta: Any = None, financials: Any = None) -> Optional[Claim]:
    """Patch meta/financials in the default store."""
    return get_claim_store().update_claim_fields(claim_id, meta=meta, financials=financials)


def update_task_status(claim_id: str, task_id: str, status: str) -> Optional[Task]:
    """Set a task status in the default store."""
    return get_claim_store().update_task_status(claim_id, task_id, status)


def add_reminder(claim_id: str, reminder: Any) -> Optional[Reminder]:
    """Add a reminder in the default store."""
    return get_claim_store().add_reminder(claim_id, reminder)


def mark_reminder_done(claim_id: str, reminder_id: str) -> Optional[Reminder]:
    """Complete a reminder in the default store."""
    return get_claim_store().mark_reminder_done(claim_id, reminder_id)


def add_draft(claim_id: str, draft: Any) -> Optional[Draft]:
    """Add a draft in the default store."""
    return get_claim_store().add_draft(claim_id, draft)


def mark_draft_sent(claim_id: str, draft_id: str) -> Optional[Draft]:
    """Mark a draft sent in the default store."""
    return get_claim_store().mark_draft_sent(claim_id, draft_id)
