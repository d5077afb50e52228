"""
Portfolio roll-ups over stored claims.

- Financial exposure by status, insurance line and vessel
- Pending reminders across all claims, overdue first

Single-currency view: amounts are summed as stored, whatever each claim's
currency says.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..storage.models import Claim, ClaimFinancials, ClaimStatus, ReminderStatus

logger = logging.getLogger(__name__)

NO_VALUE = "-"


# =============================================================================
# Finance
# =============================================================================


def exposure(financials: ClaimFinancials) -> float:
    """Outstanding exposure: reserve - paid - deductible + expected - received recoveries."""
    return (
        financials.reserve
        - financials.paid
        - financials.deductible
        + financials.recovery_expected
        - financials.recovery_received
    )


@dataclass
class FinanceBucket:
    """Summed financials for a group of claims."""
    key: str = ""
    count: int = 0
    claim_value: float = 0.0
    reserve: float = 0.0
    paid: float = 0.0
    deductible: float = 0.0
    recovery_expected: float = 0.0
    recovery_received: float = 0.0
    exposure: float = 0.0

    def add(self, claim: Claim) -> None:
        f = claim.financials
        self.count += 1
        self.claim_value += f.claim_value
        self.reserve += f.reserve
        self.paid += f.paid
        self.deductible += f.deductible
        self.recovery_expected += f.recovery_expected
        self.recovery_received += f.recovery_received
        self.exposure += exposure(f)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OpenClaimExposure:
    """One row of the top open exposures table."""
    id: str
    vessel: str
    line: str
    status: str
    claim_value: float
    reserve: float
    paid: float
    deductible: float
    exposure: float
    updated_at: str


@dataclass
class FinanceSummary:
    """Totals and breakdowns for the finance dashboard."""
    currency: str = "USD"
    totals: FinanceBucket = field(default_factory=FinanceBucket)
    open_totals: FinanceBucket = field(default_factory=FinanceBucket)
    closed_totals: FinanceBucket = field(default_factory=FinanceBucket)
    by_status: list[FinanceBucket] = field(default_factory=list)
    by_line: list[FinanceBucket] = field(default_factory=list)
    by_vessel: list[FinanceBucket] = field(default_factory=list)
    top_open: list[OpenClaimExposure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _ranked(buckets: dict[str, FinanceBucket]) -> list[FinanceBucket]:
    return sorted(buckets.values(), key=lambda b: b.exposure, reverse=True)


def summarize_finances(claims: Iterable[Claim], top: int = 10) -> FinanceSummary:
    """
    Roll financials up across claims.

    Args:
        claims: Claims to summarize (typically ClaimStore.list_claims())
        top: Number of open claims to list by exposure

    Returns:
        FinanceSummary with buckets sorted by exposure, highest first
    """
    claims = list(claims)
    summary = FinanceSummary(currency=claims[0].financials.currency if claims else "USD")

    by_status: dict[str, FinanceBucket] = {}
    by_line: dict[str, FinanceBucket] = {}
    by_vessel: dict[str, FinanceBucket] = {}

    for claim in claims:
        summary.totals.add(claim)
        status = claim.meta.status
        if status == ClaimStatus.CLOSED.value:
            summary.closed_totals.add(claim)
        else:
            summary.open_totals.add(claim)

        line = claim.meta.line_primary or NO_VALUE
        vessel = claim.report.vessel or NO_VALUE
        by_status.setdefault(status, FinanceBucket(key=status)).add(claim)
        by_line.setdefault(line, FinanceBucket(key=line)).add(claim)
        by_vessel.setdefault(vessel, FinanceBucket(key=vessel)).add(claim)

    summary.totals.key = "all"
    summary.open_totals.key = "open"
    summary.closed_totals.key = "closed"
    summary.by_status = _ranked(by_status)
    summary.by_line = _ranked(by_line)
    summary.by_vessel = _ranked(by_vessel)

    open_rows = [
        OpenClaimExposure(
            id=c.id,
            vessel=c.report.vessel or NO_VALUE,
            line=c.meta.line_primary or NO_VALUE,
            status=c.meta.status,
            claim_value=c.financials.claim_value,
            reserve=c.financials.reserve,
            paid=c.financials.paid,
            deductible=c.financials.deductible,
            exposure=exposure(c.financials),
            updated_at=c.updated_at or c.created_at,
        )
        for c in claims
        if c.meta.status != ClaimStatus.CLOSED.value
    ]
    summary.top_open = sorted(open_rows, key=lambda r: r.exposure, reverse=True)[:top]
    return summary


# =============================================================================
# Reminders
# =============================================================================


@dataclass
class PendingReminder:
    """A not-yet-done reminder with its claim context."""
    claim_id: str
    vessel: str
    line: str
    claim_status: str
    reminder_id: str
    due_at: str
    to: str
    channel: str
    subject: str
    context: str
    is_overdue: bool

    def to_dict(self) -> dict:
        return asdict(self)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO timestamp (a trailing Z is accepted); naive values are UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def pending_reminders(claims: Iterable[Claim], now: Optional[datetime] = None) -> list[PendingReminder]:
    """
    Collect pending reminders across claims.

    Overdue reminders come first, then the rest by due time. Reminders whose
    due date cannot be parsed are never overdue and sort last.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    rows: list[tuple[PendingReminder, Optional[datetime]]] = []
    for claim in claims:
        for reminder in claim.reminders:
            if reminder.status == ReminderStatus.DONE.value:
                continue
            due = parse_timestamp(reminder.due_at)
            rows.append((
                PendingReminder(
                    claim_id=claim.id,
                    vessel=claim.report.vessel or NO_VALUE,
                    line=claim.meta.line_primary or NO_VALUE,
                    claim_status=claim.meta.status,
                    reminder_id=reminder.id,
                    due_at=reminder.due_at,
                    to=reminder.to,
                    channel=reminder.channel,
                    subject=reminder.subject,
                    context=reminder.context,
                    is_overdue=due is not None and due < now,
                ),
                due,
            ))

    rows.sort(key=lambda row: (
        not row[0].is_overdue,
        row[1] is None,
        row[1] or now,
    ))
    return [row for row, _ in rows]
