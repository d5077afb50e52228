"""Finance and reminder roll-ups across claims."""

from .dashboards import (
    FinanceBucket,
    FinanceSummary,
    OpenClaimExposure,
    PendingReminder,
    exposure,
    parse_timestamp,
    pending_reminders,
    summarize_finances,
)

__all__ = [
    "FinanceBucket",
    "FinanceSummary",
    "OpenClaimExposure",
    "PendingReminder",
    "exposure",
    "parse_timestamp",
    "pending_reminders",
    "summarize_finances",
]
