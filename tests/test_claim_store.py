"""
Tests for the claim record store.

Covers:
- Claim creation: id format, defaults, coercion, seeded tasks and timeline
- Reads: round trip, ordering, filtering
- Field patches: merge rules, enum fallback, audit entries
- Tasks, reminders and drafts
- Persistence behaviour on failure
"""

import re
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.storage import (
    ClaimStore,
    DuplicateClaimError,
    JsonFileBackend,
    MemoryBackend,
    MetaPatch,
    StorageError,
)
from src.storage.claim_store import format_timestamp


CLAIM_ID_PATTERN = re.compile(r"^NC-\d{8}-\d{4}$")


class SpyBackend(MemoryBackend):
    """Memory backend that counts saves and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.saves = 0
        self.fail = False

    def save(self, collection):
        if self.fail:
            raise StorageError("disk full")
        self.saves += 1
        super().save(collection)


@pytest.fixture
def spy():
    return SpyBackend()


@pytest.fixture
def spy_store(spy, clock):
    return ClaimStore(spy, clock=clock)


def timeline_types(claim):
    return [entry.type for entry in claim.timeline]


# ============================================================================
# Test: Create
# ============================================================================


class TestCreateClaim:
    """Claim creation."""

    def test_ids_follow_pattern_and_increase(self, store):
        """Generated ids are NC-YYYYMMDD-NNNN with a strictly increasing counter."""
        ids = [store.create_claim(f"Incident {i}", {}).id for i in range(3)]

        assert all(CLAIM_ID_PATTERN.match(claim_id) for claim_id in ids)
        assert ids == ["NC-20260119-0001", "NC-20260119-0002", "NC-20260119-0003"]
        assert len(set(ids)) == 3

    def test_counter_is_persisted(self, store, backend):
        store.create_claim("First", {})
        store.create_claim("Second", {})

        assert backend.load().counter == 2

    def test_id_uses_utc_date(self, store, clock):
        """Creation date in the id is the UTC date, not the local one."""
        eastern = timezone(timedelta(hours=-5))
        clock.now = datetime(2026, 1, 19, 23, 30, tzinfo=eastern)

        claim = store.create_claim("Late evening incident", {})

        assert claim.id == "NC-20260120-0001"
        assert claim.created_at == "2026-01-20T04:30:00.000Z"

    def test_defaults_populated_from_empty_partials(self, store):
        """meta and financials are fully populated even when {} is supplied."""
        claim = store.create_claim("Engine failure off Busan", {}, meta={}, financials={})

        assert claim.meta.model_dump() == {
            "status": "open",
            "stage": "intake",
            "line_primary": "unknown",
            "reference_external": "",
            "handler": "",
            "counterparty": "",
        }
        assert claim.financials.model_dump() == {
            "currency": "USD",
            "claim_value": 0.0,
            "reserve": 0.0,
            "paid": 0.0,
            "deductible": 0.0,
            "recovery_expected": 0.0,
            "recovery_received": 0.0,
        }
        assert claim.tasks == []
        assert claim.reminders == []
        assert claim.drafts == []

    def test_report_defaults(self, store):
        narrative = "x" * 300
        claim = store.create_claim(narrative, None)

        assert claim.report.incident_type == "Unknown"
        assert claim.report.vessel == "Unknown"
        assert claim.report.location == "Unknown"
        assert claim.report.summary == "x" * 240
        assert claim.report.date_time == claim.created_at
        assert claim.report.potential_claims == []
        assert claim.report.coverage_reasoning == {}

    def test_report_extra_keys_preserved(self, store):
        claim = store.create_claim("Collision in fog", {"potential_claims": ["P&I"], "weather": "fog"})

        assert claim.to_dict()["report"]["weather"] == "fog"

    def test_line_primary_from_first_potential_claim(self, store, grounding_report):
        grounding_report["potential_claims"] = ["H&M", "P&I"]
        claim = store.create_claim("Vessel grounded near Qingdao", grounding_report)

        assert claim.meta.line_primary == "H&M"

    def test_overrides_are_coerced(self, store):
        """Supplied meta/financials go through enum and number coercion."""
        claim = store.create_claim(
            "Cargo wet damage",
            {"potential_claims": ["Cargo"]},
            meta={"status": "In-Progress", "stage": "bogus", "handler": "  J. Smith  "},
            financials={"reserve": "1500", "paid": "abc", "deductible": float("nan"), "currency": "EUR"},
        )

        assert claim.meta.status == "in_progress"
        assert claim.meta.stage == "intake"
        assert claim.meta.handler == "J. Smith"
        assert claim.meta.line_primary == "Cargo"
        assert claim.financials.reserve == 1500.0
        assert claim.financials.paid == 0.0
        assert claim.financials.deductible == 0.0
        assert claim.financials.currency == "EUR"

    def test_seeds_created_timeline_entry(self, store):
        claim = store.create_claim("Fire in engine room", {})

        assert len(claim.timeline) == 1
        entry = claim.timeline[0]
        assert entry.type == "created"
        assert entry.message == "Claim created."
        assert entry.id.startswith(f"{claim.id}-TL-")
        assert entry.created_at == claim.created_at

    def test_blank_narrative_rejected(self, store, backend):
        with pytest.raises(ValueError):
            store.create_claim("   ", {})

        assert backend.load().counter == 0

    def test_explicit_id(self, store):
        claim = store.create_claim("Explicit", {}, claim_id="  LEGACY-42 ")

        assert claim.id == "LEGACY-42"
        assert store.get_claim("LEGACY-42") is not None

    def test_duplicate_explicit_id_rejected(self, store, backend):
        store.create_claim("First", {}, claim_id="LEGACY-42")

        with pytest.raises(DuplicateClaimError):
            store.create_claim("Second", {}, claim_id="LEGACY-42")

        assert len(backend.load().claims) == 1

    def test_generated_id_skips_taken_slot(self, store):
        store.create_claim("Imported", {}, claim_id="NC-20260119-0002")

        claim = store.create_claim("New", {})

        assert claim.id == "NC-20260119-0003"

    def test_tasks_get_ids_and_timestamps(self, store):
        claim = store.create_claim(
            "Grounding",
            {},
            tasks=[
                {"title": "Appoint surveyor"},
                {"id": "T-1", "title": "Notify club", "status": "done"},
                {"id": "T-1", "title": "Duplicate id"},
            ],
        )

        first, second, third = claim.tasks
        assert first.id.startswith(f"{claim.id}-T")
        assert second.id == "T-1"
        assert third.id not in (first.id, second.id)
        assert [t.status for t in claim.tasks] == ["open", "done", "open"]
        assert all(t.created_at == claim.created_at for t in claim.tasks)


# ============================================================================
# Test: Read
# ============================================================================


class TestReadClaims:
    """get_claim / list_claims."""

    def test_round_trip(self, store, grounding_report):
        created = store.create_claim(
            "Vessel grounded near Qingdao",
            grounding_report,
            tasks=[{"title": "Appoint surveyor", "dueAt": "2026-01-20T08:00:00Z"}],
        )

        fetched = store.get_claim(created.id)

        assert fetched.to_dict() == created.to_dict()

    def test_missing_claim_is_none(self, store):
        assert store.get_claim("NC-20260101-0001") is None

    def test_reads_do_not_save(self, spy_store, spy):
        claim = spy_store.create_claim("Incident", {})
        saves = spy.saves

        spy_store.get_claim(claim.id)
        spy_store.list_claims()

        assert spy.saves == saves

    def test_list_newest_created_first(self, store, clock):
        first = store.create_claim("First", {})
        clock.advance(minutes=5)
        second = store.create_claim("Second", {})
        clock.advance(minutes=5)
        # Updating the older claim does not move it up
        store.update_claim_fields(first.id, meta={"handler": "Ops"})

        assert [c.id for c in store.list_claims()] == [second.id, first.id]

    def test_list_ties_keep_insertion_order(self, store):
        first = store.create_claim("First", {})
        second = store.create_claim("Second", {})

        assert [c.id for c in store.list_claims()] == [second.id, first.id]

    def test_list_by_status(self, store):
        open_claim = store.create_claim("Open", {})
        closed_claim = store.create_claim("Closed", {}, meta={"status": "closed"})

        assert [c.id for c in store.list_claims(status="closed")] == [closed_claim.id]
        assert [c.id for c in store.list_claims(status="open")] == [open_claim.id]
        assert store.count_claims() == 2


# ============================================================================
# Test: Field patch
# ============================================================================


class TestUpdateClaimFields:
    """Partial meta/financials updates."""

    def test_missing_claim(self, store):
        assert store.update_claim_fields("NC-20260101-0001", meta={"status": "closed"}) is None

    def test_partial_financials_keep_other_fields(self, store):
        claim = store.create_claim("Incident", {}, financials={"reserve": 1000, "claim_value": 5000})

        updated = store.update_claim_fields(claim.id, financials={"paid": 500})

        assert updated.financials.paid == 500
        assert updated.financials.reserve == 1000
        assert updated.financials.claim_value == 5000
        assert updated.financials.currency == "USD"
        assert store.get_claim(claim.id).financials.paid == 500

    def test_non_numeric_amount_becomes_zero(self, store):
        claim = store.create_claim("Incident", {}, financials={"paid": 300})

        updated = store.update_claim_fields(claim.id, financials={"paid": "abc"})

        assert updated.financials.paid == 0
        assert isinstance(updated.financials.paid, float)

    def test_status_and_stage_change_entries(self, store):
        """One entry per changed area, never more than one financials entry."""
        claim = store.create_claim("Incident", {})

        updated = store.update_claim_fields(
            claim.id,
            meta={"status": "in_progress", "stage": "survey"},
            financials={"reserve": 2000, "paid": 100, "deductible": 50},
        )

        types = timeline_types(updated)
        assert len(updated.timeline) == 4
        assert types.count("status_changed") == 1
        assert types.count("stage_changed") == 1
        assert types.count("financials_updated") == 1
        messages = [e.message for e in updated.timeline]
        assert "Status: open → in_progress" in messages
        assert "Stage: intake → survey" in messages
        assert "Financials updated: reserve, paid, deductible." in messages

    def test_newest_entry_first(self, store, clock):
        claim = store.create_claim("Incident", {})
        clock.advance(minutes=1)

        updated = store.update_claim_fields(claim.id, meta={"status": "closed"})

        assert timeline_types(updated) == ["status_changed", "created"]

    def test_invalid_enum_falls_back_to_default(self, store):
        """An unrecognized status/stage becomes open/intake, not the prior value."""
        claim = store.create_claim("Incident", {}, meta={"status": "closed", "stage": "settlement"})

        updated = store.update_claim_fields(claim.id, meta={"status": "bogus", "stage": "nope"})

        assert updated.meta.status == "open"
        assert updated.meta.stage == "intake"
        messages = [e.message for e in updated.timeline]
        assert "Status: closed → open" in messages
        assert "Stage: settlement → intake" in messages

    def test_unchanged_values_bump_updated_at_without_entries(self, spy_store, spy, clock):
        claim = spy_store.create_claim("Incident", {})
        clock.advance(minutes=10)
        saves = spy.saves

        updated = spy_store.update_claim_fields(claim.id, meta={"status": "open"}, financials={"paid": "0"})

        assert timeline_types(updated) == ["created"]
        assert updated.updated_at == format_timestamp(clock())
        assert updated.updated_at != claim.updated_at
        assert spy.saves == saves + 1

    def test_no_patch_is_read_through(self, spy_store, spy, clock):
        """Neither meta nor financials: no save, no entry, updatedAt untouched."""
        claim = spy_store.create_claim("Incident", {})
        clock.advance(minutes=10)
        saves = spy.saves

        result = spy_store.update_claim_fields(claim.id)

        assert result.to_dict() == claim.to_dict()
        assert spy.saves == saves

    def test_other_meta_fields_stored_without_entry(self, store):
        claim = store.create_claim("Incident", {})

        updated = store.update_claim_fields(
            claim.id, meta={"handler": "A. Chen", "reference_external": "CLUB-991", "counterparty": "Owners"}
        )

        assert updated.meta.handler == "A. Chen"
        assert updated.meta.reference_external == "CLUB-991"
        assert updated.meta.counterparty == "Owners"
        assert timeline_types(updated) == ["created"]

    def test_unknown_keys_dropped(self, store):
        claim = store.create_claim("Incident", {})

        updated = store.update_claim_fields(claim.id, meta={"colour": "red"}, financials={"fx_rate": 1.2})

        assert "colour" not in updated.to_dict()["meta"]
        assert "fx_rate" not in updated.to_dict()["financials"]

    def test_blank_line_does_not_reset_primary_line(self, store, grounding_report):
        claim = store.create_claim("Vessel grounded near Qingdao", grounding_report)

        updated = store.update_claim_fields(claim.id, meta={"line_primary": ""})

        assert updated.meta.line_primary == "H&M"

    def test_accepts_typed_patch(self, store):
        claim = store.create_claim("Incident", {})

        updated = store.update_claim_fields(claim.id, meta=MetaPatch(stage="notification"))

        assert updated.meta.stage == "notification"
        assert updated.meta.status == "open"


# ============================================================================
# Test: Tasks
# ============================================================================


class TestTasks:
    """Task status updates."""

    @pytest.fixture
    def claim(self, store):
        return store.create_claim(
            "Grounding",
            {},
            tasks=[{"id": "T-1", "title": "Appoint surveyor", "dueAt": "2026-01-21T00:00:00Z"}],
        )

    def test_marks_task_done(self, store, claim, clock):
        clock.advance(hours=1)

        task = store.update_task_status(claim.id, "T-1", "done")

        assert task.status == "done"
        assert task.title == "Appoint surveyor"
        assert task.due_at == "2026-01-21T00:00:00Z"
        stored = store.get_claim(claim.id)
        assert stored.tasks[0].status == "done"
        assert stored.timeline[0].type == "task_updated"
        assert stored.timeline[0].message == "Task T-1 marked done."
        assert stored.updated_at == format_timestamp(clock())

    def test_missing_task_leaves_claim_unchanged(self, spy_store, spy):
        claim = spy_store.create_claim("Grounding", {}, tasks=[{"id": "T-1", "title": "Survey"}])
        saves = spy.saves

        assert spy_store.update_task_status(claim.id, "missing-task", "done") is None

        assert spy.saves == saves
        assert spy_store.get_claim(claim.id).to_dict() == claim.to_dict()

    def test_missing_claim(self, store):
        assert store.update_task_status("NC-20260101-0001", "missing-task", "done") is None

    def test_invalid_status_rejected(self, store, claim):
        with pytest.raises(ValueError):
            store.update_task_status(claim.id, "T-1", "finished")


# ============================================================================
# Test: Reminders
# ============================================================================


class TestReminders:
    """Reminder lifecycle."""

    def reminder(self, **overrides):
        data = {
            "to": "surveyor@example.com",
            "subject": "Survey report",
            "context": "Chase the preliminary report",
            "dueAt": "2026-01-20T08:30:00.000Z",
        }
        data.update(overrides)
        return data

    def test_add_reminder(self, store):
        claim = store.create_claim("Incident", {})

        reminder = store.add_reminder(claim.id, self.reminder())

        assert reminder.id.startswith(f"{claim.id}-R")
        assert reminder.status == "pending"
        assert reminder.channel == "email"
        assert reminder.due_at == "2026-01-20T08:30:00.000Z"
        stored = store.get_claim(claim.id)
        assert [r.id for r in stored.reminders] == [reminder.id]
        assert stored.timeline[0].type == "reminder_added"
        assert "surveyor@example.com" in stored.timeline[0].message
        assert "Survey report" in stored.timeline[0].message

    def test_newest_reminder_first(self, store):
        claim = store.create_claim("Incident", {})
        first = store.add_reminder(claim.id, self.reminder(subject="First"))
        second = store.add_reminder(claim.id, self.reminder(subject="Second"))

        assert [r.id for r in store.get_claim(claim.id).reminders] == [second.id, first.id]

    def test_channel_normalized(self, store):
        claim = store.create_claim("Incident", {})

        assert store.add_reminder(claim.id, self.reminder(channel="WhatsApp")).channel == "whatsapp"
        assert store.add_reminder(claim.id, self.reminder(channel="pigeon")).channel == "email"

    def test_add_to_missing_claim(self, store):
        assert store.add_reminder("NC-20260101-0001", self.reminder()) is None

    def test_missing_fields_rejected(self, store):
        claim = store.create_claim("Incident", {})

        with pytest.raises(ValidationError):
            store.add_reminder(claim.id, {"to": "someone"})

    def test_mark_done_is_idempotent(self, store):
        claim = store.create_claim("Incident", {})
        reminder = store.add_reminder(claim.id, self.reminder())

        first = store.mark_reminder_done(claim.id, reminder.id)
        second = store.mark_reminder_done(claim.id, reminder.id)

        assert first.status == "done"
        assert second.status == "done"
        stored = store.get_claim(claim.id)
        assert len(stored.reminders) == 1
        assert stored.timeline[0].type == "reminder_done"
        assert stored.timeline[0].message == "Reminder done: Survey report."

    def test_mark_missing_reminder(self, store):
        claim = store.create_claim("Incident", {})

        assert store.mark_reminder_done(claim.id, "nope") is None
        assert store.mark_reminder_done("NC-20260101-0001", "nope") is None


# ============================================================================
# Test: Drafts
# ============================================================================


class TestDrafts:
    """Draft lifecycle."""

    def test_add_draft(self, store):
        claim = store.create_claim("Incident", {})

        draft = store.add_draft(
            claim.id, {"type": "club_notification", "to": "club@example.com", "subject": "Notice", "body": "Hi"}
        )

        assert draft.id.startswith(f"{claim.id}-D")
        assert draft.claim_id == claim.id
        assert draft.status == "draft"
        assert draft.type == "club_notification"
        assert draft.sent_at is None
        stored = store.get_claim(claim.id)
        assert stored.drafts[0].id == draft.id
        assert stored.timeline[0].message == "Draft created: Notice."

    def test_unknown_type_is_general(self, store):
        claim = store.create_claim("Incident", {})

        draft = store.add_draft(claim.id, {"type": "memo", "to": "x@example.com", "subject": "S"})

        assert draft.type == "general"
        assert draft.body == ""

    def test_mark_sent(self, store, clock):
        claim = store.create_claim("Incident", {})
        draft = store.add_draft(claim.id, {"to": "x@example.com", "subject": "Update", "body": "Text"})
        clock.advance(minutes=30)

        sent = store.mark_draft_sent(claim.id, draft.id)

        assert sent.status == "sent"
        assert sent.sent_at == format_timestamp(clock())
        stored = store.get_claim(claim.id)
        assert stored.drafts[0].status == "sent"
        assert stored.timeline[0].type == "draft_sent"
        assert stored.to_dict()["drafts"][0]["sentAt"] == sent.sent_at

    def test_missing_draft(self, store):
        claim = store.create_claim("Incident", {})

        assert store.mark_draft_sent(claim.id, "nope") is None
        assert store.add_draft("NC-20260101-0001", {"to": "x", "subject": "y"}) is None


# ============================================================================
# Test: Persistence
# ============================================================================


class TestPersistence:
    """Store behaviour across backends and failures."""

    def test_file_round_trip(self, file_store, tmp_path, clock):
        claim = file_store.create_claim("Vessel grounded near Qingdao", {"potential_claims": ["H&M"]})
        file_store.add_reminder(claim.id, {"to": "a", "subject": "b", "dueAt": "2026-01-20T00:00:00Z"})

        reopened = ClaimStore(JsonFileBackend(tmp_path / "claims.json"), clock=clock)

        assert reopened.get_claim(claim.id).to_dict() == file_store.get_claim(claim.id).to_dict()
        assert reopened.create_claim("Next", {}).id == "NC-20260119-0002"

    def test_failed_save_leaves_snapshot_unchanged(self, spy_store, spy):
        claim = spy_store.create_claim("Incident", {})
        spy.fail = True

        with pytest.raises(StorageError):
            spy_store.update_claim_fields(claim.id, meta={"status": "closed"}, financials={"paid": 10})

        spy.fail = False
        stored = spy_store.get_claim(claim.id)
        assert stored.meta.status == "open"
        assert stored.financials.paid == 0
        assert timeline_types(stored) == ["created"]

    def test_failed_create_does_not_advance_counter(self, spy_store, spy):
        spy.fail = True

        with pytest.raises(StorageError):
            spy_store.create_claim("Incident", {})

        assert spy.load().counter == 0


def test_format_timestamp():
    assert format_timestamp(datetime(2026, 1, 19, 8, 30, tzinfo=timezone.utc)) == "2026-01-19T08:30:00.000Z"
    assert format_timestamp(datetime(2026, 1, 19, 8, 30)) == "2026-01-19T08:30:00.000Z"


def test_end_to_end_scenario(store, clock):
    """Create -> close -> add reminder -> complete reminder."""
    claim = store.create_claim(
        "Vessel grounded near Qingdao",
        {"potential_claims": ["H&M"], "incident_type": "Grounding"},
    )
    assert claim.meta.line_primary == "H&M"
    assert claim.meta.status == "open"
    assert claim.meta.stage == "intake"
    assert claim.financials.paid == 0

    closed = store.update_claim_fields(claim.id, meta={"status": "closed"})
    assert closed.meta.status == "closed"
    assert closed.timeline[0].type == "status_changed"
    assert closed.timeline[0].message == "Status: open → closed"

    due = format_timestamp(clock() + timedelta(hours=24))
    reminder = store.add_reminder(claim.id, {"to": "ops@example.com", "subject": "Follow up", "dueAt": due})
    stored = store.get_claim(claim.id)
    assert len(stored.reminders) == 1
    assert stored.reminders[0].status == "pending"

    done = store.mark_reminder_done(claim.id, reminder.id)
    assert done.status == "done"
    stored = store.get_claim(claim.id)
    assert len(stored.reminders) == 1
    assert stored.reminders[0].status == "done"
