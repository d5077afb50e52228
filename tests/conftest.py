"""Shared fixtures: claim stores on a controllable clock."""

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.setdefault("CLAIMS_STORAGE_BACKEND", "memory")

from src.storage import ClaimStore, JsonFileBackend, MemoryBackend


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 19, 8, 30, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend, clock):
    """Memory-backed claim store."""
    return ClaimStore(backend, clock=clock)


@pytest.fixture
def file_store(tmp_path, clock):
    """Claim store persisting to a JSON file in a temp directory."""
    return ClaimStore(JsonFileBackend(tmp_path / "claims.json"), clock=clock)


@pytest.fixture
def grounding_report():
    return {
        "incident_type": "Grounding",
        "date_time": "2026-01-18T22:10:00Z",
        "location": "Qingdao",
        "vessel": "Nova Star",
        "summary": "Vessel grounded near Qingdao",
        "potential_claims": ["H&M"],
        "immediate_actions": "Notify H&M underwriters; Appoint surveyor",
        "missing_information": "Draft survey",
        "coverage_reasoning": {"H&M": "Hull damage from grounding."},
        "documents_checklist": {"H&M": ["Survey report"]},
    }
