"""
FastAPI application for the claims desk.

Provides:
- Claim intake from incident narratives (report generation + claim creation)
- Per-action endpoints for status/stage/financials, tasks, reminders, drafts
- Finance and pending-reminder roll-ups
- Health check endpoints

Handlers validate the payload, call the claim store and map the result:
missing identifiers -> 400, store returned None -> 404, anything else -> 500.
"""

# IMPORTANT: Configure logging FIRST, before any other imports
# This ensures verbose libraries don't spam debug logs
import logging

# Reduce noise from verbose libraries - set this BEFORE they're imported
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)
logging.getLogger("openai._base_client").setLevel(logging.WARNING)
logging.getLogger("anthropic").setLevel(logging.WARNING)
logging.getLogger("redis").setLevel(logging.WARNING)

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Optional, TypeVar

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..intake import (
    DraftWriter,
    GenerationError,
    ReportGenerator,
    create_draft_writer,
    create_report_generator,
)
from ..reporting import pending_reminders, summarize_finances
from ..storage import ClaimStore, DuplicateClaimError, StorageError, get_claim_store
from ..storage.models import FINANCIAL_FIELDS, FinancialsPatch, MetaPatch, ReminderInput, TaskStatus
from ..utils.config import settings

# Now configure logging properly
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ClaimsApiError(Exception):
    """Request-level failure with an HTTP status."""

    def __init__(self, status_code: int, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details


# =============================================================================
# Dependencies
# =============================================================================


def get_store() -> ClaimStore:
    return get_claim_store()


@lru_cache
def get_report_generator() -> ReportGenerator:
    return create_report_generator()


@lru_cache
def get_draft_writer() -> DraftWriter:
    return create_draft_writer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting claims desk API...")
    logger.info(f"Storage backend: {settings.claims_storage_backend}")
    logger.info(f"LLM provider: {settings.llm_provider}")
    yield
    logger.info("Shutting down claims desk API...")


app = FastAPI(
    title="Claims Desk",
    description="Marine claims intake and tracking",
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error Handling
# =============================================================================


def _error(status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(ClaimsApiError)
async def claims_api_error_handler(request: Request, exc: ClaimsApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return _error(exc.status_code, exc.message, exc.details)


@app.exception_handler(DuplicateClaimError)
async def duplicate_claim_handler(request: Request, exc: DuplicateClaimError) -> JSONResponse:
    return _error(409, str(exc))


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: storage failure: {exc}")
    return _error(500, f"Storage failure in {request.url.path}", str(exc))


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path}: generation failure: {exc}")
    return _error(500, str(exc), {"raw": exc.raw} if exc.raw else None)


@app.middleware("http")
async def unhandled_error_middleware(request: Request, call_next):
    """Last-resort 500 with a message instead of a bare stack trace."""
    try:
        return await call_next(request)
    except Exception as e:
        logger.exception(f"Unhandled error in {request.method} {request.url.path}")
        return _error(500, f"Unhandled server error in {request.url.path}", str(e))


# =============================================================================
# Helpers
# =============================================================================


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ClaimsApiError(400, "Invalid JSON body")
    if not isinstance(body, dict):
        raise ClaimsApiError(400, "JSON body must be an object")
    return body


def _text(body: dict, key: str, default: str = "") -> str:
    value = body.get(key)
    return str(value).strip() if value is not None else default


def _require(body: dict, *keys: str) -> list[str]:
    """Stripped string values for required keys; 400 naming the missing ones."""
    values = [_text(body, key) for key in keys]
    missing = [key for key, value in zip(keys, values) if not value]
    if missing:
        raise ClaimsApiError(400, f"Missing {' or '.join(missing)}")
    return values


def _optional_object(body: dict, key: str) -> Optional[dict]:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ClaimsApiError(400, f"{key} must be an object")
    return value


def _parse(model: type[ModelT], value: Optional[dict]) -> Optional[ModelT]:
    """Validate a caller-supplied object; 400 when it does not fit the model."""
    if value is None:
        return None
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise ClaimsApiError(400, "Invalid payload", str(e))


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Health Check Endpoints
# =============================================================================


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {"service": "Claims Desk", "status": "running"}


@app.get("/health")
async def health_check(store: ClaimStore = Depends(get_store)):
    """Detailed health check endpoint."""
    return {
        "status": "healthy",
        "config": {
            "storage": store.backend.describe(),
            "llm_provider": settings.llm_provider,
        },
    }


# =============================================================================
# Intake
# =============================================================================


@app.post("/api/extract-claim")
async def extract_claim(
    request: Request,
    store: ClaimStore = Depends(get_store),
    generator: ReportGenerator = Depends(get_report_generator),
):
    """Generate a structured report from the incident text and open a claim."""
    body = await _read_json(request)
    incident_text = _text(body, "incidentText")
    if not incident_text:
        raise ClaimsApiError(400, "No incident text provided")

    generated = await generator.generate(incident_text)
    claim = store.create_claim(incident_text, generated.report, tasks=generated.tasks)
    logger.info(f"Intake created claim {claim.id} via {generated.provider}")
    return {"claimId": claim.id, "report": _dump(claim.report)}


# =============================================================================
# Claims
# =============================================================================


@app.get("/api/claims")
async def get_claims(status: Optional[str] = None, store: ClaimStore = Depends(get_store)):
    """List claims, newest first."""
    claims = store.list_claims(status=status)
    return {"claims": [c.to_dict() for c in claims], "count": len(claims)}


@app.get("/api/claims/{claim_id}")
async def get_claim_detail(claim_id: str, store: ClaimStore = Depends(get_store)):
    """Get a single claim."""
    claim = store.get_claim(claim_id)
    if claim is None:
        raise ClaimsApiError(404, "Claim not found")
    return {"claim": claim.to_dict()}


@app.post("/api/claims/update")
async def update_claim(request: Request, store: ClaimStore = Depends(get_store)):
    """Patch status/stage/meta and financials."""
    body = await _read_json(request)
    (claim_id,) = _require(body, "claimId")

    meta = _parse(MetaPatch, _optional_object(body, "meta"))
    financials_in = _optional_object(body, "financials")
    # Only known keys reach the store
    financials = (
        {key: financials_in[key] for key in FINANCIAL_FIELDS if key in financials_in}
        if financials_in is not None
        else None
    )

    updated = store.update_claim_fields(claim_id, meta=meta, financials=_parse(FinancialsPatch, financials))
    if updated is None:
        raise ClaimsApiError(404, "Claim not found")
    return {"ok": True, "claim": updated.to_dict()}


# =============================================================================
# Tasks
# =============================================================================


@app.post("/api/tasks/set-status")
async def set_task_status(request: Request, store: ClaimStore = Depends(get_store)):
    """Mark a checklist task open or done."""
    body = await _read_json(request)
    claim_id, task_id, status = _text(body, "claimId"), _text(body, "taskId"), _text(body, "status")
    if not claim_id or not task_id or status not in {s.value for s in TaskStatus}:
        raise ClaimsApiError(400, "Missing/invalid claimId, taskId, or status (open|done)")

    updated = store.update_task_status(claim_id, task_id, status)
    if updated is None:
        raise ClaimsApiError(404, "Claim or task not found")
    return {"ok": True, "updated": _dump(updated)}


# =============================================================================
# Reminders
# =============================================================================


@app.post("/api/reminders/add")
async def add_reminder(request: Request, store: ClaimStore = Depends(get_store)):
    """Add a follow-up reminder to a claim."""
    body = await _read_json(request)
    claim_id = _text(body, "claimId")
    reminder = body.get("reminder")
    if not claim_id or not isinstance(reminder, dict):
        raise ClaimsApiError(400, "Missing claimId or reminder")

    created = store.add_reminder(claim_id, _parse(ReminderInput, reminder))
    if created is None:
        raise ClaimsApiError(404, "Claim not found")
    return {"ok": True, "reminder": _dump(created)}


@app.post("/api/reminders/done")
async def reminder_done(request: Request, store: ClaimStore = Depends(get_store)):
    """Mark a reminder done."""
    body = await _read_json(request)
    claim_id, reminder_id = _require(body, "claimId", "reminderId")

    updated = store.mark_reminder_done(claim_id, reminder_id)
    if updated is None:
        raise ClaimsApiError(404, "Claim or reminder not found")
    return {"ok": True, "reminder": _dump(updated)}


@app.get("/api/reminders/pending")
async def get_pending_reminders(store: ClaimStore = Depends(get_store)):
    """Pending reminders across all claims, overdue first."""
    rows = pending_reminders(store.list_claims())
    return {
        "reminders": [row.to_dict() for row in rows],
        "overdue": sum(1 for row in rows if row.is_overdue),
    }


# =============================================================================
# Drafts
# =============================================================================


@app.post("/api/drafts/create")
async def create_draft(
    request: Request,
    store: ClaimStore = Depends(get_store),
    writer: DraftWriter = Depends(get_draft_writer),
):
    """Write an email draft for a claim and attach it."""
    body = await _read_json(request)
    (claim_id,) = _require(body, "claimId")

    claim = store.get_claim(claim_id)
    if claim is None:
        raise ClaimsApiError(404, "Claim not found")

    to = _text(body, "to") or "Unknown recipient"
    content = await writer.write(
        claim,
        intent=_text(body, "intent") or "reminder",
        to=to,
        subject_hint=_text(body, "subjectHint"),
        context=_text(body, "context"),
    )
    saved = store.add_draft(claim_id, {"to": to, **content.to_dict()})
    if saved is None:
        raise ClaimsApiError(404, "Claim not found")
    return {"ok": True, "draft": _dump(saved)}


@app.post("/api/drafts/sent")
async def draft_sent(request: Request, store: ClaimStore = Depends(get_store)):
    """Mark a draft as sent."""
    body = await _read_json(request)
    claim_id, draft_id = _require(body, "claimId", "draftId")

    updated = store.mark_draft_sent(claim_id, draft_id)
    if updated is None:
        raise ClaimsApiError(404, "Claim or draft not found")
    return {"ok": True, "draft": _dump(updated)}


# =============================================================================
# Finance
# =============================================================================


@app.get("/api/finance/summary")
async def finance_summary(store: ClaimStore = Depends(get_store)):
    """Exposure, reserves, paid and recoveries across claims."""
    return summarize_finances(store.list_claims()).to_dict()
