"""
Claim intake module.

Language-model collaborators of the claim store:
- report generation from incident narratives
- email drafting for reminders and notifications
"""

from .config import GenerationConfig
from .draft_writer import (
    DraftContent,
    DraftWriter,
    LLMDraftWriter,
    MockDraftWriter,
    create_draft_writer,
    draft_type_for_intent,
)
from .llm import GenerationError, extract_json_object, parse_model_json, repair_json
from .report_generator import (
    ALLOWED_LINES,
    GeneratedReport,
    LLMReportGenerator,
    MockReportGenerator,
    ReportGenerator,
    create_report_generator,
    normalize_report,
    tasks_from_actions,
)

__all__ = [
    "GenerationConfig",
    "GenerationError",
    # Reports
    "ALLOWED_LINES",
    "GeneratedReport",
    "ReportGenerator",
    "LLMReportGenerator",
    "MockReportGenerator",
    "create_report_generator",
    "normalize_report",
    "tasks_from_actions",
    # Drafts
    "DraftContent",
    "DraftWriter",
    "LLMDraftWriter",
    "MockDraftWriter",
    "create_draft_writer",
    "draft_type_for_intent",
    # JSON helpers
    "extract_json_object",
    "repair_json",
    "parse_model_json",
]
