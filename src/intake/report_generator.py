"""
Incident report generation.

Turns a free-text marine incident narrative into the structured report stored
on a claim, plus the initial task checklist derived from its immediate actions.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import GenerationConfig
from .llm import ChatClient, parse_model_json

logger = logging.getLogger(__name__)

ALLOWED_LINES = ["P&I", "H&M", "Charterers Liability", "Cargo", "FD&D"]
FALLBACK_LINE = "P&I"


@dataclass
class GeneratedReport:
    """Report plus derived tasks, ready for ClaimStore.create_claim."""
    report: Dict[str, Any]
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    provider: str = "mock"
    generation_time_ms: float = 0.0


# =============================================================================
# Normalization
# =============================================================================


def normalize_report(report: Dict[str, Any]) -> Dict[str, Any]:
    """
    Light sanity pass over generator output.

    potential_claims is restricted to the allowed lines (case-insensitive) and
    falls back to P&I; reasoning/checklist maps default to {}.
    """
    normalized = dict(report)

    canonical = {line.lower(): line for line in ALLOWED_LINES}
    lines = normalized.get("potential_claims")
    if isinstance(lines, str):
        lines = re.split(r"[;,]", lines)
    picked: List[str] = []
    for line in lines if isinstance(lines, list) else []:
        match = canonical.get(str(line).strip().lower())
        if match and match not in picked:
            picked.append(match)
    normalized["potential_claims"] = picked or [FALLBACK_LINE]

    for key in ("coverage_reasoning", "documents_checklist"):
        if not isinstance(normalized.get(key), dict):
            normalized[key] = {}

    return normalized


def tasks_from_actions(actions: Any) -> List[Dict[str, Any]]:
    """Split a semicolon/newline separated action list into open tasks."""
    if isinstance(actions, (list, tuple)):
        parts = [str(a) for a in actions]
    else:
        parts = re.split(r"[;\n]", str(actions or ""))

    tasks: List[Dict[str, Any]] = []
    seen = set()
    for part in parts:
        title = part.strip().lstrip("-*• ").strip()
        if not title or title.lower() in seen:
            continue
        seen.add(title.lower())
        tasks.append({"title": title, "status": "open"})
    return tasks


# =============================================================================
# Generators
# =============================================================================


class ReportGenerator(ABC):
    """Base class for report generation."""

    @abstractmethod
    async def generate(self, narrative: str) -> GeneratedReport:
        """
        Produce a structured report from an incident narrative.

        Returns:
            GeneratedReport with keys incident_type, date_time, location,
            vessel, summary, potential_claims, immediate_actions,
            missing_information, coverage_reasoning, documents_checklist
        """
        pass


class LLMReportGenerator(ReportGenerator):
    """LLM-based report generation (OpenAI or Claude)."""

    def __init__(self, config: GenerationConfig, client: Optional[ChatClient] = None):
        self.config = config
        self.client = client or ChatClient(config)

    def _build_prompt(self, narrative: str) -> str:
        """Build the intake prompt."""
        return f"""You are a senior marine insurance claims handler.

Return STRICT JSON only (no markdown, no commentary). If unknown, write "Unknown".
Use these allowed insurance lines only: {ALLOWED_LINES}.

JSON structure:
{{
  "incident_type": "",
  "date_time": "",
  "location": "",
  "vessel": "",
  "summary": "",
  "potential_claims": [],
  "immediate_actions": "",
  "missing_information": "",
  "coverage_reasoning": {{}},
  "documents_checklist": {{}}
}}

Rules:
- potential_claims must include at least 1 allowed line.
- immediate_actions: semicolon-separated checklist (actions to take now).
- missing_information: semicolon-separated missing items.
- coverage_reasoning: object keyed by each line in potential_claims (value = short reasoning).
- documents_checklist: object keyed by each line in potential_claims (value = array of documents/evidence).

Incident description:
\"\"\"
{narrative}
\"\"\"
"""

    async def generate(self, narrative: str) -> GeneratedReport:
        """Generate a report using the configured LLM."""
        start_time = datetime.utcnow()

        raw = await self.client.complete(self._build_prompt(narrative), self.config.temperature)
        report = normalize_report(parse_model_json(raw))

        elapsed = (datetime.utcnow() - start_time).total_seconds() * 1000
        logger.info(f"Generated report via {self.config.llm_provider} in {elapsed:.0f}ms")
        return GeneratedReport(
            report=report,
            tasks=tasks_from_actions(report.get("immediate_actions")),
            provider=self.config.llm_provider,
            generation_time_ms=elapsed,
        )


# Keyword heuristics for the mock generator: (keywords, incident type, lines)
_INCIDENT_RULES = [
    (("grounded", "grounding", "aground"), "Grounding", ["H&M", "P&I"]),
    (("collision", "collided", "allision", "contact with"), "Collision", ["H&M", "P&I"]),
    (("fire", "explosion", "smoke"), "Fire", ["H&M"]),
    (("cargo", "wet damage", "contamination", "shortage"), "Cargo damage", ["Cargo", "P&I"]),
    (("injury", "injured", "crew member", "fatality", "medical"), "Personal injury", ["P&I"]),
    (("oil spill", "pollution", "bunker spill"), "Pollution", ["P&I"]),
    (("engine", "machinery", "breakdown", "blackout"), "Machinery breakdown", ["H&M"]),
    (("demurrage", "charter party", "off-hire", "freight"), "Charter party dispute", ["FD&D", "Charterers Liability"]),
]

_ACTIONS = {
    "Grounding": "Notify H&M underwriters; Notify P&I club; Appoint surveyor; Obtain master's statement; Secure VDR data",
    "Collision": "Notify H&M underwriters; Notify P&I club; Exchange security details; Appoint surveyor; Secure VDR data",
    "Fire": "Notify H&M underwriters; Obtain fire report; Appoint surveyor",
    "Cargo damage": "Notify P&I club; Hold cargo surveys; Collect bills of lading",
    "Personal injury": "Notify P&I club; Obtain medical report; Collect crew statements",
    "Pollution": "Notify P&I club; Notify authorities; Mobilize spill response",
    "Machinery breakdown": "Notify H&M underwriters; Appoint surveyor; Collect engine logs",
    "Charter party dispute": "Notify FD&D cover; Collect charter party; Prepare timeline of events",
}

_DOCUMENTS = {
    "P&I": ["Master's statement", "Deck log extract", "Club notification"],
    "H&M": ["Survey report", "Repair estimate", "Class report"],
    "Cargo": ["Bills of lading", "Cargo survey report", "Stowage plan"],
    "Charterers Liability": ["Charter party", "Statement of facts"],
    "FD&D": ["Charter party", "Correspondence file"],
}


class MockReportGenerator(ReportGenerator):
    """Mock generator for testing (deterministic, no API calls)."""

    async def generate(self, narrative: str) -> GeneratedReport:
        """Generate using simple heuristics."""
        start_time = datetime.utcnow()
        text_lower = narrative.lower()

        incident_type, lines = "Unknown", [FALLBACK_LINE]
        for keywords, kind, kind_lines in _INCIDENT_RULES:
            if any(keyword in text_lower for keyword in keywords):
                incident_type, lines = kind, list(kind_lines)
                break

        vessel = "Unknown"
        vessel_match = re.search(r"\b(?:MV|M/V|MT|M/T|SS)\s+([A-Z][\w-]*(?:\s+[A-Z][\w-]*)*)", narrative)
        if vessel_match:
            vessel = vessel_match.group(1)

        location = "Unknown"
        location_match = re.search(r"\b(?:near|off|at|outside)\s+([A-Z][\w-]*(?:\s+[A-Z][\w-]*)*)", narrative)
        if location_match:
            location = location_match.group(1)

        actions = _ACTIONS.get(incident_type, "Notify P&I club; Obtain master's statement")
        report = {
            "incident_type": incident_type,
            "date_time": "Unknown",
            "location": location,
            "vessel": vessel,
            "summary": narrative.strip()[:240],
            "potential_claims": lines,
            "immediate_actions": actions,
            "missing_information": "Exact date/time; Vessel particulars; Extent of damage",
            "coverage_reasoning": {line: f"{incident_type} may engage {line} cover." for line in lines},
            "documents_checklist": {line: list(_DOCUMENTS.get(line, [])) for line in lines},
        }

        elapsed = (datetime.utcnow() - start_time).total_seconds() * 1000
        return GeneratedReport(
            report=normalize_report(report),
            tasks=tasks_from_actions(actions),
            provider="mock",
            generation_time_ms=elapsed,
        )


def create_report_generator(config: Optional[GenerationConfig] = None) -> ReportGenerator:
    """Factory function to create appropriate report generator."""
    if config is None:
        config = GenerationConfig.from_settings()

    if config.llm_provider == "mock":
        return MockReportGenerator()
    else:
        return LLMReportGenerator(config)
