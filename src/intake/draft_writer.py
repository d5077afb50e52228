"""
Outbound email drafting for claims.

Writes the subject and body of reminder, notification and follow-up emails
from a stored claim. The result is attached with ClaimStore.add_draft.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..storage.models import Claim, DraftType
from .config import GenerationConfig
from .llm import ChatClient, parse_model_json

logger = logging.getLogger(__name__)


@dataclass
class DraftContent:
    """Generated email ready to be stored as a draft."""
    type: str
    subject: str
    body: str

    def to_dict(self) -> dict:
        return {"type": self.type, "subject": self.subject, "body": self.body}


def draft_type_for_intent(intent: str) -> str:
    """Map a drafting intent to the stored draft type."""
    if intent == "task_followup":
        return DraftType.TASK_FOLLOWUP.value
    if intent == "club_notification":
        return DraftType.CLUB_NOTIFICATION.value
    return DraftType.REMINDER.value


def default_subject(claim: Claim, subject_hint: str = "") -> str:
    return subject_hint or f"Claim {claim.id} - Follow-up"


class DraftWriter(ABC):
    """Base class for email drafting."""

    @abstractmethod
    async def write(
        self,
        claim: Claim,
        intent: str = "reminder",
        to: str = "Unknown recipient",
        subject_hint: str = "",
        context: str = "",
    ) -> DraftContent:
        """Draft an email about the claim."""
        pass


class LLMDraftWriter(DraftWriter):
    """LLM-based drafting (OpenAI or Claude)."""

    def __init__(self, config: GenerationConfig, client: Optional[ChatClient] = None):
        self.config = config
        self.client = client or ChatClient(config)

    def _build_prompt(self, claim: Claim, intent: str, to: str, subject_hint: str, context: str) -> str:
        report = claim.report
        return f"""You are a senior marine insurance claims handler drafting professional emails.

Constraints:
- Clear subject line
- Short paragraphs
- Bullet points for documents/info requested
- Professional tone (P&I / H&M context)
- Do not invent facts not in claim narrative/report; if needed, request them.

Claim ID: {claim.id}
Vessel: {report.vessel}
Incident: {report.incident_type}
Location: {report.location}
Date/Time: {report.date_time}

Narrative:
{claim.narrative}

Key missing info:
{report.missing_information}

Intent: {intent}
Recipient: {to}
Subject hint: {subject_hint}
Additional context: {context}

Return STRICT JSON:
{{"subject":"...","body":"..."}}
"""

    async def write(
        self,
        claim: Claim,
        intent: str = "reminder",
        to: str = "Unknown recipient",
        subject_hint: str = "",
        context: str = "",
    ) -> DraftContent:
        prompt = self._build_prompt(claim, intent, to, subject_hint, context)
        # Slightly warmer than extraction: wording may vary, facts may not
        parsed = parse_model_json(await self.client.complete(prompt, temperature=0.2))

        logger.info(f"Drafted {intent} email for claim {claim.id}")
        return DraftContent(
            type=draft_type_for_intent(intent),
            subject=str(parsed.get("subject") or "").strip() or default_subject(claim, subject_hint),
            body=str(parsed.get("body") or "").strip(),
        )


class MockDraftWriter(DraftWriter):
    """Template drafting for tests and offline use."""

    async def write(
        self,
        claim: Claim,
        intent: str = "reminder",
        to: str = "Unknown recipient",
        subject_hint: str = "",
        context: str = "",
    ) -> DraftContent:
        report = claim.report
        lines = [
            f"Dear {to},",
            "",
            f"We refer to claim {claim.id} concerning {report.incident_type.lower()} "
            f"involving {report.vessel} at {report.location}.",
        ]
        if report.missing_information:
            lines += ["", "To progress the file we still need:"]
            lines += [f"- {item.strip()}" for item in report.missing_information.split(";") if item.strip()]
        if context:
            lines += ["", context]
        lines += ["", "Kind regards,", claim.meta.handler or "Claims team"]

        return DraftContent(
            type=draft_type_for_intent(intent),
            subject=default_subject(claim, subject_hint),
            body="\n".join(lines),
        )


def create_draft_writer(config: Optional[GenerationConfig] = None) -> DraftWriter:
    """Factory function to create appropriate draft writer."""
    if config is None:
        config = GenerationConfig.from_settings()

    if config.llm_provider == "mock":
        return MockDraftWriter()
    else:
        return LLMDraftWriter(config)
