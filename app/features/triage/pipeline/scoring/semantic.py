"""
Semantic urgency scoring for unstructured email text.

Each email is rendered into a short rubric prompt and sent to an urgency
scoring capability. Calls are issued in fixed-size batches: concurrent
within a batch, sequential across batches, to stay under the provider's
rate limits.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from typing import Protocol

from pydantic import BaseModel, ValidationError

from app.config import settings
from app.features.triage.domain import (
    CandidateItem,
    EmailMetadata,
    RateLimitedError,
    ScoringParseError,
    TriageScore,
    TriageSource,
)
from app.infrastructure.observability.logging import get_logger

from .report import ScoringReport

logger = get_logger(__name__)

PARSE_FAILURE_SCORE = 50
PARSE_FAILURE_REASONING = "Could not parse AI response"
DEFAULT_REASONING = "Flagged by AI"


class UrgencyScoringCapability(Protocol):
    async def score_text(self, prompt: str) -> str:
        """Return the raw model response for one prompt. May raise on transport failure."""
        ...


class UrgencyResponse(BaseModel):
    score: float
    reasoning: str = DEFAULT_REASONING


def build_prompt(item: CandidateItem) -> str:
    sender = item.metadata.sender if isinstance(item.metadata, EmailMetadata) else ""
    return "\n".join(
        [
            "Rate the urgency of this email for a busy professional (0-100).",
            "0 = newsletter/promotional, 100 = requires action today.",
            "",
            f"From: {sender}",
            f"Subject: {item.title}",
            f"Preview: {item.snippet}",
            "",
            'Respond with JSON only: {"score": <number>, "reasoning": "<one sentence>"}',
        ]
    )


def parse_response(raw: str) -> TriageScore:
    """
    Parse a `{score, reasoning}` JSON object.

    Raises:
        ScoringParseError: If the text is not JSON of the expected shape
    """
    text = (raw or "").strip()
    # Models occasionally wrap JSON in a markdown fence
    if text.startswith("```"):
        text = text.strip("`").strip()
        if text.lower().startswith("json"):
            text = text[4:].strip()

    try:
        parsed = UrgencyResponse.model_validate_json(text)
    except ValidationError as e:
        raise ScoringParseError(f"Unexpected scoring response: {text[:80]!r}") from e

    if not math.isfinite(parsed.score):
        raise ScoringParseError(f"Non-finite score: {parsed.score}")

    return TriageScore(parsed.score, parsed.reasoning.strip() or DEFAULT_REASONING)


class SemanticScorer:
    def __init__(self, capability: UrgencyScoringCapability, batch_size: int | None = None):
        self._capability = capability
        self._batch_size = max(1, batch_size or settings.TRIAGE_AI_BATCH_SIZE)

    async def score(self, item: CandidateItem) -> TriageScore:
        """
        Score a single item. Unparseable responses fall back to a neutral score;
        transport and rate-limit failures propagate to the caller.
        """
        raw = await self._capability.score_text(build_prompt(item))
        try:
            return parse_response(raw)
        except ScoringParseError as e:
            logger.debug("Falling back to default score", source_id=item.source_id, error=str(e))
            return TriageScore(PARSE_FAILURE_SCORE, PARSE_FAILURE_REASONING)

    async def score_items(self, items: Sequence[CandidateItem]) -> ScoringReport:
        report = ScoringReport()
        rate_limited = 0
        failures: list[str] = []

        for start in range(0, len(items), self._batch_size):
            batch = items[start : start + self._batch_size]
            results = await asyncio.gather(
                *(self.score(item) for item in batch), return_exceptions=True
            )

            for item, result in zip(batch, results, strict=True):
                if isinstance(result, RateLimitedError):
                    rate_limited += 1
                elif isinstance(result, Exception):
                    failures.append(str(result) or type(result).__name__)
                else:
                    report.scored.append((item, result))

        report.failed = rate_limited + len(failures)
        label = TriageSource.EMAIL.label
        if rate_limited:
            report.errors.append(f"{label} scoring: {rate_limited} item(s) rate limited")
        if failures:
            report.errors.append(
                f"{label} scoring: {len(failures)} item(s) failed ({failures[0]})"
            )

        logger.debug(
            "Semantic scoring complete",
            scored=len(report.scored),
            rate_limited=rate_limited,
            failed=len(failures),
            batch_size=self._batch_size,
        )
        return report
