"""
OpenAI-backed urgency scoring capability.

Returns the raw JSON text from the model; parsing and fallback live in the
semantic scorer. No retries here: a rate-limited item is skipped for the
current run, and the email cursor is held back so the next run fetches it again.
"""

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.features.triage.domain import RateLimitedError, TransientProviderError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SYSTEM_MESSAGE = (
    "You triage a personal inbox. Answer with a single JSON object "
    'of the form {"score": <0-100>, "reasoning": "<one sentence>"}.'
)


class OpenAIServiceError(Exception):
    """Raised when the OpenAI client cannot be configured."""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable


class OpenAIUrgencyClient:
    def __init__(self, client: AsyncOpenAI | None = None):
        self.client = client or self._initialize_client()

    def _initialize_client(self) -> AsyncOpenAI:
        if not settings.OPENAI_API_KEY:
            raise OpenAIServiceError("OPENAI_API_KEY not configured in settings")

        logger.info(
            "OpenAI urgency client initialized",
            model=settings.OPENAI_MODEL,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
        return AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def score_text(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=settings.OPENAI_MAX_TOKENS,
                temperature=settings.OPENAI_TEMPERATURE,
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError as e:
            logger.warning("OpenAI rate limit hit during urgency scoring", error=str(e))
            raise RateLimitedError("OpenAI rate limit exceeded", status_code=429) from e
        except openai.APITimeoutError as e:
            raise TransientProviderError("OpenAI request timed out") from e
        except openai.APIError as e:
            logger.warning("OpenAI API error during urgency scoring", error=str(e))
            raise TransientProviderError(f"OpenAI error: {e}") from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()
