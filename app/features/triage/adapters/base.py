"""
Common contract for triage source adapters.

`fetch()` never raises. Every failure is converted into a typed
`SourceError` on the result so one source cannot take down its siblings.

Sync progress (a cursor) travels on the result and is only persisted through
`commit()` once the run has scored and saved every fetched item.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.db.helpers import DatabaseError
from app.features.triage.domain import (
    CandidateItem,
    NotConnectedError,
    SourceError,
    SourceErrorKind,
    TriageSource,
    TriageSourceError,
)
from app.features.triage.repository import OAuthCredentialRepository
from app.infrastructure.observability.logging import get_logger, log_source_failure
from app.services.infrastructure.encryption_service import EncryptionError

logger = get_logger(__name__)


@dataclass(slots=True)
class FetchResult:
    items: list[CandidateItem] = field(default_factory=list)
    error: SourceError | None = None
    # Partial failures that still returned items
    warnings: list[str] = field(default_factory=list)
    cursor: str | None = None


class SourceAdapter(ABC):
    source: TriageSource
    provider: str

    def __init__(self, credentials=None):
        self._credentials = credentials or OAuthCredentialRepository

    async def fetch(self, user_id: str) -> FetchResult:
        try:
            result = await self._fetch(user_id)
        except TriageSourceError as e:
            return self._failed(user_id, SourceError.from_exception(e))
        except (DatabaseError, EncryptionError) as e:
            return self._failed(user_id, SourceError(SourceErrorKind.TRANSIENT, str(e)))
        except Exception as e:
            logger.exception("Unexpected adapter failure", user_id=user_id, source=self.source)
            return self._failed(
                user_id, SourceError(SourceErrorKind.TRANSIENT, str(e) or type(e).__name__)
            )

        logger.debug(
            "Source fetched",
            user_id=user_id,
            source=self.source,
            count=len(result.items),
            warnings=len(result.warnings),
        )
        return result

    async def commit(self, user_id: str, result: FetchResult) -> None:
        """Persist sync progress after a clean run. Stateless sources have none."""

    async def _require_token(self, user_id: str) -> str:
        token = await self._credentials.get_token(user_id, self.provider)
        if not token:
            raise NotConnectedError(f"{self.source.label} not connected")
        return token

    def _failed(self, user_id: str, error: SourceError) -> FetchResult:
        log_source_failure(user_id, self.source.value, error.kind.value, error.message)
        return FetchResult(error=error)

    @abstractmethod
    async def _fetch(self, user_id: str) -> FetchResult:
        """Fetch and normalize this source's candidate items. May raise."""
