"""
Error taxonomy shared by provider clients, adapters and scorers.

Clients raise these exceptions. Adapters convert them into a `SourceError`
value so the orchestrator can isolate one source's failure from the others.
`CursorExpiredError` and `ScoringParseError` never leave the component that
handles them.
"""

from dataclasses import dataclass
from enum import StrEnum


class SourceErrorKind(StrEnum):
    NOT_CONNECTED = "not_connected"
    INSUFFICIENT_SCOPE = "insufficient_scope"
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"

    @property
    def is_reported(self) -> bool:
        """Whether this kind belongs in the run's error list."""
        return self in (SourceErrorKind.TRANSIENT, SourceErrorKind.RATE_LIMITED)


class TriageSourceError(Exception):
    """Base exception for provider and scoring failures."""

    kind: SourceErrorKind = SourceErrorKind.TRANSIENT

    def __init__(self, message: str, status_code: int | None = None, recoverable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.recoverable = recoverable


class NotConnectedError(TriageSourceError):
    """No credential on file for the provider."""

    kind = SourceErrorKind.NOT_CONNECTED


class InsufficientScopeError(TriageSourceError):
    """Credential exists but lacks the permission the fetch needs."""

    kind = SourceErrorKind.INSUFFICIENT_SCOPE


class TransientProviderError(TriageSourceError):
    """Network failure, 5xx, timeout or an unexpected response shape."""

    kind = SourceErrorKind.TRANSIENT


class RateLimitedError(TransientProviderError):
    kind = SourceErrorKind.RATE_LIMITED


class CursorExpiredError(TriageSourceError):
    """The provider no longer recognizes the stored sync cursor."""


class ScoringParseError(ValueError):
    """The scoring capability answered with something other than {score, reasoning}."""


@dataclass(frozen=True, slots=True)
class SourceError:
    kind: SourceErrorKind
    message: str

    @classmethod
    def from_exception(cls, exc: Exception) -> "SourceError":
        kind = getattr(exc, "kind", SourceErrorKind.TRANSIENT)
        return cls(kind=kind, message=str(exc) or type(exc).__name__)
