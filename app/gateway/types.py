"""Core types and DTOs for the text-generation gateway."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class BackendProvider(str, Enum):
    """Protocols a backend can be reached through."""

    OPENROUTER = "openrouter"


class AttemptOutcome(str, Enum):
    """Classification of a single call to a backend."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"  # Quota exhausted (HTTP 429) → backoff, retry same backend
    UNAVAILABLE = "unavailable"  # Unknown model / malformed for it (404, 400) → next backend
    TRANSIENT = "transient"  # Anything else → retry same backend, then next


class RateDecision(str, Enum):
    ALLOWED = "allowed"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Roster entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackendDescriptor:
    """One backend in the fallback roster. Lower priority is tried first."""

    id: str
    priority: int
    provider: BackendProvider = BackendProvider.OPENROUTER


# ---------------------------------------------------------------------------
# Output of a BackendClient
# ---------------------------------------------------------------------------


@dataclass
class BackendReply:
    """Classified result of one call to one backend.

    Clients never raise for HTTP-level failures; they report them here.
    """

    backend_id: str
    outcome: AttemptOutcome = AttemptOutcome.TRANSIENT
    text: str = ""
    status_code: int = 0
    error_message: str = ""
    latency_ms: int = 0
    model_version: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == AttemptOutcome.SUCCESS


@dataclass(frozen=True)
class AttemptRecord:
    """One attempt made during a single orchestration call. Never persisted."""

    backend_id: str
    attempt_number: int  # 1-based within the backend
    outcome: AttemptOutcome
    status_code: int = 0
    error_message: str = ""


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """Per-backend retry parameters."""

    max_retries: int = 2  # Retries after the first attempt on the same backend
    initial_backoff: float = 3.0  # Seconds; doubled after each rate-limited retry

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_settings(cls, settings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries_per_backend,
            initial_backoff=settings.initial_backoff_ms / 1000.0,
        )
