"""GenerationService: entry point for AI-assisted movie metadata.

Pipeline, stopping at the first error:
  1. Validate the title (non-empty after trimming, at most 200 chars)
  2. RequestGate: identity, role, local rate limit
  3. Build the prompt
  4. FallbackOrchestrator across the backend roster
  5. ResponseValidator into a GenerationResult

Backend failures are classified inside the orchestrator; only exhaustion and
malformed output surface here, and both leave with generic messages.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from app.core.exceptions import (
    BadRequestError,
    RateLimitedError,
    ServiceUnavailableError,
    UpstreamFormatError,
)
from app.core.metrics import GENERATION_RESULTS
from app.core.security import TokenVerifier
from app.gateway.backend_clients import build_clients
from app.gateway.fallback import BackendsExhaustedError, FallbackOrchestrator
from app.gateway.rate_limiter import RateWindowStore
from app.gateway.request_gate import RequestGate
from app.gateway.roster import BackendRoster
from app.gateway.types import RetryPolicy
from app.metadata.prompt import build_prompt
from app.metadata.validator import MalformedOutputError, ResponseValidator
from app.schemas.generation import TITLE_MAX_LENGTH, GenerationResult

logger = logging.getLogger(__name__)

# Characters of unparseable model output kept in the error log
_RAW_LOG_LIMIT = 500


def validate_title(title: Any) -> str:
    """Return the trimmed title or raise BadRequestError."""
    if not isinstance(title, str) or not title.strip():
        raise BadRequestError("Movie title is required")
    trimmed = title.strip()
    if len(trimmed) > TITLE_MAX_LENGTH:
        raise BadRequestError(f"Title is too long (max {TITLE_MAX_LENGTH} characters)")
    return trimmed


class GenerationService:
    """Composition root: RequestGate → FallbackOrchestrator → ResponseValidator."""

    def __init__(
        self,
        gate: RequestGate,
        orchestrator: FallbackOrchestrator,
        validator: ResponseValidator | None = None,
        timeout: float | None = None,
    ):
        self.gate = gate
        self.orchestrator = orchestrator
        self.validator = validator or ResponseValidator()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, store: RateWindowStore | None = None) -> GenerationService:
        store = store or RateWindowStore.from_settings(settings)
        gate = RequestGate(
            verifier=TokenVerifier(settings.jwt_secret_key, settings.jwt_algorithm),
            store=store,
            required_role=settings.admin_role,
        )
        orchestrator = FallbackOrchestrator(
            roster=BackendRoster.from_settings(settings),
            clients=build_clients(settings),
            policy=RetryPolicy.from_settings(settings),
        )
        return cls(gate, orchestrator, timeout=settings.generation_timeout_seconds)

    @property
    def store(self) -> RateWindowStore:
        return self.gate.store

    async def handle(self, title: Any, token: str | None, client_key: str) -> GenerationResult:
        """
        Raises:
            BadRequestError: missing, empty or too long title (400)
            UnauthorizedError / ForbiddenError: credential problems (401 / 403)
            RateLimitedError: local limit hit, or every backend attempt was rate-limited (429)
            ServiceUnavailableError: all backends exhausted or deadline passed (503)
            UpstreamFormatError: backend output was not a JSON object (500)
        """
        try:
            trimmed = validate_title(title)
            self.gate.admit(token, client_key)
            raw_text = await self._generate(build_prompt(trimmed))
            result = self._validate(raw_text)
        except Exception as e:
            GENERATION_RESULTS.labels(result=type(e).__name__).inc()
            raise

        GENERATION_RESULTS.labels(result="success").inc()
        logger.info("Generated metadata for %r (category=%s, year=%d)", trimmed, result.category.value, result.year)
        return result

    async def _generate(self, prompt: str) -> str:
        try:
            if self.timeout:
                return await asyncio.wait_for(self.orchestrator.generate(prompt), timeout=self.timeout)
            return await self.orchestrator.generate(prompt)
        except BackendsExhaustedError as e:
            if e.rate_limited:
                raise RateLimitedError("AI quota exceeded. Please wait a moment and try again.") from e
            raise ServiceUnavailableError() from e
        except asyncio.TimeoutError as e:
            logger.error("Generation deadline of %.0fs exceeded", self.timeout)
            raise ServiceUnavailableError() from e

    def _validate(self, raw_text: str) -> GenerationResult:
        try:
            return self.validator.validate(raw_text)
        except MalformedOutputError as e:
            logger.error("AI JSON parse error (%s). Raw response: %s", e, raw_text[:_RAW_LOG_LIMIT])
            raise UpstreamFormatError() from e
