"""Admission control for generation requests: identity first, then rate limit."""

from __future__ import annotations

import logging

from app.core.exceptions import ForbiddenError, RateLimitedError
from app.core.metrics import RATE_LIMIT_REJECTIONS
from app.core.security import Principal, TokenVerifier
from app.gateway.rate_limiter import RateWindowStore
from app.gateway.types import RateDecision

logger = logging.getLogger(__name__)


class RequestGate:
    """Admit a request or raise the reason it was refused.

    Unauthenticated or unprivileged callers are turned away before the rate
    limiter is consulted, so they never consume a client's window.
    """

    def __init__(self, verifier: TokenVerifier, store: RateWindowStore, required_role: str = "admin"):
        self.verifier = verifier
        self.store = store
        self.required_role = required_role

    def admit(self, token: str | None, client_key: str) -> Principal:
        """
        Raises:
            UnauthorizedError: missing or invalid credential
            ForbiddenError: valid credential without the required role
            RateLimitedError: client key exceeded its window
        """
        principal = self.verifier.verify(token)

        if principal.role != self.required_role:
            logger.info("Denied generation for user %s with role %r", principal.user_id, principal.role)
            raise ForbiddenError("Access denied")

        if self.store.check_and_increment(client_key) == RateDecision.REJECTED:
            RATE_LIMIT_REJECTIONS.inc()
            logger.warning("Rate limit exceeded for %s", client_key, extra={"client_key": client_key})
            raise RateLimitedError(
                f"Rate limit exceeded. Maximum {self.store.limit} AI requests per minute. Please wait."
            )

        return principal
