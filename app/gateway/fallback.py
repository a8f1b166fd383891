"""Fallback orchestrator: ordered multi-backend retry protocol.

For one prompt, backends are tried strictly in roster order. Each backend
gets up to ``max_retries + 1`` attempts:

  SUCCESS       → return the text, stop
  RATE_LIMITED  → attempts left: sleep backoff, double it, retry same backend
                  none left: next backend
  UNAVAILABLE   → next backend immediately (no retry, no delay)
  TRANSIENT     → attempts left: sleep backoff, retry same backend
                  none left: next backend

When the roster runs out without a success the call fails with
``BackendsExhaustedError``. Nothing is shared between calls: no circuit
breaker, no memory of which backend failed last time.

The protocol is a small state machine::

    TRYING(i, attempt) --outcome--> SUCCESS | TRYING(i, attempt+1) | NEXT_BACKEND
    NEXT_BACKEND --advance--> TRYING(i+1, 0) | EXHAUSTED

``transition`` and ``advance`` are pure; ``FallbackOrchestrator`` runs them
and performs the effects (backend calls, sleeps).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from enum import Enum

from app.core.metrics import BACKEND_ATTEMPTS, BACKEND_LATENCY
from app.gateway.backend_clients import BaseBackendClient
from app.gateway.roster import BackendRoster
from app.gateway.types import (
    AttemptOutcome,
    AttemptRecord,
    BackendDescriptor,
    BackendProvider,
    BackendReply,
    RetryPolicy,
)

logger = logging.getLogger(__name__)


class BackendsExhaustedError(Exception):
    """No backend in the roster produced a usable response."""

    def __init__(self, attempts: list[AttemptRecord]):
        super().__init__("All AI models exhausted. Please try again in a moment.")
        self.attempts = attempts

    @property
    def rate_limited(self) -> bool:
        """True when every attempt made was rejected for quota reasons."""
        return bool(self.attempts) and all(a.outcome == AttemptOutcome.RATE_LIMITED for a in self.attempts)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class Phase(str, Enum):
    TRYING = "trying"
    SUCCESS = "success"
    NEXT_BACKEND = "next_backend"
    EXHAUSTED = "exhausted"


TERMINAL_PHASES = frozenset({Phase.SUCCESS, Phase.EXHAUSTED})


@dataclass(frozen=True)
class FallbackState:
    phase: Phase
    backend_index: int = 0
    attempt: int = 0  # 0-based attempt on the current backend
    backoff: float = 0.0  # Delay to use before the next retry on this backend
    delay: float = 0.0  # Delay to wait before executing this state

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


def initial_state(policy: RetryPolicy, roster_size: int) -> FallbackState:
    if roster_size == 0:
        return FallbackState(phase=Phase.EXHAUSTED)
    return FallbackState(phase=Phase.TRYING, backoff=policy.initial_backoff)


def transition(state: FallbackState, outcome: AttemptOutcome, policy: RetryPolicy) -> FallbackState:
    """Next state after observing ``outcome`` while in a TRYING state."""
    if state.phase != Phase.TRYING:
        raise ValueError(f"Cannot observe an outcome in phase {state.phase.value}")

    if outcome == AttemptOutcome.SUCCESS:
        return replace(state, phase=Phase.SUCCESS, delay=0.0)

    if outcome == AttemptOutcome.UNAVAILABLE:
        return replace(state, phase=Phase.NEXT_BACKEND, delay=0.0)

    if state.attempt >= policy.max_retries:
        return replace(state, phase=Phase.NEXT_BACKEND, delay=0.0)

    if outcome == AttemptOutcome.RATE_LIMITED:
        return replace(state, attempt=state.attempt + 1, delay=state.backoff, backoff=state.backoff * 2)

    # TRANSIENT: same delay again, no doubling
    return replace(state, attempt=state.attempt + 1, delay=state.backoff)


def advance(state: FallbackState, policy: RetryPolicy, roster_size: int) -> FallbackState:
    """Move from NEXT_BACKEND to the following backend, or to EXHAUSTED."""
    if state.phase != Phase.NEXT_BACKEND:
        raise ValueError(f"Cannot advance from phase {state.phase.value}")

    next_index = state.backend_index + 1
    if next_index >= roster_size:
        return FallbackState(phase=Phase.EXHAUSTED, backend_index=state.backend_index)
    return FallbackState(phase=Phase.TRYING, backend_index=next_index, backoff=policy.initial_backoff)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

SleepFn = Callable[[float], Awaitable[None]]


class FallbackOrchestrator:
    """Runs the fallback protocol for a single logical generation request.

    Usage:
        orchestrator = FallbackOrchestrator(roster, clients, RetryPolicy())
        try:
            text = await orchestrator.generate(prompt)
        except BackendsExhaustedError as e:
            ...  # e.attempts, e.rate_limited
    """

    def __init__(
        self,
        roster: BackendRoster,
        clients: Mapping[BackendProvider, BaseBackendClient],
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        """
        Args:
            roster: Backends in fallback order
            clients: One client per provider used by the roster
            policy: Retry parameters applied to every backend
            sleep: Awaitable delay; cancelling the caller cancels it
        """
        missing = {b.provider for b in roster} - set(clients)
        if missing:
            raise ValueError(f"No client for providers: {sorted(p.value for p in missing)}")

        self.roster = roster
        self.clients = dict(clients)
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def generate(self, prompt: str) -> str:
        """Return raw text from the first backend that succeeds.

        Raises:
            BackendsExhaustedError: every backend failed within its policy.
        """
        attempts: list[AttemptRecord] = []
        state = initial_state(self.policy, len(self.roster))
        reply: BackendReply | None = None

        while not state.terminal:
            if state.phase == Phase.NEXT_BACKEND:
                state = advance(state, self.policy, len(self.roster))
                continue

            backend = self.roster[state.backend_index]
            if state.delay > 0:
                await self._sleep(state.delay)

            reply = await self._attempt(backend, prompt)
            attempts.append(
                AttemptRecord(
                    backend_id=backend.id,
                    attempt_number=state.attempt + 1,
                    outcome=reply.outcome,
                    status_code=reply.status_code,
                    error_message=reply.error_message,
                )
            )
            state = transition(state, reply.outcome, self.policy)
            self._log_transition(backend, reply, state)

        if state.phase == Phase.SUCCESS and reply is not None:
            return reply.text

        logger.error("All %d backends exhausted after %d attempts", len(self.roster), len(attempts))
        raise BackendsExhaustedError(attempts)

    async def _attempt(self, backend: BackendDescriptor, prompt: str) -> BackendReply:
        client = self.clients[backend.provider]
        try:
            reply = await client.send(backend, prompt)
        except Exception as e:
            logger.warning("Backend %s raised %s: %s", backend.id, type(e).__name__, e)
            reply = BackendReply(
                backend_id=backend.id,
                outcome=AttemptOutcome.TRANSIENT,
                error_message=f"{type(e).__name__}: {e}",
            )

        if reply.outcome == AttemptOutcome.SUCCESS and not reply.text.strip():
            reply.outcome = AttemptOutcome.TRANSIENT
            reply.error_message = "Empty response"

        BACKEND_ATTEMPTS.labels(backend=backend.id, outcome=reply.outcome.value).inc()
        if reply.latency_ms:
            BACKEND_LATENCY.labels(backend=backend.id).observe(reply.latency_ms / 1000)
        return reply

    def _log_transition(self, backend: BackendDescriptor, reply: BackendReply, state: FallbackState) -> None:
        if state.phase == Phase.SUCCESS:
            logger.info(
                "Backend %s succeeded (model=%s, %d ms, tokens in=%s out=%s)",
                backend.id,
                reply.model_version or backend.id,
                reply.latency_ms,
                reply.input_tokens,
                reply.output_tokens,
                extra={"backend_id": backend.id},
            )
        elif state.phase == Phase.TRYING:
            logger.info(
                "%s on %s (attempt %d/%d), retrying in %.1fs: %s",
                reply.outcome.value,
                backend.id,
                state.attempt,
                self.policy.max_attempts,
                state.delay,
                reply.error_message,
            )
        elif reply.outcome == AttemptOutcome.UNAVAILABLE:
            logger.warning("Backend %s not available (%s), trying next", backend.id, reply.status_code)
        else:
            logger.warning(
                "Backend %s gave up after %d attempts (%s): %s",
                backend.id,
                state.attempt + 1,
                reply.outcome.value,
                reply.error_message,
            )

    def get_status(self) -> dict:
        return {
            "roster": self.roster.ids,
            "max_retries": self.policy.max_retries,
            "initial_backoff_seconds": self.policy.initial_backoff,
        }
