"""Backend clients: protocol-level handling for each text-generation provider.

A client sends one prompt to one backend and classifies what happened:

  - 2xx with non-empty text       → SUCCESS
  - 429                           → RATE_LIMITED
  - 404 / 400                     → UNAVAILABLE (model gone or request invalid for it)
  - anything else, timeouts,
    network errors, empty payload → TRANSIENT

Clients report failures through ``BackendReply.outcome``; they do not raise
for HTTP or transport errors.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import httpx

from app.gateway.types import (
    AttemptOutcome,
    BackendDescriptor,
    BackendProvider,
    BackendReply,
)

logger = logging.getLogger(__name__)

_UNAVAILABLE_STATUSES = frozenset({400, 404})


def classify_status(status_code: int) -> AttemptOutcome:
    """Map a non-2xx HTTP status to an attempt outcome."""
    if status_code == 429:
        return AttemptOutcome.RATE_LIMITED
    if status_code in _UNAVAILABLE_STATUSES:
        return AttemptOutcome.UNAVAILABLE
    return AttemptOutcome.TRANSIENT


def _error_message(resp: httpx.Response) -> str:
    """Best-effort upstream error text, for logs only."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:300]
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return str(data)[:300]


class BaseBackendClient(ABC):
    """Base class for all backend clients."""

    provider: BackendProvider

    def __init__(self, api_key: str, timeout: float = 60.0, **kwargs):
        self.api_key = api_key
        self.timeout = timeout

    @abstractmethod
    async def send(self, backend: BackendDescriptor, prompt: str) -> BackendReply:
        """Send ``prompt`` to ``backend`` and return a classified reply."""
        ...


# ---------------------------------------------------------------------------
# OpenRouter (OpenAI-compatible chat completions)
# ---------------------------------------------------------------------------


class OpenRouterClient(BaseBackendClient):
    """OpenRouter chat completions client. Each backend id is a model slug."""

    provider = BackendProvider.OPENROUTER
    api_url = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        api_url: str | None = None,
        referer: str = "http://localhost:5000",
        app_title: str = "Movie Platform",
        max_tokens: int = 1500,
        temperature: float = 0.7,
        **kwargs,
    ):
        super().__init__(api_key, timeout=timeout)
        if api_url:
            self.api_url = api_url
        self.referer = referer
        self.app_title = app_title
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.app_title,
        }

    def _payload(self, model: str, prompt: str) -> dict:
        return {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    async def send(self, backend: BackendDescriptor, prompt: str) -> BackendReply:
        reply = BackendReply(backend_id=backend.id)
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    json=self._payload(backend.id, prompt),
                    headers=self._headers(),
                )

            reply.latency_ms = int((time.monotonic() - start) * 1000)
            reply.status_code = resp.status_code

            if not resp.is_success:
                reply.outcome = classify_status(resp.status_code)
                reply.error_message = f"OpenRouter error {resp.status_code}: {_error_message(resp)}"
                return reply

            data = resp.json()
            choices = data.get("choices") or []
            text = ""
            if choices:
                text = (choices[0].get("message") or {}).get("content") or ""

            if not text.strip():
                reply.outcome = AttemptOutcome.TRANSIENT
                reply.error_message = "Empty response from OpenRouter"
                return reply

            reply.text = text
            reply.outcome = AttemptOutcome.SUCCESS
            reply.model_version = str(data.get("model") or backend.id)
            usage = data.get("usage")
            if isinstance(usage, dict):
                reply.input_tokens = usage.get("prompt_tokens") or 0
                reply.output_tokens = usage.get("completion_tokens") or 0

        except httpx.TimeoutException:
            reply.outcome = AttemptOutcome.TRANSIENT
            reply.error_message = f"OpenRouter timeout after {self.timeout}s"
            reply.latency_ms = int((time.monotonic() - start) * 1000)
        except httpx.HTTPError as e:
            reply.outcome = AttemptOutcome.TRANSIENT
            reply.error_message = f"OpenRouter transport error: {e}"
            reply.latency_ms = int((time.monotonic() - start) * 1000)
        except (ValueError, AttributeError) as e:
            # Non-JSON body or unexpected shape on a 2xx
            reply.outcome = AttemptOutcome.TRANSIENT
            reply.error_message = f"Unreadable OpenRouter response: {e}"
            reply.latency_ms = int((time.monotonic() - start) * 1000)

        return reply


# ---------------------------------------------------------------------------
# Client registry
# ---------------------------------------------------------------------------

CLIENT_REGISTRY: dict[BackendProvider, type[BaseBackendClient]] = {
    BackendProvider.OPENROUTER: OpenRouterClient,
}


def get_client(provider: BackendProvider, api_key: str, **kwargs) -> BaseBackendClient:
    """Factory: get the appropriate client for a provider."""
    cls = CLIENT_REGISTRY.get(provider)
    if cls is None:
        raise ValueError(f"No client registered for provider: {provider}")
    return cls(api_key=api_key, **kwargs)


def build_clients(settings) -> dict[BackendProvider, BaseBackendClient]:
    """Instantiate one client per registered provider from application settings."""
    return {
        provider: get_client(
            provider,
            settings.openrouter_api_key,
            timeout=settings.backend_timeout_seconds,
            api_url=settings.openrouter_url,
            referer=settings.app_public_url,
            app_title=settings.app_title,
            max_tokens=settings.generation_max_tokens,
            temperature=settings.generation_temperature,
        )
        for provider in CLIENT_REGISTRY
    }
