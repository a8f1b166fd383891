"""Sentry error reporting.

Enabled only when SENTRY_DSN is set. Credential headers are scrubbed from
events before they leave the process.
"""

import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

_SENSITIVE_HEADERS = {"authorization", "x-auth-token", "cookie"}


def _scrub_credentials(event: dict, hint: dict) -> dict:
    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in _SENSITIVE_HEADERS:
                headers[name] = "[Filtered]"
    return event


def init_sentry() -> bool:
    """Returns True if Sentry was initialized."""
    if not settings.sentry_dsn:
        logger.debug("SENTRY_DSN not set, error reporting disabled")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        release=f"movie-platform-ai@{settings.app_version}",
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
        before_send=_scrub_credentials,
        integrations=[FastApiIntegration(transaction_style="endpoint")],
    )
    logger.info("Sentry initialized (env=%s)", settings.app_env)
    return True
