"""
Error tracking for the API and the Celery worker.

Events go to GlitchTip through the Sentry SDK. Domain errors (bad input,
missing rows, scheduling conflicts) are expected outcomes and never
reported.
"""
import logging

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from academy.config.settings import settings
from academy.core.exceptions import AcademyError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = ("connection refused", "connection reset", "broken pipe")


def init_observability(component: str = "api") -> bool:
    """Start the SDK for ``component`` ("api" or "worker").

    Returns False when no DSN is configured.
    """
    if not settings.GLITCHTIP_DSN:
        logger.info("Observability disabled for %s: no DSN configured", component)
        return False

    full_sampling = settings.is_development
    sentry_sdk.init(
        dsn=settings.GLITCHTIP_DSN,
        environment=settings.APP_ENV,
        release=f"academy-api@{settings.APP_VERSION}",
        server_name=component,
        traces_sample_rate=1.0 if full_sampling else settings.GLITCHTIP_TRACES_SAMPLE_RATE,
        profiles_sample_rate=1.0 if full_sampling else settings.GLITCHTIP_PROFILES_SAMPLE_RATE,
        send_default_pii=False,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(monitor_beat_tasks=component == "worker"),
        ],
        before_send=_before_send,
    )
    sentry_sdk.set_tag("component", component)

    logger.info("Observability initialized for %s (%s)", component, settings.APP_ENV)
    return True


def _before_send(event: dict, hint: dict) -> dict | None:
    exc_info = hint.get("exc_info")
    if not exc_info:
        return event

    _, exc_value, _ = exc_info
    if isinstance(exc_value, AcademyError):
        return None
    if any(marker in str(exc_value).lower() for marker in TRANSIENT_ERRORS):
        return None
    return event


def capture_exception(
    exception: Exception,
    extra: dict | None = None,
    tags: dict[str, str] | None = None,
) -> str | None:
    """Report a failure from a sweep or background job with its context."""
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return sentry_sdk.capture_exception(exception)
