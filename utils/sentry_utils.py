"""
utils/sentry_utils.py
─────────────────────────────────────────────────────────────────────────
Sentry configuration and helpers for the artifact service.

Usage
=====
• Call `configure_sentry()` once at application start-up **after**
  `init_structured_logging()` (see utils.bootstrap).
• Import helpers (`sentry_span_context`, `set_sentry_tag`, `capture_degradation`)
  anywhere. When Sentry is not initialised every helper is a no-op.

This file contains **no** top-level Sentry initialisation side-effects.
"""

from __future__ import annotations

import contextlib
import logging
import os
from typing import Any, Generator, Optional, Set, Union

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration, ignore_logger
from sentry_sdk.integrations import Integration
from sentry_sdk.tracing import Span
from sentry_sdk.types import Event, Hint

from utils.logging_config import request_id_var, stream_id_var

__all__ = [
    "configure_sentry",
    "filter_sensitive_event",
    "sentry_span_context",
    "set_sentry_tag",
    "capture_degradation",
    "request_id_var",
    "stream_id_var",
]

logger = logging.getLogger(__name__)

NOISY_LOGGERS: Set[str] = {
    "uvicorn.access",
    "uvicorn.error",
    "fastapi",
    "asyncio",
    "sqlalchemy.engine.Engine",
    "sqlalchemy.pool",
    "httpx",
}
SENSITIVE_KEYS: Set[str] = {
    "password",
    "token",
    "secret",
    "api_key",
    "apikey",
    "authorization",
    "cookie",
    "session",
}
IGNORED_TRANSACTIONS: Set[str] = {
    "/health",
    "/favicon.ico",
}


def _filter_request_data(request_data: dict[str, Any]) -> None:
    """In-place redaction of headers / body keys marked sensitive."""
    if isinstance((payload := request_data.get("data")), dict):
        for k in list(payload):
            if any(s in k.lower() for s in SENSITIVE_KEYS):
                payload[k] = "[FILTERED]"

    if isinstance((headers := request_data.get("headers")), dict):
        request_data["headers"] = {
            k: ("[FILTERED]" if any(s in k.lower() for s in SENSITIVE_KEYS) else v)
            for k, v in headers.items()
        }


def filter_sensitive_event(event: Event, hint: Optional[Hint] = None) -> Optional[Event]:
    """`before_send` hook: drop health-check noise, redact secrets, tag correlation ids."""
    transaction = str(event.get("transaction") or "")
    if any(transaction.startswith(t) for t in IGNORED_TRANSACTIONS):
        return None

    if "request" in event:
        _filter_request_data(event["request"])  # type: ignore[arg-type]

    tags = event.setdefault("tags", {})  # type: ignore[typeddict-item]
    if (rid := request_id_var.get()) is not None:
        tags["request_id"] = rid  # type: ignore[index]
    if (sid := stream_id_var.get()) is not None:
        tags["stream_id"] = sid  # type: ignore[index]
    return event


def configure_sentry(
    *,
    dsn: str,
    environment: str = "production",
    release: str | None = None,
    traces_sample_rate: float = 0.2,
) -> None:
    """
    Initialise Sentry. Call ONCE at start-up.

    Env flags respected
    -------------------
    • SENTRY_ENABLED (default: False)
    • SENTRY_DEBUG   (default: False)
    """
    if str(os.getenv("SENTRY_ENABLED", "")).lower() not in {"1", "true", "yes"} or not dsn:
        logging.info("Sentry disabled via env flag; skipping initialisation.")
        return

    integrations: list[Integration] = [
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        FastApiIntegration(transaction_style="endpoint"),
        AsyncioIntegration(),
    ]

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=traces_sample_rate,
        integrations=integrations,
        before_send=filter_sensitive_event,
        debug=str(os.getenv("SENTRY_DEBUG", "")).lower() in {"1", "true", "yes"},
        send_default_pii=False,
    )

    for logger_name in NOISY_LOGGERS:
        ignore_logger(logger_name)
    logging.info("Sentry initialised (%s)", environment)


def set_sentry_tag(key: str, value: Union[str, int, float, bool]) -> None:
    """Low-cardinality tag helper."""
    sentry_sdk.set_tag(key, str(value)[:64])


@contextlib.contextmanager
def sentry_span_context(
    op: str,
    description: str | None = None,
    **data: Any,
) -> Generator[Span, None, None]:
    """Nested span (or root transaction when none is active)."""
    with sentry_sdk.start_span(op=op, name=description or op) as span:
        for k, v in data.items():
            span.set_data(k, v if isinstance(v, (str, int, float, bool)) else str(v))
        yield span


def capture_degradation(message: str, exc: BaseException | None = None, **context: Any) -> None:
    """
    Report a functionality-degrading (but non-fatal) condition, e.g. the stream
    backing store being unreachable.
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("degraded", "true")
        for k, v in context.items():
            scope.set_extra(k, v)
        if exc is not None:
            sentry_sdk.capture_exception(exc)
        else:
            sentry_sdk.capture_message(message, level="warning")
