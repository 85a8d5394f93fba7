"""
utils/bootstrap.py
─────────────────────────────────────────────────────────────────────────
Single source of truth for observability initialization: structured logging
first, then Sentry.

Usage:
    from utils.bootstrap import init_telemetry
    init_telemetry()  # Call once at application startup, before any other logging
"""

import os
import logging
from typing import Optional


def init_telemetry(
    app_name: Optional[str] = None,
    app_version: Optional[str] = None,
    environment: Optional[str] = None,
    sentry_dsn: Optional[str] = None,
) -> None:
    """
    Initialize all telemetry systems in the correct order.

    Args:
        app_name: Application name for Sentry release tag (defaults to env var)
        app_version: Application version for Sentry release (defaults to env var)
        environment: Environment name (defaults to env var, fallback to 'production')
        sentry_dsn: Sentry DSN (defaults to env var)
    """
    from utils.logging_config import init_structured_logging
    init_structured_logging()

    logger = logging.getLogger(__name__)

    from utils.sentry_utils import configure_sentry

    app_name = app_name or os.getenv("APP_NAME", "artifact-sync")
    app_version = app_version or os.getenv("APP_VERSION", "unknown")
    environment = environment or os.getenv("ENV", "production")
    sentry_dsn = sentry_dsn or os.getenv("SENTRY_DSN", "")

    if environment == "production":
        traces_sample_rate = 0.1
    elif environment == "staging":
        traces_sample_rate = 0.3
    else:
        traces_sample_rate = 0.02

    release = f"{app_name}@{app_version}" if app_version != "unknown" else app_name

    configure_sentry(
        dsn=sentry_dsn,
        environment=environment,
        release=release,
        traces_sample_rate=traces_sample_rate,
    )

    logger.info("Telemetry initialization complete", extra={
        "app_name": app_name,
        "app_version": app_version,
        "environment": environment,
        "traces_sample_rate": traces_sample_rate,
    })
