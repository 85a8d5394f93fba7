"""
Application Configuration Module (config.py)
--------------------------------------------

Centralized runtime configuration for the artifact service, sourced from environment
variables and `.env` files.

Highlights:
- Supplies `DATABASE_URL` (async SQLAlchemy URL) for the versioned document store.
- `STREAM_STORE_URL` selects whether the resumable stream bridge keeps a durable,
  replayable log. Leaving it empty runs the bridge in pass-through mode; this is a
  supported configuration and is logged at startup.
- Autosave and UI timing knobs (`AUTOSAVE_DELAY_SECONDS`, `UPDATED_DISPLAY_SECONDS`).
- Sentry and logging flags consumed by `utils.bootstrap.init_telemetry`.

All settings are exposed via the `settings` object.
"""

import os
from dotenv import load_dotenv
from pathlib import Path
from urllib.parse import quote_plus

env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path, override=False)


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    """
    Runtime settings.

    Values are read once at import time. Tests override attributes directly on the
    `settings` instance or pass explicit arguments to the services.
    """

    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    APP_NAME = os.getenv("APP_NAME", "artifact-sync")

    DEBUG = _env_flag("DEBUG")
    ENV = os.getenv("ENV", "development")

    # Sentry (optional)
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_ENABLED = _env_flag("SENTRY_ENABLED")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1"))

    # PostgreSQL connection: either full URL or separate PG* variables
    PGHOST = os.getenv("PGHOST", "")
    PGPORT = os.getenv("PGPORT", "5432")
    PGDATABASE = os.getenv("PGDATABASE", "")
    PGUSER = os.getenv("PGUSER", "")
    PGPASSWORD = os.getenv("PGPASSWORD", "")

    if PGHOST and PGDATABASE and PGUSER and PGPASSWORD:
        _pwd = quote_plus(PGPASSWORD)
        DATABASE_URL = (
            f"postgresql+asyncpg://{PGUSER}:{_pwd}@{PGHOST}:{PGPORT}/{PGDATABASE}"
        )
    else:
        DATABASE_URL = os.getenv(
            "DATABASE_URL", "sqlite+aiosqlite:///./artifacts.db"
        )

    # SSL settings for PostgreSQL connectivity
    PG_SSL_ALLOW_SELF_SIGNED: str = os.getenv("PG_SSL_ALLOW_SELF_SIGNED", "False")
    PG_SSL_ROOT_CERT: str = os.getenv("PG_SSL_ROOT_CERT", "")

    # Durable backing store for resumable streams. Empty -> pass-through mode.
    STREAM_STORE_URL: str = os.getenv("STREAM_STORE_URL", "")

    # Artifact timing
    AUTOSAVE_DELAY_SECONDS = float(os.getenv("AUTOSAVE_DELAY_SECONDS", "1.5"))
    UPDATED_DISPLAY_SECONDS = float(os.getenv("UPDATED_DISPLAY_SECONDS", "2.0"))

    # CORS: comma separated list, "*" for local development
    CORS_ORIGINS = [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
    ]

    # Create tables on startup (disable when schema is managed externally)
    CREATE_TABLES_ON_STARTUP = _env_flag("CREATE_TABLES_ON_STARTUP", "True")


settings = Settings()

__all__ = ["settings"]
