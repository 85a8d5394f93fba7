"""schemas/common.py
====================
Shared response models used across multiple API endpoints.

Only lightweight `pydantic.BaseModel` subclasses live here so import cycles are
avoided. Feature-specific request models belong in `schemas/<feature>_schemas.py`.
"""

from typing import Literal

from pydantic import BaseModel


class HealthStatus(BaseModel):
    """Response of `/health`."""

    status: Literal["healthy", "degraded", "down"]
    db_available: bool
    stream_mode: Literal["durable", "passthrough"]
    environment: str
    app_name: str
    version: str
