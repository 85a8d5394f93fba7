"""
response_utils.py
-----------------
Standard JSON envelope for every HTTP endpoint:
`{status, message, data, timestamp, request_id}`.
"""

import logging
from uuid import uuid4

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import MetaData

from utils.logging_config import request_id_var
from utils.serializers import to_serialisable, utc_now

logger = logging.getLogger(__name__)


def build_envelope(data=None, message="Success", success=True) -> dict:
    safe_data = to_serialisable(data)
    return {
        "status": "success" if success else "error",
        "message": message,
        "data": safe_data if safe_data is not None else ([] if isinstance(data, list) else {}),
        "timestamp": utc_now().isoformat(),
        "request_id": request_id_var.get() or str(uuid4()),
    }


async def create_standard_response(
    data=None, message="Success", success=True, status_code=200, headers=None
):
    """Ensure consistent response structure with support for headers"""
    payload = build_envelope(data, message, success)
    json_ready = jsonable_encoder(payload, custom_encoder={MetaData: lambda _x: None})
    return JSONResponse(
        content=json_ready,
        status_code=status_code,
        headers=dict(headers) if headers else None,
    )
