"""
utils/middlewares.py
--------------------
HTTP middleware: per-request correlation id propagated into logging ContextVars,
Sentry tags and the `X-Request-ID` response header.
"""

import logging
import time
import uuid

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from utils.logging_config import request_id_var
from utils.sentry_utils import set_sentry_tag

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        set_sentry_tag("request.id", request_id)

        token = request_id_var.set(request_id)
        start = time.time()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"in {(time.time() - start) * 1000:.1f}ms"
        )
        return response


def setup_middlewares(app: FastAPI) -> FastAPI:
    app.add_middleware(RequestIdMiddleware)
    return app
