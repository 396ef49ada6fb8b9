from __future__ import annotations

import re
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request

from app.core.logger import module_logger

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_LOG = module_logger("http")


def _request_id_from_header(raw: str | None) -> str:
    value = str(raw or "").strip()
    if not value:
        return uuid4().hex
    if not _REQUEST_ID_RE.fullmatch(value):
        return uuid4().hex
    return value


def install_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def _request_logging_middleware(request: Request, call_next):
        request_id = _request_id_from_header(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        started_at = perf_counter()
        _LOG.info(
            "request:start method=%s path=%s request_id=%s",
            request.method,
            request.url.path,
            request_id,
        )

        try:
            response = await call_next(request)
        except Exception:
            _LOG.exception(
                "request:error method=%s path=%s request_id=%s",
                request.method,
                request.url.path,
                request_id,
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        duration_ms = (perf_counter() - started_at) * 1000.0
        _LOG.info(
            "request:done status=%s duration_ms=%.2f request_id=%s",
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
