"""Structured logging for the API.

Every record is written to stdout as one JSON object. Records emitted while a
request is being served carry that request's `X-Request-ID`.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from fastapi import Request, Response

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

access_logger = logging.getLogger("social.access")


def set_request_id(rid: Optional[str]) -> None:
    _request_id.set(rid)


def get_request_id() -> Optional[str]:
    return _request_id.get()


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = _request_id.get()
        if rid:
            entry["request_id"] = rid
        if record.exc_info:
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(level: Union[int, str] = "INFO") -> None:
    """Route all logging to stdout as JSON lines at `level`."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag the request with `X-Request-ID` (client-supplied or a fresh UUID).

    Logs one access line per request with its status and duration, and
    returns the id on the response.
    """
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_request_id(rid)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        access_logger.info(
            "%s %s -> %s in %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
    finally:
        set_request_id(None)
    response.headers["X-Request-ID"] = rid
    return response
