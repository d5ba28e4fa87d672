"""Request logging middleware that also binds the acting user for the request."""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..context import RequestContext, reset_request_context, set_request_context

logger = logging.getLogger(__name__)

# Control character pattern for log injection prevention.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

_MAX_ACTOR_LENGTH = 128


def _sanitize_log_value(value: str) -> str:
    """Replace control characters (newlines, tabs, etc.) to prevent log injection."""
    return _CONTROL_CHAR_RE.sub("_", value)


def _resolve_actor(request: Request, default_actor: str) -> str:
    raw = request.headers.get("x-actor", "").strip()
    if not raw:
        return default_actor
    return _sanitize_log_value(raw)[:_MAX_ACTOR_LENGTH]


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Request logging middleware.

    - Logs REQUEST_START / REQUEST_END with request id, actor, status, duration
    - Binds a RequestContext from the X-Actor header so operations submitted
      during the request record that actor as performed_by
    """

    # Paths exempt from request logging
    EXEMPT_PATHS = frozenset({"/health", "/ready"})

    def __init__(self, app: Callable, default_actor: str = "system") -> None:
        super().__init__(app)
        self._default_actor = default_actor

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        request_id = _sanitize_log_value(request.headers.get("x-request-id", str(uuid.uuid4())))
        actor = _resolve_actor(request, self._default_actor)
        token = set_request_context(RequestContext(actor=actor, request_id=request_id))
        start_time = time.time()
        safe_path = _sanitize_log_value(request.url.path)

        logger.info(
            "REQUEST_START request_id=%s actor=%s method=%s path=%s",
            request_id,
            actor,
            request.method,
            safe_path,
        )

        error_message: str | None = None
        status_code: int = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        except Exception as e:
            error_message = _sanitize_log_value(str(e))
            raise

        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            reset_request_context(token)

            if error_message:
                logger.error(
                    "REQUEST_END request_id=%s actor=%s method=%s path=%s "
                    "status=%s duration_ms=%d error=%s",
                    request_id,
                    actor,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    error_message,
                )
            else:
                logger.info(
                    "REQUEST_END request_id=%s actor=%s method=%s path=%s "
                    "status=%s duration_ms=%d",
                    request_id,
                    actor,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
