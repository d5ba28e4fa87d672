from __future__ import annotations

import logging

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from batch_ops.context import current_actor, get_request_context_optional
from batch_ops.middleware.request_logging import (
    RequestLoggingMiddleware,
    _sanitize_log_value,
)


async def _whoami(request: Request) -> JSONResponse:
    ctx = get_request_context_optional()
    return JSONResponse(
        {"actor": current_actor("nobody"), "request_id": ctx.request_id if ctx else None}
    )


def _app() -> Starlette:
    return Starlette(
        routes=[
            Route("/whoami", endpoint=_whoami),
            Route("/health", endpoint=_whoami),
        ],
        middleware=[Middleware(RequestLoggingMiddleware, default_actor="system")],
    )


def test_sanitize_log_value_strips_control_characters() -> None:
    assert _sanitize_log_value("a\nb\rc\td") == "a_b_c\td"


def test_actor_header_binds_request_context() -> None:
    client = TestClient(_app())
    response = client.get("/whoami", headers={"X-Actor": "registrar", "X-Request-Id": "req-1"})
    assert response.json() == {"actor": "registrar", "request_id": "req-1"}


def test_missing_actor_uses_default() -> None:
    client = TestClient(_app())
    assert client.get("/whoami").json()["actor"] == "system"


def test_exempt_paths_do_not_bind_context() -> None:
    client = TestClient(_app())
    assert client.get("/health", headers={"X-Actor": "registrar"}).json()["actor"] == "nobody"


def test_request_lines_are_logged(caplog) -> None:
    client = TestClient(_app())
    with caplog.at_level(logging.INFO, logger="batch_ops.middleware.request_logging"):
        client.get("/whoami", headers={"X-Actor": "registrar"})

    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("REQUEST_START") for message in messages)
    end = next(message for message in messages if message.startswith("REQUEST_END"))
    assert "actor=registrar" in end
    assert "status=200" in end
