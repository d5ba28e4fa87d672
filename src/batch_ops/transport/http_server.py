"""Starlette HTTP server exposing batch operations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from batch_ops.app import AppContext, get_app_context
from batch_ops.domain.errors import (
    BatchOpsError,
    IllegalTransition,
    InvalidOperationRequest,
    NoSnapshot,
    OperationInProgress,
    OperationNotFound,
)
from batch_ops.middleware.request_logging import RequestLoggingMiddleware

logger = logging.getLogger(__name__)

_MAX_LIST_LIMIT = 1000

_ERROR_STATUS: tuple[tuple[type[BatchOpsError], int], ...] = (
    (InvalidOperationRequest, 400),
    (OperationNotFound, 404),
    (NoSnapshot, 404),
    (OperationInProgress, 409),
    (IllegalTransition, 409),
)


def _status_for(exc: BatchOpsError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


async def _batch_ops_error_handler(request: Request, exc: BatchOpsError) -> Response:
    status = _status_for(exc)
    if status >= 500:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": exc.code, "message": str(exc)}, status_code=status)


def _parse_limit(request: Request, default: int) -> int:
    raw = request.query_params.get("limit")
    if raw is None or raw == "":
        return default
    try:
        limit = int(raw)
    except ValueError as exc:
        raise InvalidOperationRequest(f"limit must be an integer, got {raw!r}") from exc
    if limit < 1 or limit > _MAX_LIST_LIMIT:
        raise InvalidOperationRequest(f"limit must be between 1 and {_MAX_LIST_LIMIT}")
    return limit


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidOperationRequest("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise InvalidOperationRequest("Request body must be a JSON object")
    return body


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application around ``context`` (the cached one by default)."""
    ctx = context or get_app_context()
    settings = ctx.settings
    orchestrator = ctx.orchestrator

    middleware: list[Middleware] = [
        Middleware(
            RequestLoggingMiddleware,
            default_actor=settings.execution.default_actor,
        ),
    ]

    # CORS must be outermost so preflight responses carry its headers.
    if settings.server.enable_cors and settings.server.allowed_origins:
        from starlette.middleware.cors import CORSMiddleware

        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.allowed_origins),
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["Content-Type", "Accept", "X-Actor", "X-Request-Id"],
            ),
        )

    async def submit_operation(request: Request) -> Response:
        body = await _read_json_object(request)
        kind = body.get("kind")
        if not isinstance(kind, str):
            raise InvalidOperationRequest("kind is required")
        target_ids = body.get("target_ids")
        if not isinstance(target_ids, list):
            raise InvalidOperationRequest("target_ids must be a list of record ids")
        parameters = body.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise InvalidOperationRequest("parameters must be an object")
        label = body.get("label")
        if label is not None and not isinstance(label, str):
            raise InvalidOperationRequest("label must be a string")

        if body.get("wait"):
            operation = await orchestrator.submit_and_execute(
                kind, target_ids, parameters, label=label
            )
            return JSONResponse(operation.to_dict())

        operation_id = orchestrator.launch(kind, target_ids, parameters, label=label)
        return JSONResponse(
            {"operation_id": operation_id, "status": "pending"}, status_code=202
        )

    async def list_operations(request: Request) -> Response:
        limit = _parse_limit(request, settings.execution.recent_operations_limit)
        operations = orchestrator.recent_operations(limit)
        return JSONResponse({"operations": [op.to_dict() for op in operations]})

    async def get_operation(request: Request) -> Response:
        operation_id = request.path_params["operation_id"]
        operation = orchestrator.get(operation_id)
        if operation is None:
            raise OperationNotFound(operation_id)
        return JSONResponse(operation.to_dict())

    async def clear_operation(request: Request) -> Response:
        operation_id = request.path_params["operation_id"]
        if not orchestrator.clear_operation(operation_id):
            raise OperationNotFound(operation_id)
        return JSONResponse({"operation_id": operation_id, "removed": True})

    async def undo_operation(request: Request) -> Response:
        operation_id = request.path_params["operation_id"]
        result = await orchestrator.undo(operation_id)
        return JSONResponse(result.to_dict())

    async def cancel_operation(request: Request) -> Response:
        operation_id = request.path_params["operation_id"]
        operation = orchestrator.get(operation_id)
        if operation is None:
            raise OperationNotFound(operation_id)
        if operation.is_terminal:
            raise IllegalTransition(operation_id, operation.status.value, "cancelled")
        requested = orchestrator.cancel(operation_id)
        return JSONResponse({"operation_id": operation_id, "cancel_requested": requested})

    async def get_snapshot(request: Request) -> Response:
        operation_id = request.path_params["operation_id"]
        snapshot = orchestrator.get_snapshot(operation_id)
        if snapshot is None:
            raise NoSnapshot(operation_id)
        return JSONResponse(snapshot.to_dict())

    async def list_audit(request: Request) -> Response:
        limit = _parse_limit(request, 100)
        operation_id = request.query_params.get("operation_id") or None
        entries = await asyncio.to_thread(
            ctx.audit_sink.list_entries, operation_id=operation_id, limit=limit
        )
        return JSONResponse({"entries": [entry.to_dict() for entry in entries]})

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def ready_handler(request: Request) -> Response:
        return JSONResponse({"status": "ready"})

    routes = [
        Route("/operations", endpoint=submit_operation, methods=["POST"]),
        Route("/operations", endpoint=list_operations, methods=["GET"]),
        Route("/operations/{operation_id}", endpoint=get_operation, methods=["GET"]),
        Route("/operations/{operation_id}", endpoint=clear_operation, methods=["DELETE"]),
        Route("/operations/{operation_id}/undo", endpoint=undo_operation, methods=["POST"]),
        Route(
            "/operations/{operation_id}/cancel", endpoint=cancel_operation, methods=["POST"]
        ),
        Route("/operations/{operation_id}/snapshot", endpoint=get_snapshot, methods=["GET"]),
        Route("/audit", endpoint=list_audit, methods=["GET"]),
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/ready", endpoint=ready_handler, methods=["GET"]),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting batch operations HTTP server...")
        try:
            yield
        finally:
            logger.info("Stopping batch operations HTTP server...")
            await orchestrator.wait_idle()
            ctx.close()

    app = Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers={BatchOpsError: _batch_ops_error_handler},
        lifespan=lifespan,
    )
    app.state.context = ctx
    return app
