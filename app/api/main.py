from __future__ import annotations

import json
import time
from typing import Any, List, Optional
from uuid import uuid4

from fastapi import FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST
from pydantic import ValidationError

from app.core.exceptions import ApiError, AuditUnavailableError, InternalError, MalformedInputError, NotFoundError
from app.core.logging import get_request_id, log_event, log_request_summary, set_request_context
from app.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from app.core.models import ImportRequest, Operation, RestoreRequest, SnapshotSummary
from app.core.security import require_admin, verify_bearer_token
from app.engine.importer import load_snapshot
from app.engine.manifest import manifest_to_dict
from app.engine.services import Services, build_services


def create_app(services: Services | None = None) -> FastAPI:
    app = FastAPI(title="CBOS State Porter", version="1.0.0")
    app.state.services = services

    @app.middleware("http")
    async def request_summary_logger(request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        set_request_context(
            request_id=request_id,
            endpoint=str(request.url.path),
            client=request.headers.get("user-agent"),
        )
        start = time.time()
        response = await call_next(request)
        duration_ms = int((time.time() - start) * 1000)
        endpoint = _route_path(request)
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration_ms / 1000.0)
        REQUEST_COUNT.labels(endpoint=endpoint, status=str(response.status_code)).inc()
        log_request_summary(
            request_id=request_id,
            endpoint=str(request.url.path),
            method=request.method,
            client=request.headers.get("user-agent"),
            status_code=response.status_code,
            operation_id=getattr(request.state, "operation_id", None),
            duration_ms=duration_ms,
            level="WARN" if response.status_code >= 400 else "INFO",
        )
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.details.get("operation_id"):
            request.state.operation_id = exc.details["operation_id"]
        return JSONResponse(status_code=exc.http_status, content=_error_body(request, exc.code, exc.message, exc.details))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        log_event(event="unhandled_error", level="ERROR", log_type="request", details={"error": repr(exc)})
        error = InternalError()
        return JSONResponse(status_code=error.http_status, content=_error_body(request, error.code, error.message))

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz(request: Request) -> dict:
        _require_ledger_ready(_services(request))
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.post("/api/v1/export")
    async def export_endpoint(
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> JSONResponse:
        caller = require_admin(verify_bearer_token(authorization))
        services = _services(request)
        _require_ledger_ready(services)
        manifest = services.exporter.export(caller)
        return JSONResponse(
            content=manifest_to_dict(manifest),
            headers={"Content-Disposition": f'attachment; filename="{services.exporter.export_filename()}"'},
        )

    @app.post("/api/v1/import")
    async def import_endpoint(
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> JSONResponse:
        caller = require_admin(verify_bearer_token(authorization))
        services = _services(request)
        _require_ledger_ready(services)
        payload = _parse_import_request(await request.body())
        result = services.importer.run(
            payload.manifest,
            caller,
            dry_run=payload.dry_run,
            force=payload.force,
        )
        request.state.operation_id = result.operation_id
        return JSONResponse(content=_serialize(result))

    @app.get("/api/v1/operations")
    async def list_operations(
        request: Request,
        authorization: str | None = Header(default=None),
        limit: Optional[int] = 20,
        operation_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Operation]:
        verify_bearer_token(authorization)
        return _services(request).ledger.list_recent(limit=limit, operation_type=operation_type, status=status)

    @app.get("/api/v1/operations/{operation_id}")
    async def get_operation(
        operation_id: str,
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> Operation:
        verify_bearer_token(authorization)
        operation = _services(request).ledger.get(operation_id)
        if operation is None:
            raise NotFoundError(f"Operation {operation_id} not found")
        return operation

    @app.get("/api/v1/snapshots")
    async def list_snapshots(
        request: Request,
        authorization: str | None = Header(default=None),
        snapshot_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[SnapshotSummary]:
        verify_bearer_token(authorization)
        try:
            return _services(request).snapshots.list(snapshot_type=snapshot_type, limit=limit)
        except ValueError as exc:
            raise MalformedInputError(f"Unknown snapshot_type: {snapshot_type}") from exc

    @app.get("/api/v1/snapshots/{snapshot_id}")
    async def get_snapshot(
        snapshot_id: str,
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> JSONResponse:
        verify_bearer_token(authorization)
        snapshot = load_snapshot(_services(request).snapshots, snapshot_id)
        return JSONResponse(content=_serialize(snapshot))

    @app.post("/api/v1/snapshots/{snapshot_id}/restore")
    async def restore_snapshot(
        snapshot_id: str,
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> JSONResponse:
        caller = require_admin(verify_bearer_token(authorization))
        services = _services(request)
        _require_ledger_ready(services)
        payload = _parse_restore_request(await request.body())
        result = services.importer.restore_snapshot(snapshot_id, caller, force=payload.force)
        request.state.operation_id = result.operation_id
        return JSONResponse(content=_serialize(result))

    return app


def _services(request: Request) -> Services:
    if request.app.state.services is None:
        request.app.state.services = build_services()
    return request.app.state.services


def _require_ledger_ready(services: Services) -> None:
    try:
        services.ledger.ensure_ready()
    except OSError as exc:
        raise AuditUnavailableError() from exc


def _parse_import_request(raw: bytes) -> ImportRequest:
    data = _parse_json_object(raw, "import request")
    if "manifest" not in data:
        raise MalformedInputError("No manifest provided")
    try:
        return ImportRequest(**data)
    except ValidationError as exc:
        raise MalformedInputError("import request schema invalid") from exc


def _parse_restore_request(raw: bytes) -> RestoreRequest:
    if not raw.strip():
        return RestoreRequest()
    try:
        return RestoreRequest(**_parse_json_object(raw, "restore request"))
    except ValidationError as exc:
        raise MalformedInputError("restore request schema invalid") from exc


def _parse_json_object(raw: bytes, label: str) -> dict[str, Any]:
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedInputError(f"Failed to parse {label} JSON", "PARSE_ERROR") from exc
    if not isinstance(data, dict):
        raise MalformedInputError(f"{label} must be a JSON object")
    return data


def _serialize(result: Any) -> dict:
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json", exclude_none=True)
    return result.dict(exclude_none=True)


def _error_body(request: Request, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "request_id": getattr(request.state, "request_id", None) or get_request_id(),
    }
    body.update(details or {})
    return body


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or str(request.url.path)


app = create_app()
