from __future__ import annotations

import json
from contextvars import ContextVar
from typing import Any

from app.core.utils import utc_timestamp

SERVICE_NAME = "cbos-porter"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_endpoint_var: ContextVar[str | None] = ContextVar("endpoint", default=None)
_client_var: ContextVar[str | None] = ContextVar("client", default=None)
_operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)


def set_request_context(
    *,
    request_id: str,
    endpoint: str | None = None,
    client: str | None = None,
) -> None:
    _request_id_var.set(request_id)
    _operation_id_var.set(None)
    if endpoint is not None:
        _endpoint_var.set(endpoint)
    if client is not None:
        _client_var.set(client)


def update_request_context(
    *,
    endpoint: str | None = None,
    client: str | None = None,
    operation_id: str | None = None,
) -> None:
    if endpoint is not None:
        _endpoint_var.set(endpoint)
    if client is not None:
        _client_var.set(client)
    if operation_id is not None:
        _operation_id_var.set(operation_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def log_stdout(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=True, default=str))


def log_request_summary(
    *,
    request_id: str,
    endpoint: str,
    method: str,
    client: str | None,
    status_code: int,
    operation_id: str | None,
    duration_ms: int,
    level: str = "INFO",
) -> None:
    log_stdout(
        {
            "timestamp": utc_timestamp(),
            "level": level,
            "service": SERVICE_NAME,
            "log_type": "request",
            "request_id": request_id,
            "endpoint": endpoint,
            "method": method,
            "client": client,
            "status_code": status_code,
            "operation_id": operation_id,
            "duration_ms": duration_ms,
        }
    )


def log_event(
    *,
    event: str,
    level: str = "INFO",
    log_type: str = "engine",
    operation_id: str | None = None,
    operation_type: str | None = None,
    status: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    payload: dict[str, Any] = {
        "timestamp": utc_timestamp(),
        "level": level,
        "service": SERVICE_NAME,
        "log_type": log_type,
        "event": event,
        "request_id": _request_id_var.get(),
        "endpoint": _endpoint_var.get(),
        "client": _client_var.get(),
        "operation_id": operation_id or _operation_id_var.get(),
    }
    if operation_type is not None:
        payload["operation_type"] = operation_type
    if status is not None:
        payload["status"] = status
    if details:
        payload["details"] = details
    log_stdout(payload)
