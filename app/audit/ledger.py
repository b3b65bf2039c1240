from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.core.logging import log_event
from app.core.metrics import OPERATION_COUNT
from app.core.models import TERMINAL_STATUSES, Caller, Operation, OperationStatus, OperationType
from app.core.utils import new_id, utc_timestamp


class LedgerError(RuntimeError):
    pass


class OperationLedger:
    """Append-only JSONL history of export, import and backup operations.

    Each line is either a ``start`` entry carrying the initial record or an
    ``update`` entry carrying changed fields. The current state of an
    operation is the fold of its entries in file order. The fold is read from
    disk once per instance and then kept current as entries are appended.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._operations: Optional[Dict[str, Operation]] = None

    def ensure_ready(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8"):
            return

    def record_start(
        self,
        operation_type: OperationType | str,
        caller: Caller | None = None,
        **fields: Any,
    ) -> str:
        operation = Operation(
            id=new_id(),
            operation_type=OperationType(operation_type),
            status=OperationStatus.IN_PROGRESS,
            user_id=caller.id if caller else None,
            user_email=caller.email if caller else None,
            user_name=(caller.name or caller.email) if caller else None,
            started_at=utc_timestamp(),
            **fields,
        )
        state = _dump(operation)
        with self._lock:
            operations = self._state()
            self._write_line({"event": "start", "operation_id": operation.id, "fields": state})
            operations[operation.id] = Operation(**state)
        log_event(
            event="operation_started",
            operation_id=operation.id,
            operation_type=operation.operation_type.value,
            status=operation.status.value,
        )
        return operation.id

    def record_update(self, operation_id: str, **fields: Any) -> Operation:
        with self._lock:
            operations = self._state()
            current = operations.get(operation_id)
            if current is None:
                raise LedgerError(f"unknown operation {operation_id}")
            if current.status in TERMINAL_STATUSES:
                raise LedgerError(f"operation {operation_id} is already {current.status.value}")
            try:
                updated = Operation(**{**_dump(current), **fields})
            except ValidationError as exc:
                raise LedgerError(f"invalid update for operation {operation_id}") from exc
            changed = _dump(updated, include=set(fields))
            self._write_line({"event": "update", "operation_id": operation_id, "fields": changed})
            operations[operation_id] = Operation(**{**_dump(current), **changed})

        if updated.status in TERMINAL_STATUSES:
            OPERATION_COUNT.labels(
                operation_type=updated.operation_type.value, status=updated.status.value
            ).inc()
            log_event(
                event="operation_finished",
                level="INFO" if updated.status == OperationStatus.SUCCESS else "WARN",
                operation_id=operation_id,
                operation_type=updated.operation_type.value,
                status=updated.status.value,
                details={"duration_ms": updated.duration_ms, "error_message": updated.error_message},
            )
        return updated

    def get(self, operation_id: str) -> Optional[Operation]:
        with self._lock:
            return self._state().get(operation_id)

    def list_recent(
        self,
        limit: Optional[int] = 20,
        operation_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Operation]:
        with self._lock:
            operations = list(reversed(list(self._state().values())))
        records: List[Operation] = []
        for operation in operations:
            if operation_type and operation.operation_type.value != operation_type:
                continue
            if status and operation.status.value != status:
                continue
            records.append(operation)
            if limit is not None and len(records) >= limit:
                break
        return records

    def _write_line(self, entry: Dict[str, Any]) -> None:
        entry["timestamp"] = utc_timestamp()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=True) + "\n")

    def _state(self) -> Dict[str, Operation]:
        if self._operations is None:
            self._operations = self._fold()
        return self._operations

    def _fold(self) -> Dict[str, Operation]:
        if not self.path.exists():
            return {}
        states: Dict[str, Dict[str, Any]] = {}
        with self.path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                operation_id = entry.get("operation_id")
                fields = entry.get("fields") or {}
                if entry.get("event") == "start":
                    states[operation_id] = dict(fields)
                elif operation_id in states:
                    states[operation_id].update(fields)
        operations: Dict[str, Operation] = {}
        for operation_id, state in states.items():
            try:
                operations[operation_id] = Operation(**state)
            except ValidationError:
                continue
        return operations


def _dump(operation: Operation, include: set[str] | None = None) -> Dict[str, Any]:
    if hasattr(operation, "model_dump"):
        return operation.model_dump(mode="json", include=include)
    return json.loads(operation.json(include=include))
