from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List

import pytest

from app.audit.ledger import OperationLedger
from app.core.models import Caller, Compatibility, Row
from app.core.profile import ComponentSpec, SystemProfile, TableSpec
from app.engine.services import Services
from app.integrity.hashing import manifest_checksum
from app.storage.snapshots import InMemorySnapshotStore
from app.storage.tables import InMemoryTableStore, TableReadError, TableWriteError


class RecordingTableStore(InMemoryTableStore):
    """In-memory store that records every call and can be told to fail."""

    def __init__(self, tables: Dict[str, List[Row]] | None = None, events: List[tuple] | None = None) -> None:
        super().__init__(tables)
        self.events: List[tuple] = events if events is not None else []
        self.fail_read: set[str] = set()
        self.fail_delete: set[str] = set()
        self.fail_delete_once: set[str] = set()
        self.fail_insert: set[str] = set()
        self.fail_insert_once: set[str] = set()

    @property
    def writes(self) -> List[tuple]:
        return [event for event in self.events if event[0] in {"delete", "insert"}]

    def list_rows(self, table: str) -> List[Row]:
        self.events.append(("read", table))
        if table in self.fail_read:
            raise TableReadError(table, "read refused")
        return super().list_rows(table)

    def delete_all(self, table: str) -> None:
        self.events.append(("delete", table))
        if table in self.fail_delete:
            raise TableWriteError(table, "delete refused")
        if table in self.fail_delete_once:
            self.fail_delete_once.discard(table)
            raise TableWriteError(table, "delete refused")
        super().delete_all(table)

    def insert_rows(self, table: str, rows: List[Row]) -> None:
        self.events.append(("insert", table))
        if table in self.fail_insert:
            raise TableWriteError(table, "insert refused")
        if table in self.fail_insert_once:
            self.fail_insert_once.discard(table)
            raise TableWriteError(table, "insert refused")
        super().insert_rows(table, rows)

    def snapshot(self) -> Dict[str, List[Row]]:
        return copy.deepcopy(self._tables)


class RecordingSnapshotStore(InMemorySnapshotStore):
    def __init__(self, events: List[tuple]) -> None:
        super().__init__()
        self.events = events

    def save(self, snapshot):
        self.events.append(("snapshot", snapshot.snapshot_type.value))
        return super().save(snapshot)


@pytest.fixture
def profile() -> SystemProfile:
    return SystemProfile(
        system_name="cbos",
        version="1.0.0",
        tables=[
            TableSpec(name="competitors"),
            TableSpec(name="campaigns"),
            TableSpec(name="social_trends"),
        ],
        edge_functions=["export-cbos", "import-cbos"],
        secrets=["GOOGLE_API_KEY", "PERPLEXITY_API_KEY"],
        components=[ComponentSpec(name="cbos-database", path="database")],
        configurations={"auth_enabled": True},
        compatibility=Compatibility(min_version="1.0.0", max_version="2.0.0"),
    )


@pytest.fixture
def seed_tables() -> Dict[str, List[Row]]:
    return {
        "competitors": [{"id": "b", "name": "Old"}],
        "campaigns": [{"id": "c1", "title": "Summer", "budget": 1200.5}],
        "social_trends": [{"id": "t1", "tag": "#viagem"}, {"id": "t2", "tag": "#praia"}],
    }


@pytest.fixture
def events() -> List[tuple]:
    return []


@pytest.fixture
def table_store(seed_tables, events) -> RecordingTableStore:
    return RecordingTableStore(seed_tables, events)


@pytest.fixture
def snapshot_store(events) -> RecordingSnapshotStore:
    return RecordingSnapshotStore(events)


@pytest.fixture
def ledger(tmp_path) -> OperationLedger:
    return OperationLedger(tmp_path / "operations.log")


@pytest.fixture
def services(profile, table_store, snapshot_store, ledger) -> Services:
    return Services(profile=profile, tables=table_store, snapshots=snapshot_store, ledger=ledger)


@pytest.fixture
def caller() -> Caller:
    return Caller(id="user-1", name="Ana", email="ana@example.com", role="admin")


@pytest.fixture
def make_manifest() -> Callable[..., Dict[str, Any]]:
    def _make(data: Dict[str, Any], sign: bool = True, **overrides: Any) -> Dict[str, Any]:
        manifest: Dict[str, Any] = {
            "system_name": "cbos",
            "version": "1.0.0",
            "exported_at": "2026-01-01T00:00:00+00:00",
            "exported_by": {"id": "user-1", "name": "Ana", "email": "ana@example.com"},
            "components": [],
            "database_schema": {"tables": list(data), "table_counts": {}},
            "edge_functions": [],
            "data": data,
            "configurations": {},
            "compatibility": {"min_version": "1.0.0", "max_version": "2.0.0"},
        }
        manifest.update(overrides)
        if sign and "checksum" not in overrides:
            checksum = manifest_checksum(manifest)
            manifest["checksum"] = checksum
            manifest["signature"] = {
                "method": "sha256",
                "checksum": checksum,
                "generated_at": "2026-01-01T00:00:00+00:00",
            }
        return manifest

    return _make
