from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.api.main import create_app
from app.core import config
from app.engine.services import Services
from app.storage.snapshots import FileSnapshotStore

ADMIN = {"Authorization": "Bearer admin-token"}
VIEWER = {"Authorization": "Bearer viewer-token"}


@pytest.fixture
def client(services, monkeypatch) -> TestClient:
    monkeypatch.setattr(config, "API_TOKEN", "admin-token")
    monkeypatch.setattr(config, "VIEWER_TOKEN", "viewer-token")
    return TestClient(create_app(services))


def test_health_and_metrics(client) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/readyz").json() == {"status": "ok"}
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "porter_requests_total" in response.text


def test_requests_without_token_are_rejected(client) -> None:
    response = client.post("/api/v1/export")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_FAILED"
    assert client.get("/api/v1/operations", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_viewer_cannot_mutate(client) -> None:
    response = client.post("/api/v1/export", headers=VIEWER)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ROLE_REQUIRED"
    assert client.get("/api/v1/operations", headers=VIEWER).status_code == 200


def test_export_downloads_manifest(client) -> None:
    response = client.post("/api/v1/export", headers=ADMIN)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.headers["content-disposition"].startswith('attachment; filename="cbos-export-')
    manifest = response.json()
    assert manifest["system_name"] == "cbos"
    assert manifest["signature"]["checksum"] == manifest["checksum"]


def test_dry_run_then_apply(client, table_store) -> None:
    manifest = client.post("/api/v1/export", headers=ADMIN).json()
    manifest["data"]["competitors"] = [{"id": "a", "name": "Acme"}]

    dry = client.post("/api/v1/import", headers=ADMIN, json={"manifest": manifest, "dry_run": True})
    assert dry.status_code == 200
    body = dry.json()
    assert body["status"] == "validation_complete"
    assert body["dry_run"] is True
    assert "Checksum mismatch - data may be corrupted" in body["validation_report"]["errors"]

    rejected = client.post("/api/v1/import", headers=ADMIN, json={"manifest": manifest})
    assert rejected.status_code == 422
    rejected_body = rejected.json()
    assert rejected_body["error"]["code"] == "VALIDATION_FAILED"
    assert rejected_body["validation_report"]["errors"] == ["Checksum mismatch - data may be corrupted"]
    assert table_store.writes == []

    applied = client.post("/api/v1/import", headers=ADMIN, json={"manifest": manifest, "force": True})
    assert applied.status_code == 200
    applied_body = applied.json()
    assert applied_body["status"] == "import_complete"
    assert applied_body["backup_id"]
    assert applied_body["import_results"]["competitors"] == {"success": True, "count": 1}
    assert table_store.list_rows("competitors") == [{"id": "a", "name": "Acme"}]

    operation = client.get(f"/api/v1/operations/{applied_body['operation_id']}", headers=ADMIN).json()
    assert operation["status"] == "success"
    assert operation["backup_id"] == applied_body["backup_id"]


def test_rolled_back_import_is_an_error_with_operation_id(client, table_store, make_manifest, seed_tables) -> None:
    table_store.fail_insert_once.add("campaigns")
    manifest = make_manifest({"competitors": [{"id": "a"}], "campaigns": [{"id": "c9"}]})

    response = client.post("/api/v1/import", headers=ADMIN, json={"manifest": manifest})

    assert response.status_code == 409
    body = response.json()
    assert body["error"]["code"] == "IMPORT_ROLLED_BACK"
    assert table_store.snapshot() == seed_tables
    operation = client.get(f"/api/v1/operations/{body['operation_id']}", headers=ADMIN).json()
    assert operation["status"] == "rolled_back"


@pytest.mark.parametrize("payload", [b"not json", b"[1, 2]", b'{"dry_run": true}', b'{"manifest": "text"}'])
def test_malformed_import_requests(client, payload) -> None:
    response = client.post("/api/v1/import", headers={**ADMIN, "Content-Type": "application/json"}, content=payload)
    assert response.status_code == 400
    assert response.json()["error"]["code"] in {"PARSE_ERROR", "SCHEMA_INVALID"}


def test_operations_listing(client) -> None:
    client.post("/api/v1/export", headers=ADMIN)
    client.post("/api/v1/export", headers=ADMIN)

    operations = client.get("/api/v1/operations", headers=ADMIN, params={"limit": 1}).json()
    assert len(operations) == 1
    assert operations[0]["operation_type"] == "export"
    assert client.get("/api/v1/operations/missing", headers=ADMIN).status_code == 404


def test_snapshot_listing_and_restore(client, table_store, seed_tables) -> None:
    client.post("/api/v1/export", headers=ADMIN)
    snapshots = client.get("/api/v1/snapshots", headers=ADMIN, params={"snapshot_type": "manual"}).json()
    assert len(snapshots) == 1
    assert snapshots[0]["table_counts"]["social_trends"] == 2
    assert "table_data" not in snapshots[0]

    detail = client.get(f"/api/v1/snapshots/{snapshots[0]['id']}", headers=ADMIN).json()
    assert detail["table_data"] == seed_tables

    table_store.replace_rows("campaigns", [])
    restored = client.post(f"/api/v1/snapshots/{snapshots[0]['id']}/restore", headers=ADMIN)
    assert restored.status_code == 200
    assert restored.json()["status"] == "import_complete"
    assert table_store.snapshot() == seed_tables

    assert client.get("/api/v1/snapshots", headers=ADMIN, params={"snapshot_type": "bogus"}).status_code == 400
    assert client.get("/api/v1/snapshots/missing", headers=ADMIN).status_code == 404
    assert client.post("/api/v1/snapshots/missing/restore", headers=ADMIN, json={"force": True}).status_code == 404


def test_snapshot_lookup_maps_store_errors(profile, table_store, ledger, monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(config, "API_TOKEN", "admin-token")
    snapshots = FileSnapshotStore(tmp_path / "snapshots")
    (tmp_path / "snapshots").mkdir()
    (tmp_path / "snapshots" / "broken.json").write_text("{not json", encoding="utf-8")
    client = TestClient(create_app(Services(profile=profile, tables=table_store, snapshots=snapshots, ledger=ledger)))

    invalid = client.get("/api/v1/snapshots/.hidden", headers=ADMIN)
    assert invalid.status_code == 400
    assert invalid.json()["error"]["code"] == "SCHEMA_INVALID"

    unreadable = client.get("/api/v1/snapshots/broken", headers=ADMIN)
    assert unreadable.status_code == 404
    assert client.post("/api/v1/snapshots/broken/restore", headers=ADMIN).status_code == 404
    assert table_store.writes == []
