from __future__ import annotations

import os
from uuid import uuid4

import pytest


RUN_INTEGRATION = os.getenv("RUN_INTEGRATION") == "1"

if not RUN_INTEGRATION:
    pytest.skip("integration tests disabled", allow_module_level=True)

import requests

from app.core.models import Snapshot, SnapshotType
from app.storage.snapshots import MinioSnapshotStore, SnapshotStoreError


def _store() -> MinioSnapshotStore:
    return MinioSnapshotStore.from_settings(
        endpoint=os.getenv("MINIO_ENDPOINT", "http://localhost:9000"),
        access_key=os.getenv("MINIO_ACCESS_KEY", "minioadmin"),
        secret_key=os.getenv("MINIO_SECRET_KEY", "minioadmin"),
        bucket=os.getenv("MINIO_BUCKET", "cbos-exports-it"),
        secure=os.getenv("MINIO_ENDPOINT", "").startswith("https://"),
    )


@pytest.mark.skipif(not RUN_INTEGRATION, reason="integration tests disabled")
def test_minio_store_keeps_snapshots_write_once() -> None:
    store = _store()
    snapshot = Snapshot(
        id=str(uuid4()),
        snapshot_type=SnapshotType.MANUAL,
        version="1.0.0",
        table_data={"competitors": [{"id": "a", "name": "Ação"}]},
        checksum="abc",
        data_checksum="abc",
        created_at="2026-01-01T00:00:00+00:00",
    )

    store.save(snapshot)
    with pytest.raises(SnapshotStoreError):
        store.save(snapshot)

    assert store.get(snapshot.id).table_data == snapshot.table_data
    assert store.get(str(uuid4())) is None
    assert snapshot.id in {item.id for item in store.list(snapshot_type="manual")}


@pytest.mark.skipif(not RUN_INTEGRATION, reason="integration tests disabled")
def test_export_then_dry_run_against_running_service() -> None:
    base_url = os.getenv("PORTER_URL", "http://localhost:8000")
    headers = {"Authorization": f"Bearer {os.getenv('API_TOKEN', 'dev-token')}"}
    _wait_for_service(base_url)

    exported = requests.post(f"{base_url}/api/v1/export", headers=headers, timeout=30)
    assert exported.status_code == 200
    manifest = exported.json()

    response = requests.post(
        f"{base_url}/api/v1/import",
        headers=headers,
        json={"manifest": manifest, "dry_run": True},
        timeout=30,
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "validation_complete"
    assert payload["validation_report"]["errors"] == []

    snapshots = requests.get(
        f"{base_url}/api/v1/snapshots",
        headers=headers,
        params={"snapshot_type": "manual", "limit": 1},
        timeout=10,
    )
    assert snapshots.status_code == 200
    assert snapshots.json()[0]["checksum"] == manifest["checksum"]


def _wait_for_service(base_url: str) -> None:
    import time

    deadline = time.time() + 20
    last_error: Exception | None = None
    while time.time() < deadline:
        try:
            response = requests.get(f"{base_url}/readyz", timeout=2)
            if response.status_code == 200:
                return
        except requests.RequestException as exc:
            last_error = exc
        time.sleep(0.5)
    if last_error:
        raise last_error
