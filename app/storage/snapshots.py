from __future__ import annotations

import io
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from minio import Minio
from minio.error import S3Error
from pydantic import ValidationError

from app.core.models import Snapshot, SnapshotSummary, SnapshotType

SNAPSHOT_PREFIX = "snapshots/"


class SnapshotStoreError(RuntimeError):
    pass


class InvalidSnapshotIdError(SnapshotStoreError):
    pass


class CorruptSnapshotError(SnapshotStoreError):
    pass


class SnapshotStore(ABC):
    """Write-once storage for snapshots. A saved snapshot is never modified."""

    @abstractmethod
    def save(self, snapshot: Snapshot) -> Snapshot:
        raise NotImplementedError

    @abstractmethod
    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        raise NotImplementedError

    @abstractmethod
    def _all(self) -> List[Snapshot]:
        raise NotImplementedError

    def list(
        self,
        snapshot_type: SnapshotType | str | None = None,
        limit: Optional[int] = None,
    ) -> List[SnapshotSummary]:
        wanted = SnapshotType(snapshot_type) if snapshot_type else None
        snapshots = sorted(self._all(), key=lambda item: item.created_at, reverse=True)
        summaries = [summarize(item) for item in snapshots if wanted is None or item.snapshot_type == wanted]
        return summaries[:limit] if limit is not None else summaries


def summarize(snapshot: Snapshot) -> SnapshotSummary:
    return SnapshotSummary(
        id=snapshot.id,
        snapshot_type=snapshot.snapshot_type,
        version=snapshot.version,
        table_counts={table: len(rows) for table, rows in snapshot.table_data.items()},
        checksum=snapshot.checksum,
        operation_id=snapshot.operation_id,
        created_by=snapshot.created_by,
        description=snapshot.description,
        created_at=snapshot.created_at,
    )


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}

    def save(self, snapshot: Snapshot) -> Snapshot:
        if snapshot.id in self._snapshots:
            raise SnapshotStoreError(f"snapshot {snapshot.id} already exists")
        self._snapshots[snapshot.id] = _serialize(snapshot)
        return snapshot

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        raw = self._snapshots.get(snapshot_id)
        return _deserialize(raw) if raw is not None else None

    def _all(self) -> List[Snapshot]:
        return [_deserialize(raw) for raw in self._snapshots.values()]


class FileSnapshotStore(SnapshotStore):
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def save(self, snapshot: Snapshot) -> Snapshot:
        path = self._path(snapshot.id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("x", encoding="utf-8") as handle:
                handle.write(_serialize(snapshot))
        except FileExistsError as exc:
            raise SnapshotStoreError(f"snapshot {snapshot.id} already exists") from exc
        except OSError as exc:
            raise SnapshotStoreError(f"cannot write snapshot {snapshot.id}: {exc}") from exc
        return snapshot

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        path = self._path(snapshot_id)
        if not path.exists():
            return None
        return _deserialize(path.read_text(encoding="utf-8"))

    def _all(self) -> List[Snapshot]:
        if not self.root.exists():
            return []
        snapshots = []
        for path in self.root.glob("*.json"):
            try:
                snapshots.append(_deserialize(path.read_text(encoding="utf-8")))
            except SnapshotStoreError:
                continue
        return snapshots

    def _path(self, snapshot_id: str) -> Path:
        if not snapshot_id or "/" in snapshot_id or "\\" in snapshot_id or snapshot_id.startswith("."):
            raise InvalidSnapshotIdError(f"invalid snapshot id: {snapshot_id!r}")
        return self.root / f"{snapshot_id}.json"


class MinioSnapshotStore(SnapshotStore):
    def __init__(self, client: Minio, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(
        cls, endpoint: str, access_key: str, secret_key: str, bucket: str, secure: bool
    ) -> "MinioSnapshotStore":
        endpoint = endpoint.replace("http://", "").replace("https://", "")
        return cls(Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure), bucket)

    def save(self, snapshot: Snapshot) -> Snapshot:
        payload = _serialize(snapshot).encode("utf-8")
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
            if self._exists(snapshot.id):
                raise SnapshotStoreError(f"snapshot {snapshot.id} already exists")
            self.client.put_object(
                self.bucket,
                _object_key(snapshot.id),
                data=io.BytesIO(payload),
                length=len(payload),
                content_type="application/json",
            )
        except S3Error as exc:
            raise SnapshotStoreError(f"cannot store snapshot {snapshot.id} in MinIO") from exc
        return snapshot

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        try:
            response = self.client.get_object(self.bucket, _object_key(snapshot_id))
        except S3Error as exc:
            if exc.code in {"NoSuchKey", "NoSuchBucket"}:
                return None
            raise SnapshotStoreError(f"cannot fetch snapshot {snapshot_id} from MinIO") from exc
        try:
            return _deserialize(response.read().decode("utf-8"))
        finally:
            response.close()
            response.release_conn()

    def _exists(self, snapshot_id: str) -> bool:
        try:
            self.client.stat_object(self.bucket, _object_key(snapshot_id))
        except S3Error as exc:
            if exc.code in {"NoSuchKey", "NoSuchObject", "NoSuchBucket"}:
                return False
            raise
        return True

    def _all(self) -> List[Snapshot]:
        snapshots = []
        try:
            if not self.client.bucket_exists(self.bucket):
                return []
            for item in self.client.list_objects(self.bucket, prefix=SNAPSHOT_PREFIX):
                snapshot_id = item.object_name[len(SNAPSHOT_PREFIX) :].removesuffix(".json")
                snapshot = self.get(snapshot_id)
                if snapshot is not None:
                    snapshots.append(snapshot)
        except S3Error as exc:
            raise SnapshotStoreError("cannot list snapshots in MinIO") from exc
        return snapshots


def _object_key(snapshot_id: str) -> str:
    return f"{SNAPSHOT_PREFIX}{snapshot_id}.json"


def _serialize(snapshot: Snapshot) -> str:
    if hasattr(snapshot, "model_dump_json"):
        return snapshot.model_dump_json()
    return snapshot.json()


def _deserialize(raw: str) -> Snapshot:
    try:
        return Snapshot(**json.loads(raw))
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        raise CorruptSnapshotError("stored snapshot is unreadable") from exc
