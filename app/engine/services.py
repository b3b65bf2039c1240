from __future__ import annotations

from dataclasses import dataclass, field

from app.audit.ledger import OperationLedger
from app.core import config
from app.core.profile import SystemProfile, configured_profile
from app.engine.exporter import ExportService
from app.engine.importer import ImportExecutor
from app.storage.postgrest import PostgrestTableStore
from app.storage.snapshots import FileSnapshotStore, MinioSnapshotStore, SnapshotStore
from app.storage.tables import InMemoryTableStore, JsonFileTableStore, TableStore


@dataclass
class Services:
    profile: SystemProfile
    tables: TableStore
    snapshots: SnapshotStore
    ledger: OperationLedger
    exporter: ExportService = field(init=False)
    importer: ImportExecutor = field(init=False)

    def __post_init__(self) -> None:
        self.exporter = ExportService(self.profile, self.tables, self.snapshots, self.ledger)
        self.importer = ImportExecutor(self.profile, self.tables, self.snapshots, self.ledger)


def build_table_store(profile: SystemProfile) -> TableStore:
    if config.TABLE_STORE == "memory":
        return InMemoryTableStore()
    if config.TABLE_STORE == "postgrest":
        return PostgrestTableStore(
            config.POSTGREST_URL,
            config.POSTGREST_API_KEY,
            key_columns={table.name: table.key_column for table in profile.tables},
        )
    if config.TABLE_STORE == "file":
        return JsonFileTableStore(config.TABLE_DATA_DIR)
    raise ValueError(f"Unknown TABLE_STORE: {config.TABLE_STORE}")


def build_snapshot_store() -> SnapshotStore:
    if config.SNAPSHOT_STORE == "minio":
        return MinioSnapshotStore.from_settings(
            config.MINIO_ENDPOINT,
            config.MINIO_ACCESS_KEY,
            config.MINIO_SECRET_KEY,
            config.MINIO_BUCKET,
            config.MINIO_SECURE,
        )
    if config.SNAPSHOT_STORE == "file":
        return FileSnapshotStore(config.SNAPSHOT_DIR)
    raise ValueError(f"Unknown SNAPSHOT_STORE: {config.SNAPSHOT_STORE}")


def build_services() -> Services:
    profile = configured_profile()
    return Services(
        profile=profile,
        tables=build_table_store(profile),
        snapshots=build_snapshot_store(),
        ledger=OperationLedger(config.LEDGER_PATH),
    )
