from __future__ import annotations

from pydantic import ValidationError

from app.audit.ledger import OperationLedger
from app.core.exceptions import ExportFailedError
from app.core.logging import log_event, update_request_context
from app.core.models import Caller, Manifest, OperationStatus, OperationType, Snapshot, SnapshotType
from app.core.profile import SystemProfile
from app.core.utils import monotonic_ms, new_id, utc_date, utc_timestamp
from app.engine.manifest import ManifestBuilder
from app.integrity.hashing import compute_checksum
from app.storage.snapshots import SnapshotStore, SnapshotStoreError
from app.storage.tables import TableStore, TableStoreError


class ExportService:
    def __init__(
        self,
        profile: SystemProfile,
        tables: TableStore,
        snapshots: SnapshotStore,
        ledger: OperationLedger,
    ) -> None:
        self.profile = profile
        self.snapshots = snapshots
        self.ledger = ledger
        self.builder = ManifestBuilder(profile, tables)

    def export(self, caller: Caller) -> Manifest:
        started = monotonic_ms()
        operation_id = self.ledger.record_start(OperationType.EXPORT, caller, version=self.profile.version)
        update_request_context(operation_id=operation_id)

        try:
            built = self.builder.build(caller)
            manifest = built.manifest
            snapshot = self.snapshots.save(
                Snapshot(
                    id=new_id(),
                    snapshot_type=SnapshotType.MANUAL,
                    version=manifest.version,
                    database_schema=manifest.database_schema,
                    table_data=manifest.data,
                    edge_functions=manifest.edge_functions,
                    configurations=manifest.configurations,
                    secrets_template=manifest.secrets_template,
                    checksum=manifest.checksum,
                    data_checksum=compute_checksum(manifest.data),
                    uncompressed_size=built.file_size,
                    operation_id=operation_id,
                    created_by=caller.id,
                    description="Manual export via API",
                    created_at=utc_timestamp(),
                )
            )
        except (TableStoreError, SnapshotStoreError, ValidationError) as exc:
            self.ledger.record_update(
                operation_id,
                status=OperationStatus.FAILED,
                error_message=str(exc),
                completed_at=utc_timestamp(),
                duration_ms=monotonic_ms() - started,
            )
            log_event(event="export_failed", level="ERROR", operation_id=operation_id, details={"error": str(exc)})
            raise ExportFailedError(f"Export failed: {exc}", details={"operation_id": operation_id}) from exc

        self.ledger.record_update(
            operation_id,
            status=OperationStatus.SUCCESS,
            checksum=manifest.checksum,
            file_size=built.file_size,
            components_count=len(manifest.components),
            backup_id=snapshot.id,
            completed_at=utc_timestamp(),
            duration_ms=monotonic_ms() - started,
        )
        return manifest

    def export_filename(self) -> str:
        return f"{self.profile.system_name}-export-{utc_date()}.json"
