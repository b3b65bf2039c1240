from __future__ import annotations

from typing import Any, Dict, List, Mapping

from pydantic import ValidationError

from app.audit.ledger import OperationLedger
from app.core.exceptions import (
    BackupError,
    ImportRolledBackError,
    MalformedInputError,
    NotFoundError,
    RollbackError,
    ValidationFailedError,
)
from app.core.logging import log_event, update_request_context
from app.core.models import (
    Caller,
    DatabaseSchema,
    DryRunResponse,
    ImportResponse,
    OperationStatus,
    OperationType,
    Snapshot,
    SnapshotType,
    TableData,
    TableResult,
    ValidationOutcome,
    ValidationReport,
)
from app.core.profile import SystemProfile
from app.core.utils import monotonic_ms, new_id, utc_timestamp
from app.integrity.hashing import canonical_bytes, compute_checksum
from app.storage.snapshots import CorruptSnapshotError, InvalidSnapshotIdError, SnapshotStore, SnapshotStoreError
from app.storage.tables import TableStore, TableStoreError
from app.validators.manifest import validate_manifest, validate_snapshot


class ImportExecutor:
    """Validate, back up, replace, health-check, then commit or roll back.

    Tables are handled one at a time in profile order. Once the backup phase
    starts the run always reaches a terminal status before returning.
    Concurrent imports against the same store are not arbitrated here.
    """

    def __init__(
        self,
        profile: SystemProfile,
        tables: TableStore,
        snapshots: SnapshotStore,
        ledger: OperationLedger,
    ) -> None:
        self.profile = profile
        self.tables = tables
        self.snapshots = snapshots
        self.ledger = ledger

    def run(
        self,
        manifest: Any,
        caller: Caller,
        *,
        dry_run: bool = False,
        force: bool = False,
    ) -> DryRunResponse | ImportResponse:
        started = monotonic_ms()
        version = manifest.get("version") if isinstance(manifest, Mapping) else None
        provided = manifest.get("checksum") if isinstance(manifest, Mapping) else None
        operation_id = self.ledger.record_start(
            OperationType.IMPORT,
            caller,
            dry_run=dry_run,
            forced=force,
            manifest=dict(manifest) if isinstance(manifest, Mapping) else None,
            version=version if isinstance(version, str) else None,
        )
        update_request_context(operation_id=operation_id)

        outcome = validate_manifest(manifest, self.profile, force=force)
        self.ledger.record_update(
            operation_id,
            validation_report=outcome.report,
            signature_valid=outcome.checksum_valid,
            checksum=provided if isinstance(provided, str) else None,
        )

        if dry_run:
            self._finish(operation_id, started, OperationStatus.SUCCESS, validation_report=outcome.report)
            return DryRunResponse(validation_report=outcome.report, operation_id=operation_id)

        self._reject_if_blocked(operation_id, started, outcome, force)
        return self._apply(operation_id, started, outcome, manifest["data"], caller, force)

    def restore_snapshot(self, snapshot_id: str, caller: Caller, *, force: bool = False) -> ImportResponse:
        snapshot = load_snapshot(self.snapshots, snapshot_id)

        started = monotonic_ms()
        operation_id = self.ledger.record_start(
            OperationType.IMPORT,
            caller,
            forced=force,
            version=snapshot.version,
            checksum=snapshot.checksum,
            source_snapshot_id=snapshot.id,
        )
        update_request_context(operation_id=operation_id)

        outcome = validate_snapshot(snapshot, self.profile, force=force)
        self.ledger.record_update(
            operation_id,
            validation_report=outcome.report,
            signature_valid=outcome.checksum_valid,
        )
        self._reject_if_blocked(operation_id, started, outcome, force)
        return self._apply(operation_id, started, outcome, snapshot.table_data, caller, force)

    def _reject_if_blocked(self, operation_id: str, started: int, outcome: ValidationOutcome, force: bool) -> None:
        # structural problems block even a forced run
        if outcome.structurally_valid and (force or not outcome.blocked):
            return
        message = f"Validation failed: {', '.join(outcome.report.errors)}"
        self._finish(
            operation_id,
            started,
            OperationStatus.FAILED,
            validation_report=outcome.report,
            error_message=message,
        )
        raise ValidationFailedError(
            message,
            details={"operation_id": operation_id, "validation_report": _dump(outcome.report)},
        )

    def _apply(
        self,
        operation_id: str,
        started: int,
        outcome: ValidationOutcome,
        data: Mapping[str, Any],
        caller: Caller,
        force: bool,
    ) -> ImportResponse:
        report = outcome.report
        tables = outcome.tables

        report.checks.append("Creating backup")
        try:
            backup = self._backup(tables, caller)
        except BackupError as exc:
            self._finish(
                operation_id,
                started,
                OperationStatus.FAILED,
                validation_report=report,
                error_message=exc.message,
            )
            exc.details.update({"operation_id": operation_id, "validation_report": _dump(report)})
            raise

        report.checks.append("Applying import")
        results = self._replace(tables, data, report)

        report.checks.append("Running health check")
        healthy = not report.errors
        details: Dict[str, Any] = {
            "operation_id": operation_id,
            "backup_id": backup.id,
            "validation_report": _dump(report),
            "import_results": {table: _dump(result) for table, result in results.items()},
        }

        if not healthy and not force:
            report.checks.append("Health check failed - rolling back")
            try:
                self._rollback(backup, report)
            except RollbackError as exc:
                self._finish(
                    operation_id,
                    started,
                    OperationStatus.FAILED,
                    validation_report=report,
                    health_check_passed=False,
                    backup_id=backup.id,
                    execution_log=results,
                    error_message=exc.message,
                )
                details["validation_report"] = _dump(report)
                exc.details.update(details)
                raise
            self._finish(
                operation_id,
                started,
                OperationStatus.ROLLED_BACK,
                validation_report=report,
                health_check_passed=False,
                backup_id=backup.id,
                execution_log=results,
                error_message="Import failed health check - rolled back",
            )
            details["validation_report"] = _dump(report)
            raise ImportRolledBackError("Import failed health check and was rolled back", details=details)

        self._finish(
            operation_id,
            started,
            OperationStatus.SUCCESS,
            validation_report=report,
            health_check_passed=healthy,
            backup_id=backup.id,
            execution_log=results,
        )
        return ImportResponse(
            operation_id=operation_id,
            backup_id=backup.id,
            validation_report=report,
            import_results=results,
        )

    def _backup(self, tables: List[str], caller: Caller) -> Snapshot:
        started = monotonic_ms()
        system_caller = Caller(id=caller.id, name="System Backup", email=caller.email, role=caller.role)
        backup_operation_id = self.ledger.record_start(OperationType.BACKUP, system_caller, version=self.profile.version)
        try:
            backup_data: TableData = {table: self.tables.list_rows(table) for table in tables}
            data_checksum = compute_checksum(backup_data)
            snapshot = self.snapshots.save(
                Snapshot(
                    id=new_id(),
                    snapshot_type=SnapshotType.PRE_IMPORT,
                    version=self.profile.version,
                    database_schema=DatabaseSchema(
                        tables=list(tables),
                        table_counts={table: len(rows) for table, rows in backup_data.items()},
                    ),
                    table_data=backup_data,
                    edge_functions=list(self.profile.edge_functions),
                    checksum=data_checksum,
                    data_checksum=data_checksum,
                    uncompressed_size=len(canonical_bytes(backup_data)),
                    operation_id=backup_operation_id,
                    created_by=caller.id,
                    description="Automatic backup before import",
                    created_at=utc_timestamp(),
                )
            )
        except (TableStoreError, SnapshotStoreError, ValidationError) as exc:
            self._finish(backup_operation_id, started, OperationStatus.FAILED, error_message=str(exc))
            log_event(event="backup_failed", level="ERROR", operation_id=backup_operation_id, details={"error": str(exc)})
            raise BackupError(f"Backup before import failed: {exc}") from exc

        self._finish(
            backup_operation_id,
            started,
            OperationStatus.SUCCESS,
            backup_id=snapshot.id,
            checksum=snapshot.checksum,
        )
        log_event(
            event="backup_created",
            operation_id=backup_operation_id,
            details={"snapshot_id": snapshot.id, "tables": list(tables)},
        )
        return snapshot

    def _replace(self, tables: List[str], data: Mapping[str, Any], report: ValidationReport) -> Dict[str, TableResult]:
        results: Dict[str, TableResult] = {}
        for table in tables:
            records = data[table]
            try:
                self.tables.delete_all(table)
            except TableStoreError as exc:
                results[table] = TableResult(success=False, error=exc.message)
                report.errors.append(f"Failed to clear {table}: {exc.message}")
                log_event(event="table_failed", level="WARN", details={"table": table, "stage": "delete"})
                continue
            try:
                self.tables.insert_rows(table, records)
            except TableStoreError as exc:
                results[table] = TableResult(success=False, error=exc.message)
                report.errors.append(f"Failed to import {table}: {exc.message}")
                log_event(event="table_failed", level="WARN", details={"table": table, "stage": "insert"})
                continue
            results[table] = TableResult(success=True, count=len(records))
            report.info.append(f"Imported {len(records)} records to {table}")
            log_event(event="table_replaced", details={"table": table, "count": len(records)})
        return results

    def _rollback(self, backup: Snapshot, report: ValidationReport) -> None:
        failures = []
        for table in self.profile.ordered_tables(backup.table_data):
            try:
                self.tables.replace_rows(table, backup.table_data[table])
            except TableStoreError as exc:
                failures.append(table)
                report.errors.append(f"Rollback of {table} failed: {exc.message}")
                continue
            report.info.append(f"Restored {table} from backup")
        log_event(
            event="rollback_complete" if not failures else "rollback_failed",
            level="WARN" if not failures else "ERROR",
            details={"backup_id": backup.id, "failed_tables": failures},
        )
        if failures:
            raise RollbackError(
                f"Rollback failed for tables: {', '.join(failures)}; state may be inconsistent, "
                f"restore manually from backup {backup.id}"
            )

    def _finish(self, operation_id: str, started: int, status: OperationStatus, **fields: Any) -> None:
        self.ledger.record_update(
            operation_id,
            status=status,
            completed_at=utc_timestamp(),
            duration_ms=monotonic_ms() - started,
            **fields,
        )


def load_snapshot(store: SnapshotStore, snapshot_id: str) -> Snapshot:
    try:
        snapshot = store.get(snapshot_id)
    except InvalidSnapshotIdError as exc:
        raise MalformedInputError(f"Invalid snapshot id: {snapshot_id}") from exc
    except CorruptSnapshotError as exc:
        raise NotFoundError(f"Snapshot {snapshot_id} is unreadable") from exc
    if snapshot is None:
        raise NotFoundError(f"Snapshot {snapshot_id} not found")
    return snapshot


def _dump(model: Any) -> Dict[str, Any]:
    if hasattr(model, "model_dump"):
        return model.model_dump(mode="json", exclude_none=True)
    return model.dict(exclude_none=True)

