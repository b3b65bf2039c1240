from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

Row = Dict[str, Any]
TableData = Dict[str, List[Row]]


class OperationType(str, Enum):
    EXPORT = "export"
    IMPORT = "import"
    BACKUP = "backup"


class OperationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


TERMINAL_STATUSES = {OperationStatus.SUCCESS, OperationStatus.FAILED, OperationStatus.ROLLED_BACK}


class SnapshotType(str, Enum):
    MANUAL = "manual"
    PRE_IMPORT = "pre_import"


class Caller(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "admin"


class ExportedBy(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class Component(BaseModel):
    name: str
    path: str
    version: str


class DatabaseSchema(BaseModel):
    tables: List[str] = Field(default_factory=list)
    table_counts: Dict[str, int] = Field(default_factory=dict)


class Compatibility(BaseModel):
    min_version: str
    max_version: str


class Signature(BaseModel):
    method: str = "sha256"
    checksum: str
    generated_at: str


class Manifest(BaseModel):
    system_name: str
    version: str
    exported_at: str
    exported_by: ExportedBy
    components: List[Component] = Field(default_factory=list)
    database_schema: DatabaseSchema = Field(default_factory=DatabaseSchema)
    edge_functions: List[str] = Field(default_factory=list)
    data: TableData = Field(default_factory=dict)
    configurations: Dict[str, Any] = Field(default_factory=dict)
    secrets_template: Dict[str, str] = Field(default_factory=dict)
    dependencies: Dict[str, str] = Field(default_factory=dict)
    changelog: Optional[str] = None
    readme: Optional[str] = None
    compatibility: Optional[Compatibility] = None
    checksum: str = ""
    signature: Optional[Signature] = None


class ValidationReport(BaseModel):
    checks: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    info: List[str] = Field(default_factory=list)


class TableResult(BaseModel):
    success: bool
    count: Optional[int] = None
    error: Optional[str] = None


class Operation(BaseModel):
    id: str
    operation_type: OperationType
    status: OperationStatus = OperationStatus.IN_PROGRESS
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    dry_run: bool = False
    forced: bool = False
    version: Optional[str] = None
    manifest: Optional[Dict[str, Any]] = None
    validation_report: Optional[ValidationReport] = None
    checksum: Optional[str] = None
    signature_valid: Optional[bool] = None
    health_check_passed: Optional[bool] = None
    backup_id: Optional[str] = None
    source_snapshot_id: Optional[str] = None
    execution_log: Dict[str, TableResult] = Field(default_factory=dict)
    file_size: Optional[int] = None
    components_count: Optional[int] = None
    started_at: str
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None


class Snapshot(BaseModel):
    id: str
    snapshot_type: SnapshotType
    version: str
    database_schema: DatabaseSchema = Field(default_factory=DatabaseSchema)
    table_data: TableData = Field(default_factory=dict)
    edge_functions: List[str] = Field(default_factory=list)
    configurations: Dict[str, Any] = Field(default_factory=dict)
    secrets_template: Dict[str, str] = Field(default_factory=dict)
    checksum: str
    data_checksum: str
    uncompressed_size: Optional[int] = None
    operation_id: Optional[str] = None
    created_by: Optional[str] = None
    description: Optional[str] = None
    created_at: str


class SnapshotSummary(BaseModel):
    id: str
    snapshot_type: SnapshotType
    version: str
    table_counts: Dict[str, int] = Field(default_factory=dict)
    checksum: str
    operation_id: Optional[str] = None
    created_by: Optional[str] = None
    description: Optional[str] = None
    created_at: str


class ImportRequest(BaseModel):
    manifest: Dict[str, Any]
    dry_run: bool = False
    force: bool = False


class RestoreRequest(BaseModel):
    force: bool = False


class DryRunResponse(BaseModel):
    status: str = "validation_complete"
    dry_run: bool = True
    validation_report: ValidationReport
    operation_id: str


class ImportResponse(BaseModel):
    status: str = "import_complete"
    operation_id: str
    backup_id: str
    validation_report: ValidationReport
    import_results: Dict[str, TableResult] = Field(default_factory=dict)


@dataclass(frozen=True)
class ValidationOutcome:
    report: ValidationReport
    structurally_valid: bool
    checksum_valid: bool
    computed_checksum: str
    tables: List[str]

    @property
    def blocked(self) -> bool:
        return bool(self.report.errors)
