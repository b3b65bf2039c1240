from __future__ import annotations

from typing import Any, List, Mapping

from app.core.logging import log_event
from app.core.models import Snapshot, ValidationOutcome, ValidationReport
from app.core.profile import SystemProfile
from app.integrity.hashing import (
    HASH_METHOD,
    compute_checksum,
    hashes_match,
    manifest_checksum,
    verify_checksum,
)
from app.integrity.versions import version_in_range
from app.policies.secrets_policy import evaluate_configurations, evaluate_secrets_template


def validate_manifest(
    manifest: Any,
    profile: SystemProfile,
    *,
    force: bool = False,
    current_version: str | None = None,
) -> ValidationOutcome:
    """Run every manifest check and collect the results into one report.

    Nothing here touches stored tables. Only structural problems and an
    unforced checksum mismatch land in ``errors``; everything else is
    advisory.
    """
    report = ValidationReport()
    if not isinstance(manifest, Mapping):
        report.checks.append("Validating manifest structure")
        report.errors.append("Manifest must be a JSON object")
        return _finish(report, structurally_valid=False, checksum_valid=False, computed="", tables=[])

    structural_errors = _check_structure(manifest, profile, report)
    checksum_valid, computed = _check_checksum(manifest, report, force=force)
    _check_compatibility(manifest, report, current_version or profile.version)
    tables, row_errors = _check_data(manifest, profile, report)
    _check_secrets(manifest, report)

    return _finish(
        report,
        structurally_valid=not (structural_errors or row_errors),
        checksum_valid=checksum_valid,
        computed=computed,
        tables=tables,
    )


def validate_snapshot(snapshot: Snapshot, profile: SystemProfile, *, force: bool = False) -> ValidationOutcome:
    report = ValidationReport()
    report.checks.append("Verifying snapshot checksum")
    computed = compute_checksum(snapshot.table_data)
    checksum_valid = verify_checksum(snapshot.table_data, snapshot.data_checksum)
    if not checksum_valid:
        if force:
            report.warnings.append("Snapshot checksum mismatch - proceeding due to force flag")
        else:
            report.errors.append("Snapshot checksum mismatch - data may be corrupted")
    tables, row_errors = _check_data({"data": snapshot.table_data}, profile, report)
    return _finish(
        report,
        structurally_valid=not row_errors,
        checksum_valid=checksum_valid,
        computed=computed,
        tables=tables,
    )


def _check_structure(manifest: Mapping[str, Any], profile: SystemProfile, report: ValidationReport) -> int:
    report.checks.append("Validating manifest structure")
    before = len(report.errors)
    if manifest.get("system_name") != profile.system_name:
        report.errors.append("Invalid system name in manifest")
    if not manifest.get("version"):
        report.errors.append("Missing version in manifest")
    data = manifest.get("data")
    if data is None:
        report.errors.append("Missing data in manifest")
    elif not isinstance(data, Mapping):
        report.errors.append("Manifest data must map table names to rows")
    return len(report.errors) - before


def _check_checksum(manifest: Mapping[str, Any], report: ValidationReport, *, force: bool) -> tuple[bool, str]:
    report.checks.append("Verifying checksum")
    provided = manifest.get("checksum")
    computed = manifest_checksum(manifest)
    checksum_valid = isinstance(provided, str) and bool(provided.strip()) and hashes_match(provided, computed)
    if not checksum_valid:
        if force:
            report.warnings.append("Checksum mismatch - proceeding due to force flag")
        else:
            report.errors.append("Checksum mismatch - data may be corrupted")

    signature = manifest.get("signature")
    if isinstance(signature, Mapping):
        if signature.get("method") != HASH_METHOD:
            report.warnings.append(f"Unsupported signature method: {signature.get('method')}")
        if signature.get("checksum") != provided:
            report.warnings.append("Signature checksum does not match manifest checksum")
    elif signature is not None:
        report.warnings.append("Signature block is malformed and was ignored")
    return checksum_valid, computed


def _check_compatibility(manifest: Mapping[str, Any], report: ValidationReport, current_version: str) -> None:
    report.checks.append("Checking version compatibility")
    compatibility = manifest.get("compatibility")
    if not compatibility:
        return
    if not isinstance(compatibility, Mapping):
        report.warnings.append("Compatibility block is malformed and was ignored")
        return
    min_version = compatibility.get("min_version")
    max_version = compatibility.get("max_version")
    try:
        compatible = version_in_range(current_version, min_version, max_version)
    except ValueError:
        report.warnings.append(f"Invalid compatibility range: {min_version}-{max_version}")
        return
    if not compatible:
        report.warnings.append(
            f"Version compatibility warning: Current {current_version}, Required {min_version}-{max_version}"
        )


def _check_data(
    manifest: Mapping[str, Any], profile: SystemProfile, report: ValidationReport
) -> tuple[List[str], int]:
    report.checks.append("Validating data structure")
    data = manifest.get("data")
    if not isinstance(data, Mapping):
        return [], 0

    report.info.append(f"Found {len(data)} tables with data")
    row_errors = 0
    applicable = []
    for table, records in data.items():
        if not isinstance(records, list):
            report.warnings.append(f"Table {table}: expected a list of rows, table will be skipped")
            continue
        report.info.append(f"Table {table}: {len(records)} records")
        spec = profile.table(table)
        if spec is None:
            report.warnings.append(f"Table {table} is not an exportable table and will be skipped")
            continue
        bad_rows = [index for index, row in enumerate(records) if not isinstance(row, Mapping)]
        if bad_rows:
            row_errors += 1
            report.errors.append(f"Table {table}: rows {_format_indexes(bad_rows)} are not objects")
            continue
        keyless = sum(1 for row in records if spec.key_column not in row)
        if keyless:
            report.warnings.append(f"Table {table}: {keyless} records missing key column '{spec.key_column}'")
        applicable.append(table)
    return profile.ordered_tables(applicable), row_errors


def _check_secrets(manifest: Mapping[str, Any], report: ValidationReport) -> None:
    report.checks.append("Checking secrets configuration")
    template = manifest.get("secrets_template")
    if template:
        if isinstance(template, Mapping):
            report.info.append(f"Required secrets: {', '.join(template.keys())}")
        report.warnings.append("Secrets must be configured manually after import")
        report.warnings.extend(evaluate_secrets_template(template))
    report.warnings.extend(evaluate_configurations(manifest.get("configurations")))


def _format_indexes(indexes: List[int], limit: int = 5) -> str:
    shown = ", ".join(str(index) for index in indexes[:limit])
    if len(indexes) > limit:
        shown += f" (+{len(indexes) - limit} more)"
    return shown


def _finish(
    report: ValidationReport,
    *,
    structurally_valid: bool,
    checksum_valid: bool,
    computed: str,
    tables: List[str],
) -> ValidationOutcome:
    log_event(
        event="validation_complete",
        level="WARN" if report.errors else "INFO",
        log_type="validation",
        details={
            "errors": len(report.errors),
            "warnings": len(report.warnings),
            "checksum_valid": checksum_valid,
        },
    )
    return ValidationOutcome(
        report=report,
        structurally_valid=structurally_valid,
        checksum_valid=checksum_valid,
        computed_checksum=computed,
        tables=tables,
    )
