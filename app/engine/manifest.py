from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from app.core.models import (
    Caller,
    Component,
    DatabaseSchema,
    ExportedBy,
    Manifest,
    Signature,
    TableData,
)
from app.core.profile import SystemProfile
from app.core.utils import utc_timestamp
from app.integrity.hashing import HASH_METHOD, UNSIGNED_FIELDS, canonical_bytes, compute_checksum
from app.policies.secrets_policy import build_secrets_template
from app.storage.tables import TableStore


@dataclass(frozen=True)
class BuiltManifest:
    manifest: Manifest
    file_size: int


class ManifestBuilder:
    def __init__(self, profile: SystemProfile, tables: TableStore) -> None:
        self.profile = profile
        self.tables = tables

    def build(self, caller: Caller) -> BuiltManifest:
        """Read every exportable table and assemble a signed manifest.

        Any table read error propagates: a manifest is either complete or not
        produced at all.
        """
        data: TableData = {}
        for table in self.profile.table_names:
            data[table] = self.tables.list_rows(table)

        exported_at = utc_timestamp()
        manifest = Manifest(
            system_name=self.profile.system_name,
            version=self.profile.version,
            exported_at=exported_at,
            exported_by=ExportedBy(id=caller.id, name=caller.name or caller.email, email=caller.email),
            components=[
                Component(name=component.name, path=component.path, version=self.profile.version)
                for component in self.profile.components
            ],
            database_schema=DatabaseSchema(
                tables=self.profile.table_names,
                table_counts={table: len(rows) for table, rows in data.items()},
            ),
            edge_functions=list(self.profile.edge_functions),
            data=data,
            configurations=dict(self.profile.configurations),
            secrets_template=build_secrets_template(self.profile.secrets),
            dependencies=dict(self.profile.dependencies),
            changelog=self.profile.changelog,
            readme=self._readme(data, caller, exported_at),
            compatibility=self.profile.compatibility,
        )
        payload = _signable(manifest)
        checksum = compute_checksum(payload)
        manifest.checksum = checksum
        manifest.signature = Signature(method=HASH_METHOD, checksum=checksum, generated_at=utc_timestamp())
        return BuiltManifest(manifest=manifest, file_size=len(canonical_bytes(payload)))

    def _readme(self, data: TableData, caller: Caller, exported_at: str) -> str:
        name = self.profile.system_name.upper()
        return (
            f"# {name} Export Package\n\n"
            f"This package contains a complete export of {name}.\n\n"
            "## Contents\n"
            f"- Data from {len(data)} tables\n"
            f"- Metadata for {len(self.profile.edge_functions)} edge functions\n"
            "- Manifest and checksum\n\n"
            "## Importing\n"
            "1. Run a dry run and review the validation report\n"
            "2. Apply the import; a pre-import backup is taken automatically\n\n"
            "## Security notes\n"
            "- Do not share this file publicly; it contains system data\n"
            "- Secrets are not included and must be configured manually after import\n\n"
            f"Exported at: {exported_at}\n"
            f"By: {caller.email or caller.id}\n"
        )


def _signable(manifest: Manifest) -> Dict[str, Any]:
    if hasattr(manifest, "model_dump"):
        return manifest.model_dump(mode="json", exclude=set(UNSIGNED_FIELDS))
    return manifest.dict(exclude=set(UNSIGNED_FIELDS))


def manifest_to_dict(manifest: Manifest) -> Dict[str, Any]:
    if hasattr(manifest, "model_dump"):
        return manifest.model_dump(mode="json")
    return manifest.dict()
