from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from app.core import config
from app.core.exceptions import MalformedInputError
from app.core.models import Compatibility


class TableSpec(BaseModel):
    name: str
    key_column: str = "id"


class ComponentSpec(BaseModel):
    name: str
    path: str


class SystemProfile(BaseModel):
    """Everything the porter needs to know about the system it exports.

    ``tables`` is ordered: exports, backups, replacements and rollbacks all
    walk it front to back.
    """

    system_name: str
    version: str
    tables: List[TableSpec]
    edge_functions: List[str] = Field(default_factory=list)
    secrets: List[str] = Field(default_factory=list)
    components: List[ComponentSpec] = Field(default_factory=list)
    configurations: Dict[str, Any] = Field(default_factory=dict)
    dependencies: Dict[str, str] = Field(default_factory=dict)
    changelog: Optional[str] = None
    compatibility: Compatibility

    @property
    def table_names(self) -> List[str]:
        return [table.name for table in self.tables]

    def table(self, name: str) -> Optional[TableSpec]:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def ordered_tables(self, names: Any) -> List[str]:
        wanted = set(names)
        return [name for name in self.table_names if name in wanted]


def default_profile() -> SystemProfile:
    return SystemProfile(
        system_name=config.SYSTEM_NAME,
        version=config.SYSTEM_VERSION,
        tables=[
            TableSpec(name="competitors"),
            TableSpec(name="priority_destinations"),
            TableSpec(name="content_calendar"),
            TableSpec(name="admin_policies"),
            TableSpec(name="social_trends"),
            TableSpec(name="campaigns"),
            TableSpec(name="daily_campaigns"),
            TableSpec(name="canva_designs"),
        ],
        edge_functions=[
            "analyze-competitors",
            "canva-oauth-callback",
            "canva-oauth-start",
            "canva-refresh-token",
            "check-api-tokens",
            "generate-campaign",
            "generate-canva-designs",
            "generate-daily-campaign",
            "chat",
            "perplexity-chat",
            "public-chat",
            "export-cbos",
            "import-cbos",
        ],
        secrets=[
            "GOOGLE_API_KEY",
            "PERPLEXITY_API_KEY",
            "CANVA_CLIENT_ID",
            "CANVA_CLIENT_SECRET",
            "LOVABLE_API_KEY",
        ],
        components=[
            ComponentSpec(name="cbos-database", path="database"),
            ComponentSpec(name="cbos-edge-functions", path="functions"),
            ComponentSpec(name="cbos-ui", path="ui"),
        ],
        configurations={"auth_enabled": True, "storage_buckets": ["cbos-exports"]},
        dependencies={"node": ">=20", "deno": ">=1.37", "supabase": ">=2.0"},
        changelog="Automatic CBOS export for backup and migration between systems",
        compatibility=Compatibility(min_version="1.0.0", max_version="2.0.0"),
    )


def load_profile(path: str | Path) -> SystemProfile:
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise MalformedInputError(f"Cannot read system profile {path}", "PARSE_ERROR") from exc
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise MalformedInputError("Failed to parse system profile YAML", "PARSE_ERROR") from exc
    if not isinstance(parsed, dict):
        raise MalformedInputError("system profile must be a YAML object")
    parsed.setdefault("system_name", config.SYSTEM_NAME)
    parsed.setdefault("version", config.SYSTEM_VERSION)
    parsed["tables"] = [
        {"name": entry} if isinstance(entry, str) else entry for entry in parsed.get("tables") or []
    ]
    try:
        profile = SystemProfile(**parsed)
    except ValidationError as exc:
        raise MalformedInputError("system profile schema invalid") from exc
    if not profile.tables:
        raise MalformedInputError("system profile must declare at least one table")
    return profile


def configured_profile() -> SystemProfile:
    if config.PROFILE_PATH:
        return load_profile(config.PROFILE_PATH)
    return default_profile()
