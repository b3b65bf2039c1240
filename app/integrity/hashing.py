from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

from app.core.utils import compute_sha256, normalize_hex

HASH_METHOD = "sha256"
UNSIGNED_FIELDS = ("checksum", "signature")


def canonical_bytes(payload: Any) -> bytes:
    """Serialize ``payload`` so equal content always yields equal bytes.

    Keys are sorted at every depth, separators carry no whitespace and text is
    emitted as UTF-8 rather than ``\\u`` escapes.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def hash_bytes(data: bytes) -> str:
    return compute_sha256(data)


def hashes_match(expected: str, actual: str) -> bool:
    return normalize_hex(expected) == normalize_hex(actual)


def signable_payload(manifest: Mapping[str, Any], exclude: Iterable[str] = UNSIGNED_FIELDS) -> dict[str, Any]:
    excluded = set(exclude)
    return {key: value for key, value in manifest.items() if key not in excluded}


def compute_checksum(payload: Any) -> str:
    return hash_bytes(canonical_bytes(payload))


def verify_checksum(payload: Any, expected: Any) -> bool:
    if not isinstance(expected, str) or not expected.strip():
        return False
    return hashes_match(expected, compute_checksum(payload))


def manifest_checksum(manifest: Mapping[str, Any]) -> str:
    return compute_checksum(signable_payload(manifest))
