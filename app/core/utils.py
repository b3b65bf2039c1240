from __future__ import annotations

import hashlib
import time
from datetime import datetime, timezone
from uuid import uuid4


def compute_sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def normalize_hex(value: str) -> str:
    return value.strip().lower()


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def utc_date() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def new_id() -> str:
    return str(uuid4())


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)
