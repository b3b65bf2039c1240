from __future__ import annotations

import re
from typing import Any, Iterable, List

PLACEHOLDER_PREFIX = "YOUR_"
_ANGLE_PLACEHOLDER = re.compile(r"^<[^<>]+>$")

SECRET_KEYS = {
    "secret",
    "secrets",
    "password",
    "token",
    "api_key",
    "apikey",
    "access_key",
    "private_key",
    "client_secret",
    "service_role_key",
}


def placeholder_for(name: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{name}"


def build_secrets_template(names: Iterable[str]) -> dict[str, str]:
    return {name: placeholder_for(name) for name in names}


def is_placeholder(value: Any) -> bool:
    if value is None:
        return True
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if not stripped:
        return True
    return stripped.startswith(PLACEHOLDER_PREFIX) or bool(_ANGLE_PLACEHOLDER.match(stripped))


def evaluate_secrets_template(template: Any) -> List[str]:
    warnings: List[str] = []
    if not isinstance(template, dict):
        warnings.append("secrets_template is not an object and was ignored")
        return warnings
    leaked = sorted(name for name, value in template.items() if not is_placeholder(value))
    if leaked:
        warnings.append(
            "secrets_template carries non-placeholder values for: " + ", ".join(leaked)
        )
    return warnings


def evaluate_configurations(configurations: Any) -> List[str]:
    if _contains_inline_secrets(configurations):
        return ["configurations contain inline secret values; they are never applied"]
    return []


def _contains_inline_secrets(payload: Any) -> bool:
    if isinstance(payload, dict):
        for key, value in payload.items():
            if isinstance(key, str) and key.lower() in SECRET_KEYS:
                if isinstance(value, str) and not is_placeholder(value):
                    return True
            if _contains_inline_secrets(value):
                return True
    elif isinstance(payload, list):
        for item in payload:
            if _contains_inline_secrets(item):
                return True
    return False
