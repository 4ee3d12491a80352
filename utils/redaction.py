"""Masking of credential-like fields before a config leaves the process."""

from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

MASK = "******"

# field name -> (visible prefix, visible suffix); (0, 0) masks fully
SENSITIVE_FIELDS: dict[str, tuple[int, int]] = {
    "cookie": (8, 4),
    "access_key_id": (4, 4),
    "secret_access_key": (0, 0),
    "token": (0, 0),
    "password": (0, 0),
}

_LOOKUP = {**SENSITIVE_FIELDS, **{to_camel(name): rule for name, rule in SENSITIVE_FIELDS.items()}}


def sanitize_string(value: str | None, prefix_len: int = 0, suffix_len: int = 0) -> str:
    """Keep prefix_len/suffix_len characters and replace the interior with MASK."""
    if not value or not value.strip():
        return ""

    trimmed = value.strip()
    if len(trimmed) <= prefix_len + suffix_len:
        return MASK

    prefix = trimmed[:prefix_len] if prefix_len > 0 else ""
    suffix = trimmed[-suffix_len:] if suffix_len > 0 else ""
    return f"{prefix}{MASK}{suffix}"


def _sanitize(data: Any) -> Any:
    if isinstance(data, dict):
        cleaned = {}
        for key, value in data.items():
            if key in _LOOKUP and isinstance(value, str):
                cleaned[key] = sanitize_string(value, *_LOOKUP[key])
            else:
                cleaned[key] = _sanitize(value)
        return cleaned
    if isinstance(data, list):
        return [_sanitize(item) for item in data]
    return data


def sanitize_config(config: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Deep copy of a config (model or plain dict) with sensitive fields masked."""
    data = config.model_dump(mode="json") if isinstance(config, BaseModel) else config
    return _sanitize(data)
