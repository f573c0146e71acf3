from __future__ import annotations

from typing import Any

from flask import request

from marketplace.errors import ValidationError
from marketplace.ui_strings import status_keys_for_group


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def parse_int(value: str | None, default: int, min_value: int, max_value: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(min_value, min(parsed, max_value))


def parse_optional_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def status_filter(group: str) -> str | None:
    """``?status=`` argument, validated against the group's known statuses."""
    value = (request.args.get("status") or "").strip().lower()
    if not value:
        return None
    if value not in status_keys_for_group(group):
        raise ValidationError(code="status_invalid", message_key="status_invalid")
    return value


def flag_arg(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}
