from __future__ import annotations

from typing import Iterable, Set

from flask import g, session

from marketplace.db import get_db
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.infrastructure.repositories import ProfileRepository


VALID_ROLES: Set[str] = {"client", "supplier", "admin"}
SELF_SIGNUP_ROLES: Set[str] = {"client", "supplier"}

_PROFILES = ProfileRepository()


def normalize_role(role: str | None, default: str = "") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role)
        if normalized:
            allowed.add(normalized)
    return allowed


def current_user_id() -> int | None:
    raw = session.get("user_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def load_current_user() -> dict | None:
    """Profile of the logged in user, cached for the request."""
    if "current_user" in g:
        return g.current_user
    user_id = current_user_id()
    g.current_user = _PROFILES.get_by_id(get_db(), user_id) if user_id is not None else None
    return g.current_user


def forget_current_user() -> None:
    g.pop("current_user", None)


def require_user() -> dict:
    user = load_current_user()
    if user is None:
        raise AppPermissionError(
            code="auth_required",
            message_key="auth_required",
            http_status=401,
            critical=False,
        )
    return user


def ensure_active(user: dict) -> dict:
    if user.get("role") == "admin":
        return user
    status = user.get("status")
    if status == "approved":
        return user
    code = "account_pending" if status == "pending" else "account_inactive"
    raise AppPermissionError(code=code, message_key=code, http_status=403, critical=False)


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalize_role(role) in allowed


def require_roles(*allowed_roles: str, user: dict | None = None) -> dict:
    """Logged in, approved user holding one of ``allowed_roles`` (any role when empty)."""
    actor = user if user is not None else require_user()
    if not has_any_role(actor.get("role"), allowed_roles):
        raise AppPermissionError(
            code="permission_denied",
            message_key="permission_denied",
            http_status=403,
            critical=False,
        )
    return ensure_active(actor)


def ensure_owner(owner_id: object, user: dict) -> None:
    if user.get("role") == "admin":
        return
    if owner_id is not None and int(owner_id) == int(user["id"]):
        return
    raise AppPermissionError(
        code="permission_denied",
        message_key="permission_denied",
        http_status=403,
        critical=False,
    )
