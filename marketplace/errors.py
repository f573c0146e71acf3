from __future__ import annotations

from typing import Any, Dict

from marketplace.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or code or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Could not complete the operation.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        return {
            **self.payload,
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }

    def log_context(self) -> Dict[str, Any]:
        context = {
            "error_code": self.code,
            "http_status": self.http_status,
            "message_key": self.message_key,
            "details": self.details,
        }
        for key in ("operation", "failed_step"):
            if key in self.payload:
                context[key] = self.payload[key]
        return context


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "status_invalid"
    default_http_status = 400
    default_critical = False


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404
    default_critical = False


class ConflictError(UserActionError):
    """The current state of a record does not allow the requested change."""

    default_code = "status_conflict"
    default_message_key = "status_conflict"
    default_http_status = 409
    default_critical = False


class LifecycleWriteError(AppError):
    """A multi-step write failed after it started and was rolled back.

    The payload carries ``operation`` and ``failed_step`` so an operator can
    tell it apart from a request that was refused before any write.
    """

    default_code = "lifecycle_write_failed"
    default_message_key = "lifecycle_write_failed"
    default_http_status = 500
    default_critical = True

    def __init__(self, operation: str, failed_step: str, details: str | None = None) -> None:
        super().__init__(
            details=details,
            payload={"operation": operation, "failed_step": failed_step, "rolled_back": True},
        )
        self.operation = operation
        self.failed_step = failed_step


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
