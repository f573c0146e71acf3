from __future__ import annotations

import logging
import re
import secrets

from werkzeug.security import check_password_hash

from marketplace.domain.contracts import AuthLoginInput, AuthSignupInput
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.errors import NotFoundError, ValidationError
from marketplace.infrastructure.repositories import AuthRepository, ProfileRepository
from marketplace.policies import SELF_SIGNUP_ROLES, normalize_role


logger = logging.getLogger("marketplace")

MIN_PASSWORD_LENGTH = 8
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DISPLAY_PREFIXES = {"client": "Client", "supplier": "Supplier", "admin": "Admin"}


def generate_display_name(role: str) -> str:
    """Public alias shown to the other side of a deal, e.g. ``Supplier-4F2A``."""
    prefix = _DISPLAY_PREFIXES.get(role, "User")
    return f"{prefix}-{secrets.token_hex(2).upper()}"


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


class AuthService:
    def __init__(
        self,
        repository: AuthRepository | None = None,
        profiles: ProfileRepository | None = None,
    ) -> None:
        self.repository = repository or AuthRepository()
        self.profiles = profiles or ProfileRepository()

    def login(self, db, auth_input: AuthLoginInput) -> dict:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        if not email or not password:
            raise ValidationError(code="auth_missing_credentials", message_key="auth_missing_credentials")

        user = self.repository.find_user_by_email(db, email)
        if not user or not check_password_hash(user["password_hash"], password):
            raise AppPermissionError(
                code="auth_invalid_credentials",
                message_key="auth_invalid_credentials",
                http_status=401,
            )
        profile = self.profiles.get_by_id(db, int(user["id"]))
        if profile is None:
            raise AppPermissionError(
                code="auth_invalid_credentials",
                message_key="auth_invalid_credentials",
                http_status=401,
            )
        return profile

    def signup(self, db, auth_input: AuthSignupInput) -> dict:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        role = normalize_role(auth_input.role)

        if not email or not password:
            raise ValidationError(code="auth_missing_credentials", message_key="auth_missing_credentials")
        if not _EMAIL_PATTERN.match(email):
            raise ValidationError(code="email_invalid", message_key="email_invalid")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(code="password_too_short", message_key="password_too_short")
        if role not in SELF_SIGNUP_ROLES:
            raise ValidationError(code="role_invalid", message_key="role_invalid")
        if self.repository.email_exists(db, email):
            raise ValidationError(code="email_already_registered", message_key="email_already_registered")

        with db.transaction():
            user_id = self.create_account(
                db,
                email=email,
                password=password,
                role=role,
                status="pending",
                real_name=_clean(auth_input.real_name),
                company_name=_clean(auth_input.company_name),
                phone=_clean(auth_input.phone),
            )
        logger.info("user_signed_up", extra={"user_id": user_id, "role": role})
        return self.profiles.get_by_id(db, user_id)

    def create_account(
        self,
        db,
        *,
        email: str,
        password: str,
        role: str,
        status: str,
        real_name: str | None = None,
        company_name: str | None = None,
        phone: str | None = None,
    ) -> int:
        user_id = self.repository.create_user(db, email=email, password=password)
        display_name = generate_display_name(role)
        while self.profiles.display_name_exists(db, display_name):
            display_name = generate_display_name(role)
        self.profiles.create(
            db,
            user_id=user_id,
            role=role,
            status=status,
            display_name=display_name,
            email=email,
            real_name=real_name,
            company_name=company_name,
            phone=phone,
        )
        return user_id

    def profile(self, db, user_id: int) -> dict:
        profile = self.profiles.get_by_id(db, user_id)
        if profile is None:
            raise NotFoundError(code="user_not_found", message_key="user_not_found")
        return profile

    def update_profile(self, db, user: dict, payload: dict) -> dict:
        fields = {
            key: _clean(payload.get(key))
            for key in ("real_name", "company_name", "phone")
            if key in payload
        }
        with db.transaction():
            self.profiles.update_fields(db, int(user["id"]), fields)
        return self.profile(db, int(user["id"]))
