from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from marketplace.application.auth_service import AuthService
from marketplace.db import get_db
from marketplace.domain.contracts import AuthLoginInput, AuthSignupInput
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.policies import current_user_id, forget_current_user, require_user
from marketplace.security import csrf_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_AUTH_SERVICE = AuthService()

PUBLIC_PATHS = {
    "/health",
    "/metrics",
    "/api/auth/login",
    "/api/auth/signup",
    "/api/auth/logout",
    "/api/auth/csrf",
}


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        path = request.path or "/"
        if path in PUBLIC_PATHS:
            return None
        if path == "/api/catalog/categories" and request.method == "GET":
            return None
        if not path.startswith("/api/"):
            return None
        if current_user_id() is not None:
            return None
        raise AppPermissionError(code="auth_required", message_key="auth_required", http_status=401)


def _start_session(profile: dict) -> None:
    session.clear()
    session["user_id"] = int(profile["id"])
    session["user_role"] = profile["role"]
    forget_current_user()


def _profile_payload(profile: dict) -> dict:
    return {"user": profile, "approved": profile["status"] == "approved" or profile["role"] == "admin"}


@auth_bp.route("/signup", methods=["POST"])
def signup():
    payload = request.get_json(silent=True) or {}
    profile = _AUTH_SERVICE.signup(
        get_db(),
        AuthSignupInput(
            email=str(payload.get("email") or ""),
            password=str(payload.get("password") or ""),
            role=str(payload.get("role") or ""),
            real_name=payload.get("real_name"),
            company_name=payload.get("company_name"),
            phone=payload.get("phone"),
        ),
    )
    _start_session(profile)
    return jsonify(_profile_payload(profile)), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    profile = _AUTH_SERVICE.login(
        get_db(),
        AuthLoginInput(
            email=str(payload.get("email") or ""),
            password=str(payload.get("password") or ""),
        ),
    )
    _start_session(profile)
    return jsonify(_profile_payload(profile)), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    forget_current_user()
    return jsonify({"status": "logged_out"}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    return jsonify(_profile_payload(require_user())), 200


@auth_bp.route("/csrf", methods=["GET"])
def csrf():
    return jsonify({"csrf_token": csrf_token()}), 200
