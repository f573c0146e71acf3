from __future__ import annotations

from flask import Blueprint, jsonify, request

from marketplace.application.auth_service import AuthService
from marketplace.application.notification_service import NotificationService
from marketplace.db import get_db
from marketplace.policies import forget_current_user, require_user
from marketplace.routes.common import flag_arg, json_body


account_bp = Blueprint("account", __name__, url_prefix="/api/account")

_AUTH_SERVICE = AuthService()
_NOTIFICATION_SERVICE = NotificationService()


@account_bp.route("/profile", methods=["GET", "PATCH"])
def profile_api():
    user = require_user()
    if request.method == "PATCH":
        profile = _AUTH_SERVICE.update_profile(get_db(), user, json_body())
        forget_current_user()
        return jsonify({"user": profile})
    return jsonify({"user": user})


@account_bp.route("/notifications", methods=["GET"])
def notifications_api():
    user = require_user()
    return jsonify(_NOTIFICATION_SERVICE.list_notifications(get_db(), user, unread_only=flag_arg("unread")))


@account_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def notification_read_api(notification_id: int):
    user = require_user()
    _NOTIFICATION_SERVICE.mark_read(get_db(), user, notification_id)
    return jsonify({"status": "read", "notification_id": notification_id})


@account_bp.route("/notifications/read-all", methods=["POST"])
def notifications_read_all_api():
    user = require_user()
    updated = _NOTIFICATION_SERVICE.mark_all_read(get_db(), user)
    return jsonify({"status": "read", "updated": updated})
