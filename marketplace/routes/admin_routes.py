from __future__ import annotations

from flask import Blueprint, jsonify, request

from marketplace.application.admin_service import AdminService
from marketplace.application.catalog_service import CatalogService
from marketplace.application.dashboard_service import DashboardService
from marketplace.application.fulfillment_service import FulfillmentService
from marketplace.application.procurement_service import ProcurementService
from marketplace.db import get_db
from marketplace.domain.contracts import MarginRuleInput
from marketplace.errors import ValidationError
from marketplace.policies import VALID_ROLES, require_roles
from marketplace.routes.common import json_body, parse_int, status_filter


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

_ADMIN_SERVICE = AdminService()
_CATALOG_SERVICE = CatalogService()
_PROCUREMENT_SERVICE = ProcurementService()
_FULFILLMENT_SERVICE = FulfillmentService()
_DASHBOARD_SERVICE = DashboardService(procurement=_PROCUREMENT_SERVICE)


@admin_bp.before_request
def _require_admin():
    require_roles("admin")


def _margin_rule_input(payload: dict) -> MarginRuleInput:
    active = payload.get("active")
    return MarginRuleInput(
        margin_percentage=payload.get("margin_percentage"),
        category_id=payload.get("category_id"),
        priority=payload.get("priority"),
        active=None if active is None else bool(active),
    )


@admin_bp.route("/dashboard", methods=["GET"])
def dashboard_api():
    return jsonify(_DASHBOARD_SERVICE.admin_dashboard(get_db()))


@admin_bp.route("/users", methods=["GET"])
def users_api():
    role = (request.args.get("role") or "").strip().lower() or None
    if role is not None and role not in VALID_ROLES:
        raise ValidationError(code="role_invalid", message_key="role_invalid")
    return jsonify({"items": _ADMIN_SERVICE.list_users(get_db(), role=role, status=status_filter("user"))})


@admin_bp.route("/users/<int:user_id>/status", methods=["POST"])
def user_status_api(user_id: int):
    admin = require_roles("admin")
    payload = json_body()
    user = _ADMIN_SERVICE.set_user_status(get_db(), admin, user_id, payload.get("status"))
    return jsonify({"user": user})


@admin_bp.route("/items", methods=["GET"])
def items_api():
    return jsonify({"items": _ADMIN_SERVICE.list_items(get_db(), status=status_filter("item"))})


@admin_bp.route("/items/<int:item_id>/review", methods=["POST"])
def item_review_api(item_id: int):
    admin = require_roles("admin")
    payload = json_body()
    item = _ADMIN_SERVICE.review_item(get_db(), admin, item_id, payload.get("decision"))
    return jsonify({"item": item})


@admin_bp.route("/categories", methods=["POST"])
def categories_api():
    payload = json_body()
    category = _CATALOG_SERVICE.create_category(
        get_db(),
        name=payload.get("name"),
        slug=payload.get("slug"),
        description=payload.get("description"),
    )
    return jsonify({"category": category}), 201


@admin_bp.route("/categories/<int:category_id>/subcategories", methods=["POST"])
def subcategories_api(category_id: int):
    payload = json_body()
    subcategory = _CATALOG_SERVICE.create_subcategory(
        get_db(),
        category_id=category_id,
        name=payload.get("name"),
        slug=payload.get("slug"),
    )
    return jsonify({"subcategory": subcategory}), 201


@admin_bp.route("/margin-rules", methods=["GET", "POST"])
def margin_rules_api():
    db = get_db()
    if request.method == "POST":
        rule = _CATALOG_SERVICE.create_margin_rule(db, _margin_rule_input(json_body()))
        return jsonify({"rule": rule}), 201
    return jsonify({"items": _CATALOG_SERVICE.list_margin_rules(db)})


@admin_bp.route("/margin-rules/<int:rule_id>", methods=["PATCH"])
def margin_rule_api(rule_id: int):
    rule = _CATALOG_SERVICE.update_margin_rule(get_db(), rule_id, _margin_rule_input(json_body()))
    return jsonify({"rule": rule})


@admin_bp.route("/rfqs", methods=["GET"])
def rfqs_api():
    limit = parse_int(request.args.get("limit"), default=200, min_value=1, max_value=500)
    items = _PROCUREMENT_SERVICE.list_all_rfqs(get_db(), status=status_filter("rfq"), limit=limit)
    return jsonify({"items": items})


@admin_bp.route("/rfqs/<int:rfq_id>", methods=["GET"])
def rfq_detail_api(rfq_id: int):
    admin = require_roles("admin")
    return jsonify({"rfq": _PROCUREMENT_SERVICE.get_rfq_detail(get_db(), admin, rfq_id)})


@admin_bp.route("/orders", methods=["GET"])
def orders_api():
    admin = require_roles("admin")
    return jsonify({"items": _FULFILLMENT_SERVICE.list_orders(get_db(), admin, status=status_filter("order"))})


@admin_bp.route("/orders/<int:order_id>", methods=["GET"])
def order_detail_api(order_id: int):
    admin = require_roles("admin")
    return jsonify({"order": _FULFILLMENT_SERVICE.get_order(get_db(), admin, order_id)})


@admin_bp.route("/reconciliation", methods=["GET"])
def reconciliation_api():
    return jsonify(_ADMIN_SERVICE.reconciliation_report(get_db()))


@admin_bp.route("/expire", methods=["POST"])
def expire_api():
    return jsonify({"expired": _ADMIN_SERVICE.expire_overdue(get_db())})
