from __future__ import annotations

from flask import Blueprint, jsonify, request

from marketplace.application.catalog_service import CatalogService
from marketplace.application.dashboard_service import DashboardService
from marketplace.application.fulfillment_service import FulfillmentService
from marketplace.application.procurement_service import ProcurementService
from marketplace.db import get_db
from marketplace.domain.contracts import ItemInput, OrderTransitionInput, QuoteLineInput, QuoteSubmitInput
from marketplace.policies import require_roles
from marketplace.routes.common import json_body, status_filter
from marketplace.ui_strings import success_message


supplier_bp = Blueprint("supplier", __name__, url_prefix="/api/supplier")

_CATALOG_SERVICE = CatalogService()
_PROCUREMENT_SERVICE = ProcurementService()
_FULFILLMENT_SERVICE = FulfillmentService()
_DASHBOARD_SERVICE = DashboardService(procurement=_PROCUREMENT_SERVICE)


def _item_input(payload: dict) -> ItemInput:
    return ItemInput(
        name=payload.get("name"),
        description=payload.get("description"),
        category_id=payload.get("category_id"),
        subcategory_id=payload.get("subcategory_id"),
        unit=payload.get("unit"),
        cost_price=payload.get("cost_price"),
        image_urls=payload.get("image_urls"),
    )


@supplier_bp.route("/dashboard", methods=["GET"])
def dashboard_api():
    supplier = require_roles("supplier")
    return jsonify(_DASHBOARD_SERVICE.supplier_dashboard(get_db(), supplier))


@supplier_bp.route("/items", methods=["GET", "POST"])
def items_api():
    supplier = require_roles("supplier")
    db = get_db()
    if request.method == "POST":
        item = _CATALOG_SERVICE.create_item(db, supplier, _item_input(json_body()))
        return jsonify({"item": item, "message": success_message("item_saved")}), 201
    return jsonify({"items": _CATALOG_SERVICE.list_supplier_items(db, supplier, status=status_filter("item"))})


@supplier_bp.route("/items/<int:item_id>", methods=["GET", "PATCH", "DELETE"])
def item_api(item_id: int):
    supplier = require_roles("supplier")
    db = get_db()
    if request.method == "DELETE":
        _CATALOG_SERVICE.delete_item(db, supplier, item_id)
        return jsonify({"status": "deleted", "item_id": item_id, "message": success_message("item_deleted")}), 200
    if request.method == "PATCH":
        item = _CATALOG_SERVICE.update_item(db, supplier, item_id, _item_input(json_body()))
        return jsonify({"item": item, "message": success_message("item_saved")}), 200
    return jsonify({"item": _CATALOG_SERVICE.get_owned_item(db, supplier, item_id)})


@supplier_bp.route("/opportunities", methods=["GET"])
def opportunities_api():
    supplier = require_roles("supplier")
    return jsonify({"items": _PROCUREMENT_SERVICE.supplier_opportunities(get_db(), supplier)})


@supplier_bp.route("/rfqs/<int:rfq_id>/quotes", methods=["POST"])
def quote_submit_api(rfq_id: int):
    supplier = require_roles("supplier")
    payload = json_body()
    raw_lines = payload.get("lines") if isinstance(payload.get("lines"), list) else []
    lines = [
        QuoteLineInput(rfq_item_id=line.get("rfq_item_id"), unit_price=line.get("unit_price"))
        for line in raw_lines
        if isinstance(line, dict)
    ]
    result = _PROCUREMENT_SERVICE.submit_quote(
        get_db(),
        supplier,
        QuoteSubmitInput(
            rfq_id=rfq_id,
            lines=lines,
            notes=payload.get("notes"),
            delivery_days=payload.get("delivery_days"),
            total_price=payload.get("total_price"),
        ),
    )
    return jsonify({**result.payload, "message": success_message("quote_submitted")}), result.status_code


@supplier_bp.route("/quotes", methods=["GET"])
def quotes_api():
    supplier = require_roles("supplier")
    items = _PROCUREMENT_SERVICE.list_supplier_quotes(get_db(), supplier, status=status_filter("quote"))
    return jsonify({"items": items})


@supplier_bp.route("/orders", methods=["GET"])
def orders_api():
    supplier = require_roles("supplier")
    return jsonify({"items": _FULFILLMENT_SERVICE.list_orders(get_db(), supplier, status=status_filter("order"))})


@supplier_bp.route("/orders/<int:order_id>", methods=["GET"])
def order_detail_api(order_id: int):
    supplier = require_roles("supplier")
    return jsonify({"order": _FULFILLMENT_SERVICE.get_order(get_db(), supplier, order_id)})


@supplier_bp.route("/orders/<int:order_id>/<string:action>", methods=["POST"])
def order_action_api(order_id: int, action: str):
    supplier = require_roles("supplier")
    payload = json_body()
    order = _FULFILLMENT_SERVICE.transition(
        get_db(),
        supplier,
        OrderTransitionInput(
            order_id=order_id,
            action=action,
            tracking_number=payload.get("tracking_number"),
            reason=payload.get("reason"),
        ),
    )
    return jsonify({"order": order, "message": success_message("order_updated")})
