from __future__ import annotations

from flask import Blueprint, jsonify, request

from marketplace.application.dashboard_service import DashboardService
from marketplace.application.fulfillment_service import FulfillmentService
from marketplace.application.procurement_service import ProcurementService
from marketplace.db import get_db
from marketplace.domain.contracts import (
    OrderTransitionInput,
    QuoteAcceptInput,
    RatingInput,
    RfqCreateInput,
    RfqLineInput,
)
from marketplace.policies import require_roles
from marketplace.routes.common import json_body, status_filter
from marketplace.ui_strings import success_message


client_bp = Blueprint("client", __name__, url_prefix="/api/client")

_PROCUREMENT_SERVICE = ProcurementService()
_FULFILLMENT_SERVICE = FulfillmentService()
_DASHBOARD_SERVICE = DashboardService(procurement=_PROCUREMENT_SERVICE)


@client_bp.route("/dashboard", methods=["GET"])
def dashboard_api():
    client = require_roles("client")
    return jsonify(_DASHBOARD_SERVICE.client_dashboard(get_db(), client))


@client_bp.route("/rfqs", methods=["GET", "POST"])
def rfqs_api():
    client = require_roles("client")
    db = get_db()
    if request.method == "POST":
        payload = json_body()
        raw_lines = payload.get("lines") if isinstance(payload.get("lines"), list) else []
        lines = [
            RfqLineInput(item_id=line.get("item_id"), quantity=line.get("quantity"), notes=line.get("notes"))
            for line in raw_lines
            if isinstance(line, dict)
        ]
        result = _PROCUREMENT_SERVICE.create_rfq(
            db,
            client,
            RfqCreateInput(
                title=str(payload.get("title") or ""),
                description=payload.get("description"),
                deadline=payload.get("deadline"),
                lines=lines,
            ),
        )
        return jsonify({**result.payload, "message": success_message("rfq_created")}), result.status_code

    items = _PROCUREMENT_SERVICE.list_client_rfqs(db, client, status=status_filter("rfq"))
    return jsonify({"items": items})


@client_bp.route("/rfqs/<int:rfq_id>", methods=["GET"])
def rfq_detail_api(rfq_id: int):
    client = require_roles("client")
    return jsonify({"rfq": _PROCUREMENT_SERVICE.get_rfq_detail(get_db(), client, rfq_id)})


@client_bp.route("/rfqs/<int:rfq_id>/cancel", methods=["POST"])
def rfq_cancel_api(rfq_id: int):
    client = require_roles("client")
    rfq = _PROCUREMENT_SERVICE.cancel_rfq(get_db(), client, rfq_id)
    return jsonify({"rfq": rfq, "message": success_message("rfq_cancelled")})


@client_bp.route("/quotes/<int:quote_id>/accept", methods=["POST"])
def quote_accept_api(quote_id: int):
    client = require_roles("client")
    payload = json_body()
    result = _PROCUREMENT_SERVICE.accept_quote(
        get_db(),
        client,
        QuoteAcceptInput(quote_id=quote_id, delivery_address=payload.get("delivery_address")),
    )
    return jsonify({**result.payload, "message": success_message("quote_accepted")}), result.status_code


@client_bp.route("/orders", methods=["GET"])
def orders_api():
    client = require_roles("client")
    return jsonify({"items": _FULFILLMENT_SERVICE.list_orders(get_db(), client, status=status_filter("order"))})


@client_bp.route("/orders/<int:order_id>", methods=["GET"])
def order_detail_api(order_id: int):
    client = require_roles("client")
    return jsonify({"order": _FULFILLMENT_SERVICE.get_order(get_db(), client, order_id)})


@client_bp.route("/orders/<int:order_id>/<string:action>", methods=["POST"])
def order_action_api(order_id: int, action: str):
    client = require_roles("client")
    payload = json_body()
    order = _FULFILLMENT_SERVICE.transition(
        get_db(),
        client,
        OrderTransitionInput(order_id=order_id, action=action, reason=payload.get("reason")),
    )
    return jsonify({"order": order, "message": success_message("order_updated")})


@client_bp.route("/orders/<int:order_id>/rating", methods=["POST"])
def order_rating_api(order_id: int):
    client = require_roles("client")
    payload = json_body()
    rating = _FULFILLMENT_SERVICE.rate_order(
        get_db(),
        client,
        RatingInput(order_id=order_id, score=payload.get("score"), review=payload.get("review")),
    )
    return jsonify({"rating": rating, "message": success_message("rating_saved")}), 201
