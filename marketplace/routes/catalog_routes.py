from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session

from marketplace.application.catalog_service import CatalogService
from marketplace.application.procurement_service import ProcurementService
from marketplace.db import get_db
from marketplace.domain.contracts import CatalogFilter, RfqCreateInput, RfqLineInput
from marketplace.errors import NotFoundError, ValidationError
from marketplace.policies import require_roles
from marketplace.procurement.selection import SelectionSet
from marketplace.routes.common import json_body, parse_int, parse_optional_int


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")

_CATALOG_SERVICE = CatalogService()
_PROCUREMENT_SERVICE = ProcurementService()

_SELECTION_ACTIONS = {"toggle", "set_quantity", "remove"}


@catalog_bp.route("/categories", methods=["GET"])
def categories_api():
    return jsonify({"items": _CATALOG_SERVICE.list_categories(get_db())})


@catalog_bp.route("/items", methods=["GET"])
def items_api():
    require_roles("client", "supplier", "admin")
    page_size = int(current_app.config.get("CATALOG_PAGE_SIZE", 50) or 50)
    catalog_filter = CatalogFilter(
        category_id=parse_optional_int(request.args.get("category_id")),
        search_text=(request.args.get("search") or "").strip()[:80] or None,
        limit=parse_int(request.args.get("limit"), default=page_size, min_value=1, max_value=200),
        offset=parse_int(request.args.get("offset"), default=0, min_value=0, max_value=1_000_000),
    )
    items = _CATALOG_SERVICE.list_approved_items(get_db(), catalog_filter)
    return jsonify({"items": items, "limit": catalog_filter.limit, "offset": catalog_filter.offset})


@catalog_bp.route("/selection", methods=["GET", "POST", "DELETE"])
def selection_api():
    require_roles("client")
    db = get_db()
    selection = SelectionSet.from_session(session)

    if request.method == "DELETE":
        selection.clear()
        selection.to_session(session)
        return jsonify(_CATALOG_SERVICE.selection_payload(db, selection)), 200

    if request.method == "POST":
        payload = json_body()
        item_id = parse_optional_int(payload.get("item_id"))
        if item_id is None:
            raise NotFoundError(code="item_not_found", message_key="item_not_found")
        action = str(payload.get("action") or "toggle").strip().lower()
        if action not in _SELECTION_ACTIONS:
            raise ValidationError(code="action_invalid", message_key="action_invalid")
        if action == "toggle":
            _CATALOG_SERVICE.toggle_selection(db, selection, item_id)
        elif action == "set_quantity":
            _CATALOG_SERVICE.set_selection_quantity(db, selection, item_id, payload.get("quantity"))
        else:
            selection.remove(item_id)
        selection.to_session(session)

    return jsonify(_CATALOG_SERVICE.selection_payload(db, selection)), 200


@catalog_bp.route("/selection/rfq", methods=["POST"])
def selection_rfq_api():
    client = require_roles("client")
    payload = json_body()
    selection = SelectionSet.from_session(session)
    lines = [RfqLineInput(item_id=line["item_id"], quantity=line["quantity"]) for line in selection.to_lines()]
    result = _PROCUREMENT_SERVICE.create_rfq(
        get_db(),
        client,
        RfqCreateInput(
            title=str(payload.get("title") or ""),
            description=payload.get("description"),
            deadline=payload.get("deadline"),
            lines=lines,
        ),
    )
    selection.clear()
    selection.to_session(session)
    return jsonify(result.payload), result.status_code
