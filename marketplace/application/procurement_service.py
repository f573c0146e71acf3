from __future__ import annotations

import logging
from typing import Any, Dict, List

from marketplace.application.lifecycle import lifecycle_step
from marketplace.config import app_setting
from marketplace.core.clock import parse_timestamp, to_db_timestamp, utc_now, utc_now_text
from marketplace.core.event_bus import EventBus, QuoteAccepted, QuoteSubmitted, RfqCancelled, RfqCreated, get_event_bus
from marketplace.domain.contracts import QuoteAcceptInput, QuoteSubmitInput, RfqCreateInput, ServiceOutput
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.errors import ConflictError, NotFoundError, ValidationError
from marketplace.infrastructure.repositories import (
    ItemRepository,
    OrderRepository,
    QuoteItemRepository,
    QuoteRepository,
    RfqItemRepository,
    RfqRepository,
    StatusEventRepository,
)
from marketplace.policies import ensure_owner
from marketplace.procurement.flow_policy import ensure_action_allowed, flow_meta, source_statuses, target_status
from marketplace.procurement.pricing import quote_total, round_money, to_unit_price


logger = logging.getLogger("marketplace")


def _parse_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _parse_quantity(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return quantity if quantity > 0 else None


def _parse_non_negative(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None


def order_number_for(rfq_id: int) -> str:
    return f"ORD-{utc_now():%Y%m%d}-{int(rfq_id)}"


def multi_quote_enabled() -> bool:
    return bool(app_setting("RFQ_MULTI_QUOTE_ENABLED", False))


class ProcurementService:
    """RFQ creation, quoting and acceptance.

    Every multi-row write runs in one transaction and every status change is a
    conditional update on the status the caller observed, so a request that
    loses a race is refused with 409 and leaves nothing behind.
    """

    def __init__(
        self,
        rfqs: RfqRepository | None = None,
        rfq_items: RfqItemRepository | None = None,
        quotes: QuoteRepository | None = None,
        quote_items: QuoteItemRepository | None = None,
        orders: OrderRepository | None = None,
        items: ItemRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.rfqs = rfqs or RfqRepository()
        self.rfq_items = rfq_items or RfqItemRepository()
        self.quotes = quotes or QuoteRepository()
        self.quote_items = quote_items or QuoteItemRepository()
        self.orders = orders or OrderRepository()
        self.items = items or ItemRepository()
        self.status_events = status_events or StatusEventRepository()
        self.event_bus = event_bus or get_event_bus()

    # RFQ creation

    def _validate_rfq_lines(self, db, lines: List[Any]) -> List[Dict[str, Any]]:
        if not lines:
            raise ValidationError(code="items_required", message_key="items_required")

        parsed: List[Dict[str, Any]] = []
        seen: set[int] = set()
        for line in lines:
            item_id = _parse_id(getattr(line, "item_id", None))
            if item_id is None:
                raise NotFoundError(code="item_not_found", message_key="item_not_found")
            quantity = _parse_quantity(getattr(line, "quantity", None))
            if quantity is None:
                raise ValidationError(
                    code="quantity_invalid",
                    message_key="quantity_invalid",
                    payload={"item_id": item_id},
                )
            if item_id in seen:
                raise ValidationError(code="items_duplicate", message_key="items_duplicate", payload={"item_id": item_id})
            seen.add(item_id)
            notes = (getattr(line, "notes", None) or "").strip() or None
            parsed.append({"item_id": item_id, "quantity": quantity, "notes": notes})

        catalog = self.items.get_many(db, [line["item_id"] for line in parsed])
        for line in parsed:
            item = catalog.get(line["item_id"])
            if item is None:
                raise NotFoundError(code="item_not_found", message_key="item_not_found", payload={"item_id": line["item_id"]})
            if item["status"] != "approved":
                raise ValidationError(
                    code="item_not_approved",
                    message_key="item_not_approved",
                    payload={"item_id": line["item_id"]},
                )
        return parsed

    def _resolve_deadline(self, raw_deadline: str | None) -> str:
        if raw_deadline is None or not str(raw_deadline).strip():
            return utc_now_text(days=int(app_setting("RFQ_DEFAULT_DEADLINE_DAYS", 14)))
        deadline = parse_timestamp(raw_deadline)
        if deadline is None or deadline <= utc_now():
            raise ValidationError(code="deadline_invalid", message_key="deadline_invalid")
        return to_db_timestamp(deadline)

    def create_rfq(self, db, client: dict, create_input: RfqCreateInput) -> ServiceOutput:
        title = (create_input.title or "").strip()
        if not title:
            raise ValidationError(code="title_required", message_key="title_required")
        lines = self._validate_rfq_lines(db, list(create_input.lines or []))
        deadline = self._resolve_deadline(create_input.deadline)
        description = (create_input.description or "").strip() or None
        client_id = int(client["id"])

        with db.transaction():
            with lifecycle_step("create_rfq", "insert_rfq"):
                rfq_id = self.rfqs.create(
                    db,
                    client_id=client_id,
                    title=title,
                    description=description,
                    deadline=deadline,
                )
            with lifecycle_step("create_rfq", "insert_rfq_items", conflict=ConflictError(code="items_duplicate")):
                for line in lines:
                    self.rfq_items.create(
                        db,
                        rfq_id=rfq_id,
                        item_id=line["item_id"],
                        quantity=line["quantity"],
                        notes=line["notes"],
                    )
            with lifecycle_step("create_rfq", "record_status_event"):
                self.status_events.add_event(
                    db,
                    entity="rfq",
                    entity_id=rfq_id,
                    from_status=None,
                    to_status="open",
                    actor_id=client_id,
                    reason="rfq_created",
                )

        logger.info("rfq_created", extra={"rfq_id": rfq_id, "client_id": client_id, "line_count": len(lines)})
        self.event_bus.publish(
            RfqCreated(rfq_id=rfq_id, client_id=client_id, title=title, line_count=len(lines), actor_id=client_id)
        )
        return ServiceOutput(payload={"rfq": self._rfq_detail(db, rfq_id, client)}, status_code=201)

    # RFQ reads

    def _get_rfq(self, db, rfq_id: int) -> dict:
        rfq = self.rfqs.get_by_id(db, rfq_id)
        if rfq is None:
            raise NotFoundError(code="rfq_not_found", message_key="rfq_not_found")
        return rfq

    def _quotes_with_lines(self, db, quotes: List[dict]) -> List[dict]:
        lines = self.quote_items.list_by_quotes(db, [int(quote["id"]) for quote in quotes])
        for quote in quotes:
            quote["lines"] = lines.get(int(quote["id"]), [])
        return quotes

    def _rfq_detail(self, db, rfq_id: int, user: dict) -> dict:
        rfq = self._get_rfq(db, rfq_id)
        role = user.get("role")
        rfq["lines"] = self.rfq_items.list_by_rfq(db, rfq_id)
        rfq["quotes"] = [
            dict(quote, **flow_meta("quote", quote["status"], role))
            for quote in self._quotes_with_lines(db, self.quotes.list_by_rfq(db, rfq_id))
        ]
        order = self.orders.get_by_rfq(db, rfq_id)
        rfq["order"] = order
        rfq.update(flow_meta("rfq", rfq["status"], role))
        return rfq

    def get_rfq_detail(self, db, user: dict, rfq_id: int) -> dict:
        rfq = self._get_rfq(db, rfq_id)
        ensure_owner(rfq["client_id"], user)
        return self._rfq_detail(db, rfq_id, user)

    def list_client_rfqs(self, db, client: dict, *, status: str | None = None) -> List[dict]:
        return self.rfqs.list_by_client(db, int(client["id"]), status=status)

    def list_all_rfqs(self, db, *, status: str | None = None, limit: int = 200) -> List[dict]:
        return self.rfqs.list_all(db, status=status, limit=limit)

    # RFQ cancellation

    def cancel_rfq(self, db, client: dict, rfq_id: int) -> dict:
        rfq = self._get_rfq(db, rfq_id)
        ensure_owner(rfq["client_id"], client)
        ensure_action_allowed("rfq", rfq["status"], "cancel_rfq")
        client_id = int(client["id"])

        with db.transaction():
            with lifecycle_step("cancel_rfq", "cancel_rfq"):
                changed = self.rfqs.transition_status(
                    db,
                    rfq_id,
                    from_statuses=source_statuses("rfq", "cancel_rfq"),
                    to_status="cancelled",
                )
            if not changed:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            with lifecycle_step("cancel_rfq", "reject_pending_quotes"):
                rejected = self.quotes.reject_siblings(
                    db, rfq_id, except_quote_id=None, from_statuses=source_statuses("quote", "reject_quote")
                )
            with lifecycle_step("cancel_rfq", "record_status_events"):
                self.status_events.add_event(
                    db,
                    entity="rfq",
                    entity_id=rfq_id,
                    from_status=rfq["status"],
                    to_status="cancelled",
                    actor_id=client_id,
                    reason="rfq_cancelled",
                )
                for quote in rejected:
                    self.status_events.add_event(
                        db,
                        entity="quote",
                        entity_id=int(quote["id"]),
                        from_status=quote["status"],
                        to_status="rejected",
                        actor_id=client_id,
                        reason="rfq_cancelled",
                    )

        rejected_refs = [{"quote_id": int(q["id"]), "supplier_id": int(q["supplier_id"])} for q in rejected]
        logger.info("rfq_cancelled", extra={"rfq_id": rfq_id, "rejected_quotes": len(rejected_refs)})
        self.event_bus.publish(
            RfqCancelled(rfq_id=rfq_id, client_id=client_id, rejected_quotes=rejected_refs, actor_id=client_id)
        )
        return self._rfq_detail(db, rfq_id, client)

    # Supplier side

    def _quotable_statuses(self) -> tuple[str, ...]:
        statuses = source_statuses("rfq", "submit_quote")
        if multi_quote_enabled():
            statuses = statuses + ("quoted",)
        return statuses

    def supplier_opportunities(self, db, supplier: dict) -> List[dict]:
        """Open RFQs this supplier can fully cover and has not quoted yet."""
        supplier_id = int(supplier["id"])
        approved_ids = self.items.approved_ids_for_supplier(db, supplier_id)
        if not approved_ids:
            return []
        candidates = self.rfqs.list_with_items_in(db, approved_ids, statuses=self._quotable_statuses())
        already_quoted = self.quotes.rfq_ids_quoted_by(db, supplier_id)
        candidates = [rfq for rfq in candidates if int(rfq["id"]) not in already_quoted]
        lines_by_rfq = self.rfq_items.list_by_rfqs(db, [int(rfq["id"]) for rfq in candidates])

        opportunities = []
        for rfq in candidates:
            lines = lines_by_rfq.get(int(rfq["id"]), [])
            if not lines:
                continue
            if not all(int(line["item_id"]) in approved_ids for line in lines):
                continue
            rfq["lines"] = lines
            rfq.update(flow_meta("rfq", rfq["status"], "supplier"))
            opportunities.append(rfq)
        return opportunities

    def _validate_quote_lines(self, rfq_lines: List[dict], submitted: List[Any]) -> List[Dict[str, Any]]:
        if not submitted:
            raise ValidationError(code="quote_lines_incomplete", message_key="quote_lines_incomplete")
        by_id = {int(line["id"]): line for line in rfq_lines}
        priced: Dict[int, Dict[str, Any]] = {}
        for line in submitted:
            rfq_item_id = _parse_id(getattr(line, "rfq_item_id", None))
            if rfq_item_id is None or rfq_item_id not in by_id:
                raise ValidationError(
                    code="rfq_item_not_found",
                    message_key="rfq_item_not_found",
                    payload={"rfq_item_id": getattr(line, "rfq_item_id", None)},
                )
            if rfq_item_id in priced:
                raise ValidationError(code="quote_lines_incomplete", message_key="quote_lines_incomplete")
            unit_price = to_unit_price(getattr(line, "unit_price", None))
            if unit_price is None:
                raise ValidationError(code="price_invalid", message_key="price_invalid", payload={"rfq_item_id": rfq_item_id})
            priced[rfq_item_id] = {
                "rfq_item_id": rfq_item_id,
                "unit_price": unit_price,
                "quantity": int(by_id[rfq_item_id]["quantity"]),
            }
        if set(priced) != set(by_id):
            raise ValidationError(
                code="quote_lines_incomplete",
                message_key="quote_lines_incomplete",
                payload={"missing_rfq_item_ids": sorted(set(by_id) - set(priced))},
            )
        return [priced[rfq_item_id] for rfq_item_id in sorted(priced)]

    def submit_quote(self, db, supplier: dict, submit_input: QuoteSubmitInput) -> ServiceOutput:
        supplier_id = int(supplier["id"])
        rfq = self._get_rfq(db, submit_input.rfq_id)
        rfq_id = int(rfq["id"])
        extra = ("quoted",) if multi_quote_enabled() else ()
        ensure_action_allowed("rfq", rfq["status"], "submit_quote", extra_statuses=extra)

        rfq_lines = self.rfq_items.list_by_rfq(db, rfq_id)
        approved_ids = self.items.approved_ids_for_supplier(db, supplier_id)
        if not rfq_lines or not all(int(line["item_id"]) in approved_ids for line in rfq_lines):
            raise AppPermissionError(code="rfq_not_covered", message_key="rfq_not_covered", http_status=403)
        if rfq_id in self.quotes.rfq_ids_quoted_by(db, supplier_id):
            raise ConflictError(code="duplicate_quote", message_key="duplicate_quote")

        lines = self._validate_quote_lines(rfq_lines, list(submit_input.lines or []))
        delivery_days = None
        if submit_input.delivery_days not in (None, ""):
            delivery_days = _parse_non_negative(submit_input.delivery_days)
            if delivery_days is None:
                raise ValidationError(code="delivery_days_invalid", message_key="delivery_days_invalid")

        total = quote_total((line["unit_price"], line["quantity"]) for line in lines)
        if submit_input.total_price is not None and round_money(submit_input.total_price) != total:
            raise ValidationError(
                code="quote_total_mismatch",
                message_key="quote_total_mismatch",
                payload={"expected_total": float(total)},
            )
        notes = (submit_input.notes or "").strip() or None
        valid_until = utc_now_text(days=int(app_setting("QUOTE_VALIDITY_DAYS", 7)))
        quotable = source_statuses("rfq", "submit_quote", extra=extra)

        with db.transaction():
            with lifecycle_step("submit_quote", "mark_rfq_quoted"):
                guarded = self.rfqs.transition_status(
                    db,
                    rfq_id,
                    from_statuses=quotable,
                    to_status=target_status("rfq", "submit_quote"),
                )
            if not guarded:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            with lifecycle_step("submit_quote", "insert_quote", conflict=ConflictError(code="duplicate_quote")):
                quote_id = self.quotes.create(
                    db,
                    rfq_id=rfq_id,
                    supplier_id=supplier_id,
                    total_price=float(total),
                    notes=notes,
                    valid_until=valid_until,
                    delivery_days=delivery_days,
                )
            with lifecycle_step("submit_quote", "insert_quote_items"):
                for line in lines:
                    self.quote_items.create(
                        db,
                        quote_id=quote_id,
                        rfq_item_id=line["rfq_item_id"],
                        unit_price=float(line["unit_price"]),
                    )
            with lifecycle_step("submit_quote", "record_status_events"):
                if rfq["status"] != "quoted":
                    self.status_events.add_event(
                        db,
                        entity="rfq",
                        entity_id=rfq_id,
                        from_status=rfq["status"],
                        to_status="quoted",
                        actor_id=supplier_id,
                        reason="quote_submitted",
                    )
                self.status_events.add_event(
                    db,
                    entity="quote",
                    entity_id=quote_id,
                    from_status=None,
                    to_status="pending",
                    actor_id=supplier_id,
                    reason="quote_submitted",
                )

        logger.info(
            "quote_submitted",
            extra={"quote_id": quote_id, "rfq_id": rfq_id, "supplier_id": supplier_id, "total_price": float(total)},
        )
        self.event_bus.publish(
            QuoteSubmitted(
                quote_id=quote_id,
                rfq_id=rfq_id,
                rfq_title=rfq["title"],
                client_id=int(rfq["client_id"]),
                supplier_id=supplier_id,
                total_price=float(total),
                actor_id=supplier_id,
            )
        )
        quote = self._quotes_with_lines(db, [self.quotes.get_by_id(db, quote_id)])[0]
        return ServiceOutput(payload={"quote": quote}, status_code=201)

    def list_supplier_quotes(self, db, supplier: dict, *, status: str | None = None) -> List[dict]:
        return self._quotes_with_lines(db, self.quotes.list_by_supplier(db, int(supplier["id"]), status=status))

    # Acceptance

    def accept_quote(self, db, client: dict, accept_input: QuoteAcceptInput) -> ServiceOutput:
        quote = self.quotes.get_by_id(db, accept_input.quote_id)
        if quote is None:
            raise NotFoundError(code="quote_not_found", message_key="quote_not_found")
        rfq = self._get_rfq(db, int(quote["rfq_id"]))
        if int(rfq["client_id"]) != int(client["id"]):
            raise AppPermissionError(code="permission_denied", message_key="permission_denied")
        ensure_action_allowed("quote", quote["status"], "accept_quote")
        valid_until = parse_timestamp(quote.get("valid_until"))
        if valid_until is not None and valid_until < utc_now():
            raise ConflictError(code="quote_expired", message_key="quote_expired")
        ensure_action_allowed("rfq", rfq["status"], "accept_quote")
        if self.orders.get_by_rfq(db, int(rfq["id"])) is not None:
            raise ConflictError(code="order_already_exists", message_key="order_already_exists")

        quote_id = int(quote["id"])
        rfq_id = int(rfq["id"])
        client_id = int(client["id"])
        supplier_id = int(quote["supplier_id"])
        order_number = order_number_for(rfq_id)
        delivery_address = (accept_input.delivery_address or "").strip() or None
        operation = "accept_quote"

        with db.transaction():
            with lifecycle_step(operation, "accept_quote"):
                accepted = self.quotes.transition_status(
                    db,
                    quote_id,
                    from_statuses=source_statuses("quote", "accept_quote"),
                    to_status="accepted",
                )
            if not accepted:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            with lifecycle_step(operation, "reject_sibling_quotes"):
                rejected = self.quotes.reject_siblings(
                    db, rfq_id, except_quote_id=quote_id, from_statuses=source_statuses("quote", "reject_sibling")
                )
            with lifecycle_step(operation, "close_rfq"):
                closed = self.rfqs.transition_status(
                    db,
                    rfq_id,
                    from_statuses=source_statuses("rfq", "accept_quote"),
                    to_status="closed",
                )
            if not closed:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            with lifecycle_step(operation, "create_order", conflict=ConflictError(code="order_already_exists")):
                order_id = self.orders.create(
                    db,
                    order_number=order_number,
                    rfq_id=rfq_id,
                    quote_id=quote_id,
                    client_id=client_id,
                    supplier_id=supplier_id,
                    total_amount=float(quote["total_price"]),
                    delivery_address=delivery_address,
                )
            with lifecycle_step(operation, "record_status_events"):
                self.status_events.add_event(
                    db,
                    entity="quote",
                    entity_id=quote_id,
                    from_status="pending",
                    to_status="accepted",
                    actor_id=client_id,
                    reason="quote_accepted",
                )
                for sibling in rejected:
                    self.status_events.add_event(
                        db,
                        entity="quote",
                        entity_id=int(sibling["id"]),
                        from_status=sibling["status"],
                        to_status="rejected",
                        actor_id=client_id,
                        reason="other_quote_accepted",
                    )
                self.status_events.add_event(
                    db,
                    entity="rfq",
                    entity_id=rfq_id,
                    from_status=rfq["status"],
                    to_status="closed",
                    actor_id=client_id,
                    reason="quote_accepted",
                )
                self.status_events.add_event(
                    db,
                    entity="order",
                    entity_id=order_id,
                    from_status=None,
                    to_status="pending",
                    actor_id=client_id,
                    reason="order_created",
                )

        rejected_refs = [{"quote_id": int(q["id"]), "supplier_id": int(q["supplier_id"])} for q in rejected]
        logger.info(
            "quote_accepted",
            extra={"quote_id": quote_id, "rfq_id": rfq_id, "order_id": order_id, "rejected_quotes": len(rejected_refs)},
        )
        self.event_bus.publish(
            QuoteAccepted(
                quote_id=quote_id,
                rfq_id=rfq_id,
                order_id=order_id,
                order_number=order_number,
                client_id=client_id,
                supplier_id=supplier_id,
                rejected_quotes=rejected_refs,
                actor_id=client_id,
            )
        )
        return ServiceOutput(
            payload={
                "order": self.orders.get_by_id(db, order_id),
                "quote": self.quotes.get_by_id(db, quote_id),
                "rfq": self.rfqs.get_by_id(db, rfq_id),
            },
            status_code=201,
        )
