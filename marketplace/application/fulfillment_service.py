from __future__ import annotations

import logging
from typing import Any, List

from marketplace.application.lifecycle import lifecycle_step
from marketplace.core.event_bus import EventBus, OrderStatusChanged, get_event_bus
from marketplace.domain.contracts import OrderTransitionInput, RatingInput
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.errors import ConflictError, NotFoundError, ValidationError
from marketplace.infrastructure.repositories import (
    OrderRepository,
    ProfileRepository,
    RatingRepository,
    StatusEventRepository,
)
from marketplace.procurement.flow_policy import (
    TRANSITIONS,
    ensure_action_allowed,
    flow_meta,
    source_statuses,
    target_status,
)


logger = logging.getLogger("marketplace")

ORDER_ACTIONS = tuple(TRANSITIONS["order"])


def _permission_denied() -> AppPermissionError:
    return AppPermissionError(code="permission_denied", message_key="permission_denied")


class FulfillmentService:
    def __init__(
        self,
        orders: OrderRepository | None = None,
        profiles: ProfileRepository | None = None,
        ratings: RatingRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.orders = orders or OrderRepository()
        self.profiles = profiles or ProfileRepository()
        self.ratings = ratings or RatingRepository()
        self.status_events = status_events or StatusEventRepository()
        self.event_bus = event_bus or get_event_bus()

    def _get_order(self, db, order_id: int) -> dict:
        order = self.orders.get_by_id(db, order_id)
        if order is None:
            raise NotFoundError(code="order_not_found", message_key="order_not_found")
        return order

    @staticmethod
    def _party(order: dict, user: dict) -> str | None:
        user_id = int(user["id"])
        if user.get("role") == "supplier" and int(order["supplier_id"]) == user_id:
            return "supplier"
        if user.get("role") == "client" and int(order["client_id"]) == user_id:
            return "client"
        return None

    def _visible_order(self, db, user: dict, order_id: int) -> dict:
        order = self._get_order(db, order_id)
        if user.get("role") != "admin" and self._party(order, user) is None:
            raise _permission_denied()
        return order

    def list_orders(self, db, user: dict, *, status: str | None = None, limit: int = 200) -> List[dict]:
        role = user.get("role")
        if role == "admin":
            return self.orders.list(db, status=status, limit=limit)
        return self.orders.list(db, party=role, user_id=int(user["id"]), status=status, limit=limit)

    def get_order(self, db, user: dict, order_id: int) -> dict:
        order = self._visible_order(db, user, order_id)
        order["history"] = self.status_events.list_for_entity(db, entity="order", entity_id=order_id)
        order["rating"] = self.ratings.get_by_order(db, order_id)
        order.update(flow_meta("order", order["status"], self._party(order, user)))
        return order

    def transition(self, db, user: dict, transition_input: OrderTransitionInput) -> dict:
        action = str(transition_input.action or "").strip().lower()
        if action not in ORDER_ACTIONS:
            raise ValidationError(code="action_invalid", message_key="action_invalid")
        order = self._get_order(db, transition_input.order_id)
        party = self._party(order, user)
        if party is None or party not in TRANSITIONS["order"][action]["actors"]:
            raise _permission_denied()
        ensure_action_allowed("order", order["status"], action)

        tracking_number = None
        if action == "ship":
            tracking_number = (transition_input.tracking_number or "").strip()
            if not tracking_number:
                raise ValidationError(code="tracking_number_required", message_key="tracking_number_required")
        cancel_reason = None
        if action == "cancel":
            cancel_reason = (transition_input.reason or "").strip() or None

        order_id = int(order["id"])
        user_id = int(user["id"])
        from_status = order["status"]
        to_status = target_status("order", action)

        with db.transaction():
            with lifecycle_step(f"order_{action}", "update_order_status"):
                changed = self.orders.transition_status(
                    db,
                    order_id,
                    from_statuses=source_statuses("order", action),
                    to_status=to_status,
                    tracking_number=tracking_number,
                    cancel_reason=cancel_reason,
                )
            if not changed:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            if to_status == "completed":
                with lifecycle_step(f"order_{action}", "increment_total_orders"):
                    self.profiles.increment_total_orders(db, (int(order["supplier_id"]), int(order["client_id"])))
            with lifecycle_step(f"order_{action}", "record_status_event"):
                self.status_events.add_event(
                    db,
                    entity="order",
                    entity_id=order_id,
                    from_status=from_status,
                    to_status=to_status,
                    actor_id=user_id,
                    reason=cancel_reason or f"order_{action}",
                )

        logger.info(
            "order_status_changed",
            extra={"order_id": order_id, "from_status": from_status, "to_status": to_status, "actor_id": user_id},
        )
        self.event_bus.publish(
            OrderStatusChanged(
                order_id=order_id,
                order_number=order["order_number"],
                client_id=int(order["client_id"]),
                supplier_id=int(order["supplier_id"]),
                from_status=from_status,
                to_status=to_status,
                actor_id=user_id,
            )
        )
        return self.get_order(db, user, order_id)

    def rate_order(self, db, client: dict, rating_input: RatingInput) -> dict:
        order = self._get_order(db, rating_input.order_id)
        if self._party(order, client) != "client":
            raise _permission_denied()
        if order["status"] != "completed":
            raise ConflictError(code="order_not_completed", message_key="order_not_completed")
        score = _parse_score(rating_input.score)
        if score is None:
            raise ValidationError(code="rating_invalid", message_key="rating_invalid")
        if self.ratings.get_by_order(db, int(order["id"])) is not None:
            raise ConflictError(code="rating_exists", message_key="rating_exists")

        supplier_id = int(order["supplier_id"])
        with db.transaction():
            with lifecycle_step("rate_order", "insert_rating", conflict=ConflictError(code="rating_exists")):
                self.ratings.create(
                    db,
                    order_id=int(order["id"]),
                    supplier_id=supplier_id,
                    client_id=int(client["id"]),
                    score=score,
                    review=(rating_input.review or "").strip() or None,
                )
            with lifecycle_step("rate_order", "update_supplier_rating"):
                self.profiles.set_rating(db, supplier_id, self.ratings.average_for_supplier(db, supplier_id))

        logger.info("order_rated", extra={"order_id": order["id"], "supplier_id": supplier_id, "score": score})
        return self.ratings.get_by_order(db, int(order["id"]))


def _parse_score(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        score = int(value)
    except (TypeError, ValueError):
        return None
    return score if 1 <= score <= 5 else None
