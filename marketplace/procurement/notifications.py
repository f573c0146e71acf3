from __future__ import annotations

from marketplace.core.event_bus import (
    EventBus,
    ItemReviewed,
    OrderStatusChanged,
    QuoteAccepted,
    QuoteSubmitted,
    RfqCancelled,
    UserStatusChanged,
)
from marketplace.db import get_db
from marketplace.infrastructure.repositories import NotificationRepository
from marketplace.ui_strings import notification_text, status_label


_NOTIFICATIONS = NotificationRepository()


def _notify(user_id: int, kind: str, link: str | None = None, **values: object) -> None:
    text = notification_text(kind, **values)
    db = get_db()
    with db.transaction():
        _NOTIFICATIONS.create(
            db,
            user_id=int(user_id),
            kind=kind,
            title=text["title"],
            message=text["message"],
            link=link,
        )


def on_quote_submitted(event: QuoteSubmitted) -> None:
    _notify(event.client_id, "quote_received", link=f"/api/client/rfqs/{event.rfq_id}", title=event.rfq_title)


def on_quote_accepted(event: QuoteAccepted) -> None:
    _notify(
        event.supplier_id,
        "quote_accepted",
        link=f"/api/supplier/orders/{event.order_id}",
        order_number=event.order_number,
    )
    for rejected in event.rejected_quotes:
        _notify(rejected["supplier_id"], "quote_rejected", rfq_id=event.rfq_id)


def on_rfq_cancelled(event: RfqCancelled) -> None:
    for rejected in event.rejected_quotes:
        _notify(rejected["supplier_id"], "rfq_cancelled", rfq_id=event.rfq_id)


def on_order_status_changed(event: OrderStatusChanged) -> None:
    status = status_label("order", event.to_status).lower()
    for party, user_id in (("client", event.client_id), ("supplier", event.supplier_id)):
        if event.actor_id is not None and int(user_id) == int(event.actor_id):
            continue
        _notify(
            user_id,
            "order_status",
            link=f"/api/{party}/orders/{event.order_id}",
            order_number=event.order_number,
            status=status,
        )


def on_item_reviewed(event: ItemReviewed) -> None:
    _notify(event.supplier_id, "item_reviewed", name=event.name, status=event.status)


def on_user_status_changed(event: UserStatusChanged) -> None:
    _notify(event.user_id, "account_status", status=status_label("user", event.to_status).lower())


def register_notification_handlers(bus: EventBus) -> None:
    bus.subscribe(QuoteSubmitted, on_quote_submitted)
    bus.subscribe(QuoteAccepted, on_quote_accepted)
    bus.subscribe(RfqCancelled, on_rfq_cancelled)
    bus.subscribe(OrderStatusChanged, on_order_status_changed)
    bus.subscribe(ItemReviewed, on_item_reviewed)
    bus.subscribe(UserStatusChanged, on_user_status_changed)
