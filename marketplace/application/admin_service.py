from __future__ import annotations

import logging
from typing import List

from marketplace.application.lifecycle import lifecycle_step
from marketplace.core.event_bus import EventBus, ItemReviewed, UserStatusChanged, get_event_bus
from marketplace.errors import PermissionError as AppPermissionError
from marketplace.errors import ConflictError, NotFoundError, ValidationError
from marketplace.infrastructure.repositories import ItemRepository, ProfileRepository, StatusEventRepository
from marketplace.procurement.flow_policy import ensure_action_allowed, flow_meta, source_statuses
from marketplace.procurement.reconciliation import expire_overdue, find_lifecycle_anomalies


logger = logging.getLogger("marketplace")

# target status -> flow action
USER_STATUS_ACTIONS = {"approved": "approve", "rejected": "reject", "suspended": "suspend"}
ITEM_DECISIONS = {"approve": "approved", "reject": "rejected"}


class AdminService:
    def __init__(
        self,
        profiles: ProfileRepository | None = None,
        items: ItemRepository | None = None,
        status_events: StatusEventRepository | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.profiles = profiles or ProfileRepository()
        self.items = items or ItemRepository()
        self.status_events = status_events or StatusEventRepository()
        self.event_bus = event_bus or get_event_bus()

    def list_users(self, db, *, role: str | None = None, status: str | None = None) -> List[dict]:
        users = self.profiles.list(db, role=role, status=status)
        for user in users:
            user.update(flow_meta("user", user["status"], "admin"))
        return users

    def set_user_status(self, db, admin: dict, user_id: int, status: str | None) -> dict:
        target = str(status or "").strip().lower()
        action = USER_STATUS_ACTIONS.get(target)
        if action is None:
            raise ValidationError(code="status_invalid", message_key="status_invalid")
        user = self.profiles.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError(code="user_not_found", message_key="user_not_found")
        if user["role"] == "admin":
            raise AppPermissionError(code="permission_denied", message_key="permission_denied")
        ensure_action_allowed("user", user["status"], action)

        admin_id = int(admin["id"])
        with db.transaction():
            with lifecycle_step("set_user_status", "update_user_status"):
                changed = self.profiles.transition_status(
                    db,
                    user_id,
                    from_statuses=source_statuses("user", action),
                    to_status=target,
                    reviewed_by=admin_id,
                )
            if not changed:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            with lifecycle_step("set_user_status", "record_status_event"):
                self.status_events.add_event(
                    db,
                    entity="user",
                    entity_id=user_id,
                    from_status=user["status"],
                    to_status=target,
                    actor_id=admin_id,
                    reason=f"user_{action}",
                )

        logger.info("user_status_changed", extra={"user_id": user_id, "from_status": user["status"], "to_status": target})
        self.event_bus.publish(
            UserStatusChanged(user_id=user_id, from_status=user["status"], to_status=target, actor_id=admin_id)
        )
        return self.profiles.get_by_id(db, user_id)

    def list_items(self, db, *, status: str | None = None) -> List[dict]:
        items = self.items.list_by_status(db, status=status)
        for item in items:
            item.update(flow_meta("item", item["status"], "admin"))
        return items

    def review_item(self, db, admin: dict, item_id: int, decision: str | None) -> dict:
        action = str(decision or "").strip().lower()
        target = ITEM_DECISIONS.get(action)
        if target is None:
            raise ValidationError(code="action_invalid", message_key="action_invalid")
        item = self.items.get_by_id(db, item_id)
        if item is None:
            raise NotFoundError(code="item_not_found", message_key="item_not_found")
        ensure_action_allowed("item", item["status"], action)

        admin_id = int(admin["id"])
        with db.transaction():
            with lifecycle_step("review_item", "update_item_status"):
                changed = self.items.transition_status(
                    db,
                    item_id,
                    from_statuses=source_statuses("item", action),
                    to_status=target,
                    reviewed_by=admin_id,
                )
            if not changed:
                raise ConflictError(code="status_conflict", message_key="status_conflict")
            with lifecycle_step("review_item", "record_status_event"):
                self.status_events.add_event(
                    db,
                    entity="item",
                    entity_id=item_id,
                    from_status=item["status"],
                    to_status=target,
                    actor_id=admin_id,
                    reason=f"item_{action}",
                )

        logger.info("item_reviewed", extra={"item_id": item_id, "status": target})
        self.event_bus.publish(
            ItemReviewed(
                item_id=item_id,
                supplier_id=int(item["supplier_id"]),
                name=item["name"],
                status=target,
                actor_id=admin_id,
            )
        )
        return self.items.get_by_id(db, item_id)

    def reconciliation_report(self, db) -> dict:
        return find_lifecycle_anomalies(db)

    def expire_overdue(self, db) -> dict:
        return expire_overdue(db)
