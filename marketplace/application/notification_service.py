from __future__ import annotations

from typing import List

from marketplace.errors import NotFoundError
from marketplace.infrastructure.repositories import NotificationRepository


class NotificationService:
    def __init__(self, repository: NotificationRepository | None = None) -> None:
        self.repository = repository or NotificationRepository()

    def list_notifications(self, db, user: dict, *, unread_only: bool = False) -> dict:
        user_id = int(user["id"])
        items: List[dict] = self.repository.list_for_user(db, user_id, unread_only=unread_only)
        return {"items": items, "unread": self.repository.unread_count(db, user_id)}

    def mark_read(self, db, user: dict, notification_id: int) -> None:
        with db.transaction():
            found = self.repository.mark_read(db, int(user["id"]), notification_id)
        if not found:
            raise NotFoundError(code="notification_not_found", message_key="notification_not_found")

    def mark_all_read(self, db, user: dict) -> int:
        with db.transaction():
            return self.repository.mark_all_read(db, int(user["id"]))
