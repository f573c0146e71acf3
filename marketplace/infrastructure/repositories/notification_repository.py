from __future__ import annotations

from marketplace.infrastructure.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        user_id: int,
        kind: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO notifications (user_id, type, title, message, link, is_read)
            VALUES (?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (user_id, kind, title, message, link, False),
        )
        return self.inserted_id(cursor)

    def list_for_user(self, db, user_id: int, *, unread_only: bool = False, limit: int = 100) -> list[dict]:
        params: list = [user_id]
        unread_filter = ""
        if unread_only:
            unread_filter = "AND is_read = ?"
            params.append(False)
        rows = db.execute(
            f"""
            SELECT id, user_id, type, title, message, link, is_read, created_at
            FROM notifications
            WHERE user_id = ? {unread_filter}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        notifications = self.rows_to_dicts(rows)
        for notification in notifications:
            notification["is_read"] = bool(notification["is_read"])
        return notifications

    def mark_read(self, db, user_id: int, notification_id: int) -> bool:
        cursor = db.execute(
            "UPDATE notifications SET is_read = ? WHERE id = ? AND user_id = ?",
            (True, notification_id, user_id),
        )
        return cursor.rowcount == 1

    def mark_all_read(self, db, user_id: int) -> int:
        cursor = db.execute(
            "UPDATE notifications SET is_read = ? WHERE user_id = ? AND is_read = ?",
            (True, user_id, False),
        )
        return int(cursor.rowcount or 0)

    def unread_count(self, db, user_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM notifications WHERE user_id = ? AND is_read = ?",
            (user_id, False),
        ).fetchone()
        return int(row["total"])
