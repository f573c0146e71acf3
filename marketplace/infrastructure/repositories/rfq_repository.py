from __future__ import annotations

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories.base import BaseRepository


_RFQ_SUMMARY = """
    r.id, r.client_id, r.title, r.description, r.status, r.deadline, r.created_at, r.updated_at,
    (SELECT COUNT(*) FROM rfq_items ri WHERE ri.rfq_id = r.id) AS line_count,
    (SELECT COUNT(*) FROM quotes q WHERE q.rfq_id = r.id) AS quote_count
"""


class RfqRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        client_id: int,
        title: str,
        description: str | None,
        deadline: str | None,
        status: str = "open",
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO rfqs (client_id, title, description, status, deadline)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (client_id, title, description, status, deadline),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, rfq_id: int) -> dict | None:
        row = db.execute(
            f"SELECT {_RFQ_SUMMARY} FROM rfqs r WHERE r.id = ? LIMIT 1",
            (rfq_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def list_by_client(self, db, client_id: int, *, status: str | None = None) -> list[dict]:
        params: list = [client_id]
        status_filter = ""
        if status:
            status_filter = "AND r.status = ?"
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_RFQ_SUMMARY}
            FROM rfqs r
            WHERE r.client_id = ? {status_filter}
            ORDER BY r.created_at DESC, r.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_all(self, db, *, status: str | None = None, limit: int = 200) -> list[dict]:
        params: list = []
        status_filter = ""
        if status:
            status_filter = "WHERE r.status = ?"
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_RFQ_SUMMARY}, p.display_name AS client_name
            FROM rfqs r
            JOIN user_profiles p ON p.id = r.client_id
            {status_filter}
            ORDER BY r.created_at DESC, r.id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_with_items_in(self, db, item_ids: set[int], *, statuses: tuple[str, ...]) -> list[dict]:
        """RFQs in ``statuses`` that request at least one of ``item_ids``, newest first."""
        if not item_ids:
            return []
        ids = sorted(item_ids)
        status_sql, status_params = self.status_clause("r.status", statuses)
        rows = db.execute(
            f"""
            SELECT {_RFQ_SUMMARY}
            FROM rfqs r
            WHERE {status_sql}
              AND EXISTS (
                SELECT 1 FROM rfq_items ri
                WHERE ri.rfq_id = r.id AND ri.item_id IN ({self.placeholders(ids)})
              )
            ORDER BY r.created_at DESC, r.id DESC
            """,
            (*status_params, *ids),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def transition_status(
        self,
        db,
        rfq_id: int,
        *,
        from_statuses: tuple[str, ...],
        to_status: str,
    ) -> bool:
        status_sql, status_params = self.status_clause("status", from_statuses)
        cursor = db.execute(
            f"UPDATE rfqs SET status = ?, updated_at = ? WHERE id = ? AND {status_sql}",
            (to_status, utc_now_text(), rfq_id, *status_params),
        )
        return cursor.rowcount == 1

    def list_overdue(self, db, *, now: str, statuses: tuple[str, ...]) -> list[dict]:
        status_sql, status_params = self.status_clause("status", statuses)
        rows = db.execute(
            f"""
            SELECT id, client_id, title, status, deadline
            FROM rfqs
            WHERE {status_sql} AND deadline IS NOT NULL AND deadline < ?
            ORDER BY id
            """,
            (*status_params, now),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_without_items(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT r.id, r.client_id, r.title, r.status, r.created_at
            FROM rfqs r
            WHERE NOT EXISTS (SELECT 1 FROM rfq_items ri WHERE ri.rfq_id = r.id)
            ORDER BY r.id
            """
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_closed_without_order(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT r.id, r.client_id, r.title, r.status, r.updated_at
            FROM rfqs r
            WHERE r.status = 'closed'
              AND NOT EXISTS (SELECT 1 FROM orders o WHERE o.rfq_id = r.id)
            ORDER BY r.id
            """
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_by_status(self, db, *, client_id: int | None = None) -> dict[str, int]:
        params: tuple = ()
        where = ""
        if client_id is not None:
            where = "WHERE client_id = ?"
            params = (client_id,)
        rows = db.execute(
            f"SELECT status, COUNT(*) AS total FROM rfqs {where} GROUP BY status",
            params,
        ).fetchall()
        return {row["status"]: int(row["total"]) for row in rows}
