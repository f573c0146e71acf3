from __future__ import annotations

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories.base import BaseRepository


_ORDER_COLUMNS = """
    o.*, r.title AS rfq_title,
    c.display_name AS client_name, s.display_name AS supplier_name
"""

_ORDER_JOINS = """
    JOIN rfqs r ON r.id = o.rfq_id
    JOIN user_profiles c ON c.id = o.client_id
    JOIN user_profiles s ON s.id = o.supplier_id
"""

_PARTY_COLUMNS = {"client": "o.client_id", "supplier": "o.supplier_id"}


class OrderRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        order_number: str,
        rfq_id: int,
        quote_id: int,
        client_id: int,
        supplier_id: int,
        total_amount: float,
        delivery_address: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO orders (
                order_number, rfq_id, quote_id, client_id, supplier_id, total_amount, status, delivery_address
            )
            VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)
            RETURNING id
            """,
            (order_number, rfq_id, quote_id, client_id, supplier_id, total_amount, delivery_address),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, order_id: int) -> dict | None:
        row = db.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders o {_ORDER_JOINS} WHERE o.id = ? LIMIT 1",
            (order_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def get_by_rfq(self, db, rfq_id: int) -> dict | None:
        row = db.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders o {_ORDER_JOINS} WHERE o.rfq_id = ? LIMIT 1",
            (rfq_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def list(
        self,
        db,
        *,
        party: str | None = None,
        user_id: int | None = None,
        status: str | None = None,
        limit: int = 200,
    ) -> list[dict]:
        clauses = []
        params: list = []
        if party is not None:
            clauses.append(f"{_PARTY_COLUMNS[party]} = ?")
            params.append(user_id)
        if status:
            clauses.append("o.status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT {_ORDER_COLUMNS}
            FROM orders o
            {_ORDER_JOINS}
            {where}
            ORDER BY o.created_at DESC, o.id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def transition_status(
        self,
        db,
        order_id: int,
        *,
        from_statuses: tuple[str, ...],
        to_status: str,
        tracking_number: str | None = None,
        cancel_reason: str | None = None,
    ) -> bool:
        status_sql, status_params = self.status_clause("status", from_statuses)
        now = utc_now_text()
        assignments = ["status = ?", "updated_at = ?"]
        params: list = [to_status, now]
        if tracking_number is not None:
            assignments.append("tracking_number = ?")
            params.append(tracking_number)
        if cancel_reason is not None:
            assignments.append("cancel_reason = ?")
            params.append(cancel_reason)
        if to_status == "completed":
            assignments.append("completed_at = ?")
            params.append(now)
        cursor = db.execute(
            f"UPDATE orders SET {', '.join(assignments)} WHERE id = ? AND {status_sql}",
            (*params, order_id, *status_params),
        )
        return cursor.rowcount == 1

    def count_by_status(self, db, *, party: str | None = None, user_id: int | None = None) -> dict[str, int]:
        params: tuple = ()
        where = ""
        if party is not None:
            where = f"WHERE {_PARTY_COLUMNS[party]} = ?"
            params = (user_id,)
        rows = db.execute(
            f"SELECT o.status, COUNT(*) AS total FROM orders o {where} GROUP BY o.status",
            params,
        ).fetchall()
        return {row["status"]: int(row["total"]) for row in rows}

    def completed_revenue(self, db) -> float:
        row = db.execute(
            "SELECT COALESCE(SUM(total_amount), 0) AS revenue FROM orders WHERE status = 'completed'"
        ).fetchone()
        return float(self.row_to_dict(row)["revenue"] or 0)
