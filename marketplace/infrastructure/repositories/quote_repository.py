from __future__ import annotations

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories.base import BaseRepository


class QuoteRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        rfq_id: int,
        supplier_id: int,
        total_price: float,
        notes: str | None,
        valid_until: str | None,
        delivery_days: int | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO quotes (rfq_id, supplier_id, total_price, notes, status, valid_until, delivery_days)
            VALUES (?, ?, ?, ?, 'pending', ?, ?)
            RETURNING id
            """,
            (rfq_id, supplier_id, total_price, notes, valid_until, delivery_days),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, quote_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT q.*, p.display_name AS supplier_name
            FROM quotes q
            JOIN user_profiles p ON p.id = q.supplier_id
            WHERE q.id = ?
            LIMIT 1
            """,
            (quote_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def list_by_rfq(self, db, rfq_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT q.*, p.display_name AS supplier_name, p.rating AS supplier_rating
            FROM quotes q
            JOIN user_profiles p ON p.id = q.supplier_id
            WHERE q.rfq_id = ?
            ORDER BY q.total_price ASC, q.id ASC
            """,
            (rfq_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_supplier(self, db, supplier_id: int, *, status: str | None = None) -> list[dict]:
        params: list = [supplier_id]
        status_filter = ""
        if status:
            status_filter = "AND q.status = ?"
            params.append(status)
        rows = db.execute(
            f"""
            SELECT q.*, r.title AS rfq_title, r.status AS rfq_status
            FROM quotes q
            JOIN rfqs r ON r.id = q.rfq_id
            WHERE q.supplier_id = ? {status_filter}
            ORDER BY q.created_at DESC, q.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def rfq_ids_quoted_by(self, db, supplier_id: int) -> set[int]:
        rows = db.execute("SELECT rfq_id FROM quotes WHERE supplier_id = ?", (supplier_id,)).fetchall()
        return {int(row["rfq_id"]) for row in rows}

    def transition_status(
        self,
        db,
        quote_id: int,
        *,
        from_statuses: tuple[str, ...],
        to_status: str,
    ) -> bool:
        status_sql, status_params = self.status_clause("status", from_statuses)
        cursor = db.execute(
            f"UPDATE quotes SET status = ?, updated_at = ? WHERE id = ? AND {status_sql}",
            (to_status, utc_now_text(), quote_id, *status_params),
        )
        return cursor.rowcount == 1

    def reject_siblings(
        self,
        db,
        rfq_id: int,
        *,
        except_quote_id: int | None,
        from_statuses: tuple[str, ...],
    ) -> list[dict]:
        """Reject the RFQ's other quotes still in ``from_statuses``; returns them with their prior status."""
        status_sql, status_params = self.status_clause("status", from_statuses)
        params: list = [rfq_id, *status_params]
        exclusion = ""
        if except_quote_id is not None:
            exclusion = "AND id <> ?"
            params.append(except_quote_id)
        rows = db.execute(
            f"SELECT id, supplier_id, status FROM quotes WHERE rfq_id = ? AND {status_sql} {exclusion} ORDER BY id",
            tuple(params),
        ).fetchall()
        siblings = self.rows_to_dicts(rows)
        if siblings:
            ids = [int(sibling["id"]) for sibling in siblings]
            db.execute(
                f"""
                UPDATE quotes
                SET status = 'rejected', updated_at = ?
                WHERE {status_sql} AND id IN ({self.placeholders(ids)})
                """,
                (utc_now_text(), *status_params, *ids),
            )
        return siblings

    def list_overdue_pending(self, db, *, now: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, rfq_id, supplier_id, valid_until
            FROM quotes
            WHERE status = 'pending' AND valid_until IS NOT NULL AND valid_until < ?
            ORDER BY id
            """,
            (now,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_accepted_without_order(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT q.id, q.rfq_id, q.supplier_id, q.updated_at
            FROM quotes q
            WHERE q.status = 'accepted'
              AND NOT EXISTS (SELECT 1 FROM orders o WHERE o.quote_id = q.id)
            ORDER BY q.id
            """
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_without_lines(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT q.id, q.rfq_id, q.supplier_id, q.status
            FROM quotes q
            WHERE NOT EXISTS (SELECT 1 FROM quote_items qi WHERE qi.quote_id = q.id)
            ORDER BY q.id
            """
        ).fetchall()
        return self.rows_to_dicts(rows)
