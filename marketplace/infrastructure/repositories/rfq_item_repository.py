from __future__ import annotations

from marketplace.infrastructure.repositories.base import BaseRepository


class RfqItemRepository(BaseRepository):
    def create(self, db, *, rfq_id: int, item_id: int, quantity: int, notes: str | None = None) -> int:
        cursor = db.execute(
            """
            INSERT INTO rfq_items (rfq_id, item_id, quantity, notes)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (rfq_id, item_id, quantity, notes),
        )
        return self.inserted_id(cursor)

    def list_by_rfq(self, db, rfq_id: int) -> list[dict]:
        return self.list_by_rfqs(db, [rfq_id]).get(rfq_id, [])

    def list_by_rfqs(self, db, rfq_ids: list[int]) -> dict[int, list[dict]]:
        if not rfq_ids:
            return {}
        rows = db.execute(
            f"""
            SELECT ri.id, ri.rfq_id, ri.item_id, ri.quantity, ri.notes,
                   i.name AS item_name, i.unit AS item_unit, i.supplier_id, i.category_id
            FROM rfq_items ri
            JOIN items i ON i.id = ri.item_id
            WHERE ri.rfq_id IN ({self.placeholders(rfq_ids)})
            ORDER BY ri.rfq_id, ri.id
            """,
            tuple(rfq_ids),
        ).fetchall()
        grouped: dict[int, list[dict]] = {}
        for line in self.rows_to_dicts(rows):
            grouped.setdefault(int(line["rfq_id"]), []).append(line)
        return grouped
