from __future__ import annotations

from marketplace.infrastructure.repositories.base import BaseRepository


class QuoteItemRepository(BaseRepository):
    def create(self, db, *, quote_id: int, rfq_item_id: int, unit_price: float) -> int:
        cursor = db.execute(
            """
            INSERT INTO quote_items (quote_id, rfq_item_id, unit_price)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            (quote_id, rfq_item_id, unit_price),
        )
        return self.inserted_id(cursor)

    def list_by_quotes(self, db, quote_ids: list[int]) -> dict[int, list[dict]]:
        if not quote_ids:
            return {}
        rows = db.execute(
            f"""
            SELECT qi.id, qi.quote_id, qi.rfq_item_id, qi.unit_price,
                   ri.item_id, ri.quantity, i.name AS item_name
            FROM quote_items qi
            JOIN rfq_items ri ON ri.id = qi.rfq_item_id
            JOIN items i ON i.id = ri.item_id
            WHERE qi.quote_id IN ({self.placeholders(quote_ids)})
            ORDER BY qi.quote_id, qi.rfq_item_id
            """,
            tuple(quote_ids),
        ).fetchall()
        grouped: dict[int, list[dict]] = {}
        for line in self.rows_to_dicts(rows):
            grouped.setdefault(int(line["quote_id"]), []).append(line)
        return grouped
