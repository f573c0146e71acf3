from __future__ import annotations

from marketplace.infrastructure.repositories.base import BaseRepository


class RatingRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        order_id: int,
        supplier_id: int,
        client_id: int,
        score: int,
        review: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO ratings (order_id, supplier_id, client_id, score, review)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (order_id, supplier_id, client_id, score, review),
        )
        return self.inserted_id(cursor)

    def get_by_order(self, db, order_id: int) -> dict | None:
        row = db.execute("SELECT * FROM ratings WHERE order_id = ? LIMIT 1", (order_id,)).fetchone()
        return self.row_to_dict(row)

    def average_for_supplier(self, db, supplier_id: int) -> float:
        row = db.execute(
            "SELECT AVG(score) AS average FROM ratings WHERE supplier_id = ?",
            (supplier_id,),
        ).fetchone()
        average = self.row_to_dict(row)["average"]
        return round(float(average or 0), 2)
