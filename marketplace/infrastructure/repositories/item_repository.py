from __future__ import annotations

import json

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories.base import BaseRepository


_ITEM_COLUMNS = """
    i.id, i.supplier_id, i.category_id, i.subcategory_id, i.name, i.description, i.unit,
    i.cost_price, i.image_urls, i.status, i.approved_by, i.approved_at, i.created_at, i.updated_at,
    c.name AS category_name
"""


class ItemRepository(BaseRepository):
    @classmethod
    def row_to_dict(cls, row) -> dict | None:
        item = super().row_to_dict(row)
        if item is not None and "image_urls" in item:
            try:
                item["image_urls"] = json.loads(item["image_urls"] or "[]")
            except (TypeError, ValueError):
                item["image_urls"] = []
        return item

    def create(
        self,
        db,
        *,
        supplier_id: int,
        category_id: int,
        subcategory_id: int | None,
        name: str,
        description: str | None,
        unit: str,
        cost_price: float,
        image_urls: list[str],
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO items (
                supplier_id, category_id, subcategory_id, name, description, unit, cost_price, image_urls, status
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending')
            RETURNING id
            """,
            (
                supplier_id,
                category_id,
                subcategory_id,
                name,
                description,
                unit,
                cost_price,
                json.dumps(image_urls),
            ),
        )
        return self.inserted_id(cursor)

    def update(self, db, item_id: int, fields: dict) -> None:
        """Apply edits and send the item back to review."""
        values = dict(fields)
        if "image_urls" in values:
            values["image_urls"] = json.dumps(values["image_urls"])
        assignments = "".join(f"{key} = ?, " for key in values)
        db.execute(
            f"""
            UPDATE items
            SET {assignments}status = 'pending', approved_by = NULL, approved_at = NULL, updated_at = ?
            WHERE id = ?
            """,
            (*values.values(), utc_now_text(), item_id),
        )

    def delete(self, db, item_id: int) -> None:
        db.execute("DELETE FROM items WHERE id = ?", (item_id,))

    def get_by_id(self, db, item_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM items i
            JOIN categories c ON c.id = i.category_id
            WHERE i.id = ?
            LIMIT 1
            """,
            (item_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def get_many(self, db, item_ids: list[int]) -> dict[int, dict]:
        if not item_ids:
            return {}
        rows = db.execute(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM items i
            JOIN categories c ON c.id = i.category_id
            WHERE i.id IN ({self.placeholders(item_ids)})
            """,
            tuple(item_ids),
        ).fetchall()
        return {int(item["id"]): item for item in self.rows_to_dicts(rows)}

    def list_by_supplier(self, db, supplier_id: int, *, status: str | None = None) -> list[dict]:
        params: list = [supplier_id]
        status_filter = ""
        if status:
            status_filter = "AND i.status = ?"
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM items i
            JOIN categories c ON c.id = i.category_id
            WHERE i.supplier_id = ? {status_filter}
            ORDER BY i.created_at DESC, i.id DESC
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_status(self, db, *, status: str | None = None, limit: int = 200) -> list[dict]:
        params: list = []
        status_filter = ""
        if status:
            status_filter = "WHERE i.status = ?"
            params.append(status)
        rows = db.execute(
            f"""
            SELECT {_ITEM_COLUMNS}, p.display_name AS supplier_name
            FROM items i
            JOIN categories c ON c.id = i.category_id
            JOIN user_profiles p ON p.id = i.supplier_id
            {status_filter}
            ORDER BY i.created_at DESC, i.id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_approved(
        self,
        db,
        *,
        category_id: int | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        clauses = ["i.status = 'approved'"]
        params: list = []
        if category_id is not None:
            clauses.append("i.category_id = ?")
            params.append(category_id)
        if search:
            clauses.append(
                "(LOWER(i.name) LIKE ? ESCAPE '\\' OR LOWER(COALESCE(i.description, '')) LIKE ? ESCAPE '\\')"
            )
            pattern = self.contains_pattern(search)
            params.extend([pattern, pattern])
        rows = db.execute(
            f"""
            SELECT {_ITEM_COLUMNS}, p.display_name AS supplier_name
            FROM items i
            JOIN categories c ON c.id = i.category_id
            JOIN user_profiles p ON p.id = i.supplier_id
            WHERE {' AND '.join(clauses)}
            ORDER BY i.created_at DESC, i.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, int(limit), int(offset)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def approved_ids_for_supplier(self, db, supplier_id: int) -> set[int]:
        rows = db.execute(
            "SELECT id FROM items WHERE supplier_id = ? AND status = 'approved'",
            (supplier_id,),
        ).fetchall()
        return {int(row["id"]) for row in rows}

    def is_referenced(self, db, item_id: int) -> bool:
        row = db.execute("SELECT 1 FROM rfq_items WHERE item_id = ? LIMIT 1", (item_id,)).fetchone()
        return bool(row)

    def transition_status(
        self,
        db,
        item_id: int,
        *,
        from_statuses: tuple[str, ...],
        to_status: str,
        reviewed_by: int,
    ) -> bool:
        status_sql, status_params = self.status_clause("status", from_statuses)
        now = utc_now_text()
        cursor = db.execute(
            f"""
            UPDATE items
            SET status = ?, approved_by = ?, approved_at = ?, updated_at = ?
            WHERE id = ? AND {status_sql}
            """,
            (to_status, reviewed_by, now if to_status == "approved" else None, now, item_id, *status_params),
        )
        return cursor.rowcount == 1

    def count_by_status(self, db, *, supplier_id: int | None = None) -> dict[str, int]:
        params: tuple = ()
        where = ""
        if supplier_id is not None:
            where = "WHERE supplier_id = ?"
            params = (supplier_id,)
        rows = db.execute(
            f"SELECT status, COUNT(*) AS total FROM items {where} GROUP BY status",
            params,
        ).fetchall()
        return {row["status"]: int(row["total"]) for row in rows}
