from __future__ import annotations

from marketplace.infrastructure.repositories.base import BaseRepository


class CategoryRepository(BaseRepository):
    def create(self, db, *, name: str, slug: str, description: str | None = None) -> int:
        cursor = db.execute(
            """
            INSERT INTO categories (name, slug, description)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            (name, slug, description),
        )
        return self.inserted_id(cursor)

    def create_subcategory(self, db, *, category_id: int, name: str, slug: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO subcategories (category_id, name, slug)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            (category_id, name, slug),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, category_id: int) -> dict | None:
        row = db.execute("SELECT * FROM categories WHERE id = ? LIMIT 1", (category_id,)).fetchone()
        return self.row_to_dict(row)

    def get_by_slug(self, db, slug: str) -> dict | None:
        row = db.execute("SELECT * FROM categories WHERE slug = ? LIMIT 1", (slug,)).fetchone()
        return self.row_to_dict(row)

    def get_subcategory(self, db, subcategory_id: int) -> dict | None:
        row = db.execute("SELECT * FROM subcategories WHERE id = ? LIMIT 1", (subcategory_id,)).fetchone()
        return self.row_to_dict(row)

    def subcategory_slug_exists(self, db, category_id: int, slug: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM subcategories WHERE category_id = ? AND slug = ?",
            (category_id, slug),
        ).fetchone()
        return bool(row)

    def list_with_subcategories(self, db) -> list[dict]:
        categories = self.rows_to_dicts(
            db.execute("SELECT id, name, slug, description FROM categories ORDER BY name, id").fetchall()
        )
        subcategories = self.rows_to_dicts(
            db.execute("SELECT id, category_id, name, slug FROM subcategories ORDER BY name, id").fetchall()
        )
        by_category: dict[int, list[dict]] = {}
        for subcategory in subcategories:
            by_category.setdefault(int(subcategory["category_id"]), []).append(subcategory)
        for category in categories:
            category["subcategories"] = by_category.get(int(category["id"]), [])
        return categories
