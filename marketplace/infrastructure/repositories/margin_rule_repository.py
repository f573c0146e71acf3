from __future__ import annotations

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories.base import BaseRepository


class MarginRuleRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        category_id: int | None,
        margin_percentage: float,
        priority: int,
        active: bool,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO margin_rules (category_id, margin_percentage, priority, active)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            (category_id, margin_percentage, priority, active),
        )
        return self.inserted_id(cursor)

    def update(self, db, rule_id: int, fields: dict) -> None:
        allowed = {key: value for key, value in fields.items() if key in {"margin_percentage", "priority", "active"}}
        if not allowed:
            return
        assignments = ", ".join(f"{key} = ?" for key in allowed)
        db.execute(
            f"UPDATE margin_rules SET {assignments}, updated_at = ? WHERE id = ?",
            (*allowed.values(), utc_now_text(), rule_id),
        )

    def get_by_id(self, db, rule_id: int) -> dict | None:
        row = db.execute("SELECT * FROM margin_rules WHERE id = ? LIMIT 1", (rule_id,)).fetchone()
        return self._with_bool(self.row_to_dict(row))

    def list(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT r.*, c.name AS category_name
            FROM margin_rules r
            LEFT JOIN categories c ON c.id = r.category_id
            ORDER BY r.priority DESC, r.id
            """
        ).fetchall()
        return [self._with_bool(rule) for rule in self.rows_to_dicts(rows)]

    def list_active(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, category_id, margin_percentage, priority
            FROM margin_rules
            WHERE active = ?
            ORDER BY priority DESC, id
            """,
            (True,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    @staticmethod
    def _with_bool(rule: dict | None) -> dict | None:
        if rule is not None:
            rule["active"] = bool(rule.get("active"))
        return rule
