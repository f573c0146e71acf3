from __future__ import annotations

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories.base import BaseRepository


_EDITABLE_FIELDS = ("real_name", "company_name", "phone")


class ProfileRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        user_id: int,
        role: str,
        status: str,
        display_name: str,
        email: str,
        real_name: str | None = None,
        company_name: str | None = None,
        phone: str | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO user_profiles (id, role, status, display_name, email, real_name, company_name, phone)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, role, status, display_name, email, real_name, company_name, phone),
        )

    def get_by_id(self, db, user_id: int) -> dict | None:
        row = db.execute(
            "SELECT * FROM user_profiles WHERE id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def display_name_exists(self, db, display_name: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM user_profiles WHERE display_name = ?",
            (display_name,),
        ).fetchone()
        return bool(row)

    def list(self, db, *, role: str | None = None, status: str | None = None, limit: int = 200) -> list[dict]:
        clauses = []
        params: list = []
        if role:
            clauses.append("role = ?")
            params.append(role)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT *
            FROM user_profiles
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def update_fields(self, db, user_id: int, fields: dict) -> None:
        updates = {key: value for key, value in fields.items() if key in _EDITABLE_FIELDS}
        if not updates:
            return
        assignments = ", ".join(f"{key} = ?" for key in updates)
        db.execute(
            f"UPDATE user_profiles SET {assignments}, updated_at = ? WHERE id = ?",
            (*updates.values(), utc_now_text(), user_id),
        )

    def transition_status(
        self,
        db,
        user_id: int,
        *,
        from_statuses: tuple[str, ...],
        to_status: str,
        reviewed_by: int | None,
    ) -> bool:
        status_sql, status_params = self.status_clause("status", from_statuses)
        now = utc_now_text()
        if to_status == "approved":
            cursor = db.execute(
                f"""
                UPDATE user_profiles
                SET status = ?, approved_at = ?, approved_by = ?, updated_at = ?
                WHERE id = ? AND {status_sql}
                """,
                (to_status, now, reviewed_by, now, user_id, *status_params),
            )
        else:
            cursor = db.execute(
                f"UPDATE user_profiles SET status = ?, updated_at = ? WHERE id = ? AND {status_sql}",
                (to_status, now, user_id, *status_params),
            )
        return cursor.rowcount == 1

    def increment_total_orders(self, db, user_ids: tuple[int, ...]) -> None:
        db.execute(
            f"""
            UPDATE user_profiles
            SET total_orders = total_orders + 1, updated_at = ?
            WHERE id IN ({self.placeholders(user_ids)})
            """,
            (utc_now_text(), *user_ids),
        )

    def set_rating(self, db, user_id: int, rating: float) -> None:
        db.execute(
            "UPDATE user_profiles SET rating = ?, updated_at = ? WHERE id = ?",
            (rating, utc_now_text(), user_id),
        )

    def count_by_status(self, db) -> dict:
        rows = db.execute(
            """
            SELECT role, status, COUNT(*) AS total
            FROM user_profiles
            GROUP BY role, status
            """
        ).fetchall()
        counts: dict = {}
        for row in rows:
            counts.setdefault(row["role"], {})[row["status"]] = int(row["total"])
        return counts
