from __future__ import annotations

from werkzeug.security import generate_password_hash

from marketplace.infrastructure.repositories.base import BaseRepository


class AuthRepository(BaseRepository):
    def find_user_by_email(self, db, email: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, email, password_hash
            FROM auth_users
            WHERE email = ?
            """,
            (email,),
        ).fetchone()
        return self.row_to_dict(row)

    def email_exists(self, db, email: str) -> bool:
        row = db.execute(
            "SELECT 1 FROM auth_users WHERE email = ?",
            (email,),
        ).fetchone()
        return bool(row)

    def create_user(self, db, *, email: str, password: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO auth_users (email, password_hash)
            VALUES (?, ?)
            RETURNING id
            """,
            (email, generate_password_hash(password)),
        )
        return self.inserted_id(cursor)
