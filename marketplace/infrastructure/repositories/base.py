from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from marketplace.core.clock import to_db_timestamp


class BaseRepository:
    @staticmethod
    def _normalize_value(value: Any) -> Any:
        if isinstance(value, datetime):
            return to_db_timestamp(value)
        if isinstance(value, Decimal):
            return float(value)
        return value

    @classmethod
    def row_to_dict(cls, row: Any) -> dict | None:
        if row is None:
            return None
        return {key: cls._normalize_value(value) for key, value in dict(row).items()}

    @classmethod
    def rows_to_dicts(cls, rows: Iterable[Any]) -> list[dict]:
        return [cls.row_to_dict(row) for row in rows]

    @staticmethod
    def inserted_id(cursor) -> int:
        row = cursor.fetchone()
        return int(row["id"] if isinstance(row, dict) else row[0])

    @staticmethod
    def placeholders(values: Iterable[Any]) -> str:
        return ",".join("?" for _ in values)

    @staticmethod
    def status_clause(column: str, statuses: Iterable[str]) -> tuple[str, tuple]:
        values = tuple(statuses)
        return f"{column} IN ({','.join('?' for _ in values)})", values

    @staticmethod
    def contains_pattern(text: str) -> str:
        """Lower-cased LIKE pattern matching ``text`` literally; pair with ``ESCAPE '\\'``."""
        escaped = text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"
