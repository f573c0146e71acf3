import contextlib
import sqlite3
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


DB_ERRORS: tuple = (sqlite3.Error,) + ((psycopg2.Error,) if psycopg2 is not None else ())
INTEGRITY_ERRORS: tuple = (sqlite3.IntegrityError,) + (
    (psycopg2.IntegrityError,) if psycopg2 is not None else ()
)


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._depth = 0

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    @contextlib.contextmanager
    def transaction(self):
        """Run the block as one unit of work: commit on success, roll back on any error.

        Nested blocks join the outermost transaction.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        if self.backend == "postgres":
            self._conn.autocommit = False
        self._depth = 1
        try:
            yield self
            self._conn.commit()
        except BaseException:
            self._conn.rollback()
            raise
        finally:
            self._depth = 0
            if self.backend == "postgres":
                self._conn.autocommit = True

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed; install the 'postgres' extra.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    create_schema(db)
    db.commit()


# Column types that differ between backends.
_TYPES = {
    "sqlite": {
        "pk": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "ts": "TEXT",
        "money": "REAL",
        "bool": "INTEGER",
        "true": "1",
        "false": "0",
    },
    "postgres": {
        "pk": "SERIAL PRIMARY KEY",
        "ts": "TIMESTAMP",
        "money": "DOUBLE PRECISION",
        "bool": "BOOLEAN",
        "true": "TRUE",
        "false": "FALSE",
    },
}


SCHEMA_TABLES = [
    "status_events",
    "notifications",
    "ratings",
    "orders",
    "quote_items",
    "quotes",
    "rfq_items",
    "rfqs",
    "margin_rules",
    "items",
    "subcategories",
    "categories",
    "user_profiles",
    "auth_users",
]


_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS auth_users (
        id {pk},
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_profiles (
        id INTEGER PRIMARY KEY REFERENCES auth_users(id),
        role TEXT NOT NULL CHECK (role IN ('client', 'supplier', 'admin')),
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'approved', 'rejected', 'suspended')),
        display_name TEXT NOT NULL,
        real_name TEXT,
        email TEXT NOT NULL,
        phone TEXT,
        company_name TEXT,
        rating {money} NOT NULL DEFAULT 0,
        total_orders INTEGER NOT NULL DEFAULT 0,
        approved_at {ts},
        approved_by INTEGER,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id {pk},
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        description TEXT,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS subcategories (
        id {pk},
        category_id INTEGER NOT NULL REFERENCES categories(id),
        name TEXT NOT NULL,
        slug TEXT NOT NULL,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (category_id, slug)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS items (
        id {pk},
        supplier_id INTEGER NOT NULL REFERENCES user_profiles(id),
        category_id INTEGER NOT NULL REFERENCES categories(id),
        subcategory_id INTEGER REFERENCES subcategories(id),
        name TEXT NOT NULL,
        description TEXT,
        unit TEXT NOT NULL DEFAULT 'unit',
        cost_price {money} NOT NULL CHECK (cost_price > 0),
        image_urls TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
        approved_by INTEGER,
        approved_at {ts},
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_items_supplier_status ON items (supplier_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_items_category_status ON items (category_id, status)",
    """
    CREATE TABLE IF NOT EXISTS margin_rules (
        id {pk},
        category_id INTEGER REFERENCES categories(id),
        margin_percentage {money} NOT NULL CHECK (margin_percentage >= 0),
        priority INTEGER NOT NULL DEFAULT 0,
        active {bool} NOT NULL DEFAULT {true},
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rfqs (
        id {pk},
        client_id INTEGER NOT NULL REFERENCES user_profiles(id),
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'open'
            CHECK (status IN ('open', 'quoted', 'closed', 'cancelled', 'expired')),
        deadline {ts},
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rfqs_client ON rfqs (client_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_rfqs_status ON rfqs (status)",
    """
    CREATE TABLE IF NOT EXISTS rfq_items (
        id {pk},
        rfq_id INTEGER NOT NULL REFERENCES rfqs(id) ON DELETE CASCADE,
        item_id INTEGER NOT NULL REFERENCES items(id),
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        notes TEXT,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (rfq_id, item_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rfq_items_item ON rfq_items (item_id)",
    """
    CREATE TABLE IF NOT EXISTS quotes (
        id {pk},
        rfq_id INTEGER NOT NULL REFERENCES rfqs(id) ON DELETE CASCADE,
        supplier_id INTEGER NOT NULL REFERENCES user_profiles(id),
        total_price {money} NOT NULL,
        notes TEXT,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'accepted', 'rejected', 'expired')),
        valid_until {ts},
        delivery_days INTEGER,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (rfq_id, supplier_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quote_items (
        id {pk},
        quote_id INTEGER NOT NULL REFERENCES quotes(id) ON DELETE CASCADE,
        rfq_item_id INTEGER NOT NULL REFERENCES rfq_items(id) ON DELETE CASCADE,
        unit_price {money} NOT NULL CHECK (unit_price > 0),
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (quote_id, rfq_item_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id {pk},
        order_number TEXT NOT NULL UNIQUE,
        rfq_id INTEGER NOT NULL UNIQUE REFERENCES rfqs(id),
        quote_id INTEGER NOT NULL UNIQUE REFERENCES quotes(id),
        client_id INTEGER NOT NULL REFERENCES user_profiles(id),
        supplier_id INTEGER NOT NULL REFERENCES user_profiles(id),
        total_amount {money} NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'confirmed', 'processing', 'shipped', 'delivered', 'completed', 'cancelled')),
        delivery_address TEXT,
        tracking_number TEXT,
        cancel_reason TEXT,
        completed_at {ts},
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_client ON orders (client_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_orders_supplier ON orders (supplier_id, status)",
    """
    CREATE TABLE IF NOT EXISTS ratings (
        id {pk},
        order_id INTEGER NOT NULL UNIQUE REFERENCES orders(id),
        supplier_id INTEGER NOT NULL REFERENCES user_profiles(id),
        client_id INTEGER NOT NULL REFERENCES user_profiles(id),
        score INTEGER NOT NULL CHECK (score BETWEEN 1 AND 5),
        review TEXT,
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id {pk},
        user_id INTEGER NOT NULL REFERENCES user_profiles(id),
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        link TEXT,
        is_read {bool} NOT NULL DEFAULT {false},
        created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, is_read)",
    """
    CREATE TABLE IF NOT EXISTS status_events (
        id {pk},
        entity TEXT NOT NULL,
        entity_id INTEGER NOT NULL,
        from_status TEXT,
        to_status TEXT,
        actor_id INTEGER,
        reason TEXT,
        occurred_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (entity, entity_id)",
]


def schema_statements(backend: str) -> List[str]:
    types = _TYPES["postgres" if backend == "postgres" else "sqlite"]
    return [statement.format(**types).strip() for statement in _SCHEMA]


def create_schema(db) -> None:
    for statement in schema_statements(db.backend):
        db.execute(statement)


def drop_schema(db) -> None:
    for table in SCHEMA_TABLES:
        db.execute(f"DROP TABLE IF EXISTS {table}")
