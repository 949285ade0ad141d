import logging
import os
import sqlite3

from flask import current_app, g

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), 'schema.sql')


def _ensure_column(db, table: str, column: str, decl_sql: str) -> None:
    cols = db.execute(f"PRAGMA table_info({table})").fetchall()
    if any(c["name"] == column for c in cols):
        return
    logger.info("Adding column %s.%s", table, column)
    db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl_sql}")
    db.commit()


def _ensure_visit_columns(db) -> None:
    """Bring databases created before offline numbering was tracked up to date."""
    _ensure_column(db, "visits", "token_source", "TEXT NOT NULL DEFAULT 'sequence'")
    _ensure_column(db, "visits", "updated_at", "TEXT")


def _load_schema_and_initialize(db) -> None:
    with open(SCHEMA_PATH, 'r', encoding='utf-8') as f:
        db.executescript(f.read())


# Database paths whose schema has been checked in this process
_initialized_paths = set()


def connect(db_path: str, timeout: float) -> sqlite3.Connection:
    # Ensure directory exists for DB file
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)

    db = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
    db.row_factory = sqlite3.Row
    return db


def get_db() -> sqlite3.Connection:
    db = getattr(g, '_database', None)
    if db is None:
        db_path = current_app.config['DATABASE_PATH']
        db = g._database = connect(db_path, current_app.config.get('STORE_TIMEOUT', 5.0))

        # Schema and migrations only ONCE per database per process
        if db_path not in _initialized_paths:
            cur = db.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='visits'")
            if not cur.fetchone():
                logger.info("Initializing schema in %s", db_path)
                _load_schema_and_initialize(db)
            _ensure_visit_columns(db)
            _initialized_paths.add(db_path)

    return db


def close_connection(exception):
    db = g.pop('_database', None)
    if db is not None:
        db.close()


def init_db_command():
    """Create any missing tables."""
    db = get_db()
    _load_schema_and_initialize(db)
    print('Initialized the database.')
