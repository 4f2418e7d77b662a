"""SQLite persistence for input sets, prompt templates, runs, and results."""

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS input_sets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS images (
    id TEXT PRIMARY KEY,
    input_set_id TEXT NOT NULL REFERENCES input_sets(id) ON DELETE CASCADE,
    filename TEXT NOT NULL,
    path TEXT NOT NULL,
    mime_type TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    input_set_id TEXT NOT NULL REFERENCES input_sets(id) ON DELETE CASCADE,
    catalog_id TEXT NOT NULL,
    name TEXT NOT NULL,
    category TEXT NOT NULL,
    image_url TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prompt_templates (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prompt_steps (
    id TEXT PRIMARY KEY,
    template_id TEXT NOT NULL REFERENCES prompt_templates(id) ON DELETE CASCADE,
    step_order INTEGER NOT NULL,
    prompt TEXT NOT NULL,
    model TEXT NOT NULL,
    aspect_ratio TEXT NOT NULL,
    image_size TEXT NOT NULL,
    temperature REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    input_set_id TEXT NOT NULL REFERENCES input_sets(id) ON DELETE CASCADE,
    template_id TEXT NOT NULL REFERENCES prompt_templates(id) ON DELETE CASCADE,
    status TEXT NOT NULL DEFAULT 'pending',
    error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS run_results (
    id TEXT PRIMARY KEY,
    run_id TEXT NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
    step_order INTEGER NOT NULL,
    output_image TEXT NOT NULL DEFAULT '',
    metadata TEXT NOT NULL DEFAULT '{}',
    rating INTEGER,
    notes TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_images_input_set ON images(input_set_id);
CREATE INDEX IF NOT EXISTS idx_products_input_set ON products(input_set_id);
CREATE INDEX IF NOT EXISTS idx_steps_template ON prompt_steps(template_id, step_order);
CREATE INDEX IF NOT EXISTS idx_runs_created_at ON runs(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_results_run ON run_results(run_id, step_order);
CREATE INDEX IF NOT EXISTS idx_results_created_at ON run_results(created_at DESC);
"""


def new_id() -> str:
    """Return a fresh UUID4 string primary key."""
    return str(uuid.uuid4())


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def load_json(raw: str | None, default):
    """Parse a JSON column, returning *default* when it is empty or invalid.

    Args:
        raw: Column value as stored in SQLite
        default: Value returned for ``NULL``, empty, or malformed text

    Returns:
        The decoded value, or *default*
    """
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


class Database:
    """Manage the lab database using SQLite.

    Every unit of work opens its own connection through :meth:`connect`, so a
    ``Database`` can be shared freely between request handlers.
    """

    def __init__(self, db_path: Path):
        """Initialize the database and create the schema if needed.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized lab database at {self.db_path}")

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self.connect() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for one unit of work.

        The connection has foreign keys enabled and returns rows as
        :class:`sqlite3.Row`.  The transaction is committed when the block
        exits normally and rolled back when it raises.  The connection is
        always closed.

        Yields:
            An open SQLite connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def count(self, table: str) -> int:
        """Return the number of rows in one of the lab tables.

        Args:
            table: Table name (must be one of the schema tables)

        Returns:
            Row count
        """
        if table not in {"input_sets", "prompt_templates", "runs", "run_results"}:
            raise ValueError(f"Unknown table: {table}")
        with self.connect() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            return row[0] if row else 0
