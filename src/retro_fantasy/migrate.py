"""retro_fantasy.migrate

Apply ``migrations/*.sql`` in file-name order.  Applied files are recorded
in ``schema_migrations``; each pending file runs in its own transaction
together with its bookkeeping row.
"""

from __future__ import annotations

import logging
from pathlib import Path

import psycopg

log = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def _ensure_tracking_table(conn: psycopg.Connection) -> None:
    with conn.transaction():
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
            )
            """
        )


def applied_migrations(conn: psycopg.Connection) -> set[str]:
    _ensure_tracking_table(conn)
    rows = conn.execute("SELECT name FROM schema_migrations").fetchall()
    return {r[0] for r in rows}


def pending_migrations(conn: psycopg.Connection, migrations_dir: Path) -> list[Path]:
    done = applied_migrations(conn)
    return [p for p in sorted(migrations_dir.glob("*.sql")) if p.name not in done]


def apply_migrations(
    conn: psycopg.Connection,
    migrations_dir: Path = DEFAULT_MIGRATIONS_DIR,
) -> list[str]:
    """Apply every pending migration; returns the names applied."""
    if not migrations_dir.is_dir():
        raise FileNotFoundError(f"Migrations directory not found: {migrations_dir}")
    applied: list[str] = []
    for path in pending_migrations(conn, migrations_dir):
        sql = path.read_text(encoding="utf-8")
        with conn.transaction():
            conn.execute(sql)
            conn.execute("INSERT INTO schema_migrations (name) VALUES (%s)", (path.name,))
        log.info("Applied migration %s", path.name)
        applied.append(path.name)
    return applied
