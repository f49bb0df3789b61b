"""retro_fantasy.batches

Ingestion batch lifecycle tracker.

One ingestion_batches row per (domain, attempt).  Status moves
monotonically:

    pending -> in_progress -> completed
    pending -> failed
    in_progress -> failed

completed and failed are terminal.  Transitions are enforced in two
places: the pure ``can_transition`` table, and a conditional UPDATE that
only matches rows currently in an allowed source state, so a racing
writer can never move a batch backwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import psycopg

from retro_fantasy.shared import DOMAINS

log = logging.getLogger(__name__)

PENDING = "pending"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
FAILED = "failed"

VALID_STATUSES = (PENDING, IN_PROGRESS, COMPLETED, FAILED)
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED})

# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset(),
    IN_PROGRESS: frozenset({PENDING}),
    COMPLETED: frozenset({IN_PROGRESS}),
    FAILED: frozenset({PENDING, IN_PROGRESS}),
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class InvalidBatchTransitionError(Exception):
    """Raised when a batch status change violates the lifecycle."""


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

@dataclass
class IngestionBatch:
    batch_id: str
    source_type: str
    source_file: str
    year: int
    status: str
    total_rows: int | None
    processed_rows: int
    started_at: datetime | None
    completed_at: datetime | None
    error_message: str | None


_BATCH_COLUMNS = (
    "batch_id, source_type, source_file, year, status, total_rows, "
    "processed_rows, started_at, completed_at, error_message"
)


def can_transition(current: str, target: str) -> bool:
    """Pure lifecycle rule: may a batch in ``current`` move to ``target``?"""
    return current in ALLOWED_TRANSITIONS.get(target, frozenset())


# ---------------------------------------------------------------------------
# DB operations
# ---------------------------------------------------------------------------

def create_batch(conn: psycopg.Connection, domain: str, year: int, source_file: str) -> str:
    """Insert a pending batch and return its id."""
    if domain not in DOMAINS:
        raise ValueError(f"Unknown domain '{domain}'")
    row = conn.execute(
        """
        INSERT INTO ingestion_batches (source_type, source_file, year, status)
        VALUES (%s, %s, %s, %s)
        RETURNING batch_id
        """,
        (domain, source_file, year, PENDING),
    ).fetchone()
    return str(row[0])


def get_batch(conn: psycopg.Connection, batch_id: str) -> IngestionBatch | None:
    row = conn.execute(
        f"SELECT {_BATCH_COLUMNS} FROM ingestion_batches WHERE batch_id = %s",
        (batch_id,),
    ).fetchone()
    if row is None:
        return None
    batch = IngestionBatch(*row)
    batch.batch_id = str(batch.batch_id)
    return batch


def _transition(
    conn: psycopg.Connection,
    batch_id: str,
    target: str,
    assignments: str,
    params: tuple,
) -> None:
    allowed = sorted(ALLOWED_TRANSITIONS[target])
    row = conn.execute(
        f"""
        UPDATE ingestion_batches
        SET status = %s{assignments}
        WHERE batch_id = %s AND status = ANY(%s)
        RETURNING batch_id
        """,
        (target, *params, batch_id, allowed),
    ).fetchone()
    if row is not None:
        log.debug("Batch %s -> %s", batch_id, target)
        return
    current = get_batch(conn, batch_id)
    if current is None:
        raise InvalidBatchTransitionError(f"Batch {batch_id} does not exist")
    raise InvalidBatchTransitionError(
        f"Batch {batch_id}: cannot move from '{current.status}' to '{target}'"
    )


def start_batch(conn: psycopg.Connection, batch_id: str, total_rows: int) -> None:
    """pending -> in_progress, recording the staged row total."""
    _transition(conn, batch_id, IN_PROGRESS, ", total_rows = %s", (total_rows,))


def complete_batch(conn: psycopg.Connection, batch_id: str, processed_rows: int) -> None:
    """in_progress -> completed, recording processed rows and completion time."""
    _transition(
        conn, batch_id, COMPLETED,
        ", processed_rows = %s, completed_at = now()",
        (processed_rows,),
    )


def fail_batch(conn: psycopg.Connection, batch_id: str, error: str) -> None:
    """pending|in_progress -> failed, recording the error message."""
    _transition(
        conn, batch_id, FAILED,
        ", error_message = %s, completed_at = now()",
        (error,),
    )


def find_open_batch(conn: psycopg.Connection, domain: str, year: int) -> IngestionBatch | None:
    """Most recent in_progress batch for (domain, year), if any."""
    row = conn.execute(
        f"""
        SELECT {_BATCH_COLUMNS} FROM ingestion_batches
        WHERE source_type = %s AND year = %s AND status = %s
        ORDER BY started_at DESC
        LIMIT 1
        """,
        (domain, year, IN_PROGRESS),
    ).fetchone()
    if row is None:
        return None
    batch = IngestionBatch(*row)
    batch.batch_id = str(batch.batch_id)
    return batch


def has_completed_batch(conn: psycopg.Connection, domain: str, year: int) -> bool:
    row = conn.execute(
        """
        SELECT EXISTS (
            SELECT 1 FROM ingestion_batches
            WHERE source_type = %s AND year = %s AND status = %s
        )
        """,
        (domain, year, COMPLETED),
    ).fetchone()
    return bool(row[0])
