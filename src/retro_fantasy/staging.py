"""retro_fantasy.staging

Staging writer: persists classified raw rows verbatim into
``staging_batting`` / ``staging_pitching``, tagged with a batch id, the
source file name and a 1-based row number.

Rows are buffered into fixed-size pages; each page is written in its own
transaction, so a page either fully lands or not at all.  The writer never
holds more than one page in memory.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import psycopg

from retro_fantasy.classify import BATTING_STAGING_COLUMNS, PITCHING_STAGING_COLUMNS
from retro_fantasy.shared import BATTING, PITCHING

log = logging.getLogger(__name__)

DEFAULT_STAGING_PAGE_SIZE = 1000

STAGING_TABLES: dict[str, str] = {
    BATTING: "staging_batting",
    PITCHING: "staging_pitching",
}

STAGING_COLUMNS: dict[str, tuple[str, ...]] = {
    BATTING: BATTING_STAGING_COLUMNS,
    PITCHING: PITCHING_STAGING_COLUMNS,
}


def staging_table(domain: str) -> str:
    try:
        return STAGING_TABLES[domain]
    except KeyError:
        raise ValueError(f"Unknown domain '{domain}'") from None


# ---------------------------------------------------------------------------
# StagingWriter
# ---------------------------------------------------------------------------

@dataclass
class StagingResult:
    batch_id: str
    total_rows: int
    source_file: str


class StagingWriter:
    """Page-buffered writer for one (domain, batch) staging stream.

    The connection must be in autocommit mode or otherwise idle; each page
    is committed through ``conn.transaction()``.
    """

    def __init__(
        self,
        conn: psycopg.Connection,
        domain: str,
        source_file: str,
        batch_id: str | None = None,
        page_size: int = DEFAULT_STAGING_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._conn = conn
        self._domain = domain
        self._table = staging_table(domain)
        self._columns = STAGING_COLUMNS[domain]
        self._source_file = source_file
        self._page_size = page_size
        self.batch_id = batch_id or str(uuid.uuid4())
        self._buffer: list[dict[str, str]] = []
        self._row_num = 0
        self._written = 0
        self._closed = False
        self._sql = (
            f"INSERT INTO {self._table} "
            f"(batch_id, source_file, row_num, {', '.join(self._columns)}) "
            f"VALUES ({', '.join(['%s'] * (3 + len(self._columns)))})"
        )

    @property
    def rows_written(self) -> int:
        return self._written

    def append(self, row: dict[str, str]) -> None:
        if self._closed:
            raise RuntimeError("StagingWriter is closed")
        self._buffer.append(row)
        if len(self._buffer) >= self._page_size:
            self.flush()

    def flush(self) -> None:
        if not self._buffer:
            return
        params = []
        for row in self._buffer:
            self._row_num += 1
            params.append((
                self.batch_id, self._source_file, self._row_num,
                *(row.get(c, "") for c in self._columns),
            ))
        with self._conn.transaction():
            with self._conn.cursor() as cur:
                cur.executemany(self._sql, params)
        self._written += len(params)
        self._buffer.clear()
        log.debug(
            "Staged %d %s rows for batch %s (total %d)",
            len(params), self._domain, self.batch_id, self._written,
        )

    def close(self) -> StagingResult:
        """Flush the tail page and return the batch totals."""
        if not self._closed:
            self.flush()
            self._closed = True
        return StagingResult(
            batch_id=self.batch_id,
            total_rows=self._written,
            source_file=self._source_file,
        )


def stage_rows(
    conn: psycopg.Connection,
    domain: str,
    rows: Iterable[dict[str, str]],
    source_file: str,
    batch_id: str | None = None,
    page_size: int = DEFAULT_STAGING_PAGE_SIZE,
) -> StagingResult:
    """Stage every row of an iterable under one batch id."""
    writer = StagingWriter(conn, domain, source_file, batch_id=batch_id, page_size=page_size)
    for row in rows:
        writer.append(row)
    return writer.close()


# ---------------------------------------------------------------------------
# Staging queries
# ---------------------------------------------------------------------------

def read_unprocessed_page(
    conn: psycopg.Connection, domain: str, batch_id: str, limit: int
) -> list[dict[str, str]]:
    """Return up to ``limit`` unprocessed rows in row_num order, with their ids."""
    table = staging_table(domain)
    cols = ("id",) + STAGING_COLUMNS[domain]
    rows = conn.execute(
        f"SELECT {', '.join(cols)} FROM {table} "
        "WHERE batch_id = %s AND processed = false "
        "ORDER BY row_num, id LIMIT %s",
        (batch_id, limit),
    ).fetchall()
    return [dict(zip(cols, r)) for r in rows]


def iter_processed_rows(
    conn: psycopg.Connection, domain: str, batch_id: str, page_size: int
) -> Iterator[dict[str, str]]:
    """Yield rows of a batch already marked processed, paged by id."""
    table = staging_table(domain)
    cols = ("id",) + STAGING_COLUMNS[domain]
    last_id = 0
    while True:
        rows = conn.execute(
            f"SELECT {', '.join(cols)} FROM {table} "
            "WHERE batch_id = %s AND processed = true AND id > %s "
            "ORDER BY id LIMIT %s",
            (batch_id, last_id, page_size),
        ).fetchall()
        if not rows:
            return
        for r in rows:
            yield dict(zip(cols, r))
        last_id = rows[-1][0]


def mark_processed(conn: psycopg.Connection, domain: str, ids: list[int]) -> None:
    if not ids:
        return
    conn.execute(
        f"UPDATE {staging_table(domain)} SET processed = true WHERE id = ANY(%s)",
        (ids,),
    )


def count_unprocessed(conn: psycopg.Connection, domain: str, batch_id: str) -> int:
    row = conn.execute(
        f"SELECT count(*) FROM {staging_table(domain)} "
        "WHERE batch_id = %s AND processed = false",
        (batch_id,),
    ).fetchone()
    return int(row[0])


def clear_staging_batch(conn: psycopg.Connection, domain: str, batch_id: str) -> int:
    """Delete every staging row of a batch.  Returns rows deleted."""
    cur = conn.execute(
        f"DELETE FROM {staging_table(domain)} WHERE batch_id = %s",
        (batch_id,),
    )
    return cur.rowcount
