"""retro_fantasy.ingest

Ingestion orchestrator: one season's unified playing file end to end.

Per year:
  1. Skip (no writes at all) when both domains already have a completed
     batch, unless forced
  2. Create a pending batch per domain
  3. Obtain the source file through the fetcher
  4. Classify every row and stage the batting/pitching streams under the
     two batch ids
  5. Mark both batches in_progress with their staged totals
  6. Transform each batch, complete it, and clear its staging rows

Any exception after step 2 marks both batches failed with the error
message and is reported in the result; rows already normalized by
committed transform pages are left in place.  Reruns after a failure
always mint fresh batch ids.

Runs for the same year are serialized within this process.  Exclusion
across processes is the caller's responsibility (e.g. one scheduler).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path

import psycopg

from retro_fantasy.batches import (
    IngestionBatch,
    complete_batch,
    create_batch,
    fail_batch,
    find_open_batch,
    has_completed_batch,
    start_batch,
)
from retro_fantasy.classify import classify_row, read_playing_rows
from retro_fantasy.fetch import SourceFetcher, playing_file_name
from retro_fantasy.shared import BATTING, DOMAINS, PITCHING
from retro_fantasy.staging import (
    DEFAULT_STAGING_PAGE_SIZE,
    StagingWriter,
    clear_staging_batch,
)
from retro_fantasy.transform import (
    DEFAULT_TRANSFORM_PAGE_SIZE,
    TransformResult,
    tally_processed_rows,
    transform_batch,
)

log = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_SKIPPED = "skipped"
STATUS_STAGED = "staged"
STATUS_FAILED = "failed"
STATUS_NOTHING_TO_RESUME = "nothing_to_resume"


# ---------------------------------------------------------------------------
# Per-year lock registry
# ---------------------------------------------------------------------------

_registry_lock = threading.Lock()
_year_locks: dict[int, threading.Lock] = {}


@contextmanager
def _year_lock(year: int) -> Iterator[None]:
    with _registry_lock:
        lock = _year_locks.setdefault(year, threading.Lock())
    with lock:
        yield


# ---------------------------------------------------------------------------
# Options / result
# ---------------------------------------------------------------------------

@dataclass
class IngestOptions:
    force: bool = False
    skip_transform: bool = False
    # Use this file instead of asking the fetcher.
    local_file: Path | None = None
    staging_page_size: int = DEFAULT_STAGING_PAGE_SIZE
    transform_page_size: int = DEFAULT_TRANSFORM_PAGE_SIZE


@dataclass
class IngestResult:
    year: int
    status: str
    source_file: str
    batting_batch_id: str | None = None
    pitching_batch_id: str | None = None
    rows_read: int = 0
    batting_rows_staged: int = 0
    pitching_rows_staged: int = 0
    batting_rows_processed: int = 0
    pitching_rows_processed: int = 0
    rows_skipped: int = 0
    games_upserted: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def _stage_file(
    conn: psycopg.Connection,
    path: Path,
    source_file: str,
    batch_ids: dict[str, str],
    page_size: int,
    result: IngestResult,
) -> dict[str, int]:
    writers = {
        domain: StagingWriter(conn, domain, source_file, batch_id=batch_ids[domain],
                              page_size=page_size)
        for domain in DOMAINS
    }
    for raw in read_playing_rows(path):
        result.rows_read += 1
        classified = classify_row(raw)
        if classified.batting is not None:
            writers[BATTING].append(classified.batting)
        if classified.pitching is not None:
            writers[PITCHING].append(classified.pitching)
    return {domain: w.close().total_rows for domain, w in writers.items()}


def _transform_and_complete(
    conn: psycopg.Connection,
    batch_ids: dict[str, str],
    page_size: int,
    result: IngestResult,
    completed: set[str],
    prior: dict[str, TransformResult] | None = None,
) -> None:
    for domain, batch_id in batch_ids.items():
        tr = transform_batch(conn, domain, batch_id, page_size=page_size)
        if prior and domain in prior:
            tr.processed_rows += prior[domain].processed_rows
            tr.skipped_rows += prior[domain].skipped_rows
        complete_batch(conn, batch_id, tr.processed_rows)
        completed.add(batch_id)
        clear_staging_batch(conn, domain, batch_id)
        if domain == BATTING:
            result.batting_rows_processed = tr.processed_rows
        else:
            result.pitching_rows_processed = tr.processed_rows
        result.rows_skipped += tr.skipped_rows
        result.games_upserted += tr.games


def _fail_all(conn: psycopg.Connection, batch_ids: Iterable[str], message: str) -> None:
    for batch_id in batch_ids:
        try:
            fail_batch(conn, batch_id, message)
        except Exception:
            # Keep the original error as the reported one.
            log.exception("Could not mark batch %s failed", batch_id)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def ingest_year(
    conn: psycopg.Connection,
    year: int,
    fetcher: SourceFetcher,
    options: IngestOptions | None = None,
) -> IngestResult:
    """Ingest one season.  Never raises for pipeline failures; see result.error."""
    options = options or IngestOptions()
    source_file = playing_file_name(year)
    result = IngestResult(year=year, status=STATUS_COMPLETED, source_file=source_file)

    with _year_lock(year):
        if not options.force and all(has_completed_batch(conn, d, year) for d in DOMAINS):
            log.info("%d already ingested; skipping", year)
            result.status = STATUS_SKIPPED
            return result

        batch_ids = {d: create_batch(conn, d, year, source_file) for d in DOMAINS}
        result.batting_batch_id = batch_ids[BATTING]
        result.pitching_batch_id = batch_ids[PITCHING]
        completed: set[str] = set()

        try:
            path = options.local_file or fetcher.fetch(source_file, force=options.force)
            log.info("%d: staging %s", year, path)
            totals = _stage_file(
                conn, path, source_file, batch_ids, options.staging_page_size, result
            )
            result.batting_rows_staged = totals[BATTING]
            result.pitching_rows_staged = totals[PITCHING]
            for domain in DOMAINS:
                start_batch(conn, batch_ids[domain], totals[domain])

            if options.skip_transform:
                log.info("%d: staged only; batches left in_progress", year)
                result.status = STATUS_STAGED
                return result

            _transform_and_complete(
                conn, batch_ids, options.transform_page_size, result, completed
            )
        except Exception as exc:
            log.error("%d: ingestion failed: %s", year, exc)
            _fail_all(conn, [b for b in batch_ids.values() if b not in completed], str(exc))
            result.status = STATUS_FAILED
            result.error = str(exc)
            return result

    log.info(
        "%d: done (batting %d, pitching %d, skipped %d)",
        year, result.batting_rows_processed, result.pitching_rows_processed,
        result.rows_skipped,
    )
    return result


def resume_year(
    conn: psycopg.Connection,
    year: int,
    options: IngestOptions | None = None,
) -> IngestResult:
    """Finish the in_progress batches of a season left by a staged-only or
    interrupted run: transform remaining staging rows, complete, clear.

    Each domain is resumed on its own, so a pitching batch left open after
    batting already completed is still picked up.  Rows transformed before
    the interruption count toward the completed batch's processed_rows.
    """
    options = options or IngestOptions()
    result = IngestResult(year=year, status=STATUS_COMPLETED,
                          source_file=playing_file_name(year))
    with _year_lock(year):
        open_batches: dict[str, IngestionBatch] = {}
        for domain in DOMAINS:
            batch = find_open_batch(conn, domain, year)
            if batch is not None:
                open_batches[domain] = batch
        if not open_batches:
            result.status = STATUS_NOTHING_TO_RESUME
            return result

        batch_ids = {d: b.batch_id for d, b in open_batches.items()}
        result.batting_batch_id = batch_ids.get(BATTING)
        result.pitching_batch_id = batch_ids.get(PITCHING)
        if BATTING in open_batches:
            result.batting_rows_staged = open_batches[BATTING].total_rows or 0
        if PITCHING in open_batches:
            result.pitching_rows_staged = open_batches[PITCHING].total_rows or 0
        completed: set[str] = set()
        try:
            prior = {
                d: tally_processed_rows(conn, d, b, options.transform_page_size)
                for d, b in batch_ids.items()
            }
            _transform_and_complete(
                conn, batch_ids, options.transform_page_size, result, completed, prior
            )
        except Exception as exc:
            log.error("%d: resume failed: %s", year, exc)
            _fail_all(conn, [b for b in batch_ids.values() if b not in completed], str(exc))
            result.status = STATUS_FAILED
            result.error = str(exc)
    return result


def ingest_years(
    conn: psycopg.Connection,
    years: Iterable[int],
    fetcher: SourceFetcher,
    options: IngestOptions | None = None,
) -> list[IngestResult]:
    """Ingest seasons sequentially; one failed year does not stop the rest."""
    return [ingest_year(conn, year, fetcher, options) for year in years]
