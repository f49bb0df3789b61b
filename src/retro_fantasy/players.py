"""retro_fantasy.players

Fill in player names from the Chadwick Bureau register.

The register is split into sixteen ``people-{hex}.csv`` files.  Only
players already present in ``players`` with no last name are touched;
the register's ``key_retro`` column is the retrosheet player id used by
retrosplits.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from pathlib import Path

import psycopg

from retro_fantasy.fetch import SourceFetcher
from retro_fantasy.normalize import trim

log = logging.getLogger(__name__)

REGISTER_FILES = tuple(f"people-{d}.csv" for d in "0123456789abcdef")
DEFAULT_NAME_PAGE_SIZE = 500


@dataclass
class PlayerSyncResult:
    players_missing_names: int = 0
    players_named: int = 0
    files_read: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _players_missing_names(conn: psycopg.Connection) -> set[str]:
    rows = conn.execute("SELECT player_id FROM players WHERE name_last IS NULL").fetchall()
    return {r[0] for r in rows}


def iter_register_names(path: Path) -> Iterator[tuple[str, str, str, str | None]]:
    """Yield (retro_id, first, last, given) for register rows with a retro id."""
    with open(path, newline="", encoding="utf-8-sig") as fh:
        for row in csv.DictReader(fh):
            retro_id = trim(row.get("key_retro"))
            if retro_id is None:
                continue
            yield (
                retro_id,
                trim(row.get("name_first")) or "",
                trim(row.get("name_last")) or "",
                trim(row.get("name_given")),
            )


def _apply_names(conn: psycopg.Connection, page: list[tuple[str, str, str, str | None]]) -> int:
    ids, firsts, lasts, givens = (list(col) for col in zip(*page))
    with conn.transaction():
        cur = conn.execute(
            """
            UPDATE players
            SET name_first = u.first,
                name_last = u.last,
                name_given = u.given
            FROM unnest(%s::text[], %s::text[], %s::text[], %s::text[])
                 AS u(id, first, last, given)
            WHERE players.player_id = u.id
            """,
            (ids, firsts, lasts, givens),
        )
    return cur.rowcount


def sync_player_names(
    conn: psycopg.Connection,
    fetcher: SourceFetcher,
    page_size: int = DEFAULT_NAME_PAGE_SIZE,
    force: bool = False,
) -> PlayerSyncResult:
    """Download the register and name every player still missing a last name."""
    result = PlayerSyncResult()
    missing = _players_missing_names(conn)
    result.players_missing_names = len(missing)
    if not missing:
        log.info("All players already have names")
        return result
    log.info("Found %d players needing names", len(missing))

    page: list[tuple[str, str, str, str | None]] = []
    for name in REGISTER_FILES:
        path = fetcher.fetch(name, force=force)
        result.files_read += 1
        for entry in iter_register_names(path):
            if entry[0] not in missing:
                continue
            missing.discard(entry[0])
            page.append(entry)
            if len(page) >= page_size:
                result.players_named += _apply_names(conn, page)
                page = []
    if page:
        result.players_named += _apply_names(conn, page)

    log.info("Named %d of %d players", result.players_named, result.players_missing_names)
    return result
