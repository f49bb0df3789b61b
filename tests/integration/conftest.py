"""Integration test fixtures.

Applies migrations 0001–0004 against an ephemeral PostgreSQL database
provided by pytest-postgresql before any integration test runs.
"""

from __future__ import annotations

import csv
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"
MIGRATIONS = [
    MIGRATIONS_DIR / "0001_core_entities.sql",
    MIGRATIONS_DIR / "0002_staging.sql",
    MIGRATIONS_DIR / "0003_fantasy.sql",
    MIGRATIONS_DIR / "0004_player_names.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


def _dsn(postgresql) -> str:
    return (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )


# ---------------------------------------------------------------------------
# Schema fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def empty_db(postgresql):
    """Autocommit connection to a database with no schema applied."""
    conn = psycopg.connect(_dsn(postgresql), autocommit=True)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return a psycopg connection with schema applied.

    Each test gets a fresh schema via function scope so tests are isolated.
    The connection stays in autocommit mode, as the CLI's does; code under
    test opens its own transaction blocks.
    """
    dsn = _dsn(postgresql)
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            sql = migration.read_text(encoding="utf-8")
            conn.execute(sql)
        yield conn, dsn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Source file builders
# ---------------------------------------------------------------------------

PLAYING_HEADER = [
    "game.key", "game.date", "game.number", "site.key", "season.phase",
    "team.alignment", "team.key", "opponent.key", "person.key", "slot", "seq",
    "B_G", "B_PA", "B_AB", "B_R", "B_H", "B_2B", "B_3B", "B_HR", "B_RBI",
    "B_BB", "B_SO", "B_SB",
    "P_G", "P_GS", "P_CG", "P_OUT", "P_TBF", "P_H", "P_ER", "P_BB", "P_SO",
    "P_W", "P_L", "P_SV",
]


def _playing_row(**values: str) -> dict[str, str]:
    row = {h: "" for h in PLAYING_HEADER}
    row.update({
        "game.key": "BOS202304150",
        "game.date": "2023-04-15",
        "game.number": "0",
        "site.key": "BOS07",
        "season.phase": "R",
        "team.alignment": "1",
        "team.key": "BOS",
        "opponent.key": "NYA",
        "seq": "1",
    })
    row.update(values)
    return row


def _write_playing_file(path: Path, rows: list[dict[str, str]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=PLAYING_HEADER)
        writer.writeheader()
        writer.writerows(rows)
    return path


def _sample_season_rows() -> list[dict[str, str]]:
    """Two games: three batters, one two-way player, two pitchers, one junk row."""
    return [
        _playing_row(**{"person.key": "devere001", "slot": "3", "B_G": "1", "B_PA": "5",
                        "B_AB": "4", "B_R": "2", "B_H": "3", "B_2B": "1", "B_HR": "1",
                        "B_RBI": "3", "B_BB": "1", "B_SO": "1"}),
        _playing_row(**{"person.key": "judga001", "team.alignment": "0", "team.key": "NYA",
                        "opponent.key": "BOS", "slot": "2", "B_G": "1", "B_AB": "4",
                        "B_H": "1", "B_SO": "2"}),
        _playing_row(**{"person.key": "salech001", "P_G": "1", "P_GS": "1", "P_CG": "1",
                        "P_OUT": "27", "P_TBF": "30", "P_H": "4", "P_ER": "1",
                        "P_BB": "1", "P_SO": "10", "P_W": "1"}),
        _playing_row(**{"person.key": "ohtas001", "game.key": "BOS202304160",
                        "game.date": "2023-04-16", "B_G": "1", "B_AB": "3", "B_H": "1",
                        "P_G": "1", "P_GS": "1", "P_OUT": "18", "P_ER": "2", "P_SO": "7"}),
        _playing_row(**{"person.key": "bench001", "B_G": "0", "P_G": "0"}),
        _playing_row(**{"person.key": "", "B_G": "1", "B_H": "1"}),
    ]


@pytest.fixture
def playing_row():
    """Factory for one raw playing-file row with BOS-vs-NYA defaults."""
    return _playing_row


@pytest.fixture
def season_rows() -> list[dict[str, str]]:
    return _sample_season_rows()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def make_playing_file(data_dir):
    """Write ``playing-{year}.csv`` into data_dir and return its path."""
    def _make(year: int, rows: list[dict[str, str]]) -> Path:
        return _write_playing_file(data_dir / f"playing-{year}.csv", rows)
    return _make
