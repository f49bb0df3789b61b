"""retro_fantasy.shared

Shared types and DB helpers used by the ingestion, transform and scoring
modes.  Includes the stat-record variant (BattingStat | PitchingStat),
the Game entity, base RunCounters, entity upserts, and report-writing
support.

All DB helpers take an explicit psycopg connection; callers manage the
transaction.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from pathlib import Path
from typing import Any, ClassVar

import psycopg

BATTING = "batting"
PITCHING = "pitching"
DOMAINS = (BATTING, PITCHING)

# Stored for records whose source carried no stat type, so the
# (game_id, player_id, stat_type) key never contains NULL.
DEFAULT_STAT_TYPE = "value"


# ---------------------------------------------------------------------------
# Stat records
# ---------------------------------------------------------------------------

@dataclass
class BattingStat:
    domain: ClassVar[str] = BATTING

    game_id: str
    player_id: str
    team_id: str
    is_home: bool
    opponent_id: str | None = None
    plate_appearances: int = 0
    at_bats: int = 0
    runs: int = 0
    hits: int = 0
    doubles: int = 0
    triples: int = 0
    home_runs: int = 0
    runs_batted_in: int = 0
    sacrifice_hits: int = 0
    sacrifice_flies: int = 0
    hit_by_pitch: int = 0
    walks: int = 0
    intentional_walks: int = 0
    strikeouts: int = 0
    stolen_bases: int = 0
    caught_stealing: int = 0
    grounded_into_dp: int = 0
    reached_on_interference: int = 0
    reached_on_error: int = 0
    is_dh: bool = False
    is_ph: bool = False
    is_pr: bool = False
    team_won: bool | None = None
    team_lost: bool | None = None
    team_tied: bool | None = None
    stat_type: str = DEFAULT_STAT_TYPE
    lineup_position: int | None = None
    batting_seq: int | None = None


@dataclass
class PitchingStat:
    domain: ClassVar[str] = PITCHING

    game_id: str
    player_id: str
    team_id: str
    is_home: bool
    opponent_id: str | None = None
    outs_pitched: int = 0
    batters_faced: int = 0
    hits_allowed: int = 0
    doubles_allowed: int = 0
    triples_allowed: int = 0
    home_runs_allowed: int = 0
    runs_allowed: int = 0
    earned_runs: int = 0
    walks: int = 0
    intentional_walks: int = 0
    strikeouts: int = 0
    hit_batters: int = 0
    wild_pitches: int = 0
    balks: int = 0
    sacrifice_hits_allowed: int = 0
    sacrifice_flies_allowed: int = 0
    stolen_bases_allowed: int = 0
    caught_stealing: int = 0
    won: bool = False
    lost: bool = False
    saved: bool = False
    game_started: bool = False
    game_finished: bool = False
    complete_game: bool = False
    team_won: bool | None = None
    team_lost: bool | None = None
    team_tied: bool | None = None
    stat_type: str = DEFAULT_STAT_TYPE
    pitching_seq: int | None = None


StatRecord = BattingStat | PitchingStat

_STAT_TABLES: dict[str, tuple[str, type]] = {
    BATTING: ("batter_game_stats", BattingStat),
    PITCHING: ("pitcher_game_stats", PitchingStat),
}


def stat_columns(record_cls: type) -> list[str]:
    """DB column names for a stat record class, in declaration order."""
    return [f.name for f in fields(record_cls)]


# ---------------------------------------------------------------------------
# Game
# ---------------------------------------------------------------------------

@dataclass
class Game:
    game_id: str
    game_date: date
    game_number: int = 0
    site: str | None = None
    home_team_id: str | None = None
    away_team_id: str | None = None
    game_type: str | None = None
    has_box: bool = False
    has_pbp: bool = False

    def merge_flags(self, other: Game) -> None:
        """OR-merge availability flags from another row of the same game."""
        self.has_box = self.has_box or other.has_box
        self.has_pbp = self.has_pbp or other.has_pbp


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    # ingest
    years_requested: int = 0
    years_ingested: int = 0
    years_skipped: int = 0
    years_failed: int = 0
    rows_read: int = 0
    batting_rows_staged: int = 0
    pitching_rows_staged: int = 0
    batting_rows_processed: int = 0
    pitching_rows_processed: int = 0
    rows_skipped: int = 0
    games_upserted: int = 0
    # sync_players
    players_missing_names: int = 0
    players_named: int = 0
    # migrate / seed_rulesets
    migrations_applied: int = 0
    rulesets_registered: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Shared DB helpers: teams, players
# ---------------------------------------------------------------------------

def upsert_teams(conn: psycopg.Connection, team_ids: Iterable[str]) -> int:
    """Insert-if-absent for each team id.  Returns the number newly created."""
    ids = sorted({t for t in team_ids if t})
    if not ids:
        return 0
    cur = conn.execute(
        """
        INSERT INTO teams (team_id)
        SELECT unnest(%s::text[])
        ON CONFLICT (team_id) DO NOTHING
        """,
        (ids,),
    )
    return cur.rowcount


def upsert_players(conn: psycopg.Connection, player_ids: Iterable[str]) -> int:
    """Insert-if-absent for each player id.  Returns the number newly created."""
    ids = sorted({p for p in player_ids if p})
    if not ids:
        return 0
    cur = conn.execute(
        """
        INSERT INTO players (player_id)
        SELECT unnest(%s::text[])
        ON CONFLICT (player_id) DO NOTHING
        """,
        (ids,),
    )
    return cur.rowcount


# ---------------------------------------------------------------------------
# Shared DB helpers: games
# ---------------------------------------------------------------------------

def upsert_game(conn: psycopg.Connection, game: Game) -> None:
    """Create the game, or OR-merge has_box/has_pbp into the existing row.

    Identity fields (date, number, site, teams, type) are never updated once
    the game exists.
    """
    conn.execute(
        """
        INSERT INTO games
            (game_id, game_date, game_number, site, home_team_id,
             away_team_id, game_type, has_box, has_pbp)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (game_id) DO UPDATE SET
          has_box = games.has_box OR EXCLUDED.has_box,
          has_pbp = games.has_pbp OR EXCLUDED.has_pbp
        """,
        (
            game.game_id, game.game_date, game.game_number, game.site,
            game.home_team_id, game.away_team_id, game.game_type,
            game.has_box, game.has_pbp,
        ),
    )


def get_game(conn: psycopg.Connection, game_id: str) -> Game | None:
    row = conn.execute(
        """
        SELECT game_id, game_date, game_number, site, home_team_id,
               away_team_id, game_type, has_box, has_pbp
        FROM games WHERE game_id = %s
        """,
        (game_id,),
    ).fetchone()
    if row is None:
        return None
    return Game(*row)


# ---------------------------------------------------------------------------
# Shared DB helpers: stat records
# ---------------------------------------------------------------------------

def _stat_upsert_sql(domain: str) -> str:
    table, record_cls = _STAT_TABLES[domain]
    cols = stat_columns(record_cls)
    key = ("game_id", "player_id", "stat_type")
    updates = ",\n          ".join(
        f"{c} = EXCLUDED.{c}" for c in cols if c not in key
    )
    return (
        f"INSERT INTO {table} ({', '.join(cols)})\n"
        f"VALUES ({', '.join(['%s'] * len(cols))})\n"
        f"ON CONFLICT (game_id, player_id, stat_type) DO UPDATE SET\n"
        f"          {updates}"
    )


def upsert_stat_records(
    conn: psycopg.Connection,
    domain: str,
    records: Sequence[StatRecord],
) -> int:
    """Insert or fully overwrite stat records keyed on (game, player, stat_type)."""
    if not records:
        return 0
    _, record_cls = _STAT_TABLES[domain]
    cols = stat_columns(record_cls)
    params = [tuple(getattr(r, c) for c in cols) for r in records]
    with conn.cursor() as cur:
        cur.executemany(_stat_upsert_sql(domain), params)
    return len(records)


def get_stat_records(
    conn: psycopg.Connection, domain: str, game_id: str
) -> list[StatRecord]:
    """Return every stat record of a domain for one game, ordered by player."""
    table, record_cls = _STAT_TABLES[domain]
    cols = stat_columns(record_cls)
    rows = conn.execute(
        f"SELECT {', '.join(cols)} FROM {table} "
        "WHERE game_id = %s ORDER BY player_id, stat_type",
        (game_id,),
    ).fetchall()
    return [record_cls(**dict(zip(cols, row))) for row in rows]


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    params: dict[str, Any],
    counters: Any,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    """Write a JSON run report; counters must expose to_dict()."""
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        **params,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
