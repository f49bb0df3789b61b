"""retro_fantasy.scoring_run

Persisted fantasy scoring: ruleset registry plus per-game, date-range and
season scoring runs writing ``fantasy_game_points``.

Rulesets are looked up in ``fantasy_rulesets`` first, then in the preset
directory (``config/rulesets/{id}.yml``); a preset found on disk is
registered so later runs read it from the DB.  A miss returns None.

Every stored point row is recomputed from scratch with the pure engine in
retro_fantasy.scoring_rules and overwrites any prior row for the same
(ruleset, game, player, domain).
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path

import psycopg

from retro_fantasy.scoring_rules import (
    Ruleset,
    RulesetValidationError,
    compute_points,
    load_ruleset,
    ruleset_from_dict,
    ruleset_to_dict,
)
from retro_fantasy.shared import BATTING, DOMAINS, get_game, get_stat_records

log = logging.getLogger(__name__)

DEFAULT_PRESETS_DIR = Path(__file__).resolve().parents[2] / "config" / "rulesets"
STANDARD_RULESET_ID = "standard"


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class ScoreCounters:
    games_considered: int = 0
    games_scored: int = 0
    games_skipped_already_scored: int = 0
    batting_scored: int = 0
    pitching_scored: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def build_score_report(counters: ScoreCounters, ruleset_id: str) -> str:
    return "\n".join([
        f"Scoring summary (ruleset={ruleset_id}):",
        f"  Games considered: {counters.games_considered}",
        f"  Games scored: {counters.games_scored}",
        f"  Games skipped (already scored): {counters.games_skipped_already_scored}",
        f"  Batting records: {counters.batting_scored}",
        f"  Pitching records: {counters.pitching_scored}",
    ])


# ---------------------------------------------------------------------------
# Ruleset registry
# ---------------------------------------------------------------------------

def register_ruleset(conn: psycopg.Connection, ruleset: Ruleset) -> None:
    """Insert or replace a ruleset row keyed on its id."""
    doc = ruleset_to_dict(ruleset)
    conn.execute(
        """
        INSERT INTO fantasy_rulesets
            (ruleset_id, name, description, batting_rules, pitching_rules,
             bonus_rules, content_hash)
        VALUES (%s, %s, %s, %s::jsonb, %s::jsonb, %s::jsonb, %s)
        ON CONFLICT (ruleset_id) DO UPDATE SET
          name = EXCLUDED.name,
          description = EXCLUDED.description,
          batting_rules = EXCLUDED.batting_rules,
          pitching_rules = EXCLUDED.pitching_rules,
          bonus_rules = EXCLUDED.bonus_rules,
          content_hash = EXCLUDED.content_hash,
          updated_at = now()
        """,
        (
            ruleset.id, ruleset.name, ruleset.description,
            json.dumps(doc["batting"]), json.dumps(doc["pitching"]),
            json.dumps(doc["bonuses"]), ruleset.content_hash,
        ),
    )


def get_ruleset(conn: psycopg.Connection, ruleset_id: str) -> Ruleset | None:
    row = conn.execute(
        """
        SELECT ruleset_id, name, description, batting_rules, pitching_rules,
               bonus_rules, content_hash
        FROM fantasy_rulesets WHERE ruleset_id = %s
        """,
        (ruleset_id,),
    ).fetchone()
    if row is None:
        return None
    rid, name, description, batting, pitching, bonuses, content_hash = row
    ruleset = ruleset_from_dict({
        "id": rid,
        "name": name,
        "description": description,
        "batting": batting,
        "pitching": pitching,
        "bonuses": bonuses or [],
    })
    if content_hash:
        ruleset.content_hash = content_hash
    return ruleset


def list_rulesets(conn: psycopg.Connection) -> list[tuple[str, str]]:
    """(id, name) of every registered ruleset, ordered by id."""
    rows = conn.execute(
        "SELECT ruleset_id, name FROM fantasy_rulesets ORDER BY ruleset_id"
    ).fetchall()
    return [(r[0], r[1]) for r in rows]


def load_preset(ruleset_id: str, presets_dir: Path = DEFAULT_PRESETS_DIR) -> Ruleset | None:
    """Load ``{presets_dir}/{ruleset_id}.yml`` (or .yaml/.json) if present."""
    for suffix in (".yml", ".yaml", ".json"):
        path = presets_dir / f"{ruleset_id}{suffix}"
        if path.is_file():
            return load_ruleset(path)
    return None


def get_or_load_ruleset(
    conn: psycopg.Connection,
    ruleset_id: str,
    presets_dir: Path = DEFAULT_PRESETS_DIR,
) -> Ruleset | None:
    """DB first, then preset file (registered on load).  Miss -> None."""
    ruleset = get_ruleset(conn, ruleset_id)
    if ruleset is not None:
        return ruleset
    try:
        ruleset = load_preset(ruleset_id, presets_dir)
    except RulesetValidationError as exc:
        log.error("Preset ruleset %s is invalid: %s", ruleset_id, exc)
        return None
    if ruleset is None:
        return None
    if ruleset.id != ruleset_id:
        log.error("Preset file %s declares id %r", ruleset_id, ruleset.id)
        return None
    register_ruleset(conn, ruleset)
    return ruleset


def seed_rulesets(conn: psycopg.Connection, presets_dir: Path = DEFAULT_PRESETS_DIR) -> list[str]:
    """Register every preset document in presets_dir; returns ids registered."""
    ids: list[str] = []
    for path in sorted(presets_dir.glob("*.y*ml")):
        ruleset = load_ruleset(path)
        register_ruleset(conn, ruleset)
        ids.append(ruleset.id)
    return ids


# ---------------------------------------------------------------------------
# Scoring runs
# ---------------------------------------------------------------------------

def upsert_fantasy_points(
    conn: psycopg.Connection,
    ruleset_id: str,
    game_id: str,
    player_id: str,
    domain: str,
    total_points: float,
    breakdown: list[dict],
    game_date: date,
) -> None:
    conn.execute(
        """
        INSERT INTO fantasy_game_points
            (ruleset_id, game_id, player_id, stat_type, total_points,
             breakdown, game_date)
        VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s)
        ON CONFLICT (ruleset_id, game_id, player_id, stat_type) DO UPDATE SET
          total_points = EXCLUDED.total_points,
          breakdown = EXCLUDED.breakdown,
          game_date = EXCLUDED.game_date,
          calculated_at = now()
        """,
        (ruleset_id, game_id, player_id, domain, total_points,
         json.dumps(breakdown), game_date),
    )


def score_game(
    conn: psycopg.Connection,
    ruleset: Ruleset,
    game_id: str,
    counters: ScoreCounters | None = None,
) -> ScoreCounters:
    """Score every batting and pitching record of one game.

    Raises LookupError if the game does not exist.
    """
    counters = counters or ScoreCounters()
    game = get_game(conn, game_id)
    if game is None:
        raise LookupError(f"Game not found: {game_id}")
    with conn.transaction():
        for domain in DOMAINS:
            for record in get_stat_records(conn, domain, game_id):
                result = compute_points(record, ruleset)
                upsert_fantasy_points(
                    conn, ruleset.id, game_id, record.player_id, domain,
                    result.total_points, result.breakdown_dicts(), game.game_date,
                )
                if domain == BATTING:
                    counters.batting_scored += 1
                else:
                    counters.pitching_scored += 1
    counters.games_scored += 1
    return counters


def _already_scored(conn: psycopg.Connection, ruleset_id: str, game_id: str) -> bool:
    row = conn.execute(
        """
        SELECT EXISTS (
            SELECT 1 FROM fantasy_game_points
            WHERE ruleset_id = %s AND game_id = %s
        )
        """,
        (ruleset_id, game_id),
    ).fetchone()
    return bool(row[0])


def score_date_range(
    conn: psycopg.Connection,
    ruleset: Ruleset,
    start: date,
    end: date,
    force: bool = False,
) -> ScoreCounters:
    """Score every game dated within [start, end].

    Games that already have points under this ruleset are skipped unless
    force is set.
    """
    counters = ScoreCounters()
    rows = conn.execute(
        """
        SELECT game_id FROM games
        WHERE game_date BETWEEN %s AND %s
        ORDER BY game_date, game_id
        """,
        (start, end),
    ).fetchall()
    for (game_id,) in rows:
        counters.games_considered += 1
        if not force and _already_scored(conn, ruleset.id, game_id):
            counters.games_skipped_already_scored += 1
            continue
        score_game(conn, ruleset, game_id, counters)
    log.info(
        "Scored %d games (%d skipped) with ruleset %s",
        counters.games_scored, counters.games_skipped_already_scored, ruleset.id,
    )
    return counters


def score_year(
    conn: psycopg.Connection,
    ruleset: Ruleset,
    year: int,
    force: bool = False,
) -> ScoreCounters:
    return score_date_range(conn, ruleset, date(year, 1, 1), date(year, 12, 31), force=force)
