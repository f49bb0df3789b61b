"""retro_fantasy.transform

Transformer: turns unprocessed staging rows of one batch into Team,
Player, Game and stat-record rows.

Pipeline per page (one transaction per page):
  1. Read the first N unprocessed staging rows ordered by row_num
  2. Convert each row (string -> typed); rows missing identity are skipped
  3. Upsert teams, then players (insert-if-absent)
  4. Upsert one Game per distinct game id, flags OR-merged across the page
  5. Upsert each stat record (overwrite-all on the unique key)
  6. Mark every row of the page processed

Because only unprocessed rows are read, re-running a batch (after a crash
or on purpose) picks up exactly where the last committed page ended.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import psycopg

from retro_fantasy.normalize import (
    parse_bool,
    parse_game_date,
    parse_int,
    parse_nullable_bool,
    parse_nullable_int,
    parse_pbp_flag,
    trim,
)
from retro_fantasy.shared import (
    BATTING,
    DEFAULT_STAT_TYPE,
    PITCHING,
    BattingStat,
    Game,
    PitchingStat,
    StatRecord,
    upsert_game,
    upsert_players,
    upsert_stat_records,
    upsert_teams,
)
from retro_fantasy.staging import iter_processed_rows, mark_processed, read_unprocessed_page

log = logging.getLogger(__name__)

DEFAULT_TRANSFORM_PAGE_SIZE = 500


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class TransformResult:
    domain: str
    batch_id: str
    processed_rows: int = 0
    skipped_rows: int = 0
    pages: int = 0
    games: int = 0
    teams_created: int = 0
    players_created: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

@dataclass
class ConvertedRow:
    game: Game
    record: StatRecord


def _game_from_row(row: dict[str, str], game_id: str, team: str, opp: str | None) -> Game | None:
    game_date = parse_game_date(row.get("game_date"), game_id)
    if game_date is None:
        return None
    is_home = (row.get("vishome") or "").strip().upper() == "H"
    return Game(
        game_id=game_id,
        game_date=game_date,
        game_number=parse_int(row.get("game_number")),
        site=trim(row.get("site")),
        home_team_id=team if is_home else opp,
        away_team_id=opp if is_home else team,
        game_type=trim(row.get("gametype")),
        has_box=parse_bool(row.get("box")),
        has_pbp=parse_pbp_flag(row.get("pbp")),
    )


def _batting_record(row: dict[str, str], game_id: str, player_id: str, team: str,
                    opp: str | None, is_home: bool) -> BattingStat:
    return BattingStat(
        game_id=game_id,
        player_id=player_id,
        team_id=team,
        is_home=is_home,
        opponent_id=opp,
        plate_appearances=parse_int(row.get("b_pa")),
        at_bats=parse_int(row.get("b_ab")),
        runs=parse_int(row.get("b_r")),
        hits=parse_int(row.get("b_h")),
        doubles=parse_int(row.get("b_d")),
        triples=parse_int(row.get("b_t")),
        home_runs=parse_int(row.get("b_hr")),
        runs_batted_in=parse_int(row.get("b_rbi")),
        sacrifice_hits=parse_int(row.get("b_sh")),
        sacrifice_flies=parse_int(row.get("b_sf")),
        hit_by_pitch=parse_int(row.get("b_hbp")),
        walks=parse_int(row.get("b_w")),
        intentional_walks=parse_int(row.get("b_iw")),
        strikeouts=parse_int(row.get("b_k")),
        stolen_bases=parse_int(row.get("b_sb")),
        caught_stealing=parse_int(row.get("b_cs")),
        grounded_into_dp=parse_int(row.get("b_gdp")),
        reached_on_interference=parse_int(row.get("b_xi")),
        reached_on_error=parse_int(row.get("b_roe")),
        is_dh=parse_bool(row.get("dh")),
        is_ph=parse_bool(row.get("ph")),
        is_pr=parse_bool(row.get("pr")),
        team_won=parse_nullable_bool(row.get("win")),
        team_lost=parse_nullable_bool(row.get("loss")),
        team_tied=parse_nullable_bool(row.get("tie")),
        stat_type=trim(row.get("stattype")) or DEFAULT_STAT_TYPE,
        lineup_position=parse_nullable_int(row.get("b_lp")),
        batting_seq=parse_nullable_int(row.get("b_seq")),
    )


def _pitching_record(row: dict[str, str], game_id: str, player_id: str, team: str,
                     opp: str | None, is_home: bool) -> PitchingStat:
    return PitchingStat(
        game_id=game_id,
        player_id=player_id,
        team_id=team,
        is_home=is_home,
        opponent_id=opp,
        outs_pitched=parse_int(row.get("p_ipouts")),
        batters_faced=parse_int(row.get("p_bfp")),
        hits_allowed=parse_int(row.get("p_h")),
        doubles_allowed=parse_int(row.get("p_d")),
        triples_allowed=parse_int(row.get("p_t")),
        home_runs_allowed=parse_int(row.get("p_hr")),
        runs_allowed=parse_int(row.get("p_r")),
        earned_runs=parse_int(row.get("p_er")),
        walks=parse_int(row.get("p_w")),
        intentional_walks=parse_int(row.get("p_iw")),
        strikeouts=parse_int(row.get("p_k")),
        hit_batters=parse_int(row.get("p_hbp")),
        wild_pitches=parse_int(row.get("p_wp")),
        balks=parse_int(row.get("p_bk")),
        sacrifice_hits_allowed=parse_int(row.get("p_sh")),
        sacrifice_flies_allowed=parse_int(row.get("p_sf")),
        stolen_bases_allowed=parse_int(row.get("p_sb")),
        caught_stealing=parse_int(row.get("p_cs")),
        won=parse_bool(row.get("wp")),
        lost=parse_bool(row.get("lp")),
        saved=parse_bool(row.get("save_flag")),
        game_started=parse_bool(row.get("gs")),
        game_finished=parse_bool(row.get("gf")),
        complete_game=parse_bool(row.get("cg")),
        team_won=parse_nullable_bool(row.get("win")),
        team_lost=parse_nullable_bool(row.get("loss")),
        team_tied=parse_nullable_bool(row.get("tie")),
        stat_type=trim(row.get("stattype")) or DEFAULT_STAT_TYPE,
        pitching_seq=parse_nullable_int(row.get("p_seq")),
    )


def convert_row(domain: str, row: dict[str, str]) -> ConvertedRow | None:
    """Convert one staged row into (Game, stat record).

    Returns None when the row lacks a game id, player id, team, or a
    resolvable game date.
    """
    game_id = trim(row.get("gid"))
    player_id = trim(row.get("player_id"))
    team = trim(row.get("team"))
    if not (game_id and player_id and team):
        return None
    opp = trim(row.get("opp"))
    game = _game_from_row(row, game_id, team, opp)
    if game is None:
        return None
    is_home = game.home_team_id == team
    if domain == BATTING:
        record: StatRecord = _batting_record(row, game_id, player_id, team, opp, is_home)
    elif domain == PITCHING:
        record = _pitching_record(row, game_id, player_id, team, opp, is_home)
    else:
        raise ValueError(f"Unknown domain '{domain}'")
    return ConvertedRow(game=game, record=record)


def merge_page_games(converted: list[ConvertedRow]) -> list[Game]:
    """One Game per distinct game id; first row wins identity, flags OR-merge."""
    games: dict[str, Game] = {}
    for c in converted:
        existing = games.get(c.game.game_id)
        if existing is None:
            games[c.game.game_id] = Game(**asdict(c.game))
        else:
            existing.merge_flags(c.game)
    return list(games.values())


# ---------------------------------------------------------------------------
# Page + batch drivers
# ---------------------------------------------------------------------------

def _transform_page(
    conn: psycopg.Connection,
    domain: str,
    rows: list[dict],
    result: TransformResult,
) -> None:
    converted: list[ConvertedRow] = []
    for row in rows:
        c = convert_row(domain, row)
        if c is None:
            result.skipped_rows += 1
            log.debug("Skipping %s staging row id=%s: missing identity", domain, row.get("id"))
            continue
        converted.append(c)

    team_ids: set[str] = set()
    player_ids: set[str] = set()
    for c in converted:
        team_ids.add(c.record.team_id)
        if c.record.opponent_id:
            team_ids.add(c.record.opponent_id)
        player_ids.add(c.record.player_id)

    result.teams_created += upsert_teams(conn, team_ids)
    result.players_created += upsert_players(conn, player_ids)
    games = merge_page_games(converted)
    for game in games:
        upsert_game(conn, game)
    result.games += len(games)
    result.processed_rows += upsert_stat_records(conn, domain, [c.record for c in converted])
    mark_processed(conn, domain, [r["id"] for r in rows])


def transform_batch(
    conn: psycopg.Connection,
    domain: str,
    batch_id: str,
    page_size: int = DEFAULT_TRANSFORM_PAGE_SIZE,
) -> TransformResult:
    """Transform every unprocessed staging row of a batch, page by page.

    Each page commits atomically.  A failure propagates after rolling back
    only the page in flight; earlier pages stay committed and marked.
    """
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    result = TransformResult(domain=domain, batch_id=str(batch_id))
    while True:
        with conn.transaction():
            rows = read_unprocessed_page(conn, domain, batch_id, page_size)
            if not rows:
                break
            _transform_page(conn, domain, rows, result)
        result.pages += 1
        log.info(
            "%s batch %s: page %d done (%d processed, %d skipped so far)",
            domain, batch_id, result.pages, result.processed_rows, result.skipped_rows,
        )
    if result.skipped_rows:
        log.warning(
            "%s batch %s: skipped %d rows lacking game/player/team/date",
            domain, batch_id, result.skipped_rows,
        )
    return result


def tally_processed_rows(
    conn: psycopg.Connection,
    domain: str,
    batch_id: str,
    page_size: int = DEFAULT_TRANSFORM_PAGE_SIZE,
) -> TransformResult:
    """Recount rows of a batch that an earlier, interrupted run already
    transformed, split into converted and skipped the same way the
    transformer decides.  Writes nothing.
    """
    result = TransformResult(domain=domain, batch_id=str(batch_id))
    for row in iter_processed_rows(conn, domain, batch_id, page_size):
        if convert_row(domain, row) is None:
            result.skipped_rows += 1
        else:
            result.processed_rows += 1
    return result
