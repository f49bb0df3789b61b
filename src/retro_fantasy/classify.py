"""retro_fantasy.classify

Row classifier for unified retrosplits ``playing-YYYY.csv`` files.

Each source row describes one player's appearance in one game and may
carry batting columns (``B_*``), pitching columns (``P_*``), both (two-way
player), or neither.  The classifier decides which domains a row belongs
to and projects it into the column layout of ``staging_batting`` /
``staging_pitching``.

Pure: no I/O apart from the lazy CSV reader at the bottom.
"""

from __future__ import annotations

import csv
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from retro_fantasy.normalize import parse_nullable_int

# ---------------------------------------------------------------------------
# Column maps
# ---------------------------------------------------------------------------

# Bump when either map below changes so staged rows remain traceable.
COLUMN_MAP_VERSION = "2"

# Identity columns shared by both domains: staging column -> source column.
_IDENTITY_COLUMNS: dict[str, str] = {
    "gid": "game.key",
    "player_id": "person.key",
    "team": "team.key",
    "game_date": "game.date",
    "game_number": "game.number",
    "site": "site.key",
    "opp": "opponent.key",
    "gametype": "season.phase",
}

# staging column -> source column.  None means "not present in the unified
# file"; the staged value is an empty string.
BATTING_COLUMN_MAP: dict[str, str | None] = {
    **_IDENTITY_COLUMNS,
    "b_pa": "B_PA",
    "b_ab": "B_AB",
    "b_r": "B_R",
    "b_h": "B_H",
    "b_d": "B_2B",
    "b_t": "B_3B",
    "b_hr": "B_HR",
    "b_rbi": "B_RBI",
    "b_sh": "B_SH",
    "b_sf": "B_SF",
    "b_hbp": "B_HP",
    "b_w": "B_BB",
    "b_iw": "B_IBB",
    "b_k": "B_SO",
    "b_sb": "B_SB",
    "b_cs": "B_CS",
    "b_gdp": "B_GDP",
    "b_xi": "B_XI",
    "b_roe": None,
    "dh": "B_G_DH",
    "ph": "B_G_PH",
    "pr": "B_G_PR",
    "win": None,
    "loss": None,
    "tie": None,
    "box": None,
    "pbp": None,
    "stattype": None,
    "b_lp": "slot",
    "b_seq": "seq",
}

PITCHING_COLUMN_MAP: dict[str, str | None] = {
    **_IDENTITY_COLUMNS,
    "p_ipouts": "P_OUT",
    "p_noout": None,
    "p_bfp": "P_TBF",
    "p_h": "P_H",
    "p_d": "P_2B",
    "p_t": "P_3B",
    "p_hr": "P_HR",
    "p_r": "P_R",
    "p_er": "P_ER",
    "p_w": "P_BB",
    "p_iw": "P_IBB",
    "p_k": "P_SO",
    "p_hbp": "P_HP",
    "p_wp": "P_WP",
    "p_bk": "P_BK",
    "p_sh": "P_SH",
    "p_sf": "P_SF",
    "p_sb": None,
    "p_cs": None,
    "p_pb": None,
    "wp": "P_W",
    "lp": "P_L",
    "save_flag": "P_SV",
    "gs": "P_GS",
    "gf": "P_GF",
    "cg": "P_CG",
    "win": None,
    "loss": None,
    "tie": None,
    "box": None,
    "pbp": None,
    "stattype": None,
    "p_seq": "seq",
}

# Staging column order (vishome is derived, not mapped).
BATTING_STAGING_COLUMNS: tuple[str, ...] = tuple(BATTING_COLUMN_MAP) + ("vishome",)
PITCHING_STAGING_COLUMNS: tuple[str, ...] = tuple(PITCHING_COLUMN_MAP) + ("vishome",)

HOME_ALIGNMENT = "1"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassifiedRow:
    batting: dict[str, str] | None
    pitching: dict[str, str] | None

    @property
    def is_two_way(self) -> bool:
        return self.batting is not None and self.pitching is not None

    @property
    def is_empty(self) -> bool:
        return self.batting is None and self.pitching is None


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def _games_played(row: dict[str, str], column: str) -> int:
    n = parse_nullable_int(row.get(column))
    return n if n is not None else 0


def has_batting(row: dict[str, str]) -> bool:
    """True iff the row's batting-games count (B_G) is a positive integer."""
    return _games_played(row, "B_G") > 0


def has_pitching(row: dict[str, str]) -> bool:
    """True iff the row's pitching-games count (P_G) is a positive integer."""
    return _games_played(row, "P_G") > 0


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------

def _vishome(row: dict[str, str]) -> str:
    return "H" if (row.get("team.alignment") or "").strip() == HOME_ALIGNMENT else "V"


def _project(row: dict[str, str], column_map: dict[str, str | None]) -> dict[str, str]:
    out: dict[str, str] = {}
    for staging_col, source_col in column_map.items():
        out[staging_col] = "" if source_col is None else (row.get(source_col) or "")
    out["vishome"] = _vishome(row)
    return out


def to_batting_row(row: dict[str, str]) -> dict[str, str]:
    """Project a raw playing row into the staging_batting column layout."""
    return _project(row, BATTING_COLUMN_MAP)


def to_pitching_row(row: dict[str, str]) -> dict[str, str]:
    """Project a raw playing row into the staging_pitching column layout."""
    return _project(row, PITCHING_COLUMN_MAP)


def classify_row(row: dict[str, str]) -> ClassifiedRow:
    """Split one raw row into its batting and/or pitching projections."""
    return ClassifiedRow(
        batting=to_batting_row(row) if has_batting(row) else None,
        pitching=to_pitching_row(row) if has_pitching(row) else None,
    )


# ---------------------------------------------------------------------------
# Source reader
# ---------------------------------------------------------------------------

def read_playing_rows(path: Path) -> Iterator[dict[str, str]]:
    """Lazily yield raw rows from a header-having playing CSV.

    Header names are whitespace-stripped; missing trailing cells read as
    empty strings.
    """
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        if reader.fieldnames:
            reader.fieldnames = [h.strip() for h in reader.fieldnames]
        for raw in reader:
            yield {k: (v if v is not None else "") for k, v in raw.items() if k is not None}
