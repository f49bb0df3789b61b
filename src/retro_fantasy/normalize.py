"""Normalization functions for retrosplits ingestion.

Staged values are stored verbatim as text; these helpers convert them to
typed values at transform time.  Malformed input is defaulted, never
rejected.
"""

from __future__ import annotations

import re
from datetime import date, datetime

_TRUE_TOKENS = frozenset({"1", "true", "y"})
_PBP_TOKENS = frozenset({"y", "d"})
_INT_RE = re.compile(r"^[+-]?\d+")
_GAME_ID_DATE_RE = re.compile(r"^[A-Z0-9]{3}(\d{8})\d?$")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: integers
# ---------------------------------------------------------------------------

def parse_nullable_int(value: str | None) -> int | None:
    """Return the leading integer of value, or None when empty or non-numeric.

    A leading integer prefix is honoured ("3.0" -> 3, "12abc" -> 12).
    """
    v = trim(value)
    if v is None:
        return None
    m = _INT_RE.match(v)
    if not m:
        return None
    return int(m.group(0))


def parse_int(value: str | None) -> int:
    """Required integer field: empty or non-numeric defaults to 0."""
    n = parse_nullable_int(value)
    return 0 if n is None else n


# ---------------------------------------------------------------------------
# Rule 3: booleans
# ---------------------------------------------------------------------------

def parse_bool(value: str | None) -> bool:
    """True iff value is '1', 'true' or 'y' (case-insensitive)."""
    v = trim(value)
    if v is None:
        return False
    return v.lower() in _TRUE_TOKENS


def parse_nullable_bool(value: str | None) -> bool | None:
    """Like parse_bool, but an empty value stays None (unknown)."""
    if trim(value) is None:
        return None
    return parse_bool(value)


def parse_pbp_flag(value: str | None) -> bool:
    """Play-by-play availability: 'y' (full) or 'd' (deduced) count as True."""
    v = trim(value)
    if v is None:
        return False
    return v.lower() in _PBP_TOKENS


# ---------------------------------------------------------------------------
# Rule 4: game dates
# ---------------------------------------------------------------------------

def parse_game_date(value: str | None, game_id: str | None = None) -> date | None:
    """Parse a game date.

    Accepts ISO ``YYYY-MM-DD`` or compact ``YYYYMMDD``.  When neither parses,
    falls back to the date embedded in a retrosheet game id
    (``TTTYYYYMMDDN``, e.g. ``BOS202304150``).  Returns None when nothing
    yields a valid calendar date.
    """
    v = trim(value)
    if v is not None:
        for fmt in ("%Y-%m-%d", "%Y%m%d"):
            try:
                return datetime.strptime(v, fmt).date()
            except ValueError:
                continue
    gid = trim(game_id)
    if gid is None:
        return None
    m = _GAME_ID_DATE_RE.match(gid.upper())
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1), "%Y%m%d").date()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Rule 5: year ranges
# ---------------------------------------------------------------------------

def parse_year_range(value: str | None) -> list[int]:
    """Parse '2020-2023' or '2018,2020-2022' into a sorted list of unique years.

    Whitespace around tokens is ignored.  Any malformed token (including a
    reversed range) makes the whole expression invalid and returns [].
    """
    v = trim(value)
    if v is None:
        return []
    years: set[int] = set()
    for part in v.split(","):
        token = part.strip()
        if not token:
            return []
        if "-" in token:
            lo_s, _, hi_s = token.partition("-")
            lo_s, hi_s = lo_s.strip(), hi_s.strip()
            if not (lo_s.isdigit() and hi_s.isdigit()):
                return []
            lo, hi = int(lo_s), int(hi_s)
            if lo > hi:
                return []
            years.update(range(lo, hi + 1))
        elif token.isdigit():
            years.add(int(token))
        else:
            return []
    return sorted(years)
