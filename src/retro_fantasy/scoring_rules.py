"""retro_fantasy.scoring_rules

Configurable fantasy-scoring rules engine.

Responsibilities:
  - Load and validate ruleset documents (YAML or JSON) from
    config/rulesets/*.yml
  - Compute an auditable point total for one stat record under a ruleset
  - Hash document content for traceability

Usage:
    from pathlib import Path
    from retro_fantasy.scoring_rules import compute_points, load_ruleset

    ruleset = load_ruleset(Path("config/rulesets/standard.yml"))
    result = compute_points(batting_stat, ruleset)
    result.total_points, result.breakdown

The engine is pure: it never touches the database, and identical inputs
always produce identical outputs (including breakdown order).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

import yaml

from retro_fantasy.shared import BATTING, DOMAINS, PITCHING, StatRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_OPS = ("gte", "lte", "gt", "lt", "eq")
VALID_COMBINATORS = ("AND", "OR")

# Ruleset stat name -> record attribute, per domain.  Membership in these
# tables also decides which domain an untagged bonus applies to.
BATTING_STATS: dict[str, str] = {
    "plate_appearances": "plate_appearances",
    "at_bats": "at_bats",
    "runs": "runs",
    "hits": "hits",
    "doubles": "doubles",
    "triples": "triples",
    "home_runs": "home_runs",
    "runs_batted_in": "runs_batted_in",
    "rbi": "runs_batted_in",
    "sacrifice_hits": "sacrifice_hits",
    "sacrifice_flies": "sacrifice_flies",
    "hit_by_pitch": "hit_by_pitch",
    "walks": "walks",
    "intentional_walks": "intentional_walks",
    "strikeouts": "strikeouts",
    "stolen_bases": "stolen_bases",
    "caught_stealing": "caught_stealing",
    "grounded_into_dp": "grounded_into_dp",
    "reached_on_interference": "reached_on_interference",
    "reached_on_error": "reached_on_error",
}

PITCHING_STATS: dict[str, str] = {
    "outs_pitched": "outs_pitched",
    "innings_pitched": "outs_pitched",
    "batters_faced": "batters_faced",
    "hits_allowed": "hits_allowed",
    "doubles_allowed": "doubles_allowed",
    "triples_allowed": "triples_allowed",
    "home_runs_allowed": "home_runs_allowed",
    "runs_allowed": "runs_allowed",
    "earned_runs": "earned_runs",
    "walks": "walks",
    "intentional_walks": "intentional_walks",
    "strikeouts": "strikeouts",
    "hit_batters": "hit_batters",
    "wild_pitches": "wild_pitches",
    "balks": "balks",
    "sacrifice_hits_allowed": "sacrifice_hits_allowed",
    "sacrifice_flies_allowed": "sacrifice_flies_allowed",
    "stolen_bases_allowed": "stolen_bases_allowed",
    "caught_stealing": "caught_stealing",
    "won": "won",
    "lost": "lost",
    "saved": "saved",
    "save": "saved",
    "game_started": "game_started",
    "game_finished": "game_finished",
    "complete_game": "complete_game",
}

STAT_TABLES: dict[str, dict[str, str]] = {
    BATTING: BATTING_STATS,
    PITCHING: PITCHING_STATS,
}

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RulesetValidationError(ValueError):
    """Raised when a ruleset document fails schema validation."""


# ---------------------------------------------------------------------------
# Ruleset dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    stat: str
    points: float
    per_unit: float | None = None


@dataclass(frozen=True)
class BonusCondition:
    stat: str
    op: str
    value: float


@dataclass(frozen=True)
class BonusRule:
    name: str
    conditions: tuple[BonusCondition, ...]
    logic: str
    points: float
    # Explicit applicable domain; None falls back to stat-name inference.
    domain: str | None = None


@dataclass
class Ruleset:
    """Parsed, validated fantasy ruleset."""

    id: str
    name: str
    batting: list[Rule]
    pitching: list[Rule]
    bonuses: list[BonusRule] = field(default_factory=list)
    description: str | None = None
    content_hash: str = ""

    def rules_for(self, domain: str) -> list[Rule]:
        return self.batting if domain == BATTING else self.pitching


@dataclass(frozen=True)
class PointBreakdown:
    stat: str
    value: float
    points: float
    calculation: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScoringResult:
    total_points: float
    breakdown: list[PointBreakdown]
    bonuses_applied: list[str]

    def breakdown_dicts(self) -> list[dict[str, Any]]:
        return [b.to_dict() for b in self.breakdown]


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_ruleset(path: Path) -> Ruleset:
    """Load, validate, and return a Ruleset from a YAML (or JSON) file.

    Raises:
        RulesetValidationError: If the document is malformed.
        FileNotFoundError: If the file does not exist.
    """
    raw = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RulesetValidationError(f"{path.name}: not valid YAML/JSON: {exc}") from exc
    return ruleset_from_dict(data, content=raw)


def ruleset_from_dict(data: Any, content: str | None = None) -> Ruleset:
    """Validate a ruleset mapping and build a Ruleset.

    ``content`` is the source text used for the content hash; when omitted
    the hash is taken over the canonical JSON form of ``data``.
    """
    validate_ruleset(data)
    if content is None:
        content = json.dumps(data, sort_keys=True, default=str)
    return Ruleset(
        id=str(data["id"]),
        name=str(data["name"]),
        description=data.get("description"),
        batting=[_rule_from_dict(r) for r in data["batting"]],
        pitching=[_rule_from_dict(r) for r in data["pitching"]],
        bonuses=[_bonus_from_dict(b) for b in (data.get("bonuses") or [])],
        content_hash=hashlib.sha256(content.encode("utf-8")).hexdigest(),
    )


def ruleset_to_dict(ruleset: Ruleset) -> dict[str, Any]:
    """Inverse of ruleset_from_dict (canonical key names)."""
    def rule(r: Rule) -> dict[str, Any]:
        out: dict[str, Any] = {"stat": r.stat, "points": r.points}
        if r.per_unit is not None:
            out["per_unit"] = r.per_unit
        return out

    def bonus(b: BonusRule) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": b.name,
            "conditions": [asdict(c) for c in b.conditions],
            "logic": b.logic,
            "points": b.points,
        }
        if b.domain is not None:
            out["domain"] = b.domain
        return out

    return {
        "id": ruleset.id,
        "name": ruleset.name,
        "description": ruleset.description,
        "batting": [rule(r) for r in ruleset.batting],
        "pitching": [rule(r) for r in ruleset.pitching],
        "bonuses": [bonus(b) for b in ruleset.bonuses],
    }


def _per_unit(data: dict[str, Any]) -> Any:
    for key in ("per_unit", "perUnit", "divisor"):
        if data.get(key) is not None:
            return data[key]
    return None


def _rule_from_dict(data: dict[str, Any]) -> Rule:
    per_unit = _per_unit(data)
    return Rule(
        stat=data["stat"],
        points=_number(data["points"]),
        per_unit=None if per_unit is None else _number(per_unit),
    )


def _bonus_from_dict(data: dict[str, Any]) -> BonusRule:
    logic = data.get("logic", data.get("combinator", "AND"))
    return BonusRule(
        name=str(data["name"]),
        conditions=tuple(
            BonusCondition(stat=c["stat"], op=c["op"], value=_number(c["value"]))
            for c in data["conditions"]
        ),
        logic=str(logic).upper(),
        points=_number(data["points"]),
        domain=data.get("domain"),
    )


def _number(value: Any) -> float:
    # Keep ints as ints so calculation strings read "2 * 1", not "2 * 1.0".
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, int):
        return value
    return float(value)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def validate_ruleset(data: Any) -> None:
    """Raise RulesetValidationError if data does not match the ruleset schema.

    Validates:
      - root is a mapping with non-empty 'id' and 'name'
      - 'batting' and 'pitching' are lists of {stat, points, per_unit?}
      - per_unit, when present, is a positive number
      - every bonus has a name, a non-empty condition list with known ops,
        logic AND/OR, numeric points, and an optional known domain
    """
    if not isinstance(data, dict):
        raise RulesetValidationError("Ruleset root must be a mapping.")

    for key in ("id", "name"):
        if not isinstance(data.get(key), str) or not data[key].strip():
            raise RulesetValidationError(f"Ruleset '{key}' must be a non-empty string.")

    for domain in DOMAINS:
        rules = data.get(domain)
        if not isinstance(rules, list):
            raise RulesetValidationError(f"'{domain}' must be a list of rules.")
        for i, rule in enumerate(rules):
            where = f"{domain}[{i}]"
            if not isinstance(rule, dict):
                raise RulesetValidationError(f"{where} must be a mapping.")
            if not isinstance(rule.get("stat"), str) or not rule["stat"]:
                raise RulesetValidationError(f"{where}.stat must be a non-empty string.")
            if not _is_number(rule.get("points")):
                raise RulesetValidationError(
                    f"{where}.points value '{rule.get('points')}' is not numeric."
                )
            per_unit = _per_unit(rule)
            if per_unit is not None and (not _is_number(per_unit) or float(per_unit) <= 0):
                raise RulesetValidationError(
                    f"{where}.per_unit value '{per_unit}' must be a positive number."
                )

    bonuses = data.get("bonuses")
    if bonuses is None:
        return
    if not isinstance(bonuses, list):
        raise RulesetValidationError("'bonuses' must be a list.")
    for i, bonus in enumerate(bonuses):
        where = f"bonuses[{i}]"
        if not isinstance(bonus, dict):
            raise RulesetValidationError(f"{where} must be a mapping.")
        if not isinstance(bonus.get("name"), str) or not bonus["name"]:
            raise RulesetValidationError(f"{where}.name must be a non-empty string.")
        logic = str(bonus.get("logic", bonus.get("combinator", "AND"))).upper()
        if logic not in VALID_COMBINATORS:
            raise RulesetValidationError(
                f"{where}.logic '{logic}' must be one of {list(VALID_COMBINATORS)}."
            )
        if not _is_number(bonus.get("points")):
            raise RulesetValidationError(f"{where}.points is not numeric.")
        domain = bonus.get("domain")
        if domain is not None and domain not in DOMAINS:
            raise RulesetValidationError(
                f"{where}.domain '{domain}' must be one of {list(DOMAINS)}."
            )
        conditions = bonus.get("conditions")
        if not isinstance(conditions, list) or not conditions:
            raise RulesetValidationError(f"{where}.conditions must be a non-empty list.")
        for j, cond in enumerate(conditions):
            cwhere = f"{where}.conditions[{j}]"
            if not isinstance(cond, dict):
                raise RulesetValidationError(f"{cwhere} must be a mapping.")
            if not isinstance(cond.get("stat"), str) or not cond["stat"]:
                raise RulesetValidationError(f"{cwhere}.stat must be a non-empty string.")
            if cond.get("op") not in VALID_OPS:
                raise RulesetValidationError(
                    f"{cwhere}.op '{cond.get('op')}' must be one of {list(VALID_OPS)}."
                )
            if not _is_number(cond.get("value")):
                raise RulesetValidationError(f"{cwhere}.value is not numeric.")


# ---------------------------------------------------------------------------
# Scoring engine
# ---------------------------------------------------------------------------

def round_points(value: float | Decimal) -> float:
    """Round half-up to 2 decimal places (2.675 -> 2.68)."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def _fmt(n: float) -> str:
    if isinstance(n, float) and n.is_integer():
        return str(int(n))
    return str(n)


def resolve_stat(record: StatRecord, stat: str) -> float | None:
    """Return the numeric value of a ruleset stat name for a record.

    Aliases are resolved through the record domain's stat table; unknown
    names fall back to a same-named attribute.  Booleans become 1/0.
    Unknown or non-numeric attributes yield None.
    """
    attr = STAT_TABLES[record.domain].get(stat, stat)
    value = getattr(record, attr, None)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    return None


def bonus_applies_to(bonus: BonusRule, domain: str) -> bool:
    if bonus.domain is not None:
        return bonus.domain == domain
    table = STAT_TABLES[domain]
    return any(c.stat in table for c in bonus.conditions)


def _condition_met(record: StatRecord, cond: BonusCondition) -> bool:
    value = resolve_stat(record, cond.stat)
    if value is None:
        value = 0
    if cond.op == "gte":
        return value >= cond.value
    if cond.op == "lte":
        return value <= cond.value
    if cond.op == "gt":
        return value > cond.value
    if cond.op == "lt":
        return value < cond.value
    return value == cond.value


def bonus_satisfied(record: StatRecord, bonus: BonusRule) -> bool:
    results = [_condition_met(record, c) for c in bonus.conditions]
    return all(results) if bonus.logic == "AND" else any(results)


def _rule_points(record: StatRecord, rule: Rule) -> PointBreakdown | None:
    value = resolve_stat(record, rule.stat)
    if value is None or value == 0:
        return None
    if rule.per_unit:
        raw = Decimal(str(value)) / Decimal(str(rule.per_unit)) * Decimal(str(rule.points))
        calculation = f"{_fmt(value)}/{_fmt(rule.per_unit)} * {_fmt(rule.points)}"
    else:
        raw = Decimal(str(value)) * Decimal(str(rule.points))
        calculation = f"{_fmt(value)} * {_fmt(rule.points)}"
    return PointBreakdown(
        stat=rule.stat,
        value=value,
        points=round_points(raw),
        calculation=calculation,
    )


def compute_points(record: StatRecord, ruleset: Ruleset) -> ScoringResult:
    """Score one stat record under a ruleset.

    Rules are applied in declared order; zero and missing values contribute
    nothing and produce no breakdown entry.  Bonuses applicable to the
    record's domain are then evaluated in declared order.  The total is the
    sum of the rounded per-entry points, rounded half-up to 2 dp.
    """
    breakdown: list[PointBreakdown] = []
    total = Decimal("0")

    for rule in ruleset.rules_for(record.domain):
        entry = _rule_points(record, rule)
        if entry is None:
            continue
        breakdown.append(entry)
        total += Decimal(str(entry.points))

    bonuses_applied: list[str] = []
    for bonus in ruleset.bonuses:
        if not bonus_applies_to(bonus, record.domain):
            continue
        if not bonus_satisfied(record, bonus):
            continue
        bonuses_applied.append(bonus.name)
        breakdown.append(PointBreakdown(
            stat=f"bonus:{bonus.name}",
            value=1,
            points=bonus.points,
            calculation=f"Bonus: {bonus.name}",
        ))
        total += Decimal(str(bonus.points))

    return ScoringResult(
        total_points=round_points(total),
        breakdown=breakdown,
        bonuses_applied=bonuses_applied,
    )
