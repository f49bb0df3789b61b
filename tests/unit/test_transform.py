"""Unit tests for row conversion in retro_fantasy.transform (no DB)."""

from __future__ import annotations

from datetime import date

import pytest

from retro_fantasy.shared import BattingStat, PitchingStat
from retro_fantasy.transform import convert_row, merge_page_games


def _staged(**overrides) -> dict:
    row = {
        "id": 1,
        "gid": "BOS202304150",
        "player_id": "devere001",
        "team": "BOS",
        "game_date": "2023-04-15",
        "game_number": "0",
        "site": "BOS07",
        "vishome": "H",
        "opp": "NYA",
        "gametype": "R",
        "box": "",
        "pbp": "",
        "stattype": "",
        "win": "",
        "loss": "",
        "tie": "",
    }
    row.update(overrides)
    return row


class TestConvertBatting:
    def test_home_batter(self):
        c = convert_row("batting", _staged(b_h="3", b_hr="1", b_rbi="2", b_lp="4", dh="1"))
        assert isinstance(c.record, BattingStat)
        assert c.record.hits == 3
        assert c.record.home_runs == 1
        assert c.record.runs_batted_in == 2
        assert c.record.lineup_position == 4
        assert c.record.is_dh is True
        assert c.record.is_home is True
        assert c.game.home_team_id == "BOS"
        assert c.game.away_team_id == "NYA"
        assert c.game.game_date == date(2023, 4, 15)

    def test_away_batter(self):
        c = convert_row("batting", _staged(team="NYA", opp="BOS", vishome="V"))
        assert c.record.is_home is False
        assert c.game.home_team_id == "BOS"
        assert c.game.away_team_id == "NYA"

    def test_missing_counts_default_to_zero(self):
        c = convert_row("batting", _staged(b_h="", b_ab="x"))
        assert c.record.hits == 0
        assert c.record.at_bats == 0

    def test_empty_stat_type_becomes_default(self):
        assert convert_row("batting", _staged()).record.stat_type == "value"

    def test_explicit_stat_type_kept(self):
        assert convert_row("batting", _staged(stattype="lineup")).record.stat_type == "lineup"

    def test_unknown_outcome_is_none(self):
        c = convert_row("batting", _staged())
        assert c.record.team_won is None
        assert c.record.team_lost is None

    def test_known_outcome(self):
        c = convert_row("batting", _staged(win="1", loss="0"))
        assert c.record.team_won is True
        assert c.record.team_lost is False

    def test_flags(self):
        c = convert_row("batting", _staged(box="1", pbp="d"))
        assert c.game.has_box is True
        assert c.game.has_pbp is True


class TestConvertPitching:
    def test_pitcher_line(self):
        c = convert_row("pitching", _staged(
            player_id="salech001", p_ipouts="27", p_k="10", p_er="1",
            wp="1", cg="1", gs="1", save_flag="",
        ))
        assert isinstance(c.record, PitchingStat)
        assert c.record.outs_pitched == 27
        assert c.record.strikeouts == 10
        assert c.record.earned_runs == 1
        assert c.record.won is True
        assert c.record.complete_game is True
        assert c.record.game_started is True
        assert c.record.saved is False


class TestSkippedRows:
    @pytest.mark.parametrize("field", ["gid", "player_id", "team"])
    def test_missing_identity(self, field):
        assert convert_row("batting", _staged(**{field: ""})) is None

    def test_unresolvable_date(self):
        assert convert_row("batting", _staged(gid="garbage", game_date="")) is None

    def test_date_recovered_from_game_id(self):
        c = convert_row("batting", _staged(game_date=""))
        assert c.game.game_date == date(2023, 4, 15)

    def test_unknown_domain(self):
        with pytest.raises(ValueError, match="Unknown domain"):
            convert_row("fielding", _staged())


class TestMergePageGames:
    def test_one_game_per_id_with_flags_or_merged(self):
        rows = [
            convert_row("batting", _staged(box="", pbp="")),
            convert_row("batting", _staged(player_id="judga001", team="NYA", opp="BOS",
                                           vishome="V", box="1")),
            convert_row("batting", _staged(player_id="x", pbp="y")),
        ]
        games = merge_page_games(rows)
        assert len(games) == 1
        assert games[0].has_box is True
        assert games[0].has_pbp is True
        assert games[0].home_team_id == "BOS"

    def test_does_not_mutate_row_games(self):
        first = convert_row("batting", _staged())
        second = convert_row("batting", _staged(box="1"))
        merge_page_games([first, second])
        assert first.game.has_box is False

    def test_distinct_games(self):
        rows = [
            convert_row("batting", _staged()),
            convert_row("batting", _staged(gid="BOS202304160", game_date="2023-04-16")),
        ]
        assert [g.game_id for g in merge_page_games(rows)] == ["BOS202304150", "BOS202304160"]
