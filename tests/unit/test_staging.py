"""Unit tests for the page buffering of retro_fantasy.staging.StagingWriter."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from retro_fantasy.classify import BATTING_STAGING_COLUMNS
from retro_fantasy.staging import StagingWriter, staging_table


def _conn() -> MagicMock:
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = MagicMock()
    return conn


def _pages(conn: MagicMock) -> list[list[tuple]]:
    cur = conn.cursor.return_value.__enter__.return_value
    return [c.args[1] for c in cur.executemany.call_args_list]


class TestStagingTable:
    def test_known(self):
        assert staging_table("batting") == "staging_batting"
        assert staging_table("pitching") == "staging_pitching"

    def test_unknown(self):
        with pytest.raises(ValueError):
            staging_table("fielding")


class TestStagingWriter:
    def test_flushes_full_pages_and_tail(self):
        conn = _conn()
        w = StagingWriter(conn, "batting", "playing-2023.csv", batch_id="b1", page_size=2)
        for i in range(5):
            w.append({"gid": f"G{i}"})
        assert len(_pages(conn)) == 2
        result = w.close()
        pages = _pages(conn)
        assert [len(p) for p in pages] == [2, 2, 1]
        assert result.total_rows == 5
        assert result.batch_id == "b1"
        assert conn.transaction.call_count == 3

    def test_row_numbers_are_one_based_and_continuous(self):
        conn = _conn()
        w = StagingWriter(conn, "batting", "f.csv", batch_id="b1", page_size=2)
        for i in range(3):
            w.append({"gid": f"G{i}"})
        w.close()
        nums = [params[2] for page in _pages(conn) for params in page]
        assert nums == [1, 2, 3]

    def test_params_follow_column_order(self):
        conn = _conn()
        w = StagingWriter(conn, "batting", "f.csv", batch_id="b1")
        w.append({"gid": "G1", "vishome": "H"})
        w.close()
        params = _pages(conn)[0][0]
        assert params[:3] == ("b1", "f.csv", 1)
        values = dict(zip(BATTING_STAGING_COLUMNS, params[3:]))
        assert values["gid"] == "G1"
        assert values["vishome"] == "H"
        assert values["b_hr"] == ""

    def test_empty_stream_writes_nothing(self):
        conn = _conn()
        result = StagingWriter(conn, "pitching", "f.csv", batch_id="b1").close()
        assert result.total_rows == 0
        assert _pages(conn) == []

    def test_generates_batch_id(self):
        w = StagingWriter(_conn(), "batting", "f.csv")
        assert len(w.batch_id) == 36

    def test_append_after_close(self):
        w = StagingWriter(_conn(), "batting", "f.csv", batch_id="b1")
        w.close()
        with pytest.raises(RuntimeError):
            w.append({"gid": "G"})

    def test_failed_page_is_not_counted(self):
        conn = _conn()
        cur = conn.cursor.return_value.__enter__.return_value
        cur.executemany.side_effect = RuntimeError("db down")
        w = StagingWriter(conn, "batting", "f.csv", batch_id="b1", page_size=1)
        with pytest.raises(RuntimeError):
            w.append({"gid": "G"})
        assert w.rows_written == 0

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            StagingWriter(_conn(), "batting", "f.csv", page_size=0)
