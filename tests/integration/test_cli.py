"""Integration tests for the retro-fantasy command line entry point."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from retro_fantasy.cli import main


@pytest.fixture
def run_cli(db_conn, tmp_path, monkeypatch):
    """Invoke the CLI against the test database from inside tmp_path."""
    _, dsn = db_conn
    monkeypatch.chdir(tmp_path)
    for var in ("DATABASE_URL", "STAGING_PAGE_SIZE", "TRANSFORM_PAGE_SIZE",
                "HTTP_TIMEOUT_SECONDS", "RETRO_DATA_DIR"):
        monkeypatch.delenv(var, raising=False)
    runner = CliRunner()

    def _invoke(*args: str):
        return runner.invoke(main, ["--db-dsn", dsn, *args])
    return _invoke


class TestMigrateMode:
    def test_migrate_then_noop(self, run_cli):
        first = run_cli("--mode", "migrate")
        assert first.exit_code == 0, first.output
        assert "Applied 4 migration(s)" in first.output
        second = run_cli("--mode", "migrate")
        assert "Applied 0 migration(s)" in second.output


class TestIngestMode:
    def test_offline_ingest_writes_report(self, run_cli, tmp_path, data_dir,
                                          make_playing_file, season_rows):
        make_playing_file(2023, season_rows)
        result = run_cli("--mode", "ingest", "--years", "2023", "--offline",
                         "--data-dir", str(data_dir), "--run-id", "run-1")
        assert result.exit_code == 0, result.output
        assert "2023: completed" in result.output

        report = json.loads((tmp_path / "artifacts" / "reports" / "run-1.json").read_text())
        assert report["mode"] == "ingest"
        assert report["years"] == [2023]
        assert report["counters"]["years_ingested"] == 1
        assert report["counters"]["batting_rows_processed"] == 3

        again = run_cli("--mode", "ingest", "--years", "2023", "--offline",
                        "--data-dir", str(data_dir))
        assert "already ingested" in again.output

    def test_failed_year_exits_nonzero(self, run_cli, data_dir, make_playing_file, season_rows):
        make_playing_file(2023, season_rows)
        result = run_cli("--mode", "ingest", "--years", "2022-2023", "--offline",
                         "--data-dir", str(data_dir))
        assert result.exit_code == 1
        assert "2022: FAILED" in result.output
        assert "2023: completed" in result.output

    def test_bad_years(self, run_cli):
        result = run_cli("--mode", "ingest", "--years", "2023-2020")
        assert result.exit_code == 1
        assert "--years is required" in result.output

    def test_staged_then_resumed(self, run_cli, data_dir, make_playing_file, season_rows):
        make_playing_file(2023, season_rows)
        staged = run_cli("--mode", "ingest", "--years", "2023", "--offline",
                         "--data-dir", str(data_dir), "--skip-transform")
        assert "2023: staged" in staged.output
        resumed = run_cli("--mode", "ingest", "--years", "2023", "--resume")
        assert resumed.exit_code == 0, resumed.output
        assert "2023: completed" in resumed.output

    def test_resume_with_nothing_open(self, run_cli, tmp_path):
        result = run_cli("--mode", "ingest", "--years", "2023", "--resume",
                         "--run-id", "run-2")
        assert result.exit_code == 0, result.output
        assert "2023: no in_progress batches to resume" in result.output
        report = json.loads((tmp_path / "artifacts" / "reports" / "run-2.json").read_text())
        assert report["counters"]["years_ingested"] == 0
        assert report["counters"]["years_skipped"] == 1


class TestScoreMode:
    def test_unknown_ruleset_lists_available(self, run_cli, tmp_path):
        result = run_cli("--mode", "score", "--ruleset", "nope", "--years", "2023",
                         "--presets-dir", str(tmp_path))
        assert result.exit_code == 1
        assert "Ruleset not found: nope" in result.output
        assert "Available rulesets" in result.output

    def test_scores_ingested_year(self, run_cli, data_dir, make_playing_file, season_rows):
        make_playing_file(2023, season_rows)
        run_cli("--mode", "ingest", "--years", "2023", "--offline", "--data-dir", str(data_dir))
        result = run_cli("--mode", "score", "--ruleset", "standard", "--years", "2023")
        assert result.exit_code == 0, result.output
        assert "Loaded ruleset: Standard" in result.output
        assert "Games scored: 2" in result.output

    def test_date_range(self, run_cli, data_dir, make_playing_file, season_rows):
        make_playing_file(2023, season_rows)
        run_cli("--mode", "ingest", "--years", "2023", "--offline", "--data-dir", str(data_dir))
        result = run_cli("--mode", "score", "--start-date", "2023-04-15",
                         "--end-date", "2023-04-15")
        assert result.exit_code == 0, result.output
        assert "Games considered: 1" in result.output

    def test_half_open_date_range_rejected(self, run_cli):
        result = run_cli("--mode", "score", "--start-date", "2023-04-15")
        assert result.exit_code == 1

    def test_bad_date(self, run_cli):
        result = run_cli("--mode", "score", "--start-date", "04/15/2023",
                         "--end-date", "2023-04-30")
        assert result.exit_code == 1
        assert "YYYY-MM-DD" in result.output


class TestSeedMode:
    def test_seed(self, run_cli):
        result = run_cli("--mode", "seed_rulesets")
        assert result.exit_code == 0, result.output
        assert "standard" in result.output
