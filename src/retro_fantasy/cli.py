"""retro_fantasy.cli

Unified command line entry point.

Modes:
  migrate        apply pending migrations/*.sql
  ingest         download, stage and transform playing-YYYY.csv per year
  score          compute fantasy points for a year range or date range
  seed_rulesets  register every preset under config/rulesets/
  sync_players   fill player names from the Chadwick register

Examples:
    retro-fantasy --mode migrate
    retro-fantasy --mode ingest --years 2019-2023
    retro-fantasy --mode score --ruleset standard --years 2023
    retro-fantasy --mode score --ruleset standard \\
        --start-date 2023-04-01 --end-date 2023-04-30 --force
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import date, datetime
from pathlib import Path

import click
import psycopg

from retro_fantasy.config import ConfigError, load_settings
from retro_fantasy.fetch import HttpFetcher, LocalFileFetcher, SourceUnavailableError
from retro_fantasy.ingest import (
    STATUS_FAILED,
    STATUS_NOTHING_TO_RESUME,
    STATUS_SKIPPED,
    IngestOptions,
    ingest_year,
    resume_year,
)
from retro_fantasy.migrate import DEFAULT_MIGRATIONS_DIR, apply_migrations
from retro_fantasy.normalize import parse_year_range
from retro_fantasy.players import sync_player_names
from retro_fantasy.scoring_run import (
    DEFAULT_PRESETS_DIR,
    STANDARD_RULESET_ID,
    ScoreCounters,
    build_score_report,
    get_or_load_ruleset,
    list_rulesets,
    score_date_range,
    score_year,
    seed_rulesets,
)
from retro_fantasy.shared import RunCounters, write_run_report


def _parse_date(value: str | None, flag: str, run_id: str) -> date | None:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        click.echo(f"[{run_id}] ERROR: {flag} must be YYYY-MM-DD, got {value!r}", err=True)
        sys.exit(1)


def _require_years(years_expr: str | None, run_id: str) -> list[int]:
    years = parse_year_range(years_expr)
    if not years:
        click.echo(
            f"[{run_id}] ERROR: --years is required (e.g. 2023, 2019-2023, 2018,2020-2022); "
            f"got {years_expr!r}",
            err=True,
        )
        sys.exit(1)
    return years


@click.command()
@click.option(
    "--mode",
    default="ingest",
    type=click.Choice(["migrate", "ingest", "score", "seed_rulesets", "sync_players"]),
    show_default=True,
    help="Pipeline mode",
)
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (default: DATABASE_URL / DB_* env)")
@click.option("--years", "years_expr", default=None, help="[ingest|score] Year or range, e.g. 2018,2020-2022")
@click.option("--force", is_flag=True, default=False, help="[ingest|score|sync_players] Redo work already done")
@click.option("--skip-transform", is_flag=True, default=False, help="[ingest] Stage only; leave batches in_progress")
@click.option("--resume", is_flag=True, default=False, help="[ingest] Finish in_progress batches instead of re-ingesting")
@click.option("--local-file", default=None, type=click.Path(exists=True, dir_okay=False), help="[ingest] Use this playing CSV (single year only)")
@click.option("--data-dir", default=None, type=click.Path(file_okay=False), help="Download cache directory (default: RETRO_DATA_DIR or ./data)")
@click.option("--offline", is_flag=True, default=False, help="[ingest|sync_players] Only use files already in --data-dir")
@click.option("--ruleset", "ruleset_id", default=STANDARD_RULESET_ID, show_default=True, help="[score] Ruleset id")
@click.option("--start-date", default=None, help="[score] First game date (YYYY-MM-DD)")
@click.option("--end-date", default=None, help="[score] Last game date (YYYY-MM-DD)")
@click.option("--presets-dir", default=str(DEFAULT_PRESETS_DIR), type=click.Path(file_okay=False), show_default=True)
@click.option("--migrations-dir", default=str(DEFAULT_MIGRATIONS_DIR), type=click.Path(file_okay=False), show_default=True)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    db_dsn: str | None,
    years_expr: str | None,
    force: bool,
    skip_transform: bool,
    resume: bool,
    local_file: str | None,
    data_dir: str | None,
    offline: bool,
    ruleset_id: str,
    start_date: str | None,
    end_date: str | None,
    presets_dir: str,
    migrations_dir: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Retrosplits ingestion and fantasy scoring CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    try:
        settings = load_settings()
    except ConfigError as exc:
        click.echo(f"[{run_id}] FATAL: bad configuration: {exc}", err=True)
        sys.exit(1)
    db_dsn = db_dsn or settings.db_dsn
    cache_dir = Path(data_dir) if data_dir else settings.data_dir

    click.echo(f"[{run_id}] Starting {mode} run")

    if mode == "ingest":
        years = _require_years(years_expr, run_id)
        if local_file and len(years) != 1:
            click.echo(f"[{run_id}] ERROR: --local-file needs exactly one year", err=True)
            sys.exit(1)
        if offline:
            fetcher = LocalFileFetcher(data_dir=cache_dir)
        else:
            fetcher = HttpFetcher(
                base_url=settings.retrosplits_base_url,
                data_dir=cache_dir,
                timeout=settings.http_timeout,
            )
        options = IngestOptions(
            force=force,
            skip_transform=skip_transform,
            local_file=Path(local_file) if local_file else None,
            staging_page_size=settings.staging_page_size,
            transform_page_size=settings.transform_page_size,
        )
        counters = RunCounters(years_requested=len(years))
        results = []
        with psycopg.connect(db_dsn, autocommit=True) as conn:
            for year in years:
                click.echo(f"[{run_id}] {'Resuming' if resume else 'Ingesting'} {year}...")
                if resume:
                    res = resume_year(conn, year, options)
                else:
                    res = ingest_year(conn, year, fetcher, options)
                results.append(res)
                counters.rows_read += res.rows_read
                counters.batting_rows_staged += res.batting_rows_staged
                counters.pitching_rows_staged += res.pitching_rows_staged
                counters.batting_rows_processed += res.batting_rows_processed
                counters.pitching_rows_processed += res.pitching_rows_processed
                counters.rows_skipped += res.rows_skipped
                counters.games_upserted += res.games_upserted
                if res.status == STATUS_FAILED:
                    counters.years_failed += 1
                    counters.warnings.append(f"{year}: {res.error}")
                    click.echo(f"[{run_id}] {year}: FAILED: {res.error}", err=True)
                elif res.status == STATUS_SKIPPED:
                    counters.years_skipped += 1
                    click.echo(f"[{run_id}] {year}: already ingested, skipped (use --force)")
                elif res.status == STATUS_NOTHING_TO_RESUME:
                    counters.years_skipped += 1
                    click.echo(f"[{run_id}] {year}: no in_progress batches to resume")
                else:
                    counters.years_ingested += 1
                    click.echo(
                        f"[{run_id}] {year}: {res.status} "
                        f"(batting {res.batting_rows_processed}/{res.batting_rows_staged}, "
                        f"pitching {res.pitching_rows_processed}/{res.pitching_rows_staged})"
                    )
        report_path = write_run_report(
            run_id, started_at, mode,
            {"years": years, "results": [r.to_dict() for r in results]},
            counters,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        if counters.years_failed:
            sys.exit(1)
        return

    if mode == "score":
        start = _parse_date(start_date, "--start-date", run_id)
        end = _parse_date(end_date, "--end-date", run_id)
        if (start is None) != (end is None):
            click.echo(f"[{run_id}] ERROR: --start-date and --end-date go together", err=True)
            sys.exit(1)
        years = [] if start is not None else _require_years(years_expr, run_id)
        with psycopg.connect(db_dsn, autocommit=True) as conn:
            ruleset = get_or_load_ruleset(conn, ruleset_id, Path(presets_dir))
            if ruleset is None:
                click.echo(f"[{run_id}] Ruleset not found: {ruleset_id}", err=True)
                available = list_rulesets(conn)
                click.echo(f"[{run_id}] Available rulesets:", err=True)
                for rid, name in available:
                    click.echo(f"  - {rid}: {name}", err=True)
                if not available:
                    click.echo("  (none - try --mode seed_rulesets)", err=True)
                sys.exit(1)
            click.echo(f"[{run_id}] Loaded ruleset: {ruleset.name}")
            total = ScoreCounters()
            if start is not None:
                parts = [score_date_range(conn, ruleset, start, end, force=force)]
            else:
                parts = [score_year(conn, ruleset, y, force=force) for y in years]
            for part in parts:
                for key, value in part.to_dict().items():
                    setattr(total, key, getattr(total, key) + value)
        click.echo(build_score_report(total, ruleset.id))
        report_path = write_run_report(
            run_id, started_at, mode,
            {"ruleset": ruleset.id, "years": years,
             "start_date": start_date, "end_date": end_date, "force": force},
            total,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        return

    counters = RunCounters()
    with psycopg.connect(db_dsn, autocommit=True) as conn:
        if mode == "migrate":
            applied = apply_migrations(conn, Path(migrations_dir))
            counters.migrations_applied = len(applied)
            click.echo(f"[{run_id}] Applied {len(applied)} migration(s): {applied}")
            params = {"migrations_dir": migrations_dir}
        elif mode == "seed_rulesets":
            ids = seed_rulesets(conn, Path(presets_dir))
            counters.rulesets_registered = len(ids)
            click.echo(f"[{run_id}] Registered rulesets: {ids}")
            params = {"presets_dir": presets_dir}
        else:
            if offline:
                register_fetcher = LocalFileFetcher(data_dir=cache_dir)
            else:
                register_fetcher = HttpFetcher(
                    base_url=settings.register_base_url,
                    data_dir=cache_dir,
                    timeout=settings.http_timeout,
                )
            try:
                res = sync_player_names(conn, register_fetcher, force=force)
            except SourceUnavailableError as exc:
                click.echo(f"[{run_id}] FATAL: register download failed: {exc}", err=True)
                sys.exit(1)
            counters.players_missing_names = res.players_missing_names
            counters.players_named = res.players_named
            click.echo(
                f"[{run_id}] Named {res.players_named} of "
                f"{res.players_missing_names} players missing names"
            )
            params = {"data_dir": str(cache_dir)}

    report_path = write_run_report(run_id, started_at, mode, params, counters)
    click.echo(f"[{run_id}] Run report: {report_path}")


if __name__ == "__main__":
    main()
