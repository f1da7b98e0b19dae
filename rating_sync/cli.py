"""
Command-line entry point: one sync pass for one sport.

Usage:
    rating-sync nfl
    rating-sync nba --reset
    rating-sync cbb --season 2026 --backfill-days 14 --force-signals
    rating-sync nhl --database-url postgresql://... --artifact-dir /srv/artifacts

Exit code 0 on success, 1 on a failed pass.
"""

import argparse
import sys
from typing import Optional

import structlog

from .config import SPORT_PRESETS, Settings, SportConfig, get_sport_config
from .logging_config import configure_from_settings
from .orchestrator import SyncError, SyncOrchestrator, SyncReport, SyncRequest
from .persistence import FileArtifactPublisher, PersistenceError, SqlDocumentStore
from .providers.base import ProviderError, TransientProviderError
from .providers.espn import ESPNClient
from .providers.injuries import InjuryFeedClient
from .providers.odds_api import OddsApiClient
from .providers.weather import OpenWeatherClient
from .retry import RetryConfig

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rating-sync",
        description="Incremental Elo ratings, predictions and backtests - one pass per sport",
    )
    parser.add_argument(
        "sport",
        choices=sorted(SPORT_PRESETS),
        help="Sport to sync",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear processed games, tallies and results, and reseed ratings",
    )
    parser.add_argument(
        "--season",
        type=int,
        help="Season to sync (defaults to the season in progress)",
    )
    parser.add_argument(
        "--force-signals",
        action="store_true",
        help="Refetch weather and injury signals even if cached",
    )
    parser.add_argument(
        "--backfill-days",
        type=int,
        help="Days re-scanned for late-arriving final scores (default: BACKFILL_DAYS or 7)",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL of the document store (default: DATABASE_URL)",
    )
    parser.add_argument(
        "--artifact-dir",
        help="Directory the prediction artifact is published to (default: ARTIFACT_DIR)",
    )
    return parser


def build_orchestrator(
    config: SportConfig,
    settings: Settings,
    database_url: Optional[str] = None,
    artifact_dir: Optional[str] = None,
) -> SyncOrchestrator:
    """Wire providers, store and publisher from settings."""
    retry_config = RetryConfig(
        max_attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay_s,
        retryable_exceptions=(TransientProviderError,),
    )
    http = {"timeout": settings.http_timeout_s, "retry_config": retry_config}

    espn = ESPNClient(config, **http)

    odds = espn
    if settings.odds_api_key:
        try:
            odds = OddsApiClient(settings.odds_api_key, config, **http)
        except ProviderError as e:
            logger.warning("odds_api_disabled", reason=str(e))
    else:
        logger.info("odds_api_disabled", reason="ODDS_API_KEY not set; using ESPN lines")

    weather = None
    if config.weather_enabled and settings.weather_api_key:
        weather = OpenWeatherClient(settings.weather_api_key, **http)

    injuries = None
    if config.injuries_enabled and settings.injury_feed_url:
        injuries = InjuryFeedClient(settings.injury_feed_url, **http)

    store = SqlDocumentStore.from_url(
        database_url or settings.database_url,
        batch_size=settings.store_batch_size,
    )
    publisher = FileArtifactPublisher(artifact_dir or settings.artifact_dir)

    return SyncOrchestrator(
        config,
        store,
        publisher,
        schedule=espn,
        team_stats=espn,
        odds=odds,
        closing_lines=espn,
        weather=weather,
        injuries=injuries,
        signal_workers=settings.signal_workers,
        default_backfill_days=settings.backfill_days,
    )


def print_report(report: SyncReport) -> None:
    print()
    print("=" * 60)
    print(f"  {report.sport.upper()} SYNC - season {report.season}, period {report.period}")
    print("=" * 60)
    if report.reset:
        print("  State reset this pass")
    print(f"  Games processed:   {report.games_processed}")
    print(f"  Games skipped:     {report.games_skipped}")
    print(f"  Games failed:      {report.games_failed}")
    print(f"  Predictions:       {report.predictions}")
    print(f"  Lines locked:      {report.lines_locked}")
    if report.missing_market_spread:
        print(f"  No market spread:  {report.missing_market_spread}")
    print(f"  Artifact:          {report.artifact_location}")
    print(f"  Duration:          {report.duration_s:.2f}s")
    print()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = Settings()
    configure_from_settings(settings)
    config = get_sport_config(args.sport, settings)

    try:
        orchestrator = build_orchestrator(config, settings, args.database_url, args.artifact_dir)
    except (PersistenceError, ProviderError) as e:
        logger.error("sync_setup_failed", sport=args.sport, error=str(e))
        print(f"[ERROR] {args.sport} sync setup failed: {e}", file=sys.stderr)
        return 1

    request = SyncRequest(
        reset=args.reset,
        season=args.season,
        force_signals=args.force_signals,
        backfill_days=args.backfill_days,
    )

    try:
        report = orchestrator.run(request)
    except SyncError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        for line in e.logs:
            print(f"  {line}", file=sys.stderr)
        return 1

    print_report(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
