"""
Market line lifecycle: OPEN -> UPDATING -> LOCKED.

- First quote: sets opening AND last-seen values (UPDATING)
- Later quotes: overwrite last-seen only
- Within the lock window of kickoff (default 60 min), with a quote on record:
  closing := last-seen, locked_at := now (LOCKED)
- LOCKED records never change; late quotes are dropped

Quotes are fetched only for scheduled games that are not locked, so a slate
of locked lines costs zero provider calls. Grading reads the locked value,
then the last-seen value, then nothing.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

import structlog

from .config import SportConfig
from .logging_config import log_error
from .metrics import LINES_BACKFILLED, LINES_LOCKED, PROVIDER_FAILURES, QUOTES_OBSERVED, SyncMetrics
from .models import Game, GameStatus, LineRecord, MarketQuote
from .providers.base import ProviderError

logger = structlog.get_logger(__name__)

QuoteFetcher = Callable[[list[Game]], dict[str, MarketQuote]]


def market_spread(record: Optional[LineRecord]) -> Optional[float]:
    """Spread used for grading: closing if locked, else last seen."""
    if record is None:
        return None
    if record.is_locked and record.closing_spread is not None:
        return record.closing_spread
    return record.last_seen_spread


def market_total(record: Optional[LineRecord]) -> Optional[float]:
    """Total used for grading: closing if locked, else last seen."""
    if record is None:
        return None
    if record.is_locked and record.closing_total is not None:
        return record.closing_total
    return record.last_seen_total


class LineLifecycleManager:
    """Per-game line state transitions for one sport."""

    def __init__(self, config: SportConfig, metrics: Optional[SyncMetrics] = None):
        self.config = config
        self.metrics = metrics or SyncMetrics()
        self.lock_window = timedelta(minutes=config.lock_window_minutes)

    # Reads
    market_spread = staticmethod(market_spread)
    market_total = staticmethod(market_total)

    def observe(self, record: LineRecord, quote: MarketQuote, now: datetime) -> LineRecord:
        """Apply a quote to a record, returning the new record."""
        if record.is_locked:
            logger.info(
                "late_quote_rejected",
                game_id=record.game_id,
                locked_at=record.locked_at.isoformat(),
            )
            return record
        if quote.is_empty:
            return record

        self.metrics.inc(QUOTES_OBSERVED)
        return replace(
            record,
            opening_spread=record.opening_spread if record.opening_spread is not None else quote.spread,
            opening_total=record.opening_total if record.opening_total is not None else quote.total,
            last_seen_spread=quote.spread if quote.spread is not None else record.last_seen_spread,
            last_seen_total=quote.total if quote.total is not None else record.last_seen_total,
            captured_at=record.captured_at or now,
            last_updated_at=now,
        )

    def is_due(self, kickoff: datetime, now: datetime) -> bool:
        return kickoff - now <= self.lock_window

    def lock_if_due(self, record: LineRecord, kickoff: datetime, now: datetime) -> LineRecord:
        """Freeze last-seen values into closing once kickoff is inside the lock window."""
        if record.is_locked or not record.has_quote or not self.is_due(kickoff, now):
            return record

        self.metrics.inc(LINES_LOCKED)
        logger.info(
            "line_locked",
            game_id=record.game_id,
            closing_spread=record.last_seen_spread,
            closing_total=record.last_seen_total,
        )
        return replace(
            record,
            closing_spread=record.last_seen_spread,
            closing_total=record.last_seen_total,
            locked_at=now,
        )

    def lock_due(
        self,
        records: dict[str, LineRecord],
        games: Iterable[Game],
        now: datetime,
    ) -> dict[str, LineRecord]:
        """Lock every due record; returns a new mapping."""
        updated = dict(records)
        for game in games:
            record = updated.get(game.game_id)
            if record is not None:
                updated[game.game_id] = self.lock_if_due(record, game.kickoff, now)
        return updated

    def refresh(
        self,
        records: dict[str, LineRecord],
        games: Iterable[Game],
        fetch_quotes: QuoteFetcher,
        now: datetime,
    ) -> dict[str, LineRecord]:
        """
        Observe fresh quotes for unlocked scheduled games, then lock due lines.

        Any fetch failure keeps the existing records; the pass goes on.
        """
        games = list(games)
        updated = dict(records)

        candidates = [
            g for g in games
            if g.status == GameStatus.SCHEDULED
            and not (g.game_id in updated and updated[g.game_id].is_locked)
        ]

        quotes: dict[str, MarketQuote] = {}
        if candidates:
            try:
                quotes = fetch_quotes(candidates)
            except ProviderError as e:
                self.metrics.inc(PROVIDER_FAILURES)
                logger.warning("quote_fetch_failed", games=len(candidates), error=str(e))
            except Exception as e:
                self.metrics.inc(PROVIDER_FAILURES)
                log_error(logger, e, {"stage": "quote_fetch", "games": len(candidates)})
        else:
            logger.debug("quote_fetch_skipped", reason="all_lines_locked")

        for game in candidates:
            quote = quotes.get(game.game_id)
            if quote is None:
                continue
            record = updated.get(game.game_id) or LineRecord(game_id=game.game_id)
            updated[game.game_id] = self.observe(record, quote, now)

        return self.lock_due(updated, games, now)

    def backfill_closing(self, game: Game, quote: MarketQuote, now: datetime) -> LineRecord:
        """
        Record a historical line for a completed game that never got one.

        The line is opening and closing at once and is locked immediately.
        """
        self.metrics.inc(LINES_BACKFILLED)
        return LineRecord(
            game_id=game.game_id,
            opening_spread=quote.spread,
            opening_total=quote.total,
            last_seen_spread=quote.spread,
            last_seen_total=quote.total,
            closing_spread=quote.spread,
            closing_total=quote.total,
            captured_at=now,
            last_updated_at=now,
            locked_at=now,
            source="backfill",
        )
