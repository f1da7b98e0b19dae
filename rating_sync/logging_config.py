"""
structlog setup for sync passes.

Every line carries the service name and, once a pass starts, the sport and
season being synced. Production runs emit one JSON object per line; local
runs can switch to the console renderer with ``JSON_LOGS=false``.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Keys a pass binds into the contextvars; cleared between passes.
PASS_CONTEXT_KEYS = ("sport", "season", "period")


def _drop_empty(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Remove keyword fields that were passed as None."""
    return {k: v for k, v in event_dict.items() if v is not None}


def _renderer(json_logs: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: str = "rating-sync",
) -> None:
    """
    Route structlog through stdlib logging at ``log_level``.

    Safe to call more than once; the CLI calls it again after loading
    Settings so the environment wins over import-time defaults.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _drop_empty,
            structlog.processors.format_exc_info,
            _renderer(json_logs),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def configure_from_settings(settings: Any) -> None:
    """Apply the ``log_level``/``json_logs``/``service_name`` fields of Settings."""
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        service_name=settings.service_name,
    )


def bind_sync_context(sport: str, season: int | None = None, period: str | None = None) -> None:
    """Replace the pass context with this sport (and season/period when known)."""
    structlog.contextvars.unbind_contextvars(*PASS_CONTEXT_KEYS)
    context: dict[str, Any] = {"sport": sport}
    if season is not None:
        context["season"] = season
    if period is not None:
        context["period"] = period
    structlog.contextvars.bind_contextvars(**context)


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: Exception,
    context: dict[str, Any] | None = None,
) -> None:
    """Log a caught exception with its type, message and traceback."""
    fields = dict(context or {})
    fields.setdefault("error_type", type(error).__name__)
    logger.error("sync_error", error=str(error), exc_info=error, **fields)


def log_prediction(
    logger: structlog.stdlib.BoundLogger,
    game_id: str,
    home_team: str,
    away_team: str,
    **kwargs: Any,
) -> None:
    logger.info(
        "prediction_generated",
        game_id=game_id,
        matchup=f"{away_team} @ {home_team}",
        **kwargs,
    )
