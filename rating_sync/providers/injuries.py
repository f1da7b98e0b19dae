"""
Injury report feed adapter.

The feed is a JSON document at INJURY_FEED_URL, either already grouped:

    {"teams": {"WAS": {"players": [{"player": "...", "position": "QB", "status": "Out"}]}}}

or as flat rows:

    [{"team": "Washington Commanders", "name": "...", "position": "QB", "status": "Out"}]

Teams may be keyed by ESPN id, abbreviation or display name.
"""

from typing import Any, Optional

import requests
import structlog
from pydantic import ValidationError

from ..models import InjuryReport, PlayerInjury, TeamInjuries
from ..retry import RetryConfig
from .base import HttpProvider, InjuryProvider, ProviderError

logger = structlog.get_logger(__name__)


def parse_injury_feed(data: Any) -> InjuryReport:
    """Validate a raw feed payload into an InjuryReport."""
    try:
        if isinstance(data, dict) and "teams" in data:
            return InjuryReport.model_validate(
                {
                    "period": data.get("period"),
                    "teams": {
                        key: {"team": key, **(value or {})}
                        for key, value in (data.get("teams") or {}).items()
                    },
                }
            )

        if isinstance(data, list):
            teams: dict[str, TeamInjuries] = {}
            for row in data:
                team = str(row.get("team") or "").strip()
                if not team:
                    continue
                player = PlayerInjury(
                    player=str(row.get("player") or row.get("name") or ""),
                    position=str(row.get("position") or "").strip().upper(),
                    status=str(row.get("status") or "").strip(),
                )
                teams.setdefault(team, TeamInjuries(team=team)).players.append(player)
            return InjuryReport(teams=teams)
    except (ValidationError, AttributeError, TypeError) as e:
        raise ProviderError(f"Malformed injury feed: {e}") from e

    raise ProviderError(f"Unrecognized injury feed shape: {type(data).__name__}")


class InjuryFeedClient(HttpProvider, InjuryProvider):
    """Reads the injury report from a JSON feed URL."""

    def __init__(
        self,
        url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        super().__init__(session=session, timeout=timeout, retry_config=retry_config)
        if not url:
            raise ProviderError("INJURY_FEED_URL not configured")
        self.url = url

    def fetch_report(self) -> InjuryReport:
        report = parse_injury_feed(self.get_json(self.url))
        starters_out = sorted(k for k, t in report.teams.items() if t.starter_passer_out)
        logger.info("injury_report_fetched", teams=len(report.teams), starters_out=starters_out)
        return report
