"""
Tests for sport presets, environment settings and the CLI wiring.
"""

import pytest
from pydantic import ValidationError

from rating_sync.cli import build_orchestrator, build_parser, main
from rating_sync.config import NFL, SPORT_PRESETS, Settings, SportConfig, get_sport_config
from rating_sync.persistence import FileArtifactPublisher, SqlDocumentStore
from rating_sync.providers.espn import ESPNClient
from rating_sync.providers.odds_api import OddsApiClient


class TestPresets:

    def test_all_sports_present(self):
        assert sorted(SPORT_PRESETS) == ["cbb", "nba", "nfl", "nhl"]

    def test_only_nfl_uses_signals_and_avoid_band(self):
        assert NFL.weather_enabled and NFL.injuries_enabled
        assert NFL.spread_avoid_band == (5.5, None)
        for key in ("nba", "nhl", "cbb"):
            cfg = SPORT_PRESETS[key]
            assert not cfg.weather_enabled and cfg.spread_avoid_band is None

    def test_invalid_avoid_band(self):
        with pytest.raises(ValidationError):
            SportConfig.model_validate({**NFL.model_dump(), "spread_avoid_band": (7.0, 5.5)})

    def test_invalid_regression(self):
        with pytest.raises(ValidationError):
            SportConfig.model_validate({**NFL.model_dump(), "spread_regression": 1.5})


class TestSettings:

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SPORT_OVERRIDES__nba__elo_cap", "15")
        monkeypatch.setenv("STORE_BATCH_SIZE", "100")
        settings = Settings()

        assert settings.store_batch_size == 100
        nba = get_sport_config("NBA", settings)
        assert nba.elo_cap == 15.0
        assert SPORT_PRESETS["nba"].elo_cap == 20.0, "Expected presets to stay untouched"

    def test_no_overrides_returns_preset(self):
        assert get_sport_config("nfl", Settings()) is NFL

    def test_unknown_sport(self):
        with pytest.raises(KeyError):
            get_sport_config("mlb")

    def test_batch_size_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("STORE_BATCH_SIZE", "0")
        with pytest.raises(ValidationError):
            Settings()


class TestCli:

    def test_parser(self):
        args = build_parser().parse_args(["nba", "--reset", "--season", "2026", "--backfill-days", "14"])
        assert args.sport == "nba"
        assert args.reset and args.season == 2026 and args.backfill_days == 14
        assert not args.force_signals

    def test_unknown_sport_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["mlb"])

    def test_wiring_without_keys(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ODDS_API_KEY", raising=False)
        monkeypatch.delenv("WEATHER_API_KEY", raising=False)
        monkeypatch.delenv("INJURY_FEED_URL", raising=False)
        orchestrator = build_orchestrator(NFL, Settings(), "sqlite://", str(tmp_path))

        assert isinstance(orchestrator.schedule, ESPNClient)
        assert orchestrator.odds is orchestrator.schedule, "Expected ESPN lines without an odds key"
        assert orchestrator.weather is None and orchestrator.injuries is None
        assert isinstance(orchestrator.store, SqlDocumentStore)
        assert isinstance(orchestrator.publisher, FileArtifactPublisher)

    def test_wiring_with_odds_key(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ODDS_API_KEY", "a1b2c3d4e5")
        orchestrator = build_orchestrator(NFL, Settings(), "sqlite://", str(tmp_path))
        assert isinstance(orchestrator.odds, OddsApiClient)
        assert isinstance(orchestrator.closing_lines, ESPNClient)

    def test_setup_failure_exit_code(self, tmp_path, capsys):
        code = main(["nfl", "--database-url", "not-a-database-url", "--artifact-dir", str(tmp_path)])
        assert code == 1
        assert "setup failed" in capsys.readouterr().err
