"""
Tests for the document stores and the artifact publisher.
"""

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from rating_sync.persistence import (
    GAMES,
    MAX_BATCH_SIZE,
    PREDICTIONS,
    RESULTS,
    TEAMS,
    FileArtifactPublisher,
    InMemoryDocumentStore,
    PersistenceError,
    SqlDocumentStore,
)


@pytest.fixture
def sql_store():
    return SqlDocumentStore(create_engine("sqlite://"), batch_size=3)


class TestInMemoryStore:

    def test_batches_capped(self):
        store = InMemoryDocumentStore()
        docs = {f"g{i:04d}": {"game_id": f"g{i:04d}"} for i in range(1000)}
        written = store.save_batch("nfl", GAMES, docs)

        assert written == 1000
        assert store.batch_sizes == [MAX_BATCH_SIZE, MAX_BATCH_SIZE, 200], (
            f"Expected 400/400/200 batches, got {store.batch_sizes}"
        )
        assert len(store.load_collection("nfl", GAMES)) == 1000

    def test_empty_save_writes_nothing(self):
        store = InMemoryDocumentStore()
        assert store.save_batch("nfl", GAMES, {}) == 0
        assert store.batch_sizes == []

    def test_reads_are_copies(self):
        store = InMemoryDocumentStore()
        store.save_batch("nfl", TEAMS, {"1": {"rating": 1500.0}})
        loaded = store.load_collection("nfl", TEAMS)
        loaded["1"]["rating"] = 0.0
        assert store.load_collection("nfl", TEAMS)["1"]["rating"] == 1500.0

    def test_state_round_trip(self):
        store = InMemoryDocumentStore()
        assert store.get_state("nba") is None
        store.set_state("nba", {"sport": "nba", "season": 2026})
        assert store.get_state("nba") == {"sport": "nba", "season": 2026}


class TestSqlStore:

    def test_upsert_and_load(self, sql_store):
        sql_store.save_batch("nfl", TEAMS, {"1": {"rating": 1500.0}, "2": {"rating": 1480.0}})
        sql_store.save_batch("nfl", TEAMS, {"1": {"rating": 1521.0}})

        teams = sql_store.load_collection("nfl", TEAMS)
        assert teams == {"1": {"rating": 1521.0}, "2": {"rating": 1480.0}}

    def test_writes_in_batches(self, sql_store):
        docs = {f"g{i}": {"n": i} for i in range(7)}
        assert sql_store.save_batch("nfl", GAMES, docs) == 7
        assert len(sql_store.load_collection("nfl", GAMES)) == 7

    def test_sports_are_isolated(self, sql_store):
        sql_store.save_batch("nfl", TEAMS, {"1": {"sport": "nfl"}})
        sql_store.save_batch("nhl", TEAMS, {"1": {"sport": "nhl"}})
        assert sql_store.load_collection("nfl", TEAMS)["1"]["sport"] == "nfl"
        assert sql_store.load_collection("nhl", TEAMS)["1"]["sport"] == "nhl"

    def test_state(self, sql_store):
        assert sql_store.get_state("nfl") is None
        sql_store.set_state("nfl", {"sport": "nfl", "processed_game_ids": ["g1"]})
        sql_store.set_state("nfl", {"sport": "nfl", "processed_game_ids": ["g1", "g2"]})
        assert sql_store.get_state("nfl")["processed_game_ids"] == ["g1", "g2"]
        assert sql_store.load_collection("nfl", TEAMS) == {}

    def test_clear_collection(self, sql_store):
        sql_store.save_batch("nfl", GAMES, {"g1": {}, "g2": {}})
        sql_store.save_batch("nfl", TEAMS, {"1": {}})
        sql_store.clear_collection("nfl", GAMES)
        assert sql_store.load_collection("nfl", GAMES) == {}
        assert sql_store.load_collection("nfl", TEAMS) == {"1": {}}

    def test_bad_url_raises_persistence_error(self):
        with pytest.raises(PersistenceError):
            SqlDocumentStore.from_url("not-a-database-url")


class TestFilePublisher:

    def test_writes_artifact(self, tmp_path):
        publisher = FileArtifactPublisher(tmp_path / "out")
        location = publisher.publish("nfl", {"sport": "nfl", "games": []})

        target = tmp_path / "out" / "nfl-prediction-data.json"
        assert location == str(target)
        assert json.loads(target.read_text(encoding="utf-8")) == {"sport": "nfl", "games": []}
        assert [p.name for p in (tmp_path / "out").iterdir()] == ["nfl-prediction-data.json"]

    def test_overwrites_previous_artifact(self, tmp_path):
        publisher = FileArtifactPublisher(tmp_path)
        publisher.publish("nba", {"version": 1})
        publisher.publish("nba", {"version": 2})
        assert json.loads((tmp_path / "nba-prediction-data.json").read_text())["version"] == 2

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(PersistenceError):
            FileArtifactPublisher(blocker / "nested").publish("nfl", {})

    def test_unserializable_artifact_leaves_no_temp_file(self, tmp_path):
        artifact = {"sport": "nfl"}
        artifact["self"] = artifact
        with pytest.raises(PersistenceError):
            FileArtifactPublisher(tmp_path).publish("nfl", artifact)
        assert list(tmp_path.iterdir()) == [], "Expected the temp file to be removed"


class FailOnPredictions(InMemoryDocumentStore):
    def _write_batch(self, sport, collection, docs):
        if collection == PREDICTIONS:
            raise PersistenceError("write rejected")
        super()._write_batch(sport, collection, docs)


class TestSavePass:

    def test_in_memory_commits_everything(self):
        store = InMemoryDocumentStore()
        store.save_batch("nfl", RESULTS, {"old": {}})
        written = store.save_pass(
            "nfl",
            {TEAMS: {"1": {"rating": 1521.0}}, GAMES: {"g1": {}, "g2": {}}},
            {"sport": "nfl", "processed_game_ids": ["g1"]},
            clear=[RESULTS],
        )
        assert written == 3
        assert store.load_collection("nfl", RESULTS) == {}
        assert store.get_state("nfl")["processed_game_ids"] == ["g1"]

    def test_in_memory_failure_rolls_back(self):
        store = FailOnPredictions()
        store.save_batch("nfl", TEAMS, {"1": {"rating": 1500.0}})
        store.set_state("nfl", {"sport": "nfl", "processed_game_ids": []})

        with pytest.raises(PersistenceError):
            store.save_pass(
                "nfl",
                {TEAMS: {"1": {"rating": 1521.0}}, PREDICTIONS: {"g5": {}}},
                {"sport": "nfl", "processed_game_ids": ["g1"]},
            )

        assert store.load_collection("nfl", TEAMS)["1"]["rating"] == 1500.0, (
            "Expected ratings from the failed pass to be rolled back"
        )
        assert store.get_state("nfl")["processed_game_ids"] == []

    def test_sql_failure_rolls_back(self, sql_store, monkeypatch):
        sql_store.save_batch("nfl", TEAMS, {"1": {"rating": 1500.0}})
        upsert = SqlDocumentStore._upsert

        def failing_upsert(conn, sport, collection, docs):
            if collection == PREDICTIONS:
                raise OperationalError("INSERT", {}, Exception("disk full"))
            upsert(conn, sport, collection, docs)

        monkeypatch.setattr(SqlDocumentStore, "_upsert", staticmethod(failing_upsert))

        with pytest.raises(PersistenceError, match="rolled back"):
            sql_store.save_pass(
                "nfl",
                {TEAMS: {"1": {"rating": 1521.0}}, PREDICTIONS: {"g5": {}}},
                {"sport": "nfl", "processed_game_ids": ["g1"]},
            )

        assert sql_store.load_collection("nfl", TEAMS)["1"]["rating"] == 1500.0
        assert sql_store.get_state("nfl") is None

    def test_sql_batches_within_one_pass(self, sql_store):
        docs = {f"g{i}": {"n": i} for i in range(7)}
        assert sql_store.save_pass("nfl", {GAMES: docs}, {"sport": "nfl"}) == 7
        assert len(sql_store.load_collection("nfl", GAMES)) == 7
        assert sql_store.get_state("nfl") == {"sport": "nfl"}
