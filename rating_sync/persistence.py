"""
Persistence: the per-sport document store and the artifact publisher.

Store layout, per sport:
- state document (SyncState)
- collections: teams, games, oddsLocks, weather, injuries, results, predictions

Writes go out in batches of at most 400 documents. A pass commits all of
its collections and the state document as one unit through `save_pass`,
so ratings never land without the processed ids that produced them.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger(__name__)

MAX_BATCH_SIZE = 400
STATE_COLLECTION = "_state"

TEAMS = "teams"
GAMES = "games"
ODDS_LOCKS = "oddsLocks"
WEATHER = "weather"
INJURIES = "injuries"
RESULTS = "results"
PREDICTIONS = "predictions"

COLLECTIONS = (TEAMS, GAMES, ODDS_LOCKS, WEATHER, INJURIES, RESULTS, PREDICTIONS)

_CLEAR = text("DELETE FROM sync_documents WHERE sport = :sport AND collection = :collection")


class PersistenceError(Exception):
    """A store write/read or artifact publish failed."""


def _json(value: Dict[str, Any]) -> str:
    return json.dumps(value, default=str, ensure_ascii=False, sort_keys=True)


def _batches(items: list, size: int) -> Iterable[list]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class DocumentStore(ABC):
    """Per-sport document store."""

    batch_size: int = MAX_BATCH_SIZE

    @abstractmethod
    def get_state(self, sport: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def set_state(self, sport: str, state: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def load_collection(self, sport: str, collection: str) -> Dict[str, Dict[str, Any]]:
        """All documents of a collection keyed by document id."""

    @abstractmethod
    def _write_batch(self, sport: str, collection: str, docs: list[tuple[str, Dict[str, Any]]]) -> None:
        ...

    @abstractmethod
    def clear_collection(self, sport: str, collection: str) -> None:
        ...

    def save_batch(self, sport: str, collection: str, docs: Dict[str, Dict[str, Any]]) -> int:
        """Upsert documents in batches of at most batch_size. Returns the count written."""
        items = sorted(docs.items())
        for batch in _batches(items, self.batch_size):
            self._write_batch(sport, collection, batch)
        if items:
            logger.debug("store_collection_saved", sport=sport, collection=collection, documents=len(items))
        return len(items)

    @abstractmethod
    def save_pass(
        self,
        sport: str,
        collections: Dict[str, Dict[str, Dict[str, Any]]],
        state: Dict[str, Any],
        clear: Iterable[str] = (),
    ) -> int:
        """
        Clear, upsert and write the state document as one all-or-nothing unit.

        Returns the number of collection documents written. On failure
        nothing from the call is visible to later reads.
        """


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store. Documents are copied on the way in and out."""

    def __init__(self, batch_size: int = MAX_BATCH_SIZE):
        self.batch_size = batch_size
        self._data: dict[tuple[str, str], dict[str, Dict[str, Any]]] = {}
        self.batch_sizes: list[int] = []

    def get_state(self, sport: str) -> Optional[Dict[str, Any]]:
        doc = self._data.get((sport, STATE_COLLECTION), {}).get(sport)
        return copy.deepcopy(doc) if doc is not None else None

    def set_state(self, sport: str, state: Dict[str, Any]) -> None:
        self._write_batch(sport, STATE_COLLECTION, [(sport, state)])

    def load_collection(self, sport: str, collection: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._data.get((sport, collection), {}))

    def _write_batch(self, sport: str, collection: str, docs: list[tuple[str, Dict[str, Any]]]) -> None:
        # Round-trip through JSON so stored documents look like they would in a real store
        bucket = self._data.setdefault((sport, collection), {})
        for doc_id, body in docs:
            bucket[doc_id] = json.loads(_json(body))
        self.batch_sizes.append(len(docs))

    def clear_collection(self, sport: str, collection: str) -> None:
        self._data.pop((sport, collection), None)

    def save_pass(
        self,
        sport: str,
        collections: Dict[str, Dict[str, Dict[str, Any]]],
        state: Dict[str, Any],
        clear: Iterable[str] = (),
    ) -> int:
        snapshot = copy.deepcopy(self._data)
        try:
            for name in clear:
                self.clear_collection(sport, name)
            written = sum(self.save_batch(sport, name, docs) for name, docs in collections.items())
            self.set_state(sport, state)
        except Exception:
            self._data = snapshot
            raise
        return written


class SqlDocumentStore(DocumentStore):
    """
    SQLAlchemy-backed store: one `sync_documents` table holding JSON bodies.

    Works on SQLite and Postgres.
    """

    def __init__(self, engine: Engine, batch_size: int = MAX_BATCH_SIZE):
        self.engine = engine
        self.batch_size = batch_size
        self._ensure_schema()

    @classmethod
    def from_url(cls, database_url: str, batch_size: int = MAX_BATCH_SIZE) -> "SqlDocumentStore":
        try:
            engine = create_engine(database_url, pool_pre_ping=True, future=True)
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise PersistenceError(f"Cannot create engine for {database_url!r}: {e}") from e
        return cls(engine, batch_size=batch_size)

    def _ensure_schema(self) -> None:
        stmt = text(
            """
            CREATE TABLE IF NOT EXISTS sync_documents (
                sport VARCHAR(16) NOT NULL,
                collection VARCHAR(32) NOT NULL,
                doc_id VARCHAR(128) NOT NULL,
                body TEXT NOT NULL,
                updated_at VARCHAR(40) NOT NULL,
                PRIMARY KEY (sport, collection, doc_id)
            )
            """
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Cannot create sync_documents table: {e}") from e

    def get_state(self, sport: str) -> Optional[Dict[str, Any]]:
        return self.load_collection(sport, STATE_COLLECTION).get(sport)

    def set_state(self, sport: str, state: Dict[str, Any]) -> None:
        self._write_batch(sport, STATE_COLLECTION, [(sport, state)])

    def load_collection(self, sport: str, collection: str) -> Dict[str, Dict[str, Any]]:
        stmt = text(
            "SELECT doc_id, body FROM sync_documents WHERE sport = :sport AND collection = :collection"
        )
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt, {"sport": sport, "collection": collection}).fetchall()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load {sport}/{collection}: {e}") from e
        return {row[0]: json.loads(row[1]) for row in rows}

    def _write_batch(self, sport: str, collection: str, docs: list[tuple[str, Dict[str, Any]]]) -> None:
        try:
            with self.engine.begin() as conn:
                self._upsert(conn, sport, collection, docs)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write {len(docs)} documents to {sport}/{collection}: {e}") from e

    @staticmethod
    def _upsert(conn: Connection, sport: str, collection: str, docs: list[tuple[str, Dict[str, Any]]]) -> None:
        delete = text(
            "DELETE FROM sync_documents WHERE sport = :sport AND collection = :collection AND doc_id = :doc_id"
        )
        insert = text(
            """
            INSERT INTO sync_documents (sport, collection, doc_id, body, updated_at)
            VALUES (:sport, :collection, :doc_id, :body, :updated_at)
            """
        )
        now = datetime.now(UTC).isoformat()
        keys = [{"sport": sport, "collection": collection, "doc_id": doc_id} for doc_id, _ in docs]
        rows = [
            {"sport": sport, "collection": collection, "doc_id": doc_id, "body": _json(body), "updated_at": now}
            for doc_id, body in docs
        ]
        conn.execute(delete, keys)
        conn.execute(insert, rows)

    def clear_collection(self, sport: str, collection: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(_CLEAR, {"sport": sport, "collection": collection})
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to clear {sport}/{collection}: {e}") from e

    def save_pass(
        self,
        sport: str,
        collections: Dict[str, Dict[str, Dict[str, Any]]],
        state: Dict[str, Any],
        clear: Iterable[str] = (),
    ) -> int:
        written = 0
        try:
            with self.engine.begin() as conn:
                for name in clear:
                    conn.execute(_CLEAR, {"sport": sport, "collection": name})
                for name, docs in collections.items():
                    items = sorted(docs.items())
                    for batch in _batches(items, self.batch_size):
                        self._upsert(conn, sport, name, batch)
                    written += len(items)
                self._upsert(conn, sport, STATE_COLLECTION, [(sport, state)])
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save {sport} pass, rolled back: {e}") from e
        logger.debug("store_pass_saved", sport=sport, documents=written)
        return written


# ═══════════════════════════════════════════════════════════════════════════════
# ARTIFACT PUBLISHING
# ═══════════════════════════════════════════════════════════════════════════════


class ArtifactPublisher(ABC):
    @abstractmethod
    def publish(self, sport: str, artifact: Dict[str, Any]) -> str:
        """Publish the artifact, returning its location."""


class FileArtifactPublisher(ArtifactPublisher):
    """Writes `{sport}-prediction-data.json` into a directory, atomically."""

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory)

    def publish(self, sport: str, artifact: Dict[str, Any]) -> str:
        target = self.directory / f"{sport}-prediction-data.json"
        tmp_path: Optional[str] = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{sport}-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(artifact, f, default=str, ensure_ascii=False, indent=2)
            os.replace(tmp_path, target)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to publish artifact to {target}: {e}") from e
        finally:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)

        logger.info("artifact_published", sport=sport, location=str(target))
        return str(target)
