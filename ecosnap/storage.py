# ecosnap/storage.py — decision persistence: one interface, pluggable backends, memory fallback
from __future__ import annotations
import json
import logging
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from .config import Settings
from .schemas import Decision, DecisionAnalysis, utcnow

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Backend unavailable or rejected the operation."""


class DecisionStore:
    def create(self, analysis: DecisionAnalysis, user_id: Optional[str] = None) -> Decision:
        raise NotImplementedError

    def list(self, user_id: Optional[str] = None, limit: Optional[int] = None, offset: int = 0) -> List[Decision]:
        raise NotImplementedError

    def get(self, decision_id: int) -> Optional[Decision]:
        raise NotImplementedError

    def delete(self, decision_id: int) -> bool:
        raise NotImplementedError


def _page(rows: List[Decision], user_id: Optional[str], limit: Optional[int], offset: int) -> List[Decision]:
    if user_id is not None:
        rows = [d for d in rows if d.user_id == user_id]
    rows = rows[offset:]
    return rows[:limit] if limit is not None else rows


class MemoryDecisionStore(DecisionStore):
    """
    Dict-backed store. With `negative_ids` ids count down from -1, so records
    kept here while a primary backend is down never collide with its ids.
    """

    def __init__(self, negative_ids: bool = False):
        self._rows: Dict[int, Decision] = {}
        self._lock = Lock()
        self.negative_ids = negative_ids

    def _next_id(self) -> int:
        if self.negative_ids:
            return min(self._rows, default=0) - 1
        return max(self._rows, default=0) + 1

    def create(self, analysis: DecisionAnalysis, user_id: Optional[str] = None) -> Decision:
        with self._lock:
            d = Decision(**analysis.model_dump(), id=self._next_id(), user_id=user_id)
            self._rows[d.id] = d
        return d

    def put(self, decision: Decision) -> None:
        """Mirror a record written elsewhere (keeps its id)."""
        with self._lock:
            self._rows[decision.id] = decision

    def list(self, user_id: Optional[str] = None, limit: Optional[int] = None, offset: int = 0) -> List[Decision]:
        with self._lock:
            rows = [self._rows[k] for k in sorted(self._rows)]
        return _page(rows, user_id, limit, offset)

    def get(self, decision_id: int) -> Optional[Decision]:
        return self._rows.get(decision_id)

    def delete(self, decision_id: int) -> bool:
        with self._lock:
            return self._rows.pop(decision_id, None) is not None


class JsonFileDecisionStore(DecisionStore):
    """Whole-file JSON list; fine for a single process and a few thousand records."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._lock = Lock()

    def _read(self) -> List[Decision]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            return [Decision.model_validate(r) for r in raw]
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e

    def _write(self, rows: List[Decision]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump([r.model_dump(mode="json") for r in rows], f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e

    def create(self, analysis: DecisionAnalysis, user_id: Optional[str] = None) -> Decision:
        with self._lock:
            rows = self._read()
            d = Decision(**analysis.model_dump(), id=max((r.id for r in rows), default=0) + 1,
                         user_id=user_id, created_at=utcnow())
            rows.append(d)
            self._write(rows)
        return d

    def list(self, user_id: Optional[str] = None, limit: Optional[int] = None, offset: int = 0) -> List[Decision]:
        with self._lock:
            rows = self._read()
        return _page(sorted(rows, key=lambda r: r.id), user_id, limit, offset)

    def get(self, decision_id: int) -> Optional[Decision]:
        return next((r for r in self.list() if r.id == decision_id), None)

    def delete(self, decision_id: int) -> bool:
        with self._lock:
            rows = self._read()
            keep = [r for r in rows if r.id != decision_id]
            if len(keep) == len(rows):
                return False
            self._write(keep)
        return True


class FallbackDecisionStore(DecisionStore):
    """
    Wraps a primary backend. Successful writes are mirrored into memory; when
    the primary fails we log a warning and serve from memory instead.

    Decisions written while the primary is down go to `pending` with negative
    ids. They are merged into every read, so they survive the primary coming
    back and never share an id with a primary row.
    """

    def __init__(self, primary: DecisionStore, fallback: Optional[MemoryDecisionStore] = None):
        self.primary = primary
        self.fallback = fallback if fallback is not None else MemoryDecisionStore()
        self.pending = MemoryDecisionStore(negative_ids=True)

    def create(self, analysis: DecisionAnalysis, user_id: Optional[str] = None) -> Decision:
        try:
            d = self.primary.create(analysis, user_id)
        except StorageError as e:
            logger.warning("[storage] create failed on %s, keeping decision in memory: %s",
                           type(self.primary).__name__, e)
            return self.pending.create(analysis, user_id)
        self.fallback.put(d)
        return d

    def _primary_list(self, user_id: Optional[str], limit: Optional[int], offset: int) -> List[Decision]:
        try:
            return self.primary.list(user_id, limit, offset)
        except StorageError as e:
            logger.warning("[storage] list failed, using memory cache: %s", e)
            return self.fallback.list(user_id, limit, offset)

    def list(self, user_id: Optional[str] = None, limit: Optional[int] = None, offset: int = 0) -> List[Decision]:
        pending = sorted(self.pending.list(user_id), key=lambda d: d.created_at)
        if not pending:
            return self._primary_list(user_id, limit, offset)
        return _page(self._primary_list(user_id, None, 0) + pending, None, limit, offset)

    def get(self, decision_id: int) -> Optional[Decision]:
        if decision_id < 0:
            return self.pending.get(decision_id)
        try:
            return self.primary.get(decision_id)
        except StorageError as e:
            logger.warning("[storage] get failed, using memory cache: %s", e)
            return self.fallback.get(decision_id)

    def delete(self, decision_id: int) -> bool:
        if decision_id < 0:
            return self.pending.delete(decision_id)
        cached = self.fallback.delete(decision_id)
        try:
            return self.primary.delete(decision_id)
        except StorageError as e:
            logger.warning("[storage] delete failed, removed from memory only: %s", e)
            return cached


def build_store(settings: Settings) -> DecisionStore:
    """Backend picked once: Postgres if DATABASE_URL, else JSON file if DECISIONS_PATH, else memory."""
    if settings.database_url:
        from .db import PostgresDecisionStore
        return FallbackDecisionStore(PostgresDecisionStore(settings.database_url))
    if settings.decisions_path:
        return FallbackDecisionStore(JsonFileDecisionStore(settings.decisions_path))
    logger.warning("[storage] DATABASE_URL / DECISIONS_PATH not set - decisions kept in memory only")
    return MemoryDecisionStore()


SEED = [
    DecisionAnalysis(
        category="food",
        original_action="Chicken burger",
        original_co2_kg="3.0",
        eco_alternative="Vegetarian burger",
        eco_co2_kg="1.2",
        co2_saved_kg="1.8",
        percentage_reduction="60.0",
        sustainability_score=7,
        encouragement_message="Switching to a vegetarian option significantly lowers your carbon footprint!",
    ),
    DecisionAnalysis(
        category="transport",
        original_action="Driving to work alone (10 miles)",
        original_co2_kg="4.5",
        eco_alternative="Taking the train",
        eco_co2_kg="1.1",
        co2_saved_kg="3.4",
        percentage_reduction="75.5",
        sustainability_score=7,
        encouragement_message="Great job! Public transport is a huge win for the environment.",
    ),
]


def seed_decisions(store: DecisionStore) -> int:
    if store.list(limit=1):
        return 0
    for analysis in SEED:
        store.create(analysis)
    return len(SEED)
