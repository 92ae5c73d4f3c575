# ecosnap/db.py — Postgres decision backend (psycopg2)
from __future__ import annotations
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Optional

import psycopg2

from .schemas import Decision, DecisionAnalysis
from .storage import DecisionStore, StorageError

logger = logging.getLogger(__name__)

COLUMNS = (
    "id", "user_id", "category", "original_action", "original_co2_kg", "eco_alternative",
    "eco_co2_kg", "co2_saved_kg", "percentage_reduction", "sustainability_score",
    "encouragement_message", "created_at",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS decisions (
    id SERIAL PRIMARY KEY,
    user_id TEXT,
    category TEXT NOT NULL,
    original_action TEXT NOT NULL,
    original_co2_kg NUMERIC NOT NULL,
    eco_alternative TEXT NOT NULL,
    eco_co2_kg NUMERIC NOT NULL,
    co2_saved_kg NUMERIC NOT NULL,
    percentage_reduction NUMERIC NOT NULL,
    sustainability_score INTEGER NOT NULL,
    encouragement_message TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""


def _row_to_decision(row) -> Decision:
    data = dict(zip(COLUMNS, row))
    for k, v in data.items():
        # NUMERIC comes back as Decimal; str() keeps the stored text ("3.0" stays "3.0")
        if isinstance(v, Decimal):
            data[k] = str(v)
    return Decision(**data)


class PostgresDecisionStore(DecisionStore):
    def __init__(self, dsn: str):
        self.dsn = dsn
        self._ready = False

    @contextmanager
    def get_conn(self):
        try:
            conn = psycopg2.connect(self.dsn)
        except psycopg2.Error as e:
            raise StorageError(f"database unavailable: {e}") from e
        try:
            if not self._ready:
                with conn.cursor() as cur:
                    cur.execute(SCHEMA)
                conn.commit()
                self._ready = True
            yield conn
        except psycopg2.Error as e:
            # a dropped connection is already closed; rollback would raise InterfaceError
            if not conn.closed:
                try:
                    conn.rollback()
                except psycopg2.Error:
                    logger.warning("[storage] rollback failed after: %s", e)
            raise StorageError(str(e)) from e
        finally:
            if not conn.closed:
                conn.close()

    def create(self, analysis: DecisionAnalysis, user_id: Optional[str] = None) -> Decision:
        a = analysis
        with self.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO decisions(user_id, category, original_action, original_co2_kg, eco_alternative,"
                    " eco_co2_kg, co2_saved_kg, percentage_reduction, sustainability_score, encouragement_message)"
                    " VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,%s) RETURNING " + ", ".join(COLUMNS),
                    (user_id, a.category, a.original_action, a.original_co2_kg, a.eco_alternative, a.eco_co2_kg,
                     a.co2_saved_kg, a.percentage_reduction, a.sustainability_score, a.encouragement_message),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_decision(row)

    def list(self, user_id: Optional[str] = None, limit: Optional[int] = None, offset: int = 0) -> List[Decision]:
        sql = "SELECT " + ", ".join(COLUMNS) + " FROM decisions"
        params: list = []
        if user_id is not None:
            sql += " WHERE user_id = %s"
            params.append(user_id)
        sql += " ORDER BY id"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)
        if offset:
            sql += " OFFSET %s"
            params.append(offset)
        with self.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        return [_row_to_decision(r) for r in rows]

    def get(self, decision_id: int) -> Optional[Decision]:
        with self.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT " + ", ".join(COLUMNS) + " FROM decisions WHERE id = %s", (decision_id,))
                row = cur.fetchone()
        return _row_to_decision(row) if row else None

    def delete(self, decision_id: int) -> bool:
        with self.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM decisions WHERE id = %s", (decision_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted
