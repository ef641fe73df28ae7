"""SQLite implementation of the state store."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict

from ..errors import StateStoreError
from ..utils.time import utc_now_iso
from .base import Record, StateStore

logger = logging.getLogger(__name__)


class SQLiteStateStore(StateStore):
    """Persist state records using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._ensure_schema()
        except sqlite3.Error as exc:
            raise StateStoreError(f"Cannot open state database {self.db_path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS state_records (
                namespace TEXT NOT NULL,
                record_key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (namespace, record_key)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            logger.error(f"State store operation failed on {self.db_path}: {exc}")
            raise StateStoreError(str(exc)) from exc

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Store API
    async def get(self, namespace: str, key: str) -> Record | None:
        row = await self._run(
            self._fetchone,
            "SELECT value FROM state_records WHERE namespace = ? AND record_key = ?",
            namespace,
            key,
        )
        if row is None:
            return None
        return json.loads(row["value"])

    async def set(self, namespace: str, key: str, value: Record) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StateStoreError(
                f"Record for {namespace}/{key} is not JSON serializable: {exc}"
            ) from exc
        await self._run(
            self._execute,
            "INSERT OR REPLACE INTO state_records (namespace, record_key, value, updated_at) VALUES (?, ?, ?, ?)",
            namespace,
            key,
            encoded,
            utc_now_iso(),
        )

    async def delete(self, namespace: str, key: str) -> bool:
        deleted = await self._run(
            self._execute,
            "DELETE FROM state_records WHERE namespace = ? AND record_key = ?",
            namespace,
            key,
        )
        return deleted > 0

    async def items(self, namespace: str) -> Dict[str, Record]:
        rows = await self._run(
            self._fetchall,
            "SELECT record_key, value FROM state_records WHERE namespace = ? ORDER BY record_key",
            namespace,
        )
        return {row["record_key"]: json.loads(row["value"]) for row in rows}
