from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Optional

from echo_brain.domain.errors import StorageError
from echo_brain.ports.usage_store import UsageStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS usage_counters (
    user_id TEXT NOT NULL,
    counter TEXT NOT NULL,
    period  TEXT NOT NULL,
    value   INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, counter, period)
);
"""


class SqliteUsageStore(UsageStore):
    """
    Условный инкремент одним UPDATE ... WHERE value + ? <= ? внутри BEGIN IMMEDIATE:
    конкурентные запросы (в т.ч. из разных процессов) не проскочат лимит.
    """

    def __init__(self, path: str, *, timeout_s: float = 10.0):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout_s = timeout_s
        try:
            with closing(self._connect()) as conn:
                conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialise usage store {self.path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.path), timeout=self.timeout_s, isolation_level=None)

    def try_increment(
        self,
        user_id: str,
        counter: str,
        period: str,
        limit: Optional[int],
        amount: int = 1,
    ) -> bool:
        key = (user_id, counter, period)
        try:
            with closing(self._connect()) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        "INSERT OR IGNORE INTO usage_counters (user_id, counter, period, value) VALUES (?, ?, ?, 0)",
                        key,
                    )
                    if limit is None:
                        cur = conn.execute(
                            "UPDATE usage_counters SET value = value + ? "
                            "WHERE user_id = ? AND counter = ? AND period = ?",
                            (amount, *key),
                        )
                    else:
                        cur = conn.execute(
                            "UPDATE usage_counters SET value = value + ? "
                            "WHERE user_id = ? AND counter = ? AND period = ? AND value + ? <= ?",
                            (amount, *key, amount, int(limit)),
                        )
                    ok = cur.rowcount == 1
                    conn.execute("COMMIT")
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise StorageError(f"Usage counter update failed: {e}") from e
        return ok

    def decrement(self, user_id: str, counter: str, period: str, amount: int = 1) -> None:
        try:
            with closing(self._connect()) as conn:
                conn.execute(
                    "UPDATE usage_counters SET value = MAX(0, value - ?) "
                    "WHERE user_id = ? AND counter = ? AND period = ?",
                    (amount, user_id, counter, period),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Usage counter update failed: {e}") from e

    def get(self, user_id: str, counter: str, period: str) -> int:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT value FROM usage_counters WHERE user_id = ? AND counter = ? AND period = ?",
                    (user_id, counter, period),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Usage counter read failed: {e}") from e
        return int(row[0]) if row else 0
