from __future__ import annotations

import json
import sqlite3
import struct
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from echo_brain.domain.errors import StorageError
from echo_brain.domain.models import MemoryObject, ScoredMemory
from echo_brain.domain.similarity import rank
from echo_brain.ports.memory_store import MemoryStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    content       TEXT NOT NULL,
    content_hash  TEXT NOT NULL,
    source_type   TEXT NOT NULL,
    source_url    TEXT,
    source_title  TEXT,
    source_author TEXT,
    summary       TEXT NOT NULL DEFAULT '',
    key_concepts  TEXT NOT NULL DEFAULT '[]',
    created_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memories_user ON memories(user_id, created_at);
CREATE TABLE IF NOT EXISTS memory_vectors (
    memory_id TEXT PRIMARY KEY REFERENCES memories(id),
    user_id   TEXT NOT NULL,
    dim       INTEGER NOT NULL,
    vector    BLOB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_vectors_user ON memory_vectors(user_id);
"""

_SELECT = """
SELECT m.id, m.user_id, m.content, m.content_hash, m.source_type, m.source_url,
       m.source_title, m.source_author, m.summary, m.key_concepts, m.created_at,
       v.dim, v.vector
FROM memories m JOIN memory_vectors v ON v.memory_id = m.id
"""


def pack_vector(vec: Sequence[float]) -> bytes:
    return struct.pack(f"<{len(vec)}d", *vec)


def unpack_vector(blob: bytes, dim: int) -> tuple:
    return struct.unpack(f"<{dim}d", blob)


def _row_to_memory(row: sqlite3.Row) -> MemoryObject:
    created = datetime.fromisoformat(row["created_at"])
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return MemoryObject(
        id=row["id"],
        user_id=row["user_id"],
        content=row["content"],
        embedding=unpack_vector(row["vector"], int(row["dim"])),
        source_type=row["source_type"],
        content_hash=row["content_hash"],
        source_url=row["source_url"],
        source_title=row["source_title"],
        source_author=row["source_author"],
        summary=row["summary"] or "",
        key_concepts=tuple(json.loads(row["key_concepts"] or "[]")),
        created_at=created,
    )


class SqliteMemoryStore(MemoryStore):
    """
    Строка памяти и её вектор живут в двух таблицах и пишутся одной транзакцией:
    если любая из вставок падает, откатываются обе.
    Поиск точный: все векторы пользователя + косинус в Python.
    """

    def __init__(self, path: str, *, timeout_s: float = 10.0):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout_s = timeout_s
        try:
            with closing(self._connect()) as conn:
                conn.executescript(_SCHEMA)
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialise memory store {self.path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=self.timeout_s, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def write(self, memory: MemoryObject) -> None:
        created = memory.created_at if memory.created_at.tzinfo else memory.created_at.replace(tzinfo=timezone.utc)
        try:
            with closing(self._connect()) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        "INSERT INTO memories (id, user_id, content, content_hash, source_type, "
                        "source_url, source_title, source_author, summary, key_concepts, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            memory.id,
                            memory.user_id,
                            memory.content,
                            memory.content_hash,
                            memory.source_type,
                            memory.source_url,
                            memory.source_title,
                            memory.source_author,
                            memory.summary,
                            json.dumps(list(memory.key_concepts), ensure_ascii=False),
                            created.isoformat(),
                        ),
                    )
                    conn.execute(
                        "INSERT INTO memory_vectors (memory_id, user_id, dim, vector) VALUES (?, ?, ?, ?)",
                        (memory.id, memory.user_id, len(memory.embedding), pack_vector(memory.embedding)),
                    )
                    conn.execute("COMMIT")
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
        except (sqlite3.Error, struct.error) as e:
            raise StorageError(f"Failed to persist memory {memory.id}: {e}") from e

    def _query(self, sql: str, params: tuple) -> List[MemoryObject]:
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(sql, params).fetchall()
            return [_row_to_memory(r) for r in rows]
        except (sqlite3.Error, struct.error, ValueError) as e:
            raise StorageError(f"Memory store read failed: {e}") from e

    def search(
        self,
        user_id: str,
        query_vector: Sequence[float],
        k: int,
        min_score: float,
    ) -> List[ScoredMemory]:
        if k <= 0:
            return []
        candidates = self._query(_SELECT + " WHERE m.user_id = ?", (user_id,))
        try:
            return rank(candidates, query_vector, k=k, min_score=min_score)
        except ValueError as e:
            raise StorageError(str(e)) from e

    def get(self, user_id: str, memory_id: str) -> Optional[MemoryObject]:
        rows = self._query(_SELECT + " WHERE m.user_id = ? AND m.id = ?", (user_id, memory_id))
        return rows[0] if rows else None

    def count(self, user_id: str) -> int:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute("SELECT COUNT(*) FROM memories WHERE user_id = ?", (user_id,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Memory store read failed: {e}") from e
        return int(row[0])

    def list_recent(self, user_id: str, limit: int) -> List[MemoryObject]:
        return self._query(
            _SELECT + " WHERE m.user_id = ? ORDER BY m.created_at DESC, m.id LIMIT ?",
            (user_id, max(0, int(limit))),
        )
