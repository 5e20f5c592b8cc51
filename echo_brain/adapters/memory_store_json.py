from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence

from echo_brain.domain.errors import StorageError
from echo_brain.domain.models import MemoryObject, ScoredMemory
from echo_brain.domain.similarity import rank
from echo_brain.ports.memory_store import MemoryStore


def _dt_to_iso(dt: datetime) -> str:
    dt = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _dt_from_iso(s: str) -> datetime:
    s = (s or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _atomic_write(path: Path, text: str) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)


def memory_to_dict(m: MemoryObject) -> Dict[str, Any]:
    return {
        "id": m.id,
        "user_id": m.user_id,
        "content": m.content,
        "content_hash": m.content_hash,
        "source_type": m.source_type,
        "source_url": m.source_url,
        "source_title": m.source_title,
        "source_author": m.source_author,
        "summary": m.summary,
        "key_concepts": list(m.key_concepts),
        "created_at": _dt_to_iso(m.created_at),
        "embedding": list(m.embedding),
    }


def memory_from_dict(d: Dict[str, Any]) -> MemoryObject:
    return MemoryObject(
        id=str(d["id"]),
        user_id=str(d["user_id"]),
        content=str(d.get("content", "")),
        embedding=tuple(float(x) for x in d.get("embedding", [])),
        source_type=d["source_type"],
        content_hash=str(d.get("content_hash", "")),
        source_url=d.get("source_url"),
        source_title=d.get("source_title"),
        source_author=d.get("source_author"),
        summary=str(d.get("summary") or ""),
        key_concepts=tuple(str(c) for c in d.get("key_concepts") or ()),
        created_at=_dt_from_iso(str(d.get("created_at", ""))),
    )


class JsonMemoryStore(MemoryStore):
    """
    Формат:
    {
      "users": {
        "<user_id>": [ {"id": "...", "content": "...", "embedding": [...], ...}, ... ]
      }
    }
    Вектор лежит в той же записи, что и строка, а файл пишется целиком через tmp + replace,
    так что половинчатой памяти на диске не бывает. Подходит для одного процесса.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._users: Dict[str, List[Dict[str, Any]]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self._users = {}
            return
        try:
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {"users": {}}
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read memory store {self.path}: {e}") from e

        users = data.get("users", {}) if isinstance(data, dict) else {}
        if not isinstance(users, dict):
            raise StorageError(f"Malformed memory store {self.path}: 'users' is not an object")
        self._users = {str(uid): list(items) for uid, items in users.items() if isinstance(items, list)}

    def _save(self, users: Dict[str, List[Dict[str, Any]]]) -> None:
        text = json.dumps({"users": users}, ensure_ascii=False, indent=2)
        _atomic_write(self.path, text)

    def write(self, memory: MemoryObject) -> None:
        with self._lock:
            items = self._users.get(memory.user_id, [])
            if any(it.get("id") == memory.id for it in items):
                raise StorageError(f"Memory {memory.id} already exists")

            # новая карта подменяет текущую только после успешной записи файла
            users = dict(self._users)
            users[memory.user_id] = items + [memory_to_dict(memory)]
            try:
                self._save(users)
            except (OSError, TypeError, ValueError) as e:
                raise StorageError(f"Failed to persist memory {memory.id}: {e}") from e
            self._users = users

    def _memories(self, user_id: str) -> List[MemoryObject]:
        with self._lock:
            items = list(self._users.get(user_id, []))
        try:
            return [memory_from_dict(it) for it in items]
        except (KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Malformed memory record for user {user_id}: {e}") from e

    def search(
        self,
        user_id: str,
        query_vector: Sequence[float],
        k: int,
        min_score: float,
    ) -> List[ScoredMemory]:
        try:
            return rank(self._memories(user_id), query_vector, k=k, min_score=min_score)
        except ValueError as e:
            raise StorageError(str(e)) from e

    def get(self, user_id: str, memory_id: str) -> Optional[MemoryObject]:
        return next((m for m in self._memories(user_id) if m.id == memory_id), None)

    def count(self, user_id: str) -> int:
        with self._lock:
            return len(self._users.get(user_id, []))

    def list_recent(self, user_id: str, limit: int) -> List[MemoryObject]:
        mems = self._memories(user_id)
        mems.sort(key=lambda m: m.created_at, reverse=True)
        return mems[: max(0, int(limit))]
