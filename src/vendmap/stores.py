"""
Record, media and auth collaborators.

The registry only talks to these through the small protocols below, so a
remote document store or object storage can be swapped in without touching
the core. The concrete classes here keep everything local: an in-memory
record store (optionally persisted to JSON), a directory-backed media store
and a fixed actor.
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from .exceptions import RecordNotFoundError

logger = logging.getLogger(__name__)

Snapshot = List[Dict[str, Any]]
SnapshotListener = Callable[[Snapshot], None]


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


# Placeholder resolved to the store's clock when a write is applied
SERVER_TIMESTAMP = _ServerTimestamp()


class RecordStore(Protocol):
    def create(self, attributes: Dict[str, Any]) -> str: ...

    def update(self, record_id: str, partial: Dict[str, Any]) -> None: ...

    def delete(self, record_id: str) -> None: ...

    def subscribe(self, on_change: SnapshotListener) -> Callable[[], None]: ...


class MediaStore(Protocol):
    def upload(self, data: bytes, path: str) -> str: ...

    def delete(self, path: str) -> None: ...


class AuthProvider(Protocol):
    def current_actor(self) -> Optional[str]: ...


class InMemoryRecordStore:
    """Thread-safe document store with push snapshots, newest first."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._listeners: List[SnapshotListener] = []
        self._lock = threading.RLock()

    def create(self, attributes: Dict[str, Any]) -> str:
        record_id = uuid.uuid4().hex
        now = self._clock()
        with self._lock:
            doc = self._resolve(dict(attributes), now)
            doc["lastUpdated"] = now
            doc["timestamp"] = now
            self._documents[record_id] = doc
            self._commit()
        logger.info(f"Created record {record_id}")
        return record_id

    def update(self, record_id: str, partial: Dict[str, Any]) -> None:
        now = self._clock()
        with self._lock:
            if record_id not in self._documents:
                raise RecordNotFoundError(record_id)
            doc = self._documents[record_id]
            doc.update(self._resolve(dict(partial), now))
            doc["lastUpdated"] = now
            self._commit()
        logger.info(f"Updated record {record_id}: {sorted(partial)}")

    def delete(self, record_id: str) -> None:
        with self._lock:
            if self._documents.pop(record_id, None) is None:
                raise RecordNotFoundError(record_id)
            self._commit()
        logger.info(f"Deleted record {record_id}")

    def get(self, record_id: str) -> Dict[str, Any]:
        with self._lock:
            if record_id not in self._documents:
                raise RecordNotFoundError(record_id)
            return {"id": record_id, **self._documents[record_id]}

    def subscribe(self, on_change: SnapshotListener) -> Callable[[], None]:
        """Register a listener; it receives the current snapshot right away."""
        with self._lock:
            self._listeners.append(on_change)
            # Delivered under the lock so a concurrent write cannot overtake it
            on_change(self.snapshot())

        def unsubscribe() -> None:
            with self._lock:
                if on_change in self._listeners:
                    self._listeners.remove(on_change)

        return unsubscribe

    def snapshot(self) -> Snapshot:
        with self._lock:
            docs = [{"id": rid, **doc} for rid, doc in self._documents.items()]
        docs.sort(key=lambda d: d.get("timestamp") or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return docs

    def _resolve(self, doc: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        for key, value in doc.items():
            if value is SERVER_TIMESTAMP:
                doc[key] = now
        return doc

    def _commit(self) -> None:
        self._persist()
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}")

    def _persist(self) -> None:
        pass


class JsonRecordStore(InMemoryRecordStore):
    """InMemoryRecordStore that mirrors every write to a JSON file."""

    def __init__(self, path: Path, clock: Optional[Callable[[], datetime]] = None) -> None:
        super().__init__(clock)
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        for record_id, doc in raw.items():
            for key in ("lastUpdated", "timestamp", "mediaUploadedAt"):
                if isinstance(doc.get(key), str):
                    doc[key] = datetime.fromisoformat(doc[key])
            self._documents[record_id] = doc
        logger.info(f"Loaded {len(self._documents)} records from {self.path}")

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._documents, f, indent=2, ensure_ascii=False, default=_json_default)
        tmp.replace(self.path)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class LocalMediaStore:
    """Stores media under a root directory and returns file:// URLs."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir)

    def upload(self, data: bytes, path: str) -> str:
        target = self._target(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"Stored {len(data)} bytes at {path}")
        return target.resolve().as_uri()

    def delete(self, path: str) -> None:
        target = self._target(path)
        target.unlink()
        # Drop the per-record folder once it is empty
        try:
            target.parent.rmdir()
        except OSError:
            pass

    def _target(self, path: str) -> Path:
        root = self.root_dir.resolve()
        target = (root / path).resolve()
        # Security: refuse paths escaping the media root
        if not target.is_relative_to(root):
            raise ValueError(f"Media path escapes storage root: {path}")
        return target


class StaticAuth:
    """Auth provider with a fixed (possibly absent) signed-in actor."""

    def __init__(self, actor_id: Optional[str] = None) -> None:
        self.actor_id = actor_id or None

    def current_actor(self) -> Optional[str]:
        return self.actor_id
