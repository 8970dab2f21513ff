# studio_tracker/store.py
from __future__ import annotations

import asyncio
import copy
import logging
from typing import (
    Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple, TypeVar,
)

from .errors import AllocationConflict

logger = logging.getLogger(__name__)

JOBS = "jobs"
PRODUCTS = "products"
COUNTERS = "counters"
USERS = "users"

Record = Dict[str, Any]
Snapshot = Dict[str, Record]
T = TypeVar("T")


class Transaction(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        ...

    def set(self, collection: str, doc_id: str, record: Record) -> None:
        ...


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        ...

    async def put(self, collection: str, doc_id: str, record: Record) -> None:
        ...

    async def delete(self, collection: str, doc_id: str) -> bool:
        ...

    async def list(self, collection: str) -> Snapshot:
        ...

    def subscribe(self, collection: str) -> AsyncIterator[Snapshot]:
        ...

    async def atomic(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        ...

    async def ping(self) -> None:
        ...


class SnapshotHub:
    """Fans a fresh full snapshot out to every subscriber after each write."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}

    async def list(self, collection: str) -> Snapshot:
        raise NotImplementedError

    async def subscribe(self, collection: str) -> AsyncIterator[Snapshot]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(collection, []).append(queue)
        try:
            yield await self.list(collection)
            while True:
                yield await queue.get()
        finally:
            self._subscribers[collection].remove(queue)

    async def _publish(self, collections: Set[str]) -> None:
        for collection in collections:
            queues = self._subscribers.get(collection)
            if not queues:
                continue
            snapshot = await self.list(collection)
            for queue in queues:
                queue.put_nowait(snapshot)


# ──────────────────────────────────────────────────────────────────────────────
# In-memory store (tests, local dev)
# ──────────────────────────────────────────────────────────────────────────────
class _MemoryTransaction:
    def __init__(self, store: "MemoryDocumentStore") -> None:
        self._store = store
        self.reads: Dict[Tuple[str, str], int] = {}
        self.writes: Dict[Tuple[str, str], Record] = {}

    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        key = (collection, doc_id)
        if key in self.writes:
            return copy.deepcopy(self.writes[key])
        self.reads.setdefault(key, self._store._versions.get(key, 0))
        record = self._store._docs.get(collection, {}).get(doc_id)
        # a round trip to the database; lets concurrent transactions interleave
        await asyncio.sleep(0)
        return copy.deepcopy(record)

    def set(self, collection: str, doc_id: str, record: Record) -> None:
        self.writes[(collection, doc_id)] = copy.deepcopy(record)


class MemoryDocumentStore(SnapshotHub):
    def __init__(self, max_attempts: int = 10) -> None:
        super().__init__()
        self.max_attempts = max_attempts
        self._docs: Dict[str, Dict[str, Record]] = {}
        self._versions: Dict[Tuple[str, str], int] = {}

    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        return copy.deepcopy(self._docs.get(collection, {}).get(doc_id))

    async def put(self, collection: str, doc_id: str, record: Record) -> None:
        self._write(collection, doc_id, record)
        await self._publish({collection})

    async def delete(self, collection: str, doc_id: str) -> bool:
        existed = self._docs.get(collection, {}).pop(doc_id, None) is not None
        if existed:
            self._bump(collection, doc_id)
            await self._publish({collection})
        return existed

    async def list(self, collection: str) -> Snapshot:
        return copy.deepcopy(self._docs.get(collection, {}))

    async def ping(self) -> None:
        return None

    async def atomic(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            tx = _MemoryTransaction(self)
            result = await fn(tx)
            # no await between the check and the apply, so this is one step
            stale = [key for key, seen in tx.reads.items() if self._versions.get(key, 0) != seen]
            if stale:
                logger.warning(f"Transaction conflict on {stale} (attempt {attempt}/{self.max_attempts}); retrying")
                continue
            for (collection, doc_id), record in tx.writes.items():
                self._write(collection, doc_id, record)
            await self._publish({collection for collection, _ in tx.writes})
            return result
        logger.error(f"Transaction gave up after {self.max_attempts} attempts")
        raise AllocationConflict(f"transaction kept conflicting after {self.max_attempts} attempts")

    def _write(self, collection: str, doc_id: str, record: Record) -> None:
        self._docs.setdefault(collection, {})[doc_id] = copy.deepcopy(record)
        self._bump(collection, doc_id)

    def _bump(self, collection: str, doc_id: str) -> None:
        key = (collection, doc_id)
        self._versions[key] = self._versions.get(key, 0) + 1
