# studio_tracker/db.py
"""
Supabase-backed document store.

Each collection is a table ``public.<collection> (id text primary key, data
jsonb)``. Plain reads and writes go through the supabase client (service role,
so RLS is bypassed on the server); the one operation that needs a real
transaction, ``atomic``, opens an async SQLAlchemy session against the same
Postgres database and row-locks what it reads.
"""
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from supabase import Client, create_client

from .config import Settings
from .errors import AllocationConflict
from .store import Record, Snapshot, SnapshotHub, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TABLE_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")
# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _table(collection: str) -> str:
    if not _TABLE_NAME.match(collection):
        raise ValueError(f"Illegal collection name: {collection!r}")
    return f"public.{collection}"


def _decode(data: Any) -> Optional[Record]:
    if data is None:
        return None
    if isinstance(data, (str, bytes)):
        return json.loads(data)
    return dict(data)


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = getattr(error, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def get_supabase(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_service_role:
        raise RuntimeError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE")
    return create_client(settings.supabase_url, settings.supabase_service_role)


def get_sessionmaker(settings: Settings) -> async_sessionmaker:
    if not settings.supabase_db_url:
        raise RuntimeError("SUPABASE_DB_URL is not set")
    engine = create_async_engine(settings.supabase_db_url, echo=False, pool_size=5, max_overflow=10)
    return async_sessionmaker(engine, expire_on_commit=False)


class _SqlTransaction:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._pending: Dict[tuple, Record] = {}
        self._missing: Set[tuple] = set()
        self.touched: Set[str] = set()

    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        if (collection, doc_id) in self._pending:
            return dict(self._pending[(collection, doc_id)])
        result = await self._session.execute(
            text(f"select data from {_table(collection)} where id = :id for update"),
            {"id": doc_id},
        )
        record = _decode(result.scalar_one_or_none())
        if record is None:
            # nothing to lock; a plain insert at flush turns a concurrent creator into IntegrityError
            self._missing.add((collection, doc_id))
        return record

    def set(self, collection: str, doc_id: str, record: Record) -> None:
        _table(collection)
        self._pending[(collection, doc_id)] = dict(record)
        self.touched.add(collection)

    async def flush(self) -> None:
        for (collection, doc_id), record in self._pending.items():
            upsert = "" if (collection, doc_id) in self._missing else "on conflict (id) do update set data = excluded.data"
            await self._session.execute(
                text(f"""
                    insert into {_table(collection)} (id, data)
                    values (:id, cast(:data as jsonb))
                    {upsert}
                """),
                {"id": doc_id, "data": json.dumps(record)},
            )


class SupabaseDocumentStore(SnapshotHub):
    def __init__(self, client: Client, sessions: async_sessionmaker, max_attempts: int = 10) -> None:
        super().__init__()
        self._sb = client
        self._sessions = sessions
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseDocumentStore":
        return cls(
            get_supabase(settings),
            get_sessionmaker(settings),
            max_attempts=settings.allocation_max_attempts,
        )

    async def get(self, collection: str, doc_id: str) -> Optional[Record]:
        _table(collection)
        resp = self._sb.table(collection).select("id,data").eq("id", doc_id).limit(1).execute()
        rows = resp.data or []
        return _decode(rows[0]["data"]) if rows else None

    async def put(self, collection: str, doc_id: str, record: Record) -> None:
        _table(collection)
        self._sb.table(collection).upsert({"id": doc_id, "data": record}).execute()
        await self._publish({collection})

    async def delete(self, collection: str, doc_id: str) -> bool:
        _table(collection)
        resp = self._sb.table(collection).delete().eq("id", doc_id).execute()
        existed = bool(resp.data)
        if existed:
            await self._publish({collection})
        return existed

    async def list(self, collection: str) -> Snapshot:
        _table(collection)
        resp = self._sb.table(collection).select("id,data").execute()
        return {row["id"]: _decode(row["data"]) or {} for row in resp.data or []}

    async def atomic(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._sessions() as session:
                    async with session.begin():
                        tx = _SqlTransaction(session)
                        result = await fn(tx)
                        await tx.flush()
            except IntegrityError as e:
                # two writers created the same missing row
                logger.warning(f"Transaction insert race (attempt {attempt}/{self.max_attempts}): {e.orig}")
                continue
            except DBAPIError as e:
                if _sqlstate(e) not in _RETRYABLE_SQLSTATES:
                    raise
                logger.warning(f"Transaction conflict (attempt {attempt}/{self.max_attempts}): {e.orig}")
                continue
            await self._publish(tx.touched)
            return result
        logger.error(f"Transaction gave up after {self.max_attempts} attempts")
        raise AllocationConflict(f"transaction kept conflicting after {self.max_attempts} attempts")

    async def ping(self) -> None:
        async with self._sessions() as session:
            await session.execute(text("select 1"))
