from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..deps import get_actor, get_ledger, get_store
from ..lifecycle import JobLedger
from ..models import Actor, LedgerStats
from ..permissions import authorize
from ..stats import JobBoard, project_stats
from ..store import DocumentStore

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=LedgerStats)
async def get_stats(actor: Actor = Depends(get_actor), ledger: JobLedger = Depends(get_ledger)):
    authorize(actor, "stats")
    return project_stats(await ledger.list_jobs())


async def stats_events(store: DocumentStore, max_events: Optional[int] = None) -> AsyncIterator[str]:
    board = JobBoard(store)
    async for stats in board.updates(max_updates=max_events):
        yield f"data: {stats.model_dump_json(by_alias=True)}\n\n"


@router.get("/stream")
async def stream_stats(actor: Actor = Depends(get_actor), store: DocumentStore = Depends(get_store)):
    authorize(actor, "stats")
    return StreamingResponse(stats_events(store), media_type="text/event-stream")
