from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_store
from ..store import DocumentStore

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/db")
async def health_db(store: DocumentStore = Depends(get_store)):
    try:
        await store.ping()
    except Exception as e:
        # surface the error so we know exactly what's wrong
        raise HTTPException(status_code=503, detail=f"DB check failed: {e}")
    return {"ok": True, "db": "up"}
