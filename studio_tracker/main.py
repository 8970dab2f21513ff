# studio_tracker/main.py
import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .catalog import ProductCatalog
from .config import Settings
from .errors import LedgerError
from .ids import IdAllocator
from .intake import router as intake_router
from .jobs import router as jobs_router
from .lifecycle import JobLedger
from .mailer import SmtpMailer, build_mailer
from .models import Outcome
from .notify import Mailer, NotificationDispatcher, ReceiptRenderer
from .products import router as products_router
from .receipts import ReceiptRenderer as PdfReceiptRenderer
from .routers.health import router as health_router
from .routers.notifications import router as notifications_router
from .routers.stats import router as stats_router
from .store import DocumentStore, MemoryDocumentStore

log = logging.getLogger("uvicorn.error")


def build_store(settings: Settings) -> DocumentStore:
    if settings.storage_backend == "supabase":
        from .db import SupabaseDocumentStore

        return SupabaseDocumentStore.from_settings(settings)
    if settings.storage_backend == "memory":
        log.warning(
            "STUDIO_STORAGE_BACKEND=memory: jobs are kept in process memory and lost on restart. "
            "Set STUDIO_STORAGE_BACKEND=supabase for production."
        )
        return MemoryDocumentStore(max_attempts=settings.allocation_max_attempts)
    raise RuntimeError(f"Unknown STUDIO_STORAGE_BACKEND: {settings.storage_backend}")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    mailer: Optional[Mailer] = None,
    renderer: Optional[ReceiptRenderer] = None,
    function_mailer: Optional[Mailer] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    store = store or build_store(settings)
    catalog = ProductCatalog(store)
    ledger = JobLedger(
        store,
        IdAllocator(store, prefix=settings.id_prefix, width=settings.id_width),
        catalog,
        NotificationDispatcher(mailer or build_mailer(settings), renderer or PdfReceiptRenderer(settings)),
        allow_completed_edits=settings.allow_completed_edits,
        clock=clock,
    )

    app = FastAPI(title="Studio Tracker API", version="1.0.0", docs_url="/docs", redoc_url=None)
    app.state.settings = settings
    app.state.store = store
    app.state.catalog = catalog
    app.state.ledger = ledger
    app.state.function_mailer = function_mailer or SmtpMailer(settings)
    if not settings.function_secret:
        log.warning(
            "RECEIPT_FUNCTION_SECRET is not set: anyone can send mail through /notifications/send"
        )

    # ──────────────────────────────────────────────────────────────────────────
    # CORS (the dashboard and the customer form are served from elsewhere)
    # ──────────────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ──────────────────────────────────────────────────────────────────────────
    # Error mapping: every failure says which outcome it was
    # ──────────────────────────────────────────────────────────────────────────
    @app.exception_handler(LedgerError)
    async def ledger_error(request: Request, exc: LedgerError):
        log.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "outcome": exc.outcome},
        )

    @app.exception_handler(RequestValidationError)
    async def request_invalid(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": jsonable_encoder(exc.errors()), "outcome": Outcome.VALIDATION_REJECTED.value},
        )

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        log.exception(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "operation failed, nothing changed", "outcome": Outcome.FAILED.value},
        )

    # ──────────────────────────────────────────────────────────────────────────
    # Root + Health
    # ──────────────────────────────────────────────────────────────────────────
    @app.get("/", tags=["default"])
    def read_root():
        return {"ok": True, "service": "studio-tracker"}

    @app.get("/health", tags=["health"])
    def health():
        return {"ok": True}

    # routers
    app.include_router(health_router)
    app.include_router(intake_router)
    app.include_router(jobs_router)
    app.include_router(products_router)
    app.include_router(stats_router)
    app.include_router(notifications_router)

    log.info(f"Studio Tracker ready (storage={settings.storage_backend}, mailer={settings.mailer_backend})")
    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────────────────
# Local dev entrypoint
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "studio_tracker.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
