# studio_tracker/deps.py
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth import actor_for_token
from .catalog import ProductCatalog
from .config import Settings
from .lifecycle import JobLedger
from .models import Actor
from .notify import Mailer
from .store import DocumentStore

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_ledger(request: Request) -> JobLedger:
    return request.app.state.ledger


def get_catalog(request: Request) -> ProductCatalog:
    return request.app.state.catalog


def get_function_mailer(request: Request) -> Mailer:
    return request.app.state.function_mailer


async def get_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
    store: DocumentStore = Depends(get_store),
) -> Actor:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return await actor_for_token(credentials.credentials, settings, store)
