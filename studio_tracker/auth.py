# studio_tracker/auth.py
import asyncio
import time
from typing import Any, Dict, Optional, Tuple

import requests
from fastapi import HTTPException
from jose import JWTError, jwt

from .config import Settings
from .models import Actor, Role
from .store import USERS, DocumentStore

_cache: Dict[str, Any] = {"jwks": None, "fetched_at": 0}

Identity = Tuple[str, Optional[str]]


def _get_jwks(settings: Settings) -> dict:
    now = time.time()
    if not _cache["jwks"] or now - _cache["fetched_at"] > 600:
        headers = {}
        if settings.supabase_anon_key:
            headers = {"apikey": settings.supabase_anon_key, "Authorization": f"Bearer {settings.supabase_anon_key}"}
        url = f"https://{settings.supabase_project_ref}.supabase.co/auth/v1/.well-known/jwks.json"
        resp = requests.get(url, headers=headers, timeout=10)
        resp.raise_for_status()
        _cache["jwks"] = resp.json()
        _cache["fetched_at"] = now
    return _cache["jwks"]


def _fetch_user_from_supabase(token: str, settings: Settings) -> Identity:
    """Fallback: ask Supabase who this token belongs to."""
    if not settings.supabase_project_ref:
        raise HTTPException(status_code=401, detail="Token verification is not configured")
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": settings.supabase_anon_key or "",
    }
    url = f"https://{settings.supabase_project_ref}.supabase.co/auth/v1/user"
    r = requests.get(url, headers=headers, timeout=10)
    if r.status_code != 200:
        raise HTTPException(status_code=401, detail="Could not verify token with Supabase")
    data = r.json() or {}
    user = data.get("user") or {}
    uid = data.get("id") or user.get("id")
    if not uid:
        raise HTTPException(status_code=401, detail="User id not found from Supabase")
    return uid, data.get("email") or user.get("email")


def _identity(claims: dict) -> Identity:
    sub = claims.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing subject (sub)")
    return sub, claims.get("email")


def verify_token(token: str, settings: Settings) -> Identity:
    """
    Accepts Supabase access tokens signed with:
      - HS256 (JWT secret)  -> verify with SUPABASE_JWT_SECRET
      - RS256 (JWKS)        -> verify with JWKS
    Falls back to /auth/v1/user if needed.
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
        alg = unverified_header.get("alg", "").upper()
    except JWTError:
        return _fetch_user_from_supabase(token, settings)

    options = {"verify_aud": False, "verify_iss": settings.jwt_issuer is not None}

    if alg == "HS256" and settings.supabase_jwt_secret:
        try:
            claims = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                options=options,
                issuer=settings.jwt_issuer,
            )
        except JWTError as e:
            raise HTTPException(status_code=401, detail=f"Invalid token (HS256): {e}")
        return _identity(claims)

    if alg == "RS256" and settings.supabase_project_ref:
        jwks = _get_jwks(settings)
        kid = unverified_header.get("kid")
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise HTTPException(status_code=401, detail="Signing key not found")
        try:
            claims = jwt.decode(token, key, algorithms=["RS256"], options=options, issuer=settings.jwt_issuer)
        except JWTError as e:
            raise HTTPException(status_code=401, detail=f"Invalid token (RS256): {e}")
        return _identity(claims)

    return _fetch_user_from_supabase(token, settings)


async def role_of(store: DocumentStore, user_id: str) -> Role:
    """Role from users/<uid>; no record means staff."""
    record = await store.get(USERS, user_id) or {}
    try:
        return Role(str(record.get("role", Role.STAFF.value)).lower())
    except ValueError:
        return Role.STAFF


async def actor_for_token(token: str, settings: Settings, store: DocumentStore) -> Actor:
    user_id, email = await asyncio.to_thread(verify_token, token, settings)
    return Actor(id=user_id, email=email, role=await role_of(store, user_id))
