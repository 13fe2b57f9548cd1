"""
Dependency wiring for the FastAPI app.

Backends (database engine, stores, blob client) are built once by
``create_app`` and kept on ``app.state``; request handlers reach them through
the getters below.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from filedash.auth import AuthService
from filedash.config import Settings
from filedash.db import (
    InMemoryPreferencesStore,
    InMemoryUserStore,
    PreferencesStore,
    SqlPreferencesStore,
    SqlUserStore,
    UserStore,
    create_db_engine,
)
from filedash.service import PreferenceService
from filedash.storage import InMemoryStorageClient, S3StorageClient, StorageClient


@dataclass
class Backends:
    preferences: PreferencesStore
    users: UserStore
    storage: StorageClient


def build_backends(settings: Settings) -> Backends:
    if settings.use_in_memory_backends or not settings.database_url:
        preferences: PreferencesStore = InMemoryPreferencesStore()
        users: UserStore = InMemoryUserStore()
    else:
        engine = create_db_engine(settings.database_url)
        preferences = SqlPreferencesStore(engine)
        users = SqlUserStore(engine)

    if settings.use_in_memory_backends or not settings.s3_bucket:
        storage: StorageClient = InMemoryStorageClient()
    else:
        storage = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return Backends(preferences=preferences, users=users, storage=storage)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_backends(request: Request) -> Backends:
    return request.app.state.backends


def get_preference_service(
    backends: Backends = Depends(get_backends),
) -> PreferenceService:
    return PreferenceService(backends.preferences)


def get_auth_service(
    backends: Backends = Depends(get_backends),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(backends.users, rounds=settings.bcrypt_rounds)


def get_storage_client(backends: Backends = Depends(get_backends)) -> StorageClient:
    return backends.storage


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Identity is supplied by the client in ``X-User-Id`` and trusted as-is.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()
