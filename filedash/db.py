"""
Persistence for preferences documents and user accounts.

Each store has an in-memory implementation for development and tests and a
SQLAlchemy implementation that accepts any SQLAlchemy URL (Postgres in
production, SQLite in tests). Both persist the whole preferences document as
one JSON value keyed by user id.
"""

from __future__ import annotations

import copy
import json
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from filedash.errors import ConflictError, StorageFault
from filedash.preferences import (
    Preferences,
    create_default_preferences,
    normalize_preferences,
    preferences_from_dict,
    preferences_to_dict,
    validate_preferences,
)

logger = logging.getLogger(__name__)


class PreferencesStore(Protocol):
    """Whole-document persistence for dashboard preferences."""

    def load(self, user_id: str) -> Optional[Preferences]:
        ...

    def save(self, preferences: Preferences) -> Preferences:
        ...

    def create_default(self, user_id: str) -> Preferences:
        ...


class UserStore(Protocol):
    """Account records for sign-up / sign-in."""

    def create_user(self, email: str, password_hash: str) -> "UserRecord":
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...


@dataclass
class UserRecord:
    user_id: str
    email: str
    password_hash: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "created_at": self.created_at,
        }


def prepare_document(preferences: Preferences) -> dict:
    """
    Normalize, validate and timestamp a copy of ``preferences``.

    Returns the JSON document to write. Raises ValidationError before anything
    is written, so a rejected save never leaves a partial document behind.
    """
    candidate = normalize_preferences(copy.deepcopy(preferences))
    validate_preferences(candidate)
    now = datetime.now(timezone.utc)
    if candidate.created_at is None:
        candidate.created_at = now
    candidate.updated_at = now
    return preferences_to_dict(candidate)


class InMemoryPreferencesStore:
    """Simple in-memory preferences store for development and tests."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}

    def load(self, user_id: str) -> Optional[Preferences]:
        document = self.documents.get(user_id)
        if document is None:
            return None
        return preferences_from_dict(document)

    def save(self, preferences: Preferences) -> Preferences:
        document = prepare_document(preferences)
        # JSON round trip mimics what a real database hands back.
        self.documents[preferences.user_id] = json.loads(json.dumps(document))
        return preferences_from_dict(document)

    def create_default(self, user_id: str) -> Preferences:
        if user_id in self.documents:
            raise ConflictError(f"Preferences for user {user_id} already exist")
        return self.save(create_default_preferences(user_id))


class InMemoryUserStore:
    """Simple in-memory user store for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        if self.get_user_by_email(email) is not None:
            raise ConflictError(f"User {email} already exists")
        record = UserRecord(
            user_id=uuid.uuid4().hex, email=email, password_hash=password_hash
        )
        self.users[record.user_id] = record
        return record

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        for record in self.users.values():
            if record.email == email:
                return record
        return None

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)


def create_db_engine(database_url: str) -> Engine:
    """
    Build the process-wide SQLAlchemy engine and make sure tables exist.
    """
    if not database_url:
        raise ValueError("DATABASE_URL is required for the SQL stores")
    options = {"future": True, "pool_pre_ping": True}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # One shared connection, otherwise each thread sees an empty database.
        options.update(
            poolclass=StaticPool, connect_args={"check_same_thread": False}
        )
    else:
        options["pool_recycle"] = 1800
    engine = create_engine(database_url, **options)
    Base.metadata.create_all(engine)
    return engine


class _SqlStore:
    def __init__(self, engine: Engine):
        self.engine = engine
        self.Session = sessionmaker(
            bind=engine, class_=Session, expire_on_commit=False, future=True
        )

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Database %s failed", action)
            raise StorageFault(f"Database {action} failed: {exc}") from exc


class SqlPreferencesStore(_SqlStore):
    """SQLAlchemy-backed preferences store, one row per user."""

    def load(self, user_id: str) -> Optional[Preferences]:
        with self._session("read") as session:
            row = session.get(PreferencesRow, user_id)
            if not row:
                return None
            return preferences_from_dict(row.document)

    def save(self, preferences: Preferences) -> Preferences:
        document = prepare_document(preferences)
        now = time.time()
        with self._session("write") as session:
            row = session.get(PreferencesRow, preferences.user_id)
            if row:
                row.document = document
                row.updated_at = now
            else:
                session.add(
                    PreferencesRow(
                        user_id=preferences.user_id,
                        document=document,
                        created_at=now,
                        updated_at=now,
                    )
                )
            session.commit()
        return preferences_from_dict(document)

    def create_default(self, user_id: str) -> Preferences:
        document = prepare_document(create_default_preferences(user_id))
        now = time.time()
        with self._session("insert") as session:
            if session.get(PreferencesRow, user_id) is not None:
                raise ConflictError(f"Preferences for user {user_id} already exist")
            session.add(
                PreferencesRow(
                    user_id=user_id, document=document, created_at=now, updated_at=now
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(
                    f"Preferences for user {user_id} already exist"
                ) from exc
        return preferences_from_dict(document)


class SqlUserStore(_SqlStore):
    """SQLAlchemy-backed account store."""

    def _to_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            email=row.email,
            password_hash=row.password_hash,
            created_at=row.created_at,
        )

    def create_user(self, email: str, password_hash: str) -> UserRecord:
        with self._session("insert") as session:
            existing = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            if existing:
                raise ConflictError(f"User {email} already exists")
            row = UserRow(
                user_id=uuid.uuid4().hex,
                email=email,
                password_hash=password_hash,
                created_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"User {email} already exists") from exc
            return self._to_record(row)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session("read") as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            return self._to_record(row) if row else None

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._session("read") as session:
            row = session.get(UserRow, user_id)
            return self._to_record(row) if row else None


Base = declarative_base()


class PreferencesRow(Base):
    __tablename__ = "dashboard_preferences"

    user_id = Column(String, primary_key=True)
    document = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
