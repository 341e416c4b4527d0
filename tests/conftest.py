"""Shared pytest fixtures for divertboard tests."""

from __future__ import annotations

import os

# Read by divertboard.config at import time.
os.environ["DIVERT_TZ"] = "America/Regina"
os.environ["BACKFILL_DAYS"] = "7"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from divertboard import models  # noqa: F401, E402
from divertboard.database import Base, get_db  # noqa: E402
from divertboard.main import app  # noqa: E402
from divertboard.models import Hospital  # noqa: E402
from divertboard.store import create_hospital  # noqa: E402


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine shared across connections, tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory) -> Session:
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def hospital(db: Session) -> Hospital:
    return create_hospital(db, "Regina General", "RGH")


@pytest.fixture
def client(session_factory) -> TestClient:
    """API client bound to the in-memory database.

    Not entered as a context manager, so the app lifespan (which touches the
    configured on-disk database) never runs.
    """

    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
