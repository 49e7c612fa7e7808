import importlib
from contextlib import contextmanager

import pytest
from starlette.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session
from typer.testing import CliRunner

from spinwick.db import init_db
from spinwick.services.records import RecordStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def db_session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(engine) -> RecordStore:
    @contextmanager
    def session_factory():
        with Session(engine) as session:
            yield session

    return RecordStore(session_factory=session_factory)


@pytest.fixture()
def cli_runner(tmp_path, monkeypatch):
    # File-based SQLite so every CLI invocation sees the same database.
    db_path = tmp_path / "test_cli.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")

    import spinwick.db as db

    importlib.reload(db)
    init_db(db.engine)

    import spinwick.cli as cli

    importlib.reload(cli)

    return CliRunner(), cli


@pytest.fixture
def client(db_session):
    from spinwick.api import installations
    from spinwick.main import app

    def override_get_db():
        yield db_session

    # The CLI fixture reloads spinwick.db; override the dependency the router actually uses.
    app.dependency_overrides[installations.get_session] = override_get_db

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
