from typing import Generator
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.db import Base
from backoffice.keys import key_cache
from backoffice.main import app, get_session_factory


@pytest.fixture(scope="function")
def engine():
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def fresh_key_cache():
    # The signing key cache is process-wide; each test has its own database
    key_cache.invalidate()
    yield
    key_cache.invalidate()


class SessionSpy:
    """Records begin/commit/rollback/close calls made on the sessions it hands out."""

    TRACKED = ("begin", "commit", "rollback", "close")

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.sessions = []

    @staticmethod
    def watch(session):
        session.calls = []
        for name in SessionSpy.TRACKED:
            original = getattr(session, name)

            def recorder(*args, _name=name, _original=original, **kwargs):
                session.calls.append(_name)
                return _original(*args, **kwargs)

            setattr(session, name, recorder)
        return session

    def __call__(self):
        session = self.watch(self.session_factory())
        self.sessions.append(session)
        return session


@pytest.fixture(scope="function")
def spy_factory(session_factory):
    return SessionSpy(session_factory)


@pytest.fixture(scope="function")
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def admin_headers(client):
    r = client.post("/users", json={"name": "Admin", "phone": "+15559990000", "role": "admin", "password": "adminpass"})
    assert r.status_code == 201
    token = client.post("/auth/login", json={"phone": "+15559990000", "password": "adminpass"}).json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
