import os
import sys
from pathlib import Path

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DATABASE_URL = "sqlite://"
TEST_USER_EMAIL = "underwriter@example.com"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("AUTH_REQUIRED", "true")
os.environ.setdefault("SCHEMA_PATH", "")

from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.services.audit_logger import AuditLogger  # noqa: E402
from app.services.change_feed import ChangeFeed, get_change_feed  # noqa: E402
from app.services.remote_store import RemoteStore  # noqa: E402
from app.services.schema_registry import DEFAULT_SCHEMA_PATH, SchemaRegistry  # noqa: E402
from app.services.table_orchestrator import TableOrchestrator  # noqa: E402


def _create_testing_engine():
    return create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


def _create_test_sessionmaker(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(scope="session")
def engine():
    engine = _create_testing_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    connection = engine.connect()

    TestingSessionLocal = _create_test_sessionmaker(connection)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        connection.close()


@pytest.fixture(scope="session")
def registry() -> SchemaRegistry:
    return SchemaRegistry.from_yaml(DEFAULT_SCHEMA_PATH)


@pytest.fixture()
def change_feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture()
def store(db_session: Session, change_feed: ChangeFeed) -> RemoteStore:
    return RemoteStore(db_session, change_feed=change_feed)


@pytest.fixture()
def audit_logger(store: RemoteStore) -> AuditLogger:
    return AuditLogger(store.append_audit)


@pytest.fixture()
def make_orchestrator(registry, store, audit_logger, change_feed):
    def _make(table_name: str, user: str | None = TEST_USER_EMAIL) -> TableOrchestrator:
        return TableOrchestrator(
            registry,
            table_name,
            store=store,
            audit_logger=audit_logger,
            user=user,
            change_feed=change_feed,
        )

    return _make


class PrefixedTestClient(TestClient):
    api_prefix = "/api"

    def request(self, method: str, url: str, *args, **kwargs):  # type: ignore[override]
        if url.startswith("/") and not url.startswith("/health"):
            url = f"{self.api_prefix}{url}"
        return super().request(method, url, *args, **kwargs)


@pytest.fixture()
def client(db_session: Session, change_feed: ChangeFeed) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_change_feed] = lambda: change_feed

    client = PrefixedTestClient(app, headers={"X-Auth-Request-Email": TEST_USER_EMAIL})
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_db, None)
        app.dependency_overrides.pop(get_change_feed, None)
