from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from drivermon import models  # noqa: F401
from drivermon.auth import create_access_token
from drivermon.db import Base, enable_sqlite_foreign_keys, get_db
from drivermon.main import app
from drivermon.services.object_store import ObjectStoreError, get_object_store


class FakeObjectStore:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail = False

    def put(self, key: str, body: bytes, content_type: str) -> str:
        if self.fail:
            raise ObjectStoreError("bucket unavailable")
        self.objects[key] = (body, content_type)
        return f"https://bucket.test/{key}"

    def presign_upload(self, key: str, content_type: str) -> str:
        return f"https://bucket.test/{key}?upload=1"

    def presign_download(self, key: str) -> str:
        return f"https://bucket.test/{key}?signed=1"


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def client(engine, store):
    testing_session = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = testing_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: str = "user-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def headers():
    return auth_headers()
