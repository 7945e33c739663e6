"""
Shared fixtures: an app wired to in-memory SQLite and a recording storage
fake, plus a bare session for testing the form engine without HTTP.
"""

import pytest
from fastapi.testclient import TestClient

from database import models  # noqa: F401  (registers tables)
from database.database import Base, build_engine, build_session_factory
from scholar_api import create_app
from services.storage import StorageClient, StorageError, StoredFile
from settings import Settings

from helpers import ADMIN_PASSWORD, API


class FakeStorage(StorageClient):
    """Storage client that records uploads and deletes instead of calling out."""

    def __init__(self):
        super().__init__("http://storage.test", "http://storage.test")
        self.uploaded = []
        self.deleted = []
        self.rejected_names = set()

    async def upload(self, upload):
        if upload.filename in self.rejected_names:
            raise StorageError(f"Failed to upload file {upload.filename}: rejected")
        filename = f"{len(self.uploaded) + 1}-{upload.filename}"
        self.uploaded.append(filename)
        return StoredFile(
            url=self.file_url(filename),
            filename=filename,
            original_name=upload.filename,
            content_type=upload.content_type,
        )

    async def delete(self, filename):
        self.deleted.append(filename)
        return True


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret",
        admin_password=ADMIN_PASSWORD,
        log_level="WARNING",
    )


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage=storage)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client):
    response = client.post(f"{API}/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['data']['access_token']}"}


@pytest.fixture
def db():
    """Plain session on a fresh in-memory database."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_scholar(client, admin_headers):
    def _make(name="Merit Scholarship", description="Annual merit award"):
        response = client.post(f"{API}/scholar", json={"name": name, "description": description}, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _make


@pytest.fixture
def make_field(client, admin_headers):
    def _make(scholar_id, questions, order=0, name="personal"):
        response = client.post(
            f"{API}/scholar-field",
            json={
                "scholar_id": scholar_id,
                "field_name": name,
                "field_label": name.title(),
                "order": order,
                "questions": questions,
            },
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _make


@pytest.fixture
def make_student(client, admin_headers):
    def _make(scholar_id, form_data=None):
        response = client.post(
            f"{API}/student",
            json={"scholar_id": scholar_id, "form_data": form_data or {}},
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _make

