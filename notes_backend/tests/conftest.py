import os
import tempfile

import pytest

# Settings are read at import time; keep the startup storage roots and the
# default database out of the working directory.
_SCRATCH = tempfile.mkdtemp(prefix="notes-backend-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(_SCRATCH, "notes.db"))
os.environ.setdefault("AVATAR_UPLOAD_DIR", os.path.join(_SCRATCH, "avatars"))
os.environ.setdefault("ATTACHMENT_UPLOAD_DIR", os.path.join(_SCRATCH, "attachments"))

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from notes_backend.api.core import get_storage  # noqa: E402
from notes_backend.api.main import app  # noqa: E402
from notes_backend.api.storage import FileStorage  # noqa: E402
from notes_database.db import get_db  # noqa: E402
from notes_database.models import Base  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine per test."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Provide a SQLAlchemy session for isolated test usage."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def storage(tmp_path):
    """File storage rooted in the test's temporary directory."""
    return FileStorage(
        avatar_dir=tmp_path / "avatars",
        attachment_dir=tmp_path / "attachments",
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def client(db_session, storage):
    """Fixture for FastAPI TestClient with test DB and storage overrides."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def user_data():
    """Returns default user data for registration."""
    return {"username": "alice", "password": "alicepassword123"}


@pytest.fixture
def second_user_data():
    """Returns a second user's data."""
    return {"username": "bob", "password": "bobpassword456"}


def register_and_auth(client, username, password):
    """Helper for registering then logging in to get a JWT token."""
    r1 = client.post("/api/auth/register", json={"username": username, "password": password})
    assert r1.status_code == 200

    r2 = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r2.status_code == 200
    return r2.json()["access_token"]


@pytest.fixture
def auth_header(client, user_data):
    """Returns {'Authorization': 'Bearer <token>'} for default user."""
    token = register_and_auth(client, user_data["username"], user_data["password"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def second_auth_header(client, second_user_data):
    """Returns auth header for second user."""
    token = register_and_auth(client, second_user_data["username"], second_user_data["password"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def note_factory(client):
    """Create a note through the API and return its JSON."""
    def create(headers, title="Note", content="Body", is_public=False):
        r = client.post(
            "/api/notes",
            json={"title": title, "content": content, "is_public": is_public},
            headers=headers,
        )
        assert r.status_code == 201
        return r.json()
    return create
