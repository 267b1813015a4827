import os
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway database and upload folder before it is imported.
_TMP = Path(tempfile.mkdtemp(prefix="campus_api_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")

from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, Session, create_engine  # noqa: E402

from campus_api import models, services  # noqa: E402
from campus_api.database import engine as app_engine  # noqa: E402
from campus_api.utils.file_store import FileStore  # noqa: E402


@pytest.fixture
def session():
    """An in-memory database session for service tests without HTTP."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


@pytest.fixture
def make_user(session):
    def _make(role="student", name=None):
        email = f"{role}-{uuid.uuid4().hex[:8]}@campus.test"
        return services.AuthService(session).register(name or role.title(), email, "pw", role)
    return _make


@pytest.fixture
def store(tmp_path):
    return FileStore(tmp_path / "uploads", max_bytes=1024)


@pytest.fixture
def auth_headers():
    """Create a user with `role` in the app database and return (user, headers)."""
    def _make(role="student"):
        with Session(app_engine) as s:
            email = f"{role}-{uuid.uuid4().hex[:8]}@campus.test"
            user = services.AuthService(s).register(role.title(), email, "pw", role)
            token = services.AuthService.issue_token(user)
            return user.id, {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def course_payload():
    def _make(**overrides):
        data = {
            "title": f"Course {uuid.uuid4().hex[:8]}",
            "description": "An introductory survey.",
            "department": models.Department.computer_science.value,
            "credits": 3,
        }
        data.update(overrides)
        return data
    return _make
