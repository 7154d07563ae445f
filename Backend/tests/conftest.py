"""
Shared fixtures: in-memory SQLite database, recording mailer, an in-memory
blob store and a TestClient wired to the real app through dependency
overrides.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("DATABASE_READONLY_URL", None)

import posixpath
from typing import Dict, List, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.database import Base, get_db
from portal.main import app
from portal.models.user import User, utcnow
from portal.schemas.documents import StoredFile
from portal.services.auth_service import AuthService
from portal.services.blob_store import get_blob_store, normalize_folder
from portal.services.captcha_service import RecaptchaVerifier, get_captcha_verifier
from portal.services.email_service import get_mailer
from portal.middleware.rate_limiter import rate_limiter
from portal.utils.security import hash_password

# not a bcrypt hash: rows that never log in skip the slow hashing
NO_LOGIN_HASH = "!"


# =============================================================================
# FAKES
# =============================================================================


class RecordingMailer:
    """Collects messages instead of talking SMTP."""

    def __init__(self):
        self.sent: List[Dict[str, str]] = []

    def send(self, to: str, subject: str, text: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})

    def to(self, address: str) -> List[Dict[str, str]]:
        return [m for m in self.sent if m["to"] == address]


class FakeBlobStore:
    """In-memory stand-in for the ImageKit gateway."""

    def __init__(self):
        self.files: Dict[str, StoredFile] = {}
        self.folders: Dict[str, List[str]] = {}
        self.uploads: List[Dict] = []
        self.moves: List[tuple] = []

    def add(self, file_path: str, created_at: str = "2023-05-01T10:00:00.000Z", size: int = 1024) -> StoredFile:
        file_id = f"file_{len(self.files) + 1}"
        stored = StoredFile(
            fileId=file_id,
            name=posixpath.basename(file_path),
            filePath=file_path,
            folder=normalize_folder(posixpath.dirname(file_path)),
            url=f"https://ik.imagekit.io/demo{file_path}",
            createdAt=created_at,
            size=size,
            fileType="non-image",
        )
        self.files[file_id] = stored
        return stored

    def list_files(self, prefix: str = "/", recursive: bool = False) -> List[StoredFile]:
        prefix = normalize_folder(prefix)
        if recursive:
            return [
                f for f in self.files.values()
                if prefix == "/" or f.folder == prefix or f.folder.startswith(prefix + "/")
            ]
        return [f for f in self.files.values() if f.folder == prefix]

    def list_folders(self, prefix: str) -> List[str]:
        return list(self.folders.get(normalize_folder(prefix), []))

    def upload(self, content: bytes, file_name: str, folder: str, tags: Optional[List[str]] = None) -> StoredFile:
        self.uploads.append({"content": content, "file_name": file_name, "folder": folder, "tags": tags})
        return self.add(f"{normalize_folder(folder).rstrip('/')}/{file_name}")

    def delete(self, file_id: str) -> None:
        self.files.pop(file_id)

    def move(self, source_file_path: str, destination_path: str) -> None:
        self.moves.append((source_file_path, destination_path))

    def rename(self, file_id: str, new_file_name: str) -> StoredFile:
        current = self.files[file_id]
        new_path = f"{current.folder.rstrip('/')}/{new_file_name}"
        renamed = current.model_copy(update={"name": new_file_name, "file_path": new_path})
        self.files[file_id] = renamed
        return renamed


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


def make_user(
    session,
    email: Optional[str] = None,
    role: str = "user",
    status: str = "pending",
    password: Optional[str] = None,
    full_name: Optional[str] = None,
    **fields,
) -> User:
    """Insert a user directly. ``status`` drives both approval columns."""
    approved = {"pending": fields.pop("is_approved", False), "approved": True, "rejected": False}[status]
    u = User(
        email=email or f"{uuid4().hex[:10]}@example.com",
        password_hash=hash_password(password) if password else NO_LOGIN_HASH,
        full_name=full_name or "Test User",
        organization_name="Acme",
        role=role,
        is_approved=approved,
        approval_status=status,
        approved_at=utcnow() if status != "pending" else None,
        **fields,
    )
    session.add(u)
    session.commit()
    session.refresh(u)
    return u


def auth_header(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {AuthService.token_for(user)}"}


@pytest.fixture
def super_admin(db_session) -> User:
    return make_user(db_session, "root@example.com", role="super_admin", status="approved",
                     password="RootPass123", full_name="Root Admin", is_first_time=False)


@pytest.fixture
def admin(db_session) -> User:
    return make_user(db_session, "admin@example.com", role="admin", status="approved",
                     password="AdminPass123", full_name="Ada Admin", is_first_time=False)


# =============================================================================
# APP
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    rate_limiter.clear()
    yield
    rate_limiter.clear()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def client(db_session, mailer, blob_store):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    # no secret key: any non-empty token passes, a missing one is still refused
    app.dependency_overrides[get_captcha_verifier] = lambda: RecaptchaVerifier(secret_key="")
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    yield TestClient(app)

    app.dependency_overrides.clear()
