import os
import tempfile

import mongomock
import pytest
from fastapi.testclient import TestClient

SECRET = "test-secret-that-is-long-enough-for-hs256"

# main builds its module-level app from the environment at import time
os.environ.setdefault("JWT_SECRET", SECRET)
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="social-uploads-"))

from config import Settings  # noqa: E402
from main import create_app  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return Settings(
        JWT_SECRET=SECRET,
        UPLOAD_DIR=str(tmp_path / "uploads"),
        BCRYPT_ROUNDS=4,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["socialMediaPlatform"]


@pytest.fixture
def app(settings, db):
    return create_app(settings, db)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def register(client, username="alice", email="a@x.com", password="secret1"):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


def login(client, username="alice", password="secret1"):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(client):
    """Registered user: (user id, auth headers)."""
    uid = register(client).json()["userId"]
    token = login(client).json()["token"]
    return uid, bearer(token)
