"""Failure paths: storage and disk errors, bad parameters, unexpected exceptions."""

import os

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

import main


def fail(exc):
    def raiser(*args, **kwargs):
        raise exc
    return raiser


def test_module_level_app_is_importable():
    assert isinstance(main.app, FastAPI)
    paths = {route.path for route in main.app.routes}
    assert "/api/posts/posts" in paths
    assert "/api/auth/login" in paths


def test_feed_storage_failure(client, app, monkeypatch):
    monkeypatch.setattr(app.state.store.posts, "find_many", fail(PyMongoError("store down")))
    r = client.get("/api/posts/posts")
    assert r.status_code == 500
    assert r.json() == {"message": "Error fetching posts"}


def test_failure_stays_with_its_request(client, app, monkeypatch, alice):
    _, headers = alice
    post_id = client.post("/api/posts/create", data={"text": "ok"}, headers=headers).json()["id"]
    monkeypatch.setattr(app.state.store.comments, "find_many", fail(PyMongoError("store down")))
    assert client.get(f"/api/posts/{post_id}/comments").json() == {"message": "Error fetching comments"}
    assert [p["id"] for p in client.get("/api/posts/posts").json()] == [post_id]


def test_register_storage_failure(client, app, monkeypatch):
    monkeypatch.setattr(app.state.store.users, "create", fail(PyMongoError("store down")))
    r = client.post("/api/auth/register", json={"username": "alice", "email": "a@x.com", "password": "secret1"})
    assert r.status_code == 500
    assert r.json() == {"message": "Error registering user"}


def test_login_storage_failure(client, app, monkeypatch):
    monkeypatch.setattr(app.state.store.users, "find_one", fail(PyMongoError("store down")))
    r = client.post("/api/auth/login", json={"username": "alice", "password": "secret1"})
    assert r.status_code == 500
    assert r.json() == {"message": "Error logging in"}


def test_post_insert_failure_removes_saved_image(client, app, alice, settings, db, monkeypatch):
    _, headers = alice
    monkeypatch.setattr(app.state.store.posts, "create", fail(PyMongoError("store down")))
    r = client.post(
        "/api/posts/create",
        files={"image": ("cat.png", b"\x89PNG", "image/png")},
        headers=headers,
    )
    assert r.status_code == 500
    assert r.json() == {"message": "Error creating post"}
    assert os.listdir(settings.UPLOAD_DIR) == []
    assert db.posts.count_documents({}) == 0


def test_disk_failure_creates_no_post(client, app, alice, db, monkeypatch):
    _, headers = alice
    monkeypatch.setattr(app.state.uploads, "save", fail(OSError("disk full")))
    r = client.post(
        "/api/posts/create",
        files={"image": ("cat.png", b"\x89PNG", "image/png")},
        headers=headers,
    )
    assert r.status_code == 500
    assert r.json() == {"message": "Error creating post"}
    assert db.posts.count_documents({}) == 0


def test_health_reports_database_state(client, app, monkeypatch):
    monkeypatch.setattr(app.state.store.db, "command", lambda *a, **kw: {"ok": 1.0})
    assert client.get("/health").json() == {"status": "ok", "database": "connected"}

    monkeypatch.setattr(app.state.store.db, "command", fail(PyMongoError("unreachable")))
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "database": "unreachable"}


@pytest.mark.parametrize("limit", ["0", "1001", "100000000000000000000"])
def test_comment_limit_out_of_range(client, limit):
    r = client.get("/api/posts/65f000000000000000000000/comments", params={"limit": limit})
    assert r.status_code == 400
    assert "message" in r.json()


def test_unexpected_error_is_json(app, monkeypatch):
    monkeypatch.setattr(app.state.store.posts, "find_many", fail(RuntimeError("boom")))
    client = TestClient(app, raise_server_exceptions=False)
    r = client.get("/api/posts/posts")
    assert r.status_code == 500
    assert r.json() == {"message": "Internal server error"}
