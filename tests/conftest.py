# tests/conftest.py

from __future__ import annotations

import os

# must be set before taskmind.database builds its module-level engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("TASKMIND_LLM_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskmind import ai_client
from taskmind.app import app
from taskmind.config import get_settings
from taskmind.database import Base, get_db

from .fakes import FakeLLM

_SETTINGS_ENV = (
    "TASKMIND_LLM_API_KEY",
    "TASKMIND_DEV_LOGIN",
    "TASKMIND_OWNER_EMAIL",
    "TASKMIND_SECRET_KEY",
)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch):
    """Every test starts without an API key, dev login or owner email."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def configure(monkeypatch: pytest.MonkeyPatch):
    """Set TASKMIND_* env vars for one test and refresh the cached settings."""

    def _configure(**env: str) -> None:
        for key, value in env.items():
            monkeypatch.setenv(f"TASKMIND_{key.upper()}", value)
        get_settings.cache_clear()

    return _configure


@pytest.fixture()
def engine():
    """In-memory SQLite shared by every session of one test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_client(client):
    """Client holding the session cookie of a freshly registered user."""
    r = client.post(
        "/api/auth/register",
        json={"name": "Test User", "email": "test@example.com", "password": "secret123"},
    )
    assert r.status_code == 201, r.text
    return client


@pytest.fixture()
def fake_llm(monkeypatch: pytest.MonkeyPatch, configure):
    """Configure an API key and route LLM requests to a FakeLLM.

    Tests replace the replies with ``fake_llm.replies = [...]``.
    """
    configure(llm_api_key="test-key")
    fake = FakeLLM()
    monkeypatch.setattr(ai_client, "_safe_post", fake)
    return fake
