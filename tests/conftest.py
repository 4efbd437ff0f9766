"""Shared fixtures: a throwaway SQLite store per test and a Flask test client."""

import pytest

from whisperwalls import config, database, identity


@pytest.fixture(autouse=True)
def db(tmp_path, monkeypatch):
    db_path = tmp_path / "whisperwalls.db"
    monkeypatch.setattr(database, "DATABASE_PATH", str(db_path))
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    identity._dummy_hash.cache_clear()
    database.init_database()
    return db_path


@pytest.fixture
def session_id():
    return identity.create_anonymous_session()


@pytest.fixture
def other_session():
    return identity.create_anonymous_session()


@pytest.fixture
def account_id():
    return identity.register("creator", "creator@example.com", "password123")


@pytest.fixture
def other_account():
    return identity.register("finder", "finder@example.com", "password123")


@pytest.fixture
def app():
    from main import create_app
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "RATELIMIT_ENABLED": False,
        "SESSION_TYPE": "null",
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()
