"""Tests for sessions, registration, authentication and tokens."""

from datetime import timedelta

import bcrypt
import pytest

from whisperwalls import identity, whispers
from whisperwalls.database import timestamp, transaction, utcnow
from whisperwalls.exceptions import (
    DuplicatePrincipal, InvalidCredentials, InvalidSession, ValidationError
)

LOCATION = {"latitude": 37.7749, "longitude": -122.4194}


def test_anonymous_sessions_are_distinct():
    assert identity.create_anonymous_session() != identity.create_anonymous_session()


def test_reset_session_issues_new_identifier(session_id):
    whisper = whispers.create_whisper("left here", "Joy", LOCATION, session_id)

    new_session = identity.reset_session(session_id)

    assert new_session != session_id
    with pytest.raises(InvalidSession, match="reset"):
        whispers.create_whisper("again", "Joy", LOCATION, session_id)
    # Content created under the old identifier survives.
    assert whispers.get_whisper(whisper.id).session_id == session_id
    whispers.create_whisper("fresh start", "Joy", LOCATION, new_session)


def test_reset_session_twice_fails(session_id):
    identity.reset_session(session_id)
    with pytest.raises(InvalidSession):
        identity.reset_session(session_id)


def test_unknown_session_is_rejected():
    with pytest.raises(InvalidSession, match="Unknown"):
        identity.reset_session("made-up")


def test_register_hashes_password(account_id):
    with transaction() as conn:
        row = conn.execute(
            "SELECT password_hash, current_session_id FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
    assert row["password_hash"] != "password123"
    assert bcrypt.checkpw(b"password123", row["password_hash"].encode("utf-8"))
    assert row["current_session_id"]


def test_register_duplicate_email(account_id):
    with pytest.raises(DuplicatePrincipal):
        identity.register("someoneelse", "Creator@Example.com", "password123")


def test_register_duplicate_username(account_id):
    with pytest.raises(DuplicatePrincipal):
        identity.register("creator", "another@example.com", "password123")


def test_register_validates_input():
    with pytest.raises(ValidationError):
        identity.register("ab", "a@example.com", "password123")
    with pytest.raises(ValidationError):
        identity.register("valid_name", "nope", "password123")
    with pytest.raises(ValidationError):
        identity.register("valid_name", "a@example.com", "short")
    with pytest.raises(ValidationError):
        identity.register("valid_name", "a@example.com", "x" * 100)


def test_register_binds_given_session(session_id):
    account = identity.register("binder", "binder@example.com", "password123", session_id=session_id)
    with transaction() as conn:
        row = conn.execute(
            "SELECT account_id FROM anonymous_sessions WHERE session_id = ?", (session_id,)
        ).fetchone()
    assert row["account_id"] == account


def test_authenticate_returns_token(account_id):
    authenticated, token = identity.authenticate("creator@example.com", "password123")
    assert authenticated == account_id
    assert identity.validate_token(token) == account_id


def test_authenticate_failures_are_indistinguishable(account_id):
    with pytest.raises(InvalidCredentials) as wrong_password:
        identity.authenticate("creator@example.com", "wrong-password")
    with pytest.raises(InvalidCredentials) as unknown_email:
        identity.authenticate("nobody@example.com", "password123")
    assert str(wrong_password.value) == str(unknown_email.value)
    assert wrong_password.value.to_dict() == unknown_email.value.to_dict()



def test_authenticate_rejects_password_past_bcrypt_limit():
    identity.register("longpass", "long@example.com", "p" * 72)

    # bcrypt alone would accept this, since it only reads the first 72 bytes.
    with pytest.raises(InvalidCredentials):
        identity.authenticate("long@example.com", "p" * 72 + "anything")
    assert identity.authenticate("long@example.com", "p" * 72)[0]


def test_bind_session_first_binding_wins(session_id, account_id, other_account):
    assert identity.bind_session(session_id, account_id) is True
    assert identity.bind_session(session_id, other_account) is False
    assert identity.bind_session(session_id, account_id) is True


def test_invalidated_token_is_rejected(account_id):
    _, token = identity.authenticate("creator@example.com", "password123")
    identity.invalidate_token(token)
    assert identity.validate_token(token) is None


def test_expired_token_is_rejected(account_id):
    token = identity.issue_token(account_id)
    with transaction() as conn:
        conn.execute(
            "UPDATE auth_tokens SET expires_at = ? WHERE token = ?",
            (timestamp(utcnow() - timedelta(minutes=1)), token),
        )
    assert identity.validate_token(token) is None


def test_validate_token_ignores_garbage():
    assert identity.validate_token(None) is None
    assert identity.validate_token("not-a-token") is None
