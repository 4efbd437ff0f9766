"""Tests for exception hierarchy."""

from whisperwalls.exceptions import (
    WhisperWallsError,
    ValidationError,
    InvalidSession,
    NotUnlockable,
    DuplicatePrincipal,
    AlreadyReacted,
    InvalidCredentials,
    AuthenticationRequired,
    NotFound,
    IPLocked,
    Unavailable,
    Timeout,
)


def test_all_inherit_from_base():
    for exc_class in [
        ValidationError, InvalidSession, NotUnlockable,
        DuplicatePrincipal, AlreadyReacted,
        InvalidCredentials, AuthenticationRequired,
        NotFound, IPLocked,
        Unavailable, Timeout,
    ]:
        assert issubclass(exc_class, WhisperWallsError)


def test_validation_hierarchy():
    assert issubclass(InvalidSession, ValidationError)
    assert issubclass(NotUnlockable, ValidationError)


def test_timeout_is_unavailable():
    assert issubclass(Timeout, Unavailable)
    assert Timeout.status_code == 504
    assert Unavailable.status_code == 503


def test_default_message_comes_from_docstring():
    assert str(InvalidCredentials()) == "Invalid credentials."


def test_to_dict():
    e = NotFound("Whisper abc not found")
    assert e.to_dict() == {"error": "not_found", "message": "Whisper abc not found"}
    assert e.status_code == 404
