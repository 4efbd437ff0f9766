"""Typed error hierarchy for the Whisper Walls core."""


class WhisperWallsError(Exception):
    """Base exception for all core errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message=None):
        super().__init__(message or self.__doc__.strip())
        self.message = message or self.__doc__.strip()

    def to_dict(self):
        return {"error": self.code, "message": self.message}


class ValidationError(WhisperWallsError):
    """Malformed or out-of-range input."""

    status_code = 400
    code = "validation_error"


class InvalidSession(ValidationError):
    """Session identifier is unknown or has been reset."""

    code = "invalid_session"


class NotUnlockable(ValidationError):
    """Whisper is not unlockable from the requester's position."""

    code = "not_unlockable"


class DuplicatePrincipal(WhisperWallsError):
    """An account with this username or email already exists."""

    status_code = 409
    code = "duplicate_principal"


class AlreadyReacted(WhisperWallsError):
    """This identity already reacted to the whisper."""

    status_code = 409
    code = "already_reacted"


class InvalidCredentials(WhisperWallsError):
    """Invalid credentials."""

    status_code = 401
    code = "invalid_credentials"


class AuthenticationRequired(WhisperWallsError):
    """Authentication required."""

    status_code = 401
    code = "authentication_required"


class NotFound(WhisperWallsError):
    """Referenced whisper or account does not exist."""

    status_code = 404
    code = "not_found"


class IPLocked(WhisperWallsError):
    """IP address temporarily locked."""

    status_code = 423
    code = "ip_locked"


# Store
class Unavailable(WhisperWallsError):
    """Store is temporarily unavailable."""

    status_code = 503
    code = "unavailable"


class Timeout(Unavailable):
    """Store call timed out."""

    status_code = 504
    code = "timeout"
