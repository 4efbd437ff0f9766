"""Identity store: anonymous sessions, accounts and auth tokens."""

import sqlite3
import logging
from datetime import datetime, timedelta
from functools import lru_cache

import bcrypt

from whisperwalls import config
from whisperwalls.database import transaction, timestamp, utcnow
from whisperwalls.exceptions import (
    DuplicatePrincipal, InvalidCredentials, InvalidSession, ValidationError
)
from whisperwalls.utils import (
    MAX_PASSWORD_BYTES, new_id, new_token, validate_email, validate_password, validate_username
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash():
    # Checked against when the principal is unknown, so both failure paths
    # pay the same bcrypt cost.
    return bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS))


def hash_password(password):
    return bcrypt.hashpw(
        password.encode("utf-8"), bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    ).decode("utf-8")


# Anonymous sessions

def _insert_session(conn, account_id=None):
    session_id = new_token()
    conn.execute(
        "INSERT INTO anonymous_sessions (session_id, account_id, created_at) VALUES (?, ?, ?)",
        (session_id, account_id, timestamp()),
    )
    return session_id


def create_anonymous_session():
    with transaction() as conn:
        session_id = _insert_session(conn)
    logger.info("Anonymous session created")
    return session_id


def require_active_session(conn, session_id):
    """Return the session row, or raise if it is unknown or was reset."""
    if not session_id or not isinstance(session_id, str):
        raise InvalidSession("sessionId is required")
    row = conn.execute(
        "SELECT session_id, account_id, reset_at FROM anonymous_sessions WHERE session_id = ?",
        (session_id,),
    ).fetchone()
    if row is None:
        raise InvalidSession("Unknown session")
    if row["reset_at"] is not None:
        raise InvalidSession("Session has been reset")
    return row


def reset_session(old_session_id):
    """Retire ``old_session_id`` and issue a replacement.

    Whispers created under the old identifier are left untouched. The new
    session carries no account binding.
    """
    with transaction(immediate=True) as conn:
        require_active_session(conn, old_session_id)
        new_session_id = _insert_session(conn)
        cursor = conn.execute(
            """
            UPDATE anonymous_sessions SET reset_at = ?, replaced_by = ?
            WHERE session_id = ? AND reset_at IS NULL
            """,
            (timestamp(), new_session_id, old_session_id),
        )
        if cursor.rowcount != 1:
            raise InvalidSession("Session has been reset")
        conn.execute(
            "UPDATE accounts SET current_session_id = NULL WHERE current_session_id = ?",
            (old_session_id,),
        )
    logger.info("Anonymous session reset")
    return new_session_id


def bind_session(session_id, account_id):
    """Bind an anonymous session to an account. First binding wins.

    Returns True when the session is (now) bound to ``account_id``.
    """
    with transaction() as conn:
        require_active_session(conn, session_id)
        conn.execute(
            """
            UPDATE anonymous_sessions SET account_id = ?
            WHERE session_id = ? AND account_id IS NULL
            """,
            (account_id, session_id),
        )
        row = conn.execute(
            "SELECT account_id FROM anonymous_sessions WHERE session_id = ?",
            (session_id,),
        ).fetchone()
    bound = row["account_id"] == account_id
    if bound:
        logger.info(f"Session bound to account {account_id}")
    else:
        logger.warning(f"Session already bound to another account; not rebinding to {account_id}")
    return bound


# Accounts

def register(username, email, password, display_name=None, session_id=None):
    for is_valid, error in (
        validate_username(username),
        validate_email(email),
        validate_password(password),
    ):
        if not is_valid:
            raise ValidationError(error)
    if display_name is not None and (not isinstance(display_name, str) or len(display_name) > 100):
        raise ValidationError("Display name must be a string of at most 100 characters")

    email = email.strip().lower()
    account_id = new_id()
    password_hash = hash_password(password)

    try:
        with transaction(immediate=True) as conn:
            conn.execute(
                """
                INSERT INTO accounts (id, username, email, password_hash, display_name, created_at, last_active_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (account_id, username, email, password_hash,
                 (display_name or "").strip() or username, timestamp(), timestamp()),
            )
            if session_id:
                require_active_session(conn, session_id)
                conn.execute(
                    "UPDATE anonymous_sessions SET account_id = ? WHERE session_id = ? AND account_id IS NULL",
                    (account_id, session_id),
                )
                owner = conn.execute(
                    "SELECT account_id FROM anonymous_sessions WHERE session_id = ?",
                    (session_id,),
                ).fetchone()["account_id"]
                if owner != account_id:
                    session_id = _insert_session(conn, account_id)
            else:
                session_id = _insert_session(conn, account_id)
            conn.execute(
                "UPDATE accounts SET current_session_id = ? WHERE id = ?",
                (session_id, account_id),
            )
    except sqlite3.IntegrityError as e:
        logger.info(f"Registration rejected, duplicate principal: {e}")
        raise DuplicatePrincipal() from e

    logger.info(f"Account {account_id} registered successfully")
    return account_id


def authenticate(email, password, session_id=None):
    """Verify credentials and issue a token.

    Unknown email and wrong password raise the same ``InvalidCredentials``.
    """
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise InvalidCredentials()

    with transaction() as conn:
        row = conn.execute(
            "SELECT id, password_hash FROM accounts WHERE email = ?",
            (email.strip().lower(),),
        ).fetchone()

    # bcrypt ignores bytes past 72; longer passwords can never have been registered.
    candidate = password.encode("utf-8")
    too_long = len(candidate) > MAX_PASSWORD_BYTES
    stored_hash = row["password_hash"].encode("utf-8") if row else _dummy_hash()
    password_ok = bcrypt.checkpw(candidate[:MAX_PASSWORD_BYTES], stored_hash)
    if row is None or too_long or not password_ok:
        logger.warning("Failed login attempt")
        raise InvalidCredentials()

    account_id = row["id"]
    if session_id and not bind_session(session_id, account_id):
        session_id = None

    with transaction(immediate=True) as conn:
        current = conn.execute(
            "SELECT current_session_id FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()["current_session_id"]
        if session_id:
            current = session_id
        elif not current:
            current = _insert_session(conn, account_id)
        conn.execute(
            "UPDATE accounts SET current_session_id = ?, last_active_at = ? WHERE id = ?",
            (current, timestamp(), account_id),
        )

    token = issue_token(account_id)
    logger.info(f"Account {account_id} logged in successfully")
    return account_id, token


# Auth tokens

def issue_token(account_id):
    token = new_token()
    now = utcnow()
    expires_at = now + timedelta(hours=config.TOKEN_LIFETIME_HOURS)
    with transaction() as conn:
        conn.execute(
            """
            INSERT INTO auth_tokens (token, account_id, created_at, expires_at, last_activity)
            VALUES (?, ?, ?, ?, ?)
            """,
            (token, account_id, timestamp(now), timestamp(expires_at), timestamp(now)),
        )
    return token


def validate_token(token):
    """Return the account id for an active token, refreshing its activity."""
    if not token:
        return None

    with transaction() as conn:
        row = conn.execute(
            "SELECT account_id, expires_at FROM auth_tokens WHERE token = ? AND is_active = TRUE",
            (token,),
        ).fetchone()
        if not row:
            return None

        if utcnow() > datetime.fromisoformat(row["expires_at"]):
            conn.execute("UPDATE auth_tokens SET is_active = FALSE WHERE token = ?", (token,))
            return None

        conn.execute(
            "UPDATE auth_tokens SET last_activity = ? WHERE token = ?",
            (timestamp(), token),
        )
    return row["account_id"]


def invalidate_token(token):
    with transaction() as conn:
        conn.execute("UPDATE auth_tokens SET is_active = FALSE WHERE token = ?", (token,))
