import os
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from whisperwalls.exceptions import Timeout, Unavailable

logger = logging.getLogger(__name__)

DATABASE_PATH = os.getenv("DATABASE_PATH", "whisperwalls.db")
DATABASE_TIMEOUT = float(os.getenv("DATABASE_TIMEOUT", "5"))

IP_LOCK_THRESHOLD = 10
IP_LOCK_MINUTES = 30

MISSING_ACCOUNT_COLUMNS = [
    ("content_reset_at", "TEXT"),
]

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        display_name TEXT,
        bio TEXT,
        current_session_id TEXT,
        whispers_created INTEGER NOT NULL DEFAULT 0,
        whispers_discovered INTEGER NOT NULL DEFAULT 0,
        reactions_given INTEGER NOT NULL DEFAULT 0,
        likes_received INTEGER NOT NULL DEFAULT 0,
        content_reset_at TEXT,
        created_at TEXT NOT NULL,
        last_active_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS anonymous_sessions (
        session_id TEXT PRIMARY KEY,
        account_id TEXT REFERENCES accounts(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        reset_at TEXT,
        replaced_by TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS whispers (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT UNIQUE NOT NULL,
        text TEXT NOT NULL,
        tone TEXT NOT NULL CHECK (tone IN ('Joy', 'Longing', 'Gratitude', 'Apology', 'Heartbreak')),
        latitude REAL NOT NULL CHECK (latitude BETWEEN -90 AND 90),
        longitude REAL NOT NULL CHECK (longitude BETWEEN -180 AND 180),
        why_here TEXT,
        session_id TEXT NOT NULL,
        creator_id TEXT REFERENCES accounts(id) ON DELETE SET NULL,
        proximity_required REAL NOT NULL,
        dwell_time INTEGER NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    # Point entries keyed by whispers.seq; bounding-box lookups go through this.
    "CREATE VIRTUAL TABLE IF NOT EXISTS whispers_rtree USING rtree(id, min_lat, max_lat, min_lng, max_lng)",
    """
    CREATE TRIGGER IF NOT EXISTS whispers_rtree_insert AFTER INSERT ON whispers BEGIN
        INSERT INTO whispers_rtree (id, min_lat, max_lat, min_lng, max_lng)
        VALUES (new.seq, new.latitude, new.latitude, new.longitude, new.longitude);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS whispers_rtree_delete AFTER DELETE ON whispers BEGIN
        DELETE FROM whispers_rtree WHERE id = old.seq;
    END
    """,
    "CREATE INDEX IF NOT EXISTS idx_whispers_creator ON whispers (creator_id)",
    "CREATE INDEX IF NOT EXISTS idx_whispers_session ON whispers (session_id)",
    """
    CREATE TABLE IF NOT EXISTS reactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        whisper_id TEXT NOT NULL REFERENCES whispers(id) ON DELETE CASCADE,
        session_id TEXT NOT NULL,
        type TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (whisper_id, session_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS discoveries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        whisper_id TEXT NOT NULL REFERENCES whispers(id) ON DELETE CASCADE,
        session_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (whisper_id, session_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS arrivals (
        whisper_id TEXT NOT NULL REFERENCES whispers(id) ON DELETE CASCADE,
        session_id TEXT NOT NULL,
        arrived_at TEXT NOT NULL,
        PRIMARY KEY (whisper_id, session_id)
    )
    """,
    # Account indices point into whispers without a foreign key: entries for
    # deleted whispers are left behind and skipped by readers.
    """
    CREATE TABLE IF NOT EXISTS account_whispers (
        account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        whisper_id TEXT NOT NULL,
        linked_at TEXT NOT NULL,
        PRIMARY KEY (account_id, whisper_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS account_discoveries (
        account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        whisper_id TEXT NOT NULL,
        discovered_at TEXT NOT NULL,
        PRIMARY KEY (account_id, whisper_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS account_reactions (
        account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        whisper_id TEXT NOT NULL,
        reacted_at TEXT NOT NULL,
        PRIMARY KEY (account_id, whisper_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY,
        account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        last_activity TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ip_login_attempts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ip_address TEXT NOT NULL,
        failed_attempts INTEGER DEFAULT 0,
        locked_until TEXT,
        last_attempt TEXT,
        UNIQUE(ip_address)
    )
    """,
]


def utcnow():
    return datetime.now(timezone.utc)


def timestamp(dt=None):
    """ISO 8601 UTC timestamp with fixed precision, so text order is time order."""
    return (dt or utcnow()).isoformat(timespec="microseconds")


def _translate(error):
    message = str(error).lower()
    if "locked" in message or "busy" in message:
        logger.error(f"Store call timed out: {error}")
        return Timeout(f"Store call timed out: {error}")
    logger.error(f"Store unavailable: {error}")
    return Unavailable(f"Store unavailable: {error}")


def get_db():
    """Get database connection."""
    try:
        conn = sqlite3.connect(DATABASE_PATH, timeout=DATABASE_TIMEOUT)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
    except (sqlite3.OperationalError, sqlite3.DatabaseError) as e:
        raise _translate(e) from e
    return conn


@contextmanager
def transaction(immediate=False):
    """Connection scoped to one transaction: commit on success, roll back on error.

    ``immediate`` takes the write lock up front so read-then-write sequences
    see a stable snapshot.
    """
    conn = get_db()
    try:
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        raise
    except (sqlite3.OperationalError, sqlite3.DatabaseError) as e:
        conn.rollback()
        raise _translate(e) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_database():
    with transaction() as conn:
        for statement in SCHEMA:
            conn.execute(statement)

        # Check for existing columns and add if missing
        columns = [col[1] for col in conn.execute("PRAGMA table_info(accounts)").fetchall()]
        for col_name, col_type in MISSING_ACCOUNT_COLUMNS:
            if col_name not in columns:
                logger.info(f"Adding {col_name} column to accounts table")
                conn.execute(f"ALTER TABLE accounts ADD COLUMN {col_name} {col_type}")
    logger.info("Database initialized successfully")


def is_ip_locked(ip_address):
    """Check if IP address is locked due to failed login attempts."""
    with transaction() as conn:
        result = conn.execute(
            "SELECT locked_until FROM ip_login_attempts WHERE ip_address = ?",
            (ip_address,),
        ).fetchone()

    if not result or not result["locked_until"]:
        return False
    return utcnow() < datetime.fromisoformat(result["locked_until"])


def increment_ip_failed_attempt(ip_address):
    """Increment failed attempts for IP address and lock it if necessary."""
    with transaction(immediate=True) as conn:
        conn.execute(
            """
            INSERT INTO ip_login_attempts (ip_address, failed_attempts, last_attempt)
            VALUES (?, 0, ?)
            ON CONFLICT(ip_address) DO NOTHING
            """,
            (ip_address, timestamp()),
        )
        failed_attempts = conn.execute(
            "SELECT failed_attempts FROM ip_login_attempts WHERE ip_address = ?",
            (ip_address,),
        ).fetchone()["failed_attempts"] + 1

        locked_until = None
        if failed_attempts >= IP_LOCK_THRESHOLD:
            locked_until = timestamp(utcnow() + timedelta(minutes=IP_LOCK_MINUTES))
            logger.warning(f"IP address locked: {ip_address}")

        conn.execute(
            """
            UPDATE ip_login_attempts
            SET failed_attempts = ?, locked_until = ?, last_attempt = ?
            WHERE ip_address = ?
            """,
            (failed_attempts, locked_until, timestamp(), ip_address),
        )


def reset_ip_failed_login(ip_address):
    """Reset failed login attempts for IP address."""
    with transaction() as conn:
        conn.execute(
            "UPDATE ip_login_attempts SET failed_attempts = 0, locked_until = NULL WHERE ip_address = ?",
            (ip_address,),
        )


def cleanup_expired_tokens():
    with transaction() as conn:
        conn.execute(
            "UPDATE auth_tokens SET is_active = FALSE WHERE expires_at < ?",
            (timestamp(),),
        )


def cleanup_expired_ip_locks():
    with transaction() as conn:
        conn.execute(
            "UPDATE ip_login_attempts SET locked_until = NULL WHERE locked_until < ?",
            (timestamp(),),
        )
