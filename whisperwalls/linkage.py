"""Account linkage: keeps account indices in step with whisper attribution."""

import logging

from whisperwalls import reactions
from whisperwalls.database import timestamp, transaction
from whisperwalls.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)


def require_account(conn, account_id):
    row = conn.execute("SELECT id FROM accounts WHERE id = ?", (account_id,)).fetchone()
    if row is None:
        raise NotFound(f"Account {account_id} not found")
    return row


def append_created(conn, account_id, whisper_id):
    """Append to the created index; counts only on first insertion."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO account_whispers (account_id, whisper_id, linked_at) VALUES (?, ?, ?)",
        (account_id, whisper_id, timestamp()),
    )
    if cursor.rowcount != 1:
        return False
    conn.execute(
        "UPDATE accounts SET whispers_created = whispers_created + 1 WHERE id = ?",
        (account_id,),
    )
    return True


def append_discovered(conn, account_id, whisper_id):
    """Append to the discovered index; counts only on first insertion."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO account_discoveries (account_id, whisper_id, discovered_at) VALUES (?, ?, ?)",
        (account_id, whisper_id, timestamp()),
    )
    if cursor.rowcount != 1:
        return False
    conn.execute(
        "UPDATE accounts SET whispers_discovered = whispers_discovered + 1 WHERE id = ?",
        (account_id,),
    )
    return True


def _reset_cutoff(conn, account_id):
    row = conn.execute("SELECT content_reset_at FROM accounts WHERE id = ?", (account_id,)).fetchone()
    return (row and row["content_reset_at"]) or ""


def adopt_bound_sessions(conn, account_id):
    """Attribute creator-less whispers from sessions bound to the account.

    Whispers written before the account's last content reset are not adopted.
    """
    cursor = conn.execute(
        """
        UPDATE whispers SET creator_id = ?
        WHERE creator_id IS NULL
          AND created_at > ?
          AND session_id IN (SELECT session_id FROM anonymous_sessions WHERE account_id = ?)
        """,
        (account_id, _reset_cutoff(conn, account_id), account_id),
    )
    return cursor.rowcount


def link_whisper_to_account(whisper_id, account_id):
    """Link one whisper into the account's created index.

    A whisper with no creator is adopted only when it was written under a
    session bound to the account. Returns True when the index grew.
    """
    with transaction(immediate=True) as conn:
        require_account(conn, account_id)
        row = conn.execute(
            """
            SELECT w.creator_id, s.account_id AS session_account
            FROM whispers w
            LEFT JOIN anonymous_sessions s ON s.session_id = w.session_id
            WHERE w.id = ?
            """,
            (whisper_id,),
        ).fetchone()
        if row is None:
            raise NotFound(f"Whisper {whisper_id} not found")

        if row["creator_id"] is None:
            if row["session_account"] != account_id:
                raise ValidationError("Whisper was not created by this account")
            conn.execute(
                "UPDATE whispers SET creator_id = ? WHERE id = ? AND creator_id IS NULL",
                (account_id, whisper_id),
            )
        elif row["creator_id"] != account_id:
            raise ValidationError("Whisper was not created by this account")

        linked = append_created(conn, account_id, whisper_id)
        if linked:
            reactions.recompute_in(conn, account_id)

    if linked:
        logger.info(f"Whisper {whisper_id} linked to account {account_id}")
    return linked


def reconcile_account(account_id):
    """Repair the account's indices from the whisper store.

    Adopts whispers from bound sessions, appends attributed whispers missing
    from the created index, and appends discoveries made under bound
    sessions after the last content reset. Safe to repeat; never removes
    anything.
    """
    with transaction(immediate=True) as conn:
        require_account(conn, account_id)
        adopted = adopt_bound_sessions(conn, account_id)

        missing_created = conn.execute(
            """
            SELECT id FROM whispers
            WHERE creator_id = ?
              AND id NOT IN (SELECT whisper_id FROM account_whispers WHERE account_id = ?)
            ORDER BY created_at, seq
            """,
            (account_id, account_id),
        ).fetchall()
        created = sum(append_created(conn, account_id, r["id"]) for r in missing_created)

        missing_discovered = conn.execute(
            """
            SELECT DISTINCT d.whisper_id FROM discoveries d
            JOIN anonymous_sessions s ON s.session_id = d.session_id
            WHERE s.account_id = ?
              AND d.created_at > ?
              AND d.whisper_id NOT IN (SELECT whisper_id FROM account_discoveries WHERE account_id = ?)
            """,
            (account_id, _reset_cutoff(conn, account_id), account_id),
        ).fetchall()
        discovered = sum(append_discovered(conn, account_id, r["whisper_id"]) for r in missing_discovered)

        reactions.recompute_in(conn, account_id)

    if adopted or created or discovered:
        logger.info(
            f"Reconciled account {account_id}: adopted {adopted}, "
            f"re-linked {created} created, {discovered} discovered"
        )
    return {"adopted": adopted, "created": created, "discovered": discovered}
