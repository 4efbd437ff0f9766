"""Account views and account-level content lifecycle."""

from __future__ import annotations

import logging

from whisperwalls import linkage, reactions, whispers
from whisperwalls.database import timestamp, transaction
from whisperwalls.exceptions import NotFound
from whisperwalls.identity import require_active_session
from whisperwalls.models import Account, AccountStats, Whisper

logger = logging.getLogger(__name__)


def _load_account(conn, account_id) -> Account:
    row = conn.execute(
        """
        SELECT id, username, email, display_name, bio, current_session_id, created_at,
               whispers_created, whispers_discovered, reactions_given, likes_received
        FROM accounts WHERE id = ?
        """,
        (account_id,),
    ).fetchone()
    if row is None:
        raise NotFound(f"Account {account_id} not found")

    # Index entries whose whisper has since been deleted are skipped.
    created = conn.execute(
        """
        SELECT aw.whisper_id FROM account_whispers aw
        JOIN whispers w ON w.id = aw.whisper_id
        WHERE aw.account_id = ? ORDER BY w.created_at DESC, w.seq DESC
        """,
        (account_id,),
    ).fetchall()
    discovered = conn.execute(
        """
        SELECT ad.whisper_id FROM account_discoveries ad
        JOIN whispers w ON w.id = ad.whisper_id
        WHERE ad.account_id = ? ORDER BY ad.discovered_at DESC
        """,
        (account_id,),
    ).fetchall()

    return Account(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        display_name=row["display_name"],
        bio=row["bio"],
        session_id=row["current_session_id"],
        created_at=row["created_at"],
        stats=AccountStats(
            whispers_created=row["whispers_created"],
            whispers_discovered=row["whispers_discovered"],
            reactions_given=row["reactions_given"],
            likes_received=row["likes_received"],
        ),
        created_whispers=[r["whisper_id"] for r in created],
        discovered_whispers=[r["whisper_id"] for r in discovered],
    )


def get_account(account_id) -> Account:
    with transaction() as conn:
        return _load_account(conn, account_id)


def get_profile(account_id) -> Account:
    """Account view with ``likes_received`` recomputed first."""
    with transaction(immediate=True) as conn:
        linkage.require_account(conn, account_id)
        reactions.recompute_in(conn, account_id)
        return _load_account(conn, account_id)


def reset_account_content(account_id) -> int:
    """Delete every whisper the account created and clear its indices and stats.

    Whispers the account only discovered are left alone. Anonymous whispers
    from its bound sessions count as its own and go too. Everything happens in
    one transaction, and the reset time is recorded so a later reconcile does
    not pull earlier activity back in.
    """
    with transaction(immediate=True) as conn:
        linkage.require_account(conn, account_id)
        linkage.adopt_bound_sessions(conn, account_id)
        deleted = whispers.delete_by_creator(account_id, conn)
        conn.execute("DELETE FROM account_whispers WHERE account_id = ?", (account_id,))
        conn.execute("DELETE FROM account_discoveries WHERE account_id = ?", (account_id,))
        conn.execute("DELETE FROM account_reactions WHERE account_id = ?", (account_id,))
        conn.execute(
            """
            UPDATE accounts
            SET whispers_created = 0, whispers_discovered = 0,
                reactions_given = 0, likes_received = 0,
                content_reset_at = ?
            WHERE id = ?
            """,
            (timestamp(), account_id),
        )

    logger.info(f"Account {account_id} data reset: {deleted} whispers deleted")
    return deleted


def delete_account(account_id):
    """Delete the account principal and its private data.

    Whispers it created stay in the store with no creator, so the content
    outlives the identity.
    """
    with transaction(immediate=True) as conn:
        linkage.require_account(conn, account_id)
        orphaned = conn.execute(
            "UPDATE whispers SET creator_id = NULL WHERE creator_id = ?", (account_id,)
        ).rowcount
        conn.execute(
            "UPDATE anonymous_sessions SET account_id = NULL WHERE account_id = ?", (account_id,)
        )
        conn.execute("DELETE FROM auth_tokens WHERE account_id = ?", (account_id,))
        conn.execute("DELETE FROM account_whispers WHERE account_id = ?", (account_id,))
        conn.execute("DELETE FROM account_discoveries WHERE account_id = ?", (account_id,))
        conn.execute("DELETE FROM account_reactions WHERE account_id = ?", (account_id,))
        conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))

    logger.info(f"Account {account_id} deleted; {orphaned} whispers orphaned")
    return orphaned


def _reconcile_if_empty(index_table, account_id):
    with transaction() as conn:
        empty = conn.execute(
            f"SELECT 1 FROM {index_table} WHERE account_id = ? LIMIT 1", (account_id,)
        ).fetchone() is None
    if empty:
        linkage.reconcile_account(account_id)


def list_created(session_id, account_id=None) -> list[Whisper]:
    """The requester's own whispers, newest first.

    Authenticated requesters get everything in their account; an empty index
    is reconciled first so unlinked whispers show up. Anonymous requesters get
    the session's.
    """
    if account_id is None:
        return whispers.list_by_session(session_id)

    _reconcile_if_empty("account_whispers", account_id)
    with transaction() as conn:
        ids = [
            r["whisper_id"]
            for r in conn.execute(
                "SELECT whisper_id FROM account_whispers WHERE account_id = ?", (account_id,)
            )
        ]
        return whispers.list_by_ids(conn, ids)


def list_discovered(session_id, account_id=None) -> list[Whisper]:
    """Whispers the requester has discovered, newest first."""
    if account_id is not None:
        _reconcile_if_empty("account_discoveries", account_id)
        query = "SELECT whisper_id FROM account_discoveries WHERE account_id = ?"
        param = account_id
    else:
        query = "SELECT whisper_id FROM discoveries WHERE session_id = ?"
        param = session_id

    with transaction() as conn:
        if account_id is None:
            require_active_session(conn, session_id)
        ids = [r["whisper_id"] for r in conn.execute(query, (param,))]
        return whispers.list_by_ids(conn, ids)
