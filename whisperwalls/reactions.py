"""Reaction aggregator: one reaction per (whisper, session), derived creator stats."""

import sqlite3
import logging

from whisperwalls.database import timestamp, transaction
from whisperwalls.exceptions import NotFound, ValidationError
from whisperwalls.identity import require_active_session
from whisperwalls.models import REACTION_HUG

logger = logging.getLogger(__name__)

REACTION_TYPES = (REACTION_HUG,)


def recompute_in(conn, account_id):
    """Recompute ``likes_received`` from every whisper attributed to the account.

    The stored value is a cache; this full recount repairs any drift left by
    earlier partial writes.
    """
    total = conn.execute(
        """
        SELECT COUNT(*) FROM reactions r
        JOIN whispers w ON w.id = r.whisper_id
        WHERE w.creator_id = ?
        """,
        (account_id,),
    ).fetchone()[0]
    conn.execute(
        "UPDATE accounts SET likes_received = ? WHERE id = ?",
        (total, account_id),
    )
    return total


def recompute_likes_received(account_id):
    with transaction(immediate=True) as conn:
        total = recompute_in(conn, account_id)
    logger.info(f"Updated account {account_id} likes received: {total}")
    return total


def add_reaction(whisper_id, session_id, account_id=None, reaction_type=REACTION_HUG):
    """Record a reaction.

    Returns False when this session already reacted to the whisper; the
    store's unique constraint decides, so concurrent duplicates collapse to
    one row.
    """
    if reaction_type not in REACTION_TYPES:
        raise ValidationError(f"reaction type must be one of: {', '.join(REACTION_TYPES)}")

    with transaction(immediate=True) as conn:
        require_active_session(conn, session_id)
        whisper = conn.execute(
            "SELECT creator_id FROM whispers WHERE id = ?", (whisper_id,)
        ).fetchone()
        if whisper is None:
            raise NotFound(f"Whisper {whisper_id} not found")

        try:
            conn.execute(
                "INSERT INTO reactions (whisper_id, session_id, type, created_at) VALUES (?, ?, ?, ?)",
                (whisper_id, session_id, reaction_type, timestamp()),
            )
        except sqlite3.IntegrityError:
            logger.info(f"Session already reacted to whisper {whisper_id}")
            return False

        # One count per (account, whisper), whichever of its sessions reacted.
        if account_id is not None:
            first = conn.execute(
                "INSERT OR IGNORE INTO account_reactions (account_id, whisper_id, reacted_at) "
                "SELECT id, ?, ? FROM accounts WHERE id = ?",
                (whisper_id, timestamp(), account_id),
            ).rowcount == 1
            if first:
                conn.execute(
                    "UPDATE accounts SET reactions_given = reactions_given + 1 WHERE id = ?",
                    (account_id,),
                )
        if whisper["creator_id"] is not None:
            total = recompute_in(conn, whisper["creator_id"])
            logger.info(f"Updated account {whisper['creator_id']} likes received: {total}")

    logger.info(f"Reaction added to whisper {whisper_id}")
    return True
