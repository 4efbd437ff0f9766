"""Discovery ledger: who has unlocked which whisper.

Inserts go through the store's unique constraints, so repeated or concurrent
discoveries by the same identity collapse to a single entry.
"""

import logging
from datetime import datetime, timedelta

from whisperwalls import geo, linkage
from whisperwalls.database import timestamp, transaction, utcnow
from whisperwalls.exceptions import NotFound, NotUnlockable
from whisperwalls.identity import require_active_session
from whisperwalls.models import Coordinates
from whisperwalls.utils import parse_coordinates

logger = logging.getLogger(__name__)


def _whisper_position(conn, whisper_id):
    row = conn.execute(
        "SELECT latitude, longitude, proximity_required, dwell_time FROM whispers WHERE id = ?",
        (whisper_id,),
    ).fetchone()
    if row is None:
        raise NotFound(f"Whisper {whisper_id} not found")
    return row


def _within_reach(row, location):
    meters = geo.distance(location, Coordinates(row["latitude"], row["longitude"]))
    return meters, meters <= row["proximity_required"]


def _dwell_met(conn, row, whisper_id, session_id, now):
    arrival = conn.execute(
        "SELECT arrived_at FROM arrivals WHERE whisper_id = ? AND session_id = ?",
        (whisper_id, session_id),
    ).fetchone()
    if arrival is None:
        return False
    arrived_at = datetime.fromisoformat(arrival["arrived_at"])
    return now - arrived_at >= timedelta(seconds=row["dwell_time"])


def record_arrival(whisper_id, session_id, location, at=None):
    """Record when a session first came within reach of a whisper.

    Reporting a position out of reach clears any earlier arrival, so the
    dwell clock restarts on the next arrival. Returns the stored arrival
    timestamp.
    """
    location = parse_coordinates(location)
    at = at or utcnow()

    with transaction(immediate=True) as conn:
        require_active_session(conn, session_id)
        row = _whisper_position(conn, whisper_id)
        meters, in_reach = _within_reach(row, location)
        if not in_reach:
            conn.execute(
                "DELETE FROM arrivals WHERE whisper_id = ? AND session_id = ?",
                (whisper_id, session_id),
            )
        else:
            conn.execute(
                "INSERT OR IGNORE INTO arrivals (whisper_id, session_id, arrived_at) VALUES (?, ?, ?)",
                (whisper_id, session_id, timestamp(at)),
            )
            arrived_at = conn.execute(
                "SELECT arrived_at FROM arrivals WHERE whisper_id = ? AND session_id = ?",
                (whisper_id, session_id),
            ).fetchone()["arrived_at"]

    if not in_reach:
        raise NotUnlockable(f"Whisper is {meters:.0f} m away; it unlocks within {row['proximity_required']:g} m")
    return arrived_at


def dwell_satisfied(whisper_id, session_id, now=None):
    with transaction() as conn:
        row = _whisper_position(conn, whisper_id)
        return _dwell_met(conn, row, whisper_id, session_id, now or utcnow())


def record_discovery(whisper_id, session_id, account_id=None, location=None, enforce_dwell=False):
    """Add the session (and account) to the whisper's discoverers.

    Returns True only for the call that inserted the session's ledger entry.
    The account index and its discovered count grow at most once per
    whisper. With ``location`` the requester must be within the whisper's
    proximity radius; with ``enforce_dwell`` a sufficiently old arrival is
    also required.
    """
    if location is not None:
        location = parse_coordinates(location)

    with transaction(immediate=True) as conn:
        require_active_session(conn, session_id)
        row = _whisper_position(conn, whisper_id)

        if location is not None:
            meters, in_reach = _within_reach(row, location)
            if not in_reach:
                raise NotUnlockable(
                    f"Whisper is {meters:.0f} m away; it unlocks within {row['proximity_required']:g} m"
                )
        if enforce_dwell and not _dwell_met(conn, row, whisper_id, session_id, utcnow()):
            raise NotUnlockable(f"Stay nearby for {row['dwell_time']} seconds to unlock this whisper")

        cursor = conn.execute(
            "INSERT OR IGNORE INTO discoveries (whisper_id, session_id, created_at) VALUES (?, ?, ?)",
            (whisper_id, session_id, timestamp()),
        )
        first = cursor.rowcount == 1

        if account_id is not None:
            linkage.require_account(conn, account_id)
            if linkage.append_discovered(conn, account_id, whisper_id):
                logger.info(f"Discovery of {whisper_id} linked to account {account_id}")

    if first:
        logger.info(f"Whisper {whisper_id} discovered")
    return first
