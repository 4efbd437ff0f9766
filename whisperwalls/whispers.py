"""Whisper store: durable, geo-indexed whisper records."""

from __future__ import annotations

import logging
import math

from whisperwalls import config, geo, linkage
from whisperwalls.database import timestamp, transaction
from whisperwalls.exceptions import NotFound, ValidationError
from whisperwalls.identity import require_active_session
from whisperwalls.models import (
    MAX_TEXT_LENGTH, MAX_WHY_HERE_LENGTH, Coordinates, Reaction, Tone, UnlockPolicy, Whisper
)
from whisperwalls.utils import new_id, parse_coordinates, parse_tone, validate_text

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, text, tone, latitude, longitude, why_here, session_id, creator_id, "
    "proximity_required, dwell_time, created_at"
)


def default_policy() -> UnlockPolicy:
    return UnlockPolicy(config.DEFAULT_PROXIMITY_METERS, config.DEFAULT_DWELL_SECONDS)


def validate_policy(policy: UnlockPolicy):
    radius, dwell = policy.proximity_required, policy.dwell_time
    if isinstance(radius, bool) or not isinstance(radius, (int, float)) or not math.isfinite(radius):
        raise ValidationError("proximityRequired must be a finite number")
    if not 0 < radius <= config.MAX_PROXIMITY_METERS:
        raise ValidationError(f"proximityRequired must be in (0, {config.MAX_PROXIMITY_METERS:g}]")
    if isinstance(dwell, bool) or not isinstance(dwell, int):
        raise ValidationError("dwellTime must be a whole number of seconds")
    if not 0 <= dwell <= config.MAX_DWELL_SECONDS:
        raise ValidationError(f"dwellTime must be between 0 and {config.MAX_DWELL_SECONDS}")


def load_whispers(conn, rows) -> list[Whisper]:
    """Build whisper models from rows, attaching reactions and discoverers."""
    rows = list(rows)
    if not rows:
        return []

    ids = [row["id"] for row in rows]
    placeholders = ", ".join("?" for _ in ids)
    reactions: dict[str, list[Reaction]] = {i: [] for i in ids}
    discovered: dict[str, list[str]] = {i: [] for i in ids}

    for r in conn.execute(
        f"SELECT whisper_id, type, session_id, created_at FROM reactions "
        f"WHERE whisper_id IN ({placeholders}) ORDER BY id",
        ids,
    ):
        reactions[r["whisper_id"]].append(Reaction(r["type"], r["session_id"], r["created_at"]))

    for d in conn.execute(
        f"SELECT whisper_id, session_id FROM discoveries "
        f"WHERE whisper_id IN ({placeholders}) ORDER BY id",
        ids,
    ):
        discovered[d["whisper_id"]].append(d["session_id"])

    return [
        Whisper(
            id=row["id"],
            text=row["text"],
            tone=Tone(row["tone"]),
            location=Coordinates(row["latitude"], row["longitude"]),
            session_id=row["session_id"],
            policy=UnlockPolicy(row["proximity_required"], row["dwell_time"]),
            created_at=row["created_at"],
            why_here=row["why_here"],
            creator_id=row["creator_id"],
            reactions=reactions[row["id"]],
            discovered_by=discovered[row["id"]],
        )
        for row in rows
    ]


def fetch_row(conn, whisper_id):
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM whispers WHERE id = ?", (whisper_id,)
    ).fetchone()
    if row is None:
        raise NotFound(f"Whisper {whisper_id} not found")
    return row


def create_whisper(text, tone, location, session_id, why_here=None, account_id=None, policy=None):
    """Persist a new whisper.

    When ``account_id`` is given the whisper is attributed to that account and
    appended to its created index in the same transaction. Not idempotent: a
    retried call creates a second whisper.
    """
    text = validate_text(text, MAX_TEXT_LENGTH, "text")
    tone = parse_tone(tone)
    coordinates = parse_coordinates(location)
    why_here = validate_text(why_here, MAX_WHY_HERE_LENGTH, "whyHere", required=False)
    policy = policy or default_policy()
    validate_policy(policy)

    whisper_id = new_id()
    with transaction(immediate=True) as conn:
        require_active_session(conn, session_id)
        if account_id is not None:
            linkage.require_account(conn, account_id)
        conn.execute(
            f"INSERT INTO whispers ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                whisper_id, text, tone.value, coordinates.latitude, coordinates.longitude,
                why_here, session_id, account_id, policy.proximity_required,
                policy.dwell_time, timestamp(),
            ),
        )
        if account_id is not None:
            linkage.append_created(conn, account_id, whisper_id)
        whisper = load_whispers(conn, [fetch_row(conn, whisper_id)])[0]

    logger.info(f"Whisper {whisper_id} created")
    return whisper


def get_whisper(whisper_id) -> Whisper:
    with transaction() as conn:
        return load_whispers(conn, [fetch_row(conn, whisper_id)])[0]


def query_nearby(location, radius_meters, limit) -> list[Whisper]:
    """Whispers within ``radius_meters`` (inclusive) of ``location``, newest first.

    The indexed bounding-box query narrows candidates; exact haversine
    distance decides membership. Each result carries its distance and
    whether it is unlockable from ``location``.
    """
    center = parse_coordinates(location)
    if radius_meters <= 0:
        raise ValidationError("radius must be greater than zero")
    if limit <= 0:
        raise ValidationError("limit must be greater than zero")

    boxes = geo.bounding_boxes(center, radius_meters)
    # R*Tree coordinates are rounded outward, so an overlap test never drops an in-box point.
    candidates = " UNION ".join(
        "SELECT id FROM whispers_rtree WHERE max_lat >= ? AND min_lat <= ? AND max_lng >= ? AND min_lng <= ?"
        for _ in boxes
    )
    params = [value for box in boxes for value in box]

    matches = []
    with transaction() as conn:
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM whispers WHERE seq IN ({candidates}) "
            "ORDER BY created_at DESC, seq DESC",
            params,
        )
        for row in cursor:
            meters = geo.distance(center, Coordinates(row["latitude"], row["longitude"]))
            if meters > radius_meters:
                continue
            matches.append((row, meters))
            if len(matches) >= int(limit):
                break
        whispers = load_whispers(conn, [row for row, _ in matches])

    for whisper, (_, meters) in zip(whispers, matches):
        whisper.distance = meters
        whisper.unlockable = geo.is_unlockable(meters, whisper.policy)
    logger.debug(f"Found {len(whispers)} whispers within {radius_meters:g} m")
    return whispers


def list_by_session(session_id) -> list[Whisper]:
    with transaction() as conn:
        require_active_session(conn, session_id)
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM whispers WHERE session_id = ? ORDER BY created_at DESC, seq DESC",
            (session_id,),
        ).fetchall()
        return load_whispers(conn, rows)


def list_by_ids(conn, ids) -> list[Whisper]:
    """Whispers for the given ids, newest first. Ids of deleted whispers are skipped."""
    ids = list(ids)
    if not ids:
        return []
    placeholders = ", ".join("?" for _ in ids)
    rows = conn.execute(
        f"SELECT {_COLUMNS} FROM whispers WHERE id IN ({placeholders}) "
        "ORDER BY created_at DESC, seq DESC",
        ids,
    ).fetchall()
    return load_whispers(conn, rows)


def delete_whisper(whisper_id) -> bool:
    with transaction() as conn:
        cursor = conn.execute("DELETE FROM whispers WHERE id = ?", (whisper_id,))
    deleted = cursor.rowcount == 1
    if deleted:
        logger.info(f"Whisper {whisper_id} deleted")
    return deleted


def delete_by_creator(account_id, conn=None) -> int:
    """Delete every whisper attributed to ``account_id``.

    Runs inside ``conn`` when given so callers can make it part of a larger
    transaction.
    """
    if conn is None:
        with transaction(immediate=True) as conn:
            return delete_by_creator(account_id, conn)
    deleted = conn.execute("DELETE FROM whispers WHERE creator_id = ?", (account_id,)).rowcount
    logger.info(f"Deleted {deleted} whispers created by account {account_id}")
    return deleted
