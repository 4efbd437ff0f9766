"""Data models for whispers, reactions and accounts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Tone(str, Enum):
    JOY = "Joy"
    LONGING = "Longing"
    GRATITUDE = "Gratitude"
    APOLOGY = "Apology"
    HEARTBREAK = "Heartbreak"


REACTION_HUG = "hug"

MAX_TEXT_LENGTH = 280
MAX_WHY_HERE_LENGTH = 150


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class UnlockPolicy:
    """Proximity radius in meters; dwell time in seconds."""

    proximity_required: float
    dwell_time: int

    def to_dict(self) -> dict:
        return {"proximityRequired": self.proximity_required, "dwellTime": self.dwell_time}


@dataclass
class Reaction:
    type: str
    session_id: str
    created_at: str

    def to_dict(self) -> dict:
        return {"type": self.type, "sessionId": self.session_id, "createdAt": self.created_at}


@dataclass
class Whisper:
    """A geotagged message. Only reactions and discovered_by ever grow."""

    id: str
    text: str
    tone: Tone
    location: Coordinates
    session_id: str
    policy: UnlockPolicy
    created_at: str
    why_here: str | None = None
    creator_id: str | None = None
    reactions: list[Reaction] = field(default_factory=list)
    discovered_by: list[str] = field(default_factory=list)
    distance: float | None = None
    unlockable: bool | None = None

    @property
    def reaction_count(self) -> int:
        return len(self.reactions)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "text": self.text,
            "tone": self.tone.value,
            "location": self.location.to_dict(),
            "whyHere": self.why_here,
            "sessionId": self.session_id,
            "creatorId": self.creator_id,
            "reactions": [r.to_dict() for r in self.reactions],
            "reactionCount": self.reaction_count,
            "discoveredBy": list(self.discovered_by),
            "unlockConditions": self.policy.to_dict(),
            "createdAt": self.created_at,
        }
        if self.distance is not None:
            data["distance"] = round(self.distance, 1)
            data["unlockable"] = self.unlockable
        return data


@dataclass
class AccountStats:
    whispers_created: int = 0
    whispers_discovered: int = 0
    reactions_given: int = 0
    likes_received: int = 0

    def to_dict(self) -> dict:
        return {
            "whispersCreated": self.whispers_created,
            "whispersDiscovered": self.whispers_discovered,
            "reactionsGiven": self.reactions_given,
            "likesReceived": self.likes_received,
        }


@dataclass
class Account:
    """Authenticated identity. Never carries the password hash."""

    id: str
    username: str
    email: str
    display_name: str
    created_at: str
    bio: str | None = None
    session_id: str | None = None
    stats: AccountStats = field(default_factory=AccountStats)
    created_whispers: list[str] = field(default_factory=list)
    discovered_whispers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "displayName": self.display_name,
            "bio": self.bio,
            "sessionId": self.session_id,
            "stats": self.stats.to_dict(),
            "createdWhispers": list(self.created_whispers),
            "discoveredWhispers": list(self.discovered_whispers),
            "createdAt": self.created_at,
        }
