"""Domain models for planning poker sessions."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .cards import Deck


class Role(str, Enum):
    VOTER = "voter"
    SPECTATOR = "spectator"


class RoundState(str, Enum):
    VOTING = "voting"
    REVEALED = "revealed"


class Failure(str, Enum):
    """Expected, recoverable outcomes returned instead of raised."""

    NOT_FOUND = "not_found"
    INVALID_CARD = "invalid_card"
    ALREADY_REVEALED = "already_revealed"
    AVATAR_UNAVAILABLE = "avatar_unavailable"


class EventKind(str, Enum):
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_LEFT = "participant_left"
    PARTICIPANT_CONNECTED = "participant_connected"
    PARTICIPANT_DISCONNECTED = "participant_disconnected"
    VOTE_CAST = "vote_cast"
    VOTES_REVEALED = "votes_revealed"
    ROUND_RESET = "round_reset"
    ROLE_TOGGLED = "role_toggled"
    STORY_CHANGED = "story_changed"


@dataclass(frozen=True)
class Participant:
    id: str
    name: str
    role: Role
    joined_at: datetime
    vote: str | None = None
    avatar: int | None = None
    connected: bool = True

    @property
    def is_voter(self) -> bool:
        return self.role is Role.VOTER

    @property
    def is_spectator(self) -> bool:
        return self.role is Role.SPECTATOR

    @property
    def has_voted(self) -> bool:
        return self.vote is not None

    @property
    def initial(self) -> str:
        stripped = self.name.strip()
        return stripped[0].upper() if stripped else "?"

    def with_vote(self, card: str) -> Participant:
        # Spectators keep their empty hand; this is policy, not an error.
        if not self.is_voter:
            return self
        return replace(self, vote=card)

    def without_vote(self) -> Participant:
        return replace(self, vote=None)

    def with_connected(self, connected: bool) -> Participant:
        return replace(self, connected=connected)

    def with_toggled_role(self) -> Participant:
        role = Role.SPECTATOR if self.is_voter else Role.VOTER
        return replace(self, role=role, vote=None)


@dataclass(frozen=True)
class Game:
    id: str
    name: str
    deck: Deck
    created_at: datetime
    round_state: RoundState = RoundState.VOTING
    story_label: str | None = None
    participants: Mapping[str, Participant] = field(default_factory=dict)
    used_avatars: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        # Observers get read-only views; only engine transitions build new rosters.
        object.__setattr__(self, "participants", MappingProxyType(dict(self.participants)))
        object.__setattr__(self, "used_avatars", frozenset(self.used_avatars))

    @property
    def is_revealed(self) -> bool:
        return self.round_state is RoundState.REVEALED


@dataclass(frozen=True)
class Statistics:
    average: float | None
    distribution: dict[str, int]


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    session_id: str
    payload: Any = None
