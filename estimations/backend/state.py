"""State builders and JSON snapshots for sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .avatars import avatar_url
from .cards import Deck
from .models import Game, Participant, Role


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_initial_game(session_id: str, name: str, deck: Deck = Deck.FIBONACCI) -> Game:
    """Return an empty session in the voting state."""
    return Game(id=session_id, name=name, deck=Deck(deck), created_at=_utc_now())


def new_participant(
    participant_id: str,
    name: str,
    role: Role = Role.VOTER,
    avatar: int | None = None,
) -> Participant:
    return Participant(
        id=participant_id,
        name=name,
        role=Role(role),
        avatar=avatar,
        joined_at=_utc_now(),
    )


def participant_snapshot(participant: Participant) -> dict[str, Any]:
    return {
        "id": participant.id,
        "name": participant.name,
        "initial": participant.initial,
        "role": participant.role.value,
        "vote": participant.vote,
        "hasVoted": participant.has_voted,
        "avatar": participant.avatar,
        "avatarUrl": avatar_url(participant.avatar),
        "connected": participant.connected,
        "joinedAt": participant.joined_at.isoformat(),
    }


def game_snapshot(game: Game, hide_votes: bool = False) -> dict[str, Any]:
    """Serialize a session for observers.

    With hide_votes set, card labels are withheld while the round is still
    open so clients only learn who has voted.
    """
    conceal = hide_votes and not game.is_revealed
    participants = {}
    for participant_id, participant in game.participants.items():
        entry = participant_snapshot(participant)
        if conceal:
            entry["vote"] = None
        participants[participant_id] = entry
    return {
        "id": game.id,
        "name": game.name,
        "deck": game.deck.value,
        "roundState": game.round_state.value,
        "storyLabel": game.story_label,
        "participants": participants,
        "usedAvatars": sorted(game.used_avatars),
        "createdAt": game.created_at.isoformat(),
    }
