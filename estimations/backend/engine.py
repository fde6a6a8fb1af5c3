"""Pure transitions and the action reducer for a session aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable

from . import avatars, cards
from .models import EventKind, Failure, Game, Participant, RoundState, SessionEvent, Statistics
from .state import game_snapshot, participant_snapshot


class UnknownActionError(ValueError):
    """Raised for action types the reducer does not understand."""


@dataclass(frozen=True)
class ActionResult:
    game: Game | None
    events: list[SessionEvent] = field(default_factory=list)
    error: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# -- roster ------------------------------------------------------------------


def add_participant(game: Game, participant: Participant) -> Game:
    """Insert participant and claim its avatar.

    Availability is not checked here; callers select a free avatar inside the
    same critical section (see ``_apply_join``).
    """
    game = remove_participant(game, participant.id)
    participants = dict(game.participants)
    participants[participant.id] = participant
    used = game.used_avatars
    if participant.avatar is not None:
        used = used | {participant.avatar}
    return replace(game, participants=participants, used_avatars=used)


def remove_participant(game: Game, participant_id: str) -> Game:
    participant = game.participants.get(participant_id)
    if participant is None:
        return game
    participants = dict(game.participants)
    del participants[participant_id]
    used = game.used_avatars
    if participant.avatar is not None:
        used = used - {participant.avatar}
    return replace(game, participants=participants, used_avatars=used)


def update_participant(
    game: Game,
    participant_id: str,
    update: Callable[[Participant], Participant],
) -> Game:
    participant = game.participants.get(participant_id)
    if participant is None:
        return game
    updated = update(participant)
    if updated == participant:
        return game
    participants = dict(game.participants)
    participants[participant_id] = updated
    return replace(game, participants=participants)


def available_avatars(game: Game) -> list[int]:
    return [avatar_id for avatar_id in avatars.all_ids() if avatar_id not in game.used_avatars]


def avatar_available_for(game: Game, avatar_id: int, participant_id: str) -> bool:
    """A participant rejoining may keep the avatar it already holds."""
    if not avatars.is_valid_avatar(avatar_id):
        return False
    if avatar_id not in game.used_avatars:
        return True
    current = game.participants.get(participant_id)
    return current is not None and current.avatar == avatar_id


# -- round -------------------------------------------------------------------


def cast_vote(game: Game, participant_id: str, card: str) -> Game | Failure:
    if game.round_state is RoundState.REVEALED:
        return Failure.ALREADY_REVEALED
    if not cards.is_valid_card(game.deck, card):
        return Failure.INVALID_CARD
    return update_participant(game, participant_id, lambda participant: participant.with_vote(card))


def reveal(game: Game) -> Game:
    if game.round_state is RoundState.REVEALED:
        return game
    return replace(game, round_state=RoundState.REVEALED)


def reset_round(game: Game) -> Game:
    participants = {
        participant_id: participant.without_vote()
        for participant_id, participant in game.participants.items()
    }
    return replace(game, participants=participants, story_label=None, round_state=RoundState.VOTING)


def set_story(game: Game, label: str | None) -> Game:
    if label is not None:
        label = label.strip() or None
    return replace(game, story_label=label)


def set_connected(game: Game, participant_id: str, connected: bool) -> Game:
    return update_participant(game, participant_id, lambda participant: participant.with_connected(connected))


def toggle_role(game: Game, participant_id: str) -> Game:
    return update_participant(game, participant_id, lambda participant: participant.with_toggled_role())


# -- queries -----------------------------------------------------------------


def voters(game: Game) -> list[Participant]:
    return [participant for participant in game.participants.values() if participant.is_voter]


def spectators(game: Game) -> list[Participant]:
    return [participant for participant in game.participants.values() if participant.is_spectator]


def connected_participants(game: Game) -> list[Participant]:
    return [participant for participant in game.participants.values() if participant.connected]


def participant_count(game: Game) -> int:
    return len(game.participants)


def is_empty(game: Game) -> bool:
    return not game.participants


def get_participant(game: Game, participant_id: str) -> Participant | None:
    return game.participants.get(participant_id)


def has_participant(game: Game, participant_id: str) -> bool:
    return participant_id in game.participants


def all_voters_voted(game: Game) -> bool:
    """True when at least one voter is connected and all connected voters voted."""
    connected_voters = [participant for participant in voters(game) if participant.connected]
    if not connected_voters:
        return False
    return all(participant.has_voted for participant in connected_voters)


def any_votes(game: Game) -> bool:
    return any(participant.has_voted for participant in voters(game))


def statistics(game: Game) -> Statistics:
    votes = [participant.vote for participant in voters(game) if participant.vote is not None]

    counts: dict[str, int] = {}
    for card in votes:
        counts[card] = counts.get(card, 0) + 1

    deck_order = cards.cards(game.deck)

    def _sort_key(card: str) -> tuple[int, int]:
        value = cards.numeric_value(card)
        if value is not None:
            return (0, value)
        return (1, deck_order.index(card) if card in deck_order else len(deck_order))

    distribution = {card: counts[card] for card in sorted(counts, key=_sort_key)}

    numeric = [value for value in (cards.numeric_value(card) for card in votes) if value is not None]
    average: float | None = None
    if numeric:
        mean = Decimal(sum(numeric)) / Decimal(len(numeric))
        average = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    return Statistics(average=average, distribution=distribution)


# -- reducer -----------------------------------------------------------------


def apply_action(game: Game, action: dict[str, Any]) -> ActionResult:
    """Apply one session action; events are emitted only for observable changes."""
    action_type = str(action.get("type", "")).upper()
    handler = _HANDLERS.get(action_type)
    if handler is None:
        raise UnknownActionError(f"Unknown action type: {action_type!r}")
    return handler(game, action)


def _event(game: Game, kind: EventKind, payload: Any = None) -> SessionEvent:
    return SessionEvent(kind=kind, session_id=game.id, payload=payload)


def _unchanged(game: Game) -> ActionResult:
    return ActionResult(game=game, events=[])


def _apply_join(game: Game, action: dict[str, Any]) -> ActionResult:
    participant: Participant = action["participant"]
    if participant.avatar is not None and not avatar_available_for(game, participant.avatar, participant.id):
        return ActionResult(game=game, error=Failure.AVATAR_UNAVAILABLE)
    next_game = add_participant(game, participant)
    return ActionResult(
        game=next_game,
        events=[_event(next_game, EventKind.PARTICIPANT_JOINED, participant_snapshot(participant))],
    )


def _apply_leave(game: Game, action: dict[str, Any]) -> ActionResult:
    participant_id = action["participantId"]
    next_game = remove_participant(game, participant_id)
    if next_game is game:
        return _unchanged(game)
    return ActionResult(game=next_game, events=[_event(next_game, EventKind.PARTICIPANT_LEFT, participant_id)])


def _apply_cast_vote(game: Game, action: dict[str, Any]) -> ActionResult:
    participant_id = action["participantId"]
    result = cast_vote(game, participant_id, action["card"])
    if isinstance(result, Failure):
        return ActionResult(game=game, error=result)
    if result is game:
        return _unchanged(game)
    return ActionResult(game=result, events=[_event(result, EventKind.VOTE_CAST, participant_id)])


def _apply_reveal(game: Game, action: dict[str, Any]) -> ActionResult:
    next_game = reveal(game)
    if next_game is game:
        return _unchanged(game)
    return ActionResult(game=next_game, events=[_event(next_game, EventKind.VOTES_REVEALED, game_snapshot(next_game))])


def _apply_reset_round(game: Game, action: dict[str, Any]) -> ActionResult:
    next_game = reset_round(game)
    return ActionResult(game=next_game, events=[_event(next_game, EventKind.ROUND_RESET, game_snapshot(next_game))])


def _apply_set_story(game: Game, action: dict[str, Any]) -> ActionResult:
    next_game = set_story(game, action.get("label"))
    if next_game.story_label == game.story_label:
        return _unchanged(game)
    return ActionResult(
        game=next_game,
        events=[_event(next_game, EventKind.STORY_CHANGED, next_game.story_label)],
    )


def _apply_set_connected(game: Game, action: dict[str, Any]) -> ActionResult:
    participant_id = action["participantId"]
    connected = bool(action["connected"])
    next_game = set_connected(game, participant_id, connected)
    if next_game is game:
        return _unchanged(game)
    kind = EventKind.PARTICIPANT_CONNECTED if connected else EventKind.PARTICIPANT_DISCONNECTED
    return ActionResult(game=next_game, events=[_event(next_game, kind, participant_id)])


def _apply_toggle_role(game: Game, action: dict[str, Any]) -> ActionResult:
    participant_id = action["participantId"]
    next_game = toggle_role(game, participant_id)
    if next_game is game:
        return _unchanged(game)
    return ActionResult(game=next_game, events=[_event(next_game, EventKind.ROLE_TOGGLED, participant_id)])


_HANDLERS: dict[str, Callable[[Game, dict[str, Any]], ActionResult]] = {
    "JOIN": _apply_join,
    "LEAVE": _apply_leave,
    "CAST_VOTE": _apply_cast_vote,
    "REVEAL": _apply_reveal,
    "RESET_ROUND": _apply_reset_round,
    "SET_STORY": _apply_set_story,
    "SET_CONNECTED": _apply_set_connected,
    "TOGGLE_ROLE": _apply_toggle_role,
}
