import pytest

from estimations.backend import engine
from estimations.backend.cards import Deck
from estimations.backend.models import EventKind, Failure, Game, Role, RoundState
from estimations.backend.state import build_initial_game, new_participant


def _game(deck: Deck = Deck.FIBONACCI) -> Game:
    return build_initial_game(session_id="room01", name="Planning", deck=deck)


def _with_voters(game: Game, *participant_ids: str) -> Game:
    for participant_id in participant_ids:
        game = engine.add_participant(game, new_participant(participant_id, participant_id.upper()))
    return game


def _held_avatars(game: Game) -> set[int]:
    return {p.avatar for p in game.participants.values() if p.avatar is not None}


def _vote(game: Game, participant_id: str, card: str) -> Game:
    result = engine.cast_vote(game, participant_id, card)
    assert not isinstance(result, Failure)
    return result


def test_add_and_remove_participant_track_used_avatars() -> None:
    game = _game()
    game = engine.add_participant(game, new_participant("a", "Ann", avatar=3))
    game = engine.add_participant(game, new_participant("b", "Ben", avatar=5))
    game = engine.add_participant(game, new_participant("c", "Cy"))

    assert game.used_avatars == frozenset({3, 5})
    assert game.used_avatars == _held_avatars(game)
    assert engine.available_avatars(game) == [1, 2, 4, 6, 7]

    game = engine.remove_participant(game, "a")

    assert game.used_avatars == frozenset({5})
    assert game.used_avatars == _held_avatars(game)


def test_remove_unknown_participant_is_noop() -> None:
    game = _with_voters(_game(), "a")

    assert engine.remove_participant(game, "ghost") is game


def test_readding_participant_releases_previous_avatar() -> None:
    game = engine.add_participant(_game(), new_participant("a", "Ann", avatar=1))
    game = engine.add_participant(game, new_participant("a", "Ann", avatar=6))

    assert game.used_avatars == frozenset({6})
    assert engine.participant_count(game) == 1


def test_cast_vote_rejects_card_outside_deck() -> None:
    game = _with_voters(_game(Deck.TSHIRT), "a")

    assert engine.cast_vote(game, "a", "13") is Failure.INVALID_CARD


def test_cast_vote_rejected_after_reveal_until_reset() -> None:
    game = _vote(_with_voters(_game(), "a"), "a", "5")
    revealed = engine.reveal(game)

    assert engine.cast_vote(revealed, "a", "8") is Failure.ALREADY_REVEALED
    assert revealed.participants["a"].vote == "5"

    reset = engine.reset_round(revealed)
    assert engine.cast_vote(reset, "a", "8") is not Failure.ALREADY_REVEALED


def test_changing_vote_before_reveal_keeps_latest_only() -> None:
    game = _with_voters(_game(), "a")
    game = _vote(game, "a", "3")
    game = _vote(game, "a", "8")

    stats = engine.statistics(engine.reveal(game))

    assert game.participants["a"].vote == "8"
    assert stats.distribution == {"8": 1}
    assert stats.average == 8.0


def test_spectator_vote_leaves_game_unchanged() -> None:
    game = engine.add_participant(_game(), new_participant("s", "Sam", Role.SPECTATOR))

    assert engine.cast_vote(game, "s", "5") is game


def test_reveal_twice_equals_reveal_once() -> None:
    game = _vote(_with_voters(_game(), "a"), "a", "2")

    once = engine.reveal(game)
    twice = engine.reveal(once)

    assert once.round_state is RoundState.REVEALED
    assert twice == once


def test_reset_round_clears_votes_and_story_from_any_state() -> None:
    game = _with_voters(_game(), "a", "b")
    game = _vote(game, "a", "5")
    game = engine.set_story(game, "Login page")

    for start in (game, engine.reveal(game)):
        reset = engine.reset_round(start)
        assert reset.round_state is RoundState.VOTING
        assert reset.story_label is None
        assert all(p.vote is None for p in reset.participants.values())


def test_set_story_normalises_blank_label() -> None:
    game = engine.set_story(_game(), "  ")

    assert game.story_label is None
    assert engine.set_story(game, "API auth").story_label == "API auth"


def test_set_connected_ignores_unknown_participant() -> None:
    game = _with_voters(_game(), "a")

    assert engine.set_connected(game, "ghost", False) is game
    assert engine.set_connected(game, "a", False).participants["a"].connected is False


def test_toggle_role_twice_restores_role_without_vote() -> None:
    game = _vote(_with_voters(_game(), "a"), "a", "21")

    toggled = engine.toggle_role(game, "a")
    restored = engine.toggle_role(toggled, "a")

    assert toggled.participants["a"].role is Role.SPECTATOR
    assert toggled.participants["a"].vote is None
    assert restored.participants["a"].role is Role.VOTER
    assert restored.participants["a"].vote is None


def test_statistics_fibonacci_scenario() -> None:
    game = _with_voters(_game(), "a", "b", "c")
    game = _vote(game, "a", "5")
    game = _vote(game, "b", "8")
    game = _vote(game, "c", "5")

    stats = engine.statistics(engine.reveal(game))

    assert stats.average == 6.0
    assert stats.distribution == {"5": 2, "8": 1}
    assert list(stats.distribution) == ["5", "8"]


def test_statistics_tshirt_has_no_average() -> None:
    game = _with_voters(_game(Deck.TSHIRT), "a", "b")
    game = _vote(game, "a", "M")
    game = _vote(game, "b", "L")

    stats = engine.statistics(engine.reveal(game))

    assert stats.average is None
    assert stats.distribution == {"M": 1, "L": 1}
    assert list(stats.distribution) == ["M", "L"]


def test_statistics_with_no_votes() -> None:
    game = engine.reveal(_with_voters(_game(), "a"))

    stats = engine.statistics(game)

    assert game.round_state is RoundState.REVEALED
    assert stats.average is None
    assert stats.distribution == {}


def test_statistics_orders_specials_last_and_ignores_spectators() -> None:
    game = _with_voters(_game(), "a", "b", "c", "d")
    game = engine.add_participant(game, new_participant("s", "Spec", Role.SPECTATOR))
    game = _vote(game, "a", "?")
    game = _vote(game, "b", "13")
    game = _vote(game, "c", "2")
    game = _vote(game, "d", "coffee")

    stats = engine.statistics(game)

    assert list(stats.distribution) == ["2", "13", "?", "coffee"]
    assert stats.average == 7.5


def test_statistics_average_rounds_half_up() -> None:
    game = _with_voters(_game(), "a", "b", "c", "d")
    for participant_id, card in (("a", "1"), ("b", "2"), ("c", "2"), ("d", "2")):
        game = _vote(game, participant_id, card)

    assert engine.statistics(game).average == 1.8


def test_all_voters_voted_counts_only_connected_voters() -> None:
    game = _with_voters(_game(), "a", "b")
    game = engine.add_participant(game, new_participant("s", "Spec", Role.SPECTATOR))

    assert engine.all_voters_voted(game) is False
    assert engine.any_votes(game) is False

    game = _vote(game, "a", "3")
    assert engine.all_voters_voted(game) is False
    assert engine.any_votes(game) is True

    game = engine.set_connected(game, "b", False)
    assert engine.all_voters_voted(game) is True


def test_all_voters_voted_false_without_connected_voters() -> None:
    game = engine.add_participant(_game(), new_participant("s", "Spec", Role.SPECTATOR))

    assert engine.all_voters_voted(game) is False


def test_roster_queries() -> None:
    game = _with_voters(_game(), "a")
    game = engine.add_participant(game, new_participant("s", "Spec", Role.SPECTATOR))
    game = engine.set_connected(game, "s", False)

    assert [p.id for p in engine.voters(game)] == ["a"]
    assert [p.id for p in engine.spectators(game)] == ["s"]
    assert [p.id for p in engine.connected_participants(game)] == ["a"]
    assert engine.has_participant(game, "a") is True
    assert engine.get_participant(game, "ghost") is None
    assert engine.is_empty(game) is False
    assert engine.is_empty(_game()) is True


def test_apply_action_join_rejects_taken_avatar() -> None:
    game = _game()
    first = engine.apply_action(game, {"type": "JOIN", "participant": new_participant("a", "Ann", avatar=3)})
    second = engine.apply_action(first.game, {"type": "JOIN", "participant": new_participant("b", "Ben", avatar=3)})

    assert first.ok
    assert [event.kind for event in first.events] == [EventKind.PARTICIPANT_JOINED]
    assert first.events[0].payload["avatar"] == 3
    assert second.error is Failure.AVATAR_UNAVAILABLE
    assert second.events == []
    assert second.game.participants.keys() == {"a"}


def test_apply_action_join_allows_rejoin_with_own_avatar() -> None:
    game = engine.apply_action(_game(), {"type": "JOIN", "participant": new_participant("a", "Ann", avatar=3)}).game

    rejoin = engine.apply_action(game, {"type": "JOIN", "participant": new_participant("a", "Ann", avatar=3)})

    assert rejoin.ok
    assert rejoin.game.used_avatars == frozenset({3})


def test_apply_action_join_rejects_avatar_outside_pool() -> None:
    result = engine.apply_action(_game(), {"type": "JOIN", "participant": new_participant("a", "Ann", avatar=42)})

    assert result.error is Failure.AVATAR_UNAVAILABLE


def test_apply_action_emits_events_only_for_changes() -> None:
    game = _with_voters(_game(), "a")

    vote = engine.apply_action(game, {"type": "CAST_VOTE", "participantId": "a", "card": "5"})
    same_vote = engine.apply_action(vote.game, {"type": "cast_vote", "participantId": "a", "card": "5"})
    reveal = engine.apply_action(vote.game, {"type": "REVEAL"})
    reveal_again = engine.apply_action(reveal.game, {"type": "REVEAL"})
    late_vote = engine.apply_action(reveal.game, {"type": "CAST_VOTE", "participantId": "a", "card": "8"})

    assert [event.kind for event in vote.events] == [EventKind.VOTE_CAST]
    assert vote.events[0].payload == "a"
    assert same_vote.events == []
    assert [event.kind for event in reveal.events] == [EventKind.VOTES_REVEALED]
    assert reveal.events[0].payload["roundState"] == "revealed"
    assert reveal_again.events == []
    assert late_vote.error is Failure.ALREADY_REVEALED
    assert late_vote.events == []


def test_apply_action_connectivity_and_role_events() -> None:
    game = _with_voters(_game(), "a")

    offline = engine.apply_action(game, {"type": "SET_CONNECTED", "participantId": "a", "connected": False})
    online = engine.apply_action(offline.game, {"type": "SET_CONNECTED", "participantId": "a", "connected": True})
    noop = engine.apply_action(online.game, {"type": "SET_CONNECTED", "participantId": "a", "connected": True})
    toggled = engine.apply_action(online.game, {"type": "TOGGLE_ROLE", "participantId": "a"})
    left = engine.apply_action(toggled.game, {"type": "LEAVE", "participantId": "a"})

    assert offline.events[0].kind is EventKind.PARTICIPANT_DISCONNECTED
    assert online.events[0].kind is EventKind.PARTICIPANT_CONNECTED
    assert noop.events == []
    assert toggled.events[0].kind is EventKind.ROLE_TOGGLED
    assert left.events[0].kind is EventKind.PARTICIPANT_LEFT
    assert left.events[0].payload == "a"


def test_apply_action_story_and_reset_events() -> None:
    game = _game()

    story = engine.apply_action(game, {"type": "SET_STORY", "label": "Checkout"})
    reset = engine.apply_action(story.game, {"type": "RESET_ROUND"})

    assert story.events[0].kind is EventKind.STORY_CHANGED
    assert story.events[0].payload == "Checkout"
    assert reset.events[0].kind is EventKind.ROUND_RESET
    assert reset.events[0].payload["storyLabel"] is None


def test_apply_action_unknown_type_raises() -> None:
    with pytest.raises(engine.UnknownActionError):
        engine.apply_action(_game(), {"type": "SHUFFLE"})
