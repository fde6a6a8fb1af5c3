"""Card decks available for estimation rounds."""

from __future__ import annotations

from enum import Enum


class Deck(str, Enum):
    FIBONACCI = "fibonacci"
    TSHIRT = "tshirt"


UNBOUNDED = "∞"
UNSURE = "?"
BREAK = "coffee"
BLOCKER = "bug"

SPECIAL_CARDS = (UNBOUNDED, UNSURE, BREAK, BLOCKER)

_DECK_CARDS: dict[Deck, tuple[str, ...]] = {
    Deck.FIBONACCI: ("0", "1", "2", "3", "5", "8", "13", "21", "34", *SPECIAL_CARDS),
    Deck.TSHIRT: ("XS", "S", "M", "L", "XL", "XXL", *SPECIAL_CARDS),
}

_NUMERIC_VALUES: dict[str, int] = {
    "0": 0,
    "1": 1,
    "2": 2,
    "3": 3,
    "5": 5,
    "8": 8,
    "13": 13,
    "21": 21,
    "34": 34,
}

_DISPLAY_NAMES: dict[Deck, str] = {
    Deck.FIBONACCI: "Fibonacci",
    Deck.TSHIRT: "T-Shirt Sizes",
}

_CARD_ICONS: dict[str, str] = {
    UNSURE: "question-mark-circle",
    BREAK: "pause-circle",
    UNBOUNDED: "infinity",
    BLOCKER: "bug-ant",
}


def deck_types() -> list[Deck]:
    return list(Deck)


def cards(deck: Deck) -> list[str]:
    """Return the ordered card labels of a deck."""
    return list(_DECK_CARDS[Deck(deck)])


def is_valid_card(deck: Deck, card: str) -> bool:
    return card in _DECK_CARDS[Deck(deck)]


def numeric_value(card: str) -> int | None:
    """Return the value used for averaging, or None for special and size cards."""
    return _NUMERIC_VALUES.get(card)


def is_numeric(card: str) -> bool:
    return numeric_value(card) is not None


def display_name(deck: Deck) -> str:
    return _DISPLAY_NAMES[Deck(deck)]


def card_icon(card: str) -> str | None:
    """Return the icon name for special cards, None for plain value cards."""
    return _CARD_ICONS.get(card)
