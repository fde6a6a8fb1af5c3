"""Preset avatar pool shared by every session."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlencode


DICEBEAR_URL = "https://api.dicebear.com/9.x/bottts/svg"


@dataclass(frozen=True)
class Avatar:
    id: int
    name: str
    color: str
    eyes: str
    mouth: str
    sides: str
    top: str

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["url"] = avatar_url(self.id)
        return payload


_AVATARS: dict[int, Avatar] = {
    avatar.id: avatar
    for avatar in (
        Avatar(1, "Sunny", "ffb300", "happy", "smile01", "antenna01", "bulb01"),
        Avatar(2, "Ocean", "1e88e5", "eva", "square01", "cables01", "radar"),
        Avatar(3, "Forest", "43a047", "glow", "grill01", "round", "horns"),
        Avatar(4, "Sunset", "f4511e", "bulging", "bite", "squareAssymetric", "antenna"),
        Avatar(5, "Royal", "8e24aa", "hearts", "smile02", "square", "pyramid"),
        Avatar(6, "Steel", "546e7a", "robocop", "diagram", "antenna02", "lights"),
        Avatar(7, "Ruby", "e53935", "sensor", "grill02", "cables02", "glowingBulb01"),
    )
}

AVATAR_IDS: tuple[int, ...] = tuple(sorted(_AVATARS))


def all_ids() -> list[int]:
    return list(AVATAR_IDS)


def all_avatars() -> list[Avatar]:
    return [_AVATARS[avatar_id] for avatar_id in AVATAR_IDS]


def is_valid_avatar(value: Any) -> bool:
    """Check whether value is one of the pool identities."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value in _AVATARS


def get_avatar(avatar_id: Any) -> Avatar | None:
    if not is_valid_avatar(avatar_id):
        return None
    return _AVATARS[avatar_id]


def avatar_url(avatar_id: Any) -> str | None:
    """Build the Dicebear image URL for an avatar id."""
    avatar = get_avatar(avatar_id)
    if avatar is None:
        return None
    query = urlencode(
        {
            "baseColor": avatar.color,
            "eyes": avatar.eyes,
            "mouth": avatar.mouth,
            "sides": avatar.sides,
            "top": avatar.top,
        }
    )
    return f"{DICEBEAR_URL}?{query}"
