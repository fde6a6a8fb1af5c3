"""Identifier helpers for sessions and participants."""

from __future__ import annotations

import secrets


SESSION_ID_LENGTH = 6
PARTICIPANT_TOKEN_BYTES = 16


def generate_session_id() -> str:
    """Generate a short lowercase URL-safe session id."""
    return secrets.token_urlsafe(SESSION_ID_LENGTH).lower()[:SESSION_ID_LENGTH]


def generate_participant_id() -> str:
    """Generate a URL-safe participant id for a browser session."""
    return secrets.token_urlsafe(PARTICIPANT_TOKEN_BYTES)
