"""Backend package for planning poker sessions."""

from .actor import ActorStatus, SessionActor
from .cards import Deck
from .config import BackendSettings, configure_logging, load_settings
from .directory import SessionDirectory
from .engine import ActionResult, UnknownActionError, apply_action, statistics
from .models import EventKind, Failure, Game, Participant, Role, RoundState, SessionEvent, Statistics
from .pubsub import Broadcaster
from .security import generate_participant_id, generate_session_id
from .state import build_initial_game, game_snapshot, new_participant

__all__ = [
    "ActionResult",
    "ActorStatus",
    "apply_action",
    "BackendSettings",
    "Broadcaster",
    "build_initial_game",
    "configure_logging",
    "Deck",
    "EventKind",
    "Failure",
    "Game",
    "game_snapshot",
    "generate_participant_id",
    "generate_session_id",
    "load_settings",
    "new_participant",
    "Participant",
    "Role",
    "RoundState",
    "SessionActor",
    "SessionDirectory",
    "SessionEvent",
    "Statistics",
    "statistics",
    "UnknownActionError",
]
