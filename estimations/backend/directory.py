"""Registry and lifecycle manager for live session actors."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable

from .actor import DEFAULT_IDLE_GRACE_SECONDS, DEFAULT_SWEEP_INTERVAL_SECONDS, SessionActor
from .cards import Deck
from .config import BackendSettings
from .engine import ActionResult
from .models import Failure, Role, SessionEvent
from .pubsub import Broadcaster
from .security import generate_session_id
from .state import build_initial_game

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 16

_ADJECTIVES = (
    "swift clever brave bright calm cool eager fast gentle happy "
    "jolly kind lively merry nice proud quick sharp smart sunny wise"
).split()
_NOUNS = (
    "falcon tiger eagle lion wolf bear hawk phoenix dragon turtle "
    "panda koala otter fox deer rabbit heron crane raven owl"
).split()


def generate_session_name() -> str:
    return f"{random.choice(_ADJECTIVES).capitalize()} {random.choice(_NOUNS).capitalize()} {random.randint(1, 99)}"


def _not_found() -> ActionResult:
    return ActionResult(game=None, error=Failure.NOT_FOUND)


class SessionDirectory:
    """Maps session ids to live actors.

    All bookkeeping happens on one event loop without awaiting between a
    lookup and the matching insert or delete, so entries for unrelated
    sessions are never disturbed.
    """

    def __init__(
        self,
        broadcaster: Broadcaster | None = None,
        *,
        idle_grace: float = DEFAULT_IDLE_GRACE_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        id_factory: Callable[[], str] = generate_session_id,
    ) -> None:
        self.broadcaster = broadcaster if broadcaster is not None else Broadcaster()
        self._idle_grace = idle_grace
        self._sweep_interval = sweep_interval
        self._id_factory = id_factory
        self._actors: dict[str, SessionActor] = {}
        self._closing = False

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> SessionDirectory:
        return cls(
            Broadcaster(max_queue_size=settings.subscriber_queue_size),
            idle_grace=settings.idle_grace_seconds,
            sweep_interval=settings.sweep_interval_seconds,
        )

    # -- lifecycle ----------------------------------------------------------

    async def create_session(self, name: str | None = None, deck: Deck = Deck.FIBONACCI) -> str:
        """Start a new session actor and return its id."""
        if name is None or not name.strip():
            name = generate_session_name()
        session_id = self._new_session_id()
        self._spawn(session_id, name.strip(), Deck(deck))
        logger.info("Session %s created (%s, %s)", session_id, name.strip(), Deck(deck).value)
        return session_id

    def lookup(self, session_id: str) -> SessionActor | None:
        actor = self._actors.get(session_id)
        if actor is None or not actor.is_active:
            return None
        return actor

    def exists(self, session_id: str) -> bool:
        return self.lookup(session_id) is not None

    def session_count(self) -> int:
        return sum(1 for actor in self._actors.values() if actor.is_active)

    async def stop_session(self, session_id: str) -> Failure | None:
        actor = self.lookup(session_id)
        if actor is None:
            return Failure.NOT_FOUND
        result = await actor.stop()
        await actor.wait_closed()
        return result

    async def shutdown(self) -> None:
        """Stop every actor; crashes during shutdown are not restarted."""
        self._closing = True
        while self._actors:
            actors = list(self._actors.values())
            for actor in actors:
                await actor.stop()
            await asyncio.gather(*(actor.wait_closed() for actor in actors))

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, session_id: str) -> asyncio.Queue[SessionEvent]:
        return self.broadcaster.subscribe(session_id)

    def unsubscribe(self, session_id: str, queue: asyncio.Queue[SessionEvent]) -> None:
        self.broadcaster.unsubscribe(session_id, queue)

    # -- session operations -------------------------------------------------

    async def get_game(self, session_id: str) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.get() if actor is not None else _not_found()

    async def available_avatars(self, session_id: str) -> list[int] | Failure:
        actor = self.lookup(session_id)
        return await actor.available_avatars() if actor is not None else Failure.NOT_FOUND

    async def join(
        self,
        session_id: str,
        participant_id: str,
        name: str,
        role: Role = Role.VOTER,
        avatar: int | None = None,
    ) -> ActionResult:
        actor = self.lookup(session_id)
        if actor is None:
            return _not_found()
        return await actor.join(participant_id, name, role, avatar)

    async def leave(self, session_id: str, participant_id: str) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.leave(participant_id) if actor is not None else _not_found()

    async def vote(self, session_id: str, participant_id: str, card: str) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.vote(participant_id, card) if actor is not None else _not_found()

    async def reveal(self, session_id: str) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.reveal() if actor is not None else _not_found()

    async def reset(self, session_id: str) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.reset() if actor is not None else _not_found()

    async def set_story(self, session_id: str, label: str | None) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.set_story(label) if actor is not None else _not_found()

    async def set_connected(self, session_id: str, participant_id: str, connected: bool) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.set_connected(participant_id, connected) if actor is not None else _not_found()

    async def toggle_role(self, session_id: str, participant_id: str) -> ActionResult:
        actor = self.lookup(session_id)
        return await actor.toggle_role(participant_id) if actor is not None else _not_found()

    # -- supervision --------------------------------------------------------

    def _new_session_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate not in self._actors:
                return candidate
            logger.debug("Session id %s already live, retrying", candidate)
        raise RuntimeError(f"Could not allocate a free session id after {MAX_ID_ATTEMPTS} attempts")

    def _spawn(self, session_id: str, name: str, deck: Deck) -> SessionActor:
        actor = SessionActor(
            build_initial_game(session_id=session_id, name=name, deck=deck),
            self.broadcaster,
            idle_grace=self._idle_grace,
            sweep_interval=self._sweep_interval,
            on_exit=self._on_actor_exit,
        )
        self._actors[session_id] = actor
        actor.start()
        return actor

    def _on_actor_exit(self, actor: SessionActor, error: BaseException | None) -> None:
        # Only drop the entry if it still points at this actor.
        if self._actors.get(actor.session_id) is actor:
            del self._actors[actor.session_id]
        if error is None or self._closing:
            return
        logger.warning("Restarting session %s after crash: %r", actor.session_id, error)
        snapshot = actor.initial_game
        self._spawn(snapshot.id, snapshot.name, snapshot.deck)
