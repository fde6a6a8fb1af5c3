"""Single-owner asyncio worker serializing all mutation of one session.

Every operation is queued as a message on the actor's inbox and answered
through a future once the worker has processed it. Messages are handled one
at a time in arrival order, so composite operations such as joining with an
avatar are atomic without any lock.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from . import engine
from .engine import ActionResult
from .models import Failure, Game, Role
from .pubsub import Broadcaster
from .state import new_participant

logger = logging.getLogger(__name__)

DEFAULT_IDLE_GRACE_SECONDS = 300.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0

_GET = "GET"
_AVAILABLE_AVATARS = "AVAILABLE_AVATARS"
_CHECK_IDLE = "CHECK_IDLE"
_STOP = "STOP"


class ActorStatus(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass
class _Envelope:
    message: dict[str, Any]
    reply: asyncio.Future[Any] | None = None
    control: bool = False


ExitCallback = Callable[["SessionActor", "BaseException | None"], None]


class SessionActor:
    """Owns one session aggregate; on_exit runs synchronously when the worker stops."""

    def __init__(
        self,
        game: Game,
        broadcaster: Broadcaster,
        *,
        idle_grace: float = DEFAULT_IDLE_GRACE_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_exit: ExitCallback | None = None,
    ) -> None:
        self._initial_game = game
        self._game = game
        self._broadcaster = broadcaster
        self._idle_grace = idle_grace
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._on_exit = on_exit

        self._inbox: asyncio.Queue[_Envelope] = asyncio.Queue()
        self._status = ActorStatus.ACTIVE
        self._last_activity = clock()
        self._exit_reason: str | None = None
        self._worker: asyncio.Task[None] | None = None
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def session_id(self) -> str:
        return self._game.id

    @property
    def initial_game(self) -> Game:
        """The aggregate the actor started with, used to restart it fresh."""
        return self._initial_game

    @property
    def status(self) -> ActorStatus:
        return self._status

    @property
    def is_active(self) -> bool:
        return self._status is ActorStatus.ACTIVE

    @property
    def exit_reason(self) -> str | None:
        return self._exit_reason

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Spawn the worker and sweep tasks on the running loop."""
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run(), name=f"session-{self.session_id}")
        self._sweeper = asyncio.create_task(self._sweep(), name=f"session-sweep-{self.session_id}")

    async def stop(self) -> Failure | None:
        """Terminate the actor, discarding its state."""
        return await self._call({"type": _STOP}, control=True)

    async def wait_closed(self) -> None:
        for task in (self._worker, self._sweeper):
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    # -- operations ---------------------------------------------------------

    async def get(self) -> ActionResult:
        return await self._call({"type": _GET}, control=True)

    async def available_avatars(self) -> list[int] | Failure:
        return await self._call({"type": _AVAILABLE_AVATARS}, control=True)

    async def join(
        self,
        participant_id: str,
        name: str,
        role: Role = Role.VOTER,
        avatar: int | None = None,
    ) -> ActionResult:
        participant = new_participant(participant_id, name, role, avatar)
        return await self.dispatch({"type": "JOIN", "participant": participant})

    async def leave(self, participant_id: str) -> ActionResult:
        return await self.dispatch({"type": "LEAVE", "participantId": participant_id})

    async def vote(self, participant_id: str, card: str) -> ActionResult:
        return await self.dispatch({"type": "CAST_VOTE", "participantId": participant_id, "card": card})

    async def reveal(self) -> ActionResult:
        return await self.dispatch({"type": "REVEAL"})

    async def reset(self) -> ActionResult:
        return await self.dispatch({"type": "RESET_ROUND"})

    async def set_story(self, label: str | None) -> ActionResult:
        return await self.dispatch({"type": "SET_STORY", "label": label})

    async def set_connected(self, participant_id: str, connected: bool) -> ActionResult:
        return await self.dispatch(
            {"type": "SET_CONNECTED", "participantId": participant_id, "connected": connected}
        )

    async def toggle_role(self, participant_id: str) -> ActionResult:
        return await self.dispatch({"type": "TOGGLE_ROLE", "participantId": participant_id})

    async def dispatch(self, action: dict[str, Any]) -> ActionResult:
        """Queue a reducer action and wait for its result.

        Every action goes to the reducer; unknown types crash the worker.
        """
        return await self._call(action)

    # -- internals ----------------------------------------------------------

    async def _call(self, message: dict[str, Any], control: bool = False) -> Any:
        if not self.is_active:
            return self._not_found(message, control)
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_Envelope(message=message, reply=reply, control=control))
        return await reply

    async def _run(self) -> None:
        error: BaseException | None = None
        try:
            while self.is_active:
                envelope = await self._inbox.get()
                self._handle(envelope)
        except Exception as exc:
            error = exc
            self._exit_reason = "crashed"
            logger.exception("Session %s worker crashed", self.session_id)
        finally:
            self._terminate(error)

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self._inbox.put_nowait(_Envelope(message={"type": _CHECK_IDLE}, control=True))

    def _handle(self, envelope: _Envelope) -> None:
        if not envelope.control:
            self._apply(envelope)
            return
        message_type = message_type_of(envelope.message)
        if message_type == _GET:
            self._resolve(envelope, ActionResult(game=self._game))
        elif message_type == _AVAILABLE_AVATARS:
            self._resolve(envelope, engine.available_avatars(self._game))
        elif message_type == _CHECK_IDLE:
            if self._idle_expired():
                logger.info("Session %s idle for over %.0fs, reclaiming", self.session_id, self._idle_grace)
                self._status = ActorStatus.TERMINATED
                self._exit_reason = "idle"
            self._resolve(envelope, None)
        elif message_type == _STOP:
            self._status = ActorStatus.TERMINATED
            self._exit_reason = "stopped"
            self._resolve(envelope, None)
        else:
            raise RuntimeError(f"Unknown control message: {message_type!r}")

    def _apply(self, envelope: _Envelope) -> None:
        try:
            result = engine.apply_action(self._game, envelope.message)
        except Exception as exc:
            if envelope.reply is not None and not envelope.reply.done():
                envelope.reply.set_exception(exc)
            raise

        if result.ok and result.game is not None:
            self._game = result.game
            self._last_activity = self._clock()
            # Broadcast only after the new aggregate is committed.
            for event in result.events:
                self._broadcaster.publish(self.session_id, event)
        self._resolve(envelope, result)

    def _idle_expired(self) -> bool:
        return engine.is_empty(self._game) and self._clock() - self._last_activity > self._idle_grace

    def _terminate(self, error: BaseException | None) -> None:
        self._status = ActorStatus.TERMINATED
        if self._exit_reason is None:
            self._exit_reason = "cancelled"
        if self._sweeper is not None:
            self._sweeper.cancel()
        while not self._inbox.empty():
            pending = self._inbox.get_nowait()
            self._resolve(pending, self._not_found(pending.message, pending.control))
        logger.info("Session %s terminated (%s)", self.session_id, self._exit_reason)
        if self._on_exit is not None:
            self._on_exit(self, error)

    @staticmethod
    def _resolve(envelope: _Envelope, value: Any) -> None:
        if envelope.reply is not None and not envelope.reply.done():
            envelope.reply.set_result(value)

    @staticmethod
    def _not_found(message: dict[str, Any], control: bool = False) -> Any:
        if control and message_type_of(message) in (_AVAILABLE_AVATARS, _STOP):
            return Failure.NOT_FOUND
        return ActionResult(game=None, error=Failure.NOT_FOUND)


def message_type_of(message: dict[str, Any]) -> str:
    return str(message.get("type", "")).upper()
