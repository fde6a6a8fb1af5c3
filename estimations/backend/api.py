"""FastAPI endpoints for session lifecycle, voting and websocket sync."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from . import avatars, cards, engine
from .cards import Deck
from .config import BackendSettings, configure_logging, load_settings
from .directory import SessionDirectory
from .engine import ActionResult
from .models import Failure, Game, Role, SessionEvent
from .security import generate_participant_id
from .state import game_snapshot

logger = logging.getLogger(__name__)


class CreateSessionRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    deck: Deck = Deck.FIBONACCI


class CreateSessionResponse(BaseModel):
    session_id: str


class SessionStateResponse(BaseModel):
    state: dict[str, Any]
    statistics: dict[str, Any] | None = None
    available_avatars: list[int] = Field(default_factory=list)
    all_voters_voted: bool = False
    any_votes: bool = False


class JoinRequest(BaseModel):
    participant_id: str | None = Field(default=None, min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    role: Role = Role.VOTER
    avatar: int | None = None


class JoinResponse(SessionStateResponse):
    participant_id: str


class VoteRequest(BaseModel):
    participant_id: str = Field(min_length=1)
    card: str = Field(min_length=1)


class StoryRequest(BaseModel):
    label: str | None = Field(default=None, max_length=200)


_FAILURE_STATUS = {
    Failure.INVALID_CARD: 409,
    Failure.ALREADY_REVEALED: 409,
    Failure.AVATAR_UNAVAILABLE: 409,
}


def _raise_for(failure: Failure) -> None:
    if failure is Failure.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Session not found")
    raise HTTPException(status_code=_FAILURE_STATUS[failure], detail=failure.value)


def _unwrap(result: ActionResult) -> Game:
    if result.error is not None:
        _raise_for(result.error)
    assert result.game is not None
    return result.game


def _state_response(game: Game) -> SessionStateResponse:
    stats = None
    if game.is_revealed:
        computed = engine.statistics(game)
        stats = {"average": computed.average, "distribution": computed.distribution}
    return SessionStateResponse(
        state=game_snapshot(game, hide_votes=True),
        statistics=stats,
        available_avatars=engine.available_avatars(game),
        all_voters_voted=engine.all_voters_voted(game),
        any_votes=engine.any_votes(game),
    )


def event_message(event: SessionEvent) -> dict[str, Any]:
    return {"type": event.kind.value, "sessionId": event.session_id, "payload": event.payload}


async def _forward_events(websocket: WebSocket, queue: asyncio.Queue[SessionEvent]) -> None:
    while True:
        event = await queue.get()
        try:
            await websocket.send_json(event_message(event))
        except (RuntimeError, WebSocketDisconnect):
            return


def create_app(
    directory: SessionDirectory | None = None,
    settings: BackendSettings | None = None,
) -> FastAPI:
    session_directory = (
        directory if directory is not None else SessionDirectory.from_settings(settings or load_settings())
    )

    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await session_directory.shutdown()

    app = FastAPI(title="Estimations API", version="0.1.0", lifespan=lifespan)
    app.state.directory = session_directory

    def get_directory() -> SessionDirectory:
        return session_directory

    @app.get("/api/decks")
    def list_decks() -> list[dict[str, Any]]:
        return [
            {"deck": deck.value, "displayName": cards.display_name(deck), "cards": cards.cards(deck)}
            for deck in cards.deck_types()
        ]

    @app.get("/api/avatars")
    def list_avatars() -> list[dict[str, Any]]:
        return [avatar.to_dict() for avatar in avatars.all_avatars()]

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    async def create_session(
        payload: CreateSessionRequest,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> CreateSessionResponse:
        session_id = await local_directory.create_session(name=payload.name, deck=payload.deck)
        return CreateSessionResponse(session_id=session_id)

    @app.get("/api/sessions/{session_id}", response_model=SessionStateResponse)
    async def get_session(
        session_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        return _state_response(_unwrap(await local_directory.get_game(session_id)))

    @app.delete("/api/sessions/{session_id}")
    async def stop_session(
        session_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> dict[str, Any]:
        failure = await local_directory.stop_session(session_id)
        if failure is not None:
            _raise_for(failure)
        return {"session_id": session_id, "stopped": True}

    @app.post("/api/sessions/{session_id}/participants", response_model=JoinResponse)
    async def join_session(
        session_id: str,
        payload: JoinRequest,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> JoinResponse:
        participant_id = payload.participant_id or generate_participant_id()
        result = await local_directory.join(
            session_id,
            participant_id=participant_id,
            name=payload.name.strip(),
            role=payload.role,
            avatar=payload.avatar,
        )
        state = _state_response(_unwrap(result))
        return JoinResponse(participant_id=participant_id, **state.model_dump())

    @app.delete("/api/sessions/{session_id}/participants/{participant_id}", response_model=SessionStateResponse)
    async def leave_session(
        session_id: str,
        participant_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        return _state_response(_unwrap(await local_directory.leave(session_id, participant_id)))

    @app.post("/api/sessions/{session_id}/votes", response_model=SessionStateResponse)
    async def cast_vote(
        session_id: str,
        payload: VoteRequest,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        result = await local_directory.vote(session_id, payload.participant_id, payload.card)
        return _state_response(_unwrap(result))

    @app.post("/api/sessions/{session_id}/reveal", response_model=SessionStateResponse)
    async def reveal_votes(
        session_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        return _state_response(_unwrap(await local_directory.reveal(session_id)))

    @app.post("/api/sessions/{session_id}/reset", response_model=SessionStateResponse)
    async def reset_round(
        session_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        return _state_response(_unwrap(await local_directory.reset(session_id)))

    @app.put("/api/sessions/{session_id}/story", response_model=SessionStateResponse)
    async def set_story(
        session_id: str,
        payload: StoryRequest,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        return _state_response(_unwrap(await local_directory.set_story(session_id, payload.label)))

    @app.post(
        "/api/sessions/{session_id}/participants/{participant_id}/toggle-role",
        response_model=SessionStateResponse,
    )
    async def toggle_role(
        session_id: str,
        participant_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> SessionStateResponse:
        return _state_response(_unwrap(await local_directory.toggle_role(session_id, participant_id)))

    @app.websocket("/ws/sessions/{session_id}")
    async def session_ws(
        websocket: WebSocket,
        session_id: str,
        local_directory: SessionDirectory = Depends(get_directory),
    ) -> None:
        if not local_directory.exists(session_id):
            await websocket.close(code=1008)
            return
        participant_id = websocket.query_params.get("participant_id") or None

        await websocket.accept()
        queue = local_directory.subscribe(session_id)
        forwarder: asyncio.Task[None] | None = None
        try:
            current = await local_directory.get_game(session_id)
            if current.game is None:
                await websocket.close(code=1008)
                return
            await websocket.send_json({"type": "state.full", "state": game_snapshot(current.game, hide_votes=True)})
            forwarder = asyncio.create_task(_forward_events(websocket, queue))
            if participant_id is not None:
                await local_directory.set_connected(session_id, participant_id, True)
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Observer left session %s", session_id)
        finally:
            if forwarder is not None:
                forwarder.cancel()
            local_directory.unsubscribe(session_id, queue)
            if participant_id is not None:
                await local_directory.set_connected(session_id, participant_id, False)

    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


app = create_app()


if __name__ == "__main__":
    main()
