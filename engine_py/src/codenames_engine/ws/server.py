"""
FastAPI WebSocket server for Codenames rooms.
"""

import asyncio
import logging
from typing import Optional, Set

import orjson
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from ..errors import ActionNotAllowed, GameError
from ..models import GameState, PresenceSnapshot
from ..presence import PresenceHub
from ..rules import config_from_env
from ..serialization import sanitize_state, serialize_presence_snapshot
from ..session import RoomSession
from ..store import InMemoryRoomStore
from .events import (
    parse_inbound_event, create_error_event, create_join_success_event,
    create_state_full_event, create_presence_event, error_code_for,
    ErrorCode, JoinEvent, StartEvent, ClueEvent, RevealEvent, EndTurnEvent,
    ResetEvent, ClearEvent, SetTeamEvent, RequestStateEvent, LeaveEvent,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(title="Codenames Game Engine", version="1.0.0")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global state
store = InMemoryRoomStore()
hub = PresenceHub()
session_config = config_from_env()


class Connection:
    """
    One websocket and the room session bound to it.

    Outbound events go through a queue drained by a single sender task, so
    pushes triggered from store callbacks keep their order.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.session: Optional[RoomSession] = None
        self.outbox: asyncio.Queue = asyncio.Queue()
        self._unsubscribers = []
        self.closed = False

    def attach(self, session: RoomSession):
        self.session = session
        self._unsubscribers = [
            session.on_update(self.push_state),
            session.on_presence(self.push_presence),
        ]

    def detach(self) -> Optional[RoomSession]:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        session, self.session = self.session, None
        return session

    @property
    def viewer_role(self) -> Optional[str]:
        if self.session is None or self.session.player is None:
            return None
        return self.session.player.role

    def send(self, event):
        if self.closed:
            return
        self.outbox.put_nowait(event.model_dump_json())

    def send_error(self, code: ErrorCode, message: str):
        self.send(create_error_event(code, message))

    def push_state(self, state: Optional[GameState]):
        self.send(create_state_full_event(sanitize_state(state, self.viewer_role)))

    def push_presence(self, snapshot: PresenceSnapshot):
        self.send(create_presence_event(serialize_presence_snapshot(snapshot)))

    async def pump(self):
        while True:
            text = await self.outbox.get()
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                logger.error(f"Error sending to websocket: {e}")
                self.closed = True
                while not self.outbox.empty():
                    self.outbox.get_nowait()
                return


class ConnectionManager:
    """Tracks live connections."""

    def __init__(self):
        self.connections: Set[Connection] = set()

    def connect(self, connection: Connection):
        self.connections.add(connection)

    async def disconnect(self, connection: Connection):
        self.connections.discard(connection)
        session = connection.detach()
        if session is not None and session.joined:
            await session.disconnect()


manager = ConnectionManager()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "rooms": store.room_count,
        "connections": len(manager.connections)
    }


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Main WebSocket endpoint."""
    await websocket.accept()
    logger.info("WebSocket connection accepted")

    connection = Connection(websocket)
    manager.connect(connection)
    sender = asyncio.create_task(connection.pump())

    try:
        while True:
            raw_data = await websocket.receive_text()

            try:
                data = orjson.loads(raw_data)
                event = parse_inbound_event(data)
                await handle_event(connection, event)
            except GameError as e:
                logger.info(f"Rejected event: {e}")
                connection.send_error(error_code_for(e.code), e.message)
            except ValueError as e:
                # Invalid event
                connection.send_error(ErrorCode.INVALID_EVENT, str(e))
            except Exception:
                logger.exception("Error handling event")
                connection.send_error(ErrorCode.INTERNAL, "Internal server error")

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        await manager.disconnect(connection)
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass


def _require_session(connection: Connection) -> RoomSession:
    if connection.session is None:
        raise ActionNotAllowed("Not in a room")
    return connection.session


async def handle_event(connection: Connection, event):
    """Handle an inbound event."""

    if isinstance(event, JoinEvent):
        await handle_join(connection, event)
    elif isinstance(event, StartEvent):
        await _require_session(connection).start_game(event.words, event.full_word_list)
    elif isinstance(event, ClueEvent):
        await _require_session(connection).give_clue(event.text, event.number)
    elif isinstance(event, RevealEvent):
        await _require_session(connection).reveal_card(event.index)
    elif isinstance(event, EndTurnEvent):
        await _require_session(connection).end_turn()
    elif isinstance(event, ResetEvent):
        await _require_session(connection).reset_game(event.full_word_list)
    elif isinstance(event, ClearEvent):
        await _require_session(connection).clear_room()
    elif isinstance(event, SetTeamEvent):
        session = _require_session(connection)
        await session.set_team_and_role(event.team, event.role)
        # The viewer's role decides which colors are visible.
        connection.push_state(session.state)
    elif isinstance(event, RequestStateEvent):
        session = _require_session(connection)
        connection.push_state(session.state)
        connection.push_presence(session.presence_snapshot())
    elif isinstance(event, LeaveEvent):
        session = connection.detach()
        if session is not None:
            await session.leave()
    else:
        raise ValueError(f"Unhandled event type: {type(event)}")


async def handle_join(connection: Connection, event: JoinEvent):
    """Handle join room event."""
    previous = connection.detach()
    if previous is not None and previous.joined:
        await previous.disconnect()

    session = RoomSession(store, hub, event.room_id, event.username, config=session_config)
    await session.join()
    connection.attach(session)

    connection.send(create_join_success_event(event.room_id, event.username))
    connection.push_state(session.state)
    connection.push_presence(session.presence_snapshot())
