"""
Tests for websocket event parsing and the server endpoints.
"""

import math

import pytest
from fastapi.testclient import TestClient
from codenames_engine.errors import STALE_WRITE
from codenames_engine.main import app
from codenames_engine.ws.events import (
    ClearEvent, ClueEvent, ErrorCode, JoinEvent, ResetEvent, RevealEvent, error_code_for, parse_inbound_event,
)
from codenames_engine.ws.server import Connection

WORDS = [f"word{i}" for i in range(25)]


def test_parse_join():
    event = parse_inbound_event({"type": "join", "room_id": "room1", "username": "alice"})
    assert isinstance(event, JoinEvent)
    assert event.room_id == "room1"
    assert event.username == "alice"


@pytest.mark.parametrize("raw,expected", [
    (3, 3),
    ("3", 3),
    (0, 0),
    ("Infinity", math.inf),
    ("unlimited", math.inf),
])
def test_parse_clue_number(raw, expected):
    """Clue numbers accept ints and the unlimited spellings."""
    event = parse_inbound_event({"type": "clue", "text": "animal", "number": raw})
    assert isinstance(event, ClueEvent)
    assert event.number == expected


def test_parse_rejects_bad_events():
    with pytest.raises(ValueError):
        parse_inbound_event({"room_id": "room1"})
    with pytest.raises(ValueError):
        parse_inbound_event({"type": "chat"})
    with pytest.raises(ValueError):
        parse_inbound_event({"type": "clue", "text": "animal", "number": "lots"})
    with pytest.raises(ValueError):
        parse_inbound_event({"type": "reveal", "index": -1})
    with pytest.raises(ValueError):
        parse_inbound_event(["join"])


def test_parse_optional_fields():
    assert parse_inbound_event({"type": "reset"}) == ResetEvent()
    assert parse_inbound_event({"type": "reveal", "index": 4}) == RevealEvent(index=4)
    assert parse_inbound_event({"type": "clear"}) == ClearEvent()


def test_error_code_for():
    assert error_code_for(STALE_WRITE) == ErrorCode.STALE_WRITE
    assert error_code_for("SOMETHING_ELSE") == ErrorCode.INTERNAL


def test_health_check():
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert client.get("/").json()["message"] == "Codenames Game API"


def test_websocket_game_flow():
    """Join, start and clue over the websocket."""
    client = TestClient(app)
    with client.websocket_connect("/ws") as websocket:
        websocket.send_json({"type": "join", "room_id": "ws-flow", "username": "alice"})
        joined = websocket.receive_json()
        assert joined["type"] == "join_success"
        assert joined["username"] == "alice"

        state_event = websocket.receive_json()
        assert state_event["type"] == "state_full"
        assert state_event["state"] is None

        presence = websocket.receive_json()
        assert presence["type"] == "presence"
        assert presence["presence"]["online"] == ["alice"]

        websocket.send_json({"type": "start", "words": WORDS, "full_word_list": WORDS})
        started = websocket.receive_json()
        assert started["type"] == "state_full"
        assert len(started["state"]["cards"]) == 25
        assert all(card["color"] is None for card in started["state"]["cards"])
        assert "fullWordList" not in started["state"]

        websocket.send_json({"type": "clue", "text": "animal", "number": "unlimited"})
        clued = websocket.receive_json()
        assert clued["state"]["currentClue"]["number"] == "Infinity"
        assert clued["state"]["guessesRemaining"] == "Infinity"
        assert clued["state"]["phase"] == "clue_active"

        websocket.send_json({"type": "clear"})
        cleared = websocket.receive_json()
        assert cleared["type"] == "state_full"
        assert cleared["state"] is None


def test_websocket_errors():
    """Bad events and rejected actions come back as error events."""
    client = TestClient(app)
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("not json")
        error = websocket.receive_json()
        assert error["type"] == "error"
        assert error["code"] == "INVALID_EVENT"

        websocket.send_json({"type": "end_turn"})
        error = websocket.receive_json()
        assert error["code"] == "ACTION_NOT_ALLOWED"

        websocket.send_json({"type": "join", "room_id": "ws-errors", "username": "a b"})
        error = websocket.receive_json()
        assert error["code"] == "INVALID_INPUT"


class ClosedWebSocket:
    def __init__(self):
        self.attempts = 0

    async def send_text(self, text):
        self.attempts += 1
        raise RuntimeError("socket closed")


@pytest.mark.asyncio
async def test_connection_drops_events_after_send_failure():
    """Once a send fails nothing more is queued for the dead socket."""
    websocket = ClosedWebSocket()
    connection = Connection(websocket)
    connection.send_error(ErrorCode.INTERNAL, "first")
    connection.send_error(ErrorCode.INTERNAL, "second")

    await connection.pump()
    assert connection.closed is True
    assert websocket.attempts == 1
    assert connection.outbox.qsize() == 0

    connection.push_state(None)
    connection.send_error(ErrorCode.INTERNAL, "third")
    assert connection.outbox.qsize() == 0
