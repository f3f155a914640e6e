"""
WebSocket event models and validation.
"""

import math
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..constants import INFINITY_TOKEN


class EventType(str, Enum):
    """Inbound event types."""
    JOIN = "join"
    START = "start"
    CLUE = "clue"
    REVEAL = "reveal"
    END_TURN = "end_turn"
    RESET = "reset"
    CLEAR = "clear"
    SET_TEAM = "set_team"
    REQUEST_STATE = "request_state"
    LEAVE = "leave"


class OutboundEventType(str, Enum):
    """Outbound event types."""
    JOIN_SUCCESS = "join_success"
    STATE_FULL = "state_full"
    PRESENCE = "presence"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Error codes for client events."""
    INVALID_EVENT = "INVALID_EVENT"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_WORD_LIST = "INVALID_WORD_LIST"
    INVALID_CLUE = "INVALID_CLUE"
    INVALID_ACTION = "INVALID_ACTION"
    NOT_FOUND = "NOT_FOUND"
    WRITE_ERROR = "WRITE_ERROR"
    STALE_WRITE = "STALE_WRITE"
    PRESENCE_ERROR = "PRESENCE_ERROR"
    PRESENCE_TIMEOUT = "PRESENCE_TIMEOUT"
    ACTION_NOT_ALLOWED = "ACTION_NOT_ALLOWED"
    INTERNAL = "INTERNAL"


UNLIMITED_ALIASES = {INFINITY_TOKEN, "unlimited", "inf"}


# Inbound event models
class BaseEvent(BaseModel):
    """Base event model."""
    type: EventType


class JoinEvent(BaseEvent):
    """Join room event."""
    type: EventType = EventType.JOIN
    room_id: str = Field(..., min_length=1, max_length=80)
    username: str = Field(..., min_length=1, max_length=30)


class StartEvent(BaseEvent):
    """Start game event."""
    type: EventType = EventType.START
    words: List[str] = Field(..., min_length=1)
    full_word_list: Union[str, List[str]]


class ClueEvent(BaseEvent):
    """Spymaster clue event. ``number`` may be 0-9 or "unlimited"."""
    type: EventType = EventType.CLUE
    text: str = Field(..., max_length=50)
    number: Any

    @field_validator('number', mode='before')
    @classmethod
    def parse_number(cls, v):
        if isinstance(v, str):
            if v in UNLIMITED_ALIASES:
                return math.inf
            try:
                return int(v)
            except ValueError:
                raise ValueError(f'Invalid clue number: {v!r}')
        return v


class RevealEvent(BaseEvent):
    """Reveal card event."""
    type: EventType = EventType.REVEAL
    index: int = Field(..., ge=0)


class EndTurnEvent(BaseEvent):
    """End turn event."""
    type: EventType = EventType.END_TURN


class ResetEvent(BaseEvent):
    """Reset game event."""
    type: EventType = EventType.RESET
    full_word_list: Optional[Union[str, List[str]]] = None


class ClearEvent(BaseEvent):
    """Clear the room back to no game."""
    type: EventType = EventType.CLEAR


class SetTeamEvent(BaseEvent):
    """Team and role selection event."""
    type: EventType = EventType.SET_TEAM
    team: Optional[str] = None
    role: Optional[str] = None


class RequestStateEvent(BaseEvent):
    """Request full state event."""
    type: EventType = EventType.REQUEST_STATE


class LeaveEvent(BaseEvent):
    """Leave room event."""
    type: EventType = EventType.LEAVE


# Union type for all inbound events
InboundEvent = Union[
    JoinEvent,
    StartEvent,
    ClueEvent,
    RevealEvent,
    EndTurnEvent,
    ResetEvent,
    ClearEvent,
    SetTeamEvent,
    RequestStateEvent,
    LeaveEvent,
]


# Outbound event models
class JoinSuccessEvent(BaseModel):
    """Join success confirmation event."""
    type: OutboundEventType = OutboundEventType.JOIN_SUCCESS
    room_id: str
    username: str
    timestamp: float


class StateFullEvent(BaseModel):
    """Full state event."""
    type: OutboundEventType = OutboundEventType.STATE_FULL
    state: Optional[Dict[str, Any]]
    timestamp: float


class PresenceEvent(BaseModel):
    """Presence snapshot event."""
    type: OutboundEventType = OutboundEventType.PRESENCE
    presence: Dict[str, Any]
    timestamp: float


class ErrorEvent(BaseModel):
    """Error event."""
    type: OutboundEventType = OutboundEventType.ERROR
    code: ErrorCode
    message: str
    timestamp: float


def parse_inbound_event(data: Dict[str, Any]) -> InboundEvent:
    """
    Parse raw event data into appropriate event model.

    Args:
        data: Raw event data from WebSocket

    Returns:
        Parsed event model

    Raises:
        ValueError: If event type is invalid or data is malformed
    """
    if not isinstance(data, dict):
        raise ValueError("Event must be a JSON object")

    event_type = data.get("type")

    if not event_type:
        raise ValueError("Missing event type")

    try:
        event_type = EventType(event_type)
    except ValueError:
        raise ValueError(f"Invalid event type: {event_type}")

    event_map = {
        EventType.JOIN: JoinEvent,
        EventType.START: StartEvent,
        EventType.CLUE: ClueEvent,
        EventType.REVEAL: RevealEvent,
        EventType.END_TURN: EndTurnEvent,
        EventType.RESET: ResetEvent,
        EventType.CLEAR: ClearEvent,
        EventType.SET_TEAM: SetTeamEvent,
        EventType.REQUEST_STATE: RequestStateEvent,
        EventType.LEAVE: LeaveEvent,
    }

    event_class = event_map[event_type]

    try:
        return event_class(**data)
    except Exception as e:
        raise ValueError(f"Invalid event data: {str(e)}")


def error_code_for(code: str) -> ErrorCode:
    """Map a GameError code onto the client error codes."""
    try:
        return ErrorCode(code)
    except ValueError:
        return ErrorCode.INTERNAL


def create_error_event(code: ErrorCode, message: str) -> ErrorEvent:
    """Create an error event."""
    return ErrorEvent(
        code=code,
        message=message,
        timestamp=time.time()
    )


def create_join_success_event(room_id: str, username: str) -> JoinSuccessEvent:
    """Create a join success event."""
    return JoinSuccessEvent(
        room_id=room_id,
        username=username,
        timestamp=time.time()
    )


def create_state_full_event(state: Optional[Dict[str, Any]]) -> StateFullEvent:
    """Create a full state event."""
    return StateFullEvent(
        state=state,
        timestamp=time.time()
    )


def create_presence_event(presence: Dict[str, Any]) -> PresenceEvent:
    """Create a presence snapshot event."""
    return PresenceEvent(
        presence=presence,
        timestamp=time.time()
    )
