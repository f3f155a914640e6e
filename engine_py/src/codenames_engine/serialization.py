"""
State serialization and sanitization utilities.

Room documents use camelCase keys. JSON has no infinity, and orjson writes
``inf`` as ``null``, so unbounded guess budgets and unlimited clue numbers are
stored as the string token ``"Infinity"`` and restored on read.
"""

import math
from typing import Any, Dict, Optional

import orjson

from .constants import (
    CLUE_NORMAL, INFINITY_TOKEN, ROLE_SPYMASTER, STARTING_TEAM, is_unlimited, normalize_color,
)
from .engine import game_phase
from .errors import InvalidInput
from .models import Card, Clue, GameState, HistoryRecord, Player, PresenceSnapshot
from .shuffle import parse_word_pool


def encode_number(value):
    """Replace the infinite sentinel with its wire token."""
    if is_unlimited(value):
        return INFINITY_TOKEN
    return value


def decode_number(value):
    """Restore the infinite sentinel from its wire token."""
    if value == INFINITY_TOKEN:
        return math.inf
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def serialize_card(card: Card) -> Dict[str, Any]:
    return {"word": card.word, "color": card.color, "revealed": card.revealed}


def serialize_state(state: GameState) -> Dict[str, Any]:
    """Convert a GameState to its persisted document form."""
    clue = None
    if state.current_clue is not None:
        clue = {
            "text": state.current_clue.text,
            "number": encode_number(state.current_clue.number),
            "team": state.current_clue.team,
        }
    return {
        "cards": [serialize_card(card) for card in state.cards],
        "currentTurn": state.current_turn,
        "redCardsLeft": state.red_cards_left,
        "blueCardsLeft": state.blue_cards_left,
        "gameOver": state.game_over,
        "winner": state.winner,
        "currentClue": clue,
        "guessesRemaining": encode_number(state.guesses_remaining),
        "canGuess": state.can_guess,
        "clueType": state.clue_type,
        "fullWordList": list(state.full_word_list),
        "version": state.version,
    }


def deserialize_state(document: Optional[Dict[str, Any]]) -> Optional[GameState]:
    """
    Rebuild a GameState from a persisted document.

    Args:
        document: Document as produced by serialize_state (or None)

    Returns:
        GameState, or None for an empty room

    Raises:
        InvalidInput: If the document is malformed
    """
    if document is None:
        return None
    try:
        cards = [
            Card(word=raw["word"], color=normalize_color(raw["color"]), revealed=bool(raw.get("revealed", False)))
            for raw in document.get("cards", [])
        ]
        raw_clue = document.get("currentClue")
        clue = None
        if raw_clue:
            clue = Clue(
                text=raw_clue["text"],
                number=decode_number(raw_clue.get("number")),
                team=raw_clue.get("team"),
            )
        return GameState(
            cards=cards,
            current_turn=document.get("currentTurn", STARTING_TEAM),
            red_cards_left=int(document["redCardsLeft"]),
            blue_cards_left=int(document["blueCardsLeft"]),
            game_over=bool(document.get("gameOver", False)),
            winner=document.get("winner"),
            current_clue=clue,
            guesses_remaining=decode_number(document.get("guessesRemaining", 0)),
            can_guess=bool(document.get("canGuess", False)),
            clue_type=document.get("clueType") or CLUE_NORMAL,
            full_word_list=parse_word_pool(document.get("fullWordList")),
            version=int(document.get("version", 0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidInput(f"Malformed game state document: {e}")


def dumps(document: Dict[str, Any]) -> bytes:
    return orjson.dumps(document)


def loads(payload: bytes) -> Dict[str, Any]:
    return orjson.loads(payload)


def encode_state(state: GameState) -> bytes:
    return dumps(serialize_state(state))


def decode_state(payload: Optional[bytes]) -> Optional[GameState]:
    if payload is None:
        return None
    return deserialize_state(loads(payload))


def serialize_player(player: Player) -> Dict[str, Any]:
    return {
        "username": player.username,
        "team": player.team,
        "role": player.role,
        "online": player.online,
        "last_seen": player.last_seen,
    }


def deserialize_player(document: Dict[str, Any]) -> Player:
    return Player(
        username=document["username"],
        team=document.get("team"),
        role=document.get("role"),
        online=bool(document.get("online", False)),
        last_seen=float(document.get("last_seen") or 0.0),
    )


def serialize_history_record(record: HistoryRecord) -> Dict[str, Any]:
    data = dict(record.action_data)
    if "number" in data:
        data["number"] = encode_number(data["number"])
    return {
        "room_id": record.room_id,
        "action_type": record.action_type,
        "action_data": data,
        "created_at": record.created_at,
        "sequence": record.sequence,
    }


def deserialize_history_record(document: Dict[str, Any]) -> HistoryRecord:
    data = dict(document["action_data"])
    if "number" in data:
        data["number"] = decode_number(data["number"])
    return HistoryRecord(
        room_id=document["room_id"],
        action_type=document["action_type"],
        action_data=data,
        created_at=document["created_at"],
        sequence=document.get("sequence", 0),
    )


def sanitize_state(state: Optional[GameState], viewer_role: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Sanitize game state for transmission to a client.

    Args:
        state: Game state to sanitize
        viewer_role: Role of the viewing player; only spymasters see the
            colors of unrevealed cards until the game is over

    Returns:
        Document safe for JSON transmission
    """
    if state is None:
        return None
    document = serialize_state(state)
    show_all = viewer_role == ROLE_SPYMASTER or state.game_over
    if not show_all:
        for card in document["cards"]:
            if not card["revealed"]:
                card["color"] = None
    # Clients rebuild the pool themselves; it is only needed for reset.
    del document["fullWordList"]
    document["phase"] = game_phase(state)
    return document


def serialize_presence_snapshot(snapshot: PresenceSnapshot) -> Dict[str, Any]:
    return {
        "room_id": snapshot.room_id,
        "online": snapshot.online,
        "last_update": snapshot.last_update,
        "players": {
            name: {
                "username": player.username,
                "team": player.team,
                "role": player.role,
                "online": player.online,
                "online_at": player.online_at,
            }
            for name, player in snapshot.players.items()
        },
    }
