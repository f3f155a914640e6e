"""
Tests for room document encoding and client sanitization.
"""

import math

import orjson
import pytest
from codenames_engine.constants import (
    ASSASSIN, BLUE, INFINITY_TOKEN, PHASE_CLUE_ACTIVE, ROLE_OPERATIVE, ROLE_SPYMASTER, UNLIMITED,
)
from codenames_engine.engine import give_clue, reveal_card, start_game
from codenames_engine.errors import InvalidInput
from codenames_engine.models import HistoryRecord, Player
from codenames_engine.serialization import (
    decode_state, deserialize_history_record, deserialize_player, deserialize_state,
    encode_state, sanitize_state, serialize_history_record, serialize_player, serialize_state,
)

WORDS = [f"word{i}" for i in range(25)]


def new_game():
    return start_game(WORDS, WORDS, seed=4)


def test_unlimited_clue_survives_storage():
    """Infinite budgets are stored as a token and restored as infinity."""
    state = give_clue(new_game(), BLUE, "everything", UNLIMITED)
    payload = encode_state(state)

    document = orjson.loads(payload)
    assert document["guessesRemaining"] == INFINITY_TOKEN
    assert document["currentClue"]["number"] == INFINITY_TOKEN

    restored = decode_state(payload)
    assert restored.guesses_remaining == math.inf
    assert restored.current_clue.number == math.inf
    assert restored == state


def test_finite_numbers_stay_ints():
    """Finite clue numbers come back as ints."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    restored = decode_state(encode_state(state))
    assert restored.guesses_remaining == 3
    assert isinstance(restored.guesses_remaining, int)
    assert restored.current_clue.number == 2


def test_document_keys():
    """Documents use camelCase keys and carry the version."""
    document = serialize_state(new_game())
    assert set(document) == {
        "cards", "currentTurn", "redCardsLeft", "blueCardsLeft", "gameOver", "winner",
        "currentClue", "guessesRemaining", "canGuess", "clueType", "fullWordList", "version",
    }


def test_empty_room_decodes_to_none():
    """A room without a game has no state."""
    assert decode_state(None) is None
    assert deserialize_state(None) is None


def test_legacy_assassin_color():
    """Old documents call the assassin 'black'."""
    document = serialize_state(new_game())
    document["cards"][0]["color"] = "black"
    state = deserialize_state(document)
    assert state.cards[0].color == ASSASSIN


def test_malformed_document():
    """Missing fields raise InvalidInput."""
    document = serialize_state(new_game())
    del document["redCardsLeft"]
    with pytest.raises(InvalidInput):
        deserialize_state(document)


def test_sanitize_hides_colors_from_operatives():
    """Operatives only see the colors of revealed cards."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    blue_index = next(i for i, card in enumerate(state.cards) if card.color == BLUE)
    state = reveal_card(state, blue_index)

    document = sanitize_state(state, ROLE_OPERATIVE)
    for i, card in enumerate(document["cards"]):
        if i == blue_index:
            assert card["color"] == BLUE
        else:
            assert card["color"] is None
    assert "fullWordList" not in document
    assert document["phase"] == PHASE_CLUE_ACTIVE


def test_sanitize_shows_colors_to_spymasters():
    """Spymasters see every color."""
    state = new_game()
    document = sanitize_state(state, ROLE_SPYMASTER)
    assert [card["color"] for card in document["cards"]] == [card.color for card in state.cards]


def test_sanitize_shows_colors_after_game_over():
    """Everyone sees the full board once the game ends."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    assassin = next(i for i, card in enumerate(state.cards) if card.color == ASSASSIN)
    state = reveal_card(state, assassin)
    document = sanitize_state(state, ROLE_OPERATIVE)
    assert all(card["color"] is not None for card in document["cards"])


def test_sanitize_does_not_touch_state():
    """Sanitizing leaves the state's cards alone."""
    state = new_game()
    sanitize_state(state, ROLE_OPERATIVE)
    assert all(card.color is not None for card in state.cards)
    assert sanitize_state(None) is None


def test_player_document():
    """Player records keep team, role and online status."""
    player = Player(username="alice", team=BLUE, role=ROLE_SPYMASTER, online=False, last_seen=12.5)
    assert deserialize_player(serialize_player(player)) == player


def test_history_record_with_unlimited_number():
    """Unlimited clue numbers in history use the same token as room documents."""
    record = HistoryRecord(
        room_id="room1",
        action_type="clue",
        action_data={"team": BLUE, "clue": "everything", "number": UNLIMITED},
        created_at=100.0,
        sequence=3,
    )
    document = serialize_history_record(record)
    assert document["action_data"]["number"] == INFINITY_TOKEN
    orjson.dumps(document)

    restored = deserialize_history_record(document)
    assert restored.action_data["number"] == math.inf
    assert restored.sequence == 3
