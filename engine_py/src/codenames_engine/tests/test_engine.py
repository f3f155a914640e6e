"""
Tests for the Codenames state machine.
"""

import math

import pytest
from codenames_engine.constants import (
    ASSASSIN, BLUE, CLUE_NORMAL, CLUE_SPECIAL, NEUTRAL, PHASE_AWAITING_CLUE,
    PHASE_CLUE_ACTIVE, PHASE_GAME_OVER, RED, UNLIMITED,
)
from codenames_engine.engine import (
    check_invariants, clue_budget, end_turn, game_phase, give_clue, reset_game,
    reveal_card, reveal_card_result, start_game,
)
from codenames_engine.errors import InvalidAction, InvalidClue, InvalidWordList
from codenames_engine.shuffle import color_counts

WORDS = [f"word{i}" for i in range(25)]
POOL = [f"pool{i}" for i in range(60)]


def new_game(seed=7):
    return start_game(WORDS, POOL, seed=seed)


def index_of(state, color):
    """Index of the first unrevealed card of ``color``."""
    return next(i for i, card in enumerate(state.cards) if card.color == color and not card.revealed)


def test_start_game_distribution():
    """A new board has 8 red, 9 blue, 7 neutral and 1 assassin, all face down."""
    state = new_game()
    counts = color_counts(state.cards)
    assert counts == {RED: 8, BLUE: 9, NEUTRAL: 7, ASSASSIN: 1}
    assert [card.word for card in state.cards] == WORDS
    assert not any(card.revealed for card in state.cards)
    assert state.current_turn == BLUE
    assert state.red_cards_left == 8
    assert state.blue_cards_left == 9
    assert state.can_guess is False
    assert state.current_clue is None
    assert state.version == 0
    assert state.full_word_list == POOL
    assert check_invariants(state) == []


def test_start_game_only_uses_first_25_words():
    """Extra words beyond the board size are ignored."""
    state = start_game(WORDS + ["extra1", "extra2"], POOL, seed=1)
    assert len(state.cards) == 25
    assert "extra1" not in [card.word for card in state.cards]


def test_start_game_seed_is_deterministic():
    """The same seed deals the same colors."""
    first = new_game(seed=3)
    second = new_game(seed=3)
    assert [c.color for c in first.cards] == [c.color for c in second.cards]


def test_start_game_rejects_short_word_list():
    """Fewer than 25 words is an invalid word list."""
    with pytest.raises(InvalidWordList):
        start_game(WORDS[:24], POOL)


def test_start_game_requires_pool():
    """The full word list is needed for later resets."""
    with pytest.raises(InvalidWordList):
        start_game(WORDS, [])


def test_clue_budget():
    """0 and unlimited clues allow unbounded guesses; others allow number + 1."""
    assert clue_budget(2) == (3, CLUE_NORMAL)
    assert clue_budget(9) == (10, CLUE_NORMAL)
    assert clue_budget(0) == (math.inf, CLUE_SPECIAL)
    assert clue_budget(UNLIMITED) == (math.inf, CLUE_SPECIAL)


def test_give_clue():
    """A clue opens guessing without touching the input state."""
    state = new_game()
    new_state = give_clue(state, BLUE, "animal", 2)

    assert new_state.current_clue.text == "animal"
    assert new_state.current_clue.number == 2
    assert new_state.current_clue.team == BLUE
    assert new_state.guesses_remaining == 3
    assert new_state.clue_type == CLUE_NORMAL
    assert new_state.can_guess is True
    assert new_state.version == state.version + 1
    assert game_phase(new_state) == PHASE_CLUE_ACTIVE

    assert state.current_clue is None
    assert state.can_guess is False
    assert game_phase(state) == PHASE_AWAITING_CLUE


def test_give_clue_special_numbers():
    """Zero and unlimited clues keep the displayed number but allow unbounded guesses."""
    state = new_game()
    zero = give_clue(state, BLUE, "nothing", 0)
    assert zero.current_clue.number == 0
    assert zero.guesses_remaining == math.inf
    assert zero.clue_type == CLUE_SPECIAL

    unlimited = give_clue(state, BLUE, "everything", UNLIMITED)
    assert unlimited.current_clue.number == math.inf
    assert unlimited.guesses_remaining == math.inf
    assert unlimited.clue_type == CLUE_SPECIAL


@pytest.mark.parametrize("text,number", [
    ("", 2),
    ("   ", 2),
    ("animal", 10),
    ("animal", -1),
    ("animal", 2.5),
    ("animal", True),
])
def test_give_clue_rejects_bad_input(text, number):
    """Empty text and numbers outside 0-9/unlimited are rejected."""
    with pytest.raises(InvalidClue):
        give_clue(new_game(), BLUE, text, number)


def test_give_clue_rejects_wrong_team():
    """Only the team on turn may receive a clue."""
    with pytest.raises(InvalidClue):
        give_clue(new_game(), RED, "animal", 2)


def test_give_clue_rejects_second_clue():
    """A clue cannot replace one that is still active."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    with pytest.raises(InvalidClue):
        give_clue(state, BLUE, "plant", 1)


def test_clue_of_two_allows_three_guesses():
    """Three correct guesses on a clue of 2 end the turn."""
    state = give_clue(new_game(), BLUE, "animal", 2)

    state = reveal_card(state, index_of(state, BLUE))
    assert state.current_turn == BLUE
    assert state.guesses_remaining == 2

    state = reveal_card(state, index_of(state, BLUE))
    assert state.current_turn == BLUE
    assert state.guesses_remaining == 1

    result = reveal_card_result(state, index_of(state, BLUE))
    state = result.state
    assert result.turn_ended is True
    assert result.correct is True
    assert state.current_turn == RED
    assert state.guesses_remaining == 0
    assert state.can_guess is False
    assert state.current_clue is None
    assert state.blue_cards_left == 6
    assert check_invariants(state) == []


def test_special_clue_keeps_guessing_open():
    """Correct guesses never exhaust an unlimited clue."""
    state = give_clue(new_game(), BLUE, "everything", UNLIMITED)
    for _ in range(5):
        state = reveal_card(state, index_of(state, BLUE))
    assert state.current_turn == BLUE
    assert state.can_guess is True
    assert state.guesses_remaining == math.inf


def test_neutral_ends_turn():
    """A neutral card passes the turn without changing scores."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    result = reveal_card_result(state, index_of(state, NEUTRAL))
    assert result.correct is False
    assert result.turn_ended is True
    assert result.state.current_turn == RED
    assert result.state.red_cards_left == 8
    assert result.state.blue_cards_left == 9


def test_opponent_card_scores_for_opponent_and_ends_turn():
    """Revealing the other team's card decrements their count and passes the turn."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    result = reveal_card_result(state, index_of(state, RED))
    assert result.correct is False
    assert result.state.red_cards_left == 7
    assert result.state.blue_cards_left == 9
    assert result.state.current_turn == RED
    assert check_invariants(result.state) == []


def test_assassin_loses_game():
    """The assassin ends the game in favor of the other team."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    state = reveal_card(state, index_of(state, ASSASSIN))
    assert state.game_over is True
    assert state.winner == RED
    assert state.can_guess is False
    assert game_phase(state) == PHASE_GAME_OVER


def test_revealing_last_own_card_wins():
    """Blue wins when its ninth card is revealed."""
    state = give_clue(new_game(), BLUE, "everything", UNLIMITED)
    for _ in range(9):
        state = reveal_card(state, index_of(state, BLUE))
    assert state.blue_cards_left == 0
    assert state.game_over is True
    assert state.winner == BLUE
    assert check_invariants(state) == []


def test_opponent_revealing_your_last_card_makes_you_win():
    """A team wins when its count reaches zero, whoever revealed the card."""
    state = new_game()
    red_indices = [i for i, card in enumerate(state.cards) if card.color == RED]
    for i in red_indices[:-1]:
        state.cards[i].revealed = True
    state.red_cards_left = 1
    state = give_clue(state, BLUE, "oops", 1)

    state = reveal_card(state, red_indices[-1])
    assert state.game_over is True
    assert state.winner == RED


def test_reveal_already_revealed_is_noop():
    """Revealing a face-up card returns the same state."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    state = reveal_card(state, index_of(state, BLUE))
    revealed_index = next(i for i, card in enumerate(state.cards) if card.revealed)

    result = reveal_card_result(state, revealed_index)
    assert result.changed is False
    assert result.state is state


def test_reveal_after_game_over_is_noop():
    """Nothing changes once the game is over."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    state = reveal_card(state, index_of(state, ASSASSIN))
    result = reveal_card_result(state, index_of(state, BLUE))
    assert result.changed is False
    assert result.state is state


@pytest.mark.parametrize("index", [-1, 25, 100, "3", None])
def test_reveal_rejects_bad_index(index):
    """Indices outside the board are invalid actions."""
    with pytest.raises(InvalidAction):
        reveal_card(new_game(), index)


def test_end_turn():
    """Ending the turn passes play and clears the clue."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    new_state = end_turn(state)
    assert new_state.current_turn == RED
    assert new_state.current_clue is None
    assert new_state.can_guess is False
    assert new_state.guesses_remaining == 0
    assert new_state.version == state.version + 1
    assert state.current_turn == BLUE


def test_end_turn_without_clue():
    """A turn can be ended before any clue is given."""
    state = end_turn(new_game())
    assert state.current_turn == RED


def test_end_turn_after_game_over():
    """A finished game is returned untouched."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    state = reveal_card(state, index_of(state, ASSASSIN))
    assert end_turn(state) is state


def test_invariants_hold_through_play():
    """Counts always match the unrevealed cards."""
    state = new_game(seed=11)
    for turn in range(6):
        state = give_clue(state, state.current_turn, f"clue{turn}", 1)
        for color in (state.current_turn, NEUTRAL):
            if state.game_over or not state.can_guess:
                break
            state = reveal_card(state, index_of(state, color))
            assert check_invariants(state) == []
        if not state.game_over and state.can_guess:
            state = end_turn(state)
        if state.game_over:
            break
    assert check_invariants(state) == []


def test_reset_game():
    """Reset deals a fresh board from the pool and bumps the version."""
    state = give_clue(new_game(), BLUE, "animal", 2)
    state = reveal_card(state, index_of(state, BLUE))

    result = reset_game(state, seed=5)
    new_state = result.state

    assert result.clear_player_assignments is True
    assert new_state.version == state.version + 1
    assert len(new_state.cards) == 25
    assert len({card.word for card in new_state.cards}) == 25
    assert all(card.word in POOL for card in new_state.cards)
    assert [card.word for card in new_state.cards] == result.words
    assert not any(card.revealed for card in new_state.cards)
    assert new_state.current_turn == BLUE
    assert new_state.current_clue is None
    assert new_state.red_cards_left == 8
    assert new_state.blue_cards_left == 9
    assert new_state.full_word_list == POOL
    assert check_invariants(new_state) == []


def test_reset_game_uses_new_pool():
    """A supplied pool replaces the stored one."""
    new_pool = [f"fresh{i}" for i in range(30)]
    result = reset_game(new_game(), new_pool, seed=2)
    assert all(card.word.startswith("fresh") for card in result.state.cards)
    assert result.state.full_word_list == new_pool


def test_reset_game_shuffles_words():
    """Different seeds pick different boards from the same pool."""
    boards = {tuple(reset_game(new_game(), seed=seed).words) for seed in range(20)}
    assert len(boards) > 1
    first_words = {board[0] for board in boards}
    assert len(first_words) > 1


def test_successive_resets_change_the_board():
    """Every reset deals a different word-to-color mapping than the one before."""
    state = new_game()
    for _ in range(50):
        previous = {card.word: card.color for card in state.cards}
        state = reset_game(state).state
        current = {card.word: card.color for card in state.cards}
        assert current != previous
        assert color_counts(state.cards) == {RED: 8, BLUE: 9, NEUTRAL: 7, ASSASSIN: 1}


def test_reset_colors_are_evenly_spread():
    """Over many resets each word lands on each color in proportion to the deck."""
    expected = {RED: 8 / 25, BLUE: 9 / 25, NEUTRAL: 7 / 25, ASSASSIN: 1 / 25}
    trials = 2000
    seen = {word: {color: 0 for color in expected} for word in WORDS}

    state = start_game(WORDS, WORDS, seed=0)
    for seed in range(1, trials + 1):
        state = reset_game(state, seed=seed).state
        for card in state.cards:
            seen[card.word][card.color] += 1

    for word, counts in seen.items():
        for color, share in expected.items():
            assert abs(counts[color] / trials - share) < 0.05, (word, color, counts)


def test_reset_game_without_pool():
    """Reset needs a word pool."""
    with pytest.raises(InvalidWordList):
        reset_game(None)
    with pytest.raises(InvalidWordList):
        reset_game(None, POOL[:10])
