"""
Codenames game state machine.

Every transition takes a GameState and returns a new one; the input is never
mutated. Persisting the result is the caller's job.
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from .constants import (
    ASSASSIN, CLUE_NORMAL, CLUE_SPECIAL, NEUTRAL, PHASE_AWAITING_CLUE, PHASE_CLUE_ACTIVE,
    PHASE_GAME_OVER, RED, BLUE, STARTING_TEAM, TEAMS, is_unlimited, other_team,
)
from .errors import InvalidWordList
from .models import Card, Clue, ClueNumber, GameState
from .rules import RuleConfig, default_rules
from .shuffle import build_deck, make_rng, parse_word_pool, pick_board_words
from .validate import validate_clue, validate_reveal, validate_word_list

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of a transition, with what the caller needs for logging."""
    state: Optional[GameState]
    changed: bool = True
    turn_ended: bool = False
    card: Optional[Card] = None
    correct: Optional[bool] = None


@dataclass
class ResetResult:
    state: GameState
    # Player team/role assignments must be cleared alongside the new deck.
    clear_player_assignments: bool = True
    words: List[str] = field(default_factory=list)


def clue_budget(number: ClueNumber) -> Tuple[Union[int, float], str]:
    """
    Map a clue number to (guesses allowed, clue type).

    0 and unlimited clues allow unbounded guessing; any other number allows
    one guess beyond the number given.
    """
    if number == 0 or is_unlimited(number):
        return math.inf, CLUE_SPECIAL
    return number + 1, CLUE_NORMAL


def game_phase(state: GameState) -> str:
    if state.game_over:
        return PHASE_GAME_OVER
    if state.can_guess and state.current_clue is not None:
        return PHASE_CLUE_ACTIVE
    return PHASE_AWAITING_CLUE


def start_game(words: Sequence[str],
               full_word_list,
               rules: Optional[RuleConfig] = None,
               seed: Optional[int] = None,
               version: int = 0) -> GameState:
    """
    Deal a fresh board.

    Args:
        words: Board words; the first 25 are used
        full_word_list: Complete word pool kept for later resets
        rules: Board composition
        seed: Optional seed for a deterministic deal
        version: Sequence number the new state starts at

    Raises:
        InvalidWordList: If fewer than 25 words are given or the pool is missing
    """
    rules = rules or default_rules
    validate_word_list(words, rules).raise_for_error()
    if not full_word_list:
        raise InvalidWordList("Full word list is required")

    cards = build_deck(words, rules, make_rng(seed))
    return GameState(
        cards=cards,
        current_turn=STARTING_TEAM,
        red_cards_left=rules.color_distribution[RED],
        blue_cards_left=rules.color_distribution[BLUE],
        full_word_list=parse_word_pool(full_word_list, rules.max_word_length),
        version=version,
    )


def give_clue(state: GameState, team: str, text: str, number: ClueNumber) -> GameState:
    """
    Apply a spymaster's clue and open guessing.

    Raises:
        InvalidClue: If the text is empty, the number is outside 0-9/unlimited,
            the team is not on turn, or a clue is already active
    """
    validate_clue(state, team, text, number).raise_for_error()

    guesses, clue_type = clue_budget(number)
    new_state = copy.deepcopy(state)
    new_state.current_clue = Clue(text=text.strip(), number=number, team=team)
    new_state.guesses_remaining = guesses
    new_state.clue_type = clue_type
    new_state.can_guess = True
    new_state.increment_version()
    return new_state


def _finish_turn(state: GameState) -> None:
    state.current_turn = other_team(state.current_turn)
    state.current_clue = None
    state.guesses_remaining = 0
    state.can_guess = False
    state.clue_type = CLUE_NORMAL


def check_game_end(state: GameState) -> GameState:
    """Mark the game over once a team has no cards left. Mutates ``state``."""
    if state.game_over:
        return state
    for team in TEAMS:
        if state.cards_left(team) == 0:
            state.game_over = True
            state.winner = team
            state.can_guess = False
            state.guesses_remaining = 0
            logger.debug(f"{team} revealed their last card and wins")
            break
    return state


def reveal_card_result(state: GameState, card_index: int) -> TransitionResult:
    """
    Reveal a card and resolve its effect.

    Revealing a card that is already face up, or any card after the game
    ended, returns the state unchanged.

    Raises:
        InvalidAction: If card_index is not a valid board position
    """
    validate_reveal(state, card_index, require_can_guess=False).raise_for_error()
    if state.game_over or state.cards[card_index].revealed:
        return TransitionResult(state=state, changed=False)

    new_state = copy.deepcopy(state)
    card = new_state.cards[card_index]
    card.revealed = True
    guessing_team = new_state.current_turn
    turn_ended = False

    if card.color == ASSASSIN:
        new_state.game_over = True
        new_state.winner = other_team(guessing_team)
        new_state.can_guess = False
        new_state.guesses_remaining = 0
    elif card.color in TEAMS:
        new_state.set_cards_left(card.color, new_state.cards_left(card.color) - 1)
        if card.color != guessing_team:
            _finish_turn(new_state)
            turn_ended = True
        elif new_state.clue_type != CLUE_SPECIAL:
            new_state.guesses_remaining = max(0, new_state.guesses_remaining - 1)
            if new_state.guesses_remaining <= 0:
                _finish_turn(new_state)
                turn_ended = True
    elif card.color == NEUTRAL:
        _finish_turn(new_state)
        turn_ended = True

    check_game_end(new_state)
    new_state.increment_version()
    return TransitionResult(
        state=new_state,
        changed=True,
        turn_ended=turn_ended and not new_state.game_over,
        card=copy.copy(card),
        correct=card.color == guessing_team,
    )


def reveal_card(state: GameState, card_index: int) -> GameState:
    return reveal_card_result(state, card_index).state


def end_turn(state: GameState) -> GameState:
    """Pass the turn to the other team. Always legal; a finished game is left as is."""
    if state.game_over:
        return state
    new_state = copy.deepcopy(state)
    _finish_turn(new_state)
    new_state.increment_version()
    return new_state


def reset_game(state: Optional[GameState],
               full_word_list=None,
               rules: Optional[RuleConfig] = None,
               seed: Optional[int] = None) -> ResetResult:
    """
    Deal a new board from the word pool and clear all progress.

    Args:
        state: Current state (its word pool is reused when none is given)
        full_word_list: Optional replacement word pool
        rules: Board composition
        seed: Optional seed for a deterministic deal

    Returns:
        ResetResult whose clear_player_assignments flag tells the caller to
        drop every player's team and role

    Raises:
        InvalidWordList: If no pool is available or it is too small
    """
    rules = rules or default_rules
    pool = full_word_list if full_word_list else (state.full_word_list if state else None)
    if not pool:
        raise InvalidWordList("No word pool available for reset")

    rng = make_rng(seed)
    words = pick_board_words(pool, rules, rng)
    new_state = GameState(
        cards=build_deck(words, rules, rng),
        current_turn=STARTING_TEAM,
        red_cards_left=rules.color_distribution[RED],
        blue_cards_left=rules.color_distribution[BLUE],
        full_word_list=parse_word_pool(pool, rules.max_word_length),
        version=(state.version + 1) if state else 0,
    )
    return ResetResult(state=new_state, clear_player_assignments=True, words=words)


def check_invariants(state: GameState) -> List[str]:
    """Return a list of violated invariants (empty when the state is sound)."""
    problems = []
    for team in TEAMS:
        if state.cards_left(team) != state.unrevealed_count(team):
            problems.append(
                f"{team}_cards_left={state.cards_left(team)} but {state.unrevealed_count(team)} unrevealed"
            )
    if state.winner is not None and not state.game_over:
        problems.append("winner set while game is not over")
    if not is_unlimited(state.guesses_remaining) and state.guesses_remaining < 0:
        problems.append("guesses_remaining is negative")
    if state.current_turn not in TEAMS:
        problems.append(f"unknown current_turn {state.current_turn!r}")
    return problems
