"""
Pure validation for game and history actions.

Every check here is side-effect free so it can run before any store access.
"""

import re
from typing import Any, Iterable, Optional

from .constants import (
    ACTION_CLUE, ACTION_GUESS, MAX_CLUE_NUMBER, ROLE_SPYMASTER, ROLES, TEAMS,
    USERNAME_PATTERN, is_unlimited,
)
from .errors import (
    ACTION_NOT_ALLOWED, INVALID_ACTION, INVALID_CLUE, INVALID_INPUT, INVALID_WORD_LIST,
    raise_error,
)
from .models import GameState, Player
from .rules import RuleConfig, default_rules


class ValidationResult:
    """Result of a validation step."""

    def __init__(
        self,
        valid: bool,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        self.valid = valid
        self.error_code = error_code
        self.error_message = error_message

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        if self.valid:
            return "ValidationResult(valid=True)"
        return f"ValidationResult(valid=False, error_code={self.error_code!r}, error_message={self.error_message!r})"

    @classmethod
    def success(cls) -> 'ValidationResult':
        """Create a successful validation result."""
        return cls(valid=True)

    @classmethod
    def error(cls, error_code: str, error_message: str) -> 'ValidationResult':
        """Create an error validation result."""
        return cls(valid=False, error_code=error_code, error_message=error_message)

    def raise_for_error(self) -> None:
        """Raise the typed GameError matching this result, if invalid."""
        if not self.valid:
            raise_error(self.error_code, self.error_message)


def is_valid_clue_number(number: Any) -> bool:
    """A clue number is an int in [0, 9] or the unlimited sentinel."""
    if isinstance(number, bool):
        return False
    if is_unlimited(number):
        return True
    return isinstance(number, int) and 0 <= number <= MAX_CLUE_NUMBER


def validate_word_list(words, rules: Optional[RuleConfig] = None) -> ValidationResult:
    rules = rules or default_rules
    if words is None or isinstance(words, (str, bytes)):
        return ValidationResult.error(INVALID_WORD_LIST, "Invalid word list")
    words = list(words)
    if len(words) < rules.board_size:
        return ValidationResult.error(
            INVALID_WORD_LIST,
            f"Invalid word list: need at least {rules.board_size} words, got {len(words)}"
        )
    if not all(isinstance(word, str) and word.strip() for word in words[:rules.board_size]):
        return ValidationResult.error(INVALID_WORD_LIST, "Invalid word list: blank or non-string word")
    return ValidationResult.success()


def validate_clue_input(text: Any, number: Any) -> ValidationResult:
    """Check clue text and number without looking at any game state."""
    if not isinstance(text, str) or not text.strip():
        return ValidationResult.error(INVALID_CLUE, "Clue text cannot be empty")
    if not is_valid_clue_number(number):
        return ValidationResult.error(
            INVALID_CLUE, f"Clue number must be 0-{MAX_CLUE_NUMBER} or unlimited, got {number!r}"
        )
    return ValidationResult.success()


def validate_clue(state: Optional[GameState], team: str, text: str, number: Any) -> ValidationResult:
    """
    Validate a clue before it is applied.

    Args:
        state: Current game state
        team: Team giving the clue
        text: Clue word
        number: Clue number (0-9 or UNLIMITED)
    """
    result = validate_clue_input(text, number)
    if not result:
        return result
    if team not in TEAMS:
        return ValidationResult.error(INVALID_CLUE, f"Unknown team: {team!r}")
    if state is None:
        return ValidationResult.error(INVALID_CLUE, "No game in progress")
    if state.game_over:
        return ValidationResult.error(INVALID_CLUE, "Game is over")
    if team != state.current_turn:
        return ValidationResult.error(INVALID_CLUE, f"It is {state.current_turn}'s turn, not {team}'s")
    if state.can_guess and state.current_clue is not None:
        return ValidationResult.error(INVALID_CLUE, "A clue is already active for this turn")
    return ValidationResult.success()


def validate_reveal(state: Optional[GameState], card_index: Any, require_can_guess: bool = True) -> ValidationResult:
    """
    Validate a reveal request.

    Revealing an already revealed card, or any card once the game is over, is
    valid here: the transition treats both as a no-op.
    """
    if state is None:
        return ValidationResult.error(INVALID_ACTION, "No game in progress")
    if isinstance(card_index, bool) or not isinstance(card_index, int):
        return ValidationResult.error(INVALID_ACTION, f"Card index must be an integer, got {card_index!r}")
    if not 0 <= card_index < len(state.cards):
        return ValidationResult.error(INVALID_ACTION, f"Card index {card_index} out of range")
    if state.game_over or state.cards[card_index].revealed:
        return ValidationResult.success()
    if require_can_guess and not state.can_guess:
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Guessing is not open; wait for a clue")
    return ValidationResult.success()


def validate_history_action(action: Any) -> ValidationResult:
    """Check the shape of a history action ``{'type': ..., 'data': {...}}``."""
    if not isinstance(action, dict):
        return ValidationResult.error(INVALID_ACTION, "Action must be a mapping")
    action_type = action.get('type')
    data = action.get('data')
    if not action_type or not isinstance(data, dict):
        return ValidationResult.error(INVALID_ACTION, "Action requires a type and data")

    if action_type == ACTION_CLUE:
        clue = data.get('clue')
        if not isinstance(clue, str) or not clue.strip():
            return ValidationResult.error(INVALID_ACTION, "Clue action requires clue text")
        if not is_valid_clue_number(data.get('number')):
            return ValidationResult.error(INVALID_ACTION, f"Invalid clue number: {data.get('number')!r}")
        return ValidationResult.success()

    if action_type == ACTION_GUESS:
        word = data.get('word')
        if not isinstance(word, str) or not word:
            return ValidationResult.error(INVALID_ACTION, "Guess action requires a word")
        if not isinstance(data.get('correct'), bool):
            return ValidationResult.error(INVALID_ACTION, "Guess action requires a boolean 'correct'")
        return ValidationResult.success()

    return ValidationResult.error(INVALID_ACTION, f"Unknown action type: {action_type!r}")


def validate_username(username: Any) -> ValidationResult:
    if not isinstance(username, str) or not username.strip():
        return ValidationResult.error(INVALID_INPUT, "Username cannot be empty")
    if not re.match(USERNAME_PATTERN, username):
        return ValidationResult.error(
            INVALID_INPUT,
            "Username can only contain letters, numbers, underscores, and hyphens (2-20 characters)"
        )
    return ValidationResult.success()


def game_has_started(state: Optional[GameState]) -> bool:
    """A game counts as started once a clue was given or a card revealed."""
    if state is None:
        return False
    return (
        state.current_clue is not None
        or state.game_over
        or any(card.revealed for card in state.cards)
    )


def validate_team_role(
    state: Optional[GameState],
    players: Iterable[Player],
    username: str,
    team: Optional[str],
    role: Optional[str],
) -> ValidationResult:
    """Validate a team/role pick for ``username``."""
    if team is not None and team not in TEAMS:
        return ValidationResult.error(INVALID_INPUT, f"Unknown team: {team!r}")
    if role is not None and role not in ROLES:
        return ValidationResult.error(INVALID_INPUT, f"Unknown role: {role!r}")
    if game_has_started(state):
        return ValidationResult.error(ACTION_NOT_ALLOWED, "Cannot change team/role during active game")
    if role == ROLE_SPYMASTER:
        for player in players:
            if player.username != username and player.team == team and player.role == ROLE_SPYMASTER:
                return ValidationResult.error(ACTION_NOT_ALLOWED, f"{team} team already has a Spymaster")
    return ValidationResult.success()
