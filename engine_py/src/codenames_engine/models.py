"""Game models and data structures"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .constants import (
    BLUE, CLUE_NORMAL, COLOR_DISTRIBUTION, RED, STARTING_TEAM,
)

# An int in [0, 9] or UNLIMITED (math.inf)
ClueNumber = Union[int, float]


@dataclass
class Card:
    word: str
    color: str  # red|blue|neutral|assassin
    revealed: bool = False


@dataclass
class Clue:
    text: str
    number: ClueNumber  # display number, not the guess budget
    team: Optional[str] = None


@dataclass
class GameState:
    cards: List[Card] = field(default_factory=list)
    current_turn: str = STARTING_TEAM
    red_cards_left: int = COLOR_DISTRIBUTION[RED]
    blue_cards_left: int = COLOR_DISTRIBUTION[BLUE]
    game_over: bool = False
    winner: Optional[str] = None
    current_clue: Optional[Clue] = None
    guesses_remaining: Union[int, float] = 0
    can_guess: bool = False
    clue_type: str = CLUE_NORMAL
    full_word_list: List[str] = field(default_factory=list)
    version: int = 0

    def cards_left(self, team: str) -> int:
        return self.red_cards_left if team == RED else self.blue_cards_left

    def set_cards_left(self, team: str, value: int):
        if team == RED:
            self.red_cards_left = value
        else:
            self.blue_cards_left = value

    def unrevealed_count(self, color: str) -> int:
        return sum(1 for card in self.cards if card.color == color and not card.revealed)

    def increment_version(self):
        self.version += 1


@dataclass
class Player:
    username: str
    team: Optional[str] = None  # red|blue
    role: Optional[str] = None  # spymaster|operative
    online: bool = True
    last_seen: float = field(default_factory=time.time)


@dataclass
class HistoryRecord:
    room_id: str
    action_type: str  # clue|guess
    action_data: Dict[str, Any]
    created_at: float = field(default_factory=time.time)
    sequence: int = 0


@dataclass
class PresenceEntry:
    """One record on the live membership feed."""
    username: str
    team: Optional[str] = None
    role: Optional[str] = None
    online_at: float = field(default_factory=time.time)


@dataclass
class PresencePlayer:
    username: str
    team: Optional[str] = None
    role: Optional[str] = None
    online: bool = False
    online_at: Optional[float] = None


@dataclass
class PresenceSnapshot:
    room_id: str
    players: Dict[str, PresencePlayer] = field(default_factory=dict)
    last_update: Optional[float] = None

    @property
    def online(self) -> List[str]:
        return sorted(name for name, player in self.players.items() if player.online)

    def is_online(self, username: str) -> bool:
        player = self.players.get(username)
        return bool(player and player.online)
