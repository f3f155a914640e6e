"""Game constants and utilities"""

import math
from typing import Dict

# Teams
RED = 'red'
BLUE = 'blue'
TEAMS = (RED, BLUE)

# Card colors
NEUTRAL = 'neutral'
ASSASSIN = 'assassin'
LEGACY_ASSASSIN = 'black'  # older room documents use this for the assassin
COLORS = (RED, BLUE, NEUTRAL, ASSASSIN)

# Roles
ROLE_SPYMASTER = 'spymaster'
ROLE_OPERATIVE = 'operative'
ROLES = (ROLE_SPYMASTER, ROLE_OPERATIVE)

# Clue types
CLUE_NORMAL = 'normal'
CLUE_SPECIAL = 'special'

# Phases (derived from state, never stored)
PHASE_AWAITING_CLUE = 'awaiting_clue'
PHASE_CLUE_ACTIVE = 'clue_active'
PHASE_GAME_OVER = 'game_over'

# History action types
ACTION_CLUE = 'clue'
ACTION_GUESS = 'guess'

# Presence events
PRESENCE_SYNC = 'sync'
PRESENCE_JOIN = 'join'
PRESENCE_LEAVE = 'leave'
PRESENCE_EVENTS = (PRESENCE_SYNC, PRESENCE_JOIN, PRESENCE_LEAVE)

BOARD_SIZE = 25
COLOR_DISTRIBUTION: Dict[str, int] = {
    RED: 8,
    BLUE: 9,
    NEUTRAL: 7,
    ASSASSIN: 1,
}
STARTING_TEAM = BLUE  # blue holds the extra card

MAX_CLUE_NUMBER = 9
MAX_WORD_LENGTH = 30
USERNAME_PATTERN = r'^[a-zA-Z0-9_-]{2,20}$'

# "Unlimited" clue number and unbounded guess budget share one sentinel.
UNLIMITED = math.inf
INFINITY_TOKEN = 'Infinity'


def other_team(team: str) -> str:
    return BLUE if team == RED else RED


def normalize_color(color: str) -> str:
    if color == LEGACY_ASSASSIN:
        return ASSASSIN
    return color


def is_unlimited(value) -> bool:
    return isinstance(value, float) and math.isinf(value) and value > 0
