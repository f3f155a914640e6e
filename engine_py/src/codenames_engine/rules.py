"""
Game rule and session configuration.
"""

import os
from typing import Dict

from pydantic import BaseModel, Field, field_validator

from .constants import (
    ASSASSIN, BLUE, BOARD_SIZE, COLOR_DISTRIBUTION, MAX_WORD_LENGTH, NEUTRAL, RED,
)


class RuleConfig(BaseModel):
    """Configuration for board composition and logging limits."""

    board_size: int = Field(
        default=BOARD_SIZE,
        ge=1,
        description="Number of cards dealt onto the board"
    )
    color_distribution: Dict[str, int] = Field(
        default_factory=lambda: dict(COLOR_DISTRIBUTION),
        description="Card count per color; must sum to board_size"
    )
    max_word_length: int = Field(
        default=MAX_WORD_LENGTH,
        ge=1,
        description="Words longer than this are dropped from the pool"
    )
    history_page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Number of history entries returned by default"
    )

    @field_validator('color_distribution')
    @classmethod
    def validate_color_distribution(cls, v, info):
        """Validate the distribution covers every color and fills the board."""
        missing = {RED, BLUE, NEUTRAL, ASSASSIN} - set(v)
        if missing:
            raise ValueError(f'color_distribution is missing {sorted(missing)}')
        if any(count < 0 for count in v.values()):
            raise ValueError('color_distribution counts must be non-negative')
        board_size = info.data.get('board_size', BOARD_SIZE)
        if sum(v.values()) != board_size:
            raise ValueError(
                f'color_distribution sums to {sum(v.values())}, expected board_size ({board_size})'
            )
        return v

    def color_pool(self) -> list:
        """Flat list of colors, one entry per card, in a fixed order."""
        pool = []
        for color in (RED, BLUE, NEUTRAL, ASSASSIN):
            pool.extend([color] * self.color_distribution[color])
        return pool


class SessionConfig(BaseModel):
    """Timing and retry settings for a room session."""

    heartbeat_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between presence re-announcements"
    )
    presence_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds allowed for the presence subscribe handshake"
    )
    max_write_retries: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Retries of a transition after a stale write"
    )


# Default configuration instances
default_rules = RuleConfig()
default_session_config = SessionConfig()


def create_rules(**overrides) -> RuleConfig:
    """Create a RuleConfig with optional overrides."""
    config_dict = default_rules.model_dump()
    config_dict.update(overrides)
    return RuleConfig(**config_dict)


def config_from_env(environ=None) -> SessionConfig:
    """Build a SessionConfig from CODENAMES_* environment variables."""
    environ = os.environ if environ is None else environ
    values = {}
    if environ.get("CODENAMES_HEARTBEAT_INTERVAL"):
        values["heartbeat_interval"] = float(environ["CODENAMES_HEARTBEAT_INTERVAL"])
    if environ.get("CODENAMES_PRESENCE_TIMEOUT"):
        values["presence_timeout"] = float(environ["CODENAMES_PRESENCE_TIMEOUT"])
    if environ.get("CODENAMES_MAX_WRITE_RETRIES"):
        values["max_write_retries"] = int(environ["CODENAMES_MAX_WRITE_RETRIES"])
    return SessionConfig(**values)
