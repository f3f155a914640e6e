"""
Append-only log of clue and guess actions.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from .models import HistoryRecord
from .rules import RuleConfig, default_rules
from .store import RoomStore
from .validate import validate_history_action

logger = logging.getLogger(__name__)


class HistoryLogWriter:
    def __init__(self, store: RoomStore, rules: Optional[RuleConfig] = None):
        self.store = store
        self.rules = rules or default_rules

    async def record(self, room_id: str, action: Dict[str, Any]) -> HistoryRecord:
        """
        Validate and append an action.

        Args:
            room_id: Room the action belongs to
            action: ``{'type': 'clue'|'guess', 'data': {...}}``

        Raises:
            InvalidAction: If the action is malformed (nothing is written)
            WriteError: If the store rejects the entry
        """
        validate_history_action(action).raise_for_error()
        record = HistoryRecord(
            room_id=room_id,
            action_type=action['type'],
            action_data=dict(action['data']),
            created_at=time.time(),
        )
        try:
            return await self.store.append_history(room_id, record)
        except Exception:
            logger.error(f"Error adding {record.action_type} to history for room {room_id}")
            raise

    async def entries(self, room_id: str, limit: Optional[int] = None) -> List[HistoryRecord]:
        """Most recent entries first."""
        if limit is None:
            limit = self.rules.history_page_size
        return await self.store.read_history(room_id, limit)

