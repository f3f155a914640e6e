"""
Room store interface and an in-memory implementation.

The store is the single owner of every room's GameState. Sessions hold cached
copies and learn about changes through subscriptions.
"""

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .errors import NotFound, StaleWrite, WriteError
from .models import GameState, HistoryRecord, Player
from .serialization import (
    decode_state, deserialize_history_record, deserialize_player, encode_state,
    serialize_history_record, serialize_player,
)

logger = logging.getLogger(__name__)

# expected_version value meaning "the room must not have a game yet"
NO_STATE = -1

StateListener = Callable[[Optional[GameState]], Union[None, Awaitable[None]]]
PlayersListener = Callable[[List[Player]], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by the subscribe_* calls."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def unsubscribe(self):
        if self.active:
            self.active = False
            self._cancel()


async def _call_listener(listener: Callable, payload: Any, room_id: str):
    try:
        result = listener(payload)
        if inspect.isawaitable(result):
            await result
    except Exception:
        # A broken listener must not stop delivery to the others.
        logger.exception(f"Listener failed for room {room_id}")


class RoomStore(ABC):
    """Keyed document store for rooms, players and history."""

    @abstractmethod
    async def create_room(self, room_id: str) -> bool:
        """Create an empty room; returns False if it already existed."""

    @abstractmethod
    async def room_exists(self, room_id: str) -> bool:
        ...

    @abstractmethod
    async def read_room_state(self, room_id: str) -> Optional[GameState]:
        """Return the room's state (None before the first game). Raises NotFound."""

    @abstractmethod
    async def write_room_state(self, room_id: str, state: Optional[GameState],
                               expected_version: Optional[int] = None) -> Optional[GameState]:
        """
        Persist ``state``, or clear the room back to no game when it is None.
        When ``expected_version`` is given the write only succeeds if the
        stored version matches it (NO_STATE: no game stored).

        Raises:
            StaleWrite: On a version mismatch
            WriteError: If the store rejects the write
        """

    @abstractmethod
    def subscribe_room_state(self, room_id: str, on_change: StateListener) -> Subscription:
        ...

    @abstractmethod
    async def append_history(self, room_id: str, record: HistoryRecord) -> HistoryRecord:
        ...

    @abstractmethod
    async def read_history(self, room_id: str, limit: Optional[int] = None) -> List[HistoryRecord]:
        """Newest first."""

    @abstractmethod
    async def read_players(self, room_id: str) -> List[Player]:
        ...

    @abstractmethod
    async def upsert_player(self, room_id: str, player: Player) -> Player:
        ...

    @abstractmethod
    async def update_players(self, room_id: str, patch: Dict[str, Any],
                             usernames: Optional[List[str]] = None) -> List[Player]:
        """Apply ``patch`` to the named players (all players when None)."""

    @abstractmethod
    async def remove_player(self, room_id: str, username: str) -> None:
        ...

    @abstractmethod
    def subscribe_players(self, room_id: str, on_change: PlayersListener) -> Subscription:
        ...

    @abstractmethod
    async def commit_reset(self, room_id: str, state: GameState,
                           expected_version: Optional[int] = None) -> GameState:
        """
        Atomically store the new deck, clear the history and clear every
        player's team and role. Either all three happen or none.
        """


class InMemoryRoomStore(RoomStore):
    """
    Process-local RoomStore.

    Documents are kept in their serialized wire form so every read and write
    goes through the same codec a remote store would use.
    """

    PLAYER_FIELDS = {"team", "role", "online", "last_seen"}

    def __init__(self):
        self._rooms: Dict[str, Optional[bytes]] = {}
        self._players: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._history: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._sequence = 0
        self._state_listeners: Dict[str, List[StateListener]] = defaultdict(list)
        self._player_listeners: Dict[str, List[PlayersListener]] = defaultdict(list)
        self.room_locks = defaultdict(asyncio.Lock)
        # Fault injection
        self.fail_writes = False
        self.fail_history = False
        self.fail_player_updates = False
        self.write_count = 0

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def _require_room(self, room_id: str):
        if room_id not in self._rooms:
            raise NotFound(f"Room {room_id} not found")

    def _check_version(self, room_id: str, expected_version: Optional[int]):
        if expected_version is None:
            return
        current = decode_state(self._rooms.get(room_id))
        actual = current.version if current is not None else NO_STATE
        if actual != expected_version:
            raise StaleWrite(
                f"Room {room_id} is at version {actual}, expected {expected_version}",
                expected_version=expected_version,
                actual_version=actual,
            )

    async def create_room(self, room_id: str) -> bool:
        if room_id in self._rooms:
            return False
        self._rooms[room_id] = None
        logger.info(f"Created room {room_id}")
        return True

    async def room_exists(self, room_id: str) -> bool:
        return room_id in self._rooms

    async def read_room_state(self, room_id: str) -> Optional[GameState]:
        self._require_room(room_id)
        return decode_state(self._rooms[room_id])

    async def write_room_state(self, room_id: str, state: Optional[GameState],
                               expected_version: Optional[int] = None) -> Optional[GameState]:
        async with self.room_locks[room_id]:
            self._require_room(room_id)
            if self.fail_writes:
                raise WriteError(f"Store rejected write for room {room_id}")
            self._check_version(room_id, expected_version)
            payload = encode_state(state) if state is not None else None
            self._rooms[room_id] = payload
            self.write_count += 1
        await self._notify_state(room_id, payload)
        return decode_state(payload)

    def subscribe_room_state(self, room_id: str, on_change: StateListener) -> Subscription:
        listeners = self._state_listeners[room_id]
        listeners.append(on_change)

        def cancel():
            if on_change in listeners:
                listeners.remove(on_change)

        return Subscription(cancel)

    async def _notify_state(self, room_id: str, payload: Optional[bytes]):
        for listener in list(self._state_listeners.get(room_id, [])):
            # Each listener gets its own copy of the document.
            await _call_listener(listener, decode_state(payload), room_id)

    async def append_history(self, room_id: str, record: HistoryRecord) -> HistoryRecord:
        self._require_room(room_id)
        if self.fail_history:
            raise WriteError(f"Store rejected history entry for room {room_id}")
        self._sequence += 1
        record.sequence = self._sequence
        self._history[room_id].append(serialize_history_record(record))
        return record

    async def read_history(self, room_id: str, limit: Optional[int] = None) -> List[HistoryRecord]:
        records = [deserialize_history_record(doc) for doc in self._history.get(room_id, [])]
        records.sort(key=lambda record: (record.created_at, record.sequence), reverse=True)
        return records[:limit] if limit is not None else records

    async def read_players(self, room_id: str) -> List[Player]:
        return [deserialize_player(doc) for doc in self._players.get(room_id, {}).values()]

    async def upsert_player(self, room_id: str, player: Player) -> Player:
        self._require_room(room_id)
        if self.fail_player_updates:
            raise WriteError(f"Store rejected player update for room {room_id}")
        self._players[room_id][player.username] = serialize_player(player)
        await self._notify_players(room_id)
        return player

    async def update_players(self, room_id: str, patch: Dict[str, Any],
                             usernames: Optional[List[str]] = None) -> List[Player]:
        self._require_room(room_id)
        if self.fail_player_updates:
            raise WriteError(f"Store rejected player update for room {room_id}")
        unknown = set(patch) - self.PLAYER_FIELDS
        if unknown:
            raise WriteError(f"Cannot patch player fields {sorted(unknown)}")
        room_players = self._players[room_id]
        targets = room_players.keys() if usernames is None else [u for u in usernames if u in room_players]
        for username in list(targets):
            room_players[username].update(patch)
        await self._notify_players(room_id)
        return await self.read_players(room_id)

    async def remove_player(self, room_id: str, username: str) -> None:
        if self._players.get(room_id, {}).pop(username, None) is not None:
            await self._notify_players(room_id)

    def subscribe_players(self, room_id: str, on_change: PlayersListener) -> Subscription:
        listeners = self._player_listeners[room_id]
        listeners.append(on_change)

        def cancel():
            if on_change in listeners:
                listeners.remove(on_change)

        return Subscription(cancel)

    async def _notify_players(self, room_id: str):
        listeners = list(self._player_listeners.get(room_id, []))
        if not listeners:
            return
        players = await self.read_players(room_id)
        for listener in listeners:
            await _call_listener(listener, list(players), room_id)

    async def commit_reset(self, room_id: str, state: GameState,
                           expected_version: Optional[int] = None) -> GameState:
        async with self.room_locks[room_id]:
            self._require_room(room_id)
            if self.fail_writes or self.fail_player_updates:
                raise WriteError(f"Store rejected reset for room {room_id}")
            self._check_version(room_id, expected_version)
            payload = encode_state(state)
            # Nothing below can fail, so the three updates land together.
            self._rooms[room_id] = payload
            self._history.pop(room_id, None)
            now = time.time()
            for document in self._players[room_id].values():
                document.update({"team": None, "role": None, "last_seen": now})
            self.write_count += 1
        logger.info(f"Reset committed for room {room_id}")
        # Players first so listeners never pair the new deck with a stale role.
        await self._notify_players(room_id)
        await self._notify_state(room_id, payload)
        return decode_state(payload)
