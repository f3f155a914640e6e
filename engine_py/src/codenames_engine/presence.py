"""
Presence tracking: who is online in a room, and on which team.

``PresenceHub`` is an in-process membership broadcast with the usual
sync/join/leave events. ``PresenceSynchronizer`` consumes that feed for one
player and keeps an eventually consistent ``PresenceSnapshot``.
"""

import asyncio
import copy
import inspect
import logging
import time
import uuid
from collections import defaultdict
from typing import Callable, Dict, List, Mapping, Optional

from .constants import PRESENCE_EVENTS, PRESENCE_JOIN, PRESENCE_LEAVE, PRESENCE_SYNC
from .errors import PresenceError, PresenceTimeout
from .models import PresenceEntry, PresencePlayer, PresenceSnapshot, Player
from .rules import SessionConfig, default_session_config

logger = logging.getLogger(__name__)

PresenceState = Dict[str, List[PresenceEntry]]


class PresenceChannel:
    """One client's handle on a room's membership feed."""

    def __init__(self, hub: 'PresenceHub', room_id: str):
        self.hub = hub
        self.room_id = room_id
        self.key = uuid.uuid4().hex
        self.subscribed = False
        self._handlers: Dict[str, List[Callable]] = {event: [] for event in PRESENCE_EVENTS}

    def on(self, event: str, handler: Callable) -> 'PresenceChannel':
        if event not in self._handlers:
            raise ValueError(f"Unknown presence event: {event}")
        self._handlers[event].append(handler)
        return self

    async def subscribe(self):
        await self.hub._subscribe(self)

    async def track(self, entry: PresenceEntry):
        if not self.subscribed:
            raise PresenceError(f"Channel for room {self.room_id} is not subscribed")
        await self.hub._track(self, entry)

    async def untrack(self):
        await self.hub._untrack(self)

    async def unsubscribe(self):
        await self.hub._unsubscribe(self)

    def presence_state(self) -> PresenceState:
        return self.hub.presence_state(self.room_id)

    async def _dispatch(self, event: str, payload):
        for handler in list(self._handlers[event]):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # One bad handler must not stop delivery to the rest.
                logger.exception(f"Presence {event} handler failed in room {self.room_id}")


class PresenceHub:
    """In-process membership broadcast keyed by room."""

    def __init__(self):
        self._channels: Dict[str, Dict[str, PresenceChannel]] = defaultdict(dict)
        self._state: Dict[str, Dict[str, PresenceEntry]] = defaultdict(dict)
        # Fault injection for the subscribe handshake
        self.fail_handshake = False
        self.stall_handshake = False

    def join_channel(self, room_id: str) -> PresenceChannel:
        return PresenceChannel(self, room_id)

    def presence_state(self, room_id: str) -> PresenceState:
        state: PresenceState = {}
        for key, entry in self._state.get(room_id, {}).items():
            state[key] = [copy.copy(entry)]
        return state

    async def _subscribe(self, channel: PresenceChannel):
        if self.stall_handshake:
            await asyncio.Event().wait()
        if self.fail_handshake:
            raise ConnectionError(f"Channel subscription failed for room {channel.room_id}")
        self._channels[channel.room_id][channel.key] = channel
        channel.subscribed = True
        await channel._dispatch(PRESENCE_SYNC, self.presence_state(channel.room_id))

    async def _unsubscribe(self, channel: PresenceChannel):
        if channel.key in self._state.get(channel.room_id, {}):
            await self._untrack(channel)
        self._channels.get(channel.room_id, {}).pop(channel.key, None)
        channel.subscribed = False

    async def _track(self, channel: PresenceChannel, entry: PresenceEntry):
        self._state[channel.room_id][channel.key] = copy.copy(entry)
        await self._broadcast(channel.room_id, PRESENCE_JOIN, [copy.copy(entry)])
        await self._broadcast(channel.room_id, PRESENCE_SYNC, None)

    async def _untrack(self, channel: PresenceChannel):
        entry = self._state.get(channel.room_id, {}).pop(channel.key, None)
        if entry is None:
            return
        await self._broadcast(channel.room_id, PRESENCE_LEAVE, [entry])
        await self._broadcast(channel.room_id, PRESENCE_SYNC, None)

    async def evict_stale(self, room_id: str, max_age: float, now: Optional[float] = None) -> List[PresenceEntry]:
        """Drop entries not re-announced within ``max_age`` seconds."""
        now = time.time() if now is None else now
        room_state = self._state.get(room_id, {})
        stale_keys = [key for key, entry in room_state.items() if now - entry.online_at > max_age]
        evicted = [room_state.pop(key) for key in stale_keys]
        if evicted:
            logger.info(f"Evicted {len(evicted)} stale presence entries from room {room_id}")
            await self._broadcast(room_id, PRESENCE_LEAVE, evicted)
            await self._broadcast(room_id, PRESENCE_SYNC, None)
        return evicted

    async def _broadcast(self, room_id: str, event: str, payload):
        for channel in list(self._channels.get(room_id, {}).values()):
            if event == PRESENCE_SYNC:
                await channel._dispatch(event, self.presence_state(room_id))
            else:
                await channel._dispatch(event, [copy.copy(entry) for entry in payload])


PlayersProvider = Callable[[], Mapping[str, Player]]


class PresenceSynchronizer:
    """
    Keeps one player's view of who is online in a room.

    Team and role in the snapshot come from the feed when it carries them,
    then from the persisted player records, then from what was known before.
    Leave events only flip ``online``; they never touch team or role.
    """

    def __init__(
        self,
        hub: PresenceHub,
        room_id: str,
        username: str,
        config: Optional[SessionConfig] = None,
        players_provider: Optional[PlayersProvider] = None,
        on_change: Optional[Callable[[PresenceSnapshot], None]] = None,
    ):
        self.hub = hub
        self.room_id = room_id
        self.username = username
        self.config = config or default_session_config
        self.players_provider = players_provider or dict
        self.on_change = on_change
        self.team: Optional[str] = None
        self.role: Optional[str] = None
        self.is_connected = False
        self._snapshot = PresenceSnapshot(room_id=room_id)
        self._channel: Optional[PresenceChannel] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._channel is not None

    async def start(self, team: Optional[str] = None, role: Optional[str] = None):
        """
        Join the room's channel, announce the local player and start the heartbeat.

        Raises:
            PresenceTimeout: If the subscribe handshake does not finish in time
            PresenceError: If the channel refuses the subscription
        """
        if self.running:
            await self.stop()
        self.team, self.role = team, role

        channel = self.hub.join_channel(self.room_id)
        channel.on(PRESENCE_SYNC, self._on_sync)
        channel.on(PRESENCE_JOIN, self._on_join)
        channel.on(PRESENCE_LEAVE, self._on_leave)

        try:
            await asyncio.wait_for(channel.subscribe(), timeout=self.config.presence_timeout)
        except asyncio.TimeoutError:
            await channel.unsubscribe()
            logger.error(f"Presence subscription timed out for room {self.room_id}")
            raise PresenceTimeout(
                f"Presence subscription for room {self.room_id} timed out after {self.config.presence_timeout}s"
            )
        except ConnectionError as e:
            await channel.unsubscribe()
            raise PresenceError(str(e))

        self._channel = channel
        await self._announce()
        self._heartbeat_task = asyncio.create_task(self._heartbeat())
        logger.info(f"Presence started for {self.username} in room {self.room_id}")

    async def stop(self):
        """Cancel the heartbeat and leave the channel."""
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.untrack()
            await channel.unsubscribe()
        self.is_connected = False

    async def announce(self, team: Optional[str], role: Optional[str]):
        """Publish a new team/role for the local player."""
        self.team, self.role = team, role
        if self.running:
            await self._announce()

    async def _announce(self):
        await self._channel.track(PresenceEntry(
            username=self.username,
            team=self.team,
            role=self.role,
            online_at=time.time(),
        ))

    async def _heartbeat(self):
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            if self._channel is None:
                return
            try:
                await self._announce()
            except Exception:
                logger.exception(f"Error tracking presence for {self.username}")

    def snapshot(self) -> PresenceSnapshot:
        return copy.deepcopy(self._snapshot)

    def _merge(self, entry: PresenceEntry, persisted: Mapping[str, Player]) -> PresencePlayer:
        previous = self._snapshot.players.get(entry.username)
        record = persisted.get(entry.username)
        team, role = entry.team, entry.role
        if team is None:
            team = record.team if record is not None else (previous.team if previous else None)
        if role is None:
            role = record.role if record is not None else (previous.role if previous else None)
        return PresencePlayer(
            username=entry.username,
            team=team,
            role=role,
            online=True,
            online_at=entry.online_at,
        )

    def _touch(self):
        self._snapshot.last_update = time.time()
        self.is_connected = self._snapshot.is_online(self.username)
        if self.on_change is not None:
            self.on_change(self.snapshot())

    def _on_sync(self, state: PresenceState):
        persisted = self.players_provider()
        online: Dict[str, PresencePlayer] = {}
        for entries in state.values():
            for entry in entries:
                online[entry.username] = self._merge(entry, persisted)

        players: Dict[str, PresencePlayer] = {}
        for name, known in self._snapshot.players.items():
            if name not in online:
                players[name] = PresencePlayer(
                    username=name, team=known.team, role=known.role,
                    online=False, online_at=known.online_at,
                )
        players.update(online)
        self._snapshot.players = players
        self._touch()

    def _on_join(self, new_presences: List[PresenceEntry]):
        persisted = self.players_provider()
        for entry in new_presences:
            self._snapshot.players[entry.username] = self._merge(entry, persisted)
        self._touch()

    def _on_leave(self, left_presences: List[PresenceEntry]):
        still_online = {
            entry.username
            for entries in self.hub.presence_state(self.room_id).values()
            for entry in entries
        }
        for entry in left_presences:
            player = self._snapshot.players.get(entry.username)
            if player is not None and entry.username not in still_online:
                player.online = False
        self._touch()
