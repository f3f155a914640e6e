"""
Room session coordinator.

A RoomSession is created when a player joins a room and torn down when they
leave. It owns the store subscriptions, the presence synchronizer and its
heartbeat, so nothing outlives the session.

Every mutating action follows the same path: pure validation, then
read -> transition -> conditional write. The local view only changes once the
store accepted the write; store notifications (ours included) then overwrite
it with the authoritative copy.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import engine
from .constants import ACTION_CLUE, ACTION_GUESS
from .engine import TransitionResult
from .errors import ActionNotAllowed, GameError, NotFound, PresenceError, StaleWrite
from .history import HistoryLogWriter
from .models import ClueNumber, GameState, HistoryRecord, Player, PresenceSnapshot
from .presence import PresenceHub, PresenceSynchronizer
from .rules import RuleConfig, SessionConfig, default_rules, default_session_config
from .store import NO_STATE, RoomStore
from .validate import (
    validate_clue_input, validate_reveal, validate_team_role, validate_username,
    validate_word_list,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[Optional[GameState]], None]
PresenceCallback = Callable[[PresenceSnapshot], None]


class RoomSession:
    def __init__(
        self,
        store: RoomStore,
        hub: PresenceHub,
        room_id: str,
        username: str,
        config: Optional[SessionConfig] = None,
        rules: Optional[RuleConfig] = None,
    ):
        self.store = store
        self.hub = hub
        self.room_id = room_id
        self.username = username
        self.config = config or default_session_config
        self.rules = rules or default_rules
        self.history = HistoryLogWriter(store, self.rules)
        self.presence = PresenceSynchronizer(
            hub,
            room_id,
            username,
            config=self.config,
            players_provider=lambda: self._players,
            on_change=self._emit_presence,
        )
        self.joined = False
        self._state: Optional[GameState] = None
        self._players: Dict[str, Player] = {}
        self._state_listeners: List[StateCallback] = []
        self._presence_listeners: List[PresenceCallback] = []
        self._state_subscription = None
        self._players_subscription = None

    # ------------------------------------------------------------------
    # Read side

    @property
    def state(self) -> Optional[GameState]:
        """Cached copy of the room's state; may lag the store briefly."""
        return self._state

    @property
    def player(self) -> Optional[Player]:
        return self._players.get(self.username)

    @property
    def players(self) -> List[Player]:
        return list(self._players.values())

    def presence_snapshot(self) -> PresenceSnapshot:
        return self.presence.snapshot()

    async def history_entries(self, limit: Optional[int] = None) -> List[HistoryRecord]:
        return await self.history.entries(self.room_id, limit)

    def on_update(self, callback: StateCallback) -> Callable[[], None]:
        """Register for state updates. Returns a function that unregisters."""
        self._state_listeners.append(callback)

        def unsubscribe():
            if callback in self._state_listeners:
                self._state_listeners.remove(callback)

        return unsubscribe

    def on_presence(self, callback: PresenceCallback) -> Callable[[], None]:
        self._presence_listeners.append(callback)

        def unsubscribe():
            if callback in self._presence_listeners:
                self._presence_listeners.remove(callback)

        return unsubscribe

    def _emit_state(self):
        for callback in list(self._state_listeners):
            try:
                callback(self._state)
            except Exception:
                logger.exception(f"State listener failed in room {self.room_id}")

    def _emit_presence(self, snapshot: PresenceSnapshot):
        for callback in list(self._presence_listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Presence listener failed in room {self.room_id}")

    def _reflect(self, state: Optional[GameState]):
        # The committer hears its own write from the store and from _commit.
        unchanged = state == self._state
        self._state = state
        if not unchanged:
            self._emit_state()

    # ------------------------------------------------------------------
    # Lifecycle

    async def join(self) -> Optional[GameState]:
        """
        Enter the room: register the player, load the state, subscribe to
        changes and start presence.

        Raises:
            InvalidInput: If the username is malformed
            PresenceTimeout: If the presence handshake times out
        """
        validate_username(self.username).raise_for_error()
        if await self.store.create_room(self.room_id):
            logger.info(f"Room {self.room_id} did not exist and was created")

        existing = {p.username: p for p in await self.store.read_players(self.room_id)}
        previous = existing.get(self.username)
        player = Player(
            username=self.username,
            team=previous.team if previous else None,
            role=previous.role if previous else None,
            online=True,
            last_seen=time.time(),
        )
        await self.store.upsert_player(self.room_id, player)
        self._players = {p.username: p for p in await self.store.read_players(self.room_id)}

        self._state_subscription = self.store.subscribe_room_state(self.room_id, self._on_remote_state)
        self._players_subscription = self.store.subscribe_players(self.room_id, self._on_remote_players)
        self._reflect(await self.store.read_room_state(self.room_id))

        try:
            await self.presence.start(player.team, player.role)
        except PresenceError:
            await self._teardown()
            raise

        self.joined = True
        logger.info(f"{self.username} joined room {self.room_id}")
        return self._state

    async def reconnect(self) -> Optional[GameState]:
        """Tear everything down and join again with the same username."""
        logger.info(f"{self.username} reconnecting to room {self.room_id}")
        await self._teardown()
        return await self.join()

    async def leave(self):
        """Stop presence, drop subscriptions and delete the player record."""
        await self._teardown()
        await self.store.remove_player(self.room_id, self.username)
        self._players.pop(self.username, None)
        logger.info(f"{self.username} left room {self.room_id}")

    async def disconnect(self):
        """
        Drop the connection but keep the player record, marked offline, so a
        later join restores the same team and role.
        """
        await self._teardown()
        try:
            await self.store.update_players(
                self.room_id,
                {"online": False, "last_seen": time.time()},
                usernames=[self.username],
            )
        except GameError as e:
            logger.warning(f"Could not mark {self.username} offline in room {self.room_id}: {e.message}")
        logger.info(f"{self.username} disconnected from room {self.room_id}")

    async def _teardown(self):
        await self.presence.stop()
        for subscription in (self._state_subscription, self._players_subscription):
            if subscription is not None:
                subscription.unsubscribe()
        self._state_subscription = None
        self._players_subscription = None
        self.joined = False

    def _require_joined(self):
        if not self.joined:
            raise ActionNotAllowed(f"{self.username} has not joined room {self.room_id}")

    # ------------------------------------------------------------------
    # Store notifications

    def _on_remote_state(self, state: Optional[GameState]):
        # Last write observed wins; no merging with the local copy.
        self._reflect(state)

    async def _on_remote_players(self, players: List[Player]):
        self._players = {p.username: p for p in players}
        me = self._players.get(self.username)
        if me is None or not self.presence.running:
            return
        if (me.team, me.role) != (self.presence.team, self.presence.role):
            await self.presence.announce(me.team, me.role)

    # ------------------------------------------------------------------
    # Commit path

    async def _commit(self, transition: Callable[[Optional[GameState]], TransitionResult],
                      writer: Optional[Callable] = None) -> TransitionResult:
        """
        Read the authoritative state, apply ``transition`` and write the result
        conditioned on the version read. Retries on StaleWrite.
        """
        writer = writer or self.store.write_room_state
        attempts = self.config.max_write_retries + 1
        for attempt in range(1, attempts + 1):
            current = await self.store.read_room_state(self.room_id)
            result = transition(current)
            if not result.changed:
                self._reflect(current)
                return result
            expected = current.version if current is not None else NO_STATE
            try:
                committed = await writer(self.room_id, result.state, expected_version=expected)
            except StaleWrite as e:
                logger.warning(
                    f"Stale write in room {self.room_id} (attempt {attempt}/{attempts}): {e.message}"
                )
                continue
            result.state = committed
            self._reflect(committed)
            return result
        raise StaleWrite(
            f"Room {self.room_id} kept changing; gave up after {attempts} attempts"
        )

    # ------------------------------------------------------------------
    # Game actions

    async def start_game(self, words: Sequence[str], full_word_list) -> GameState:
        self._require_joined()
        validate_word_list(words, self.rules).raise_for_error()

        def transition(current):
            version = current.version + 1 if current is not None else 0
            return TransitionResult(
                state=engine.start_game(words, full_word_list, self.rules, version=version)
            )

        result = await self._commit(transition)
        logger.info(f"Game started in room {self.room_id}")
        return result.state

    async def give_clue(self, text: str, number: ClueNumber, team: Optional[str] = None) -> GameState:
        """
        Submit a clue for the team on turn (or ``team`` when given).

        The clue is logged to history after the state is committed.
        """
        self._require_joined()
        validate_clue_input(text, number).raise_for_error()
        before = self._state

        def transition(current):
            if current is None:
                raise NotFound(f"No game in progress in room {self.room_id}")
            clue_team = team or current.current_turn
            return TransitionResult(state=engine.give_clue(current, clue_team, text, number))

        try:
            result = await self._commit(transition)
        except Exception:
            logger.error(f"Error setting clue in room {self.room_id}")
            # Local state only moves on notifications, which are newer; keep them.
            if self._state is before:
                self._emit_state()
            raise

        clue = result.state.current_clue
        await self._record(ACTION_CLUE, {"team": clue.team, "clue": clue.text, "number": clue.number})
        return result.state

    async def reveal_card(self, card_index: int) -> GameState:
        self._require_joined()
        guessing = {}

        def transition(current):
            validate_reveal(current, card_index).raise_for_error()
            guessing["team"] = current.current_turn
            return engine.reveal_card_result(current, card_index)

        result = await self._commit(transition)
        if result.changed:
            await self._record(ACTION_GUESS, {
                "team": guessing["team"],
                "word": result.card.word,
                "color": result.card.color,
                "correct": bool(result.correct),
            })
        return result.state

    async def end_turn(self) -> GameState:
        self._require_joined()

        def transition(current):
            if current is None:
                raise NotFound(f"No game in progress in room {self.room_id}")
            new_state = engine.end_turn(current)
            return TransitionResult(state=new_state, changed=new_state is not current, turn_ended=True)

        result = await self._commit(transition)
        return result.state

    async def reset_game(self, full_word_list=None) -> GameState:
        """
        Deal a new board, clear the history and every player's team/role.

        The three updates go to the store as one atomic commit.
        """
        self._require_joined()
        reset = {}

        def transition(current):
            if current is None and not full_word_list:
                raise NotFound(f"No game in progress in room {self.room_id}")
            reset["result"] = engine.reset_game(current, full_word_list, self.rules)
            return TransitionResult(state=reset["result"].state)

        try:
            result = await self._commit(transition, writer=self.store.commit_reset)
        except Exception:
            logger.error(f"Error resetting game in room {self.room_id}")
            raise

        if reset["result"].clear_player_assignments:
            for player in self._players.values():
                player.team = None
                player.role = None
            await self.presence.announce(None, None)
        logger.info(f"Game reset in room {self.room_id}")
        return result.state

    async def clear_room(self) -> None:
        """Drop the room's game so it is back to having no game at all."""
        self._require_joined()

        def transition(current):
            return TransitionResult(state=None, changed=current is not None)

        await self._commit(transition)
        logger.info(f"Game cleared in room {self.room_id}")

    async def set_team_and_role(self, team: Optional[str], role: Optional[str]) -> Player:
        """
        Pick a team and role. Only allowed before the game starts, and each
        team gets one spymaster.
        """
        self._require_joined()
        state = await self.store.read_room_state(self.room_id)
        players = await self.store.read_players(self.room_id)
        validate_team_role(state, players, self.username, team, role).raise_for_error()

        await self.store.update_players(
            self.room_id,
            {"team": team, "role": role, "last_seen": time.time()},
            usernames=[self.username],
        )
        me = self._players.get(self.username)
        if me is not None:
            me.team, me.role = team, role
        await self.presence.announce(team, role)
        return self._players.get(self.username)

    async def _record(self, action_type: str, data: Dict[str, Any]):
        try:
            await self.history.record(self.room_id, {"type": action_type, "data": data})
        except Exception:
            logger.error(f"{action_type} committed in room {self.room_id} but was not logged")
            raise
