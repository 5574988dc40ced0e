"""
Board rotation runtime for one display session.

Owns the set of boards, the active board and the live snapshot
subscription of the active board. Only the active board is subscribed:
switching boards releases the previous subscription before the next one is
opened, and deliveries that arrive for a released subscription are dropped.

Boards are upserted additively. A board missing from a later ``set_boards``
call stays in the rotation, so a transient empty fetch never blanks the
display.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from leaderboard.realtime.adapter import subscribe_to_leaderboard
from leaderboard.rotation.interval import IntervalRotation, MonotonicClock
from leaderboard.rotation.types import BoardRuntimeConfig, BoardRuntimeStatus, BoardState, LeaderboardBoard
from leaderboard.snapshots.store import Clock, utc_now

if TYPE_CHECKING:
    from collections.abc import Iterable

    from leaderboard.realtime.adapter import LeaderboardSubscription
    from leaderboard.realtime.feed import ChangeFeed
    from leaderboard.scoring.models import PlayerTotalScore
    from leaderboard.snapshots.store import SnapshotStore

logger = structlog.get_logger()

Listener = Callable[[], None]
Teardown = Callable[[], Awaitable[None]]


class BoardRuntime:
    def __init__(
        self,
        store: SnapshotStore,
        feed: ChangeFeed,
        *,
        clock: Clock = utc_now,
        monotonic: MonotonicClock = time.monotonic,
    ) -> None:
        self._store = store
        self._feed = feed
        self._clock = clock
        self._monotonic = monotonic
        self._config = BoardRuntimeConfig()
        self._initialized = False
        self._boards: dict[str, BoardState] = {}
        self._active_board_id: str | None = None
        self._rotation: IntervalRotation | None = None
        # board id -> (token, subscription); the token identifies deliveries of the current subscription
        self._subscriptions: dict[str, tuple[object, LeaderboardSubscription | None]] = {}
        self._sync_lock = asyncio.Lock()
        self._listeners: list[Listener] = []

    # -- lifecycle --------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> BoardRuntimeConfig:
        return self._config

    def initialize(self, config: BoardRuntimeConfig | None = None) -> Teardown:
        """Apply the config and start rotating when enabled. Returns the teardown coroutine function."""
        self._config = config or BoardRuntimeConfig()
        self._initialized = True
        self.stop_rotation()
        if self._config.rotation_enabled:
            self.start_rotation()
        logger.info(
            "board runtime initialized",
            rotation_enabled=self._config.rotation_enabled,
            rotation_interval_ms=self._config.rotation_interval_ms,
        )
        return self.teardown

    async def teardown(self) -> None:
        """Stop the timer, release every subscription and forget all boards. Idempotent."""
        self.stop_rotation()
        async with self._sync_lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
            for _token, sub in subscriptions:
                if sub is not None:
                    await sub.unsubscribe()
        was_initialized = self._initialized
        self._boards.clear()
        self._active_board_id = None
        self._config = BoardRuntimeConfig()
        self._initialized = False
        if was_initialized:
            logger.info("board runtime torn down")
        self._notify()

    def start_rotation(self) -> None:
        if self._rotation is not None and self._rotation.running:
            return
        self._rotation = IntervalRotation(
            self._config.rotation_interval_ms,
            self.rotate_to_next,
            tick_ms=self._config.tick_ms,
            clock=self._monotonic,
        )
        self._rotation.start()
        self._notify()

    def stop_rotation(self) -> None:
        if self._rotation is None:
            return
        self._rotation.stop()
        self._rotation = None
        self._notify()

    # -- board set --------------------------------------------------------

    async def set_boards(self, boards: Iterable[LeaderboardBoard]) -> None:
        """Upsert boards by id. The first given board becomes active when none is."""
        boards = list(boards)
        for board in boards:
            current = self._boards.get(board.id)
            if current is None:
                self._boards[board.id] = BoardState(board=board)
            elif current.board != board:
                self._boards[board.id] = current.model_copy(update={"board": board})

        if self._active_board_id is None and boards:
            self._active_board_id = boards[0].id
            self._reset_rotation()
        self._notify()
        await self._sync_subscription()

    async def set_active_board(self, board_id: str) -> None:
        if board_id not in self._boards:
            logger.warning("ignoring unknown board", board_id=board_id)
            return
        self._active_board_id = board_id
        self._reset_rotation()
        self._notify()
        await self._sync_subscription(force=True)

    async def rotate_to_next(self) -> None:
        """Advance to the next board in insertion order, wrapping around."""
        if not self._boards:
            return
        board_ids = list(self._boards)
        if len(board_ids) == 1 or self._active_board_id not in self._boards:
            if self._active_board_id is None:
                await self.set_active_board(board_ids[0])
                return
            self._reset_rotation()
            self._notify()
            return
        index = board_ids.index(self._active_board_id)
        next_id = board_ids[(index + 1) % len(board_ids)]
        logger.debug("rotating board", from_board=self._active_board_id, to_board=next_id)
        await self.set_active_board(next_id)

    # -- reads ------------------------------------------------------------

    @property
    def active_board_id(self) -> str | None:
        return self._active_board_id

    @property
    def boards(self) -> list[BoardState]:
        return list(self._boards.values())

    @property
    def current_board(self) -> LeaderboardBoard | None:
        state = self._active_state()
        return state.board if state is not None else None

    @property
    def current_state(self) -> BoardState | None:
        return self._active_state()

    @property
    def current_scores(self) -> list[PlayerTotalScore]:
        state = self._active_state()
        return list(state.scores) if state is not None else []

    @property
    def subscribed_board_ids(self) -> list[str]:
        return [board_id for board_id, (_token, sub) in self._subscriptions.items() if sub is not None and sub.active]

    def get_status(self) -> BoardRuntimeStatus:
        rotating = self._rotation is not None and self._rotation.running
        active = self._active_state()
        return BoardRuntimeStatus(
            active_board_id=self._active_board_id,
            time_until_rotation_ms=self._rotation.time_until_rotation_ms if rotating else None,
            is_rotating=rotating,
            last_updated=active.last_updated if active is not None else None,
            board_count=len(self._boards),
            rotation_interval_ms=self._config.rotation_interval_ms,
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every state change. Returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -- internals --------------------------------------------------------

    def _active_state(self) -> BoardState | None:
        if self._active_board_id is None:
            return None
        return self._boards.get(self._active_board_id)

    def _reset_rotation(self) -> None:
        if self._rotation is not None:
            self._rotation.reset()

    async def _sync_subscription(self, *, force: bool = False) -> None:
        """Make the active board the only subscribed board.

        The active board keeps its subscription unless ``force`` is set or its
        (event_id, time_filter) changed since it was opened.
        """
        async with self._sync_lock:
            target = self._active_state()
            for board_id in list(self._subscriptions):
                keep = (
                    not force
                    and target is not None
                    and board_id == target.board.id
                    and self._subscribed_key(board_id) == target.board.key
                )
                if not keep:
                    _token, sub = self._subscriptions.pop(board_id)
                    if sub is not None:
                        await sub.unsubscribe()

            if target is None or target.board.id in self._subscriptions:
                return
            await self._subscribe(target.board)

    async def _subscribe(self, board: LeaderboardBoard) -> None:
        token = object()
        self._subscriptions[board.id] = (token, None)
        self._update_board(board.id, loading=True)

        async def on_update(scores: list[PlayerTotalScore] | None, error: str | None) -> None:
            self._deliver(board.id, token, scores, error)

        sub = await subscribe_to_leaderboard(self._store, self._feed, board.event_id, board.key[1], on_update)
        current = self._subscriptions.get(board.id)
        if current is None or current[0] is not token:
            await sub.unsubscribe()
            return
        self._subscriptions[board.id] = (token, sub)
        logger.debug("board subscribed", board_id=board.id, event_id=board.event_id, time_filter=board.time_filter)

    def _subscribed_key(self, board_id: str) -> tuple[str, str] | None:
        entry = self._subscriptions.get(board_id)
        if entry is None or entry[1] is None:
            return None
        sub = entry[1]
        return sub.event_id, sub.time_filter

    def _deliver(
        self,
        board_id: str,
        token: object,
        scores: list[PlayerTotalScore] | None,
        error: str | None,
    ) -> None:
        current = self._subscriptions.get(board_id)
        if current is None or current[0] is not token:
            logger.debug("dropping stale board update", board_id=board_id)
            return
        if error is not None:
            # keep the last known good scores
            logger.warning("board update failed", board_id=board_id, error=error)
            self._update_board(board_id, error=error, loading=False)
            return
        self._update_board(board_id, scores=scores or [], error=None, loading=False, last_updated=self._clock())

    def _update_board(self, board_id: str, **changes: object) -> None:
        state = self._boards.get(board_id)
        if state is None:
            return
        self._boards[board_id] = state.model_copy(update=changes)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("board runtime listener failed")
