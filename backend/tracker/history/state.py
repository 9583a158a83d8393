"""Explicit per-viewer state for the history views.

Nothing here is process-wide: the caller creates a HistoryState per viewer
(directly or through a HistoryRegistry it owns) and hands it to
HistoryService on every call.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from tracker.history.types import FetchStatus, ViewKey, ViewKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stats.ledger import LedgerSnapshot
    from stats.sessions import SessionPager

DEFAULT_MAX_VIEWERS = 512

# Views derived from score rows; a correcting viewer's own sessions already carry the patch.
DERIVED_VIEWS = (ViewKind.SUMMARY, ViewKind.ACHIEVEMENTS)
ALL_VIEWS = (ViewKind.SUMMARY, ViewKind.SESSIONS, ViewKind.ACHIEVEMENTS)

logger = structlog.get_logger()


class FetchState:
    """key -> status map with one lock per key.

    Different keys may be computed concurrently; a key is never computed
    concurrently with itself. Results of DONE keys are kept for reuse.
    Invalidating a key bumps its generation, so a computation that started
    before the invalidation is not cached when it finishes.
    """

    def __init__(self) -> None:
        self._status: dict[ViewKey, FetchStatus] = {}
        self._results: dict[ViewKey, Any] = {}
        self._locks: dict[ViewKey, asyncio.Lock] = {}
        self._generations: dict[ViewKey, int] = {}

    def status(self, key: ViewKey) -> FetchStatus:
        return self._status.get(key, FetchStatus.PENDING)

    def lock_for(self, key: ViewKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def result(self, key: ViewKey) -> Any:  # noqa: ANN401
        return self._results.get(key)

    def mark_in_flight(self, key: ViewKey) -> int:
        """Mark the key as computing and return its generation for mark_done."""
        self._status[key] = FetchStatus.IN_FLIGHT
        return self._generations.get(key, 0)

    def mark_done(self, key: ViewKey, result: object, generation: int | None = None) -> bool:
        """Cache the result. Returns False, caching nothing, when the key was invalidated meanwhile."""
        if generation is not None and generation != self._generations.get(key, 0):
            self._status.pop(key, None)
            logger.info("stale view result discarded", key=str(key))
            return False
        self._status[key] = FetchStatus.DONE
        self._results[key] = result
        return True

    def mark_failed(self, key: ViewKey) -> None:
        self._status[key] = FetchStatus.FAILED
        self._results.pop(key, None)

    def invalidate(self, keys: Iterable[ViewKey]) -> None:
        for key in keys:
            self._generations[key] = self._generations.get(key, 0) + 1
            if self._status.pop(key, None) is not None:
                logger.info("view invalidated", key=str(key))
            self._results.pop(key, None)

    def invalidate_partition(self, year: int, table_size: int, views: Iterable[ViewKind]) -> None:
        """Invalidate the given views of one year x table size partition only."""
        self.invalidate(ViewKey(view, year, table_size) for view in views)


@dataclass
class HistoryMeta:
    """Games of the viewer's rooms with every score row.

    `version` is the HistoryState.ledger_version it was loaded at.
    """

    snapshot: LedgerSnapshot
    version: int = 0

    def partition_game_ids(self, year: int, table_size: int) -> list[str]:
        return self.snapshot.partition_game_ids(year, table_size)


@dataclass
class HistoryState:
    viewer_id: str
    meta: HistoryMeta | None = None
    ledger_version: int = 0  # bumped when new games may exist; meta reloads on mismatch
    fetch: FetchState = field(default_factory=FetchState)
    pagers: dict[tuple[int, int], SessionPager] = field(default_factory=dict)  # (year, table_size)
    init_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def meta_is_stale(self) -> bool:
        return self.meta is not None and self.meta.version != self.ledger_version

    def drop_partition(self, year: int, table_size: int, views: Iterable[ViewKind]) -> None:
        """Invalidate views of one partition; dropping SESSIONS also forgets its loaded pages."""
        views = tuple(views)
        self.fetch.invalidate_partition(year, table_size, views)
        if ViewKind.SESSIONS in views:
            self.pagers.pop((year, table_size), None)


class HistoryRegistry:
    """Live HistoryStates by viewer, capped at max_viewers.

    The least recently used viewer is evicted first; an evicted viewer just
    starts over with a fresh state on the next request. Ledger changes fan
    out to every live state through invalidate_partition and ledger_changed.
    """

    def __init__(self, max_viewers: int = DEFAULT_MAX_VIEWERS) -> None:
        if max_viewers < 1:
            raise ValueError(f"max_viewers must be >= 1, got {max_viewers}")
        self._states: dict[str, HistoryState] = {}  # insertion order = recency
        self._max_viewers = max_viewers

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, viewer_id: object) -> bool:
        return viewer_id in self._states

    def get(self, viewer_id: str) -> HistoryState:
        """Return the viewer's state, creating it on first use."""
        state = self._states.pop(viewer_id, None)
        if state is None:
            state = HistoryState(viewer_id=viewer_id)
        self._states[viewer_id] = state
        while len(self._states) > self._max_viewers:
            evicted = next(iter(self._states))
            del self._states[evicted]
            logger.info("history state evicted", viewer_id=evicted, live=len(self._states))
        return state

    def invalidate_partition(self, year: int, table_size: int, *, except_state: HistoryState | None = None) -> None:
        """Scores of a partition changed: every other viewer drops all of its views there."""
        for state in self._states.values():
            if state is not except_state:
                state.drop_partition(year, table_size, ALL_VIEWS)

    def ledger_changed(self, year: int, table_size: int) -> None:
        """A game was added: reload every viewer's game list and drop the partition's views."""
        for state in self._states.values():
            state.ledger_version += 1
            state.drop_partition(year, table_size, ALL_VIEWS)
        logger.info("history states refreshed", year=year, table_size=table_size, live=len(self._states))
