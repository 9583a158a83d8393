"""History views: per-year summary, session list, and achievements for one viewer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.models import DEFAULT_PT_RATE, StreakKind
from stats.achievements import build_achievements
from stats.exceptions import require_table_size
from stats.index import build_history_index
from stats.ledger import LedgerSnapshot
from stats.sessions import SESSION_PAGE_SIZE, SessionPager, apply_score_patch, group_sessions
from stats.summary import build_summary, list_special_hands
from tracker.history.state import DERIVED_VIEWS, HistoryMeta
from tracker.history.types import (
    CorrectionOutcome,
    CorrectionResult,
    FetchStatus,
    ScoreCorrection,
    SummaryView,
    ViewKey,
    ViewKind,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from shared.dal.ledger_repository import LedgerRepository
    from shared.dal.models import Profile, ScoreEntry
    from stats.types import AchievementRecord, HistoryIndex, SessionPage
    from tracker.history.state import HistoryRegistry, HistoryState
    from tracker.history.types import ScoreUpdate

logger = structlog.get_logger()


class HistoryNotInitializedError(Exception):
    pass


class HistoryService:
    """Fetches ledger partitions and runs the statistics builders over them.

    Purely orchestration: every number comes from the stats package. All
    per-viewer state lives in the HistoryState passed to each call. With a
    registry, a correction also invalidates the partition for every other
    live viewer.
    """

    def __init__(
        self,
        repo: LedgerRepository,
        page_size: int = SESSION_PAGE_SIZE,
        default_pt_rate: int = DEFAULT_PT_RATE,
        registry: HistoryRegistry | None = None,
    ) -> None:
        self._repo = repo
        self._page_size = page_size
        self._default_pt_rate = default_pt_rate
        self._registry = registry

    # ---- init ----

    async def initialize(self, state: HistoryState) -> HistoryIndex:
        """Load the viewer's room games and return the year index.

        The games are loaded once and reloaded only after the state's
        ledger_version moves on (a round was recorded).
        """
        async with state.init_lock:
            if state.meta is None or state.meta_is_stale:
                state.meta = await self._load_meta(state.viewer_id, state.ledger_version)
        return build_history_index(state.meta.snapshot)

    async def _load_meta(self, viewer_id: str, version: int) -> HistoryMeta:
        room_ids = await self._repo.list_room_ids_for_user(viewer_id)
        if not room_ids:
            return HistoryMeta(snapshot=LedgerSnapshot(), version=version)
        games = await self._repo.list_games(room_ids=room_ids)
        scores = await self._repo.list_scores(game_ids=[g.id for g in games]) if games else []
        logger.info("history meta loaded", viewer_id=viewer_id, rooms=len(room_ids), games=len(games), version=version)
        return HistoryMeta(snapshot=LedgerSnapshot.build(games=games, scores=scores), version=version)

    async def _meta(self, state: HistoryState) -> HistoryMeta:
        if state.meta is None:
            raise HistoryNotInitializedError(f"History for viewer {state.viewer_id} is not initialized")
        if state.meta_is_stale:
            await self.initialize(state)
        return state.meta

    async def _guarded(self, state: HistoryState, key: ViewKey, compute: Callable[[], Awaitable[Any]]) -> Any:  # noqa: ANN401
        """Compute a view at most once per key; concurrent callers wait and reuse the result.

        A result whose key was invalidated while it was computing is returned
        to this caller but not cached.
        """
        fetch = state.fetch
        async with fetch.lock_for(key):
            if fetch.status(key) == FetchStatus.DONE:
                return fetch.result(key)
            generation = fetch.mark_in_flight(key)
            try:
                result = await compute()
            except Exception:
                fetch.mark_failed(key)
                logger.exception("view fetch failed", key=str(key))
                raise
            fetch.mark_done(key, result, generation)
            return result

    async def _profiles_for(self, scores: list[ScoreEntry]) -> list[Profile]:
        user_ids = {s.user_id for s in scores}
        if not user_ids:
            return []
        return await self._repo.list_profiles(user_ids)

    # ---- summary ----

    async def summary(self, state: HistoryState, year: int, table_size: int) -> SummaryView:
        require_table_size(table_size)
        key = ViewKey(ViewKind.SUMMARY, year, table_size)
        return await self._guarded(state, key, lambda: self._fetch_summary(state, year, table_size))

    async def _fetch_summary(self, state: HistoryState, year: int, table_size: int) -> SummaryView:
        meta = await self._meta(state)
        year_game_ids = meta.partition_game_ids(year, table_size)
        if not year_game_ids:
            return SummaryView(players=[], special_hands=[])

        special_hands = await self._repo.list_special_hands(year_game_ids)
        hands_snapshot = LedgerSnapshot.build(special_hands=special_hands)
        hand_items = list_special_hands(hands_snapshot, year_game_ids)

        # Players seen at the viewer's tables, measured over all of their games.
        player_ids = {s.user_id for gid in year_game_ids for s in meta.snapshot.scores_by_game.get(gid, ())}
        player_rows = await self._repo.list_scores(user_ids=player_ids)
        candidate_ids = list(dict.fromkeys(s.game_id for s in player_rows))
        games = await self._repo.list_games(game_ids=candidate_ids)
        scores = await self._repo.list_scores(game_ids=candidate_ids)

        counted = LedgerSnapshot.build(games=games, scores=scores)
        partition = counted.partition_game_ids(year, table_size)
        if not partition:
            return SummaryView(players=[], special_hands=hand_items)

        partition_scores = [s for gid in partition for s in counted.scores_by_game[gid]]
        markers = await self._repo.list_streak_markers(partition, kind=StreakKind.ELIMINATED)
        snapshot = LedgerSnapshot.build(
            games=counted.games,
            scores=partition_scores,
            markers=markers,
            profiles=await self._profiles_for(partition_scores),
        )
        players = build_summary(snapshot, partition, table_size, player_ids=player_ids)
        logger.info("summary built", year=year, table_size=table_size, games=len(partition), players=len(players))
        return SummaryView(players=players, special_hands=hand_items)

    # ---- sessions ----

    async def sessions(self, state: HistoryState, year: int, table_size: int, page: int = 1) -> SessionPage:
        """Return one page of sessions. Repeating a page returns the same sessions."""
        require_table_size(table_size)
        key = ViewKey(ViewKind.SESSIONS, year, table_size)
        pager: SessionPager = await self._guarded(state, key, lambda: self._fetch_sessions(state, year, table_size))
        if state.fetch.result(key) is pager:
            state.pagers[(year, table_size)] = pager
        return pager.load_page(page)

    async def load_more_sessions(self, state: HistoryState, year: int, table_size: int) -> SessionPage:
        pager = state.pagers.get((year, table_size))
        if pager is None:
            return await self.sessions(state, year, table_size, page=1)
        return pager.load_more()

    async def _fetch_sessions(self, state: HistoryState, year: int, table_size: int) -> SessionPager:
        meta = await self._meta(state)
        games = meta.snapshot.games_in_partition(year, table_size)
        if not games:
            return SessionPager([], page_size=self._page_size)

        game_ids = [g.id for g in games]
        room_ids = list(dict.fromkeys(g.room_id for g in games))
        scores = await self._repo.list_scores(game_ids=game_ids)
        special_hands = await self._repo.list_special_hands(game_ids)
        rooms = await self._repo.list_rooms(room_ids)
        snapshot = LedgerSnapshot.build(
            games=games,
            scores=scores,
            special_hands=special_hands,
            rooms=rooms,
            profiles=await self._profiles_for(scores),
        )
        sessions = group_sessions(snapshot, game_ids, default_pt_rate=self._default_pt_rate)
        logger.info("sessions grouped", year=year, table_size=table_size, sessions=len(sessions))
        return SessionPager(sessions, page_size=self._page_size)

    # ---- achievements ----

    async def achievements(self, state: HistoryState, year: int, table_size: int) -> list[AchievementRecord]:
        require_table_size(table_size)
        key = ViewKey(ViewKind.ACHIEVEMENTS, year, table_size)
        return await self._guarded(state, key, lambda: self._fetch_achievements(state, year, table_size))

    async def _fetch_achievements(self, state: HistoryState, year: int, table_size: int) -> list[AchievementRecord]:
        meta = await self._meta(state)
        games = meta.snapshot.games_in_partition(year, table_size)
        if not games:
            return []

        game_ids = [g.id for g in games]
        scores = await self._repo.list_scores(game_ids=game_ids)
        markers = await self._repo.list_streak_markers(game_ids)
        special_hands = await self._repo.list_special_hands(game_ids)
        snapshot = LedgerSnapshot.build(
            games=games,
            scores=scores,
            markers=markers,
            special_hands=special_hands,
            profiles=await self._profiles_for(scores),
        )
        return build_achievements(snapshot, game_ids)

    # ---- score correction ----

    async def correct_scores(
        self,
        state: HistoryState,
        year: int,
        table_size: int,
        room_id: str,
        game_index: int,
        updates: list[ScoreUpdate],
    ) -> CorrectionResult:
        """Patch a loaded game's scores locally, then persist each change.

        Phase one replaces the scores in the loaded session so the next page
        request shows them. Phase two writes each score by primary key and,
        when that misses or errors, once more by (game, user). Failures are
        logged and reported in the result; the local patch stays.
        """
        require_table_size(table_size)
        pager = state.pagers.get((year, table_size))
        session = pager.get_loaded(room_id) if pager is not None else None
        if pager is None or session is None or not 0 <= game_index < len(session.games):
            logger.warning("correction target not loaded", room_id=room_id, game_index=game_index)
            return CorrectionResult(game_id=None, applied=False)

        target = session.games[game_index]
        pager.replace(apply_score_patch(session, game_index, {u.user_id: u.score for u in updates}))

        corrections = [await self._persist_score(target.game.id, target.scores, update) for update in updates]

        # Only the corrected game's own partition goes stale. This viewer's loaded
        # sessions carry the patch; other viewers reload theirs from the store.
        game_year, game_size = target.game.created_at.year, len(target.scores)
        state.drop_partition(game_year, game_size, DERIVED_VIEWS)
        if self._registry is not None:
            self._registry.invalidate_partition(game_year, game_size, except_state=state)
        return CorrectionResult(game_id=target.game.id, applied=True, corrections=corrections)

    async def _persist_score(self, game_id: str, rows: list[ScoreEntry], update: ScoreUpdate) -> ScoreCorrection:
        row = next((s for s in rows if s.user_id == update.user_id), None)
        if row is None:
            return ScoreCorrection(user_id=update.user_id, score=update.score, outcome=CorrectionOutcome.SKIPPED)

        try:
            if await self._repo.update_score(row.id, update.score):
                return ScoreCorrection(user_id=update.user_id, score=update.score, outcome=CorrectionOutcome.UPDATED)
            logger.warning("score row not found by id, retrying by game and user", score_id=row.id, game_id=game_id)
        except Exception as e:  # noqa: BLE001
            logger.warning("score update by id failed, retrying by game and user", score_id=row.id, error=str(e))

        try:
            if await self._repo.update_score_by_key(game_id, update.user_id, update.score):
                return ScoreCorrection(
                    user_id=update.user_id,
                    score=update.score,
                    outcome=CorrectionOutcome.UPDATED_BY_KEY,
                )
        except Exception as e:
            logger.exception("score update failed", game_id=game_id, user_id=update.user_id)
            return ScoreCorrection(
                user_id=update.user_id,
                score=update.score,
                outcome=CorrectionOutcome.FAILED,
                error=str(e),
            )

        logger.error("score update matched no row", game_id=game_id, user_id=update.user_id)
        return ScoreCorrection(user_id=update.user_id, score=update.score, outcome=CorrectionOutcome.NOT_FOUND)
