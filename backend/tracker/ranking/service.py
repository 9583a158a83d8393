"""Cohort leaderboard for one user, split by table size."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from stats.cohort import resolve_cohort
from stats.exceptions import SUPPORTED_TABLE_SIZES
from stats.ledger import LedgerSnapshot
from stats.ranking import build_table_ranking

if TYPE_CHECKING:
    from shared.dal.ledger_repository import LedgerRepository
    from stats.cohort import Cohort
    from stats.types import RankedPlayer

logger = structlog.get_logger()


class RankingService:
    def __init__(self, repo: LedgerRepository) -> None:
        self._repo = repo

    async def resolve_cohort(self, user_id: str) -> Cohort:
        """Fetch the rows needed to resolve user_id's one-hop cohort."""
        own_rows = await self._repo.list_scores(user_ids=[user_id])
        own_game_ids = {s.game_id for s in own_rows}
        shared_rows = await self._repo.list_scores(game_ids=own_game_ids) if own_game_ids else own_rows
        return resolve_cohort(user_id, shared_rows)

    async def rankings(self, user_id: str, year: int | None = None) -> dict[int, list[RankedPlayer]]:
        """Leaderboards of the user's cohort keyed by table size.

        Co-players' games without the user count too. Table size is derived
        from the full score rows of every game, not only the cohort's rows.
        """
        cohort = await self.resolve_cohort(user_id)
        if not cohort.game_ids:
            return {size: [] for size in SUPPORTED_TABLE_SIZES}

        cohort_rows = await self._repo.list_scores(user_ids=cohort.user_ids)
        game_ids = cohort.ranking_game_ids(cohort_rows)
        games = await self._repo.list_games(game_ids=game_ids)
        scores = await self._repo.list_scores(game_ids=game_ids)
        profiles = await self._repo.list_profiles(cohort.user_ids)
        snapshot = LedgerSnapshot.build(games=games, scores=scores, profiles=profiles)

        logger.info("ranking built", user_id=user_id, cohort=cohort.user_ids, games=len(game_ids))
        return {size: build_table_ranking(snapshot, cohort.user_ids, size, year) for size in SUPPORTED_TABLE_SIZES}
