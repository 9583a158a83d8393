"""Append path: record a round the host has confirmed."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from stats.exceptions import InvalidRoundError
from stats.scoring import validate_round

if TYPE_CHECKING:
    from shared.dal.ledger_repository import LedgerRepository
    from shared.dal.models import Game, ScoreEntry, SpecialHandRecord, StreakMarker
    from tracker.history.state import HistoryRegistry

logger = structlog.get_logger()


class RoundService:
    def __init__(self, repo: LedgerRepository, registry: HistoryRegistry | None = None) -> None:
        self._repo = repo
        self._registry = registry

    async def record_round(
        self,
        game: Game,
        scores: list[ScoreEntry],
        markers: list[StreakMarker] | None = None,
        special_hands: list[SpecialHandRecord] | None = None,
    ) -> None:
        """Validate and append a round. Raises InvalidRoundError before writing anything.

        Markers and special hands must reference the round's game and one of
        its players. Live history states reload their games afterwards and
        drop their views of the round's year and table size.
        """
        validate_round(scores)
        if scores[0].game_id != game.id:
            raise InvalidRoundError(f"Scores belong to game {scores[0].game_id}, not {game.id}")
        players = {s.user_id for s in scores}
        for row in [*(markers or []), *(special_hands or [])]:
            if row.game_id != game.id or row.user_id not in players:
                raise InvalidRoundError(f"Record for user {row.user_id} does not belong to game {game.id}")
        await self._repo.record_round(game, scores, markers, special_hands)
        logger.info("round recorded", game_id=game.id, room_id=game.room_id, round_number=game.round_number)
        if self._registry is not None:
            self._registry.ledger_changed(game.created_at.year, len(scores))
