"""
Per-player placement statistics for a year x table size partition.

Placement within a game is the index in the score-descending order. Equal
scores are not tie-broken by any rule: they keep ledger order, which makes
the result deterministic for a given snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from stats.exceptions import require_table_size
from stats.ledger import placements
from stats.types import PlayerStats, SpecialHandItem

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

    from stats.ledger import LedgerSnapshot

logger = structlog.get_logger()


@dataclass
class _Accumulator:
    display_name: str
    avatar_url: str | None
    games: int = 0
    top_count: int = 0
    last_count: int = 0
    rank_sum: int = 0
    tobi_count: int = 0

    def to_stats(self, user_id: str) -> PlayerStats:
        return PlayerStats(
            user_id=user_id,
            display_name=self.display_name,
            avatar_url=self.avatar_url,
            total_games=self.games,
            top_rate=self.top_count / self.games * 100,
            last_rate=self.last_count / self.games * 100,
            avg_rank=self.rank_sum / self.games,
            tobi_rate=self.tobi_count / self.games * 100,
        )


def build_summary(
    snapshot: LedgerSnapshot,
    game_ids: Iterable[str],
    table_size: int,
    player_ids: Collection[str] | None = None,
) -> list[PlayerStats]:
    """Compute top/last/tobi rates and average rank, best average first.

    Games without scores, or whose player count differs from table_size,
    are skipped. When player_ids is given only those players are reported
    (their placements still count every opponent).
    """
    require_table_size(table_size)
    stats: dict[str, _Accumulator] = {}

    for game_id in dict.fromkeys(game_ids):
        entries = snapshot.scores_by_game.get(game_id)
        if not entries:
            logger.debug("skipping game without scores", game_id=game_id)
            continue
        if len(entries) != table_size:
            logger.debug("skipping game outside table size", game_id=game_id, players=len(entries))
            continue
        eliminated = snapshot.eliminated_by_game.get(game_id, frozenset())
        for idx, entry in enumerate(placements(entries)):
            acc = stats.get(entry.user_id)
            if acc is None:
                acc = stats[entry.user_id] = _Accumulator(display_name=entry.display_name, avatar_url=entry.avatar_url)
            rank = idx + 1
            acc.games += 1
            acc.rank_sum += rank
            if rank == 1:
                acc.top_count += 1
            if rank == table_size:
                acc.last_count += 1
            if entry.user_id in eliminated:
                acc.tobi_count += 1

    result = [
        acc.to_stats(user_id)
        for user_id, acc in stats.items()
        if acc.games > 0 and (player_ids is None or user_id in player_ids)
    ]
    result.sort(key=lambda p: p.avg_rank)
    return result


def list_special_hands(snapshot: LedgerSnapshot, game_ids: Iterable[str]) -> list[SpecialHandItem]:
    """Special hands declared in the given games, in ledger order."""
    wanted = set(game_ids)
    return [
        SpecialHandItem(
            display_name=h.display_name,
            avatar_url=h.avatar_url,
            hand_type=h.hand_type,
            winning_tile=h.winning_tile,
            date=h.created_at,
        )
        for h in snapshot.special_hands
        if h.game_id in wanted
    ]
