"""
Cumulative-score leaderboard.

Each player's history is a running total sampled at every game of the
ordered list, including games the player sat out, so all series have the
same length and can be charted on a shared axis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stats.exceptions import require_table_size
from stats.types import RankedPlayer

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Sequence

    from shared.dal.models import ScoreEntry
    from stats.ledger import LedgerSnapshot


@dataclass
class _PlayerScores:
    display_name: str
    avatar_url: str | None
    by_game: dict[str, int] = field(default_factory=dict)


def build_ranking(scores: Iterable[ScoreEntry], game_order: Sequence[str]) -> list[RankedPlayer]:
    """Build the leaderboard for scores over an ordered list of game ids.

    Scores for games outside game_order are ignored; players left with no
    game in the order do not appear. Sorted by total descending, ties in
    first-seen order.
    """
    in_order = set(game_order)
    players: dict[str, _PlayerScores] = {}
    for s in scores:
        if s.game_id not in in_order:
            continue
        player = players.get(s.user_id)
        if player is None:
            player = players[s.user_id] = _PlayerScores(display_name=s.display_name, avatar_url=s.avatar_url)
        player.by_game[s.game_id] = s.score

    result: list[RankedPlayer] = []
    for user_id, player in players.items():
        cumulative = 0
        history: list[int] = []
        for game_id in game_order:
            cumulative += player.by_game.get(game_id, 0)
            history.append(cumulative)
        result.append(
            RankedPlayer(
                user_id=user_id,
                display_name=player.display_name,
                avatar_url=player.avatar_url,
                total_score=cumulative,
                history=history,
            ),
        )

    result.sort(key=lambda p: p.total_score, reverse=True)
    return result


def ranking_game_order(snapshot: LedgerSnapshot, table_size: int, year: int | None = None) -> list[str]:
    """Distinct game ids at table_size in chronological order, optionally limited to one year."""
    require_table_size(table_size)
    return [
        g.id
        for g in snapshot.ordered_games
        if snapshot.table_size_of(g.id) == table_size and (year is None or g.created_at.year == year)
    ]


def build_table_ranking(
    snapshot: LedgerSnapshot,
    user_ids: Collection[str],
    table_size: int,
    year: int | None = None,
) -> list[RankedPlayer]:
    """Leaderboard of the given users over every snapshot game at table_size."""
    order = ranking_game_order(snapshot, table_size, year)
    return build_ranking((s for s in snapshot.scores if s.user_id in user_ids), order)
