"""
One-hop co-player resolution.

The cohort of a user is every game the user has a score in, plus every user
who scored in any of those games. Membership stops at one hop: a co-player's
co-players are not pulled in, although the co-player's other games still
count for ranking (see Cohort.ranking_game_ids).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable


class Membership(Protocol):
    """Anything that ties a user to a game, e.g. a ScoreEntry row."""

    @property
    def game_id(self) -> str: ...

    @property
    def user_id(self) -> str: ...


@dataclass(frozen=True)
class Cohort:
    """Immutable cohort snapshot. Recompute after any new game is recorded."""

    user_id: str
    game_ids: frozenset[str]
    user_ids: frozenset[str]

    def ranking_game_ids(self, memberships: Iterable[Membership]) -> frozenset[str]:
        """Every game in which at least one cohort member played."""
        return frozenset(m.game_id for m in memberships if m.user_id in self.user_ids)


def resolve_cohort(user_id: str, memberships: Iterable[Membership]) -> Cohort:
    """Resolve the one-hop cohort of user_id from (game, user) memberships.

    The user is always part of their own cohort, even with no games.
    """
    rows = list(memberships)
    game_ids = frozenset(m.game_id for m in rows if m.user_id == user_id)
    user_ids = frozenset(m.user_id for m in rows if m.game_id in game_ids) | {user_id}
    return Cohort(user_id=user_id, game_ids=game_ids, user_ids=user_ids)
