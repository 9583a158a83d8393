"""
Normalized ledger snapshot consumed by every builder.

A snapshot is an immutable bundle of ledger rows plus lookup tables derived
from them once. Table size is never stored on a game: it is the number of
score rows the snapshot holds for that game, so a snapshot must contain
every score row of the games it is asked about.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import Game, Profile, Room, ScoreEntry, SpecialHandRecord, StreakKind, StreakMarker
from stats.exceptions import require_table_size

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = structlog.get_logger()


def placements(entries: Iterable[ScoreEntry]) -> list[ScoreEntry]:
    """Order a game's entries by score descending; index + 1 is the rank.

    Equal scores keep their ledger order (sorted() is stable with reverse=True).
    """
    return sorted(entries, key=lambda s: s.score, reverse=True)


def _apply_profiles(scores: Iterable[ScoreEntry], profiles: Iterable[Profile]) -> tuple[ScoreEntry, ...]:
    """Replace the name captured on each score row with the user's current profile."""
    by_id = {p.id: p for p in profiles}
    if not by_id:
        return tuple(scores)
    refreshed = []
    for s in scores:
        profile = by_id.get(s.user_id)
        if profile is None:
            refreshed.append(s)
        else:
            refreshed.append(s.model_copy(update={"display_name": profile.username, "avatar_url": profile.avatar_url}))
    return tuple(refreshed)


@dataclass(frozen=True)
class LedgerSnapshot:
    games: tuple[Game, ...] = ()
    scores: tuple[ScoreEntry, ...] = ()
    markers: tuple[StreakMarker, ...] = ()
    special_hands: tuple[SpecialHandRecord, ...] = ()
    rooms: tuple[Room, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        games: Iterable[Game] = (),
        scores: Iterable[ScoreEntry] = (),
        markers: Iterable[StreakMarker] = (),
        special_hands: Iterable[SpecialHandRecord] = (),
        rooms: Iterable[Room] = (),
        profiles: Iterable[Profile] = (),
    ) -> LedgerSnapshot:
        """Freeze fetched rows into a snapshot, refreshing display names from profiles."""
        return cls(
            games=tuple(games),
            scores=_apply_profiles(scores, profiles),
            markers=tuple(markers),
            special_hands=tuple(special_hands),
            rooms=tuple(rooms),
        )

    @cached_property
    def games_by_id(self) -> Mapping[str, Game]:
        return MappingProxyType({g.id: g for g in self.games})

    @cached_property
    def rooms_by_id(self) -> Mapping[str, Room]:
        return MappingProxyType({r.id: r for r in self.rooms})

    @cached_property
    def ordered_games(self) -> tuple[Game, ...]:
        """Games in created_at ascending order, ledger order on ties."""
        return tuple(sorted(self.games, key=lambda g: g.created_at))

    @cached_property
    def scores_by_game(self) -> Mapping[str, tuple[ScoreEntry, ...]]:
        grouped: dict[str, list[ScoreEntry]] = defaultdict(list)
        for s in self.scores:
            grouped[s.game_id].append(s)
        return MappingProxyType({gid: tuple(rows) for gid, rows in grouped.items()})

    @cached_property
    def game_player_counts(self) -> Mapping[str, int]:
        """game_id -> number of score rows, i.e. the game's table size."""
        return MappingProxyType({gid: len(rows) for gid, rows in self.scores_by_game.items()})

    def _markers_by_game(self, kind: StreakKind) -> Mapping[str, frozenset[str]]:
        grouped: dict[str, set[str]] = defaultdict(set)
        for m in self.markers:
            if m.kind == kind:
                grouped[m.game_id].add(m.user_id)
        return MappingProxyType({gid: frozenset(users) for gid, users in grouped.items()})

    @cached_property
    def eliminated_by_game(self) -> Mapping[str, frozenset[str]]:
        return self._markers_by_game(StreakKind.ELIMINATED)

    @cached_property
    def eliminators_by_game(self) -> Mapping[str, frozenset[str]]:
        return self._markers_by_game(StreakKind.ELIMINATOR)

    @cached_property
    def special_hands_by_game(self) -> Mapping[str, tuple[SpecialHandRecord, ...]]:
        grouped: dict[str, list[SpecialHandRecord]] = defaultdict(list)
        for h in self.special_hands:
            grouped[h.game_id].append(h)
        return MappingProxyType({gid: tuple(rows) for gid, rows in grouped.items()})

    def table_size_of(self, game_id: str) -> int | None:
        return self.game_player_counts.get(game_id)

    def year_of(self, game_id: str) -> int | None:
        game = self.games_by_id.get(game_id)
        return game.created_at.year if game is not None else None

    def games_in_partition(self, year: int, table_size: int) -> list[Game]:
        """Chronological games of one year x table size partition.

        Games without score rows have no table size and never match.
        """
        require_table_size(table_size)
        return [
            g
            for g in self.ordered_games
            if g.created_at.year == year and self.game_player_counts.get(g.id) == table_size
        ]

    def partition_game_ids(self, year: int, table_size: int) -> list[str]:
        return [g.id for g in self.games_in_partition(year, table_size)]

    def chronological(self, game_ids: Iterable[str]) -> list[Game]:
        """Resolve ids to games in created_at order, skipping ids the snapshot does not hold."""
        wanted = set(game_ids)
        missing = wanted.difference(self.games_by_id)
        if missing:
            logger.debug("skipping unknown games", game_ids=missing)
        return [g for g in self.ordered_games if g.id in wanted]
