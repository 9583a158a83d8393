"""Abstract interface for score ledger persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection

    from shared.dal.models import Game, Profile, Room, ScoreEntry, SpecialHandRecord, StreakKind, StreakMarker


class LedgerRepository(ABC):
    """Abstract interface for the append-only score ledger.

    Reads return rows in insertion order unless documented otherwise.
    Implementations can use SQLite, PostgreSQL, a hosted table API, etc.
    """

    @abstractmethod
    async def record_round(
        self,
        game: Game,
        scores: list[ScoreEntry],
        markers: list[StreakMarker] | None = None,
        special_hands: list[SpecialHandRecord] | None = None,
    ) -> None: ...

    @abstractmethod
    async def list_scores(
        self,
        game_ids: Collection[str] | None = None,
        user_ids: Collection[str] | None = None,
    ) -> list[ScoreEntry]: ...

    @abstractmethod
    async def list_games(
        self,
        room_ids: Collection[str] | None = None,
        game_ids: Collection[str] | None = None,
    ) -> list[Game]:
        """Return games ordered by created_at ascending."""

    @abstractmethod
    async def list_streak_markers(
        self,
        game_ids: Collection[str],
        kind: StreakKind | None = None,
    ) -> list[StreakMarker]: ...

    @abstractmethod
    async def list_special_hands(self, game_ids: Collection[str]) -> list[SpecialHandRecord]: ...

    @abstractmethod
    async def list_rooms(self, room_ids: Collection[str]) -> list[Room]: ...

    @abstractmethod
    async def list_room_ids_for_user(self, user_id: str) -> list[str]: ...

    @abstractmethod
    async def list_profiles(self, user_ids: Collection[str]) -> list[Profile]: ...

    @abstractmethod
    async def update_score(self, score_id: str, new_score: int) -> bool:
        """Update a score row by primary key. Return False when no row matched."""

    @abstractmethod
    async def update_score_by_key(self, game_id: str, user_id: str, new_score: int) -> bool:
        """Update a score row by its natural key. Return False when no row matched."""
