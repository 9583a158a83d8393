"""Data access layer: ledger repository interface and shared persistence models."""

from shared.dal.ledger_repository import LedgerRepository
from shared.dal.models import (
    DEFAULT_PT_RATE,
    Game,
    Profile,
    Room,
    ScoreEntry,
    SpecialHandRecord,
    StreakKind,
    StreakMarker,
)

__all__ = [
    "DEFAULT_PT_RATE",
    "Game",
    "LedgerRepository",
    "Profile",
    "Room",
    "ScoreEntry",
    "SpecialHandRecord",
    "StreakKind",
    "StreakMarker",
]
