from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from stats.types import PlayerStats, SpecialHandItem


class ViewKind(StrEnum):
    SUMMARY = "summary"
    SESSIONS = "games"
    ACHIEVEMENTS = "achievements"


class FetchStatus(StrEnum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ViewKey:
    """Cache key of one derived view: (view, year, table size)."""

    view: ViewKind
    year: int
    table_size: int

    def __str__(self) -> str:
        return f"{self.view.value}:{self.year}:{self.table_size}"


class SummaryView(BaseModel, frozen=True):
    players: list[PlayerStats]
    special_hands: list[SpecialHandItem]


class ScoreUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    score: int = Field(strict=True)


class CorrectionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    room_id: str = Field(min_length=1)
    game_index: int = Field(ge=0, strict=True)
    scores: list[ScoreUpdate] = Field(min_length=1)


class CorrectionOutcome(StrEnum):
    UPDATED = "updated"
    UPDATED_BY_KEY = "updated_by_key"  # primary key write missed, natural key fallback applied
    NOT_FOUND = "not_found"
    FAILED = "failed"
    SKIPPED = "skipped"  # user has no score row in the game


class ScoreCorrection(BaseModel, frozen=True):
    user_id: str
    score: int
    outcome: CorrectionOutcome
    error: str | None = None


class CorrectionResult(BaseModel, frozen=True):
    """Outcome of a two-phase score correction.

    applied tells whether the local patch was made; persisted tells whether
    every write reached the store. A local patch is never rolled back.
    """

    game_id: str | None
    applied: bool
    corrections: list[ScoreCorrection] = Field(default_factory=list)

    @property
    def persisted(self) -> bool:
        ok = {CorrectionOutcome.UPDATED, CorrectionOutcome.UPDATED_BY_KEY}
        return self.applied and all(c.outcome in ok for c in self.corrections)
