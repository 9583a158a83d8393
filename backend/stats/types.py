"""
Pydantic models for the derived views produced by the statistics engine.

Every model is frozen; builders return fresh instances for every call so
two runs over the same snapshot serialize identically.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from shared.dal.models import Game, ScoreEntry, SpecialHandRecord


class RankedPlayer(BaseModel, frozen=True):
    """Cumulative leaderboard row with a gap-free running total per game."""

    user_id: str
    display_name: str
    avatar_url: str | None = None
    total_score: int
    history: list[int]


class PlayerStats(BaseModel, frozen=True):
    """Placement rates of one player over a year x table size partition."""

    user_id: str
    display_name: str
    avatar_url: str | None = None
    total_games: int = Field(ge=1)
    top_rate: float
    last_rate: float
    avg_rank: float
    tobi_rate: float


class SpecialHandItem(BaseModel, frozen=True):
    display_name: str
    avatar_url: str | None = None
    hand_type: str
    winning_tile: str | None = None
    date: datetime


class SessionGame(BaseModel, frozen=True):
    game: Game
    scores: list[ScoreEntry]
    special_hands: list[SpecialHandRecord] = Field(default_factory=list)


class Session(BaseModel, frozen=True):
    """All games one room recorded in a year, ordered by round number."""

    room_id: str
    date: datetime  # created_at of the first round
    pt_rate: int
    games: list[SessionGame]


class SessionTotal(BaseModel, frozen=True):
    user_id: str
    display_name: str
    avatar_url: str | None = None
    total: int
    pt: int  # total * pt_rate


class SessionPage(BaseModel, frozen=True):
    page: int
    page_size: int
    total_sessions: int
    sessions: list[Session]

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total_sessions


class AchievementRecord(BaseModel, frozen=True):
    user_id: str
    display_name: str
    avatar_url: str | None = None
    tobashi_count: int = 0
    flow_count: int = 0
    fugou_count: int = 0
    yakuman_count: int = 0
    antei_count: int = 0
    wipeout_count: int = 0
    aishou_name: str | None = None

    @property
    def total_count(self) -> int:
        """Sum of all badge counters. The nemesis is a name, not a count."""
        return (
            self.yakuman_count
            + self.tobashi_count
            + self.flow_count
            + self.fugou_count
            + self.antei_count
            + self.wipeout_count
        )

    @property
    def is_empty(self) -> bool:
        return self.total_count == 0 and self.aishou_name is None


class AchievementBadge(BaseModel, frozen=True):
    key: str
    icon: str
    label: str
    description: str


class HistoryIndex(BaseModel, frozen=True):
    """Years that have games (newest first) and the view to open initially."""

    years: list[int]
    initial_year: int
    initial_table_size: int
