"""Persistence models for the score ledger."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

DEFAULT_PT_RATE = 50


class StreakKind(StrEnum):
    """Streak marker kinds as stored in the ledger."""

    ELIMINATED = "tobi"  # busted out of the game
    ELIMINATOR = "tobashi"  # busted someone else


class Game(BaseModel, frozen=True):
    """One completed round recorded by a room."""

    id: str
    room_id: str
    round_number: int = Field(ge=1)
    created_at: datetime


class ScoreEntry(BaseModel, frozen=True):
    """Score of one participant in one game. Scores of a game sum to zero."""

    id: str
    game_id: str
    user_id: str
    display_name: str
    avatar_url: str | None = None
    score: int


class StreakMarker(BaseModel, frozen=True):
    game_id: str
    user_id: str
    kind: StreakKind


class SpecialHandRecord(BaseModel, frozen=True):
    """A yakuman (special winning hand) declared in a game."""

    game_id: str
    user_id: str
    display_name: str
    avatar_url: str | None = None
    hand_type: str
    winning_tile: str | None = None
    created_at: datetime


class Room(BaseModel, frozen=True):
    id: str
    room_number: str
    table_size: int = Field(ge=3, le=4)
    pt_rate: int = DEFAULT_PT_RATE  # currency multiplier, display only
    created_by: str
    created_at: datetime


class Profile(BaseModel, frozen=True):
    """Latest display identity of a user."""

    id: str
    username: str
    avatar_url: str | None = None
