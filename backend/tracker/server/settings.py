"""Tracker server configuration via environment variables."""

import json
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from shared.dal.models import DEFAULT_PT_RATE
from stats.sessions import SESSION_PAGE_SIZE
from tracker.history.state import DEFAULT_MAX_VIEWERS


def parse_origins(value: str | list[str]) -> list[str]:
    """Accept a list, a JSON array string, or a comma-separated string. Blank means none."""
    if isinstance(value, list):
        return value
    stripped = value.strip()
    if not stripped:
        return []
    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        return parsed
    return [origin.strip() for origin in stripped.split(",") if origin.strip()]


class TrackerServerSettings(BaseSettings):
    model_config = {"env_prefix": "TRACKER_"}

    log_dir: str = "backend/logs/tracker"
    database_path: str = "backend/ledger.db"
    # NoDecode: pydantic-settings would JSON-decode list env vars before the validator sees CSV input.
    cors_origins: Annotated[list[str], NoDecode] = []
    session_page_size: int = Field(default=SESSION_PAGE_SIZE, ge=1)
    default_pt_rate: int = Field(default=DEFAULT_PT_RATE, ge=0)
    history_max_viewers: int = Field(default=DEFAULT_MAX_VIEWERS, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_origins(v)
