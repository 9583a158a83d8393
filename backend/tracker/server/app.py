from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.db import Database, SqliteLedgerRepository
from shared.logging import setup_logging
from tracker.history.service import HistoryService
from tracker.history.state import HistoryRegistry
from tracker.ranking.service import RankingService
from tracker.rounds.service import RoundService
from tracker.server.settings import TrackerServerSettings
from tracker.views import (
    correct_scores,
    history_achievements,
    history_index,
    history_sessions,
    history_summary,
    user_ranking,
)

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from shared.dal.ledger_repository import LedgerRepository

_PARTITION = "/users/{user_id}/history/{year:int}/{table_size:int}"


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


def create_app(
    settings: TrackerServerSettings | None = None,
    repo: LedgerRepository | None = None,
) -> Starlette:
    """Build the tracker app. Opens the SQLite store at settings.database_path unless a repo is given."""
    if settings is None:  # pragma: no cover
        settings = TrackerServerSettings()

    routes = [
        Route("/health", health, methods=["GET"], name="health"),
        Route("/users/{user_id}/ranking", user_ranking, methods=["GET"], name="user_ranking"),
        Route("/users/{user_id}/history", history_index, methods=["GET"], name="history_index"),
        Route(f"{_PARTITION}/summary", history_summary, methods=["GET"], name="history_summary"),
        Route(f"{_PARTITION}/sessions", history_sessions, methods=["GET"], name="history_sessions"),
        Route(f"{_PARTITION}/achievements", history_achievements, methods=["GET"], name="history_achievements"),
        Route(f"{_PARTITION}/corrections", correct_scores, methods=["POST"], name="correct_scores"),
    ]

    db: Database | None = None
    if repo is None:
        db = Database(settings.database_path)
        db.connect()
        repo = SqliteLedgerRepository(db)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        if db is not None:
            db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    app.state.settings = settings
    app.state.db = db
    app.state.repo = repo
    registry = HistoryRegistry(max_viewers=settings.history_max_viewers)
    app.state.history_states = registry
    app.state.history_service = HistoryService(
        repo,
        page_size=settings.session_page_size,
        default_pt_rate=settings.default_pt_rate,
        registry=registry,
    )
    app.state.ranking_service = RankingService(repo)
    app.state.round_service = RoundService(repo, registry=registry)

    logger.info("tracker server ready", database_path=settings.database_path if db is not None else None)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory for ASGI servers, e.g. uvicorn --factory tracker.server.app:get_app."""
    s = TrackerServerSettings()
    setup_logging(log_dir=s.log_dir)
    return create_app(settings=s)
