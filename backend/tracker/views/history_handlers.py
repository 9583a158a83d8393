"""JSON handlers for the per-viewer history views and score corrections."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.responses import JSONResponse

from shared.logging import bind_view_context
from stats.achievements import ACHIEVEMENTS
from stats.exceptions import InvalidTableSizeError
from stats.sessions import session_totals
from tracker.history.types import CorrectionRequest, ViewKind

if TYPE_CHECKING:
    from starlette.requests import Request

    from stats.types import Session, SessionPage
    from tracker.history.service import HistoryService
    from tracker.history.state import HistoryRegistry, HistoryState

logger = structlog.get_logger()


def _invalid(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=422)


async def _viewer_state(request: Request, view: str) -> tuple[HistoryService, HistoryState]:
    """Return the service and the viewer's state, initializing the state on first use."""
    viewer_id: str = request.path_params["user_id"]
    bind_view_context(
        viewer_id=viewer_id,
        view=view,
        year=request.path_params.get("year"),
        table_size=request.path_params.get("table_size"),
    )
    service: HistoryService = request.app.state.history_service
    registry: HistoryRegistry = request.app.state.history_states
    state = registry.get(viewer_id)
    await service.initialize(state)
    return service, state


def _partition(request: Request) -> tuple[int, int]:
    return request.path_params["year"], request.path_params["table_size"]


def _session_payload(session: Session) -> dict:
    payload = session.model_dump(mode="json")
    payload["totals"] = [t.model_dump(mode="json") for t in session_totals(session)]
    return payload


def _page_payload(page: SessionPage) -> dict:
    return {
        "page": page.page,
        "page_size": page.page_size,
        "total_sessions": page.total_sessions,
        "has_more": page.has_more,
        "sessions": [_session_payload(s) for s in page.sessions],
    }


async def history_index(request: Request) -> JSONResponse:
    """GET /users/{user_id}/history - years with games and the initial selection."""
    service, state = await _viewer_state(request, "index")
    index = await service.initialize(state)
    return JSONResponse(index.model_dump(mode="json"))


async def history_summary(request: Request) -> JSONResponse:
    """GET /users/{user_id}/history/{year}/{table_size}/summary"""
    service, state = await _viewer_state(request, ViewKind.SUMMARY)
    year, table_size = _partition(request)
    try:
        view = await service.summary(state, year, table_size)
    except InvalidTableSizeError as e:
        return _invalid(str(e))
    return JSONResponse(view.model_dump(mode="json"))


async def history_sessions(request: Request) -> JSONResponse:
    """GET /users/{user_id}/history/{year}/{table_size}/sessions?page=N"""
    service, state = await _viewer_state(request, ViewKind.SESSIONS)
    year, table_size = _partition(request)
    raw_page = request.query_params.get("page", "1")
    try:
        page = int(raw_page)
    except ValueError:
        return _invalid(f"Invalid page: {raw_page!r}")
    try:
        result = await service.sessions(state, year, table_size, page=page)
    except ValueError as e:  # InvalidTableSizeError or page < 1
        return _invalid(str(e))
    return JSONResponse(_page_payload(result))


async def history_achievements(request: Request) -> JSONResponse:
    """GET /users/{user_id}/history/{year}/{table_size}/achievements"""
    service, state = await _viewer_state(request, ViewKind.ACHIEVEMENTS)
    year, table_size = _partition(request)
    try:
        records = await service.achievements(state, year, table_size)
    except InvalidTableSizeError as e:
        return _invalid(str(e))
    return JSONResponse(
        {
            "badges": [b.model_dump(mode="json") for b in ACHIEVEMENTS],
            "records": [r.model_dump(mode="json") for r in records],
        },
    )


async def correct_scores(request: Request) -> JSONResponse:
    """POST /users/{user_id}/history/{year}/{table_size}/corrections

    Patches a game of an already loaded session. Returns 409 when the
    session is not loaded; per-score write failures are reported in the body.
    """
    service, state = await _viewer_state(request, "correction")
    year, table_size = _partition(request)

    try:
        body = json.loads(await request.body())
    except (ValueError, json.JSONDecodeError):  # fmt: skip
        return _invalid("Invalid JSON body")
    if not isinstance(body, dict):
        return _invalid("Request body must be a JSON object")

    try:
        req = CorrectionRequest(**body)
    except (TypeError, ValidationError) as e:
        return _invalid(str(e))

    try:
        result = await service.correct_scores(state, year, table_size, req.room_id, req.game_index, req.scores)
    except InvalidTableSizeError as e:
        return _invalid(str(e))

    if not result.applied:
        return JSONResponse({"error": "Session is not loaded", "room_id": req.room_id}, status_code=409)
    payload = result.model_dump(mode="json")
    payload["persisted"] = result.persisted
    return JSONResponse(payload)
