"""JSON handler for the cohort leaderboard."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from shared.logging import bind_view_context

if TYPE_CHECKING:
    from starlette.requests import Request

    from tracker.ranking.service import RankingService


async def user_ranking(request: Request) -> JSONResponse:
    """GET /users/{user_id}/ranking[?year=YYYY] - leaderboards keyed by table size."""
    user_id: str = request.path_params["user_id"]
    bind_view_context(viewer_id=user_id, view="ranking")

    raw_year = request.query_params.get("year")
    year: int | None = None
    if raw_year is not None:
        try:
            year = int(raw_year)
        except ValueError:
            return JSONResponse({"error": f"Invalid year: {raw_year!r}"}, status_code=422)

    service: RankingService = request.app.state.ranking_service
    rankings = await service.rankings(user_id, year=year)
    return JSONResponse(
        {str(size): [p.model_dump(mode="json") for p in players] for size, players in rankings.items()},
    )
