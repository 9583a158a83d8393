"""RankingService against a real SQLite ledger."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from shared.dal.models import Profile
from tracker.ranking.service import RankingService
from tracker.tests.conftest import day, seed_session

if TYPE_CHECKING:
    from shared.db.ledger_repository import SqliteLedgerRepository


@pytest.fixture
def service(ledger_repo: SqliteLedgerRepository) -> RankingService:
    return RankingService(ledger_repo)


async def _seed(repo: SqliteLedgerRepository) -> None:
    await seed_session(repo, "room-0001", [{"a": 20, "b": 10, "c": -30}], day(2024, 1, 1))
    # b without a: still counts for the cohort ranking, x stays outside the cohort.
    await seed_session(repo, "room-0002", [{"b": 40, "x": -20, "c": -20}], day(2024, 2, 1))
    # Nobody from a's cohort: ignored.
    await seed_session(repo, "room-0003", [{"x": 60, "y": -30, "z": -30}], day(2024, 3, 1))
    await seed_session(repo, "room-0004", [{"a": 5, "b": 5, "c": -5, "d": -5}], day(2023, 6, 1))


class TestCohort:
    async def test_one_hop(self, service, ledger_repo):
        await _seed(ledger_repo)
        cohort = await service.resolve_cohort("a")
        assert cohort.user_ids == frozenset({"a", "b", "c", "d"})
        assert cohort.game_ids == frozenset({"room-0001-1", "room-0004-1"})


class TestRankings:
    async def test_three_player_board(self, service, ledger_repo):
        await _seed(ledger_repo)
        boards = await service.rankings("a")

        three = {p.user_id: p for p in boards[3]}
        assert set(three) == {"a", "b", "c"}
        assert three["b"].history == [10, 50]
        assert three["a"].history == [20, 20]
        assert three["c"].total_score == -50
        assert [p.user_id for p in boards[3]] == ["b", "a", "c"]

    async def test_four_player_board(self, service, ledger_repo):
        await _seed(ledger_repo)
        boards = await service.rankings("a")
        assert [(p.user_id, p.total_score) for p in boards[4]] == [("a", 5), ("b", 5), ("c", -5), ("d", -5)]

    async def test_year_filter(self, service, ledger_repo):
        await _seed(ledger_repo)
        boards = await service.rankings("a", year=2023)
        assert boards[3] == []
        assert len(boards[4]) == 4

    async def test_profile_names(self, service, ledger_repo):
        await _seed(ledger_repo)
        await ledger_repo.save_profile(Profile(id="b", username="Botan"))
        boards = await service.rankings("a")
        assert boards[3][0].display_name == "Botan"

    async def test_user_without_games(self, service, ledger_repo):
        await _seed(ledger_repo)
        assert await service.rankings("nobody") == {3: [], 4: []}
