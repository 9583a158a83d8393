from datetime import UTC, datetime, timedelta

from shared.dal.models import Game, ScoreEntry
from stats.ledger import LedgerSnapshot
from stats.ranking import build_ranking, build_table_ranking, ranking_game_order

BASE = datetime(2024, 1, 1, tzinfo=UTC)


def _game(game_id: str, day: int, year: int = 2024) -> Game:
    return Game(id=game_id, room_id="r1", round_number=day + 1, created_at=BASE.replace(year=year) + timedelta(days=day))


def _scores(game_id: str, scores: dict[str, int]) -> list[ScoreEntry]:
    return [
        ScoreEntry(id=f"{game_id}-{u}", game_id=game_id, user_id=u, display_name=u.upper(), score=s)
        for u, s in scores.items()
    ]


class TestBuildRanking:
    def test_history_is_gap_free_running_total(self):
        scores = [
            *_scores("g1", {"a": 30, "b": -10, "c": -20}),
            *_scores("g2", {"a": -5, "d": 15, "c": -10}),
            *_scores("g3", {"b": 40, "c": -20, "d": -20}),
        ]
        ranking = {p.user_id: p for p in build_ranking(scores, ["g1", "g2", "g3"])}

        assert ranking["a"].history == [30, 25, 25]
        assert ranking["b"].history == [-10, -10, 30]
        assert ranking["d"].history == [0, 15, -5]
        for player in ranking.values():
            assert len(player.history) == 3
            assert player.history[-1] == player.total_score

    def test_sorted_by_total_descending(self):
        scores = _scores("g1", {"a": -30, "b": 50, "c": -20})
        assert [p.user_id for p in build_ranking(scores, ["g1"])] == ["b", "c", "a"]

    def test_ties_keep_first_seen_order(self):
        scores = _scores("g1", {"x": 0, "y": 0, "z": 0})
        assert [p.user_id for p in build_ranking(scores, ["g1"])] == ["x", "y", "z"]

    def test_games_outside_order_are_ignored(self):
        scores = [*_scores("g1", {"a": 10, "b": -10}), *_scores("other", {"a": 100, "c": -100})]
        ranking = build_ranking(scores, ["g1"])
        assert [(p.user_id, p.total_score) for p in ranking] == [("a", 10), ("b", -10)]

    def test_empty_order(self):
        assert build_ranking(_scores("g1", {"a": 1, "b": -1}), []) == []


class TestTableRanking:
    def _snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot.build(
            games=[_game("g3", 2), _game("g1", 0), _game("four", 1), _game("old", 0, year=2023)],
            scores=[
                *_scores("g3", {"a": 5, "b": -5, "c": 0}),
                *_scores("g1", {"a": 10, "b": -20, "c": 10}),
                *_scores("four", {"a": 1, "b": 1, "c": -1, "d": -1}),
                *_scores("old", {"a": -50, "b": 25, "c": 25}),
            ],
        )

    def test_game_order_by_created_at(self):
        snapshot = self._snapshot()
        assert ranking_game_order(snapshot, 3) == ["old", "g1", "g3"]
        assert ranking_game_order(snapshot, 4) == ["four"]
        assert ranking_game_order(snapshot, 3, year=2024) == ["g1", "g3"]

    def test_restricted_to_users(self):
        ranking = build_table_ranking(self._snapshot(), {"a", "b"}, 4)
        assert {p.user_id for p in ranking} == {"a", "b"}

    def test_year_filter(self):
        ranking = build_table_ranking(self._snapshot(), {"a", "b", "c"}, 3, year=2024)
        assert ranking[0].user_id == "a"
        assert ranking[0].history == [10, 15]
