from datetime import UTC, datetime, timedelta

from shared.dal.models import Game, ScoreEntry, SpecialHandRecord, StreakKind, StreakMarker
from stats.achievements import ACHIEVEMENTS, build_achievements, compute_achievements, rank_achievements
from stats.ledger import LedgerSnapshot
from stats.types import AchievementRecord

BASE = datetime(2024, 7, 1, tzinfo=UTC)


def _game(index: int) -> Game:
    return Game(id=f"g{index}", room_id="r1", round_number=index + 1, created_at=BASE + timedelta(hours=index))


def _scores(index: int, scores: dict[str, int]) -> list[ScoreEntry]:
    return [
        ScoreEntry(id=f"g{index}-{u}", game_id=f"g{index}", user_id=u, display_name=u.upper(), score=s)
        for u, s in scores.items()
    ]


def _snapshot(
    rounds: list[dict[str, int]],
    markers: list[StreakMarker] | None = None,
    special_hands: list[SpecialHandRecord] | None = None,
) -> LedgerSnapshot:
    return LedgerSnapshot.build(
        games=[_game(i) for i in range(len(rounds))],
        scores=[s for i, r in enumerate(rounds) for s in _scores(i, r)],
        markers=markers or [],
        special_hands=special_hands or [],
    )


def _by_user(snapshot: LedgerSnapshot) -> dict[str, AchievementRecord]:
    return {r.user_id: r for r in compute_achievements(snapshot, [g.id for g in snapshot.games])}


def _marker(index: int, user_id: str, kind: StreakKind) -> StreakMarker:
    return StreakMarker(game_id=f"g{index}", user_id=user_id, kind=kind)


class TestFlow:
    def test_six_straight_firsts_make_two_flows(self):
        snapshot = _snapshot([{"a": 30, "b": 0, "c": -30}] * 6)
        assert _by_user(snapshot)["a"].flow_count == 2

    def test_four_players_seven_games(self):
        rounds = [{"a": 40, "b": 10, "c": -20, "d": -30}] * 6 + [{"a": 10, "b": 40, "c": -20, "d": -30}]
        records = _by_user(_snapshot(rounds))
        assert records["a"].flow_count == 2
        assert records["b"].flow_count == 0

    def test_broken_run_restarts(self):
        first = {"a": 30, "b": 0, "c": -30}
        second = {"a": 0, "b": 30, "c": -30}
        snapshot = _snapshot([first, first, second, first, first, first])
        assert _by_user(snapshot)["a"].flow_count == 1


class TestAntei:
    def test_five_positives_then_negative(self):
        up = {"a": 10, "b": 5, "c": -15}
        down = {"a": -10, "b": 25, "c": -15}
        assert _by_user(_snapshot([up] * 5 + [down]))["a"].antei_count == 1

    def test_zero_breaks_the_run(self):
        up = {"a": 10, "b": 5, "c": -15}
        flat = {"a": 0, "b": 15, "c": -15}
        assert _by_user(_snapshot([up] * 4 + [flat] + [up] * 4))["a"].antei_count == 0


class TestFugouAndTobashi:
    def test_fugou_counts_scores_of_at_least_100(self):
        records = _by_user(_snapshot([{"a": 100, "b": -50, "c": -50}, {"a": 99, "b": 1, "c": -100}]))
        assert records["a"].fugou_count == 1

    def test_tobashi_once_per_game(self):
        markers = [
            _marker(0, "a", StreakKind.ELIMINATOR),
            _marker(0, "c", StreakKind.ELIMINATED),
            _marker(1, "a", StreakKind.ELIMINATOR),
        ]
        snapshot = _snapshot([{"a": 60, "b": 0, "c": -60}] * 2, markers=markers)
        assert _by_user(snapshot)["a"].tobashi_count == 2


class TestWipeout:
    def test_sole_survivor_is_credited(self):
        markers = [_marker(0, "b", StreakKind.ELIMINATED), _marker(0, "c", StreakKind.ELIMINATED)]
        records = _by_user(_snapshot([{"a": 80, "b": -40, "c": -40}], markers=markers))
        assert records["a"].wipeout_count == 1
        assert records["b"].wipeout_count == 0

    def test_partial_elimination_is_not_a_wipeout(self):
        markers = [_marker(0, "c", StreakKind.ELIMINATED)]
        records = _by_user(_snapshot([{"a": 80, "b": -20, "c": -60}], markers=markers))
        assert records["a"].wipeout_count == 0

    def test_inconsistent_markers_use_eliminated_set_size(self):
        # Survivor also marked eliminator and one eliminated user holds both kinds.
        markers = [
            _marker(0, "b", StreakKind.ELIMINATED),
            _marker(0, "b", StreakKind.ELIMINATOR),
            _marker(0, "c", StreakKind.ELIMINATED),
            _marker(0, "d", StreakKind.ELIMINATED),
            _marker(0, "outsider", StreakKind.ELIMINATED),
        ]
        records = _by_user(_snapshot([{"a": 90, "b": -30, "c": -30, "d": -30}], markers=markers))
        assert records["a"].wipeout_count == 1


class TestYakuman:
    def test_counts_every_record_in_partition(self):
        def hand(index: int) -> SpecialHandRecord:
            return SpecialHandRecord(
                game_id=f"g{index}",
                user_id="b",
                display_name="B",
                hand_type="daisangen",
                created_at=BASE,
            )

        snapshot = _snapshot([{"a": 1, "b": 0, "c": -1}] * 2, special_hands=[hand(0), hand(0), hand(1)])
        assert _by_user(snapshot)["b"].yakuman_count == 3


class TestAishou:
    def test_none_below_ten_games(self):
        snapshot = _snapshot([{"a": 30, "b": 0, "c": -30}] * 9)
        assert _by_user(snapshot)["a"].aishou_name is None

    def test_opponent_with_highest_last_rate(self):
        c_last = {"a": 30, "b": 0, "c": -30}
        b_last = {"a": 30, "b": -30, "c": 0}
        snapshot = _snapshot([c_last] * 7 + [b_last] * 3)
        assert _by_user(snapshot)["a"].aishou_name == "C"

    def test_ties_go_to_first_met_opponent(self):
        c_last = {"a": 30, "b": 0, "c": -30}
        b_last = {"a": 30, "b": -30, "c": 0}
        snapshot = _snapshot([c_last, b_last] * 5)
        assert _by_user(snapshot)["a"].aishou_name == "B"

    def test_zero_rate_is_no_nemesis(self):
        # Only c meets a ten times, and c is never last.
        rounds = [{"a": 30, "c": 10, f"p{i}": 0, f"q{i}": -40} for i in range(10)]
        assert _by_user(_snapshot(rounds))["a"].aishou_name is None


class TestRanking:
    def test_empty_rows_dropped_and_sorted_by_total(self):
        records = [
            AchievementRecord(user_id="a", display_name="A", fugou_count=1),
            AchievementRecord(user_id="b", display_name="B"),
            AchievementRecord(user_id="c", display_name="C", flow_count=2, tobashi_count=1),
            AchievementRecord(user_id="d", display_name="D", aishou_name="A"),
        ]
        assert [r.user_id for r in rank_achievements(records)] == ["c", "a", "d"]

    def test_build_is_idempotent(self):
        snapshot = _snapshot([{"a": 100, "b": 0, "c": -100}] * 6)
        game_ids = [g.id for g in snapshot.games]
        first = [r.model_dump_json() for r in build_achievements(snapshot, game_ids)]
        assert [r.model_dump_json() for r in build_achievements(snapshot, game_ids)] == first

    def test_catalog_has_every_badge(self):
        assert [b.key for b in ACHIEVEMENTS] == ["tobashi", "flow", "fugou", "yakuman", "antei", "wipeout", "aishou"]
