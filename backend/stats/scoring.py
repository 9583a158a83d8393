"""
Round score validation for the append path.

Scores of a round are zero-sum: whatever the winners gain, the others lose.
When all but one score is entered, the last one is implied.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from stats.exceptions import InvalidRoundError, require_table_size

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from shared.dal.models import ScoreEntry


def validate_round(scores: Sequence[ScoreEntry]) -> None:
    """Raise InvalidRoundError unless scores form one valid zero-sum round."""
    try:
        require_table_size(len(scores))
    except ValueError as e:
        raise InvalidRoundError(f"Round must have 3 or 4 scores, got {len(scores)}") from e
    if len({s.game_id for s in scores}) != 1:
        raise InvalidRoundError("All scores of a round must belong to the same game")
    if len({s.user_id for s in scores}) != len(scores):
        raise InvalidRoundError("Each player may score only once per round")
    total = sum(s.score for s in scores)
    if total != 0:
        raise InvalidRoundError(f"Round scores must sum to 0, got {total}")


def complete_round(entered: Mapping[str, int | None], table_size: int) -> dict[str, int]:
    """Fill the one missing score so the round sums to zero.

    entered maps user id to score, None meaning not entered yet. Returns the
    completed mapping in the same order. A fully entered round is returned
    unchanged (and still validated).
    """
    require_table_size(table_size)
    if len(entered) != table_size:
        raise InvalidRoundError(f"Expected {table_size} players, got {len(entered)}")
    missing = [user_id for user_id, score in entered.items() if score is None]
    if len(missing) > 1:
        raise InvalidRoundError(f"Only one score can be left blank, {len(missing)} are missing")

    known = sum(score for score in entered.values() if score is not None)
    completed = {user_id: (score if score is not None else -known) for user_id, score in entered.items()}
    if sum(completed.values()) != 0:
        raise InvalidRoundError(f"Round scores must sum to 0, got {sum(completed.values())}")
    return completed
