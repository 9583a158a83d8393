"""Year list and initial tab selection for the history view."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from stats.types import HistoryIndex

if TYPE_CHECKING:
    from stats.ledger import LedgerSnapshot


def build_history_index(snapshot: LedgerSnapshot, current_year: int | None = None) -> HistoryIndex:
    """List years with games, newest first, and pick the view to open.

    The initial year is the newest year with games (current_year, defaulting
    to the current UTC year, when there are none). The initial table size is
    3 when that year has 3-player games, otherwise 4 when it has 4-player
    games, otherwise 3.
    """
    years = sorted({g.created_at.year for g in snapshot.games}, reverse=True)
    if years:
        initial_year = years[0]
    else:
        initial_year = current_year if current_year is not None else datetime.now(tz=UTC).year

    sizes = {
        snapshot.table_size_of(g.id)
        for g in snapshot.games
        if g.created_at.year == initial_year
    }
    initial_table_size = 4 if 3 not in sizes and 4 in sizes else 3
    return HistoryIndex(years=years, initial_year=initial_year, initial_table_size=initial_table_size)
