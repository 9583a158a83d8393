"""
Session grouping and pagination for the game history view.

A session is every game one room recorded in the partition. Sessions are
listed most recent first (by their latest game) and paged in fixed batches.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import DEFAULT_PT_RATE
from stats.types import Session, SessionGame, SessionPage, SessionTotal

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from shared.dal.models import Game, ScoreEntry
    from stats.ledger import LedgerSnapshot

logger = structlog.get_logger()

SESSION_PAGE_SIZE = 5


def group_sessions(
    snapshot: LedgerSnapshot,
    game_ids: Iterable[str],
    default_pt_rate: int = DEFAULT_PT_RATE,
) -> list[Session]:
    """Group games by room, most recently played room first.

    pt_rate falls back to default_pt_rate when the room row is not in the
    snapshot. Unknown game ids are skipped.
    """
    by_room: dict[str, list[Game]] = defaultdict(list)
    for game in snapshot.chronological(game_ids):
        by_room[game.room_id].append(game)

    # Rooms with equal latest timestamps keep first-seen order.
    room_order = sorted(by_room, key=lambda room_id: max(g.created_at for g in by_room[room_id]), reverse=True)

    sessions: list[Session] = []
    for room_id in room_order:
        games = sorted(by_room[room_id], key=lambda g: g.round_number)
        room = snapshot.rooms_by_id.get(room_id)
        if room is None:
            logger.debug("room not found, using default pt rate", room_id=room_id, pt_rate=default_pt_rate)
        sessions.append(
            Session(
                room_id=room_id,
                date=games[0].created_at,
                pt_rate=room.pt_rate if room is not None else default_pt_rate,
                games=[
                    SessionGame(
                        game=g,
                        scores=list(snapshot.scores_by_game.get(g.id, ())),
                        special_hands=list(snapshot.special_hands_by_game.get(g.id, ())),
                    )
                    for g in games
                ],
            ),
        )
    return sessions


def paginate_sessions(sessions: list[Session], page: int, page_size: int = SESSION_PAGE_SIZE) -> SessionPage:
    """Return the 1-based page of sessions. Pages past the end are empty."""
    if page < 1:
        raise ValueError(f"Page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"Page size must be >= 1, got {page_size}")
    start = (page - 1) * page_size
    return SessionPage(
        page=page,
        page_size=page_size,
        total_sessions=len(sessions),
        sessions=sessions[start : start + page_size],
    )


def session_totals(session: Session) -> list[SessionTotal]:
    """Per-player totals over a session, highest first, with the pt conversion."""
    first_rows: dict[str, ScoreEntry] = {}
    totals: dict[str, int] = defaultdict(int)
    for session_game in session.games:
        for s in session_game.scores:
            first_rows.setdefault(s.user_id, s)
            totals[s.user_id] += s.score
    result = [
        SessionTotal(
            user_id=user_id,
            display_name=row.display_name,
            avatar_url=row.avatar_url,
            total=totals[user_id],
            pt=totals[user_id] * session.pt_rate,
        )
        for user_id, row in first_rows.items()
    ]
    result.sort(key=lambda t: t.total, reverse=True)
    return result


def apply_score_patch(session: Session, game_index: int, new_scores: Mapping[str, int]) -> Session:
    """Return a copy of session with the scores of one game replaced by user id.

    Users not present in the game are ignored.
    """
    if not 0 <= game_index < len(session.games):
        raise IndexError(f"Game index {game_index} out of range for room {session.room_id}")
    target = session.games[game_index]
    patched = target.model_copy(
        update={
            "scores": [
                s.model_copy(update={"score": new_scores[s.user_id]}) if s.user_id in new_scores else s
                for s in target.scores
            ],
        },
    )
    games = list(session.games)
    games[game_index] = patched
    return session.model_copy(update={"games": games})


class SessionPager:
    """Incremental loader over an ordered session list.

    Holds the sessions loaded so far. Loading a page appends only sessions
    that are not already loaded, so repeating a request for the same page
    neither duplicates nor reorders anything.
    """

    def __init__(self, sessions: list[Session], page_size: int = SESSION_PAGE_SIZE) -> None:
        self._sessions = list(sessions)
        self._page_size = page_size
        self._loaded: dict[str, Session] = {}  # room_id -> session, in load order
        self._pages: set[int] = set()  # pages that returned sessions
        self._pages_loaded = 0  # length of the contiguous prefix 1..N within _pages

    @property
    def loaded(self) -> list[Session]:
        return list(self._loaded.values())

    @property
    def pages_loaded(self) -> int:
        return self._pages_loaded

    @property
    def has_more(self) -> bool:
        return self._pages_loaded * self._page_size < len(self._sessions)

    def load_page(self, page: int) -> SessionPage:
        """Return the requested page, recording its sessions as loaded.

        Already-loaded sessions are served from the loaded list so that
        optimistic patches stay visible on repeated requests.
        """
        result = paginate_sessions(self._sessions, page, self._page_size)
        for session in result.sessions:
            self._loaded.setdefault(session.room_id, session)
        if result.sessions:
            self._pages.add(page)
            while self._pages_loaded + 1 in self._pages:
                self._pages_loaded += 1
        return result.model_copy(update={"sessions": [self._loaded[s.room_id] for s in result.sessions]})

    def load_more(self) -> SessionPage:
        """Load the first page not yet loaded, filling any gap left by out-of-order requests."""
        return self.load_page(self._pages_loaded + 1)

    def get_loaded(self, room_id: str) -> Session | None:
        return self._loaded.get(room_id)

    def replace(self, session: Session) -> None:
        """Swap a loaded session for an updated copy (same room)."""
        if session.room_id not in self._loaded:
            raise KeyError(session.room_id)
        self._loaded[session.room_id] = session
