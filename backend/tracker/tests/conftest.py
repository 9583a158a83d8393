"""Shared helpers for tracker tests: seed rooms and rounds into a ledger repository."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from shared.dal.models import Game, Room, ScoreEntry, SpecialHandRecord, StreakKind, StreakMarker

if TYPE_CHECKING:
    from shared.db.ledger_repository import SqliteLedgerRepository


def day(year: int, month: int = 1, dom: int = 1) -> datetime:
    return datetime(year, month, dom, 19, 0, tzinfo=UTC)


def make_round(room_id: str, round_number: int, scores: dict[str, int], created_at: datetime) -> tuple[Game, list[ScoreEntry]]:
    """Build one round of a room with the same id scheme as seed_session."""
    game = Game(id=f"{room_id}-{round_number}", room_id=room_id, round_number=round_number, created_at=created_at)
    entries = [
        ScoreEntry(id=f"{game.id}-{u}", game_id=game.id, user_id=u, display_name=u.upper(), score=s)
        for u, s in scores.items()
    ]
    return game, entries


async def seed_session(
    repo: SqliteLedgerRepository,
    room_id: str,
    rounds: list[dict[str, int]],
    start: datetime,
    *,
    pt_rate: int = 50,
    eliminated: dict[int, list[str]] | None = None,
    members: list[str] | None = None,
    special_hands: dict[int, tuple[str, str]] | None = None,
) -> list[Game]:
    """Record a room, its members and its rounds (10 minutes apart).

    Game ids are f"{room_id}-{round_number}", score ids f"{game_id}-{user_id}".
    eliminated maps a 0-based round index to the users who busted in it;
    special_hands maps a round index to (user_id, hand_type).
    """
    players = list(dict.fromkeys(u for r in rounds for u in r))
    await repo.save_room(
        Room(
            id=room_id,
            room_number=room_id[-4:],
            table_size=len(rounds[0]),
            pt_rate=pt_rate,
            created_by=players[0],
            created_at=start,
        ),
    )
    for user_id in members if members is not None else players:
        await repo.add_room_member(room_id, user_id)

    games = []
    for index, scores in enumerate(rounds):
        game, entries = make_round(room_id, index + 1, scores, start + timedelta(minutes=10 * index))
        markers = [
            StreakMarker(game_id=game.id, user_id=u, kind=StreakKind.ELIMINATED)
            for u in (eliminated or {}).get(index, [])
        ]
        hands = []
        if special_hands and index in special_hands:
            user_id, hand_type = special_hands[index]
            hands.append(
                SpecialHandRecord(
                    game_id=game.id,
                    user_id=user_id,
                    display_name=user_id.upper(),
                    hand_type=hand_type,
                    created_at=game.created_at,
                ),
            )
        await repo.record_round(game, entries, markers, hands)
        games.append(game)
    return games
