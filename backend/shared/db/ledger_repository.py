"""SQLite-backed score ledger repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.ledger_repository import LedgerRepository
from shared.dal.models import Game, Profile, Room, ScoreEntry, SpecialHandRecord, StreakKind, StreakMarker

if TYPE_CHECKING:
    from collections.abc import Collection

    from shared.db.connection import Database

logger = structlog.get_logger()

_SCORE_COLUMNS = "id, game_id, user_id, display_name, avatar_url, score"


def _id_list(ids: Collection[str]) -> str:
    """Encode ids as a JSON array for json_each() membership filters."""
    return json.dumps(list(ids))


def _score_from_row(row: tuple[Any, ...]) -> ScoreEntry:
    return ScoreEntry(
        id=row[0],
        game_id=row[1],
        user_id=row[2],
        display_name=row[3],
        avatar_url=row[4],
        score=row[5],
    )


class SqliteLedgerRepository(LedgerRepository):
    """SQLite implementation of LedgerRepository.

    Id-list filters go through json_each so arbitrarily large id sets
    never hit the bound-parameter limit. Writes are serialized with a lock.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def record_round(
        self,
        game: Game,
        scores: list[ScoreEntry],
        markers: list[StreakMarker] | None = None,
        special_hands: list[SpecialHandRecord] | None = None,
    ) -> None:
        """Insert a confirmed round atomically.

        A round that violates a uniqueness constraint (already recorded game,
        repeated score id or player) is logged and skipped as a whole.
        """
        conn = self._db.connection
        async with self._lock:
            try:
                conn.execute("BEGIN")
                conn.execute(
                    "INSERT INTO games (id, room_id, round_number, created_at) VALUES (?, ?, ?, ?)",
                    (game.id, game.room_id, game.round_number, game.created_at.isoformat()),
                )
                conn.executemany(
                    f"INSERT INTO game_scores ({_SCORE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",  # noqa: S608
                    [(s.id, s.game_id, s.user_id, s.display_name, s.avatar_url, s.score) for s in scores],
                )
                conn.executemany(
                    "INSERT INTO tobashi_records (game_id, user_id, type) VALUES (?, ?, ?)",
                    [(m.game_id, m.user_id, m.kind.value) for m in markers or []],
                )
                conn.executemany(
                    "INSERT INTO yakuman_records "
                    "(game_id, user_id, display_name, avatar_url, yakuman_type, winning_tile, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            h.game_id,
                            h.user_id,
                            h.display_name,
                            h.avatar_url,
                            h.hand_type,
                            h.winning_tile,
                            h.created_at.isoformat(),
                        )
                        for h in special_hands or []
                    ],
                )
                conn.execute("COMMIT")
            except sqlite3.IntegrityError:
                conn.execute("ROLLBACK")
                logger.warning("round rejected by ledger constraints, nothing written", game_id=game.id)
            except Exception:
                conn.execute("ROLLBACK")
                raise

    async def save_room(self, room: Room) -> None:
        """Insert or replace a room row."""
        async with self._lock:
            self._db.connection.execute(
                "INSERT OR REPLACE INTO rooms (id, room_number, table_size, pt_rate, created_by, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (room.id, room.room_number, room.table_size, room.pt_rate, room.created_by, room.created_at.isoformat()),
            )
            self._db.connection.commit()

    async def add_room_member(self, room_id: str, user_id: str) -> None:
        async with self._lock:
            self._db.connection.execute(
                "INSERT OR IGNORE INTO room_members (room_id, user_id) VALUES (?, ?)",
                (room_id, user_id),
            )
            self._db.connection.commit()

    async def save_profile(self, profile: Profile) -> None:
        async with self._lock:
            self._db.connection.execute(
                "INSERT OR REPLACE INTO profiles (id, username, avatar_url) VALUES (?, ?, ?)",
                (profile.id, profile.username, profile.avatar_url),
            )
            self._db.connection.commit()

    async def list_scores(
        self,
        game_ids: Collection[str] | None = None,
        user_ids: Collection[str] | None = None,
    ) -> list[ScoreEntry]:
        """Return score rows in insertion order, filtered by game and/or user ids."""
        clauses: list[str] = []
        params: list[str] = []
        if game_ids is not None:
            clauses.append("game_id IN (SELECT value FROM json_each(?))")
            params.append(_id_list(game_ids))
        if user_ids is not None:
            clauses.append("user_id IN (SELECT value FROM json_each(?))")
            params.append(_id_list(user_ids))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._db.connection.execute(
            f"SELECT {_SCORE_COLUMNS} FROM game_scores{where} ORDER BY rowid",  # noqa: S608
            params,
        ).fetchall()
        return [_score_from_row(row) for row in rows]

    async def list_games(
        self,
        room_ids: Collection[str] | None = None,
        game_ids: Collection[str] | None = None,
    ) -> list[Game]:
        """Return games ordered by created_at ascending (insertion order on ties)."""
        clauses: list[str] = []
        params: list[str] = []
        if room_ids is not None:
            clauses.append("room_id IN (SELECT value FROM json_each(?))")
            params.append(_id_list(room_ids))
        if game_ids is not None:
            clauses.append("id IN (SELECT value FROM json_each(?))")
            params.append(_id_list(game_ids))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._db.connection.execute(
            f"SELECT id, room_id, round_number, created_at FROM games{where} ORDER BY created_at, rowid",  # noqa: S608
            params,
        ).fetchall()
        return [
            Game(id=row[0], room_id=row[1], round_number=row[2], created_at=datetime.fromisoformat(row[3]))
            for row in rows
        ]

    async def list_streak_markers(
        self,
        game_ids: Collection[str],
        kind: StreakKind | None = None,
    ) -> list[StreakMarker]:
        sql = "SELECT game_id, user_id, type FROM tobashi_records WHERE game_id IN (SELECT value FROM json_each(?))"
        params = [_id_list(game_ids)]
        if kind is not None:
            sql += " AND type = ?"
            params.append(kind.value)
        rows = self._db.connection.execute(sql + " ORDER BY rowid", params).fetchall()
        return [StreakMarker(game_id=row[0], user_id=row[1], kind=StreakKind(row[2])) for row in rows]

    async def list_special_hands(self, game_ids: Collection[str]) -> list[SpecialHandRecord]:
        rows = self._db.connection.execute(
            "SELECT game_id, user_id, display_name, avatar_url, yakuman_type, winning_tile, created_at "
            "FROM yakuman_records WHERE game_id IN (SELECT value FROM json_each(?)) ORDER BY rowid",
            (_id_list(game_ids),),
        ).fetchall()
        return [
            SpecialHandRecord(
                game_id=row[0],
                user_id=row[1],
                display_name=row[2],
                avatar_url=row[3],
                hand_type=row[4],
                winning_tile=row[5],
                created_at=datetime.fromisoformat(row[6]),
            )
            for row in rows
        ]

    async def list_rooms(self, room_ids: Collection[str]) -> list[Room]:
        rows = self._db.connection.execute(
            "SELECT id, room_number, table_size, pt_rate, created_by, created_at "
            "FROM rooms WHERE id IN (SELECT value FROM json_each(?))",
            (_id_list(room_ids),),
        ).fetchall()
        return [
            Room(
                id=row[0],
                room_number=row[1],
                table_size=row[2],
                pt_rate=row[3],
                created_by=row[4],
                created_at=datetime.fromisoformat(row[5]),
            )
            for row in rows
        ]

    async def list_room_ids_for_user(self, user_id: str) -> list[str]:
        rows = self._db.connection.execute(
            "SELECT room_id FROM room_members WHERE user_id = ? ORDER BY rowid",
            (user_id,),
        ).fetchall()
        return [row[0] for row in rows]

    async def list_profiles(self, user_ids: Collection[str]) -> list[Profile]:
        rows = self._db.connection.execute(
            "SELECT id, username, avatar_url FROM profiles WHERE id IN (SELECT value FROM json_each(?))",
            (_id_list(user_ids),),
        ).fetchall()
        return [Profile(id=row[0], username=row[1], avatar_url=row[2]) for row in rows]

    async def update_score(self, score_id: str, new_score: int) -> bool:
        async with self._lock:
            cursor = self._db.connection.execute(
                "UPDATE game_scores SET score = ? WHERE id = ?",
                (new_score, score_id),
            )
            self._db.connection.commit()
        return cursor.rowcount > 0

    async def update_score_by_key(self, game_id: str, user_id: str, new_score: int) -> bool:
        async with self._lock:
            cursor = self._db.connection.execute(
                "UPDATE game_scores SET score = ? WHERE game_id = ? AND user_id = ?",
                (new_score, game_id, user_id),
            )
            self._db.connection.commit()
        return cursor.rowcount > 0
