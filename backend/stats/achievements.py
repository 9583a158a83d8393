"""
Achievement badges computed from a chronological game history.

All counters come from a single forward pass over the partition's games in
created_at order. Streak counters use non-overlapping windows: when a run
reaches its target length it scores once and restarts from zero, so six
straight first places make two flows, not four.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from stats.ledger import placements
from stats.types import AchievementBadge, AchievementRecord

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.models import ScoreEntry
    from stats.ledger import LedgerSnapshot

logger = structlog.get_logger()

FLOW_STREAK = 3  # consecutive first places
ANTEI_STREAK = 5  # consecutive positive scores
FUGOU_MIN_SCORE = 100
AISHOU_MIN_GAMES = 10  # games won together before an opponent can be a nemesis

ACHIEVEMENTS: tuple[AchievementBadge, ...] = (
    AchievementBadge(key="tobashi", icon="💥", label="飛ばし", description="Times busting an opponent"),
    AchievementBadge(key="flow", icon="🔥", label="雀士フロー", description="Runs of 3 consecutive first places"),
    AchievementBadge(key="fugou", icon="💰", label="富豪", description="Games scoring 100 or more"),
    AchievementBadge(key="yakuman", icon="🀄", label="役満", description="Yakuman hands won"),
    AchievementBadge(key="antei", icon="🧠", label="安定", description="Runs of 5 consecutive positive scores"),
    AchievementBadge(key="wipeout", icon="👑", label="Wipe Out", description="Games where every opponent busted"),
    AchievementBadge(key="aishou", icon="⭕️", label="相性", description="Opponent most often sent to last place"),
)


@dataclass
class _Rivalry:
    games: int = 0  # games won with this opponent at the table
    last_count: int = 0  # of those, games the opponent finished last


@dataclass
class _Tally:
    display_name: str
    avatar_url: str | None
    tobashi_count: int = 0
    flow_count: int = 0
    fugou_count: int = 0
    antei_count: int = 0
    wipeout_count: int = 0
    first_run: int = 0
    positive_run: int = 0
    rivals: dict[str, _Rivalry] = field(default_factory=dict)

    def record_rank(self, rank: int) -> None:
        if rank != 1:
            self.first_run = 0
            return
        self.first_run += 1
        if self.first_run == FLOW_STREAK:
            self.flow_count += 1
            self.first_run = 0

    def record_score(self, score: int) -> None:
        if score >= FUGOU_MIN_SCORE:
            self.fugou_count += 1
        if score <= 0:
            self.positive_run = 0
            return
        self.positive_run += 1
        if self.positive_run == ANTEI_STREAK:
            self.antei_count += 1
            self.positive_run = 0


def _record_wipeout(tallies: dict[str, _Tally], snapshot: LedgerSnapshot, game_id: str, entries: list[ScoreEntry]) -> None:
    """Credit the sole survivor when every other participant busted.

    Only the size of the eliminated set among participants is trusted;
    eliminator markers and marker exclusivity are not.
    """
    participants = {e.user_id for e in entries}
    eliminated = snapshot.eliminated_by_game.get(game_id, frozenset()) & participants
    if len(eliminated) != len(entries) - 1:
        return
    for survivor in participants - eliminated:
        tallies[survivor].wipeout_count += 1


def _record_rivalries(tallies: dict[str, _Tally], ordered: list[ScoreEntry]) -> None:
    winner, last = ordered[0], ordered[-1]
    rivals = tallies[winner.user_id].rivals
    for opponent in ordered[1:]:
        rivalry = rivals.setdefault(opponent.user_id, _Rivalry())
        rivalry.games += 1
        if opponent.user_id == last.user_id:
            rivalry.last_count += 1


def _nemesis_name(tally: _Tally, tallies: dict[str, _Tally]) -> str | None:
    """Opponent with the highest last-place rate among those met often enough.

    The rate must be positive; on equal rates the first opponent met wins.
    """
    best_rate = 0.0
    best: str | None = None
    for opponent_id, rivalry in tally.rivals.items():
        if rivalry.games < AISHOU_MIN_GAMES:
            continue
        rate = rivalry.last_count / rivalry.games
        if rate > best_rate:
            best_rate = rate
            best = opponent_id
    if best is None:
        return None
    return tallies[best].display_name


def compute_achievements(snapshot: LedgerSnapshot, game_ids: Iterable[str]) -> list[AchievementRecord]:
    """Compute every player's counters over the given games, in first-seen order.

    Games are replayed in created_at order; games without scores are skipped.
    The result is unfiltered; see rank_achievements.
    """
    tallies: dict[str, _Tally] = {}
    replayed: list[str] = []

    for game in snapshot.chronological(game_ids):
        entries = snapshot.scores_by_game.get(game.id)
        if not entries:
            logger.debug("skipping game without scores", game_id=game.id)
            continue
        replayed.append(game.id)
        ordered = placements(entries)
        eliminators = snapshot.eliminators_by_game.get(game.id, frozenset())
        for idx, entry in enumerate(ordered):
            tally = tallies.get(entry.user_id)
            if tally is None:
                tally = tallies[entry.user_id] = _Tally(display_name=entry.display_name, avatar_url=entry.avatar_url)
            tally.record_rank(idx + 1)
            tally.record_score(entry.score)
            if entry.user_id in eliminators:
                tally.tobashi_count += 1

        if len(ordered) > 1:
            _record_wipeout(tallies, snapshot, game.id, ordered)
            _record_rivalries(tallies, ordered)

    yakuman = Counter(
        h.user_id for game_id in replayed for h in snapshot.special_hands_by_game.get(game_id, ())
    )

    return [
        AchievementRecord(
            user_id=user_id,
            display_name=tally.display_name,
            avatar_url=tally.avatar_url,
            tobashi_count=tally.tobashi_count,
            flow_count=tally.flow_count,
            fugou_count=tally.fugou_count,
            yakuman_count=yakuman[user_id],
            antei_count=tally.antei_count,
            wipeout_count=tally.wipeout_count,
            aishou_name=_nemesis_name(tally, tallies),
        )
        for user_id, tally in tallies.items()
    ]


def rank_achievements(records: Iterable[AchievementRecord]) -> list[AchievementRecord]:
    """Drop rows with nothing to show and order by total badge count, highest first."""
    kept = [r for r in records if not r.is_empty]
    kept.sort(key=lambda r: r.total_count, reverse=True)
    return kept


def build_achievements(snapshot: LedgerSnapshot, game_ids: Iterable[str]) -> list[AchievementRecord]:
    return rank_achievements(compute_achievements(snapshot, game_ids))
