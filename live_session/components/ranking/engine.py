"""
Leaderboard Ranking Engine.

Pure functions over participant snapshots. Nothing here mutates its input
or keeps state between calls, so every observer deriving a leaderboard
from the same snapshot gets the same answer.

Ranking rules:
- Score descending.
- Equal scores keep their relative order from the input snapshot (stable),
  so two tied participants do not swap places between snapshots.
- Ranks are distinct and sequential (1, 2, 3, ...) even for equal scores.
  This is intended behavior, not competition ranking.

All identity comparisons use participant_key. Display names may collide.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Collection, Iterable, Sequence

from live_session.components.events.types import Participant, RankedParticipant


class RankDirection(StrEnum):
    UP = "up"
    DOWN = "down"
    SAME = "same"
    NEW = "new"


@dataclass(frozen=True, slots=True)
class RankingChange:
    """
    Movement of one participant between two ranked snapshots.

    Attributes:
        previous: Rank in the earlier snapshot, None if the participant is new.
        current: Rank in the later snapshot.
        change: Number of places moved (always >= 0).
        direction: up / down / same / new.
    """

    previous: int | None
    current: int
    change: int
    direction: RankDirection


def rank(
    participants: Iterable[Participant],
    exclude_keys: Collection[str] = (),
) -> list[RankedParticipant]:
    """
    Rank a participant snapshot.

    Args:
        participants: Snapshot in server order.
        exclude_keys: Participant keys to leave out (e.g. the host's own
            entry when the host is not playing).

    Returns:
        Ranked participants, best first, with 1-based distinct ranks.
    """
    candidates = [p for p in participants if p.participant_key not in exclude_keys]
    # sorted() is stable: ties keep input order
    ordered = sorted(candidates, key=lambda p: -p.realtime_score)
    return [
        RankedParticipant(participant=p, realtime_ranking=index)
        for index, p in enumerate(ordered, start=1)
    ]


def _index_by_key(ranked: Sequence[RankedParticipant]) -> dict[str, int]:
    return {rp.participant_key: index for index, rp in enumerate(ranked)}


def rank_deltas(
    previous: Sequence[RankedParticipant],
    current: Sequence[RankedParticipant],
) -> dict[str, int]:
    """
    Rank movement per participant between two ranked lists.

    delta = previous_index - new_index, so positive means moved up.
    Participants missing from previous have no entry.
    """
    previous_index = _index_by_key(previous)
    deltas: dict[str, int] = {}
    for new_index, rp in enumerate(current):
        old_index = previous_index.get(rp.participant_key)
        if old_index is not None:
            deltas[rp.participant_key] = old_index - new_index
    return deltas


def ranking_changes(
    previous: Sequence[RankedParticipant],
    current: Sequence[RankedParticipant],
) -> dict[str, RankingChange]:
    """
    Describe every current participant's movement since previous.

    Unlike rank_deltas, participants new to current are included with
    direction NEW.
    """
    previous_rank = {rp.participant_key: rp.realtime_ranking for rp in previous}
    changes: dict[str, RankingChange] = {}
    for rp in current:
        before = previous_rank.get(rp.participant_key)
        if before is None:
            changes[rp.participant_key] = RankingChange(
                previous=None,
                current=rp.realtime_ranking,
                change=0,
                direction=RankDirection.NEW,
            )
            continue

        moved = before - rp.realtime_ranking
        if moved > 0:
            direction = RankDirection.UP
        elif moved < 0:
            direction = RankDirection.DOWN
        else:
            direction = RankDirection.SAME
        changes[rp.participant_key] = RankingChange(
            previous=before,
            current=rp.realtime_ranking,
            change=abs(moved),
            direction=direction,
        )
    return changes


def has_score_changes(
    previous: Sequence[RankedParticipant],
    current: Sequence[RankedParticipant],
) -> bool:
    """
    Whether any participant joined, left, or changed score or rank.
    """
    if len(previous) != len(current):
        return True

    before = {rp.participant_key: (rp.realtime_score, rp.realtime_ranking) for rp in previous}
    for rp in current:
        if before.get(rp.participant_key) != (rp.realtime_score, rp.realtime_ranking):
            return True
    return False
