"""
Ranking history across activities.

The host view shows how the leaderboard moved between the end of one
activity and the end of the next. RankingHistory keeps one ranked snapshot
per activity id, in the order they were recorded, and derives the changes
between consecutive activities.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Sequence

from live_session.components.events.types import RankedParticipant
from live_session.components.ranking.engine import RankingChange, ranking_changes


@dataclass(frozen=True, slots=True)
class RankingChangeData:
    """Ranked snapshot of an activity plus its movement since the previous one."""

    participants: tuple[RankedParticipant, ...]
    changes: dict[str, RankingChange]
    previous_activity_id: str | None
    current_activity_id: str
    timestamp: float = field(default_factory=time.time)


class RankingHistory:
    """Per-activity ranked snapshots for one session."""

    def __init__(self) -> None:
        self._snapshots: dict[str, tuple[RankedParticipant, ...]] = {}

    def record(self, activity_id: str, ranked: Sequence[RankedParticipant]) -> None:
        """
        Store the ranking at the end of activity_id.

        Re-recording an activity replaces its snapshot but keeps its place
        in the order.
        """
        self._snapshots[activity_id] = tuple(ranked)

    def snapshot(self, activity_id: str) -> tuple[RankedParticipant, ...] | None:
        return self._snapshots.get(activity_id)

    @property
    def activity_ids(self) -> list[str]:
        return list(self._snapshots)

    def previous_activity_id(self, activity_id: str) -> str | None:
        """The activity recorded immediately before activity_id, if any."""
        ids = self.activity_ids
        try:
            position = ids.index(activity_id)
        except ValueError:
            return ids[-1] if ids else None
        return ids[position - 1] if position > 0 else None

    def changes_for(self, activity_id: str) -> RankingChangeData | None:
        """
        Changes between the previous recorded activity and activity_id.

        For the first recorded activity every participant is NEW.
        Returns None if activity_id was never recorded.
        """
        current = self._snapshots.get(activity_id)
        if current is None:
            return None

        previous_id = self.previous_activity_id(activity_id)
        previous = self._snapshots[previous_id] if previous_id is not None else ()
        return RankingChangeData(
            participants=current,
            changes=ranking_changes(previous, current),
            previous_activity_id=previous_id,
            current_activity_id=activity_id,
        )

    def clear(self) -> None:
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)
