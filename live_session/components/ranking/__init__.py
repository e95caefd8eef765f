"""
Ranking: pure leaderboard derivation and per-activity history.
"""

from live_session.components.ranking.engine import (
    rank,
    rank_deltas,
    ranking_changes,
    has_score_changes,
    RankingChange,
    RankDirection,
)
from live_session.components.ranking.history import RankingHistory, RankingChangeData

__all__ = [
    "rank",
    "rank_deltas",
    "ranking_changes",
    "has_score_changes",
    "RankingChange",
    "RankDirection",
    "RankingHistory",
    "RankingChangeData",
]
