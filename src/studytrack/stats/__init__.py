"""Streaks, rollups and the leaderboard."""

from .aggregates import SessionAggregates, StatsSnapshot
from .leaderboard import LeaderboardBuilder, LeaderboardEntry
from .rollups import RollupLedger, RollupView
from .streaks import StreakEngine, StreakResult, current_streak, study_dates

__all__ = [
    "LeaderboardBuilder",
    "LeaderboardEntry",
    "RollupLedger",
    "RollupView",
    "SessionAggregates",
    "StatsSnapshot",
    "StreakEngine",
    "StreakResult",
    "current_streak",
    "study_dates",
]
