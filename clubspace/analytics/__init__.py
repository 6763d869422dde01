"""Tabular reports over player stats and archived attendance."""

from .leaderboard import (
    LEADERBOARD_METRICS,
    attendance_percentages,
    export_csv,
    leaderboard,
    stats_frame,
)

__all__ = [
    "LEADERBOARD_METRICS",
    "attendance_percentages",
    "export_csv",
    "leaderboard",
    "stats_frame",
]
