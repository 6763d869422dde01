"""
pandas views of the ``stats`` collection and archived attendance.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from ..records import (
    STAT_ATTENDANCE_FIELDS,
    STAT_RESULT_FIELDS,
    Attendance,
    Event,
    EventType,
    PlayerStats,
)

LOGGER = logging.getLogger(__name__)

LEADERBOARD_METRICS = STAT_ATTENDANCE_FIELDS + ("totalAttended",) + STAT_RESULT_FIELDS

STATS_COLUMNS = ["userId", "displayName", *LEADERBOARD_METRICS]

ATTENDANCE_COLUMNS = [
    "userId",
    "displayName",
    "matchesAttended",
    "matchesPlayedPct",
    "trainingsAttended",
    "trainingsPct",
]


def stats_frame(stats: Iterable[PlayerStats]) -> pd.DataFrame:
    """
    One row per player with every counter as an integer column.
    """
    records = []
    for item in stats:
        doc = item.to_document()
        records.append({column: doc.get(column, 0) for column in STATS_COLUMNS})
    if not records:
        return pd.DataFrame(columns=STATS_COLUMNS)
    df = pd.DataFrame.from_records(records, columns=STATS_COLUMNS)
    numeric = list(LEADERBOARD_METRICS)
    df[numeric] = df[numeric].fillna(0).astype(int)
    return df


def leaderboard(
    stats: Iterable[PlayerStats],
    metric: str = "goals",
    *,
    limit: Optional[int] = 10,
    ascending: bool = False,
) -> pd.DataFrame:
    """
    Players ranked by ``metric``, ties broken by display name.
    """
    if metric not in LEADERBOARD_METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Choose one of {', '.join(LEADERBOARD_METRICS)}.")
    df = stats_frame(stats)
    if df.empty:
        return df
    df = df.sort_values([metric, "displayName"], ascending=[ascending, True], kind="mergesort")
    if limit is not None:
        df = df.head(limit)
    df = df.reset_index(drop=True)
    df.insert(0, "rank", range(1, len(df) + 1))
    return df


def _percentage(part: pd.Series, total: int) -> pd.Series:
    if total <= 0:
        return pd.Series([0.0] * len(part), index=part.index)
    return (part / total * 100).round(1)


def attendance_percentages(
    events: Sequence[Event],
    attendances: Sequence[Attendance],
) -> pd.DataFrame:
    """
    Attendance rate per player over archived matches and trainings.

    Suspended events and other event types are left out of both the numerator
    and the denominator.
    """
    counted = {
        event.id: event.type
        for event in events
        if event.type.counts_for_stats and not event.suspended
    }
    total_matches = sum(1 for kind in counted.values() if kind is EventType.MATCH)
    total_trainings = sum(1 for kind in counted.values() if kind is EventType.TRAINING)

    rows: List[dict] = []
    for attendance in attendances:
        kind = counted.get(attendance.event_id)
        if kind is None or not attendance.attending:
            continue
        rows.append(
            {
                "userId": attendance.user_id,
                "displayName": attendance.user_display_name,
                "match": int(kind is EventType.MATCH),
                "training": int(kind is EventType.TRAINING),
            }
        )
    if not rows:
        return pd.DataFrame(columns=ATTENDANCE_COLUMNS)

    df = pd.DataFrame.from_records(rows)
    grouped = (
        df.groupby("userId", dropna=False)
        .agg(
            displayName=("displayName", "last"),
            matchesAttended=("match", "sum"),
            trainingsAttended=("training", "sum"),
        )
        .reset_index()
    )
    grouped["matchesPlayedPct"] = _percentage(grouped["matchesAttended"], total_matches)
    grouped["trainingsPct"] = _percentage(grouped["trainingsAttended"], total_trainings)
    grouped = grouped.sort_values(
        ["trainingsPct", "matchesPlayedPct", "displayName"],
        ascending=[False, False, True],
        kind="mergesort",
    )
    return grouped[ATTENDANCE_COLUMNS].reset_index(drop=True)


def export_csv(df: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    LOGGER.info("Wrote %s row(s) to %s", len(df), path)
    return path
