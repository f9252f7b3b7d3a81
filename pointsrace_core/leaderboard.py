"""Leaderboard ranking (status buckets + points + finish tie-break).

Single source of truth for standings across display and export:
- Bucket: normal before lapped before disqualified.
- Within a bucket: total points, descending.
- Equal points: points scored at the latest finish reached so far (the newest
  history entry holding a 3), then arrival order in that entry. Athletes
  missing from that entry count as 0 points and last arrival.
- Anything still tied keeps registry order (Python's sort is stable).
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Mapping, Sequence

from .athletes import DISQUALIFIED, LAPPED, NORMAL
from .history import latest_final_entry

AthleteStatus = Literal["normal", "lapped", "disqualified"]

_BUCKETS = {NORMAL: 0, LAPPED: 1, DISQUALIFIED: 2}


@dataclass(frozen=True)
class FinishResult:
    points: int
    order: float  # index in the finish entry; inf when absent


@dataclass(frozen=True)
class LeaderboardRow:
    number: int
    name: str | None
    surname: str | None
    points: int
    saved_points: int
    status: AthleteStatus
    position: int
    # Export convention: 'SQ' disqualified, 'D' lapped, else the position
    position_label: str
    finish_points: int


@dataclass(frozen=True)
class LeaderboardResult:
    rows: tuple[LeaderboardRow, ...]
    # Checkpoint used for tie-breaks, None before any finish was scored
    final_checkpoint_number: int | None


_NO_FINISH = FinishResult(points=0, order=math.inf)


def _finish_results(entry: Mapping | None) -> dict[int, FinishResult]:
    if entry is None:
        return {}
    results: dict[int, FinishResult] = {}
    for idx, assignment in enumerate(entry.get("athletes") or []):
        number = assignment.get("number")
        if number not in results:
            results[number] = FinishResult(points=int(assignment.get("points", 0)), order=idx)
    return results


def _status_bucket(status: str | None) -> int:
    # Unknown statuses rank with normal athletes.
    return _BUCKETS.get(status or NORMAL, 0)


def _position_label(status: str, position: int) -> str:
    if status == DISQUALIFIED:
        return "SQ"
    if status == LAPPED:
        return "D"
    return str(position)


def compute_leaderboard(
    athletes: Sequence[Mapping],
    history: Sequence[Mapping],
) -> LeaderboardResult:
    """Produce the total order over all athletes.

    Pure: reads the registry and history, returns new frozen rows, mutates
    nothing.
    """
    final_entry = latest_final_entry(history)
    finish = _finish_results(final_entry)

    def sort_key(athlete: Mapping) -> tuple[int, int, int, float]:
        result = finish.get(athlete.get("number"), _NO_FINISH)
        return (
            _status_bucket(athlete.get("status")),
            -int(athlete.get("points", 0)),
            -result.points,
            result.order,
        )

    ordered = sorted(athletes, key=sort_key)
    rows = []
    for position, athlete in enumerate(ordered, start=1):
        status = athlete.get("status") or NORMAL
        rows.append(
            LeaderboardRow(
                number=int(athlete["number"]),
                name=athlete.get("name"),
                surname=athlete.get("surname"),
                points=int(athlete.get("points", 0)),
                saved_points=int(athlete.get("savedPoints", 0)),
                status=status,
                position=position,
                position_label=_position_label(status, position),
                finish_points=finish.get(athlete.get("number"), _NO_FINISH).points,
            )
        )
    return LeaderboardResult(
        rows=tuple(rows),
        final_checkpoint_number=final_entry.get("number") if final_entry else None,
    )
