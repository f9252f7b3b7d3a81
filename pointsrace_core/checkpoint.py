"""Checkpoint engine: the open checkpoint's point pool and lap countdown.

State transitions:
- initialize_checkpoint: opens the next checkpoint with a {2,1} pool, or
  {3,2,1} when it coincides with the finish
- assign_points: hands one pool value to one athlete; emptying the pool
  completes the checkpoint synchronously
- complete_checkpoint: consumes one or two laps and opens the next
  checkpoint while laps remain
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from .athletes import DISQUALIFIED, find_athlete, get_or_create_athlete
from .config import RaceRules, is_final_checkpoint, points_pool
from .history import record_assignment
from .rejections import Rejection, race_ended

logger = logging.getLogger(__name__)


def _frequency(state: Dict[str, Any]) -> str:
    return (state.get("config") or {}).get("pointsFrequency", RaceRules.EVERY_LAP)


def is_current_checkpoint_final(state: Dict[str, Any]) -> bool:
    return is_final_checkpoint(_frequency(state), state.get("lapsRemaining", 0))


def empty_checkpoint() -> Dict[str, Any]:
    return {"number": 0, "assignedAthletes": [], "availablePoints": []}


def initialize_checkpoint(state: Dict[str, Any]) -> None:
    checkpoint = state.setdefault("currentCheckpoint", empty_checkpoint())
    checkpoint["number"] = checkpoint.get("number", 0) + 1
    checkpoint["assignedAthletes"] = []
    checkpoint["availablePoints"] = points_pool(_frequency(state), state.get("lapsRemaining", 0))
    logger.debug(
        f"Checkpoint {checkpoint['number']} initialized, final: "
        f"{is_current_checkpoint_final(state)}, points: {checkpoint['availablePoints']}"
    )


def is_assigned_in_checkpoint(state: Dict[str, Any], athlete_number: int) -> bool:
    return any(
        a.get("number") == athlete_number
        for a in state["currentCheckpoint"].get("assignedAthletes") or []
    )


def complete_checkpoint(state: Dict[str, Any]) -> bool:
    """Consume the checkpoint's laps. Returns True when no laps remain."""
    checkpoint = state["currentCheckpoint"]
    state["lapsRemaining"] = state.get("lapsRemaining", 0) - RaceRules.LAPS_PER_CHECKPOINT.get(
        _frequency(state), 1
    )
    logger.info(
        f"Checkpoint {checkpoint['number']} completed - laps remaining: {state['lapsRemaining']}"
    )
    if state["lapsRemaining"] > 0:
        initialize_checkpoint(state)
        return False
    return state["lapsRemaining"] == 0


def assign_points(
    state: Dict[str, Any],
    athlete_number: int,
    points: int,
    name: str | None = None,
    surname: str | None = None,
) -> Tuple[bool, Rejection | None]:
    """Hand `points` from the open pool to an athlete.

    Preconditions are checked in this order, the first failing one wins:
    RaceEnded, PointsNotAvailable, DuplicateAssignment, AthleteDisqualified.

    Returns:
        (race_may_end, rejection). race_may_end is True when this
        assignment completed the checkpoint that used up the last laps.
    """
    if state.get("raceEnded"):
        return False, race_ended()

    checkpoint = state["currentCheckpoint"]
    if points not in checkpoint.get("availablePoints", []):
        return False, Rejection(
            kind="PointsNotAvailable",
            message=f"{points} points cannot be assigned at checkpoint {checkpoint.get('number')}",
        )
    if is_assigned_in_checkpoint(state, athlete_number):
        return False, Rejection(
            kind="DuplicateAssignment",
            message=f"athlete #{athlete_number} already scored at this checkpoint",
        )
    existing = find_athlete(state, athlete_number)
    if existing is not None and existing.get("status") == DISQUALIFIED:
        return False, Rejection(
            kind="AthleteDisqualified",
            message=f"athlete #{athlete_number} is disqualified, reinstate before scoring",
        )

    athlete = get_or_create_athlete(state, athlete_number, name, surname)
    is_first = not checkpoint["assignedAthletes"]

    athlete["points"] = athlete.get("points", 0) + points
    checkpoint["assignedAthletes"].append({"number": athlete_number, "points": points})
    checkpoint["availablePoints"].remove(points)
    logger.info(
        f"Assigned {points} points to #{athlete_number} (checkpoint {checkpoint['number']})"
    )

    record_assignment(state, is_first)

    if not checkpoint["availablePoints"]:
        return complete_checkpoint(state), None
    return False, None


def checkpoint_summary(state: Dict[str, Any]) -> Dict[str, Any]:
    checkpoint = state.get("currentCheckpoint") or empty_checkpoint()
    return {
        "number": checkpoint.get("number", 0),
        "availablePoints": list(checkpoint.get("availablePoints") or []),
        "assignedAthletes": [dict(a) for a in checkpoint.get("assignedAthletes") or []],
    }
