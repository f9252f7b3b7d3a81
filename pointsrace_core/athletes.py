"""Athlete registry: point ledger and status lifecycle.

Every function here mutates the state dict it is given; callers are expected
to hand in a working copy (see race._apply_transition). Precondition checks
always run before the first write, so a returned Rejection means nothing
was touched.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .rejections import Rejection
from .types import AthleteRecord

logger = logging.getLogger(__name__)

NORMAL = "normal"
LAPPED = "lapped"
DISQUALIFIED = "disqualified"
STATUSES = (NORMAL, LAPPED, DISQUALIFIED)


def new_athlete(number: int, name: str | None = None, surname: str | None = None) -> AthleteRecord:
    return {
        "number": number,
        "name": name or None,
        "surname": surname or None,
        "points": 0,
        "status": NORMAL,
        "savedPoints": 0,
    }


def find_athlete(state: Dict[str, Any], number: int) -> Optional[AthleteRecord]:
    for athlete in state.get("athletes") or []:
        if athlete.get("number") == number:
            return athlete
    return None


def get_or_create_athlete(
    state: Dict[str, Any],
    number: int,
    name: str | None = None,
    surname: str | None = None,
) -> AthleteRecord:
    """Return the athlete with `number`, registering it on first sight.

    An existing athlete without a name or surname picks up the ones supplied
    here; names already set are never overwritten.
    """
    athlete = find_athlete(state, number)
    if athlete is None:
        athlete = new_athlete(number, name, surname)
        state.setdefault("athletes", []).append(athlete)
        logger.info(f"Athlete #{number} added to the standings")
        return athlete
    if name and not athlete.get("name"):
        athlete["name"] = name
    if surname and not athlete.get("surname"):
        athlete["surname"] = surname
    return athlete


def display_name(athlete: AthleteRecord) -> str:
    parts = [athlete.get("name") or "", athlete.get("surname") or ""]
    return " ".join(p for p in parts if p)


# ---- status lifecycle ----

def _lap(athlete: AthleteRecord) -> None:
    athlete["savedPoints"] = athlete.get("points", 0)
    athlete["points"] = 0


def _restore(athlete: AthleteRecord) -> None:
    athlete["points"] = athlete.get("savedPoints", 0)
    athlete["savedPoints"] = 0


def _disqualify(athlete: AthleteRecord) -> None:
    # A lapped athlete already carries its pre-lap total in savedPoints.
    if athlete.get("status") != LAPPED:
        athlete["savedPoints"] = athlete.get("points", 0)
    athlete["points"] = 0


_TRANSITIONS = {
    (NORMAL, LAPPED): _lap,
    (LAPPED, NORMAL): _restore,
    (NORMAL, DISQUALIFIED): _disqualify,
    (LAPPED, DISQUALIFIED): _disqualify,
    (DISQUALIFIED, NORMAL): _restore,
}


def allowed_statuses(current: str) -> List[str]:
    """Statuses reachable from `current` in one step."""
    return [to for (frm, to) in _TRANSITIONS if frm == current]


def set_status(state: Dict[str, Any], number: int, status: str) -> Rejection | None:
    """Move an athlete through the normal/lapped/disqualified lifecycle.

    Returns:
        None on success, otherwise UnknownAthlete or InvalidStatusTransition.
    """
    athlete = find_athlete(state, number)
    if athlete is None:
        return Rejection(kind="UnknownAthlete", message=f"athlete #{number} is not registered")

    current = athlete.get("status", NORMAL)
    transition = _TRANSITIONS.get((current, status))
    if transition is None:
        return Rejection(
            kind="InvalidStatusTransition",
            message=f"athlete #{number} cannot go from {current} to {status}",
        )

    transition(athlete)
    athlete["status"] = status
    logger.info(
        f"Athlete #{number} {current} -> {status} "
        f"(points={athlete['points']}, saved={athlete['savedPoints']})"
    )
    return None


def modify_points(state: Dict[str, Any], number: int, delta: int) -> Rejection | None:
    """Free-form correction, floored at zero. Checkpoint bookkeeping is untouched."""
    athlete = find_athlete(state, number)
    if athlete is None:
        return Rejection(kind="UnknownAthlete", message=f"athlete #{number} is not registered")
    athlete["points"] = max(0, athlete.get("points", 0) + int(delta))
    logger.info(f"Manual correction {delta:+d} for #{number} (total: {athlete['points']})")
    return None


def _renumber_assignments(assignments: List[Dict[str, Any]], old: int, new: int) -> None:
    for assignment in assignments:
        if assignment.get("number") == old:
            assignment["number"] = new


def edit_athlete(
    state: Dict[str, Any],
    number: int,
    new_number: int | None = None,
    name: str | None = None,
    surname: str | None = None,
) -> Rejection | None:
    """Rename and/or renumber an athlete. None leaves a field as it is.

    Renumbering rewrites every reference to the old number in the open
    checkpoint and in the checkpoint history, so undo and tie-breaks keep
    following the same athlete.
    """
    athlete = find_athlete(state, number)
    if athlete is None:
        return Rejection(kind="UnknownAthlete", message=f"athlete #{number} is not registered")
    target = number if new_number is None else new_number
    if target != number and find_athlete(state, target) is not None:
        return Rejection(
            kind="DuplicateAthleteNumber",
            message=f"number #{target} already belongs to another athlete",
        )

    if name is not None:
        athlete["name"] = name or None
    if surname is not None:
        athlete["surname"] = surname or None

    if target != number:
        athlete["number"] = target
        for entry in state.get("checkpointHistory") or []:
            _renumber_assignments(entry.get("athletes") or [], number, target)
        checkpoint = state.get("currentCheckpoint") or {}
        _renumber_assignments(checkpoint.get("assignedAthletes") or [], number, target)
        logger.info(f"Athlete #{number} renumbered to #{target}")
    return None
