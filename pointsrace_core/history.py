"""Checkpoint history and single-step undo.

One entry exists per checkpoint that received at least one assignment. The
newest entry keeps being overwritten while its checkpoint is open; once the
checkpoint completes the entry is only read (undo, tie-break, export).
"""
from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .athletes import find_athlete
from .config import RaceRules, points_pool
from .rejections import Rejection, race_ended
from .types import HistoryEntry

logger = logging.getLogger(__name__)


def record_assignment(state: Dict[str, Any], is_first: bool) -> None:
    """Mirror the open checkpoint's assignments into the history."""
    checkpoint = state["currentCheckpoint"]
    history: List[HistoryEntry] = state.setdefault("checkpointHistory", [])
    snapshot = [dict(a) for a in checkpoint["assignedAthletes"]]
    if is_first or not history:
        history.append(
            {
                "number": checkpoint["number"],
                "athletes": snapshot,
                "lapsBeforeDecrement": state.get("lapsRemaining", 0),
            }
        )
        return
    history[-1]["athletes"] = snapshot


def can_undo(state: Dict[str, Any]) -> bool:
    return bool(state.get("checkpointHistory")) and not state.get("raceEnded")


def undo_last_checkpoint(state: Dict[str, Any]) -> Tuple[Optional[HistoryEntry], Rejection | None]:
    """Revert the newest history entry, completed or still open.

    Points are taken back from each athlete without touching status, the lap
    counter returns to its value before the checkpoint, and the checkpoint is
    reopened empty with its pool recomputed from the restored lap counter.

    Returns:
        (popped entry, None) on success, (None, rejection) otherwise.
    """
    if state.get("raceEnded"):
        return None, race_ended()
    history = state.get("checkpointHistory") or []
    if not history:
        return None, Rejection(kind="NothingToUndo", message="no checkpoint to undo")

    entry = history.pop()
    for assignment in entry["athletes"]:
        athlete = find_athlete(state, assignment["number"])
        if athlete is None:
            continue
        # Floor at zero: a lapped athlete already shows 0 points.
        athlete["points"] = max(0, athlete.get("points", 0) - assignment["points"])

    state["lapsRemaining"] = entry["lapsBeforeDecrement"]
    frequency = (state.get("config") or {}).get("pointsFrequency", RaceRules.EVERY_LAP)
    state["currentCheckpoint"] = {
        "number": entry["number"],
        "assignedAthletes": [],
        "availablePoints": points_pool(frequency, state["lapsRemaining"]),
    }
    logger.info(
        f"Checkpoint {entry['number']} undone "
        f"({len(entry['athletes'])} assignments reverted, laps={state['lapsRemaining']})"
    )
    return deepcopy(entry), None


def latest_final_entry(history: Sequence[HistoryEntry]) -> Optional[HistoryEntry]:
    """Newest entry holding a top-value assignment: the last finish reached so far."""
    for entry in reversed(history):
        if any(a.get("points") == RaceRules.FINAL_POINTS for a in entry.get("athletes") or []):
            return entry
    return None
