"""Core race state transitions and the race controller.

This module implements the command layer of the points race scoring core.

Architecture:
- State is a plain dict (see types.RaceState) holding config, progress,
  athletes, the open checkpoint, checkpoint history and the action log
- Commands are plain dicts with a 'type' field (CONFIGURE, START_RACE,
  ASSIGN_POINTS, SET_STATUS, MODIFY_POINTS, UNDO_CHECKPOINT, END_RACE,
  EDIT_ATHLETE, RESET_RACE)
- apply_command() takes (state, cmd) and returns CommandOutcome with the
  updated state; transitions run on a deepcopy so a rejected command leaves
  the caller's state untouched
- RaceController owns one state dict, validates boundary input, serializes
  commands with a lock and hands every accepted snapshot to a StateStore

Race-level preconditions:
- CONFIGURE only before the start; START_RACE needs a configuration
- every other mutation needs a started, not yet ended race
- END_RACE only once the lap counter reached zero
- once raceEnded is set nothing but RESET_RACE is accepted
"""
from __future__ import annotations

import logging
import threading
from copy import deepcopy
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .athletes import display_name, edit_athlete, find_athlete, modify_points, set_status
from .checkpoint import assign_points, checkpoint_summary, empty_checkpoint, initialize_checkpoint
from .history import can_undo, undo_last_checkpoint
from .leaderboard import LeaderboardResult, compute_leaderboard
from .persistence import MemoryStateStore, StateStore
from .rejections import Rejection, race_ended, race_not_started
from .validation import InputSanitizer

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class CommandOutcome:
    """Result of applying a core command."""

    state: Dict[str, Any]
    cmd_payload: Dict[str, Any]
    snapshot_required: bool
    rejection: Rejection | None = None
    # The last checkpoint consumed the remaining laps; END_RACE is now accepted
    race_may_end: bool = False

    @property
    def ok(self) -> bool:
        return self.rejection is None


def default_state() -> Dict[str, Any]:
    """Create a fresh, unconfigured race state."""
    return {
        "config": None,
        "raceStarted": False,
        "raceEnded": False,
        "lapsRemaining": 0,
        "athletes": [],
        "currentCheckpoint": empty_checkpoint(),
        "checkpointHistory": [],
        "actionLog": [],
    }


def _log_action(state: Dict[str, Any], message: str, now: Clock) -> None:
    state.setdefault("actionLog", []).append(
        {"timestamp": now().strftime("%H:%M:%S"), "message": message}
    )


def _checkpoint_suffix(state: Dict[str, Any]) -> str:
    number = (state.get("currentCheckpoint") or {}).get("number", 0)
    return f" - checkpoint {number}" if number > 0 else ""


def _running_race_rejection(state: Dict[str, Any]) -> Rejection | None:
    if state.get("raceEnded"):
        return race_ended()
    if not state.get("raceStarted"):
        return race_not_started()
    return None


def _apply_transition(
    state: Dict[str, Any], cmd: Dict[str, Any], now: Clock
) -> CommandOutcome:
    """Apply one command to a copy of `state`.

    Returns:
        CommandOutcome with the new state, or with the unchanged input state
        and a Rejection when a precondition failed.

    Raises:
        ValueError: unknown command type (malformed caller, not a race rule)
    """
    new_state: Dict[str, Any] = deepcopy(state)
    ctype = cmd.get("type")
    payload = dict(cmd)
    race_may_end = False

    def rejected(rejection: Rejection) -> CommandOutcome:
        logger.info(f"{ctype} rejected: {rejection.kind} ({rejection.message})")
        return CommandOutcome(
            state=state, cmd_payload=payload, snapshot_required=False, rejection=rejection
        )

    if ctype == "CONFIGURE":
        if new_state.get("raceStarted"):
            return rejected(
                Rejection(kind="RaceAlreadyStarted", message="configuration is locked once started")
            )
        total_laps = int(cmd["totalLaps"])
        new_state["config"] = {
            "totalLaps": total_laps,
            "pointsFrequency": cmd.get("pointsFrequency") or "every_lap",
        }
        new_state["lapsRemaining"] = total_laps
        _log_action(
            new_state,
            f"Race configured: {total_laps} laps, points {new_state['config']['pointsFrequency']}",
            now,
        )

    elif ctype == "START_RACE":
        if new_state.get("raceStarted"):
            return rejected(Rejection(kind="RaceAlreadyStarted", message="race already started"))
        if not new_state.get("config"):
            return rejected(Rejection(kind="RaceNotConfigured", message="configure the race first"))
        new_state["raceStarted"] = True
        new_state["lapsRemaining"] = new_state["config"]["totalLaps"]
        new_state["currentCheckpoint"] = empty_checkpoint()
        _log_action(new_state, "Race started", now)
        initialize_checkpoint(new_state)

    elif ctype == "ASSIGN_POINTS":
        # RaceEnded outranks every other assignment failure.
        gate = _running_race_rejection(new_state)
        if gate:
            return rejected(gate)
        number = int(cmd["athleteNumber"])
        points = int(cmd["points"])
        checkpoint_number = new_state["currentCheckpoint"]["number"]
        is_new = find_athlete(new_state, number) is None
        race_may_end, rejection = assign_points(
            new_state, number, points, cmd.get("name"), cmd.get("surname")
        )
        if rejection:
            return rejected(rejection)
        athlete = find_athlete(new_state, number)
        if is_new:
            label = display_name(athlete)
            _log_action(
                new_state,
                f"Athlete #{number}{f' ({label})' if label else ''} added to the standings",
                now,
            )
        _log_action(
            new_state, f"Assigned {points} points to #{number} (checkpoint {checkpoint_number})", now
        )
        if new_state["currentCheckpoint"]["number"] != checkpoint_number or race_may_end:
            _log_action(
                new_state,
                f"Checkpoint {checkpoint_number} completed - laps: {new_state['lapsRemaining']}",
                now,
            )
        payload["checkpointNumber"] = checkpoint_number

    elif ctype == "SET_STATUS":
        gate = _running_race_rejection(new_state)
        if gate:
            return rejected(gate)
        number = int(cmd["athleteNumber"])
        rejection = set_status(new_state, number, cmd["status"])
        if rejection:
            return rejected(rejection)
        athlete = find_athlete(new_state, number)
        _log_action(
            new_state,
            f"Athlete #{number} is now {athlete['status']} "
            f"(points {athlete['points']}, saved {athlete['savedPoints']})"
            f"{_checkpoint_suffix(new_state)}",
            now,
        )

    elif ctype == "MODIFY_POINTS":
        gate = _running_race_rejection(new_state)
        if gate:
            return rejected(gate)
        number = int(cmd["athleteNumber"])
        delta = int(cmd["delta"])
        rejection = modify_points(new_state, number, delta)
        if rejection:
            return rejected(rejection)
        total = find_athlete(new_state, number)["points"]
        _log_action(new_state, f"Manual change: {delta:+d} points to #{number} (total: {total})", now)

    elif ctype == "EDIT_ATHLETE":
        gate = _running_race_rejection(new_state)
        if gate:
            return rejected(gate)
        number = int(cmd["athleteNumber"])
        new_number = cmd.get("newNumber")
        rejection = edit_athlete(new_state, number, new_number, cmd.get("name"), cmd.get("surname"))
        if rejection:
            return rejected(rejection)
        target = new_number if new_number is not None else number
        label = display_name(find_athlete(new_state, target))
        _log_action(
            new_state,
            f"Athlete #{number} edited -> #{target}{f' ({label})' if label else ''}",
            now,
        )

    elif ctype == "UNDO_CHECKPOINT":
        gate = _running_race_rejection(new_state)
        if gate:
            return rejected(gate)
        entry, rejection = undo_last_checkpoint(new_state)
        if rejection:
            return rejected(rejection)
        for assignment in entry["athletes"]:
            _log_action(
                new_state,
                f"Removed {assignment['points']} points from #{assignment['number']} "
                f"(undo checkpoint {entry['number']})",
                now,
            )
        _log_action(new_state, f"Undo checkpoint {entry['number']} completed", now)
        payload["undoneCheckpoint"] = entry

    elif ctype == "END_RACE":
        gate = _running_race_rejection(new_state)
        if gate:
            return rejected(gate)
        if new_state.get("lapsRemaining", 0) > 0:
            return rejected(
                Rejection(
                    kind="RaceNotFinished",
                    message=f"{new_state['lapsRemaining']} laps still to run",
                )
            )
        new_state["raceEnded"] = True
        _log_action(new_state, "Race ended - standings frozen", now)

    elif ctype == "RESET_RACE":
        new_state = default_state()
        logger.info("Race reset")

    else:
        raise ValueError(f"Unknown command type: {ctype}")

    return CommandOutcome(
        state=new_state,
        cmd_payload=payload,
        snapshot_required=True,
        race_may_end=race_may_end,
    )


def apply_command(
    state: Dict[str, Any], cmd: Dict[str, Any], *, now: Clock = datetime.now
) -> CommandOutcome:
    """Apply a race command to in-memory state.

    Args:
        state: Current race state dict (updated in place when accepted)
        cmd: Command dict with 'type' field and command-specific params
        now: Clock used for action log timestamps

    Returns:
        CommandOutcome with updated state, enriched payload and rejection, if any

    Note:
        - Internally uses _apply_transition which works on a deepcopy
        - An accepted command also replaces the contents of `state`, so
          callers holding the dict see the new race
    """
    outcome = _apply_transition(state, cmd, now)

    if outcome.rejection is None:
        state.clear()
        state.update(outcome.state)

    return outcome


def race_may_end(state: Dict[str, Any]) -> bool:
    return bool(
        state.get("raceStarted")
        and not state.get("raceEnded")
        and state.get("lapsRemaining", 0) == 0
    )


class RaceController:
    """Command interface over one race.

    Every public method is atomic: one lock guards the state, so a completion
    cascade (lap decrement + next checkpoint) is never observed half-done.
    Reads hand out copies or frozen rows.
    """

    def __init__(self, store: StateStore | None = None, *, now: Clock = datetime.now):
        self._lock = threading.Lock()
        self._store = store if store is not None else MemoryStateStore()
        self._now = now
        loaded = self._store.load()
        if loaded is not None:
            logger.info("Resuming race from stored state")
        self._state: Dict[str, Any] = loaded if loaded is not None else default_state()

    # ---- commands ----

    def _execute(self, cmd: Dict[str, Any]) -> CommandOutcome:
        try:
            validated = InputSanitizer.validate_and_sanitize_cmd(cmd)
        except ValueError as e:
            with self._lock:
                current = deepcopy(self._state)
            return CommandOutcome(
                state=current,
                cmd_payload=dict(cmd),
                snapshot_required=False,
                rejection=Rejection(kind="InvalidInput", message=str(e)),
            )

        clean = validated.model_dump(exclude_none=True)
        with self._lock:
            outcome = apply_command(self._state, clean, now=self._now)
            if outcome.snapshot_required:
                self._persist(clean["type"])
            return replace(outcome, state=deepcopy(self._state))

    def _persist(self, ctype: str) -> None:
        try:
            if ctype == "RESET_RACE":
                self._store.clear()
            else:
                self._store.save(deepcopy(self._state))
        except OSError as e:
            # The command stays applied in memory; the next save retries.
            logger.error(f"Could not persist race state after {ctype}: {e}")

    def configure(self, total_laps: int, frequency: str = "every_lap") -> CommandOutcome:
        return self._execute(
            {"type": "CONFIGURE", "totalLaps": total_laps, "pointsFrequency": frequency}
        )

    def start_race(self) -> CommandOutcome:
        return self._execute({"type": "START_RACE"})

    def assign_points(
        self,
        athlete_number: int,
        points: int,
        name: str | None = None,
        surname: str | None = None,
    ) -> CommandOutcome:
        cmd: Dict[str, Any] = {
            "type": "ASSIGN_POINTS",
            "athleteNumber": athlete_number,
            "points": points,
        }
        if name:
            cmd["name"] = name
        if surname:
            cmd["surname"] = surname
        return self._execute(cmd)

    def set_status(self, athlete_number: int, status: str) -> CommandOutcome:
        return self._execute({"type": "SET_STATUS", "athleteNumber": athlete_number, "status": status})

    def modify_points(self, athlete_number: int, delta: int) -> CommandOutcome:
        return self._execute({"type": "MODIFY_POINTS", "athleteNumber": athlete_number, "delta": delta})

    def edit_athlete(
        self,
        athlete_number: int,
        new_number: int | None = None,
        name: str | None = None,
        surname: str | None = None,
    ) -> CommandOutcome:
        cmd: Dict[str, Any] = {"type": "EDIT_ATHLETE", "athleteNumber": athlete_number}
        if new_number is not None:
            cmd["newNumber"] = new_number
        if name is not None:
            cmd["name"] = name
        if surname is not None:
            cmd["surname"] = surname
        return self._execute(cmd)

    def undo_last_checkpoint(self) -> CommandOutcome:
        return self._execute({"type": "UNDO_CHECKPOINT"})

    def end_race(self) -> CommandOutcome:
        return self._execute({"type": "END_RACE"})

    def reset_race(self) -> CommandOutcome:
        return self._execute({"type": "RESET_RACE"})

    # ---- queries ----

    def can_undo(self) -> bool:
        with self._lock:
            return can_undo(self._state)

    def race_may_end(self) -> bool:
        with self._lock:
            return race_may_end(self._state)

    def get_leaderboard(self) -> LeaderboardResult:
        with self._lock:
            return compute_leaderboard(
                self._state.get("athletes") or [], self._state.get("checkpointHistory") or []
            )

    def get_current_checkpoint_summary(self) -> Dict[str, Any]:
        with self._lock:
            return checkpoint_summary(self._state)

    def get_history(self) -> List[Dict[str, Any]]:
        with self._lock:
            return deepcopy(self._state.get("checkpointHistory") or [])

    def get_athlete(self, athlete_number: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            athlete = find_athlete(self._state, athlete_number)
            return deepcopy(athlete) if athlete is not None else None

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return deepcopy(self._state)
