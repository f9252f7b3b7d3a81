"""Type definitions for race state and commands."""
from __future__ import annotations

from typing import List, Optional, TypedDict


class AthleteRecord(TypedDict, total=False):
    """An athlete entry in the registry."""
    number: int
    name: Optional[str]
    surname: Optional[str]
    points: int
    status: str  # 'normal' | 'lapped' | 'disqualified'
    # Total restored when the athlete returns to 'normal'
    savedPoints: int


class Assignment(TypedDict):
    """Points handed to one athlete at one checkpoint."""
    number: int
    points: int


class CheckpointRecord(TypedDict):
    """The single open checkpoint."""
    number: int
    assignedAthletes: List[Assignment]  # arrival order
    availablePoints: List[int]


class HistoryEntry(TypedDict):
    """Snapshot of a checkpoint that received at least one assignment."""
    number: int
    athletes: List[Assignment]
    lapsBeforeDecrement: int


class RaceConfig(TypedDict):
    totalLaps: int
    pointsFrequency: str  # 'every_lap' | 'every_2_laps'


class LogEntry(TypedDict):
    timestamp: str
    message: str


class RaceState(TypedDict, total=False):
    """
    TypedDict representing the whole race snapshot.

    This is the unit handed to the persistence gateway, so every value
    must stay JSON-serializable.
    """
    # Configuration (None until CONFIGURE)
    config: Optional[RaceConfig]

    # Progress
    raceStarted: bool
    raceEnded: bool
    lapsRemaining: int

    # Registry, in first-seen order
    athletes: List[AthleteRecord]

    # Scoring
    currentCheckpoint: CheckpointRecord
    checkpointHistory: List[HistoryEntry]

    actionLog: List[LogEntry]


class CommandPayload(TypedDict, total=False):
    """
    TypedDict for command payloads sent to apply_command().

    Fields vary by command type.
    """
    type: str

    # CONFIGURE
    totalLaps: Optional[int]
    pointsFrequency: Optional[str]

    # ASSIGN_POINTS / SET_STATUS / MODIFY_POINTS / EDIT_ATHLETE
    athleteNumber: Optional[int]
    points: Optional[int]
    name: Optional[str]
    surname: Optional[str]
    status: Optional[str]
    delta: Optional[int]
    newNumber: Optional[int]


StateDict = RaceState
CmdDict = CommandPayload
