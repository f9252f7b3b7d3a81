"""Typed reasons for refused commands.

A rejection is a value, not an exception: the command that produced it left
the race state exactly as it found it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

RejectionKind = Literal[
    "RaceEnded",
    "RaceNotStarted",
    "RaceAlreadyStarted",
    "RaceNotConfigured",
    "RaceNotFinished",
    "PointsNotAvailable",
    "DuplicateAssignment",
    "AthleteDisqualified",
    "NothingToUndo",
    "InvalidStatusTransition",
    "UnknownAthlete",
    "DuplicateAthleteNumber",
    "InvalidInput",
]


@dataclass(frozen=True)
class Rejection:
    """Represents a refused command (pure core)."""

    kind: RejectionKind
    message: str | None = None


def race_ended() -> Rejection:
    return Rejection(kind="RaceEnded", message="race has ended, standings are frozen")


def race_not_started() -> Rejection:
    return Rejection(kind="RaceNotStarted", message="race has not started yet")
