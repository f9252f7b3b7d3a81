"""Race rules and runtime settings."""
from __future__ import annotations

import os
from pathlib import Path


class RaceRules:
    """Scoring constants shared by the checkpoint engine and the ranker."""

    EVERY_LAP = "every_lap"
    EVERY_TWO_LAPS = "every_2_laps"
    FREQUENCIES = (EVERY_LAP, EVERY_TWO_LAPS)

    # Laps consumed by one completed checkpoint
    LAPS_PER_CHECKPOINT = {
        EVERY_LAP: 1,
        EVERY_TWO_LAPS: 2,
    }

    FINAL_POOL = (3, 2, 1)
    INTERMEDIATE_POOL = (2, 1)
    # Top value, only handed out at the checkpoint that coincides with the finish
    FINAL_POINTS = 3

    MAX_TOTAL_LAPS = 500
    MAX_ATHLETE_NUMBER = 9999
    MAX_POINTS_DELTA = 1000


STATE_FILE_ENV = "POINTSRACE_STATE_FILE"
DEFAULT_STATE_FILE = "race_state.json"


def state_file_path() -> Path:
    """Path of the JSON state file, overridable through the environment."""
    return Path(os.getenv(STATE_FILE_ENV) or DEFAULT_STATE_FILE)


def is_final_checkpoint(frequency: str, laps_remaining: int) -> bool:
    """True when a checkpoint opened with `laps_remaining` laps left is the finish."""
    return laps_remaining == RaceRules.LAPS_PER_CHECKPOINT.get(frequency, 1)


def points_pool(frequency: str, laps_remaining: int) -> list[int]:
    if is_final_checkpoint(frequency, laps_remaining):
        return list(RaceRules.FINAL_POOL)
    return list(RaceRules.INTERMEDIATE_POOL)
