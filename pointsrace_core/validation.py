"""
Input validation schemas using Pydantic v2
Validates all command types and persisted snapshots
"""

import logging
import re
from typing import List, Literal, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .athletes import STATUSES
from .config import RaceRules

logger = logging.getLogger(__name__)

COMMAND_TYPES = {
    "CONFIGURE",
    "START_RACE",
    "ASSIGN_POINTS",
    "SET_STATUS",
    "MODIFY_POINTS",
    "UNDO_CHECKPOINT",
    "END_RACE",
    "EDIT_ATHLETE",
    "RESET_RACE",
}

# ==================== COMMANDS ====================


class ValidatedCmd(BaseModel):
    """Command model with boundary validation"""

    type: str = Field(..., min_length=1, max_length=50, description="Command type")

    # CONFIGURE
    totalLaps: Optional[int] = Field(
        None, strict=True, ge=1, le=RaceRules.MAX_TOTAL_LAPS, description="Total laps of the race"
    )
    pointsFrequency: Optional[str] = Field(
        None, description="'every_lap' or 'every_2_laps'"
    )

    # Athlete-scoped commands
    athleteNumber: Optional[int] = Field(
        None, strict=True, gt=0, le=RaceRules.MAX_ATHLETE_NUMBER, description="Bib number"
    )
    points: Optional[int] = Field(None, strict=True, ge=1, le=RaceRules.FINAL_POINTS)
    status: Optional[str] = Field(None, description="'normal', 'lapped', 'disqualified'")
    delta: Optional[int] = Field(
        None, strict=True, ge=-RaceRules.MAX_POINTS_DELTA, le=RaceRules.MAX_POINTS_DELTA
    )
    newNumber: Optional[int] = Field(None, strict=True, gt=0, le=RaceRules.MAX_ATHLETE_NUMBER)
    name: Optional[str] = Field(None, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        """Validate command type is one of allowed types"""
        if v not in COMMAND_TYPES:
            raise ValueError(f"type must be one of {sorted(COMMAND_TYPES)}, got {v}")
        return v

    @field_validator("pointsFrequency")
    @classmethod
    def validate_frequency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in RaceRules.FREQUENCIES:
            raise ValueError(f"pointsFrequency must be one of {RaceRules.FREQUENCIES}")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in STATUSES:
            raise ValueError("status must be normal, lapped or disqualified")
        return v

    @field_validator("name", "surname")
    @classmethod
    def validate_person_name(cls, v: Optional[str]) -> Optional[str]:
        # "" clears a name on EDIT_ATHLETE; only None leaves it untouched
        if v is None:
            return v
        return InputSanitizer.sanitize_person_name(v)

    @model_validator(mode="after")
    def validate_command_fields(self) -> Self:
        """Validate required fields based on command type"""
        cmd_type = self.type

        if cmd_type == "CONFIGURE":
            if self.totalLaps is None:
                raise ValueError("CONFIGURE requires totalLaps")
            if self.pointsFrequency is None:
                self.pointsFrequency = RaceRules.EVERY_LAP
            step = RaceRules.LAPS_PER_CHECKPOINT[self.pointsFrequency]
            if self.totalLaps % step:
                raise ValueError(
                    f"totalLaps must be a multiple of {step} for {self.pointsFrequency}"
                )

        elif cmd_type in {"ASSIGN_POINTS", "SET_STATUS", "MODIFY_POINTS", "EDIT_ATHLETE"}:
            if self.athleteNumber is None:
                raise ValueError(f"{cmd_type} requires athleteNumber")
            if cmd_type == "ASSIGN_POINTS" and self.points is None:
                raise ValueError("ASSIGN_POINTS requires points")
            if cmd_type == "SET_STATUS" and self.status is None:
                raise ValueError("SET_STATUS requires status")
            if cmd_type == "MODIFY_POINTS" and self.delta is None:
                raise ValueError("MODIFY_POINTS requires delta")

        return self

    model_config = ConfigDict(extra="forbid")


# ==================== SNAPSHOTS ====================


class AssignmentModel(BaseModel):
    number: int = Field(..., gt=0)
    points: int = Field(..., ge=1, le=RaceRules.FINAL_POINTS)


class AthleteModel(BaseModel):
    number: int = Field(..., gt=0)
    name: Optional[str] = None
    surname: Optional[str] = None
    points: int = Field(0, ge=0)
    status: Literal["normal", "lapped", "disqualified"] = "normal"
    savedPoints: int = Field(0, ge=0)


class CheckpointModel(BaseModel):
    number: int = Field(0, ge=0)
    assignedAthletes: List[AssignmentModel] = []
    availablePoints: List[int] = []


class HistoryEntryModel(BaseModel):
    number: int = Field(..., ge=1)
    athletes: List[AssignmentModel]
    lapsBeforeDecrement: int = Field(..., ge=0)


class RaceConfigModel(BaseModel):
    totalLaps: int = Field(..., ge=1)
    pointsFrequency: Literal["every_lap", "every_2_laps"] = RaceRules.EVERY_LAP


class LogEntryModel(BaseModel):
    timestamp: str
    message: str


class RaceSnapshot(BaseModel):
    """Shape of a persisted race state; loaded snapshots must pass it."""

    config: Optional[RaceConfigModel] = None
    raceStarted: bool = False
    raceEnded: bool = False
    lapsRemaining: int = Field(0, ge=0)
    athletes: List[AthleteModel] = []
    currentCheckpoint: CheckpointModel = CheckpointModel()
    checkpointHistory: List[HistoryEntryModel] = []
    actionLog: List[LogEntryModel] = []

    @field_validator("athletes")
    @classmethod
    def validate_unique_numbers(cls, v: List[AthleteModel]) -> List[AthleteModel]:
        numbers = [a.number for a in v]
        if len(numbers) != len(set(numbers)):
            raise ValueError("athlete numbers must be unique")
        return v


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        value = value.strip()
        value = value[:max_length]
        value = value.replace("\0", "")

        return value

    @staticmethod
    def sanitize_person_name(name: str) -> str:
        """Sanitize athlete name/surname for display - keep accented letters"""
        name = InputSanitizer.sanitize_string(name, 100)
        dangerous_chars = r'[<>{}[\]\\|;()&$`"\*\x00-\x1f\x7f]'
        name = re.sub(dangerous_chars, "", name)
        return name.strip()

    @staticmethod
    def validate_and_sanitize_cmd(cmd_dict: dict) -> ValidatedCmd:
        """
        Validate and sanitize command dictionary

        Returns:
            ValidatedCmd: Validated command object

        Raises:
            ValueError: If validation fails
        """
        try:
            return ValidatedCmd(**cmd_dict)
        except Exception as e:
            logger.warning(f"Command validation failed: {e}")
            raise ValueError(f"Invalid command: {str(e)}")


# ==================== EXPORT ====================

__all__ = [
    "COMMAND_TYPES",
    "ValidatedCmd",
    "RaceSnapshot",
    "InputSanitizer",
]
