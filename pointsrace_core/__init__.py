from .race import (
    CommandOutcome,
    RaceController,
    apply_command,
    default_state,
    race_may_end,
)
from .rejections import Rejection, RejectionKind
from .types import AthleteRecord, CommandPayload, HistoryEntry, RaceState
from .validation import InputSanitizer, RaceSnapshot, ValidatedCmd
from .config import RaceRules, is_final_checkpoint, points_pool
from .leaderboard import (
    LeaderboardResult,
    LeaderboardRow,
    compute_leaderboard,
)
from .persistence import JsonFileStateStore, MemoryStateStore, StateStore

__all__ = [
    "CommandOutcome",
    "RaceController",
    "apply_command",
    "default_state",
    "race_may_end",
    "Rejection",
    "RejectionKind",
    "AthleteRecord",
    "CommandPayload",
    "HistoryEntry",
    "RaceState",
    "InputSanitizer",
    "RaceSnapshot",
    "ValidatedCmd",
    "RaceRules",
    "is_final_checkpoint",
    "points_pool",
    "LeaderboardResult",
    "LeaderboardRow",
    "compute_leaderboard",
    "JsonFileStateStore",
    "MemoryStateStore",
    "StateStore",
]
