"""Persistence gateway for race snapshots.

The controller saves the whole state after every accepted mutation and loads
it once at startup to resume an interrupted race.
"""
from __future__ import annotations

import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from pydantic import ValidationError

from .config import state_file_path
from .validation import RaceSnapshot

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    def save(self, snapshot: Dict[str, Any]) -> None:
        ...

    def load(self) -> Optional[Dict[str, Any]]:
        ...

    def clear(self) -> None:
        ...


def parse_snapshot(raw: Any) -> Optional[Dict[str, Any]]:
    """Validate a decoded snapshot; None when it does not describe a race."""
    if not isinstance(raw, dict):
        logger.warning("Ignoring stored race state: not an object")
        return None
    try:
        return RaceSnapshot.model_validate(raw).model_dump()
    except ValidationError as e:
        logger.warning(f"Ignoring stored race state: {e.error_count()} validation errors")
        return None


class MemoryStateStore:
    """Keeps the last snapshot in memory (tests, embedding hosts)."""

    def __init__(self, snapshot: Dict[str, Any] | None = None):
        self._snapshot = deepcopy(snapshot) if snapshot is not None else None
        self.saves = 0

    def save(self, snapshot: Dict[str, Any]) -> None:
        self._snapshot = deepcopy(snapshot)
        self.saves += 1

    def load(self) -> Optional[Dict[str, Any]]:
        if self._snapshot is None:
            return None
        return parse_snapshot(deepcopy(self._snapshot))

    def clear(self) -> None:
        self._snapshot = None


class JsonFileStateStore:
    """Stores the snapshot as one JSON document on disk."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path is not None else state_file_path()

    def save(self, snapshot: Dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read race state from {self.path}: {e}")
            return None
        return parse_snapshot(raw)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
