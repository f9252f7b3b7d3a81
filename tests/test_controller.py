import json
from datetime import datetime
from pathlib import Path

import pytest

from pointsrace_core import (
    JsonFileStateStore,
    MemoryStateStore,
    RaceController,
    ValidatedCmd,
    default_state,
)


def _clock():
    return datetime(2026, 5, 17, 10, 30, 0)


def _running(store=None, total_laps=5, frequency="every_lap"):
    controller = RaceController(store or MemoryStateStore(), now=_clock)
    assert controller.configure(total_laps, frequency).ok
    assert controller.start_race().ok
    return controller


def test_checkpoint_summary_after_completion():
    controller = _running()
    controller.assign_points(10, 2)
    outcome = controller.assign_points(11, 1)
    assert outcome.ok
    assert controller.get_current_checkpoint_summary() == {
        "number": 2,
        "availablePoints": [2, 1],
        "assignedAthletes": [],
    }
    assert controller.snapshot()["lapsRemaining"] == 4


def test_every_accepted_command_is_saved():
    store = MemoryStateStore()
    controller = _running(store)
    saves = store.saves
    controller.assign_points(10, 2)
    assert store.saves == saves + 1
    rejected = controller.assign_points(10, 1)
    assert rejected.rejection.kind == "DuplicateAssignment"
    assert store.saves == saves + 1


def test_invalid_input_is_rejected_at_the_boundary():
    store = MemoryStateStore()
    controller = _running(store)
    saves = store.saves
    before = controller.snapshot()
    for outcome in (
        controller.assign_points(0, 2),
        controller.assign_points(-4, 1),
        controller.assign_points(7, 4),
        controller.set_status(7, "retired"),
    ):
        assert outcome.rejection.kind == "InvalidInput"
    assert controller.snapshot() == before
    assert store.saves == saves


def test_configure_validates_lap_count():
    controller = RaceController(MemoryStateStore())
    assert controller.configure(0).rejection.kind == "InvalidInput"
    assert controller.configure(5, "every_2_laps").rejection.kind == "InvalidInput"
    assert controller.configure(5, "sometimes").rejection.kind == "InvalidInput"
    assert controller.configure(6, "every_2_laps").ok


def test_outcome_state_is_a_copy():
    controller = _running()
    outcome = controller.assign_points(10, 2)
    outcome.state["athletes"][0]["points"] = 99
    assert controller.get_athlete(10)["points"] == 2


def test_names_are_sanitized_and_kept():
    controller = _running()
    controller.assign_points(3, 2, name="  Giulia ", surname="Bianchi")
    athlete = controller.get_athlete(3)
    assert athlete["name"] == "Giulia"
    assert athlete["surname"] == "Bianchi"
    controller.edit_athlete(3, surname="Verdi")
    athlete = controller.get_athlete(3)
    assert (athlete["name"], athlete["surname"]) == ("Giulia", "Verdi")


def test_full_race_through_controller():
    controller = _running(total_laps=2)
    controller.assign_points(1, 2)
    controller.assign_points(2, 1)
    assert not controller.race_may_end()
    assert controller.end_race().rejection.kind == "RaceNotFinished"
    controller.assign_points(2, 3)
    controller.assign_points(1, 2)
    outcome = controller.assign_points(3, 1)
    assert outcome.race_may_end
    assert controller.race_may_end()
    assert controller.can_undo()
    assert controller.end_race().ok
    assert not controller.can_undo()

    board = controller.get_leaderboard()
    assert [row.number for row in board.rows] == [2, 1, 3]
    assert board.final_checkpoint_number == 2
    assert controller.assign_points(4, 3).rejection.kind == "RaceEnded"
    assert len(controller.get_history()) == 2


def test_action_log_uses_clock():
    controller = _running()
    controller.assign_points(10, 2)
    log = controller.snapshot()["actionLog"]
    assert log[-1] == {"timestamp": "10:30:00", "message": "Assigned 2 points to #10 (checkpoint 1)"}


def test_resume_from_json_file(tmp_path):
    path = tmp_path / "race.json"
    controller = _running(JsonFileStateStore(path))
    controller.assign_points(10, 2)
    controller.assign_points(11, 1)
    controller.assign_points(12, 2)
    controller.set_status(11, "lapped")

    resumed = RaceController(JsonFileStateStore(path), now=_clock)
    assert resumed.snapshot() == controller.snapshot()
    assert resumed.get_current_checkpoint_summary() == {
        "number": 2,
        "availablePoints": [1],
        "assignedAthletes": [{"number": 12, "points": 2}],
    }
    assert resumed.get_leaderboard() == controller.get_leaderboard()
    assert resumed.undo_last_checkpoint().ok
    assert resumed.get_athlete(12)["points"] == 0


def test_corrupt_state_file_starts_fresh(tmp_path):
    path = tmp_path / "race.json"
    path.write_text("{not json", encoding="utf-8")
    controller = RaceController(JsonFileStateStore(path))
    assert controller.snapshot() == default_state()


def test_invalid_snapshot_is_ignored(tmp_path):
    path = tmp_path / "race.json"
    snapshot = default_state()
    snapshot["lapsRemaining"] = -3
    path.write_text(json.dumps(snapshot), encoding="utf-8")
    assert JsonFileStateStore(path).load() is None


def test_reset_clears_store(tmp_path):
    path = tmp_path / "race.json"
    controller = _running(JsonFileStateStore(path))
    controller.assign_points(10, 2)
    assert path.exists()
    assert controller.reset_race().ok
    assert not path.exists()
    assert controller.snapshot() == default_state()


def test_state_file_path_from_environment(monkeypatch, tmp_path):
    target = tmp_path / "elsewhere.json"
    monkeypatch.setenv("POINTSRACE_STATE_FILE", str(target))
    assert JsonFileStateStore().path == target


def test_validated_cmd_requires_fields_per_type():
    with pytest.raises(ValueError):
        ValidatedCmd(type="ASSIGN_POINTS", athleteNumber=3)
    with pytest.raises(ValueError):
        ValidatedCmd(type="SET_STATUS", athleteNumber=3)
    with pytest.raises(ValueError):
        ValidatedCmd(type="LAUNCH")
    cmd = ValidatedCmd(type="CONFIGURE", totalLaps=10)
    assert cmd.pointsFrequency == "every_lap"


def test_edit_athlete_clears_names_with_empty_strings():
    controller = _running()
    controller.assign_points(3, 2, name="Giulia", surname="Bianchi")
    outcome = controller.edit_athlete(3, name="", surname="")
    assert outcome.ok
    athlete = controller.get_athlete(3)
    assert athlete["name"] is None
    assert athlete["surname"] is None


def test_boolean_numbers_are_invalid_input():
    controller = _running()
    assert controller.assign_points(True, 2).rejection.kind == "InvalidInput"
    assert controller.assign_points(4, True).rejection.kind == "InvalidInput"
    controller.assign_points(4, 2)
    assert controller.edit_athlete(4, new_number=True).rejection.kind == "InvalidInput"
    assert controller.get_athlete(1) is None


def test_snapshot_with_unknown_frequency_is_ignored(tmp_path):
    path = tmp_path / "race.json"
    snapshot = default_state()
    snapshot["config"] = {"totalLaps": 4, "pointsFrequency": "every_3_laps"}
    path.write_text(json.dumps(snapshot), encoding="utf-8")
    assert JsonFileStateStore(path).load() is None


def test_failed_save_leaves_no_temp_file(tmp_path, monkeypatch):
    path = tmp_path / "race.json"
    store = JsonFileStateStore(path)

    def broken_replace(self, target):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "replace", broken_replace)
    with pytest.raises(OSError):
        store.save(default_state())
    assert list(tmp_path.iterdir()) == []
