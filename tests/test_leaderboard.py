from __future__ import annotations

from copy import deepcopy

from pointsrace_core import apply_command, compute_leaderboard, default_state


def _athlete(number, points, status="normal", saved=0):
    return {
        "number": number,
        "name": None,
        "surname": None,
        "points": points,
        "status": status,
        "savedPoints": saved,
    }


def _entry(number, assignments, laps=1):
    return {
        "number": number,
        "athletes": [{"number": n, "points": p} for n, p in assignments],
        "lapsBeforeDecrement": laps,
    }


def _order(result):
    return [row.number for row in result.rows]


def test_points_descending_within_normal_bucket():
    athletes = [_athlete(1, 3), _athlete(2, 9), _athlete(3, 5)]
    out = compute_leaderboard(athletes, [])
    assert _order(out) == [2, 3, 1]
    assert [row.position for row in out.rows] == [1, 2, 3]
    assert [row.position_label for row in out.rows] == ["1", "2", "3"]
    assert out.final_checkpoint_number is None


def test_status_buckets_override_points():
    athletes = [
        _athlete(1, 0, "disqualified", saved=20),
        _athlete(2, 0, "lapped", saved=12),
        _athlete(3, 1),
        _athlete(4, 0, "lapped", saved=3),
    ]
    out = compute_leaderboard(athletes, [])
    assert _order(out) == [3, 2, 4, 1]
    assert [row.position_label for row in out.rows] == ["1", "D", "D", "SQ"]
    assert out.rows[3].saved_points == 20


def test_equal_points_broken_by_latest_finish():
    # Both on 7: A (#1) took the 3 at the finish, B (#2) the 2.
    athletes = [_athlete(2, 7), _athlete(1, 7)]
    history = [
        _entry(1, [(2, 2), (1, 1)], laps=2),
        _entry(2, [(1, 3), (2, 2), (3, 1)], laps=1),
    ]
    out = compute_leaderboard(athletes, history)
    assert _order(out) == [1, 2]
    assert out.final_checkpoint_number == 2
    assert [row.finish_points for row in out.rows] == [3, 2]


def test_finish_scorer_beats_athlete_missing_from_finish():
    athletes = [_athlete(5, 4), _athlete(6, 4)]
    history = [_entry(3, [(1, 3), (2, 2), (6, 1)])]
    assert _order(compute_leaderboard(athletes, history)) == [6, 5]


def test_latest_entry_with_a_three_is_used():
    athletes = [_athlete(1, 6), _athlete(2, 6)]
    history = [
        _entry(4, [(1, 3), (2, 2)], laps=3),
        _entry(5, [(2, 3), (1, 2)], laps=1),
        _entry(6, [(1, 2), (2, 1)], laps=1),
    ]
    assert _order(compute_leaderboard(athletes, history)) == [2, 1]


def test_unresolved_ties_keep_registry_order():
    athletes = [_athlete(8, 2), _athlete(3, 2), _athlete(5, 2)]
    history = [_entry(1, [(8, 2), (3, 1)], laps=5)]
    out = compute_leaderboard(athletes, history)
    assert _order(out) == [8, 3, 5]
    assert _order(compute_leaderboard(athletes, history)) == [8, 3, 5]


def test_compute_leaderboard_is_pure():
    athletes = [_athlete(1, 7), _athlete(2, 7, "lapped", saved=4)]
    history = [_entry(1, [(1, 3), (2, 2), (3, 1)])]
    athletes_before = deepcopy(athletes)
    history_before = deepcopy(history)
    first = compute_leaderboard(athletes, history)
    second = compute_leaderboard(athletes, history)
    assert first == second
    assert athletes == athletes_before
    assert history == history_before


def test_leaderboard_over_a_played_race():
    state = default_state()
    apply_command(state, {"type": "CONFIGURE", "totalLaps": 2})
    apply_command(state, {"type": "START_RACE"})
    for number, points in [(1, 2), (2, 1), (2, 3), (1, 2), (3, 1)]:
        apply_command(
            state, {"type": "ASSIGN_POINTS", "athleteNumber": number, "points": points}
        )
    # #1 and #2 both have 4; #2 won the finish
    out = compute_leaderboard(state["athletes"], state["checkpointHistory"])
    assert _order(out) == [2, 1, 3]
    assert [row.points for row in out.rows] == [4, 4, 1]
