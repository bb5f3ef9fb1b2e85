from __future__ import annotations

import json

import pytest

from pipelines.snapshot import SnapshotError, load_snapshot, replay_events, save_snapshot
from tests.helpers.factories import make_run_result


def test_snapshot_round_trip(tmp_path):
    result = make_run_result()
    path = tmp_path / "demo" / "snapshot.json"

    save_snapshot(result, path)
    loaded = load_snapshot(path)

    assert loaded == result
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert set(payload) == {"captured_at", "result"}


def test_missing_snapshot_is_reported(tmp_path):
    with pytest.raises(SnapshotError) as excinfo:
        load_snapshot(tmp_path / "absent.json")

    assert excinfo.value.code == "SNAPSHOT_NOT_FOUND"


def test_invalid_snapshot_is_reported(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text('{"result": {"candidates": "nope"}}', encoding="utf-8")

    with pytest.raises(SnapshotError) as excinfo:
        load_snapshot(path)

    assert excinfo.value.code == "SNAPSHOT_INVALID"


def test_replay_matches_live_event_shape():
    result = make_run_result(discovered=24, candidates=2)
    sleeps: list[float] = []

    events = list(replay_events(result, delay=0.25, sleep=sleeps.append))

    phase2_progress = [event for event in events if event.type == "progress" and event.phase == 2]
    phase3_progress = [event for event in events if event.type == "progress" and event.phase == 3]
    assert [event.phase for event in events[:3]] == [1, 1, 1]
    assert events[2].count == 24
    assert [event.processed for event in phase2_progress] == list(range(2, 25, 2))
    assert [event.processed for event in phase3_progress] == [1, 2]
    assert phase3_progress[0].tier == "gold"
    assert phase3_progress[0].candidate == "Dr. Jane Doe"
    assert events[-1].type == "complete"
    assert events[-1].result == result
    assert sum(1 for event in events if event.is_terminal) == 1
    assert len(sleeps) == 2 + 12 + 2


def test_replay_without_delay_never_sleeps():
    sleeps: list[float] = []

    events = list(replay_events(make_run_result(discovered=0, candidates=0), sleep=sleeps.append))

    assert sleeps == []
    assert not [event for event in events if event.type == "progress"]
