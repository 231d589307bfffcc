"""Tests for the run registry."""

import stat
from datetime import datetime

import pytest

from perftune.errors import RunNotFound
from perftune.model.run import Manifest, RunState
from perftune.storage.manifest import ManifestWriter

NOW = datetime(2026, 3, 1, 9, 30, 0)


def _record(run, state=RunState.COMPLETED, finish=True):
    writer = ManifestWriter(run.manifest, Manifest(run_id=run.run_id, started_at="2026-03-01T09:30:00",
                                                   host="local", source="performance"))
    writer.open()
    if finish:
        writer.finish(state)
    else:
        writer.close()
    return run


def test_run_ids_get_a_suffix_on_collision(registry):
    first = registry.create_run(NOW)
    second = registry.create_run(NOW)
    third = registry.create_run(NOW)

    assert first.run_id == "20260301-093000"
    assert second.run_id == "20260301-093000-2"
    assert third.run_id == "20260301-093000-3"
    assert stat.S_IMODE(first.run_dir.stat().st_mode) == 0o700
    assert first.store.exists


def test_run_ids_newest_first(registry):
    registry.create_run(datetime(2026, 1, 1))
    registry.create_run(NOW)
    registry.create_run(NOW)

    assert registry.run_ids() == ["20260301-093000-2", "20260301-093000", "20260101-000000"]


def test_open_run(registry):
    run = _record(registry.create_run(NOW))

    assert registry.open_run(run.run_id).run_dir == run.run_dir


@pytest.mark.parametrize("run_id", ["../etc", "latest", "20260301-093000/.."])
def test_open_run_rejects_invalid_ids(registry, run_id):
    with pytest.raises(RunNotFound, match="Invalid run id"):
        registry.open_run(run_id)


def test_open_run_without_manifest(registry):
    run = registry.create_run(NOW)

    with pytest.raises(RunNotFound, match="No manifest"):
        registry.open_run(run.run_id)


def test_list_runs(registry):
    _record(registry.create_run(datetime(2026, 1, 1)), RunState.COMPLETED_WITH_FAILURES)
    interrupted = _record(registry.create_run(NOW), finish=False)
    interrupted.new_revert_record().write_text("")

    runs = registry.list_runs()

    assert [run.state for run in runs] == ["interrupted", "completed_with_failures"]
    assert runs[0].reverted is True
    assert runs[1].reverted is False
    assert runs[1].source == "performance"


def test_unreadable_run_is_listed(registry):
    registry.create_run(NOW)

    assert [run.state for run in registry.list_runs()] == ["unreadable"]


def test_revert_record_names_do_not_collide(registry):
    run = registry.create_run(NOW)
    first = run.new_revert_record()
    first.write_text("")
    second = run.new_revert_record()

    assert first != second
    assert second.name.startswith("revert-")
    assert run.revert_records() == sorted([first])


def test_prune_keeps_newest(registry):
    for day in (1, 2, 3, 4):
        registry.create_run(datetime(2026, 1, day))

    removed = registry.prune(keep=2)

    assert removed == ["20260102-000000", "20260101-000000"]
    assert registry.run_ids() == ["20260104-000000", "20260103-000000"]


def test_prune_older_than(registry):
    for day in (1, 20, 28):
        registry.create_run(datetime(2026, 2, day))

    removed = registry.prune(keep=1, older_than_days=14, now=datetime(2026, 3, 1))

    assert removed == ["20260201-000000"]
    assert registry.run_ids() == ["20260228-000000", "20260220-000000"]


def test_prune_rejects_negative_keep(registry):
    with pytest.raises(ValueError):
        registry.prune(keep=-1)


def test_empty_state_dir(registry):
    assert registry.run_ids() == []
    assert registry.list_runs() == []
    assert registry.prune(keep=0) == []
