"""Tests for revert planning and execution."""

import stat

import pytest

from perftune.actions.sysctl import SysctlHandler
from perftune.connector.base import CommandResult
from perftune.engine import Applier, RevertPlanner, StepOperation
from perftune.model.outcome import OutcomeStatus
from perftune.model.run import RunState
from perftune.storage.manifest import load_manifest


def _sysctl(key, value):
    return {"kind": "set_sysctl", "key": key, "value": value}


def _write(action_id, content, path="/etc/sysctl.d/99-perf.conf"):
    return {"kind": "write_file", "id": action_id, "path": path, "content": content}


@pytest.fixture
def run(registry):
    return registry.create_run()


def _revert(host, run, manifest=None):
    planner = RevertPlanner(host, run.store, 5)
    plan = planner.plan(manifest or load_manifest(run.manifest))
    record_path = run.new_revert_record()
    return plan, planner.execute(plan, record_path), record_path


def test_completed_run_is_restored_exactly(host, run, make_list):
    original = b"# distro default\nvm.swappiness = 60\n"
    conf = host.path("/etc/sysctl.d/99-perf.conf")
    conf.parent.mkdir()
    conf.write_bytes(original)
    conf.chmod(0o600)
    host.kernel["vm.swappiness"] = "60"
    host.add_unit("cups.service", enabled="enabled", active=True)
    host.add_unit("avahi-daemon.service")
    action_list = make_list(
        _write("conf", "vm.swappiness = 10\n"),
        _sysctl("vm.swappiness", 10),
        {"kind": "set_service_state", "unit": "cups.service", "enabled": False, "active": False},
        {"kind": "set_service_state", "unit": "avahi-daemon.service", "enabled": False, "active": False},
    )
    Applier(host, run).run(action_list)

    plan, record, _ = _revert(host, run)

    assert [(step.seq, step.operation) for step in plan.steps] == [
        (4, StepOperation.NOOP),
        (3, StepOperation.RESTORE),
        (2, StepOperation.RESTORE),
        (1, StepOperation.RESTORE),
    ]
    assert record.state == RunState.COMPLETED
    assert [entry.status for entry in record.entries] == [
        OutcomeStatus.SKIPPED,
        OutcomeStatus.APPLIED,
        OutcomeStatus.APPLIED,
        OutcomeStatus.APPLIED,
    ]
    assert conf.read_bytes() == original
    assert stat.S_IMODE(conf.stat().st_mode) == 0o600
    assert host.kernel["vm.swappiness"] == "60"
    assert host.units["cups.service"] == {"enabled": "enabled", "active": True, "masked": False}
    assert host.units["avahi-daemon.service"] == {"enabled": "disabled", "active": False, "masked": False}


def test_same_path_written_twice_restores_last_first(host, run, make_list):
    conf = host.path("/etc/sysctl.d/99-perf.conf")
    conf.parent.mkdir()
    conf.write_text("original\n")
    Applier(host, run).run(make_list(_write("first", "first\n"), _write("second", "second\n")))
    assert conf.read_text() == "second\n"

    plan, record, _ = _revert(host, run)

    assert [step.action.id for step in plan.restores] == ["second", "first"]
    assert record.state == RunState.COMPLETED
    assert conf.read_text() == "original\n"


def test_interrupted_run_is_reverted(host, run, make_list, sysctl_conf):
    host.kernel["vm.swappiness"] = "60"
    host.kernel["vm.vfs_cache_pressure"] = "100"

    def interrupt(entry):
        if entry.seq == 2:
            raise KeyboardInterrupt

    applier = Applier(host, run, on_entry=interrupt)
    with pytest.raises(KeyboardInterrupt):
        applier.run(make_list(sysctl_conf, _sysctl("vm.swappiness", 10), _sysctl("vm.vfs_cache_pressure", 50)))

    manifest = load_manifest(run.manifest)
    assert manifest.state == RunState.INTERRUPTED
    assert len(manifest.entries) == 2

    plan, record, _ = _revert(host, run, manifest)

    assert plan.run_state == RunState.INTERRUPTED
    assert record.state == RunState.COMPLETED
    assert not host.path("/etc/sysctl.d/99-perf.conf").exists()
    assert host.kernel["vm.swappiness"] == "60"
    assert host.kernel["vm.vfs_cache_pressure"] == "100"


def test_snapshot_without_entry_is_restored(host, run, make_list, monkeypatch):
    host.kernel["vm.swappiness"] = "60"
    original_mutate = SysctlHandler.mutate

    def killed_after_mutate(self, action, snapshot):
        original_mutate(self, action, snapshot)
        raise KeyboardInterrupt

    monkeypatch.setattr(SysctlHandler, "mutate", killed_after_mutate)
    with pytest.raises(KeyboardInterrupt):
        Applier(host, run).run(make_list(_sysctl("vm.swappiness", 10)))
    monkeypatch.undo()
    assert host.kernel["vm.swappiness"] == "10"

    plan, record, _ = _revert(host, run)

    assert plan.warnings == ["sysctl:vm.swappiness has a snapshot but no manifest entry"]
    assert [step.operation for step in plan.steps] == [StepOperation.RESTORE]
    assert record.entries[0].status == OutcomeStatus.APPLIED
    assert host.kernel["vm.swappiness"] == "60"


def test_missing_snapshot_fails_one_step_only(host, run, make_list, sysctl_conf):
    host.kernel["vm.swappiness"] = "60"
    Applier(host, run).run(make_list(sysctl_conf, _sysctl("vm.swappiness", 10)))
    meta = run.store._meta_path("sysctl:vm.swappiness")
    meta.unlink()

    plan, record, _ = _revert(host, run)

    assert plan.steps[0].error == "no snapshot stored for sysctl:vm.swappiness"
    assert record.state == RunState.COMPLETED_WITH_FAILURES
    assert [entry.status for entry in record.entries] == [OutcomeStatus.FAILED, OutcomeStatus.APPLIED]
    assert record.entries[0].outcome.error_kind == "snapshot_failed"
    assert not host.path("/etc/sysctl.d/99-perf.conf").exists()
    assert host.kernel["vm.swappiness"] == "10"


def test_failing_inverse_does_not_stop_the_rest(host, run, make_list, sysctl_conf):
    host.kernel["vm.swappiness"] = "60"
    Applier(host, run).run(make_list(sysctl_conf, _sysctl("vm.swappiness", 10)))
    host.readonly_keys.add("vm.swappiness")

    _, record, _ = _revert(host, run)

    assert record.state == RunState.COMPLETED_WITH_FAILURES
    assert record.entries[0].outcome.error_kind == "permission_denied"
    assert record.entries[1].status == OutcomeStatus.APPLIED
    assert not host.path("/etc/sysctl.d/99-perf.conf").exists()


def test_failed_entries_are_not_reverted(host, run, make_list):
    Applier(host, run).run(make_list({"kind": "run_command", "id": "broken", "command": ["no-such-tool"], "undo": ["true"]}))

    plan = RevertPlanner(host, run.store).plan(load_manifest(run.manifest))

    assert plan.steps[0].operation == StepOperation.NOOP
    assert plan.steps[0].reason == "failed without changing the target"


def test_command_that_ran_but_failed_its_check_is_undone(host, run, make_list):
    installed = []

    def install(argv):
        installed.append("x")
        return CommandResult("pkg install x", "", "", 0)

    def remove(argv):
        installed.remove("x")
        return CommandResult("pkg remove x", "", "", 0)

    host.commands["pkg install x"] = install
    host.commands["pkg check x"] = CommandResult("pkg check x", "", "x: broken", 1)
    host.commands["pkg remove x"] = remove
    Applier(host, run).run(make_list({
        "kind": "run_command",
        "id": "pkg:x",
        "command": ["pkg", "install", "x"],
        "check": ["pkg", "check", "x"],
        "undo": ["pkg", "remove", "x"],
    }))
    assert installed == ["x"]

    plan, record, _ = _revert(host, run)

    assert plan.steps[0].operation == StepOperation.RESTORE
    assert plan.steps[0].reason == "run pkg remove x"
    assert record.entries[0].status == OutcomeStatus.APPLIED
    assert installed == []


def test_command_without_undo_is_a_noop(host, run, make_list):
    host.commands["apt-get clean"] = CommandResult("apt-get clean", "", "", 0)
    Applier(host, run).run(make_list({"kind": "run_command", "id": "apt:clean", "command": ["apt-get", "clean"]}))

    plan = RevertPlanner(host, run.store).plan(load_manifest(run.manifest))

    assert plan.steps[0].operation == StepOperation.NOOP
    assert plan.steps[0].reason == "no undo declared"


def test_revert_record_is_a_manifest(host, run, make_list, sysctl_conf):
    Applier(host, run).run(make_list(sysctl_conf))

    _, record, record_path = _revert(host, run)

    loaded = load_manifest(record_path)
    assert loaded.mode == "revert"
    assert loaded.state == RunState.COMPLETED
    assert loaded.source == f"run:{run.run_id}"
    assert [entry.action.id for entry in loaded.entries] == ["file:/etc/sysctl.d/99-perf.conf"]
    assert run.revert_records() == [record_path]
