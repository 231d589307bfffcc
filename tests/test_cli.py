"""Tests for the perftune command line.

Runs against a LocalHost under an alternate root, so file actions land in
tmp_path and actions that need commands are Skipped.
"""

from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from perftune import __version__
from perftune.cli import main
from perftune.model.outcome import OutcomeStatus
from perftune.storage import RunRegistry
from perftune.storage.manifest import load_manifest


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.delenv("PERFTUNE_STATE_DIR", raising=False)
    root = tmp_path / "root"
    root.mkdir()
    return {
        "root": root,
        "state": tmp_path / "state",
        "config": tmp_path / "config",
        "dir": tmp_path,
    }


def _action_list(env, *extra, name="tune.yaml"):
    actions = [
        {
            "kind": "write_file",
            "path": "/etc/sysctl.d/99-perf.conf",
            "content": "vm.swappiness = 10\n",
            "fatal": True,
        },
        *extra,
    ]
    path = env["dir"] / name
    path.write_text(yaml.safe_dump({"name": "tune", "actions": actions}))
    return str(path)


def _invoke(env, *args, input=None):
    return CliRunner().invoke(main, ["--config", str(env["config"]), *args], input=input)


def _apply(env, action_list, *extra):
    return _invoke(
        env, "apply", action_list,
        "--root", str(env["root"]), "--state-dir", str(env["state"]), "--yes", "--format", "plain", *extra,
    )


def _run_ids(env):
    return RunRegistry(env["state"]).run_ids()


def _unwritable(env, **extra):
    """A write_file action whose target path is an existing directory."""
    (env["root"] / "etc/conflict").mkdir(parents=True)
    return {"kind": "write_file", "id": "broken", "path": "/etc/conflict", "content": "x\n", **extra}


def test_apply_success(env):
    result = _apply(env, _action_list(env))

    assert result.exit_code == 0, result.output
    assert (env["root"] / "etc/sysctl.d/99-perf.conf").read_text() == "vm.swappiness = 10\n"
    run_id = _run_ids(env)[0]
    assert f"Run {run_id} (apply): completed" in result.output
    assert (env["state"] / run_id / "README").exists()
    assert (env["state"] / run_id / "run.log").exists()


def test_apply_best_effort_failure_exits_2(env):
    result = _apply(env, _action_list(env, _unwritable(env)))

    assert result.exit_code == 2, result.output
    assert "FAILED broken [snapshot_failed]" in result.output


def test_apply_fatal_failure_exits_1(env):
    result = _apply(env, _action_list(env, _unwritable(env, fatal=True)))

    assert result.exit_code == 1, result.output
    assert "aborted" in result.output


def test_alternate_root_only_changes_files(env):
    extra = [
        {"kind": "set_service_state", "unit": "cups.service", "enabled": False, "active": False},
        {"kind": "set_sysctl", "key": "vm.swappiness", "value": 10},
        {"kind": "run_command", "id": "apt:clean", "command": ["apt-get", "clean"]},
        {"kind": "write_file", "path": "/etc/default/zramswap", "content": "PERCENT=50\n",
         "reload": ["systemctl", "daemon-reload"]},
    ]

    with patch("perftune.connector.local.subprocess.run") as run:
        result = _apply(env, _action_list(env, *extra))

    assert result.exit_code == 0, result.output
    run.assert_not_called()
    assert (env["root"] / "etc/default/zramswap").read_text() == "PERCENT=50\n"

    manifest = load_manifest(RunRegistry(env["state"]).open_run(_run_ids(env)[0]).manifest)
    outcomes = [entry.outcome for entry in manifest.entries]
    assert [outcome.status for outcome in outcomes] == [
        OutcomeStatus.APPLIED,
        OutcomeStatus.SKIPPED,
        OutcomeStatus.SKIPPED,
        OutcomeStatus.SKIPPED,
        OutcomeStatus.APPLIED,
    ]
    assert all("alternate root" in outcome.reason for outcome in outcomes[1:4])
    assert "alternate root" in outcomes[4].warnings[0]


def test_apply_invalid_list(env):
    path = env["dir"] / "bad.yaml"
    path.write_text("actions:\n  - kind: reboot\n")

    result = _apply(env, str(path))

    assert result.exit_code == 1
    assert "Invalid action list" in result.output
    assert _run_ids(env) == []


def test_apply_dry_run_changes_nothing(env):
    result = _apply(env, _action_list(env), "--dry-run")

    assert result.exit_code == 0, result.output
    assert "DRY RUN" in result.output
    assert "[1] CHANGE: file:/etc/sysctl.d/99-perf.conf" in result.output
    assert not (env["root"] / "etc").exists()
    assert _run_ids(env) == []


def test_apply_refuses_without_root(env):
    with patch("perftune.connector.local.LocalHost.is_root", return_value=False):
        result = _invoke(env, "apply", _action_list(env), "--state-dir", str(env["state"]), "--yes")

    assert result.exit_code == 1
    assert "needs root privileges" in result.output
    assert _run_ids(env) == []


def test_apply_declined_confirmation(env):
    result = _invoke(
        env, "apply", _action_list(env), "--root", str(env["root"]), "--state-dir", str(env["state"]), input="n\n"
    )

    assert result.exit_code == 1
    assert "Nothing was changed" in result.output
    assert not (env["root"] / "etc").exists()


def test_apply_then_revert(env):
    conf = env["root"] / "etc/sysctl.d/99-perf.conf"
    conf.parent.mkdir(parents=True)
    conf.write_text("vm.swappiness = 60\n")
    _apply(env, _action_list(env))
    run_id = _run_ids(env)[0]

    result = _invoke(env, "revert", run_id, "--state-dir", str(env["state"]), "--yes", "--format", "plain")

    assert result.exit_code == 0, result.output
    assert f"Run {run_id} (revert): completed" in result.output
    assert conf.read_text() == "vm.swappiness = 60\n"
    assert len(list((env["state"] / run_id).glob("revert-*.jsonl"))) == 1


def test_revert_dry_run_shows_plan(env):
    _apply(env, _action_list(env))
    run_id = _run_ids(env)[0]

    result = _invoke(env, "revert", run_id, "--state-dir", str(env["state"]), "--dry-run", "--format", "plain")

    assert result.exit_code == 0, result.output
    assert "[1] RESTORE: file:/etc/sysctl.d/99-perf.conf - delete /etc/sysctl.d/99-perf.conf" in result.output
    assert (env["root"] / "etc/sysctl.d/99-perf.conf").exists()


def test_revert_unknown_run(env):
    result = _invoke(env, "revert", "20200101-000000", "--state-dir", str(env["state"]), "--yes")

    assert result.exit_code == 1
    assert "No manifest" in result.output


def test_plan_show_and_runs(env):
    _apply(env, _action_list(env))
    run_id = _run_ids(env)[0]
    state = ["--state-dir", str(env["state"]), "--format", "plain"]

    plan = _invoke(env, "plan", run_id, *state)
    show = _invoke(env, "show", run_id, *state)
    runs = _invoke(env, "runs", *state)

    assert plan.exit_code == 0 and "REVERT PLAN" in plan.output
    assert show.exit_code == 0 and f"Run {run_id} (apply): completed" in show.output
    assert runs.exit_code == 0 and run_id in runs.output


def test_prune(env):
    _apply(env, _action_list(env))
    run_id = _run_ids(env)[0]

    result = _invoke(env, "prune", "--state-dir", str(env["state"]), "--keep", "0", "--yes")

    assert result.exit_code == 0
    assert f"Removed run: {run_id}" in result.output
    assert _run_ids(env) == []


def test_profiles_lists_bundled_profiles(env):
    result = _invoke(env, "profiles")

    assert result.exit_code == 0
    assert "performance" in result.output


def test_config_profiles(env):
    add = _invoke(env, "config", "add", "web1", "--host", "10.0.0.5", "--user", "ops")
    listed = _invoke(env, "config", "list")
    removed = _invoke(env, "config", "remove", "web1")
    missing = _invoke(env, "config", "remove", "web1")

    assert add.exit_code == 0
    assert "ops@10.0.0.5:22" in listed.output
    assert removed.exit_code == 0
    assert missing.exit_code == 1


def test_invalid_settings_file(env):
    env["config"].mkdir()
    (env["config"] / "settings.yaml").write_text("keep_runs: -1\n")

    result = _invoke(env, "runs")

    assert result.exit_code == 1
    assert "keep_runs" in result.output


def test_version(env):
    result = _invoke(env, "--version")

    assert result.exit_code == 0
    assert __version__ in result.output
