"""Tests for the set_sysctl action handler and SysctlManager."""

import pytest

from perftune.actions import SysctlHandler
from perftune.errors import PermissionDenied, TargetNotFound
from perftune.model.outcome import OutcomeStatus
from perftune.system.kernel import SysctlManager, normalize_value


@pytest.fixture
def handler(host):
    return SysctlHandler(host, timeout=5)


def _swappiness(value="10"):
    return {"kind": "set_sysctl", "key": "vm.swappiness", "value": value}


def test_set_and_restore(host, handler, make_list):
    host.kernel["vm.swappiness"] = "60"
    action = make_list(_swappiness()).actions[0]

    outcome, snapshot = handler.apply(action, 1, lambda snap: None)

    assert outcome.status == OutcomeStatus.APPLIED
    assert snapshot.state == {"value": "60"}
    assert host.kernel["vm.swappiness"] == "10"
    assert handler.describe_inverse(action, snapshot) == "set vm.swappiness = 60"

    handler.restore(action, snapshot)

    assert host.kernel["vm.swappiness"] == "60"


def test_current_value_is_satisfied(host, handler, make_list):
    host.kernel["vm.swappiness"] = "10"

    outcome, _ = handler.apply(make_list(_swappiness(10)).actions[0], 1, lambda snap: None)

    assert outcome.status == OutcomeStatus.ALREADY_SATISFIED
    assert not any(call.startswith("sysctl -w") for call in host.calls)


def test_unknown_key_is_skipped(host, handler, make_list):
    outcome, snapshot = handler.apply(make_list(_swappiness()).actions[0], 1, lambda snap: None)

    assert outcome.status == OutcomeStatus.SKIPPED
    assert "vm.swappiness" in outcome.reason
    assert snapshot is None


def test_readonly_key_fails_without_change(host, handler, make_list):
    host.kernel["vm.swappiness"] = "60"
    host.readonly_keys.add("vm.swappiness")

    outcome, _ = handler.apply(make_list(_swappiness()).actions[0], 1, lambda snap: None)

    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.error_kind == "permission_denied"
    assert outcome.mutated is False
    assert host.kernel["vm.swappiness"] == "60"


def test_multi_value_parameters_compare_by_whitespace(host, handler, make_list):
    host.kernel["net.ipv4.tcp_rmem"] = "4096\t131072\t6291456"
    action = make_list({"kind": "set_sysctl", "key": "net.ipv4.tcp_rmem", "value": "4096 131072  6291456"}).actions[0]

    outcome, _ = handler.apply(action, 1, lambda snap: None)

    assert outcome.status == OutcomeStatus.ALREADY_SATISFIED


def test_normalize_value():
    assert normalize_value(" 4096\t16384 \n") == "4096 16384"
    assert normalize_value(10) == "10"


def test_manager_errors(host):
    kernel = SysctlManager(host)
    host.kernel["kernel.sched_autogroup_enabled"] = "1"
    host.readonly_keys.add("kernel.sched_autogroup_enabled")

    with pytest.raises(TargetNotFound):
        kernel.get("vm.missing")
    with pytest.raises(PermissionDenied):
        kernel.set("kernel.sched_autogroup_enabled", "0")
