from __future__ import annotations

import pytest

from conftest import FakeRunner, completed, ss_output
from mtproxy_host.config_types import ComposeCapability
from mtproxy_host.errors import MissingToolError, PortConflictError, PrivilegeError
from mtproxy_host.inputs import DefaultPrompts
from mtproxy_host.reconcile import (
    EnvironmentReconciler,
    check_privileges,
    check_tools,
    inspect_host,
    listener_processes,
    port_listeners,
)


class _Decline(DefaultPrompts):
    def confirm_port_reclaim(self, port, listeners) -> bool:
        return False


def test_check_privileges_requires_root() -> None:
    with pytest.raises(PrivilegeError):
        check_privileges(lambda: 1000)
    check_privileges(lambda: 0)


def test_check_tools_reports_missing() -> None:
    with pytest.raises(MissingToolError) as exc:
        check_tools(FakeRunner(tools=("systemctl",)))
    assert "ss" in str(exc.value)


def test_port_listeners_matches_exact_port(fake_runner) -> None:
    fake_runner.on("ss", "-tlnp", results=[completed(ss_output((443, "nginx"), (8443, "caddy")))])
    listeners = port_listeners(fake_runner, 443)
    assert len(listeners) == 1
    assert listener_processes(listeners) == ["nginx"]
    assert port_listeners(fake_runner, 44) == []


def test_port_listeners_without_ss(fake_runner) -> None:
    fake_runner.on("ss", "-tlnp", results=[completed(returncode=127)])
    with pytest.raises(MissingToolError):
        port_listeners(fake_runner, 443)


def test_free_port_is_noop(fake_runner, reporter) -> None:
    fake_runner.on("ss", "-tlnp", results=[completed(ss_output((22, "sshd")))])
    EnvironmentReconciler(fake_runner, DefaultPrompts(), reporter).reconcile(443)
    assert not any(argv[0] == "systemctl" for argv in fake_runner.calls)
    assert reporter.texts("ok") == ["Port 443 is free."]


def test_occupied_port_stops_active_competitors(fake_runner, reporter) -> None:
    fake_runner.on(
        "ss", "-tlnp",
        results=[completed(ss_output((443, "nginx"))), completed(ss_output())],
    )
    fake_runner.on("systemctl", "is-active", results=[completed(returncode=3)])
    fake_runner.on("systemctl", "is-active", "--quiet", "nginx", results=[completed()])

    EnvironmentReconciler(fake_runner, DefaultPrompts(), reporter).reconcile(443)

    assert fake_runner.called("systemctl", "stop", "nginx")
    assert fake_runner.called("systemctl", "disable", "nginx")
    assert not fake_runner.called("systemctl", "stop", "caddy")
    assert "Port 443 is now free." in reporter.texts("ok")


def test_declined_reclaim_raises(fake_runner) -> None:
    fake_runner.on("ss", "-tlnp", results=[completed(ss_output((443, "nginx")))])
    with pytest.raises(PortConflictError) as exc:
        EnvironmentReconciler(fake_runner, _Decline()).reconcile(443)
    assert exc.value.port == 443
    assert not fake_runner.called("systemctl", "stop")


def test_still_occupied_after_stopping_raises(fake_runner) -> None:
    fake_runner.on("ss", "-tlnp", results=[completed(ss_output((443, "xray")))])
    fake_runner.on("systemctl", "is-active", results=[completed(returncode=3)])
    with pytest.raises(PortConflictError) as exc:
        EnvironmentReconciler(fake_runner, DefaultPrompts()).reconcile(443)
    assert "still in use" in str(exc.value)
    assert exc.value.listeners


def test_failed_stop_is_tolerated(fake_runner, reporter) -> None:
    fake_runner.on(
        "ss", "-tlnp",
        results=[completed(ss_output((443, "apache2"))), completed(ss_output())],
    )
    fake_runner.on("systemctl", "is-active", results=[completed(returncode=3)])
    fake_runner.on("systemctl", "is-active", "--quiet", "apache2", results=[completed()])
    fake_runner.on("systemctl", "stop", "apache2", results=[completed(returncode=1, stderr="denied")])

    EnvironmentReconciler(fake_runner, DefaultPrompts(), reporter).reconcile(443)

    assert "Failed to stop apache2; continuing." in reporter.texts("warn")
    assert not fake_runner.called("systemctl", "disable", "apache2")


def test_inspect_host(fake_runner) -> None:
    fake_runner.on("ss", "-tlnp", results=[completed(ss_output((443, "nginx")))])
    fake_runner.on("systemctl", "is-active", results=[completed(returncode=3)])
    fake_runner.on("systemctl", "is-active", "--quiet", "caddy", results=[completed()])
    state = inspect_host(fake_runner, 443)
    assert state.port_in_use is True
    assert state.competing_services == frozenset({"caddy"})
    assert state.runtime_present is True
    assert state.compose is ComposeCapability.PLUGIN
