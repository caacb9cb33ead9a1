from __future__ import annotations

import os
import re
from typing import Callable

from .config_types import ComposeCapability, HostState
from .errors import MissingToolError, PortConflictError, PrivilegeError
from .inputs import PromptSource
from .runner import CommandRunner, NullReporter, Reporter, StepOutcome
from .runtime import detect_compose

# Services that commonly hold 80/443 on a fresh VPS.
COMPETING_SERVICES = ("nginx", "angie", "apache2", "httpd", "caddy", "haproxy")
REQUIRED_TOOLS = ("ss", "systemctl")

_PROCESS_RE = re.compile(r'\(\("([^"]+)"')


def check_privileges(geteuid: Callable[[], int] = os.geteuid) -> None:
    if geteuid() != 0:
        raise PrivilegeError("This command must be run as root (use sudo).")


def check_tools(runner: CommandRunner) -> None:
    missing = [tool for tool in REQUIRED_TOOLS if not runner.exists(tool)]
    if missing:
        raise MissingToolError(f"Required tools are not installed: {', '.join(missing)}")


def port_listeners(runner: CommandRunner, port: int) -> list[str]:
    res = runner.run(["ss", "-tlnp"])
    if res.returncode == 127:
        raise MissingToolError("ss is required to inspect listening ports (package iproute2).")
    suffix = f":{port}"
    listeners: list[str] = []
    for line in (res.stdout or "").splitlines():
        cols = line.split()
        if len(cols) < 4 or cols[0] != "LISTEN":
            continue
        if cols[3].endswith(suffix):
            listeners.append(line.strip())
    return listeners


def listener_processes(listeners: list[str]) -> list[str]:
    names: list[str] = []
    for line in listeners:
        for name in _PROCESS_RE.findall(line):
            if name not in names:
                names.append(name)
    return names


def port_in_use(runner: CommandRunner, port: int) -> bool:
    return bool(port_listeners(runner, port))


def active_competitors(runner: CommandRunner) -> frozenset[str]:
    return frozenset(
        name for name in COMPETING_SERVICES if runner.success(["systemctl", "is-active", "--quiet", name])
    )


def inspect_host(runner: CommandRunner, port: int) -> HostState:
    runtime_present = runner.exists("docker")
    return HostState(
        port_in_use=port_in_use(runner, port),
        competing_services=active_competitors(runner),
        runtime_present=runtime_present,
        compose=detect_compose(runner) if runtime_present else ComposeCapability.ABSENT,
    )


class EnvironmentReconciler:
    def __init__(
        self,
        runner: CommandRunner,
        prompts: PromptSource,
        reporter: Reporter | None = None,
    ) -> None:
        self.runner = runner
        self.prompts = prompts
        self.reporter = reporter or NullReporter()

    def reconcile(self, port: int) -> None:
        listeners = port_listeners(self.runner, port)
        if not listeners:
            self.reporter.ok(f"Port {port} is free.")
            return

        self.reporter.warn(f"Port {port} is already in use:")
        for line in listeners:
            self.reporter.info(f"  {line}")
        owners = listener_processes(listeners)
        if owners:
            self.reporter.info(f"Owning process: {', '.join(owners)}")

        if not self.prompts.confirm_port_reclaim(port, listeners):
            raise PortConflictError(f"Port {port} must be free.", port=port, listeners=listeners)

        stopped = self.stop_competitors()
        if not stopped:
            self.reporter.warn("No known web server service is active; nothing was stopped.")

        remaining = port_listeners(self.runner, port)
        if remaining:
            raise PortConflictError(
                f"Port {port} is still in use. Free it manually and re-run.",
                port=port,
                listeners=remaining,
            )
        self.reporter.ok(f"Port {port} is now free.")

    def stop_competitors(self) -> list[str]:
        stopped: list[str] = []
        active = active_competitors(self.runner)
        for name in (svc for svc in COMPETING_SERVICES if svc in active):
            self.reporter.info(f"Stopping {name}...")
            outcome = self.runner.attempt(["systemctl", "stop", name], tolerate=True)
            if outcome is StepOutcome.SUCCEEDED:
                self.runner.attempt(["systemctl", "disable", name], tolerate=True)
                stopped.append(name)
            else:
                self.reporter.warn(f"Failed to stop {name}; continuing.")
        return stopped
