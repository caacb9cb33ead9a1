from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path

from .config_types import ComposeCapability, HostState
from .errors import MissingDependencyError
from .runner import CommandRunner, NullReporter, Reporter, StepOutcome, output_of

DOCKER_INSTALL_SCRIPT = "https://get.docker.com"
COMPOSE_DOCS_URL = "https://docs.docker.com/compose/install/"

# Package names differ across distributions; tried in order, failures tolerated.
_COMPOSE_PACKAGES: dict[str, list[list[str]]] = {
    "apt-get": [
        ["apt-get", "update", "-qq"],
        ["apt-get", "install", "-y", "-qq", "docker-compose-v2"],
        ["apt-get", "install", "-y", "-qq", "docker-compose-plugin"],
    ],
    "dnf": [["dnf", "install", "-y", "-q", "docker-compose-plugin"]],
    "yum": [["yum", "install", "-y", "-q", "docker-compose-plugin"]],
}

_CURL_PACKAGES: dict[str, list[list[str]]] = {
    "apt-get": [["apt-get", "update", "-qq"], ["apt-get", "install", "-y", "-qq", "curl"]],
    "dnf": [["dnf", "install", "-y", "-q", "curl"]],
    "yum": [["yum", "install", "-y", "-q", "curl"]],
}


@dataclass(frozen=True)
class ComposeInvocation:
    capability: ComposeCapability

    @property
    def base(self) -> list[str]:
        if self.capability is ComposeCapability.PLUGIN:
            return ["docker", "compose"]
        if self.capability is ComposeCapability.STANDALONE:
            return ["docker-compose"]
        raise MissingDependencyError("Docker Compose is not available.")

    def argv(self, compose_path: Path | str, *args: str) -> list[str]:
        return [*self.base, "-f", str(compose_path), *args]

    def display(self, compose_path: Path | str, *args: str) -> str:
        return shlex.join(self.argv(compose_path, *args))


@dataclass(frozen=True)
class RuntimeHandle:
    docker_version: str
    compose: ComposeInvocation
    compose_version: str


def detect_compose(runner: CommandRunner) -> ComposeCapability:
    if runner.success(["docker", "compose", "version"]):
        return ComposeCapability.PLUGIN
    if runner.exists("docker-compose"):
        return ComposeCapability.STANDALONE
    return ComposeCapability.ABSENT


def _package_manager(runner: CommandRunner) -> str | None:
    for manager in ("apt-get", "yum", "dnf"):
        if runner.exists(manager):
            return manager
    return None


def _install_packages(runner: CommandRunner, steps: list[list[str]], *, stop_on_success: bool) -> bool:
    """Run package-manager steps, tolerating each failure.

    With ``stop_on_success`` the install steps are alternatives: the first
    package that installs ends the sequence.
    """
    installed = False
    for argv in steps:
        outcome = runner.attempt(argv, tolerate=True)
        if argv[1] == "update":
            continue
        if outcome is StepOutcome.SUCCEEDED:
            installed = True
            if stop_on_success:
                break
    return installed


def _ensure_curl(runner: CommandRunner, reporter: Reporter) -> None:
    if runner.exists("curl"):
        return
    manager = _package_manager(runner)
    if manager is None:
        raise MissingDependencyError("Cannot install curl: no supported package manager. Install it manually.")
    reporter.info("Installing curl...")
    _install_packages(runner, _CURL_PACKAGES[manager], stop_on_success=False)
    if not runner.exists("curl"):
        raise MissingDependencyError("curl is required to install Docker. Install it manually and re-run.")


def install_docker(runner: CommandRunner, reporter: Reporter) -> None:
    _ensure_curl(runner, reporter)
    reporter.info("Installing Docker using the official convenience script...")
    res = runner.run([f"curl -fsSL {DOCKER_INSTALL_SCRIPT} | sh -s --"], shell=True)
    if res.returncode != 0 or not runner.exists("docker"):
        raise MissingDependencyError(
            "Docker installation failed. Install Docker manually and re-run.\n" + output_of(res)
        )
    for action in ("enable", "start"):
        if runner.attempt(["systemctl", action, "docker"], tolerate=False) is StepOutcome.FATAL:
            raise MissingDependencyError(f"Docker was installed but `systemctl {action} docker` failed.")


def resolve_compose(
    runner: CommandRunner,
    reporter: Reporter,
    *,
    known: ComposeCapability | None = None,
) -> ComposeInvocation:
    capability = known if known is not None else detect_compose(runner)
    if capability is ComposeCapability.ABSENT:
        reporter.info("Installing Docker Compose plugin...")
        manager = _package_manager(runner)
        if manager is not None:
            _install_packages(runner, _COMPOSE_PACKAGES[manager], stop_on_success=True)
        # The package manager path only ever provides the plugin.
        if runner.success(["docker", "compose", "version"]):
            capability = ComposeCapability.PLUGIN
    if capability is ComposeCapability.ABSENT:
        raise MissingDependencyError(
            f"Docker Compose is not available. Install it manually: {COMPOSE_DOCS_URL}"
        )
    return ComposeInvocation(capability)


def ensure_runtime(
    runner: CommandRunner,
    reporter: Reporter | None = None,
    *,
    host: HostState | None = None,
) -> RuntimeHandle:
    """Install whatever is missing. A fresh ``host`` snapshot skips re-probing."""
    reporter = reporter or NullReporter()
    docker_present = host.runtime_present if host is not None else runner.exists("docker")
    if docker_present:
        reporter.ok("Docker is already installed.")
    else:
        install_docker(runner, reporter)
        reporter.ok("Docker installed.")
    docker_version = output_of(runner.run(["docker", "--version"]))

    known = host.compose if host is not None and host.runtime_present else None
    compose = resolve_compose(runner, reporter, known=known)
    res = runner.run([*compose.base, "version", "--short"])
    if res.returncode != 0:
        res = runner.run([*compose.base, "version"])
    compose_version = output_of(res)
    reporter.ok(f"Compose: {shlex.join(compose.base)} ({compose_version or 'unknown version'})")
    return RuntimeHandle(docker_version=docker_version, compose=compose, compose_version=compose_version)
