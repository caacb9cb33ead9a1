from __future__ import annotations

import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable

import httpx

from .config_types import (
    COMPOSE_FILENAME,
    CONFIG_FILENAME,
    DEFAULT_CONTAINER,
    DEFAULT_IMAGE,
    METRICS_PORT,
    HealthReport,
    HealthWarning,
    InstallPaths,
    ServiceStatus,
)
from .errors import StartupError
from .reconcile import port_in_use
from .runner import CommandRunner, NullReporter, Reporter, StepOutcome, output_of, tail_lines
from .runtime import ComposeInvocation

DEFAULT_START_GRACE = 3.0
DEFAULT_RECHECK_DELAY = 2.0
STARTUP_LOG_TAIL = 20
HEALTH_LOG_TAIL = 10
METRICS_URL = f"http://127.0.0.1:{METRICS_PORT}/metrics"
METRICS_TIMEOUT = 5.0

_RUNNING_RE = re.compile(r"\b(up|running)\b", re.IGNORECASE)


@dataclass
class StopReport:
    compose_down: StepOutcome | None
    container_removed: bool
    dir_removed: bool

    @property
    def nothing_installed(self) -> bool:
        return self.compose_down is None and not self.container_removed and not self.dir_removed


class ServiceLifecycleController:
    def __init__(
        self,
        runner: CommandRunner,
        paths: InstallPaths,
        compose: ComposeInvocation | None,
        *,
        image: str = DEFAULT_IMAGE,
        container_name: str = DEFAULT_CONTAINER,
        reporter: Reporter | None = None,
        http_get: Callable[..., httpx.Response] = httpx.get,
        start_grace: float = DEFAULT_START_GRACE,
        recheck_delay: float = DEFAULT_RECHECK_DELAY,
    ) -> None:
        self.runner = runner
        self.paths = paths
        self.compose = compose
        self.image = image
        self.container_name = container_name
        self.reporter = reporter or NullReporter()
        self.http_get = http_get
        self.start_grace = start_grace
        self.recheck_delay = recheck_delay

    def _compose(self, *args: str) -> subprocess.CompletedProcess[str]:
        if self.compose is None:
            raise StartupError("No compose capability was resolved for this host.")
        return self.runner.run(self.compose.argv(self.paths.compose_path, *args), cwd=str(self.paths.root))

    def start(self, port: int) -> None:
        self.reporter.info("Pulling Docker image...")
        res = self.runner.run(["docker", "pull", self.image])
        if res.returncode != 0:
            raise StartupError(f"Failed to pull image {self.image}.", logs=output_of(res))

        self.reporter.info("Starting container...")
        res = self._compose("up", "-d")
        if res.returncode != 0:
            raise StartupError("Compose failed to start the service.", logs=output_of(res))

        self.reporter.info("Waiting for container to start...")
        self.runner.sleep(self.start_grace)
        if self._compose_reports_running():
            self.reporter.ok("Container is running.")
            return

        self.reporter.warn("Container may not have started. Checking logs...")
        logs = self.logs(tail=STARTUP_LOG_TAIL)
        if logs:
            self.reporter.info(logs)
        self.runner.sleep(self.recheck_delay)
        if port_in_use(self.runner, port):
            self.reporter.ok(f"Container is running (port {port} is listening).")
            return
        raise StartupError("Container failed to start. Check the logs above.", logs=logs)

    def _compose_reports_running(self) -> bool:
        res = self._compose("ps", "--format", "{{.State}}")
        if res.returncode == 0 and "running" in (res.stdout or "").lower():
            return True
        # Older compose releases have no --format; fall back to the table.
        res = self._compose("ps")
        lines = (res.stdout or "").splitlines()[1:]
        return res.returncode == 0 and any(_RUNNING_RE.search(line) for line in lines)

    def verify(self, port: int, *, metrics_enabled: bool) -> HealthReport:
        report = HealthReport(port_listening=port_in_use(self.runner, port))
        if report.port_listening:
            self.reporter.ok(f"Port {port} is listening.")
        else:
            report.warnings.append(HealthWarning("port", f"Port {port} does not appear to be listening."))

        if metrics_enabled:
            report.metrics_ok = self._probe_metrics()
            if report.metrics_ok:
                self.reporter.ok("Metrics endpoint is responding.")
            else:
                report.warnings.append(
                    HealthWarning("metrics", "Metrics endpoint is not responding (may take a moment).")
                )

        for warning in report.warnings:
            self.reporter.warn(warning.message)
        report.logs = self.logs(tail=HEALTH_LOG_TAIL)
        return report

    def _probe_metrics(self) -> bool:
        try:
            response = self.http_get(METRICS_URL, timeout=METRICS_TIMEOUT)
        except httpx.HTTPError:
            return False
        return response.status_code < 400

    def stop(self, *, remove_data: bool = True) -> StopReport:
        compose_down = None
        if self.paths.compose_path.exists() and self.compose is not None:
            self.reporter.info("Stopping container...")
            compose_down = self.runner.attempt(
                self.compose.argv(self.paths.compose_path, "down", "--remove-orphans"),
                tolerate=True,
            )

        container_removed = False
        if self.runner.exists("docker"):
            outcome = self.runner.attempt(["docker", "rm", "-f", self.container_name], tolerate=True)
            container_removed = outcome is StepOutcome.SUCCEEDED
            if container_removed:
                self.reporter.info(f"Removed {self.container_name} container")

        dir_removed = False
        if remove_data and self.paths.root.is_dir():
            dir_removed = self._remove_install_dir()
        elif remove_data:
            self.reporter.info(f"Nothing to remove ({self.paths.root} not found)")
        return StopReport(compose_down=compose_down, container_removed=container_removed, dir_removed=dir_removed)

    def _owns_install_dir(self) -> bool:
        if self.paths.config_path.exists() or self.paths.compose_path.exists():
            return True
        return not any(self.paths.root.iterdir())

    def _remove_install_dir(self) -> bool:
        root = self.paths.root
        if not self._owns_install_dir():
            self.reporter.warn(
                f"{root} holds no {CONFIG_FILENAME} or {COMPOSE_FILENAME}; leaving it in place."
            )
            return False
        try:
            shutil.rmtree(root)
        except OSError as exc:
            self.reporter.warn(f"Could not remove {root}: {exc}")
            return False
        self.reporter.ok(f"Removed {root}")
        return True

    def status(self) -> ServiceStatus:
        res = self.runner.run(["docker", "inspect", "-f", "{{.State.Status}}", self.container_name])
        if res.returncode != 0:
            return ServiceStatus.ABSENT
        state = (res.stdout or "").strip().lower()
        if state == "running":
            return ServiceStatus.RUNNING
        return ServiceStatus.STOPPED

    def logs(self, *, tail: int) -> str | None:
        if self.compose is not None and self.paths.compose_path.exists():
            res = self._compose("logs", f"--tail={tail}")
        else:
            res = self.runner.run(["docker", "logs", "--tail", str(tail), self.container_name])
        if res.returncode == 127:
            return None
        output = output_of(res)
        return "\n".join(tail_lines(output, limit=tail)) or None
