from __future__ import annotations

import enum
import ipaddress
import logging
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

import httpx

from .config_types import (
    DEFAULT_CONTAINER,
    DEFAULT_DOMAIN,
    DEFAULT_IMAGE,
    DEFAULT_PORT,
    ComposeCapability,
    HealthReport,
    HealthWarning,
    HostState,
    InstallPaths,
    InstallRequest,
    ServiceConfig,
)
from .errors import InstallCancelled, InvalidInputError, SetupError
from .inputs import PlanSummary, PromptSource
from .lifecycle import DEFAULT_RECHECK_DELAY, DEFAULT_START_GRACE, ServiceLifecycleController, StopReport
from .reconcile import EnvironmentReconciler, check_privileges, check_tools, inspect_host
from .render import RenderedArtifacts, render, write_artifacts
from .runner import CommandRunner, NullReporter, Reporter
from .runtime import ComposeInvocation, RuntimeHandle, detect_compose, ensure_runtime
from .secret import ConnectionLinks, build_links, normalize_domain, synthesize

logger = logging.getLogger(__name__)

PUBLIC_IP_SOURCES = ("https://ifconfig.me", "https://api.ipify.org")
PUBLIC_IP_PLACEHOLDER = "YOUR_SERVER_IP"

_T = TypeVar("_T")


class InstallState(str, enum.Enum):
    START = "start"
    ENVIRONMENT_CHECKED = "environment_checked"
    RUNTIME_READY = "runtime_ready"
    CONFIGURED = "configured"
    FILES_WRITTEN = "files_written"
    SERVICE_RUNNING = "service_running"
    VERIFIED = "verified"
    REPORTED = "reported"
    UNINSTALLED = "uninstalled"


@dataclass(frozen=True)
class InstallOptions:
    """Answers fixed up front; ``None`` means ask the prompt source."""

    port: int | None = None
    domain: str | None = None
    metrics: bool | None = None
    paths: InstallPaths = field(default_factory=InstallPaths)
    image: str = DEFAULT_IMAGE
    container_name: str = DEFAULT_CONTAINER
    default_port: int = DEFAULT_PORT
    default_domain: str = DEFAULT_DOMAIN


@dataclass(frozen=True)
class InstallResult:
    server: str
    port: int
    tls_domain: str
    full_secret: str
    links: ConnectionLinks
    install_dir: Path
    management_commands: list[str]
    warnings: list[HealthWarning]
    logs: str | None = None


@dataclass
class InstallContext:
    options: InstallOptions
    state: InstallState = InstallState.START
    port: int | None = None
    host: HostState | None = None
    runtime: RuntimeHandle | None = None
    config: ServiceConfig | None = None
    artifacts: RenderedArtifacts | None = None
    written: list[Path] = field(default_factory=list)
    health: HealthReport | None = None
    result: InstallResult | None = None


def _required(value: _T | None, what: str) -> _T:
    if value is None:
        raise SetupError(f"Install step reached before {what} was prepared.")
    return value


def detect_public_ip(http_get: Callable[..., httpx.Response] = httpx.get, *, timeout: float = 5.0) -> str:
    for url in PUBLIC_IP_SOURCES:
        try:
            response = http_get(url, timeout=timeout)
        except httpx.HTTPError as exc:
            logger.debug("public IP lookup via %s failed: %s", url, exc)
            continue
        if response.status_code >= 400:
            continue
        candidate = response.text.strip()
        try:
            ipaddress.ip_address(candidate)
        except ValueError:
            continue
        return candidate
    return PUBLIC_IP_PLACEHOLDER


def management_commands(compose: ComposeInvocation, compose_path: Path) -> list[str]:
    return [
        compose.display(compose_path, "logs", "-f"),
        compose.display(compose_path, "restart"),
        compose.display(compose_path, "down"),
    ]


class Orchestrator:
    """Drives one install (or uninstall) run from START to a terminal state.

    Each state has exactly one forward transition. Any exception aborts the
    run where it stands; nothing is rolled back and nothing is persisted
    about progress, so a rerun starts from START again.
    """

    def __init__(
        self,
        runner: CommandRunner,
        prompts: PromptSource,
        reporter: Reporter | None = None,
        *,
        options: InstallOptions | None = None,
        geteuid: Callable[[], int] = os.geteuid,
        http_get: Callable[..., httpx.Response] = httpx.get,
        token_bytes: Callable[[int], bytes] = secrets.token_bytes,
        start_grace: float = DEFAULT_START_GRACE,
        recheck_delay: float = DEFAULT_RECHECK_DELAY,
    ) -> None:
        self.runner = runner
        self.prompts = prompts
        self.reporter = reporter or NullReporter()
        self.options = options or InstallOptions()
        self.geteuid = geteuid
        self.http_get = http_get
        self.token_bytes = token_bytes
        self.start_grace = start_grace
        self.recheck_delay = recheck_delay
        self.reconciler = EnvironmentReconciler(runner, prompts, self.reporter)
        self._transitions: dict[InstallState, Callable[[InstallContext], InstallState]] = {
            InstallState.START: self._check_environment,
            InstallState.ENVIRONMENT_CHECKED: self._prepare_runtime,
            InstallState.RUNTIME_READY: self._configure,
            InstallState.CONFIGURED: self._write_files,
            InstallState.FILES_WRITTEN: self._start_service,
            InstallState.SERVICE_RUNNING: self._verify,
            InstallState.VERIFIED: self._report,
        }

    def install(self) -> InstallResult:
        ctx = InstallContext(options=self.options)
        while ctx.state is not InstallState.REPORTED:
            step = self._transitions[ctx.state]
            next_state = step(ctx)
            logger.debug("state %s -> %s", ctx.state.value, next_state.value)
            ctx.state = next_state
        return _required(ctx.result, "the install result")

    def uninstall(self) -> StopReport:
        check_privileges(self.geteuid)
        self.reporter.info("Uninstalling MTProto proxy...")
        compose = None
        if self.runner.exists("docker"):
            capability = detect_compose(self.runner)
            if capability is not ComposeCapability.ABSENT:
                compose = ComposeInvocation(capability)
        controller = self._controller(compose)
        report = controller.stop(remove_data=True)
        logger.debug("state %s -> %s", InstallState.START.value, InstallState.UNINSTALLED.value)
        self.reporter.ok("Uninstall complete")
        return report

    def _controller(self, compose: ComposeInvocation | None) -> ServiceLifecycleController:
        return ServiceLifecycleController(
            self.runner,
            self.options.paths,
            compose,
            image=self.options.image,
            container_name=self.options.container_name,
            reporter=self.reporter,
            http_get=self.http_get,
            start_grace=self.start_grace,
            recheck_delay=self.recheck_delay,
        )

    def _check_environment(self, ctx: InstallContext) -> InstallState:
        self.reporter.info("Checking environment...")
        check_privileges(self.geteuid)
        check_tools(self.runner)
        opts = ctx.options
        port = opts.port if opts.port is not None else self.prompts.ask_port(opts.default_port)
        if not 1 <= int(port) <= 65535:
            raise InvalidInputError(f"Port must be between 1 and 65535, got {port}.")
        # Only the port the proxy will actually bind is reclaimed.
        self.reconciler.reconcile(int(port))
        ctx.port = int(port)
        ctx.host = inspect_host(self.runner, ctx.port)
        logger.debug("host state: %s", ctx.host)
        self.reporter.ok("Environment OK")
        return InstallState.ENVIRONMENT_CHECKED

    def _prepare_runtime(self, ctx: InstallContext) -> InstallState:
        host = _required(ctx.host, "the host snapshot")
        ctx.runtime = ensure_runtime(self.runner, self.reporter, host=host)
        return InstallState.RUNTIME_READY

    def _configure(self, ctx: InstallContext) -> InstallState:
        opts = ctx.options
        port = _required(ctx.port, "the proxy port")
        raw_domain = opts.domain if opts.domain is not None else self.prompts.ask_domain(opts.default_domain)
        metrics = opts.metrics if opts.metrics is not None else self.prompts.ask_metrics(False)
        try:
            request = InstallRequest(port=port, tls_domain=normalize_domain(raw_domain), metrics_enabled=metrics)
        except ValueError as exc:
            raise InvalidInputError(str(exc)) from exc

        secret = synthesize(request.tls_domain, token_bytes=self.token_bytes)
        ctx.config = ServiceConfig(
            request=request,
            secret=secret,
            paths=opts.paths,
            image=opts.image,
            container_name=opts.container_name,
        )
        plan = PlanSummary(
            port=request.port,
            tls_domain=request.tls_domain,
            metrics_enabled=request.metrics_enabled,
            full_secret=secret.full,
            install_dir=str(opts.paths.root),
        )
        if not self.prompts.confirm_plan(plan):
            raise InstallCancelled("Installation cancelled.")
        return InstallState.CONFIGURED

    def _write_files(self, ctx: InstallContext) -> InstallState:
        cfg = _required(ctx.config, "the service config")
        self.reporter.info(f"Writing configuration to {cfg.paths.root}...")
        ctx.artifacts = render(cfg)
        ctx.written = write_artifacts(cfg, ctx.artifacts)
        self.reporter.ok("Configuration files created")
        return InstallState.FILES_WRITTEN

    def _start_service(self, ctx: InstallContext) -> InstallState:
        cfg = _required(ctx.config, "the service config")
        runtime = _required(ctx.runtime, "the container runtime")
        self._controller(runtime.compose).start(cfg.port)
        return InstallState.SERVICE_RUNNING

    def _verify(self, ctx: InstallContext) -> InstallState:
        cfg = _required(ctx.config, "the service config")
        runtime = _required(ctx.runtime, "the container runtime")
        self.reporter.info("Running health checks...")
        ctx.health = self._controller(runtime.compose).verify(cfg.port, metrics_enabled=cfg.metrics_enabled)
        return InstallState.VERIFIED

    def _report(self, ctx: InstallContext) -> InstallState:
        cfg = _required(ctx.config, "the service config")
        runtime = _required(ctx.runtime, "the container runtime")
        health = _required(ctx.health, "the health report")
        server = detect_public_ip(self.http_get)
        ctx.result = InstallResult(
            server=server,
            port=cfg.port,
            tls_domain=cfg.tls_domain,
            full_secret=cfg.secret.full,
            links=build_links(server, cfg.port, cfg.secret.full),
            install_dir=cfg.paths.root,
            management_commands=management_commands(runtime.compose, cfg.paths.compose_path),
            warnings=list(health.warnings),
            logs=health.logs,
        )
        return InstallState.REPORTED
