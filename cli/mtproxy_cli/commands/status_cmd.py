from __future__ import annotations

import httpx
import typer

from mtproxy_host.config_types import ComposeCapability, InstallPaths, ServiceStatus
from mtproxy_host.errors import InvalidInputError
from mtproxy_host.lifecycle import ServiceLifecycleController
from mtproxy_host.orchestrator import PUBLIC_IP_PLACEHOLDER, detect_public_ip
from mtproxy_host.reconcile import port_in_use
from mtproxy_host.render import InstalledConfig, load_installed
from mtproxy_host.runner import CommandRunner
from mtproxy_host.runtime import ComposeInvocation, detect_compose
from mtproxy_host.secret import build_links, from_raw

from .. import console
from ..config import load_config, resolve_install_dir


def _installed(install_dir: str | None) -> tuple[InstallPaths, InstalledConfig]:
    try:
        paths = InstallPaths(resolve_install_dir(load_config(), install_dir))
    except InvalidInputError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    try:
        installed = load_installed(paths)
    except (OSError, ValueError) as exc:
        console.err(f"Cannot read {paths.config_path}: {exc}")
        raise typer.Exit(code=2)
    if installed is None:
        console.err(f"No proxy config found at {paths.config_path}. Run install first.")
        raise typer.Exit(code=2)
    return paths, installed


def status(
        install_dir: str | None = typer.Option(None, "--install-dir", help="Installation directory."),
):
    """Show container state and whether the proxy port is listening."""
    paths, installed = _installed(install_dir)
    runner = CommandRunner()
    compose = None
    if runner.exists("docker"):
        capability = detect_compose(runner)
        if capability is not ComposeCapability.ABSENT:
            compose = ComposeInvocation(capability)
    controller = ServiceLifecycleController(runner, paths, compose)
    state = controller.status()

    console.print(f"install_dir={paths.root} port={installed.port} tls_domain={installed.tls_domain}", markup=False)
    if state is ServiceStatus.RUNNING:
        console.ok(f"Container {controller.container_name} is running")
    elif state is ServiceStatus.STOPPED:
        console.warn(f"Container {controller.container_name} exists but is not running")
    else:
        console.warn(f"Container {controller.container_name} not found")

    if port_in_use(runner, installed.port):
        console.ok(f"Port {installed.port} is listening")
    else:
        console.warn(f"Port {installed.port} is not listening")
    if state is not ServiceStatus.RUNNING:
        raise typer.Exit(code=1)


def link(
        server: str | None = typer.Option(None, "--server", help="Public address to put in the links."),
        install_dir: str | None = typer.Option(None, "--install-dir", help="Installation directory."),
):
    """Print connection links for the existing installation."""
    _, installed = _installed(install_dir)
    try:
        secret = from_raw(installed.raw_secret, installed.tls_domain)
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)

    host = server or detect_public_ip(httpx.get)
    if host == PUBLIC_IP_PLACEHOLDER:
        console.warn("Could not detect the public IP; replace YOUR_SERVER_IP in the links.")
    links = build_links(host, installed.port, secret.full)
    console.print(links.tg, markup=False, soft_wrap=True)
    console.print(links.https, markup=False, soft_wrap=True)
