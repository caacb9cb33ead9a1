from __future__ import annotations

import typer

from mtproxy_host import InstallOptions, Orchestrator, SetupError
from mtproxy_host.config_types import InstallPaths
from mtproxy_host.inputs import DefaultPrompts
from mtproxy_host.runner import CommandRunner

from .. import console
from ..config import load_config, resolve_install_dir
from .install_cmd import report_error


def run_uninstall(install_dir: str | None = None) -> None:
    cfg = load_config()
    try:
        options = InstallOptions(paths=InstallPaths(resolve_install_dir(cfg, install_dir)))
        report = Orchestrator(CommandRunner(), DefaultPrompts(), console, options=options).uninstall()
    except SetupError as exc:
        report_error(exc)
        raise typer.Exit(code=2)
    if report.nothing_installed:
        console.info("No MTProto proxy installation was found.")


def uninstall(
        install_dir: str | None = typer.Option(None, "--install-dir", help="Installation directory to remove."),
):
    """Stop the proxy and remove its installation directory."""
    run_uninstall(install_dir)
