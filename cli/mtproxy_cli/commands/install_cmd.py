from __future__ import annotations

import typer

from mtproxy_host import InstallCancelled, InstallOptions, InstallResult, Orchestrator, SetupError, StartupError
from mtproxy_host.config_types import InstallPaths
from mtproxy_host.runner import CommandRunner

from .. import console
from ..config import load_config, resolve_install_dir
from ..prompts import select_prompt_source


def report_error(exc: SetupError) -> None:
    console.err(f"{exc.label}: {exc}")
    if isinstance(exc, StartupError) and exc.logs:
        console.rule("Container logs")
        console.print(exc.logs, markup=False, highlight=False)


def print_result(result: InstallResult) -> None:
    console.rule("Installation complete")
    console.print("[bold]Connection links:[/]")
    console.print(f"  {result.links.tg}", markup=False, soft_wrap=True)
    console.print(f"  {result.links.https}", markup=False, soft_wrap=True)
    console.print("")
    console.print("[bold]Details:[/]")
    console.print(f"  Server:      {result.server}", markup=False)
    console.print(f"  Port:        {result.port}", markup=False)
    console.print(f"  Secret:      {result.full_secret}", markup=False)
    console.print(f"  TLS domain:  {result.tls_domain}", markup=False)
    console.print(f"  Install dir: {result.install_dir}", markup=False)
    console.print("")
    console.print("[bold]Management:[/]")
    for command in result.management_commands:
        console.print(f"  {command}", markup=False, soft_wrap=True)
    if result.warnings:
        console.print("")
        for warning in result.warnings:
            console.warn(warning.message)
    if result.logs:
        console.rule("Recent logs")
        console.print(result.logs, markup=False, highlight=False)


def run_install(
        *,
        port: int | None = None,
        domain: str | None = None,
        metrics: bool | None = None,
        install_dir: str | None = None,
        image: str | None = None,
        non_interactive: bool = False,
        yes: bool = False,
) -> None:
    cfg = load_config()
    try:
        options = InstallOptions(
            port=port,
            domain=domain,
            metrics=metrics,
            paths=InstallPaths(resolve_install_dir(cfg, install_dir)),
            image=image or cfg.image,
            default_port=cfg.default_port,
            default_domain=cfg.default_domain,
        )
        prompts = select_prompt_source(non_interactive, yes)
        result = Orchestrator(CommandRunner(), prompts, console, options=options).install()
    except InstallCancelled as exc:
        console.warn(str(exc))
        raise typer.Exit(code=1)
    except SetupError as exc:
        report_error(exc)
        raise typer.Exit(code=2)

    print_result(result)


def install(
        port: int | None = typer.Option(None, "--port", min=1, max=65535, help="Proxy port (skips the prompt)."),
        domain: str | None = typer.Option(None, "--domain", help="TLS masking domain (skips the prompt)."),
        metrics: bool | None = typer.Option(
            None, "--metrics/--no-metrics", help="Expose metrics on 127.0.0.1:9090 (skips the prompt)."
        ),
        install_dir: str | None = typer.Option(None, "--install-dir", help="Where telemt.toml and compose file live."),
        image: str | None = typer.Option(None, "--image", help="Container image to run."),
        non_interactive: bool = typer.Option(False, "--non-interactive", help="Never prompt; use defaults."),
        yes: bool = typer.Option(False, "--yes", "-y", help="Accept every default and confirmation."),
):
    """Install and start the MTProto proxy."""
    run_install(
        port=port,
        domain=domain,
        metrics=metrics,
        install_dir=install_dir,
        image=image,
        non_interactive=non_interactive,
        yes=yes,
    )
