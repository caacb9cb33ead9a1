from __future__ import annotations

import sys
from typing import Sequence, TextIO

import typer
from rich.prompt import Confirm

from mtproxy_host.inputs import DefaultPrompts, PlanSummary, PromptSource

from . import console


class TerminalPrompts:
    """Asks the operator on the controlling terminal."""

    def ask_port(self, default: int) -> int:
        while True:
            port = typer.prompt("Proxy port", default=default, type=int)
            if 1 <= port <= 65535:
                return port
            console.err("Port must be between 1 and 65535.")

    def ask_domain(self, default: str) -> str:
        return typer.prompt("TLS masking domain (fake SNI)", default=default)

    def ask_metrics(self, default: bool) -> bool:
        return Confirm.ask("Enable metrics endpoint on port 9090?", default=default)

    def confirm_port_reclaim(self, port: int, listeners: Sequence[str]) -> bool:
        return Confirm.ask(f"Stop the service occupying port {port} and continue?", default=True)

    def confirm_plan(self, plan: PlanSummary) -> bool:
        print_plan(plan)
        return Confirm.ask("Proceed with installation?", default=True)


def print_plan(plan: PlanSummary) -> None:
    console.rule("Configuration summary")
    console.print(f"  Port:        {plan.port}")
    console.print(f"  TLS domain:  {plan.tls_domain}")
    console.print(f"  Metrics:     {'enabled (127.0.0.1:9090)' if plan.metrics_enabled else 'disabled'}")
    console.print(f"  Secret:      {plan.full_secret}")
    console.print(f"  Install dir: {plan.install_dir}")
    console.print("")


def select_prompt_source(non_interactive: bool, assume_yes: bool, stdin: TextIO | None = None) -> PromptSource:
    stream = sys.stdin if stdin is None else stdin
    if non_interactive or assume_yes:
        return DefaultPrompts()
    if stream is None or not stream.isatty():
        console.info("No terminal attached; using defaults for every question.")
        return DefaultPrompts()
    return TerminalPrompts()
