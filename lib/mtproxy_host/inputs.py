from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence


@dataclass(frozen=True)
class PlanSummary:
    port: int
    tls_domain: str
    metrics_enabled: bool
    full_secret: str
    install_dir: str


class PromptSource(Protocol):
    """Where operator answers come from; chosen once at startup."""

    def ask_port(self, default: int) -> int: ...

    def ask_domain(self, default: str) -> str: ...

    def ask_metrics(self, default: bool) -> bool: ...

    def confirm_port_reclaim(self, port: int, listeners: Sequence[str]) -> bool: ...

    def confirm_plan(self, plan: PlanSummary) -> bool: ...


class DefaultPrompts:
    """Answers every question with its default, never touching a terminal."""

    def ask_port(self, default: int) -> int:
        return default

    def ask_domain(self, default: str) -> str:
        return default

    def ask_metrics(self, default: bool) -> bool:
        return default

    def confirm_port_reclaim(self, port: int, listeners: Sequence[str]) -> bool:
        return True

    def confirm_plan(self, plan: PlanSummary) -> bool:
        return True
