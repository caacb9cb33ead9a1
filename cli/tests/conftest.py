from __future__ import annotations

import subprocess
from typing import Callable, Sequence

import httpx
import pytest

from mtproxy_host.runner import CommandRunner

SS_HEADER = "State  Recv-Q Send-Q Local Address:Port Peer Address:Port Process"

Result = subprocess.CompletedProcess | Callable[[list[str]], subprocess.CompletedProcess]


def completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess([], returncode, stdout, stderr)


def ss_output(*listeners: tuple[int, str]) -> str:
    lines = [SS_HEADER]
    for port, process in listeners:
        lines.append(
            f'LISTEN 0      511          0.0.0.0:{port}       0.0.0.0:*    users:(("{process}",pid=1234,fd=6))'
        )
    return "\n".join(lines) + "\n"


class FakeRunner(CommandRunner):
    """Records every command and answers from scripted responses.

    A response is keyed by a token sequence that must appear contiguously in
    the argv; the longest matching key wins. Queued responses are consumed in
    order and the last one repeats. Unscripted commands succeed silently.
    """

    def __init__(self, tools: Sequence[str] = ("ss", "systemctl", "docker", "curl")) -> None:
        self.tools = set(tools)
        self.calls: list[list[str]] = []
        self.sleeps: list[float] = []
        self.responses: dict[tuple[str, ...], list[Result]] = {}
        super().__init__(which=self._which, sleep=self.sleeps.append)

    def _which(self, command: str) -> str | None:
        return f"/usr/bin/{command}" if command in self.tools else None

    def on(self, *tokens: str, results: Sequence[Result]) -> FakeRunner:
        self.responses[tuple(tokens)] = list(results)
        return self

    def run(self, argv, *, shell=False, capture=True, cwd=None):
        argv = list(argv)
        self.calls.append(argv)
        key = self._match(argv)
        if key is None:
            return subprocess.CompletedProcess(argv, 0, "", "")
        queue = self.responses[key]
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(result):
            result = result(argv)
        return subprocess.CompletedProcess(argv, result.returncode, result.stdout, result.stderr)

    def _match(self, argv: list[str]) -> tuple[str, ...] | None:
        best = None
        for key in self.responses:
            size = len(key)
            hit = any(tuple(argv[i:i + size]) == key for i in range(len(argv) - size + 1))
            if hit and (best is None or size > len(best)):
                best = key
        return best

    def called(self, *tokens: str) -> bool:
        size = len(tokens)
        return any(
            tuple(argv[i:i + size]) == tokens
            for argv in self.calls
            for i in range(len(argv) - size + 1)
        )


class RecordingReporter:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def info(self, msg: str) -> None:
        self.messages.append(("info", msg))

    def ok(self, msg: str) -> None:
        self.messages.append(("ok", msg))

    def warn(self, msg: str) -> None:
        self.messages.append(("warn", msg))

    def err(self, msg: str) -> None:
        self.messages.append(("err", msg))

    def texts(self, level: str) -> list[str]:
        return [msg for lvl, msg in self.messages if lvl == level]


def mock_http_get(handler: Callable[[httpx.Request], httpx.Response]):
    client = httpx.Client(transport=httpx.MockTransport(handler))

    def _get(url: str, **kwargs) -> httpx.Response:
        return client.get(url, **kwargs)

    return _get


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
