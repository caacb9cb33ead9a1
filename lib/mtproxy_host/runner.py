from __future__ import annotations

import enum
import logging
import shlex
import shutil
import subprocess
import time
from typing import Callable, Protocol, Sequence

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    def info(self, msg: str) -> None: ...

    def ok(self, msg: str) -> None: ...

    def warn(self, msg: str) -> None: ...

    def err(self, msg: str) -> None: ...


class NullReporter:
    def info(self, msg: str) -> None:
        logger.info(msg)

    def ok(self, msg: str) -> None:
        logger.info(msg)

    def warn(self, msg: str) -> None:
        logger.warning(msg)

    def err(self, msg: str) -> None:
        logger.error(msg)


class StepOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    TOLERATED = "tolerated"
    FATAL = "fatal"

    @property
    def ok(self) -> bool:
        return self is StepOutcome.SUCCEEDED


class CommandRunner:
    """Runs host commands and reports them as CompletedProcess results.

    A missing executable is reported as exit code 127 instead of raising, so
    callers only ever inspect return codes.
    """

    def __init__(
        self,
        *,
        which: Callable[[str], str | None] = shutil.which,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._which = which
        self._sleep = sleep

    def run(
        self,
        argv: Sequence[str],
        *,
        shell: bool = False,
        capture: bool = True,
        cwd: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        cmd: str | list[str] = " ".join(argv) if shell else list(argv)
        logger.debug("run: %s", cmd if shell else shlex.join(argv))
        try:
            res = subprocess.run(
                cmd,
                shell=shell,
                text=True,
                capture_output=capture,
                stdin=subprocess.DEVNULL,
                cwd=cwd,
            )
        except FileNotFoundError as exc:
            return subprocess.CompletedProcess(list(argv), 127, "", str(exc))
        logger.debug("exit %s: %s", res.returncode, shlex.join(argv))
        return res

    def success(self, argv: Sequence[str]) -> bool:
        return self.run(argv).returncode == 0

    def exists(self, command: str) -> bool:
        return self._which(command) is not None

    def attempt(self, argv: Sequence[str], *, tolerate: bool, shell: bool = False) -> StepOutcome:
        """Run a step whose failure the caller may declare acceptable."""
        res = self.run(argv, shell=shell)
        if res.returncode == 0:
            return StepOutcome.SUCCEEDED
        detail = (res.stderr or res.stdout or "").strip()
        if tolerate:
            logger.debug("tolerated failure (%s): %s", res.returncode, detail)
            return StepOutcome.TOLERATED
        logger.debug("fatal failure (%s): %s", res.returncode, detail)
        return StepOutcome.FATAL

    def sleep(self, seconds: float) -> None:
        self._sleep(seconds)


def output_of(res: subprocess.CompletedProcess[str]) -> str:
    output = (res.stdout or "").strip()
    if not output:
        output = (res.stderr or "").strip()
    return output


def tail_lines(text: str, *, limit: int) -> list[str]:
    lines = [line for line in (text or "").splitlines() if line.strip()]
    return lines[-limit:] if lines else []
