"""Host tool lookup and synchronous subprocess execution."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Protocol

import structlog

from mpwbuild.errors import StepFailedError

log = structlog.get_logger("mpwbuild.process")

_STDERR_TAIL = 2000


class ToolRunner(Protocol):
    def which(self, tool: str) -> str | None:
        """Return the resolved path of *tool*, or None when it is not installed."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        step: str,
        subject: str,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run *argv* to completion; raise StepFailedError on failure when *check*."""


class SubprocessRunner:
    """Runs host tools with ``subprocess.run`` and captured output."""

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        step: str,
        subject: str,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [str(part) for part in argv]
        run_env = dict(os.environ)
        if env:
            run_env.update(env)
        log.debug("process.run", step=step, subject=subject, argv=" ".join(command), cwd=str(cwd))
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd),
                env=run_env,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise StepFailedError(
                f"Unable to start `{command[0]}` while running {step} for {subject}.",
                hint="Ensure the tool is installed and on PATH.",
                context={"step": step, "subject": subject, "command": " ".join(command)},
            ) from exc
        if completed.stdout:
            log.debug("process.output", step=step, subject=subject, stdout=completed.stdout)
        if check:
            ensure_success(completed, step=step, subject=subject)
        return completed


def ensure_success(
    completed: subprocess.CompletedProcess[str],
    *,
    step: str,
    subject: str,
) -> None:
    if completed.returncode == 0:
        return
    argv = completed.args if isinstance(completed.args, list) else [str(completed.args)]
    raise StepFailedError(
        f"{step} failed for {subject}.",
        hint=f"Inspect the {step} output above, fix the cause, and re-run the build.",
        context={
            "step": step,
            "subject": subject,
            "command": " ".join(str(part) for part in argv),
            "returncode": str(completed.returncode),
            "stderr": (completed.stderr or "")[-_STDERR_TAIL:].strip(),
        },
    )
