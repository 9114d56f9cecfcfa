"""Shared test fixtures."""

from __future__ import annotations

import hashlib
import io
import subprocess
import tarfile
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from mpwbuild.process import ensure_success

Handler = Callable[[list[str], Path], "subprocess.CompletedProcess[str] | None"]


@dataclass(frozen=True, slots=True)
class Call:
    argv: tuple[str, ...]
    cwd: Path
    step: str
    subject: str
    env: Mapping[str, str] | None = None


@dataclass
class FakeRunner:
    """Records every invocation instead of spawning processes.

    ``handlers`` are looked up by step name first, then by the basename of
    ``argv[0]``; a handler may touch the filesystem and may return a
    CompletedProcess to simulate output or failure.
    """

    tools: dict[str, str] = field(default_factory=dict)
    handlers: dict[str, Handler] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)

    def install(self, *tools: str) -> FakeRunner:
        for tool in tools:
            self.tools[tool] = f"/usr/bin/{tool}"
        return self

    def which(self, tool: str) -> str | None:
        return self.tools.get(tool)

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
        self.calls.append(Call(tuple(command), cwd, step, subject, env))
        handler = self.handlers.get(step) or self.handlers.get(Path(command[0]).name)
        completed = handler(command, cwd) if handler is not None else None
        if completed is None:
            completed = subprocess.CompletedProcess(command, 0, "", "")
        if check:
            ensure_success(completed, step=step, subject=subject)
        return completed

    def steps(self) -> list[str]:
        return [call.step for call in self.calls]

    def commands(self) -> list[tuple[str, ...]]:
        return [call.argv for call in self.calls]


class MemoryStateStore:
    """In-memory marker store."""

    def __init__(self) -> None:
        self.acquired: set[Path] = set()
        self.patched: set[Path] = set()

    def has_acquired(self, root: Path) -> bool:
        return root in self.acquired

    def mark_acquired(self, root: Path) -> None:
        self.acquired.add(root)

    def has_patched(self, root: Path) -> bool:
        return root in self.patched

    def mark_patched(self, root: Path) -> None:
        self.patched.add(root)


def failing(returncode: int = 1, stderr: str = "boom") -> Handler:
    def handler(argv: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(argv, returncode, "", stderr)

    return handler


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def write_tarball(path: Path, files: Mapping[str, bytes], *, mode: str = "w:gz") -> Path:
    """Write a tar archive containing *files* (archive name -> content)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tar:
        for name, payload in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            info.mode = 0o755 if name.endswith("configure") else 0o644
            tar.addfile(info, io.BytesIO(payload))
    return path


def write_descriptor(root: Path, **values: str | Iterable[str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    lines = []
    for key, value in values.items():
        if isinstance(value, str):
            lines.append(f'{key} = "{value}"')
        else:
            items = ", ".join(f'"{item}"' for item in value)
            lines.append(f"{key} = [{items}]")
    path = root / ".source.toml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def memory_state() -> MemoryStateStore:
    return MemoryStateStore()
