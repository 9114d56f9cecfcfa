"""C compiler selection and link-time library probing."""

from __future__ import annotations

import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from mpwbuild.errors import ToolchainError
from mpwbuild.process import ToolRunner

log = structlog.get_logger("mpwbuild.compiler")

_PROBE_SOURCE = "int main(void) { return 0; }\n"


@dataclass(frozen=True, slots=True)
class CompilerCandidate:
    tool: str
    default_args: tuple[str, ...] = ()


# Tried in order; the first one installed wins.
COMPILER_PREFERENCE: tuple[CompilerCandidate, ...] = (
    CompilerCandidate("llvm-gcc"),
    CompilerCandidate("gcc", ("-std=gnu99",)),
    CompilerCandidate("clang"),
)


@dataclass(frozen=True, slots=True)
class CompilerInvoker:
    name: str
    path: str
    default_args: tuple[str, ...] = ()

    def command(self, *args: str) -> list[str]:
        return [self.path, *self.default_args, *args]


class CompilerResolver:
    def __init__(
        self,
        runner: ToolRunner,
        candidates: Sequence[CompilerCandidate] = COMPILER_PREFERENCE,
    ) -> None:
        self.runner = runner
        self.candidates = tuple(candidates)
        self._resolved: CompilerInvoker | None = None
        self._libraries: dict[str, bool] = {}

    def resolve(self) -> CompilerInvoker:
        if self._resolved is not None:
            return self._resolved
        for candidate in self.candidates:
            path = self.runner.which(candidate.tool)
            if path is not None:
                self._resolved = CompilerInvoker(
                    name=candidate.tool,
                    path=path,
                    default_args=candidate.default_args,
                )
                log.debug("compiler.resolved", compiler=candidate.tool, path=path)
                return self._resolved
        raise ToolchainError(
            "Need a compiler.",
            hint="Please install GCC or LLVM.",
            context={"tried": ", ".join(candidate.tool for candidate in self.candidates)},
        )

    def has_library(self, name: str) -> bool:
        """Best-effort check that ``-l<name>`` links.

        A trivial program is linked against the library. A failed link only
        counts as "missing" when the compiler output carries a known
        library-not-found message; other failures are not held against the
        library, so differently worded errors give false positives.
        """
        if name in self._libraries:
            return self._libraries[name]
        compiler = self.resolve()
        with tempfile.TemporaryDirectory(prefix="mpwbuild-probe-") as tmp:
            workdir = Path(tmp)
            source = workdir / "probe.c"
            source.write_text(_PROBE_SOURCE, encoding="utf-8")
            completed = self.runner.run(
                compiler.command(str(source), "-o", str(workdir / "probe"), f"-l{name}"),
                cwd=workdir,
                step="library probe",
                subject=name,
                env={"LC_ALL": "C"},
                check=False,
            )
        if completed.returncode == 0:
            available = True
        else:
            output = f"{completed.stdout or ''}\n{completed.stderr or ''}"
            available = not any(sign in output for sign in _missing_library_signatures(name))
        self._libraries[name] = available
        log.debug("compiler.library_probe", library=name, available=available)
        return available


def _missing_library_signatures(name: str) -> tuple[str, ...]:
    return (
        "library not found",
        f"cannot find -l{name}",
        f"unable to find library -l{name}",
    )
