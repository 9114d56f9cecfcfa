"""Native build of one dependency and harvest of its public headers."""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from pathlib import Path

import structlog

from mpwbuild.acquire import SourceAcquirer
from mpwbuild.errors import ConfigurationError, ToolchainError
from mpwbuild.models import Dependency, Layout
from mpwbuild.process import ToolRunner

log = structlog.get_logger("mpwbuild.builder")

_READ_ONLY = stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH


class DependencyBuilder:
    def __init__(self, *, layout: Layout, runner: ToolRunner, acquirer: SourceAcquirer) -> None:
        self.layout = layout
        self.runner = runner
        self.acquirer = acquirer

    def is_satisfied(self, dependency: Dependency) -> bool:
        return self.layout.headers_dir(dependency.name).exists()

    def build(self, dependency: Dependency) -> None:
        name = dependency.name
        log.info("dependency.checking", dependency=name)
        if self.is_satisfied(dependency):
            log.debug("dependency.satisfied", dependency=name)
            return

        root = self.layout.dependency_root(name)
        self.acquirer.acquire(dependency)

        log.info("dependency.configuring", dependency=name)
        if (root / "configure.ac").exists() and not (root / "configure").exists():
            self._bootstrap_autotools(name, root)
        if (root / "configure").exists():
            self.runner.run(["./configure"], cwd=root, step="configure", subject=name)

        log.info("dependency.building", dependency=name)
        if not (root / "Makefile").exists():
            raise ConfigurationError(
                f"Don't know how to build: {name}",
                hint="The dependency has no Makefile after configuration.",
                context={"dependency": name, "path": str(root)},
            )
        if self.runner.which("make") is None:
            raise ToolchainError(
                f"Need make to build {name}.",
                hint="Please install GNU make.",
                context={"dependency": name},
            )
        self.runner.run(["make"], cwd=root, step="make", subject=name)
        count = self.harvest_headers(dependency)
        log.info("dependency.built", dependency=name, headers=count)

    def _bootstrap_autotools(self, name: str, root: Path) -> None:
        if self.runner.which("aclocal") is None or self.runner.which("automake") is None:
            raise ToolchainError(
                f"Need autotools to build {name}.",
                hint="Please install automake and autoconf.",
                context={"dependency": name},
            )
        for tool in ("aclocal", "autoheader", "autoconf"):
            self.runner.run([tool], cwd=root, step=tool, subject=name)
        (root / "config.aux").mkdir(exist_ok=True)
        self.runner.run(["automake", "--add-missing"], cwd=root, step="automake", subject=name)

    def harvest_headers(self, dependency: Dependency) -> int:
        """Copy every header of the dependency tree into its shared include dir.

        Headers land in a scratch directory that is renamed into place only once
        complete, so the include dir never exists half-populated.
        """
        root = self.layout.dependency_root(dependency.name)
        final_dir = self.layout.headers_dir(dependency.name)
        final_dir.parent.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix=f".{dependency.name}-", dir=str(final_dir.parent)))
        scratch.chmod(0o755)
        try:
            count = 0
            for header in sorted(root.rglob("*.h")):
                if not header.is_file():
                    continue
                target = scratch / header.name
                if target.exists():
                    target.chmod(target.stat().st_mode | stat.S_IWUSR)
                shutil.copyfile(header, target)
                target.chmod(_READ_ONLY)
                count += 1
            if final_dir.exists():
                shutil.rmtree(final_dir)
            os.replace(scratch, final_dir)
        finally:
            if scratch.exists():
                shutil.rmtree(scratch, ignore_errors=True)
        return count
