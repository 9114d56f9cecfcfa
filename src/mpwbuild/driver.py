"""Top-level build driver: wires the pipeline and runs each requested target."""

from __future__ import annotations

import structlog

from mpwbuild.acquire import SourceAcquirer
from mpwbuild.assembler import AssemblyResult, TargetAssembler
from mpwbuild.builder import DependencyBuilder
from mpwbuild.compiler import CompilerResolver
from mpwbuild.config import BuildConfig
from mpwbuild.fetch import ArchiveExtractor, DigestVerifier
from mpwbuild.process import SubprocessRunner, ToolRunner
from mpwbuild.state import DependencyStateStore, FileStateStore

log = structlog.get_logger("mpwbuild.driver")


class BuildDriver:
    def __init__(
        self,
        config: BuildConfig,
        *,
        runner: ToolRunner | None = None,
        state: DependencyStateStore | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or SubprocessRunner()
        self.state = state or FileStateStore()

        verifier = DigestVerifier(config.policy)
        extractor = ArchiveExtractor(verifier, self.state)
        acquirer = SourceAcquirer(
            layout=config.layout,
            runner=self.runner,
            state=self.state,
            extractor=extractor,
            policy=config.policy,
        )
        builder = DependencyBuilder(layout=config.layout, runner=self.runner, acquirer=acquirer)
        self.compilers = CompilerResolver(self.runner)
        self.assembler = TargetAssembler(
            config=config,
            runner=self.runner,
            builder=builder,
            compilers=self.compilers,
        )

    def run(self) -> list[AssemblyResult]:
        """Build every configured target in order; the first failure aborts the run."""
        log.info("build.targets", targets=" ".join(self.config.targets))
        results: list[AssemblyResult] = []
        for name in self.config.targets:
            target = self.config.target(name)
            results.append(self.assembler.assemble(target, self.config.extra_args))
        return results
