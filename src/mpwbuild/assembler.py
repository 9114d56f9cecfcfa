"""Compile and link one target against its harvested dependencies."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from mpwbuild.builder import DependencyBuilder
from mpwbuild.compiler import CompilerResolver
from mpwbuild.config import BuildConfig
from mpwbuild.errors import ToolchainError
from mpwbuild.models import Dependency, Target
from mpwbuild.process import ToolRunner

log = structlog.get_logger("mpwbuild.assembler")


@dataclass(frozen=True, slots=True)
class AssemblyResult:
    target: str
    output: Path
    objects: tuple[Path, ...]
    hint: str


class TargetAssembler:
    def __init__(
        self,
        *,
        config: BuildConfig,
        runner: ToolRunner,
        builder: DependencyBuilder,
        compilers: CompilerResolver,
    ) -> None:
        self.config = config
        self.runner = runner
        self.builder = builder
        self.compilers = compilers

    def assemble(self, target: Target, extra_args: Sequence[str] = ()) -> AssemblyResult:
        """Build *target*; any failing step raises and nothing after it runs."""
        layout = self.config.layout
        compiler = self.compilers.resolve()
        resolved = target.resolve(self.config.features)
        for library in resolved.libraries:
            if not self.compilers.has_library(library):
                feature = resolved.library_features.get(library)
                hint = f"Install the {library} development package"
                if feature:
                    hint += f" or disable the `{feature}` feature"
                raise ToolchainError(
                    f"Library {library} is not available to link {target.name}.",
                    hint=f"{hint}.",
                    context={"target": target.name, "library": library, "compiler": compiler.name},
                )

        dependencies = [self.config.dependency(name) for name in resolved.dependencies]
        for dependency in dependencies:
            self.builder.build(dependency)

        log.info("target.building", target=target.name, compiler=compiler.name)
        compile_options = [f"-I{layout.include_dir}", *resolved.compile_options, *extra_args]
        objects: list[Path] = []
        for source in target.sources:
            obj = layout.root / f"{Path(source).stem}.o"
            self.runner.run(
                compiler.command(*compile_options, "-c", source, "-o", str(obj)),
                cwd=layout.root,
                step=f"compile {source}",
                subject=target.name,
            )
            objects.append(obj)

        output = layout.root / target.name
        self.runner.run(
            compiler.command(
                *extra_args,
                *(str(obj) for obj in objects),
                *self._link_inputs(dependencies),
                *(f"-l{library}" for library in resolved.libraries),
                "-o",
                str(output),
            ),
            cwd=layout.root,
            step="link",
            subject=target.name,
        )
        log.info("target.done", target=target.name, output=str(output), next=target.hint)
        return AssemblyResult(
            target=target.name,
            output=output,
            objects=tuple(objects),
            hint=target.hint,
        )

    def _link_inputs(self, dependencies: Sequence[Dependency]) -> list[str]:
        layout = self.config.layout
        inputs: list[str] = []
        for dependency in dependencies:
            root = layout.dependency_root(dependency.name)
            inputs.extend(str(root / obj) for obj in dependency.link_objects)
        inputs.append(f"-L{layout.root}")
        inputs.extend(f"-L{layout.dependency_root(dependency.name)}" for dependency in dependencies)
        return inputs
