from pathlib import Path

import pytest
from conftest import FakeRunner, failing

from mpwbuild.assembler import TargetAssembler
from mpwbuild.compiler import CompilerResolver
from mpwbuild.config import load_config
from mpwbuild.errors import StepFailedError, ToolchainError
from mpwbuild.models import Dependency


class RecordingBuilder:
    def __init__(self) -> None:
        self.built: list[str] = []

    def build(self, dependency: Dependency) -> None:
        self.built.append(dependency.name)


def make_assembler(
    tmp_path: Path, runner: FakeRunner, builder: RecordingBuilder, **overrides: object
) -> TargetAssembler:
    config = load_config(root=tmp_path, environ={}, **overrides)
    return TargetAssembler(
        config=config,
        runner=runner,
        builder=builder,
        compilers=CompilerResolver(runner),
    )


def test_mpw_compiles_each_source_then_links(tmp_path: Path, runner: FakeRunner) -> None:
    runner.install("clang")
    builder = RecordingBuilder()
    assembler = make_assembler(tmp_path, runner, builder)

    result = assembler.assemble(assembler.config.target("mpw"), ["-DDEBUG"])

    build_steps = [step for step in runner.steps() if step != "library probe"]
    assert build_steps == [
        "compile mpw-algorithm.c",
        "compile mpw-types.c",
        "compile mpw-util.c",
        "compile mpw-cli.c",
        "link",
    ]
    assert builder.built == ["scrypt"]

    compile_cmd = runner.calls[-2].argv
    assert compile_cmd[0] == "/usr/bin/clang"
    assert f"-I{tmp_path / 'lib' / 'include'}" in compile_cmd
    assert "-DCOLOR" in compile_cmd
    assert "-DDEBUG" in compile_cmd
    assert compile_cmd[-4:] == ("-c", "mpw-cli.c", "-o", str(tmp_path / "mpw-cli.o"))

    link_cmd = runner.calls[-1].argv
    assert "-DDEBUG" in link_cmd
    assert str(tmp_path / "lib" / "scrypt" / "scrypt-sha256.o") in link_cmd
    assert f"-L{tmp_path}" in link_cmd
    assert f"-L{tmp_path / 'lib' / 'scrypt'}" in link_cmd
    assert "-lcrypto" in link_cmd
    assert "-lcurses" in link_cmd
    assert link_cmd[-2:] == ("-o", str(tmp_path / "mpw"))

    assert result.output == tmp_path / "mpw"
    assert result.hint == "Now run ./install or use ./mpw"


def test_disabled_color_drops_define_and_library(tmp_path: Path, runner: FakeRunner) -> None:
    runner.install("clang")
    assembler = make_assembler(
        tmp_path, runner, RecordingBuilder(), feature_overrides={"color": False}
    )

    assembler.assemble(assembler.config.target("mpw"))

    joined = [" ".join(argv) for argv in runner.commands()]
    assert not any("-DCOLOR" in command for command in joined)
    assert not any("-lcurses" in command for command in joined)


def test_missing_compiler_aborts_before_any_work(tmp_path: Path, runner: FakeRunner) -> None:
    builder = RecordingBuilder()
    assembler = make_assembler(tmp_path, runner, builder)

    with pytest.raises(ToolchainError):
        assembler.assemble(assembler.config.target("mpw-bench"))

    assert runner.calls == []
    assert builder.built == []


def test_missing_library_names_the_feature(tmp_path: Path, runner: FakeRunner) -> None:
    runner.install("gcc")
    builder = RecordingBuilder()

    def probe(argv: list[str], cwd: Path):
        if argv[-1] == "-lcurses":
            return failing(1, "cannot find -lcurses")(argv, cwd)
        return None

    runner.handlers["library probe"] = probe
    assembler = make_assembler(tmp_path, runner, builder)

    with pytest.raises(ToolchainError) as excinfo:
        assembler.assemble(assembler.config.target("mpw"))

    assert excinfo.value.context["library"] == "curses"
    assert "`color`" in (excinfo.value.hint or "")
    assert builder.built == []


def test_compile_failure_prevents_link(tmp_path: Path, runner: FakeRunner) -> None:
    runner.install("gcc")
    runner.handlers["compile mpw-types.c"] = failing(1, "mpw-types.c:1: error")
    assembler = make_assembler(tmp_path, runner, RecordingBuilder())

    with pytest.raises(StepFailedError) as excinfo:
        assembler.assemble(assembler.config.target("mpw"))

    assert excinfo.value.context["step"] == "compile mpw-types.c"
    assert "link" not in runner.steps()
    assert "compile mpw-util.c" not in runner.steps()


def test_bench_builds_both_dependencies_in_order(tmp_path: Path, runner: FakeRunner) -> None:
    runner.install("gcc")
    builder = RecordingBuilder()
    assembler = make_assembler(tmp_path, runner, builder)

    assembler.assemble(assembler.config.target("mpw-bench"))

    assert builder.built == ["scrypt", "bcrypt"]
    link_cmd = runner.calls[-1].argv
    assert str(tmp_path / "lib" / "bcrypt" / "crypt_blowfish.o") in link_cmd
