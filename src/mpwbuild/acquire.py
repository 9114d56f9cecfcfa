"""Source acquisition for one dependency: pick a strategy, fetch once, patch once.

Strategies are tried in a fixed priority order and the first applicable one
runs. The ``acquired`` and ``patched`` markers make every step idempotent:
re-running after success is a no-op, and a failure before a marker is
written leaves the step to be retried in full on the next run.
"""

from __future__ import annotations

import os
import re
import shutil
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from mpwbuild.descriptor import read_descriptor
from mpwbuild.errors import ConfigurationError, StepFailedError, ToolchainError
from mpwbuild.fetch import ArchiveExtractor, download, promote_contents
from mpwbuild.models import (
    CHECKOUT_MARKER,
    DESCRIPTOR_NAME,
    PATCHED_MARKER,
    Dependency,
    Layout,
    SourceDescriptor,
)
from mpwbuild.policy import Policy, ensure_digest_configured
from mpwbuild.process import ToolRunner
from mpwbuild.state import DependencyStateStore

log = structlog.get_logger("mpwbuild.acquire")

_SVN_REVISION = re.compile(r"^Revision:\s*(\d+)\s*$", re.MULTILINE)
_CHECKOUT_PREFIX = ".checkout-"


@dataclass(frozen=True, slots=True)
class AcquisitionContext:
    dependency: Dependency
    root: Path
    descriptor: SourceDescriptor
    layout: Layout
    runner: ToolRunner
    policy: Policy
    extractor: ArchiveExtractor
    state: DependencyStateStore

    @property
    def name(self) -> str:
        return self.dependency.name

    def stamp_version(self, version: str) -> None:
        self.layout.version_stamp(self.name).write_text(version, encoding="utf-8")


class AcquisitionStrategy(Protocol):
    name: str

    def is_applicable(self, ctx: AcquisitionContext) -> bool: ...

    def execute(self, ctx: AcquisitionContext) -> bool:
        """Fetch the sources; return True once the dependency is marked acquired."""


class CachedArchiveStrategy:
    """Unpack an archive that sits alone in the dependency root.

    Entries that an unpack of the same archive would produce do not count, so
    an unpack interrupted halfway is redone from the local copy.
    """

    name = "package"

    def is_applicable(self, ctx: AcquisitionContext) -> bool:
        archive_name = ctx.descriptor.archive_name
        if not archive_name or not (ctx.root / archive_name).is_file():
            return False
        others = _visible_entries(ctx.root, exclude={archive_name})
        if not others:
            return True
        leftovers = ctx.extractor.unpacked_names(ctx.root / archive_name)
        return all(entry.name in leftovers for entry in others)

    def execute(self, ctx: AcquisitionContext) -> bool:
        archive = ctx.root / ctx.descriptor.archive_name
        ensure_digest_configured(
            policy=ctx.policy,
            digest=ctx.descriptor.pkg_sha256,
            subject=ctx.name,
            url=ctx.descriptor.pkg,
        )
        return ctx.extractor.extract(archive, expected_sha256=ctx.descriptor.pkg_sha256)


class GitCloneStrategy:
    name = "git"

    def is_applicable(self, ctx: AcquisitionContext) -> bool:
        if not ctx.descriptor.git or ctx.runner.which("git") is None:
            return False
        return ctx.policy.network_allowed or _checked_out(ctx, ".git")

    def execute(self, ctx: AcquisitionContext) -> bool:
        if not _checked_out(ctx, ".git"):
            _checkout_into(ctx, lambda dest: ["git", "clone", "--", ctx.descriptor.git, str(dest)])
        ctx.stamp_version(_git_describe(ctx))
        ctx.state.mark_acquired(ctx.root)
        return True


class GitSvnStrategy:
    """Check out a Subversion repository through git's svn bridge."""

    name = "git-svn"

    def is_applicable(self, ctx: AcquisitionContext) -> bool:
        if not ctx.descriptor.svn or ctx.runner.which("git") is None:
            return False
        if not (ctx.policy.network_allowed or _checked_out(ctx, ".git")):
            return False
        completed = ctx.runner.run(
            ["git", "--exec-path"],
            cwd=ctx.root,
            step="git-svn probe",
            subject=ctx.name,
            check=False,
        )
        if completed.returncode != 0:
            return False
        bridge = Path(completed.stdout.strip()) / "git-svn"
        return bridge.is_file() and os.access(bridge, os.X_OK)

    def execute(self, ctx: AcquisitionContext) -> bool:
        if not _checked_out(ctx, ".git"):
            _checkout_into(
                ctx,
                lambda dest: [
                    "git",
                    "svn",
                    "clone",
                    "--prefix=origin/",
                    "--stdlayout",
                    ctx.descriptor.svn,
                    str(dest),
                ],
            )
        ctx.stamp_version(_git_describe(ctx))
        ctx.state.mark_acquired(ctx.root)
        return True


class SvnCheckoutStrategy:
    name = "svn"

    def is_applicable(self, ctx: AcquisitionContext) -> bool:
        if not ctx.descriptor.svn or ctx.runner.which("svn") is None:
            return False
        return ctx.policy.network_allowed or _checked_out(ctx, ".svn")

    def execute(self, ctx: AcquisitionContext) -> bool:
        if not _checked_out(ctx, ".svn"):
            trunk = f"{ctx.descriptor.svn}/trunk"
            _checkout_into(ctx, lambda dest: ["svn", "checkout", trunk, str(dest)])
        completed = ctx.runner.run(["svn", "info"], cwd=ctx.root, step="svn info", subject=ctx.name)
        match = _SVN_REVISION.search(completed.stdout)
        if match is None:
            raise StepFailedError(
                f"svn info reported no revision for {ctx.name}.",
                hint="Check that the checkout in the dependency directory is intact.",
                context={
                    "step": "svn info",
                    "subject": ctx.name,
                    "stdout": completed.stdout[-500:].strip(),
                },
            )
        ctx.stamp_version(f"r{match.group(1)}")
        ctx.state.mark_acquired(ctx.root)
        return True


class DownloadStrategy:
    name = "download"

    def is_applicable(self, ctx: AcquisitionContext) -> bool:
        return bool(ctx.descriptor.pkg) and ctx.policy.network_allowed

    def execute(self, ctx: AcquisitionContext) -> bool:
        ensure_digest_configured(
            policy=ctx.policy,
            digest=ctx.descriptor.pkg_sha256,
            subject=ctx.name,
            url=ctx.descriptor.pkg,
        )
        archive = download(
            ctx.descriptor.pkg,
            dest=ctx.root / ctx.descriptor.archive_name,
            policy=ctx.policy,
        )
        return ctx.extractor.extract(archive, expected_sha256=ctx.descriptor.pkg_sha256)


DEFAULT_STRATEGIES: tuple[AcquisitionStrategy, ...] = (
    CachedArchiveStrategy(),
    GitCloneStrategy(),
    GitSvnStrategy(),
    SvnCheckoutStrategy(),
    DownloadStrategy(),
)


class SourceAcquirer:
    def __init__(
        self,
        *,
        layout: Layout,
        runner: ToolRunner,
        state: DependencyStateStore,
        extractor: ArchiveExtractor,
        policy: Policy | None = None,
        strategies: Sequence[AcquisitionStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.layout = layout
        self.runner = runner
        self.state = state
        self.extractor = extractor
        self.policy = policy or Policy()
        self.strategies = tuple(strategies)

    def acquire(self, dependency: Dependency) -> None:
        """Make the dependency's sources present and patched, at most once each."""
        root = self.layout.dependency_root(dependency.name)
        descriptor = read_descriptor(root / DESCRIPTOR_NAME)
        ctx = AcquisitionContext(
            dependency=dependency,
            root=root,
            descriptor=descriptor,
            layout=self.layout,
            runner=self.runner,
            policy=self.policy,
            extractor=self.extractor,
            state=self.state,
        )

        if not self.state.has_acquired(root):
            strategy = self.select(ctx)
            log.info("dependency.fetching", dependency=dependency.name, strategy=strategy.name)
            if not strategy.execute(ctx):
                log.warning(
                    "dependency.not_acquired",
                    dependency=dependency.name,
                    strategy=strategy.name,
                )
                return

        self.apply_patches(ctx)

    def select(self, ctx: AcquisitionContext) -> AcquisitionStrategy:
        for strategy in self.strategies:
            if strategy.is_applicable(ctx):
                return strategy
        raise ConfigurationError(
            f"No usable acquisition method for {ctx.name}.",
            hint=(
                "Install git or svn (or allow network access), "
                "or manually check out the sources into the dependency directory."
            ),
            context={
                "dependency": ctx.name,
                "from": ctx.descriptor.upstream,
                "into": str(ctx.root),
            },
        )

    def apply_patches(self, ctx: AcquisitionContext) -> None:
        patches = ctx.descriptor.patches
        if not patches or self.state.has_patched(ctx.root):
            return
        if self.runner.which("patch") is None:
            raise ToolchainError(
                f"Need patch to prepare {ctx.name}.",
                hint="Please install GNU patch.",
                context={"dependency": ctx.name},
            )
        for patch in patches:
            patch_path = self.layout.patch_path(ctx.name, patch)
            if not patch_path.is_file():
                raise ConfigurationError(
                    f"Patch file for {ctx.name} does not exist.",
                    context={"dependency": ctx.name, "patch": patch, "path": str(patch_path)},
                )
            log.info("dependency.patching", dependency=ctx.name, patch=patch)
            self.runner.run(
                ["patch", "-p0", "-i", str(patch_path)],
                cwd=ctx.root,
                step=f"patch {patch}",
                subject=ctx.name,
            )
        self.state.mark_patched(ctx.root)


def _visible_entries(root: Path, *, exclude: set[str]) -> list[Path]:
    return [
        entry
        for entry in root.iterdir()
        if not entry.name.startswith(".") and entry.name not in exclude
    ]


def _checked_out(ctx: AcquisitionContext, metadata: str) -> bool:
    """True when a complete VCS checkout (its *metadata* dir) is already in the root."""
    return (ctx.root / metadata).exists() and not (ctx.root / CHECKOUT_MARKER).exists()


def _checkout_into(ctx: AcquisitionContext, command: Callable[[Path], list[str]]) -> None:
    """Run a checkout *command* into a scratch directory, then move it into the root.

    The in-progress marker is present for exactly as long as entries are being
    moved, so a root holding it contains a partial checkout.
    """
    _discard_partial_checkout(ctx)
    scratch = Path(tempfile.mkdtemp(prefix=_CHECKOUT_PREFIX, dir=str(ctx.root)))
    marker = ctx.root / CHECKOUT_MARKER
    try:
        ctx.runner.run(command(scratch), cwd=ctx.root, step="checkout", subject=ctx.name)
        marker.write_text("", encoding="utf-8")
        promote_contents(scratch, ctx.root)
        marker.unlink()
    finally:
        if scratch.exists():
            shutil.rmtree(scratch, ignore_errors=True)


def _git_describe(ctx: AcquisitionContext) -> str:
    completed = ctx.runner.run(
        ["git", "describe", "--always"],
        cwd=ctx.root,
        step="git describe",
        subject=ctx.name,
    )
    return completed.stdout.strip()


def _discard_partial_checkout(ctx: AcquisitionContext) -> None:
    for stale in ctx.root.glob(f"{_CHECKOUT_PREFIX}*"):
        shutil.rmtree(stale, ignore_errors=True)
    marker = ctx.root / CHECKOUT_MARKER
    if not marker.exists():
        return
    keep = {DESCRIPTOR_NAME, PATCHED_MARKER, CHECKOUT_MARKER, ctx.descriptor.archive_name}
    discarded = []
    for entry in sorted(ctx.root.iterdir()):
        if entry.name in keep:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        discarded.append(entry.name)
    marker.unlink()
    log.info("dependency.discarding_partial", dependency=ctx.name, entries=discarded)
