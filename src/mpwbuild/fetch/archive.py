"""Digest-gated archive unpacking into a dependency root."""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath

import structlog

from mpwbuild.errors import ConfigurationError, StepFailedError
from mpwbuild.fetch.digest import DigestVerifier
from mpwbuild.models import ACQUIRED_MARKER, DESCRIPTOR_NAME, PATCHED_MARKER, ArchiveFormat
from mpwbuild.state import DependencyStateStore

log = structlog.get_logger("mpwbuild.fetch")

_SCRATCH_PREFIX = ".unpack-"
_PRESERVED = frozenset({DESCRIPTOR_NAME, ACQUIRED_MARKER, PATCHED_MARKER})


class ArchiveExtractor:
    def __init__(self, verifier: DigestVerifier, state: DependencyStateStore) -> None:
        self.verifier = verifier
        self.state = state

    def extract(self, archive: Path, *, expected_sha256: str) -> bool:
        """Unpack *archive* next to itself and mark its directory acquired.

        Returns False when the suffix is not a supported format; nothing is
        unpacked and no marker is written in that case. A digest mismatch
        raises before a single file is written.

        The archive is unpacked into a hidden scratch directory and its entries
        are then moved up. Entries left behind by an earlier, interrupted unpack
        of the same archive are removed first.
        """
        fmt = ArchiveFormat.detect(archive.name)
        if fmt is None:
            log.warning("archive.unsupported", archive=archive.name)
            return False

        self.verifier.require(archive, expected_sha256)

        dest = archive.parent
        self._discard_partial(archive)
        log.info("archive.unpacking", archive=archive.name, format=fmt.value)
        scratch = Path(tempfile.mkdtemp(prefix=_SCRATCH_PREFIX, dir=str(dest)))
        try:
            try:
                with tarfile.open(archive, fmt.tar_mode) as tar:
                    tar.extractall(scratch, filter="data")
            except tarfile.TarError as exc:
                raise StepFailedError(
                    f"Unable to unpack {archive.name}.",
                    hint="Delete the archive so it is fetched again.",
                    context={"step": "unpack", "archive": str(archive), "error": str(exc)},
                ) from exc
            promote_contents(_content_root(scratch, archive.name), dest)
        finally:
            if scratch.exists():
                shutil.rmtree(scratch, ignore_errors=True)

        self.state.mark_acquired(dest)
        return True

    def unpacked_names(self, archive: Path) -> set[str]:
        """Names an unpack of *archive* places in its directory.

        Unreadable or unsupported archives yield an empty set.
        """
        fmt = ArchiveFormat.detect(archive.name)
        if fmt is None:
            return set()
        try:
            with tarfile.open(archive, fmt.tar_mode) as tar:
                members = tar.getnames()
        except (tarfile.TarError, OSError):
            return set()
        return _landing_names(members, archive.name)

    def _discard_partial(self, archive: Path) -> None:
        dest = archive.parent
        for stale in dest.glob(f"{_SCRATCH_PREFIX}*"):
            shutil.rmtree(stale, ignore_errors=True)
        discarded = []
        for name in sorted(self.unpacked_names(archive) - _PRESERVED - {archive.name}):
            path = dest / name
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                continue
            discarded.append(name)
        if discarded:
            log.info("archive.discarding_partial", archive=archive.name, entries=discarded)


def _visible(name: str) -> bool:
    return not name.startswith(".")


def _content_root(scratch: Path, archive_name: str) -> Path:
    # A lone visible directory wraps the real contents; hidden siblings such as
    # AppleDouble files are dropped with the scratch directory.
    visible = [entry for entry in scratch.iterdir() if _visible(entry.name)]
    if len(visible) == 1 and visible[0].is_dir() and visible[0].name != archive_name:
        return visible[0]
    return scratch


def _landing_names(members: list[str], archive_name: str) -> set[str]:
    paths = []
    for member in members:
        parts = [part for part in PurePosixPath(member).parts if part not in (".", "/")]
        if parts:
            paths.append(parts)
    top_level = {parts[0] for parts in paths}
    visible = {name for name in top_level if _visible(name)}
    if len(visible) == 1:
        (wrapper,) = visible
        children = {parts[1] for parts in paths if parts[0] == wrapper and len(parts) > 1}
        if wrapper != archive_name and children:
            return children | {wrapper}
    return top_level


def promote_contents(wrapper: Path, dest: Path) -> None:
    """Move every entry of *wrapper* into *dest*, then remove *wrapper*."""
    for child in wrapper.iterdir():
        target = dest / child.name
        if target.exists():
            raise ConfigurationError(
                f"Cannot flatten {wrapper.name}: {child.name} already exists.",
                hint="Remove the stale file from the dependency directory and re-run.",
                context={"path": str(target)},
            )
        shutil.move(str(child), target)
    wrapper.rmdir()
    log.debug("source.promoted", wrapper=wrapper.name, dest=str(dest))
