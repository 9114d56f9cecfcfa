"""Core typed dataclasses for dependencies, targets, and feature flags."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from urllib.parse import urlparse

DESCRIPTOR_NAME = ".source.toml"
ACQUIRED_MARKER = ".acquired"
PATCHED_MARKER = ".patched"
CHECKOUT_MARKER = ".checking-out"


class ArchiveFormat(StrEnum):
    GZIP_TAR = "gzip-tar"
    BZIP2_TAR = "bzip2-tar"
    TAR = "tar"

    @classmethod
    def detect(cls, name: str) -> ArchiveFormat | None:
        """Map a filename suffix onto a supported archive format."""
        for suffixes, fmt in _SUFFIXES:
            if name.endswith(suffixes):
                return fmt
        return None

    @property
    def tar_mode(self) -> str:
        return {
            ArchiveFormat.GZIP_TAR: "r:gz",
            ArchiveFormat.BZIP2_TAR: "r:bz2",
            ArchiveFormat.TAR: "r:",
        }[self]


_SUFFIXES: tuple[tuple[tuple[str, ...], ArchiveFormat], ...] = (
    ((".tar.gz", ".tgz"), ArchiveFormat.GZIP_TAR),
    ((".tar.bz2", ".tbz2"), ArchiveFormat.BZIP2_TAR),
    ((".tar",), ArchiveFormat.TAR),
)


@dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """Where a dependency's sources come from, read from its descriptor file."""

    home: str = ""
    git: str = ""
    svn: str = ""
    pkg: str = ""
    pkg_sha256: str = ""
    patches: tuple[str, ...] = ()

    @property
    def archive_name(self) -> str:
        if not self.pkg:
            return ""
        return Path(urlparse(self.pkg).path).name

    @property
    def upstream(self) -> str:
        return self.home or self.git or self.svn or self.pkg


@dataclass(frozen=True, slots=True)
class Dependency:
    name: str
    link_objects: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FeatureOptions:
    """What enabling a feature adds to a target."""

    defines: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FeatureFlags:
    flags: Mapping[str, bool] = field(default_factory=dict)

    def enabled(self, name: str) -> bool:
        return bool(self.flags.get(name, False))

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self.flags))


@dataclass(frozen=True, slots=True)
class ResolvedOptions:
    compile_options: tuple[str, ...]
    libraries: tuple[str, ...]
    dependencies: tuple[str, ...]
    library_features: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Target:
    name: str
    sources: tuple[str, ...]
    dependencies: tuple[str, ...] = ()
    include_dirs: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()
    features: Mapping[str, FeatureOptions] = field(default_factory=dict)
    hint: str = ""

    def resolve(self, flags: FeatureFlags) -> ResolvedOptions:
        """Fold enabled feature options into this target's own options."""
        compile_options = [f"-I{path}" for path in self.include_dirs]
        libraries = list(self.libraries)
        dependencies = list(self.dependencies)
        library_features: dict[str, str] = {}
        for feature, options in sorted(self.features.items()):
            if not flags.enabled(feature):
                continue
            compile_options.extend(f"-D{define}" for define in options.defines)
            for library in options.libraries:
                if library not in libraries:
                    libraries.append(library)
                library_features[library] = feature
            for dep in options.dependencies:
                if dep not in dependencies:
                    dependencies.append(dep)
        return ResolvedOptions(
            compile_options=tuple(compile_options),
            libraries=tuple(libraries),
            dependencies=tuple(dependencies),
            library_features=library_features,
        )


@dataclass(frozen=True, slots=True)
class Layout:
    """Filesystem layout of the project tree being built."""

    root: Path
    lib_dirname: str = "lib"
    include_dirname: str = "include"

    @property
    def lib_dir(self) -> Path:
        return self.root / self.lib_dirname

    @property
    def include_dir(self) -> Path:
        return self.lib_dir / self.include_dirname

    def dependency_root(self, name: str) -> Path:
        return self.lib_dir / name

    def descriptor_path(self, name: str) -> Path:
        return self.dependency_root(name) / DESCRIPTOR_NAME

    def patch_path(self, name: str, patch: str) -> Path:
        return self.lib_dir / f"{name}-{patch}.patch"

    def headers_dir(self, name: str) -> Path:
        return self.include_dir / name

    def version_stamp(self, name: str) -> Path:
        return self.dependency_root(name) / f"{name}-version"


__all__ = [
    "ACQUIRED_MARKER",
    "CHECKOUT_MARKER",
    "ArchiveFormat",
    "DESCRIPTOR_NAME",
    "Dependency",
    "FeatureFlags",
    "FeatureOptions",
    "Layout",
    "PATCHED_MARKER",
    "ResolvedOptions",
    "SourceDescriptor",
    "Target",
]
