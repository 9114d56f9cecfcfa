"""Dependency descriptor parser.

Each dependency root carries a ``.source.toml`` naming where its sources live::

    home = "https://www.tarsnap.com/scrypt.html"
    git = "https://github.com/Tarsnap/scrypt.git"
    pkg = "https://www.tarsnap.com/scrypt/scrypt-1.2.0.tgz"
    pkg_sha256 = "1754bc89..."
    patches = ["tarsnap-readpass"]
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from mpwbuild.errors import ConfigurationError
from mpwbuild.models import SourceDescriptor

_STRING_KEYS = ("home", "git", "svn", "pkg", "pkg_sha256")


def parse_descriptor(raw: str, *, source: str = "<string>") -> SourceDescriptor:
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(
            "Invalid dependency descriptor TOML.",
            hint=str(exc),
            context={"path": source},
        ) from exc

    unknown = sorted(set(payload) - {*_STRING_KEYS, "patches"})
    if unknown:
        raise ConfigurationError(
            f"Unknown descriptor keys: {', '.join(unknown)}",
            context={"path": source},
        )
    values = {key: _optional_str(payload, key, source) for key in _STRING_KEYS}
    return SourceDescriptor(
        home=values["home"],
        git=values["git"],
        svn=values["svn"].rstrip("/"),
        pkg=values["pkg"],
        pkg_sha256=values["pkg_sha256"].lower(),
        patches=_optional_str_list(payload, "patches", source),
    )


def read_descriptor(path: str | Path) -> SourceDescriptor:
    descriptor_path = Path(path)
    try:
        raw = descriptor_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            "Dependency descriptor does not exist.",
            hint="Create it with at least one of `git`, `svn`, or `pkg` + `pkg_sha256`.",
            context={"path": str(descriptor_path)},
        ) from exc
    return parse_descriptor(raw, source=str(descriptor_path))


def _optional_str(payload: dict[str, Any], key: str, source: str) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid descriptor `{key}` value.", context={"path": source})
    return value.strip()


def _optional_str_list(payload: dict[str, Any], key: str, source: str) -> tuple[str, ...]:
    value = payload.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise ConfigurationError(f"Invalid descriptor `{key}` value.", context={"path": source})
    return tuple(value)
