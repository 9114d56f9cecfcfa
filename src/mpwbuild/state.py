"""Durable per-dependency step markers.

A marker's presence means the step is permanently complete for that checkout;
its absence means the step must run. Markers are written atomically, so a step
either completes and leaves its marker or leaves nothing.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from mpwbuild.models import ACQUIRED_MARKER, PATCHED_MARKER


class DependencyStateStore(Protocol):
    def has_acquired(self, root: Path) -> bool: ...

    def mark_acquired(self, root: Path) -> None: ...

    def has_patched(self, root: Path) -> bool: ...

    def mark_patched(self, root: Path) -> None: ...


class FileStateStore:
    """Markers as hidden sentinel files in each dependency root."""

    def has_acquired(self, root: Path) -> bool:
        return (root / ACQUIRED_MARKER).exists()

    def mark_acquired(self, root: Path) -> None:
        _touch_atomic(root / ACQUIRED_MARKER)

    def has_patched(self, root: Path) -> bool:
        return (root / PATCHED_MARKER).exists()

    def mark_patched(self, root: Path) -> None:
        _touch_atomic(root / PATCHED_MARKER)


def _touch_atomic(path: Path) -> None:
    temp_path = path.with_name(f"{path.name}.tmp")
    temp_path.write_text("", encoding="utf-8")
    os.replace(temp_path, path)
