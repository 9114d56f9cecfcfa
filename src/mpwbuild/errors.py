"""Build failures, one exception class per category.

Every class carries a stable ``code`` so a failure can be reported and matched
without parsing its message. Nothing below the CLI catches these: the first one
raised ends the run.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import ClassVar


class ErrorCode(StrEnum):
    CONFIGURATION = "E_CONFIGURATION"
    ENVIRONMENT = "E_ENVIRONMENT"
    INTEGRITY = "E_INTEGRITY"
    SUBPROCESS = "E_SUBPROCESS"


class BuildError(Exception):
    """A fatal failure naming what broke, how to fix it, and where."""

    code: ClassVar[ErrorCode]

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = {key: value for key, value in (context or {}).items() if value}

    def __str__(self) -> str:
        lines = [self.message]
        if self.hint:
            lines.append(f"Hint: {self.hint}")
        lines.extend(f"  {key}: {value}" for key, value in self.context.items())
        return "\n".join(lines)

    def to_dict(self) -> dict[str, object]:
        """Structured log payload: ``code``, ``reason``, ``context`` and ``hint`` if any."""
        payload: dict[str, object] = {
            "code": self.code.value,
            "reason": self.message,
            "context": dict(self.context),
        }
        if self.hint:
            payload["hint"] = self.hint
        return payload


class ConfigurationError(BuildError):
    """No usable acquisition method or build system, or a bad descriptor."""

    code = ErrorCode.CONFIGURATION


class ToolchainError(BuildError):
    """A required host tool (compiler, VCS client, autotools, make) is missing."""

    code = ErrorCode.ENVIRONMENT


class IntegrityError(BuildError):
    code = ErrorCode.INTEGRITY


class StepFailedError(BuildError):
    """An external step exited non-zero or produced unusable output."""

    code = ErrorCode.SUBPROCESS


__all__ = [
    "BuildError",
    "ConfigurationError",
    "ErrorCode",
    "IntegrityError",
    "StepFailedError",
    "ToolchainError",
]
