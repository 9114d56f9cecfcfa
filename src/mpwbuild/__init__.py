"""Public package entrypoint for the mpw build orchestrator."""

from .config import BuildConfig, load_config
from .driver import BuildDriver
from .errors import (
    BuildError,
    ConfigurationError,
    ErrorCode,
    IntegrityError,
    StepFailedError,
    ToolchainError,
)
from .models import Dependency, FeatureFlags, FeatureOptions, Layout, SourceDescriptor, Target
from .policy import Policy

__all__ = [
    "BuildConfig",
    "BuildDriver",
    "BuildError",
    "ConfigurationError",
    "Dependency",
    "ErrorCode",
    "FeatureFlags",
    "FeatureOptions",
    "IntegrityError",
    "Layout",
    "Policy",
    "SourceDescriptor",
    "StepFailedError",
    "Target",
    "ToolchainError",
    "load_config",
]
