"""Immutable run configuration, resolved once before any work starts."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from mpwbuild import project
from mpwbuild.errors import ConfigurationError
from mpwbuild.models import Dependency, FeatureFlags, Layout, Target
from mpwbuild.policy import Policy

TARGETS_ENV = "targets"
FEATURE_ENV_PREFIX = "mpw_"
OFFLINE_ENV = "MPWBUILD_OFFLINE"

_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class BuildConfig:
    layout: Layout
    targets: tuple[str, ...]
    features: FeatureFlags
    extra_args: tuple[str, ...] = ()
    policy: Policy = Policy()
    target_catalog: Mapping[str, Target] = field(default_factory=lambda: dict(project.TARGETS))
    dependency_catalog: Mapping[str, Dependency] = field(
        default_factory=lambda: dict(project.DEPENDENCIES)
    )

    def target(self, name: str) -> Target:
        return self.target_catalog[name]

    def dependency(self, name: str) -> Dependency:
        try:
            return self.dependency_catalog[name]
        except KeyError:
            return Dependency(name=name)


def load_config(
    *,
    root: str | Path,
    environ: Mapping[str, str],
    targets: Sequence[str] | None = None,
    feature_overrides: Mapping[str, bool] | None = None,
    extra_args: Sequence[str] = (),
    offline: bool = False,
    allow_missing_digest: bool = False,
    target_catalog: Mapping[str, Target] | None = None,
    dependency_catalog: Mapping[str, Dependency] | None = None,
) -> BuildConfig:
    """Merge explicit options, the environment, and the static defaults.

    Explicit arguments win over the environment, which wins over the defaults.
    """
    catalog = dict(project.TARGETS if target_catalog is None else target_catalog)
    deps = dict(project.DEPENDENCIES if dependency_catalog is None else dependency_catalog)

    if targets:
        names = tuple(targets)
    elif environ.get(TARGETS_ENV, "").strip():
        names = tuple(environ[TARGETS_ENV].split())
    else:
        names = project.DEFAULT_TARGETS
    unknown = [name for name in names if name not in catalog]
    if unknown:
        raise ConfigurationError(
            f"Unknown build target: {', '.join(unknown)}",
            hint=f"Known targets: {', '.join(sorted(catalog))}",
            context={"targets": " ".join(names)},
        )

    flags = dict(project.DEFAULT_FEATURES)
    for name in flags:
        raw = environ.get(f"{FEATURE_ENV_PREFIX}{name}")
        if raw is not None:
            flags[name] = _truthy(raw)
    for name, value in (feature_overrides or {}).items():
        if name not in flags:
            raise ConfigurationError(
                f"Unknown feature flag: {name}",
                hint=f"Known features: {', '.join(sorted(flags))}",
            )
        flags[name] = value

    policy = Policy(
        require_integrity=not allow_missing_digest,
        network_mode="offline" if offline or _truthy(environ.get(OFFLINE_ENV, "")) else "online",
    )
    return BuildConfig(
        layout=Layout(root=Path(root)),
        targets=names,
        features=FeatureFlags(flags),
        extra_args=tuple(extra_args),
        policy=policy,
        target_catalog=catalog,
        dependency_catalog=deps,
    )


def _truthy(raw: str) -> bool:
    return raw.strip().lower() not in _FALSE_VALUES
