"""Policy configuration and enforcement helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mpwbuild.errors import ConfigurationError

NetworkMode = Literal["online", "offline"]


@dataclass(frozen=True, slots=True)
class Policy:
    require_integrity: bool = True
    network_mode: NetworkMode = "online"

    @property
    def network_allowed(self) -> bool:
        return self.network_mode == "online"


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if not policy.network_allowed:
        raise ConfigurationError(
            "Network operations are disabled by policy.",
            hint="Drop --offline (or MPWBUILD_OFFLINE) for this operation.",
            context={"operation": operation},
        )


def ensure_digest_configured(*, policy: Policy, digest: str, subject: str, url: str) -> None:
    """An archive source must name its expected digest unless integrity is relaxed."""
    if digest or not policy.require_integrity:
        return
    raise ConfigurationError(
        f"No expected sha256 digest configured for {subject}.",
        hint="Add `pkg_sha256` to the dependency descriptor or pass --allow-missing-digest.",
        context={"dependency": subject, "url": url},
    )
