"""SHA-256 digests of fetched artifacts and the integrity gate built on them."""

from __future__ import annotations

import hashlib
from pathlib import Path

import structlog

from mpwbuild.errors import ConfigurationError, IntegrityError
from mpwbuild.policy import Policy

log = structlog.get_logger("mpwbuild.fetch")

_CHUNK = 1 << 16


class DigestVerifier:
    def __init__(self, policy: Policy | None = None) -> None:
        self.policy = policy or Policy()

    def digest(self, path: str | Path) -> str:
        """Return the lowercase hex SHA-256 of the file at *path*."""
        h = hashlib.sha256()
        with Path(path).open("rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK), b""):
                h.update(chunk)
        return h.hexdigest()

    def verify(self, path: str | Path, expected: str) -> bool:
        """Compare the digest of *path* with *expected*.

        An empty *expected* only passes when the policy explicitly relaxes
        integrity; otherwise it is a configuration error.
        """
        artifact = Path(path)
        if not expected:
            if self.policy.require_integrity:
                raise ConfigurationError(
                    f"No expected digest configured for {artifact.name}.",
                    hint="Add `pkg_sha256` to the dependency descriptor.",
                    context={"artifact": str(artifact)},
                )
            log.warning("archive.unverified", artifact=artifact.name)
            return True
        return self.digest(artifact) == expected.strip().lower()

    def require(self, path: str | Path, expected: str) -> None:
        """Abort with an IntegrityError unless *path* matches *expected*."""
        artifact = Path(path)
        log.info("archive.verifying", artifact=artifact.name, expected=expected)
        if self.verify(artifact, expected):
            log.info("archive.verified", artifact=artifact.name)
            return
        actual = self.digest(artifact)
        log.error("archive.digest_mismatch", artifact=artifact.name, expected=expected, actual=actual)
        raise IntegrityError(
            f"Downloaded package doesn't match digest: {artifact.name}",
            hint="Delete the archive and fetch it again, or correct `pkg_sha256` if upstream changed.",
            context={"artifact": str(artifact), "expected": expected, "actual": actual},
        )
