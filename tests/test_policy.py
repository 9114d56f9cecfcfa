from pathlib import Path

import pytest

from mpwbuild.errors import ConfigurationError, StepFailedError
from mpwbuild.fetch import download
from mpwbuild.policy import Policy, ensure_digest_configured, ensure_network_allowed


def test_offline_policy_blocks_downloads(tmp_path: Path) -> None:
    source = tmp_path / "source.tar.gz"
    source.write_bytes(b"payload")
    policy = Policy(network_mode="offline")

    with pytest.raises(ConfigurationError):
        ensure_network_allowed(policy=policy, operation="download")
    with pytest.raises(ConfigurationError):
        download(source.as_uri(), dest=tmp_path / "out" / "source.tar.gz", policy=policy)

    assert not (tmp_path / "out").exists()


def test_digest_required_unless_relaxed() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        ensure_digest_configured(policy=Policy(), digest="", subject="scrypt", url="https://x/y.tgz")
    assert excinfo.value.context["dependency"] == "scrypt"

    ensure_digest_configured(
        policy=Policy(require_integrity=False), digest="", subject="scrypt", url="https://x/y.tgz"
    )
    ensure_digest_configured(policy=Policy(), digest="ab" * 32, subject="scrypt", url="")


def test_download_replaces_destination_atomically(tmp_path: Path) -> None:
    source = tmp_path / "source.tar.gz"
    source.write_bytes(b"payload")
    dest = tmp_path / "lib" / "foo" / "source.tar.gz"

    assert download(source.as_uri(), dest=dest, policy=Policy()) == dest

    assert dest.read_bytes() == b"payload"
    assert not dest.with_name("source.tar.gz.part").exists()


def test_download_failure_leaves_nothing_behind(tmp_path: Path) -> None:
    dest = tmp_path / "source.tar.gz"

    with pytest.raises(StepFailedError) as excinfo:
        download((tmp_path / "missing.tar.gz").as_uri(), dest=dest)

    assert excinfo.value.context["step"] == "download"
    assert list(tmp_path.iterdir()) == []
