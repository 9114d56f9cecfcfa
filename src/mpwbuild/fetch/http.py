"""HTTP/file download into a dependency root."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from urllib.error import URLError
from urllib.request import urlopen

import structlog

from mpwbuild.errors import StepFailedError
from mpwbuild.policy import Policy, ensure_network_allowed

log = structlog.get_logger("mpwbuild.fetch")


def download(url: str, *, dest: Path, policy: Policy | None = None) -> Path:
    """Download *url* to *dest*, replacing it atomically once complete."""
    if policy is not None:
        ensure_network_allowed(policy=policy, operation="download")
    dest.parent.mkdir(parents=True, exist_ok=True)
    temp_path = dest.with_name(f"{dest.name}.part")
    log.info("archive.downloading", url=url, dest=dest.name)
    try:
        with urlopen(url) as response, temp_path.open("wb") as out:  # noqa: S310 - digest gate follows
            shutil.copyfileobj(response, out)
    except (URLError, OSError) as exc:
        temp_path.unlink(missing_ok=True)
        raise StepFailedError(
            f"Unable to download {dest.name}.",
            hint="Check network access or place the archive in the dependency directory manually.",
            context={"step": "download", "url": url, "error": str(exc)},
        ) from exc
    os.replace(temp_path, dest)
    return dest
