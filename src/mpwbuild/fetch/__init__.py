"""Integrity-checked retrieval of dependency sources."""

from .archive import ArchiveExtractor, promote_contents
from .digest import DigestVerifier
from .http import download

__all__ = ["ArchiveExtractor", "DigestVerifier", "download", "promote_contents"]
