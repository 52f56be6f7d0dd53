"""Content fingerprints used for duplicate detection.

Campaign bodies are reduced to an MD5 hex digest of their raw UTF‑8 bytes.
Two campaigns are considered "similar" only when their digests are equal, so
a single changed character makes content distinct.  The digest is a coarse
duplicate signal, not a security primitive.
"""

from __future__ import annotations

import hashlib


def hash_content(content: str) -> str:
    """Return the fingerprint of a campaign body.

    Args:
        content: The raw campaign content (HTML or text).

    Returns:
        The lowercase hexadecimal MD5 digest of ``content``.
    """
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def same_content(left: str, right: str) -> bool:
    """Return True if two fingerprints denote the same content."""
    return left == right


__all__ = ["hash_content", "same_content"]
