"""Top‑level package for the SharpSend send safeguards.

SharpSend publishers queue newsletter campaigns to large subscriber lists.
This package guards those sends: it refuses duplicate campaigns, enforces a
cooldown between emails to the same recipient, spots recently sent content
and retries sends that get stuck.  Individual subpackages handle the send
transport, the safeguard tracker itself, background workflows, reporting and
the HTTP API.

The ``__all__`` variable enumerates the primary public modules for
convenience when using ``from sharpsend import ...``.
"""

from __future__ import annotations

__all__ = [
    "app",
    "config",
    "fingerprint",
    "mailer",
    "safeguards",
    "workflows",
    "analytics",
    "api",
]

# SemVer version of the package
__version__: str = "0.1.0"
