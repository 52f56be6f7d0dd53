"""HTTP surface of the send safeguards.

See ``server.py`` for the FastAPI application and its routes.
"""

from __future__ import annotations

__all__ = ["server"]
