"""Background workflows and scheduled tasks.

This package collects long‑running operations that keep the safeguard
tracker healthy while the API is serving requests: retrying sends that got
stuck in the pending state and purging history that has aged out.  Workers
run as asyncio tasks on the application's event loop.  See
``pending_monitor.py``.
"""

from __future__ import annotations

__all__ = ["pending_monitor"]
