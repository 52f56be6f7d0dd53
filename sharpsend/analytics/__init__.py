"""Reporting over the safeguard tracker's send history."""

from . import send_metrics

__all__ = ["send_metrics"]
