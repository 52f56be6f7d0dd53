"""Send safeguards: duplicate prevention and send lifecycle tracking.

The types defined here are shared between the tracker, the reporting helpers
and the HTTP API.  A :class:`SendRecord` is the unit of tracked state per
campaign; the result types carry structured outcomes back to callers, since
the tracker reports duplicates, refusals and exhausted retries as values
rather than exceptions.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Literal, Optional

SendStatus = Literal["pending", "sent", "failed"]

DuplicateRule = Literal[
    "campaign_sent",
    "recipient_cooldown",
    "similar_content",
    "already_pending",
]


@dataclass
class SendRecord:
    """Tracked state of one campaign send.

    ``timestamp`` is when the send was initiated and never changes;
    ``last_attempt_at`` moves forward on every retry and is what the stuck
    send monitor measures against.  ``delivered_ids`` lists the recipients
    the transport has already reached; retries skip them.
    """

    campaign_id: str
    recipient_ids: List[str]
    content_hash: str
    timestamp: dt.datetime
    status: SendStatus = "pending"
    retry_count: int = 0
    last_attempt_at: Optional[dt.datetime] = None
    last_error: Optional[str] = None
    delivered_ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.last_attempt_at is None:
            self.last_attempt_at = self.timestamp


@dataclass(frozen=True)
class DuplicateCheckResult:
    is_duplicate: bool
    reason: Optional[str] = None
    rule: Optional[DuplicateRule] = None
    last_sent_at: Optional[dt.datetime] = None
    similar_campaigns: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SendResult:
    success: bool
    message: str
    requires_confirmation: bool = False


@dataclass(frozen=True)
class PreventionStats:
    """Counters describing how often the safeguards intervened."""

    duplicates_prevented: int = 0
    cooldown_violations: int = 0
    successful_sends: int = 0
    failed_sends: int = 0
    retried_sends: int = 0


__all__ = [
    "SendStatus",
    "DuplicateRule",
    "SendRecord",
    "DuplicateCheckResult",
    "SendResult",
    "PreventionStats",
]
