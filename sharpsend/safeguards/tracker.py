"""In-memory tracker guarding campaign sends.

``SendSafeguardService`` decides whether a campaign may be sent, hands
accepted campaigns to a :class:`~sharpsend.mailer.CampaignSender` and
follows each send through its lifecycle::

    pending ──▶ sent
       │  ▲
       ▼  │ retry (at most ``max_retry_attempts`` times)
     failed

A duplicate check applies four rules in order and stops at the first match:

1. the campaign was already sent;
2. more than half of the recipients received an email within the cooldown
   window;
3. identical content (same MD5 fingerprint) was sent within the similar
   content window;
4. the campaign is already queued.

Duplicates are advisory: callers may pass ``force_override=True`` to send
anyway.  All state lives in process memory.  One instance is meant to be
created at application startup and shared by reference; every mutation
happens on the asyncio event loop so no locking is required.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from sharpsend.config import SafeguardSettings
from sharpsend.fingerprint import hash_content, same_content
from sharpsend.mailer import CampaignSender
from sharpsend.safeguards import (
    DuplicateCheckResult,
    PreventionStats,
    SendRecord,
    SendResult,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _snapshot(record: SendRecord) -> SendRecord:
    return replace(
        record,
        recipient_ids=list(record.recipient_ids),
        delivered_ids=list(record.delivered_ids),
    )


class SendSafeguardService:
    """Tracks pending and sent campaigns and refuses unsafe sends."""

    def __init__(
        self,
        sender: CampaignSender,
        settings: Optional[SafeguardSettings] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._sender = sender
        self._settings = settings or SafeguardSettings()
        self._now = clock

        self._send_history: Dict[str, SendRecord] = {}
        self._pending_sends: Dict[str, SendRecord] = {}
        self._recipient_cooldowns: Dict[str, dt.datetime] = {}
        # Content is needed again when a failed or stuck send is retried.
        self._payloads: Dict[str, str] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}

        self._duplicates_prevented = 0
        self._cooldown_violations = 0

        if self._settings.seed_demo_data:
            self.seed_demo_data()

    @property
    def settings(self) -> SafeguardSettings:
        return self._settings

    def seed_demo_data(self) -> None:
        """Preload one campaign sent two hours ago, for demos."""
        demo = SendRecord(
            campaign_id="camp-001",
            recipient_ids=["user-001", "user-002", "user-003"],
            content_hash=hash_content("Market Alert: Fed Decision"),
            timestamp=self._now() - dt.timedelta(hours=2),
            status="sent",
        )
        self._send_history[demo.campaign_id] = demo

    # ------------------------------------------------------------------
    # Duplicate detection
    # ------------------------------------------------------------------
    def check_for_duplicates(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
    ) -> DuplicateCheckResult:
        """Check whether sending ``campaign_id`` now would be a duplicate.

        Args:
            campaign_id: Identifier of the campaign about to be sent.
            recipient_ids: Recipients of the campaign, in send order.
            content: The campaign body.

        Returns:
            A :class:`DuplicateCheckResult`.  ``is_duplicate`` is False only
            when none of the rules matched.
        """
        now = self._now()
        settings = self._settings

        previous = self._send_history.get(campaign_id)
        if previous is not None and previous.status == "sent":
            return DuplicateCheckResult(
                is_duplicate=True,
                reason="Campaign already sent",
                rule="campaign_sent",
                last_sent_at=previous.timestamp,
            )

        cooldown = dt.timedelta(hours=settings.min_send_interval_hours)
        recent_recipients: List[str] = []
        for recipient_id in recipient_ids:
            last_sent = self._recipient_cooldowns.get(recipient_id)
            if last_sent is not None and now - last_sent < cooldown:
                recent_recipients.append(recipient_id)

        if (
            recent_recipients
            and len(recent_recipients)
            > len(recipient_ids) * settings.cooldown_recipient_ratio
        ):
            return DuplicateCheckResult(
                is_duplicate=True,
                reason=(
                    f"Over {settings.cooldown_recipient_ratio:.0%} of "
                    "recipients received an email within "
                    f"{settings.min_send_interval_hours:g} hours"
                ),
                rule="recipient_cooldown",
                last_sent_at=self._recipient_cooldowns[recent_recipients[0]],
            )

        similar = self._find_similar_campaigns(hash_content(content), now)
        if similar:
            return DuplicateCheckResult(
                is_duplicate=True,
                reason="Very similar content was sent recently",
                rule="similar_content",
                last_sent_at=self._send_history[similar[0]].timestamp,
                similar_campaigns=similar,
            )

        pending = self._pending_sends.get(campaign_id)
        if pending is not None:
            return DuplicateCheckResult(
                is_duplicate=True,
                reason="Campaign is already queued for sending",
                rule="already_pending",
                last_sent_at=pending.timestamp,
            )

        return DuplicateCheckResult(is_duplicate=False)

    def _find_similar_campaigns(
        self, content_hash: str, now: dt.datetime
    ) -> List[str]:
        window = dt.timedelta(hours=self._settings.similar_content_window_hours)
        return [
            campaign_id
            for campaign_id, record in self._send_history.items()
            if record.status == "sent"
            and same_content(record.content_hash, content_hash)
            and now - record.timestamp < window
        ]

    # ------------------------------------------------------------------
    # Send lifecycle
    # ------------------------------------------------------------------
    async def initiate_send(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
        force_override: bool = False,
    ) -> SendResult:
        """Queue a campaign for sending unless it looks like a duplicate.

        The send itself runs as a background task; this coroutine returns as
        soon as the campaign is queued.
        """
        if not force_override:
            check = self.check_for_duplicates(campaign_id, recipient_ids, content)
            if check.is_duplicate:
                self._duplicates_prevented += 1
                if check.rule == "recipient_cooldown":
                    self._cooldown_violations += 1
                LOGGER.info(
                    "Blocked send of campaign %s: %s", campaign_id, check.reason
                )
                return SendResult(
                    success=False,
                    message=check.reason or "Duplicate send",
                    requires_confirmation=True,
                )
        elif campaign_id in self._pending_sends:
            LOGGER.warning(
                "Forced resend of campaign %s replaces its pending attempt",
                campaign_id,
            )

        record = SendRecord(
            campaign_id=campaign_id,
            recipient_ids=list(recipient_ids),
            content_hash=hash_content(content),
            timestamp=self._now(),
        )
        self._send_history.pop(campaign_id, None)
        self._pending_sends[campaign_id] = record
        self._payloads[campaign_id] = content
        self._dispatch(record)

        return SendResult(
            success=True,
            message=(
                f"Campaign {campaign_id} queued for sending to "
                f"{len(record.recipient_ids)} recipients"
            ),
        )

    async def retry_send(self, campaign_id: str) -> SendResult:
        """Re-attempt a failed or stuck campaign."""
        record = self._send_history.get(campaign_id) or self._pending_sends.get(
            campaign_id
        )
        if record is None:
            return SendResult(success=False, message="Campaign not found")

        if record.status == "sent":
            return SendResult(
                success=False, message="Campaign already sent successfully"
            )

        max_attempts = self._settings.max_retry_attempts
        if record.retry_count >= max_attempts:
            return SendResult(
                success=False,
                message=f"Maximum retry attempts ({max_attempts}) reached",
            )

        record.retry_count += 1
        record.status = "pending"
        record.last_attempt_at = self._now()
        self._send_history.pop(campaign_id, None)
        self._pending_sends[campaign_id] = record
        self._dispatch(record)

        LOGGER.info("Retry attempt %d for campaign %s", record.retry_count, campaign_id)
        return SendResult(
            success=True, message=f"Retry attempt {record.retry_count} initiated"
        )

    def _dispatch(self, record: SendRecord) -> None:
        campaign_id = record.campaign_id
        previous = self._tasks.pop(campaign_id, None)
        if previous is not None and previous.done():
            previous = None
        elif previous is not None:
            previous.cancel()
        task = asyncio.get_running_loop().create_task(
            self._run_attempt(record, record.retry_count, previous),
            name=f"send-{campaign_id}-{record.retry_count}",
        )
        self._tasks[campaign_id] = task
        task.add_done_callback(
            lambda done, cid=campaign_id: self._forget_task(cid, done)
        )

    def _cancel_attempt(self, campaign_id: str) -> None:
        task = self._tasks.pop(campaign_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _forget_task(self, campaign_id: str, task: "asyncio.Task[None]") -> None:
        if self._tasks.get(campaign_id) is task:
            del self._tasks[campaign_id]

    def _is_current(self, record: SendRecord, attempt: int) -> bool:
        return (
            self._pending_sends.get(record.campaign_id) is record
            and record.retry_count == attempt
        )

    @staticmethod
    def _undelivered(record: SendRecord) -> List[str]:
        delivered = set(record.delivered_ids)
        return [r for r in record.recipient_ids if r not in delivered]

    def _mark_delivered(self, record: SendRecord, recipient_ids: Sequence[str]) -> None:
        """Record accepted recipients and start their cooldown."""
        now = self._now()
        delivered = set(record.delivered_ids)
        for recipient_id in recipient_ids:
            self._recipient_cooldowns[recipient_id] = now
            if recipient_id not in delivered:
                delivered.add(recipient_id)
                record.delivered_ids.append(recipient_id)

    async def _run_attempt(
        self,
        record: SendRecord,
        attempt: int,
        previous: Optional["asyncio.Task[None]"] = None,
    ) -> None:
        campaign_id = record.campaign_id
        if previous is not None:
            # A superseded attempt may still be finishing a request; its
            # deliveries must be known before choosing who to send to.
            await asyncio.wait([previous])
        if not self._is_current(record, attempt):
            return

        remaining = self._undelivered(record)
        content = self._payloads.get(campaign_id, "")
        try:
            if remaining:
                await self._sender.send_campaign(
                    campaign_id,
                    remaining,
                    content,
                    on_delivered=lambda batch: self._mark_delivered(record, batch),
                )
        except asyncio.CancelledError:
            LOGGER.debug("Attempt %d of campaign %s cancelled", attempt, campaign_id)
            raise
        except Exception as exc:
            if self._is_current(record, attempt):
                self._fail_send(campaign_id, str(exc) or type(exc).__name__)
            return
        if self._is_current(record, attempt):
            self._complete_send(campaign_id)

    def _complete_send(self, campaign_id: str) -> None:
        record = self._pending_sends.pop(campaign_id, None)
        if record is None:
            return

        record.status = "sent"
        self._send_history[campaign_id] = record
        self._payloads.pop(campaign_id, None)
        self._mark_delivered(record, self._undelivered(record))

        LOGGER.info("Campaign %s sent successfully", campaign_id)

    def _fail_send(self, campaign_id: str, error: str) -> None:
        record = self._pending_sends.pop(campaign_id, None)
        if record is None:
            return

        record.status = "failed"
        record.last_error = error
        self._send_history[campaign_id] = record
        LOGGER.warning(
            "Campaign %s failed on attempt %d: %s",
            campaign_id,
            record.retry_count,
            error,
        )

    async def check_stuck_sends(self) -> List[str]:
        """Retry pending sends whose current attempt exceeded the timeout.

        Sends that have spent their retry budget are marked failed instead.

        Returns:
            The ids of the campaigns that were retried or given up on.
        """
        now = self._now()
        timeout = dt.timedelta(seconds=self._settings.confirmation_timeout_seconds)
        handled: List[str] = []
        for campaign_id, record in list(self._pending_sends.items()):
            started = record.last_attempt_at or record.timestamp
            if now - started <= timeout:
                continue

            LOGGER.warning(
                "Campaign %s stuck in pending state - attempting retry", campaign_id
            )
            result = await self.retry_send(campaign_id)
            if not result.success:
                self._cancel_attempt(campaign_id)
                self._fail_send(campaign_id, result.message)
                LOGGER.error(
                    "Giving up on campaign %s: %s", campaign_id, result.message
                )
            handled.append(campaign_id)
        return handled

    async def aclose(self) -> None:
        """Cancel in-flight send attempts."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_send_status(self, campaign_id: str) -> Optional[SendRecord]:
        record = self._send_history.get(campaign_id) or self._pending_sends.get(
            campaign_id
        )
        return _snapshot(record) if record is not None else None

    def get_pending_sends(self) -> List[SendRecord]:
        return [_snapshot(r) for r in self._pending_sends.values()]

    def get_recent_sends(self, hours: float = 24) -> List[SendRecord]:
        """Return history records initiated within ``hours``, newest first."""
        cutoff = self._now() - dt.timedelta(hours=hours)
        recent = [r for r in self._send_history.values() if r.timestamp > cutoff]
        recent.sort(key=lambda r: r.timestamp, reverse=True)
        return [_snapshot(r) for r in recent]

    def get_all_records(self) -> List[SendRecord]:
        records = list(self._send_history.values()) + list(
            self._pending_sends.values()
        )
        return [_snapshot(r) for r in records]

    def get_duplicate_prevention_stats(self) -> PreventionStats:
        history = list(self._send_history.values())
        retried = sum(
            1
            for r in history + list(self._pending_sends.values())
            if r.retry_count > 0
        )
        return PreventionStats(
            duplicates_prevented=self._duplicates_prevented,
            cooldown_violations=self._cooldown_violations,
            successful_sends=sum(1 for r in history if r.status == "sent"),
            failed_sends=sum(1 for r in history if r.status == "failed"),
            retried_sends=retried,
        )

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    def cleanup_old_records(self, days_to_keep: Optional[int] = None) -> int:
        """Drop history and cooldown entries older than ``days_to_keep``.

        Pending sends are never removed.

        Returns:
            The number of history records removed.
        """
        if days_to_keep is None:
            days_to_keep = self._settings.retention_days
        cutoff = self._now() - dt.timedelta(days=days_to_keep)

        expired = [
            campaign_id
            for campaign_id, record in self._send_history.items()
            if record.timestamp < cutoff
        ]
        for campaign_id in expired:
            del self._send_history[campaign_id]
            self._payloads.pop(campaign_id, None)

        stale = [
            recipient_id
            for recipient_id, last_sent in self._recipient_cooldowns.items()
            if last_sent < cutoff
        ]
        for recipient_id in stale:
            del self._recipient_cooldowns[recipient_id]

        if expired or stale:
            LOGGER.info(
                "Cleanup removed %d send records and %d cooldowns",
                len(expired),
                len(stale),
            )
        return len(expired)


__all__ = ["SendSafeguardService", "Clock", "utcnow"]
