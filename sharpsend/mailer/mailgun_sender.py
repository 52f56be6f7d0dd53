"""Mailgun-based campaign transport.

This module defines ``MailgunSender``, which delivers a campaign through the
Mailgun HTTP API.  Recipient identifiers are used as email addresses.
Recipients are sent in batches of at most 1000 (Mailgun's batch limit), with
``recipient-variables`` set so each subscriber only sees their own address.
Every message is tagged with the campaign id so delivery events can be
correlated later.  See the Mailgun API documentation for details on the
parameters accepted.

Environment variables used:

* ``MAILGUN_API_KEY`` – API key for Mailgun
* ``MAILGUN_DOMAIN`` – Domain configured in Mailgun
* ``MAILGUN_BASE_URL`` – Optional base URL; defaults to the official API
* ``MAILGUN_FROM`` – Optional sender; defaults to ``SharpSend <mail@DOMAIN>``
* ``MAILGUN_SUBJECT`` – Optional subject line for campaigns
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Optional, Sequence

import requests

from sharpsend.mailer import CampaignSender, DeliveryCallback, SendTransportError

LOGGER = logging.getLogger(__name__)

BATCH_SIZE = 1000


class MailgunSender(CampaignSender):
    """Mailgun implementation of the ``CampaignSender`` interface."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = os.environ.get("MAILGUN_API_KEY")
        self._domain = os.environ.get("MAILGUN_DOMAIN")
        if not self._api_key or not self._domain:
            raise ValueError("MAILGUN_API_KEY and MAILGUN_DOMAIN must be set")
        self._base_url = os.environ.get(
            "MAILGUN_BASE_URL", f"https://api.mailgun.net/v3/{self._domain}"
        )
        self._sender = os.environ.get(
            "MAILGUN_FROM", f"SharpSend <mail@{self._domain}>"
        )
        self._subject = os.environ.get("MAILGUN_SUBJECT", "SharpSend update")
        self._session = session or requests.Session()
        self._timeout = timeout

    def _post_batch(
        self, campaign_id: str, batch: Sequence[str], content: str
    ) -> None:
        url = f"{self._base_url}/messages"
        data = {
            "from": self._sender,
            "to": list(batch),
            "subject": self._subject,
            "html": content,
            "o:tag": campaign_id,
            "v:campaign_id": campaign_id,
            "recipient-variables": json.dumps({r: {} for r in batch}),
        }
        try:
            response = self._session.post(
                url,
                auth=("api", self._api_key or ""),
                data=data,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SendTransportError(
                f"Mailgun rejected campaign {campaign_id}: {exc}"
            ) from exc

    async def send_campaign(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
        on_delivered: Optional[DeliveryCallback] = None,
    ) -> None:
        """Send a campaign via the Mailgun API in recipient batches.

        Each accepted batch is reported through ``on_delivered`` before the
        next one is posted.  A request already handed to the worker thread
        cannot be interrupted, so when the send is cancelled mid-request the
        coroutine waits for that request, reports it if Mailgun accepted it
        and only then re-raises the cancellation.

        Args:
            campaign_id: Campaign identifier, used as the Mailgun tag.
            recipient_ids: Recipient email addresses.
            content: HTML body of the campaign.
            on_delivered: Receives the recipients of each accepted batch.

        Raises:
            SendTransportError: If any batch request fails.  Batches already
                accepted by Mailgun are not recalled.
        """
        for start in range(0, len(recipient_ids), BATCH_SIZE):
            batch = list(recipient_ids[start:start + BATCH_SIZE])
            post = asyncio.ensure_future(
                asyncio.to_thread(self._post_batch, campaign_id, batch, content)
            )
            try:
                await asyncio.shield(post)
            except asyncio.CancelledError:
                await asyncio.wait([post])
                if (
                    on_delivered is not None
                    and not post.cancelled()
                    and post.exception() is None
                ):
                    on_delivered(batch)
                raise
            if on_delivered is not None:
                on_delivered(batch)
            LOGGER.debug(
                "Mailgun accepted batch %d of campaign %s (%d recipients)",
                start // BATCH_SIZE + 1,
                campaign_id,
                len(batch),
            )


__all__ = ["MailgunSender", "BATCH_SIZE"]
