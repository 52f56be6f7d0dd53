"""Transport that pretends to deliver a campaign.

``SimulatedSender`` waits a fixed delay and then reports success.  It is the
default transport for demos and local development, where no real email
should leave the machine.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from sharpsend.mailer import CampaignSender, DeliveryCallback

LOGGER = logging.getLogger(__name__)


class SimulatedSender(CampaignSender):
    """Delay-then-succeed implementation of ``CampaignSender``."""

    def __init__(self, delay: float = 2.0) -> None:
        if delay < 0:
            raise ValueError("delay must not be negative")
        self._delay = delay

    async def send_campaign(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
        on_delivered: Optional[DeliveryCallback] = None,
    ) -> None:
        LOGGER.debug(
            "Simulating delivery of %s to %d recipients",
            campaign_id,
            len(recipient_ids),
        )
        await asyncio.sleep(self._delay)
        if on_delivered is not None:
            on_delivered(recipient_ids)


__all__ = ["SimulatedSender"]
