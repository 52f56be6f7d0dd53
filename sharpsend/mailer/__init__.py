"""Abstract interface and implementations for delivering a campaign.

This subpackage defines a common ``send_campaign`` coroutine along with two
concrete transports: a simulated one that waits a fixed delay and succeeds,
and another targeting the Mailgun HTTP API.  The safeguard tracker awaits the
transport and uses its outcome to mark a campaign sent or failed, so client
code can switch transports through configuration without changing the
calling semantics.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional, Sequence

if TYPE_CHECKING:
    from sharpsend.config import SafeguardSettings


DeliveryCallback = Callable[[Sequence[str]], None]


class SendTransportError(RuntimeError):
    """Raised by a transport when a campaign could not be delivered."""


class CampaignSender(ABC):
    """Abstract base class for campaign transports.

    Implementations must provide a ``send_campaign`` coroutine.  Returning
    normally acknowledges delivery of the whole campaign; raising
    :class:`SendTransportError` reports a failure.  Transports that deliver
    in several requests report each accepted part through ``on_delivered``
    so a retry only goes to recipients that have not been reached.
    """

    @abstractmethod
    async def send_campaign(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
        on_delivered: Optional[DeliveryCallback] = None,
    ) -> None:
        """Deliver one campaign.

        Args:
            campaign_id: Identifier of the campaign; used to tag the message.
            recipient_ids: Ordered recipient identifiers.
            content: The campaign body.
            on_delivered: Called on the event loop with the recipients of
                every part the provider accepted.

        Raises:
            SendTransportError: If delivery fails.
        """
        raise NotImplementedError


def build_sender(settings: "SafeguardSettings") -> CampaignSender:
    """Return the transport selected by ``settings.transport``."""
    if settings.transport == "mailgun":
        from sharpsend.mailer.mailgun_sender import MailgunSender

        return MailgunSender()
    from sharpsend.mailer.simulated_sender import SimulatedSender

    return SimulatedSender(delay=settings.simulated_send_delay_seconds)


__all__ = [
    "CampaignSender",
    "DeliveryCallback",
    "SendTransportError",
    "build_sender",
]
