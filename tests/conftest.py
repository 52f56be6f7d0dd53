"""Shared fixtures: a controllable clock and in-test transports."""

from __future__ import annotations

import asyncio
import datetime as dt
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sharpsend.config import SafeguardSettings
from sharpsend.mailer import CampaignSender, DeliveryCallback, SendTransportError
from sharpsend.safeguards.tracker import SendSafeguardService

START = dt.datetime(2025, 1, 6, 12, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    def __init__(self, start: dt.datetime = START) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += dt.timedelta(**kwargs)


async def settle(rounds: int = 20) -> None:
    """Let scheduled send tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class InstantSender(CampaignSender):
    """Acknowledges every campaign immediately."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, List[str], str]] = []

    async def send_campaign(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
        on_delivered: Optional[DeliveryCallback] = None,
    ) -> None:
        self.calls.append((campaign_id, list(recipient_ids), content))


class ManualSender(CampaignSender):
    """Holds every attempt until the test resolves it."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, List[str], str]] = []
        self._gates: Dict[str, "asyncio.Future[None]"] = {}

    async def send_campaign(
        self,
        campaign_id: str,
        recipient_ids: Sequence[str],
        content: str,
        on_delivered: Optional[DeliveryCallback] = None,
    ) -> None:
        self.calls.append((campaign_id, list(recipient_ids), content))
        gate: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._gates[campaign_id] = gate
        await gate

    async def succeed(self, campaign_id: str) -> None:
        await settle()
        self._gates.pop(campaign_id).set_result(None)
        await settle()

    async def fail(
        self, campaign_id: str, exc: Optional[Exception] = None
    ) -> None:
        await settle()
        self._gates.pop(campaign_id).set_exception(
            exc or SendTransportError("mailbox provider unavailable")
        )
        await settle()


def recipients(prefix: str, count: int) -> List[str]:
    return [f"{prefix}-{i:03d}" for i in range(count)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> SafeguardSettings:
    return SafeguardSettings()


@pytest.fixture
def instant_sender() -> InstantSender:
    return InstantSender()


@pytest.fixture
def manual_sender() -> ManualSender:
    return ManualSender()


@pytest.fixture
def service(
    instant_sender: InstantSender, settings: SafeguardSettings, clock: FakeClock
) -> SendSafeguardService:
    return SendSafeguardService(instant_sender, settings, clock=clock)


@pytest.fixture
def manual_service(
    manual_sender: ManualSender, settings: SafeguardSettings, clock: FakeClock
) -> SendSafeguardService:
    return SendSafeguardService(manual_sender, settings, clock=clock)
