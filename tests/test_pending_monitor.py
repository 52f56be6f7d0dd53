from __future__ import annotations

import asyncio

import pytest

from conftest import FakeClock, ManualSender, settle
from sharpsend.config import SafeguardSettings
from sharpsend.safeguards.tracker import SendSafeguardService
from sharpsend.workflows.pending_monitor import PendingSendMonitor


@pytest.mark.asyncio
async def test_send_is_not_stuck_until_timeout_passes(
    manual_service: SendSafeguardService, clock: FakeClock
) -> None:
    await manual_service.initiate_send("camp-A", ["r-1"], "Brief")
    await settle()

    clock.advance(seconds=30)
    assert await manual_service.check_stuck_sends() == []
    await manual_service.aclose()


@pytest.mark.asyncio
async def test_stuck_send_is_retried_then_given_up(
    manual_service: SendSafeguardService,
    manual_sender: ManualSender,
    clock: FakeClock,
) -> None:
    await manual_service.initiate_send("camp-A", ["r-1"], "Brief")
    await settle()

    for attempt in range(1, 4):
        clock.advance(seconds=31)
        assert await manual_service.check_stuck_sends() == ["camp-A"]
        await settle()
        status = manual_service.get_send_status("camp-A")
        assert status is not None
        assert status.status == "pending"
        assert status.retry_count == attempt
        assert status.last_attempt_at == clock.now

    clock.advance(seconds=31)
    assert await manual_service.check_stuck_sends() == ["camp-A"]
    await settle()

    status = manual_service.get_send_status("camp-A")
    assert status is not None
    assert status.status == "failed"
    assert status.last_error == "Maximum retry attempts (3) reached"
    assert manual_service.get_pending_sends() == []
    assert len(manual_sender.calls) == 4

    retry = await manual_service.retry_send("camp-A")
    assert retry.message == "Maximum retry attempts (3) reached"


@pytest.mark.asyncio
async def test_retried_attempt_can_still_complete(
    manual_service: SendSafeguardService,
    manual_sender: ManualSender,
    clock: FakeClock,
) -> None:
    await manual_service.initiate_send("camp-A", ["r-1"], "Brief")
    await settle()
    clock.advance(minutes=1)
    await manual_service.check_stuck_sends()

    await manual_sender.succeed("camp-A")

    status = manual_service.get_send_status("camp-A")
    assert status is not None
    assert status.status == "sent"
    assert status.retry_count == 1


@pytest.mark.asyncio
async def test_tick_runs_cleanup_when_due(
    manual_sender: ManualSender, clock: FakeClock
) -> None:
    service = SendSafeguardService(
        manual_sender, SafeguardSettings(seed_demo_data=True), clock=clock
    )
    monitor = PendingSendMonitor(service, interval=60, cleanup_interval=0)

    clock.advance(days=31)
    await monitor.tick()

    assert service.get_send_status("camp-001") is None


@pytest.mark.asyncio
async def test_monitor_loop_retries_stuck_sends(
    manual_service: SendSafeguardService, clock: FakeClock
) -> None:
    monitor = PendingSendMonitor(manual_service, interval=0.01, cleanup_interval=3600)
    await manual_service.initiate_send("camp-A", ["r-1"], "Brief")
    clock.advance(minutes=1)

    monitor.start()
    assert monitor.running
    for _ in range(100):
        await asyncio.sleep(0.01)
        status = manual_service.get_send_status("camp-A")
        if status is not None and status.retry_count > 0:
            break
    await monitor.stop()

    assert not monitor.running
    status = manual_service.get_send_status("camp-A")
    assert status is not None
    assert status.retry_count >= 1
    await manual_service.aclose()


def test_monitor_rejects_non_positive_interval(manual_service) -> None:
    with pytest.raises(ValueError, match="interval"):
        PendingSendMonitor(manual_service, interval=0)
