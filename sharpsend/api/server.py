"""HTTP API in front of the send safeguard tracker.

This module exposes a typed API using FastAPI.  The application owns exactly
one :class:`SendSafeguardService`, created in the lifespan handler together
with the background monitor, and passes it to every route through a
dependency.  The server can be run standalone::

    uvicorn sharpsend.api.server:app --reload

or built with custom settings and transport through :func:`create_app`.
"""

from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sharpsend.analytics.send_metrics import summarize_by_status
from sharpsend.config import SafeguardSettings
from sharpsend.mailer import CampaignSender, build_sender
from sharpsend.safeguards import SendRecord, SendResult
from sharpsend.safeguards.tracker import SendSafeguardService
from sharpsend.workflows.pending_monitor import PendingSendMonitor

LOGGER = logging.getLogger(__name__)


class SendRequest(BaseModel):
    campaign_id: str = Field(min_length=1)
    recipient_ids: List[str]
    content: str
    force_override: bool = False


class DuplicateCheckOut(BaseModel):
    is_duplicate: bool
    reason: Optional[str] = None
    rule: Optional[str] = None
    last_sent_at: Optional[dt.datetime] = None
    similar_campaigns: List[str] = []


class SendResultOut(BaseModel):
    success: bool
    message: str
    requires_confirmation: bool = False


class SendRecordOut(BaseModel):
    campaign_id: str
    recipient_ids: List[str]
    content_hash: str
    timestamp: dt.datetime
    status: str
    retry_count: int
    last_attempt_at: Optional[dt.datetime] = None
    last_error: Optional[str] = None
    delivered_ids: List[str] = []

    @classmethod
    def from_record(cls, record: SendRecord) -> "SendRecordOut":
        return cls(**asdict(record))


class StatsOut(BaseModel):
    duplicates_prevented: int
    cooldown_violations: int
    successful_sends: int
    failed_sends: int
    retried_sends: int
    by_status: Dict[str, Dict[str, int]]


class CleanupOut(BaseModel):
    removed: int
    days_to_keep: int


def get_safeguards(request: Request) -> SendSafeguardService:
    """Return the application's tracker instance."""
    return request.app.state.safeguards


def _result_response(result: SendResult, ok_status: int) -> JSONResponse:
    body = SendResultOut(**asdict(result)).model_dump()
    status = ok_status if result.success else 409
    return JSONResponse(status_code=status, content=body)


def create_app(
    settings: Optional[SafeguardSettings] = None,
    sender: Optional[CampaignSender] = None,
    run_monitor: bool = True,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Safeguard settings; read from the environment when omitted.
        sender: Transport to use; chosen from ``settings`` when omitted.
        run_monitor: Start the background stuck-send monitor.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        resolved = settings or SafeguardSettings.from_env()
        service = SendSafeguardService(
            sender=sender or build_sender(resolved), settings=resolved
        )
        monitor = PendingSendMonitor(service)
        app.state.safeguards = service
        app.state.monitor = monitor
        if run_monitor:
            monitor.start()
        LOGGER.info("Send safeguards ready (transport=%s)", resolved.transport)
        try:
            yield
        finally:
            await monitor.stop()
            await service.aclose()

    app = FastAPI(title="SharpSend Send Safeguards API", lifespan=lifespan)

    @app.post("/sends/check", response_model=DuplicateCheckOut,
              summary="Check a campaign for duplicates")
    async def check_send(
        req: SendRequest,
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> DuplicateCheckOut:
        result = service.check_for_duplicates(
            req.campaign_id, req.recipient_ids, req.content
        )
        return DuplicateCheckOut(**asdict(result))

    @app.post("/sends", response_model=SendResultOut,
              summary="Queue a campaign for sending")
    async def initiate_send(
        req: SendRequest,
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> JSONResponse:
        """Queue a campaign; 409 means the caller must confirm an override."""
        result = await service.initiate_send(
            req.campaign_id,
            req.recipient_ids,
            req.content,
            force_override=req.force_override,
        )
        return _result_response(result, ok_status=202)

    @app.get("/sends/pending", response_model=List[SendRecordOut],
             summary="List pending sends")
    async def pending_sends(
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> List[SendRecordOut]:
        return [SendRecordOut.from_record(r) for r in service.get_pending_sends()]

    @app.get("/sends/recent", response_model=List[SendRecordOut],
             summary="List recently initiated sends")
    async def recent_sends(
        hours: float = Query(24, gt=0),
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> List[SendRecordOut]:
        return [
            SendRecordOut.from_record(r) for r in service.get_recent_sends(hours)
        ]

    @app.get("/sends/stats", response_model=StatsOut,
             summary="Duplicate prevention statistics")
    async def send_stats(
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> StatsOut:
        stats = service.get_duplicate_prevention_stats()
        summary = summarize_by_status(service.get_all_records())
        by_status = {
            str(status): {col: int(value) for col, value in row.items()}
            for status, row in summary.iterrows()
        }
        return StatsOut(**asdict(stats), by_status=by_status)

    @app.post("/sends/cleanup", response_model=CleanupOut,
              summary="Purge old send records")
    async def cleanup(
        days_to_keep: Optional[int] = Query(None, ge=0),
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> CleanupOut:
        days = service.settings.retention_days if days_to_keep is None else days_to_keep
        removed = service.cleanup_old_records(days)
        return CleanupOut(removed=removed, days_to_keep=days)

    @app.get("/sends/{campaign_id}", response_model=SendRecordOut,
             summary="Send status of one campaign")
    async def send_status(
        campaign_id: str,
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> SendRecordOut:
        record = service.get_send_status(campaign_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        return SendRecordOut.from_record(record)

    @app.post("/sends/{campaign_id}/retry", response_model=SendResultOut,
              summary="Retry a failed or stuck campaign")
    async def retry_send(
        campaign_id: str,
        service: SendSafeguardService = Depends(get_safeguards),
    ) -> JSONResponse:
        if service.get_send_status(campaign_id) is None:
            raise HTTPException(status_code=404, detail="Campaign not found")
        result = await service.retry_send(campaign_id)
        return _result_response(result, ok_status=202)

    return app


app = create_app()


__all__ = ["app", "create_app", "get_safeguards"]
