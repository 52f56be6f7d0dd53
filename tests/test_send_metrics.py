import datetime as dt

import pandas as pd

from sharpsend.analytics.send_metrics import (
    RECORD_COLUMNS,
    hourly_send_volume,
    records_to_frame,
    summarize_by_status,
)
from sharpsend.safeguards import SendRecord

T0 = dt.datetime(2025, 1, 6, 9, 15, tzinfo=dt.timezone.utc)


def _record(cid: str, status: str, n: int, minutes: int, retries: int = 0) -> SendRecord:
    return SendRecord(
        campaign_id=cid,
        recipient_ids=[f"{cid}-{i}" for i in range(n)],
        content_hash=cid,
        timestamp=T0 + dt.timedelta(minutes=minutes),
        status=status,  # type: ignore[arg-type]
        retry_count=retries,
    )


RECORDS = [
    _record("c1", "sent", 10, 0),
    _record("c2", "sent", 5, 30, retries=1),
    _record("c3", "sent", 2, 65),
    _record("c4", "failed", 7, 70, retries=3),
    _record("c5", "pending", 3, 80),
]


def test_records_to_frame_columns_and_types() -> None:
    df = records_to_frame(RECORDS)
    assert list(df.columns) == RECORD_COLUMNS
    assert len(df) == 5
    assert str(df["timestamp"].dt.tz) == "UTC"
    assert df.loc[df["campaign_id"] == "c1", "n_recipients"].item() == 10


def test_records_to_frame_empty() -> None:
    df = records_to_frame([])
    assert df.empty
    assert list(df.columns) == RECORD_COLUMNS


def test_summarize_by_status() -> None:
    summary = summarize_by_status(RECORDS)
    assert list(summary.index) == ["pending", "sent", "failed"]
    assert summary.loc["sent", "N_campaigns"] == 3
    assert summary.loc["sent", "N_recipients"] == 17
    assert summary.loc["sent", "N_retried"] == 1
    assert summary.loc["failed", "N_retried"] == 1
    assert summary.loc["pending", "N_recipients"] == 3


def test_summarize_by_status_zero_fills() -> None:
    summary = summarize_by_status([])
    assert (summary.values == 0).all()
    assert list(summary.columns) == ["N_campaigns", "N_recipients", "N_retried"]


def test_hourly_send_volume_buckets_sent_records() -> None:
    volume = hourly_send_volume(RECORDS)
    assert list(volume.index) == [
        pd.Timestamp("2025-01-06 09:00", tz="UTC"),
        pd.Timestamp("2025-01-06 10:00", tz="UTC"),
    ]
    assert volume["N_campaigns"].tolist() == [2, 1]
    assert volume["N_recipients"].tolist() == [15, 2]


def test_hourly_send_volume_without_matches() -> None:
    volume = hourly_send_volume(RECORDS, status="nonexistent")
    assert volume.empty
    assert list(volume.columns) == ["N_campaigns", "N_recipients"]
