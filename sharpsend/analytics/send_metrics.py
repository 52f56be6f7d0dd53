"""Tabular summaries of tracked campaign sends.

The tracker keeps :class:`~sharpsend.safeguards.SendRecord` objects; the
helpers here turn them into pandas DataFrames for reporting.  All
timestamps are converted to timezone-aware UTC values.
"""

from __future__ import annotations

from typing import Iterable

import pandas as pd

from sharpsend.safeguards import SendRecord

STATUSES = ["pending", "sent", "failed"]

RECORD_COLUMNS = [
    "campaign_id",
    "status",
    "n_recipients",
    "retry_count",
    "content_hash",
    "timestamp",
    "last_attempt_at",
]


def records_to_frame(records: Iterable[SendRecord]) -> pd.DataFrame:
    """Return one row per record with the columns in ``RECORD_COLUMNS``."""
    rows = [
        {
            "campaign_id": r.campaign_id,
            "status": r.status,
            "n_recipients": len(r.recipient_ids),
            "retry_count": r.retry_count,
            "content_hash": r.content_hash,
            "timestamp": r.timestamp,
            "last_attempt_at": r.last_attempt_at,
        }
        for r in records
    ]
    if not rows:
        df = pd.DataFrame(columns=RECORD_COLUMNS).astype(
            {"n_recipients": int, "retry_count": int}
        )
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
        df["last_attempt_at"] = pd.to_datetime(df["last_attempt_at"], utc=True)
        return df

    df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df["last_attempt_at"] = pd.to_datetime(df["last_attempt_at"], utc=True)
    return df


def summarize_by_status(records: Iterable[SendRecord]) -> pd.DataFrame:
    """Count campaigns, recipients and retried campaigns per status.

    The result is indexed by status and always contains a row for every
    status in ``STATUSES``, zero-filled when no record has that status.
    """
    df = records_to_frame(records)
    df["retried"] = (df["retry_count"] > 0).astype(int)
    summary = df.groupby("status").agg(
        N_campaigns=("campaign_id", "count"),
        N_recipients=("n_recipients", "sum"),
        N_retried=("retried", "sum"),
    )
    summary = summary.reindex(STATUSES, fill_value=0).astype(int)
    summary.index.name = "status"
    return summary


def hourly_send_volume(
    records: Iterable[SendRecord], status: str = "sent"
) -> pd.DataFrame:
    """Bucket records with ``status`` by the hour they were initiated.

    Returns:
        A DataFrame indexed by the UTC hour with ``N_campaigns`` and
        ``N_recipients`` columns, sorted chronologically.  Hours without
        sends are not included.
    """
    df = records_to_frame(records)
    df = df[df["status"] == status]
    if df.empty:
        empty = pd.DataFrame(columns=["N_campaigns", "N_recipients"]).astype(int)
        empty.index = pd.DatetimeIndex([], tz="UTC", name="hour")
        return empty

    df = df.assign(hour=df["timestamp"].dt.floor("h"))
    volume = df.groupby("hour").agg(
        N_campaigns=("campaign_id", "count"),
        N_recipients=("n_recipients", "sum"),
    )
    return volume.sort_index().astype(int)


__all__ = [
    "STATUSES",
    "RECORD_COLUMNS",
    "records_to_frame",
    "summarize_by_status",
    "hourly_send_volume",
]
