from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional, Union

from powerbrief.db.base import SessionLocal
from powerbrief.db.enums import SyncJobStatusEnum
from powerbrief.db.models import OneSheetSyncJob, utcnow
from powerbrief.db.repositories.onesheet import OneSheetRepository
from powerbrief.services.meta_ads import MetaAdsClient, MetaAdsError

logger = logging.getLogger(__name__)

DATE_RANGE_PRESETS = {"last30": 30, "last90": 90, "last180": 180}
ALL_TIME_START = date(2020, 1, 1)


@dataclass
class SyncProgress:
    status: str
    total_ads: int = 0
    processed_ads: int = 0
    error_message: Optional[str] = None


# Live progress for jobs running in this process; the job row is the durable copy.
_progress: dict[str, SyncProgress] = {}
_progress_lock = threading.Lock()


def set_progress(job_id: str, **fields: Any) -> None:
    with _progress_lock:
        current = _progress.get(job_id) or SyncProgress(status=SyncJobStatusEnum.pending.value)
        for key, value in fields.items():
            setattr(current, key, value)
        _progress[job_id] = current


def get_progress(job_id: str) -> Optional[SyncProgress]:
    with _progress_lock:
        current = _progress.get(job_id)
        return SyncProgress(**vars(current)) if current else None


def clear_progress(job_id: str) -> None:
    with _progress_lock:
        _progress.pop(job_id, None)


def progress_percent(processed: int, total: int) -> int:
    if not total:
        return 0
    return round(processed / total * 100)


def resolve_date_range(
    date_range: Union[str, dict[str, Any], None], *, today: Optional[date] = None
) -> tuple[date, date]:
    end = today or date.today()
    if isinstance(date_range, dict):
        start_value = date_range.get("start") or date_range.get("since")
        end_value = date_range.get("end") or date_range.get("until")
        start = date.fromisoformat(str(start_value)[:10]) if start_value else end - timedelta(days=30)
        if end_value:
            end = date.fromisoformat(str(end_value)[:10])
        if start > end:
            raise ValueError("dateRange start must not be after end.")
        return start, end
    if date_range == "all":
        return ALL_TIME_START, end
    return end - timedelta(days=DATE_RANGE_PRESETS.get(date_range or "", 30)), end


def job_status_payload(job: OneSheetSyncJob) -> dict[str, Any]:
    live = get_progress(job.id)
    status = live.status if live else job.status.value
    total = live.total_ads if live else job.total_ads
    processed = live.processed_ads if live else job.processed_ads
    error_message = (live.error_message if live else None) or job.error_message
    return {
        "id": job.id,
        "status": status,
        "progress": progress_percent(processed, total),
        "totalAds": total,
        "processedAds": processed,
        "errorMessage": error_message,
        "startedAt": job.started_at.isoformat() if job.started_at else None,
        "completedAt": job.completed_at.isoformat() if job.completed_at else None,
        "dateRange": {
            "start": job.date_range_start.isoformat() if job.date_range_start else None,
            "end": job.date_range_end.isoformat() if job.date_range_end else None,
        },
    }


def _summarize_ad(ad: dict[str, Any]) -> dict[str, Any]:
    insights = ad.get("insights") or {}
    rows = insights.get("data") if isinstance(insights, dict) else None
    metrics = rows[0] if rows else {}
    creative = ad.get("creative") or {}
    return {
        "adId": ad.get("id"),
        "name": ad.get("name"),
        "status": ad.get("effective_status") or ad.get("status"),
        "createdTime": ad.get("created_time"),
        "campaign": ad.get("campaign"),
        "adset": ad.get("adset"),
        "creative": {
            "id": creative.get("id"),
            "title": creative.get("title"),
            "body": creative.get("body"),
            "thumbnailUrl": creative.get("thumbnail_url"),
            "imageUrl": creative.get("image_url"),
            "videoId": creative.get("video_id"),
        },
        "metrics": metrics,
    }


def run_sync_job(
    job_id: str,
    *,
    onesheet_id: str,
    ad_account_id: str,
    access_token: str,
    client: Optional[MetaAdsClient] = None,
) -> None:
    """Background task body: pull ads with insights and store them on the OneSheet."""
    session = SessionLocal()
    try:
        repo = OneSheetRepository(session)
        job = repo.get_sync_job(job_id)
        if job is None:
            logger.error("OneSheet sync job disappeared", extra={"job_id": job_id})
            return

        repo.update_fields(job, status=SyncJobStatusEnum.running, started_at=utcnow())
        set_progress(job_id, status=SyncJobStatusEnum.running.value)

        try:
            meta = client or MetaAdsClient.for_token(access_token)
            ads = meta.list_ads_with_insights(
                ad_account_id=ad_account_id,
                since=job.date_range_start.isoformat(),
                until=job.date_range_end.isoformat(),
            )
            total = len(ads)
            repo.update_fields(job, total_ads=total)
            set_progress(job_id, total_ads=total)

            summaries: list[dict[str, Any]] = []
            for index, ad in enumerate(ads, start=1):
                summaries.append(_summarize_ad(ad))
                set_progress(job_id, processed_ads=index)

            onesheet = repo.get(onesheet_id)
            if onesheet is None:
                raise ValueError("OneSheet not found")
            audit = dict(onesheet.ad_account_audit or {})
            audit["ads"] = summaries
            audit["lastSyncedAt"] = utcnow().isoformat()
            repo.update_fields(onesheet, ad_account_audit=audit)

            repo.update_fields(
                job,
                status=SyncJobStatusEnum.completed,
                processed_ads=total,
                completed_at=utcnow(),
            )
            logger.info("OneSheet ad sync completed", extra={"job_id": job_id, "ads": total})
        except Exception as exc:
            message = exc.graph_message if isinstance(exc, MetaAdsError) and exc.graph_message else str(exc)
            logger.exception("OneSheet ad sync failed", extra={"job_id": job_id})
            session.rollback()
            repo.update_fields(
                job,
                status=SyncJobStatusEnum.failed,
                error_message=message,
                completed_at=utcnow(),
            )
    finally:
        clear_progress(job_id)
        session.close()
