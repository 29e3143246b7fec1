from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404, get_meta_client_for_brand
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.enums import ScorecardMetricTypeEnum
from powerbrief.db.models import Brand, ScorecardMetric, is_uuid
from powerbrief.db.repositories.scorecard import ScorecardRepository
from powerbrief.routers.meta import raise_meta_error
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.scorecard import (
    MetaInsightsRequest,
    MetricCreateRequest,
    MetricUpdateRequest,
    RefreshRequest,
    SeedDefaultsRequest,
)
from powerbrief.services import scorecard as scorecard_service
from powerbrief.services.meta_ads import MetaAdsError

router = APIRouter(prefix="/scorecard", tags=["scorecard"])
logger = logging.getLogger(__name__)

_METRIC_FIELDS = {
    "displayName": "display_name",
    "description": "description",
    "formula": "formula",
    "goalValue": "goal_value",
    "goalOperator": "goal_operator",
    "isPercentage": "is_percentage",
    "isCurrency": "is_currency",
    "decimalPlaces": "decimal_places",
    "campaignNameFilters": "campaign_name_filters",
    "displayOrder": "display_order",
}
# Goal columns may be cleared explicitly; the rest ignore nulls.
_NULLABLE_METRIC_FIELDS = {"goalValue", "goalOperator", "description"}


def _require_brand(session: Session, auth: AuthContext, brand_id: Optional[str]) -> Brand:
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    return get_brand_or_404(session=session, auth=auth, brand_id=brand_id)


def _ad_account_for(brand: Brand, ad_account_id: Optional[str]) -> str:
    account = ad_account_id or brand.meta_default_ad_account_id
    if not account:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No ad account configured for this brand.",
        )
    return account


def _load_metric(session: Session, auth: AuthContext, metric_id: str) -> ScorecardMetric:
    metric = ScorecardRepository(session).get_metric_by_id(metric_id) if is_uuid(metric_id) else None
    if metric is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metric not found")
    get_brand_or_404(session=session, auth=auth, brand_id=metric.brand_id)
    return metric


@router.get("/metrics")
def list_metrics(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = _require_brand(session, auth, brand_id)
    return {"metrics": serialize_rows(ScorecardRepository(session).list_metrics(brand.id))}


@router.post("/metrics", status_code=status.HTTP_201_CREATED)
def create_metric(
    payload: MetricCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = _require_brand(session, auth, payload.brandId)
    if not payload.metricKey or not payload.displayName:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="metricKey and displayName are required.")
    if not payload.formula:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="formula must not be empty.")

    repo = ScorecardRepository(session)
    if repo.get_metric_by_key(brand.id, payload.metricKey):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A metric with this key already exists.")
    metric = repo.create_metric(
        brand.id,
        auth.user_id,
        metric_key=payload.metricKey,
        display_name=payload.displayName,
        description=payload.description,
        metric_type=ScorecardMetricTypeEnum.custom,
        formula=[item.model_dump() for item in payload.formula],
        goal_value=payload.goalValue,
        goal_operator=payload.goalOperator,
        is_percentage=payload.isPercentage,
        is_currency=payload.isCurrency,
        decimal_places=payload.decimalPlaces,
        campaign_name_filters=[item.model_dump() for item in payload.campaignNameFilters],
        display_order=payload.displayOrder,
    )
    logger.info("Scorecard metric created", extra={"brand_id": brand.id, "metric_id": metric.id})
    return serialize_row(metric)


@router.post("/metrics/defaults", status_code=status.HTTP_201_CREATED)
def seed_default_metrics(
    payload: SeedDefaultsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = _require_brand(session, auth, payload.brandId)
    created = scorecard_service.seed_default_metrics(session, brand_id=brand.id, user_id=auth.user_id)
    return {"created": len(created), "metrics": serialize_rows(ScorecardRepository(session).list_metrics(brand.id))}


@router.patch("/metrics/{metric_id}")
def update_metric(
    metric_id: str,
    payload: MetricUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    metric = _load_metric(session, auth, metric_id)
    provided = payload.model_dump(exclude_unset=True)
    fields: dict[str, Any] = {}
    for key, column in _METRIC_FIELDS.items():
        if key not in provided:
            continue
        if provided[key] is None and key not in _NULLABLE_METRIC_FIELDS:
            continue
        fields[column] = provided[key]
    if fields:
        ScorecardRepository(session).update_fields(metric, **fields)
    return serialize_row(metric)


@router.delete("/metrics/{metric_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_metric(
    metric_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    metric = _load_metric(session, auth, metric_id)
    ScorecardRepository(session).delete(metric)
    return None


@router.post("/meta-insights")
def fetch_meta_insights(
    payload: MetaInsightsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = _require_brand(session, auth, payload.brandId)
    if payload.dateRange is None or not payload.metrics:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="dateRange and metrics are required.")
    account = _ad_account_for(brand, payload.adAccountId)
    client = get_meta_client_for_brand(brand)
    try:
        values = scorecard_service.fetch_meta_values(
            client,
            ad_account_id=account,
            metric_keys=payload.metrics,
            since=payload.dateRange.since.isoformat(),
            until=payload.dateRange.until.isoformat(),
            name_filters=[item.model_dump() for item in payload.campaignNameFilters],
        )
    except MetaAdsError as exc:
        raise_meta_error(exc)
    return {"adAccountId": account, "dateRange": payload.dateRange.model_dump(mode="json"), "values": values}


@router.post("/refresh")
def refresh_scorecard(
    payload: RefreshRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = _require_brand(session, auth, payload.brandId)
    if payload.periodStart is None or payload.periodEnd is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="periodStart and periodEnd are required.")
    if payload.periodStart > payload.periodEnd:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="periodStart must not be after periodEnd.")

    metric_ids = [metric_id for metric_id in (payload.metricIds or []) if is_uuid(metric_id)]
    metrics = ScorecardRepository(session).list_metrics(brand.id, metric_ids=metric_ids or None)
    if payload.metricIds and not metric_ids:
        metrics = []
    if not metrics:
        return {"results": [], "periodStart": payload.periodStart, "periodEnd": payload.periodEnd}

    account = _ad_account_for(brand, payload.adAccountId)
    results = scorecard_service.refresh_metrics(
        session,
        client=get_meta_client_for_brand(brand),
        ad_account_id=account,
        metrics=metrics,
        period_start=payload.periodStart,
        period_end=payload.periodEnd,
    )
    logger.info(
        "Scorecard refreshed",
        extra={"brand_id": brand.id, "metrics": len(metrics), "failed": sum(not r["success"] for r in results)},
    )
    return {"results": results, "periodStart": payload.periodStart, "periodEnd": payload.periodEnd}


@router.get("/data")
def get_scorecard_data(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    period_start: Optional[date] = Query(default=None, alias="periodStart"),
    period_end: Optional[date] = Query(default=None, alias="periodEnd"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand = _require_brand(session, auth, brand_id)
    if period_start is None or period_end is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="periodStart and periodEnd are required.")
    return {"data": serialize_rows(ScorecardRepository(session).list_data(brand.id, period_start, period_end))}
