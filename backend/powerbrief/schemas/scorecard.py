from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field

GoalOperator = Literal["gte", "gt", "lte", "lt", "eq"]


class FormulaItem(BaseModel):
    type: Literal["metric", "operator", "number"]
    value: str


class CampaignNameFilter(BaseModel):
    operator: Literal["contains", "not_contains"] = "contains"
    value: str


class MetricCreateRequest(BaseModel):
    brandId: Optional[str] = None
    metricKey: Optional[str] = None
    displayName: Optional[str] = None
    description: Optional[str] = None
    formula: list[FormulaItem] = Field(default_factory=list)
    goalValue: Optional[float] = None
    goalOperator: Optional[GoalOperator] = None
    isPercentage: bool = False
    isCurrency: bool = False
    decimalPlaces: int = 2
    campaignNameFilters: list[CampaignNameFilter] = Field(default_factory=list)
    displayOrder: int = 0


class MetricUpdateRequest(BaseModel):
    displayName: Optional[str] = None
    description: Optional[str] = None
    formula: Optional[list[FormulaItem]] = None
    goalValue: Optional[float] = None
    goalOperator: Optional[GoalOperator] = None
    isPercentage: Optional[bool] = None
    isCurrency: Optional[bool] = None
    decimalPlaces: Optional[int] = None
    campaignNameFilters: Optional[list[CampaignNameFilter]] = None
    displayOrder: Optional[int] = None


class SeedDefaultsRequest(BaseModel):
    brandId: Optional[str] = None


class DateRange(BaseModel):
    since: date
    until: date


class MetaInsightsRequest(BaseModel):
    brandId: Optional[str] = None
    adAccountId: Optional[str] = None
    dateRange: Optional[DateRange] = None
    metrics: list[str] = Field(default_factory=list)
    campaignNameFilters: list[CampaignNameFilter] = Field(default_factory=list)


class RefreshRequest(BaseModel):
    brandId: Optional[str] = None
    periodStart: Optional[date] = None
    periodEnd: Optional[date] = None
    metricIds: Optional[list[str]] = None
    adAccountId: Optional[str] = None
