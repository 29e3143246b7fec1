from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel


class OneSheetCreateRequest(BaseModel):
    brandId: Optional[str] = None
    title: Optional[str] = None
    product: Optional[str] = None


class OneSheetUpdateRequest(BaseModel):
    title: Optional[str] = None
    product: Optional[str] = None
    audienceInsights: Optional[dict[str, Any]] = None
    personas: Optional[list[Any]] = None
    competitorAnalysis: Optional[dict[str, Any]] = None
    adAccountAudit: Optional[dict[str, Any]] = None
    creativeBrainstorm: Optional[dict[str, Any]] = None
    contextData: Optional[dict[str, Any]] = None


class SyncAdsRequest(BaseModel):
    # Either a preset ("last30", "last90", "last180", "all") or {"start", "end"}.
    dateRange: Optional[Union[str, dict[str, Any]]] = None
    adAccountId: Optional[str] = None


class NamedDescription(BaseModel):
    name: str
    description: Optional[str] = None


class AiInstructionsUpdateRequest(BaseModel):
    onesheetId: Optional[str] = None
    contentVariables: Optional[list[NamedDescription]] = None
    awarenessLevels: Optional[list[NamedDescription]] = None
    contentVariablesReturnMultiple: Optional[bool] = None
    contentVariablesAllowNew: Optional[bool] = None
    awarenessLevelsAllowNew: Optional[bool] = None
    contentVariablesSelectionGuidance: Optional[str] = None


class DiscoveredInstructionsRequest(BaseModel):
    onesheetId: Optional[str] = None
    discoveredVariable: Optional[NamedDescription] = None
    discoveredLevel: Optional[NamedDescription] = None
