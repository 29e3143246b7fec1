from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class SlackSettingsRequest(BaseModel):
    brandId: Optional[str] = None
    webhookUrl: Optional[str] = None
    channelName: Optional[str] = None
    enabled: bool = False
    channelConfig: Optional[dict[str, Optional[str]]] = None


class SlackTestWebhookRequest(BaseModel):
    webhookUrl: Optional[str] = None
    channelName: Optional[str] = None


class SlackTestNotificationsRequest(BaseModel):
    brandId: Optional[str] = None


class AutomationEnableRequest(BaseModel):
    brandId: Optional[str] = None
    templateName: Optional[str] = None
    configuration: Optional[dict[str, Any]] = None


class AutomationToggleRequest(BaseModel):
    automationId: Optional[str] = None
    isActive: Optional[bool] = None


class AutomationTriggerRequest(BaseModel):
    brandId: Optional[str] = None
    templateName: Optional[str] = None
    triggerData: Optional[dict[str, Any]] = None
