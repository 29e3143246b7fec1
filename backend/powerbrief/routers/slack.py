from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.schemas.automation import (
    SlackSettingsRequest,
    SlackTestNotificationsRequest,
    SlackTestWebhookRequest,
)
from powerbrief.services import slack

router = APIRouter(prefix="/slack", tags=["slack"])
logger = logging.getLogger(__name__)


def _validate_webhook_url(url: str | None) -> str:
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="webhookUrl is required.")
    if not url.startswith(slack.SLACK_WEBHOOK_PREFIX):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid Slack webhook URL. It must start with {slack.SLACK_WEBHOOK_PREFIX}",
        )
    return url


@router.post("/save-settings")
def save_slack_settings(
    payload: SlackSettingsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    webhook_url = _validate_webhook_url(payload.webhookUrl)
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    channel_config = {
        key: value
        for key, value in (payload.channelConfig or {}).items()
        if key in ("default", *slack.SLACK_EVENTS) and value
    }
    BrandsRepository(session).update_fields(
        brand,
        slack_webhook_url=webhook_url,
        slack_channel_name=payload.channelName or None,
        slack_notifications_enabled=payload.enabled,
        slack_channel_config=channel_config,
    )
    logger.info("Slack settings saved", extra={"brand_id": brand.id, "enabled": payload.enabled})
    return {
        "success": True,
        "webhookUrl": brand.slack_webhook_url,
        "channelName": brand.slack_channel_name,
        "enabled": brand.slack_notifications_enabled,
        "channelConfig": brand.slack_channel_config,
    }


@router.post("/test-webhook")
def test_slack_webhook(
    payload: SlackTestWebhookRequest,
    auth: AuthContext = Depends(get_current_user),
):
    webhook_url = _validate_webhook_url(payload.webhookUrl)
    message = slack.build_test_message(payload.channelName)
    if payload.channelName:
        message["channel"] = payload.channelName if payload.channelName.startswith("#") else f"#{payload.channelName}"
    try:
        slack.post_webhook(webhook_url, message)
    except slack.SlackError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to send test message to Slack: {exc}",
        ) from exc
    return {"success": True, "message": "Test message sent successfully"}


@router.post("/test-notifications")
def test_slack_notifications(
    payload: SlackTestNotificationsRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    if not brand.slack_webhook_url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Slack webhook is not configured.")

    config = brand.slack_channel_config or {}
    events = [event for event in slack.SLACK_EVENTS if config.get(event)] or ["default"]
    results: list[dict[str, Any]] = []
    for event in events:
        message = slack.build_event_test_message(brand, event)
        channel = slack.resolve_channel(brand, None if event == "default" else event)
        if channel:
            message["channel"] = channel
        try:
            slack.post_webhook(brand.slack_webhook_url, message)
            results.append({"event": event, "channel": channel, "success": True})
        except slack.SlackError as exc:
            logger.warning("Slack test notification failed", extra={"brand_id": brand.id, "event": event})
            results.append({"event": event, "channel": channel, "success": False, "error": str(exc)})
    return {"success": all(item["success"] for item in results), "results": results}
