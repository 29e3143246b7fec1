from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from powerbrief.config import settings
from powerbrief.db.models import Brand

logger = logging.getLogger(__name__)

SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com/"
SLACK_EVENTS = (
    "concept_submission",
    "concept_revision",
    "concept_approval",
    "concept_ready_for_editor",
    "ad_launch",
)


class SlackError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _with_hash(channel: str) -> str:
    return channel if channel.startswith("#") else f"#{channel}"


def resolve_channel(brand: Brand, event: Optional[str]) -> Optional[str]:
    config = brand.slack_channel_config or {}
    if event and config.get(event):
        return _with_hash(config[event])
    if config.get("default"):
        return _with_hash(config["default"])
    if brand.slack_channel_name:
        return _with_hash(brand.slack_channel_name)
    return None


def post_webhook(webhook_url: str, message: dict[str, Any]) -> None:
    try:
        response = httpx.post(webhook_url, json=message, timeout=settings.HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SlackError(
            f"Slack webhook returned {exc.response.status_code}: {exc.response.text}",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.RequestError as exc:
        raise SlackError(f"Slack webhook request failed: {exc}") from exc


def notify(brand: Brand, message: dict[str, Any], *, event: Optional[str] = None) -> bool:
    """Post to the brand's webhook if notifications are on. Failures are logged, never raised."""
    if not brand.slack_notifications_enabled or not brand.slack_webhook_url:
        logger.info("Slack notifications disabled", extra={"brand_id": brand.id, "event": event})
        return False
    channel = resolve_channel(brand, event)
    payload = dict(message)
    if channel:
        payload["channel"] = channel
    try:
        post_webhook(brand.slack_webhook_url, payload)
    except SlackError:
        logger.warning("Slack notification failed", extra={"brand_id": brand.id, "event": event}, exc_info=True)
        return False
    return True


def _field(label: str, value: Any) -> dict[str, str]:
    return {"type": "mrkdwn", "text": f"*{label}:*\n{value}"}


def _header(text: str) -> dict[str, Any]:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


def _timestamp_context(prefix: str) -> dict[str, Any]:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": f"{prefix} {stamp}"}]}


def build_test_message(channel_name: Optional[str] = None) -> dict[str, Any]:
    target = _with_hash(channel_name) if channel_name else "the webhook's default channel"
    return {
        "text": "PowerBrief Slack integration test",
        "blocks": [
            _header("PowerBrief Slack Integration Test"),
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"Your Slack webhook is working. Notifications will be posted to {target}.",
                },
            },
            _timestamp_context("Tested at"),
        ],
    }


def build_event_test_message(brand: Brand, event: str) -> dict[str, Any]:
    label = event.replace("_", " ").title()
    return {
        "text": f"Test {label} notification for {brand.name}",
        "blocks": [
            _header(f"Test notification: {label}"),
            {"type": "section", "fields": [_field("Brand", brand.name), _field("Event", label)]},
            _timestamp_context("Sent at"),
        ],
    }


def _launch_status(successful: int, failed: int) -> tuple[str, str]:
    if failed == 0:
        return "All Success", "good"
    if successful > 0:
        return "Partial Success", "warning"
    return "All Failed", "danger"


def build_ad_launch_message(
    *,
    brand_name: str,
    batch_name: Optional[str],
    campaign_id: Optional[str],
    ad_set_id: Optional[str],
    campaign_name: Optional[str],
    ad_set_name: Optional[str],
    results: list[dict[str, Any]],
) -> dict[str, Any]:
    successful = [item for item in results if item.get("status") == "AD_CREATED"]
    failed = [item for item in results if item.get("status") != "AD_CREATED"]
    status_text, color = _launch_status(len(successful), len(failed))

    blocks: list[dict[str, Any]] = [
        _header("New Ad Batch Published"),
        {
            "type": "section",
            "fields": [
                _field("Brand", brand_name),
                _field("Batch", batch_name or "Unnamed Batch"),
                _field("Campaign", campaign_name or (f"Campaign {campaign_id}" if campaign_id else "Unknown Campaign")),
                _field("Ad Set", ad_set_name or (f"Ad Set {ad_set_id}" if ad_set_id else "Unknown Ad Set")),
            ],
        },
        {
            "type": "section",
            "fields": [
                _field("Total Ads", len(results)),
                _field("Successful", len(successful)),
                _field("Failed", len(failed)),
                _field("Status", status_text),
            ],
        },
    ]
    if successful:
        lines = "\n".join(f"• {item.get('adName')}" for item in successful)
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"*Published Ads:*\n{lines}"}})
    if failed:
        lines = "\n".join(f"• {item.get('adName')} ({item.get('error') or 'Unknown error'})" for item in failed)
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": f"*Failed Ads:*\n{lines}"}})
    if campaign_id and ad_set_id:
        link = (
            "https://www.facebook.com/adsmanager/manage/adsets"
            f"?selected_adset_id={ad_set_id}&selected_campaign_id={campaign_id}"
        )
        blocks.append(
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View in Ads Manager"},
                        "url": link,
                    }
                ],
            }
        )
    blocks.append(_timestamp_context("Published at"))
    return {
        "text": f"New ad batch published for {brand_name}: {status_text}",
        "attachments": [{"color": color, "blocks": blocks}],
    }


def build_creator_status_message(
    *, brand_name: str, creator_name: Optional[str], creator_email: Optional[str], old_status: Optional[str], new_status: str
) -> dict[str, Any]:
    return {
        "text": f"UGC creator {creator_name or creator_email} moved to {new_status}",
        "blocks": [
            _header("UGC Pipeline: Creator Status Updated"),
            {
                "type": "section",
                "fields": [
                    _field("Creator", creator_name or "Unknown"),
                    _field("Email", creator_email or "n/a"),
                    _field("Previous Status", old_status or "n/a"),
                    _field("New Status", new_status),
                ],
            },
            {"type": "context", "elements": [{"type": "mrkdwn", "text": f"*Brand:* {brand_name}"}]},
        ],
    }


def build_contract_status_message(
    *, brand_name: str, creator_name: Optional[str], old_status: Optional[str], new_status: str
) -> dict[str, Any]:
    return {
        "text": f"Contract status for {creator_name or 'creator'} changed to {new_status}",
        "blocks": [
            _header("UGC Pipeline: Contract Status Updated"),
            {
                "type": "section",
                "fields": [
                    _field("Creator", creator_name or "Unknown"),
                    _field("Brand", brand_name),
                    _field("Previous", old_status or "n/a"),
                    _field("Current", new_status),
                ],
            },
        ],
    }


def build_shipment_message(
    *, brand_name: str, creator_name: Optional[str], shipment_status: str, tracking_number: Optional[str]
) -> dict[str, Any]:
    fields = [
        _field("Creator", creator_name or "Unknown"),
        _field("Brand", brand_name),
        _field("Shipment Status", shipment_status),
    ]
    if tracking_number:
        fields.append(_field("Tracking Number", tracking_number))
    return {
        "text": f"Product shipment for {creator_name or 'creator'}: {shipment_status}",
        "blocks": [_header("UGC Pipeline: Product Shipment Update"), {"type": "section", "fields": fields}],
    }


def build_concept_submission_message(
    *,
    brand_name: str,
    batch_name: str,
    concept_title: str,
    video_editor: Optional[str],
    public_share_url: str,
    review_dashboard_url: str,
) -> dict[str, Any]:
    return {
        "text": f"New concept submitted for review: {concept_title}",
        "blocks": [
            _header("New Concept Submitted for Review"),
            {
                "type": "section",
                "fields": [
                    _field("Brand", brand_name),
                    _field("Batch", batch_name),
                    _field("Concept", concept_title),
                    _field("Creator", video_editor or "Not assigned"),
                ],
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": "*Content Type:*\nUploaded Assets"}},
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View Public Share"},
                        "url": public_share_url,
                        "style": "primary",
                    },
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Review & Approve"},
                        "url": review_dashboard_url,
                    },
                ],
            },
            _timestamp_context("Submitted at"),
        ],
    }
