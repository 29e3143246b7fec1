"""
AI UGC coordinator: per-brand settings, creator pipeline analysis and email drafting.

Every LLM call goes through `LLMClient.generate_json`; every outcome, including
failures, is written to `ugc_ai_coordinator_actions` so the dashboard can show
what the coordinator did and why.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from powerbrief.config import settings
from powerbrief.db.enums import EmailMessageStatusEnum
from powerbrief.db.models import Brand, UgcAiCoordinator, UgcCreator, UgcCreatorScript, utcnow
from powerbrief.db.repositories.ugc import (
    UgcCoordinatorRepository,
    UgcCreatorsRepository,
    UgcInboxRepository,
)
from powerbrief.llm.client import LLMClient, LLMGenerationParams
from powerbrief.services.email import EmailClient, brand_sender, normalize_subject
from powerbrief.services.script_links import script_response_links

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI UGC coordinator. You keep creator relationships moving through onboarding, "
    "rates, product shipping, scripting and delivery. You write friendly, concise, professional "
    "emails and never promise payment terms the brand has not approved."
)

INCOMPLETE_CREATOR_ANALYSIS = {
    "analysis": "Creator has incomplete data - missing both email and name. Manual review needed.",
    "recommendedActions": [
        {
            "type": "follow_up",
            "priority": "medium",
            "description": "Complete creator information - add email and name",
            "reasoning": "Cannot analyze creator without basic contact information",
        }
    ],
}


def default_coordinator_settings() -> dict[str, Any]:
    return {
        "proactivity_level": "medium",
        "auto_send_emails": False,
        "require_approval": True,
        "working_hours": {"start": "09:00", "end": "17:00", "timezone": "America/Los_Angeles"},
        "follow_up_delays": {"onboarding": 48, "script_pipeline": 24},
    }


def _creator_context(creator: UgcCreator) -> str:
    return "\n".join(
        [
            "CREATOR INFO:",
            f"- Name: {creator.name or 'Unknown'}",
            f"- Email: {creator.email or 'Not provided'}",
            f"- Status: {creator.status}",
            f"- Contract Status: {creator.contract_status}",
            f"- Product Shipment: {creator.product_shipment_status or 'Not shipped'}",
            f"- Per Script Fee: {creator.per_script_fee if creator.per_script_fee is not None else 'Not set'}",
            f"- Platforms: {', '.join(str(p) for p in creator.platforms or []) or 'Unknown'}",
            f"- Content Types: {', '.join(str(c) for c in creator.content_types or []) or 'Unknown'}",
        ]
    )


def _brand_context(brand: Brand) -> str:
    return "\n".join(
        [
            "BRAND INFO:",
            f"- Name: {brand.name}",
            f"- Brand Info: {json.dumps(brand.brand_info_data or {})}",
            f"- Target Audience: {json.dumps(brand.target_audience_data or {})}",
        ]
    )


class UgcAiCoordinatorService:
    def __init__(self, session: Session, llm: Optional[LLMClient] = None) -> None:
        self.session = session
        self.repo = UgcCoordinatorRepository(session)
        self.llm = llm or LLMClient(default_model=settings.AI_COORDINATOR_MODEL)

    def get_or_create_coordinator(self, brand: Brand, user_id: str) -> UgcAiCoordinator:
        existing = self.repo.get_for_brand(brand.id)
        if existing is not None:
            return existing
        return self.repo.create(
            brand_id=brand.id,
            user_id=user_id,
            name="AI UGC Coordinator",
            enabled=True,
            settings=default_coordinator_settings(),
            system_prompt=DEFAULT_SYSTEM_PROMPT,
            model_settings={"model": settings.AI_COORDINATOR_MODEL, "temperature": 0.7},
            slack_notifications_enabled=False,
            email_automation_enabled=True,
        )

    def _params(self, coordinator: Optional[UgcAiCoordinator]) -> LLMGenerationParams:
        model_settings = (coordinator.model_settings if coordinator else None) or {}
        return LLMGenerationParams(
            model=model_settings.get("model") or settings.AI_COORDINATOR_MODEL,
            temperature=float(model_settings.get("temperature", 0.7)),
        )

    def _recent_actions_context(self, coordinator: UgcAiCoordinator, creator: UgcCreator) -> str:
        recent = [a for a in self.repo.list_actions(coordinator.id, limit=20) if a.creator_id == creator.id][:5]
        if not recent:
            return "RECENT AI COORDINATOR ACTIONS: none"
        lines = ["RECENT AI COORDINATOR ACTIONS:"]
        for action in recent:
            lines.append(f"- {action.action_type} ({action.created_at.isoformat()}): {action.ai_reasoning or ''}")
        return "\n".join(lines)

    def analyze_creator_status(
        self, creator: UgcCreator, brand: Brand, coordinator: Optional[UgcAiCoordinator] = None
    ) -> dict[str, Any]:
        if not creator.email and not creator.name:
            return dict(INCOMPLETE_CREATOR_ANALYSIS)

        history = self._recent_actions_context(coordinator, creator) if coordinator else ""
        prompt = f"""
{coordinator.system_prompt if coordinator and coordinator.system_prompt else DEFAULT_SYSTEM_PROMPT}

{_brand_context(brand)}

{_creator_context(creator)}

{history}

Analyze where this creator stands in the pipeline (onboarding, rates, shipping, scripting, delivery)
and recommend only NEW actions that are not already covered by recent actions.

Respond in JSON format:
{{
  "analysis": "Brief analysis of creator status and pipeline position",
  "recommendedActions": [
    {{
      "type": "email_sent" | "status_changed" | "follow_up" | "script_assigned",
      "priority": "high" | "medium" | "low",
      "description": "What action should be taken",
      "reasoning": "Why this action is recommended"
    }}
  ]
}}
"""
        payload = self.llm.generate_json(prompt, self._params(coordinator))
        actions = payload.get("recommendedActions")
        return {
            "analysis": str(payload.get("analysis") or ""),
            "recommendedActions": actions if isinstance(actions, list) else [],
        }

    def process_pipeline(
        self, brand: Brand, user_id: str, creator_ids: Optional[list[str]] = None
    ) -> dict[str, Any]:
        coordinator = self.get_or_create_coordinator(brand, user_id)
        creators_repo = UgcCreatorsRepository(self.session)
        creators = (
            creators_repo.list_by_ids(brand.id, creator_ids) if creator_ids else creators_repo.list(brand.id)
        )

        results: list[dict[str, Any]] = []
        for creator in creators:
            try:
                analysis = self.analyze_creator_status(creator, brand, coordinator)
            except Exception as exc:
                logger.exception("Creator analysis failed", extra={"creator_id": creator.id, "brand_id": brand.id})
                self.repo.log_action(
                    coordinator.id,
                    "ai_analysis",
                    creator_id=creator.id,
                    action_data={"creator_id": creator.id, "error": str(exc)},
                    success=False,
                    error_message=str(exc),
                )
                results.append({"creatorId": creator.id, "success": False, "error": str(exc)})
                continue

            self.repo.log_action(
                coordinator.id,
                "ai_analysis",
                creator_id=creator.id,
                action_data={"creator_id": creator.id, **analysis},
                ai_reasoning=analysis["analysis"],
            )
            results.append(
                {
                    "creatorId": creator.id,
                    "creatorName": creator.name,
                    "success": True,
                    "analysis": analysis["analysis"],
                    "recommendedActions": analysis["recommendedActions"],
                }
            )

        self.repo.update_fields(coordinator, last_activity_at=utcnow())
        return {"success": True, "results": results}

    def generate_email(
        self,
        coordinator: UgcAiCoordinator,
        *,
        creator: UgcCreator,
        brand: Brand,
        purpose: str,
        script: Optional[UgcCreatorScript] = None,
    ) -> dict[str, str]:
        script_block = ""
        if script is not None:
            links = script_response_links(script.id)
            script_block = (
                "SCRIPT DETAILS:\n"
                f"- Title: {script.title}\n"
                f"- Status: {script.status}\n"
                f"- Approve Link: {links['approve']}\n"
                f"- Reject Link: {links['reject']}\n"
            )
        prompt = f"""
{coordinator.system_prompt or DEFAULT_SYSTEM_PROMPT}

As the AI UGC Coordinator for {brand.name}, write a personalized email for this creator.

{_creator_context(creator)}

{script_block}
EMAIL PURPOSE: {purpose}

Return as JSON:
{{
  "subject": "Email subject line",
  "htmlContent": "Full HTML email content with inline styles",
  "textContent": "Plain text version of the email",
  "reasoning": "Explanation of your content choices"
}}
"""
        try:
            payload = self.llm.generate_json(prompt, self._params(coordinator))
        except Exception as exc:
            self.repo.log_action(
                coordinator.id,
                "email_generated",
                creator_id=creator.id,
                script_id=script.id if script else None,
                action_data={"purpose": purpose, "error": str(exc)},
                success=False,
                error_message=str(exc),
            )
            raise

        email = {
            "subject": str(payload.get("subject") or f"Update from {brand.name}"),
            "htmlContent": str(payload.get("htmlContent") or ""),
            "textContent": str(payload.get("textContent") or ""),
        }
        self.repo.log_action(
            coordinator.id,
            "email_generated",
            creator_id=creator.id,
            script_id=script.id if script else None,
            action_data={"purpose": purpose, "subject": email["subject"], "creator_name": creator.name},
            ai_reasoning=str(payload.get("reasoning") or ""),
        )
        return email

    def send_email(
        self,
        coordinator: UgcAiCoordinator,
        *,
        creator: UgcCreator,
        brand: Brand,
        email: dict[str, str],
        email_client: Optional[EmailClient] = None,
    ) -> None:
        if not creator.email:
            raise ValueError("Creator has no email address.")
        client = email_client or EmailClient.from_settings()
        client.send_as_brand(
            brand,
            to=creator.email,
            subject=email["subject"],
            html=email["htmlContent"],
            text=email.get("textContent") or None,
        )
        inbox = UgcInboxRepository(self.session)
        thread = inbox.get_or_create_thread(brand.id, creator.id, normalize_subject(email["subject"]))
        inbox.add_message(
            thread,
            from_email=brand_sender(brand).email,
            to_email=creator.email,
            subject=email["subject"],
            html_content=email["htmlContent"],
            text_content=email.get("textContent") or "",
            status=EmailMessageStatusEnum.sent,
            sent_at=utcnow(),
        )
        self.repo.log_action(
            coordinator.id,
            "email_sent",
            creator_id=creator.id,
            action_data={"subject": email["subject"], "creator_name": creator.name},
        )

    def follow_up_on_script_approval(
        self, *, brand: Brand, creator: UgcCreator, script: UgcCreatorScript
    ) -> dict[str, str]:
        coordinator = self.get_or_create_coordinator(brand, script.user_id)
        email = self.generate_email(
            coordinator,
            creator=creator,
            brand=brand,
            purpose="Script approved - collect payment details",
            script=script,
        )
        if (coordinator.settings or {}).get("auto_send_emails") and coordinator.email_automation_enabled:
            self.send_email(coordinator, creator=creator, brand=brand, email=email)
        return email
