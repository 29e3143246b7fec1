from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from powerbrief.config import settings
from powerbrief.db.models import Brand, BrandN8nWorkflow, UgcCreator, is_uuid
from powerbrief.db.repositories.automation import AutomationRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository
from powerbrief.schemas.brands import serialize_brand
from powerbrief.schemas.common import serialize_row

logger = logging.getLogger(__name__)

CREATOR_ACKNOWLEDGEMENT_WORKFLOW = "creator_application_acknowledgment"
CREATOR_APPROVED_WORKFLOW = "creator_approved_for_next_steps"

# Workflow step -> creator column update applied when n8n reports success.
STEP_CREATOR_UPDATES: dict[str, tuple[str, str]] = {
    "creator_application_acknowledgment": ("status", "Application Received"),
    "onboarding_complete": ("status", "Active"),
    "contract_sent": ("contract_status", "contract sent"),
    "contract_signed": ("contract_status", "contract signed"),
    "script_assigned": ("status", "script assigned"),
    "content_submitted": ("status", "content submitted"),
}


class N8nConfigError(RuntimeError):
    pass


class N8nError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, error_payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_payload = error_payload


def compute_signature(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(secret, body), signature)


def shared_workflow_id(workflow_name: str) -> str:
    return f"shared-{workflow_name}-workflow"


class N8nService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.repo = AutomationRepository(session)
        self.timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS)

    def list_available_workflows(self) -> list[dict[str, Any]]:
        if not settings.N8N_API_KEY:
            raise N8nConfigError("N8N_API_KEY is required to list n8n workflows.")
        url = f"{settings.N8N_URL.rstrip('/')}/api/v1/workflows"
        try:
            response = httpx.get(url, headers={"X-N8N-API-KEY": settings.N8N_API_KEY}, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise N8nError(
                f"n8n API error ({exc.response.status_code}).",
                status_code=exc.response.status_code,
                error_payload=exc.response.text,
            ) from exc
        except httpx.RequestError as exc:
            raise N8nError(f"n8n request failed: {exc}") from exc

        body = response.json()
        workflows = body.get("data", []) if isinstance(body, dict) else body
        return [workflow for workflow in workflows if _is_powerbrief_workflow(workflow)]

    def get_brand_workflow_config(self, brand_id: str) -> list[BrandN8nWorkflow]:
        return self.repo.list_workflows(brand_id)

    def toggle_brand_workflow(
        self,
        brand_id: str,
        workflow_name: str,
        enabled: bool,
        configuration: Optional[dict[str, Any]] = None,
    ) -> BrandN8nWorkflow:
        fields: dict[str, Any] = {
            "n8n_workflow_id": shared_workflow_id(workflow_name),
            "is_active": enabled,
        }
        if configuration is not None:
            fields["configuration"] = configuration
        return self.repo.upsert_workflow(brand_id, workflow_name, **fields)

    def is_brand_workflow_enabled(self, brand_id: str, workflow_name: str) -> bool:
        workflow = self.repo.get_workflow_by_name(brand_id, workflow_name)
        return bool(workflow and workflow.is_active)

    def webhook_url_for(self, workflow_name: str) -> str:
        if workflow_name == CREATOR_APPROVED_WORKFLOW:
            url = settings.N8N_CREATOR_APPROVED_WEBHOOK
        else:
            url = settings.N8N_CREATOR_ACKNOWLEDGEMENT_WEBHOOK
        if not url:
            raise N8nConfigError(f"No n8n webhook URL configured for workflow {workflow_name}.")
        return url

    def trigger_workflow(
        self,
        workflow_name: str,
        brand: Brand,
        creator: Optional[UgcCreator],
        extra: Optional[dict[str, Any]] = None,
    ) -> bool:
        if not self.is_brand_workflow_enabled(brand.id, workflow_name):
            logger.info("n8n workflow disabled", extra={"brand_id": brand.id, "workflow": workflow_name})
            return False

        payload: dict[str, Any] = {
            "brandId": brand.id,
            "creatorId": creator.id if creator else None,
            "workflowName": workflow_name,
            "brand": serialize_brand(brand),
            "creator": serialize_row(creator) if creator else None,
            **(extra or {}),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        url = self.webhook_url_for(workflow_name)
        try:
            response = httpx.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise N8nError(
                f"n8n webhook returned {exc.response.status_code}.",
                status_code=exc.response.status_code,
                error_payload=exc.response.text,
            ) from exc
        except httpx.RequestError as exc:
            raise N8nError(f"n8n webhook request failed: {exc}") from exc

        logger.info("Triggered n8n workflow", extra={"brand_id": brand.id, "workflow": workflow_name})
        return True

    def trigger_best_effort(
        self,
        workflow_name: str,
        brand: Brand,
        creator: Optional[UgcCreator],
        extra: Optional[dict[str, Any]] = None,
    ) -> bool:
        try:
            return self.trigger_workflow(workflow_name, brand, creator, extra)
        except (N8nConfigError, N8nError):
            logger.warning(
                "n8n workflow trigger failed",
                extra={"brand_id": brand.id, "workflow": workflow_name},
                exc_info=True,
            )
            return False

    def process_webhook(
        self,
        *,
        brand_id: str,
        execution_id: str,
        workflow_id: str,
        step_name: str,
        status: str,
        creator_id: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        if status == "success" and creator_id:
            self._apply_step(brand_id, creator_id, step_name)
        elif status == "error":
            logger.error(
                "n8n workflow step failed",
                extra={"brand_id": brand_id, "creator_id": creator_id, "step": step_name, "error": error},
            )

        self.repo.log_execution(
            brand_id=brand_id,
            creator_id=creator_id,
            execution_id=execution_id,
            workflow_id=workflow_id,
            step_name=step_name,
            status=status,
            data=data or {},
            error=error,
        )

    def _apply_step(self, brand_id: str, creator_id: str, step_name: str) -> None:
        update = STEP_CREATOR_UPDATES.get(step_name)
        if update is None:
            return
        creators = UgcCreatorsRepository(self.session)
        creator = creators.get(brand_id, creator_id) if is_uuid(creator_id) else None
        if creator is None:
            logger.warning("n8n webhook for unknown creator", extra={"brand_id": brand_id, "creator_id": creator_id})
            return
        column, value = update
        creators.update_fields(creator, **{column: value})


def _is_powerbrief_workflow(workflow: dict[str, Any]) -> bool:
    name = workflow.get("name") or ""
    if name.startswith("PowerBrief-"):
        return True
    for tag in workflow.get("tags") or []:
        tag_name = tag.get("name") if isinstance(tag, dict) else tag
        if isinstance(tag_name, str) and "powerbrief" in tag_name.lower():
            return True
    return False
