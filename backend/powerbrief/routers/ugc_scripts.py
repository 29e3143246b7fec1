from __future__ import annotations

import html
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.models import Brand, UgcCreatorScript, is_uuid
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.db.repositories.ugc import UgcCoordinatorRepository, UgcCreatorsRepository, UgcScriptsRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.ugc import ScriptCreateRequest, ScriptUpdateRequest
from powerbrief.services.ai_coordinator import UgcAiCoordinatorService
from powerbrief.services.script_links import SCRIPT_ACTIONS, ScriptTokenError, parse_script_response_token

router = APIRouter(prefix="/ugc", tags=["ugc"])
logger = logging.getLogger(__name__)

APPROVED_SCRIPT_STATUS = "CREATOR_APPROVED"
REASSIGN_SCRIPT_STATUS = "CREATOR_REASSIGNMENT"

_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>{title}</title>
  <style>
    body {{ font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px; }}
    .box {{ background: #f0fdf4; padding: 20px; border-radius: 8px; margin: 20px 0; }}
    textarea {{ width: 100%; padding: 10px; border: 1px solid #ddd; border-radius: 4px; }}
    button {{ background: #ef4444; color: white; padding: 12px 24px; border: none; border-radius: 4px; }}
  </style>
</head>
<body>
{body}
</body>
</html>
"""


def _page(title: str, body: str) -> HTMLResponse:
    return HTMLResponse(_PAGE.format(title=html.escape(title), body=body))


def _script_fields(payload: ScriptCreateRequest | ScriptUpdateRequest) -> dict[str, Any]:
    fields = payload.model_dump(exclude_unset=True, exclude={"brandId"})
    if payload.script_content is not None:
        fields["script_content"] = payload.script_content.model_dump()
    for column in ("status", "title", "script_content", "b_roll_shot_list"):
        if column in fields and fields[column] is None:
            fields.pop(column)
    return fields


def _check_creator(session: Session, brand_id: str, creator_id: Optional[str]) -> None:
    if not creator_id:
        return
    creator = UgcCreatorsRepository(session).get(brand_id, creator_id) if is_uuid(creator_id) else None
    if creator is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="creator_id does not belong to this brand.")


def _load_script(session: Session, auth: AuthContext, script_id: str) -> tuple[Brand, UgcCreatorScript]:
    script = UgcScriptsRepository(session).get_by_id(script_id) if is_uuid(script_id) else None
    if script is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Script not found")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=script.brand_id)
    return brand, script


@router.get("/scripts")
def list_scripts(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    creator_id: Optional[str] = Query(default=None, alias="creatorId"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    if creator_id and not is_uuid(creator_id):
        return []
    scripts = UgcScriptsRepository(session).list(brand.id, creator_id=creator_id, status=status_filter)
    return serialize_rows(scripts)


@router.post("/scripts", status_code=status.HTTP_201_CREATED)
def create_script(
    payload: ScriptCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId or not payload.title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId and title are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)
    _check_creator(session, brand.id, payload.creator_id)

    script = UgcScriptsRepository(session).create(brand.id, auth.user_id, **_script_fields(payload))
    logger.info("UGC script created", extra={"brand_id": brand.id, "script_id": script.id})
    return serialize_row(script)


@router.get("/scripts/{script_id}")
def get_script(
    script_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, script = _load_script(session, auth, script_id)
    return serialize_row(script)


@router.patch("/scripts/{script_id}")
def update_script(
    script_id: str,
    payload: ScriptUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand, script = _load_script(session, auth, script_id)
    fields = _script_fields(payload)
    if "creator_id" in fields:
        _check_creator(session, brand.id, fields["creator_id"])
    if fields:
        UgcScriptsRepository(session).update_fields(script, **fields)
    return serialize_row(script)


@router.delete("/scripts/{script_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_script(
    script_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, script = _load_script(session, auth, script_id)
    UgcScriptsRepository(session).delete(script)
    return None


@router.get("/script-response", response_class=HTMLResponse)
def script_response(
    request: Request,
    token: Optional[str] = None,
    action: Optional[str] = None,
    script_id: Optional[str] = Query(default=None, alias="scriptId"),
    session: Session = Depends(get_session),
):
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token is required")
    try:
        parsed = parse_script_response_token(token)
    except ScriptTokenError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if (action and action != parsed.action) or (script_id and script_id != parsed.script_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token does not match this request")
    if parsed.action not in SCRIPT_ACTIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")

    scripts = UgcScriptsRepository(session)
    script = scripts.get_by_id(parsed.script_id) if is_uuid(parsed.script_id) else None
    if script is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Script not found")
    title = html.escape(script.title)

    if parsed.action == "reject":
        form_action = html.escape(str(request.url_for("script_rejection_reason")))
        scripts.update_fields(script, status=REASSIGN_SCRIPT_STATUS, concept_status="Creator Assignment")
        logger.info("Creator rejected script", extra={"script_id": script.id})
        body = f"""
  <h1>Script Rejection</h1>
  <p>You've indicated that you cannot take on the script: "<strong>{title}</strong>"</p>
  <form action="{form_action}" method="POST">
    <input type="hidden" name="scriptId" value="{html.escape(script.id)}" />
    <input type="hidden" name="token" value="{html.escape(token)}" />
    <p><label for="reason">Please let us know why you're unable to take on this script (optional):</label></p>
    <textarea name="reason" id="reason" rows="4"></textarea>
    <p><button type="submit">Submit Rejection</button></p>
  </form>
  <p><em>Thank you for your quick response. We'll find another creator for this project.</em></p>"""
        return _page("Script Rejected", body)

    scripts.update_fields(script, status=APPROVED_SCRIPT_STATUS, concept_status="Creator Shooting")
    logger.info("Creator approved script", extra={"script_id": script.id})
    _follow_up_on_approval(session, script)
    body = f"""
  <h1>Script Approved!</h1>
  <p>Thank you for approving the script: "{title}"</p>
  <div class="box">
    <h3>Next Steps:</h3>
    <ol>
      <li>We'll send you payment details via email shortly</li>
      <li>Once we receive your payment info, we'll send the deposit</li>
      <li>Product will be shipped to your address</li>
      <li>You can start filming once everything arrives!</li>
    </ol>
  </div>
  <p>We're excited to work with you on this project!</p>"""
    return _page("Script Approved", body)


def _follow_up_on_approval(session: Session, script: UgcCreatorScript) -> None:
    brand = BrandsRepository(session).get(script.brand_id)
    creator = UgcCreatorsRepository(session).get_by_id(script.creator_id) if script.creator_id else None
    if brand is None or creator is None:
        return
    try:
        email = UgcAiCoordinatorService(session).follow_up_on_script_approval(
            brand=brand, creator=creator, script=script
        )
    except Exception:
        logger.exception("Script approval follow-up failed", extra={"script_id": script.id})
        return
    logger.info("Generated script approval follow-up", extra={"script_id": script.id, "subject": email["subject"]})


@router.post("/script-response/rejection", response_class=HTMLResponse)
def script_rejection_reason(
    script_id: Optional[str] = Form(default=None, alias="scriptId"),
    token: Optional[str] = Form(default=None),
    reason: Optional[str] = Form(default=None),
    session: Session = Depends(get_session),
):
    if not script_id or not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    try:
        parsed = parse_script_response_token(token)
    except ScriptTokenError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if parsed.action != "reject" or parsed.script_id != script_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Token does not match this request")

    scripts = UgcScriptsRepository(session)
    script = scripts.get_by_id(script_id) if is_uuid(script_id) else None
    if script is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Script not found")

    notes = reason or "Creator rejected script without specific reason"
    scripts.update_fields(script, revision_notes=notes)

    brand = BrandsRepository(session).get(script.brand_id)
    if brand is not None:
        coordinator = UgcAiCoordinatorService(session).get_or_create_coordinator(brand, script.user_id)
        UgcCoordinatorRepository(session).log_action(
            coordinator.id,
            "status_changed",
            creator_id=script.creator_id,
            script_id=script.id,
            action_data={"script_id": script.id, "new_status": REASSIGN_SCRIPT_STATUS, "rejection_reason": reason},
            ai_reasoning=f"Creator rejected script: {script.title}",
        )

    body = f"""
  <h1>Rejection Submitted</h1>
  <p>Thank you for letting us know about the script: "{html.escape(script.title)}"</p>
  <p>We appreciate your quick response and will find another creator for this project.</p>"""
    return _page("Rejection Submitted", body)
