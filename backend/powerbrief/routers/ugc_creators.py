from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.enums import UGC_CREATOR_NOTIFY_STATUSES
from powerbrief.db.models import Brand, UgcCreator, is_uuid
from powerbrief.db.repositories.brands import BrandsRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository
from powerbrief.schemas.common import serialize_row, serialize_rows
from powerbrief.schemas.ugc import (
    CREATOR_FIELDS,
    CreatorCreateRequest,
    CreatorSubmitRequest,
    CreatorUpdateRequest,
)
from powerbrief.services import slack
from powerbrief.services.n8n import CREATOR_ACKNOWLEDGEMENT_WORKFLOW, CREATOR_APPROVED_WORKFLOW, N8nService

router = APIRouter(prefix="/ugc/creators", tags=["ugc"])
logger = logging.getLogger(__name__)

APPROVED_STATUS = "Approved for next steps"
NEW_SUBMISSION_STATUS = "New Creator Submission"
DEFAULT_CONTRACT_STATUS = "not signed"
# Columns that cannot be cleared with an explicit null.
_REQUIRED_COLUMNS = {"status", "contract_status", "products", "content_types", "platforms", "custom_fields"}


def _load_creator(session: Session, auth: AuthContext, creator_id: str) -> tuple[Brand, UgcCreator]:
    creator = UgcCreatorsRepository(session).get_by_id(creator_id) if is_uuid(creator_id) else None
    if creator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=creator.brand_id)
    return brand, creator


def _notify_creator_changes(brand: Brand, creator: UgcCreator, before: dict[str, Any]) -> None:
    if creator.status != before["status"] and creator.status in UGC_CREATOR_NOTIFY_STATUSES:
        slack.notify(
            brand,
            slack.build_creator_status_message(
                brand_name=brand.name,
                creator_name=creator.name,
                creator_email=creator.email,
                old_status=before["status"],
                new_status=creator.status,
            ),
        )
    if creator.contract_status != before["contract_status"]:
        slack.notify(
            brand,
            slack.build_contract_status_message(
                brand_name=brand.name,
                creator_name=creator.name,
                old_status=before["contract_status"],
                new_status=creator.contract_status,
            ),
        )
    if creator.product_shipment_status and creator.product_shipment_status != before["product_shipment_status"]:
        slack.notify(
            brand,
            slack.build_shipment_message(
                brand_name=brand.name,
                creator_name=creator.name,
                shipment_status=creator.product_shipment_status,
                tracking_number=creator.tracking_number,
            ),
        )


@router.get("")
def list_creators(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return serialize_rows(UgcCreatorsRepository(session).list(brand.id, status=status_filter))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_creator(
    payload: CreatorCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    fields = payload.model_dump(exclude_unset=True, exclude={"brandId"})
    fields = {key: value for key, value in fields.items() if value is not None}
    creators = UgcCreatorsRepository(session)
    if fields.get("email") and creators.get_by_email(brand.id, fields["email"]):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A creator with this email already exists.")
    creator = creators.create(brand.id, user_id=auth.user_id, **fields)
    logger.info("UGC creator created", extra={"brand_id": brand.id, "creator_id": creator.id})
    return serialize_row(creator)


@router.post("/submit", status_code=status.HTTP_201_CREATED)
def submit_creator_application(
    payload: CreatorSubmitRequest,
    session: Session = Depends(get_session),
):
    if not payload.brand_id or not payload.submission_data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brand_id and submission_data are required.",
        )
    data = payload.submission_data
    if not data.get("name") or not data.get("email"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name and email are required.")

    brand = BrandsRepository(session).get(payload.brand_id) if is_uuid(payload.brand_id) else None
    if brand is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Brand not found")

    creators = UgcCreatorsRepository(session)
    if creators.get_by_email(brand.id, str(data["email"])):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A creator with this email has already applied to this brand.",
        )

    fields = {key: data[key] for key in CREATOR_FIELDS if data.get(key) is not None}
    fields["email"] = str(data["email"]).strip().lower()
    fields["status"] = NEW_SUBMISSION_STATUS
    fields["contract_status"] = DEFAULT_CONTRACT_STATUS
    creator = creators.create(brand.id, user_id=brand.user_id, **fields)
    logger.info("Creator application received", extra={"brand_id": brand.id, "creator_id": creator.id})

    N8nService(session).trigger_best_effort(CREATOR_ACKNOWLEDGEMENT_WORKFLOW, brand, creator)
    return {"success": True, "creator": serialize_row(creator)}


@router.get("/script-counts")
def creator_script_counts(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    return {"counts": UgcCreatorsRepository(session).script_counts(brand.id)}


@router.get("/{creator_id}")
def get_creator(
    creator_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, creator = _load_creator(session, auth, creator_id)
    return serialize_row(creator)


@router.patch("/{creator_id}")
def update_creator(
    creator_id: str,
    payload: CreatorUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand, creator = _load_creator(session, auth, creator_id)
    fields = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key not in _REQUIRED_COLUMNS
    }
    if not fields:
        return serialize_row(creator)

    before = {
        "status": creator.status,
        "contract_status": creator.contract_status,
        "product_shipment_status": creator.product_shipment_status,
    }
    UgcCreatorsRepository(session).update_fields(creator, **fields)

    _notify_creator_changes(brand, creator, before)
    if creator.status == APPROVED_STATUS and before["status"] != APPROVED_STATUS:
        N8nService(session).trigger_best_effort(CREATOR_APPROVED_WORKFLOW, brand, creator)
    return serialize_row(creator)


@router.delete("/{creator_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_creator(
    creator_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    brand, creator = _load_creator(session, auth, creator_id)
    UgcCreatorsRepository(session).delete(creator)
    logger.info("UGC creator deleted", extra={"brand_id": brand.id, "creator_id": creator_id})
    return None
