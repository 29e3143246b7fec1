from __future__ import annotations

import logging
from typing import Any, Optional

import orjson
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.db.enums import ContractStatusEnum
from powerbrief.db.models import Brand, Contract, ContractTemplate, is_uuid
from powerbrief.db.repositories.contracts import ContractsRepository, ContractTemplatesRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository
from powerbrief.schemas.contracts import ContractSendRequest, SignatureSubmitRequest, SigningTokenRequest
from powerbrief.services import contracts as contract_service
from powerbrief.services.contracts import ContractError

router = APIRouter(prefix="/contracts", tags=["contracts"])
logger = logging.getLogger(__name__)


def _contract_error(exc: ContractError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _parse_json_list(raw: Optional[str], field_name: str) -> list[dict[str, Any]]:
    if not raw:
        return []
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field_name} must be valid JSON.") from exc
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field_name} must be a JSON array.")
    return value


async def _read_pdf(document: UploadFile) -> bytes:
    data = await document.read()
    if not contract_service.is_pdf(data):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Document must be a PDF file.")
    return data


def _load_template(session: Session, auth: AuthContext, template_id: str) -> tuple[Brand, ContractTemplate]:
    template = ContractTemplatesRepository(session).get(template_id) if is_uuid(template_id) else None
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=template.brand_id)
    return brand, template


def _load_contract(session: Session, auth: AuthContext, contract_id: Optional[str]) -> tuple[Brand, Contract]:
    contract = ContractsRepository(session).get(contract_id) if contract_id and is_uuid(contract_id) else None
    if contract is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=contract.brand_id)
    return brand, contract


def _request_client(request: Request) -> tuple[Optional[str], Optional[str]]:
    ip_address = contract_service.client_ip(request.headers)
    if ip_address is None and request.client is not None:
        ip_address = request.client.host
    return ip_address, request.headers.get("user-agent")


# Templates


@router.get("/templates")
def list_templates(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    templates = ContractTemplatesRepository(session).list(brand.id)
    return {"templates": [contract_service.serialize_template(template) for template in templates]}


@router.post("/templates", status_code=status.HTTP_201_CREATED)
async def create_template(
    document: UploadFile = File(...),
    brand_id: Optional[str] = Form(default=None, alias="brandId"),
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    fields: Optional[str] = Form(default=None),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id or not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId and title are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    data = await _read_pdf(document)

    template = ContractTemplatesRepository(session).create(
        brand_id=brand.id,
        user_id=auth.user_id,
        title=title,
        description=description,
        document_data=data,
        document_name=document.filename or "document.pdf",
        document_size=len(data),
        fields=_parse_json_list(fields, "fields"),
    )
    logger.info("Contract template created", extra={"brand_id": brand.id, "template_id": template.id})
    return contract_service.serialize_template(template)


@router.get("/templates/{template_id}")
def get_template(
    template_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, template = _load_template(session, auth, template_id)
    return contract_service.serialize_template(template)


@router.patch("/templates/{template_id}")
async def update_template(
    template_id: str,
    document: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
    fields: Optional[str] = Form(default=None),
    is_active: Optional[bool] = Form(default=None, alias="isActive"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, template = _load_template(session, auth, template_id)
    updates: dict[str, Any] = {}
    if title:
        updates["title"] = title
    if description is not None:
        updates["description"] = description
    if fields is not None:
        updates["fields"] = _parse_json_list(fields, "fields")
    if is_active is not None:
        updates["is_active"] = is_active
    if document is not None:
        data = await _read_pdf(document)
        updates.update(
            document_data=data,
            document_name=document.filename or template.document_name,
            document_size=len(data),
        )
    if updates:
        ContractTemplatesRepository(session).update_fields(template, **updates)
    return contract_service.serialize_template(template)


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(
    template_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, template = _load_template(session, auth, template_id)
    ContractTemplatesRepository(session).delete(template)
    return None


# Contracts


@router.get("")
def list_contracts(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)
    contract_status = None
    if status_filter:
        try:
            contract_status = ContractStatusEnum(status_filter)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {status_filter}"
            ) from exc
    contracts = ContractsRepository(session).list(brand.id, status=contract_status)
    return {"contracts": [contract_service.serialize_contract(contract) for contract in contracts]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_contract(
    document: Optional[UploadFile] = File(default=None),
    brand_id: Optional[str] = Form(default=None, alias="brandId"),
    title: Optional[str] = Form(default=None),
    recipients: Optional[str] = Form(default=None),
    fields: Optional[str] = Form(default=None),
    expires_in_days: Optional[int] = Form(default=None, alias="expiresInDays"),
    creator_id: Optional[str] = Form(default=None, alias="creatorId"),
    template_id: Optional[str] = Form(default=None, alias="templateId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id or not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId and title are required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)

    template = None
    if template_id:
        _, template = _load_template(session, auth, template_id)
        if template.brand_id != brand.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template belongs to another brand.")
    if creator_id:
        creator = UgcCreatorsRepository(session).get(brand.id, creator_id) if is_uuid(creator_id) else None
        if creator is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="creatorId does not belong to this brand.")

    if document is not None:
        document_data = await document.read()
        document_name = document.filename or "document.pdf"
    elif template is not None:
        document_data = template.document_data
        document_name = template.document_name
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="document is required.")

    raw_fields = _parse_json_list(fields, "fields")
    if not raw_fields and template is not None:
        raw_fields = list(template.fields or [])

    try:
        contract = contract_service.create_contract(
            session,
            brand_id=brand.id,
            user_id=auth.user_id,
            title=title,
            document_data=document_data,
            document_name=document_name,
            recipients=_parse_json_list(recipients, "recipients"),
            fields=raw_fields,
            expires_in_days=expires_in_days,
            creator_id=creator_id,
            template_id=template.id if template else None,
        )
    except ContractError as exc:
        raise _contract_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return contract_service.serialize_contract(contract, include_details=True)


@router.post("/send")
def send_contract(
    payload: ContractSendRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.contractId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="contractId is required.")
    brand, contract = _load_contract(session, auth, payload.contractId)
    try:
        result = contract_service.send_contract(session, contract, brand)
    except ContractError as exc:
        raise _contract_error(exc) from exc
    logger.info("Contract sent", extra={"contract_id": contract.id, "recipients": len(result["recipients"])})
    return {"success": True, **result}


@router.post("/sign/verify-token")
def verify_signing_token(
    payload: SigningTokenRequest,
    request: Request,
    session: Session = Depends(get_session),
):
    if not payload.token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="token is required.")
    try:
        verified = contract_service.verify_signing_token(session, payload.token)
    except ContractError as exc:
        raise _contract_error(exc) from exc

    ip_address, user_agent = _request_client(request)
    contract_service.record_view(session, verified, ip_address=ip_address, user_agent=user_agent)
    contract = verified.contract
    recipient = verified.recipient
    return {
        "contract": contract_service.serialize_contract(contract),
        "recipient": contract_service.serialize_recipient(recipient),
        "document": contract_service.encode_document(contract.document_data),
        "fields": [
            contract_service.serialize_field(field) for field in contract.fields if field.recipient_id == recipient.id
        ],
    }


@router.post("/sign/submit")
def submit_signature(
    payload: SignatureSubmitRequest,
    request: Request,
    session: Session = Depends(get_session),
):
    if not payload.contractId or not payload.token or not payload.fieldValues:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="contractId, token and fieldValues are required.",
        )
    ip_address, user_agent = _request_client(request)
    try:
        contract = contract_service.submit_signature(
            session,
            contract_id=payload.contractId,
            token=payload.token,
            field_values=payload.fieldValues,
            ip_address=ip_address,
            user_agent=user_agent,
        )
    except ContractError as exc:
        raise _contract_error(exc) from exc
    return {
        "success": True,
        "status": contract.status.value,
        "completed": contract.status == ContractStatusEnum.completed,
    }


@router.get("/check-creator-status")
def check_creator_contract_status(
    creator_id: Optional[str] = Query(default=None, alias="creatorId"),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not creator_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="creatorId is required.")
    creator = UgcCreatorsRepository(session).get_by_id(creator_id) if is_uuid(creator_id) else None
    if creator is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Creator not found")
    get_brand_or_404(session=session, auth=auth, brand_id=creator.brand_id)

    contract = ContractsRepository(session).latest_for_creator(creator.id)
    return {
        "creatorId": creator.id,
        "contractStatus": creator.contract_status,
        "contract": contract_service.serialize_contract(contract) if contract else None,
        "status": contract.status.value if contract else None,
    }


@router.get("/{contract_id}")
def get_contract(
    contract_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, contract = _load_contract(session, auth, contract_id)
    return contract_service.serialize_contract(contract, include_details=True)


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contract(
    contract_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, contract = _load_contract(session, auth, contract_id)
    if contract.status != ContractStatusEnum.draft:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only draft contracts can be deleted.")
    ContractsRepository(session).delete(contract)
    return None


@router.post("/{contract_id}/void")
def void_contract(
    contract_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, contract = _load_contract(session, auth, contract_id)
    try:
        contract = contract_service.void_contract(session, contract)
    except ContractError as exc:
        raise _contract_error(exc) from exc
    return contract_service.serialize_contract(contract)


@router.get("/{contract_id}/download")
def download_contract(
    contract_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    _, contract = _load_contract(session, auth, contract_id)
    filename = contract.document_name.replace('"', "")
    return Response(
        content=contract.document_data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
