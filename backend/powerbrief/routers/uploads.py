from __future__ import annotations

import logging
import mimetypes
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.config import settings
from powerbrief.db.deps import get_session
from powerbrief.services.media_storage import MediaStorage

router = APIRouter(prefix="/uploads", tags=["uploads"])
logger = logging.getLogger(__name__)


def resolve_content_type(file: UploadFile) -> Optional[str]:
    content_type = (file.content_type or "").split(";")[0].strip().lower()
    if (not content_type or content_type == "application/octet-stream") and file.filename:
        guessed = mimetypes.guess_type(file.filename)[0]
        if guessed:
            content_type = guessed.lower()
    return content_type or None


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    brand_id: Optional[str] = Form(default=None, alias="brandId"),
    folder: Optional[str] = Form(default=None),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not brand_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=brand_id)

    content = await file.read()
    filename = file.filename or "upload"
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"File {filename} is empty.")
    if len(content) > settings.UPLOAD_MAX_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File {filename} exceeds {settings.UPLOAD_MAX_BYTES} bytes.",
        )

    storage = MediaStorage()
    content_type = resolve_content_type(file)
    key = storage.build_key(brand_id=brand.id, filename=filename, folder=folder)
    storage.upload_bytes(key=key, data=content, content_type=content_type)
    logger.info("Brand upload stored", extra={"brand_id": brand.id, "key": key, "size": len(content)})
    return {
        "key": key,
        "url": storage.presign_get(key=key),
        "contentType": content_type,
        "size": len(content),
    }
