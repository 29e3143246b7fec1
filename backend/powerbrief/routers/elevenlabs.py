from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from powerbrief.auth.brand_access import get_brand_or_404
from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.db.deps import get_session
from powerbrief.schemas.ai import TextToSpeechRequest
from powerbrief.services.elevenlabs import ElevenLabsClient, ElevenLabsConfigError, ElevenLabsError
from powerbrief.services.media_storage import MediaStorage

router = APIRouter(prefix="/elevenlabs", tags=["elevenlabs"])
logger = logging.getLogger(__name__)


def _client() -> ElevenLabsClient:
    try:
        return ElevenLabsClient.from_settings()
    except ElevenLabsConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


def _vendor_error(exc: ElevenLabsError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": str(exc), "elevenlabs": exc.error_payload},
    )


@router.get("/voices")
def list_voices(auth: AuthContext = Depends(get_current_user)):
    client = _client()
    try:
        return {"voices": client.list_voices()}
    except ElevenLabsError as exc:
        raise _vendor_error(exc) from exc


@router.post("/text-to-speech")
def text_to_speech(
    payload: TextToSpeechRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not payload.text or not payload.voiceId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text and voiceId are required.")
    if not payload.brandId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="brandId is required.")
    brand = get_brand_or_404(session=session, auth=auth, brand_id=payload.brandId)

    client = _client()
    try:
        audio = client.text_to_speech(
            text=payload.text,
            voice_id=payload.voiceId,
            model_id=payload.modelId,
            stability=payload.stability,
            similarity_boost=payload.similarity,
            speed=payload.speed,
        )
    except ElevenLabsError as exc:
        raise _vendor_error(exc) from exc

    filename = payload.fileName or f"voiceover-{payload.voiceId}"
    if not filename.endswith(".mp3"):
        filename = f"{filename}.mp3"
    storage = MediaStorage()
    key = storage.build_key(brand_id=brand.id, filename=filename, folder="voiceovers")
    storage.upload_bytes(key=key, data=audio, content_type="audio/mpeg")
    logger.info("Voiceover stored", extra={"brand_id": brand.id, "key": key, "size": len(audio)})
    return {"url": storage.presign_get(key=key), "key": key}
