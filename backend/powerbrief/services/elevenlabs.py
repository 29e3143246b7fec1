from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from powerbrief.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "eleven_monolingual_v1"
DEFAULT_STABILITY = 0.5
DEFAULT_SIMILARITY_BOOST = 0.75


class ElevenLabsConfigError(RuntimeError):
    pass


class ElevenLabsError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, error_payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_payload = error_payload


class ElevenLabsClient:
    def __init__(self, *, api_key: str, base_url: str) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS)

    @classmethod
    def from_settings(cls) -> "ElevenLabsClient":
        if not settings.ELEVENLABS_API_KEY:
            raise ElevenLabsConfigError("ElevenLabs API key not configured")
        return cls(api_key=settings.ELEVENLABS_API_KEY, base_url=settings.ELEVENLABS_BASE_URL)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {"xi-api-key": self.api_key, **kwargs.pop("headers", {})}
        try:
            response = httpx.request(
                method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ElevenLabsError(
                f"ElevenLabs API error ({exc.response.status_code}).",
                status_code=exc.response.status_code,
                error_payload=exc.response.text,
            ) from exc
        except httpx.RequestError as exc:
            raise ElevenLabsError(f"ElevenLabs request failed: {exc}") from exc
        return response

    def list_voices(self) -> list[dict[str, Any]]:
        body = self._request("GET", "/v1/voices").json()
        return [
            {
                "voice_id": voice.get("voice_id"),
                "name": voice.get("name"),
                "category": voice.get("category"),
            }
            for voice in body.get("voices", [])
        ]

    def text_to_speech(
        self,
        *,
        text: str,
        voice_id: str,
        model_id: Optional[str] = None,
        stability: Optional[float] = None,
        similarity_boost: Optional[float] = None,
        speed: Optional[float] = None,
    ) -> bytes:
        voice_settings: dict[str, Any] = {
            "stability": DEFAULT_STABILITY if stability is None else stability,
            "similarity_boost": DEFAULT_SIMILARITY_BOOST if similarity_boost is None else similarity_boost,
        }
        if speed is not None:
            voice_settings["speed"] = speed
        payload = {
            "text": text,
            "model_id": model_id or DEFAULT_MODEL_ID,
            "voice_settings": voice_settings,
        }
        response = self._request(
            "POST",
            f"/v1/text-to-speech/{voice_id}",
            json=payload,
            headers={"Accept": "audio/mpeg"},
        )
        logger.info("Generated voiceover", extra={"voice_id": voice_id, "bytes": len(response.content)})
        return response.content
