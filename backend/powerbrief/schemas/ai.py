from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class HookOptions(BaseModel):
    type: str = "verbal"
    count: int = 1


class UgcScriptGenerationRequest(BaseModel):
    brandContext: Optional[dict[str, Any]] = None
    customPrompt: Optional[str] = None
    systemInstructions: Optional[str] = None
    hookOptions: HookOptions = HookOptions()
    referenceVideoUrl: Optional[str] = None
    model: Optional[str] = None


class TextToSpeechRequest(BaseModel):
    text: Optional[str] = None
    voiceId: Optional[str] = None
    brandId: Optional[str] = None
    fileName: Optional[str] = None
    speed: Optional[float] = None
    stability: Optional[float] = None
    similarity: Optional[float] = None
    modelId: Optional[str] = None
