from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from powerbrief.auth.dependencies import AuthContext, get_current_user
from powerbrief.config import settings
from powerbrief.llm.client import LLMClient, LLMClientConfigError, LLMGenerationParams, LLMResponseParseError
from powerbrief.schemas.ai import UgcScriptGenerationRequest

router = APIRouter(prefix="/ai", tags=["ai"])
logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert UGC (User Generated Content) script creator that specializes in creating "
    "engaging scripts for social media videos.\n\n"
    "Your task is to create a highly engaging UGC script for a creator. The script should be "
    "optimized for the brand's products and target audience."
)

RESPONSE_SHAPE = """{
  "script_content": {
    "scene_start": "how the scene starts",
    "segments": [{"segment": "segment name", "script": "dialogue or action", "visuals": "filming instructions"}],
    "scene_end": "how the scene ends"
  },
  "hook_body": "the main message that follows the hook",
  "cta": "call to action for the end of the video",
  "b_roll_shot_list": ["supplementary shot"],
  "company_description": "the company, products and brand",
  "guide_description": "what the creator will film and the goals of the content",
  "filming_instructions": "technical and performance guidance for filming"
}"""


def build_ugc_script_prompt(payload: UgcScriptGenerationRequest) -> str:
    brand_context = payload.brandContext or {}
    guide = brand_context.get("ugc_guide_description") or ""
    filming = brand_context.get("ugc_filming_instructions") or ""

    parts: list[str] = [payload.systemInstructions or DEFAULT_SYSTEM_PROMPT]
    if payload.customPrompt:
        parts.append(f"IMPORTANT INSTRUCTION: {payload.customPrompt.upper()}")
    parts.append("BRAND CONTEXT:\n```json\n" + json.dumps(brand_context, indent=2, default=str) + "\n```")
    parts.append(
        f"Create a script with {payload.hookOptions.count} different {payload.hookOptions.type or 'verbal'} hooks."
    )
    if guide:
        parts.append(
            "Here is the existing guide description. Enhance it by adding more detail about target audience, "
            f"emotional connection, and marketing strategy:\n```\n{guide}\n```"
        )
    if filming:
        parts.append(
            "Here are the existing filming instructions. Enhance them with specific guidance on performance, "
            f"authenticity, location, lighting, and pacing:\n```\n{filming}\n```"
        )

    asks = [
        "1. A strong and attention-grabbing hook",
        "2. A clear product showcase section",
        "3. Strong benefit statements",
        "4. A compelling call-to-action",
        "5. B-roll shot suggestions for supplementary footage",
    ]
    if not guide:
        asks.append("6. A comprehensive guide description explaining what the creator will film")
    if not filming:
        asks.append("7. Detailed filming instructions with technical and performance guidance")
    parts.append(
        "Create a compelling UGC script for a video that will effectively promote the brand's products. "
        "The script should have:\n" + "\n".join(asks)
    )
    if payload.referenceVideoUrl:
        parts.append(
            f"Use the reference video at {payload.referenceVideoUrl} for inspiration on pacing and format."
        )
    parts.append("Respond with a single JSON object with exactly this shape:\n" + RESPONSE_SHAPE)
    return "\n\n".join(parts)


def normalize_script_response(raw: dict[str, Any]) -> dict[str, Any]:
    script_content = raw.get("script_content")
    if not isinstance(script_content, dict):
        raise LLMResponseParseError("Model response is missing script_content.")
    segments = script_content.get("segments")
    if not isinstance(segments, list):
        segments = []

    b_roll = raw.get("b_roll_shot_list")
    if isinstance(b_roll, str):
        b_roll = [b_roll]
    elif not isinstance(b_roll, list):
        b_roll = []

    result: dict[str, Any] = {
        "script_content": {
            "scene_start": str(script_content.get("scene_start") or ""),
            "segments": [
                {
                    "segment": str(segment.get("segment") or ""),
                    "script": str(segment.get("script") or ""),
                    "visuals": str(segment.get("visuals") or ""),
                }
                for segment in segments
                if isinstance(segment, dict)
            ],
            "scene_end": str(script_content.get("scene_end") or ""),
        },
        "b_roll_shot_list": [str(shot) for shot in b_roll],
        "hook_body": raw.get("hook_body") or "",
        "cta": raw.get("cta") or "",
    }
    for key in ("company_description", "guide_description", "filming_instructions"):
        if raw.get(key):
            result[key] = raw[key]
    return result


@router.post("/generate-ugc-script")
def generate_ugc_script(
    payload: UgcScriptGenerationRequest,
    auth: AuthContext = Depends(get_current_user),
):
    model = payload.model or settings.UGC_SCRIPT_MODEL
    prompt = build_ugc_script_prompt(payload)
    logger.info(
        "Generating UGC script",
        extra={
            "user_id": auth.user_id,
            "model": model,
            "hook_type": payload.hookOptions.type,
            "hook_count": payload.hookOptions.count,
            "has_reference_video": bool(payload.referenceVideoUrl),
        },
    )
    try:
        raw = LLMClient(default_model=settings.UGC_SCRIPT_MODEL).generate_json(
            prompt,
            LLMGenerationParams(model=model, temperature=0.7, json_mode=True),
        )
        return normalize_script_response(raw)
    except LLMClientConfigError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except LLMResponseParseError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
