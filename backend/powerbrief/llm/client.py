from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import Anthropic
import google.generativeai as genai
from openai import OpenAI

from powerbrief.config import settings


class LLMClientConfigError(Exception):
    pass


class LLMResponseParseError(ValueError):
    pass


logger = logging.getLogger(__name__)
_DEFAULT_TIMEOUT = 120
_MAX_RETRIES = 2
_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class LLMGenerationParams:
    model: str
    max_tokens: Optional[int] = None
    temperature: float = 0.2
    json_mode: bool = False


def parse_json_response(text: str) -> dict[str, Any]:
    """Decode a model reply that should be a JSON object, tolerating markdown fences."""
    cleaned = _JSON_FENCE.sub("", text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise LLMResponseParseError("Model response did not contain a JSON object.")
        try:
            payload = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as exc:
            raise LLMResponseParseError(f"Model response was not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise LLMResponseParseError("Model response JSON must be an object.")
    return payload


class LLMClient:
    """
    Lightweight wrapper for LLM calls used by the AI routes and the UGC coordinator.
    Routes to the appropriate provider client based on the requested model.
    """

    def __init__(self, default_model: Optional[str] = None) -> None:
        self.default_model = default_model or settings.UGC_SCRIPT_MODEL
        self._gemini_configured = False
        self._anthropic_client: Optional[Anthropic] = None
        self._openai_client: Optional[OpenAI] = None

    def generate_text(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> str:
        model = params.model if params and params.model else self.default_model
        if self._is_openai_model(model):
            return self._generate_with_openai(prompt, model, params)
        if model.startswith("claude"):
            return self._generate_with_anthropic(prompt, model, params)
        return self._generate_with_gemini(prompt, model, params)

    def generate_json(self, prompt: str, params: Optional[LLMGenerationParams] = None) -> dict[str, Any]:
        model = params.model if params and params.model else self.default_model
        json_params = LLMGenerationParams(
            model=model,
            max_tokens=params.max_tokens if params else None,
            temperature=params.temperature if params else 0.2,
            json_mode=True,
        )
        return parse_json_response(self.generate_text(prompt, json_params))

    def _is_openai_model(self, model: str) -> bool:
        lower = model.lower()
        prefixes = ("gpt-", "chatgpt-", "o1", "o3", "o4")
        return any(lower.startswith(prefix) for prefix in prefixes)

    def _generate_with_openai(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        if not settings.OPENAI_API_KEY:
            raise LLMClientConfigError("OPENAI_API_KEY not configured")

        if not self._openai_client:
            self._openai_client = OpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=float(_DEFAULT_TIMEOUT),
                max_retries=_MAX_RETRIES,
            )

        completion_kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if params and params.temperature is not None:
            completion_kwargs["temperature"] = params.temperature
        if params and params.max_tokens:
            completion_kwargs["max_tokens"] = params.max_tokens
        if params and params.json_mode:
            completion_kwargs["response_format"] = {"type": "json_object"}

        try:
            completion = self._openai_client.chat.completions.create(**completion_kwargs)
        except Exception:
            logger.exception("OpenAI chat completion failed", extra={"model": model})
            raise

        text = None
        if completion and completion.choices:
            text = getattr(completion.choices[0].message, "content", None)
        if text:
            return text

        raise RuntimeError(f"OpenAI chat completion returned no content for model {model}")

    def _generate_with_gemini(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        api_key = settings.gemini_api_key
        if not api_key:
            raise LLMClientConfigError("GEMINI_API_KEY not configured")

        if not self._gemini_configured:
            genai.configure(api_key=api_key)
            self._gemini_configured = True

        generation_config: dict[str, Any] = {
            "temperature": params.temperature if params else 0.2,
        }
        if params and params.max_tokens:
            generation_config["max_output_tokens"] = params.max_tokens
        if params and params.json_mode:
            generation_config["response_mime_type"] = "application/json"

        model_name = model if model.startswith("models/") else f"models/{model}"
        model_client = genai.GenerativeModel(model_name=model_name, generation_config=generation_config)
        try:
            result = model_client.generate_content(prompt, request_options={"timeout": _DEFAULT_TIMEOUT})
            text = None
            if result and getattr(result, "candidates", None):
                first = result.candidates[0]
                if first and first.content and getattr(first.content, "parts", None):
                    parts = first.content.parts
                    if parts and getattr(parts[0], "text", None):
                        text = parts[0].text
            if not text and hasattr(result, "text"):
                text = result.text
        except Exception:
            logger.exception("Gemini generation failed", extra={"model": model})
            raise

        if text:
            return text

        raise RuntimeError(f"Gemini returned no content for model {model}")

    def _generate_with_anthropic(self, prompt: str, model: str, params: Optional[LLMGenerationParams]) -> str:
        if not settings.ANTHROPIC_API_KEY:
            raise LLMClientConfigError("ANTHROPIC_API_KEY not configured")

        if not self._anthropic_client:
            self._anthropic_client = Anthropic(api_key=settings.ANTHROPIC_API_KEY)

        max_tokens = params.max_tokens if params and params.max_tokens else 4096
        temperature = params.temperature if params else 0.2
        content = prompt
        if params and params.json_mode:
            content = f"{prompt}\n\nRespond with a single JSON object and nothing else."

        try:
            response = self._anthropic_client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": content}],
                timeout=_DEFAULT_TIMEOUT,
            )
        except Exception:
            logger.exception("Anthropic generation failed", extra={"model": model})
            raise

        text_parts = [block.text for block in response.content if getattr(block, "text", None)]
        if text_parts:
            return "".join(text_parts)

        raise RuntimeError(f"Anthropic returned no content for model {model}")
