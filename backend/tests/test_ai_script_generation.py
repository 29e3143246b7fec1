from powerbrief.llm.client import LLMClient, LLMClientConfigError
from powerbrief.routers.ai import build_ugc_script_prompt
from powerbrief.schemas.ai import UgcScriptGenerationRequest

MODEL_RESPONSE = {
    "script_content": {
        "scene_start": "Creator at the sink",
        "segments": [
            {"segment": "Hook", "script": "Stop scrolling!", "visuals": "Close-up"},
            {"segment": "Demo", "script": "Watch this"},
            "not a segment",
        ],
        "scene_end": "Wave goodbye",
    },
    "b_roll_shot_list": "Jar on shelf",
    "hook_body": "Stop scrolling!",
    "cta": "Tap the link",
    "guide_description": "Film a morning routine",
}


def test_prompt_includes_context_and_missing_sections():
    payload = UgcScriptGenerationRequest(
        brandContext={"brand_name": "Acme", "ugc_filming_instructions": "Use daylight"},
        customPrompt="keep it playful",
        hookOptions={"type": "visual", "count": 3},
        referenceVideoUrl="https://cdn.example.com/ref.mp4",
    )
    prompt = build_ugc_script_prompt(payload)

    assert "IMPORTANT INSTRUCTION: KEEP IT PLAYFUL" in prompt
    assert '"brand_name": "Acme"' in prompt
    assert "3 different visual hooks" in prompt
    assert "Use daylight" in prompt
    assert "6. A comprehensive guide description" in prompt
    assert "7. Detailed filming instructions" not in prompt
    assert "https://cdn.example.com/ref.mp4" in prompt


def test_generate_normalizes_model_output(api_client, monkeypatch):
    prompts = []

    def fake_generate_json(self, prompt, params=None):
        prompts.append((prompt, params.model, params.temperature))
        return MODEL_RESPONSE

    monkeypatch.setattr(LLMClient, "generate_json", fake_generate_json)
    response = api_client.post(
        "/ai/generate-ugc-script",
        json={"brandContext": {"brand_name": "Acme"}, "model": "gpt-4o"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["script_content"]["segments"] == [
        {"segment": "Hook", "script": "Stop scrolling!", "visuals": "Close-up"},
        {"segment": "Demo", "script": "Watch this", "visuals": ""},
    ]
    assert body["b_roll_shot_list"] == ["Jar on shelf"]
    assert body["guide_description"] == "Film a morning routine"
    assert "filming_instructions" not in body
    assert prompts[0][1:] == ("gpt-4o", 0.7)


def test_generate_rejects_output_without_script(api_client, monkeypatch):
    monkeypatch.setattr(LLMClient, "generate_json", lambda self, prompt, params=None: {"cta": "Buy"})
    response = api_client.post("/ai/generate-ugc-script", json={})
    assert response.status_code == 502


def test_generate_without_provider_key(api_client, monkeypatch):
    def missing_key(self, prompt, params=None):
        raise LLMClientConfigError("GEMINI_API_KEY is not configured.")

    monkeypatch.setattr(LLMClient, "generate_json", missing_key)
    response = api_client.post("/ai/generate-ugc-script", json={})
    assert response.status_code == 500
