import pytest

from powerbrief.db.models import UgcAiCoordinatorAction, UgcCreatorScript
from powerbrief.services import script_links
from powerbrief.services.ai_coordinator import UgcAiCoordinatorService
from powerbrief.services.script_links import (
    TOKEN_TTL_MS,
    ScriptTokenError,
    build_script_response_token,
    parse_script_response_token,
)

from conftest import random_id


@pytest.fixture()
def script(db_session, brand, creator) -> UgcCreatorScript:
    record = UgcCreatorScript(
        brand_id=brand.id,
        user_id=brand.user_id,
        creator_id=creator.id,
        title="Morning Routine",
        script_content={"scene_start": "Bathroom mirror", "segments": [], "scene_end": "Smile"},
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


def test_token_round_trip_and_expiry():
    token = build_script_response_token("approve", "script-1", issued_at_ms=1_000)
    parsed = parse_script_response_token(token, now_ms=2_000)
    assert (parsed.action, parsed.script_id, parsed.issued_at_ms) == ("approve", "script-1", 1_000)

    with pytest.raises(ScriptTokenError, match="expired"):
        parse_script_response_token(token, now_ms=1_000 + TOKEN_TTL_MS + 1)
    with pytest.raises(ScriptTokenError):
        parse_script_response_token("not base64!!")


def test_response_links_point_at_api(monkeypatch):
    monkeypatch.setattr(script_links.settings, "API_BASE_URL", "https://api.example.com/")
    links = script_links.script_response_links("abc")
    assert links["approve"].startswith("https://api.example.com/ugc/script-response?action=approve&scriptId=abc&token=")
    assert "action=reject" in links["reject"]


def test_create_script_requires_title_and_owned_creator(api_client, brand):
    assert api_client.post("/ugc/scripts", json={"brandId": brand.id}).status_code == 400
    response = api_client.post(
        "/ugc/scripts",
        json={"brandId": brand.id, "title": "Unboxing", "creator_id": random_id()},
    )
    assert response.status_code == 400


def test_create_and_update_script(api_client, brand, creator):
    created = api_client.post(
        "/ugc/scripts",
        json={
            "brandId": brand.id,
            "title": "Unboxing",
            "creator_id": creator.id,
            "script_content": {"scene_start": "Desk", "segments": [{"segment": "Hook", "script": "Wait for it"}]},
        },
    )
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "PENDING_APPROVAL"
    assert body["script_content"]["segments"][0]["visuals"] == ""

    updated = api_client.patch(f"/ugc/scripts/{body['id']}", json={"cta": "Shop now", "title": None})
    assert updated.status_code == 200
    assert updated.json()["cta"] == "Shop now"
    assert updated.json()["title"] == "Unboxing"

    listed = api_client.get("/ugc/scripts", params={"brandId": brand.id, "creatorId": creator.id}).json()
    assert [item["id"] for item in listed] == [body["id"]]


def test_approve_link_moves_script_to_shooting(api_client, db_session, script, monkeypatch):
    follow_ups = []

    def fake_follow_up(self, *, brand, creator, script):
        follow_ups.append(script.id)
        return {"subject": "Next steps"}

    monkeypatch.setattr(UgcAiCoordinatorService, "follow_up_on_script_approval", fake_follow_up)
    token = build_script_response_token("approve", script.id)

    response = api_client.get(
        "/ugc/script-response", params={"action": "approve", "scriptId": script.id, "token": token}
    )

    assert response.status_code == 200
    assert "Script Approved!" in response.text
    assert follow_ups == [script.id]
    db_session.refresh(script)
    assert script.status == "CREATOR_APPROVED"
    assert script.concept_status == "Creator Shooting"


def test_mismatched_action_is_rejected(api_client, script):
    token = build_script_response_token("approve", script.id)
    response = api_client.get("/ugc/script-response", params={"action": "reject", "token": token})
    assert response.status_code == 400


def test_reject_link_and_reason_form(api_client, db_session, script):
    token = build_script_response_token("reject", script.id)

    page = api_client.get("/ugc/script-response", params={"token": token})
    assert page.status_code == 200
    assert 'action="http://testserver/ugc/script-response/rejection"' in page.text

    submitted = api_client.post(
        "/ugc/script-response/rejection",
        data={"scriptId": script.id, "token": token, "reason": "Traveling that week"},
    )
    assert submitted.status_code == 200
    assert "Rejection Submitted" in submitted.text

    db_session.refresh(script)
    assert script.status == "CREATOR_REASSIGNMENT"
    assert script.concept_status == "Creator Assignment"
    assert script.revision_notes == "Traveling that week"
    action = db_session.query(UgcAiCoordinatorAction).one()
    assert action.action_type == "status_changed"
    assert action.action_data["rejection_reason"] == "Traveling that week"
