import json

import pytest

from powerbrief.db.models import BrandAutomationSettings, N8nExecutionLog, UgcCreator, UgcEmailMessage, UgcEmailThread
from powerbrief.services.ai_coordinator import UgcAiCoordinatorService
from powerbrief.services.inbound_email import (
    AI_ANALYSIS_FAILED,
    analyze_email_for_status,
    extract_brand_identifier,
    extract_sender_name,
)
from powerbrief.services.n8n import compute_signature


def _n8n_body(creator_id, step="contract_signed", status="success"):
    return {
        "executionId": "exec-1",
        "workflowId": "wf-1",
        "stepName": step,
        "status": status,
        "creatorId": creator_id,
        "data": {"note": "done"},
    }


def test_n8n_webhook_requires_fields(api_client, brand):
    response = api_client.post(f"/webhooks/n8n/{brand.id}", json={"executionId": "exec-1"})
    assert response.status_code == 400
    assert "workflowId" in response.json()["detail"]


def test_n8n_webhook_applies_step_update(api_client, db_session, brand, creator):
    response = api_client.post(f"/webhooks/n8n/{brand.id}", json=_n8n_body(creator.id))

    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.get(UgcCreator, creator.id).contract_status == "contract signed"
    log = db_session.query(N8nExecutionLog).one()
    assert (log.step_name, log.status, log.data) == ("contract_signed", "success", {"note": "done"})


def test_n8n_webhook_checks_signature_when_secret_set(api_client, db_session, brand, creator):
    db_session.add(BrandAutomationSettings(brand_id=brand.id, webhook_secret="s3cret"))
    db_session.commit()
    body = json.dumps(_n8n_body(creator.id)).encode("utf-8")

    rejected = api_client.post(
        f"/webhooks/n8n/{brand.id}",
        content=body,
        headers={"content-type": "application/json", "x-n8n-signature": "sha256=bogus"},
    )
    assert rejected.status_code == 401

    accepted = api_client.post(
        f"/webhooks/n8n/{brand.id}",
        content=body,
        headers={"content-type": "application/json", "x-n8n-signature": compute_signature("s3cret", body)},
    )
    assert accepted.status_code == 200


def test_n8n_webhook_unknown_brand(api_client):
    response = api_client.post("/webhooks/n8n/not-a-brand", json=_n8n_body(None))
    assert response.status_code == 404


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("No thanks, not interested right now", "NOT_INTERESTED"),
        ("Yes! Sounds great", "INTERESTED"),
        ("What would the timeline be?", "NEEDS_CLARIFICATION"),
        ("Here is my media kit", "EMAIL_RESPONSE"),
    ],
)
def test_keyword_status_analysis(text, expected):
    assert analyze_email_for_status(text, "") == expected


def test_brand_identifier_routing():
    assert extract_brand_identifier("Acme <acme@mail.powerbrief.ai>") == "acme"
    assert extract_brand_identifier("creators+acme@powerbrief.ai") == "acme"
    assert extract_brand_identifier("someone@gmail.com") is None
    assert extract_sender_name('"Casey C" <casey@example.com>') == "Casey C"
    assert extract_sender_name("casey@example.com") == "casey"


def test_inbound_email_stored_when_ai_fails(api_client, db_session, brand, creator, monkeypatch):
    def failing_pipeline(self, brand, user_id, creator_ids):
        raise RuntimeError("model unavailable")

    monkeypatch.setattr(UgcAiCoordinatorService, "process_pipeline", failing_pipeline)

    response = api_client.post(
        "/webhooks/sendgrid-inbound",
        data={
            "to": "acme@mail.powerbrief.ai",
            "from": "Casey Creator <casey@example.com>",
            "subject": "Re: Collaboration",
            "text": "Yes, I'm interested!",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["creatorId"] == creator.id
    assert body["actionsTaken"] == [AI_ANALYSIS_FAILED]

    db_session.expire_all()
    assert db_session.get(UgcCreator, creator.id).status == "INTERESTED"
    thread = db_session.get(UgcEmailThread, body["threadId"])
    assert thread.thread_subject == "Collaboration"
    message = db_session.query(UgcEmailMessage).one()
    assert message.from_email == "casey@example.com"


def test_inbound_email_creates_unknown_creator(api_client, db_session, brand, monkeypatch):
    monkeypatch.setattr(
        UgcAiCoordinatorService,
        "process_pipeline",
        lambda self, brand, user_id, creator_ids: {"results": [{"success": True, "analysis": "Marked interested"}]},
    )

    response = api_client.post(
        "/webhooks/sendgrid-inbound",
        data={"to": "acme@mail.powerbrief.ai", "from": "new.person@example.com", "subject": "Hi", "text": "Hello"},
    )

    assert response.status_code == 200
    assert response.json()["actionsTaken"] == ["Marked interested"]
    created = db_session.get(UgcCreator, response.json()["creatorId"])
    assert created.name == "new.person"
    assert created.status == "EMAIL_RESPONSE"


def test_inbound_email_routing_errors(api_client, brand):
    unknown = api_client.post("/webhooks/sendgrid-inbound", data={"to": "ghost@mail.powerbrief.ai", "from": "a@b.c"})
    assert unknown.status_code == 404

    invalid = api_client.post("/webhooks/sendgrid-inbound", data={"to": "someone@gmail.com", "from": "a@b.c"})
    assert invalid.status_code == 400
