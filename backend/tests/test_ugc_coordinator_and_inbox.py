import pytest

from powerbrief.db.enums import EmailMessageStatusEnum
from powerbrief.db.models import UgcCreator, UgcEmailMessage, utcnow
from powerbrief.db.repositories.ugc import UgcInboxRepository
from powerbrief.llm.client import LLMClient
from powerbrief.services.email import EmailClient, EmailSendError

from conftest import random_id


class FakeEmailClient:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_as_brand(self, brand, *, to, subject, html, text=None):
        if self.fail:
            raise EmailSendError("rejected", status_code=400, error_payload={"errors": ["bad"]})
        self.sent.append((to, subject))
        return "sg-message-1"


@pytest.fixture()
def email_client(monkeypatch):
    client = FakeEmailClient()
    monkeypatch.setattr(EmailClient, "from_settings", classmethod(lambda cls: client))
    return client


def test_coordinator_settings_created_and_merged(api_client, brand):
    created = api_client.get("/ugc/ai-coordinator/settings", params={"brandId": brand.id}).json()
    assert created["settings"]["auto_send_emails"] is False
    assert created["enabled"] is True

    updated = api_client.put(
        "/ugc/ai-coordinator/settings",
        params={"brandId": brand.id},
        json={"settings": {"auto_send_emails": True}, "name": "Ava"},
    ).json()
    assert updated["id"] == created["id"]
    assert updated["name"] == "Ava"
    assert updated["settings"]["auto_send_emails"] is True
    assert updated["settings"]["proactivity_level"] == "medium"


def test_process_pipeline_logs_analysis(api_client, brand, creator, monkeypatch):
    monkeypatch.setattr(
        LLMClient,
        "generate_json",
        lambda self, prompt, params=None: {
            "analysis": "Creator is ready for rates discussion",
            "recommendedActions": [{"type": "follow_up", "priority": "high"}],
        },
    )

    response = api_client.post("/ugc/ai-coordinator/process", json={"brandId": brand.id})

    assert response.status_code == 200
    result = response.json()["results"][0]
    assert result["creatorId"] == creator.id
    assert result["analysis"] == "Creator is ready for rates discussion"

    actions = api_client.get("/ugc/ai-coordinator/actions", params={"brandId": brand.id}).json()["actions"]
    assert [action["action_type"] for action in actions] == ["ai_analysis"]


def test_process_pipeline_records_failures(api_client, brand, creator, monkeypatch):
    def broken(self, prompt, params=None):
        raise RuntimeError("model offline")

    monkeypatch.setattr(LLMClient, "generate_json", broken)
    response = api_client.post("/ugc/ai-coordinator/process", json={"brandId": brand.id, "creatorIds": [creator.id]})

    result = response.json()["results"][0]
    assert result == {"creatorId": creator.id, "success": False, "error": "model offline"}


def test_process_rejects_invalid_creator_ids(api_client, brand):
    response = api_client.post("/ugc/ai-coordinator/process", json={"brandId": brand.id, "creatorIds": ["nope"]})
    assert response.status_code == 400


def test_generate_and_send_email(api_client, brand, creator, email_client, monkeypatch):
    monkeypatch.setattr(
        LLMClient,
        "generate_json",
        lambda self, prompt, params=None: {"subject": "Let's collaborate", "htmlContent": "<p>Hi Casey</p>"},
    )

    response = api_client.post(
        "/ugc/ai-coordinator/generate-email",
        json={"brandId": brand.id, "creatorId": creator.id, "purpose": "Initial outreach", "send": True},
    )

    assert response.status_code == 200
    assert response.json()["sent"] is True
    assert response.json()["email"]["subject"] == "Let's collaborate"
    assert email_client.sent == [("casey@example.com", "Let's collaborate")]

    threads = api_client.get("/ugc/inbox", params={"brandId": brand.id}).json()["threads"]
    assert threads[0]["thread_subject"] == "Let's collaborate"
    assert threads[0]["lastMessage"]["from_email"] == "acme@mail.powerbrief.ai"


def test_compose_email_threads_replies(api_client, brand, creator, email_client):
    first = api_client.post(
        "/ugc/email/compose",
        json={"brandId": brand.id, "creatorId": creator.id, "subject": "Shipping", "htmlContent": "<p>Sent!</p>"},
    )
    second = api_client.post(
        "/ugc/email/compose",
        json={"brandId": brand.id, "creatorId": creator.id, "subject": "Re: Shipping", "htmlContent": "<p>Again</p>"},
    )

    assert first.status_code == 200
    assert first.json()["threadId"] == second.json()["threadId"]
    assert first.json()["message"]["variables_used"] == {"sendgrid_message_id": "sg-message-1"}

    thread = api_client.get(f"/ugc/inbox/threads/{first.json()['threadId']}").json()
    assert len(thread["messages"]) == 2


def test_compose_email_maps_sendgrid_failure(api_client, brand, creator, monkeypatch):
    monkeypatch.setattr(EmailClient, "from_settings", classmethod(lambda cls: FakeEmailClient(fail=True)))
    response = api_client.post(
        "/ugc/email/compose",
        json={"brandId": brand.id, "creatorId": creator.id, "subject": "Hi", "htmlContent": "<p>Hi</p>"},
    )
    assert response.status_code == 502
    assert response.json()["detail"]["sendgrid"] == {"errors": ["bad"]}


def test_compose_requires_creator_email(api_client, db_session, brand, email_client):
    nameless = UgcCreator(brand_id=brand.id, name="No Email")
    db_session.add(nameless)
    db_session.commit()

    response = api_client.post(
        "/ugc/email/compose",
        json={"brandId": brand.id, "creatorId": nameless.id, "subject": "Hi", "htmlContent": "<p>Hi</p>"},
    )
    assert response.status_code == 400


def test_message_status_update(api_client, brand, creator, email_client):
    sent = api_client.post(
        "/ugc/email/compose",
        json={"brandId": brand.id, "creatorId": creator.id, "subject": "Hi", "htmlContent": "<p>Hi</p>"},
    ).json()
    message_id = sent["message"]["id"]

    assert api_client.patch(f"/ugc/inbox/messages/{message_id}", json={"status": "bogus"}).status_code == 400
    response = api_client.patch(f"/ugc/inbox/messages/{message_id}", json={"status": "read"})
    assert response.status_code == 200
    assert response.json()["status"] == "read"


def test_thread_messages_with_equal_timestamps_keep_id_order(db_session, brand, creator):
    repo = UgcInboxRepository(db_session)
    thread = repo.get_or_create_thread(brand.id, creator.id, "Collab")
    stamp = utcnow()
    ids = sorted(random_id() for _ in range(3))
    for message_id in reversed(ids):
        db_session.add(
            UgcEmailMessage(
                id=message_id,
                thread_id=thread.id,
                from_email="acme@example.com",
                to_email=creator.email,
                status=EmailMessageStatusEnum.sent,
                created_at=stamp,
            )
        )
    db_session.commit()

    assert [message.id for message in repo.list_messages(thread.id)] == ids
