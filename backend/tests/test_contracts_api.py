import base64
import json
from datetime import timedelta

import pytest

from powerbrief.config import settings
from powerbrief.db.enums import RecipientStatusEnum
from powerbrief.db.models import Contract, ContractRecipient, ContractSigningToken, UgcCreator, utcnow
from powerbrief.services.contracts import get_next_signing_recipient

PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF"
RECIPIENTS = [
    {"name": "Casey Creator", "email": "casey@example.com"},
    {"name": "Acme Legal", "email": "legal@acme.test", "role": "cc"},
]


@pytest.fixture(autouse=True)
def no_email(monkeypatch):
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", None)


def _create_contract(api_client, brand, creator=None, **form):
    data = {"brandId": brand.id, "title": "UGC Agreement", "recipients": json.dumps(RECIPIENTS), **form}
    if creator is not None:
        data["creatorId"] = creator.id
    return api_client.post(
        "/contracts",
        data=data,
        files={"document": ("agreement.pdf", PDF_BYTES, "application/pdf")},
    )


def _signing_token(db_session, contract_id):
    db_session.expire_all()
    return db_session.query(ContractSigningToken).filter_by(contract_id=contract_id).one().token


def test_create_contract_adds_default_signature_field(api_client, brand):
    response = _create_contract(api_client, brand)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "draft"
    assert body["document_size"] == len(PDF_BYTES)
    signer = next(r for r in body["recipients"] if r["email"] == "casey@example.com")
    assert [field["recipient_id"] for field in body["fields"]] == [signer["id"]]
    assert body["fields"][0]["type"] == "signature"
    assert [entry["action"] for entry in body["audit_logs"]] == ["created"]


def test_create_contract_rejects_non_pdf(api_client, brand):
    response = api_client.post(
        "/contracts",
        data={"brandId": brand.id, "title": "Bad", "recipients": json.dumps(RECIPIENTS)},
        files={"document": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400


def test_create_contract_rejects_bad_recipients_json(api_client, brand):
    response = _create_contract(api_client, brand, recipients="{not json")
    assert response.status_code == 400


def test_contract_from_template_reuses_document(api_client, brand):
    template = api_client.post(
        "/contracts/templates",
        data={"brandId": brand.id, "title": "Standard UGC", "fields": "[]"},
        files={"document": ("standard.pdf", PDF_BYTES, "application/pdf")},
    )
    assert template.status_code == 201
    template_id = template.json()["id"]

    response = api_client.post(
        "/contracts",
        data={
            "brandId": brand.id,
            "title": "From Template",
            "templateId": template_id,
            "recipients": json.dumps(RECIPIENTS[:1]),
        },
    )
    assert response.status_code == 201
    assert response.json()["template_id"] == template_id
    assert response.json()["document_name"] == "standard.pdf"


def test_full_signing_flow_marks_creator_signed(api_client, db_session, brand, creator):
    contract_id = _create_contract(api_client, brand, creator).json()["id"]

    sent = api_client.post("/contracts/send", json={"contractId": contract_id})
    assert sent.status_code == 200
    assert sent.json()["status"] == "sent"
    assert len(sent.json()["recipients"]) == 1
    token = _signing_token(db_session, contract_id)

    viewed = api_client.post("/contracts/sign/verify-token", json={"token": token})
    assert viewed.status_code == 200
    view = viewed.json()
    assert base64.b64decode(view["document"]) == PDF_BYTES
    assert view["recipient"]["status"] == "viewed"
    assert len(view["fields"]) == 1

    field_id = view["fields"][0]["id"]
    signed = api_client.post(
        "/contracts/sign/submit",
        json={"contractId": contract_id, "token": token, "fieldValues": {field_id: "Casey Creator"}},
        headers={"x-forwarded-for": "203.0.113.9, 10.0.0.1"},
    )
    assert signed.status_code == 200
    assert signed.json() == {"success": True, "status": "completed", "completed": True}

    db_session.expire_all()
    assert db_session.get(UgcCreator, creator.id).contract_status == "contract signed"

    detail = api_client.get(f"/contracts/{contract_id}").json()
    assert detail["completion_certificate"]["signers"][0]["ipAddress"] == "203.0.113.9"

    reused = api_client.post("/contracts/sign/verify-token", json={"token": token})
    assert reused.status_code == 403

    status = api_client.get("/contracts/check-creator-status", params={"creatorId": creator.id}).json()
    assert status["contractStatus"] == "contract signed"
    assert status["status"] == "completed"


def test_submit_requires_field_values(api_client, brand):
    response = api_client.post("/contracts/sign/submit", json={"contractId": "x", "token": "y"})
    assert response.status_code == 400


def test_unknown_signing_token_is_unauthorized(api_client):
    response = api_client.post("/contracts/sign/verify-token", json={"token": "deadbeef"})
    assert response.status_code == 401


def test_only_draft_contracts_can_be_deleted(api_client, brand):
    contract_id = _create_contract(api_client, brand).json()["id"]
    api_client.post("/contracts/send", json={"contractId": contract_id})

    assert api_client.delete(f"/contracts/{contract_id}").status_code == 400
    voided = api_client.post(f"/contracts/{contract_id}/void")
    assert voided.status_code == 200
    assert voided.json()["status"] == "voided"


def test_download_returns_pdf(api_client, brand):
    contract_id = _create_contract(api_client, brand).json()["id"]
    response = api_client.get(f"/contracts/{contract_id}/download")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="agreement.pdf"' in response.headers["content-disposition"]
    assert response.content == PDF_BYTES


TWO_SIGNERS = [
    {"name": "Casey Creator", "email": "casey@example.com"},
    {"name": "Acme Counsel", "email": "counsel@acme.test"},
]


def _token_for(db_session, contract_id, email):
    db_session.expire_all()
    recipient = db_session.query(ContractRecipient).filter_by(contract_id=contract_id, email=email).one()
    return db_session.query(ContractSigningToken).filter_by(recipient_id=recipient.id).one().token


def _sign(api_client, contract_id, token):
    view = api_client.post("/contracts/sign/verify-token", json={"token": token}).json()
    values = {field["id"]: "signed" for field in view["fields"]}
    return api_client.post(
        "/contracts/sign/submit", json={"contractId": contract_id, "token": token, "fieldValues": values}
    )


def test_contract_signers_sign_in_order(api_client, db_session, brand):
    contract_id = _create_contract(api_client, brand, recipients=json.dumps(TWO_SIGNERS)).json()["id"]
    api_client.post("/contracts/send", json={"contractId": contract_id})
    first = _token_for(db_session, contract_id, "casey@example.com")
    second = _token_for(db_session, contract_id, "counsel@acme.test")

    early = _sign(api_client, contract_id, second)
    assert early.status_code == 409

    assert _sign(api_client, contract_id, first).json()["status"] == "partially_signed"
    done = _sign(api_client, contract_id, second)
    assert done.json() == {"success": True, "status": "completed", "completed": True}


def test_next_signing_recipient_skips_signed(db_session, api_client, brand):
    contract_id = _create_contract(api_client, brand, recipients=json.dumps(TWO_SIGNERS)).json()["id"]
    contract = db_session.get(Contract, contract_id)
    assert get_next_signing_recipient(contract).email == "casey@example.com"

    contract.recipients[0].status = RecipientStatusEnum.signed
    assert get_next_signing_recipient(contract).email == "counsel@acme.test"
    contract.recipients[1].status = RecipientStatusEnum.signed
    assert get_next_signing_recipient(contract) is None


def test_contract_verify_token_expired_and_used(api_client, db_session, brand):
    contract_id = _create_contract(api_client, brand).json()["id"]
    api_client.post("/contracts/send", json={"contractId": contract_id})
    token = _signing_token(db_session, contract_id)

    signing_token = db_session.query(ContractSigningToken).filter_by(token=token).one()
    signing_token.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()
    expired = api_client.post("/contracts/sign/verify-token", json={"token": token})
    assert expired.status_code == 403
    assert expired.json()["detail"] == "This signing link has expired"

    signing_token.expires_at = utcnow() + timedelta(days=1)
    signing_token.used_at = utcnow()
    db_session.commit()
    used = api_client.post("/contracts/sign/verify-token", json={"token": token})
    assert used.status_code == 403
    assert used.json()["detail"] == "This signing link has already been used"


def test_contract_void(api_client, db_session, brand):
    contract_id = _create_contract(api_client, brand).json()["id"]

    voided = api_client.post(f"/contracts/{contract_id}/void")
    assert voided.status_code == 200
    assert voided.json()["status"] == "voided"
    assert db_session.get(Contract, contract_id).voided_at is not None
    assert api_client.post(f"/contracts/{contract_id}/void").status_code == 400

    detail = api_client.get(f"/contracts/{contract_id}").json()
    assert sorted(entry["action"] for entry in detail["audit_logs"]) == ["created", "voided"]
