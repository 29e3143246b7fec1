from powerbrief.db.models import Brand, BrandShare
from powerbrief.routers.brands import derive_email_identifier
from powerbrief.services.email import EmailClient, EmailConfigError

from conftest import OTHER_USER_ID, random_id


def test_create_brand_derives_unique_email_identifier(api_client):
    first = api_client.post("/brands", json={"name": "Acme Skincare"})
    second = api_client.post("/brands", json={"name": "Acme  Skincare!"})

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["email_identifier"] == "acme-skincare"
    assert second.json()["email_identifier"] == "acme-skincare-2"
    assert first.json()["meta_connected"] is False
    assert "meta_access_token" not in first.json()


def test_create_brand_rejects_invalid_identifier(api_client):
    response = api_client.post("/brands", json={"name": "Acme", "emailIdentifier": "Bad Identifier!"})
    assert response.status_code == 400


def test_brand_not_visible_to_other_users(api_client, db_session):
    foreign = Brand(user_id=OTHER_USER_ID, name="Someone Else")
    db_session.add(foreign)
    db_session.commit()

    assert api_client.get(f"/brands/{foreign.id}").status_code == 404
    assert api_client.get(f"/brands/{random_id()}").status_code == 404
    assert api_client.get("/brands/not-a-uuid").status_code == 404
    assert all(item["id"] != foreign.id for item in api_client.get("/brands").json())


def test_update_and_delete_brand(api_client, brand):
    response = api_client.patch(f"/brands/{brand.id}", json={"name": "Acme Labs", "brandInfoData": {"voice": "calm"}})
    assert response.status_code == 200
    assert response.json()["name"] == "Acme Labs"
    assert response.json()["brand_info_data"] == {"voice": "calm"}

    assert api_client.patch(f"/brands/{brand.id}", json={"name": "   "}).status_code == 400
    assert api_client.delete(f"/brands/{brand.id}").status_code == 204
    assert api_client.get(f"/brands/{brand.id}").status_code == 404


def test_derive_email_identifier_falls_back_to_brand():
    assert derive_email_identifier("Glow & Co.") == "glow-co"
    assert derive_email_identifier("!!!") == "brand"


class FakeEmailClient:
    def __init__(self):
        self.sent = []

    def send(self, **kwargs):
        self.sent.append(kwargs)
        return "msg-1"


def test_brand_share_accept(api_client, auth_context, db_session, brand, monkeypatch):
    fake = FakeEmailClient()
    monkeypatch.setattr(EmailClient, "from_settings", classmethod(lambda cls: fake))

    shared = api_client.post(f"/brands/{brand.id}/share", json={"email": "teammate@example.com", "role": "viewer"})
    assert shared.status_code == 201
    assert "invitation_token" not in shared.json()
    assert fake.sent[0]["to"] == "teammate@example.com"
    token = db_session.query(BrandShare).one().invitation_token
    assert token in fake.sent[0]["html"]

    auth_context.user_id = OTHER_USER_ID
    assert api_client.get(f"/brands/{brand.id}").status_code == 404

    accepted = api_client.post("/brands/share/accept", json={"token": token})
    assert accepted.json() == {"success": True, "brandId": brand.id, "role": "viewer"}
    assert api_client.get(f"/brands/{brand.id}").status_code == 200

    assert api_client.post("/brands/share/accept", json={"token": token}).status_code == 409
    assert api_client.post("/brands/share/accept", json={"token": "unknown"}).status_code == 404


def test_brand_share_email_failure_is_bad_gateway(api_client, brand, monkeypatch):
    def failing(cls):
        raise EmailConfigError("SENDGRID_API_KEY is required to send email.")

    monkeypatch.setattr(EmailClient, "from_settings", classmethod(failing))
    response = api_client.post(f"/brands/{brand.id}/share", json={"email": "teammate@example.com"})
    assert response.status_code == 502
