from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from jose import jwt

from powerbrief.auth.oauth_state import build_oauth_state
from powerbrief.config import settings
from powerbrief.db.enums import AdAppStatusEnum, AdAssetTypeEnum
from powerbrief.db.models import AdDraft, AdDraftAsset, Brand, as_utc, utcnow
from powerbrief.routers import meta as meta_router
from powerbrief.services import ad_launch
from powerbrief.services.meta_ads import MetaAdsClient, MetaAdsError

from conftest import OTHER_USER_ID, TEST_USER_ID, random_id


class FakeMetaClient:
    def __init__(self, *, fail_ad: bool = False) -> None:
        self.fail_ad = fail_ad
        self.creatives = []
        self.ads = []

    def upload_image(self, *, ad_account_id, filename, content, content_type):
        return {"images": {filename: {"hash": f"hash-{filename}"}}}

    def upload_video(self, *, ad_account_id, filename, content, content_type, name):
        return {"id": "video-1"}

    def create_adcreative(self, *, ad_account_id, payload):
        self.creatives.append(payload)
        return {"id": "creative-1"}

    def create_ad(self, *, ad_account_id, payload):
        if self.fail_ad:
            raise MetaAdsError(
                "Graph error",
                status_code=400,
                error_payload={"error": {"message": "Ad set is archived"}},
            )
        self.ads.append(payload)
        return {"id": "ad-1"}

    def list_ad_accounts(self):
        return [{"id": "act_123", "name": "Main"}]


def _draft(db_session, brand, **fields) -> AdDraft:
    draft = AdDraft(brand_id=brand.id, user_id=brand.user_id, ad_name="Spring Promo", ad_set_id="adset-1", **fields)
    draft.assets.append(AdDraftAsset(name="hero.jpg", url="https://cdn.example.com/hero.jpg", type=AdAssetTypeEnum.image))
    db_session.add(draft)
    db_session.commit()
    db_session.refresh(draft)
    return draft


def test_ad_accounts_require_meta_connection(api_client, brand):
    response = api_client.get("/meta/ad-accounts", params={"brandId": brand.id})
    assert response.status_code == 404
    assert response.json()["detail"] == "Brand not connected to Meta"


def test_expired_token_is_rejected(api_client, connected_brand, db_session):
    connected_brand.meta_access_token_expires_at = utcnow() - timedelta(days=1)
    db_session.commit()

    response = api_client.get("/meta/ad-accounts", params={"brandId": connected_brand.id})
    assert response.status_code == 401


def test_ad_accounts_use_decrypted_token(api_client, connected_brand, monkeypatch):
    seen_tokens = []

    def fake_for_token(token):
        seen_tokens.append(token)
        return FakeMetaClient()

    monkeypatch.setattr(MetaAdsClient, "for_token", staticmethod(fake_for_token))
    response = api_client.get("/meta/ad-accounts", params={"brandId": connected_brand.id})

    assert response.status_code == 200
    assert response.json() == {"adAccounts": [{"id": "act_123", "name": "Main"}]}
    assert seen_tokens == ["meta-access-token"]


def test_brand_config_round_trip(api_client, connected_brand):
    response = api_client.put(
        "/meta/brand-config",
        json={"brandId": connected_brand.id, "facebookPageId": "page-9", "usePageAsActor": True},
    )
    assert response.status_code == 200

    config = api_client.get("/meta/brand-config", params={"brandId": connected_brand.id}).json()
    assert config["connected"] is True
    assert config["defaultFacebookPageId"] == "page-9"
    assert config["defaultAdAccountId"] == "act_123"
    assert config["usePageAsActor"] is True


def test_launch_ads_requires_fields(api_client, connected_brand):
    response = api_client.post("/meta/launch-ads", json={"brandId": connected_brand.id})
    assert response.status_code == 400
    assert "drafts" in response.json()["detail"]
    assert "fbPageId" in response.json()["detail"]


def test_launch_ads_creates_creative_and_ad(api_client, connected_brand, db_session, monkeypatch):
    draft = _draft(db_session, connected_brand, call_to_action="Shop Now", destination_url="https://acme.test")
    client = FakeMetaClient()
    monkeypatch.setattr(meta_router, "get_meta_client_for_brand", lambda brand: client)
    monkeypatch.setattr(ad_launch, "download_asset", lambda url: (b"jpeg-bytes", "image/jpeg"))

    response = api_client.post(
        "/meta/launch-ads",
        json={
            "brandId": connected_brand.id,
            "adAccountId": "act_123",
            "fbPageId": "page-1",
            "drafts": [
                {"id": draft.id, "adName": "Spring Promo", "primaryText": "Glow up", "status": "active"},
                {"id": random_id(), "adName": "Missing"},
            ],
        },
    )

    assert response.status_code == 200
    results = response.json()["results"]
    assert results[0]["status"] == ad_launch.STATUS_AD_CREATED
    assert results[0]["adId"] == "ad-1"
    assert results[1]["status"] == "NOT_FOUND"

    story = client.creatives[0]["object_story_spec"]
    assert story["page_id"] == "page-1"
    assert story["link_data"]["image_hash"] == "hash-hero.jpg"
    assert story["link_data"]["call_to_action"] == {"type": "SHOP_NOW"}
    assert client.ads[0]["status"] == "ACTIVE"

    db_session.expire_all()
    stored = db_session.get(AdDraft, draft.id)
    assert stored.app_status == AdAppStatusEnum.PUBLISHED
    assert stored.primary_text == "Glow up"
    assert stored.meta_ad_id == "ad-1"


def test_launch_ads_reports_ad_failure(api_client, connected_brand, db_session, monkeypatch):
    draft = _draft(db_session, connected_brand)
    monkeypatch.setattr(meta_router, "get_meta_client_for_brand", lambda brand: FakeMetaClient(fail_ad=True))
    monkeypatch.setattr(ad_launch, "download_asset", lambda url: (b"jpeg-bytes", "image/jpeg"))

    response = api_client.post(
        "/meta/launch-ads",
        json={
            "brandId": connected_brand.id,
            "adAccountId": "act_123",
            "fbPageId": "page-1",
            "drafts": [{"id": draft.id}],
        },
    )

    result = response.json()["results"][0]
    assert result["status"] == ad_launch.STATUS_AD_FAILED
    assert result["creativeId"] == "creative-1"
    assert result["error"] == "Ad set is archived"


def test_asset_type_from_mime_type():
    assert ad_launch.asset_type_from("video/mp4") == AdAssetTypeEnum.video
    assert ad_launch.asset_type_from("image/png") == AdAssetTypeEnum.image
    assert ad_launch.asset_type_from(None) == AdAssetTypeEnum.image


class FakeOAuthClient:
    def exchange_long_lived_token(self):
        return {"access_token": "long-lived-token", "expires_in": 60 * 24 * 3600}

    def list_ad_accounts(self):
        return [{"id": "act_9", "name": "Acme Ads"}]

    def list_pages(self):
        return [{"id": "page-1", "instagram_business_account": {"id": "ig-1"}}, {"id": "page-2"}]


@pytest.fixture()
def meta_oauth(monkeypatch):
    monkeypatch.setattr(settings, "META_APP_ID", "meta-app")
    monkeypatch.setattr(settings, "META_OAUTH_REDIRECT_URI", "https://api.example.com/meta/callback")
    monkeypatch.setattr(settings, "APP_BASE_URL", "https://app.example.com")
    monkeypatch.setattr(meta_router, "exchange_code_for_token", lambda code: {"access_token": f"short-{code}"})
    monkeypatch.setattr(meta_router, "get_token_user_id", lambda token: "meta-user-1")
    monkeypatch.setattr(MetaAdsClient, "for_token", staticmethod(lambda token: FakeOAuthClient()))


def test_meta_callback_connects_brand(api_client, db_session, brand, meta_oauth):
    url = api_client.get("/meta/connect-url", params={"brandId": brand.id}).json()["url"]
    state = parse_qs(urlparse(url).query)["state"][0]
    assert state != brand.id

    response = api_client.get("/meta/callback", params={"code": "abc", "state": state}, follow_redirects=False)

    assert response.status_code in (302, 307)
    assert response.headers["location"] == f"https://app.example.com/app/brands/{brand.id}?meta_connected=true"
    db_session.expire_all()
    stored = db_session.get(Brand, brand.id)
    assert stored.meta_user_id == "meta-user-1"
    assert stored.meta_ad_accounts == [{"id": "act_9", "name": "Acme Ads"}]
    assert stored.meta_instagram_accounts == [{"id": "ig-1"}]
    assert as_utc(stored.meta_access_token_expires_at) > utcnow() + timedelta(days=50)


def test_meta_callback_rejects_tampered_state(api_client, db_session, brand, meta_oauth):
    forged_signature = jwt.encode(
        {"brand_id": brand.id, "sub": TEST_USER_ID, "aud": "meta-oauth-state", "exp": 4102444800},
        "attacker-secret",
        algorithm="HS256",
    )

    for forged in (brand.id, forged_signature):
        response = api_client.get("/meta/callback", params={"code": "abc", "state": forged}, follow_redirects=False)
        assert response.status_code == 400

    db_session.expire_all()
    assert db_session.get(Brand, brand.id).meta_user_id is None


def test_meta_callback_rejects_expired_state(api_client, brand, meta_oauth):
    state = build_oauth_state(brand.id, TEST_USER_ID, ttl_seconds=-60)
    response = api_client.get("/meta/callback", params={"code": "abc", "state": state}, follow_redirects=False)
    assert response.status_code == 400


def test_meta_callback_requires_brand_access_for_state_user(api_client, db_session, brand, meta_oauth):
    state = build_oauth_state(brand.id, OTHER_USER_ID)
    response = api_client.get("/meta/callback", params={"code": "abc", "state": state}, follow_redirects=False)

    assert response.headers["location"].endswith("meta_error=brand_not_found")
    db_session.expire_all()
    assert db_session.get(Brand, brand.id).meta_user_id is None


def test_meta_callback_token_exchange_failure(api_client, brand, meta_oauth, monkeypatch):
    def failing_exchange(code):
        raise MetaAdsError("Invalid verification code", status_code=400)

    monkeypatch.setattr(meta_router, "exchange_code_for_token", failing_exchange)
    state = build_oauth_state(brand.id, TEST_USER_ID)

    response = api_client.get("/meta/callback", params={"code": "bad", "state": state}, follow_redirects=False)

    assert response.headers["location"] == (
        f"https://app.example.com/app/brands/{brand.id}?meta_error=token_exchange_failed"
    )


def test_meta_callback_reports_user_denial(api_client, meta_oauth):
    response = api_client.get("/meta/callback", params={"error": "access_denied"}, follow_redirects=False)
    assert response.headers["location"] == "https://app.example.com/app/brands?meta_error=access_denied"


def test_meta_refresh_token(api_client, db_session, connected_brand, monkeypatch):
    monkeypatch.setattr(MetaAdsClient, "for_token", staticmethod(lambda token: FakeOAuthClient()))

    response = api_client.post("/meta/refresh-token", json={"brandId": connected_brand.id})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Token refreshed successfully"
    assert body["daysUntilExpiration"] >= 59

    still_valid = api_client.post("/meta/refresh-token", json={"brandId": connected_brand.id}).json()
    assert still_valid["message"] == "Token is still valid, no refresh needed"
    assert api_client.get("/meta/ad-accounts", params={"brandId": connected_brand.id}).status_code == 200
