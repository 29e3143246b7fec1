from typing import List, get_type_hints

from powerbrief.db.models import AdBatch, AdDraft, Brand
from powerbrief.db.repositories.ad_batches import AdDraftsRepository
from powerbrief.db.repositories.ugc import UgcCreatorsRepository
from powerbrief.routers import ad_drafts as ad_drafts_router

from conftest import OTHER_USER_ID, TEST_USER_ID, random_id


def test_upsert_batch_keeps_one_active(api_client, db_session, brand):
    first = api_client.post("/ad-batches", json={"brandId": brand.id, "name": "Spring", "adAccountId": "act_1"})
    second = api_client.post("/ad-batches", json={"brandId": brand.id, "name": "Summer"})

    assert first.status_code == 200
    assert second.status_code == 200
    active = api_client.get("/ad-batches", params={"active": True}).json()
    assert active["id"] == second.json()["id"]

    db_session.expire_all()
    assert db_session.get(AdBatch, first.json()["id"]).is_active is False


def test_upsert_batch_updates_existing(api_client, brand):
    created = api_client.post("/ad-batches", json={"brandId": brand.id, "name": "Spring"}).json()
    updated = api_client.post(
        "/ad-batches",
        json={"id": created["id"], "brandId": brand.id, "headline": "Glow all season"},
    ).json()

    assert updated["id"] == created["id"]
    assert updated["name"] == "Spring"
    assert updated["headline"] == "Glow all season"


def test_batch_gets_default_name(api_client, brand):
    body = api_client.post("/ad-batches", json={"brandId": brand.id}).json()
    assert body["name"].startswith("Ad Batch ")


def test_delete_batch(api_client, brand):
    batch_id = api_client.post("/ad-batches", json={"brandId": brand.id}).json()["id"]

    assert api_client.delete("/ad-batches", params={"id": batch_id}).json() == {"success": True}
    assert api_client.delete("/ad-batches", params={"id": batch_id}).status_code == 404
    assert api_client.delete("/ad-batches").status_code == 400


def test_upsert_drafts_reports_per_draft_errors(api_client, db_session, brand):
    response = api_client.post(
        "/ad-drafts",
        json=[
            {
                "brandId": brand.id,
                "adName": "Hero Video",
                "status": "active",
                "assets": [{"name": "hero.mp4", "url": "https://cdn.example.com/hero.mp4", "type": "video/mp4"}],
            },
            {"brandId": brand.id, "adName": "Broken", "status": "sideways"},
            {"brandId": random_id(), "adName": "Elsewhere"},
        ],
    )

    assert response.status_code == 200
    results = response.json()
    assert results[0]["success"] is True
    assert results[1]["success"] is False
    assert results[2] == {"id": None, "success": False, "error": "Brand not found"}

    drafts = api_client.get("/ad-drafts", params={"brandId": brand.id}).json()
    assert len(drafts) == 1
    assert drafts[0]["meta_status"] == "ACTIVE"
    assert drafts[0]["app_status"] == "DRAFT"
    assert drafts[0]["assets"][0]["type"] == "video"


def test_upsert_draft_replaces_assets(api_client, db_session, brand):
    draft_id = random_id()
    asset = {"name": "a.jpg", "url": "https://cdn.example.com/a.jpg", "type": "image/jpeg"}
    api_client.post("/ad-drafts", json=[{"id": draft_id, "brandId": brand.id, "adName": "One", "assets": [asset]}])
    api_client.post(
        "/ad-drafts",
        json=[{"id": draft_id, "brandId": brand.id, "adName": "One", "primaryText": "New copy", "assets": []}],
    )

    db_session.expire_all()
    draft = db_session.get(AdDraft, draft_id)
    assert draft.primary_text == "New copy"
    assert draft.assets == []


def test_populate_names_requires_meta(api_client, brand):
    response = api_client.post("/ad-drafts/populate-names", json={"brandId": brand.id})
    assert response.status_code == 400


def test_upsert_draft_with_id_from_another_brand(api_client, db_session, brand):
    other_brand = Brand(user_id=TEST_USER_ID, name="Acme Haircare")
    db_session.add(other_brand)
    db_session.commit()
    foreign = AdDraft(brand_id=other_brand.id, user_id=TEST_USER_ID, ad_name="Haircare Hero")
    db_session.add(foreign)
    db_session.commit()

    response = api_client.post(
        "/ad-drafts",
        json=[
            {"brandId": brand.id, "adName": "Fresh Draft"},
            {"id": foreign.id, "brandId": brand.id, "adName": "Hijacked"},
        ],
    )

    assert response.status_code == 200
    results = response.json()
    assert results[0]["success"] is True
    assert results[1] == {"id": foreign.id, "success": False, "error": "Ad draft belongs to another brand"}

    db_session.expire_all()
    untouched = db_session.get(AdDraft, foreign.id)
    assert untouched.brand_id == other_brand.id
    assert untouched.ad_name == "Haircare Hero"
    assert db_session.get(AdDraft, results[0]["id"]).ad_name == "Fresh Draft"


def test_upsert_batch_with_id_owned_by_another_user(api_client, db_session, brand):
    foreign = AdBatch(brand_id=brand.id, user_id=OTHER_USER_ID, name="Not yours")
    db_session.add(foreign)
    db_session.commit()

    response = api_client.post("/ad-batches", json={"id": foreign.id, "brandId": brand.id, "name": "Mine now"})

    assert response.status_code == 409
    db_session.expire_all()
    assert db_session.get(AdBatch, foreign.id).name == "Not yours"


class FakeNameClient:
    names = {"cmp-1": "Spring Campaign", "adset-1": "Lookalikes"}

    def __init__(self):
        self.lookups = []

    def get_object_name(self, object_id):
        self.lookups.append(object_id)
        return self.names.get(object_id)


def test_meta_populate_names(api_client, db_session, connected_brand, monkeypatch):
    client = FakeNameClient()
    monkeypatch.setattr(ad_drafts_router, "get_meta_client_for_brand", lambda brand: client)
    for name in ("First", "Second"):
        db_session.add(
            AdDraft(
                brand_id=connected_brand.id,
                user_id=TEST_USER_ID,
                ad_name=name,
                campaign_id="cmp-1",
                ad_set_id="adset-1",
            )
        )
    db_session.add(AdDraft(brand_id=connected_brand.id, user_id=TEST_USER_ID, ad_name="Unknown", ad_set_id="adset-x"))
    db_session.commit()

    response = api_client.post("/ad-drafts/populate-names", json={"brandId": connected_brand.id})

    assert response.status_code == 200
    assert response.json() == {"updated": 2, "total": 3}
    assert sorted(client.lookups) == ["adset-1", "adset-x", "cmp-1"]

    drafts = {d["ad_name"]: d for d in api_client.get("/ad-drafts", params={"brandId": connected_brand.id}).json()}
    assert drafts["First"]["campaign_name"] == "Spring Campaign"
    assert drafts["Second"]["ad_set_name"] == "Lookalikes"
    assert drafts["Unknown"]["ad_set_name"] is None


def test_repository_annotations_resolve():
    assert get_type_hints(AdDraftsRepository.replace_assets)["assets"] == List[dict]
    assert get_type_hints(UgcCreatorsRepository.list_by_ids)["creator_ids"] == List[str]
