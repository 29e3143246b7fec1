from datetime import date

import httpx
import pytest

from powerbrief.db.models import OneSheet, OneSheetSyncJob
from powerbrief.services import onesheet_sync
from powerbrief.services.meta_ads import MetaAdsClient, MetaAdsConfigError, MetaAdsError


class FakeAdsClient:
    def __init__(self, ads=None, error=None):
        self.ads = ads or []
        self.error = error
        self.calls = []

    def list_ads_with_insights(self, *, ad_account_id, since, until):
        self.calls.append((ad_account_id, since, until))
        if self.error:
            raise self.error
        return self.ads


AD = {
    "id": "ad-1",
    "name": "Hero",
    "effective_status": "ACTIVE",
    "creative": {"id": "cr-1", "body": "Glow up", "thumbnail_url": "https://cdn.example.com/t.jpg"},
    "insights": {"data": [{"spend": "12.50", "impressions": "1000"}]},
}


@pytest.fixture()
def onesheet(db_session, connected_brand) -> OneSheet:
    record = OneSheet(brand_id=connected_brand.id, user_id=connected_brand.user_id, title="Acme OneSheet")
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


def test_progress_percent():
    assert onesheet_sync.progress_percent(0, 0) == 0
    assert onesheet_sync.progress_percent(1, 3) == 33
    assert onesheet_sync.progress_percent(3, 3) == 100


def test_resolve_date_range_presets_and_custom():
    today = date(2024, 6, 30)
    assert onesheet_sync.resolve_date_range("last90", today=today) == (date(2024, 4, 1), today)
    assert onesheet_sync.resolve_date_range("all", today=today) == (onesheet_sync.ALL_TIME_START, today)
    assert onesheet_sync.resolve_date_range(None, today=today) == (date(2024, 5, 31), today)
    assert onesheet_sync.resolve_date_range(
        {"start": "2024-01-01", "end": "2024-01-31T00:00:00Z"}, today=today
    ) == (date(2024, 1, 1), date(2024, 1, 31))
    with pytest.raises(ValueError):
        onesheet_sync.resolve_date_range({"start": "2024-02-01", "end": "2024-01-01"}, today=today)


def test_onesheet_crud(api_client, brand):
    created = api_client.post("/onesheet", json={"brandId": brand.id})
    assert created.status_code == 201
    body = created.json()
    assert body["title"] == "Acme Skincare OneSheet"

    updated = api_client.patch(
        f"/onesheet/{body['id']}",
        json={"personas": [{"name": "Busy parent"}], "product": "Night cream", "title": None},
    )
    assert updated.status_code == 200
    assert updated.json()["personas"] == [{"name": "Busy parent"}]
    assert updated.json()["title"] == "Acme Skincare OneSheet"

    listed = api_client.get("/onesheet", params={"brandId": brand.id}).json()
    assert [item["id"] for item in listed] == [body["id"]]

    assert api_client.delete(f"/onesheet/{body['id']}").status_code == 204
    assert api_client.get(f"/onesheet/{body['id']}").status_code == 404


def test_sync_ads_runs_background_job(api_client, db_session, onesheet, monkeypatch):
    client = FakeAdsClient(ads=[AD])
    monkeypatch.setattr(MetaAdsClient, "for_token", staticmethod(lambda token: client))

    response = api_client.post(
        f"/onesheet/{onesheet.id}/sync-ads",
        json={"dateRange": {"start": "2024-01-01", "end": "2024-01-31"}},
    )

    assert response.status_code == 202
    job_id = response.json()["jobId"]
    assert response.json()["status"] == "pending"
    assert client.calls == [("act_123", "2024-01-01", "2024-01-31")]

    status = api_client.get("/onesheet/sync-status", params={"jobId": job_id}).json()
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["dateRange"] == {"start": "2024-01-01", "end": "2024-01-31"}

    db_session.expire_all()
    audit = db_session.get(OneSheet, onesheet.id).ad_account_audit
    assert audit["ads"][0]["adId"] == "ad-1"
    assert audit["ads"][0]["creative"]["thumbnailUrl"] == "https://cdn.example.com/t.jpg"
    assert audit["ads"][0]["metrics"]["spend"] == "12.50"


def test_sync_job_records_meta_failure(db_session, onesheet):
    job = OneSheetSyncJob(
        onesheet_id=onesheet.id,
        brand_id=onesheet.brand_id,
        date_range_start=date(2024, 1, 1),
        date_range_end=date(2024, 1, 31),
    )
    db_session.add(job)
    db_session.commit()
    error = MetaAdsError("Graph error", status_code=400, error_payload={"error": {"message": "Invalid account"}})

    onesheet_sync.run_sync_job(
        job.id,
        onesheet_id=onesheet.id,
        ad_account_id="act_123",
        access_token="unused",
        client=FakeAdsClient(error=error),
    )

    db_session.expire_all()
    stored = db_session.get(OneSheetSyncJob, job.id)
    assert stored.status.value == "failed"
    assert stored.error_message == "Invalid account"
    assert onesheet_sync.get_progress(job.id) is None


def test_sync_status_validation(api_client):
    assert api_client.get("/onesheet/sync-status").status_code == 400
    assert api_client.get("/onesheet/sync-status", params={"jobId": "missing"}).status_code == 404


def test_sync_requires_ad_account(api_client, db_session, onesheet, connected_brand):
    connected_brand.meta_default_ad_account_id = None
    db_session.commit()
    response = api_client.post(f"/onesheet/{onesheet.id}/sync-ads", json={})
    assert response.status_code == 400


def _pending_job(db_session, onesheet) -> OneSheetSyncJob:
    job = OneSheetSyncJob(
        onesheet_id=onesheet.id,
        brand_id=onesheet.brand_id,
        date_range_start=date(2024, 1, 1),
        date_range_end=date(2024, 1, 31),
    )
    db_session.add(job)
    db_session.commit()
    return job


@pytest.mark.parametrize(
    "error",
    [
        MetaAdsConfigError("META_APP_SECRET is not configured."),
        httpx.ConnectError("connection refused"),
    ],
)
def test_sync_job_marks_unexpected_errors_failed(db_session, onesheet, error):
    job = _pending_job(db_session, onesheet)

    onesheet_sync.run_sync_job(
        job.id,
        onesheet_id=onesheet.id,
        ad_account_id="act_123",
        access_token="unused",
        client=FakeAdsClient(error=error),
    )

    db_session.expire_all()
    stored = db_session.get(OneSheetSyncJob, job.id)
    assert stored.status.value == "failed"
    assert stored.error_message == str(error)
    assert stored.completed_at is not None
    assert onesheet_sync.get_progress(job.id) is None


def test_sync_status_in_progress(api_client, db_session, onesheet):
    job = _pending_job(db_session, onesheet)
    onesheet_sync.set_progress(job.id, status="running", total_ads=4, processed_ads=1)
    try:
        body = api_client.get("/onesheet/sync-status", params={"jobId": job.id}).json()
    finally:
        onesheet_sync.clear_progress(job.id)

    assert body["status"] == "running"
    assert body["progress"] == 25
    assert body["totalAds"] == 4
    assert body["processedAds"] == 1

    after = api_client.get("/onesheet/sync-status", params={"jobId": job.id}).json()
    assert after["status"] == "pending"


def test_ai_instructions_created_with_defaults(api_client, onesheet):
    response = api_client.get("/onesheet/ai-instructions", params={"onesheetId": onesheet.id})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["onesheet_id"] == onesheet.id
    assert [item["name"] for item in data["content_variables"]][:2] == ["Podcast", "Man on the Street"]
    assert len(data["content_variables"]) == 8
    assert [item["name"] for item in data["awareness_levels"]] == [
        "Unaware",
        "Problem Aware",
        "Solution Aware",
        "Product Aware",
        "Most Aware",
    ]
    assert data["awareness_levels_allow_new"] is True

    again = api_client.get("/onesheet/ai-instructions", params={"onesheetId": onesheet.id})
    assert again.json()["data"]["id"] == data["id"]


def test_ai_instructions_update_and_discoveries(api_client, onesheet):
    response = api_client.put(
        "/onesheet/ai-instructions",
        json={
            "onesheetId": onesheet.id,
            "contentVariables": [{"name": "Unboxing", "description": "Opening the package"}],
            "contentVariablesReturnMultiple": True,
        },
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["content_variables"] == [{"name": "Unboxing", "description": "Opening the package"}]
    assert data["content_variables_return_multiple"] is True

    body = {"onesheetId": onesheet.id, "discoveredVariable": {"name": "ASMR"}, "discoveredLevel": {"name": "Curious"}}
    first = api_client.post("/onesheet/ai-instructions", json=body)
    second = api_client.post("/onesheet/ai-instructions", json=body)
    assert first.status_code == 200
    assert second.json()["data"]["discovered_content_variables"] == [{"name": "ASMR"}]
    assert second.json()["data"]["discovered_awareness_levels"] == [{"name": "Curious"}]


def test_ai_instructions_require_onesheet_id(api_client):
    assert api_client.get("/onesheet/ai-instructions").status_code == 400
