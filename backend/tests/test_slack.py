from powerbrief.routers import slack as slack_router
from powerbrief.services import slack

WEBHOOK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


def test_save_settings_requires_slack_webhook(api_client, brand):
    response = api_client.post(
        "/slack/save-settings",
        json={"brandId": brand.id, "webhookUrl": "https://example.com/hook", "enabled": True},
    )
    assert response.status_code == 400


def test_save_settings_keeps_known_channel_keys(api_client, brand):
    response = api_client.post(
        "/slack/save-settings",
        json={
            "brandId": brand.id,
            "webhookUrl": WEBHOOK_URL,
            "channelName": "marketing",
            "enabled": True,
            "channelConfig": {"default": "general", "ad_launch": "launches", "unknown_event": "x"},
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["enabled"] is True
    assert body["channelConfig"] == {"default": "general", "ad_launch": "launches"}


def test_resolve_channel_prefers_event_then_default(brand):
    brand.slack_channel_name = "fallback"
    brand.slack_channel_config = {"ad_launch": "launches"}
    assert slack.resolve_channel(brand, "ad_launch") == "#launches"
    assert slack.resolve_channel(brand, "concept_approval") == "#fallback"

    brand.slack_channel_config = {"default": "#general"}
    assert slack.resolve_channel(brand, "concept_approval") == "#general"


def test_notify_skips_when_disabled(brand, monkeypatch):
    calls = []
    monkeypatch.setattr(slack, "post_webhook", lambda url, message: calls.append((url, message)))
    brand.slack_webhook_url = WEBHOOK_URL
    brand.slack_notifications_enabled = False

    assert slack.notify(brand, {"text": "hi"}, event="ad_launch") is False
    assert calls == []

    brand.slack_notifications_enabled = True
    brand.slack_channel_config = {"ad_launch": "launches"}
    assert slack.notify(brand, {"text": "hi"}, event="ad_launch") is True
    assert calls == [(WEBHOOK_URL, {"text": "hi", "channel": "#launches"})]


def test_test_webhook_maps_slack_failure_to_bad_gateway(api_client, monkeypatch):
    def failing_post(url, message):
        raise slack.SlackError("channel_not_found", status_code=404)

    monkeypatch.setattr(slack_router.slack, "post_webhook", failing_post)
    response = api_client.post("/slack/test-webhook", json={"webhookUrl": WEBHOOK_URL, "channelName": "ops"})
    assert response.status_code == 502


def test_test_webhook_posts_to_channel(api_client, monkeypatch):
    sent = []
    monkeypatch.setattr(slack_router.slack, "post_webhook", lambda url, message: sent.append(message))
    response = api_client.post("/slack/test-webhook", json={"webhookUrl": WEBHOOK_URL, "channelName": "ops"})
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Test message sent successfully"}
    assert sent[0]["channel"] == "#ops"


def test_slack_ad_launch_blocks():
    message = slack.build_ad_launch_message(
        brand_name="Acme Skincare",
        batch_name=None,
        campaign_id="cmp-1",
        ad_set_id="adset-1",
        campaign_name="Spring Sale",
        ad_set_name=None,
        results=[
            {"adName": "Hero 9x16", "status": "AD_CREATED"},
            {"adName": "Hero 1x1", "status": "ERROR", "error": "Invalid image"},
        ],
    )
    assert message["text"] == "New ad batch published for Acme Skincare: Partial Success"
    attachment = message["attachments"][0]
    assert attachment["color"] == "warning"
    blocks = attachment["blocks"]
    summary = [field["text"] for field in blocks[1]["fields"]]
    assert summary == ["*Brand:*\nAcme Skincare", "*Batch:*\nUnnamed Batch", "*Campaign:*\nSpring Sale", "*Ad Set:*\nAd Set adset-1"]
    assert [field["text"] for field in blocks[2]["fields"]][:3] == ["*Total Ads:*\n2", "*Successful:*\n1", "*Failed:*\n1"]
    assert blocks[3]["text"]["text"] == "*Published Ads:*\n• Hero 9x16"
    assert blocks[4]["text"]["text"] == "*Failed Ads:*\n• Hero 1x1 (Invalid image)"
    button = blocks[5]["elements"][0]
    assert button["url"].endswith("selected_adset_id=adset-1&selected_campaign_id=cmp-1")


def test_slack_ad_launch_all_failed_without_ids():
    message = slack.build_ad_launch_message(
        brand_name="Acme",
        batch_name="June",
        campaign_id=None,
        ad_set_id=None,
        campaign_name=None,
        ad_set_name=None,
        results=[{"adName": "Only", "status": "ERROR"}],
    )
    attachment = message["attachments"][0]
    assert attachment["color"] == "danger"
    assert not any(block["type"] == "actions" for block in attachment["blocks"])


def test_notifications_test_endpoint(api_client, db_session, brand, monkeypatch):
    brand.slack_webhook_url = WEBHOOK_URL
    brand.slack_channel_name = "general"
    brand.slack_channel_config = {"ad_launch": "launches", "concept_approval": "approvals"}
    db_session.commit()

    sent = []

    def fake_post(url, message):
        if message.get("channel") == "#approvals":
            raise slack.SlackError("channel_not_found", status_code=404)
        sent.append(message)

    monkeypatch.setattr(slack_router.slack, "post_webhook", fake_post)
    response = api_client.post("/slack/test-notifications", json={"brandId": brand.id})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    results = {item["event"]: item for item in body["results"]}
    assert set(results) == {"concept_approval", "ad_launch"}
    assert results["ad_launch"] == {"event": "ad_launch", "channel": "#launches", "success": True}
    assert results["concept_approval"]["success"] is False
    assert sent[0]["channel"] == "#launches"


def test_notifications_test_endpoint_requires_webhook(api_client, brand):
    response = api_client.post("/slack/test-notifications", json={"brandId": brand.id})
    assert response.status_code == 400
