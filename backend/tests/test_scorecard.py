from powerbrief.db.models import ScorecardMetric
from powerbrief.routers import scorecard as scorecard_router
from powerbrief.services import scorecard

ROAS_FORMULA = [
    {"type": "metric", "value": "purchase_value"},
    {"type": "operator", "value": "/"},
    {"type": "metric", "value": "spend"},
]


class FakeInsightsClient:
    def __init__(self, row):
        self.row = row
        self.calls = []

    def get_insights(self, **kwargs):
        self.calls.append(kwargs)
        return [self.row]


def test_formula_evaluates_left_to_right():
    formula = [
        {"type": "number", "value": "2"},
        {"type": "operator", "value": "+"},
        {"type": "number", "value": "3"},
        {"type": "operator", "value": "*"},
        {"type": "number", "value": "4"},
    ]
    assert scorecard.calculate_formula_value(formula, {}) == 20.0


def test_formula_division_by_zero_yields_zero():
    assert scorecard.calculate_formula_value(ROAS_FORMULA, {"purchase_value": 500.0, "spend": 0.0}) == 0.0
    assert scorecard.calculate_formula_value(ROAS_FORMULA, {"purchase_value": 500.0, "spend": 200.0}) == 2.5
    assert scorecard.base_metric_keys(ROAS_FORMULA) == ["purchase_value", "spend"]


def test_metric_status_thresholds():
    assert scorecard.get_metric_status(3.0, 2.5, "gte") == "on_track"
    assert scorecard.get_metric_status(2.2, 2.5, "gte") == "at_risk"
    assert scorecard.get_metric_status(1.0, 2.5, "gte") == "off_track"
    assert scorecard.get_metric_status(12.0, 10.0, "lte") == "at_risk"
    assert scorecard.get_metric_status(1.0, None, "gte") is None


def test_format_metric_value_by_kind():
    roas = ScorecardMetric(metric_key="purchase_roas", display_name="ROAS", decimal_places=2)
    spend = ScorecardMetric(metric_key="spend", display_name="Spend", is_currency=True, decimal_places=2)
    ctr = ScorecardMetric(metric_key="ctr", display_name="CTR", is_percentage=True, decimal_places=1)

    assert scorecard.format_metric_value(roas, 2.5) == "2.50x"
    assert scorecard.format_metric_value(spend, 1234.5) == "$1,234.50"
    assert scorecard.format_metric_value(ctr, 1.234) == "1.2%"
    assert scorecard.format_metric_value(ctr, None) == "--"


def test_parse_insights_row_reads_action_values():
    row = {
        "spend": "200.00",
        "action_values": [
            {"action_type": "link_click", "value": "5"},
            {"action_type": "omni_purchase", "value": "500"},
        ],
    }
    assert scorecard.parse_insights_row(row, ["purchase_value", "spend", "purchases"]) == {
        "purchase_value": 500.0,
        "spend": 200.0,
        "purchases": 0.0,
    }
    assert scorecard.insight_fields_for(["purchase_value", "purchases", "spend"]) == ["action_values", "actions", "spend"]


def test_create_metric_validates_and_rejects_duplicates(api_client, brand):
    body = {"brandId": brand.id, "metricKey": "roas", "displayName": "ROAS", "formula": ROAS_FORMULA}

    assert api_client.post("/scorecard/metrics", json={**body, "formula": []}).status_code == 400
    assert api_client.post("/scorecard/metrics", json={**body, "displayName": None}).status_code == 400

    created = api_client.post("/scorecard/metrics", json=body)
    assert created.status_code == 201
    assert created.json()["metric_type"] == "custom"
    assert api_client.post("/scorecard/metrics", json=body).status_code == 409


def test_seed_defaults_is_idempotent(api_client, brand):
    first = api_client.post("/scorecard/metrics/defaults", json={"brandId": brand.id}).json()
    second = api_client.post("/scorecard/metrics/defaults", json={"brandId": brand.id}).json()

    assert first["created"] == len(scorecard.PREDEFINED_METRICS)
    assert second["created"] == 0
    assert len(second["metrics"]) == len(scorecard.PREDEFINED_METRICS)


def test_refresh_rejects_inverted_period(api_client, connected_brand):
    response = api_client.post(
        "/scorecard/refresh",
        json={"brandId": connected_brand.id, "periodStart": "2024-02-01", "periodEnd": "2024-01-01"},
    )
    assert response.status_code == 400


def test_refresh_stores_calculated_values(api_client, connected_brand, monkeypatch):
    api_client.post(
        "/scorecard/metrics",
        json={
            "brandId": connected_brand.id,
            "metricKey": "purchase_roas",
            "displayName": "Purchase ROAS",
            "formula": ROAS_FORMULA,
            "goalValue": 2.0,
            "goalOperator": "gte",
        },
    )
    client = FakeInsightsClient(
        {"spend": "200", "action_values": [{"action_type": "omni_purchase", "value": "500"}]}
    )
    monkeypatch.setattr(scorecard_router, "get_meta_client_for_brand", lambda brand: client)

    period = {"periodStart": "2024-01-01", "periodEnd": "2024-01-31"}
    response = api_client.post("/scorecard/refresh", json={"brandId": connected_brand.id, **period})

    assert response.status_code == 200
    result = response.json()["results"][0]
    assert result["success"] is True
    assert result["value"] == 2.5
    assert result["formattedValue"] == "2.50x"
    assert result["status"] == "on_track"
    assert client.calls[0]["ad_account_id"] == "act_123"
    assert client.calls[0]["since"] == "2024-01-01"

    data = api_client.get("/scorecard/data", params={"brandId": connected_brand.id, **period}).json()["data"]
    assert len(data) == 1
    assert data[0]["value"] == 2.5
    assert data[0]["raw_data"] == {"purchase_value": 500.0, "spend": 200.0}


def test_meta_insights(api_client, connected_brand, monkeypatch):
    client = FakeInsightsClient({"spend": "80.5", "action_values": [{"action_type": "omni_purchase", "value": "161"}]})
    monkeypatch.setattr(scorecard_router, "get_meta_client_for_brand", lambda brand: client)

    response = api_client.post(
        "/scorecard/meta-insights",
        json={
            "brandId": connected_brand.id,
            "dateRange": {"since": "2024-03-01", "until": "2024-03-31"},
            "metrics": ["spend", "purchase_value"],
            "campaignNameFilters": [{"operator": "not_contains", "value": "Retargeting"}, {"value": ""}],
        },
    )
    assert response.status_code == 200
    assert response.json() == {
        "adAccountId": "act_123",
        "dateRange": {"since": "2024-03-01", "until": "2024-03-31"},
        "values": {"spend": 80.5, "purchase_value": 161.0},
    }
    call = client.calls[0]
    assert call["level"] == "account"
    assert call["until"] == "2024-03-31"
    assert call["filtering"] == [{"field": "campaign.name", "operator": "NOT_CONTAIN", "value": "Retargeting"}]


def test_meta_insights_requires_metrics(api_client, connected_brand):
    response = api_client.post(
        "/scorecard/meta-insights",
        json={"brandId": connected_brand.id, "dateRange": {"since": "2024-03-01", "until": "2024-03-31"}},
    )
    assert response.status_code == 400
