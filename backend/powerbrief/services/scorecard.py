from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy.orm import Session

from powerbrief.db.enums import ScorecardMetricTypeEnum
from powerbrief.db.models import ScorecardMetric, utcnow
from powerbrief.db.repositories.scorecard import ScorecardRepository
from powerbrief.services.meta_ads import MetaAdsClient, MetaAdsError

logger = logging.getLogger(__name__)


def _metric(key: str) -> dict[str, str]:
    return {"type": "metric", "value": key}


def _op(symbol: str) -> dict[str, str]:
    return {"type": "operator", "value": symbol}


PREDEFINED_METRICS: list[dict[str, Any]] = [
    {
        "metric_key": "purchase_roas",
        "display_name": "Purchase ROAS",
        "description": "Return on ad spend from all purchase sources",
        "formula": [_metric("purchase_value"), _op("/"), _metric("spend")],
        "decimal_places": 2,
        "goal_operator": "gte",
    },
    {
        "metric_key": "purchase_value",
        "display_name": "Purchase Value",
        "description": "Total value from all purchase sources",
        "formula": [_metric("purchase_value")],
        "is_currency": True,
        "decimal_places": 2,
        "goal_operator": "gte",
    },
    {
        "metric_key": "revenue",
        "display_name": "Revenue",
        "description": "Total revenue from all purchase sources",
        "formula": [_metric("purchase_value")],
        "is_currency": True,
        "decimal_places": 2,
        "goal_operator": "gte",
    },
    {
        "metric_key": "spend",
        "display_name": "Ad Spend",
        "description": "Total amount spent on ads",
        "formula": [_metric("spend")],
        "is_currency": True,
        "decimal_places": 2,
        "goal_operator": "lte",
    },
    {
        "metric_key": "purchases",
        "display_name": "Purchases",
        "description": "Total number of purchases",
        "formula": [_metric("purchases")],
        "decimal_places": 0,
        "goal_operator": "gte",
    },
    {
        "metric_key": "cost_per_purchase",
        "display_name": "Cost per Purchase",
        "description": "Average cost for each purchase",
        "formula": [_metric("spend"), _op("/"), _metric("purchases")],
        "is_currency": True,
        "decimal_places": 2,
        "goal_operator": "lte",
    },
    {
        "metric_key": "ctr",
        "display_name": "CTR (All)",
        "description": "Click-through rate for all clicks",
        "formula": [_metric("ctr")],
        "is_percentage": True,
        "decimal_places": 2,
        "goal_operator": "gte",
    },
    {
        "metric_key": "link_ctr",
        "display_name": "Link CTR",
        "description": "Click-through rate for link clicks only",
        "formula": [
            _metric("link_clicks"),
            _op("/"),
            _metric("impressions"),
            _op("*"),
            {"type": "number", "value": "100"},
        ],
        "is_percentage": True,
        "decimal_places": 2,
        "goal_operator": "gte",
    },
    {
        "metric_key": "cpm",
        "display_name": "CPM",
        "description": "Cost per 1,000 impressions",
        "formula": [_metric("cpm")],
        "is_currency": True,
        "decimal_places": 2,
        "goal_operator": "lte",
    },
    {
        "metric_key": "cpc",
        "display_name": "CPC (All)",
        "description": "Cost per click (all clicks)",
        "formula": [_metric("cpc")],
        "is_currency": True,
        "decimal_places": 2,
        "goal_operator": "lte",
    },
]

# Scorecard metric key -> Insights field. "field:action_type" entries live inside action lists.
META_FIELD_MAP: dict[str, str] = {
    "spend": "spend",
    "impressions": "impressions",
    "clicks": "clicks",
    "cpm": "cpm",
    "cpc": "cpc",
    "ctr": "ctr",
    "conversions": "conversions",
    "purchase_roas": "purchase_roas:omni_purchase",
    "purchases": "actions:omni_purchase",
    "purchase_value": "action_values:omni_purchase",
    "link_clicks": "inline_link_clicks",
    "unique_link_clicks": "unique_inline_link_clicks",
    "cost_per_unique_link_click": "cost_per_unique_inline_link_click",
}


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def base_metric_keys(formula: list[dict[str, Any]]) -> list[str]:
    keys: list[str] = []
    for item in formula or []:
        if item.get("type") == "metric" and item.get("value") and item["value"] not in keys:
            keys.append(item["value"])
    return keys


def calculate_formula_value(formula: list[dict[str, Any]], values: dict[str, float]) -> float:
    """Evaluate strictly left to right; there is no operator precedence."""
    tokens: list[Any] = []
    for item in formula or []:
        kind = item.get("type")
        if kind == "metric":
            tokens.append(_to_float(values.get(item.get("value"), 0)))
        elif kind == "number":
            tokens.append(_to_float(item.get("value")))
        elif kind == "operator":
            tokens.append(item.get("value"))
    if not tokens:
        return 0.0

    result = _to_float(tokens[0])
    for index in range(1, len(tokens) - 1, 2):
        operator = tokens[index]
        operand = _to_float(tokens[index + 1])
        if operator == "+":
            result += operand
        elif operator == "-":
            result -= operand
        elif operator == "*":
            result *= operand
        elif operator == "/":
            result = result / operand if operand != 0 else 0.0
    return result


def get_metric_status(value: Optional[float], goal: Optional[float], operator: Optional[str]) -> Optional[str]:
    if value is None or not goal or not operator:
        return None
    comparisons = {
        "gte": value >= goal,
        "gt": value > goal,
        "lte": value <= goal,
        "lt": value < goal,
        "eq": value == goal,
    }
    if comparisons.get(operator, value >= goal):
        return "on_track"
    percentage_off = abs((value - goal) / goal) * 100
    return "off_track" if percentage_off > 20 else "at_risk"


def format_metric_value(metric: ScorecardMetric, value: Optional[float]) -> str:
    if value is None:
        return "--"
    places = metric.decimal_places if metric.decimal_places is not None else 2
    if metric.is_percentage:
        return f"{value:.{places}f}%"
    if metric.is_currency:
        return f"${value:,.{places}f}"
    if "roas" in metric.metric_key:
        return f"{value:.{places}f}x"
    return f"{value:,.{places}f}"


def insight_fields_for(metric_keys: list[str]) -> list[str]:
    fields: list[str] = []
    for key in metric_keys:
        meta_field = META_FIELD_MAP.get(key, key)
        base_field = meta_field.split(":", 1)[0]
        if base_field not in fields:
            fields.append(base_field)
    return fields


def parse_insights_row(row: dict[str, Any], metric_keys: list[str]) -> dict[str, float]:
    values: dict[str, float] = {}
    for key in metric_keys:
        meta_field = META_FIELD_MAP.get(key, key)
        if ":" in meta_field:
            field, action_type = meta_field.split(":", 1)
            entries = row.get(field) or []
            match = next(
                (entry for entry in entries if isinstance(entry, dict) and entry.get("action_type") == action_type),
                None,
            )
            values[key] = _to_float(match.get("value")) if match else 0.0
        else:
            values[key] = _to_float(row.get(meta_field))
    return values


def campaign_filters(filters: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
    filtering = []
    for entry in filters or []:
        if entry.get("value"):
            filtering.append(
                {
                    "field": "campaign.name",
                    "operator": "CONTAIN" if entry.get("operator", "contains") == "contains" else "NOT_CONTAIN",
                    "value": entry["value"],
                }
            )
    return filtering


def fetch_meta_values(
    client: MetaAdsClient,
    *,
    ad_account_id: str,
    metric_keys: list[str],
    since: str,
    until: str,
    name_filters: Optional[list[dict[str, Any]]] = None,
) -> dict[str, float]:
    rows = client.get_insights(
        ad_account_id=ad_account_id,
        fields=insight_fields_for(metric_keys),
        since=since,
        until=until,
        level="account",
        filtering=campaign_filters(name_filters),
    )
    if not rows:
        return {key: 0.0 for key in metric_keys}
    return parse_insights_row(rows[0], metric_keys)


def seed_default_metrics(session: Session, *, brand_id: str, user_id: str) -> list[ScorecardMetric]:
    repo = ScorecardRepository(session)
    created = []
    for order, definition in enumerate(PREDEFINED_METRICS):
        if repo.get_metric_by_key(brand_id, definition["metric_key"]):
            continue
        created.append(
            repo.create_metric(
                brand_id,
                user_id,
                metric_type=ScorecardMetricTypeEnum.predefined,
                display_order=order,
                **definition,
            )
        )
    return created


def refresh_metrics(
    session: Session,
    *,
    client: MetaAdsClient,
    ad_account_id: str,
    metrics: list[ScorecardMetric],
    period_start: date,
    period_end: date,
) -> list[dict[str, Any]]:
    repo = ScorecardRepository(session)
    results: list[dict[str, Any]] = []
    for metric in metrics:
        keys = base_metric_keys(metric.formula)
        if not keys:
            results.append({"metricId": metric.id, "success": False, "error": "No base metrics found in formula"})
            continue
        try:
            values = fetch_meta_values(
                client,
                ad_account_id=ad_account_id,
                metric_keys=keys,
                since=period_start.isoformat(),
                until=period_end.isoformat(),
                name_filters=metric.campaign_name_filters,
            )
        except MetaAdsError as exc:
            logger.warning("Scorecard insights fetch failed", extra={"metric_id": metric.id}, exc_info=True)
            results.append({"metricId": metric.id, "success": False, "error": exc.graph_message or str(exc)})
            continue

        value = calculate_formula_value(metric.formula, values)
        status = get_metric_status(value, metric.goal_value, metric.goal_operator)
        formatted = format_metric_value(metric, value)
        repo.upsert_data(
            metric=metric,
            period_start=period_start,
            period_end=period_end,
            value=value,
            formatted_value=formatted,
            status=status,
            raw_data=values,
            calculated_at=utcnow(),
        )
        results.append(
            {"metricId": metric.id, "success": True, "value": value, "formattedValue": formatted, "status": status}
        )
    return results
