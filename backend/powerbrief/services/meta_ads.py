from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

import httpx

from powerbrief.config import settings

logger = logging.getLogger("meta.ads")

AD_ACCOUNT_FIELDS = "id,name,account_status,account_id,business_name,currency,timezone_name"
CAMPAIGN_FIELDS = (
    "name,status,objective,buying_type,daily_budget,lifetime_budget,bid_strategy,"
    "start_time,stop_time,created_time,updated_time"
)
ADSET_FIELDS = (
    "name,status,campaign_id,daily_budget,lifetime_budget,bid_strategy,start_time,end_time,"
    "created_time,updated_time,targeting,optimization_goal,billing_event"
)
PAGE_FIELDS = "id,name,category,tasks,instagram_business_account{id,name,username}"
PIXEL_FIELDS = "id,name,creation_time,last_fired_time"
AD_INSIGHT_FIELDS = "spend,impressions,clicks,ctr,cpc,cpm,actions,action_values,purchase_roas"
_MAX_PAGES = 50


class MetaAdsConfigError(RuntimeError):
    pass


class MetaAdsError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None, error_payload: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_payload = error_payload

    @property
    def graph_message(self) -> Optional[str]:
        if isinstance(self.error_payload, dict):
            error = self.error_payload.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                return error["message"]
        return None


def normalize_ad_account_id(ad_account_id: str) -> str:
    if ad_account_id.startswith("act_"):
        return ad_account_id
    return f"act_{ad_account_id}"


def _encode_payload(payload: dict[str, Any]) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
            continue
        if isinstance(value, (dict, list)):
            encoded[key] = json.dumps(value)
            continue
        encoded[key] = value
    return encoded


def _graph_url(path: str, *, api_version: Optional[str] = None, base_url: Optional[str] = None) -> str:
    root = (base_url or settings.META_GRAPH_API_BASE_URL).rstrip("/")
    return f"{root}/{api_version or settings.META_GRAPH_API_VERSION}/{path.lstrip('/')}"


def _send(method: str, url: str, *, timeout: httpx.Timeout, **kwargs) -> dict[str, Any]:
    try:
        response = httpx.request(method, url, timeout=timeout, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        error_payload: Any = None
        try:
            error_payload = exc.response.json()
        except ValueError:
            error_payload = {"text": exc.response.text}
        message = f"Meta Graph API error ({exc.response.status_code})."
        raise MetaAdsError(message, status_code=exc.response.status_code, error_payload=error_payload) from exc
    except httpx.RequestError as exc:
        message = f"Meta Graph API request failed: {exc}"
        raise MetaAdsError(message) from exc

    try:
        return response.json()
    except ValueError as exc:
        message = "Meta Graph API returned a non-JSON response."
        raise MetaAdsError(message) from exc


def fetch_all_pages(fetch_page: Callable[..., dict[str, Any]], *, limit: int = 500) -> list[Any]:
    """Follow cursor pagination until Meta stops returning an `after` cursor."""
    data: list[Any] = []
    cursor: Optional[str] = None
    seen: set[str] = set()
    for _ in range(_MAX_PAGES):
        response = fetch_page(limit=limit, after=cursor)
        page_data = response.get("data") if isinstance(response, dict) else None
        if page_data:
            data.extend(page_data)
        paging = response.get("paging") if isinstance(response, dict) else None
        cursors = paging.get("cursors") if isinstance(paging, dict) else None
        next_cursor = cursors.get("after") if isinstance(cursors, dict) else None
        has_next = isinstance(paging, dict) and bool(paging.get("next"))
        if not next_cursor or not has_next or next_cursor in seen:
            break
        seen.add(next_cursor)
        cursor = next_cursor
    return data


class MetaAdsClient:
    def __init__(self, *, access_token: str, api_version: str, base_url: str | None = None) -> None:
        self.access_token = access_token
        self.api_version = api_version
        self.base_url = (base_url or "https://graph.facebook.com").rstrip("/")
        self.timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS)

    @classmethod
    def for_token(cls, access_token: str) -> "MetaAdsClient":
        if not settings.META_GRAPH_API_VERSION:
            raise MetaAdsConfigError("META_GRAPH_API_VERSION is required to use Meta Ads integration.")
        return cls(
            access_token=access_token,
            api_version=settings.META_GRAPH_API_VERSION,
            base_url=settings.META_GRAPH_API_BASE_URL,
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        files: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = _graph_url(path, api_version=self.api_version, base_url=self.base_url)
        merged_params = {**(params or {}), "access_token": self.access_token}
        return _send(method, url, timeout=self.timeout, params=merged_params, data=data, files=files)

    def upload_image(
        self,
        *,
        ad_account_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> dict[str, Any]:
        path = f"{normalize_ad_account_id(ad_account_id)}/adimages"
        files = {"filename": (filename, content, content_type or "application/octet-stream")}
        return self._request("POST", path, files=files)

    def upload_video(
        self,
        *,
        ad_account_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        name: Optional[str] = None,
    ) -> dict[str, Any]:
        path = f"{normalize_ad_account_id(ad_account_id)}/advideos"
        data = _encode_payload({"name": name}) if name else None
        files = {"source": (filename, content, content_type or "application/octet-stream")}
        return self._request("POST", path, data=data, files=files)

    def create_adcreative(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        path = f"{normalize_ad_account_id(ad_account_id)}/adcreatives"
        return self._request("POST", path, data=_encode_payload(payload))

    def create_ad(self, *, ad_account_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        path = f"{normalize_ad_account_id(ad_account_id)}/ads"
        return self._request("POST", path, data=_encode_payload(payload))

    def get_object_name(self, object_id: str) -> Optional[str]:
        response = self._request("GET", object_id, params={"fields": "name"})
        name = response.get("name")
        return name if isinstance(name, str) else None

    def list_ad_accounts(self) -> list[Any]:
        return fetch_all_pages(lambda **page: self._list_edge("me/adaccounts", fields=AD_ACCOUNT_FIELDS, **page))

    def list_pages(self) -> list[Any]:
        return fetch_all_pages(lambda **page: self._list_edge("me/accounts", fields=PAGE_FIELDS, **page))

    def list_pixels(self, *, ad_account_id: str) -> list[Any]:
        path = f"{normalize_ad_account_id(ad_account_id)}/adspixels"
        return fetch_all_pages(lambda **page: self._list_edge(path, fields=PIXEL_FIELDS, **page))

    def list_campaigns(self, *, ad_account_id: str) -> list[Any]:
        path = f"{normalize_ad_account_id(ad_account_id)}/campaigns"
        return fetch_all_pages(lambda **page: self._list_edge(path, fields=CAMPAIGN_FIELDS, **page))

    def list_adsets(self, *, campaign_id: Optional[str] = None, ad_account_id: Optional[str] = None) -> list[Any]:
        if campaign_id:
            path = f"{campaign_id}/adsets"
        elif ad_account_id:
            path = f"{normalize_ad_account_id(ad_account_id)}/adsets"
        else:
            raise ValueError("campaign_id or ad_account_id is required")
        return fetch_all_pages(lambda **page: self._list_edge(path, fields=ADSET_FIELDS, **page))

    def list_ads_with_insights(self, *, ad_account_id: str, since: str, until: str) -> list[Any]:
        time_range = json.dumps({"since": since, "until": until})
        fields = (
            "id,name,status,effective_status,created_time,adset{id,name},campaign{id,name},"
            "creative{id,title,body,thumbnail_url,video_id,image_url},"
            f"insights.time_range({time_range}){{{AD_INSIGHT_FIELDS}}}"
        )
        path = f"{normalize_ad_account_id(ad_account_id)}/ads"
        return fetch_all_pages(lambda **page: self._list_edge(path, fields=fields, **page), limit=100)

    def get_insights(
        self,
        *,
        ad_account_id: str,
        fields: list[str],
        since: str,
        until: str,
        level: str = "account",
        filtering: Optional[list[dict[str, Any]]] = None,
    ) -> list[Any]:
        params: dict[str, Any] = {
            "fields": ",".join(fields),
            "time_range": json.dumps({"since": since, "until": until}),
            "level": level,
        }
        if filtering:
            params["filtering"] = json.dumps(filtering)
        path = f"{normalize_ad_account_id(ad_account_id)}/insights"
        response = self._request("GET", path, params=params)
        data = response.get("data")
        return data if isinstance(data, list) else []

    def exchange_long_lived_token(self) -> dict[str, Any]:
        return exchange_token(
            {
                "grant_type": "fb_exchange_token",
                "fb_exchange_token": self.access_token,
            }
        )

    def _list_edge(
        self,
        path: str,
        *,
        fields: str,
        limit: Optional[int],
        after: Optional[str],
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"fields": fields}
        if limit is not None:
            params["limit"] = limit
        if after:
            params["after"] = after
        return self._request("GET", path, params=params)


def exchange_token(params: dict[str, Any]) -> dict[str, Any]:
    """Call the OAuth token endpoint with the app credentials merged in."""
    if not settings.META_APP_ID or not settings.META_APP_SECRET:
        raise MetaAdsConfigError("META_APP_ID and META_APP_SECRET are required for Meta OAuth.")
    merged = {**params, "client_id": settings.META_APP_ID, "client_secret": settings.META_APP_SECRET}
    return _send(
        "GET",
        _graph_url("oauth/access_token"),
        timeout=httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS),
        params=merged,
    )


def exchange_code_for_token(code: str) -> dict[str, Any]:
    if not settings.META_OAUTH_REDIRECT_URI:
        raise MetaAdsConfigError("META_OAUTH_REDIRECT_URI is required for Meta OAuth.")
    return exchange_token({"code": code, "redirect_uri": settings.META_OAUTH_REDIRECT_URI})


def get_token_user_id(access_token: str) -> Optional[str]:
    response = MetaAdsClient.for_token(access_token)._request("GET", "me", params={"fields": "id"})
    user_id = response.get("id")
    return str(user_id) if user_id else None
