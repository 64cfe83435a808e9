"""Thin client for the WHO ICD-11 API.

Only what the local-first lookup path needs: a cached client-credentials
token, entity retrieval and search. Every failure surfaces as
:class:`UpstreamError`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx

from app.core.config import Settings, settings as default_settings
from app.services.errors import UpstreamError

logger = logging.getLogger(__name__)

TOKEN_SCOPE = "icdapi_access"
# Refresh slightly before the advertised expiry
TOKEN_EXPIRY_MARGIN_SECONDS = 30

API_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en",
    "API-Version": "v2",
}


def _label(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("@value")
    return value


def entity_to_fields(entity_id: str, data: dict[str, Any], *, module: str = "tm2") -> dict[str, Any]:
    """Map a WHO entity payload onto ICD11Code column values."""
    breadcrumb = data.get("breadcrumb") or []
    parents = data.get("parent") or []
    synonyms = [
        label
        for label in (_label(s.get("label")) for s in data.get("synonym") or [] if isinstance(s, dict))
        if label
    ]
    return {
        "icd_id": entity_id,
        "code": data.get("code") or None,
        "title": _label(data.get("title")) or "Unknown",
        "definition": _label(data.get("definition")),
        "module": module,
        "parent_id": str(parents[0]).rstrip("/").rsplit("/", 1)[-1] if parents else None,
        "level": max(0, len(breadcrumb) - 1) if isinstance(breadcrumb, list) else 0,
        "synonyms": synonyms,
    }


def search_result_to_fields(data: dict[str, Any], *, module: str = "tm2") -> dict[str, Any] | None:
    """Map one flat ``destinationEntities`` item onto ICD11Code column values."""
    entity_id = str(data.get("id") or "").rstrip("/").rsplit("/", 1)[-1]
    title = _label(data.get("title"))
    if not entity_id or not title:
        return None
    return {
        "icd_id": entity_id,
        "code": data.get("theCode") or None,
        "title": title,
        "definition": None,
        "module": module,
        "parent_id": None,
        "level": 0,
        "synonyms": [],
    }


class WhoIcdClient:
    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or default_settings
        self._clock = clock
        self._client = httpx.Client(
            base_url=self.config.icd11_api_url.rstrip("/"),
            timeout=self.config.icd11_timeout_seconds,
            transport=transport,
        )
        self._token: Optional[str] = None
        self._token_expiry = 0.0

    @property
    def enabled(self) -> bool:
        return self.config.upstream_lookup_enabled

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "WhoIcdClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def access_token(self) -> str:
        now = self._clock()
        if self._token and now < self._token_expiry:
            return self._token

        if not self.enabled:
            raise UpstreamError("ICD-11 API credentials are not configured")

        try:
            response = self._client.post(
                self.config.icd11_token_url,
                data={"grant_type": "client_credentials", "scope": TOKEN_SCOPE},
                auth=(self.config.icd11_client_id, self.config.icd11_client_secret),
            )
            response.raise_for_status()
            payload = response.json()
            token = payload["access_token"]
            expires_in = float(payload.get("expires_in", 3600))
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.exception("Failed to obtain ICD-11 access token")
            raise UpstreamError("ICD-11 authentication failed") from exc

        self._token = token
        self._token_expiry = now + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
        return token

    def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        token = self.access_token()
        headers = {**API_HEADERS, "Authorization": f"Bearer {token}"}
        try:
            response = self._client.get(path, params=params, headers=headers)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("ICD-11 request failed path=%s", path)
            raise UpstreamError(f"ICD-11 request failed: {path}") from exc

    def get_entity(self, entity_id: str) -> dict[str, Any]:
        return self._get(f"/entity/{entity_id}")

    def search(self, q: str, *, limit: int = 20) -> list[dict[str, Any]]:
        data = self._get(
            "/entity/search",
            params={
                "q": q,
                "subtreeFilterUsesFoundationDescendants": "false",
                "includeKeywordResult": "true",
                "useFlexisearch": "false",
                "flatResults": "true",
                "highlightingEnabled": "false",
            },
        )
        return list((data or {}).get("destinationEntities") or [])[:limit]
