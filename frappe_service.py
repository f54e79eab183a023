"""
Frappe REST client used to look up jobs and job updates.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

import config

logger = logging.getLogger(__name__)


class FrappeError(Exception):
    """Raised when the Frappe API cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class FrappeClient:
    """Minimal async client for the Frappe ``/api/resource`` endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        timeout: float = 10.0,
        retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.retries = retries
        self._transport = transport

    @classmethod
    def from_config(cls) -> "FrappeClient":
        return cls(
            base_url=config.FRAPPE_BASE_URL,
            api_key=config.FRAPPE_API_KEY,
            api_secret=config.FRAPPE_API_SECRET,
            timeout=config.FRAPPE_TIMEOUT_S,
            retries=config.FRAPPE_RETRIES,
        )

    @property
    def _headers(self) -> Dict[str, str]:
        # Frappe token auth: "token API_KEY:API_SECRET"
        return {
            "Authorization": f"token {self.api_key}:{self.api_secret}",
            "Accept": "application/json",
        }

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET with a simple retry on network errors and 5xx responses."""
        url = f"{self.base_url}{path}"
        params = {k: v for k, v in params.items() if v is not None}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.retries + 1):
                try:
                    r = await client.get(url, params=params, headers=self._headers)
                except httpx.HTTPError as e:
                    if attempt < self.retries:
                        await asyncio.sleep(0.25 * (attempt + 1))
                        continue
                    raise FrappeError(f"Request to {path} failed: {e}") from e

                if 500 <= r.status_code <= 599 and attempt < self.retries:
                    logger.warning("Frappe %s answered %s, retrying", path, r.status_code)
                    await asyncio.sleep(0.25 * (attempt + 1))
                    continue
                if r.status_code != 200:
                    raise FrappeError(f"HTTP {r.status_code} from {path}", status_code=r.status_code, body=r.text)
                try:
                    return r.json() if r.content else {}
                except ValueError as e:
                    raise FrappeError(f"Invalid JSON from {path}", status_code=r.status_code, body=r.text) from e
        raise FrappeError(f"Request to {path} failed after retries")

    async def get_doc(self, doctype: str, name: str, fields: Optional[List[str]] = None) -> Dict[str, Any]:
        path = f"/api/resource/{quote(doctype, safe='')}/{quote(name, safe='')}"
        data = await self._get_json(path, {"fields": json.dumps(fields or ["*"])})
        return data.get("data") or {}

    async def get_list(
        self,
        doctype: str,
        filters: Optional[List[List[Any]]] = None,
        fields: Optional[List[str]] = None,
        order_by: Optional[str] = None,
        limit_page_length: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params = {
            "fields": json.dumps(fields or ["*"]),
            "filters": json.dumps(filters) if filters else None,
            "order_by": order_by,
            "limit_page_length": limit_page_length,
        }
        data = await self._get_json(f"/api/resource/{quote(doctype, safe='')}", params)
        return data.get("data") or []
