"""HTTP client for the hosted backend: edge functions and REST tables."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import PulpaConfig
from ..exceptions import BackendError

logger = logging.getLogger(__name__)


class BackendClient:
    """Thin aiohttp wrapper that turns non-2xx responses into BackendError."""

    def __init__(
        self,
        base_url: str,
        anon_key: str = "",
        access_token: str = "",
        user_id: str = "",
        request_timeout_s: Optional[float] = None,
    ):
        """Initialize backend client.

        Args:
            base_url: Project URL, e.g. https://xyz.supabase.co
            anon_key: Public API key sent as the `apikey` header
            access_token: Signed-in user's JWT; falls back to the anon key
            user_id: Signed-in user's id, used to scope table queries
            request_timeout_s: Total per-request timeout, None for no timeout
        """
        if not base_url:
            raise ValueError("Backend URL is required")
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.user_id = user_id
        self.timeout = aiohttp.ClientTimeout(total=request_timeout_s)

        logger.info(f"BackendClient initialized for {self.base_url}")

    @classmethod
    def from_config(cls, config: PulpaConfig) -> "BackendClient":
        return cls(
            base_url=config.get('backend.url', ''),
            anon_key=config.get('backend.anon_key', ''),
            access_token=config.get('backend.access_token', ''),
            user_id=config.get('backend.user_id', ''),
            request_timeout_s=config.get('backend.request_timeout_s'),
        )

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if self.anon_key:
            headers["apikey"] = self.anon_key
        if extra:
            headers.update(extra)
        return headers

    async def invoke(self, function_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke an edge function and return its JSON object.

        Raises:
            BackendError: On transport failure, non-2xx status or a non-object body
        """
        url = f"{self.base_url}/functions/v1/{function_name}"
        logger.debug(f"Invoking function {function_name}")
        data = await self._request("POST", url, function_name, json=body)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise BackendError(f"{function_name} returned an unexpected payload")
        return data

    async def select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"
        data = await self._request("GET", url, table, params=params)
        return data or []

    async def insert(self, table: str, row: Dict[str, Any], returning: str = "*") -> List[Dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"
        data = await self._request(
            "POST", url, table,
            params={"select": returning},
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return data or []

    async def _request(self, method: str, url: str, label: str,
                       headers: Optional[Dict[str, str]] = None, **kwargs) -> Any:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(method, url, headers=self._headers(headers), **kwargs) as response:
                    if response.status >= 400:
                        error_text = await response.text()
                        raise BackendError(
                            f"{label} failed ({response.status}): {self._error_message(error_text)}",
                            status=response.status,
                        )
                    if response.status == 204:
                        return None
                    return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise BackendError(f"{label} request timed out") from e
        except aiohttp.ClientError as e:
            raise BackendError(f"{label} request failed: {e}") from e
        except ValueError as e:
            raise BackendError(f"{label} returned invalid JSON: {e}") from e

    @staticmethod
    def _error_message(error_text: str) -> str:
        try:
            payload = json.loads(error_text)
        except ValueError:
            return error_text.strip() or "no details"
        if isinstance(payload, dict):
            for key in ("error", "message", "msg"):
                if payload.get(key):
                    return str(payload[key])
        return error_text.strip()
