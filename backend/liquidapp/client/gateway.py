"""HTTP gateway from the capture client to the LiquidApp backend.

Each method maps to one backend operation and raises the transport error
(httpx.HTTPError, or ValueError for a non-JSON body) unchanged. The upload
coordinator decides what each failure means for the evidence pipeline.
"""
from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

_TIMEOUT = 60.0


class BackendGateway:
    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"X-API-Key": api_key} if api_key else {}
        self._client = http_client or httpx.AsyncClient(timeout=timeout, headers=headers)
        self._owns_client = http_client is None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    async def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = await self._client.post(self._url(path), json=body)
        resp.raise_for_status()
        return resp.json()

    async def create_claim(self, **fields: Any) -> dict[str, Any]:
        return await self._post_json("/siniestros", fields)

    async def upload_object(self, key: str, data: bytes, content_type: str) -> None:
        resp = await self._client.put(
            self._url(f"/storage/objects/{quote(key)}"),
            content=data,
            headers={"Content-Type": content_type},
        )
        resp.raise_for_status()

    async def insert_evidence(self, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._post_json("/evidencias", fields)

    async def create_signed_url(self, key: str, expires_in: int) -> str | None:
        data = await self._post_json(
            "/storage/signed-url", {"storage_path": key, "expires_in": expires_in}
        )
        return data.get("signedUrl")

    async def analyze(self, payload: dict[str, str]) -> dict[str, Any]:
        """Synchronous analysis; returns ``{"success", "analisis", "resultado"}``."""
        return await self._post_json("/analizar-evidencia", payload)

    async def queue_analysis(self, payload: dict[str, str]) -> dict[str, Any]:
        return await self._post_json("/queue-analisis", payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
