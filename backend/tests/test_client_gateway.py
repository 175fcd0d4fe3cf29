"""Tests for the HTTP gateway to the backend."""
import asyncio
import json

import httpx
import pytest

from liquidapp.client.gateway import BackendGateway


def _gateway(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BackendGateway("http://backend.test/", http_client=client), client


def test_upload_object_puts_raw_bytes():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["type"] = request.headers["Content-Type"]
        seen["body"] = request.content
        return httpx.Response(201, json={"key": "c1/a.jpg", "size": 3})

    async def scenario():
        gw, client = _gateway(handler)
        await gw.upload_object("c1/a.jpg", b"abc", "image/jpeg")
        await client.aclose()

    asyncio.run(scenario())
    assert seen == {
        "method": "PUT",
        "url": "http://backend.test/api/v1/storage/objects/c1/a.jpg",
        "type": "image/jpeg",
        "body": b"abc",
    }


def test_signed_url_and_analysis_calls():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        if request.url.path.endswith("/signed-url"):
            assert json.loads(request.content) == {"storage_path": "c1/a.jpg", "expires_in": 3600}
            return httpx.Response(200, json={"signedUrl": "http://signed", "expires_in": 3600})
        return httpx.Response(202, json={"success": True, "message": "ok"})

    async def scenario():
        gw, client = _gateway(handler)
        url = await gw.create_signed_url("c1/a.jpg", 3600)
        ack = await gw.queue_analysis({"evidencia_id": "e1", "imagen_url": url, "siniestro_id": "c1"})
        await client.aclose()
        return url, ack

    url, ack = asyncio.run(scenario())
    assert url == "http://signed"
    assert ack["success"] is True
    assert paths == ["/api/v1/storage/signed-url", "/api/v1/queue-analisis"]


def test_error_status_raises():
    def handler(request):
        return httpx.Response(500, json={"error": "x", "code": "persistence_error"})

    async def scenario():
        gw, client = _gateway(handler)
        try:
            await gw.insert_evidence({"siniestro_id": "c1"})
        finally:
            await client.aclose()

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(scenario())
