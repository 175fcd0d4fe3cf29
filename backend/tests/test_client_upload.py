"""Tests for the client upload coordinator."""
import asyncio
import re

import httpx
import pytest

from liquidapp.client.state import NoResult, Pending, Resolved
from liquidapp.client.upload import (
    EvidenceUploadCoordinator,
    Geolocation,
    UploadOptions,
    build_object_key,
)
from liquidapp.errors import MetadataPersistError, SignedUrlError, StorageWriteError


def _http_error(status=500):
    request = httpx.Request("POST", "http://backend.test")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(status, request=request))


class FakeGateway:
    def __init__(self):
        self.calls = []
        self.fail = {}
        self.signed_url = "http://backend.test/signed"
        self.analysis_body = {"success": True, "analisis": {"id": "a1", "severidad": "leve"}}
        self.queue_gate = None

    def _step(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]

    async def upload_object(self, key, data, content_type):
        self._step("upload", key, content_type)

    async def insert_evidence(self, fields):
        self._step("insert", fields)
        return {"id": "e1", **fields}

    async def create_signed_url(self, key, expires_in):
        self._step("sign", key, expires_in)
        return self.signed_url

    async def analyze(self, payload):
        self._step("analyze", payload)
        return self.analysis_body

    async def queue_analysis(self, payload):
        self._step("queue", payload)
        if self.queue_gate is not None:
            await self.queue_gate.wait()
        return {"success": True}


def _run(coro):
    return asyncio.run(coro)


OPTIONS = UploadOptions(claim_id="c1", description="front", geolocation=Geolocation(-33.4, -70.6, 12.0), order=2)


def test_object_key_format():
    key = build_object_key("c1", "IMG_0001.JPG", now_ms=1700000000000)
    assert re.fullmatch(r"c1/1700000000000-[0-9a-f]{8}\.jpg", key)
    assert build_object_key("c1", "sin_extension").endswith(".jpg")
    assert build_object_key("c1", "a", now_ms=1) != build_object_key("c1", "a", now_ms=1)


def test_sync_success_runs_steps_in_order():
    gw = FakeGateway()
    result = _run(EvidenceUploadCoordinator(gw).upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS))

    assert [c[0] for c in gw.calls] == ["upload", "insert", "sign", "analyze"]
    fields = gw.calls[1][1]
    assert fields["storage_path"] == gw.calls[0][1]
    assert fields["latitud"] == -33.4
    assert fields["precision_metros"] == 12.0
    assert fields["orden"] == 2
    assert fields["tamano_bytes"] == 3
    assert gw.calls[2][2] == 3600
    assert gw.calls[3][1] == {"evidencia_id": "e1", "imagen_url": gw.signed_url, "siniestro_id": "c1"}

    assert result.analyzing is False
    assert result.analysis == Resolved({"id": "a1", "severidad": "leve"})


def test_storage_failure_persists_nothing():
    gw = FakeGateway()
    gw.fail["upload"] = httpx.ConnectError("offline")
    with pytest.raises(StorageWriteError):
        _run(EvidenceUploadCoordinator(gw).upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS))
    assert [c[0] for c in gw.calls] == ["upload"]


def test_metadata_failure_is_reported(caplog):
    gw = FakeGateway()
    gw.fail["insert"] = _http_error()
    with pytest.raises(MetadataPersistError):
        _run(EvidenceUploadCoordinator(gw).upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS))
    assert "orphaned" in caplog.text


def test_signed_url_failure_never_analyses():
    gw = FakeGateway()
    gw.signed_url = None
    with pytest.raises(SignedUrlError):
        _run(EvidenceUploadCoordinator(gw).upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS))
    assert "analyze" not in [c[0] for c in gw.calls]


def test_sync_analysis_failure_is_no_result():
    gw = FakeGateway()
    gw.fail["analyze"] = _http_error(500)
    result = _run(EvidenceUploadCoordinator(gw).upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS))
    assert isinstance(result.analysis, NoResult)
    assert result.analyzing is False


def test_sync_unsuccessful_body_is_no_result():
    gw = FakeGateway()
    gw.analysis_body = {"success": False, "error": "x"}
    result = _run(EvidenceUploadCoordinator(gw).upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS))
    assert result.analysis == NoResult("x")


def test_queued_returns_pending_and_dispatches():
    async def scenario():
        gw = FakeGateway()
        coord = EvidenceUploadCoordinator(gw)
        result = await coord.upload_and_analyze(b"img", "f.jpg", "image/jpeg", OPTIONS, queued=True)
        assert result.analyzing is True
        assert isinstance(result.analysis, Pending)
        await coord.inflight("e1")
        assert gw.calls[-1][0] == "queue"
        assert coord.inflight("e1") is None

    _run(scenario())


def test_newer_dispatch_cancels_older():
    async def scenario():
        gw = FakeGateway()
        gw.queue_gate = asyncio.Event()
        coord = EvidenceUploadCoordinator(gw)
        payload = {"evidencia_id": "e1", "imagen_url": "u", "siniestro_id": "c1"}

        first = coord.dispatch_queued(payload)
        await asyncio.sleep(0)
        second = coord.dispatch_queued(payload)
        assert coord.inflight("e1") is second

        gw.queue_gate.set()
        assert await second is True
        await asyncio.gather(first, return_exceptions=True)
        assert first.cancelled()
        assert coord.inflight("e1") is None

    _run(scenario())


def test_queue_failure_reports_no_result():
    async def scenario():
        failures = []
        gw = FakeGateway()
        gw.fail["queue"] = _http_error(400)
        coord = EvidenceUploadCoordinator(gw, on_queue_failed=lambda eid, reason: failures.append(eid))
        task = coord.dispatch_queued({"evidencia_id": "e1", "imagen_url": "u", "siniestro_id": "c1"})
        assert await task is False
        assert failures == ["e1"]

    _run(scenario())


def test_aclose_cancels_inflight():
    async def scenario():
        gw = FakeGateway()
        gw.queue_gate = asyncio.Event()
        coord = EvidenceUploadCoordinator(gw)
        task = coord.dispatch_queued({"evidencia_id": "e1", "imagen_url": "u", "siniestro_id": "c1"})
        await asyncio.sleep(0)
        await coord.aclose()
        assert task.cancelled()

    _run(scenario())
