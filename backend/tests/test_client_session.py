"""Tests for a claim capture session: uploads plus push-channel outcomes."""
import asyncio

import httpx

from liquidapp.client.session import REQUIRED_VIEWS, ClaimSession
from liquidapp.client.state import Lifecycle, NoResult, Resolved
from liquidapp.client.upload import EvidenceUploadCoordinator
from liquidapp.modules.realtime import ANALYSIS_FAILED, ANALYSIS_INSERTED

ANALYSIS = {"id": "a1", "severidad": "moderado", "nivel_fraude": "bajo", "costo_estimado_min": 100,
            "costo_estimado_max": 200}


class SequenceGateway:
    """Issues e1, e2, ... as evidence ids and answers analyses with ANALYSIS."""

    def __init__(self, fail_upload=False):
        self.count = 0
        self.fail_upload = fail_upload
        self.queued = []

    async def upload_object(self, key, data, content_type):
        if self.fail_upload:
            raise httpx.ConnectError("offline")

    async def insert_evidence(self, fields):
        self.count += 1
        return {"id": f"e{self.count}", **fields}

    async def create_signed_url(self, key, expires_in):
        return "http://signed"

    async def analyze(self, payload):
        return {"success": True, "analisis": dict(ANALYSIS, evidencia_id=payload["evidencia_id"])}

    async def queue_analysis(self, payload):
        self.queued.append(payload["evidencia_id"])
        return {"success": True}


def _session(queued=True, **kw):
    gw = SequenceGateway(**kw)
    return ClaimSession("c1", EvidenceUploadCoordinator(gw), queued=queued), gw


async def _events(*events):
    for e in events:
        yield e


def _inserted(evidence_id):
    return {"type": ANALYSIS_INSERTED, "claim_id": "c1", "evidence_id": evidence_id,
            "analysis": dict(ANALYSIS, evidencia_id=evidence_id)}


def test_channels_yield_identical_state():
    async def scenario():
        sync_session, _ = _session(queued=False)
        await sync_session.add_evidence(b"x", "f.jpg", "image/jpeg", tag="front")

        queued_session, gw = _session(queued=True)
        await queued_session.add_evidence(b"x", "f.jpg", "image/jpeg", tag="front")
        await asyncio.sleep(0)
        assert queued_session.items[0].lifecycle == Lifecycle.UPLOADED_ANALYZING
        await queued_session.consume_events(_events(_inserted("e1")))

        return sync_session.items[0], queued_session.items[0]

    sync_item, queued_item = asyncio.run(scenario())
    assert sync_item.analysis == queued_item.analysis
    assert sync_item.lifecycle == queued_item.lifecycle == Lifecycle.RESOLVED


def test_failed_event_marks_no_result():
    async def scenario():
        session, _ = _session()
        await session.add_evidence(b"x", "f.jpg", "image/jpeg", tag="front")
        session.handle_event({"type": ANALYSIS_FAILED, "claim_id": "c1", "evidence_id": "e1",
                              "error": "Error al procesar la respuesta de la IA"})
        return session.items[0]

    item = asyncio.run(scenario())
    assert item.analysis == NoResult("Error al procesar la respuesta de la IA")


def test_events_for_other_claims_are_ignored():
    session, _ = _session()
    assert session.handle_event(dict(_inserted("e1"), claim_id="c2")) is False
    assert session.handle_event({"type": "ping"}) is False


def test_events_for_evidence_from_elsewhere_are_dropped():
    async def scenario():
        session, _ = _session()
        await session.add_evidence(b"x", "f.jpg", "image/jpeg", tag="front")
        for i in range(1000):
            session.handle_event(_inserted(f"foreign-{i}"))
        return session

    session = asyncio.run(scenario())
    assert session.machine._held == {}
    assert [item.evidence_id for item in session.items] == ["e1"]


def test_retake_gets_a_fresh_order():
    async def scenario():
        session, gw = _session()
        await session.add_evidence(b"x", "front.jpg", "image/jpeg", tag="front")
        await session.add_evidence(b"x", "right.jpg", "image/jpeg", tag="right")
        session.retake("front")
        await session.add_evidence(b"x", "front.jpg", "image/jpeg", tag="front")
        return session

    session = asyncio.run(scenario())
    orders = [(item.tag, item.evidence["orden"]) for item in session.items]
    assert orders == [("right", 1), ("front", 2)]


def test_upload_failure_leaves_no_item():
    async def scenario():
        session, _ = _session(fail_upload=True)
        assert await session.add_evidence(b"x", "f.jpg", "image/jpeg", tag="front") is None
        return session

    session = asyncio.run(scenario())
    assert session.items == ()
    assert "No se pudo subir la imagen" in session.machine.errors[0]


def test_gate_requires_every_view_resolved():
    async def scenario():
        session, _ = _session()
        for tag in REQUIRED_VIEWS:
            await session.add_evidence(b"x", f"{tag}.jpg", "image/jpeg", tag=tag)
        for evidence_id in ("e1", "e2", "e3"):
            session.handle_event(_inserted(evidence_id))
        session.handle_event({"type": ANALYSIS_FAILED, "claim_id": "c1", "evidence_id": "e4"})
        blocked = session.can_proceed()

        session.retake("left")
        await session.add_evidence(b"x", "left.jpg", "image/jpeg", tag="left")
        session.handle_event(_inserted("e5"))
        return blocked, session.can_proceed()

    blocked, after_retake = asyncio.run(scenario())
    assert blocked is False
    assert after_retake is True


def test_push_before_upload_result_is_applied():
    async def scenario():
        session, gw = _session()
        original_insert = gw.insert_evidence

        async def insert_then_push(fields):
            evidence = await original_insert(fields)
            session.handle_event(_inserted(evidence["id"]))
            return evidence

        gw.insert_evidence = insert_then_push
        return await session.add_evidence(b"x", "f.jpg", "image/jpeg", tag="front")

    item = asyncio.run(scenario())
    assert isinstance(item.analysis, Resolved)
