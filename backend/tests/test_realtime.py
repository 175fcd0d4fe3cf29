"""Tests for the claim event bus and its WebSocket endpoint."""
import asyncio
import threading
import time

from liquidapp.modules.realtime import (
    ANALYSIS_FAILED,
    ANALYSIS_INSERTED,
    ClaimEvent,
    ClaimEventBus,
    event_bus,
)


def _event(claim_id="c1", evidence_id="e1", type=ANALYSIS_INSERTED, **kw):
    return ClaimEvent(type=type, claim_id=claim_id, evidence_id=evidence_id, **kw)


def test_to_dict_drops_empty_fields():
    assert _event(analysis={"id": "a1"}).to_dict() == {
        "type": ANALYSIS_INSERTED, "claim_id": "c1", "evidence_id": "e1", "analysis": {"id": "a1"},
    }


def test_publish_without_subscribers():
    assert ClaimEventBus().publish(_event()) == 0


def test_events_are_scoped_to_claim():
    async def scenario():
        bus = ClaimEventBus()
        mine = bus.subscribe("c1")
        other = bus.subscribe("c2")
        assert bus.publish(_event("c1")) == 1
        got = await asyncio.wait_for(mine.get(), 1)
        assert got.claim_id == "c1"
        assert other.queue.empty()

    asyncio.run(scenario())


def test_publish_from_worker_thread():
    async def scenario():
        bus = ClaimEventBus()
        sub = bus.subscribe("c1")
        worker = threading.Thread(target=bus.publish, args=(_event(type=ANALYSIS_FAILED, error="x"),))
        worker.start()
        got = await asyncio.wait_for(sub.get(), 2)
        worker.join()
        assert got.type == ANALYSIS_FAILED
        assert got.error == "x"

    asyncio.run(scenario())


def test_unsubscribe():
    async def scenario():
        bus = ClaimEventBus()
        sub = bus.subscribe("c1")
        assert bus.subscriber_count("c1") == 1
        bus.unsubscribe(sub)
        assert bus.subscriber_count("c1") == 0
        assert bus.publish(_event()) == 0

    asyncio.run(scenario())


def test_full_queue_drops_oldest():
    async def scenario():
        bus = ClaimEventBus(max_queue=2)
        sub = bus.subscribe("c1")
        for i in range(3):
            bus.publish(_event(evidence_id=f"e{i}"))
        await asyncio.sleep(0)
        assert [(await sub.get()).evidence_id for _ in range(2)] == ["e1", "e2"]

    asyncio.run(scenario())


def test_websocket_streams_claim_events(api_client):
    with api_client.websocket_connect("/api/v1/siniestros/c-ws/eventos") as ws:
        deadline = time.monotonic() + 2
        while event_bus.subscriber_count("c-ws") == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert event_bus.publish(_event("c-ws", analysis={"id": "a1"})) == 1
        message = ws.receive_json()
    assert message["type"] == ANALYSIS_INSERTED
    assert message["evidence_id"] == "e1"
    assert message["analysis"] == {"id": "a1"}
