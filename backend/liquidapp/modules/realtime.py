"""Claim-scoped push channel for analysis completion events.

Analyses finish on request worker threads (synchronous endpoint) or in
background tasks (queued endpoint); subscribers are WebSocket handlers
running on the event loop. ``publish`` is therefore thread-safe and hands
each event to the subscriber's loop with ``call_soon_threadsafe``.

Event types:
  analysis_inserted: an AnalysisResult row was committed for an evidence
  analysis_failed  : the analysis of an evidence aborted (no row written)
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

ANALYSIS_INSERTED = "analysis_inserted"
ANALYSIS_FAILED = "analysis_failed"


@dataclass(frozen=True)
class ClaimEvent:
    type: str
    claim_id: str
    evidence_id: str
    analysis: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(eq=False)
class Subscription:
    claim_id: str
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(repr=False)

    def _deliver(self, event: ClaimEvent) -> None:
        # Runs on the subscriber's loop.
        if self.queue.full():
            dropped = self.queue.get_nowait()
            logger.warning(
                "Subscriber queue full for claim %s; dropping %s event for evidence %s",
                self.claim_id, dropped.type, dropped.evidence_id,
            )
        self.queue.put_nowait(event)

    async def get(self) -> ClaimEvent:
        return await self.queue.get()


class ClaimEventBus:
    def __init__(self, max_queue: int = 100):
        self._max_queue = max_queue
        self._lock = threading.Lock()
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, claim_id: str) -> Subscription:
        """Register a subscriber on the running event loop."""
        sub = Subscription(
            claim_id=claim_id,
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(maxsize=self._max_queue),
        )
        with self._lock:
            self._subscribers[claim_id].add(sub)
        logger.debug("Subscribed to claim %s events", claim_id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.claim_id)
            if subs is not None:
                subs.discard(sub)
                if not subs:
                    del self._subscribers[sub.claim_id]

    def subscriber_count(self, claim_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(claim_id, ()))

    def publish(self, event: ClaimEvent) -> int:
        """Deliver *event* to every subscriber of its claim. Returns the fan-out."""
        with self._lock:
            targets = list(self._subscribers.get(event.claim_id, ()))
        delivered = 0
        for sub in targets:
            try:
                sub.loop.call_soon_threadsafe(sub._deliver, event)
                delivered += 1
            except RuntimeError:
                # Subscriber's loop is closed; it will never read again.
                logger.warning("Dropping closed subscriber for claim %s", event.claim_id)
                self.unsubscribe(sub)
        return delivered


event_bus = ClaimEventBus()
