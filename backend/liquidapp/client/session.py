"""One claim's capture session: uploads, analysis outcomes and the wizard gate."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterable, Iterable, Optional

from liquidapp.client.state import (
    ClaimEvidenceStateMachine,
    EvidenceViewState,
    NoResult,
    Resolved,
)
from liquidapp.client.upload import EvidenceUploadCoordinator, Geolocation, UploadOptions
from liquidapp.errors import LiquidAppError
from liquidapp.modules.realtime import ANALYSIS_FAILED, ANALYSIS_INSERTED

logger = logging.getLogger(__name__)

# Views the capture wizard asks for before the claim can be submitted
REQUIRED_VIEWS = ("front", "right", "rear", "left")


class ClaimSession:
    def __init__(
        self,
        claim_id: str,
        coordinator: EvidenceUploadCoordinator,
        machine: ClaimEvidenceStateMachine | None = None,
        queued: bool = True,
    ):
        self.claim_id = claim_id
        self.coordinator = coordinator
        self.machine = machine or ClaimEvidenceStateMachine()
        self.queued = queued
        # Never reused: a retake sorts after the capture it replaces
        self._next_order = 0
        if coordinator.on_queue_failed is None:
            coordinator.on_queue_failed = self._queue_failed

    @property
    def items(self) -> tuple[EvidenceViewState, ...]:
        return self.machine.items

    async def add_evidence(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        tag: str | None = None,
        preview: Any = None,
        description: Optional[str] = None,
        geolocation: Optional[Geolocation] = None,
    ) -> EvidenceViewState | None:
        """Capture, upload and record one image. Returns None when the upload failed."""
        placeholder = self.machine.capture(tag, preview)
        options = UploadOptions(
            claim_id=self.claim_id,
            description=description,
            geolocation=geolocation,
            order=self._next_order,
        )
        self._next_order += 1
        try:
            result = await self.coordinator.upload_and_analyze(
                data, filename, content_type, options, queued=self.queued
            )
        except LiquidAppError as exc:
            self.machine.upload_failed(placeholder.local_id, exc)
            return None
        return self.machine.upload_succeeded(placeholder.local_id, result)

    def handle_event(self, event: dict[str, Any]) -> bool:
        """Feed one push event into the state machine."""
        if event.get("claim_id") not in (None, self.claim_id):
            return False
        evidence_id = event.get("evidence_id")
        if not evidence_id:
            return False

        kind = event.get("type")
        if kind == ANALYSIS_INSERTED and event.get("analysis"):
            return self.machine.apply_analysis(evidence_id, Resolved(event["analysis"]))
        if kind == ANALYSIS_FAILED:
            return self.machine.apply_analysis(evidence_id, NoResult(reason=event.get("error")))
        logger.debug("Ignoring event %r for claim %s", kind, self.claim_id)
        return False

    async def consume_events(self, events: AsyncIterable[dict[str, Any]]) -> None:
        async for event in events:
            self.handle_event(event)

    def _queue_failed(self, evidence_id: str, reason: str) -> None:
        self.machine.apply_analysis(evidence_id, NoResult(reason=reason))

    def retake(self, tag: str) -> bool:
        """Hide the current capture for *tag* so it can be shot again."""
        item = self.machine.find_by_tag(tag)
        if item is None:
            return False
        return self.machine.remove(item.item_id)

    def can_proceed(self, required_tags: Iterable[str] = REQUIRED_VIEWS) -> bool:
        return self.machine.can_proceed(required_tags)
