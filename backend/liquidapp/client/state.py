"""Client-side evidence state for one claim.

Each captured image moves through:

    pending-upload ──► uploaded-analyzing ──► resolved
          │                    └────────────► no-result
          └──► (removed on upload failure)

The analysis slot is an explicit three-way variant. ``Pending`` means the
outcome is not known yet; ``NoResult`` means the analysis ran (or failed)
and produced nothing usable; ``Resolved`` carries the stored analysis.

Analysis outcomes reach the machine from two producers, the synchronous
HTTP response and the claim's push channel, and are merged by evidence id
with the last value winning. An outcome for an evidence id the machine has
not seen yet (the push beat the upload response) is held until
``upload_succeeded`` introduces that id, but only while an upload is in
flight; events for evidence this session never uploaded are dropped.
"""
from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class NoResult:
    reason: Optional[str] = None


@dataclass(frozen=True)
class Resolved:
    analysis: dict[str, Any]


AnalysisSlot = Union[Pending, NoResult, Resolved]
PENDING = Pending()


class Lifecycle(str, enum.Enum):
    PENDING_UPLOAD = "pending-upload"
    UPLOADED_ANALYZING = "uploaded-analyzing"
    RESOLVED = "resolved"
    NO_RESULT = "no-result"


@dataclass(frozen=True)
class EvidenceWithAnalysis:
    """Result of an upload: the server evidence row and what is known of its analysis."""
    evidence: dict[str, Any]
    analyzing: bool
    analysis: AnalysisSlot = PENDING

    @property
    def evidence_id(self) -> str:
        return self.evidence["id"]


@dataclass(frozen=True)
class EvidenceViewState:
    local_id: str
    tag: Optional[str]
    preview: Any = None
    evidence: Optional[dict[str, Any]] = None
    analysis: AnalysisSlot = PENDING

    @property
    def evidence_id(self) -> Optional[str]:
        return self.evidence["id"] if self.evidence else None

    @property
    def item_id(self) -> str:
        return self.evidence_id or self.local_id

    @property
    def analyzing(self) -> bool:
        return isinstance(self.analysis, Pending)

    @property
    def lifecycle(self) -> Lifecycle:
        if self.evidence is None:
            return Lifecycle.PENDING_UPLOAD
        if isinstance(self.analysis, Resolved):
            return Lifecycle.RESOLVED
        if isinstance(self.analysis, NoResult):
            return Lifecycle.NO_RESULT
        return Lifecycle.UPLOADED_ANALYZING


_local_ids = itertools.count(1)


def new_local_id() -> str:
    return f"temp-{next(_local_ids)}"


class ClaimEvidenceStateMachine:
    def __init__(self, on_error: Callable[[str], None] | None = None):
        self._items: list[EvidenceViewState] = []
        self._held: dict[str, AnalysisSlot] = {}
        self._hidden: set[str] = set()
        self._on_error = on_error
        self.errors: list[str] = []

    @property
    def items(self) -> tuple[EvidenceViewState, ...]:
        return tuple(self._items)

    def _index(self, item_id: str) -> int | None:
        for i, item in enumerate(self._items):
            if item.local_id == item_id or item.evidence_id == item_id:
                return i
        return None

    def find(self, item_id: str) -> EvidenceViewState | None:
        i = self._index(item_id)
        return self._items[i] if i is not None else None

    def find_by_tag(self, tag: str) -> EvidenceViewState | None:
        """Most recent item carrying *tag*."""
        for item in reversed(self._items):
            if item.tag == tag:
                return item
        return None

    # -- transitions ---------------------------------------------------------

    def capture(self, tag: str | None, preview: Any = None, local_id: str | None = None) -> EvidenceViewState:
        """Insert an optimistic placeholder so progress renders immediately."""
        item = EvidenceViewState(local_id=local_id or new_local_id(), tag=tag, preview=preview)
        self._items.append(item)
        return item

    def upload_succeeded(self, local_id: str, result: EvidenceWithAnalysis) -> EvidenceViewState | None:
        """Swap the placeholder for the server record, keeping the local preview."""
        i = self._index(local_id)
        if i is None:
            # Retaken while uploading; the server row stays hidden.
            logger.info("Upload finished for removed placeholder %s", local_id)
            self._hidden.add(result.evidence_id)
            self._held.pop(result.evidence_id, None)
            self._release_held()
            return None

        held = self._held.pop(result.evidence_id, None)
        analysis = result.analysis
        if isinstance(analysis, Pending) and held is not None:
            analysis = held
        item = replace(self._items[i], evidence=dict(result.evidence), analysis=analysis)
        self._items[i] = item
        self._release_held()
        return item

    def upload_failed(self, local_id: str, error: Exception | str) -> None:
        """Drop the placeholder and surface a short message."""
        i = self._index(local_id)
        if i is not None:
            del self._items[i]
            self._release_held()
        message = str(error) or "Error al procesar la imagen"
        logger.warning("Upload of %s failed: %s", local_id, message)
        self.errors.append(message)
        if self._on_error is not None:
            self._on_error(message)

    def apply_analysis(self, evidence_id: str, outcome: AnalysisSlot) -> bool:
        """Record an analysis outcome from either channel. Returns True when applied."""
        if evidence_id in self._hidden:
            return False
        for i, item in enumerate(self._items):
            if item.evidence_id == evidence_id:
                self._items[i] = replace(item, analysis=outcome)
                return True
        if self._uploads_in_flight():
            self._held[evidence_id] = outcome
        else:
            logger.debug("Dropping outcome for unknown evidence %s", evidence_id)
        return False

    def _uploads_in_flight(self) -> bool:
        return any(item.evidence is None for item in self._items)

    def _release_held(self) -> None:
        # Held outcomes can only belong to an upload still in flight.
        if not self._uploads_in_flight():
            self._held.clear()

    def remove(self, item_id: str) -> bool:
        """Hide an item locally (retake). The server row and object are kept."""
        i = self._index(item_id)
        if i is None:
            return False
        item = self._items.pop(i)
        if item.evidence_id:
            self._hidden.add(item.evidence_id)
        self._release_held()
        return True

    # -- gate ------------------------------------------------------------------

    def can_proceed(self, required_tags: Iterable[str]) -> bool:
        """True only when every required tag has a resolved item.

        An item still analysing, or one whose analysis found nothing, blocks
        the wizard: the capture must be retaken.
        """
        for tag in required_tags:
            item = self.find_by_tag(tag)
            if item is None or item.lifecycle != Lifecycle.RESOLVED:
                return False
        return True

    def counts(self) -> dict[str, int]:
        out = {state.value: 0 for state in Lifecycle}
        for item in self._items:
            out[item.lifecycle.value] += 1
        return out
