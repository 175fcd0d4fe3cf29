"""Claim rollup: worst severity, max fraud score and summed cost range over
every analysis attached to a claim.

The rollup is always recomputed from the full set of analysis rows and
written back whole, so concurrent analyses of the same claim cannot lose an
update and the result does not depend on completion order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.orm import Session

from liquidapp.models.base import SEVERITY_RANK, SeverityEnum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimSummary:
    severidad_general: SeverityEnum
    score_fraude_general: float
    costo_estimado_min: int
    costo_estimado_max: int


def compute_claim_summary(rows: Iterable) -> ClaimSummary | None:
    """Fold analysis rows into a ClaimSummary; None when there are no rows.

    Each row needs ``severidad``, ``score_fraude``, ``costo_estimado_min`` and
    ``costo_estimado_max`` attributes.
    """
    rows = list(rows)
    if not rows:
        return None

    worst = max((SeverityEnum(r.severidad) for r in rows), key=SEVERITY_RANK.__getitem__)
    return ClaimSummary(
        severidad_general=worst,
        score_fraude_general=max(float(r.score_fraude or 0.0) for r in rows),
        costo_estimado_min=sum(int(r.costo_estimado_min or 0) for r in rows),
        costo_estimado_max=sum(int(r.costo_estimado_max or 0) for r in rows),
    )


def update_claim_summary(db: Session, claim_id: str) -> ClaimSummary | None:
    """Recompute and store the rollup fields of *claim_id*.

    No analysis rows → no-op, existing rollup values are left untouched.
    Flushes but does not commit; the caller owns the transaction.
    """
    from liquidapp.models.analysis_result import AnalysisResult
    from liquidapp.models.claim import Claim

    rows = db.query(AnalysisResult).filter(AnalysisResult.siniestro_id == claim_id).all()
    summary = compute_claim_summary(rows)
    if summary is None:
        logger.debug("Claim %s has no analyses yet; rollup unchanged", claim_id)
        return None

    updated = (
        db.query(Claim)
        .filter(Claim.id == claim_id)
        .update(
            {
                Claim.severidad_general: summary.severidad_general,
                Claim.score_fraude_general: summary.score_fraude_general,
                Claim.costo_estimado_min: summary.costo_estimado_min,
                Claim.costo_estimado_max: summary.costo_estimado_max,
            },
            synchronize_session="fetch",
        )
    )
    if not updated:
        logger.warning("Rollup computed for unknown claim %s", claim_id)
    db.flush()
    logger.info(
        "Claim %s rollup: severity=%s fraud=%.2f cost=%d-%d (%d analyses)",
        claim_id,
        summary.severidad_general.value,
        summary.score_fraude_general,
        summary.costo_estimado_min,
        summary.costo_estimado_max,
        len(rows),
    )
    return summary
