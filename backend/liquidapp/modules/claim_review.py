"""Back-office review of submitted claims.

A liquidator edits the pre-report and then either approves the claim, which
signs the report, or rejects it. Only claims in review can be decided.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from liquidapp.errors import NotFoundError, ValidationError
from liquidapp.models.base import ClaimStatusEnum, ReportStatusEnum

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _get_claim(db: Session, claim_id: str):
    from liquidapp.models.claim import Claim

    claim = db.query(Claim).filter(Claim.id == claim_id).first()
    if claim is None:
        raise NotFoundError("Siniestro no encontrado")
    return claim


def _require_in_review(claim) -> None:
    if claim.estado != ClaimStatusEnum.UNDER_REVIEW:
        raise ValidationError(
            f"El siniestro no está en revisión (estado: {claim.estado.value})"
        )


def save_report_edit(db: Session, claim_id: str, content: str):
    """Store a liquidator's edit of the pre-report.

    An existing report is marked reviewed. A claim without one gets a new,
    hand-written draft.
    """
    from liquidapp.models.pre_report import PreReport

    _get_claim(db, claim_id)
    report = db.query(PreReport).filter(PreReport.siniestro_id == claim_id).first()
    if report is None:
        report = PreReport(
            siniestro_id=claim_id,
            contenido_markdown=content,
            generado_por_ia=False,
        )
        db.add(report)
    else:
        if report.estado == ReportStatusEnum.SIGNED:
            raise ValidationError("El informe ya fue firmado y no puede editarse")
        report.contenido_markdown = content
        report.estado = ReportStatusEnum.REVIEWED
    db.commit()
    db.refresh(report)
    logger.info("Pre-report for claim %s saved (%s)", claim_id, report.estado.value)
    return report


def approve_claim(db: Session, claim_id: str, signed_by: Optional[str] = None):
    """Approve a claim in review and sign its pre-report, if it has one."""
    from liquidapp.models.pre_report import PreReport

    claim = _get_claim(db, claim_id)
    _require_in_review(claim)

    report = db.query(PreReport).filter(PreReport.siniestro_id == claim_id).first()
    if report is not None:
        report.estado = ReportStatusEnum.SIGNED
        report.firmado_por = signed_by
        report.firmado_at = _utcnow()
    claim.estado = ClaimStatusEnum.APPROVED
    db.commit()
    db.refresh(claim)
    logger.info("Claim %s approved by %s", claim_id, signed_by or "unknown")
    return claim


def reject_claim(db: Session, claim_id: str):
    claim = _get_claim(db, claim_id)
    _require_in_review(claim)
    claim.estado = ClaimStatusEnum.REJECTED
    db.commit()
    db.refresh(claim)
    logger.info("Claim %s rejected", claim_id)
    return claim
