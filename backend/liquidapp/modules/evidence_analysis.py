"""Evidence analysis use case: model call → parse → persist → rollup.

One invocation handles one evidence item and is independent of any other
invocation. The same algorithm backs both delivery modes:

  synchronous: the HTTP caller waits and receives the stored analysis.
  queued: the HTTP caller gets an immediate acknowledgment and the
          algorithm runs to completion in a background task; the
          caller observes the outcome on the claim's push channel.

The modes differ in one respect only: the queued mode parses the model
answer leniently (missing sub-fields default to zero values), the
synchronous mode rejects answers that lack required fields.

Persistence (analysis insert, evidence flag, claim rollup) is a single
transaction. On any failure it is rolled back, the evidence keeps
``analizado = false`` and an ``analysis_failed`` event is published.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from liquidapp.errors import (
    ConfigurationError,
    LiquidAppError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from liquidapp.models.base import DeliveryModeEnum, new_id
from liquidapp.modules.analysis_parser import ParsedAnalysis, parse_analysis
from liquidapp.modules.claim_summary import update_claim_summary
from liquidapp.modules.llm_client import Completion
from liquidapp.modules.realtime import (
    ANALYSIS_FAILED,
    ANALYSIS_INSERTED,
    ClaimEvent,
    ClaimEventBus,
    event_bus,
)
from liquidapp.modules.vision_client import VisionAnalysisClient
from liquidapp.schemas.analysis import EvidenceAnalysisRequest
from liquidapp.schemas.claim import AnalysisRead

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    analysis: dict[str, Any]
    resultado: dict[str, Any]


class EvidenceAnalysisOrchestrator:
    def __init__(
        self,
        db: Session,
        vision: VisionAnalysisClient | None = None,
        bus: ClaimEventBus | None = None,
    ):
        self.db = db
        self.vision = vision or VisionAnalysisClient()
        self.bus = bus if bus is not None else event_bus

    def check_configured(self) -> None:
        """Fail fast when the model credential is missing."""
        if not self.vision.configured:
            logger.critical("VISION_API_KEY is not set; evidence analysis is disabled")
            raise ConfigurationError("VISION_API_KEY no configurada")

    def check_target(self, request: EvidenceAnalysisRequest):
        """The evidence must exist and belong to the claim named in the request."""
        from liquidapp.models.evidence import Evidence

        evidence = self.db.query(Evidence).filter(Evidence.id == request.evidencia_id).first()
        if evidence is None:
            raise NotFoundError(f"Evidencia {request.evidencia_id} no encontrada")
        if evidence.siniestro_id != request.siniestro_id:
            raise ValidationError(
                f"La evidencia {request.evidencia_id} no pertenece al siniestro {request.siniestro_id}"
            )
        return evidence

    def run(self, request: EvidenceAnalysisRequest, mode: DeliveryModeEnum) -> AnalysisOutcome:
        """Execute the full pipeline for one evidence item."""
        self.check_configured()
        self.check_target(request)
        try:
            completion = self.vision.analyze_image(request.imagen_url)
            parsed = parse_analysis(completion.content, mode)
            analysis = self._persist(request, mode, completion, parsed)
        except LiquidAppError as exc:
            self._publish_failure(request, exc.message, exc.code)
            raise
        except Exception:
            self._publish_failure(request, "Error interno del servidor", "internal_error")
            raise

        self.bus.publish(ClaimEvent(
            type=ANALYSIS_INSERTED,
            claim_id=request.siniestro_id,
            evidence_id=request.evidencia_id,
            analysis=analysis,
        ))
        logger.info(
            "Evidence %s analysed (%s): severity=%s fraud=%.2f/%s",
            request.evidencia_id, mode.value, analysis["severidad"],
            analysis["score_fraude"], analysis["nivel_fraude"],
        )
        return AnalysisOutcome(analysis=analysis, resultado=parsed.raw)

    def _persist(
        self,
        request: EvidenceAnalysisRequest,
        mode: DeliveryModeEnum,
        completion: Completion,
        parsed: ParsedAnalysis,
    ):
        from liquidapp.models.analysis_result import AnalysisResult
        from liquidapp.models.evidence import Evidence

        result = parsed.result
        record = AnalysisResult(
            id=new_id(),
            evidencia_id=request.evidencia_id,
            siniestro_id=request.siniestro_id,
            score_fraude=result.antifraude.score,
            nivel_fraude=parsed.fraud_level,
            indicadores_fraude=list(result.antifraude.indicadores),
            justificacion_fraude=result.antifraude.justificacion,
            severidad=result.triage.severidad,
            partes_danadas=list(result.triage.partes_danadas),
            descripcion_danos=result.triage.descripcion,
            costo_estimado_min=result.costos.min,
            costo_estimado_max=result.costos.max,
            desglose_costos=[item.model_dump() for item in result.costos.desglose],
            modelo_ia=completion.model,
            modo_entrega=mode,
            respuesta_raw={
                "contenido": completion.content,
                "parsed": result.model_dump(mode="json"),
            },
            tokens_usados=completion.total_tokens,
        )
        try:
            self.db.add(record)
            self.db.flush()
            self.db.query(Evidence).filter(Evidence.id == request.evidencia_id).update(
                {Evidence.analizado: True}, synchronize_session="fetch"
            )
            update_claim_summary(self.db, request.siniestro_id)
            self.db.refresh(record)
            # Serialized before commit: nothing after a successful commit may fail the run
            analysis = AnalysisRead.model_validate(record).model_dump(mode="json")
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Could not persist analysis for evidence %s: %s", request.evidencia_id, exc)
            raise PersistenceError("Error al guardar el análisis") from exc
        return analysis

    def _publish_failure(self, request: EvidenceAnalysisRequest, message: str, code: str) -> None:
        self.bus.publish(ClaimEvent(
            type=ANALYSIS_FAILED,
            claim_id=request.siniestro_id,
            evidence_id=request.evidencia_id,
            error=message,
            code=code,
        ))


def run_queued_analysis(
    session_factory: Callable[[], Session],
    request: EvidenceAnalysisRequest,
    vision: VisionAnalysisClient | None = None,
    bus: ClaimEventBus | None = None,
) -> None:
    """Background-task entry point for the queued endpoint.

    Runs with its own session because the request's session is closed once
    the acknowledgment has been sent. Failures are logged here; the caller
    learns of them through the ``analysis_failed`` push event.
    """
    db = session_factory()
    try:
        EvidenceAnalysisOrchestrator(db, vision=vision, bus=bus).run(
            request, DeliveryModeEnum.QUEUED
        )
    except LiquidAppError as exc:
        logger.error(
            "Queued analysis of evidence %s failed [%s]: %s",
            request.evidencia_id, exc.code, exc.message,
        )
    finally:
        db.close()
