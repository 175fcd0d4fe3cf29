from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session, selectinload

from liquidapp.config import settings
from liquidapp.database import get_db, get_session_factory
from liquidapp.errors import NotFoundError, ValidationError
from liquidapp.models.base import ClaimStatusEnum, DeliveryModeEnum
from liquidapp.modules.realtime import event_bus
from liquidapp.modules.storage import LocalObjectStorage, get_storage
from liquidapp.modules.vision_client import VisionAnalysisClient
from liquidapp.schemas.analysis import EvidenceAnalysisRequest
from liquidapp.schemas.claim import (
    ClaimCreate,
    ClaimDetailRead,
    ClaimRead,
    EvidenceCreate,
    EvidenceRead,
    LocationUpdate,
)
from liquidapp.schemas.report import (
    ApprovalRequest,
    ClientRead,
    PreReportRead,
    PreReportRequest,
    PreReportUpdate,
    SignedUrlRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_vision_client() -> VisionAnalysisClient:
    return VisionAnalysisClient()


def _get_claim_or_404(db: Session, claim_id: str):
    from liquidapp.models.claim import Claim

    claim = db.query(Claim).filter(Claim.id == claim_id).first()
    if claim is None:
        raise NotFoundError("Siniestro no encontrado")
    return claim


def _check_upload_size(size_bytes: int) -> None:
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > settings.MAX_UPLOAD_SIZE_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large ({size_mb:.1f} MB). Maximum: {settings.MAX_UPLOAD_SIZE_MB} MB.",
        )


# ---------------------------------------------------------------------------
# Evidence analysis
# ---------------------------------------------------------------------------

@router.post("/analizar-evidencia", tags=["analysis"])
def analyze_evidence(
    body: EvidenceAnalysisRequest,
    db: Session = Depends(get_db),
    vision: VisionAnalysisClient = Depends(get_vision_client),
):
    """Synchronous analysis: waits for the model and returns the stored analysis."""
    from liquidapp.modules.evidence_analysis import EvidenceAnalysisOrchestrator

    outcome = EvidenceAnalysisOrchestrator(db, vision=vision).run(
        body, DeliveryModeEnum.SYNCHRONOUS
    )
    return {"success": True, "analisis": outcome.analysis, "resultado": outcome.resultado}


@router.post("/queue-analisis", tags=["analysis"], status_code=202)
def queue_analysis(
    body: EvidenceAnalysisRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    vision: VisionAnalysisClient = Depends(get_vision_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """Queued analysis: acknowledges immediately and runs the analysis after the response.

    Configuration and request errors are still reported synchronously; the
    analysis outcome arrives on the claim's event stream.
    """
    from liquidapp.modules.evidence_analysis import EvidenceAnalysisOrchestrator, run_queued_analysis

    orchestrator = EvidenceAnalysisOrchestrator(db, vision=vision)
    orchestrator.check_configured()
    orchestrator.check_target(body)

    background_tasks.add_task(run_queued_analysis, session_factory, body, vision)
    logger.info("Queued analysis for evidence %s", body.evidencia_id)
    return {"success": True, "message": "Análisis en cola; el resultado llegará por el canal de eventos"}


@router.websocket("/siniestros/{claim_id}/eventos")
async def claim_events(websocket: WebSocket, claim_id: str):
    """Push channel: one JSON message per analysis_inserted / analysis_failed event."""
    await websocket.accept()
    sub = event_bus.subscribe(claim_id)

    async def forward():
        while True:
            event = await sub.get()
            await websocket.send_json(event.to_dict())

    sender = asyncio.create_task(forward())
    try:
        # Client messages are ignored; reading is how a disconnect is noticed.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        logger.debug("Event subscriber for claim %s dropped", claim_id)
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        event_bus.unsubscribe(sub)


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

@router.post("/siniestros", tags=["claims"], status_code=201)
def create_claim(body: ClaimCreate, db: Session = Depends(get_db)):
    """Open a draft claim for the capture wizard."""
    from liquidapp.models.claim import Claim

    claim = Claim(
        patente=body.patente,
        marca=body.marca,
        modelo=body.modelo,
        anio=body.anio or datetime.now().year,
        nombre_asegurado=body.nombre_asegurado,
        rut_asegurado=body.rut_asegurado,
        tipo_siniestro=body.tipo_siniestro,
        descripcion=body.descripcion,
        estado=ClaimStatusEnum.DRAFT,
    )
    db.add(claim)
    db.commit()
    db.refresh(claim)
    return ClaimRead.model_validate(claim).model_dump(mode="json")


@router.get("/siniestros", tags=["claims"])
def list_claims(
    estado: Optional[ClaimStatusEnum] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Back-office inbox: most recent claims first."""
    from liquidapp.models.claim import Claim

    q = db.query(Claim)
    if estado is not None:
        q = q.filter(Claim.estado == estado)
    claims = q.order_by(Claim.created_at.desc()).limit(limit).all()
    return [ClaimRead.model_validate(c).model_dump(mode="json") for c in claims]


@router.get("/siniestros/{claim_id}", tags=["claims"])
def get_claim(claim_id: str, db: Session = Depends(get_db)):
    from liquidapp.models.claim import Claim
    from liquidapp.models.evidence import Evidence

    claim = (
        db.query(Claim)
        .options(
            selectinload(Claim.evidencias).selectinload(Evidence.analisis_ia),
            selectinload(Claim.pre_informe),
        )
        .filter(Claim.id == claim_id)
        .first()
    )
    if claim is None:
        raise NotFoundError("Siniestro no encontrado")
    return ClaimDetailRead.model_validate(claim).model_dump(mode="json")


@router.patch("/siniestros/{claim_id}/ubicacion", tags=["claims"])
def update_claim_location(claim_id: str, body: LocationUpdate, db: Session = Depends(get_db)):
    claim = _get_claim_or_404(db, claim_id)
    claim.latitud = body.latitud
    claim.longitud = body.longitud
    # No reverse geocoding; the coordinates double as the address
    claim.direccion = f"Lat: {body.latitud:.4f}, Lng: {body.longitud:.4f}"
    db.commit()
    db.refresh(claim)
    return ClaimRead.model_validate(claim).model_dump(mode="json")


@router.post("/siniestros/{claim_id}/finalizar", tags=["claims"])
def submit_claim(claim_id: str, db: Session = Depends(get_db)):
    """Send a draft claim to back-office review."""
    claim = _get_claim_or_404(db, claim_id)
    if claim.estado != ClaimStatusEnum.DRAFT:
        raise ValidationError(f"El siniestro ya fue enviado (estado: {claim.estado.value})")
    claim.estado = ClaimStatusEnum.UNDER_REVIEW
    claim.enviado_revision_at = datetime.now(timezone.utc).replace(tzinfo=None)
    db.commit()
    db.refresh(claim)
    return ClaimRead.model_validate(claim).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Evidence records and storage
# ---------------------------------------------------------------------------

@router.post("/evidencias", tags=["evidence"], status_code=201)
def create_evidence(
    body: EvidenceCreate,
    db: Session = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
):
    """Insert the metadata row of an uploaded evidence object."""
    from liquidapp.models.evidence import Evidence

    _get_claim_or_404(db, body.siniestro_id)
    if not body.storage_path.startswith(f"{body.siniestro_id}/"):
        raise ValidationError("storage_path debe estar bajo la carpeta del siniestro")
    if not storage.exists(body.storage_path):
        raise NotFoundError(f"Objeto {body.storage_path} no encontrado")

    evidence = Evidence(**body.model_dump(), analizado=False)
    db.add(evidence)
    db.commit()
    db.refresh(evidence)
    return EvidenceRead.model_validate(evidence).model_dump(mode="json")


@router.put("/storage/objects/{key:path}", tags=["storage"], status_code=201)
async def upload_object(
    key: str,
    request: Request,
    storage: LocalObjectStorage = Depends(get_storage),
):
    """Store the raw request body under *key*."""
    data = await request.body()
    _check_upload_size(len(data))
    if not data:
        raise ValidationError("Archivo vacío")
    obj = await asyncio.to_thread(storage.put, key, data)
    return {"key": obj.key, "size": obj.size}


@router.post("/storage/signed-url", tags=["storage"])
def create_signed_url(
    body: SignedUrlRequest,
    storage: LocalObjectStorage = Depends(get_storage),
):
    url = storage.create_signed_url(body.storage_path, body.expires_in)
    return {"signedUrl": url, "expires_in": body.expires_in}


@router.get("/storage/objects/{key:path}", tags=["storage"])
def download_object(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    storage: LocalObjectStorage = Depends(get_storage),
):
    """Serve an object to the holder of a valid, unexpired signed URL."""
    if not storage.verify_signature(key, expires, signature):
        return JSONResponse(
            status_code=403,
            content={"error": "URL firmada inválida o expirada", "code": "forbidden"},
        )
    obj = storage.stat(key)
    return Response(content=storage.read(key), media_type=obj.content_type)


# ---------------------------------------------------------------------------
# Client lookup
# ---------------------------------------------------------------------------

@router.get("/buscar-cliente", tags=["clients"])
def find_client(rut: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """Look up an insured client by RUT after checking its verification digit."""
    from liquidapp.models.client import Client
    from liquidapp.modules.rut import normalize_rut, validate_rut

    if not rut:
        raise ValidationError("El parámetro rut es requerido.")
    if not validate_rut(rut):
        raise ValidationError("RUT inválido. Verifique el dígito verificador.")

    client = db.query(Client).filter(Client.rut == normalize_rut(rut)).first()
    if client is None:
        raise NotFoundError("No se encontró ningún cliente con ese RUT.")
    return {"cliente": ClientRead.model_validate(client).model_dump(mode="json")}


# ---------------------------------------------------------------------------
# Pre-report
# ---------------------------------------------------------------------------

@router.post("/generar-preinforme", tags=["reports"])
def generate_report(body: PreReportRequest, db: Session = Depends(get_db)):
    from liquidapp.modules.pre_report import generate_pre_report

    report = generate_pre_report(db, body.siniestro_id)
    return {"success": True, "informe": PreReportRead.model_validate(report).model_dump(mode="json")}


# ---------------------------------------------------------------------------
# Back-office review
# ---------------------------------------------------------------------------

@router.put("/siniestros/{claim_id}/preinforme", tags=["reports"])
def save_report(claim_id: str, body: PreReportUpdate, db: Session = Depends(get_db)):
    """Save the liquidator's edited pre-report."""
    from liquidapp.modules.claim_review import save_report_edit

    report = save_report_edit(db, claim_id, body.contenido_markdown)
    return PreReportRead.model_validate(report).model_dump(mode="json")


@router.post("/siniestros/{claim_id}/aprobar", tags=["claims"])
def approve(claim_id: str, body: Optional[ApprovalRequest] = None, db: Session = Depends(get_db)):
    from liquidapp.modules.claim_review import approve_claim

    claim = approve_claim(db, claim_id, signed_by=body.firmado_por if body else None)
    return ClaimRead.model_validate(claim).model_dump(mode="json")


@router.post("/siniestros/{claim_id}/rechazar", tags=["claims"])
def reject(claim_id: str, db: Session = Depends(get_db)):
    from liquidapp.modules.claim_review import reject_claim

    claim = reject_claim(db, claim_id)
    return ClaimRead.model_validate(claim).model_dump(mode="json")


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------

@router.get("/health", tags=["system"])
def health_check(db: Session = Depends(get_db)):
    """Health check with DB latency measurement."""
    from sqlalchemy import text

    t0 = time.time()
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {e}"
    latency_ms = round((time.time() - t0) * 1000, 1)

    return {
        "status": "ok",
        "version": settings.VERSION,
        "vision_configured": bool(settings.VISION_API_KEY),
        "database": {"status": db_status, "latency_ms": latency_ms},
    }
