"""Pre-report (pre-informe) generation for liquidators.

Assembles every evidence and its analysis into a text prompt, asks the text
model for a Markdown report and stores it. Regenerating a report for the same
claim overwrites the content, resets the status to draft and bumps the
version counter.
"""
from __future__ import annotations

import logging

import httpx
from sqlalchemy.orm import Session

from liquidapp.config import settings
from liquidapp.errors import NotFoundError
from liquidapp.models.base import ReportStatusEnum
from liquidapp.modules.llm_client import chat_completion

logger = logging.getLogger(__name__)

REPORT_SYSTEM_PROMPT = (
    "Eres un perito liquidador experto. Redactas informes técnicos precisos, claros y "
    "profesionales en español para compañías de seguros chilenas."
)

REPORT_SECTIONS = (
    "## Resumen Ejecutivo",
    "## Datos del Siniestro",
    "## Evaluación de Daños",
    "## Análisis Antifraude",
    "## Estimación de Costos",
    "## Recomendación del Liquidador IA",
    "## Observaciones y Notas",
)

REPORT_FOOTER = (
    "---\n*Pre-informe generado automáticamente por LiquidApp IA. "
    "Requiere revisión y firma de liquidador autorizado.*"
)


def format_clp(amount: int | float | None) -> str:
    """Chilean peso formatting with dot thousands separators: 1250000 → "$1.250.000"."""
    return "$" + f"{int(amount or 0):,}".replace(",", ".")


def _evidence_block(index: int, evidence) -> str:
    analysis = evidence.analisis_ia[0] if evidence.analisis_ia else None
    if analysis is None:
        return f"Evidencia {index}: Sin análisis"
    lines = [
        f"Evidencia {index}:",
        f"- Descripción: {evidence.descripcion or 'Sin descripción'}",
        f"- Severidad: {analysis.severidad.value}",
        f"- Score Fraude: {analysis.score_fraude * 100:.0f}% ({analysis.nivel_fraude.value})",
        f"- Partes dañadas: {', '.join(analysis.partes_danadas or []) or 'No especificado'}",
        f"- Daños: {analysis.descripcion_danos}",
        f"- Costo estimado: {format_clp(analysis.costo_estimado_min)} - "
        f"{format_clp(analysis.costo_estimado_max)} CLP",
    ]
    if analysis.indicadores_fraude:
        lines.append(f"- Indicadores de fraude: {', '.join(analysis.indicadores_fraude)}")
    return "\n".join(lines)


def build_report_prompt(claim) -> str:
    evidences = "\n\n".join(
        _evidence_block(i, ev) for i, ev in enumerate(claim.evidencias, start=1)
    ) or "Sin evidencias analizadas"
    vehicle = " ".join(str(p) for p in (claim.marca, claim.modelo, claim.anio) if p)
    location = claim.direccion or f"{claim.latitud}, {claim.longitud}"
    severity = claim.severidad_general.value if claim.severidad_general else "No determinada"
    fecha = claim.fecha_siniestro.strftime("%d-%m-%Y") if claim.fecha_siniestro else "No registrada"
    sections = "\n".join(f"{i}. {s}" for i, s in enumerate(REPORT_SECTIONS, start=1))

    return f"""Genera un pre-informe técnico de liquidación de siniestro automotriz en formato Markdown.

DATOS DEL SINIESTRO:
- Número: {claim.numero_siniestro}
- Fecha: {fecha}
- Tipo: {claim.tipo_siniestro}
- Patente: {claim.patente}
- Vehículo: {vehicle}
- Asegurado: {claim.nombre_asegurado}
- Póliza: {claim.poliza_numero or 'No especificada'}
- Ubicación: {location}

ANÁLISIS DE EVIDENCIAS:
{evidences}

RESUMEN IA:
- Severidad General: {severity}
- Score Fraude General: {(claim.score_fraude_general or 0) * 100:.0f}%
- Costo Total Estimado: {format_clp(claim.costo_estimado_min)} - {format_clp(claim.costo_estimado_max)} CLP

Genera el pre-informe con las siguientes secciones en Markdown:
{sections}

El informe debe ser técnico, profesional y en español. Incluye tablas donde sea apropiado.
Al final incluye: "{REPORT_FOOTER}\""""


def generate_pre_report(db: Session, claim_id: str, http_client: httpx.Client | None = None):
    """Generate (or regenerate) the pre-report of *claim_id* and return the row."""
    from liquidapp.models.claim import Claim
    from liquidapp.models.pre_report import PreReport

    claim = db.query(Claim).filter(Claim.id == claim_id).first()
    if claim is None:
        raise NotFoundError("Siniestro no encontrado")

    completion = chat_completion(
        [
            {"role": "system", "content": REPORT_SYSTEM_PROMPT},
            {"role": "user", "content": build_report_prompt(claim)},
        ],
        model=settings.REPORT_MODEL,
        max_tokens=settings.REPORT_MAX_TOKENS,
        http_client=http_client,
    )

    report = db.query(PreReport).filter(PreReport.siniestro_id == claim_id).first()
    if report is None:
        report = PreReport(
            siniestro_id=claim_id,
            contenido_markdown=completion.content,
            generado_por_ia=True,
            modelo_ia=completion.model,
            version=1,
        )
        db.add(report)
    else:
        report.contenido_markdown = completion.content
        report.estado = ReportStatusEnum.DRAFT
        report.modelo_ia = completion.model
        report.version = (report.version or 1) + 1
    db.commit()
    db.refresh(report)
    logger.info("Pre-report for claim %s stored (version %d)", claim_id, report.version)
    return report
