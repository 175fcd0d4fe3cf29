"""Claim (siniestro) entity: aggregate root of the intake workflow."""
from __future__ import annotations

import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, DateTime, Float, Text, Enum as SAEnum, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liquidapp.models.base import Base, ClaimStatusEnum, SeverityEnum, new_id


def _claim_number() -> str:
    return f"SIN-{datetime.now().year}-{secrets.token_hex(3).upper()}"


class Claim(Base):
    __tablename__ = "siniestros"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    numero_siniestro: Mapped[str] = mapped_column(String(30), unique=True, default=_claim_number)
    # Vehicle
    patente: Mapped[str] = mapped_column(String(12), nullable=False)
    marca: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    modelo: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    anio: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # Insured party
    nombre_asegurado: Mapped[str] = mapped_column(String(255), nullable=False)
    rut_asegurado: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    telefono_asegurado: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email_asegurado: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    poliza_numero: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # Incident
    fecha_siniestro: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    tipo_siniestro: Mapped[str] = mapped_column(String(50), default="choque")
    descripcion: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitud: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitud: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    direccion: Mapped[str] = mapped_column(String(500), default="Ubicación pendiente")
    estado: Mapped[ClaimStatusEnum] = mapped_column(
        SAEnum(ClaimStatusEnum, values_callable=lambda e: [m.value for m in e]),
        default=ClaimStatusEnum.DRAFT,
    )
    # Rollup fields, written only by modules.claim_summary.update_claim_summary
    severidad_general: Mapped[Optional[SeverityEnum]] = mapped_column(
        SAEnum(SeverityEnum, values_callable=lambda e: [m.value for m in e]), nullable=True
    )
    score_fraude_general: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    costo_estimado_min: Mapped[int] = mapped_column(Integer, default=0)
    costo_estimado_max: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())
    enviado_revision_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    evidencias: Mapped[list["Evidence"]] = relationship(
        "Evidence", back_populates="siniestro", order_by="Evidence.orden"
    )
    pre_informe: Mapped[Optional["PreReport"]] = relationship("PreReport", back_populates="siniestro")
