"""Evidence entity: one captured image belonging to one claim."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String, DateTime, Float, ForeignKey, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liquidapp.models.base import Base, new_id


class Evidence(Base):
    __tablename__ = "evidencias"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    siniestro_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("siniestros.id"), nullable=False, index=True
    )
    # Claim-scoped object key: "<siniestro_id>/<epoch_ms>-<suffix>.<ext>"
    storage_path: Mapped[str] = mapped_column(String(500), nullable=False, unique=True)
    nombre_archivo: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tipo_mime: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tamano_bytes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # View tag ("front", "left", "rear", "right") or a free description
    descripcion: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitud: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitud: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    precision_metros: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    orden: Mapped[int] = mapped_column(Integer, default=0)
    analizado: Mapped[bool] = mapped_column(Boolean, default=False)
    capturado_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    siniestro: Mapped["Claim"] = relationship("Claim", back_populates="evidencias")
    analisis_ia: Mapped[list["AnalysisResult"]] = relationship(
        "AnalysisResult", back_populates="evidencia", order_by="AnalysisResult.created_at"
    )
