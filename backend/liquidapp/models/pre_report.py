"""PreReport entity: AI-drafted liquidation report, one per claim."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String, DateTime, ForeignKey, Text, Enum as SAEnum, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liquidapp.models.base import Base, ReportStatusEnum, new_id


class PreReport(Base):
    __tablename__ = "pre_informes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    siniestro_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("siniestros.id"), nullable=False, unique=True
    )
    contenido_markdown: Mapped[str] = mapped_column(Text, default="")
    estado: Mapped[ReportStatusEnum] = mapped_column(
        SAEnum(ReportStatusEnum, values_callable=lambda e: [m.value for m in e]),
        default=ReportStatusEnum.DRAFT,
    )
    generado_por_ia: Mapped[bool] = mapped_column(Boolean, default=True)
    modelo_ia: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    # Incremented on every regeneration for the same claim
    version: Mapped[int] = mapped_column(Integer, default=1)
    firmado_por: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    firmado_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    siniestro: Mapped["Claim"] = relationship("Claim", back_populates="pre_informe")
