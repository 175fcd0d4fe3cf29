"""AnalysisResult entity: one AI evaluation of one Evidence.

Rows are append-only: re-analysing an evidence inserts a new row and the
claim rollup is recomputed over every row of the claim.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, DateTime, Float, ForeignKey, JSON, Text, Enum as SAEnum, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from liquidapp.models.base import Base, DeliveryModeEnum, FraudLevelEnum, SeverityEnum, new_id


def _values(enum_cls):
    return SAEnum(enum_cls, values_callable=lambda e: [m.value for m in e])


class AnalysisResult(Base):
    __tablename__ = "analisis_ia"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    evidencia_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("evidencias.id"), nullable=False, index=True
    )
    siniestro_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("siniestros.id"), nullable=False, index=True
    )
    # Fraud
    score_fraude: Mapped[float] = mapped_column(Float, nullable=False)
    nivel_fraude: Mapped[FraudLevelEnum] = mapped_column(_values(FraudLevelEnum), nullable=False)
    indicadores_fraude: Mapped[list] = mapped_column(JSON, default=list)
    justificacion_fraude: Mapped[str] = mapped_column(Text, default="")
    # Triage
    severidad: Mapped[SeverityEnum] = mapped_column(_values(SeverityEnum), nullable=False)
    partes_danadas: Mapped[list] = mapped_column(JSON, default=list)
    descripcion_danos: Mapped[str] = mapped_column(Text, default="")
    # Costs (CLP)
    costo_estimado_min: Mapped[int] = mapped_column(Integer, nullable=False)
    costo_estimado_max: Mapped[int] = mapped_column(Integer, nullable=False)
    # [{"parte": str, "costo_min": int, "costo_max": int}, ...]
    desglose_costos: Mapped[list] = mapped_column(JSON, default=list)
    # Audit metadata
    modelo_ia: Mapped[str] = mapped_column(String(200), nullable=False)
    modo_entrega: Mapped[DeliveryModeEnum] = mapped_column(_values(DeliveryModeEnum), nullable=False)
    # {"contenido": <raw model text>, "parsed": <validated object or null>}
    respuesta_raw: Mapped[dict] = mapped_column(JSON, nullable=False)
    tokens_usados: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    procesado_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    evidencia: Mapped["Evidence"] = relationship("Evidence", back_populates="analisis_ia")
