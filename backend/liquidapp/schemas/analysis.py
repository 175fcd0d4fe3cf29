"""Pydantic schemas for the AI analysis contract.

The vision model is asked for exactly this shape (see
modules.vision_client.USER_PROMPT). Two readings exist:

- ``AnalysisResultSchema``: strict. Fraud score, severity and the cost range
  must be present; a missing value is a schema violation, never a zero.
- ``LenientAnalysisResultSchema``: queued delivery. Missing sections and
  sub-fields default to a zero-cost, zero-fraud, minor-damage reading.

In both readings list fields default to ``[]`` and text fields to ``""``.
Values that are present but outside their domain are rejected in both.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from liquidapp.models.base import FraudLevelEnum, SeverityEnum


def _normalize_label(v):
    if isinstance(v, str):
        return v.strip().lower().replace(" ", "_")
    return v


class CostItem(BaseModel):
    parte: str
    costo_min: int = Field(..., ge=0)
    costo_max: int = Field(..., ge=0)


class FraudSection(BaseModel):
    score: float = Field(..., ge=0.0, le=1.0)
    nivel: Optional[FraudLevelEnum] = None
    indicadores: list[str] = Field(default_factory=list)
    justificacion: str = ""

    @field_validator("nivel", mode="before")
    @classmethod
    def normalize_nivel(cls, v):
        return _normalize_label(v)


class TriageSection(BaseModel):
    severidad: SeverityEnum
    partes_danadas: list[str] = Field(default_factory=list)
    descripcion: str = ""

    @field_validator("severidad", mode="before")
    @classmethod
    def normalize_severidad(cls, v):
        return _normalize_label(v)


class CostSection(BaseModel):
    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)
    desglose: list[CostItem] = Field(default_factory=list)


class AnalysisResultSchema(BaseModel):
    antifraude: FraudSection
    triage: TriageSection
    costos: CostSection


class LenientCostItem(CostItem):
    costo_min: int = Field(0, ge=0)
    costo_max: int = Field(0, ge=0)


class LenientFraudSection(FraudSection):
    score: float = Field(0.0, ge=0.0, le=1.0)


class LenientTriageSection(TriageSection):
    severidad: SeverityEnum = SeverityEnum.MINOR


class LenientCostSection(CostSection):
    min: int = Field(0, ge=0)
    max: int = Field(0, ge=0)
    desglose: list[LenientCostItem] = Field(default_factory=list)


class LenientAnalysisResultSchema(AnalysisResultSchema):
    antifraude: LenientFraudSection = Field(default_factory=LenientFraudSection)
    triage: LenientTriageSection = Field(default_factory=LenientTriageSection)
    costos: LenientCostSection = Field(default_factory=LenientCostSection)


class EvidenceAnalysisRequest(BaseModel):
    """Body of both analysis endpoints. Empty strings count as missing."""
    model_config = {"str_strip_whitespace": True}

    evidencia_id: str = Field(..., min_length=1)
    imagen_url: str = Field(..., min_length=1)
    siniestro_id: str = Field(..., min_length=1)
