"""Pydantic schemas for pre-report generation and client lookup."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from liquidapp.models.base import ReportStatusEnum


class PreReportRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    siniestro_id: str = Field(..., min_length=1)


class PreReportRead(BaseModel):
    id: str
    siniestro_id: str
    contenido_markdown: str
    estado: ReportStatusEnum
    generado_por_ia: bool
    modelo_ia: Optional[str] = None
    version: int
    firmado_por: Optional[str] = None
    firmado_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PreReportUpdate(BaseModel):
    contenido_markdown: str = Field(..., min_length=1)


class ApprovalRequest(BaseModel):
    model_config = {"str_strip_whitespace": True}

    firmado_por: Optional[str] = None


class ClientRead(BaseModel):
    id: str
    rut: str
    nombre_completo: str
    telefono: Optional[str] = None
    email: Optional[str] = None
    direccion: Optional[str] = None
    poliza_numero: Optional[str] = None
    patente: Optional[str] = None
    marca: Optional[str] = None
    modelo: Optional[str] = None
    anio: Optional[int] = None

    model_config = {"from_attributes": True}


class SignedUrlRequest(BaseModel):
    storage_path: str = Field(..., min_length=1)
    expires_in: int = Field(default=3600, ge=1, le=7 * 24 * 3600)
