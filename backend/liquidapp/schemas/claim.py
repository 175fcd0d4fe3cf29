"""Pydantic schemas for claims, evidences and stored analyses."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from liquidapp.models.base import ClaimStatusEnum, DeliveryModeEnum, FraudLevelEnum, SeverityEnum
from liquidapp.schemas.report import PreReportRead


class AnalysisRead(BaseModel):
    id: str
    evidencia_id: str
    siniestro_id: str
    score_fraude: float
    nivel_fraude: FraudLevelEnum
    indicadores_fraude: list[str] = []
    justificacion_fraude: str = ""
    severidad: SeverityEnum
    partes_danadas: list[str] = []
    descripcion_danos: str = ""
    costo_estimado_min: int
    costo_estimado_max: int
    desglose_costos: list[dict] = []
    modelo_ia: str
    modo_entrega: DeliveryModeEnum
    respuesta_raw: dict
    tokens_usados: Optional[int] = None
    created_at: Optional[datetime] = None
    procesado_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EvidenceCreate(BaseModel):
    siniestro_id: str = Field(..., min_length=1)
    storage_path: str = Field(..., min_length=1)
    nombre_archivo: Optional[str] = None
    tipo_mime: Optional[str] = None
    tamano_bytes: Optional[int] = Field(None, ge=0)
    descripcion: Optional[str] = None
    latitud: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitud: Optional[float] = Field(None, ge=-180.0, le=180.0)
    precision_metros: Optional[float] = Field(None, ge=0.0)
    orden: int = Field(default=0, ge=0)


class EvidenceRead(BaseModel):
    id: str
    siniestro_id: str
    storage_path: str
    nombre_archivo: Optional[str] = None
    tipo_mime: Optional[str] = None
    tamano_bytes: Optional[int] = None
    descripcion: Optional[str] = None
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    precision_metros: Optional[float] = None
    orden: int = 0
    analizado: bool = False
    capturado_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EvidenceWithAnalysesRead(EvidenceRead):
    analisis_ia: list[AnalysisRead] = []


class ClaimCreate(BaseModel):
    """Draft claim opened by the capture wizard; fields are filled in later."""
    patente: str = "PENDIENTE"
    marca: Optional[str] = "Desconocido"
    modelo: Optional[str] = "Desconocido"
    anio: Optional[int] = None
    nombre_asegurado: str = "Usuario App"
    rut_asegurado: Optional[str] = None
    tipo_siniestro: str = "choque"
    descripcion: Optional[str] = None


class LocationUpdate(BaseModel):
    latitud: float = Field(..., ge=-90.0, le=90.0)
    longitud: float = Field(..., ge=-180.0, le=180.0)


class ClaimRead(BaseModel):
    id: str
    numero_siniestro: str
    patente: str
    marca: Optional[str] = None
    modelo: Optional[str] = None
    anio: Optional[int] = None
    nombre_asegurado: str
    rut_asegurado: Optional[str] = None
    tipo_siniestro: str
    descripcion: Optional[str] = None
    latitud: Optional[float] = None
    longitud: Optional[float] = None
    direccion: str
    estado: ClaimStatusEnum
    severidad_general: Optional[SeverityEnum] = None
    score_fraude_general: Optional[float] = None
    costo_estimado_min: int = 0
    costo_estimado_max: int = 0
    fecha_siniestro: Optional[datetime] = None
    created_at: Optional[datetime] = None
    enviado_revision_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ClaimDetailRead(ClaimRead):
    evidencias: list[EvidenceWithAnalysesRead] = []
    pre_informe: Optional[PreReportRead] = None
