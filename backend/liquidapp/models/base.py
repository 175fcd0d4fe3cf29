"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
import uuid
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    """Primary keys are UUID strings; the API exchanges ids as plain strings."""
    return str(uuid.uuid4())


class SeverityEnum(str, enum.Enum):
    MINOR = "leve"
    MODERATE = "moderado"
    SEVERE = "grave"
    TOTAL_LOSS = "perdida_total"


# Worst-case ordering used by the claim rollup
SEVERITY_RANK: dict[SeverityEnum, int] = {
    SeverityEnum.MINOR: 1,
    SeverityEnum.MODERATE: 2,
    SeverityEnum.SEVERE: 3,
    SeverityEnum.TOTAL_LOSS: 4,
}


class FraudLevelEnum(str, enum.Enum):
    LOW = "bajo"
    MEDIUM = "medio"
    HIGH = "alto"
    CRITICAL = "critico"


class ClaimStatusEnum(str, enum.Enum):
    DRAFT = "borrador"
    UNDER_REVIEW = "en_revision"
    APPROVED = "aprobado"
    REJECTED = "rechazado"
    CLOSED = "cerrado"


class ReportStatusEnum(str, enum.Enum):
    DRAFT = "borrador"
    REVIEWED = "revisado"
    SIGNED = "firmado"


class DeliveryModeEnum(str, enum.Enum):
    """How the caller waits for an analysis: awaited response or accept-and-continue."""
    SYNCHRONOUS = "sincrono"
    QUEUED = "cola"
