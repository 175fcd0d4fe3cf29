"""Client (cliente) entity: insured-party record looked up by RUT."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from liquidapp.models.base import Base, new_id


class Client(Base):
    __tablename__ = "clientes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # Normalized "XXXXXXXX-X" form, see modules.rut.normalize_rut
    rut: Mapped[str] = mapped_column(String(12), unique=True, nullable=False, index=True)
    nombre_completo: Mapped[str] = mapped_column(String(255), nullable=False)
    telefono: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    direccion: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    poliza_numero: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    patente: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    marca: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    modelo: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    anio: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
