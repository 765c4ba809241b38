from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, String, Text

from backend.db import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class ConfigurationORM(Base):
    """Key/value configuration documents, e.g. the serialized deduction rules."""

    __tablename__ = "configuracion"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class InventoryORM(Base):
    __tablename__ = "inventario"

    id = Column(String, primary_key=True, default=_uuid_str)
    nombre = Column(String, nullable=False)
    tipo = Column(String, nullable=True, index=True)
    cantidad = Column(Float, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
