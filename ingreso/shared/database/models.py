"""Modelos SQLAlchemy de entradas y auditoría de validaciones"""
import uuid

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ingreso.shared.database.connection import Base


class TicketRecord(Base):
    __tablename__ = "tickets"

    # El código legible (TKT-2026-XXXXXXXX) es la identidad de la entrada
    ticket_id = Column(String, primary_key=True)
    event_id = Column(String, nullable=False, index=True)
    holder_id = Column(String, nullable=False, index=True)
    purchase_id = Column(String, nullable=True, index=True)
    quantity = Column(Integer, nullable=False, server_default="1")
    status = Column(String, nullable=False, server_default="active")  # active, used, cancelled, expired
    event_date = Column(DateTime(timezone=True), nullable=False)  # Inicio del evento
    purchased_at = Column(DateTime(timezone=True), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)  # Cuando fue usado
    validated_by = Column(String, nullable=True)  # Usuario que escaneó
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TicketValidationRecord(Base):
    """Auditoría inmutable: solo se inserta, nunca se actualiza"""

    __tablename__ = "ticket_validations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    ticket_id = Column(String, nullable=True, index=True)  # NULL si el QR no se pudo leer
    event_id = Column(String, nullable=False, index=True)
    validated_by = Column(String, nullable=False)
    outcome = Column(String, nullable=False)  # accepted, rejected
    reason = Column(String, nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=False)
    scanned_at = Column(DateTime(timezone=True), nullable=True)  # Hora local del escaneo offline
    device_id = Column(String, nullable=True)
