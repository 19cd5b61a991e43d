"""Tablas SQLite locales del dispositivo validador"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

# Metadata separada: estas tablas viven en el dispositivo, no en el servidor
LocalBase = declarative_base()


class OfflineScanRecord(LocalBase):
    __tablename__ = "offline_scans"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    event_id = Column(String, nullable=False)
    actor_id = Column(String, nullable=False)
    ticket_id = Column(String, nullable=True, index=True)
    scanned_at = Column(DateTime(timezone=True), nullable=False)
    synced = Column(Boolean, nullable=False, default=False, index=True)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_attempt = Column(DateTime(timezone=True), nullable=True)
    outcome_json = Column(Text, nullable=True)  # ValidationOutcome del servidor


class KnownTicketStatusRecord(LocalBase):
    """Último estado del servidor conocido por el dispositivo"""

    __tablename__ = "known_ticket_status"

    ticket_id = Column(String, primary_key=True)
    status = Column(String, nullable=False)


class SyncStateRecord(LocalBase):
    __tablename__ = "sync_state"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
