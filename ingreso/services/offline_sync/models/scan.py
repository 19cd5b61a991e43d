"""Modelos de la cola offline del dispositivo validador"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ingreso.services.ticket_validation.models.ticket import ValidationOutcome


class OfflineScan(BaseModel):
    sequence: Optional[int] = None  # Orden local de escaneo, lo asigna el storage
    device_id: str
    content: str
    event_id: str
    actor_id: str
    ticket_id: Optional[str] = None  # Leído sin verificar, solo para el cache local
    scanned_at: datetime
    synced: bool = False
    sync_attempts: int = 0
    last_sync_attempt: Optional[datetime] = None
    outcome: Optional[ValidationOutcome] = None


class ProvisionalStatus(str, Enum):
    PROVISIONALLY_ACCEPTED = "provisionally_accepted"
    PENDING_SYNC = "pending_sync"


class ProvisionalResult(BaseModel):
    """Lo que muestra el validador mientras no hay conexión"""

    sequence: int
    ticket_id: Optional[str] = None
    status: ProvisionalStatus
    provisional: bool = True
    message: str


class SyncReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    synced: List[OfflineScan] = Field(default_factory=list)
    # Escaneos que el servidor rechazó como already_used
    conflicts: List[OfflineScan] = Field(default_factory=list)
    pending: int = 0
    interrupted: bool = False
    error: Optional[str] = None

    @property
    def synced_count(self) -> int:
        return len(self.synced)

    @property
    def accepted_count(self) -> int:
        return sum(1 for scan in self.synced if scan.outcome is not None and scan.outcome.accepted)
