"""Modelos de entradas persistidas y resultados de validación"""
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from ingreso.shared.utils.clock import ensure_utc


class TicketStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Ticket(BaseModel):
    """Registro de entrada persistido por el Ticket Store"""

    ticket_id: str
    event_id: str
    holder_id: str
    purchase_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    status: TicketStatus = TicketStatus.ACTIVE
    event_date: datetime
    purchased_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    validated_by: Optional[str] = None

    @field_validator("event_date", "purchased_at", "issued_at", "used_at")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else ensure_utc(value)


class OutcomeStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class RejectionReason(str, Enum):
    MALFORMED = "malformed"
    FORGED_OR_CORRUPTED = "forged_or_corrupted"
    PAYLOAD_EXPIRED = "payload_expired"
    UNKNOWN_TICKET = "unknown_ticket"
    WRONG_EVENT = "wrong_event"
    ALREADY_USED = "already_used"
    CANCELLED = "cancelled"
    EVENT_EXPIRED = "event_expired"


# Mensajes para el operador del validador
OPERATOR_MESSAGES = {
    None: "Entrada válida. El usuario puede ingresar al evento.",
    RejectionReason.MALFORMED: "El código QR no tiene un formato válido.",
    RejectionReason.FORGED_OR_CORRUPTED: "El código QR no es auténtico o está dañado.",
    RejectionReason.PAYLOAD_EXPIRED: "El código QR es demasiado antiguo.",
    RejectionReason.UNKNOWN_TICKET: "No se encontró la entrada.",
    RejectionReason.WRONG_EVENT: "Esta entrada no corresponde a este evento.",
    RejectionReason.ALREADY_USED: "Esta entrada ya fue utilizada anteriormente.",
    RejectionReason.CANCELLED: "Esta entrada ha sido cancelada.",
    RejectionReason.EVENT_EXPIRED: "Esta entrada ha expirado. El evento ya finalizó.",
}


class ValidationOutcome(BaseModel):
    status: OutcomeStatus
    reason: Optional[RejectionReason] = None
    message: str = ""
    ticket_id: Optional[str] = None
    event_id: Optional[str] = None
    holder_id: Optional[str] = None
    quantity: Optional[int] = None
    used_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    checked_at: datetime

    @property
    def accepted(self) -> bool:
        return self.status == OutcomeStatus.ACCEPTED

    @classmethod
    def accept(cls, ticket: Ticket, checked_at: datetime) -> "ValidationOutcome":
        return cls(
            status=OutcomeStatus.ACCEPTED,
            message=OPERATOR_MESSAGES[None],
            ticket_id=ticket.ticket_id,
            event_id=ticket.event_id,
            holder_id=ticket.holder_id,
            quantity=ticket.quantity,
            used_at=ticket.used_at,
            validated_by=ticket.validated_by,
            checked_at=checked_at,
        )

    @classmethod
    def reject(
        cls,
        reason: RejectionReason,
        checked_at: datetime,
        ticket: Optional[Ticket] = None,
    ) -> "ValidationOutcome":
        outcome = cls(
            status=OutcomeStatus.REJECTED,
            reason=reason,
            message=OPERATOR_MESSAGES[reason],
            checked_at=checked_at,
        )
        if ticket is not None:
            outcome.ticket_id = ticket.ticket_id
            # Los datos de otro evento no se muestran al operador
            if reason == RejectionReason.WRONG_EVENT:
                return outcome
            outcome.event_id = ticket.event_id
            outcome.holder_id = ticket.holder_id
            outcome.quantity = ticket.quantity
            # Solo interesa quién dejó pasar antes si la entrada ya se usó
            if reason == RejectionReason.ALREADY_USED:
                outcome.used_at = ticket.used_at
                outcome.validated_by = ticket.validated_by
        return outcome


class ValidationEvent(BaseModel):
    """Registro inmutable de auditoría de cada intento de validación"""

    id: str = Field(default_factory=lambda: str(uuid4()))
    ticket_id: Optional[str] = None
    event_id: str
    actor_id: str
    outcome: OutcomeStatus
    reason: Optional[RejectionReason] = None
    checked_at: datetime
    scanned_at: Optional[datetime] = None
    device_id: Optional[str] = None
