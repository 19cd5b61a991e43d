"""Modelos Pydantic para las rutas de validación de entradas"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ingreso.services.ticket_validation.models.ticket import Ticket, TicketStatus, ValidationOutcome


class TicketValidationRequest(BaseModel):
    qr_content: str = Field(min_length=1)  # QR escaneado o código tipeado
    event_id: str = Field(min_length=1)


class TicketValidationResponse(ValidationOutcome):
    valid: bool

    @classmethod
    def from_outcome(cls, outcome: ValidationOutcome) -> "TicketValidationResponse":
        return cls(**outcome.model_dump(), valid=outcome.accepted)


class TicketStatusResponse(BaseModel):
    """Estado actual de una entrada, para refrescar el cache del validador"""

    ticket_id: str
    event_id: str
    status: TicketStatus
    quantity: int
    used_at: Optional[datetime] = None
    validated_by: Optional[str] = None

    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketStatusResponse":
        return cls(
            ticket_id=ticket.ticket_id,
            event_id=ticket.event_id,
            status=ticket.status,
            quantity=ticket.quantity,
            used_at=ticket.used_at,
            validated_by=ticket.validated_by,
        )
