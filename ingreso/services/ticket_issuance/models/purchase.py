"""Modelos Pydantic para emisión de entradas"""
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from ingreso.services.ticket_validation.models.payload import TicketPayload
from ingreso.services.ticket_validation.models.ticket import Ticket
from ingreso.shared.utils.clock import ensure_utc


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FREE = "free"  # Compra de monto cero, no pasa por pasarela
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_SUCCESS_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.FREE}


class ConfirmedPurchase(BaseModel):
    """Compra que llega desde el callback de confirmación de pago"""

    purchase_id: str
    event_id: str
    user_id: str
    quantity: int = Field(default=1, ge=1)
    total_amount: Decimal = Decimal("0")
    payment_status: PaymentStatus
    purchased_at: datetime
    event_date: datetime  # Inicio del evento

    @field_validator("purchased_at", "event_date")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _free_means_zero_amount(self) -> "ConfirmedPurchase":
        if self.payment_status == PaymentStatus.FREE and self.total_amount != 0:
            raise ValueError("Una compra gratuita debe tener monto 0")
        return self

    @property
    def is_paid(self) -> bool:
        return self.payment_status in TERMINAL_SUCCESS_STATUSES


class TicketIssuance(BaseModel):
    """Resultado de emitir una entrada: contenido del QR y código legible"""

    ticket_code: str
    qr_content: str
    payload: TicketPayload
    # Registro a persistir exactamente una vez por el llamador
    ticket: Ticket
