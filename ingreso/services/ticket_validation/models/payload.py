"""Modelos del payload firmado que viaja dentro del QR"""
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ingreso.shared.utils.clock import ensure_utc

PAYLOAD_VERSION = 1


class TicketPayloadFields(BaseModel):
    """Campos del payload sin la firma"""

    model_config = ConfigDict(frozen=True)

    ticket_id: str = Field(min_length=1)
    event_id: str = Field(min_length=1)
    holder_id: str = Field(min_length=1)
    purchase_timestamp: datetime
    issued_at_timestamp: datetime
    quantity: Optional[int] = Field(default=None, ge=1)

    @field_validator("purchase_timestamp", "issued_at_timestamp")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def signed_fields(self, version: int = PAYLOAD_VERSION) -> Tuple[Optional[str], ...]:
        """Orden canónico que cubre la firma"""
        return (
            str(version),
            self.ticket_id,
            self.event_id,
            self.holder_id,
            self.purchase_timestamp.isoformat(),
            self.issued_at_timestamp.isoformat(),
            None if self.quantity is None else str(self.quantity),
        )


class TicketPayload(TicketPayloadFields):
    """Payload verificado, tal como sale de `PayloadCodec.decode`"""

    signature: str = Field(min_length=1)

    def fields(self) -> TicketPayloadFields:
        return TicketPayloadFields(**self.model_dump(exclude={"signature"}))


class DecodeError(str, Enum):
    MALFORMED = "malformed"
    FORGED_OR_CORRUPTED = "forged_or_corrupted"
    PAYLOAD_EXPIRED = "payload_expired"
