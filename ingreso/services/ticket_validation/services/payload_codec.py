"""Codec del payload firmado que viaja dentro del QR"""
import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ingreso.services.ticket_validation.models.payload import (
    PAYLOAD_VERSION,
    DecodeError,
    TicketPayload,
    TicketPayloadFields,
)
from ingreso.shared.security.signer import HmacSigner
from ingreso.shared.security.ticket_code import looks_like_ticket_code, normalize_ticket_code
from ingreso.shared.utils.clock import Clock, utc_now

DEFAULT_MAX_PAYLOAD_AGE = timedelta(days=365)

# Claves cortas: el QR es más chico y fácil de leer
WIRE_KEYS = {
    "ticket_id": "tid",
    "event_id": "eid",
    "holder_id": "hid",
    "purchase_timestamp": "pts",
    "issued_at_timestamp": "iat",
    "quantity": "qty",
    "signature": "sig",
}
REQUIRED_WIRE_KEYS = ("v", "tid", "eid", "hid", "pts", "iat", "sig")


@dataclass(frozen=True)
class DecodeResult:
    payload: Optional[TicketPayload] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PayloadCodec:
    """
    Serializa y verifica payloads de entradas.

    Es puro: no hace I/O y solo depende del payload y del reloj inyectado.
    El formato es JSON compacto con claves ordenadas, autodescriptivo, y la
    firma cubre el orden canónico de `TicketPayloadFields.signed_fields`.
    """

    def __init__(
        self,
        signer: HmacSigner,
        max_payload_age: timedelta = DEFAULT_MAX_PAYLOAD_AGE,
        clock: Clock = utc_now,
    ):
        self.signer = signer
        self.max_payload_age = max_payload_age
        self.clock = clock

    def sign(self, fields: TicketPayloadFields) -> TicketPayload:
        return TicketPayload(**fields.model_dump(), signature=self.signer.sign(fields.signed_fields()))

    @staticmethod
    def serialize(payload: TicketPayload) -> str:
        wire: Dict[str, Any] = {
            "v": PAYLOAD_VERSION,
            "tid": payload.ticket_id,
            "eid": payload.event_id,
            "hid": payload.holder_id,
            "pts": payload.purchase_timestamp.isoformat(),
            "iat": payload.issued_at_timestamp.isoformat(),
            "sig": payload.signature,
        }
        if payload.quantity is not None:
            wire["qty"] = payload.quantity
        return json.dumps(wire, separators=(",", ":"), sort_keys=True)

    def encode(self, fields: TicketPayloadFields) -> str:
        return self.serialize(self.sign(fields))

    def decode(self, wire: str) -> DecodeResult:
        payload = self._parse(wire)
        if payload is None:
            return DecodeResult(error=DecodeError.MALFORMED)

        if not self.signer.verify(payload.signed_fields(), payload.signature):
            return DecodeResult(error=DecodeError.FORGED_OR_CORRUPTED)

        # Antigüedad del payload, distinta del estado expired de la entrada
        if self.clock() - payload.issued_at_timestamp > self.max_payload_age:
            return DecodeResult(error=DecodeError.PAYLOAD_EXPIRED)

        return DecodeResult(payload=payload)

    @staticmethod
    def _load_object(wire: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(wire, str):
            return None
        try:
            data = json.loads(wire)
        except (ValueError, RecursionError):
            return None
        return data if isinstance(data, dict) else None

    def _parse(self, wire: Any) -> Optional[TicketPayload]:
        data = self._load_object(wire)
        if data is None:
            return None
        if any(key not in data for key in REQUIRED_WIRE_KEYS):
            return None
        if data["v"] != PAYLOAD_VERSION:
            return None
        try:
            return TicketPayload(**{name: data[key] for name, key in WIRE_KEYS.items() if key in data})
        except (ValidationError, TypeError, OverflowError):
            return None

    def read_ticket_id(self, content: str) -> Optional[str]:
        """
        Extraer el ticket_id sin verificar la firma.

        Lo usa la cola offline para consultar el último estado conocido; nunca
        debe usarse para decidir un ingreso.
        """
        if isinstance(content, str) and looks_like_ticket_code(content):
            return normalize_ticket_code(content)
        data = self._load_object(content)
        if data is None:
            return None
        ticket_id = data.get("tid")
        return ticket_id if isinstance(ticket_id, str) and ticket_id else None
