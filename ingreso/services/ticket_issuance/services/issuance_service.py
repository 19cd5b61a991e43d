"""Servicio de emisión de entradas con QR firmado"""
import logging

from ingreso.services.ticket_issuance.models.purchase import ConfirmedPurchase, TicketIssuance
from ingreso.services.ticket_validation.models.payload import TicketPayloadFields
from ingreso.services.ticket_validation.models.ticket import Ticket, TicketStatus
from ingreso.services.ticket_validation.services.payload_codec import PayloadCodec
from ingreso.shared.errors import PaymentNotConfirmedError
from ingreso.shared.security.ticket_code import generate_ticket_code
from ingreso.shared.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class TicketIssuanceService:
    """Convierte una compra confirmada en contenido listo para el QR"""

    def __init__(
        self,
        codec: PayloadCodec,
        code_prefix: str = "TKT",
        code_length: int = 8,
        clock: Clock = utc_now,
    ):
        self.codec = codec
        self.code_prefix = code_prefix
        self.code_length = code_length
        self.clock = clock

    def issue(self, purchase: ConfirmedPurchase) -> TicketIssuance:
        """
        Emitir la entrada de una compra.

        No persiste nada: el llamador guarda `issuance.ticket` una sola vez,
        en la misma transacción que descuenta inventario.

        Raises:
            PaymentNotConfirmedError: el pago no está en un estado terminal exitoso
        """
        if not purchase.is_paid:
            raise PaymentNotConfirmedError(purchase.purchase_id, purchase.payment_status.value)

        now = self.clock()
        ticket_code = generate_ticket_code(self.code_prefix, self.code_length, now=now)

        # El código legible va dentro del payload firmado: no se puede
        # combinar un QR válido con otro código
        fields = TicketPayloadFields(
            ticket_id=ticket_code,
            event_id=purchase.event_id,
            holder_id=purchase.user_id,
            purchase_timestamp=purchase.purchased_at,
            issued_at_timestamp=now,
            quantity=purchase.quantity,
        )
        payload = self.codec.sign(fields)
        qr_content = self.codec.serialize(payload)

        ticket = Ticket(
            ticket_id=ticket_code,
            event_id=purchase.event_id,
            holder_id=purchase.user_id,
            purchase_id=purchase.purchase_id,
            quantity=purchase.quantity,
            status=TicketStatus.ACTIVE,
            event_date=purchase.event_date,
            purchased_at=purchase.purchased_at,
            issued_at=now,
        )

        logger.info(f"Entrada {ticket_code} emitida para compra {purchase.purchase_id} (cantidad: {purchase.quantity})")
        return TicketIssuance(ticket_code=ticket_code, qr_content=qr_content, payload=payload, ticket=ticket)
