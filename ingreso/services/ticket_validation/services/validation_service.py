"""Motor de validación de entradas"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, List, Optional, TypeVar

from ingreso.services.ticket_validation.models.payload import DecodeError
from ingreso.services.ticket_validation.models.ticket import (
    RejectionReason,
    Ticket,
    TicketStatus,
    ValidationEvent,
    ValidationOutcome,
)
from ingreso.services.ticket_validation.services.payload_codec import PayloadCodec
from ingreso.services.ticket_validation.services.ticket_store import CasResult, TicketStore
from ingreso.shared.errors import StoreUnavailableError
from ingreso.shared.security.ticket_code import looks_like_ticket_code
from ingreso.shared.utils.clock import Clock, ensure_utc, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_EVENT_EXPIRY_GRACE = timedelta(hours=24)

DECODE_REJECTIONS = {
    DecodeError.MALFORMED: RejectionReason.MALFORMED,
    DecodeError.FORGED_OR_CORRUPTED: RejectionReason.FORGED_OR_CORRUPTED,
    DecodeError.PAYLOAD_EXPIRED: RejectionReason.PAYLOAD_EXPIRED,
}


class TicketValidationService:
    """
    Decide si una entrada escaneada puede ingresar y marca la entrada como usada.

    Todos los rechazos (QR ilegible, firma inválida, evento equivocado,
    entrada usada o cancelada, carrera perdida) son resultados, nunca
    excepciones. Solo los fallos del Ticket Store se propagan como
    `StoreUnavailableError`.
    """

    def __init__(
        self,
        codec: PayloadCodec,
        store: TicketStore,
        event_expiry_grace: timedelta = DEFAULT_EVENT_EXPIRY_GRACE,
        store_timeout: Optional[float] = None,
        clock: Clock = utc_now,
    ):
        self.codec = codec
        self.store = store
        self.event_expiry_grace = event_expiry_grace
        self.store_timeout = store_timeout
        self.clock = clock

    async def _store_call(self, call: Awaitable[T]) -> T:
        if self.store_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError("Timeout esperando al Ticket Store") from e

    async def validate(
        self,
        content: str,
        event_id: str,
        actor_id: str,
        *,
        scanned_at: Optional[datetime] = None,
        device_id: Optional[str] = None,
    ) -> ValidationOutcome:
        """
        Validar un QR escaneado o un código tipeado a mano.

        Args:
            content: contenido del QR (JSON firmado) o código legible
            event_id: evento para el que está escaneando el validador
            actor_id: usuario validador
            scanned_at: hora local del escaneo (replays de la cola offline)
            device_id: dispositivo que escaneó (replays de la cola offline)
        """
        outcome = await self._evaluate(content, event_id, actor_id)

        if outcome.accepted:
            logger.info(f"✅ Entrada {outcome.ticket_id} validada por {actor_id} (cantidad: {outcome.quantity})")
        else:
            # Rechazo de negocio: queda en auditoría, no es un error de la app
            logger.info(f"Entrada rechazada ({outcome.reason.value}) ticket={outcome.ticket_id} evento={event_id}")

        await self._audit(outcome, event_id, actor_id, scanned_at, device_id)
        return outcome

    async def recent_validations(self, event_id: str, limit: int = 10) -> List[ValidationEvent]:
        """Últimas validaciones registradas para un evento (aceptadas y rechazadas)"""
        return await self._store_call(self.store.list_validation_events(event_id, limit))

    async def _evaluate(self, content: str, event_id: str, actor_id: str) -> ValidationOutcome:
        now = self.clock()

        if isinstance(content, str) and looks_like_ticket_code(content):
            ticket = await self._store_call(self.store.get_by_human_code(content))
            payload_event_id = ticket.event_id if ticket else None
        else:
            decoded = self.codec.decode(content)
            if not decoded.ok:
                return ValidationOutcome.reject(DECODE_REJECTIONS[decoded.error], now)
            payload_event_id = decoded.payload.event_id
            ticket = await self._store_call(self.store.get_by_ticket_id(decoded.payload.ticket_id))

        if ticket is None:
            return ValidationOutcome.reject(RejectionReason.UNKNOWN_TICKET, now)

        if payload_event_id != event_id or ticket.event_id != event_id:
            return ValidationOutcome.reject(RejectionReason.WRONG_EVENT, now, ticket)

        rejection = self._status_rejection(ticket, now)
        if rejection is not None:
            return ValidationOutcome.reject(rejection, now, ticket)

        result = await self._store_call(
            self.store.compare_and_set_used(ticket.ticket_id, TicketStatus.ACTIVE, now, actor_id)
        )
        if result == CasResult.SUCCESS:
            used = ticket.model_copy(update={"status": TicketStatus.USED, "used_at": now, "validated_by": actor_id})
            return ValidationOutcome.accept(used, now)
        if result == CasResult.NOT_FOUND:
            return ValidationOutcome.reject(RejectionReason.UNKNOWN_TICKET, now)

        # Carrera perdida: otro validador ganó el compare-and-set
        logger.info(f"Carrera perdida validando {ticket.ticket_id}, otro dispositivo la marcó primero")
        winner = await self._store_call(self.store.get_by_ticket_id(ticket.ticket_id))
        return ValidationOutcome.reject(RejectionReason.ALREADY_USED, now, winner or ticket)

    def _status_rejection(self, ticket: Ticket, now: datetime) -> Optional[RejectionReason]:
        if ticket.status == TicketStatus.USED:
            return RejectionReason.ALREADY_USED
        if ticket.status == TicketStatus.CANCELLED:
            return RejectionReason.CANCELLED
        if ticket.status == TicketStatus.EXPIRED:
            return RejectionReason.EVENT_EXPIRED
        # Expira 24h después del inicio del evento
        if now > ensure_utc(ticket.event_date) + self.event_expiry_grace:
            return RejectionReason.EVENT_EXPIRED
        return None

    async def _audit(
        self,
        outcome: ValidationOutcome,
        event_id: str,
        actor_id: str,
        scanned_at: Optional[datetime],
        device_id: Optional[str],
    ) -> None:
        event = ValidationEvent(
            ticket_id=outcome.ticket_id,
            event_id=event_id,
            actor_id=actor_id,
            outcome=outcome.status,
            reason=outcome.reason,
            checked_at=outcome.checked_at,
            scanned_at=scanned_at,
            device_id=device_id,
        )
        try:
            await self._store_call(self.store.record_validation_event(event))
        except StoreUnavailableError as e:
            # La transición ya quedó confirmada; el resultado no cambia
            logger.error(f"No se pudo registrar auditoría de validación {event.id}: {e}")
