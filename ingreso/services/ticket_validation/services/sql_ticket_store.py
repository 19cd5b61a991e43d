"""Ticket Store sobre SQLAlchemy async"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ingreso.services.ticket_validation.models.ticket import (
    OutcomeStatus,
    RejectionReason,
    Ticket,
    TicketStatus,
    ValidationEvent,
)
from ingreso.services.ticket_validation.services.ticket_store import CasResult
from ingreso.shared.database.models import TicketRecord, TicketValidationRecord
from ingreso.shared.errors import DuplicateTicketCodeError, StoreUnavailableError
from ingreso.shared.security.ticket_code import normalize_ticket_code
from ingreso.shared.utils.clock import ensure_utc

logger = logging.getLogger(__name__)


def _to_ticket(record: TicketRecord) -> Ticket:
    return Ticket(
        ticket_id=record.ticket_id,
        event_id=record.event_id,
        holder_id=record.holder_id,
        purchase_id=record.purchase_id,
        quantity=record.quantity,
        status=TicketStatus(record.status),
        event_date=record.event_date,
        purchased_at=record.purchased_at,
        issued_at=record.issued_at,
        used_at=record.used_at,
        validated_by=record.validated_by,
    )


def _to_validation_event(record: TicketValidationRecord) -> ValidationEvent:
    return ValidationEvent(
        id=record.id,
        ticket_id=record.ticket_id,
        event_id=record.event_id,
        actor_id=record.validated_by,
        outcome=OutcomeStatus(record.outcome),
        reason=RejectionReason(record.reason) if record.reason else None,
        checked_at=ensure_utc(record.validated_at),
        scanned_at=ensure_utc(record.scanned_at) if record.scanned_at else None,
        device_id=record.device_id,
    )


class SqlTicketStore:
    """
    Ticket Store persistente.

    La transición active -> used es un único UPDATE condicionado a
    `status = 'active'`; la base serializa escaneos concurrentes de la
    misma entrada y solo uno afecta la fila.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TicketRecord).where(TicketRecord.ticket_id == ticket_id)
                )
                record = result.scalar_one_or_none()
                return _to_ticket(record) if record else None
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error consultando entrada {ticket_id}: {type(e).__name__}: {e}")
            raise StoreUnavailableError(f"No se pudo consultar la entrada {ticket_id}") from e

    async def get_by_human_code(self, code: str) -> Optional[Ticket]:
        return await self.get_by_ticket_id(normalize_ticket_code(code))

    async def _conditional_status_update(self, ticket_id: str, expected_status: TicketStatus, values: dict) -> CasResult:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(TicketRecord)
                        .where(
                            TicketRecord.ticket_id == ticket_id,
                            TicketRecord.status == expected_status.value,
                        )
                        .values(**values)
                    )
                    if result.rowcount == 1:
                        return CasResult.SUCCESS

                    exists = await session.execute(
                        select(TicketRecord.ticket_id).where(TicketRecord.ticket_id == ticket_id)
                    )
                    if exists.scalar_one_or_none() is None:
                        return CasResult.NOT_FOUND
                    return CasResult.CONFLICT
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error actualizando estado de {ticket_id}: {type(e).__name__}: {e}")
            raise StoreUnavailableError(f"No se pudo actualizar la entrada {ticket_id}") from e

    async def compare_and_set_used(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        used_at: datetime,
        actor_id: str,
    ) -> CasResult:
        return await self._conditional_status_update(
            ticket_id,
            expected_status,
            {"status": TicketStatus.USED.value, "used_at": used_at, "validated_by": actor_id},
        )

    async def cancel_ticket(self, ticket_id: str) -> CasResult:
        return await self._conditional_status_update(
            ticket_id, TicketStatus.ACTIVE, {"status": TicketStatus.CANCELLED.value}
        )

    async def insert_new_ticket(self, ticket: Ticket) -> None:
        record = TicketRecord(
            ticket_id=ticket.ticket_id,
            event_id=ticket.event_id,
            holder_id=ticket.holder_id,
            purchase_id=ticket.purchase_id,
            quantity=ticket.quantity,
            status=ticket.status.value,
            event_date=ticket.event_date,
            purchased_at=ticket.purchased_at,
            issued_at=ticket.issued_at,
            used_at=ticket.used_at,
            validated_by=ticket.validated_by,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(record)
        except IntegrityError as e:
            raise DuplicateTicketCodeError(ticket.ticket_id) from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error insertando entrada {ticket.ticket_id}: {type(e).__name__}: {e}")
            raise StoreUnavailableError(f"No se pudo insertar la entrada {ticket.ticket_id}") from e

    async def record_validation_event(self, event: ValidationEvent) -> None:
        record = TicketValidationRecord(
            id=event.id,
            ticket_id=event.ticket_id,
            event_id=event.event_id,
            validated_by=event.actor_id,
            outcome=event.outcome.value,
            reason=event.reason.value if event.reason else None,
            validated_at=event.checked_at,
            scanned_at=event.scanned_at,
            device_id=event.device_id,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(record)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError("No se pudo registrar la validación") from e

    async def list_validation_events(self, event_id: str, limit: int = 10) -> List[ValidationEvent]:
        """Validaciones más recientes de un evento, la última primero"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TicketValidationRecord)
                    .where(TicketValidationRecord.event_id == event_id)
                    .order_by(TicketValidationRecord.validated_at.desc())
                    .limit(limit)
                )
                return [_to_validation_event(r) for r in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Error consultando validaciones del evento {event_id}: {type(e).__name__}: {e}")
            raise StoreUnavailableError(f"No se pudieron consultar las validaciones del evento {event_id}") from e
