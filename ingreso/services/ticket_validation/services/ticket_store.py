"""Contrato del Ticket Store y una implementación en memoria"""
import asyncio
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol

from ingreso.services.ticket_validation.models.ticket import Ticket, TicketStatus, ValidationEvent
from ingreso.shared.errors import DuplicateTicketCodeError
from ingreso.shared.security.ticket_code import normalize_ticket_code


class CasResult(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class TicketStore(Protocol):
    """
    Persistencia de entradas.

    `status` solo se modifica con transiciones condicionales
    (compare-and-set): dos escaneos simultáneos nunca pueden ambos pasar
    de active a used. Los fallos de infraestructura se lanzan como
    `StoreUnavailableError`.
    """

    async def get_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]: ...

    async def get_by_human_code(self, code: str) -> Optional[Ticket]: ...

    async def compare_and_set_used(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        used_at: datetime,
        actor_id: str,
    ) -> CasResult: ...

    async def cancel_ticket(self, ticket_id: str) -> CasResult: ...

    async def insert_new_ticket(self, ticket: Ticket) -> None: ...

    async def record_validation_event(self, event: ValidationEvent) -> None: ...

    async def list_validation_events(self, event_id: str, limit: int = 10) -> List[ValidationEvent]: ...


class InMemoryTicketStore:
    """Ticket Store en memoria, para pruebas y para el modo demo del validador"""

    def __init__(self, tickets: Optional[List[Ticket]] = None):
        self._tickets: Dict[str, Ticket] = {}
        self._lock = asyncio.Lock()
        self.validation_events: List[ValidationEvent] = []
        for ticket in tickets or []:
            self._tickets[ticket.ticket_id] = ticket.model_copy()

    async def get_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]:
        # Cede el loop como lo haría un round-trip de red
        await asyncio.sleep(0)
        ticket = self._tickets.get(ticket_id)
        return ticket.model_copy() if ticket else None

    async def get_by_human_code(self, code: str) -> Optional[Ticket]:
        return await self.get_by_ticket_id(normalize_ticket_code(code))

    async def compare_and_set_used(
        self,
        ticket_id: str,
        expected_status: TicketStatus,
        used_at: datetime,
        actor_id: str,
    ) -> CasResult:
        await asyncio.sleep(0)
        async with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                return CasResult.NOT_FOUND
            if ticket.status != expected_status:
                return CasResult.CONFLICT
            self._tickets[ticket_id] = ticket.model_copy(
                update={"status": TicketStatus.USED, "used_at": used_at, "validated_by": actor_id}
            )
            return CasResult.SUCCESS

    async def cancel_ticket(self, ticket_id: str) -> CasResult:
        async with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                return CasResult.NOT_FOUND
            if ticket.status != TicketStatus.ACTIVE:
                return CasResult.CONFLICT
            self._tickets[ticket_id] = ticket.model_copy(update={"status": TicketStatus.CANCELLED})
            return CasResult.SUCCESS

    async def insert_new_ticket(self, ticket: Ticket) -> None:
        async with self._lock:
            if ticket.ticket_id in self._tickets:
                raise DuplicateTicketCodeError(ticket.ticket_id)
            self._tickets[ticket.ticket_id] = ticket.model_copy()

    async def record_validation_event(self, event: ValidationEvent) -> None:
        self.validation_events.append(event)

    async def list_validation_events(self, event_id: str, limit: int = 10) -> List[ValidationEvent]:
        # A igual hora, la última registrada va primero
        events = [e for e in reversed(self.validation_events) if e.event_id == event_id]
        events.sort(key=lambda e: e.checked_at, reverse=True)
        return [e.model_copy() for e in events[:limit]]
