"""Pruebas del handler de confirmación de pago"""
import pytest

from conftest import make_purchase
from ingreso.services.ticket_issuance.models.purchase import PaymentStatus
from ingreso.services.ticket_issuance.services.payment_confirmation import PaymentConfirmationHandler
from ingreso.services.ticket_validation.services.ticket_store import InMemoryTicketStore
from ingreso.shared.errors import DuplicateTicketCodeError, PaymentNotConfirmedError


class CollidingStore(InMemoryTicketStore):
    """Simula colisiones de código en las primeras inserciones"""

    def __init__(self, collisions: int):
        super().__init__()
        self.collisions = collisions
        self.insert_calls = 0

    async def insert_new_ticket(self, ticket):
        self.insert_calls += 1
        if self.insert_calls <= self.collisions:
            raise DuplicateTicketCodeError(ticket.ticket_id)
        await super().insert_new_ticket(ticket)


async def test_confirmed_purchase_is_persisted(issuance_service, store):
    handler = PaymentConfirmationHandler(issuance_service, store)
    issuance = await handler.on_payment_confirmed(make_purchase())

    stored = await store.get_by_ticket_id(issuance.ticket_code)
    assert stored is not None
    assert stored.purchase_id == "purchase-1"


async def test_duplicate_code_is_regenerated(issuance_service):
    store = CollidingStore(collisions=2)
    handler = PaymentConfirmationHandler(issuance_service, store, max_code_attempts=3)

    issuance = await handler.on_payment_confirmed(make_purchase())

    assert store.insert_calls == 3
    assert await store.get_by_ticket_id(issuance.ticket_code) is not None


async def test_gives_up_after_max_attempts(issuance_service):
    store = CollidingStore(collisions=5)
    handler = PaymentConfirmationHandler(issuance_service, store, max_code_attempts=3)

    with pytest.raises(DuplicateTicketCodeError):
        await handler.on_payment_confirmed(make_purchase())
    assert store.insert_calls == 3


async def test_pending_payment_persists_nothing(issuance_service):
    store = CollidingStore(collisions=0)
    handler = PaymentConfirmationHandler(issuance_service, store)

    with pytest.raises(PaymentNotConfirmedError):
        await handler.on_payment_confirmed(make_purchase(payment_status=PaymentStatus.PENDING))
    assert store.insert_calls == 0
