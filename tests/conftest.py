"""
Configuración de pytest compartida.

Fija el entorno antes de importar la aplicación: secret de QR, secret JWT y
un rate limit alto para que las pruebas de rutas no lo alcancen.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("QR_SECRET", "test-qr-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("RATE_LIMIT_VALIDATION", "1000/minute")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from ingreso.services.ticket_issuance.models.purchase import ConfirmedPurchase, PaymentStatus  # noqa: E402
from ingreso.services.ticket_issuance.services.issuance_service import TicketIssuanceService  # noqa: E402
from ingreso.services.ticket_validation.models.payload import TicketPayloadFields  # noqa: E402
from ingreso.services.ticket_validation.models.ticket import Ticket  # noqa: E402
from ingreso.services.ticket_validation.services.payload_codec import PayloadCodec  # noqa: E402
from ingreso.services.ticket_validation.services.ticket_store import InMemoryTicketStore  # noqa: E402
from ingreso.services.ticket_validation.services.validation_service import TicketValidationService  # noqa: E402
from ingreso.shared.security.signer import HmacSigner  # noqa: E402

NOW = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)
SECRET = "test-qr-secret"


class FrozenClock:
    """Reloj controlable para pruebas"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def signer():
    return HmacSigner(SECRET)


@pytest.fixture
def codec(signer, clock):
    return PayloadCodec(signer, clock=clock)


@pytest.fixture
def store():
    return InMemoryTicketStore()


@pytest.fixture
def validation_service(codec, store, clock):
    return TicketValidationService(codec, store, clock=clock)


@pytest.fixture
def issuance_service(codec, clock):
    return TicketIssuanceService(codec, clock=clock)


def make_fields(**overrides) -> TicketPayloadFields:
    values = dict(
        ticket_id="TKT-2026-ABCD1234",
        event_id="E1",
        holder_id="user-1",
        purchase_timestamp=NOW - timedelta(days=3),
        issued_at_timestamp=NOW - timedelta(days=3, seconds=-5),
        quantity=2,
    )
    values.update(overrides)
    return TicketPayloadFields(**values)


def make_purchase(**overrides) -> ConfirmedPurchase:
    values = dict(
        purchase_id="purchase-1",
        event_id="E1",
        user_id="user-1",
        quantity=2,
        total_amount="40.00",
        payment_status=PaymentStatus.COMPLETED,
        purchased_at=NOW - timedelta(hours=1),
        event_date=NOW + timedelta(days=7),
    )
    values.update(overrides)
    return ConfirmedPurchase(**values)


def make_ticket(**overrides) -> Ticket:
    values = dict(
        ticket_id="TKT-2026-ABCD1234",
        event_id="E1",
        holder_id="user-1",
        purchase_id="purchase-1",
        quantity=2,
        event_date=NOW + timedelta(days=7),
        purchased_at=NOW - timedelta(days=3),
        issued_at=NOW - timedelta(days=3),
    )
    values.update(overrides)
    return Ticket(**values)
