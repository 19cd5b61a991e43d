"""Callback de confirmación de pago: único disparador de la emisión"""
import logging

from ingreso.services.ticket_issuance.models.purchase import ConfirmedPurchase, TicketIssuance
from ingreso.services.ticket_issuance.services.issuance_service import TicketIssuanceService
from ingreso.services.ticket_validation.services.ticket_store import TicketStore
from ingreso.shared.errors import DuplicateTicketCodeError

logger = logging.getLogger(__name__)


class PaymentConfirmationHandler:
    """
    Recibe compras confirmadas (pagadas o gratuitas) y persiste su entrada.

    El llamador debe invocarlo dentro de la transacción que descuenta
    inventario; este handler no maneja esa atomicidad.
    """

    def __init__(self, issuance_service: TicketIssuanceService, store: TicketStore, max_code_attempts: int = 3):
        self.issuance_service = issuance_service
        self.store = store
        self.max_code_attempts = max_code_attempts

    async def on_payment_confirmed(self, purchase: ConfirmedPurchase) -> TicketIssuance:
        for attempt in range(1, self.max_code_attempts + 1):
            issuance = self.issuance_service.issue(purchase)
            try:
                await self.store.insert_new_ticket(issuance.ticket)
            except DuplicateTicketCodeError:
                if attempt == self.max_code_attempts:
                    raise
                logger.warning(
                    f"⚠️ Código {issuance.ticket_code} ya existe, regenerando "
                    f"(intento {attempt}/{self.max_code_attempts})"
                )
                continue
            return issuance

        raise DuplicateTicketCodeError(purchase.purchase_id)
