"""Excepciones del núcleo de entradas.

Solo los fallos de contrato y de infraestructura son excepciones. Los errores
de decodificación y los rechazos de negocio se devuelven como valores
(`DecodeError`, `RejectionReason`).
"""


class IngresoError(Exception):
    """Base de errores de la aplicación"""


class ConfigurationError(IngresoError):
    """Configuración inválida (por ejemplo, secret de firma vacío)"""


class PaymentNotConfirmedError(IngresoError):
    """Se intentó emitir una entrada para un pago no confirmado"""

    def __init__(self, purchase_id: str, payment_status: str):
        super().__init__(
            f"La compra {purchase_id} no tiene un pago confirmado (estado: {payment_status})"
        )
        self.purchase_id = purchase_id
        self.payment_status = payment_status


class DuplicateTicketCodeError(IngresoError):
    """El Ticket Store rechazó el código porque ya existe"""

    def __init__(self, ticket_id: str):
        super().__init__(f"El código de entrada ya existe: {ticket_id}")
        self.ticket_id = ticket_id


class StoreUnavailableError(IngresoError):
    """El Ticket Store no respondió (red caída, timeout, error de base de datos).

    Es el único caso en que el validador debe ofrecer reintentar o encolar
    offline en lugar de mostrar "entrada denegada".
    """
