"""Códigos legibles de entrada (formato PREFIJO-AÑO-SUFIJO)"""
import re
import secrets
import string
from datetime import datetime
from typing import Optional

from ingreso.shared.utils.clock import utc_now

CODE_ALPHABET = string.ascii_uppercase + string.digits
TICKET_CODE_PATTERN = re.compile(r"^[A-Z]{2,10}-\d{4}-[A-Z0-9]{4,32}$")


def generate_ticket_code(prefix: str = "TKT", length: int = 8, now: Optional[datetime] = None) -> str:
    """
    Generar un código único para una entrada.

    Formato: TKT-2026-7K2QD9XA. El sufijo sale de `secrets`, con 8
    caracteres hay 36^8 combinaciones por año; la unicidad final la
    garantiza el Ticket Store al insertar.
    """
    year = (now or utc_now()).year
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{prefix.upper()}-{year}-{suffix}"


def normalize_ticket_code(value: str) -> str:
    """Los códigos tipeados a mano llegan con espacios o en minúsculas"""
    return value.strip().upper()


def looks_like_ticket_code(value: str) -> bool:
    return bool(TICKET_CODE_PATTERN.match(normalize_ticket_code(value)))
