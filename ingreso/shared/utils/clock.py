"""Utilidades de tiempo (siempre UTC con zona horaria)"""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpretar datetimes naive como UTC y normalizar el resto a UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError as e:
        # Offsets en los extremos de datetime (año 1 o 9999) no tienen equivalente UTC
        raise ValueError(f"Fecha fuera de rango: {value.isoformat()}") from e
