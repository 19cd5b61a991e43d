"""
Rate limiting usando slowapi.
Limita intentos de validación para frenar adivinanza de códigos por fuerza bruta.
"""
import hashlib
import logging
import os

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """
    Obtener IP real del cliente considerando proxies/load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # La primera es la IP real del cliente
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_user_identifier(request: Request) -> str:
    """Combina IP + hash del token si está autenticado"""
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        # Hash del token para no exponer el token completo
        token_hash = hashlib.sha256(auth_header.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


# Storage en memoria por defecto; con varias instancias usar redis://...
limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
    headers_enabled=False,  # Deshabilitado para compatibilidad con response_model de FastAPI
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Respuesta JSON para rate limit excedido"""
    logger.warning(f"Rate limit exceeded - IP: {get_real_client_ip(request)}, Path: {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiadas solicitudes. Por favor espera antes de intentar nuevamente.",
        },
        headers={"Retry-After": "60"},
    )
