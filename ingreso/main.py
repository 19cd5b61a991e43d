"""Aplicación FastAPI montable para validadores (no se levanta desde este paquete)"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from ingreso.services.offline_sync.services.offline_queue import OfflineValidationQueue
from ingreso.services.offline_sync.services.scan_storage import open_sql_scan_storage
from ingreso.services.ticket_issuance.services.issuance_service import TicketIssuanceService
from ingreso.services.ticket_issuance.services.payment_confirmation import PaymentConfirmationHandler
from ingreso.services.ticket_validation.routes.validation import router as validation_router
from ingreso.services.ticket_validation.services.payload_codec import PayloadCodec
from ingreso.services.ticket_validation.services.sql_ticket_store import SqlTicketStore
from ingreso.services.ticket_validation.services.validation_service import TicketValidationService
from ingreso.shared.config.settings import Settings, get_settings
from ingreso.shared.database.connection import close_db, init_db
from ingreso.shared.errors import StoreUnavailableError
from ingreso.shared.security.signer import HmacSigner
from ingreso.shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler

# Configurar logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_codec(settings: Settings) -> PayloadCodec:
    """Signer y codec a partir de la configuración (el secret no se loggea)"""
    signer = HmacSigner(settings.QR_SECRET.get_secret_value(), settings.previous_qr_secrets())
    return PayloadCodec(signer, max_payload_age=timedelta(days=settings.QR_MAX_PAYLOAD_AGE_DAYS))


def build_validation_service(settings: Settings, store) -> TicketValidationService:
    return TicketValidationService(
        build_codec(settings),
        store,
        event_expiry_grace=timedelta(hours=settings.EVENT_EXPIRY_GRACE_HOURS),
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
    )


def build_payment_handler(settings: Settings, store) -> PaymentConfirmationHandler:
    """Handler que el flujo de compra llama al confirmarse un pago"""
    issuance_service = TicketIssuanceService(
        build_codec(settings),
        code_prefix=settings.TICKET_CODE_PREFIX,
        code_length=settings.TICKET_CODE_LENGTH,
    )
    return PaymentConfirmationHandler(issuance_service, store, max_code_attempts=settings.ISSUANCE_MAX_CODE_ATTEMPTS)


async def build_offline_queue(
    settings: Settings,
    validation_service: TicketValidationService,
    device_id: str,
) -> OfflineValidationQueue:
    """Cola offline del dispositivo sobre su SQLite local"""
    storage = await open_sql_scan_storage(settings.OFFLINE_QUEUE_DATABASE_URL)
    return OfflineValidationQueue(
        validation_service,
        storage,
        device_id,
        max_retries=settings.SYNC_MAX_RETRIES,
        initial_delay=settings.SYNC_INITIAL_DELAY_SECONDS,
    )


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(f"Ticket Store no disponible - Path: {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={
            "error": "store_unavailable",
            "detail": "No se pudo contactar al servidor. Reintenta o guarda la validación offline.",
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    validation_service: Optional[TicketValidationService] = None,
) -> FastAPI:
    """
    Crear la aplicación de validación.

    Sin `validation_service` se conecta a DATABASE_URL al iniciar y usa el
    Ticket Store SQL; las pruebas inyectan un servicio con store en memoria.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Iniciando aplicación...")
        owns_db = validation_service is None
        if owns_db:
            session_factory = await init_db(settings.DATABASE_URL)
            app.state.validation_service = build_validation_service(settings, SqlTicketStore(session_factory))
        else:
            app.state.validation_service = validation_service
        logger.info("Aplicación iniciada")
        yield
        logger.info("Cerrando aplicación...")
        if owns_db:
            await close_db()
        logger.info("Aplicación cerrada")

    app = FastAPI(
        title="Ingreso API",
        description="Validación de entradas QR para eventos",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)

    app.include_router(validation_router, prefix="/api/v1/tickets", tags=["validation"])

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
