"""Rutas de validación de entradas"""
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ingreso.services.ticket_validation.models.ticket import ValidationEvent
from ingreso.services.ticket_validation.models.validation import (
    TicketStatusResponse,
    TicketValidationRequest,
    TicketValidationResponse,
)
from ingreso.services.ticket_validation.services.validation_service import TicketValidationService
from ingreso.shared.auth.dependencies import get_current_validator
from ingreso.shared.config.settings import get_settings
from ingreso.shared.utils.rate_limiter import limiter

router = APIRouter()


def get_validation_service(request: Request) -> TicketValidationService:
    return request.app.state.validation_service


@router.post("/validate", response_model=TicketValidationResponse)
@limiter.limit(lambda: get_settings().RATE_LIMIT_VALIDATION)
async def validate_ticket(
    request: Request,
    body: TicketValidationRequest,
    service: TicketValidationService = Depends(get_validation_service),
    current_user: Dict = Depends(get_current_validator),
):
    """
    Validar entrada por QR o código legible

    Requiere autenticación de scanner/validator/admin. Los rechazos
    responden 200 con `valid=false`; 503 indica que el Ticket Store no está
    disponible y el dispositivo puede reintentar o encolar offline.
    """
    outcome = await service.validate(body.qr_content, body.event_id, current_user["user_id"])
    return TicketValidationResponse.from_outcome(outcome)


@router.get("/validations", response_model=List[ValidationEvent])
async def list_recent_validations(
    event_id: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=100),
    service: TicketValidationService = Depends(get_validation_service),
    current_user: Dict = Depends(get_current_validator),
):
    """Validaciones recientes de un evento, la más nueva primero"""
    return await service.recent_validations(event_id, limit)


@router.get("/{ticket_id}/status", response_model=TicketStatusResponse)
async def get_ticket_status(
    ticket_id: str,
    service: TicketValidationService = Depends(get_validation_service),
    current_user: Dict = Depends(get_current_validator),
):
    """Estado actual de una entrada (para el cache offline del validador)"""
    ticket = await service.store.get_by_human_code(ticket_id)

    if not ticket:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Entrada no encontrada"
        )

    return TicketStatusResponse.from_ticket(ticket)
