"""Cola de validaciones offline del dispositivo validador"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from ingreso.services.offline_sync.models.scan import (
    OfflineScan,
    ProvisionalResult,
    ProvisionalStatus,
    SyncReport,
)
from ingreso.services.offline_sync.services.scan_storage import ScanStorage
from ingreso.services.ticket_validation.models.ticket import (
    OutcomeStatus,
    RejectionReason,
    TicketStatus,
    ValidationOutcome,
)
from ingreso.services.ticket_validation.services.validation_service import TicketValidationService
from ingreso.shared.errors import StoreUnavailableError
from ingreso.shared.utils.clock import Clock, utc_now
from ingreso.shared.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

# Estado del servidor que implica cada rechazo
STATUS_BY_REJECTION = {
    RejectionReason.ALREADY_USED: TicketStatus.USED,
    RejectionReason.CANCELLED: TicketStatus.CANCELLED,
    RejectionReason.EVENT_EXPIRED: TicketStatus.EXPIRED,
}


class OfflineValidationQueue:
    """
    Guarda escaneos hechos sin conexión y los reproduce al volver la red.

    Los escaneos se reproducen en el orden en que se hicieron en este
    dispositivo, uno a la vez. El servidor decide: si dos dispositivos
    escanearon la misma entrada offline, el compare-and-set deja pasar solo
    al primero que sincroniza y la cola solo reporta el conflicto.
    """

    def __init__(
        self,
        validation_service: TicketValidationService,
        storage: ScanStorage,
        device_id: str,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        clock: Clock = utc_now,
    ):
        self.validation_service = validation_service
        self.storage = storage
        self.device_id = device_id
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.clock = clock
        self._sync_lock = asyncio.Lock()

    async def record(
        self,
        content: str,
        event_id: str,
        actor_id: str,
        *,
        last_known_status: Optional[TicketStatus] = None,
    ) -> ProvisionalResult:
        """
        Encolar un escaneo hecho sin conexión.

        Solo se muestra "aceptado (provisorio)" si el último estado conocido
        del servidor era active y no hay otro escaneo pendiente de la misma
        entrada en este dispositivo.
        """
        ticket_id = self.validation_service.codec.read_ticket_id(content)

        known = last_known_status
        already_queued = False
        if ticket_id is not None:
            if known is None:
                known = await self.storage.get_known_status(ticket_id)
            already_queued = await self.storage.has_pending_for(ticket_id)

        scan = await self.storage.append(
            OfflineScan(
                device_id=self.device_id,
                content=content,
                event_id=event_id,
                actor_id=actor_id,
                ticket_id=ticket_id,
                scanned_at=self.clock(),
            )
        )
        logger.info(f"💾 Validación guardada offline (#{scan.sequence}, ticket={ticket_id})")

        if known == TicketStatus.ACTIVE and not already_queued:
            return ProvisionalResult(
                sequence=scan.sequence,
                ticket_id=ticket_id,
                status=ProvisionalStatus.PROVISIONALLY_ACCEPTED,
                message="Aceptada provisoriamente. Se confirmará al sincronizar.",
            )
        return ProvisionalResult(
            sequence=scan.sequence,
            ticket_id=ticket_id,
            status=ProvisionalStatus.PENDING_SYNC,
            message="Sin conexión: no se puede confirmar esta entrada hasta sincronizar.",
        )

    async def remember_status(self, ticket_id: str, status: TicketStatus) -> None:
        """Actualizar el último estado conocido (validaciones online, refrescos)"""
        await self.storage.set_known_status(ticket_id, status)

    async def _remember_outcome(self, outcome: ValidationOutcome) -> None:
        if outcome.ticket_id is None:
            return
        if outcome.status == OutcomeStatus.ACCEPTED:
            await self.storage.set_known_status(outcome.ticket_id, TicketStatus.USED)
        elif outcome.reason in STATUS_BY_REJECTION:
            await self.storage.set_known_status(outcome.ticket_id, STATUS_BY_REJECTION[outcome.reason])

    async def sync(self) -> SyncReport:
        """
        Reproducir los escaneos pendientes contra el motor de validación.

        Si el Ticket Store sigue caído después de los reintentos, la
        sincronización se detiene en ese escaneo para no adelantar los
        siguientes y queda marcada como interrumpida.
        """
        async with self._sync_lock:
            report = SyncReport(started_at=self.clock())
            pending = await self.storage.list_scans(pending_only=True)

            if not pending:
                logger.info("✅ No hay validaciones pendientes")
            else:
                logger.info(f"🔄 Sincronizando {len(pending)} validaciones...")

            for index, scan in enumerate(pending):
                try:
                    outcome = await retry_with_backoff(
                        lambda scan=scan: self.validation_service.validate(
                            scan.content,
                            scan.event_id,
                            scan.actor_id,
                            scanned_at=scan.scanned_at,
                            device_id=scan.device_id,
                        ),
                        max_retries=self.max_retries,
                        initial_delay=self.initial_delay,
                        exceptions=(StoreUnavailableError,),
                    )
                except StoreUnavailableError as e:
                    await self.storage.mark_attempt(scan.sequence, self.clock())
                    logger.warning(f"Sincronización interrumpida en #{scan.sequence}: {e}")
                    report.interrupted = True
                    report.error = str(e)
                    report.pending = len(pending) - index
                    break

                await self.storage.mark_synced(scan.sequence, outcome, self.clock())
                await self._remember_outcome(outcome)
                synced = scan.model_copy(update={"synced": True, "outcome": outcome})
                report.synced.append(synced)
                if outcome.reason == RejectionReason.ALREADY_USED:
                    report.conflicts.append(synced)

            report.finished_at = self.clock()
            if not report.interrupted:
                await self.storage.set_last_sync(report.finished_at)

            logger.info(
                f"Sincronizadas {report.synced_count} validaciones "
                f"({report.accepted_count} aceptadas, {len(report.conflicts)} conflictos)"
            )
            return report

    async def pending_count(self) -> int:
        return len(await self.storage.list_scans(pending_only=True))

    async def last_sync_at(self) -> Optional[datetime]:
        return await self.storage.get_last_sync()

    async def clear_synced(self) -> int:
        """Limpiar validaciones ya sincronizadas"""
        removed = await self.storage.clear_synced()
        logger.info(f"🧹 {removed} validaciones sincronizadas eliminadas")
        return removed
