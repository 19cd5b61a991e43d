"""Almacenamiento durable de la cola offline"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from ingreso.services.offline_sync.models.records import (
    KnownTicketStatusRecord,
    LocalBase,
    OfflineScanRecord,
    SyncStateRecord,
)
from ingreso.services.offline_sync.models.scan import OfflineScan
from ingreso.services.ticket_validation.models.ticket import TicketStatus, ValidationOutcome
from ingreso.shared.database.connection import create_engine_for, create_session_factory, create_tables
from ingreso.shared.utils.clock import ensure_utc

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync_at"


class ScanStorage(Protocol):
    async def append(self, scan: OfflineScan) -> OfflineScan: ...

    async def list_scans(self, pending_only: bool = False) -> List[OfflineScan]: ...

    async def has_pending_for(self, ticket_id: str) -> bool: ...

    async def mark_synced(self, sequence: int, outcome: ValidationOutcome, attempted_at: datetime) -> None: ...

    async def mark_attempt(self, sequence: int, attempted_at: datetime) -> None: ...

    async def clear_synced(self) -> int: ...

    async def get_known_status(self, ticket_id: str) -> Optional[TicketStatus]: ...

    async def set_known_status(self, ticket_id: str, status: TicketStatus) -> None: ...

    async def get_last_sync(self) -> Optional[datetime]: ...

    async def set_last_sync(self, at: datetime) -> None: ...


class InMemoryScanStorage:
    """Cola en memoria (pruebas; no sobrevive a un reinicio de la app)"""

    def __init__(self):
        self._scans: List[OfflineScan] = []
        self._known: Dict[str, TicketStatus] = {}
        self._last_sync: Optional[datetime] = None
        self._next_sequence = 1

    async def append(self, scan: OfflineScan) -> OfflineScan:
        stored = scan.model_copy(update={"sequence": self._next_sequence})
        self._next_sequence += 1
        self._scans.append(stored)
        return stored.model_copy()

    async def list_scans(self, pending_only: bool = False) -> List[OfflineScan]:
        scans = sorted(self._scans, key=lambda s: s.sequence)
        return [s.model_copy() for s in scans if not (pending_only and s.synced)]

    async def has_pending_for(self, ticket_id: str) -> bool:
        return any(s.ticket_id == ticket_id and not s.synced for s in self._scans)

    def _find(self, sequence: int) -> OfflineScan:
        return next(s for s in self._scans if s.sequence == sequence)

    async def mark_synced(self, sequence: int, outcome: ValidationOutcome, attempted_at: datetime) -> None:
        scan = self._find(sequence)
        scan.synced = True
        scan.outcome = outcome
        scan.sync_attempts += 1
        scan.last_sync_attempt = attempted_at

    async def mark_attempt(self, sequence: int, attempted_at: datetime) -> None:
        scan = self._find(sequence)
        scan.sync_attempts += 1
        scan.last_sync_attempt = attempted_at

    async def clear_synced(self) -> int:
        before = len(self._scans)
        self._scans = [s for s in self._scans if not s.synced]
        return before - len(self._scans)

    async def get_known_status(self, ticket_id: str) -> Optional[TicketStatus]:
        return self._known.get(ticket_id)

    async def set_known_status(self, ticket_id: str, status: TicketStatus) -> None:
        self._known[ticket_id] = status

    async def get_last_sync(self) -> Optional[datetime]:
        return self._last_sync

    async def set_last_sync(self, at: datetime) -> None:
        self._last_sync = at


def _to_scan(record: OfflineScanRecord) -> OfflineScan:
    return OfflineScan(
        sequence=record.sequence,
        device_id=record.device_id,
        content=record.content,
        event_id=record.event_id,
        actor_id=record.actor_id,
        ticket_id=record.ticket_id,
        scanned_at=ensure_utc(record.scanned_at),
        synced=record.synced,
        sync_attempts=record.sync_attempts,
        last_sync_attempt=ensure_utc(record.last_sync_attempt) if record.last_sync_attempt else None,
        outcome=ValidationOutcome.model_validate_json(record.outcome_json) if record.outcome_json else None,
    )


class SqlScanStorage:
    """Cola durable en SQLite local (sobrevive a cierres de la app)"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def append(self, scan: OfflineScan) -> OfflineScan:
        record = OfflineScanRecord(
            device_id=scan.device_id,
            content=scan.content,
            event_id=scan.event_id,
            actor_id=scan.actor_id,
            ticket_id=scan.ticket_id,
            scanned_at=scan.scanned_at,
            synced=False,
            sync_attempts=0,
        )
        async with self.session_factory() as session:
            async with session.begin():
                session.add(record)
            return scan.model_copy(update={"sequence": record.sequence})

    async def list_scans(self, pending_only: bool = False) -> List[OfflineScan]:
        stmt = select(OfflineScanRecord).order_by(OfflineScanRecord.sequence)
        if pending_only:
            stmt = stmt.where(OfflineScanRecord.synced.is_(False))
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_to_scan(r) for r in result.scalars().all()]

    async def has_pending_for(self, ticket_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OfflineScanRecord.sequence)
                .where(OfflineScanRecord.ticket_id == ticket_id, OfflineScanRecord.synced.is_(False))
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def mark_synced(self, sequence: int, outcome: ValidationOutcome, attempted_at: datetime) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(OfflineScanRecord)
                    .where(OfflineScanRecord.sequence == sequence)
                    .values(
                        synced=True,
                        outcome_json=outcome.model_dump_json(),
                        sync_attempts=OfflineScanRecord.sync_attempts + 1,
                        last_sync_attempt=attempted_at,
                    )
                )

    async def mark_attempt(self, sequence: int, attempted_at: datetime) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(OfflineScanRecord)
                    .where(OfflineScanRecord.sequence == sequence)
                    .values(
                        sync_attempts=OfflineScanRecord.sync_attempts + 1,
                        last_sync_attempt=attempted_at,
                    )
                )

    async def clear_synced(self) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(OfflineScanRecord).where(OfflineScanRecord.synced.is_(True))
                )
                return result.rowcount

    async def get_known_status(self, ticket_id: str) -> Optional[TicketStatus]:
        async with self.session_factory() as session:
            record = await session.get(KnownTicketStatusRecord, ticket_id)
            return TicketStatus(record.status) if record else None

    async def set_known_status(self, ticket_id: str, status: TicketStatus) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(KnownTicketStatusRecord(ticket_id=ticket_id, status=status.value))

    async def get_last_sync(self) -> Optional[datetime]:
        async with self.session_factory() as session:
            record = await session.get(SyncStateRecord, LAST_SYNC_KEY)
            return ensure_utc(datetime.fromisoformat(record.value)) if record else None

    async def set_last_sync(self, at: datetime) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(SyncStateRecord(key=LAST_SYNC_KEY, value=at.isoformat()))


async def open_sql_scan_storage(database_url: str) -> SqlScanStorage:
    """Abrir (y crear si no existe) la base SQLite local del validador"""
    db_engine = create_engine_for(database_url)
    await create_tables(db_engine, LocalBase.metadata)
    logger.info("Cola offline local lista")
    return SqlScanStorage(create_session_factory(db_engine))
