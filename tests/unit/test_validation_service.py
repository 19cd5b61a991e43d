"""Pruebas del motor de validación"""
import asyncio
import json
from datetime import timedelta

import pytest

from conftest import NOW, make_fields, make_purchase, make_ticket
from ingreso.services.ticket_validation.models.ticket import OutcomeStatus, RejectionReason, TicketStatus
from ingreso.services.ticket_validation.services.ticket_store import InMemoryTicketStore
from ingreso.services.ticket_validation.services.validation_service import TicketValidationService
from ingreso.shared.errors import StoreUnavailableError


@pytest.fixture
def seeded_store(store):
    store._tickets["TKT-2026-ABCD1234"] = make_ticket()
    return store


@pytest.fixture
def wire(codec):
    return codec.encode(make_fields())


class TestScanScenario:

    async def test_issue_accept_then_reject(self, issuance_service, validation_service, store):
        issuance = issuance_service.issue(make_purchase())
        await store.insert_new_ticket(issuance.ticket)

        first = await validation_service.validate(issuance.qr_content, "E1", "scanner-1")
        assert first.status == OutcomeStatus.ACCEPTED
        assert first.quantity == 2
        assert first.holder_id == "user-1"

        second = await validation_service.validate(issuance.qr_content, "E1", "scanner-2")
        assert second.reason == RejectionReason.ALREADY_USED
        assert second.validated_by == "scanner-1"
        assert second.used_at == NOW

        data = json.loads(issuance.qr_content)
        data["sig"] = ("0" if data["sig"][0] != "0" else "1") + data["sig"][1:]
        third = await validation_service.validate(json.dumps(data), "E1", "scanner-1")
        assert third.reason == RejectionReason.FORGED_OR_CORRUPTED

    async def test_accept_marks_ticket_used(self, validation_service, seeded_store, wire):
        outcome = await validation_service.validate(wire, "E1", "scanner-1")

        assert outcome.accepted
        ticket = await seeded_store.get_by_ticket_id("TKT-2026-ABCD1234")
        assert ticket.status == TicketStatus.USED
        assert ticket.validated_by == "scanner-1"
        assert ticket.used_at == NOW


class TestRejections:

    async def test_malformed(self, validation_service, seeded_store):
        outcome = await validation_service.validate("esto no es un QR", "E1", "scanner-1")
        assert outcome.reason == RejectionReason.MALFORMED
        assert outcome.ticket_id is None

    async def test_tampered_event_is_forged(self, validation_service, seeded_store, wire):
        tampered = wire.replace('"eid":"E1"', '"eid":"E2"')
        outcome = await validation_service.validate(tampered, "E2", "scanner-1")
        assert outcome.reason == RejectionReason.FORGED_OR_CORRUPTED

    async def test_payload_expired(self, validation_service, seeded_store, codec):
        old = codec.encode(make_fields(issued_at_timestamp=NOW - timedelta(days=366)))
        outcome = await validation_service.validate(old, "E1", "scanner-1")
        assert outcome.reason == RejectionReason.PAYLOAD_EXPIRED

    async def test_unknown_ticket(self, validation_service, store, wire):
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.reason == RejectionReason.UNKNOWN_TICKET

    async def test_wrong_event_does_not_use_ticket(self, validation_service, seeded_store, wire):
        outcome = await validation_service.validate(wire, "E2", "scanner-1")

        assert outcome.reason == RejectionReason.WRONG_EVENT
        ticket = await seeded_store.get_by_ticket_id("TKT-2026-ABCD1234")
        assert ticket.status == TicketStatus.ACTIVE

    async def test_wrong_event_hides_other_event_data(self, validation_service, seeded_store, wire):
        outcome = await validation_service.validate(wire, "E2", "scanner-1")

        assert outcome.ticket_id == "TKT-2026-ABCD1234"
        assert outcome.event_id is None
        assert outcome.holder_id is None
        assert outcome.quantity is None

    async def test_unsigned_out_of_range_timestamp_is_malformed(self, validation_service, seeded_store):
        content = json.dumps({
            "v": 1,
            "tid": "TKT-2026-ABCD1234",
            "eid": "E1",
            "hid": "user-1",
            "pts": "0001-01-01T00:00:00+01:00",
            "iat": NOW.isoformat(),
            "sig": "00",
        })

        outcome = await validation_service.validate(content, "E1", "scanner-1")

        assert outcome.reason == RejectionReason.MALFORMED
        ticket = await seeded_store.get_by_ticket_id("TKT-2026-ABCD1234")
        assert ticket.status == TicketStatus.ACTIVE

    async def test_cancelled(self, validation_service, seeded_store, wire):
        await seeded_store.cancel_ticket("TKT-2026-ABCD1234")
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.reason == RejectionReason.CANCELLED

    async def test_expired_status(self, validation_service, store, wire):
        store._tickets["TKT-2026-ABCD1234"] = make_ticket(status=TicketStatus.EXPIRED)
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.reason == RejectionReason.EVENT_EXPIRED

    async def test_rejections_have_operator_message(self, validation_service, store, wire):
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.message == "No se encontró la entrada."


class TestEventExpiry:

    async def test_one_second_before_24h_is_accepted(self, validation_service, store, wire):
        store._tickets["TKT-2026-ABCD1234"] = make_ticket(event_date=NOW - timedelta(hours=24) + timedelta(seconds=1))
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.accepted

    async def test_exactly_24h_after_start_is_accepted(self, validation_service, store, wire):
        store._tickets["TKT-2026-ABCD1234"] = make_ticket(event_date=NOW - timedelta(hours=24))
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.accepted

    async def test_one_second_later_is_expired(self, validation_service, store, wire):
        store._tickets["TKT-2026-ABCD1234"] = make_ticket(event_date=NOW - timedelta(hours=24, seconds=1))
        outcome = await validation_service.validate(wire, "E1", "scanner-1")
        assert outcome.reason == RejectionReason.EVENT_EXPIRED
        ticket = await store.get_by_ticket_id("TKT-2026-ABCD1234")
        assert ticket.status == TicketStatus.ACTIVE


class TestConcurrency:

    async def test_concurrent_scans_accept_exactly_once(self, validation_service, seeded_store, wire):
        outcomes = await asyncio.gather(
            *(validation_service.validate(wire, "E1", f"scanner-{i}") for i in range(20))
        )

        accepted = [o for o in outcomes if o.accepted]
        assert len(accepted) == 1
        assert all(o.reason == RejectionReason.ALREADY_USED for o in outcomes if not o.accepted)

    async def test_lost_race_reports_winner(self, codec, clock, wire):
        class RacingStore(InMemoryTicketStore):
            """Otro dispositivo gana justo antes del compare-and-set"""

            async def compare_and_set_used(self, ticket_id, expected_status, used_at, actor_id):
                await super().compare_and_set_used(ticket_id, expected_status, used_at, "scanner-rival")
                return await super().compare_and_set_used(ticket_id, expected_status, used_at, actor_id)

        store = RacingStore([make_ticket()])
        service = TicketValidationService(codec, store, clock=clock)

        outcome = await service.validate(wire, "E1", "scanner-1")

        assert outcome.reason == RejectionReason.ALREADY_USED
        assert outcome.validated_by == "scanner-rival"


class TestManualCode:

    async def test_manual_code_is_accepted(self, validation_service, seeded_store):
        outcome = await validation_service.validate(" tkt-2026-abcd1234 ", "E1", "scanner-1")
        assert outcome.accepted
        assert outcome.ticket_id == "TKT-2026-ABCD1234"

    async def test_manual_code_for_other_event(self, validation_service, seeded_store):
        outcome = await validation_service.validate("TKT-2026-ABCD1234", "E2", "scanner-1")
        assert outcome.reason == RejectionReason.WRONG_EVENT

    async def test_unknown_manual_code(self, validation_service, store):
        outcome = await validation_service.validate("TKT-2026-ZZZZ0000", "E1", "scanner-1")
        assert outcome.reason == RejectionReason.UNKNOWN_TICKET


class UnavailableStore(InMemoryTicketStore):
    async def get_by_ticket_id(self, ticket_id):
        raise StoreUnavailableError("conexión rechazada")


class SlowStore(InMemoryTicketStore):
    async def get_by_ticket_id(self, ticket_id):
        await asyncio.sleep(1)
        return await super().get_by_ticket_id(ticket_id)


class AuditFailingStore(InMemoryTicketStore):
    async def record_validation_event(self, event):
        raise StoreUnavailableError("auditoría caída")


class TestStoreFailures:

    async def test_infra_error_propagates(self, codec, clock, wire):
        service = TicketValidationService(codec, UnavailableStore([make_ticket()]), clock=clock)
        with pytest.raises(StoreUnavailableError):
            await service.validate(wire, "E1", "scanner-1")

    async def test_timeout_is_store_unavailable(self, codec, clock, wire):
        service = TicketValidationService(codec, SlowStore([make_ticket()]), store_timeout=0.01, clock=clock)
        with pytest.raises(StoreUnavailableError):
            await service.validate(wire, "E1", "scanner-1")

    async def test_audit_failure_keeps_outcome(self, codec, clock, wire):
        store = AuditFailingStore([make_ticket()])
        service = TicketValidationService(codec, store, clock=clock)

        outcome = await service.validate(wire, "E1", "scanner-1")

        assert outcome.accepted
        ticket = await store.get_by_ticket_id("TKT-2026-ABCD1234")
        assert ticket.status == TicketStatus.USED


class TestAudit:

    async def test_every_outcome_is_recorded(self, validation_service, seeded_store, wire):
        await validation_service.validate("basura", "E1", "scanner-1")
        await validation_service.validate(wire, "E1", "scanner-1", device_id="dev-1", scanned_at=NOW)
        await validation_service.validate(wire, "E1", "scanner-2")

        events = seeded_store.validation_events
        assert [e.outcome for e in events] == [
            OutcomeStatus.REJECTED,
            OutcomeStatus.ACCEPTED,
            OutcomeStatus.REJECTED,
        ]
        assert events[0].reason == RejectionReason.MALFORMED
        assert events[0].ticket_id is None
        assert events[1].device_id == "dev-1"
        assert events[1].scanned_at == NOW
        assert events[2].reason == RejectionReason.ALREADY_USED
        assert events[2].actor_id == "scanner-2"

    async def test_recent_validations_newest_first(self, validation_service, seeded_store, wire, clock):
        await validation_service.validate("basura", "E1", "scanner-1")
        clock.advance(timedelta(seconds=10))
        await validation_service.validate(wire, "E1", "scanner-1")
        clock.advance(timedelta(seconds=10))
        await validation_service.validate(wire, "E1", "scanner-2")
        await validation_service.validate(wire, "E2", "scanner-3")

        recent = await validation_service.recent_validations("E1")
        assert [e.actor_id for e in recent] == ["scanner-2", "scanner-1", "scanner-1"]
        assert recent[-1].reason == RejectionReason.MALFORMED

        limited = await validation_service.recent_validations("E1", limit=2)
        assert [e.checked_at for e in limited] == [NOW + timedelta(seconds=20), NOW + timedelta(seconds=10)]

        assert [e.actor_id for e in await validation_service.recent_validations("E2")] == ["scanner-3"]
