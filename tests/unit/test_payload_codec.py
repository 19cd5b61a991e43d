"""Pruebas del codec del payload del QR"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, make_fields
from ingreso.services.ticket_validation.models.payload import DecodeError
from ingreso.services.ticket_validation.services.payload_codec import PayloadCodec
from ingreso.shared.security.signer import HmacSigner
from ingreso.shared.utils.clock import ensure_utc


def _tamper(wire: str, key: str, value) -> str:
    data = json.loads(wire)
    data[key] = value
    return json.dumps(data)


class TestEncodeDecode:

    def test_round_trip_returns_same_fields(self, codec):
        fields = make_fields()
        result = codec.decode(codec.encode(fields))
        assert result.ok
        assert result.payload.fields() == fields
        assert codec.signer.verify(result.payload.signed_fields(), result.payload.signature)

    def test_round_trip_without_quantity(self, codec):
        fields = make_fields(quantity=None)
        wire = codec.encode(fields)
        assert "qty" not in json.loads(wire)
        assert codec.decode(wire).payload.fields() == fields

    def test_naive_timestamps_are_treated_as_utc(self, codec):
        fields = make_fields(purchase_timestamp=datetime(2026, 10, 1, 12, 0))
        payload = codec.decode(codec.encode(fields)).payload
        assert payload.purchase_timestamp == datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def test_wire_is_self_describing_json(self, codec):
        data = json.loads(codec.encode(make_fields()))
        assert set(data) == {"v", "tid", "eid", "hid", "pts", "iat", "qty", "sig"}
        assert data["tid"] == "TKT-2026-ABCD1234"


class TestMalformed:

    @pytest.mark.parametrize("wire", ["", "no es json", "[1, 2]", "null", "{}", '{"tid": "x"}'])
    def test_structural_failures(self, codec, wire):
        assert codec.decode(wire).error == DecodeError.MALFORMED

    def test_non_string_input(self, codec):
        assert codec.decode(None).error == DecodeError.MALFORMED

    @pytest.mark.parametrize("key", ["tid", "eid", "hid", "pts", "iat", "sig", "v"])
    def test_missing_field(self, codec, key):
        data = json.loads(codec.encode(make_fields()))
        del data[key]
        assert codec.decode(json.dumps(data)).error == DecodeError.MALFORMED

    def test_bad_timestamp(self, codec):
        wire = _tamper(codec.encode(make_fields()), "pts", "ayer")
        assert codec.decode(wire).error == DecodeError.MALFORMED

    def test_zero_quantity(self, codec):
        wire = _tamper(codec.encode(make_fields()), "qty", 0)
        assert codec.decode(wire).error == DecodeError.MALFORMED

    def test_unknown_version(self, codec):
        wire = _tamper(codec.encode(make_fields()), "v", 2)
        assert codec.decode(wire).error == DecodeError.MALFORMED

    @pytest.mark.parametrize(
        "key,value",
        [
            ("pts", "0001-01-01T00:00:00+01:00"),
            ("iat", "9999-12-31T23:59:59-05:00"),
        ],
    )
    def test_timestamp_without_utc_equivalent(self, codec, key, value):
        wire = _tamper(codec.encode(make_fields()), key, value)
        assert codec.decode(wire).error == DecodeError.MALFORMED
        assert codec.read_ticket_id(wire) == "TKT-2026-ABCD1234"


class TestForged:

    @pytest.mark.parametrize(
        "key,value",
        [
            ("tid", "TKT-2026-ZZZZ9999"),
            ("eid", "E2"),
            ("hid", "user-2"),
            ("pts", (NOW - timedelta(days=1)).isoformat()),
            ("iat", (NOW - timedelta(days=1)).isoformat()),
            ("qty", 10),
        ],
    )
    def test_mutated_field_is_forged(self, codec, key, value):
        wire = _tamper(codec.encode(make_fields()), key, value)
        assert codec.decode(wire).error == DecodeError.FORGED_OR_CORRUPTED

    def test_removing_quantity_is_forged(self, codec):
        data = json.loads(codec.encode(make_fields()))
        del data["qty"]
        assert codec.decode(json.dumps(data)).error == DecodeError.FORGED_OR_CORRUPTED

    def test_signed_with_other_secret(self, clock):
        wire = PayloadCodec(HmacSigner("atacante"), clock=clock).encode(make_fields())
        assert PayloadCodec(HmacSigner("servidor"), clock=clock).decode(wire).error == DecodeError.FORGED_OR_CORRUPTED

    def test_rotated_secret_still_decodes(self, clock):
        wire = PayloadCodec(HmacSigner("viejo"), clock=clock).encode(make_fields())
        rotated = PayloadCodec(HmacSigner("nuevo", previous_secrets=["viejo"]), clock=clock)
        assert rotated.decode(wire).ok


class TestPayloadAge:

    def test_payload_just_under_one_year_is_accepted(self, codec):
        fields = make_fields(issued_at_timestamp=NOW - timedelta(days=365) + timedelta(seconds=1))
        assert codec.decode(codec.encode(fields)).ok

    def test_payload_older_than_one_year_is_expired(self, codec):
        fields = make_fields(issued_at_timestamp=NOW - timedelta(days=365, seconds=1))
        assert codec.decode(codec.encode(fields)).error == DecodeError.PAYLOAD_EXPIRED

    def test_signature_is_checked_before_age(self, codec):
        fields = make_fields(issued_at_timestamp=NOW - timedelta(days=400))
        wire = _tamper(codec.encode(fields), "eid", "E2")
        assert codec.decode(wire).error == DecodeError.FORGED_OR_CORRUPTED


class TestReadTicketId:

    def test_reads_from_unverified_payload(self, codec):
        wire = _tamper(codec.encode(make_fields()), "sig", "falsa")
        assert codec.read_ticket_id(wire) == "TKT-2026-ABCD1234"

    def test_reads_manual_code(self, codec):
        assert codec.read_ticket_id(" tkt-2026-abcd1234 ") == "TKT-2026-ABCD1234"

    def test_garbage_has_no_ticket_id(self, codec):
        assert codec.read_ticket_id("???") is None
        assert codec.read_ticket_id('{"tid": 5}') is None


def test_ensure_utc_out_of_range_is_value_error():
    with pytest.raises(ValueError):
        ensure_utc(datetime.fromisoformat("0001-01-01T00:00:00+01:00"))
