"""
Tests for payment event parsing.
"""

import pytest

from indexer_service.models import TransferUnlocked, parse_amount


class TestParseAmount:
    def test_decimal_string(self):
        assert parse_amount("1000000000000000000") == 10**18

    def test_hex_string(self):
        assert parse_amount("0x0de0b6b3a7640000") == 10**18

    def test_int(self):
        assert parse_amount(42) == 42

    def test_big_number_json(self):
        assert parse_amount({"type": "BigNumber", "hex": "0x2a"}) == 42

    def test_zero(self):
        assert parse_amount("0") == 0

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            parse_amount(-1)

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            parse_amount(True)

    def test_float_rejected(self):
        with pytest.raises(ValueError):
            parse_amount(1.5)


class TestTransferUnlocked:
    def test_from_payload(self):
        event = TransferUnlocked.from_payload(
            {
                "paymentId": "0xabc",
                "amount": "1000000000000000000",
                "assetId": "0x0000000000000000000000000000000000000000",
                "meta": {"sender": "indraSender", "note": "hi"},
            }
        )
        assert event.payment_id == "0xabc"
        assert event.amount == 10**18
        assert event.sender == "indraSender"
        assert event.meta["note"] == "hi"

    def test_missing_sender(self):
        with pytest.raises(ValueError):
            TransferUnlocked.from_payload({"paymentId": "0x1", "amount": "1", "meta": {}})

    def test_missing_amount(self):
        with pytest.raises(KeyError):
            TransferUnlocked.from_payload({"paymentId": "0x1", "meta": {"sender": "s"}})

    def test_meta_not_an_object(self):
        with pytest.raises(ValueError, match="meta"):
            TransferUnlocked.from_payload({"paymentId": "0x1", "amount": "1", "meta": "oops"})
