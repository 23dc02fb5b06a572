"""
Tests for the echo responder.
"""

import asyncio

import pytest
import structlog
from structlog.testing import capture_logs

from indexer_service.channel import ADDRESS_ZERO, EventNames, MockStateChannel
from indexer_service.echo import EchoResponder, format_ether
from indexer_service.models import TransferResponse, TransferUnlocked

ONE_ETH = 1_000_000_000_000_000_000
SENDER_A = "0xAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
SENDER_B = "0xBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"


def unlock_payload(payment_id: str, amount: int, sender: str) -> dict:
    return {
        "paymentId": payment_id,
        "amount": str(amount),
        "assetId": ADDRESS_ZERO,
        "meta": {"sender": sender},
    }


def make_responder(channel, delay: float = 0.05, **kwargs) -> EchoResponder:
    responder = EchoResponder(
        channel,
        structlog.get_logger().bind(component="EchoResponder"),
        delay_seconds=delay,
        **kwargs,
    )
    responder.subscribe()
    return responder


class TestFormatEther:
    def test_one_ether(self):
        assert format_ether(ONE_ETH) == "1"

    def test_fraction(self):
        assert format_ether(ONE_ETH // 2) == "0.5"


class TestEchoResponder:
    @pytest.mark.asyncio
    async def test_echoes_same_amount_to_sender_with_native_asset(self, mock_channel):
        responder = make_responder(mock_channel)
        await responder.start()

        await mock_channel.emit(
            EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT,
            unlock_payload("0x01", ONE_ETH, SENDER_A),
        )
        await responder.drain()
        await responder.stop()

        assert len(mock_channel.transfers) == 1
        request = mock_channel.transfers[0]
        assert request.amount == ONE_ETH
        assert request.recipient == SENDER_A
        assert request.asset_id == ADDRESS_ZERO

    @pytest.mark.asyncio
    async def test_transfer_waits_for_delay(self, mock_channel):
        delay = 0.05
        responder = make_responder(mock_channel, delay=delay)
        await responder.start()

        loop = asyncio.get_running_loop()
        received_at = loop.time()
        await mock_channel.emit(
            EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT,
            unlock_payload("0x01", 42, SENDER_A),
        )

        await asyncio.sleep(delay / 3)
        assert mock_channel.transfers == []

        await responder.drain()
        await responder.stop()

        assert len(mock_channel.transfers) == 1
        # Allow for event loop clock resolution
        assert mock_channel.transfer_times[0] - received_at >= delay - 0.005

    @pytest.mark.asyncio
    async def test_failure_does_not_block_other_senders(self, mock_channel):
        mock_channel.failing_recipients = {SENDER_A}
        responder = make_responder(mock_channel, delay=0.01)
        await responder.start()

        await mock_channel.emit(
            EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT,
            unlock_payload("0x01", 10, SENDER_A),
        )
        await mock_channel.emit(
            EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT,
            unlock_payload("0x02", 20, SENDER_B),
        )
        await responder.drain()
        await responder.stop()

        recipients = sorted(request.recipient for request in mock_channel.transfers)
        assert recipients == sorted([SENDER_A, SENDER_B])
        assert responder.stats.received == 2
        assert responder.stats.echoed == 1
        assert responder.stats.failed == 1

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_swallowed(self, mock_channel):
        mock_channel.fail_all = True

        with capture_logs() as logs:
            responder = make_responder(mock_channel, delay=0.01)
            await responder.start()
            result = await responder.echo(TransferUnlocked("0x01", 5, SENDER_A, ADDRESS_ZERO))
            await responder.stop()

        assert result is None
        errors = [entry for entry in logs if entry["log_level"] == "error"]
        assert len(errors) == 1
        assert errors[0]["event"].startswith(f"Failed to send payment back to {SENDER_A}")
        assert errors[0]["payment_id"] == "0x01"

    @pytest.mark.asyncio
    async def test_success_logs_new_payment_id(self, mock_channel):
        with capture_logs() as logs:
            responder = make_responder(mock_channel)
            payment_id = await responder.echo(
                TransferUnlocked("0x01", ONE_ETH, SENDER_A, ADDRESS_ZERO)
            )

        assert payment_id is not None
        messages = [entry["event"] for entry in logs]
        assert f"Send 1 ETH back to {SENDER_A}" in messages
        assert f"1 ETH sent back to {SENDER_A} via payment {payment_id}" in messages

    @pytest.mark.asyncio
    async def test_received_payment_is_logged(self, mock_channel):
        with capture_logs() as logs:
            responder = make_responder(mock_channel)
            await responder.handle_unlocked(
                TransferUnlocked("0xabc", ONE_ETH, SENDER_A, ADDRESS_ZERO)
            )

        assert logs[0]["event"] == f"Received payment 0xabc (1 ETH) from {SENDER_A}"
        assert responder.pending == 1

    @pytest.mark.asyncio
    async def test_each_delivery_is_echoed(self, mock_channel):
        responder = make_responder(mock_channel, delay=0.01)
        await responder.start()

        payload = unlock_payload("0x01", 7, SENDER_A)
        await mock_channel.emit(EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT, payload)
        await mock_channel.emit(EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT, payload)
        await responder.drain()
        await responder.stop()

        # No deduplication: a redelivered event is echoed again
        assert len(mock_channel.transfers) == 2

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        class SlowChannel(MockStateChannel):
            def __init__(self):
                super().__init__()
                self.in_flight = 0
                self.max_in_flight = 0

            async def transfer(self, request):
                self.in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self.in_flight)
                await asyncio.sleep(0.02)
                self.in_flight -= 1
                return TransferResponse("0x01", request.recipient, request.amount)

        channel = SlowChannel()
        responder = make_responder(channel, delay=0.001, concurrency=2)
        await responder.start()

        for i in range(6):
            await channel.emit(
                EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT,
                unlock_payload(f"0x{i:02x}", 1, SENDER_A),
            )
        await responder.drain()
        await responder.stop()

        assert responder.stats.echoed == 6
        assert channel.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_bounded_queue_applies_backpressure(self, mock_channel):
        responder = make_responder(mock_channel, queue_size=1)

        event = TransferUnlocked("0x01", 1, SENDER_A, ADDRESS_ZERO)
        await responder.handle_unlocked(event)

        # Workers are not running, so the second event cannot be queued
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(responder.handle_unlocked(event), timeout=0.05)

        await responder.start()
        await responder.drain()
        await responder.stop()
        assert len(mock_channel.transfers) == 1

    @pytest.mark.asyncio
    async def test_stop_drops_pending_echoes(self, mock_channel):
        responder = make_responder(mock_channel, delay=10.0)
        await responder.start()

        await responder.handle_unlocked(TransferUnlocked("0x01", 1, SENDER_A, ADDRESS_ZERO))
        await asyncio.sleep(0)
        await responder.stop()

        assert mock_channel.transfers == []

    def test_rejects_zero_delay(self, mock_channel):
        with pytest.raises(ValueError):
            EchoResponder(mock_channel, structlog.get_logger(), delay_seconds=0)
