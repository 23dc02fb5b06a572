"""
Echo responder - sends every unlocked incoming payment back to its sender.

Each unlocked transfer is answered with exactly one transfer of the same
amount of the native asset, after a fixed delay so the channel can
finish unlocking the incoming payment first. Failed echoes are logged
and dropped; nothing is retried or persisted.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from web3 import Web3

from .channel import ADDRESS_ZERO, EventNames
from .models import TransferRequest, TransferUnlocked


def format_ether(amount: int) -> str:
    """Format a wei amount in ether units."""
    return str(Web3.from_wei(amount, "ether"))


@dataclass
class EchoStats:
    """Counters for the current process."""

    received: int = 0
    echoed: int = 0
    failed: int = 0


class EchoResponder:
    """
    Echoes unlocked transfers through a bounded pool of workers.

    Events are queued on receipt together with the time they become due;
    `concurrency` workers wait for the due time and submit the transfer.
    With a bounded queue, event delivery waits for space instead of
    dropping payments.
    """

    def __init__(
        self,
        channel: Any,
        logger: Any,
        delay_seconds: float = 1.0,
        concurrency: int = 8,
        queue_size: int = 0,
        asset_id: str = ADDRESS_ZERO,
    ):
        if delay_seconds <= 0:
            raise ValueError("delay_seconds must be positive")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.channel = channel
        self.logger = logger
        self.delay_seconds = delay_seconds
        self.concurrency = concurrency
        self.asset_id = asset_id
        self.stats = EchoStats()
        self._queue: asyncio.Queue[tuple[float, TransferUnlocked]] = asyncio.Queue(
            maxsize=queue_size
        )
        self._workers: list[asyncio.Task[None]] = []

    def subscribe(self) -> None:
        """Listen for unlocked transfers on the channel."""
        self.channel.on(EventNames.CONDITIONAL_TRANSFER_UNLOCKED_EVENT, self.handle_unlocked)

    async def start(self) -> None:
        """Start the worker pool."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"echo-worker-{i}")
            for i in range(self.concurrency)
        ]
        self.logger.debug("echo_workers_started", workers=self.concurrency)

    async def stop(self) -> None:
        """Cancel the workers. Echoes not yet sent are dropped."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        dropped = self._queue.qsize()
        if dropped:
            self.logger.warning("echo_pending_dropped", count=dropped)

    async def drain(self) -> None:
        """Wait until every queued echo has been resolved."""
        await self._queue.join()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def handle_unlocked(self, event: TransferUnlocked) -> None:
        """Queue an unlocked transfer to be sent back after the delay."""
        self.stats.received += 1
        self.logger.info(
            f"Received payment {event.payment_id} ({format_ether(event.amount)} ETH) "
            f"from {event.sender}"
        )

        due = asyncio.get_running_loop().time() + self.delay_seconds
        await self._queue.put((due, event))

    async def _worker(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            due, event = await self._queue.get()
            try:
                remaining = due - loop.time()
                if remaining > 0:
                    await asyncio.sleep(remaining)
                await self.echo(event)
            finally:
                self._queue.task_done()

    async def echo(self, event: TransferUnlocked) -> Optional[str]:
        """
        Send an unlocked payment back to its sender.

        Returns the new payment id, or None if the transfer failed.
        """
        formatted = format_ether(event.amount)
        self.logger.info(f"Send {formatted} ETH back to {event.sender}")

        try:
            response = await self.channel.transfer(
                TransferRequest(
                    amount=event.amount,
                    recipient=event.sender,
                    asset_id=self.asset_id,
                )
            )
        except Exception as e:
            self.stats.failed += 1
            self.logger.error(
                f"Failed to send payment back to {event.sender}: {e}",
                payment_id=event.payment_id,
            )
            return None

        self.stats.echoed += 1
        self.logger.info(
            f"{formatted} ETH sent back to {event.sender} via payment {response.payment_id}"
        )
        return response.payment_id
