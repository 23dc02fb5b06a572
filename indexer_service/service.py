"""
Service startup - database, state channel, echo responder, status server.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from .channel import ADDRESS_ZERO, create_state_channel
from .config import Settings
from .db import ChannelStore, Database, build_database_url, connect_database
from .echo import EchoResponder, format_ether
from .log import create_logger
from .server import StatusServer, create_app

DatabaseFactory = Callable[[str], Database]
ChannelFactory = Callable[..., Awaitable[Any]]


class IndexerService:
    """
    Runs the startup sequence and the long-running listeners.

    Startup steps run strictly in order; a failure in any of them
    propagates and nothing after it is started.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Any = None,
        database_factory: DatabaseFactory = connect_database,
        channel_factory: ChannelFactory = create_state_channel,
    ):
        self.settings = settings
        self.logger = logger or create_logger("IndexerService")
        self._database_factory = database_factory
        self._channel_factory = channel_factory

        self.database: Optional[Database] = None
        self.channel: Any = None
        self.responder: Optional[EchoResponder] = None
        self.server: Optional[StatusServer] = None

    async def start(self) -> None:
        """Connect to the database, create the channel and start echoing."""
        settings = self.settings
        logger = self.logger

        logger.info("Starting up")

        logger.info("Connect to database")
        database_url = build_database_url(
            database=settings.postgres_database,
            host=settings.postgres_host,
            port=settings.postgres_port,
            username=settings.postgres_username,
            password=settings.postgres_password,
            database_url=settings.database_url,
        )
        self.database = await asyncio.to_thread(self._database_factory, database_url)
        logger.info("Connected to database")

        logger.info("Create state channel")
        self.channel = await self._channel_factory(
            store=ChannelStore(self.database),
            mnemonic=settings.mnemonic,
            ethereum_provider=settings.ethereum,
            connext_node=settings.connext_node,
            connext_messaging=settings.connext_messaging,
            logger=logger.bind(component="StateChannel"),
            poll_interval=settings.event_poll_interval,
            timeout=settings.http_timeout,
        )
        logger.info("Created state channel")

        channel = self.channel
        free_balance = await channel.get_free_balance(ADDRESS_ZERO)
        balance = free_balance.get(channel.free_balance_address, 0)
        logger.info(f"Channel free balance: {format_ether(balance)}")

        logger.info(f"Signer address: {channel.signer_address}")
        logger.info(f"Free balance address: {channel.free_balance_address}")
        logger.info(f"xpub: {channel.public_identifier}")

        self.responder = EchoResponder(
            channel,
            logger.bind(component="EchoResponder"),
            delay_seconds=settings.echo_delay_seconds,
            concurrency=settings.echo_concurrency,
            queue_size=settings.echo_queue_size,
        )
        self.responder.subscribe()
        await self.responder.start()

        logger.info("Waiting to receive payments...")

    def create_server(self) -> StatusServer:
        server_logger = self.logger.bind(component="Server")
        server_logger.info(f"Start at port {self.settings.port}")
        return StatusServer(create_app(server_logger), self.settings.port, server_logger)

    async def run(self) -> None:
        """Start up, then serve until the status server exits."""
        try:
            await self.start()
            self.server = self.create_server()

            listener = asyncio.create_task(self.channel.listen(), name="channel-listener")
            try:
                await self.server.serve()
            finally:
                self.channel.stop_listening()
                listener.cancel()
                await asyncio.gather(listener, return_exceptions=True)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the responder and release connections."""
        if self.responder is not None:
            await self.responder.stop()
            stats = self.responder.stats
            self.logger.info(
                "Stopped",
                received=stats.received,
                echoed=stats.echoed,
                failed=stats.failed,
            )
            self.responder = None
        if self.channel is not None:
            await self.channel.close()
            self.channel = None
        if self.database is not None:
            self.database.close()
            self.database = None
