"""
Indexer Service

Runs a state channel client that echoes every unlocked incoming payment
back to its sender, next to a small HTTP status server.

Usage:
    # Start the service
    indexer-service start \
        --mnemonic "..." \
        --ethereum http://localhost:8545 \
        --connext-node http://localhost:8080 \
        --postgres-database indexer

    # Show the version
    indexer-service version
"""

__version__ = "0.1.0"

from .channel import (
    ADDRESS_ZERO,
    ChannelError,
    EventNames,
    MockStateChannel,
    StateChannel,
    TransferError,
    create_state_channel,
)
from .config import Settings
from .db import ChannelStore, Database, DatabaseConnectionError, connect_database
from .echo import EchoResponder
from .models import TransferRequest, TransferResponse, TransferUnlocked
from .service import IndexerService

__all__ = [
    "__version__",
    "ADDRESS_ZERO",
    "ChannelError",
    "ChannelStore",
    "Database",
    "DatabaseConnectionError",
    "EchoResponder",
    "EventNames",
    "IndexerService",
    "MockStateChannel",
    "Settings",
    "StateChannel",
    "TransferError",
    "TransferRequest",
    "TransferResponse",
    "TransferUnlocked",
    "connect_database",
    "create_state_channel",
]
