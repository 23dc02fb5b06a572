"""
Shared fixtures for Indexer Service tests.
"""

from pathlib import Path

import pytest
import structlog

from indexer_service.channel import MockStateChannel
from indexer_service.config import Settings
from indexer_service.db import ChannelStore, Database, connect_database

# Well-known development mnemonic (never holds real funds)
TEST_MNEMONIC = "test test test test test test test test test test test junk"


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration done by a test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def mock_channel() -> MockStateChannel:
    return MockStateChannel(balances={"0x0000000000000000000000000000000000000000": 5 * 10**18})


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'indexer.db'}"


@pytest.fixture
def database(database_url: str):
    db = connect_database(database_url)
    yield db
    db.close()


@pytest.fixture
def store(database: Database) -> ChannelStore:
    return ChannelStore(database)


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(
        _env_file=None,
        mnemonic=TEST_MNEMONIC,
        ethereum="http://localhost:8545",
        connext_node="http://node",
        postgres_database="indexer",
        database_url=database_url,
        echo_delay_seconds=0.01,
        port=0,
    )


@pytest.fixture
def mnemonic() -> str:
    return TEST_MNEMONIC
