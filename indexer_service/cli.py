"""
CLI entry point for the Indexer Service.
"""

import asyncio
from typing import Optional

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from .channel import ChannelError
from .config import Settings
from .db import DatabaseError
from .log import configure_logging, create_logger
from .service import IndexerService
from .wallet import WalletError

app = typer.Typer(
    name="indexer-service",
    help="Indexer Service - echoes state channel payments back to their sender",
    add_completion=False,
)


@app.command()
def start(
    mnemonic: str = typer.Option(
        ..., "--mnemonic", envvar="MNEMONIC", help="Ethereum wallet mnemonic"
    ),
    ethereum: str = typer.Option(
        ..., "--ethereum", envvar="ETHEREUM", help="Ethereum node or provider URL"
    ),
    connext_messaging: Optional[str] = typer.Option(
        None, "--connext-messaging", envvar="CONNEXT_MESSAGING", help="Connext messaging URL"
    ),
    connext_node: str = typer.Option(
        ..., "--connext-node", envvar="CONNEXT_NODE", help="Connext node URL"
    ),
    postgres_host: Optional[str] = typer.Option(
        None, "--postgres-host", envvar="POSTGRES_HOST", help="Postgres host"
    ),
    postgres_port: int = typer.Option(
        5432, "--postgres-port", envvar="POSTGRES_PORT", help="Postgres port"
    ),
    postgres_username: Optional[str] = typer.Option(
        None, "--postgres-username", envvar="POSTGRES_USERNAME", help="Postgres username"
    ),
    postgres_password: Optional[str] = typer.Option(
        None, "--postgres-password", envvar="POSTGRES_PASSWORD", help="Postgres password"
    ),
    postgres_database: str = typer.Option(
        ..., "--postgres-database", envvar="POSTGRES_DATABASE", help="Postgres database name"
    ),
    port: int = typer.Option(7600, "--port", envvar="PORT", help="Port to serve from"),
    database_url: Optional[str] = typer.Option(
        None,
        "--database-url",
        envvar="DATABASE_URL",
        help="SQLAlchemy database URL (overrides the --postgres-* options)",
    ),
    echo_delay: float = typer.Option(
        1.0, "--echo-delay", envvar="ECHO_DELAY", help="Seconds to wait before sending a payment back"
    ),
    echo_concurrency: int = typer.Option(
        8, "--echo-concurrency", envvar="ECHO_CONCURRENCY", help="Payments sent back at once"
    ),
    echo_queue_size: int = typer.Option(
        0, "--echo-queue-size", envvar="ECHO_QUEUE_SIZE", help="Pending echo limit (0 = unbounded)"
    ),
    event_poll_interval: float = typer.Option(
        1.0, "--event-poll-interval", envvar="EVENT_POLL_INTERVAL", help="Seconds between event polls"
    ),
    log_level: str = typer.Option("info", "--log-level", envvar="LOG_LEVEL", help="Log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Render logs as JSON"),
) -> None:
    """
    Start the service.
    """
    try:
        settings = Settings(
            mnemonic=mnemonic,
            ethereum=ethereum,
            connext_messaging=connext_messaging,
            connext_node=connext_node,
            postgres_host=postgres_host,
            postgres_port=postgres_port,
            postgres_username=postgres_username,
            postgres_password=postgres_password,
            postgres_database=postgres_database,
            port=port,
            database_url=database_url,
            echo_delay_seconds=echo_delay,
            echo_concurrency=echo_concurrency,
            echo_queue_size=echo_queue_size,
            event_poll_interval=event_poll_interval,
            log_level=log_level,
            json_logs=json_logs,
        )
    except ValidationError as e:
        typer.echo(f"Invalid configuration:\n{e}", err=True)
        raise typer.Exit(code=2)

    configure_logging(settings.log_level, settings.json_logs)
    logger = create_logger("IndexerService")

    service = IndexerService(settings, logger=logger)
    try:
        asyncio.run(service.run())
    except (DatabaseError, ChannelError, WalletError) as e:
        logger.error("Failed to start", error=str(e))
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("Stopping")


@app.command()
def version() -> None:
    """Show the service version."""
    from indexer_service import __version__
    typer.echo(f"indexer-service v{__version__}")


def main() -> None:
    """Main entry point."""
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
