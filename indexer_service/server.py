"""
Status server.

Serves a single liveness endpoint. Request logs go to the service
logger at debug level instead of uvicorn's access log.
"""

import time
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from . import __version__

READY_MESSAGE = "Ready to roll!"


def format_access_line(request: Request, response: Response, elapsed_ms: float) -> str:
    """Format a request like morgan's "tiny" format."""
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    length = response.headers.get("content-length", "-")
    return f"{request.method} {url} {response.status_code} {length} - {elapsed_ms:.3f} ms"


def create_app(logger: Any) -> FastAPI:
    """Create the status application."""
    app = FastAPI(
        title="Indexer Service",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.middleware("http")
    async def access_log(request: Request, call_next: Any) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(format_access_line(request, response, elapsed_ms))
        return response

    @app.get("/", response_class=PlainTextResponse)
    async def ready() -> str:
        return READY_MESSAGE

    return app


class StatusServer(uvicorn.Server):
    """uvicorn server that reports through the service logger."""

    def __init__(self, app: FastAPI, port: int, logger: Any, host: str = "0.0.0.0"):
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        super().__init__(config)
        self.logger = logger
        self.port = port

    async def startup(self, sockets: Optional[list] = None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self.logger.info(f"Started at port {self.port}")
