import argparse
import asyncio
import os
import signal
import sys
from pathlib import Path

import structlog
import uvicorn
from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config import ACCESS_KEY_HEADER, FILES_ROUTE, UPLOAD_ROUTE, ServerConfig
from ..errors import ConfigurationError
from ..logs import setup_logging
from .ingest import UploadIngestor
from .rejections import install_rejection_handlers, reject
from .utils import is_port_in_use

logger = structlog.get_logger("filehost.server.http")


class StoredFiles(StaticFiles):
    """Serves stored files. The storage root may not exist until the first upload creates it."""

    async def check_config(self) -> None:
        if self.directory is not None and not os.path.isdir(self.directory):
            raise HTTPException(status_code=404)
        await super().check_config()


def create_app(config: ServerConfig) -> FastAPI:
    """HTTP server implementation for filehost.

    Exposes the authenticated multipart upload endpoint and serves stored files back
    unauthenticated under `/files`. Every failure is answered from the fixed
    status/message table in `rejections`.

    Args:
        config: Server settings, captured once at startup.
    """
    app = FastAPI(title="filehost", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.ingestor = UploadIngestor(config)

    install_rejection_handlers(app)


    @app.get("/")
    async def root() -> Response:
        return PlainTextResponse("File Hosting Server")


    @app.post(f"/{UPLOAD_ROUTE}")
    async def upload(req: Request) -> Response:
        ingestor: UploadIngestor = req.app.state.ingestor
        # Answered here so no failure escapes the application.
        try:
            uploaded_files = await ingestor.handle(req.headers.get(ACCESS_KEY_HEADER), req)
        except Exception as exc:
            return reject(exc)
        return PlainTextResponse(" ".join(uploaded_files))


    app.mount(
        f"/{FILES_ROUTE}",
        StoredFiles(directory=config.upload_dir, check_dir=False),
        name=FILES_ROUTE,
    )

    return app


async def main(config: ServerConfig) -> None:
    """Runs the HTTP server until SIGTERM or SIGINT is received."""
    shutdown_event = asyncio.Event()

    app = create_app(config)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_level=None,
    )
    server = uvicorn.Server(uvicorn_config)

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, lambda _signum, _frame: signal_handler())

    serve_task = asyncio.create_task(server.serve())
    await shutdown_event.wait()
    server.should_exit = True
    await serve_task


def run() -> None:
    parser = argparse.ArgumentParser(description="filehost HTTP server.")
    parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Show version and exit."
    )
    parser.add_argument(
        "--host",
        dest="host",
        type=str,
        help="Host to bind to. Overrides HOST.",
    )
    parser.add_argument(
        "--port",
        dest="port",
        type=int,
        help="Port to bind to. Overrides PORT.",
    )
    parser.add_argument(
        "--upload-dir",
        dest="upload_dir",
        type=str,
        help="Storage root for uploaded files. Overrides UPLOAD_DIR.",
    )
    args = parser.parse_args()

    if args.version:
        print(f"filehost.server.http {__version__}") # noqa: T201
        sys.exit(0)

    logger.info("loading_dotenv", path=find_dotenv())
    load_dotenv(override=True)

    # Command line flags take precedence over the environment.
    environ = dict(os.environ)
    if args.host:
        environ["HOST"] = args.host
    if args.port is not None:
        environ["PORT"] = str(args.port)
    if args.upload_dir:
        environ["UPLOAD_DIR"] = str(Path(args.upload_dir).expanduser())

    try:
        config = ServerConfig.from_env(environ)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr) # noqa: T201
        sys.exit(1)

    if is_port_in_use(config.port):
        print(f"Port {config.port} is already in use. Please use a different port.") # noqa: T201
        sys.exit(1)

    setup_logging(config.log_file)
    logger.info("server_starting", host=config.host, port=config.port, upload_dir=str(config.upload_dir))

    try:
        asyncio.run(main(config))
    except Exception as e:
        logger.error("server_stopped", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    run()
