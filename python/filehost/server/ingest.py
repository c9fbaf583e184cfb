import secrets
from collections.abc import Callable
from datetime import datetime, timezone

import aiofiles
import structlog
from fastapi import Request, UploadFile
from starlette.requests import ClientDisconnect
from starlette.types import Message, Receive

from ..config import ACCESS_KEY_HEADER, ServerConfig
from ..errors import (
    AuthorizationError,
    ConfigurationError,
    MissingHeaderError,
    PayloadTooLargeError,
    StorageError,
    ValidationError,
)
from .naming import StorageNamer

logger = structlog.get_logger("filehost.server.ingest")

CHUNK_SIZE = 64 * 1024
PLACEHOLDER_FILENAME = "unnamed.txt"


def limit_body(receive: Receive, max_bytes: int) -> Receive:
    """Wrap an ASGI receive callable so the request body cannot grow past `max_bytes`."""
    received = 0

    async def limited_receive() -> Message:
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > max_bytes:
                raise PayloadTooLargeError(f"Request body exceeds {max_bytes} bytes")
        return message

    return limited_receive


class UploadIngestor:
    """Authenticates upload requests and writes each multipart part under the storage root."""

    def __init__(
        self,
        config: ServerConfig,
        namer: StorageNamer | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.namer = namer or StorageNamer(config.upload_dir)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def authorize(self, credential: str | None) -> None:
        if credential is None:
            raise MissingHeaderError(f"Missing {ACCESS_KEY_HEADER} header")
        if self.config.access_key is None:
            raise ConfigurationError("ACCESS_KEY undefined")

        expected = self.config.access_key.get_secret_value().encode()
        if not secrets.compare_digest(credential.encode(), expected):
            raise AuthorizationError("Access key mismatch")

    def check_body(self, request: Request) -> None:
        """Reject requests that are not multipart or declare an oversized body."""
        content_type = request.headers.get("content-type", "")
        if not content_type.lower().startswith("multipart/form-data"):
            raise ValidationError(f"Expected a multipart/form-data body, got {content_type!r}")

        content_length = request.headers.get("content-length")
        if content_length is None:
            return
        try:
            declared = int(content_length)
        except ValueError as e:
            raise ValidationError(f"Invalid Content-Length: {content_length!r}") from e
        if declared > self.config.max_upload_bytes:
            raise PayloadTooLargeError(
                f"Declared body of {declared} bytes exceeds {self.config.max_upload_bytes} bytes"
            )

    async def store(self, filename: str | None, source: UploadFile | str) -> str:
        """Write one part to a freshly named location and return its relative path."""
        relative_path = await self.namer.name_for(filename or PLACEHOLDER_FILENAME, self._now())
        full_path = self.namer.resolve(relative_path)

        try:
            async with aiofiles.open(full_path, "wb") as out:
                if isinstance(source, str):
                    await out.write(source.encode())
                else:
                    while True:
                        chunk = await source.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        await out.write(chunk)
        except OSError as e:
            raise StorageError(f"Couldn't write to file {relative_path}: {e}") from e

        return relative_path

    async def handle(self, credential: str | None, request: Request) -> list[str]:
        """Ingest every part of an upload request, in arrival order.

        The credential and declared size are checked before the body is read, so a rejected
        request never writes anything. Parts already written stay on disk if a later part fails.
        """
        self.authorize(credential)
        self.check_body(request)

        limited = Request(request.scope, receive=limit_body(request.receive, self.config.max_upload_bytes))

        # Malformed multipart surfaces as an HTTPException (400) and an oversized body as
        # PayloadTooLargeError; both propagate as they are.
        try:
            form = await limited.form()
        except (ClientDisconnect, OSError) as e:
            raise StorageError(f"Couldn't fold form data: {e!r}") from e

        uploaded_files: list[str] = []
        try:
            for _field_name, value in form.multi_items():
                if isinstance(value, str):
                    uploaded_files.append(await self.store(None, value))
                else:
                    uploaded_files.append(await self.store(value.filename, value))
        finally:
            await form.close()

        logger.info("files_uploaded", count=len(uploaded_files))
        return uploaded_files
