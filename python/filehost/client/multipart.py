"""Streaming `multipart/form-data` bodies.

The body is produced as an async sequence of byte chunks: part headers are small
in-memory blocks, file contents are read lazily from disk. Every part's length is
known up front, so the total body length can be sent as Content-Length.
"""

import binascii
import mimetypes
import os
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles

from ..errors import ValidationError
from .progress import ProgressCallback, observe_chunks

CHUNK_SIZE = 64 * 1024
FIELD_NAME = "file"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


def _quote(value: str) -> str:
    # Same escaping browsers apply to form-data parameter values.
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "%0D").replace("\n", "%0A")


async def read_file_chunks(path: Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            yield chunk


@dataclass
class MultipartPart:
    """One file-bearing part of a form."""

    file_name: str
    length: int
    content_type: str
    source: Callable[[], AsyncIterator[bytes]]
    """Opens the lazy byte source. Called once, when the body is streamed."""
    on_progress: ProgressCallback | None = None
    on_complete: Callable[[], None] | None = None

    @classmethod
    def from_path(cls, path: Path, chunk_size: int = CHUNK_SIZE) -> "MultipartPart":
        path = Path(path)
        if not path.is_file():
            raise ValidationError(f"File path does not exist: {path}")
        return cls(
            file_name=path.name,
            length=path.stat().st_size,
            content_type=guess_content_type(path.name),
            source=lambda: read_file_chunks(path, chunk_size),
        )

    def render_headers(self, boundary: bytes) -> bytes:
        return b"".join([
            b"--", boundary, b"\r\n",
            f'Content-Disposition: form-data; name="{FIELD_NAME}"; filename="{_quote(self.file_name)}"\r\n'.encode(),
            f"Content-Type: {self.content_type}\r\n".encode(),
            b"\r\n",
        ])

    def chunks(self) -> AsyncIterator[bytes]:
        return observe_chunks(self.source(), self.length, self.on_progress, self.on_complete)


@dataclass
class MultipartForm:
    """A fixed list of parts, encoded as one streaming body."""

    parts: list[MultipartPart]
    boundary: bytes = field(default_factory=lambda: binascii.hexlify(os.urandom(16)))

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary.decode('ascii')}"

    def _closing(self) -> bytes:
        return b"--" + self.boundary + b"--\r\n"

    @property
    def content_length(self) -> int:
        length = len(self._closing())
        for part in self.parts:
            # headers + data + trailing CRLF
            length += len(part.render_headers(self.boundary)) + part.length + 2
        return length

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Content-Length": str(self.content_length),
        }

    async def stream(self) -> AsyncIterator[bytes]:
        for part in self.parts:
            yield part.render_headers(self.boundary)
            async for chunk in part.chunks():
                yield chunk
            yield b"\r\n"
        yield self._closing()
