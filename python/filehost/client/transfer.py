from collections.abc import Iterable
from pathlib import Path

import httpx
import structlog

from ..config import ACCESS_KEY_HEADER, ClientConfig
from ..errors import ProtocolMismatchError, TransportError, UploadFailedError, ValidationError
from .multipart import MultipartForm, MultipartPart
from .progress import ProgressBar
from .records import UploadRecord, append_record

logger = structlog.get_logger("filehost.client.transfer")


def collect_directory(directory: Path) -> list[Path]:
    """Regular, non-hidden files directly inside `directory`, sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ValidationError(f"Directory does not exist: {directory}")
    return sorted(
        path for path in directory.iterdir()
        if path.is_file() and not path.name.startswith(".")
    )


class TransferClient:
    """Uploads batches of local files to a filehost server and records where they landed.

    Args:
        config: Client settings.
        transport: Optional httpx transport, e.g. to talk to an in-process app.
    """

    def __init__(self, config: ClientConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.idle_timeout),
            transport=self._transport,
        )

    def build_form(self, local_paths: list[Path]) -> MultipartForm:
        """Build the streaming form for a batch, failing before any network activity
        if one of the paths is not a regular file."""
        if not local_paths:
            raise ValidationError("No files to upload")
        missing = [str(path) for path in local_paths if not path.is_file()]
        if missing:
            raise ValidationError(f"File path does not exist: {', '.join(missing)}")
        return MultipartForm([MultipartPart.from_path(path) for path in local_paths])

    async def send(self, form: MultipartForm) -> list[str]:
        """POST the form and return the relative storage paths, one per part, in part order."""
        headers = {
            ACCESS_KEY_HEADER: self.config.access_key.get_secret_value(),
            **form.headers,
        }
        try:
            async with self._client() as client:
                res = await client.post(self.config.upload_url, headers=headers, content=form.stream())
        except httpx.HTTPError as exc:
            raise TransportError(f"Upload to {self.config.upload_url} failed: {exc}") from exc

        if not res.is_success:
            raise UploadFailedError(res.status_code, res.text.strip())

        relative_paths = res.text.split()
        if len(relative_paths) != len(form.parts):
            raise ProtocolMismatchError(
                f"Sent {len(form.parts)} file(s) but the server returned {len(relative_paths)} path(s)"
            )
        return relative_paths

    async def upload(self, local_paths: Iterable[Path | str], provenance_path: Path | None = None) -> list[str]:
        """Upload files as one batch and return their absolute URLs, in the order given.

        Each uploaded file is appended to the provenance file. A failed append is logged
        and does not affect the returned URLs: the server's answer is what counts.
        """
        local_paths = [Path(path) for path in local_paths]
        provenance_path = provenance_path or self.config.records_path

        form = self.build_form(local_paths)

        bars = []
        for part in form.parts:
            bar = ProgressBar(part.file_name, part.length, disable=self.config.quiet)
            part.on_progress = bar.update
            part.on_complete = bar.close
            bars.append(bar)

        try:
            relative_paths = await self.send(form)
        finally:
            for bar in bars:
                bar.close()

        urls = []
        for relative_path, part in zip(relative_paths, form.parts):
            url = self.config.file_url(relative_path)
            try:
                await append_record(provenance_path, UploadRecord.now(part.file_name, url))
            except (OSError, ValueError) as exc:
                logger.warning(
                    "record_write_failed",
                    records_path=str(provenance_path),
                    file_name=part.file_name,
                    error=str(exc),
                )
            urls.append(url)

        logger.info("upload_completed", count=len(urls))
        return urls
