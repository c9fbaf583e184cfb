from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import aiofiles.os
import nanoid
import structlog

from ..errors import StorageError

logger = structlog.get_logger("filehost.server.naming")

BUCKET_FORMAT = "%Y/%m/%d"
IDENTIFIER_SIZE = 21
"""nanoid default: 21 symbols from a 64-symbol URL-safe alphabet (~126 bits)."""


def bucket_for(instant: datetime) -> str:
    """Day bucket (`YYYY/MM/DD`) of the given instant, in UTC."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.strftime(BUCKET_FORMAT)


def stored_name(original_filename: str) -> str:
    """Generated file name: a fresh identifier plus the original extension, if any."""
    extension = PurePosixPath(original_filename).suffix
    return f"{nanoid.generate(size=IDENTIFIER_SIZE)}{extension}"


class StorageNamer:
    """Names uploaded files under date buckets of a storage root.

    Generated names are `{YYYY}/{MM}/{DD}/{identifier}[.{ext}]`, relative to the root.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def resolve(self, relative_path: str) -> Path:
        """Absolute on-disk location of a relative storage path.

        Raises StorageError if the path would land outside the storage root.
        """
        full_path = self.root / relative_path
        try:
            full_path.resolve().relative_to(self.root.resolve())
        except ValueError as e:
            raise StorageError(f"Path outside storage root: {relative_path}") from e
        return full_path

    async def name_for(self, original_filename: str, instant: datetime | None = None) -> str:
        """Generate a relative storage path for a file ingested at `instant`.

        Creates the storage root and the day bucket if they do not exist yet.
        Concurrent first use of the same bucket is fine.
        """
        instant = instant or datetime.now(timezone.utc)
        bucket = bucket_for(instant)

        if not self.root.exists():
            logger.info("creating_storage_root", path=str(self.root))
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
            await aiofiles.os.makedirs(self.root / bucket, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Couldn't create upload path {bucket}: {e}") from e

        relative_path = f"{bucket}/{stored_name(original_filename)}"
        self.resolve(relative_path)
        return relative_path
