from datetime import datetime
from pathlib import Path

import aiofiles
import aiofiles.os
from pydantic import BaseModel

RECORD_TIME_FORMAT = "%m/%d/%Y %H:%M:%S"


class UploadRecord(BaseModel):
    """One successfully uploaded file and where it now lives."""

    time: str
    """Local time of the upload, `MM/DD/YYYY HH:MM:SS`."""
    original_file_name: str
    url_location: str

    @classmethod
    def now(cls, original_file_name: str, url_location: str) -> "UploadRecord":
        return cls(
            time=datetime.now().strftime(RECORD_TIME_FORMAT),
            original_file_name=original_file_name,
            url_location=url_location,
        )


class UploadRecords(BaseModel):
    records: list[UploadRecord] = []


async def load_records(records_path: Path) -> UploadRecords:
    """Read the whole provenance file. A missing file is an empty history."""
    if not await aiofiles.os.path.exists(records_path):
        return UploadRecords()
    async with aiofiles.open(records_path, "r", encoding="utf-8") as f:
        return UploadRecords.model_validate_json(await f.read())


async def append_record(records_path: Path, record: UploadRecord) -> None:
    """Append a record by rewriting the provenance file in full.

    Not safe against concurrent writers of the same file.
    """
    records = await load_records(records_path)
    records.records.append(record)
    async with aiofiles.open(records_path, "w", encoding="utf-8") as f:
        await f.write(records.model_dump_json(indent=2))
