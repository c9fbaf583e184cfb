# ruff: noqa: F401
from .records import UploadRecord, UploadRecords, append_record, load_records
from .transfer import TransferClient, collect_directory
