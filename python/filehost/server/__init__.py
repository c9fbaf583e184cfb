# ruff: noqa: F401
from .ingest import UploadIngestor
from .naming import StorageNamer
from .rejections import Rejection, classify
