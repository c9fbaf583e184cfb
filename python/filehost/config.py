import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigurationError

ACCESS_KEY_HEADER = "ACCESS-KEY"
"""Request header carrying the shared secret."""
UPLOAD_ROUTE = "upload"
FILES_ROUTE = "files"

DEFAULT_MAX_UPLOAD_BYTES = 5_000_000_000


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _from_env(model: type[BaseModel], environ: Mapping[str, str], fields: dict[str, str]) -> BaseModel:
    """Build a config model from the environment variables named in `fields` (field -> env var).

    Unset or empty variables fall back to the model defaults.
    """
    values = {
        field: environ[var]
        for field, var in fields.items()
        if environ.get(var, "").strip() != ""
    }
    try:
        return model.model_validate(values)
    except PydanticValidationError as exc:
        problems = ", ".join(
            f"{fields.get(str(err['loc'][0]), err['loc'][0])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid {model.__name__}: {problems}") from exc


class ServerConfig(BaseModel):
    """Process-wide server settings. Read-only after startup."""

    model_config = ConfigDict(frozen=True)

    upload_dir: Path
    """Storage root. Created on first upload if it does not exist."""
    port: int = Field(ge=0, le=65535)
    """Port to listen on."""
    host: str = "0.0.0.0"
    """Host to bind to."""
    access_key: SecretStr | None = None
    """Shared secret. Its absence is reported per request, not at startup."""
    max_upload_bytes: int = Field(default=DEFAULT_MAX_UPLOAD_BYTES, gt=0)
    """Hard limit for a whole upload request body."""
    log_file: Path | None = Path("server.log")
    """Append-only event log. None disables it."""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        environ = os.environ if environ is None else environ
        config = _from_env(cls, environ, {
            "upload_dir": "UPLOAD_DIR",
            "port": "PORT",
            "host": "HOST",
            "access_key": "ACCESS_KEY",
            "max_upload_bytes": "MAX_UPLOAD_BYTES",
            "log_file": "LOG_FILE",
        })
        if "LOG_FILE" in environ and not environ["LOG_FILE"].strip():
            config = config.model_copy(update={"log_file": None})
        return config


class ClientConfig(BaseModel):
    """Settings for the transfer client."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    """Server base URL. Uploads go to `{base_url}/upload`, files are served from `{base_url}/files`."""
    access_key: SecretStr
    """Shared secret sent in the ACCESS-KEY header."""
    records_path: Path = Path("records.json")
    """Local provenance file."""
    upload_source_dir: Path | None = None
    """Optional directory whose files are uploaded as one batch."""
    quiet: bool = False
    """Suppress progress bars and console output."""
    idle_timeout: float | None = 60.0
    """Seconds any single connect/read/write may stall before the transfer is aborted."""

    @property
    def upload_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{UPLOAD_ROUTE}"

    def file_url(self, relative_path: str) -> str:
        """Resolve a server-returned relative storage path into an absolute download URL."""
        return f"{self.base_url.rstrip('/')}/{FILES_ROUTE}/{relative_path.lstrip('/')}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClientConfig":
        environ = os.environ if environ is None else environ
        config = _from_env(cls, environ, {
            "base_url": "BASE_URL",
            "access_key": "ACCESS_KEY",
            "records_path": "RECORDS_PATH",
            "upload_source_dir": "UPLOAD_SOURCE_DIR",
            "idle_timeout": "IDLE_TIMEOUT",
        })
        if _truthy(environ.get("QUIET")):
            config = config.model_copy(update={"quiet": True})
        return config
