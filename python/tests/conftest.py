import os
from pathlib import Path

import pytest
from dotenv import load_dotenv
from filehost.config import ClientConfig, ServerConfig
from filehost.server.http import create_app

# Set environment variable early to suppress warnings during imports
os.environ["PYTHONWARNINGS"] = "ignore::DeprecationWarning"

ACCESS_KEY = "test-access-key"
BASE_URL = "http://filehost.test"


def pytest_configure(config):
    """Configure pytest with global settings."""
    # Load environment variables
    load_dotenv()


@pytest.fixture
def access_key() -> str:
    return ACCESS_KEY


@pytest.fixture
def base_url() -> str:
    return BASE_URL


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    """Storage root. Deliberately not created: the first upload has to create it."""
    return tmp_path / "storage"


@pytest.fixture
def server_config(upload_dir: Path) -> ServerConfig:
    return ServerConfig(
        upload_dir=upload_dir,
        port=0,
        access_key=ACCESS_KEY,
        log_file=None,
    )


@pytest.fixture
def app(server_config: ServerConfig):
    return create_app(server_config)


@pytest.fixture
def client_config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(
        base_url=BASE_URL,
        access_key=ACCESS_KEY,
        records_path=tmp_path / "records.json",
        quiet=True,
    )
