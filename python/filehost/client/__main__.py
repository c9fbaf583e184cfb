import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .. import __version__
from ..config import ClientConfig
from ..errors import FileHostError
from ..logs import setup_logging
from .transfer import TransferClient, collect_directory


def run() -> None:
    parser = argparse.ArgumentParser(description="Upload files to a filehost server.")
    parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Show version and exit."
    )
    parser.add_argument(
        "file_paths",
        nargs="*",
        help="Files to upload as one batch.",
    )
    parser.add_argument(
        "-d",
        "--directory",
        dest="directory",
        type=str,
        help="Upload every regular file in this directory. Overrides UPLOAD_SOURCE_DIR.",
    )
    parser.add_argument(
        "-r",
        "--records-path",
        dest="records_path",
        type=str,
        help="Local upload history file. Overrides RECORDS_PATH (default records.json).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="No progress bars.",
    )
    args = parser.parse_args()

    if args.version:
        print(f"filehost.client {__version__}") # noqa: T201
        sys.exit(0)

    load_dotenv(override=True)
    setup_logging()

    environ = dict(os.environ)
    if args.directory:
        environ["UPLOAD_SOURCE_DIR"] = args.directory
    if args.records_path:
        environ["RECORDS_PATH"] = args.records_path
    if args.quiet:
        environ["QUIET"] = "true"

    try:
        config = ClientConfig.from_env(environ)

        local_paths = [Path(path).expanduser() for path in args.file_paths]
        if config.upload_source_dir is not None:
            local_paths += collect_directory(config.upload_source_dir.expanduser())

        urls = asyncio.run(TransferClient(config).upload(local_paths))
    except FileHostError as e:
        print(f"Error: {e}", file=sys.stderr) # noqa: T201
        sys.exit(1)

    for url in urls:
        print(url) # noqa: T201


if __name__ == "__main__":
    run()
