import re

import httpx
import pytest
from filehost.client.records import load_records
from filehost.client.transfer import TransferClient, collect_directory
from filehost.errors import ProtocolMismatchError, TransportError, UploadFailedError, ValidationError
from pydantic import SecretStr

STORED_URL = r"http://filehost\.test/files/\d{4}/\d{2}/\d{2}/[A-Za-z0-9_-]{21}"


def stored_path(url: str, base_url: str) -> str:
    return url.removeprefix(f"{base_url}/files/")


class TestUploadAgainstServer:
    """Client and server wired together in-process."""

    @pytest.fixture
    def transfer(self, app, client_config):
        return TransferClient(client_config, transport=httpx.ASGITransport(app=app))

    @pytest.mark.asyncio
    async def test_single_file(self, transfer, client_config, base_url, upload_dir, tmp_path):
        """Test a 10 byte notes.txt resolves to a files URL and is recorded."""
        notes = tmp_path / "notes.txt"
        notes.write_bytes(b"0123456789")

        urls = await transfer.upload([notes])

        assert len(urls) == 1
        assert re.fullmatch(rf"{STORED_URL}\.txt", urls[0])
        assert (upload_dir / stored_path(urls[0], base_url)).read_bytes() == b"0123456789"

        records = (await load_records(client_config.records_path)).records
        assert len(records) == 1
        assert records[0].original_file_name == "notes.txt"
        assert records[0].url_location == urls[0]

    @pytest.mark.asyncio
    async def test_two_files_keep_order(self, transfer, base_url, upload_dir, tmp_path):
        """Test a batch of a.bin and b yields URLs in submission order."""
        a = tmp_path / "a.bin"
        a.write_bytes(b"\x00\x01\x02")
        b = tmp_path / "b"
        b.write_bytes(b"no extension")

        urls = await transfer.upload([a, b])

        assert re.fullmatch(rf"{STORED_URL}\.bin", urls[0])
        assert re.fullmatch(STORED_URL, urls[1])
        assert (upload_dir / stored_path(urls[0], base_url)).read_bytes() == b"\x00\x01\x02"
        assert (upload_dir / stored_path(urls[1], base_url)).read_bytes() == b"no extension"

    @pytest.mark.asyncio
    async def test_many_files(self, transfer, client_config, base_url, upload_dir, tmp_path):
        """Test N files give N URLs, each pointing at its own content."""
        paths = []
        for i in range(6):
            path = tmp_path / f"file{i}.dat"
            path.write_bytes(f"content {i}".encode() * (i * 5000 + 1))
            paths.append(path)

        urls = await transfer.upload(paths)

        assert len(urls) == len(paths)
        for path, url in zip(paths, urls):
            assert (upload_dir / stored_path(url, base_url)).read_bytes() == path.read_bytes()
        records = (await load_records(client_config.records_path)).records
        assert [r.original_file_name for r in records] == [p.name for p in paths]

    @pytest.mark.asyncio
    async def test_explicit_provenance_path(self, transfer, client_config, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        history = tmp_path / "elsewhere.json"

        urls = await transfer.upload([notes], history)

        assert [r.url_location for r in (await load_records(history)).records] == urls
        assert not client_config.records_path.exists()

    @pytest.mark.asyncio
    async def test_wrong_access_key(self, app, client_config, upload_dir, tmp_path):
        """Test an unauthorized upload surfaces the server's message and stores nothing."""
        config = client_config.model_copy(update={"access_key": SecretStr("wrong")})
        transfer = TransferClient(config, transport=httpx.ASGITransport(app=app))
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")

        with pytest.raises(UploadFailedError) as exc_info:
            await transfer.upload([notes])

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Unauthorized"
        assert not upload_dir.exists()
        assert not client_config.records_path.exists()

    @pytest.mark.asyncio
    async def test_record_failure_keeps_urls(self, transfer, tmp_path):
        """Test a provenance file that cannot be written does not lose the uploaded URL."""
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        unwritable = tmp_path / "history"
        unwritable.mkdir()

        urls = await transfer.upload([notes], unwritable)

        assert len(urls) == 1
        assert re.fullmatch(rf"{STORED_URL}\.txt", urls[0])


class TestUploadFailures:
    @pytest.fixture
    def calls(self):
        return []

    def mock_client(self, client_config, calls, handler):
        def record(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        return TransferClient(client_config, transport=httpx.MockTransport(record))

    @pytest.mark.asyncio
    async def test_missing_file_fails_before_sending(self, client_config, calls, tmp_path):
        """Test one missing path fails the whole batch without any request."""
        present = tmp_path / "present.txt"
        present.write_text("hello")
        transfer = self.mock_client(client_config, calls, lambda request: httpx.Response(200, text="x"))

        with pytest.raises(ValidationError):
            await transfer.upload([present, tmp_path / "missing.txt"])

        assert calls == []
        assert not client_config.records_path.exists()

    @pytest.mark.asyncio
    async def test_empty_batch(self, client_config, calls):
        transfer = self.mock_client(client_config, calls, lambda request: httpx.Response(200, text=""))

        with pytest.raises(ValidationError):
            await transfer.upload([])

        assert calls == []

    @pytest.mark.asyncio
    async def test_request_shape(self, client_config, access_key, calls, tmp_path):
        """Test the request goes to /upload with the access key and a sized multipart body."""
        notes = tmp_path / "notes.txt"
        notes.write_bytes(b"0123456789")
        transfer = self.mock_client(
            client_config, calls, lambda request: httpx.Response(200, text="2024/03/07/abc.txt")
        )

        urls = await transfer.upload([notes])

        request = calls[0]
        assert request.method == "POST"
        assert str(request.url) == "http://filehost.test/upload"
        assert request.headers["ACCESS-KEY"] == access_key
        assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
        assert int(request.headers["Content-Length"]) == len(request.content)
        assert b'filename="notes.txt"' in request.content
        assert b"0123456789" in request.content
        assert urls == ["http://filehost.test/files/2024/03/07/abc.txt"]

    @pytest.mark.asyncio
    async def test_path_count_mismatch(self, client_config, calls, tmp_path):
        """Test a response with the wrong number of paths is a protocol mismatch."""
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        transfer = self.mock_client(
            client_config, calls, lambda request: httpx.Response(200, text="2024/01/01/a.txt 2024/01/01/b.txt")
        )

        with pytest.raises(ProtocolMismatchError):
            await transfer.upload([notes])

        assert not client_config.records_path.exists()

    @pytest.mark.asyncio
    async def test_server_error(self, client_config, calls, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        transfer = self.mock_client(client_config, calls, lambda request: httpx.Response(500, text="SYS_ERROR"))

        with pytest.raises(UploadFailedError) as exc_info:
            await transfer.upload([notes])

        assert exc_info.value.status_code == 500
        assert "SYS_ERROR" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error(self, client_config, calls, tmp_path):
        """Test connection failures surface as a transport error."""
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transfer = self.mock_client(client_config, calls, refuse)

        with pytest.raises(TransportError) as exc_info:
            await transfer.upload([notes])

        assert not isinstance(exc_info.value, UploadFailedError)


class TestCollectDirectory:
    def test_regular_visible_files_sorted(self, tmp_path):
        for name in ("b.txt", "a.bin", ".hidden"):
            (tmp_path / name).write_text(name)
        (tmp_path / "nested").mkdir()
        (tmp_path / "nested" / "c.txt").write_text("c")

        assert collect_directory(tmp_path) == [tmp_path / "a.bin", tmp_path / "b.txt"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ValidationError):
            collect_directory(tmp_path / "missing")
