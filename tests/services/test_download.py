import pytest
from rich.console import Console

from pteroprovision.errors import ProvisionError
from pteroprovision.services.download import DownloadService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeRequestException(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.response = FakeErrorResponse(status_code) if status_code else None


class FakeErrorResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeResponse:
    def __init__(self, chunks, status_code=200, fail_after=None):
        self.chunks = chunks
        self.status_code = status_code
        self.fail_after = fail_after
        self.headers = {"Content-Length": str(sum(len(chunk) for chunk in chunks))}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise FakeRequestException(f"{self.status_code} Client Error", self.status_code)

    def iter_content(self, chunk_size=8192):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise FakeRequestException("connection reset")
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeRequestsModule:
    RequestException = FakeRequestException

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def get(self, *_args, **_kwargs):
        self.calls += 1
        return self.responses.pop(0)


def build_service(requests_module, retry_count=0):
    return DownloadService(
        logger=DummyLogger(),
        console=Console(record=True),
        requests_module=requests_module,
        retry_count=retry_count,
        retry_backoff_seconds=0.0,
    )


def test_download_file_writes_payload(tmp_path):
    requests_module = FakeRequestsModule([FakeResponse([b"panel-", b"bytes"])])
    destination = tmp_path / "panel.tar.gz"

    build_service(requests_module).download_file("https://example.com/panel.tar.gz", str(destination))

    assert destination.read_bytes() == b"panel-bytes"


def test_non_success_status_aborts_without_leaving_a_file(tmp_path):
    requests_module = FakeRequestsModule([FakeResponse([b"not found"], status_code=404)])
    destination = tmp_path / "panel.tar.gz"

    with pytest.raises(ProvisionError, match="Suggested action"):
        build_service(requests_module, retry_count=2).download_file(
            "https://github.com/pterodactyl/panel/releases/download/v0.0.0/panel.tar.gz",
            str(destination),
        )

    assert not destination.exists()
    assert requests_module.calls == 1


def test_interrupted_transfer_removes_partial_file_and_retries(tmp_path):
    requests_module = FakeRequestsModule(
        [
            FakeResponse([b"part", b"rest"], fail_after=1),
            FakeResponse([b"part", b"rest"]),
        ]
    )
    destination = tmp_path / "wings"

    build_service(requests_module, retry_count=1).download_file("https://example.com/wings", str(destination))

    assert requests_module.calls == 2
    assert destination.read_bytes() == b"partrest"

