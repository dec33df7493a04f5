"""stream_post_files and the progress watcher."""

import io

import pytest
import requests

from conftest import disposition
from multipartreader import FileOpenError, MultipartReader, UploadProgress, stream_post_files


@pytest.fixture
def report_files(tmp_path):
    report = tmp_path / "report.txt"
    report.write_bytes(b"hello")
    data = tmp_path / "data.csv"
    data.write_bytes(b"a,b\n1,2\n")
    return [str(report), str(data)]


def test_stream_post_files(upload_server, report_files, decode):
    response = stream_post_files(
        upload_server.url,
        fields={"key": "outputs/report.txt", "policy": "abc"},
        file_paths=report_files,
        show_progress=False,
    )

    assert response.status_code == 200
    captured = upload_server.captured[0]
    assert captured["headers"]["Content-Length"] == str(len(captured["body"]))

    parts = decode(captured["body"], captured["headers"]["Content-Type"])
    assert [disposition(part).get("filename") for part in parts] == [None, None, "report.txt", "data.csv"]
    assert parts[0].content == b"outputs/report.txt"
    assert parts[2].headers[b"Content-Type"] == b"text/plain"
    assert parts[3].headers[b"Content-Type"] == b"text/csv"
    assert parts[3].content == b"a,b\n1,2\n"


def test_stream_post_files_with_progress_and_headers(upload_server, report_files):
    response = stream_post_files(
        upload_server.url,
        file_paths=report_files[:1],
        headers={"Authorization": "Bearer secret"},
        show_progress=True,
    )

    assert response.status_code == 200
    assert upload_server.captured[0]["headers"]["Authorization"] == "Bearer secret"


def test_stream_post_files_returns_error_responses(upload_server, report_files):
    upload_server.status = 403
    response = stream_post_files(upload_server.url, file_paths=report_files, show_progress=False)

    assert response.status_code == 403


def test_stream_post_files_missing_file(upload_server, tmp_path):
    with pytest.raises(FileOpenError):
        stream_post_files(upload_server.url, file_paths=[str(tmp_path / "missing.bin")], show_progress=False)
    assert upload_server.captured == []


def test_stream_post_files_timeout(report_files, monkeypatch):
    session = requests.Session()

    def timeout(*_args, **_kwargs):
        raise requests.Timeout("too slow")

    monkeypatch.setattr(session, "send", timeout)
    with pytest.raises(RuntimeError, match="timeout") as exc_info:
        stream_post_files("http://example.com/upload", file_paths=report_files, session=session, show_progress=False)
    assert exc_info.value.__cause__ is None


def test_stream_post_files_connection_error(report_files, monkeypatch):
    session = requests.Session()

    def refuse(*_args, **_kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(session, "send", refuse)
    with pytest.raises(RuntimeError) as exc_info:
        stream_post_files("http://example.com/upload", file_paths=report_files, session=session, show_progress=False)
    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


def test_upload_progress_stops_with_the_upload():
    reader = MultipartReader()
    reader.add_form_reader(io.BytesIO(b"x" * 1000), "file", "x.bin", length=1000)

    with UploadProgress(reader, interval=0.01) as progress:
        reader.read()

    assert not progress._thread.is_alive()  # pylint: disable=protected-access
    assert reader.count() == reader.length
