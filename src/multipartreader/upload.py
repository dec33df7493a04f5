"""Streaming multipart uploads over requests."""

from __future__ import annotations

import logging
import mimetypes
import threading
from typing import Dict, Iterable, Optional

import requests
from rich.console import Console
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TimeRemainingColumn, TransferSpeedColumn

from multipartreader.file_utils import format_size
from multipartreader.reader import DEFAULT_CHUNK_SIZE, MultipartReader

DEFAULT_UPLOAD_TIMEOUT = 900

log = logging.getLogger(__name__)


class UploadProgress:
    """Draws a progress bar for a reader while another thread sends it.

    The bar is driven by polling :meth:`MultipartReader.count`, so the thread
    doing the upload is never slowed down by rendering.
    """

    def __init__(self, reader: MultipartReader, description: str = "Upload Progress", interval: float = 0.2, console: Console = None) -> None:
        self.reader = reader
        self.description = description
        self.interval = interval
        self.console = console
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self) -> None:
        columns = (
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
        )
        with Progress(*columns, console=self.console, transient=False) as progress:
            task = progress.add_task(self.description, total=self.reader.length)
            while not self._stop.wait(self.interval):
                progress.update(task, completed=self.reader.count())
            progress.update(task, completed=self.reader.count())

    def __enter__(self) -> 'UploadProgress':
        self._thread = threading.Thread(target=self._run, name="upload-progress", daemon=True)
        self._thread.start()
        return self

    def __exit__(self, _type, _value, _traceback):
        self._stop.set()
        self._thread.join()


def stream_post_files(
    url: str,
    fields: Dict[str, str | bytes] = None,
    file_paths: Iterable[str] = (),
    timeout: int | float | None = DEFAULT_UPLOAD_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    headers: Dict[str, str] = None,
    session: requests.Session = None,
    show_progress: bool = True,
) -> requests.Response:
    """POST ``fields`` and ``file_paths`` to ``url`` as one streamed multipart body.

    Every file is sent as a part named "file" with its base name as the file
    name and a Content-Type guessed from the extension. Files are opened here
    and closed again before returning.

    Args:
        url (str): Where to POST the body.
        fields (Dict[str, str | bytes], optional): Plain form fields, sent before the files.
        file_paths (Iterable[str], optional): Files to send.
        timeout (int | float | None, optional): Request timeout in seconds. Defaults to 900.
        chunk_size (int, optional): Bytes per read when the body is sent chunked.
        headers (Dict[str, str], optional): Extra request headers.
        session (requests.Session, optional): Session to send with. A new one is used if not given.
        show_progress (bool, optional): Draw a progress bar while sending. Defaults to True.

    Returns:
        requests.Response: The server response. Its status is not checked.

    Raises:
        FileOpenError: If a file cannot be opened.
        RuntimeError: If the request fails or times out.
    """
    own_session = session is None
    if own_session:
        session = requests.Session()

    try:
        with MultipartReader(chunk_size=chunk_size) as reader:
            if fields:
                reader.write_fields(fields)
            for file_path in file_paths:
                content_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
                reader.add_file(file_path, content_type=content_type)

            request = session.prepare_request(requests.Request("POST", url, headers=headers))
            reader.attach_to_request(request)

            size = format_size(reader.length) if reader.length is not None else "unknown size"
            log.info(f"Uploading {size} to {url.split('?')[0]}")
            try:
                if show_progress:
                    with UploadProgress(reader):
                        response = session.send(request, timeout=timeout)
                else:
                    response = session.send(request, timeout=timeout)
            except requests.Timeout:
                log.error(f"Request timed out after {timeout} seconds: {url}")
                raise RuntimeError(f"Failed to upload to {url} due to timeout") from None
            except requests.RequestException as exc:
                log.error(f"Error occurred while uploading to {url}: {exc}")
                raise RuntimeError(f"Failed to upload to {url}") from exc

            log.info(f"Sent {reader.count()} bytes, server replied {response.status_code}")
    finally:
        if own_session:
            session.close()

    return response
