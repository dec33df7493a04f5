"""Streaming multipart/form-data encoder for large uploads.

A :class:`MultipartReader` collects form fields, files and arbitrary streams and
presents them as one file-like object, so an HTTP client can send the body
without holding the payload in memory.
"""

from __future__ import annotations

import logging
import os
import string
import threading
import uuid
from typing import BinaryIO, Iterator, List, Mapping, Optional, Union

import requests

from multipartreader.exceptions import (
    AlreadyConsumingError,
    FileOpenError,
    FileStatError,
    InvalidBoundaryError,
    SourceReadError,
)
from multipartreader.sources import ExternalSource, LiteralSource, PartHeader, PartSource


CRLF = "\r\n"
DEFAULT_CHUNK_SIZE = 1024 * 1024
MAX_BOUNDARY_LENGTH = 70

# RFC 2046 bchars
BOUNDARY_CHARS = frozenset(string.ascii_letters + string.digits + "'()+_,-./:=? ")
# RFC 2045 tspecials, a boundary holding any of these is quoted in the header
TSPECIALS = frozenset('()<>@,;:\\"/[]?= ')

log = logging.getLogger(__name__)


def validate_boundary(token: str) -> str:
    """Check that ``token`` can be used as a multipart boundary.

    Args:
        token (str): The candidate boundary.

    Returns:
        str: The token unchanged.

    Raises:
        InvalidBoundaryError: If the token is empty, longer than 70 characters,
            holds characters outside the RFC 2046 set or ends with a space.
    """
    if not isinstance(token, str) or not 1 <= len(token) <= MAX_BOUNDARY_LENGTH:
        raise InvalidBoundaryError(f"Boundary must be 1 to {MAX_BOUNDARY_LENGTH} characters long: {token!r}")
    invalid = sorted(set(token) - BOUNDARY_CHARS)
    if invalid:
        raise InvalidBoundaryError(f"Boundary contains invalid characters {invalid!r}: {token!r}")
    if token.endswith(" "):
        raise InvalidBoundaryError(f"Boundary must not end with a space: {token!r}")
    return token


def _as_source(source, length: Optional[int] = None) -> PartSource:
    if isinstance(source, PartSource):
        return source
    if isinstance(source, (str, bytes, bytearray)):
        return LiteralSource(source)
    return ExternalSource(source, length)


class _ReadCursor:
    """Reads a fixed list of sources one after the other.

    Sources that report end of data are closed (a no-op unless the reader
    opened them) and the cursor moves on to the next one.
    """

    def __init__(self, sources: List[PartSource]) -> None:
        self._sources = enumerate(sources)
        self._index = -1
        self._current: Optional[PartSource] = None
        self.done = False
        self._advance()

    def _advance(self) -> None:
        try:
            self._index, self._current = next(self._sources)
        except StopIteration:
            self._current = None
            self.done = True

    def read(self, size: int) -> bytes:
        while not self.done:
            try:
                data = self._current.read(size)
            except Exception as exc:
                raise SourceReadError(self._index, f"Reading multipart source {self._index} ({self._current!r}) failed: {exc}") from exc
            if data:
                return data
            self._current.close()
            self._advance()
        return b""


class MultipartReader:
    """Assembles a multipart/form-data body from fields, files and streams.

    Parts are appended in order and always land in front of the closing
    boundary. Nothing is read until the first call to :meth:`read` (or
    :meth:`attach_to_request`), after which the list of parts is frozen.

    Example:
        with MultipartReader() as reader:
            reader.write_fields({"key": "value"})
            reader.add_file("big.zip")
            prepared = session.prepare_request(requests.Request("POST", url))
            session.send(reader.attach_to_request(prepared))
    """

    def __init__(self, boundary: str = None, preamble: str = "", chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size
        self._boundary: str = None
        self._content_type: str = None
        self._trailer: LiteralSource = None
        self._sources: List[PartSource] = []
        # True when the next delimiter must start with CRLF
        self._needs_crlf = False
        self._cursor: Optional[_ReadCursor] = None
        self._count = 0
        self._count_lock = threading.Lock()

        self._apply_boundary(boundary if boundary is not None else uuid.uuid4().hex)
        if preamble:
            self.add_reader(preamble)
            self._needs_crlf = True

    # ---- metadata ----

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        """Value for the Content-Type header, including the boundary."""
        return self._content_type

    @property
    def length(self) -> Optional[int]:
        """Total number of bytes in the body, or None if any source has an unknown length."""
        lengths = [source.length for source in self._sources]
        if None in lengths:
            return None
        return sum(lengths) + self._trailer.length

    @property
    def done(self) -> bool:
        """True once the closing boundary has been read out.

        It is set by the read that returns b"" after the closing boundary, not
        by the read that returns the boundary itself.
        """
        return self._cursor is not None and self._cursor.done

    def count(self) -> int:
        """Number of bytes handed out by :meth:`read` so far. Safe to call from any thread."""
        with self._count_lock:
            return self._count

    def set_boundary(self, token: str) -> None:
        """Replace the generated boundary.

        Parts already added are framed with the new boundary, since their
        headers are only rendered once the stream is read.

        Args:
            token (str): The new boundary.

        Raises:
            AlreadyConsumingError: If the stream is already being read.
            InvalidBoundaryError: If the token is not a legal boundary.
        """
        if self._cursor is not None:
            raise AlreadyConsumingError("The boundary cannot change once the stream is being read")
        self._apply_boundary(token)

    def _apply_boundary(self, token: str) -> None:
        validate_boundary(token)
        if any(char in TSPECIALS for char in token):
            self._content_type = f'multipart/form-data; boundary="{token}"'
        else:
            self._content_type = f"multipart/form-data; boundary={token}"
        self._boundary = token
        self._trailer = LiteralSource(f"{CRLF}--{token}--{CRLF}")
        for source in self._sources:
            if isinstance(source, PartHeader):
                source.boundary = token

    # ---- building the source list ----

    def _check_mutable(self) -> None:
        if self._cursor is not None:
            raise AlreadyConsumingError("Cannot add parts once the stream is being read")

    def add_reader(self, source: Union[PartSource, BinaryIO, str, bytes], length: Optional[int] = None) -> PartSource:
        """Append a raw source in front of the closing boundary.

        Text and bytes are kept in memory and measured. Anything else must have
        a ``read`` method; its ``length`` is taken on trust and leaving it out
        makes the total length of the body unknown.

        Args:
            source: The data to append.
            length (int, optional): Number of bytes ``source`` will produce.

        Returns:
            PartSource: The appended source.

        Raises:
            AlreadyConsumingError: If the stream is already being read.
        """
        self._check_mutable()
        part = _as_source(source, length)
        if part.length is None and self.length is not None:
            log.debug(f"No length declared for {part!r}, total length is now unknown")
        self._sources.append(part)
        return part

    def add_form_reader(
        self,
        source: Union[BinaryIO, str, bytes],
        name: str,
        filename: Optional[str] = None,
        length: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> PartSource:
        """Append a form part: its header followed by ``source``.

        ``name`` and ``filename`` are written as given. Quotes, CR or LF inside
        them will break the framing, so callers must pass safe names.

        Args:
            source: The part payload.
            name (str): Form field name.
            filename (str, optional): File name. Leave out for a plain field.
            length (int, optional): Number of bytes ``source`` will produce.
            content_type (str, optional): Content-Type header for the part.

        Returns:
            PartSource: The appended payload source.
        """
        self._check_mutable()
        part = _as_source(source, length)
        self.add_reader(PartHeader(self._boundary, name, filename, content_type, leading_crlf=self._needs_crlf))
        self._needs_crlf = True
        return self.add_reader(part)

    def write_fields(self, fields: Mapping[str, Union[str, bytes]]) -> None:
        """Append one plain form field per entry of ``fields``, in mapping order."""
        for name, value in fields.items():
            if not isinstance(value, (str, bytes)):
                value = str(value)
            self.add_form_reader(value, name)

    def add_file(self, path: str, name: str = "file", content_type: Optional[str] = None) -> PartSource:
        """Open ``path`` and append it as a file part.

        The file name sent is the base name of ``path`` and the part length is
        the file size when this is called. The reader owns the open file and
        closes it once it has been read to the end, or on :meth:`close`.

        Args:
            path (str): File to upload.
            name (str, optional): Form field name. Defaults to "file".
            content_type (str, optional): Content-Type header for the part.

        Returns:
            PartSource: The appended file source.

        Raises:
            AlreadyConsumingError: If the stream is already being read.
            FileOpenError: If the file cannot be opened.
            FileStatError: If the file size cannot be read.
        """
        self._check_mutable()
        try:
            stream = open(path, "rb")  # pylint: disable=consider-using-with
        except OSError as exc:
            raise FileOpenError(path, f"Could not open file for upload {path}: {exc}") from exc
        try:
            size = os.fstat(stream.fileno()).st_size
        except OSError as exc:
            stream.close()
            raise FileStatError(path, f"Could not stat file for upload {path}: {exc}") from exc

        log.debug(f"Adding file {path} ({size} bytes) as form part '{name}'")
        source = ExternalSource(stream, size, owned=True)
        return self.add_form_reader(source, name, os.path.basename(path), content_type=content_type)

    def add_file_object(
        self,
        fileobj: BinaryIO,
        name: str = "file",
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> PartSource:
        """Append an already open binary file as a file part.

        The part length is the number of bytes between the current position
        and the end of the file. The caller keeps ownership and must close it.

        Raises:
            AlreadyConsumingError: If the stream is already being read.
            FileStatError: If the file size cannot be read.
        """
        self._check_mutable()
        file_name = getattr(fileobj, "name", "")
        if filename is None:
            filename = os.path.basename(file_name) if isinstance(file_name, str) else ""
        try:
            size = os.fstat(fileobj.fileno()).st_size - fileobj.tell()
        except OSError as exc:
            raise FileStatError(str(file_name), f"Could not stat file for upload {file_name}: {exc}") from exc
        return self.add_form_reader(ExternalSource(fileobj, max(size, 0)), name, filename, content_type=content_type)

    # ---- reading ----

    def _get_cursor(self) -> _ReadCursor:
        if self._cursor is None:
            self._cursor = _ReadCursor(self._sources + [self._trailer])
            log.debug(f"Multipart stream started: {len(self._sources)} sources, length {self.length}")
        return self._cursor

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read up to ``size`` bytes. Returns b"" once the closing boundary has been sent.

        A negative or None ``size`` reads everything that is left.
        """
        cursor = self._get_cursor()
        if size is None or size < 0:
            return b"".join(iter(lambda: self.read(self.chunk_size), b""))
        if size == 0:
            return b""
        data = cursor.read(size)
        with self._count_lock:
            self._count += len(data)
        return data

    def readinto(self, buffer) -> int:
        """Read into a writable buffer and return the number of bytes written. 0 means done."""
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[:len(data)] = data
        return len(data)

    def readable(self) -> bool:
        return True

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(self.chunk_size)
            if not chunk:
                return
            yield chunk

    # ---- request attachment and cleanup ----

    def attach_to_request(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        """Use this reader as the body of a prepared request.

        Sets Content-Type and, when the total length is known, Content-Length.
        Otherwise the request is switched to chunked transfer encoding. No more
        parts can be added afterwards.

        Args:
            request (requests.PreparedRequest): The request to send the body with.

        Returns:
            requests.PreparedRequest: The same request.
        """
        self._get_cursor()
        request.body = self
        request.headers["Content-Type"] = self.content_type

        length = self.length
        if length is None:
            request.headers.pop("Content-Length", None)
            request.headers["Transfer-Encoding"] = "chunked"
        else:
            request.headers.pop("Transfer-Encoding", None)
            request.headers["Content-Length"] = str(length)
        log.debug(f"Attached multipart body to {request.method} {request.url} (length {length})")
        return request

    def close(self) -> None:
        """Close the files this reader opened itself. Caller supplied streams are left open."""
        for source in self._sources:
            source.close()

    def __enter__(self) -> 'MultipartReader':
        return self

    def __exit__(self, _type, _value, _traceback):
        self.close()
