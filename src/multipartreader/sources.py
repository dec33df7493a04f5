"""Byte producers that make up a multipart stream."""

from __future__ import annotations

import io
from typing import BinaryIO, Optional, Union


class PartSource:
    """One readable piece of a multipart body.

    ``length`` is the number of bytes the source will produce, or None when the
    caller did not declare it.
    """

    length: Optional[int] = None

    def read(self, size: int = -1) -> bytes:
        raise NotImplementedError

    def close(self) -> None:
        """Release anything this source owns. Most sources own nothing."""


class LiteralSource(PartSource):
    """In-memory text such as a part header or the closing boundary."""

    def __init__(self, text: Union[str, bytes], encoding: str = "utf-8") -> None:
        self.data = text.encode(encoding) if isinstance(text, str) else bytes(text)
        self.length = len(self.data)
        self._buffer = io.BytesIO(self.data)

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    def __repr__(self) -> str:
        return f"LiteralSource({self.data!r})"


class PartHeader(PartSource):
    """The delimiter and headers that open a form part.

    The text is rendered from ``boundary`` when first read, so the boundary
    can still be replaced after the part has been added.
    """

    def __init__(
        self,
        boundary: str,
        name: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        leading_crlf: bool = False,
    ) -> None:
        self.boundary = boundary
        self.name = name
        self.filename = filename
        self.content_type = content_type
        self.leading_crlf = leading_crlf
        self._buffer: Optional[io.BytesIO] = None

    def render(self) -> bytes:
        disposition = f'form-data; name="{self.name}"'
        if self.filename is not None:
            disposition += f'; filename="{self.filename}"'
        header = f"--{self.boundary}\r\nContent-Disposition: {disposition}\r\n"
        if self.content_type:
            header += f"Content-Type: {self.content_type}\r\n"
        header += "\r\n"
        if self.leading_crlf:
            # The CRLF before a delimiter belongs to the delimiter, not the previous part
            header = "\r\n" + header
        return header.encode("utf-8")

    @property
    def length(self) -> int:
        return len(self.render())

    def read(self, size: int = -1) -> bytes:
        if self._buffer is None:
            self._buffer = io.BytesIO(self.render())
        return self._buffer.read(size)

    def __repr__(self) -> str:
        return f"PartHeader(name={self.name!r}, filename={self.filename!r})"


class ExternalSource(PartSource):
    """A caller supplied stream, for example an open file.

    The stream is only closed by :meth:`close` when ``owned`` is True, which is
    the case for files the reader opened itself from a path.
    """

    def __init__(self, stream: BinaryIO, length: Optional[int] = None, owned: bool = False) -> None:
        if not hasattr(stream, "read"):
            raise TypeError(f"Multipart sources need a read() method, got {type(stream).__name__}")
        if length is not None and length < 0:
            raise ValueError("The declared length of a multipart source must not be negative")
        self.stream = stream
        self.length = length
        self.owned = owned
        # Encoded bytes beyond what the last read asked for
        self._pending = b""

    def read(self, size: int = -1) -> bytes:
        if self._pending:
            data, self._pending = self._pending, b""
        else:
            data = self.stream.read(size)
            if isinstance(data, str):
                # Text mode files hand back str, size counts characters not bytes
                data = data.encode("utf-8")
        if data and size is not None and 0 <= size < len(data):
            data, self._pending = data[:size], data[size:]
        return data or b""

    def close(self) -> None:
        if self.owned and not self.stream.closed:
            self.stream.close()

    def __repr__(self) -> str:
        name = getattr(self.stream, "name", type(self.stream).__name__)
        return f"ExternalSource({name!r}, length={self.length})"
