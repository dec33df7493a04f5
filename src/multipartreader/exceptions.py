"""Errors raised while assembling or reading a multipart stream."""

from __future__ import annotations


class MultipartReaderException(Exception):
    """Base class for errors raised by MultipartReader.

    Attributes:
        message -- explanation of the error
    """

    def __init__(self, message="MultipartReader encountered an error"):
        self.message = message
        super().__init__(self.message)


class InvalidBoundaryError(MultipartReaderException):
    """The boundary token is not a legal MIME boundary or can no longer be changed."""


class AlreadyConsumingError(InvalidBoundaryError):
    """The stream has started to be read so the source list is frozen."""


class FileOpenError(MultipartReaderException):
    """A file could not be opened. The OSError is chained as ``__cause__``."""

    def __init__(self, path: str, message: str = None):
        self.path = path
        super().__init__(message or f"Could not open file for upload: {path}")


class FileStatError(MultipartReaderException):
    """A file's size could not be determined. The OSError is chained as ``__cause__``."""

    def __init__(self, path: str, message: str = None):
        self.path = path
        super().__init__(message or f"Could not stat file for upload: {path}")


class SourceReadError(MultipartReaderException):
    """Reading one of the appended sources failed part way through the stream.

    Attributes:
        index -- position of the failing source in the source sequence
    """

    def __init__(self, index: int, message: str = None):
        self.index = index
        super().__init__(message or f"Reading multipart source {index} failed")
