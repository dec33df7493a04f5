"""Streaming multipart/form-data bodies for large uploads."""

from .exceptions import (
    AlreadyConsumingError,
    FileOpenError,
    FileStatError,
    InvalidBoundaryError,
    MultipartReaderException,
    SourceReadError,
)
from .reader import (
    DEFAULT_CHUNK_SIZE,
    MultipartReader,
    validate_boundary,
)
from .sources import ExternalSource, LiteralSource, PartHeader, PartSource
from .upload import UploadProgress, stream_post_files

__version__ = "1.0.0"

__all__ = [
    "AlreadyConsumingError",
    "DEFAULT_CHUNK_SIZE",
    "ExternalSource",
    "FileOpenError",
    "FileStatError",
    "InvalidBoundaryError",
    "LiteralSource",
    "MultipartReader",
    "MultipartReaderException",
    "PartHeader",
    "PartSource",
    "SourceReadError",
    "UploadProgress",
    "stream_post_files",
    "validate_boundary",
]
