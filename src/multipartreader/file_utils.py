"""Find the files to send in an upload."""

from __future__ import annotations

import logging
import os
from typing import Iterable, List

from pint import UnitRegistry

_UNITS = UnitRegistry()

log = logging.getLogger(__name__)


def format_size(size: int) -> str:
    """Human readable size, e.g. ``1.50 MB``."""
    compact_size = (size * _UNITS.byte).to_compact()
    return f"{compact_size:.2f~#P}"


def collect_upload_files(paths: Iterable[str]) -> List[str]:
    """ Expand a list of files and directories into the files to upload.

    Directories are walked recursively and their files returned in sorted
    order. Hidden files inside directories are skipped.

    Args:
        paths (Iterable[str]): Files and/or directories.

    Returns:
        List[str]: Paths of the files to upload.

    Raises:
        FileNotFoundError: If a path does not exist.
    """
    collected: List[str] = []

    for path in paths:
        if os.path.isfile(path):
            collected.append(path)
        elif os.path.isdir(path):
            for root, dirs, files in os.walk(path):
                dirs[:] = sorted(d for d in dirs if not d.startswith("."))
                for filename in sorted(files):
                    if filename.startswith("."):
                        continue
                    collected.append(os.path.join(root, filename))
        else:
            raise FileNotFoundError(f"Upload path does not exist: {path}")

    for file_path in collected:
        log.info(f"Found File: {file_path} {format_size(os.path.getsize(file_path))}")

    return collected
