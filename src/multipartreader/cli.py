"""Upload files and form fields to a URL as one streamed multipart/form-data POST."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import traceback
from typing import Dict, List

import requests
from dotenv import load_dotenv
from termcolor import colored

from multipartreader.file_utils import collect_upload_files
from multipartreader.logs import setup_logging
from multipartreader.reader import DEFAULT_CHUNK_SIZE
from multipartreader.upload import DEFAULT_UPLOAD_TIMEOUT, stream_post_files


def parse_fields(raw_fields: List[str]) -> Dict[str, str]:
    """Turn ``NAME=VALUE`` strings into a dict. Later duplicates win.

    Raises:
        ValueError: If an entry has no ``=`` or an empty name.
    """
    fields: Dict[str, str] = {}
    for raw in raw_fields or []:
        name, sep, value = raw.partition("=")
        if not sep or not name:
            raise ValueError(f"Fields must look like NAME=VALUE, got: {raw!r}")
        fields[name] = value
    return fields


def upload(
    url: str,
    paths: List[str],
    fields: Dict[str, str] = None,
    token: str = None,
    timeout: float = DEFAULT_UPLOAD_TIMEOUT,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    show_progress: bool = True,
) -> requests.Response:
    """ Collect ``paths`` and POST them with ``fields`` to ``url``.

    Raises:
        RuntimeError: If there is nothing to upload or the server rejects the upload.
    """
    log = logging.getLogger("multipartreader.cli")

    file_paths = collect_upload_files(paths)
    if not file_paths and not fields:
        raise RuntimeError("Nothing to upload: no files found and no fields given")

    headers = {"Authorization": f"Bearer {token}"} if token else None
    response = stream_post_files(
        url,
        fields=fields,
        file_paths=file_paths,
        timeout=timeout,
        chunk_size=chunk_size,
        headers=headers,
        show_progress=show_progress,
    )
    try:
        response.raise_for_status()
    except requests.HTTPError as exc:
        log.error(f"Upload rejected: {response.status_code} {response.text[:500]}")
        raise RuntimeError(f"Upload to {url} failed with status {response.status_code}") from exc

    log.info(f"Uploaded {len(file_paths)} file(s) and {len(fields or {})} field(s)")
    return response


def main() -> None:
    """CLI entry point for streaming multipart uploads."""

    load_dotenv()

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("paths", help="Files or directories to upload.", type=str, nargs="*")
    parser.add_argument("--url", help="URL to POST to (falls back to UPLOAD_URL in environment).", type=str)
    parser.add_argument("--field", help="Form field as NAME=VALUE. Can be repeated.", action="append", default=[])
    parser.add_argument("--token", help="Bearer token (falls back to UPLOAD_TOKEN in environment).", type=str)
    parser.add_argument("--timeout", help="Request timeout in seconds (falls back to UPLOAD_TIMEOUT in environment).", type=float)
    parser.add_argument("--chunk-size", help="Bytes per chunk when the length is unknown.", type=int, default=DEFAULT_CHUNK_SIZE)
    parser.add_argument("--log-path", help="Also write the log to this file.", type=str, default=None)
    parser.add_argument("--no-progress", help="Do not draw a progress bar.", action="store_true", default=False)
    parser.add_argument("--verbose", help="Debug logging.", action="store_true", default=False)

    args = parser.parse_args()

    url = args.url if args.url else os.getenv("UPLOAD_URL")
    token = args.token if args.token else os.getenv("UPLOAD_TOKEN")

    if not url:
        print("No URL supplied or found in environment as UPLOAD_URL")
        sys.exit(1)

    log = setup_logging(log_path=args.log_path, log_level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        timeout = args.timeout if args.timeout is not None else float(os.getenv("UPLOAD_TIMEOUT", DEFAULT_UPLOAD_TIMEOUT))
        fields = parse_fields(args.field)
        response = upload(
            url,
            args.paths,
            fields=fields,
            token=token,
            timeout=timeout,
            chunk_size=args.chunk_size,
            show_progress=not args.no_progress,
        )
        print(colored(f"Upload complete: {response.status_code} {response.reason}", "green"))
        sys.exit(0)
    except Exception as exc:
        log.error(exc)
        traceback.print_exc(file=sys.stdout)
        sys.exit(1)


if __name__ == "__main__":
    main()
