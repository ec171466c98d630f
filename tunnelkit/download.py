"""Multi-connection HTTP download built on range requests."""

from __future__ import annotations

import http.client
import http.cookiejar
import logging
import os
import secrets
import tempfile
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from email.message import Message
from typing import Dict
from urllib.parse import urlsplit

from tunnelkit.copyfile import copy_file

log = logging.getLogger(__name__)

_BLOCK_SIZE = 8192
_MIN_CONNECTIONS = 4


@dataclass
class Request:
    """What to fetch: method, URL and extra request headers."""

    method: str = "GET"
    url: str = ""
    header: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""


@dataclass
class Response:
    """What the server said about the resource."""

    name: str = ""
    size: int = 0
    range: bool = False


class DownloadError(Exception):
    """The server answered in a way the download cannot use."""


def _build_http_request(request: Request, byte_range: str) -> urllib.request.Request:
    http_request = urllib.request.Request(request.url, method=request.method.upper())
    for key, value in request.header.items():
        http_request.add_header(key, value)
    http_request.add_header("Range", byte_range)
    return http_request


def _open(http_request: urllib.request.Request):
    opener = urllib.request.build_opener(
        urllib.request.HTTPCookieProcessor(http.cookiejar.CookieJar())
    )
    return opener.open(http_request)


def _after_last_slash(text: str) -> str:
    _, sep, tail = text.rpartition("/")
    return tail if sep else ""


def _filename_from_disposition(value: str) -> str:
    message = Message()
    message["Content-Disposition"] = value
    return message.get_filename() or ""


def resolve(request: Request) -> Response:
    """Ask for the first byte to learn the name, size and range support."""
    http_request = _build_http_request(request, "bytes=0-0")
    try:
        http_response = _open(http_request)
    except urllib.error.HTTPError as exc:
        exc.close()
        raise DownloadError(f"response status error:{exc.code}") from None
    with http_response:
        status = http_response.status
        headers = http_response.headers
    if status not in (200, 206):
        raise DownloadError(f"response status error:{status}")

    name = ""
    disposition = headers.get("Content-Disposition", "")
    if disposition:
        name = _filename_from_disposition(disposition)
    if not name:
        name = _after_last_slash(urlsplit(request.url).path)
    if not name:
        name = "unknow"

    result = Response(name=name, range=status == 206)
    if result.range:
        content_range = headers.get("Content-Range", "")
        if content_range:
            total = _after_last_slash(content_range)
            if total and total != "*":
                try:
                    result.size = int(total)
                except ValueError:
                    raise DownloadError(f"invalid Content-Range total: {total!r}") from None
    else:
        content_length = headers.get("Content-Length", "")
        if content_length:
            try:
                result.size = int(content_length)
            except ValueError:
                result.size = 0
    return result


def _down_chunk(request: Request, response: Response, path: str, start: int, end: int) -> None:
    log.info("down<%s> %d-%d", response.name, start, end)
    try:
        http_request = _build_http_request(request, f"bytes={start}-{end}")
        with _open(http_request) as http_response, open(path, "r+b") as fh:
            fh.seek(start)
            for block in iter(lambda: http_response.read(_BLOCK_SIZE), b""):
                fh.write(block)
    except (OSError, http.client.HTTPException) as exc:
        log.error("download of %s bytes %d-%d failed: %s", response.name, start, end, exc)


def down(request: Request, to: str) -> None:
    """Download the resource to ``to``, in parallel parts when ranges work."""
    response = resolve(request)
    name = os.path.basename(response.name) or "unknow"
    tmp_path = os.path.join(tempfile.gettempdir(), f"{name}.{secrets.token_urlsafe(15)}")
    with open(tmp_path, "wb") as fh:
        fh.truncate(response.size)

    if response.range:
        workers = max(_MIN_CONNECTIONS, os.cpu_count() or 1)
        chunk = response.size // workers
        spans = [
            (i * chunk, (response.size if i == workers - 1 else (i + 1) * chunk) - 1)
            for i in range(workers)
        ]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(lambda span: _down_chunk(request, response, tmp_path, *span), spans))
    else:
        _down_chunk(request, response, tmp_path, 0, response.size)

    copy_file(tmp_path, to)
    os.remove(tmp_path)