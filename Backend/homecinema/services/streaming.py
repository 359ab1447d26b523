"""
Range-aware file streaming.

A request is checked (access policy, path confinement, file type) before any
byte is read. The file is then opened and its first chunk read while the
response can still become a 500; after the headers are out, an I/O error
aborts the connection instead of ending the body early.
"""
import logging
import os
import re
import stat
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, BinaryIO, Optional
from urllib.parse import quote

import anyio
from starlette.requests import Request
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from homecinema.core.errors import NotAFile, NotFound, RangeNotSatisfiable, StreamFailure
from homecinema.models.file import FileInfo
from homecinema.services.access import AccessPolicy
from homecinema.services.library import created_time, format_size
from homecinema.services.paths import PathResolver
from homecinema.services.tags import WATCHED_TAG, TagStore

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".mov": "video/quicktime",
    ".wmv": "video/x-ms-wmv",
    ".flv": "video/x-flv",
    ".webm": "video/webm",
    ".m4v": "video/x-m4v",
}
DEFAULT_MIME_TYPE = "video/mp4"

# Only a single "bytes=start-end" window is understood
RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$", re.IGNORECASE)


def guess_media_type(path: str) -> str:
    return MIME_TYPES.get(os.path.splitext(path)[1].lower(), DEFAULT_MIME_TYPE)


def parse_range(range_header: Optional[str], file_size: int) -> Optional[tuple[int, int]]:
    """
    Parse a Range header into an inclusive (start, end) window.

    Returns None when there is no header or it cannot be parsed (multiple
    ranges, suffix ranges, other units): such requests get the full body.

    Raises:
        RangeNotSatisfiable: the window does not fit inside the file.
    """
    if not range_header:
        return None
    match = RANGE_RE.match(range_header.strip())
    if match is None:
        return None

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else file_size - 1
    if start >= file_size or end >= file_size or start > end:
        raise RangeNotSatisfiable(file_size)
    return start, end


class FileWindow:
    """
    Lazily reads bytes [start, end] of a file.

    open() must be awaited before iteration; it reads the first chunk so that
    failures surface while a 500 can still be sent. close() is idempotent and
    safe to call from any state.
    """

    def __init__(self, path: Path, start: int, end: int, chunk_size: int = 1024 * 1024):
        self.path = path
        self.start = start
        self.end = end
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self._remaining = end - start + 1
        self._handle: Optional[BinaryIO] = None
        self._first = b""

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def closed(self) -> bool:
        return self._handle is None

    async def open(self) -> None:
        try:
            self._handle = await anyio.to_thread.run_sync(open, self.path, "rb")
            await anyio.to_thread.run_sync(self._handle.seek, self.start)
            if self._remaining > 0:
                self._first = await self._read()
        except OSError as e:
            logger.error("Cannot open stream for %s: %s", self.path.name, e)
            self.close()
            raise StreamFailure()

    async def _read(self) -> bytes:
        size = min(self.chunk_size, self._remaining)
        data = await anyio.to_thread.run_sync(self._handle.read, size)
        if not data:
            raise OSError(f"unexpected end of file, {self._remaining} bytes missing")
        self._remaining -= len(data)
        return data

    async def iter_bytes(self, request: Optional[Request] = None) -> AsyncIterator[bytes]:
        try:
            if self._first:
                chunk, self._first = self._first, b""
                self.bytes_sent += len(chunk)
                yield chunk
            while self._remaining > 0:
                if request is not None and await request.is_disconnected():
                    logger.info("Client disconnected from %s after %d bytes", self.path.name, self.bytes_sent)
                    return
                chunk = await self._read()
                self.bytes_sent += len(chunk)
                yield chunk
        except OSError as e:
            # Headers are gone already: abort the connection rather than end the body short
            logger.error("File stream error on %s after %d bytes: %s", self.path.name, self.bytes_sent, e)
            raise
        finally:
            self.close()

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()


class FileWindowResponse(StreamingResponse):
    """
    StreamingResponse that always releases its FileWindow, including when the
    client goes away before or during the body.
    """

    def __init__(self, window: FileWindow, request: Optional[Request] = None, **kwargs):
        super().__init__(window.iter_bytes(request), **kwargs)
        self.window = window

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.window.close()


class RangeStreamer:
    """
    Serves media files: ranged streams, downloads and file info.
    """

    def __init__(self, resolver: PathResolver, policy: AccessPolicy, tag_store: TagStore,
                 chunk_size: int = 1024 * 1024):
        self.resolver = resolver
        self.policy = policy
        self.tag_store = tag_store
        self.chunk_size = chunk_size

    def locate(self, identity: str, user_path: str,
               folder_key: Optional[str] = None) -> tuple[str, Path, os.stat_result]:
        """
        Validate a file request and return (relative path, absolute path, stat).
        Order matters: the access rules are applied before the filesystem is touched.
        """
        relative = self.resolver.sanitize(user_path)
        self.policy.check(identity, relative, folder_key)
        full_path = self.resolver.resolve(relative)
        try:
            st = full_path.stat()
        except FileNotFoundError:
            raise NotFound("File not found")
        except OSError as e:
            logger.error("Cannot stat %s: %s", relative, e)
            raise NotFound("File not found")
        if not stat.S_ISREG(st.st_mode):
            raise NotAFile()
        return relative, full_path, st

    async def stream(self, identity: str, user_path: str, range_header: Optional[str],
                     request: Optional[Request] = None,
                     folder_key: Optional[str] = None) -> StreamingResponse:
        relative, full_path, st = self.locate(identity, user_path, folder_key)
        file_size = st.st_size
        content_type = guess_media_type(relative)

        headers = {
            "Accept-Ranges": "bytes",
            "Cache-Control": "public, max-age=0",
        }
        window_range = parse_range(range_header, file_size)
        if window_range is None:
            start, end = 0, file_size - 1
            status_code = 200
            logger.info("User %s streaming: %s (%d bytes, %s)", identity, relative, file_size, content_type)
        else:
            start, end = window_range
            status_code = 206
            headers["Content-Range"] = f"bytes {start}-{end}/{file_size}"
            logger.info("User %s streaming: %s bytes %d-%d/%d", identity, relative, start, end, file_size)

        window = FileWindow(full_path, start, end, self.chunk_size)
        await window.open()
        headers["Content-Length"] = str(window.length)
        return FileWindowResponse(window, request, status_code=status_code,
                                  headers=headers, media_type=content_type)

    async def download(self, identity: str, user_path: str, request: Optional[Request] = None,
                       folder_key: Optional[str] = None) -> StreamingResponse:
        relative, full_path, st = self.locate(identity, user_path, folder_key)
        logger.info("User %s downloading: %s", identity, relative)

        window = FileWindow(full_path, 0, st.st_size - 1, self.chunk_size)
        await window.open()
        headers = {
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(PurePosixPath(relative).name, safe='')}",
            "Content-Length": str(st.st_size),
            "Cache-Control": "no-cache",
        }
        return FileWindowResponse(window, request, headers=headers,
                                  media_type="application/octet-stream")

    def info(self, identity: str, user_path: str, folder_key: Optional[str] = None) -> FileInfo:
        relative, full_path, st = self.locate(identity, user_path, folder_key)
        tags = self.tag_store.get(relative)
        return FileInfo(
            name=PurePosixPath(relative).name,
            path=relative,
            size=st.st_size,
            size_formatted=format_size(st.st_size),
            created=created_time(st),
            modified=datetime.fromtimestamp(st.st_mtime),
            extension=PurePosixPath(relative).suffix.lower(),
            tags=tags,
            watched=WATCHED_TAG in tags,
        )
