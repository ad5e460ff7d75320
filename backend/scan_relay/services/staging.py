"""Temporary staging of uploaded files: one private temp dir per request, always removed after use.

The multipart body is parsed straight off the request stream, so an oversized
upload is rejected as soon as the limit is crossed instead of after the whole
body has been buffered.
"""
from __future__ import annotations

import logging
import re
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, AsyncIterable, AsyncIterator

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "default_email.eml"
# Room for part headers, boundaries and small non-file fields on top of the file limit.
FORM_OVERHEAD_BYTES = 64 * 1024


class StagingError(Exception):
    """Base for client input problems detected while staging."""


class NoFileProvided(StagingError):
    pass


class TooManyFiles(StagingError):
    pass


class MalformedUpload(StagingError):
    pass


class PayloadTooLarge(StagingError):
    def __init__(self, limit_bytes: int):
        super().__init__(f"Upload exceeds {limit_bytes} bytes")
        self.limit_bytes = limit_bytes


@dataclass(frozen=True)
class UploadedFile:
    original_filename: str
    storage_path: Path
    size_bytes: int


@dataclass
class _FilePart:
    filename: str
    path: Path
    handle: IO[bytes]
    size: int = 0


def max_request_bytes(max_bytes: int) -> int:
    """Largest multipart body that can still carry a file of `max_bytes`."""
    return max_bytes + FORM_OVERHEAD_BYTES


def sanitize_storage_filename(filename: str | None) -> str:
    """Safe on-disk name: no path separators, no control chars, bounded length."""
    if not filename or not filename.strip():
        return ""
    base = filename.strip().split("/")[-1].split("\\")[-1]
    safe = re.sub(r"[^\w\-.]", "_", base)
    if safe in (".", ".."):
        return ""
    return safe[:200]


def _boundary(content_type: str) -> bytes:
    media_type, params = parse_options_header(content_type)
    if media_type.lower() != b"multipart/form-data":
        raise NoFileProvided(f"Not a multipart form: {content_type!r}")
    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedUpload("Missing boundary in multipart.")
    return boundary


class _FormStager:
    """Feeds body chunks to a MultipartParser and writes the `field_name` file part to `request_dir`.

    Parser callbacks only queue events; `feed` applies them after each chunk so
    errors raised while handling a part surface from `feed` itself.
    """

    def __init__(self, boundary: bytes, field_name: str, max_bytes: int, request_dir: Path):
        self.field_name = field_name
        self.max_bytes = max_bytes
        self.request_dir = request_dir
        self.body_bytes = 0
        self.kept: list[_FilePart] = []
        self._events: list[tuple[str, bytes]] = []
        self._headers: dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""
        self._part: _FilePart | None = None
        self._part_count = 0

        def event(kind):
            return lambda: self._events.append((kind, b""))

        def data(kind):
            return lambda buf, start, end: self._events.append((kind, buf[start:end]))

        self._parser = MultipartParser(
            boundary,
            {
                "on_part_begin": event("part_begin"),
                "on_header_field": data("header_field"),
                "on_header_value": data("header_value"),
                "on_header_end": event("header_end"),
                "on_headers_finished": event("headers_finished"),
                "on_part_data": data("part_data"),
                "on_part_end": event("part_end"),
            },
        )

    def feed(self, chunk: bytes) -> None:
        self.body_bytes += len(chunk)
        if self.body_bytes > max_request_bytes(self.max_bytes):
            raise PayloadTooLarge(self.max_bytes)
        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            raise MalformedUpload(str(e)) from e
        self._apply()

    def finish(self) -> None:
        try:
            self._parser.finalize()
        except MultipartParseError as e:
            raise MalformedUpload(str(e)) from e
        self._apply()
        if self._part is not None:
            raise MalformedUpload("Multipart body ended inside a part.")

    def close(self) -> None:
        for part in [self._part, *self.kept]:
            if part is not None and not part.handle.closed:
                part.handle.close()

    def _apply(self) -> None:
        events, self._events = self._events, []
        for kind, data in events:
            if kind == "part_begin":
                self._headers = {}
                self._header_field = b""
                self._header_value = b""
            elif kind == "header_field":
                self._header_field += data
            elif kind == "header_value":
                self._header_value += data
            elif kind == "header_end":
                self._headers[self._header_field.lower()] = self._header_value
                self._header_field = b""
                self._header_value = b""
            elif kind == "headers_finished":
                self._start_part()
            elif kind == "part_data" and self._part is not None:
                self._part.size += len(data)
                if self._part.size > self.max_bytes:
                    logger.warning("Upload %s exceeded %d bytes, discarding", self._part.filename, self.max_bytes)
                    raise PayloadTooLarge(self.max_bytes)
                self._part.handle.write(data)
            elif kind == "part_end" and self._part is not None:
                self._end_part()

    def _start_part(self) -> None:
        disposition = self._headers.get(b"content-disposition")
        if disposition is None:
            raise MalformedUpload("Part without Content-Disposition header.")
        _, options = parse_options_header(disposition)
        name = options.get(b"name", b"").decode("utf-8", "replace")
        filename = options.get(b"filename")
        if name != self.field_name or filename is None:
            return
        self._part_count += 1
        path = self.request_dir / f"part-{self._part_count}"
        self._part = _FilePart(filename=filename.decode("utf-8", "replace"), path=path, handle=path.open("wb"))

    def _end_part(self) -> None:
        part, self._part = self._part, None
        part.handle.close()
        # Browsers send an empty, unnamed part when no file was chosen.
        if not part.filename and part.size == 0:
            part.path.unlink()
            return
        self.kept.append(part)
        if len(self.kept) > 1:
            raise TooManyFiles(f"Expected one file part named {self.field_name!r}")


async def stage(
    body: AsyncIterable[bytes],
    content_type: str,
    field_name: str,
    max_bytes: int,
    tmp_dir: str | None = None,
) -> UploadedFile:
    """Parse a multipart `body` and write its single file part `field_name` to a fresh temp dir.

    Raises NoFileProvided, TooManyFiles, MalformedUpload or PayloadTooLarge; nothing is
    left on disk when it raises. Reading stops at the first chunk past the limit.
    """
    boundary = _boundary(content_type)
    request_dir = Path(tempfile.mkdtemp(prefix="scan-relay-", dir=tmp_dir))
    stager = _FormStager(boundary, field_name, max_bytes, request_dir)
    try:
        async for chunk in body:
            if chunk:
                stager.feed(chunk)
        stager.finish()
        if not stager.kept:
            raise NoFileProvided(f"No file part named {field_name!r}")
        part = stager.kept[0]
        original_filename = part.filename or DEFAULT_FILENAME
        storage_path = request_dir / (sanitize_storage_filename(original_filename) or "upload.bin")
        part.path.rename(storage_path)
    except BaseException:
        stager.close()
        shutil.rmtree(request_dir, ignore_errors=True)
        raise

    logger.debug("Staged %s (%d bytes) at %s", original_filename, part.size, storage_path)
    return UploadedFile(original_filename=original_filename, storage_path=storage_path, size_bytes=part.size)


def release(uploaded: UploadedFile) -> None:
    """Delete the staged file and its directory. Failures are logged, never raised."""
    try:
        uploaded.storage_path.unlink()
        uploaded.storage_path.parent.rmdir()
        logger.info("Temporary file deleted: %s", uploaded.original_filename)
    except OSError as e:
        logger.error("Error deleting temporary file %s: %s", uploaded.original_filename, e)
        shutil.rmtree(uploaded.storage_path.parent, ignore_errors=True)


@asynccontextmanager
async def staged_upload(
    body: AsyncIterable[bytes],
    content_type: str,
    field_name: str,
    max_bytes: int,
    tmp_dir: str | None = None,
) -> AsyncIterator[UploadedFile]:
    """Stage on entry, release on every exit path (including cancellation)."""
    uploaded = await stage(body, content_type, field_name, max_bytes, tmp_dir)
    try:
        yield uploaded
    finally:
        release(uploaded)
