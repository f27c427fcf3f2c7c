"""Upload sources and binary response destinations."""

from __future__ import annotations

import asyncio
import contextlib
import io
import os
import secrets
from typing import Any, AsyncIterator, BinaryIO, Iterator


def _is_binary_stream(value: Any, method: str) -> bool:
    if isinstance(value, (str, bytes, bytearray, io.TextIOBase)):
        return False
    return callable(getattr(value, method, None))


def is_readable_stream(value: Any) -> bool:
    return _is_binary_stream(value, "read")


def is_writable_stream(value: Any) -> bool:
    return _is_binary_stream(value, "write")


def random_filename() -> str:
    """Filename for in-memory uploads, which carry no name of their own."""
    return secrets.token_hex(8)


def _stream_filename(stream: Any) -> str:
    name = getattr(stream, "name", None)
    if isinstance(name, (str, os.PathLike)):
        return os.path.basename(os.fspath(name))
    return random_filename()


def _caller_part(source: Any) -> tuple[str, BinaryIO | bytes] | None:
    if isinstance(source, (bytes, bytearray)):
        return random_filename(), bytes(source)
    if is_readable_stream(source):
        return _stream_filename(source), source
    return None


@contextlib.contextmanager
def upload_part(source: Any) -> Iterator[tuple[str, BinaryIO | bytes]]:
    """Normalize an upload source into a `(filename, content)` multipart file part.

    Paths are opened here and closed on exit; caller-owned streams are left open.
    Raises `OSError` when a path cannot be opened.
    """
    part = _caller_part(source)
    if part is not None:
        yield part
        return

    path = os.fspath(source)
    with open(path, "rb") as handle:
        yield os.path.basename(path), handle


@contextlib.asynccontextmanager
async def async_upload_part(source: Any) -> AsyncIterator[tuple[str, BinaryIO | bytes]]:
    """`upload_part` with the path open and close moved off the event loop."""
    part = _caller_part(source)
    if part is not None:
        yield part
        return

    path = os.fspath(source)
    handle = await asyncio.to_thread(open, path, "rb")
    try:
        yield os.path.basename(path), handle
    finally:
        await asyncio.to_thread(handle.close)


@contextlib.contextmanager
def destination_writer(destination: Any) -> Iterator[BinaryIO]:
    """Open the File sink destination for writing.

    A path is opened for writing and closed on exit; a caller-owned stream is
    flushed on exit but stays open. Leaving the block without an exception is
    the "finished" signal: every byte has been handed to the OS.
    """
    if is_writable_stream(destination):
        yield destination
        flush = getattr(destination, "flush", None)
        if callable(flush):
            flush()
        return

    with open(os.fspath(destination), "wb") as handle:
        yield handle


class ThreadedWriter:
    """Forwards writes to a blocking file object through worker threads."""

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle

    async def write(self, chunk: bytes) -> None:
        await asyncio.to_thread(self._handle.write, chunk)


@contextlib.asynccontextmanager
async def async_destination_writer(destination: Any) -> AsyncIterator[ThreadedWriter]:
    """Async `destination_writer`; open, write, flush and close never block the loop."""
    owned = not is_writable_stream(destination)
    if owned:
        handle = await asyncio.to_thread(open, os.fspath(destination), "wb")
    else:
        handle = destination

    try:
        yield ThreadedWriter(handle)
        flush = getattr(handle, "flush", None)
        if not owned and callable(flush):
            await asyncio.to_thread(flush)
    finally:
        if owned:
            await asyncio.to_thread(handle.close)
