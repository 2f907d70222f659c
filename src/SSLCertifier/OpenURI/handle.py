"""Caller-facing resource handle: a buffered body plus response metadata."""

from __future__ import annotations

import tempfile
from datetime import datetime
from typing import IO, Iterator, List, Optional, Tuple

import httpx

from .io.metadata import (
    charset_of,
    content_type_of,
    parse_content_encoding,
    parse_last_modified,
)
from .network.policy import BUFFER_SPOOL_BYTES

__all__ = ["ResourceHandle"]


class ResourceHandle:
    """Binary, seekable view of a fetched body with its metadata attached.

    The body lives in a :class:`tempfile.SpooledTemporaryFile` that stays in
    memory for small payloads and spills to disk for large ones. Sockets are
    already released by the time a handle reaches the caller; ``close()``
    only releases the buffer.

    Attributes:
        base_uri: Final URI after redirects.
        status: ``(code_string, message)`` from the status line or FTP reply.
        headers: Case-insensitive response headers (empty for direct FTP).
    """

    def __init__(
        self,
        base_uri: str,
        status: Tuple[str, str],
        headers: Optional[httpx.Headers] = None,
    ) -> None:
        self.base_uri = base_uri
        self.status = status
        self.headers = headers if headers is not None else httpx.Headers()
        self._buffer: IO[bytes] = tempfile.SpooledTemporaryFile(
            max_size=BUFFER_SPOOL_BYTES, mode="w+b"
        )
        self.size = 0

    # -- population (library side) -------------------------------------

    def write(self, data: bytes) -> None:
        self._buffer.write(data)
        self.size += len(data)

    def rewind(self) -> "ResourceHandle":
        self._buffer.seek(0)
        return self

    # -- metadata -------------------------------------------------------

    @property
    def status_code(self) -> int:
        return int(self.status[0])

    @property
    def content_type(self) -> str:
        return content_type_of(self.headers.get("content-type"))

    @property
    def charset(self) -> str:
        return charset_of(self.headers.get("content-type"))

    @property
    def content_encoding(self) -> List[str]:
        return parse_content_encoding(self.headers.get("content-encoding"))

    @property
    def last_modified(self) -> Optional[datetime]:
        return parse_last_modified(self.headers.get("last-modified"))

    # -- file protocol --------------------------------------------------

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    def readline(self, size: int = -1) -> bytes:
        return self._buffer.readline(size)

    def readlines(self) -> List[bytes]:
        return self._buffer.readlines()

    def seek(self, offset: int, whence: int = 0) -> int:
        return self._buffer.seek(offset, whence)

    def tell(self) -> int:
        return self._buffer.tell()

    def text(self, errors: str = "replace") -> str:
        """Whole body decoded with :attr:`charset`."""
        position = self._buffer.tell()
        self._buffer.seek(0)
        try:
            data = self._buffer.read()
        finally:
            self._buffer.seek(position)
        try:
            return data.decode(self.charset, errors=errors)
        except LookupError:
            return data.decode("utf-8", errors=errors)

    def __iter__(self) -> Iterator[bytes]:
        return iter(self._buffer)

    @property
    def closed(self) -> bool:
        return self._buffer.closed

    def close(self) -> None:
        self._buffer.close()

    def __enter__(self) -> "ResourceHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} {self.base_uri} status={self.status[0]} "
            f"size={self.size}>"
        )
