"""Incremental content-encoding decoders for response bodies.

Chunked transfer framing is removed by the transport before bytes reach this
module; what arrives here is the raw, still content-encoded body. A
:class:`ContentDecoder` stacks one decoder per ``Content-Encoding`` token and
undoes them in reverse order. When any token is unknown the whole stack
degrades to a passthrough so callers still receive the exact bytes sent,
together with the unmodified token list.
"""

from __future__ import annotations

import logging
import zlib
from typing import Iterable, Iterator, List, Sequence

from ..errors import ContentDecodingError

__all__ = [
    "ContentDecoder",
    "GzipDecoder",
    "DeflateDecoder",
    "IdentityDecoder",
    "SUPPORTED_ENCODINGS",
]

logger = logging.getLogger(__name__)


class IdentityDecoder:
    def decode(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


class GzipDecoder:
    """Decode a gzip stream, including concatenated gzip members."""

    def __init__(self) -> None:
        self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        self._seen_input = False

    def decode(self, data: bytes) -> bytes:
        if data:
            self._seen_input = True
        output: List[bytes] = []
        while data:
            try:
                output.append(self._decompressor.decompress(data))
            except zlib.error as exc:
                raise ContentDecodingError(f"invalid gzip data: {exc}") from exc
            data = self._decompressor.unused_data
            if data:
                self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        return b"".join(output)

    def flush(self) -> bytes:
        try:
            tail = self._decompressor.flush()
        except zlib.error as exc:
            raise ContentDecodingError(f"invalid gzip data: {exc}") from exc
        if self._seen_input and not self._decompressor.eof:
            raise ContentDecodingError("truncated gzip data")
        return tail


class DeflateDecoder:
    """Decode ``deflate`` bodies sent either zlib-wrapped or as raw deflate."""

    def __init__(self) -> None:
        self._first_attempt = True
        self._decompressor = zlib.decompressobj()

    def decode(self, data: bytes) -> bytes:
        if not data:
            return b""
        was_first_attempt = self._first_attempt
        self._first_attempt = False
        try:
            return self._decompressor.decompress(data)
        except zlib.error as exc:
            if was_first_attempt:
                self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
                return self.decode(data)
            raise ContentDecodingError(f"invalid deflate data: {exc}") from exc

    def flush(self) -> bytes:
        try:
            return self._decompressor.flush()
        except zlib.error as exc:
            raise ContentDecodingError(f"invalid deflate data: {exc}") from exc


SUPPORTED_ENCODINGS = {
    "identity": IdentityDecoder,
    "gzip": GzipDecoder,
    "x-gzip": GzipDecoder,
    "deflate": DeflateDecoder,
}


class ContentDecoder:
    """Undo a stack of content codings, or pass bytes through untouched."""

    def __init__(self, encodings: Sequence[str]) -> None:
        self.encodings = [token.lower() for token in encodings]
        unknown = [token for token in self.encodings if token not in SUPPORTED_ENCODINGS]
        if unknown:
            logger.debug(
                "Unrecognized content encoding; passing body through",
                extra={"encodings": self.encodings, "unknown": unknown},
            )
            self._decoders = []
        else:
            self._decoders = [SUPPORTED_ENCODINGS[token]() for token in reversed(self.encodings)]

    @property
    def passthrough(self) -> bool:
        return not self._decoders

    def decode(self, data: bytes) -> bytes:
        for decoder in self._decoders:
            data = decoder.decode(data)
        return data

    def flush(self) -> bytes:
        data = b""
        for decoder in self._decoders:
            if data:
                data = decoder.decode(data)
            data += decoder.flush()
        return data

    def iter_decoded(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        for chunk in chunks:
            decoded = self.decode(chunk)
            if decoded:
                yield decoded
        tail = self.flush()
        if tail:
            yield tail
