# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.api",
#   "purpose": "Public entry points for opening http, https and ftp URIs",
#   "sections": [
#     {
#       "id": "open-uri",
#       "name": "open_uri",
#       "anchor": "function-open-uri",
#       "kind": "function"
#     },
#     {
#       "id": "fetch",
#       "name": "fetch",
#       "anchor": "function-fetch",
#       "kind": "function"
#     },
#     {
#       "id": "read-uri",
#       "name": "read_uri",
#       "anchor": "function-read-uri",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""High-level helpers for opening remote resources.

Every call validates its options, parses the location and dispatches to the
HTTP or FTP client. All validation failures surface as
:class:`ConfigurationError` before any socket is opened; the returned
:class:`ResourceHandle` holds no network resources.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from .handle import ResourceHandle
from .network.ftp_client import open_ftp
from .network.http_client import open_http
from .settings import load_options
from .targets import Target, parse_target

__all__ = ["open_uri", "fetch", "read_uri"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def open_uri(
    uri: Union[str, Target],
    *,
    headers: Optional[Mapping[str, str]] = None,
    **options: Any,
) -> ResourceHandle:
    """Open ``uri`` and return a rewound, buffered :class:`ResourceHandle`.

    Args:
        uri: Absolute ``http``, ``https`` or ``ftp`` URI.
        headers: Extra request headers; they replace same-named defaults.
        **options: Keys of :class:`OpenOptions` (``proxy``, ``redirect``,
            ``read_timeout``, ``ssl_ca_cert`` ...). Unknown keys are rejected.

    Returns:
        Handle positioned at offset 0 with ``status``, ``base_uri`` and
        header metadata attached. Close it (or use it as a context manager)
        to release the body buffer.

    Raises:
        ConfigurationError: Invalid options or URI.
        HTTPError: Terminal non-2xx HTTP response.
        RedirectError: Redirect loop, limit or forbidden target.
        FTPError: FTP control channel refusal.
        FetchTimeoutError: Connect or read timeout.
        TLSError: Certificate or handshake failure.

    Example:
        >>> with open_uri("https://example.org/data.csv", read_timeout=10) as handle:
        ...     handle.status, handle.content_type
        (('200', 'OK'), 'text/csv')
    """

    if headers is not None:
        options["headers"] = dict(headers)
    settings = load_options(options)
    target = parse_target(uri)
    logger.debug("Opening URI", extra={"url": target.url, "scheme": target.scheme})
    if target.scheme == "ftp":
        return open_ftp(target, settings)
    return open_http(target, settings)


def fetch(
    uri: Union[str, Target],
    func: Callable[[ResourceHandle], T],
    *,
    headers: Optional[Mapping[str, str]] = None,
    **options: Any,
) -> T:
    """Open ``uri``, pass the handle to ``func`` and close it afterwards."""

    with open_uri(uri, headers=headers, **options) as handle:
        return func(handle)


def read_uri(
    uri: Union[str, Target],
    *,
    headers: Optional[Mapping[str, str]] = None,
    **options: Any,
) -> bytes:
    """Return the whole body of ``uri``."""

    return fetch(uri, lambda handle: handle.read(), headers=headers, **options)
