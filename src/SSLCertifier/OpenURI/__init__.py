"""Open ``http``, ``https`` and ``ftp`` URIs as buffered, file-like handles.

The facade mirrors the familiar open-uri workflow: call :func:`open_uri`
with an absolute URI and keyword options, receive a seekable
:class:`ResourceHandle` with ``status``, ``base_uri``, ``content_type``,
``charset``, ``content_encoding`` and ``last_modified`` attached. Proxies,
TLS trust (certifi by default), redirects, basic authentication, gzip or
deflate bodies and FTP passive/active transfers are handled underneath.

Example:
    >>> from SSLCertifier.OpenURI import open_uri
    >>> with open_uri("https://example.org/", read_timeout=10) as handle:
    ...     body = handle.read()
"""

from __future__ import annotations

from SSLCertifier.version import __version__

from .api import fetch, open_uri, read_uri
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ContentDecodingError,
    FetchConnectionError,
    FetchTimeoutError,
    FTPError,
    HTTPError,
    OpenTimeoutError,
    OpenURIError,
    ProxyError,
    ReadTimeoutError,
    RedirectError,
    RedirectLimitError,
    RedirectLoopError,
    RedirectNotFollowedError,
    RedirectSchemeError,
    TLSError,
)
from .handle import ResourceHandle
from .logging_utils import JSONFormatter, setup_logging
from .settings import OpenOptions, load_options
from .targets import Target, parse_target

__all__ = [
    "__version__",
    "open_uri",
    "fetch",
    "read_uri",
    "ResourceHandle",
    "OpenOptions",
    "load_options",
    "Target",
    "parse_target",
    "JSONFormatter",
    "setup_logging",
    "OpenURIError",
    "ConfigurationError",
    "HTTPError",
    "AuthenticationError",
    "RedirectNotFollowedError",
    "ProxyError",
    "RedirectError",
    "RedirectLoopError",
    "RedirectLimitError",
    "RedirectSchemeError",
    "FTPError",
    "FetchTimeoutError",
    "OpenTimeoutError",
    "ReadTimeoutError",
    "TLSError",
    "FetchConnectionError",
    "ContentDecodingError",
]
