"""Errors raised by ``open_uri`` and its HTTP, FTP and TLS layers.

Every exception derives from :class:`OpenURIError`. Problems with the call
itself (unknown options, bad URIs, unsafe FTP paths) surface as
:class:`ConfigurationError` before a socket is opened. Terminal responses
carry the buffered :class:`~.handle.ResourceHandle` as ``response``; FTP
refusals carry the raw control reply. Timeouts also subclass the builtin
:class:`TimeoutError`. Underlying httpx, ftplib and ssl exceptions stay
chained as ``__cause__``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .handle import ResourceHandle

__all__ = [
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


class OpenURIError(RuntimeError):
    """Base exception for every failure raised by :func:`open_uri`."""


class ConfigurationError(OpenURIError):
    """Raised when options, URIs or headers are invalid; always before network I/O."""


class HTTPError(OpenURIError):
    """Raised for a terminal non-2xx HTTP response.

    ``response`` is the fully buffered :class:`ResourceHandle` of the offending
    response so callers can inspect ``status``, headers and body.
    """

    def __init__(
        self,
        message: str,
        response: Optional["ResourceHandle"] = None,
        *,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.response = response
        if status_code is None and response is not None:
            status_code = response.status_code
        self.status_code = status_code


class AuthenticationError(HTTPError):
    """401 or 407 response.

    ``credentials_offered`` distinguishes "credentials rejected" from
    "credentials never offered".
    """

    def __init__(
        self,
        message: str,
        response: Optional["ResourceHandle"] = None,
        *,
        credentials_offered: bool = False,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, response, status_code=status_code)
        self.credentials_offered = credentials_offered


class RedirectNotFollowedError(HTTPError):
    """3xx response received while redirects are disabled."""

    def __init__(self, message: str, response: "ResourceHandle", *, location: str) -> None:
        super().__init__(message, response)
        self.location = location


class ProxyError(HTTPError):
    """The HTTP proxy refused to open a CONNECT tunnel."""


class RedirectError(OpenURIError):
    """Base exception for redirect handling errors."""

    def __init__(
        self,
        message: str,
        response: Optional["ResourceHandle"] = None,
        *,
        audit_trail: Optional[Sequence[Tuple[str, int]]] = None,
    ) -> None:
        super().__init__(message)
        self.response = response
        self.audit_trail: List[Tuple[str, int]] = list(audit_trail or ())


class RedirectLoopError(RedirectError):
    """Redirect target was already visited during this call."""


class RedirectLimitError(RedirectError):
    """Redirect chain exceeds the maximum allowed hops."""


class RedirectSchemeError(RedirectError):
    """Redirect target uses a scheme that may not be followed."""


class FTPError(OpenURIError):
    """FTP control channel returned an unacceptable reply."""

    def __init__(self, message: str, *, reply: str = "") -> None:
        super().__init__(message)
        self.reply = reply
        self.code = reply[:3] if reply[:3].isdigit() else None


class FetchTimeoutError(OpenURIError, TimeoutError):
    """Connect or read exceeded its timeout budget."""


class OpenTimeoutError(FetchTimeoutError):
    """Connection could not be established within ``open_timeout``."""


class ReadTimeoutError(FetchTimeoutError):
    """A single read exceeded ``read_timeout``."""


class TLSError(OpenURIError):
    """TLS handshake or certificate chain validation failed."""


class FetchConnectionError(OpenURIError):
    """Transport failure other than a timeout (refused, reset, protocol error)."""


class ContentDecodingError(OpenURIError):
    """Response body could not be decoded for its declared content encoding."""
