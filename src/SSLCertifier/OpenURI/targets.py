"""Parse location strings into immutable :class:`Target` records."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union
from urllib.parse import unquote, urlsplit

from .errors import ConfigurationError
from .network.policy import DEFAULT_PORTS

__all__ = ["Target", "parse_target"]

_FTP_TYPECODE = re.compile(r";type=([^;/]*)\Z")
_INVALID_HOST_CHARS = re.compile(r"[\s\x00-\x1f\x7f]")


@dataclass(frozen=True)
class Target:
    """A parsed ``http``, ``https`` or ``ftp`` location.

    Attributes:
        scheme: Lower-cased scheme.
        host: Lower-cased host name or IP literal (IPv6 without brackets).
        port: Explicit port, or the scheme default.
        path: Raw (still percent-encoded) path, ``/`` when empty.
        query: Raw query string without the leading ``?``.
        userinfo: Raw ``user[:password]`` component (ftp only).
        typecode: FTP transfer type from a ``;type=`` suffix.
    """

    scheme: str
    host: str
    port: int
    path: str = "/"
    query: str = ""
    userinfo: Optional[str] = None
    typecode: Optional[str] = None

    @property
    def netloc(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port == DEFAULT_PORTS[self.scheme]:
            return host
        return f"{host}:{self.port}"

    @property
    def authority(self) -> str:
        """``host:port`` as used on a CONNECT request line."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @property
    def request_target(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path

    @property
    def url(self) -> str:
        """Canonical form used for requests, ``base_uri`` and loop detection."""
        url = f"{self.scheme}://{self.netloc}{self.request_target}"
        if self.typecode:
            url += f";type={self.typecode}"
        return url

    @property
    def origin(self) -> Tuple[str, str, int]:
        return (self.scheme, self.host, self.port)

    @property
    def credentials(self) -> Tuple[Optional[str], Optional[str]]:
        """Percent-decoded ``(user, password)`` from ``userinfo``."""
        if self.userinfo is None:
            return None, None
        user, sep, password = self.userinfo.partition(":")
        return unquote(user), (unquote(password) if sep else None)

    def __str__(self) -> str:
        return self.url


def parse_target(uri: Union[str, Target]) -> Target:
    """Parse ``uri`` into a :class:`Target`.

    Raises:
        ConfigurationError: For relative or hostless URIs, unsupported
            schemes, invalid ports, userinfo on http(s) URIs, or an FTP
            ``;type=`` token other than ``a`` or ``i``.
    """

    if isinstance(uri, Target):
        return uri
    if not isinstance(uri, str):
        uri = str(uri)
    text = uri.strip()
    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid URI {uri!r}: {exc}") from exc

    scheme = parts.scheme.lower()
    if not scheme:
        raise ConfigurationError(f"Relative URI cannot be opened: {uri!r}")
    if scheme not in DEFAULT_PORTS:
        raise ConfigurationError(f"Unsupported URI scheme {scheme!r}: {uri!r}")
    host = parts.hostname
    if not host:
        raise ConfigurationError(f"URI has no host: {uri!r}")
    if _INVALID_HOST_CHARS.search(host):
        raise ConfigurationError(f"Invalid host in URI: {uri!r}")

    userinfo: Optional[str] = None
    if "@" in parts.netloc:
        userinfo = parts.netloc.rpartition("@")[0]
        if scheme != "ftp":
            raise ConfigurationError(f"userinfo not supported [RFC3986]: {uri!r}")

    path = parts.path or "/"
    typecode: Optional[str] = None
    if scheme == "ftp":
        match = _FTP_TYPECODE.search(path)
        if match:
            typecode = match.group(1)
            if typecode not in ("a", "i"):
                raise ConfigurationError(f"Invalid FTP typecode {typecode!r} in {uri!r}")
            path = path[: match.start()] or "/"

    return Target(
        scheme=scheme,
        host=host,
        port=port if port is not None else DEFAULT_PORTS[scheme],
        path=path,
        query=parts.query,
        userinfo=userinfo,
        typecode=typecode,
    )
