# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.network.proxy",
#   "purpose": "Resolve the HTTP proxy for a target from options and environment",
#   "sections": [
#     {
#       "id": "proxyconfig",
#       "name": "ProxyConfig",
#       "anchor": "class-proxyconfig",
#       "kind": "class"
#     },
#     {
#       "id": "resolve-proxy",
#       "name": "resolve_proxy",
#       "anchor": "function-resolve-proxy",
#       "kind": "function"
#     },
#     {
#       "id": "find-environment-proxy",
#       "name": "find_environment_proxy",
#       "anchor": "function-find-environment-proxy",
#       "kind": "function"
#     },
#     {
#       "id": "use-proxy",
#       "name": "use_proxy",
#       "anchor": "function-use-proxy",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Proxy resolution for :func:`open_uri`.

The effective proxy comes from, in order: ``proxy_http_basic_authentication``,
an explicit ``proxy`` URL, or (when ``proxy`` is left at ``True``) the
``<scheme>_proxy`` environment variables. Only ``http://`` proxies are
supported; anything else fails loudly with :class:`ConfigurationError`.

Environment rules:
- In a CGI context (``REQUEST_METHOD`` set) the ``HTTP_PROXY`` variable can
  be injected by a client through the ``Proxy:`` request header, so only a
  case-exact ``http_proxy`` is trusted, falling back to ``CGI_HTTP_PROXY``.
- Loopback targets never use an environment proxy.
- ``no_proxy`` entries exclude hosts, domain suffixes, ports and CIDR ranges.

The environment is read once into a snapshot per call and never mutated.
"""

from __future__ import annotations

import base64
import ipaddress
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union
from urllib.parse import unquote, urlsplit

from ..errors import ConfigurationError
from ..targets import Target

__all__ = [
    "ProxyConfig",
    "basic_authorization",
    "resolve_proxy",
    "find_environment_proxy",
    "use_proxy",
    "is_loopback_host",
]

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_NO_PROXY_SEPARATOR = re.compile(r"[\s,]+")
_BRACKETED_ENTRY = re.compile(r"\[([^\]]+)\](?::(\d+))?\Z")


@dataclass(frozen=True)
class ProxyConfig:
    """An ``http://`` proxy with optional basic-auth credentials."""

    url: str
    username: Optional[str] = None
    password: Optional[str] = None

    @classmethod
    def from_url(
        cls,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> "ProxyConfig":
        try:
            parts = urlsplit(url.strip())
            port = parts.port
        except ValueError as exc:
            raise ConfigurationError(f"Invalid proxy URI {url!r}: {exc}") from exc
        if parts.scheme.lower() != "http":
            raise ConfigurationError(f"Non-HTTP proxy URI: {url!r}")
        if not parts.hostname:
            raise ConfigurationError(f"Proxy URI has no host: {url!r}")
        if username is None and parts.username:
            username = unquote(parts.username)
            password = unquote(parts.password or "")
        host = f"[{parts.hostname}]" if ":" in parts.hostname else parts.hostname
        return cls(url=f"http://{host}:{port or 80}", username=username, password=password)

    @property
    def basic_auth(self) -> Optional[Tuple[str, str]]:
        if self.username is None:
            return None
        return (self.username, self.password or "")

    @property
    def authorization_header(self) -> Optional[str]:
        """``Proxy-Authorization`` value for requests sent straight to the proxy."""
        if self.basic_auth is None:
            return None
        return basic_authorization(*self.basic_auth)

    def __repr__(self) -> str:
        user = f" user={self.username!r}" if self.username is not None else ""
        return f"{self.__class__.__name__}({self.url}{user})"


def basic_authorization(username: str, password: str) -> str:
    """Value of an ``Authorization`` or ``Proxy-Authorization`` basic header."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def resolve_proxy(
    target: Target,
    options: Any,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[ProxyConfig]:
    """Return the proxy to use for ``target`` under ``options``, or ``None``.

    Args:
        target: Parsed request target.
        options: :class:`OpenOptions` for the call.
        environ: Environment snapshot; defaults to a copy of ``os.environ``.

    Raises:
        ConfigurationError: If the selected proxy is not an ``http://`` URI.
    """

    if options.proxy_http_basic_authentication is not None:
        url, username, password = options.proxy_http_basic_authentication
        return ProxyConfig.from_url(url, username, password)
    setting = options.proxy
    if setting is None or setting is False:
        return None
    if isinstance(setting, str):
        return ProxyConfig.from_url(setting)
    env = dict(os.environ if environ is None else environ)
    return find_environment_proxy(target, env)


def find_environment_proxy(target: Target, env: Mapping[str, str]) -> Optional[ProxyConfig]:
    name = f"{target.scheme}_proxy"
    value: Optional[str]
    if name == "http_proxy" and "REQUEST_METHOD" in env:
        variants = [key for key in env if key.lower() == name]
        if len(variants) == 1:
            # A lone upper-case HTTP_PROXY may come from a "Proxy:" request header.
            value = env[name] if variants[0] == name else None
        elif variants:
            value = env.get(name)
        else:
            value = None
        if not value:
            value = env.get(f"CGI_{name.upper()}")
    elif name == "http_proxy":
        value = env.get(name)
        if not value:
            value = env.get(name.upper())
            if value:
                logger.warning(
                    "The environment variable HTTP_PROXY is discouraged; use http_proxy",
                )
    else:
        value = env.get(name) or env.get(name.upper())

    if not value:
        return None

    address = _literal_address(target.host)
    if is_loopback_host(target.host, address):
        logger.debug("Loopback target bypasses environment proxy", extra={"host": target.host})
        return None

    no_proxy = env.get("no_proxy") or env.get("NO_PROXY")
    if no_proxy and not use_proxy(target.host, address, target.port, no_proxy):
        logger.debug(
            "no_proxy excludes target",
            extra={"host": target.host, "port": target.port},
        )
        return None
    return ProxyConfig.from_url(value)


def use_proxy(
    hostname: str,
    address: Optional[IPAddress],
    port: int,
    no_proxy: str,
) -> bool:
    """Return ``False`` when a ``no_proxy`` entry matches the target.

    Entries are ``host[:port]``; a leading dot and a bare domain both match
    the domain and its subdomains, ``*`` matches everything, and IP or CIDR
    entries match ``address``.
    """

    dothost = "." + hostname.lower()
    for token in _NO_PROXY_SEPARATOR.split(no_proxy):
        parsed = _no_proxy_entry(token)
        if parsed is None:
            continue
        entry, entry_port = parsed
        if entry_port is not None and entry_port != port:
            continue
        if entry == "*":
            return False
        suffix = entry if entry.startswith(".") else "." + entry
        if dothost.endswith(suffix):
            return False
        if address is not None:
            try:
                network = ipaddress.ip_network(entry, strict=False)
            except ValueError:
                continue
            if address in network:
                return False
    return True


def _no_proxy_entry(token: str) -> Optional[Tuple[str, Optional[int]]]:
    """Split a ``no_proxy`` token into a lower-cased host or network and a port.

    IPv6 entries are either bracketed (``[::1]:8080``) or bare (``::1``,
    ``fd00::/8``); a bare entry with more than one colon never carries a port.
    """

    if not token:
        return None
    bracketed = _BRACKETED_ENTRY.match(token)
    if bracketed:
        host, port = bracketed.groups()
    elif token.count(":") == 1:
        host, port = token.split(":")
        if not port.isdigit():
            return None
    else:
        host, port = token, None
    if not host:
        return None
    return host.lower(), int(port) if port else None


def is_loopback_host(host: str, address: Optional[IPAddress] = None) -> bool:
    if address is None:
        address = _literal_address(host)
    if address is not None:
        return address.is_loopback
    lowered = host.lower().rstrip(".")
    return lowered == "localhost" or lowered.endswith(".localhost")


def _literal_address(host: str) -> Optional[IPAddress]:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None
