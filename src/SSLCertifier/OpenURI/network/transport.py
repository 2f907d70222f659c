# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.network.transport",
#   "purpose": "Single HTTP exchange over a per-call HTTPX transport",
#   "sections": [
#     {
#       "id": "translate-transport-errors",
#       "name": "translate_transport_errors",
#       "anchor": "function-translate-transport-errors",
#       "kind": "function"
#     },
#     {
#       "id": "httptransport",
#       "name": "HttpTransport",
#       "anchor": "class-httptransport",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTPX transport for one request/response exchange.

A fresh :class:`httpx.HTTPTransport` is built per exchange so that the proxy,
TLS context and timeouts chosen for one hop never leak into another call.
Requests go straight to ``handle_request``; ``Location`` is never parsed here,
so malformed redirects reach :mod:`.redirect` with the 3xx response intact.

Configuration:
- Timeouts: separate connect (``open_timeout``) and read (``read_timeout``)
- Proxy: ``http://`` only; https targets are tunneled with CONNECT
- Redirects: never followed here (followed and audited by ``redirect``)
- Environment: ``trust_env=False``; proxies come from ``proxy.resolve_proxy``
- Relay mode: the request is sent straight to the proxy in absolute form,
  used for ``ftp://`` targets behind an HTTP proxy

HTTPX exceptions are translated into the :mod:`..errors` taxonomy with the
original exception chained.
"""

from __future__ import annotations

import logging
import re
import ssl
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from ..errors import (
    ConfigurationError,
    FetchConnectionError,
    OpenTimeoutError,
    ProxyError,
    ReadTimeoutError,
    TLSError,
)
from ..targets import Target
from .policy import HTTP_WRITE_TIMEOUT, READ_CHUNK_SIZE
from .proxy import ProxyConfig

__all__ = ["HttpTransport", "translate_transport_errors"]

logger = logging.getLogger(__name__)

_PROXY_STATUS = re.compile(r"\s*(\d{3})\b")

Headers = Sequence[Tuple[str, str]]


def _find_ssl_error(exc: BaseException) -> Optional[ssl.SSLError]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLError):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


@contextmanager
def translate_transport_errors(url: str) -> Iterator[None]:
    """Map HTTPX transport exceptions raised inside the block onto library errors."""

    try:
        yield
    except httpx.ProxyError as exc:
        match = _PROXY_STATUS.match(str(exc))
        status = int(match.group(1)) if match else None
        logger.debug("Proxy refused tunnel", extra={"url": url, "proxy_status": status})
        raise ProxyError(f"Proxy CONNECT failed for {url}: {exc}", status_code=status) from exc
    except (httpx.ConnectTimeout, httpx.PoolTimeout) as exc:
        raise OpenTimeoutError(f"Timed out connecting to {url}") from exc
    except (httpx.ReadTimeout, httpx.WriteTimeout) as exc:
        raise ReadTimeoutError(f"Timed out reading from {url}") from exc
    except httpx.TransportError as exc:
        ssl_exc = _find_ssl_error(exc)
        if ssl_exc is not None:
            raise TLSError(f"TLS negotiation with {url} failed: {ssl_exc}") from exc
        raise FetchConnectionError(f"Transport error for {url}: {exc}") from exc


class HttpTransport:
    """Context manager owning the HTTPX transport for one exchange.

    Example:
        >>> with HttpTransport(proxy=None, ssl_context=ctx) as transport:
        ...     response = transport.send(target, headers)
        ...     for chunk in transport.iter_raw(response):
        ...         ...
    """

    def __init__(
        self,
        *,
        proxy: Optional[ProxyConfig],
        ssl_context: Optional[ssl.SSLContext] = None,
        open_timeout: Optional[float] = None,
        read_timeout: Optional[float] = None,
        relay: bool = False,
    ) -> None:
        if relay and proxy is None:
            raise ConfigurationError("Relay mode requires an HTTP proxy")
        self.proxy = proxy
        self.relay = relay
        self._relay_proxy = proxy if relay else None
        self._ssl_context = ssl_context
        self._timeout = httpx.Timeout(
            connect=open_timeout,
            read=read_timeout,
            write=HTTP_WRITE_TIMEOUT,
            pool=open_timeout,
        )
        self._transport: Optional[httpx.BaseTransport] = None

    def __enter__(self) -> "HttpTransport":
        self._transport = self._create_transport()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    def _create_transport(self) -> httpx.BaseTransport:
        proxy = None
        if self.proxy is not None and not self.relay:
            proxy = httpx.Proxy(url=self.proxy.url, auth=self.proxy.basic_auth)
        return httpx.HTTPTransport(
            verify=self._ssl_context if self._ssl_context is not None else True,
            proxy=proxy,
            trust_env=False,
            http2=False,
        )

    @property
    def transport(self) -> httpx.BaseTransport:
        if self._transport is None:
            raise RuntimeError("HttpTransport used outside of its context")
        return self._transport

    def send(self, target: Target, headers: Headers) -> httpx.Response:
        """Send ``GET target`` and return the streamed response (body unread)."""

        if self._relay_proxy is not None:
            return self._send_relayed(target, headers, self._relay_proxy)
        request = httpx.Request(
            "GET",
            target.url,
            headers=list(headers),
            extensions={"timeout": self._timeout.as_dict()},
        )
        logger.debug(
            "Sending request",
            extra={"url": target.url, "via_proxy": self.proxy.url if self.proxy else None},
        )
        return self._dispatch(request, target.url)

    def _send_relayed(self, target: Target, headers: Headers, proxy: ProxyConfig) -> httpx.Response:
        relayed: List[Tuple[str, str]] = [("Host", target.netloc)]
        relayed.extend((name, value) for name, value in headers if name.lower() != "host")
        authorization = proxy.authorization_header
        if authorization is not None:
            relayed.append(("Proxy-Authorization", authorization))
        url = target.url
        if target.userinfo is not None:
            url = url.replace("://", f"://{target.userinfo}@", 1)
        absolute = quote(url, safe=":/?#[]@!$&'()*+,;=%~")
        request = httpx.Request(
            "GET",
            proxy.url,
            headers=relayed,
            extensions={
                "timeout": self._timeout.as_dict(),
                "target": absolute.encode("ascii"),
            },
        )
        logger.debug("Relaying request through proxy", extra={"url": target.url, "proxy": proxy.url})
        return self._dispatch(request, target.url)

    def _dispatch(self, request: httpx.Request, url: str) -> httpx.Response:
        with translate_transport_errors(url):
            response = self.transport.handle_request(request)
        response.request = request
        return response

    def iter_raw(self, response: httpx.Response, chunk_size: int = READ_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield de-chunked, still content-encoded body bytes."""

        with translate_transport_errors(str(response.url)):
            yield from response.iter_raw(chunk_size)
