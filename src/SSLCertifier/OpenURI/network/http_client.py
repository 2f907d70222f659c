# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.network.http_client",
#   "purpose": "HTTP(S) retrieval: request headers, redirect loop, auth and body streaming",
#   "sections": [
#     {
#       "id": "build-request-headers",
#       "name": "build_request_headers",
#       "anchor": "function-build-request-headers",
#       "kind": "function"
#     },
#     {
#       "id": "read-response",
#       "name": "read_response",
#       "anchor": "function-read-response",
#       "kind": "function"
#     },
#     {
#       "id": "finish-response",
#       "name": "finish_response",
#       "anchor": "function-finish-response",
#       "kind": "function"
#     },
#     {
#       "id": "open-http",
#       "name": "open_http",
#       "anchor": "function-open-http",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTP and HTTPS retrieval for :func:`open_uri`.

Each hop of a redirect chain is a separate exchange on a fresh
:class:`HttpTransport`: the proxy is resolved again for the new host, while
the TLS context and the :class:`RedirectState` live for the whole call.

Responses are classified as:
- 2xx: body streamed through :class:`ContentDecoder` into a
  :class:`ResourceHandle`, reporting raw byte progress on the way
- redirect codes: body buffered, next target chosen by ``RedirectState.follow``
- 401/407: :class:`AuthenticationError`
- anything else: :class:`HTTPError` carrying the buffered response

Nothing is retried. Basic-auth credentials are sent pre-emptively, and only
to the scheme/host/port they were supplied for.
"""

from __future__ import annotations

import logging
import os
from typing import Any, List, Mapping, Optional, Tuple

import httpx

from ..errors import AuthenticationError, HTTPError
from ..handle import ResourceHandle
from ..io import ContentDecoder, ProgressReporter, parse_content_length
from ..targets import Target
from .policy import ACCEPT_ENCODING, REDIRECT_STATUS_CODES, USER_AGENT
from .proxy import basic_authorization, resolve_proxy
from .redirect import RedirectState
from .tls import TrustConfig
from .transport import HttpTransport

__all__ = ["build_request_headers", "read_response", "finish_response", "open_http"]

logger = logging.getLogger(__name__)

AUTH_CHALLENGE_CODES = frozenset({401, 407})


def build_request_headers(
    target: Target,
    options: Any,
    *,
    send_credentials: bool = False,
) -> List[Tuple[str, str]]:
    """Assemble request headers; caller-supplied headers replace the defaults."""

    custom = dict(options.headers)
    overridden = {name.lower() for name in custom}
    headers = [
        (name, value)
        for name, value in (
            ("User-Agent", USER_AGENT),
            ("Accept", "*/*"),
            ("Accept-Encoding", ACCEPT_ENCODING),
        )
        if name.lower() not in overridden
    ]
    headers.extend(custom.items())
    if send_credentials and "authorization" not in overridden:
        user, password = options.http_basic_authentication
        headers.append(("Authorization", basic_authorization(user, password)))
    return headers


def read_response(
    transport: HttpTransport,
    response: httpx.Response,
    target: Target,
    reporter: Optional[ProgressReporter] = None,
) -> ResourceHandle:
    """Drain ``response`` into a rewound :class:`ResourceHandle`.

    When ``reporter`` is given it is started with the declared Content-Length
    (``None`` if absent) and advanced by the number of raw, still encoded
    bytes received.
    """

    handle = ResourceHandle(
        target.url,
        (str(response.status_code), response.reason_phrase),
        response.headers,
    )
    decoder = ContentDecoder(handle.content_encoding)
    try:
        if reporter is not None:
            reporter.start(parse_content_length(response.headers.get("content-length")))
        for raw in transport.iter_raw(response):
            handle.write(decoder.decode(raw))
            if reporter is not None:
                reporter.advance(len(raw))
        handle.write(decoder.flush())
    except BaseException:
        handle.close()
        raise
    return handle.rewind()


def finish_response(
    transport: HttpTransport,
    response: httpx.Response,
    target: Target,
    options: Any,
    *,
    credentials_offered: bool = False,
) -> ResourceHandle:
    """Turn a non-redirect response into a handle or the matching error."""

    status = response.status_code
    if 200 <= status < 300:
        handle = read_response(transport, response, target, ProgressReporter.from_options(options))
        logger.debug(
            "Resource retrieved",
            extra={"url": target.url, "status": status, "bytes": handle.size},
        )
        return handle

    handle = read_response(transport, response, target)
    message = f"{status} {response.reason_phrase}".strip()
    if status in AUTH_CHALLENGE_CODES:
        logger.info(
            "Authentication required",
            extra={"url": target.url, "status": status, "credentials_offered": credentials_offered},
        )
        raise AuthenticationError(message, handle, credentials_offered=credentials_offered)
    raise HTTPError(message, handle)


def open_http(
    target: Target,
    options: Any,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ResourceHandle:
    """Retrieve an ``http`` or ``https`` target, following redirects.

    Args:
        target: Parsed initial target.
        options: :class:`OpenOptions` for the call.
        environ: Environment snapshot for proxy lookup; defaults to ``os.environ``.

    Returns:
        Rewound :class:`ResourceHandle` whose ``base_uri`` is the final URI.

    Raises:
        HTTPError: Terminal non-2xx response (including auth and proxy refusals).
        RedirectError: Redirect loop, limit or forbidden scheme.
        TLSError: Certificate or handshake failure.
        FetchTimeoutError: Connect or read timeout.
        FetchConnectionError: Other transport failures.
    """

    env = dict(os.environ if environ is None else environ)
    ssl_context = TrustConfig.from_options(options).build_ssl_context()
    state = RedirectState(origin=target, redirect=options.redirect)
    current = target

    while True:
        proxy = resolve_proxy(current, options, environ=env)
        offered = options.http_basic_authentication is not None and state.credentials_apply(current)
        headers = build_request_headers(current, options, send_credentials=offered)

        with HttpTransport(
            proxy=proxy,
            ssl_context=ssl_context,
            open_timeout=options.open_timeout,
            read_timeout=options.read_timeout,
        ) as transport:
            response = transport.send(current, headers)
            try:
                state.record(current, response.status_code)
                if response.status_code not in REDIRECT_STATUS_CODES:
                    return finish_response(
                        transport, response, current, options, credentials_offered=offered
                    )
                redirect_response = read_response(transport, response, current)
                next_target = state.follow(current, redirect_response)
                redirect_response.close()
            finally:
                response.close()
        current = next_target
