# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.network.ftp_client",
#   "purpose": "FTP retrieval over ftplib, or relayed through an HTTP proxy",
#   "sections": [
#     {
#       "id": "split-ftp-path",
#       "name": "split_ftp_path",
#       "anchor": "function-split-ftp-path",
#       "kind": "function"
#     },
#     {
#       "id": "translate-ftp-errors",
#       "name": "translate_ftp_errors",
#       "anchor": "function-translate-ftp-errors",
#       "kind": "function"
#     },
#     {
#       "id": "open-ftp",
#       "name": "open_ftp",
#       "anchor": "function-open-ftp",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""FTP retrieval for :func:`open_uri`.

Direct sessions run the classic control sequence on :class:`ftplib.FTP`::

    USER / PASS -> TYPE I -> CWD <dir>... -> [TYPE A] -> [SIZE] ->
    PASV|PORT -> RETR <file> -> 226

Path segments are relative to the login directory (RFC 1738); an encoded
``%2F`` in the first segment reaches the server as an absolute path. When
an ``ftp_proxy`` applies, the whole retrieval is a single absolute-form
``GET ftp://...`` sent to the HTTP proxy and handled like any HTTP response,
without redirect following.
"""

from __future__ import annotations

import ftplib
import logging
import socket
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Tuple
from urllib.parse import unquote

from ..errors import (
    ConfigurationError,
    FetchConnectionError,
    FTPError,
    OpenTimeoutError,
    ReadTimeoutError,
)
from ..handle import ResourceHandle
from ..io import ProgressReporter
from ..targets import Target
from .http_client import build_request_headers, finish_response
from .policy import FTP_ANONYMOUS_PASSWORD, FTP_ANONYMOUS_USER, FTP_BLOCK_SIZE
from .proxy import ProxyConfig, resolve_proxy
from .transport import HttpTransport

__all__ = ["split_ftp_path", "translate_ftp_errors", "open_ftp"]

logger = logging.getLogger(__name__)

FTP_ERRORS = (ftplib.error_reply, ftplib.error_temp, ftplib.error_perm, ftplib.error_proto)


def split_ftp_path(target: Target) -> Tuple[List[str], str]:
    """Return the directories to ``CWD`` into and the file name to ``RETR``.

    Raises:
        ConfigurationError: A decoded segment contains CR or LF, or the path
            names no file.
    """

    segments = [unquote(segment) for segment in target.path.split("/")[1:]]
    for segment in segments:
        if "\r" in segment or "\n" in segment:
            raise ConfigurationError(f"Invalid FTP path segment {segment!r} in {target.url}")
    if not segments or not segments[-1]:
        raise ConfigurationError(f"No file name in FTP URI: {target.url}")
    *directories, filename = segments
    return [directory for directory in directories if directory], filename


@contextmanager
def translate_ftp_errors(url: str, *, connecting: bool = False) -> Iterator[None]:
    """Map ftplib and socket failures raised inside the block onto library errors."""

    try:
        yield
    except FTP_ERRORS as exc:
        reply = str(exc).strip()
        raise FTPError(f"FTP server rejected request for {url}: {reply}", reply=reply) from exc
    except socket.timeout as exc:
        if connecting:
            raise OpenTimeoutError(f"Timed out connecting to {url}") from exc
        raise ReadTimeoutError(f"Timed out reading from {url}") from exc
    except (OSError, EOFError) as exc:
        raise FetchConnectionError(f"FTP connection to {url} failed: {exc}") from exc


def open_ftp(
    target: Target,
    options: Any,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ResourceHandle:
    """Retrieve an ``ftp`` target directly or through an HTTP proxy.

    Args:
        target: Parsed ``ftp://`` target.
        options: :class:`OpenOptions` for the call.
        environ: Environment snapshot for proxy lookup; defaults to ``os.environ``.

    Returns:
        Rewound :class:`ResourceHandle`; ``status`` is the transfer-complete reply.

    Raises:
        ConfigurationError: Unsafe or empty path, raised before connecting.
        FTPError: Unacceptable control-channel reply.
        FetchTimeoutError: Connect or read timeout.
        HTTPError: Non-2xx reply from the relaying proxy.
    """

    directories, filename = split_ftp_path(target)
    proxy = resolve_proxy(target, options, environ=environ)
    if proxy is not None:
        return _open_via_proxy(target, options, proxy)
    return _open_direct(target, options, directories, filename)


def _open_via_proxy(target: Target, options: Any, proxy: ProxyConfig) -> ResourceHandle:
    logger.debug("Retrieving FTP resource through HTTP proxy", extra={"url": target.url})
    with HttpTransport(
        proxy=proxy,
        open_timeout=options.open_timeout,
        read_timeout=options.read_timeout,
        relay=True,
    ) as transport:
        response = transport.send(target, build_request_headers(target, options))
        try:
            return finish_response(transport, response, target, options)
        finally:
            response.close()


def _open_direct(
    target: Target,
    options: Any,
    directories: List[str],
    filename: str,
) -> ResourceHandle:
    user, password = target.credentials
    if not user:
        user, password = FTP_ANONYMOUS_USER, FTP_ANONYMOUS_PASSWORD
    reporter = ProgressReporter.from_options(options)

    ftp = ftplib.FTP()
    try:
        with translate_ftp_errors(target.url, connecting=True):
            ftp.connect(target.host, target.port, timeout=options.open_timeout)
        with translate_ftp_errors(target.url):
            ftp.timeout = options.read_timeout
            if ftp.sock is not None:
                ftp.sock.settimeout(options.read_timeout)
            logger.debug(
                "FTP connected",
                extra={"url": target.url, "user": user, "welcome": ftp.getwelcome()},
            )
            ftp.login(user, password or "")
            ftp.voidcmd("TYPE I")
            for directory in directories:
                ftp.voidcmd(f"CWD {directory}")
            if target.typecode == "a":
                ftp.voidcmd("TYPE A")
            total = _remote_size(ftp, filename) if reporter.wants_total else None
            reporter.start(total)
            ftp.set_pasv(not options.ftp_active_mode)
            handle = ResourceHandle(target.url, ("150", "Opening data connection"))
            try:
                with ftp.transfercmd(f"RETR {filename}") as conn:
                    while True:
                        block = conn.recv(FTP_BLOCK_SIZE)
                        if not block:
                            break
                        handle.write(block)
                        reporter.advance(len(block))
                reply = ftp.voidresp()
            except BaseException:
                handle.close()
                raise
        handle.status = (reply[:3], reply[4:].strip())
        logger.debug(
            "FTP transfer complete",
            extra={"url": target.url, "reply": reply, "bytes": handle.size},
        )
        return handle.rewind()
    finally:
        _close(ftp, target.url)


def _remote_size(ftp: ftplib.FTP, filename: str) -> Optional[int]:
    try:
        return ftp.size(filename)
    except (ftplib.error_perm, ValueError) as exc:
        logger.debug("SIZE unavailable", extra={"file": filename, "reply": str(exc)})
        return None


def _close(ftp: ftplib.FTP, url: str) -> None:
    try:
        if ftp.sock is not None:
            ftp.quit()
    except (*FTP_ERRORS, OSError, EOFError) as exc:
        logger.debug("FTP QUIT failed", extra={"url": url, "error": str(exc)})
    finally:
        ftp.close()
