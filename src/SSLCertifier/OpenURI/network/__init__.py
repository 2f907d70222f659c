"""Network subsystem: proxies, TLS trust, HTTP transport, redirects and FTP.

This package provides the protocol side of :func:`open_uri` based on:
- HTTPX: HTTP/1.1 client with CONNECT tunneling and per-phase timeouts
- certifi: the bundled root CA file used when no ``ssl_ca_cert`` is given
- ftplib: FTP control and data channels (passive and active)

Modules:
- policy: timeout budgets, redirect ceiling, default headers
- proxy: environment and option driven proxy resolution
- tls: CA bundle selection and :class:`ssl.SSLContext` construction
- transport: one HTTP exchange over a per-call HTTPX client
- redirect: redirect state, hop auditing and scheme policy
- http_client: request/redirect/authentication orchestration
- ftp_client: FTP retrieval, direct or relayed through an HTTP proxy

Submodules are imported explicitly by callers (``from .network.proxy import
resolve_proxy``) so that ``policy`` stays importable from leaf modules.
"""

__all__ = [
    "policy",
    "proxy",
    "tls",
    "transport",
    "redirect",
    "http_client",
    "ftp_client",
]
