# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.network.policy",
#   "purpose": "Network policy constants and defaults.",
#   "sections": []
# }
# === /NAVMAP ===

"""Network policy constants and defaults.

Defines timeout budgets, redirect limits, default request headers and buffer
sizes for the HTTPX + ftplib stack behind :func:`open_uri`.
"""

from SSLCertifier.version import __version__

# ============================================================================
# Timeout Budgets (seconds)
# ============================================================================

#: Connection establishment timeout (TCP handshake, TLS handshake, CONNECT)
HTTP_CONNECT_TIMEOUT = 60.0

#: Read timeout (time between data packets on an established connection)
HTTP_READ_TIMEOUT = 60.0

#: Write timeout (time to send the request line, headers and body)
HTTP_WRITE_TIMEOUT = 60.0


# ============================================================================
# Redirects
# ============================================================================

#: Maximum number of redirect hops followed by one call
MAX_REDIRECT_HOPS = 5

#: Status codes treated as redirects when a Location header is present
REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})

#: Schemes a redirect may lead to
REDIRECTABLE_SCHEMES = frozenset({"http", "https"})


# ============================================================================
# Request Defaults
# ============================================================================

USER_AGENT = f"SSLCertifier-OpenURI/{__version__}"

#: Content codings advertised to servers; decoded by ``io.decoding``
ACCEPT_ENCODING = "gzip, deflate"

DEFAULT_PORTS = {"http": 80, "https": 443, "ftp": 21}


# ============================================================================
# Response Handling
# ============================================================================

#: Raw bytes read per iteration of the response stream
READ_CHUNK_SIZE = 16 * 1024

#: FTP data channel block size
FTP_BLOCK_SIZE = 4096

#: Bodies above this size spill from memory to a temporary file
BUFFER_SPOOL_BYTES = 10 * 1024

DEFAULT_CONTENT_TYPE = "application/octet-stream"

#: Charset assumed when Content-Type carries no charset parameter
DEFAULT_CHARSET = "iso-8859-1"


# ============================================================================
# FTP Login
# ============================================================================

FTP_ANONYMOUS_USER = "anonymous"
FTP_ANONYMOUS_PASSWORD = "anonymous@"


# ============================================================================
# Security
# ============================================================================

#: Accepted values of the ``ssl_verify_mode`` option
TLS_VERIFY_MODES = ("verify", "verify_none")


__all__ = [
    "HTTP_CONNECT_TIMEOUT",
    "HTTP_READ_TIMEOUT",
    "HTTP_WRITE_TIMEOUT",
    "MAX_REDIRECT_HOPS",
    "REDIRECT_STATUS_CODES",
    "REDIRECTABLE_SCHEMES",
    "USER_AGENT",
    "ACCEPT_ENCODING",
    "DEFAULT_PORTS",
    "READ_CHUNK_SIZE",
    "FTP_BLOCK_SIZE",
    "BUFFER_SPOOL_BYTES",
    "DEFAULT_CONTENT_TYPE",
    "DEFAULT_CHARSET",
    "FTP_ANONYMOUS_USER",
    "FTP_ANONYMOUS_PASSWORD",
    "TLS_VERIFY_MODES",
]
