"""Local HTTP, HTTPS, proxy and FTP servers shared by the open-uri tests.

Every server binds to ``127.0.0.1`` on an ephemeral port and runs on a
daemon thread for the lifetime of one test. Servers record what they
receive so tests can assert on the exact request lines, headers and FTP
commands issued by the library.
"""

from __future__ import annotations

import base64
import hashlib
import ipaddress
import posixpath
import select
import shutil
import socket
import socketserver
import ssl
import subprocess
import threading
import http.client
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlsplit

import httpx
import pytest

from SSLCertifier.OpenURI.network.transport import HttpTransport

PROXY_ENVIRONMENT = (
    "http_proxy",
    "HTTP_PROXY",
    "https_proxy",
    "HTTPS_PROXY",
    "ftp_proxy",
    "FTP_PROXY",
    "no_proxy",
    "NO_PROXY",
    "REQUEST_METHOD",
    "CGI_HTTP_PROXY",
)

HOP_BY_HOP = {"connection", "keep-alive", "transfer-encoding", "proxy-authorization", "proxy-connection"}


@pytest.fixture(autouse=True)
def _clean_proxy_environment(monkeypatch):
    for name in PROXY_ENVIRONMENT:
        monkeypatch.delenv(name, raising=False)


# --- Recorded traffic ---


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: Dict[str, str]


def _recorded(handler: BaseHTTPRequestHandler) -> RecordedRequest:
    return RecordedRequest(
        method=handler.command,
        path=handler.path,
        headers={key.lower(): value for key, value in handler.headers.items()},
    )


# --- Origin server ---


Route = Callable[["_OriginHandler"], None]


class LocalHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, scheme: str = "http") -> None:
        super().__init__(("127.0.0.1", 0), _OriginHandler)
        self.scheme = scheme
        self.routes: Dict[str, Route] = {}
        self.requests: List[RecordedRequest] = []

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"{self.scheme}://{host}:{port}"

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def route(self, path: str, route: Route) -> None:
        self.routes[path] = route

    def respond(
        self,
        path: str,
        status: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Serve a fixed response at ``path``."""
        self.routes[path] = lambda handler: handler.reply(status, body, headers)

    def redirect(self, path: str, location: str, status: int = 302) -> None:
        self.respond(path, status, b"moved", {"Location": location})


class _OriginHandler(BaseHTTPRequestHandler):
    server: LocalHTTPServer  # type: ignore[assignment]
    protocol_version = "HTTP/1.1"

    def log_message(self, format: str, *args):  # noqa: D401 - silence server logs
        """Suppress default HTTP server logging."""

    def reply(
        self,
        status: int,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        *,
        chunks: Optional[Iterable[bytes]] = None,
    ) -> None:
        headers = dict(headers or {})
        self.send_response(status)
        for key, value in headers.items():
            self.send_header(key, value)
        if chunks is not None:
            self.send_header("Transfer-Encoding", "chunked")
        elif not any(key.lower() == "content-length" for key in headers):
            self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if chunks is not None:
            for chunk in chunks:
                self.wfile.write(b"%x\r\n%s\r\n" % (len(chunk), chunk))
            self.wfile.write(b"0\r\n\r\n")
        elif body:
            self.wfile.write(body)
        self.close_connection = True

    def do_GET(self) -> None:  # noqa: D401
        self.server.requests.append(_recorded(self))
        route = self.server.routes.get(urlsplit(self.path).path)
        if route is None:
            self.reply(404, b"not found", {"Content-Type": "text/plain"})
            return
        route(self)


def _serve(server: socketserver.BaseServer):
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join()


@pytest.fixture
def http_server():
    yield from _serve(LocalHTTPServer())


# --- TLS material ---


@dataclass
class TLSMaterial:
    ca_cert: Path
    other_ca_cert: Path
    server_cert: Path
    server_key: Path

    def server_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(str(self.server_cert), str(self.server_key))
        return context


def _write_pem(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


def _make_ca(common_name: str):
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def _make_server_cert(ca_key, ca_cert):
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
            ),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    return key, cert


@pytest.fixture(scope="session")
def tls_material(tmp_path_factory) -> TLSMaterial:
    pytest.importorskip("cryptography")
    from cryptography.hazmat.primitives import serialization

    directory = tmp_path_factory.mktemp("tls")
    ca_key, ca_cert = _make_ca("SSLCertifier Test Root")
    _, other_ca_cert = _make_ca("Unrelated Test Root")
    server_key, server_cert = _make_server_cert(ca_key, ca_cert)
    pem = serialization.Encoding.PEM
    return TLSMaterial(
        ca_cert=_write_pem(directory / "ca.pem", ca_cert.public_bytes(pem)),
        other_ca_cert=_write_pem(directory / "other-ca.pem", other_ca_cert.public_bytes(pem)),
        server_cert=_write_pem(directory / "server.pem", server_cert.public_bytes(pem)),
        server_key=_write_pem(
            directory / "server-key.pem",
            server_key.private_bytes(
                pem,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ),
        ),
    )


@pytest.fixture
def https_server(tls_material):
    server = LocalHTTPServer(scheme="https")
    server.socket = tls_material.server_context().wrap_socket(server.socket, server_side=True)
    yield from _serve(server)


def _der(tag: int, content: bytes) -> bytes:
    length = len(content)
    if length < 0x80:
        return bytes([tag, length]) + content
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([tag, 0x80 | len(encoded)]) + encoded + content


def _der_oid(dotted: str) -> bytes:
    first, second, *rest = (int(part) for part in dotted.split("."))
    body = bytearray([40 * first + second])
    for value in rest:
        septets = [value & 0x7F]
        value >>= 7
        while value:
            septets.append(0x80 | (value & 0x7F))
            value >>= 7
        body.extend(reversed(septets))
    return _der(0x06, bytes(body))


def subject_hash(cert_path: Path) -> str:
    """OpenSSL ``x509 -hash`` of the certificate subject, as used by ``capath`` lookups."""

    openssl = shutil.which("openssl")
    if openssl is not None:
        result = subprocess.run(
            [openssl, "x509", "-hash", "-noout", "-in", str(cert_path)],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()

    from cryptography import x509

    # Canonical name encoding: RDN sets without the outer SEQUENCE, values
    # as lower-cased UTF8String with whitespace collapsed.
    cert = x509.load_pem_x509_certificate(cert_path.read_bytes())
    canonical = b""
    for rdn in cert.subject.rdns:
        entries = b"".join(
            _der(
                0x30,
                _der_oid(attribute.oid.dotted_string)
                + _der(0x0C, " ".join(str(attribute.value).split()).lower().encode("utf-8")),
            )
            for attribute in rdn
        )
        canonical += _der(0x31, entries)
    digest = hashlib.sha1(canonical).digest()
    return f"{int.from_bytes(digest[:4], 'little'):08x}"


@pytest.fixture
def hashed_ca_dir(tls_material, tmp_path) -> Path:
    """Directory holding the test root under its ``<subject-hash>.0`` name."""

    directory = tmp_path / "certs"
    directory.mkdir()
    name = f"{subject_hash(tls_material.ca_cert)}.0"
    (directory / name).write_bytes(tls_material.ca_cert.read_bytes())
    return directory


# --- Forward / CONNECT proxy ---


class LocalProxyServer(ThreadingHTTPServer):
    """HTTP proxy forwarding absolute-form GETs and tunnelling CONNECT."""

    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _ProxyHandler)
        self.requests: List[RecordedRequest] = []
        self.credentials: Optional[Tuple[str, str]] = None
        self.connect_status: Optional[int] = None
        self.relayed: Dict[str, bytes] = {}

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def authorized(self, header: Optional[str]) -> bool:
        if self.credentials is None:
            return True
        token = base64.b64encode(":".join(self.credentials).encode()).decode()
        return header == f"Basic {token}"


class _ProxyHandler(BaseHTTPRequestHandler):
    server: LocalProxyServer  # type: ignore[assignment]

    def log_message(self, format: str, *args):  # noqa: D401 - silence server logs
        """Suppress default HTTP server logging."""

    def _write(self, status: int, headers: Dict[str, str], body: bytes = b"") -> None:
        self.send_response(status)
        for key, value in headers.items():
            self.send_header(key, value)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Connection", "close")
        self.end_headers()
        if body:
            self.wfile.write(body)
        self.close_connection = True

    def _challenge(self) -> bool:
        if self.server.authorized(self.headers.get("Proxy-Authorization")):
            return False
        self._write(407, {"Proxy-Authenticate": 'Basic realm="proxy"'}, b"proxy auth required")
        return True

    def do_CONNECT(self) -> None:  # noqa: D401
        self.server.requests.append(_recorded(self))
        if self._challenge():
            return
        if self.server.connect_status is not None:
            self._write(self.server.connect_status, {}, b"tunnel refused")
            return
        host, _, port = self.path.rpartition(":")
        upstream = socket.create_connection((host.strip("[]"), int(port)), timeout=5)
        try:
            self.send_response(200, "Connection established")
            self.end_headers()
            self._pipe(self.connection, upstream)
        finally:
            upstream.close()
        self.close_connection = True

    @staticmethod
    def _pipe(client: socket.socket, upstream: socket.socket) -> None:
        sockets = [client, upstream]
        while True:
            readable, _, errored = select.select(sockets, [], sockets, 5)
            if errored or not readable:
                return
            for sock in readable:
                data = sock.recv(65536)
                if not data:
                    return
                (upstream if sock is client else client).sendall(data)

    def do_GET(self) -> None:  # noqa: D401
        self.server.requests.append(_recorded(self))
        if self._challenge():
            return
        parts = urlsplit(self.path)
        if parts.scheme == "ftp":
            body = self.server.relayed.get(self.path)
            if body is None:
                self._write(404, {"Content-Type": "text/plain"}, b"not relayed")
            else:
                self._write(200, {"Content-Type": "application/octet-stream"}, body)
            return
        upstream = http.client.HTTPConnection(parts.hostname, parts.port or 80, timeout=5)
        try:
            path = parts.path + (f"?{parts.query}" if parts.query else "")
            headers = {
                key: value
                for key, value in self.headers.items()
                if key.lower() not in HOP_BY_HOP
            }
            upstream.request("GET", path or "/", headers=headers)
            response = upstream.getresponse()
            body = response.read()
            relayed = {
                key: value
                for key, value in response.getheaders()
                if key.lower() not in HOP_BY_HOP and key.lower() != "content-length"
            }
            self._write(response.status, relayed, body)
        finally:
            upstream.close()


@pytest.fixture
def proxy_server():
    yield from _serve(LocalProxyServer())


# --- FTP ---


class LocalFTPServer(socketserver.ThreadingTCPServer):
    """Minimal FTP server: login, TYPE, CWD, SIZE, PASV/PORT and RETR."""

    daemon_threads = True
    allow_reuse_address = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _FTPHandler)
        self.files: Dict[str, bytes] = {}
        self.directories: Set[str] = {"/"}
        self.commands: List[str] = []
        self.credentials: Optional[Tuple[str, str]] = None
        self.support_size = True

    @property
    def port(self) -> int:
        return self.server_address[1]

    def url(self, path: str) -> str:
        return f"ftp://127.0.0.1:{self.port}{path}"

    def add_file(self, path: str, data: bytes) -> None:
        self.files[path] = data
        directory = posixpath.dirname(path)
        while directory not in self.directories:
            self.directories.add(directory)
            directory = posixpath.dirname(directory)

    @property
    def verbs(self) -> List[str]:
        return [command.split(" ", 1)[0].upper() for command in self.commands]


class _FTPHandler(socketserver.StreamRequestHandler):
    server: LocalFTPServer  # type: ignore[assignment]

    def _reply(self, line: str) -> None:
        self.wfile.write(f"{line}\r\n".encode("utf-8"))

    def handle(self) -> None:
        server = self.server
        cwd = "/"
        user: Optional[str] = None
        listener: Optional[socket.socket] = None
        active_address: Optional[Tuple[str, int]] = None
        self._reply("220 test FTP server ready")
        try:
            while True:
                raw = self.rfile.readline()
                if not raw:
                    return
                line = raw.decode("utf-8").rstrip("\r\n")
                server.commands.append(line)
                verb, _, arg = line.partition(" ")
                verb = verb.upper()
                if verb == "USER":
                    user = arg
                    self._reply("331 Password required")
                elif verb == "PASS":
                    if server.credentials is not None and (user, arg) != server.credentials:
                        self._reply("530 Login incorrect")
                    else:
                        self._reply("230 Logged in")
                elif verb == "TYPE":
                    self._reply(f"200 Type set to {arg}")
                elif verb == "CWD":
                    target = posixpath.normpath(posixpath.join(cwd, arg))
                    if target in server.directories:
                        cwd = target
                        self._reply("250 Directory changed")
                    else:
                        self._reply(f"550 {arg}: No such directory")
                elif verb == "SIZE":
                    data = server.files.get(posixpath.join(cwd, arg))
                    if not server.support_size:
                        self._reply("502 Command not implemented")
                    elif data is None:
                        self._reply(f"550 {arg}: No such file")
                    else:
                        self._reply(f"213 {len(data)}")
                elif verb == "PASV":
                    listener = socket.create_server(("127.0.0.1", 0))
                    listener.settimeout(5)
                    port = listener.getsockname()[1]
                    self._reply(f"227 Entering Passive Mode (127,0,0,1,{port >> 8},{port & 0xFF})")
                elif verb == "PORT":
                    fields = arg.split(",")
                    active_address = (".".join(fields[:4]), int(fields[4]) * 256 + int(fields[5]))
                    self._reply("200 PORT command successful")
                elif verb == "RETR":
                    data = server.files.get(posixpath.join(cwd, arg))
                    if data is None:
                        self._reply(f"550 {arg}: No such file")
                        continue
                    self._reply("150 Opening BINARY mode data connection")
                    if listener is not None:
                        conn, _ = listener.accept()
                        listener.close()
                        listener = None
                    else:
                        assert active_address is not None
                        conn = socket.create_connection(active_address, timeout=5)
                    with conn:
                        conn.sendall(data)
                    self._reply("226 Transfer complete")
                elif verb == "QUIT":
                    self._reply("221 Goodbye")
                    return
                else:
                    self._reply(f"502 {verb} not implemented")
        finally:
            if listener is not None:
                listener.close()


@pytest.fixture
def ftp_server():
    yield from _serve(LocalFTPServer())


# --- httpx.MockTransport ---


def mock_response(
    status: int,
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
) -> httpx.Response:
    """Streamed response whose raw bytes are ``body`` exactly."""

    headers = dict(headers or {})
    if not any(key.lower() == "content-length" for key in headers):
        headers["Content-Length"] = str(len(body))
    return httpx.Response(status, headers=headers, stream=httpx.ByteStream(body))


def _route_key(url) -> str:
    """Absolute URL with an empty path spelled as ``/``, as it goes on the wire."""

    parsed = httpx.URL(str(url))
    return str(parsed.copy_with(raw_path=parsed.raw_path))


@dataclass
class MockRouter:
    """Maps absolute URLs to response factories and records every request."""

    routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = field(default_factory=dict)
    requests: List[httpx.Request] = field(default_factory=list)

    def respond(
        self,
        url: str,
        status: int = 200,
        body: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.routes[_route_key(url)] = lambda request: mock_response(status, body, headers)

    def redirect(self, url: str, location: str, status: int = 302) -> None:
        self.respond(url, status, b"", {"Location": location})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(_route_key(request.url))
        if route is None:
            return mock_response(404, b"not found")
        return route(request)


@pytest.fixture
def mock_http(monkeypatch) -> MockRouter:
    """Route every :class:`HttpTransport` exchange through ``httpx.MockTransport``."""

    router = MockRouter()

    def _create_transport(self):
        return httpx.MockTransport(router)

    monkeypatch.setattr(HttpTransport, "_create_transport", _create_transport)
    return router
