"""
Server-side listener for the mutually authenticated HTTPS endpoint.

Each accepted TCP connection is wrapped in a pyOpenSSL connection built from
the server context (see ``peertrust.tlsconfig``). A failed handshake only
closes that connection; the listener keeps serving.

Requests are answered with a minimal HTTP/1.1 response produced by a handler:

    handler(identity, method, path) -> (status_code, body)
"""
from __future__ import annotations

import logging
import select
import socket
import socketserver
import threading
import time
from typing import Callable, Optional, Tuple

from OpenSSL import SSL

from .tlsconfig import create_server_context, peer_identity

logger = logging.getLogger(__name__)

RequestHandler = Callable[[str, str, str], Tuple[int, str]]

MAX_REQUEST_HEAD = 8192

# Seconds a connection may take for the handshake plus the request.
IO_TIMEOUT = 10.0

_REASONS = {200: "OK", 400: "Bad Request", 404: "Not Found", 500: "Internal Server Error"}


def hello_handler(identity: str, method: str, path: str) -> Tuple[int, str]:
    logger.info("Received request from %s for %s", identity, path)
    return 200, f"Hello, authenticated client '{identity}'!\n"


def parse_address(addr: str) -> Tuple[str, int]:
    """Split ``host:port`` (``:8443`` binds all interfaces)."""
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address: {addr!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


def _call_with_deadline(sock, deadline: float, op, *args):
    """Run a non-blocking pyOpenSSL call, waiting on the socket until ``deadline``."""
    while True:
        try:
            return op(*args)
        except SSL.WantReadError:
            readable, writable = [sock], []
        except SSL.WantWriteError:
            readable, writable = [], [sock]

        remaining = deadline - time.monotonic()
        if remaining <= 0 or not any(select.select(readable, writable, [], remaining)):
            raise socket.timeout("timed out waiting for peer")


def _read_request_head(conn: SSL.Connection, sock, deadline: float) -> bytes:
    data = b""
    while b"\r\n\r\n" not in data and len(data) < MAX_REQUEST_HEAD:
        try:
            chunk = _call_with_deadline(sock, deadline, conn.recv, 4096)
        except SSL.ZeroReturnError:
            break
        if not chunk:
            break
        data += chunk
    return data


def _send_all(conn: SSL.Connection, sock, deadline: float, data: bytes) -> None:
    view = memoryview(data)
    while view:
        sent = _call_with_deadline(sock, deadline, conn.send, view.tobytes())
        view = view[sent:]


def _build_response(status: int, body: str) -> bytes:
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status} {_REASONS.get(status, 'Unknown')}\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + payload


class _ConnectionHandler(socketserver.BaseRequestHandler):
    server: "TrustedTLSServer"

    def handle(self) -> None:
        sock = self.request
        # pyOpenSSL does not honour socket timeouts; waits go through select instead.
        sock.setblocking(False)
        deadline = time.monotonic() + self.server.io_timeout

        conn = SSL.Connection(self.server.context, sock)
        conn.set_accept_state()

        try:
            _call_with_deadline(sock, deadline, conn.do_handshake)
        except (SSL.Error, OSError) as exc:
            logger.warning("TLS handshake with %s failed: %s", self.client_address[0], exc)
            return

        identity = peer_identity(conn)
        if identity is None:
            logger.error("Closing connection from %s: handshake completed without a verified identity",
                         self.client_address[0])
            return

        try:
            head = _read_request_head(conn, sock, deadline)
            request_line = head.split(b"\r\n", 1)[0].decode("latin-1")
            parts = request_line.split()
            if len(parts) != 3:
                status, body = 400, "malformed request\n"
            else:
                method, path, _ = parts
                status, body = self.server.request_handler(identity, method, path)

            _send_all(conn, sock, deadline, _build_response(status, body))
            _call_with_deadline(sock, deadline, conn.shutdown)
        except (SSL.Error, OSError) as exc:
            logger.warning("Connection from %s (%s) ended with error: %s", self.client_address[0], identity, exc)


class TrustedTLSServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, server_address, context: SSL.Context, request_handler: RequestHandler,
                 io_timeout: float = IO_TIMEOUT):
        self.context = context
        self.request_handler = request_handler
        self.io_timeout = io_timeout
        self.thread: Optional[threading.Thread] = None
        super().__init__(server_address, _ConnectionHandler)


def start_server(
    addr: str,
    certfile: str,
    keyfile: str,
    known_clients_file: str,
    handler: RequestHandler = hello_handler,
    io_timeout: float = IO_TIMEOUT,
) -> TrustedTLSServer:
    """
    Build the server TLS context and start serving in a background thread.

    :param addr: listen address, e.g. ``:8443`` or ``127.0.0.1:0``.
    :param certfile: server certificate (PEM).
    :param keyfile: server private key (PEM).
    :param known_clients_file: registry of authorized client CNs and fingerprints.
    :param handler: request handler; receives the verified client identity.
    :param io_timeout: seconds a client gets to finish the handshake and send its request.

    :return: the running server; pass it to ``stop_server``.
    :raises ConfigLoadError: if any of the files cannot be loaded (before binding).
    """
    logger.info("Configuring server TLS for self-signed client verification...")
    context = create_server_context(known_clients_file, certfile, keyfile)

    server = TrustedTLSServer(parse_address(addr), context, handler, io_timeout=io_timeout)
    host, port = server.server_address[:2]
    logger.info("Starting HTTPS server on %s:%d...", host, port)
    logger.info("Server expects client CN and Fingerprint to match entries in %s", known_clients_file)

    server.thread = threading.Thread(target=server.serve_forever, name="peertrust-server", daemon=True)
    server.thread.start()
    return server


def stop_server(server: TrustedTLSServer) -> None:
    """Stop a server returned by ``start_server``."""
    if server.thread is None:
        raise RuntimeError("server not started")
    logger.info("Stopping server...")
    server.shutdown()
    server.server_close()
    server.thread.join(timeout=5)
    server.thread = None
    logger.info("Server stopped gracefully.")
