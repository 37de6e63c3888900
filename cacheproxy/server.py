"""Caching HTTP forward proxy: accepts GET requests and relays them upstream."""

from __future__ import annotations

import datetime as _dt
import re
import socket
import sys
import threading
import time
from typing import Optional, Sequence

from .cache import Cache
from .parser import ParseError, ParsedRequest, parse_request

MAX_BYTES = 4096
MAX_CLIENTS = 400
DEFAULT_REMOTE_PORT = 80

RESET = "\x1b[0m"
BOLD = "\x1b[1m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
BLUE = "\x1b[34m"
MAGENTA = "\x1b[35m"
CYAN = "\x1b[36m"
WHITE = "\x1b[37m"

_SERVER_NAME = "cacheproxy"

_ERROR_PAGES = {
    400: (
        "HTTP/1.1 400 Bad Request\r\nContent-Length: 95\r\nConnection: keep-alive\r\n"
        "Content-Type: text/html\r\nDate: {date}\r\nServer: {server}\r\n\r\n"
        "<HTML><HEAD><TITLE>400 Bad Request</TITLE></HEAD>\n"
        "<BODY><H1>400 Bad Rqeuest</H1>\n</BODY></HTML>",
        "400 Bad Request",
    ),
    403: (
        "HTTP/1.1 403 Forbidden\r\nContent-Length: 112\r\nContent-Type: text/html\r\n"
        "Connection: keep-alive\r\nDate: {date}\r\nServer: {server}\r\n\r\n"
        "<HTML><HEAD><TITLE>403 Forbidden</TITLE></HEAD>\n"
        "<BODY><H1>403 Forbidden</H1><br>Permission Denied\n</BODY></HTML>",
        "403 Forbidden",
    ),
    404: (
        "HTTP/1.1 404 Not Found\r\nContent-Length: 91\r\nContent-Type: text/html\r\n"
        "Connection: keep-alive\r\nDate: {date}\r\nServer: {server}\r\n\r\n"
        "<HTML><HEAD><TITLE>404 Not Found</TITLE></HEAD>\n"
        "<BODY><H1>404 Not Found</H1>\n</BODY></HTML>",
        "404 Not Found",
    ),
    500: (
        "HTTP/1.1 500 Internal Server Error\r\nContent-Length: 115\r\n"
        "Connection: keep-alive\r\nContent-Type: text/html\r\nDate: {date}\r\n"
        "Server: {server}\r\n\r\n"
        "<HTML><HEAD><TITLE>500 Internal Server Error</TITLE></HEAD>\n"
        "<BODY><H1>500 Internal Server Error</H1>\n</BODY></HTML>",
        None,
    ),
    501: (
        "HTTP/1.1 501 Not Implemented\r\nContent-Length: 103\r\nConnection: keep-alive\r\n"
        "Content-Type: text/html\r\nDate: {date}\r\nServer: {server}\r\n\r\n"
        "<HTML><HEAD><TITLE>404 Not Implemented</TITLE></HEAD>\n"
        "<BODY><H1>501 Not Implemented</H1>\n</BODY></HTML>",
        "501 Not Implemented",
    ),
    505: (
        "HTTP/1.1 505 HTTP Version Not Supported\r\nContent-Length: 125\r\n"
        "Connection: keep-alive\r\nContent-Type: text/html\r\nDate: {date}\r\n"
        "Server: {server}\r\n\r\n"
        "<HTML><HEAD><TITLE>505 HTTP Version Not Supported</TITLE></HEAD>\n"
        "<BODY><H1>505 HTTP Version Not Supported</H1>\n</BODY></HTML>",
        "505 HTTP Version Not Supported",
    ),
}

_CACHE_COLORS = {
    "[CACHE HIT]": GREEN,
    "[CACHE MISS]": RED,
    "[CACHE EVICT]": YELLOW,
    "[CACHE STORE]": CYAN,
}

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def log_event(color: str, tag: str, message: str) -> None:
    """Print a timestamped, coloured log line to standard output."""
    stamp = time.strftime("%H:%M:%S")
    print(f"{BOLD}[{stamp}] {color}{tag:<12}{RESET} {message}", flush=True)


def _log_cache(tag: str, message: str) -> None:
    log_event(_CACHE_COLORS.get(tag, WHITE), tag, message)


def error_response(status_code: int, now: _dt.datetime) -> bytes:
    """Return the full error response for ``status_code`` dated ``now`` (UTC)."""
    try:
        template, _ = _ERROR_PAGES[status_code]
    except KeyError:
        raise ValueError(f"unsupported status code {status_code}") from None
    date = now.strftime("%a, %d %b %Y %H:%M:%S") + " GMT"
    return template.format(date=date, server=_SERVER_NAME).encode("ascii")


def send_error_message(sock: socket.socket, status_code: int) -> None:
    """Send an error page for ``status_code`` to ``sock``."""
    payload = error_response(status_code, _dt.datetime.now(_dt.timezone.utc))
    summary = _ERROR_PAGES[status_code][1]
    if summary is not None:
        log_event(RED, "[ERROR]", summary)
    sock.sendall(payload)


def check_http_version(version: str) -> bool:
    """Return True for HTTP/1.1 and HTTP/1.0 request versions."""
    return version[:8] in ("HTTP/1.1", "HTTP/1.0")


def connect_remote_server(host: str, port: int) -> socket.socket:
    """Open a TCP connection to ``host``:``port``; raise OSError on failure."""
    try:
        address = socket.gethostbyname(host)
    except OSError:
        log_event(RED, "[ERROR]", f"No such host exists: {host}")
        raise
    try:
        return socket.create_connection((address, port))
    except OSError:
        log_event(RED, "[ERROR]", f"Error in connecting to remote server {host}:{port}!")
        raise


def build_upstream_request(request: ParsedRequest) -> bytes:
    """Build the origin-form request sent upstream, adjusting its headers."""
    line = f"GET {request.path} {request.version}\r\n"
    request.set_header("Connection", "close")
    if request.get_header("Host") is None:
        request.set_header("Host", request.host)
    headers = request.unparse_headers()
    if len(headers) > MAX_BYTES - len(line):
        log_event(MAGENTA, "[INFO]", "unparse failed")
        headers = ""
    return (line + headers).encode("latin-1")


def read_request(sock: socket.socket) -> tuple[bytes, bool]:
    """Read from ``sock`` until the end of the request headers.

    Returns the bytes read and whether the peer was still connected when
    reading stopped. Receive errors propagate as OSError.
    """
    data = bytearray()
    while True:
        if len(data) >= MAX_BYTES:
            return bytes(data), False
        chunk = sock.recv(MAX_BYTES - len(data))
        if not chunk:
            return bytes(data), False
        data += chunk
        if b"\r\n\r\n" in data:
            return bytes(data), True


def handle_request(
    client: socket.socket, request: ParsedRequest, raw_request: str, cache: Cache
) -> None:
    """Forward ``request`` upstream, relay the reply to ``client`` and cache it."""
    upstream = build_upstream_request(request)
    port = _atoi(request.port) if request.port is not None else DEFAULT_REMOTE_PORT

    log_event(
        CYAN, "[FLOW]", f"Forwarding request to remote server: {request.host}{request.path}"
    )
    with connect_remote_server(request.host, port) as remote:
        remote.sendall(upstream)
        response = bytearray()
        while chunk := remote.recv(MAX_BYTES - 1):
            try:
                client.sendall(chunk)
            except OSError:
                log_event(RED, "[ERROR]", "Error in sending data to client socket.")
                break
            response += chunk

    cache.add(bytes(response).split(b"\0", 1)[0], raw_request)
    log_event(GREEN, "[FLOW]", "Response sent to client and cached.")


def _forward(client: socket.socket, raw_request: str, cache: Cache) -> None:
    try:
        request = parse_request(raw_request)
    except ParseError:
        log_event(RED, "[ERROR]", "Parsing failed")
        return

    if request.method != "GET":
        log_event(MAGENTA, "[INFO]", "This code doesn't support any method other than GET")
        return

    if request.host and request.path and check_http_version(request.version):
        log_event(CYAN, "[FLOW]", f"Handling GET request for {request.host}{request.path}")
        try:
            handle_request(client, request, raw_request, cache)
        except OSError:
            send_error_message(client, 500)
    else:
        send_error_message(client, 500)


def _close(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    sock.close()


def handle_client(
    client: socket.socket, cache: Cache, slots: threading.Semaphore
) -> None:
    """Serve one client connection, holding one of ``slots`` while doing so."""
    with slots:
        try:
            try:
                data, connected = read_request(client)
            except OSError:
                log_event(RED, "[ERROR]", "Error in receiving from client.")
                return

            raw_request = data.split(b"\0", 1)[0].decode("latin-1")
            log_event(YELLOW, "[CLIENT]", "Received request from client")

            cached = cache.find(raw_request)
            if cached is not None:
                try:
                    client.sendall(cached.data)
                except OSError:
                    log_event(RED, "[ERROR]", "Error in sending data to client socket.")
                else:
                    log_event(GREEN, "[CACHE HIT]", "Response sent from cache.")
            elif connected:
                _forward(client, raw_request, cache)
            else:
                log_event(YELLOW, "[INFO]", "Client disconnected!")
        except OSError:
            log_event(RED, "[ERROR]", "Error in sending data to client socket.")
        finally:
            _close(client)


def serve(port: int, cache: Cache) -> None:
    """Listen on ``port`` and serve each client in its own thread, forever."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    except OSError:
        log_event(RED, "[ERROR]", "setsockopt(SO_REUSEADDR) failed")

    try:
        listener.bind(("", port))
    except OSError:
        log_event(RED, "[ERROR]", "Port is not free")
        listener.close()
        raise
    log_event(BLUE, "[PROXY]", f"Binding on port: {port}")

    try:
        listener.listen(MAX_CLIENTS)
    except OSError:
        log_event(RED, "[ERROR]", "Error while Listening !")
        listener.close()
        raise

    slots = threading.Semaphore(MAX_CLIENTS)
    with listener:
        while True:
            try:
                client, (client_ip, client_port) = listener.accept()
            except OSError:
                log_event(RED, "[ERROR]", "Error in Accepting connection !")
                raise
            log_event(YELLOW, "[CLIENT]", f"[CONNECT] Port: {client_port}, IP: {client_ip}")
            threading.Thread(
                target=handle_client, args=(client, cache, slots), daemon=True
            ).start()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the proxy on the port given as the only argument."""
    args = list(sys.argv[1:] if argv is None else argv)
    print("\n========================================")
    print("||      DANGER PROXY SERVER 9000!     ||")
    print("========================================\n")

    if len(args) != 1:
        log_event(RED, "[ERROR]", "Too few arguments")
        return 1

    port = _atoi(args[0])
    log_event(BLUE, "[PROXY]", f"Setting Proxy Server Port : {port}")
    try:
        serve(port, Cache(log=_log_cache))
    except OSError:
        return 1
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    sys.exit(main())