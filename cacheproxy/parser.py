"""Parsing and re-serialisation of proxied HTTP GET requests."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

MIN_REQUEST_LENGTH = 4
MAX_REQUEST_LENGTH = 65535
ROOT_PATH = "/"

_PORT_PATTERN = re.compile(r"\s*[+-]?\d")


class ParseError(ValueError):
    """Raised when a request buffer cannot be parsed."""


class _Splitter:
    """Splits text into delimiter-separated pieces, one call at a time.

    Each call may use a different set of delimiters; the single delimiter
    that ends a piece is consumed along with it.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def next(self, delimiters: str) -> str | None:
        chars = re.escape(delimiters)
        match = re.compile(rf"[{chars}]*([^{chars}]*)").match(self.text, self.pos)
        piece = match.group(1)
        if not piece:
            self.pos = len(self.text)
            return None
        end = match.end()
        self.pos = end + 1 if end < len(self.text) else end
        return piece


def _decode(data: bytes | bytearray | str) -> str:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("latin-1")
    return data


@dataclass
class ParsedRequest:
    """A parsed absolute-URI GET request line together with its headers."""

    method: str
    protocol: str
    host: str
    path: str
    version: str
    port: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, data: bytes | bytearray | str) -> ParsedRequest:
        """Parse a request buffer that ends with an empty line."""
        if not MIN_REQUEST_LENGTH <= len(data) <= MAX_REQUEST_LENGTH:
            raise ParseError(f"invalid buffer length {len(data)}")

        text = _decode(data).split("\0", 1)[0]
        if "\r\n\r\n" not in text:
            raise ParseError("invalid request line, no end of header")

        line_end = text.index("\r\n")
        line = text[:line_end]

        words = _Splitter(line)
        method = words.next(" ")
        if method is None:
            raise ParseError("invalid request line, no whitespace")
        if method != "GET":
            raise ParseError(f"invalid request line, method not 'GET': {method}")

        full_addr = words.next(" ")
        if full_addr is None:
            raise ParseError("invalid request line, no full address")

        version = line[words.pos:]
        if not version.startswith("HTTP/"):
            raise ParseError(f"invalid request line, unsupported version {version}")

        addr = _Splitter(full_addr)
        protocol = addr.next(":/")
        if protocol is None:
            raise ParseError("invalid request line, missing host")
        remainder = full_addr[len(protocol) + len("://"):]

        host_field = addr.next("/")
        if host_field is None:
            raise ParseError("invalid request line, missing host")
        if len(host_field) == len(remainder):
            raise ParseError("invalid request line, missing absolute path")

        path_part = addr.next(" ")
        if path_part is None:
            path = ROOT_PATH
        elif path_part.startswith(ROOT_PATH):
            raise ParseError(
                "invalid request line, path cannot begin with two slash characters"
            )
        else:
            path = ROOT_PATH + path_part

        host_parts = _Splitter(host_field)
        host = host_parts.next(":")
        port = host_parts.next("/")
        if host is None:
            raise ParseError("invalid request line, missing host")
        if port is not None and not _PORT_PATTERN.match(port):
            raise ParseError(f"invalid request line, bad port: {port}")

        request = cls(
            method=method,
            protocol=protocol,
            host=host,
            path=path,
            version=version,
            port=port,
        )
        request._parse_headers(text[line_end + 2:])
        return request

    def _parse_headers(self, rest: str) -> None:
        while rest and not rest.startswith("\r\n"):
            colon = rest.find(":")
            if colon < 0:
                raise ParseError("no colon found in header line")
            value_start = colon + 2
            value_end = rest.find("\r\n", value_start)
            if value_end < 0:
                raise ParseError("header line is not terminated")
            self.set_header(rest[:colon], rest[value_start:value_end])

            next_line = rest.find("\r\n")
            if next_line < 0:
                break
            rest = rest[next_line + 2:]

    def set_header(self, key: str, value: str) -> None:
        """Set a header, replacing any previous value and moving it last."""
        self.headers.pop(key, None)
        self.headers[key] = value

    def get_header(self, key: str) -> str | None:
        """Return the value of the header named exactly ``key``, or None."""
        return self.headers.get(key)

    def remove_header(self, key: str) -> str:
        """Remove a header and return its value; raise KeyError if absent."""
        if key not in self.headers:
            raise KeyError(key)
        return self.headers.pop(key)

    def request_line(self) -> str:
        """Return the request line, including its trailing CRLF."""
        port = f":{self.port}" if self.port is not None else ""
        return (
            f"{self.method} {self.protocol}://{self.host}{port}{self.path} "
            f"{self.version}\r\n"
        )

    def unparse_headers(self) -> str:
        """Return the headers followed by the terminating empty line."""
        lines = "".join(f"{key}: {value}\r\n" for key, value in self.headers.items())
        return lines + "\r\n"

    def unparse(self) -> str:
        """Return the whole request: request line, headers and empty line."""
        return self.request_line() + self.unparse_headers()

    def headers_length(self) -> int:
        """Length of the serialised headers including the final CRLF."""
        return len(self.unparse_headers())

    def total_length(self) -> int:
        """Length of the whole serialised request."""
        return len(self.request_line()) + self.headers_length()


def parse_request(data: bytes | bytearray | str) -> ParsedRequest:
    """Parse a request buffer into a :class:`ParsedRequest`."""
    return ParsedRequest.parse(data)