# cacheproxy

A small HTTP forward proxy for `GET` requests. It sends each request on to the
origin server, relays the reply to the client and keeps the reply in an
in-memory cache. When the identical request text comes in again, the reply is
served from the cache and the origin server is not contacted.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running the proxy

Give the port to listen on as the only argument:

```
cacheproxy 8080
```

The same can be started with `python -m cacheproxy.server 8080`. If the
argument is missing, or there are too many, the command logs an error and
exits with status 1. It also exits with status 1 if the port cannot be bound.

Point an HTTP client at the proxy and use an absolute URL in the request line:

```
GET http://example.com/index.html HTTP/1.1
Host: example.com

```

How a request is handled:

- The proxy reads from the client until the blank line that ends the headers
  (at most 4096 bytes).
- Each client connection is served in its own thread; at most 400 clients are
  served at the same time.
- The request sent upstream uses the path only (`GET /index.html HTTP/1.1`),
  with `Connection: close` set and a `Host` header added when the client did
  not send one. The origin port is taken from the URL, or 80 if none is given.
- Only `GET` is handled. A request that cannot be parsed (including any other
  method) is logged and the connection is closed without a reply.
- A version other than `HTTP/1.0` or `HTTP/1.1`, or an origin server that cannot
  be resolved or reached, is answered with `500 Internal Server Error`.

Every event is logged to standard output with a timestamp and a coloured tag:
client connections, cache hits, misses, stores and evictions, request flow and
errors.

## Cache behaviour

- Entries are keyed by the full text of the client's request.
- The cache holds up to 200 MiB in total.
- A response larger than 10 MiB is not cached.
- When a new entry would not fit, the entry with the oldest access time is
  evicted; looking an entry up counts as an access.

## Using the parser as a library

```python
from cacheproxy.parser import ParsedRequest, ParseError

raw = (
    b"GET http://www.example.com:80/index.html HTTP/1.0\r\n"
    b"If-Modified-Since: Sat, 29 Oct 1994 19:43:31 GMT\r\n\r\n"
)
request = ParsedRequest.parse(raw)
print(request.method, request.host, request.port, request.path)
# GET www.example.com 80 /index.html

request.set_header("Connection", "close")
request.remove_header("If-Modified-Since")
print(request.unparse())
```

`ParsedRequest.parse` accepts bytes or text and raises `ParseError` (a
`ValueError`) for malformed requests. `parse_request(data)` is a shorthand for
it. Other members:

- `get_header(key)` returns a header value or `None`; `set_header(key, value)`
  replaces any earlier value and moves the header last; `remove_header(key)`
  returns the removed value and raises `KeyError` if the header is absent.
- `request_line()`, `unparse_headers()` and `unparse()` give the serialised
  request line, headers (ending in an empty line) and whole request.
- `headers_length()` and `total_length()` give the lengths of those strings.

## Using the cache directly

```python
from cacheproxy.cache import Cache

cache = Cache()
key = "GET http://example.com/ HTTP/1.1\r\n\r\n"
cache.add(b"HTTP/1.1 200 OK\r\n\r\nhello", key)
element = cache.find(key)
print(element.data, key in cache, len(cache), cache.size)
```

`Cache(max_size, max_element_size, clock=..., log=...)` takes optional limits
in bytes, a clock function for access times and a `log(tag, message)` callback.
`add` returns `False` when the response is too large to cache, `find` returns
the `CacheElement` or `None`, and `evict()` removes and returns the least
recently used entry.

## Limitations

- No `HTTPS`, `CONNECT`, or methods other than `GET`.
- The cache lives in memory only; it is lost when the proxy stops, and entries
  never expire on their own. Cache-control headers are not consulted.
- There is no configuration beyond the port; log output cannot be turned off.