import pytest

from cacheproxy.parser import ParseError, ParsedRequest, parse_request

EXAMPLE = (
    "GET http://www.google.com:80/index.html/ HTTP/1.0\r\nContent-Length:"
    " 80\r\nIf-Modified-Since: Sat, 29 Oct 1994 19:43:31 GMT\r\n\r\n"
)


@pytest.fixture
def example():
    return parse_request(EXAMPLE)


def test_request_line_fields(example):
    assert example.method == "GET"
    assert example.protocol == "http"
    assert example.host == "www.google.com"
    assert example.port == "80"
    assert example.path == "/index.html/"
    assert example.version == "HTTP/1.0"


def test_headers_parsed(example):
    assert example.get_header("Content-Length") == "80"
    assert example.get_header("If-Modified-Since") == "Sat, 29 Oct 1994 19:43:31 GMT"
    assert example.get_header("Missing") is None


def test_unparse_round_trip(example):
    assert example.unparse() == EXAMPLE
    assert example.total_length() == len(EXAMPLE)


def test_reparse_of_unparse_is_equal(example):
    assert parse_request(example.unparse()) == example


def test_unparse_headers_and_length(example):
    headers = example.unparse_headers()
    assert EXAMPLE.endswith(headers)
    assert example.headers_length() == len(headers)
    assert example.request_line() + headers == example.unparse()


def test_remove_and_set_header(example):
    example.remove_header("If-Modified-Since")
    assert example.get_header("If-Modified-Since") is None
    example.set_header("Last-Modified", " Wed, 12 Feb 2014 12:43:31 GMT")
    assert example.get_header("Last-Modified") == " Wed, 12 Feb 2014 12:43:31 GMT"
    assert example.unparse_headers().endswith(
        "Last-Modified:  Wed, 12 Feb 2014 12:43:31 GMT\r\n\r\n"
    )


def test_remove_missing_header_raises(example):
    with pytest.raises(KeyError):
        example.remove_header("Not-There")


def test_set_existing_header_moves_it_last(example):
    example.set_header("Content-Length", "10")
    assert list(example.headers) == ["If-Modified-Since", "Content-Length"]
    assert example.get_header("Content-Length") == "10"


def test_no_headers_serialise_to_blank_line():
    request = parse_request("GET http://example.com/ HTTP/1.1\r\n\r\n")
    assert request.unparse_headers() == "\r\n"
    assert request.headers_length() == 2


def test_empty_path_becomes_root():
    request = parse_request("GET http://example.com/ HTTP/1.1\r\n\r\n")
    assert request.path == "/"
    assert request.port is None
    assert request.host == "example.com"


def test_bytes_input_accepted():
    request = ParsedRequest.parse(EXAMPLE.encode("latin-1"))
    assert request.unparse() == EXAMPLE


def test_body_after_headers_is_ignored():
    raw = "GET http://example.com/a HTTP/1.1\r\nHost: example.com\r\n\r\nbody"
    request = parse_request(raw)
    assert request.headers == {"Host": "example.com"}
    assert request.unparse() == raw[: -len("body")]


@pytest.mark.parametrize(
    "raw",
    [
        "GET",
        "GET http://example.com/ HTTP/1.1\r\n",
        "POST http://example.com/ HTTP/1.1\r\n\r\n",
        "   \r\n\r\n",
        "GET\r\n\r\n",
        "GET http://example.com/\r\n\r\n",
        "GET http://example.com/ FTP/1.0\r\n\r\n",
        "GET http://example.com HTTP/1.1\r\n\r\n",
        "GET http://example.com//x HTTP/1.1\r\n\r\n",
        "GET http://example.com:abc/ HTTP/1.1\r\n\r\n",
        "GET http://example.com/ HTTP/1.1\r\nNoColonHere\r\n\r\n",
    ],
)
def test_invalid_requests_raise(raw):
    with pytest.raises(ParseError):
        parse_request(raw)


def test_too_long_request_raises():
    raw = "GET http://example.com/" + "a" * 65535 + " HTTP/1.1\r\n\r\n"
    with pytest.raises(ParseError):
        parse_request(raw)


def test_parse_error_is_value_error():
    with pytest.raises(ValueError):
        parse_request("PUT http://example.com/ HTTP/1.1\r\n\r\n")