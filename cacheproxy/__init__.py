"""A threaded HTTP forward proxy for GET requests with an in-memory LRU response cache."""

__version__ = "0.1.0"
__all__ = ["cache", "parser", "server"]