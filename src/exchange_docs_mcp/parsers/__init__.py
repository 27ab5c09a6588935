"""Parsers for OpenAPI documents and the exchanges they describe."""

from .documents import fetch_document, parse_document, read_document
from .exchange import ExchangeParser, parse_exchange

__all__ = [
    "ExchangeParser",
    "fetch_document",
    "parse_document",
    "parse_exchange",
    "read_document",
]
